"""
Dependency Injection Container for synotag.

This module provides a centralized container for wiring the tagging
components together:

- Factory methods create repository and service instances (transient)
- The stateless resolver and query compiler are cached singletons
- The container can be reset so tests can swap configuration

Usage
-----
    >>> from synotag.container import container
    >>> service = container.create_tagging_service()
    >>> tag_repo = container.create_tag_repository()

Design Principles
-----------------
- Repository and service factories return new instances each call
- Singletons are cached via @cached_property (lazy initialization)
- Defaults come from ``synotag.config.settings`` at first use
"""

from __future__ import annotations

from functools import cached_property
from typing import Optional

from synotag.config.settings import settings
from synotag.repositories import TagRepository, TaggingRepository
from synotag.services.canonical_resolver import CanonicalResolver
from synotag.services.query_compiler import TagQueryCompiler
from synotag.services.tag_synchronizer import (
    CachedTagListProjection,
    TagSetSynchronizer,
)
from synotag.services.tagging_service import TaggingService


class Container:
    """
    Dependency injection container for synotag.

    Examples
    --------
    Creating repositories (transient - new instance each call):

        >>> container = Container()
        >>> repo1 = container.create_tag_repository()
        >>> repo2 = container.create_tag_repository()
        >>> repo1 is repo2
        False

    Notes
    -----
    All factory methods follow the naming convention ``create_<name>()`` and
    return a new instance each call.
    """

    # -------------------------------------------------------------------------
    # Repository Factory Methods (Transient - new instance per call)
    # -------------------------------------------------------------------------

    def create_tag_repository(self) -> TagRepository:
        """
        Create a new TagRepository sharing the container's resolver and compiler.

        Returns
        -------
        TagRepository
            A new TagRepository instance.
        """
        return TagRepository(
            resolver=self.canonical_resolver, compiler=self.query_compiler
        )

    def create_tagging_repository(self) -> TaggingRepository:
        return TaggingRepository()

    # -------------------------------------------------------------------------
    # Service Factory Methods (Transient - new instance per call)
    # -------------------------------------------------------------------------

    def create_tag_synchronizer(
        self, destroy_unused: Optional[bool] = None
    ) -> TagSetSynchronizer:
        """
        Create a new TagSetSynchronizer with wired repositories.

        Parameters
        ----------
        destroy_unused : bool, optional
            Delete tags left without taggings after a sync.  Defaults to
            ``settings.destroy_unused_tags``.

        Returns
        -------
        TagSetSynchronizer
            A new synchronizer instance.
        """
        if destroy_unused is None:
            destroy_unused = settings.destroy_unused_tags
        return TagSetSynchronizer(
            self.create_tag_repository(),
            self.create_tagging_repository(),
            destroy_unused=destroy_unused,
        )

    def create_tagging_service(
        self, destroy_unused: Optional[bool] = None
    ) -> TaggingService:
        """
        Create a new TaggingService instance with wired dependencies.

        Parameters
        ----------
        destroy_unused : bool, optional
            Passed through to the service's synchronizer.

        Returns
        -------
        TaggingService
            A new TaggingService instance with all dependencies wired.

        Examples
        --------
        >>> service = container.create_tagging_service(destroy_unused=True)
        >>> service.synchronizer.destroy_unused
        True
        """
        return TaggingService(
            tag_repo=self.create_tag_repository(),
            tagging_repo=self.create_tagging_repository(),
            compiler=self.query_compiler,
            projection=CachedTagListProjection(settings.tag_list_delimiter),
            destroy_unused=destroy_unused,
        )

    # -------------------------------------------------------------------------
    # Singleton Properties (Cached - same instance on repeated access)
    # -------------------------------------------------------------------------

    @cached_property
    def canonical_resolver(self) -> CanonicalResolver:
        """The shared, stateless CanonicalResolver."""
        return CanonicalResolver()

    @cached_property
    def query_compiler(self) -> TagQueryCompiler:
        """
        Get the singleton TagQueryCompiler instance.

        The compiler's canonical default is read from settings on first
        access; call ``reset()`` after changing it.

        Returns
        -------
        TagQueryCompiler
            The singleton compiler instance.
        """
        return TagQueryCompiler(canonical_default=settings.canonical_queries)

    # -------------------------------------------------------------------------
    # Testing Support
    # -------------------------------------------------------------------------

    def reset(self) -> None:
        """
        Reset the container by clearing all cached singleton instances.

        Examples
        --------
        >>> container.reset()
        >>> # All cached singletons are cleared
        """
        properties_to_clear = ["canonical_resolver", "query_compiler"]
        for prop in properties_to_clear:
            self.__dict__.pop(prop, None)


# Global container instance
container = Container()
