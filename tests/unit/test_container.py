"""
Unit tests for the synotag DI container.

Factories return new instances on every call; the resolver and query
compiler are cached until ``reset()``.
"""

from __future__ import annotations

from unittest.mock import patch

import pytest

from synotag.container import Container, container
from synotag.repositories import TagRepository, TaggingRepository
from synotag.services.canonical_resolver import CanonicalResolver
from synotag.services.query_compiler import TagQueryCompiler
from synotag.services.tag_synchronizer import TagSetSynchronizer
from synotag.services.tagging_service import TaggingService


@pytest.fixture
def fresh_container() -> Container:
    """A container with no cached singletons."""
    return Container()


class TestRepositoryFactories:
    """Test repository factory methods."""

    def test_tag_repository_is_transient(self, fresh_container: Container) -> None:
        repo1 = fresh_container.create_tag_repository()
        repo2 = fresh_container.create_tag_repository()
        assert isinstance(repo1, TagRepository)
        assert repo1 is not repo2

    def test_tag_repository_shares_singletons(self, fresh_container: Container) -> None:
        repo = fresh_container.create_tag_repository()
        assert repo._resolver is fresh_container.canonical_resolver
        assert repo._compiler is fresh_container.query_compiler

    def test_tagging_repository(self, fresh_container: Container) -> None:
        repo1 = fresh_container.create_tagging_repository()
        assert isinstance(repo1, TaggingRepository)
        assert repo1 is not fresh_container.create_tagging_repository()


class TestServiceFactories:
    """Test service wiring."""

    def test_tagging_service(self, fresh_container: Container) -> None:
        service = fresh_container.create_tagging_service(destroy_unused=True)
        assert isinstance(service, TaggingService)
        assert service.synchronizer.destroy_unused is True

    def test_tagging_service_default_from_settings(
        self, fresh_container: Container
    ) -> None:
        with patch("synotag.services.tagging_service.settings") as mock_settings:
            mock_settings.destroy_unused_tags = True
            service = fresh_container.create_tagging_service()
        assert service.synchronizer.destroy_unused is True

    def test_tag_synchronizer(self, fresh_container: Container) -> None:
        with patch("synotag.container.settings") as mock_settings:
            mock_settings.destroy_unused_tags = False
            synchronizer = fresh_container.create_tag_synchronizer()
        assert isinstance(synchronizer, TagSetSynchronizer)
        assert synchronizer.destroy_unused is False


class TestSingletons:
    """Test cached singletons and reset."""

    def test_singletons_are_cached(self, fresh_container: Container) -> None:
        assert isinstance(fresh_container.canonical_resolver, CanonicalResolver)
        assert isinstance(fresh_container.query_compiler, TagQueryCompiler)
        assert fresh_container.query_compiler is fresh_container.query_compiler

    def test_compiler_reads_canonical_default(self, fresh_container: Container) -> None:
        with patch("synotag.container.settings") as mock_settings:
            mock_settings.canonical_queries = False
            compiler = fresh_container.query_compiler
        assert compiler.canonical_default is False

    def test_reset(self, fresh_container: Container) -> None:
        compiler = fresh_container.query_compiler
        resolver = fresh_container.canonical_resolver

        fresh_container.reset()

        assert fresh_container.query_compiler is not compiler
        assert fresh_container.canonical_resolver is not resolver

    def test_global_container(self) -> None:
        assert isinstance(container, Container)
