"""
Repository layer for data access patterns.

This module provides repository interfaces and implementations following
the Repository pattern for clean separation of domain logic and data persistence.
"""

from .base import BaseRepository, BaseSQLAlchemyRepository
from .tag_repository import TagRepository
from .tagging_repository import TaggingRepository

__all__ = [
    "BaseRepository",
    "BaseSQLAlchemyRepository",
    "TagRepository",
    "TaggingRepository",
]
