"""
Base repository interface and implementation.

Provides common CRUD operations and patterns for the tag repositories.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Generic, List, Optional, TypeVar, Union

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import DeclarativeBase

# Type variables for generic repository
ModelType = TypeVar("ModelType", bound=DeclarativeBase)
CreateSchemaType = TypeVar("CreateSchemaType")
UpdateSchemaType = TypeVar("UpdateSchemaType")
IdType = TypeVar("IdType")


def _as_dict(obj_in: Any, *, exclude_unset: bool = False) -> dict[str, Any]:
    """Extract field values from a Pydantic model or mapping."""
    if hasattr(obj_in, "model_dump"):
        return obj_in.model_dump(exclude_unset=exclude_unset)
    if isinstance(obj_in, dict):
        return dict(obj_in)
    return dict(obj_in.__dict__)


class BaseRepository(
    ABC, Generic[ModelType, CreateSchemaType, UpdateSchemaType, IdType]
):
    """
    Base repository interface defining common CRUD operations.

    All methods take the session explicitly; the caller owns the transaction.
    """

    @abstractmethod
    async def create(
        self, session: AsyncSession, *, obj_in: CreateSchemaType
    ) -> ModelType:
        """Create a new entity."""
        pass

    @abstractmethod
    async def get(self, session: AsyncSession, id: IdType) -> Optional[ModelType]:
        """Get entity by ID."""
        pass

    @abstractmethod
    async def update(
        self,
        session: AsyncSession,
        *,
        db_obj: ModelType,
        obj_in: Union[UpdateSchemaType, dict[str, Any]],
    ) -> ModelType:
        """Update an existing entity."""
        pass

    @abstractmethod
    async def delete(self, session: AsyncSession, *, id: IdType) -> Optional[ModelType]:
        """Delete an entity by ID."""
        pass


class BaseSQLAlchemyRepository(
    BaseRepository[ModelType, CreateSchemaType, UpdateSchemaType, IdType]
):
    """
    Base SQLAlchemy repository implementation.

    Provides SQLAlchemy-based CRUD for models with an ``id`` primary key.
    """

    def __init__(self, model: type[ModelType]):
        self.model = model

    async def create(
        self, session: AsyncSession, *, obj_in: CreateSchemaType
    ) -> ModelType:
        """Create a new entity in the database."""
        db_obj = self.model(**_as_dict(obj_in))
        session.add(db_obj)
        await session.flush()
        await session.refresh(db_obj)
        return db_obj

    async def get(self, session: AsyncSession, id: IdType) -> Optional[ModelType]:
        """Get entity by primary key."""
        result = await session.execute(
            select(self.model).where(self.model.id == id)  # type: ignore[attr-defined]
        )
        return result.scalar_one_or_none()

    async def exists(self, session: AsyncSession, id: IdType) -> bool:
        """Check if entity exists by primary key."""
        result = await session.execute(
            select(self.model.id).where(self.model.id == id)  # type: ignore[attr-defined]
        )
        return result.first() is not None

    async def get_multi(
        self, session: AsyncSession, *, skip: int = 0, limit: int = 100
    ) -> List[ModelType]:
        """Get multiple entities with pagination."""
        result = await session.execute(select(self.model).offset(skip).limit(limit))
        return list(result.scalars().all())

    async def update(
        self,
        session: AsyncSession,
        *,
        db_obj: ModelType,
        obj_in: Union[UpdateSchemaType, dict[str, Any]],
    ) -> ModelType:
        """Update an existing entity with the fields that were set."""
        for field, value in _as_dict(obj_in, exclude_unset=True).items():
            if hasattr(db_obj, field):
                setattr(db_obj, field, value)

        session.add(db_obj)
        await session.flush()
        await session.refresh(db_obj)
        return db_obj

    async def delete(self, session: AsyncSession, *, id: IdType) -> Optional[ModelType]:
        """Delete an entity by ID."""
        db_obj = await self.get(session, id)
        if db_obj:
            await session.delete(db_obj)
            await session.flush()
        return db_obj

    async def count(self, session: AsyncSession) -> int:
        """Count total number of entities."""
        result = await session.execute(select(func.count()).select_from(self.model))
        return result.scalar() or 0
