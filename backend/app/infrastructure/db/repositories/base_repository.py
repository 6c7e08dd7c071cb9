"""
Base Repository for Solvex Finance

Generic async repository implementing the shared read/write operations.
Repositories flush, never commit; the calling service owns the transaction.
"""

from abc import ABC, abstractmethod
from typing import Any, TypeVar, Generic, Optional, Type

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import SQLModel


# Type variable for generic repository
ModelType = TypeVar("ModelType", bound=SQLModel)


class IReadRepository(ABC, Generic[ModelType]):
    """
    Interface for read operations.
    """

    @abstractmethod
    async def get_by_id(self, id: Any) -> Optional[ModelType]:
        """Get a single record by ID."""
        pass


class IWriteRepository(ABC, Generic[ModelType]):
    """
    Interface for write operations.
    """

    @abstractmethod
    async def add(self, obj: ModelType) -> ModelType:
        """Persist a new record."""
        pass

    @abstractmethod
    async def delete(self, id: Any) -> bool:
        """Delete a record by ID."""
        pass


class BaseRepository(
    IReadRepository[ModelType],
    IWriteRepository[ModelType],
    Generic[ModelType]
):
    """
    Generic async repository with CRUD operations.

    Args:
        model: The SQLModel class to operate on
        session: Async database session
    """

    def __init__(self, model: Type[ModelType], session: AsyncSession):
        self._model = model
        self._session = session

    @property
    def session(self) -> AsyncSession:
        """Get the current session."""
        return self._session

    def insert(self):
        """
        Dialect-specific INSERT supporting ``ON CONFLICT`` clauses.

        PostgreSQL in production, SQLite in the test suite.
        """
        dialect = self._session.get_bind().dialect.name
        if dialect == "sqlite":
            return sqlite.insert(self._model)
        return postgresql.insert(self._model)

    async def get_by_id(self, id: Any) -> Optional[ModelType]:
        """
        Get a single record by its primary key.

        Returns:
            Model instance or None if not found
        """
        return await self._session.get(self._model, id)

    async def add(self, obj: ModelType) -> ModelType:
        """
        Persist a new record and load its generated fields.
        """
        self._session.add(obj)
        await self._session.flush()
        await self._session.refresh(obj)
        return obj

    async def save(self, obj: ModelType) -> ModelType:
        """Flush pending changes made to an attached instance."""
        self._session.add(obj)
        await self._session.flush()
        return obj

    async def delete(self, id: Any) -> bool:
        """
        Delete a record by ID.

        Returns:
            True if deleted, False if not found
        """
        db_obj = await self.get_by_id(id)
        if not db_obj:
            return False

        await self._session.delete(db_obj)
        await self._session.flush()
        return True

