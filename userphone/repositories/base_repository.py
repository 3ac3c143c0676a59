from typing import Any, Generic, Optional, TypeVar
from uuid import UUID

from pydantic import BaseModel
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.future import select

from userphone.database import Base

ModelType = TypeVar("ModelType", bound=Base)
PydanticType = TypeVar("PydanticType", bound=BaseModel)


class BaseRepository(Generic[ModelType, PydanticType]):
    """Generic base repository with common CRUD operations.

    Each operation opens its own session from the factory, since the call
    engine writes from several concurrent background tasks.
    """

    def __init__(
        self, session_factory: async_sessionmaker[AsyncSession], model_class: Any
    ):
        self.session_factory = session_factory
        self.model_class = model_class

    async def get_by_id(self, id: str) -> Optional[PydanticType]:
        """Get a single record by ID."""
        async with self.session_factory() as db:
            query = select(self.model_class).where(
                self.model_class.id == UUID(id)
            )  # type: ignore
            result = await db.execute(query)
            db_model = result.scalar_one_or_none()
            return self._to_pydantic(db_model) if db_model else None

    async def create(self, pydantic_model: PydanticType) -> None:
        """Create a new record."""
        async with self.session_factory() as db:
            db.add(self._from_pydantic(pydantic_model))
            await db.commit()

    async def delete(self, *ids: str) -> int:
        """Delete records by ID, returning how many were removed."""
        if not ids:
            return 0
        async with self.session_factory() as db:
            query = delete(self.model_class).where(
                self.model_class.id.in_([UUID(id) for id in ids])
            )  # type: ignore
            result = await db.execute(query)
            await db.commit()
            return int(result.rowcount or 0)

    def _to_pydantic(self, db_model: ModelType) -> PydanticType:
        """Convert SQLAlchemy model to Pydantic model.

        This should be overridden in subclasses for specific conversion logic.
        """
        raise NotImplementedError

    def _from_pydantic(self, pydantic_model: PydanticType) -> ModelType:
        """Convert Pydantic model to SQLAlchemy model.

        This should be overridden in subclasses for specific conversion logic.
        """
        raise NotImplementedError
