"""Base repository with the operations shared by every model.

Repositories receive a ``DatabaseConnection`` and open one session per
operation, committing inside ``session.begin()`` so any failure rolls the
whole operation back.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Generic, List, Optional, Type, TypeVar
from uuid import UUID

from sqlalchemy import func, select, update

from article_scout.database.connection import DatabaseConnection, get_database_connection
from article_scout.database.models.base import BaseModel

T = TypeVar('T', bound=BaseModel)

logger = logging.getLogger(__name__)


class BaseRepository(Generic[T]):
    """Common CRUD operations.

    Attributes:
        model_class: The SQLAlchemy model class this repository operates on
    """

    model_class: Type[T] = None

    def __init__(self, db: Optional[DatabaseConnection] = None):
        if self.model_class is None:
            raise ValueError("model_class must be defined in repository subclass")
        self.db = db or get_database_connection()

    async def get_by_id(self, id: UUID) -> Optional[T]:
        async with self.db.get_session() as session:
            query = select(self.model_class).where(self.model_class.id == id)
            result = await session.execute(query)
            return result.scalar_one_or_none()

    async def get_all(self, limit: Optional[int] = None) -> List[T]:
        async with self.db.get_session() as session:
            query = select(self.model_class)
            if limit:
                query = query.limit(limit)
            result = await session.execute(query)
            return list(result.scalars().all())

    async def create(self, data: Dict[str, Any]) -> T:
        async with self.db.get_session() as session:
            async with session.begin():
                instance = self.model_class(**data)
                session.add(instance)
                await session.flush()
            await session.refresh(instance)
            return instance

    async def update_by_id(self, id: UUID, data: Dict[str, Any]) -> bool:
        """Apply ``data`` to one row. Returns False when the row does not exist."""
        data = dict(data)
        data['updated_at'] = datetime.now(timezone.utc)
        async with self.db.get_session() as session:
            async with session.begin():
                try:
                    query = (
                        update(self.model_class)
                        .where(self.model_class.id == id)
                        .values(**data)
                    )
                    result = await session.execute(query)
                    return result.rowcount > 0
                except Exception as e:
                    logger.error(f"Failed to update {self.model_class.__name__} {id}: {e}")
                    raise

    async def count(self) -> int:
        async with self.db.get_session() as session:
            query = select(func.count()).select_from(self.model_class)
            result = await session.execute(query)
            return result.scalar() or 0
