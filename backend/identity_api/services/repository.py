"""
Generic soft-delete-aware data access.

Feature services hold a ``Repository`` for their model instead of inheriting
CRUD behaviour. Every method takes the request's session explicitly and
none of them flush or commit; the calling service owns the unit of work.
"""

import uuid
from typing import Any, Generic, TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from identity_api.core.database import Base, utcnow

ModelT = TypeVar("ModelT", bound=Base)


class Repository(Generic[ModelT]):
    def __init__(self, model: type[ModelT]):
        self.model = model

    def select_active(self):
        return select(self.model).where(self.model.deleted_at.is_(None))

    async def get(self, session: AsyncSession, id: uuid.UUID, include_deleted: bool = False) -> ModelT | None:
        stmt = select(self.model).where(self.model.id == id)
        if not include_deleted:
            stmt = stmt.where(self.model.deleted_at.is_(None))
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def first(self, session: AsyncSession, *criteria: Any) -> ModelT | None:
        result = await session.execute(self.select_active().where(*criteria).limit(1))
        return result.scalars().first()

    async def find(
        self,
        session: AsyncSession,
        *criteria: Any,
        limit: int = 100,
        offset: int = 0,
        deleted: bool = False,
    ) -> list[ModelT]:
        stmt = select(self.model).where(
            self.model.deleted_at.is_not(None) if deleted else self.model.deleted_at.is_(None),
            *criteria,
        )
        stmt = stmt.order_by(self.model.created_at.desc()).limit(limit).offset(offset)
        result = await session.execute(stmt)
        return list(result.scalars().all())

    async def create(self, session: AsyncSession, **values: Any) -> ModelT:
        obj = self.model(**values)
        session.add(obj)
        return obj

    async def update(self, session: AsyncSession, obj: ModelT, **values: Any) -> ModelT:
        for field, value in values.items():
            setattr(obj, field, value)
        obj.updated_at = utcnow()
        return obj

    async def soft_delete(self, session: AsyncSession, obj: ModelT) -> ModelT:
        now = utcnow()
        obj.deleted_at = now
        obj.updated_at = now
        return obj

    async def restore(self, session: AsyncSession, obj: ModelT) -> ModelT:
        obj.deleted_at = None
        obj.updated_at = utcnow()
        return obj
