from __future__ import annotations

from typing import Any, Generic, Optional, Type, TypeVar, cast

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

T = TypeVar("T")


class Repository(Generic[T]):
    """Primary-key access and counting for one mapped model; query helpers live in subclasses."""

    def __init__(self, session: AsyncSession, model: Type[T]):
        self.session = session
        self.model = model

    async def get(self, id: Any) -> Optional[T]:
        return await self.session.get(self.model, id)

    async def count(self, *conditions: Any) -> int:
        stmt = select(func.count()).select_from(self.model).where(*conditions)
        return int((await self.session.execute(stmt)).scalar_one())

    async def delete(self, id: Any) -> int:
        cond = cast(Any, self.model.id == id)
        res = await self.session.execute(delete(self.model).where(cond))
        return int(res.rowcount or 0)
