"""Shared async repository plumbing: lookup by primary key, insert and partial update."""
from __future__ import annotations

from typing import Any, ClassVar, Dict, Generic, Optional, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession

ModelT = TypeVar("ModelT")


class BaseRepository(Generic[ModelT]):
    """Subclasses set ``model``. Writes flush but never commit; the caller owns the transaction."""

    model: ClassVar[type]

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_by_id(self, id: Any) -> Optional[ModelT]:
        return await self.session.get(self.model, id)  # type: ignore[return-value]

    async def create(self, data: Dict[str, Any]) -> ModelT:
        """Insert and flush, so constraint violations surface here as IntegrityError."""
        row = self.model(**data)
        self.session.add(row)
        await self.session.flush()
        await self.session.refresh(row)
        return row  # type: ignore[return-value]

    async def update(self, id: Any, data: Dict[str, Any]) -> Optional[ModelT]:
        row = await self.get_by_id(id)
        if row is None:
            return None
        for name, value in data.items():
            setattr(row, name, value)
        await self.session.flush()
        await self.session.refresh(row)
        return row  # type: ignore[return-value]
