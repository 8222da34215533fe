"""Base repository with the CRUD operations every table shares."""

from typing import Any, ClassVar, Generic, TypeVar

from sqlalchemy import Update, select
from sqlalchemy.ext.asyncio import AsyncSession

from cbahi.db.base import Base

T = TypeVar("T", bound=Base)


class BaseRepository(Generic[T]):
    """Async repository over one ORM model.

    Subclasses set ``model`` and ``pk_field``.
    """

    model: ClassVar[type[Base]]
    pk_field: ClassVar[str]

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, pk_value: Any) -> T | None:
        stmt = select(self.model).where(getattr(self.model, self.pk_field) == pk_value)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def create(self, **kwargs: Any) -> T:
        """Add a new row and flush it so defaults are populated."""
        row = self.model(**kwargs)
        self.session.add(row)
        await self.session.flush()
        return row

    async def _execute_update(self, stmt: Update) -> int:
        """Run a bulk UPDATE, keeping loaded objects in sync; returns rowcount."""
        result = await self.session.execute(stmt.execution_options(synchronize_session="fetch"))
        return result.rowcount
