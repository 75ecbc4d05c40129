"""Generic async repository shared by the submission and feedback repositories."""

from typing import Any, Generic, Sequence, TypeVar

from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession

from gradewise_api.db.database import Base

ModelT = TypeVar("ModelT", bound=Base)


class BaseRepository(Generic[ModelT]):
    """Filtered listing and inserts for one mapped class.

    Filters are column equality matches (``None`` matches NULL). Naming a
    column the model does not have raises ``AttributeError``. Nothing here
    commits; the caller owns the transaction.
    """

    def __init__(self, session: AsyncSession, model: type[ModelT]) -> None:
        self.session = session
        self.model = model

    def _filtered(self, query: Select, filters: dict[str, Any]) -> Select:
        for name, value in filters.items():
            column = getattr(self.model, name)
            query = query.where(column.is_(None) if value is None else column == value)
        return query

    async def find(
        self,
        limit: int | None = 100,
        offset: int = 0,
        order_by: Sequence[Any] = (),
        **filters: Any,
    ) -> list[ModelT]:
        """Rows matching ``filters``, by primary key unless ``order_by`` is given."""
        query = self._filtered(select(self.model), filters)
        query = query.order_by(*(order_by or (self.model.id,)))
        if offset:
            query = query.offset(offset)
        if limit is not None:
            query = query.limit(limit)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def add(self, **values: Any) -> ModelT:
        """Insert a row and flush so its primary key is set."""
        entity = self.model(**values)
        self.session.add(entity)
        await self.session.flush()
        return entity
