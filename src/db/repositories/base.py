from typing import Any, Generic, Sequence, Type, TypeVar

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from src.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


def dialect_insert(session: AsyncSession, model: Type[Base]):
    """Return an INSERT construct that supports ON CONFLICT for the bound dialect."""
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(model.__table__)
    if dialect == "sqlite":
        return sqlite.insert(model.__table__)
    raise NotImplementedError(f"Upserts are not supported on dialect '{dialect}'")


class BaseRepository(Generic[ModelType]):
    """Base class for data access layer.

    Repositories flush but never commit: the caller owns the transaction, so
    several repository calls can form one atomic unit.
    """

    def __init__(self, model: Type[ModelType]):
        self.model = model

    async def get(self, session: AsyncSession, pk: Any) -> ModelType | None:
        """Get a single record by primary key."""
        return await session.get(self.model, pk)

    async def list_where(self, session: AsyncSession, *criteria: Any, order_by: Sequence[Any] = ()) -> list[ModelType]:
        """Get all records matching the criteria."""
        stmt = select(self.model).where(*criteria)
        if order_by:
            stmt = stmt.order_by(*order_by)
        result = await session.execute(stmt)
        return list(result.scalars().all())

    async def create(self, session: AsyncSession, data: dict) -> ModelType:
        """Create a new record."""
        instance = self.model(**data)
        session.add(instance)
        await session.flush()
        return instance

    async def insert_ignore(self, session: AsyncSession, data: dict, index_elements: Sequence[str]) -> bool:
        """Insert unless a row with the same key exists. Returns True if a row was written."""
        stmt = dialect_insert(session, self.model).values(**data).on_conflict_do_nothing(
            index_elements=list(index_elements)
        )
        result = await session.execute(stmt)
        return result.rowcount > 0

    async def upsert(self, session: AsyncSession, data: dict, index_elements: Sequence[str], update_fields: Sequence[str]) -> None:
        """Insert, or overwrite `update_fields` of the existing row (last write wins)."""
        stmt = dialect_insert(session, self.model).values(**data)
        stmt = stmt.on_conflict_do_update(
            index_elements=list(index_elements),
            set_={field: stmt.excluded[field] for field in update_fields},
        )
        await session.execute(stmt)
