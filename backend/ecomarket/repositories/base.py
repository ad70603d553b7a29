"""
Base repository class with common database operations.

Repositories never commit: transaction boundaries belong to the services,
so several repository calls can share one atomic write.
"""
from typing import Any, Generic, Sequence, Type, TypeVar

from sqlalchemy import ColumnElement, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ecomarket.db.base import Base

# Type variable for generic repository
ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """
    Base repository implementing common database operations.

    Usage:
        class ItemRepository(BaseRepository[Item]):
            def __init__(self, db: AsyncSession):
                super().__init__(Item, db)
    """

    def __init__(self, model: Type[ModelType], db: AsyncSession):
        """
        Initialize the repository.

        Args:
            model: SQLAlchemy model class this repository manages
            db: Async database session
        """
        self.model = model
        self.db = db

    async def get_by_id(self, id: int) -> ModelType | None:
        """
        Get a single record by its primary key.

        Always reloads the row: status columns change through conditional
        UPDATEs that bypass the identity map.

        Args:
            id: Primary key value

        Returns:
            Model instance or None if not found
        """
        result = await self.db.execute(
            select(self.model)
            .where(self.model.id == id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def find_by(
        self,
        *,
        skip: int = 0,
        limit: int = 100,
        newest_first: bool = True,
        **kwargs: Any,
    ) -> Sequence[ModelType]:
        """
        Find records by arbitrary column values.

        Args:
            skip: Number of records to skip
            limit: Maximum records to return
            newest_first: Order by id descending
            **kwargs: Column name/value pairs to filter by

        Returns:
            Sequence of model instances
        """
        query = select(self.model)
        for key, value in kwargs.items():
            if hasattr(self.model, key):
                query = query.where(getattr(self.model, key) == value)
        query = query.order_by(self.model.id.desc() if newest_first else self.model.id)
        query = query.offset(skip).limit(limit)
        result = await self.db.execute(query)
        return result.scalars().all()

    async def count(self, *criteria: ColumnElement[bool]) -> int:
        """
        Count records matching the given criteria.

        Returns:
            Number of matching records
        """
        query = select(func.count()).select_from(self.model)
        if criteria:
            query = query.where(*criteria)
        result = await self.db.execute(query)
        return result.scalar() or 0

    async def create(self, **kwargs: Any) -> ModelType:
        """
        Create a new record and flush it so its id is assigned.

        Args:
            **kwargs: Column name/value pairs for the new record

        Returns:
            Created model instance
        """
        instance = self.model(**kwargs)
        self.db.add(instance)
        await self.db.flush()
        return instance

    async def update_where(
        self,
        id: int,
        *criteria: ColumnElement[bool],
        **values: Any,
    ) -> int:
        """
        Conditionally update one row in a single statement.

        The row is changed only if it still matches every criterion, so
        concurrent writers racing on the same precondition cannot both win.

        Args:
            id: Primary key of the row
            *criteria: Extra WHERE conditions (e.g. the expected status)
            **values: Column values to set

        Returns:
            Number of rows changed (0 or 1)
        """
        stmt = (
            update(self.model)
            .where(self.model.id == id, *criteria)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.rowcount

    async def delete(self, instance: ModelType) -> None:
        await self.db.delete(instance)
        await self.db.flush()
