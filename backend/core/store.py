"""
Document-style persistence interface over SQLAlchemy models.

Services talk to storage through ``DocumentStore`` using Mongo-style filter
dicts, e.g. ``{"parent_id": None, "is_active": True}`` or
``{"slug": {"$startswith": "koi"}}``.
"""
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Any, Dict, Generic, List, Optional, Sequence, Type, TypeVar

from sqlalchemy import and_, or_, select, func, true
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import ConflictException, NotFoundException, StorageException
from core.logging_config import get_logger

logger = get_logger(__name__)

ModelT = TypeVar("ModelT")
Filter = Dict[str, Any]


class DocumentStore(ABC, Generic[ModelT]):
    """Abstract persistence collaborator used by the domain services."""

    @abstractmethod
    async def find(
        self,
        filter: Optional[Filter] = None,
        order_by: Optional[Sequence[str]] = None,
        skip: int = 0,
        limit: Optional[int] = None,
    ) -> List[ModelT]:
        ...

    @abstractmethod
    async def find_one(self, filter: Filter) -> Optional[ModelT]:
        ...

    @abstractmethod
    async def insert(self, document: Dict[str, Any]) -> ModelT:
        ...

    @abstractmethod
    async def update(self, id: Any, patch: Dict[str, Any]) -> ModelT:
        ...

    @abstractmethod
    async def delete(self, id: Any) -> bool:
        ...

    @abstractmethod
    async def count(self, filter: Optional[Filter] = None) -> int:
        ...


class SQLAlchemyStore(DocumentStore[ModelT]):
    """DocumentStore bound to one model class and one AsyncSession."""

    def __init__(self, db: AsyncSession, model: Type[ModelT]):
        self.db = db
        self.model = model

    def _column(self, field: str):
        column = getattr(self.model, field, None)
        if column is None:
            raise ValueError(f"{self.model.__name__} has no field '{field}'")
        return column

    def _condition(self, field: str, condition: Any):
        column = self._column(field)

        if not isinstance(condition, dict):
            if condition is None:
                return column.is_(None)
            return column == condition

        clauses = []
        for op, value in condition.items():
            if op == "$in":
                clauses.append(column.in_(list(value)))
            elif op == "$nin":
                clauses.append(column.not_in(list(value)))
            elif op == "$ne":
                if value is None:
                    clauses.append(column.is_not(None))
                else:
                    clauses.append(or_(column != value, column.is_(None)))
            elif op == "$lt":
                clauses.append(column < value)
            elif op == "$lte":
                clauses.append(column <= value)
            elif op == "$gt":
                clauses.append(column > value)
            elif op == "$gte":
                clauses.append(column >= value)
            elif op == "$contains":
                clauses.append(column.ilike(f"%{value}%"))
            elif op == "$startswith":
                clauses.append(column.startswith(value, autoescape=True))
            else:
                raise ValueError(f"Unsupported filter operator '{op}'")
        return and_(*clauses)

    def _where(self, filter: Optional[Filter]):
        clauses = []
        for field, condition in (filter or {}).items():
            if field == "$or":
                clauses.append(or_(*[self._where(sub) for sub in condition]))
            else:
                clauses.append(self._condition(field, condition))
        return and_(*clauses) if clauses else true()

    def _order(self, order_by: Optional[Sequence[str]]):
        ordering = []
        for key in order_by or ():
            if key.startswith("-"):
                ordering.append(self._column(key[1:]).desc())
            else:
                ordering.append(self._column(key).asc())
        return ordering

    @asynccontextmanager
    async def _guard(self, operation: str):
        try:
            yield
        except IntegrityError as e:
            await self.db.rollback()
            logger.warning(f"{self.model.__name__}.{operation} violated a constraint: {e.orig}")
            raise ConflictException(f"{self.model.__name__} conflicts with an existing record")
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"{self.model.__name__}.{operation} failed: {e}")
            raise StorageException(
                message=f"{self.model.__name__}.{operation} failed",
                metadata={"error_type": type(e).__name__},
            )

    async def find(
        self,
        filter: Optional[Filter] = None,
        order_by: Optional[Sequence[str]] = None,
        skip: int = 0,
        limit: Optional[int] = None,
    ) -> List[ModelT]:
        query = select(self.model)
        if filter:
            query = query.where(self._where(filter))
        ordering = self._order(order_by)
        if ordering:
            query = query.order_by(*ordering)
        if skip:
            query = query.offset(skip)
        if limit is not None:
            query = query.limit(limit)

        async with self._guard("find"):
            result = await self.db.execute(query)
            return list(result.scalars().all())

    async def find_one(self, filter: Filter) -> Optional[ModelT]:
        query = select(self.model).where(self._where(filter)).limit(1)
        async with self._guard("find_one"):
            result = await self.db.execute(query)
            return result.scalars().first()

    async def get(self, id: Any) -> Optional[ModelT]:
        return await self.find_one({"id": id})

    async def insert(self, document: Dict[str, Any]) -> ModelT:
        instance = self.model(**document)
        async with self._guard("insert"):
            self.db.add(instance)
            await self.db.commit()
        return instance

    async def update(self, id: Any, patch: Dict[str, Any]) -> ModelT:
        instance = await self.get(id)
        if instance is None:
            raise NotFoundException(f"{self.model.__name__} not found", resource=self.model.__name__)

        async with self._guard("update"):
            for key, value in patch.items():
                self._column(key)
                setattr(instance, key, value)
            await self.db.commit()
        return instance

    async def delete(self, id: Any) -> bool:
        instance = await self.get(id)
        if instance is None:
            return False

        async with self._guard("delete"):
            await self.db.delete(instance)
            await self.db.commit()
        return True

    async def count(self, filter: Optional[Filter] = None) -> int:
        query = select(func.count()).select_from(self.model)
        if filter:
            query = query.where(self._where(filter))
        async with self._guard("count"):
            result = await self.db.execute(query)
            return result.scalar() or 0
