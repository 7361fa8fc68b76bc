"""
Compliance Infrastructure Repositories
======================================

Concrete implementation of the document store capability using SQLAlchemy.

Each collection maps to one table and each document field to one column.
Batches run in a single transaction, so a batch is atomic as a unit.
"""

import operator
from typing import Any, Callable, Dict, List, Optional, Sequence, Type

from sqlalchemy import select, tuple_, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from vericlean.compliance.application import (
    Cursor, FieldFilter, IDocumentStore, StoredDocument, WriteOperation
)
from vericlean.compliance.infrastructure.models import AlertModel, CheckpointModel
from vericlean.config import Collections
from vericlean.core import (
    ConfigurationException, RepositoryException, StoreLimitExceeded, ValidationException
)
from vericlean.infrastructure.database import Base, get_session_maker
from vericlean.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


_COMPARISONS: Dict[str, Callable[[Any, Any], Any]] = {
    "==": operator.eq,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}

_INSERT_BY_DIALECT = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class SQLAlchemyDocumentStore(IDocumentStore):
    """
    SQLAlchemy implementation of the document store.

    `create` operations are INSERT ... ON CONFLICT DO NOTHING on the
    primary key; `update` operations fail the batch when the row is missing.
    """

    MODELS: Dict[str, Type[Base]] = {
        Collections.CHECKPOINTS: CheckpointModel,
        Collections.ALERTS: AlertModel,
    }

    def __init__(
        self,
        session_maker: Optional[async_sessionmaker[AsyncSession]] = None,
        max_in_values: int = 10,
        max_batch_operations: int = 500
    ):
        self._session_maker = session_maker
        self.max_in_values = max_in_values
        self.max_batch_operations = max_batch_operations

    def _sessions(self) -> async_sessionmaker[AsyncSession]:
        return self._session_maker or get_session_maker()

    def _model(self, collection: str) -> Type[Base]:
        try:
            return self.MODELS[collection]
        except KeyError:
            raise ValidationException(f"Unknown collection: {collection}") from None

    @staticmethod
    def _column(model: Type[Base], field_name: str):
        if field_name not in model.__table__.columns:
            raise ValidationException(
                f"Unknown field '{field_name}' on {model.__tablename__}"
            )
        return getattr(model, field_name)

    def _condition(self, model: Type[Base], field_filter: FieldFilter):
        column = self._column(model, field_filter.field)

        if field_filter.op == "in":
            values = list(field_filter.value)
            if len(values) > self.max_in_values:
                raise StoreLimitExceeded("max_in_values", self.max_in_values, len(values))
            return column.in_(values)

        try:
            return _COMPARISONS[field_filter.op](column, field_filter.value)
        except KeyError:
            raise ValidationException(f"Unsupported filter operator: {field_filter.op}") from None

    @staticmethod
    def _to_document(model: Type[Base], row: Any) -> StoredDocument:
        data = {
            column.name: getattr(row, column.name)
            for column in model.__table__.columns
            if column.name != "id"
        }
        return StoredDocument(id=row.id, data=data)

    async def query(
        self,
        collection: str,
        filters: Sequence[FieldFilter],
        order_by: Sequence[str] = (),
        limit: Optional[int] = None,
        start_after: Optional[Cursor] = None
    ) -> List[StoredDocument]:
        model = self._model(collection)
        stmt = select(model)

        conditions = [self._condition(model, f) for f in filters]
        if conditions:
            stmt = stmt.where(*conditions)

        order_columns = [self._column(model, name) for name in order_by]
        if start_after is not None:
            if len(start_after) != len(order_columns):
                raise ValidationException("start_after must match order_by")
            stmt = stmt.where(tuple_(*order_columns) > tuple_(*start_after))
        if order_columns:
            stmt = stmt.order_by(*(column.asc() for column in order_columns))
        if limit is not None:
            stmt = stmt.limit(limit)

        try:
            async with self._sessions()() as session:
                result = await session.execute(stmt)
                rows = result.scalars().all()
        except SQLAlchemyError as e:
            raise RepositoryException(
                f"Query on {collection} failed",
                {"collection": collection, "error": str(e)}
            ) from e

        return [self._to_document(model, row) for row in rows]

    async def commit_batch(self, operations: Sequence[WriteOperation]) -> int:
        if len(operations) > self.max_batch_operations:
            raise StoreLimitExceeded("max_batch_operations", self.max_batch_operations, len(operations))
        if not operations:
            return 0

        applied = 0
        try:
            async with self._sessions()() as session:
                async with session.begin():
                    dialect = session.bind.dialect.name
                    for op in operations:
                        applied += await self._apply(session, dialect, op)
        except SQLAlchemyError as e:
            raise RepositoryException(
                "Batch commit failed",
                {"operations": len(operations), "error": str(e)}
            ) from e
        return applied

    async def _apply(self, session: AsyncSession, dialect: str, op: WriteOperation) -> int:
        model = self._model(op.collection)

        if op.kind == "create":
            insert = _INSERT_BY_DIALECT.get(dialect)
            if insert is None:
                raise ConfigurationException(f"create-if-absent not supported on {dialect}")
            stmt = insert(model).values(id=op.doc_id, **op.data).on_conflict_do_nothing(
                index_elements=["id"]
            )
            result = await session.execute(stmt)
            return result.rowcount

        if op.kind == "update":
            for name in op.data:
                self._column(model, name)
            result = await session.execute(
                update(model).where(model.id == op.doc_id).values(**op.data)
            )
            if result.rowcount == 0:
                raise RepositoryException(
                    f"{op.collection}/{op.doc_id} not found",
                    {"collection": op.collection, "doc_id": op.doc_id}
                )
            return result.rowcount

        raise ValidationException(f"Unsupported write kind: {op.kind}")
