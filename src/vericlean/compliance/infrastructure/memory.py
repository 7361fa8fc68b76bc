"""
In-Memory Document Store
========================

Process-local implementation of the document store capability.

Mirrors the managed store's rules: comparisons never match a missing
field, `in` filters and batches are capped, batches apply all-or-nothing.
Naive datetimes are stored as UTC.
Every query and committed batch is recorded so callers can inspect the
exact traffic a watchdog run produced.
"""

import copy
import operator
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from vericlean.compliance.application import (
    Cursor, FieldFilter, IDocumentStore, StoredDocument, WriteOperation
)
from vericlean.compliance.domain import ensure_utc
from vericlean.core import RepositoryException, StoreLimitExceeded, ValidationException


_COMPARISONS: Dict[str, Callable[[Any, Any], bool]] = {
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}


def _normalized(data: Dict[str, Any]) -> Dict[str, Any]:
    """Deep copy of `data` with naive datetimes read as UTC."""
    return {
        key: ensure_utc(value) if isinstance(value, datetime) else copy.deepcopy(value)
        for key, value in data.items()
    }


class InMemoryDocumentStore(IDocumentStore):
    """Dictionary-backed store with query and batch recording."""

    def __init__(self, max_in_values: int = 10, max_batch_operations: int = 500):
        self.max_in_values = max_in_values
        self.max_batch_operations = max_batch_operations
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self.queries: List[Tuple[str, List[FieldFilter]]] = []
        self.batches: List[List[WriteOperation]] = []
        self._query_failures: Dict[Tuple[str, int], Exception] = {}
        self._commit_failures: Dict[int, Exception] = {}
        self._commit_attempts = 0

    # ========== Seeding & inspection ==========

    def add(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        self._collections.setdefault(collection, {})[doc_id] = _normalized(data)

    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        data = self._collections.get(collection, {}).get(doc_id)
        return copy.deepcopy(data) if data is not None else None

    def all(self, collection: str) -> List[StoredDocument]:
        return [
            StoredDocument(id=doc_id, data=copy.deepcopy(data))
            for doc_id, data in self._collections.get(collection, {}).items()
        ]

    def queries_on(self, collection: str) -> List[List[FieldFilter]]:
        return [filters for name, filters in self.queries if name == collection]

    def fail_query(self, collection: str, error: Exception, call_number: int = 1) -> None:
        """Raise `error` on the `call_number`-th query to `collection`."""
        self._query_failures[(collection, call_number)] = error

    def fail_commit(self, error: Exception, batch_number: int = 1) -> None:
        """Raise `error` on the `batch_number`-th commit attempt."""
        self._commit_failures[batch_number] = error

    # ========== IDocumentStore ==========

    def _matches(self, doc_id: str, data: Dict[str, Any], field_filter: FieldFilter) -> bool:
        actual = doc_id if field_filter.field == "id" else data.get(field_filter.field)

        if field_filter.op == "==":
            return actual == field_filter.value
        if field_filter.op == "in":
            return actual in field_filter.value
        if field_filter.op in _COMPARISONS:
            if actual is None or field_filter.value is None:
                return False
            return _COMPARISONS[field_filter.op](actual, field_filter.value)
        raise ValidationException(f"Unsupported filter operator: {field_filter.op}")

    async def query(
        self,
        collection: str,
        filters: Sequence[FieldFilter],
        order_by: Sequence[str] = (),
        limit: Optional[int] = None,
        start_after: Optional[Cursor] = None
    ) -> List[StoredDocument]:
        for f in filters:
            if f.op == "in" and len(f.value) > self.max_in_values:
                raise StoreLimitExceeded("max_in_values", self.max_in_values, len(f.value))

        self.queries.append((collection, list(filters)))
        call_number = len(self.queries_on(collection))
        failure = self._query_failures.pop((collection, call_number), None)
        if failure is not None:
            raise failure

        rows = [
            (doc_id, data)
            for doc_id, data in self._collections.get(collection, {}).items()
            if all(self._matches(doc_id, data, f) for f in filters)
        ]

        if order_by:
            def sort_key(row: Tuple[str, Dict[str, Any]]) -> Tuple[Any, ...]:
                doc_id, data = row
                return tuple(doc_id if name == "id" else data.get(name) for name in order_by)

            # Ordering on a field excludes documents missing it
            rows = [row for row in rows if None not in sort_key(row)]
            rows.sort(key=sort_key)
            if start_after is not None:
                rows = [row for row in rows if sort_key(row) > tuple(start_after)]

        if limit is not None:
            rows = rows[:limit]

        return [StoredDocument(id=doc_id, data=copy.deepcopy(data)) for doc_id, data in rows]

    async def commit_batch(self, operations: Sequence[WriteOperation]) -> int:
        if len(operations) > self.max_batch_operations:
            raise StoreLimitExceeded("max_batch_operations", self.max_batch_operations, len(operations))

        self._commit_attempts += 1
        failure = self._commit_failures.pop(self._commit_attempts, None)
        if failure is not None:
            raise failure

        staged = copy.deepcopy(self._collections)
        applied = 0
        for op in operations:
            docs = staged.setdefault(op.collection, {})
            if op.kind == "create":
                if op.doc_id not in docs:
                    docs[op.doc_id] = _normalized(op.data)
                    applied += 1
            elif op.kind == "update":
                if op.doc_id not in docs:
                    raise RepositoryException(
                        f"{op.collection}/{op.doc_id} not found",
                        {"collection": op.collection, "doc_id": op.doc_id}
                    )
                docs[op.doc_id].update(_normalized(op.data))
                applied += 1
            else:
                raise ValidationException(f"Unsupported write kind: {op.kind}")

        self._collections = staged
        self.batches.append(list(operations))
        return applied
