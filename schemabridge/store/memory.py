"""In-memory document store for tests, dry runs and local tooling."""

import copy
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence

from .base import DocumentStore, QueryShape, TxOp
from ..models.record import Record

logger = logging.getLogger(__name__)


class InMemoryDocumentStore(DocumentStore):
    """
    Dict-backed document store.

    Supports equality `where` filters (a list value means "any of"),
    `order` as a field name or {field: "asc"|"desc"}, `limit` and `fields`.
    `fail_on` lets a caller inject transaction failures: it receives the
    ops of each transaction and raises (or returns True to raise) to reject
    the whole transaction.
    """

    def __init__(
        self,
        data: Optional[Dict[str, List[Record]]] = None,
        fail_on: Optional[Callable[[Sequence[TxOp]], Any]] = None,
    ):
        self._data: Dict[str, Dict[str, Record]] = {}
        self.fail_on = fail_on
        self.transactions: List[List[TxOp]] = []
        self.queries: List[QueryShape] = []

        for entity, records in (data or {}).items():
            self.seed(entity, records)

    def seed(self, entity: str, records: List[Record]) -> None:
        """Insert records directly, bypassing transactions."""
        table = self._data.setdefault(entity, {})
        for record in records:
            record_id = str(record.get("id") or self.new_id())
            table[record_id] = {**copy.deepcopy(record), "id": record_id}

    def records(self, entity: str) -> List[Record]:
        """Snapshot of all stored records for an entity."""
        return [copy.deepcopy(r) for r in self._data.get(entity, {}).values()]

    def get(self, entity: str, record_id: str) -> Optional[Record]:
        record = self._data.get(entity, {}).get(str(record_id))
        return copy.deepcopy(record) if record is not None else None

    async def query(self, shape: QueryShape) -> Dict[str, List[Record]]:
        self.queries.append(copy.deepcopy(shape))
        result = {}
        for entity, descriptor in shape.items():
            clause = (descriptor or {}).get("$", {})
            records = [copy.deepcopy(r) for r in self._data.get(entity, {}).values()]

            where = clause.get("where") or {}
            records = [r for r in records if self._matches(r, where)]

            order = clause.get("order")
            if order:
                records = self._sort(records, order)

            limit = clause.get("limit")
            if limit:
                records = records[:limit]

            fields = clause.get("fields")
            if fields:
                keep = set(fields) | {"id"}
                records = [{k: v for k, v in r.items() if k in keep} for r in records]

            result[entity] = records
        return result

    async def transact(self, ops: Sequence[TxOp]) -> Dict[str, Any]:
        ops = list(ops)
        if self.fail_on is not None and self.fail_on(ops):
            raise RuntimeError("Transaction rejected by store")

        # Apply to a copy first so a bad op leaves the store untouched.
        staged = {entity: dict(table) for entity, table in self._data.items()}
        for op in ops:
            table = staged.setdefault(op.entity, {})
            if op.action == "update":
                current = dict(table.get(op.id, {"id": op.id}))
                current.update(copy.deepcopy(op.attrs))
                for key in op.unset:
                    current.pop(key, None)
                current["id"] = op.id
                table[op.id] = current
            elif op.action == "delete":
                table.pop(op.id, None)
            else:
                raise ValueError(f"Unsupported transaction action: {op.action}")

        self._data = staged
        self.transactions.append(ops)
        return {"status": "ok", "ops": len(ops)}

    def _matches(self, record: Record, where: Dict[str, Any]) -> bool:
        for key, expected in where.items():
            value = record.get(key)
            if isinstance(expected, list):
                if value not in expected:
                    return False
            elif value != expected:
                return False
        return True

    def _sort(self, records: List[Record], order: Any) -> List[Record]:
        if isinstance(order, str):
            specs = [(order, "asc")]
        elif isinstance(order, dict):
            specs = list(order.items())
        else:
            specs = []
            for item in order:
                if isinstance(item, str):
                    specs.append((item, "asc"))
                else:
                    specs.extend(item.items())

        for key, direction in reversed(specs):
            records.sort(
                key=lambda r: (r.get(key) is None, str(r.get(key))),
                reverse=str(direction).lower() == "desc",
            )
        return records
