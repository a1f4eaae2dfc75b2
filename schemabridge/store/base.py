"""Base document-store interface consumed by the engine."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple
import logging
import uuid

from ..models.record import Record

logger = logging.getLogger(__name__)

QueryShape = Dict[str, Dict[str, Any]]


@dataclass(frozen=True)
class TxOp:
    """
    One per-record operation inside a transaction.

    `update` merges `attrs` into the record (creating it if absent) and then
    removes every attribute named in `unset`. `delete` removes the record.
    """
    action: str
    entity: str
    id: str
    attrs: Dict[str, Any] = field(default_factory=dict)
    unset: Tuple[str, ...] = ()

    @classmethod
    def update(cls, entity: str, record_id: str, attrs: Dict[str, Any], unset: Iterable[str] = ()) -> "TxOp":
        return cls("update", entity, str(record_id), dict(attrs), tuple(unset))

    @classmethod
    def delete(cls, entity: str, record_id: str) -> "TxOp":
        return cls("delete", entity, str(record_id))

    @classmethod
    def replace(cls, entity: str, record_id: str, previous: Record, new: Record) -> "TxOp":
        """Update that leaves the record with exactly the keys of `new`."""
        attrs = {k: v for k, v in new.items() if k != "id"}
        removed = [k for k in previous if k not in new and k != "id"]
        return cls.update(entity, record_id, attrs, removed)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action": self.action,
            "entity": self.entity,
            "id": self.id,
            "attrs": self.attrs,
            "unset": list(self.unset),
        }


def build_shape(
    entity: str,
    where: Optional[Dict[str, Any]] = None,
    limit: Optional[int] = None,
    order: Optional[Any] = None,
    fields: Optional[List[str]] = None,
) -> QueryShape:
    """Build a single-entity query shape: {entity: {"$": {...}}}."""
    clause: Dict[str, Any] = {}
    if where:
        clause["where"] = where
    if limit:
        clause["limit"] = limit
    if order:
        clause["order"] = order
    if fields:
        clause["fields"] = fields
    return {entity: {"$": clause} if clause else {}}


class DocumentStore(ABC):
    """
    Base class for document-store clients.

    The engine only ever talks to the store through `query`, `transact` and
    `new_id`; every call is a suspension point.
    """

    @abstractmethod
    async def query(self, shape: QueryShape) -> Dict[str, List[Record]]:
        """
        Run a query.

        Args:
            shape: Mapping of entity name -> {"$": {where, limit, order, fields}}

        Returns:
            Mapping of entity name -> ordered list of records
        """
        pass

    @abstractmethod
    async def transact(self, ops: Sequence[TxOp]) -> Dict[str, Any]:
        """
        Apply operations atomically.

        Raises on failure; no partial application is assumed.
        """
        pass

    def new_id(self) -> str:
        """Generate a globally unique record id."""
        return str(uuid.uuid4())

    async def fetch(
        self,
        entity: str,
        where: Optional[Dict[str, Any]] = None,
        limit: Optional[int] = None,
        order: Optional[Any] = None,
    ) -> List[Record]:
        """Fetch records for one entity."""
        data = await self.query(build_shape(entity, where=where, limit=limit, order=order))
        return list(data.get(entity) or [])

    async def write(self, entity: str, record_id: str, record: Record) -> Dict[str, Any]:
        """Merge `record` into the stored record with the given id."""
        attrs = {k: v for k, v in record.items() if k != "id"}
        return await self.transact([TxOp.update(entity, record_id, attrs)])

    async def delete(self, entity: str, record_id: str) -> Dict[str, Any]:
        """Delete one record."""
        return await self.transact([TxOp.delete(entity, record_id)])

    async def close(self) -> None:
        """Release any held resources."""
        return None
