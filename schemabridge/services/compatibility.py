"""Compatibility middleware letting legacy and canonical field names coexist."""

import logging
from typing import Any, Dict, List, Optional

from ..models.record import Record
from ..store.base import DocumentStore, TxOp, build_shape
from .performance import CompatibilityPerformanceMonitor
from .schema_registry import FieldMapRegistry
from .status_store import MigrationStatusStore

logger = logging.getLogger(__name__)


class CompatibilityMiddleware:
    """
    Rewrites queries and results while an entity is not fully migrated.

    Outbound: `where`, `order` and `select`/`fields` clauses are renamed from
    legacy to canonical names. Inbound: legacy aliases are added back onto
    result records until the entity's status is completed.
    """

    def __init__(
        self,
        registry: FieldMapRegistry,
        status_store: MigrationStatusStore,
        store: Optional[DocumentStore] = None,
        monitor: Optional[CompatibilityPerformanceMonitor] = None
    ):
        """
        Initialize the middleware.

        Args:
            registry: Field maps shared with the transformer
            status_store: Source of truth for whether shims are still needed
            store: Document store used by the query/create/update wrappers
            monitor: Performance monitor for the wrappers
        """
        self.registry = registry
        self.status_store = status_store
        self.store = store
        self.monitor = monitor or CompatibilityPerformanceMonitor()

    def should_apply_middleware(self, entity: str, scope: Optional[str] = None) -> bool:
        return not self.status_store.is_migrated(entity, scope)

    # Outbound

    def transform_where(self, entity: str, where: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        """Rename where-clause keys; a canonical key already in the clause wins."""
        if not where:
            return {}
        mapping = self.registry.legacy_to_canonical(entity)
        result: Dict[str, Any] = {}
        for key, value in where.items():
            canonical = mapping.get(key)
            if canonical is None:
                result[key] = value
            elif canonical not in where:
                result[canonical] = value
        return result

    def transform_order(self, entity: str, order: Any) -> Any:
        """Rename order fields given as a string, a {field: direction} mapping or a list of either."""
        if order is None:
            return None
        if isinstance(order, str):
            return self.registry.canonical_name(entity, order)
        if isinstance(order, dict):
            return {self.registry.canonical_name(entity, k): v for k, v in order.items()}
        if isinstance(order, (list, tuple)):
            return [self.transform_order(entity, item) for item in order]
        return order

    def transform_select_clause(self, entity: str, fields: Optional[List[str]]) -> Optional[List[str]]:
        if fields is None:
            return None
        result = []
        for field_name in fields:
            canonical = self.registry.canonical_name(entity, field_name)
            if canonical not in result:
                result.append(canonical)
        return result

    def transform_query(self, entity: str, query: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        """
        Rewrite a query clause to canonical field names.

        Accepts either a bare clause ({"where", "order", "select"/"fields", ...})
        or a descriptor wrapping it under "$". Unknown keys are kept as-is.
        """
        if not query:
            return {}
        if "$" in query:
            return {**query, "$": self.transform_query(entity, query["$"])}

        result = dict(query)
        if "where" in result:
            result["where"] = self.transform_where(entity, result["where"])
        if "order" in result:
            result["order"] = self.transform_order(entity, result["order"])
        for key in ("select", "fields"):
            if key in result:
                result[key] = self.transform_select_clause(entity, result[key])
        return result

    def prepare_write(self, entity: str, data: Record) -> Record:
        """
        Rename a write payload to canonical names (canonical values win).

        Relationship name fields are written as-is; the resolver links them later.
        A name field sent together with its id field is dropped.
        """
        rules = self.registry.rules(entity)
        result = dict(data)
        for mapping in self.registry.mappings(entity):
            if mapping.legacy_key not in result:
                continue
            relationship = rules.relationship_for(mapping.legacy_key)
            if relationship:
                if result.get(relationship.id_field):
                    del result[mapping.legacy_key]
                continue
            value = result.pop(mapping.legacy_key)
            result.setdefault(mapping.canonical_key, value)
        return result

    # Inbound

    def add_legacy_fields(self, entity: str, records: List[Record]) -> List[Record]:
        """Copy canonical values onto legacy keys that are absent."""
        mappings = list(self.registry.mappings(entity))
        if not mappings:
            return [dict(r) for r in records]

        enhanced = []
        for record in records:
            aliased = dict(record)
            for mapping in mappings:
                if mapping.canonical_key in aliased and mapping.legacy_key not in aliased:
                    aliased[mapping.legacy_key] = aliased[mapping.canonical_key]
            enhanced.append(aliased)
        return enhanced

    def transform_results(
        self,
        entity: str,
        records: List[Record],
        scope: Optional[str] = None
    ) -> List[Record]:
        if not self.should_apply_middleware(entity, scope):
            return list(records)
        return self.add_legacy_fields(entity, records)

    # Store wrappers

    def _require_store(self) -> DocumentStore:
        if self.store is None:
            raise RuntimeError("CompatibilityMiddleware has no document store")
        return self.store

    async def query(
        self,
        entity: str,
        where: Optional[Dict[str, Any]] = None,
        limit: Optional[int] = None,
        order: Any = None,
        fields: Optional[List[str]] = None,
        scope: Optional[str] = None,
        include_legacy_fields: bool = True
    ) -> List[Record]:
        """
        Query an entity with legacy or canonical field names.

        Args:
            entity: Entity name
            where: Equality filters, legacy names allowed
            limit: Maximum records
            order: Order clause, legacy names allowed
            fields: Fields to select, legacy names allowed
            scope: Tenant key used for the migration-status lookup
            include_legacy_fields: Add legacy aliases while the entity is not migrated

        Returns:
            Result records
        """
        store = self._require_store()
        timing_id = self.monitor.start_timing(f"query:{entity}")
        try:
            clause = self.transform_query(entity, {
                "where": where,
                "order": order,
                "fields": fields,
            })
            shape = build_shape(
                entity,
                where=clause.get("where"),
                limit=limit,
                order=clause.get("order"),
                fields=clause.get("fields"),
            )
            data = await store.query(shape)
            records = list(data.get(entity) or [])
            if include_legacy_fields:
                records = self.transform_results(entity, records, scope)
        except Exception:
            self.monitor.end_timing(timing_id, success=False)
            raise

        self.monitor.end_timing(timing_id, success=True)
        return records

    async def create_record(self, entity: str, data: Record) -> str:
        """Create a record from a legacy or canonical payload; returns the new id."""
        store = self._require_store()
        timing_id = self.monitor.start_timing(f"create:{entity}")
        try:
            record_id = str(data.get("id") or store.new_id())
            payload = self.prepare_write(entity, {k: v for k, v in data.items() if k != "id"})
            await store.transact([TxOp.update(entity, record_id, payload)])
        except Exception:
            self.monitor.end_timing(timing_id, success=False)
            raise

        self.monitor.end_timing(timing_id, success=True)
        return record_id

    async def update_record(self, entity: str, record_id: str, updates: Record) -> None:
        store = self._require_store()
        timing_id = self.monitor.start_timing(f"update:{entity}")
        try:
            payload = self.prepare_write(entity, updates)
            # Drop stale legacy copies of the fields being written
            stale = [
                m.legacy_key for m in self.registry.mappings(entity)
                if m.canonical_key in payload and m.legacy_key not in payload
            ]
            await store.transact([TxOp.update(entity, record_id, payload, unset=stale)])
        except Exception:
            self.monitor.end_timing(timing_id, success=False)
            raise

        self.monitor.end_timing(timing_id, success=True)
