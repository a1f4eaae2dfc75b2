"""Resolution of denormalized string references (brand names etc.) into foreign keys."""

import logging
from typing import Dict, List, Optional

from ..models.record import Record
from ..store.base import DocumentStore, build_shape
from .schema_registry import FieldMapRegistry

logger = logging.getLogger(__name__)

Lookups = Dict[str, Dict[str, str]]


class RelationshipResolver:
    """Builds name -> id lookup tables and rewrites string references with them."""

    def __init__(self, store: DocumentStore, registry: FieldMapRegistry):
        self.store = store
        self.registry = registry

    def lookup_entities(self) -> List[str]:
        """Every entity kind referenced by a relationship field."""
        kinds: List[str] = []
        for entity in self.registry.entities():
            for relationship in self.registry.relationship_fields(entity):
                if relationship.lookup_entity not in kinds:
                    kinds.append(relationship.lookup_entity)
        return kinds

    async def build_lookups(self, scope: Optional[str] = None) -> Lookups:
        """
        Build lookup tables for all referenced entity kinds in one query.

        Args:
            scope: Tenant key; when given only records with that storeId are used

        Returns:
            Mapping of entity kind -> {name: id}. Empty tables when the query fails.
        """
        kinds = self.lookup_entities()
        lookups: Lookups = {kind: {} for kind in kinds}
        if not kinds:
            return lookups

        where = {"storeId": scope} if scope else None
        shape = {}
        for kind in kinds:
            shape.update(build_shape(kind, where=where))

        try:
            data = await self.store.query(shape)
        except Exception as e:
            logger.error(f"Failed to build relationship lookups: {e}")
            return lookups

        keys = self._lookup_keys()
        for kind in kinds:
            key = keys.get(kind, "name")
            for row in data.get(kind) or []:
                name = row.get(key)
                if name is not None and row.get("id") is not None:
                    lookups[kind][str(name)] = str(row["id"])

        logger.debug(
            "Built relationship lookups: "
            + ", ".join(f"{kind}={len(table)}" for kind, table in lookups.items())
        )
        return lookups

    def _lookup_keys(self) -> Dict[str, str]:
        keys = {}
        for entity in self.registry.entities():
            for relationship in self.registry.relationship_fields(entity):
                keys.setdefault(relationship.lookup_entity, relationship.lookup_key)
        return keys

    def resolve(self, entity: str, record: Record, lookups: Lookups) -> Record:
        """
        Replace resolvable string references with id fields.

        A hit sets the id field and removes the name field. A miss leaves the
        record untouched. A record that already carries the id field keeps it
        and loses the name field.
        """
        result = dict(record)

        for relationship in self.registry.relationship_fields(entity):
            name = result.get(relationship.name_field)
            if result.get(relationship.id_field):
                result.pop(relationship.name_field, None)
                continue
            if not isinstance(name, str):
                continue

            resolved_id = lookups.get(relationship.lookup_entity, {}).get(name)
            if resolved_id is None:
                logger.debug(
                    f"{entity}/{result.get('id')}: no {relationship.lookup_entity} named '{name}'"
                )
                continue

            result[relationship.id_field] = resolved_id
            del result[relationship.name_field]

        return result

    def unresolved(self, entity: str, record: Record) -> List[str]:
        """Relationship name fields still held as strings with no id field."""
        return [
            relationship.name_field
            for relationship in self.registry.relationship_fields(entity)
            if isinstance(record.get(relationship.name_field), str)
            and not record.get(relationship.id_field)
        ]
