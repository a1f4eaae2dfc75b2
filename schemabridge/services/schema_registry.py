"""Field-map registry: legacy -> canonical names and per-entity rules."""

import logging
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional
from pathlib import Path

from ..errors import ConfigurationError
from ..models.schema import (
    EntityFieldMap,
    EntityRules,
    FieldMapping,
    RelationshipField,
    load_field_maps_file,
)

logger = logging.getLogger(__name__)


LEGACY_FIELD_MAPPINGS: Dict[str, Dict[str, str]] = {
    "products": {
        "createdat": "createdAt",
        "updatedat": "updatedAt",
        "name": "title",
        "brand": "brandId",
        "category": "categoryId",
        "type": "typeId",
        "vendor": "vendorId",
        "collection": "collectionId",
    },
    "orders": {
        "createdat": "createdAt",
        "updatedat": "updatedAt",
        "referid": "referenceId",
        "billaddrs": "billingAddress",
        "shipaddrs": "shippingAddress",
        "taxamt": "taxAmount",
        "discount": "discountAmount",
        "fulfill": "fulfillmentStatus",
    },
    "orderitems": {
        "qty": "quantity",
        "total": "lineTotal",
        "taxamt": "taxAmount",
        "taxrate": "taxRate",
        "varianttitle": "variantTitle",
    },
    "customers": {
        "createdat": "createdAt",
        "updatedat": "updatedAt",
    },
    "items": {
        "createdat": "createdAt",
        "updatedat": "updatedAt",
    },
}

REQUIRED_FIELDS: Dict[str, List[str]] = {
    "products": ["title", "storeId"],
    "orders": ["storeId", "orderNumber", "referenceId", "subtotal", "total"],
    "orderitems": ["orderId", "storeId", "title", "quantity", "price", "lineTotal"],
    "customers": ["name", "storeId"],
}

NON_NEGATIVE_FIELDS = [
    "price",
    "cost",
    "saleprice",
    "quantity",
    "total",
    "subtotal",
    "taxAmount",
    "discountAmount",
    "shippingAmount",
    "onHand",
    "available",
    "committed",
    "unavailable",
    "totalSpent",
    "totalOrders",
]

POSITIVE_FIELDS: Dict[str, List[str]] = {
    "orderitems": ["quantity"],
}

ENUM_FIELDS: Dict[str, Dict[str, List[str]]] = {
    "products": {"status": ["active", "draft", "archived"]},
    "orders": {
        "status": ["pending", "processing", "completed", "cancelled"],
        "paymentStatus": ["pending", "paid", "partial", "refunded"],
        "fulfillmentStatus": ["unfulfilled", "partial", "fulfilled"],
    },
}

EMAIL_FIELDS = ["email", "customerEmail"]

UNIQUE_FIELDS: Dict[str, List[str]] = {
    "products": ["sku"],
    "orders": ["orderNumber", "referenceId"],
    "items": ["sku"],
}

# Fields that legacy clients stored as JSON-serialized strings.
STRUCTURED_FIELDS = [
    "seo",
    "metafields",
    "options",
    "medias",
    "modifiers",
    "promoinfo",
    "saleinfo",
    "relproducts",
    "sellproducts",
    "addresses",
    "defaultAddress",
    "billingAddress",
    "shippingAddress",
]

TIMESTAMP_FIELDS = ["createdAt", "updatedAt"]

RELATIONSHIP_FIELDS: Dict[str, List[RelationshipField]] = {
    "products": [
        RelationshipField("brand", "brandId", "brands"),
        RelationshipField("category", "categoryId", "categories"),
        RelationshipField("type", "typeId", "types"),
        RelationshipField("vendor", "vendorId", "vendors"),
        RelationshipField("collection", "collectionId", "collections"),
    ],
}


def default_field_maps() -> Dict[str, EntityFieldMap]:
    """Build the built-in field maps for the POS schema."""
    entities = list(LEGACY_FIELD_MAPPINGS)
    for table in (REQUIRED_FIELDS, UNIQUE_FIELDS, ENUM_FIELDS):
        entities.extend(e for e in table if e not in entities)

    field_maps = {}
    for entity in entities:
        rules = EntityRules(
            required=tuple(REQUIRED_FIELDS.get(entity, [])),
            non_negative=tuple(NON_NEGATIVE_FIELDS),
            positive=tuple(POSITIVE_FIELDS.get(entity, [])),
            enums={k: tuple(v) for k, v in ENUM_FIELDS.get(entity, {}).items()},
            email=tuple(EMAIL_FIELDS),
            unique=tuple(UNIQUE_FIELDS.get(entity, [])),
            structured=tuple(STRUCTURED_FIELDS),
            timestamps=tuple(TIMESTAMP_FIELDS),
            relationships=tuple(RELATIONSHIP_FIELDS.get(entity, [])),
        )
        mappings = tuple(
            FieldMapping(legacy, canonical)
            for legacy, canonical in LEGACY_FIELD_MAPPINGS.get(entity, {}).items()
        )
        field_maps[entity] = EntityFieldMap(entity=entity, mappings=mappings, rules=rules)

    return field_maps


class FieldMapRegistry:
    """
    Read-only registry of per-entity field maps and rules.

    Built once at process start (optionally merging a JSON override file) and
    never mutated afterwards; every component that needs field names shares
    the same instance.
    """

    def __init__(
        self,
        field_maps: Optional[Mapping[str, EntityFieldMap]] = None,
        overrides_file: Optional[str] = None
    ):
        """
        Initialize the registry.

        Args:
            field_maps: Field maps to use instead of the built-in tables
            overrides_file: JSON file whose entities replace or extend the maps
        """
        maps = dict(field_maps) if field_maps is not None else default_field_maps()

        if overrides_file:
            maps.update(self._load_overrides(overrides_file))

        for field_map in maps.values():
            self._check_unique_keys(field_map)

        self._maps: Mapping[str, EntityFieldMap] = MappingProxyType(maps)
        self._legacy_to_canonical = MappingProxyType({
            entity: MappingProxyType({m.legacy_key: m.canonical_key for m in fm.mappings})
            for entity, fm in maps.items()
        })
        self._canonical_to_legacy = MappingProxyType({
            entity: MappingProxyType({m.canonical_key: m.legacy_key for m in fm.mappings})
            for entity, fm in maps.items()
        })

    @staticmethod
    def _load_overrides(file_path: str) -> Dict[str, EntityFieldMap]:
        if not Path(file_path).exists():
            raise ConfigurationError(f"Field map file does not exist: {file_path}")
        try:
            overrides = load_field_maps_file(file_path)
        except (ValueError, KeyError) as e:
            raise ConfigurationError(f"Invalid field map file {file_path}: {e}") from e
        logger.info(f"Loaded {len(overrides)} field maps from {file_path}")
        return overrides

    @staticmethod
    def _check_unique_keys(field_map: EntityFieldMap) -> None:
        """No canonical or legacy key may appear twice for one entity."""
        for label, keys in (("legacy", field_map.legacy_keys), ("canonical", field_map.canonical_keys)):
            seen = set()
            for key in keys:
                if not key:
                    raise ConfigurationError(
                        f"Empty {label} key in field map", entity=field_map.entity
                    )
                if key in seen:
                    raise ConfigurationError(
                        f"Duplicate {label} key '{key}' in field map", entity=field_map.entity
                    )
                seen.add(key)

    def entities(self) -> List[str]:
        """List all entities with a registered field map."""
        return list(self._maps)

    def migratable_entities(self) -> List[str]:
        """Entities that have at least one legacy field mapping."""
        return [entity for entity, fm in self._maps.items() if fm.mappings]

    def has_entity(self, entity: str) -> bool:
        return entity in self._maps

    def get(self, entity: str) -> Optional[EntityFieldMap]:
        return self._maps.get(entity)

    def mappings(self, entity: str) -> Iterable[FieldMapping]:
        """Ordered (legacy, canonical) pairs for an entity."""
        field_map = self._maps.get(entity)
        return field_map.mappings if field_map else ()

    def legacy_to_canonical(self, entity: str) -> Mapping[str, str]:
        return self._legacy_to_canonical.get(entity, MappingProxyType({}))

    def canonical_to_legacy(self, entity: str) -> Mapping[str, str]:
        return self._canonical_to_legacy.get(entity, MappingProxyType({}))

    def canonical_name(self, entity: str, key: str) -> str:
        """Canonical name for a field; unknown names pass through."""
        return self.legacy_to_canonical(entity).get(key, key)

    def rules(self, entity: str) -> EntityRules:
        field_map = self._maps.get(entity)
        return field_map.rules if field_map else EntityRules()

    def relationship_fields(self, entity: str) -> List[RelationshipField]:
        return list(self.rules(entity).relationships)

    def is_relationship_field(self, entity: str, key: str) -> bool:
        return self.rules(entity).relationship_for(key) is not None

    def to_dict(self) -> Dict[str, Dict]:
        return {entity: fm.to_dict() for entity, fm in self._maps.items()}
