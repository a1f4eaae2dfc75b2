"""Schema models for legacy -> canonical field maps and per-entity rules."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple
import json


@dataclass(frozen=True)
class FieldMapping:
    """A single legacy field name and the canonical name that replaces it."""
    legacy_key: str
    canonical_key: str

    def to_dict(self) -> Dict[str, str]:
        """Convert to dictionary representation."""
        return {"legacy": self.legacy_key, "canonical": self.canonical_key}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FieldMapping":
        """Create from dictionary representation."""
        return cls(
            legacy_key=data.get("legacy", ""),
            canonical_key=data.get("canonical", ""),
        )


@dataclass(frozen=True)
class RelationshipField:
    """A denormalized string reference that should become a foreign key."""
    name_field: str  # e.g. "brand"
    id_field: str  # e.g. "brandId"
    lookup_entity: str  # e.g. "brands"
    lookup_key: str = "name"

    def to_dict(self) -> Dict[str, str]:
        """Convert to dictionary representation."""
        return {
            "name_field": self.name_field,
            "id_field": self.id_field,
            "lookup_entity": self.lookup_entity,
            "lookup_key": self.lookup_key,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RelationshipField":
        """Create from dictionary representation."""
        return cls(
            name_field=data["name_field"],
            id_field=data["id_field"],
            lookup_entity=data["lookup_entity"],
            lookup_key=data.get("lookup_key", "name"),
        )


@dataclass(frozen=True)
class EntityRules:
    """Validation and coercion rules for one entity."""
    required: Tuple[str, ...] = ()
    non_negative: Tuple[str, ...] = ()
    positive: Tuple[str, ...] = ()
    enums: Dict[str, Tuple[str, ...]] = field(default_factory=dict)
    email: Tuple[str, ...] = ()
    unique: Tuple[str, ...] = ()
    structured: Tuple[str, ...] = ()
    timestamps: Tuple[str, ...] = ()
    relationships: Tuple[RelationshipField, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "required": list(self.required),
            "non_negative": list(self.non_negative),
            "positive": list(self.positive),
            "enums": {k: list(v) for k, v in self.enums.items()},
            "email": list(self.email),
            "unique": list(self.unique),
            "structured": list(self.structured),
            "timestamps": list(self.timestamps),
            "relationships": [r.to_dict() for r in self.relationships],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EntityRules":
        """Create from dictionary representation."""
        return cls(
            required=tuple(data.get("required", [])),
            non_negative=tuple(data.get("non_negative", [])),
            positive=tuple(data.get("positive", [])),
            enums={k: tuple(v) for k, v in data.get("enums", {}).items()},
            email=tuple(data.get("email", [])),
            unique=tuple(data.get("unique", [])),
            structured=tuple(data.get("structured", [])),
            timestamps=tuple(data.get("timestamps", [])),
            relationships=tuple(
                RelationshipField.from_dict(r) for r in data.get("relationships", [])
            ),
        )

    def relationship_for(self, name_field: str) -> Optional[RelationshipField]:
        """Get the relationship declared for a string reference field."""
        for relationship in self.relationships:
            if relationship.name_field == name_field:
                return relationship
        return None


@dataclass(frozen=True)
class EntityFieldMap:
    """Ordered field mappings plus rules for one entity."""
    entity: str
    mappings: Tuple[FieldMapping, ...] = ()
    rules: EntityRules = field(default_factory=EntityRules)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "entity": self.entity,
            "mappings": [m.to_dict() for m in self.mappings],
            "rules": self.rules.to_dict(),
        }

    @classmethod
    def from_dict(cls, entity: str, data: Dict[str, Any]) -> "EntityFieldMap":
        """
        Create from dictionary representation.

        `mappings` may be a list of {"legacy", "canonical"} objects or a plain
        {legacy: canonical} object (insertion order is preserved).
        """
        raw_mappings = data.get("mappings", [])
        if isinstance(raw_mappings, dict):
            mappings = tuple(FieldMapping(k, v) for k, v in raw_mappings.items())
        else:
            mappings = tuple(FieldMapping.from_dict(m) for m in raw_mappings)

        return cls(
            entity=entity,
            mappings=mappings,
            rules=EntityRules.from_dict(data.get("rules", {})),
        )

    @property
    def legacy_keys(self) -> List[str]:
        return [m.legacy_key for m in self.mappings]

    @property
    def canonical_keys(self) -> List[str]:
        return [m.canonical_key for m in self.mappings]


def load_field_maps_file(file_path: str) -> Dict[str, EntityFieldMap]:
    """Load entity field maps from a JSON file keyed by entity name."""
    with open(file_path, 'r') as f:
        data = json.load(f)

    entities = data.get("entities", data)
    return {name: EntityFieldMap.from_dict(name, body) for name, body in entities.items()}
