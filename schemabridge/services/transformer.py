"""Transformation engine for moving records from the legacy to the canonical layout."""

import logging
from typing import List, Optional, Tuple

from ..models.record import (
    Record,
    StructuredKind,
    StructuredValue,
    TransformResult,
)
from .schema_registry import FieldMapRegistry
from .validator import MigrationValidator, RecordValidator

logger = logging.getLogger(__name__)


class RecordTransformer:
    """
    Engine for transforming one record to the canonical layout.

    A transform is three steps:
    - rename legacy keys to canonical keys (canonical values win, legacy keys are always dropped)
    - decode string-encoded structured fields
    - validate against the entity's rule table

    Relationship name fields (e.g. `brand`) are not renamed here; the
    RelationshipResolver turns them into ids when it can, and otherwise they
    stay as readable strings. A name field beside an id field is dropped.

    The input record is never mutated.
    """

    def __init__(
        self,
        registry: FieldMapRegistry,
        validator: Optional[RecordValidator] = None
    ):
        """
        Initialize the transformer.

        Args:
            registry: Field maps and rule tables
            validator: Record validator (defaults to a new RecordValidator)
        """
        self.registry = registry
        self.validator = validator or RecordValidator()
        self.mapping_validator = MigrationValidator()

    def transform(self, entity: str, record: Record) -> TransformResult:
        """
        Transform a record to the canonical layout and validate it.

        Args:
            entity: Entity name (e.g. "products")
            record: Record in legacy, canonical or mixed layout

        Returns:
            TransformResult with the transformed record, errors and warnings
        """
        warnings: List[str] = []

        transformed = self.rename_fields(entity, record, warnings)
        transformed = self.decode_structured_fields(entity, transformed, warnings)

        rules = self.registry.rules(entity)
        errors = [e.message for e in self.validator.validate_record(transformed, rules)]

        if errors:
            logger.debug(f"{entity}/{transformed.get('id')}: {len(errors)} validation errors")

        return TransformResult(
            transformed_record=transformed,
            errors=errors,
            warnings=warnings,
        )

    def rename_fields(
        self,
        entity: str,
        record: Record,
        warnings: Optional[List[str]] = None
    ) -> Record:
        """
        Apply the entity's legacy -> canonical renames.

        Args:
            entity: Entity name
            record: Source record
            warnings: Collects a message for every discarded, differing legacy value

        Returns:
            New record with legacy keys removed
        """
        result = dict(record)
        rules = self.registry.rules(entity)

        for mapping in self.registry.mappings(entity):
            legacy_key, canonical_key = mapping.legacy_key, mapping.canonical_key
            if legacy_key not in result:
                continue

            relationship = rules.relationship_for(legacy_key)
            if relationship:
                # Only a stale name beside an existing id is dropped here
                if result.get(relationship.id_field):
                    del result[legacy_key]
                continue

            legacy_value = result.pop(legacy_key)
            if canonical_key not in result:
                result[canonical_key] = legacy_value
            elif result[canonical_key] != legacy_value and warnings is not None:
                warnings.append(
                    f"Discarded legacy value for '{legacy_key}' ({legacy_value!r}); "
                    f"kept '{canonical_key}' ({result[canonical_key]!r})"
                )

        return result

    def decode_structured_fields(
        self,
        entity: str,
        record: Record,
        warnings: Optional[List[str]] = None
    ) -> Record:
        """Decode JSON-in-string fields; unparseable text is wrapped as {"value": raw}."""
        result = dict(record)

        for field_name in self.registry.rules(entity).structured:
            if field_name not in result:
                continue

            decoded = StructuredValue.decode(result[field_name])
            if decoded.kind == StructuredKind.PASSTHROUGH:
                continue
            if decoded.kind == StructuredKind.WRAPPED and warnings is not None:
                warnings.append(f"Field '{field_name}' is not valid JSON; wrapped raw value")
            result[field_name] = decoded.value

        return result

    def transform_many(
        self,
        entity: str,
        records: List[Record]
    ) -> Tuple[List[TransformResult], List[TransformResult]]:
        """
        Transform a list of records.

        Returns:
            Tuple of (valid results, invalid results)
        """
        successful = []
        failed = []

        for record in records:
            result = self.transform(entity, record)
            if result.is_valid:
                successful.append(result)
            else:
                failed.append(result)

        logger.info(f"Transformed {len(records)} {entity} records: {len(successful)} valid, {len(failed)} invalid")
        return successful, failed

    def verify_mapping(self, entity: str, original: Record, transformed: Record) -> List[str]:
        """Check that every legacy value of `original` landed on its canonical key."""
        rules = self.registry.rules(entity)
        skip = {r.name_field for r in rules.relationships}
        return self.mapping_validator.validate_field_mappings(
            original,
            transformed,
            self.registry.legacy_to_canonical(entity),
            skip=skip,
        )

    def legacy_fields_present(self, entity: str, record: Record) -> List[str]:
        """Legacy keys still on a record; unresolved relationship names are not counted."""
        rules = self.registry.rules(entity)
        present = []
        for m in self.registry.mappings(entity):
            if m.legacy_key not in record:
                continue
            relationship = rules.relationship_for(m.legacy_key)
            if relationship is None or record.get(relationship.id_field):
                present.append(m.legacy_key)
        return present
