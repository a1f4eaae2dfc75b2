"""Field-level validation for legacy and transformed records."""

import re
import logging
from typing import Any, List, Mapping
from datetime import datetime
from dateutil import parser as date_parser

from ..models.schema import EntityRules
from ..models.record import (
    IssueType,
    Record,
    Severity,
    ValidationError,
)

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def is_blank(value: Any) -> bool:
    """True for None and empty or whitespace-only strings."""
    return value is None or (isinstance(value, str) and not value.strip())


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class RecordValidator:
    """
    Validator applying an entity's rule table to a single record.

    Checks, in order:
    - Required fields present and non-empty
    - Non-negative and positive numeric fields
    - Enum membership
    - Email format
    - Timestamp fields parseable

    Every violated rule is reported; nothing short-circuits.
    """

    def validate_record(
        self,
        record: Record,
        rules: EntityRules,
        enum_severity: Severity = Severity.ERROR
    ) -> List[ValidationError]:
        """
        Validate a record against an entity's rules.

        Args:
            record: Record in canonical layout
            rules: The entity's rule table
            enum_severity: Severity for enum violations (the auditor downgrades them)

        Returns:
            List of validation errors
        """
        errors = []
        errors.extend(self._check_required(record, rules))
        errors.extend(self._check_numbers(record, rules))
        errors.extend(self._check_enums(record, rules, enum_severity))
        errors.extend(self._check_emails(record, rules))
        errors.extend(self._check_timestamps(record, rules))
        return errors

    def _check_required(self, record: Record, rules: EntityRules) -> List[ValidationError]:
        return [
            ValidationError(
                field=field_name,
                message=f"Required field '{field_name}' is missing or empty",
                error_type=IssueType.MISSING_REQUIRED,
            )
            for field_name in rules.required
            if is_blank(record.get(field_name))
        ]

    def _check_numbers(self, record: Record, rules: EntityRules) -> List[ValidationError]:
        errors = []

        for field_name in rules.non_negative:
            value = record.get(field_name)
            if is_number(value) and value < 0:
                errors.append(ValidationError(
                    field=field_name,
                    message=f"Field '{field_name}' must be non-negative (got {value})",
                    error_type=IssueType.CONSTRAINT_VIOLATION,
                    value=value,
                ))

        for field_name in rules.positive:
            value = record.get(field_name)
            if not is_number(value):
                continue
            # A negative value was already reported by the non-negative check
            if value < 0 and field_name in rules.non_negative:
                continue
            if value <= 0:
                errors.append(ValidationError(
                    field=field_name,
                    message=f"Field '{field_name}' must be positive (got {value})",
                    error_type=IssueType.CONSTRAINT_VIOLATION,
                    value=value,
                ))

        return errors

    def _check_enums(
        self,
        record: Record,
        rules: EntityRules,
        severity: Severity
    ) -> List[ValidationError]:
        errors = []
        for field_name, allowed in rules.enums.items():
            value = record.get(field_name)
            if value is None or value in allowed:
                continue
            errors.append(ValidationError(
                field=field_name,
                message=f"Invalid value '{value}' for '{field_name}'. Must be one of: {', '.join(allowed)}",
                error_type=IssueType.INVALID_FORMAT,
                severity=severity,
                value=value,
            ))
        return errors

    def _check_emails(self, record: Record, rules: EntityRules) -> List[ValidationError]:
        errors = []
        for field_name in rules.email:
            value = record.get(field_name)
            if is_blank(value):
                continue
            if not isinstance(value, str) or not EMAIL_PATTERN.match(value):
                errors.append(ValidationError(
                    field=field_name,
                    message=f"Invalid email format in '{field_name}'",
                    error_type=IssueType.INVALID_FORMAT,
                    value=value,
                ))
        return errors

    def _check_timestamps(self, record: Record, rules: EntityRules) -> List[ValidationError]:
        errors = []
        for field_name in rules.timestamps:
            value = record.get(field_name)
            if value is None or is_number(value) or isinstance(value, datetime):
                continue
            if isinstance(value, str):
                try:
                    date_parser.parse(value)
                    continue
                except (ValueError, OverflowError):
                    pass
            errors.append(ValidationError(
                field=field_name,
                message=f"Field '{field_name}' is not a valid timestamp",
                error_type=IssueType.INVALID_FORMAT,
                value=value,
            ))
        return errors


class MigrationValidator:
    """Checks that a transform carried every legacy value to its canonical key."""

    def validate_field_mappings(
        self,
        original: Record,
        transformed: Record,
        mapping: Mapping[str, str],
        skip: Any = ()
    ) -> List[str]:
        """
        Compare an original record with its transformed form.

        Args:
            original: Record before transformation
            transformed: Record after transformation
            mapping: legacy -> canonical field names
            skip: Legacy keys handled elsewhere (relationship name fields)

        Returns:
            List of error messages; empty when the mapping was applied faithfully
        """
        errors = []

        for legacy_key, canonical_key in mapping.items():
            if legacy_key in skip or legacy_key not in original:
                continue

            if legacy_key in transformed:
                errors.append(f"Legacy field '{legacy_key}' was not removed")

            if canonical_key not in transformed:
                errors.append(
                    f"Field mapping failed: '{legacy_key}' -> '{canonical_key}' not found"
                )
                continue

            expected = original.get(canonical_key, original[legacy_key])
            actual = transformed[canonical_key]
            # Structured fields may have been decoded from their string form
            if actual != expected and not isinstance(expected, str):
                errors.append(
                    f"Value mismatch for '{canonical_key}': expected {expected!r}, got {actual!r}"
                )

        return errors
