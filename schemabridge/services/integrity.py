"""Read-only data-integrity audit producing a 0-100 health score per entity."""

import logging
from typing import Any, Dict, Iterable, List, Optional

from ..models.record import (
    IntegrityCheckResult,
    IntegrityIssue,
    IssueType,
    Record,
    Severity,
)
from ..store.base import DocumentStore
from .schema_registry import FieldMapRegistry
from .validator import RecordValidator, is_blank

logger = logging.getLogger(__name__)

LEGACY_NAME_PREFIX = "Using legacy field name"


class IntegrityAuditor:
    """
    Audits the stored records of an entity without modifying them.

    Errors: missing required fields, negative amounts, invalid emails and
    timestamps, duplicate values in unique fields.
    Warnings: enum violations, legacy field names, string references with
    no matching id field.
    """

    def __init__(
        self,
        store: DocumentStore,
        registry: FieldMapRegistry,
        validator: Optional[RecordValidator] = None
    ):
        self.store = store
        self.registry = registry
        self.validator = validator or RecordValidator()

    async def audit(self, entity: str, scope: Optional[str] = None) -> IntegrityCheckResult:
        """
        Audit one entity.

        Args:
            entity: Entity name
            scope: Tenant key; only records with this storeId are audited

        Returns:
            IntegrityCheckResult; a failed store query is reported as an issue
        """
        result = IntegrityCheckResult(entity=entity)

        try:
            where = {"storeId": scope} if scope else None
            records = await self.store.fetch(entity, where=where)
        except Exception as e:
            logger.error(f"Error checking {entity} integrity: {e}")
            result.issues.append(IntegrityIssue(
                type=IssueType.CONSTRAINT_VIOLATION,
                record_id="unknown",
                message=f"Error checking {entity} integrity: {e}",
            ))
            return result

        result.total_records = len(records)
        for record in records:
            result.issues.extend(self.check_record(entity, record))
        result.issues.extend(self.check_duplicates(entity, records))

        logger.info(
            f"Audited {len(records)} {entity} records: {result.errors} errors, "
            f"{result.warnings} warnings, health {result.health_score}"
        )
        return result

    def check_record(self, entity: str, record: Record) -> List[IntegrityIssue]:
        """Rule, legacy-name and relationship checks for one record."""
        record_id = str(record.get("id", "unknown"))
        rules = self.registry.rules(entity)
        issues = [
            IntegrityIssue(
                type=error.error_type,
                record_id=record_id,
                message=error.message,
                severity=error.severity,
                field=error.field,
            )
            for error in self.validator.validate_record(record, rules, enum_severity=Severity.WARNING)
        ]

        for mapping in self.registry.mappings(entity):
            if mapping.legacy_key not in record:
                continue
            relationship = rules.relationship_for(mapping.legacy_key)
            if relationship is None or record.get(relationship.id_field):
                issues.append(IntegrityIssue(
                    type=IssueType.INVALID_FORMAT,
                    record_id=record_id,
                    message=f'{LEGACY_NAME_PREFIX} "{mapping.legacy_key}" instead of "{mapping.canonical_key}"',
                    severity=Severity.WARNING,
                    field=mapping.legacy_key,
                ))

        for relationship in rules.relationships:
            if isinstance(record.get(relationship.name_field), str) and not record.get(relationship.id_field):
                issues.append(IntegrityIssue(
                    type=IssueType.INVALID_FORMAT,
                    record_id=record_id,
                    message=(
                        f"Using string {relationship.name_field} reference instead of "
                        f"{relationship.id_field} relationship"
                    ),
                    severity=Severity.WARNING,
                    field=relationship.name_field,
                ))

        return issues

    def check_duplicates(self, entity: str, records: List[Record]) -> List[IntegrityIssue]:
        """One error per record sharing a value of a unique field with another record."""
        issues = []
        for field_name in self.registry.rules(entity).unique:
            seen: Dict[Any, List[str]] = {}
            for record in records:
                value = record.get(field_name)
                if is_blank(value):
                    continue
                seen.setdefault(value, []).append(str(record.get("id", "unknown")))

            for value, record_ids in seen.items():
                if len(record_ids) < 2:
                    continue
                for record_id in record_ids:
                    issues.append(IntegrityIssue(
                        type=IssueType.DUPLICATE_VALUE,
                        record_id=record_id,
                        message=f'Duplicate {field_name} "{value}" found in {len(record_ids)} {entity}',
                        field=field_name,
                    ))
        return issues

    def legacy_issue_count(self, result: IntegrityCheckResult) -> int:
        """
        Issues reporting a legacy field name still present.

        Unresolved string references are not counted; a name field left
        beside its id field is.
        """
        return sum(
            1 for issue in result.issues
            if issue.type == IssueType.INVALID_FORMAT
            and issue.message.startswith(LEGACY_NAME_PREFIX)
        )

    async def audit_all(
        self,
        entities: Optional[Iterable[str]] = None,
        scope: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Audit several entities.

        Returns:
            {"results": [IntegrityCheckResult], "overall": totals and average health}
        """
        entities = list(entities) if entities is not None else self.registry.entities()
        results = [await self.audit(entity, scope) for entity in entities]

        return {
            "results": results,
            "overall": {
                "totalRecords": sum(r.total_records for r in results),
                "totalErrors": sum(r.errors for r in results),
                "totalWarnings": sum(r.warnings for r in results),
                "averageHealthScore": (
                    round(sum(r.health_score for r in results) / len(results)) if results else 100
                ),
            },
        }

    def generate_report(self, results: List[IntegrityCheckResult]) -> str:
        """Human-readable report of audit results."""
        lines = ["Data Integrity Report", "=" * 21, ""]

        for result in results:
            lines.append(f"{result.entity}: {result.total_records} records, health score {result.health_score}/100")
            lines.append(f"  Errors: {result.errors}  Warnings: {result.warnings}")

            by_type: Dict[str, int] = {}
            for issue in result.issues:
                by_type[issue.type.value] = by_type.get(issue.type.value, 0) + 1
            for issue_type, count in sorted(by_type.items()):
                lines.append(f"  - {issue_type}: {count}")

            for issue in [i for i in result.issues if i.severity == Severity.ERROR][:5]:
                lines.append(f"    [{issue.record_id}] {issue.message}")
            lines.append("")

        if results:
            average = sum(r.health_score for r in results) / len(results)
            lines.append(f"Overall health score: {average:.0f}/100")

        return "\n".join(lines)
