"""Data models for the migration engine."""

from .schema import (
    FieldMapping,
    RelationshipField,
    EntityRules,
    EntityFieldMap,
)
from .record import (
    Record,
    StructuredKind,
    StructuredValue,
    IssueType,
    Severity,
    ValidationError,
    TransformResult,
    IntegrityIssue,
    IntegrityCheckResult,
)
from .migration import (
    MigrationState,
    MigrationStatus,
    MigrationProgress,
    BatchError,
    BatchRunResult,
    BackupMetadata,
    BackupSnapshot,
    BackupVerification,
    RollbackHistoryEntry,
    EntityRollbackResult,
    EmergencyRollbackResult,
    SafetyAssessment,
    EntityMigrationReport,
)

__all__ = [
    "FieldMapping",
    "RelationshipField",
    "EntityRules",
    "EntityFieldMap",
    "Record",
    "StructuredKind",
    "StructuredValue",
    "IssueType",
    "Severity",
    "ValidationError",
    "TransformResult",
    "IntegrityIssue",
    "IntegrityCheckResult",
    "MigrationState",
    "MigrationStatus",
    "MigrationProgress",
    "BatchError",
    "BatchRunResult",
    "BackupMetadata",
    "BackupSnapshot",
    "BackupVerification",
    "RollbackHistoryEntry",
    "EntityRollbackResult",
    "EmergencyRollbackResult",
    "SafetyAssessment",
    "EntityMigrationReport",
]
