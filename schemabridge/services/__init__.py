"""Engine services."""

from .schema_registry import FieldMapRegistry
from .validator import RecordValidator, MigrationValidator
from .transformer import RecordTransformer
from .relationships import RelationshipResolver
from .performance import CompatibilityPerformanceMonitor
from .status_store import (
    MigrationStatusStore,
    start_migration,
    update_progress,
    complete_migration,
    fail_migration,
)
from .compatibility import CompatibilityMiddleware
from .batch_processor import BatchMigrationProcessor
from .backup import BackupRollbackManager, calculate_checksum
from .integrity import IntegrityAuditor

__all__ = [
    "FieldMapRegistry",
    "RecordValidator",
    "MigrationValidator",
    "RecordTransformer",
    "RelationshipResolver",
    "CompatibilityPerformanceMonitor",
    "MigrationStatusStore",
    "start_migration",
    "update_progress",
    "complete_migration",
    "fail_migration",
    "CompatibilityMiddleware",
    "BatchMigrationProcessor",
    "BackupRollbackManager",
    "calculate_checksum",
    "IntegrityAuditor",
]
