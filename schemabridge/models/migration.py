"""Migration execution models: status, progress, batches, backups, rollbacks."""

from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional
from enum import Enum
from datetime import datetime
from dateutil import parser as date_parser

from .record import Record


DEFAULT_VERSION = "1.0.0"


class MigrationState(str, Enum):
    """Lifecycle state of an entity's migration."""
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class MigrationStatus:
    """
    Migration status for one entity (optionally within one tenant scope).

    Instances are immutable; transitions build a new status with `evolve`
    and replace the stored one wholesale.
    """
    entity: str
    state: MigrationState = MigrationState.NOT_STARTED
    records_total: int = 0
    records_migrated: int = 0
    records_failed: int = 0
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    last_error: Optional[str] = None
    version: str = DEFAULT_VERSION
    scope: Optional[str] = None

    def evolve(self, **changes: Any) -> "MigrationStatus":
        """Return a copy with the given fields replaced."""
        return replace(self, **changes)

    @property
    def is_completed(self) -> bool:
        return self.state == MigrationState.COMPLETED

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "entity": self.entity,
            "scope": self.scope,
            "status": self.state.value,
            "recordsTotal": self.records_total,
            "recordsMigrated": self.records_migrated,
            "recordsFailed": self.records_failed,
            "startedAt": self.started_at.isoformat() if self.started_at else None,
            "completedAt": self.completed_at.isoformat() if self.completed_at else None,
            "lastError": self.last_error,
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MigrationStatus":
        """Create from dictionary representation."""
        started_at = data.get("startedAt")
        completed_at = data.get("completedAt")
        return cls(
            entity=data["entity"],
            state=MigrationState(data.get("status", MigrationState.NOT_STARTED.value)),
            records_total=int(data.get("recordsTotal", 0)),
            records_migrated=int(data.get("recordsMigrated", 0)),
            records_failed=int(data.get("recordsFailed", 0)),
            started_at=date_parser.isoparse(started_at) if started_at else None,
            completed_at=date_parser.isoparse(completed_at) if completed_at else None,
            last_error=data.get("lastError"),
            version=data.get("version", DEFAULT_VERSION),
            scope=data.get("scope"),
        )


@dataclass
class BatchError:
    """A batch that failed as a whole."""
    batch_index: int
    error: str
    record_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "batchIndex": self.batch_index,
            "error": self.error,
            "recordCount": self.record_count,
        }


@dataclass
class BatchRunResult:
    """Result of a BatchMigrationProcessor run."""
    entity: str
    total_records: int = 0
    total_processed: int = 0
    total_failed: int = 0
    errors: List[BatchError] = field(default_factory=list)
    record_errors: List[Dict[str, Any]] = field(default_factory=list)
    cancelled: bool = False
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def success(self) -> bool:
        """True when no batch failed; invalid records do not count here."""
        return not self.errors

    @property
    def total_migrated(self) -> int:
        return self.total_processed - self.total_failed

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entity": self.entity,
            "success": self.success,
            "totalRecords": self.total_records,
            "totalProcessed": self.total_processed,
            "totalFailed": self.total_failed,
            "errors": [e.to_dict() for e in self.errors],
            "recordErrors": self.record_errors,
            "cancelled": self.cancelled,
            "durationSeconds": self.duration_seconds,
        }


@dataclass
class MigrationProgress:
    """Running tally for a migration of one entity."""
    entity: str
    total: int
    processed: int = 0
    successful: int = 0
    failed: int = 0
    errors: List[Dict[str, Any]] = field(default_factory=list)
    start_time: datetime = field(default_factory=datetime.utcnow)
    end_time: Optional[datetime] = None

    def record(self, success: bool, record_id: Optional[str] = None, errors: Optional[List[str]] = None) -> None:
        """Count one processed record."""
        self.processed += 1
        if success:
            self.successful += 1
        else:
            self.failed += 1
            if record_id and errors:
                self.errors.append({"recordId": record_id, "errors": errors})

        if self.processed == self.total:
            self.end_time = datetime.utcnow()

    @property
    def success_rate(self) -> float:
        if self.total == 0:
            return 1.0
        return self.successful / self.total

    def summary(self) -> str:
        """Human-readable summary of the run."""
        end = self.end_time or datetime.utcnow()
        duration = round((end - self.start_time).total_seconds())

        lines = [
            f"Migration Summary for {self.entity}:",
            f"- Total records: {self.total}",
            f"- Processed: {self.processed}",
            f"- Successful: {self.successful}",
            f"- Failed: {self.failed}",
            f"- Duration: {duration}s",
            f"- Success rate: {self.success_rate * 100:.1f}%",
        ]
        if self.errors:
            lines.append("")
            lines.append("Errors:")
            for error in self.errors:
                lines.append(f"- {error['recordId']}: {', '.join(error['errors'])}")
        return "\n".join(lines)


@dataclass(frozen=True)
class BackupMetadata:
    """Metadata stored alongside a snapshot."""
    version: str
    created_at: datetime
    record_count: int
    checksum: str
    description: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "description": self.description,
            "createdAt": self.created_at.isoformat(),
            "recordCount": self.record_count,
            "checksum": self.checksum,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BackupMetadata":
        """Create from dictionary representation."""
        return cls(
            version=data["version"],
            created_at=date_parser.isoparse(data["createdAt"]),
            record_count=int(data["recordCount"]),
            checksum=data["checksum"],
            description=data.get("description"),
        )


@dataclass(frozen=True)
class BackupSnapshot:
    """A point-in-time copy of an entity's records."""
    entity: str
    records: List[Record]
    metadata: BackupMetadata
    scope: Optional[str] = None
    restore_point: bool = False

    def to_dict(self, include_records: bool = False) -> Dict[str, Any]:
        result = {
            "entity": self.entity,
            "scope": self.scope,
            "restorePoint": self.restore_point,
            "metadata": self.metadata.to_dict(),
        }
        if include_records:
            result["records"] = self.records
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BackupSnapshot":
        """Create from dictionary representation (records must be included)."""
        return cls(
            entity=data["entity"],
            records=list(data.get("records", [])),
            metadata=BackupMetadata.from_dict(data["metadata"]),
            scope=data.get("scope"),
            restore_point=data.get("restorePoint", False),
        )


@dataclass(frozen=True)
class RollbackHistoryEntry:
    """Append-only record of a restore attempt."""
    timestamp: datetime
    version: str
    action: str
    success: bool
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "version": self.version,
            "action": self.action,
            "success": self.success,
            "error": self.error,
        }


@dataclass
class BackupVerification:
    """Non-destructive health check of a snapshot."""
    exists: bool = False
    valid: bool = False
    issues: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"exists": self.exists, "valid": self.valid, "issues": self.issues}


@dataclass
class EntityRollbackResult:
    """Outcome of rolling back one entity."""
    entity: str
    success: bool = False
    records_restored: int = 0
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entity": self.entity,
            "success": self.success,
            "recordsRestored": self.records_restored,
            "error": self.error,
        }


@dataclass
class EmergencyRollbackResult:
    """Outcome of an emergency rollback across entities."""
    reason: str
    results: List[EntityRollbackResult] = field(default_factory=list)
    started_at: datetime = field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None

    @property
    def success(self) -> bool:
        return bool(self.results) and all(r.success for r in self.results)

    @property
    def errors(self) -> List[str]:
        return [f"{r.entity}: {r.error}" for r in self.results if not r.success]

    @property
    def rolled_back_entities(self) -> List[str]:
        return [r.entity for r in self.results if r.success]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reason": self.reason,
            "success": self.success,
            "rolledBackEntities": self.rolled_back_entities,
            "errors": self.errors,
            "results": [r.to_dict() for r in self.results],
            "startedAt": self.started_at.isoformat(),
            "completedAt": self.completed_at.isoformat() if self.completed_at else None,
        }


@dataclass
class SafetyAssessment:
    """Whether the compatibility layer may be turned off for an entity."""
    entity: str
    can_disable: bool = False
    issues: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entity": self.entity,
            "canDisable": self.can_disable,
            "issues": self.issues,
            "recommendations": self.recommendations,
        }


@dataclass
class EntityMigrationReport:
    """Everything the orchestrator learned while migrating one entity."""
    entity: str
    scope: Optional[str] = None
    status: Optional[MigrationStatus] = None
    batch_result: Optional[BatchRunResult] = None
    baseline_health: Optional[int] = None
    final_health: Optional[int] = None
    unresolved_references: int = 0
    rolled_back: bool = False
    dry_run: bool = False
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        if self.dry_run:
            return self.error is None
        return (
            self.error is None
            and self.status is not None
            and self.status.is_completed
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entity": self.entity,
            "scope": self.scope,
            "success": self.success,
            "status": self.status.to_dict() if self.status else None,
            "batchResult": self.batch_result.to_dict() if self.batch_result else None,
            "baselineHealth": self.baseline_health,
            "finalHealth": self.final_health,
            "unresolvedReferences": self.unresolved_references,
            "rolledBack": self.rolled_back,
            "dryRun": self.dry_run,
            "error": self.error,
        }
