"""Checksummed snapshots, restore and rollback history."""

import copy
import hashlib
import json
import logging
import threading
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from ..errors import IntegrityCheckFailed, NoBackupFound, ValidationFailed
from ..models.migration import (
    DEFAULT_VERSION,
    BackupMetadata,
    BackupSnapshot,
    BackupVerification,
    RollbackHistoryEntry,
)
from ..models.record import Record
from ..store.base import DocumentStore, TxOp
from .schema_registry import FieldMapRegistry
from .validator import is_blank

logger = logging.getLogger(__name__)

SnapshotKey = Tuple[Optional[str], str]


def calculate_checksum(records: List[Record]) -> str:
    """
    SHA-256 of the records sorted by id, serialized as canonical JSON.

    Independent of record order and key order, stable across processes.
    """
    ordered = sorted(records, key=lambda r: str(r.get("id", "")))
    payload = json.dumps(ordered, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class BackupRollbackManager:
    """
    Keeps one snapshot per (scope, entity) plus one restore point.

    A later backup of the same entity replaces the earlier one; the restore
    point holds the state captured just before the last restore so that
    restore can itself be undone.
    """

    def __init__(
        self,
        store: DocumentStore,
        registry: FieldMapRegistry,
        restore_batch_size: int = 100,
        default_version: str = DEFAULT_VERSION
    ):
        """
        Initialize the manager.

        Args:
            store: Document store holding the live records
            registry: Source of each entity's required fields
            restore_batch_size: Operations per write during restore
            default_version: Version tag used when a backup names none
        """
        self.store = store
        self.registry = registry
        self.restore_batch_size = restore_batch_size
        self.default_version = default_version
        self._snapshots: Dict[SnapshotKey, BackupSnapshot] = {}
        self._restore_points: Dict[SnapshotKey, BackupSnapshot] = {}
        self._history: Dict[SnapshotKey, List[RollbackHistoryEntry]] = {}
        self._lock = threading.Lock()

    async def _fetch_live(self, entity: str, scope: Optional[str]) -> List[Record]:
        where = {"storeId": scope} if scope else None
        return await self.store.fetch(entity, where=where)

    def _required_field_issues(self, entity: str, records: List[Record]) -> List[str]:
        issues = []
        for record in records:
            for field_name in self.registry.rules(entity).required:
                if is_blank(record.get(field_name)):
                    issues.append(f"Record {record.get('id')} is missing required field '{field_name}'")
        return issues

    def _build_snapshot(
        self,
        entity: str,
        records: List[Record],
        version: Optional[str],
        description: Optional[str],
        scope: Optional[str],
        restore_point: bool = False
    ) -> BackupSnapshot:
        records = copy.deepcopy(records)
        return BackupSnapshot(
            entity=entity,
            records=records,
            metadata=BackupMetadata(
                version=version or self.default_version,
                created_at=datetime.utcnow(),
                record_count=len(records),
                checksum=calculate_checksum(records),
                description=description,
            ),
            scope=scope,
            restore_point=restore_point,
        )

    async def create_backup(
        self,
        entity: str,
        version: Optional[str] = None,
        description: Optional[str] = None,
        validate_integrity: bool = True,
        scope: Optional[str] = None
    ) -> BackupSnapshot:
        """
        Snapshot the live records of an entity.

        Args:
            entity: Entity name
            version: Version tag stored in the metadata
            description: Free-form description
            validate_integrity: Refuse to back up records missing required fields
            scope: Tenant key

        Returns:
            The stored snapshot

        Raises:
            ValidationFailed: validation was requested and a record is invalid
        """
        records = await self._fetch_live(entity, scope)

        if validate_integrity:
            issues = self._required_field_issues(entity, records)
            if issues:
                raise ValidationFailed(
                    f"Cannot back up {entity}: {len(issues)} integrity issues",
                    entity=entity,
                    errors=issues,
                )

        snapshot = self._build_snapshot(entity, records, version, description, scope)
        with self._lock:
            self._snapshots[(scope, entity)] = snapshot

        logger.info(f"Backed up {len(records)} {entity} records (checksum {snapshot.metadata.checksum[:12]})")
        return snapshot

    def get_backup(
        self,
        entity: str,
        scope: Optional[str] = None,
        restore_point: bool = False
    ) -> Optional[BackupSnapshot]:
        table = self._restore_points if restore_point else self._snapshots
        with self._lock:
            return table.get((scope, entity))

    def _append_history(
        self,
        entity: str,
        scope: Optional[str],
        version: str,
        action: str,
        success: bool,
        error: Optional[str] = None
    ) -> None:
        entry = RollbackHistoryEntry(
            timestamp=datetime.utcnow(),
            version=version,
            action=action,
            success=success,
            error=error,
        )
        with self._lock:
            self._history.setdefault((scope, entity), []).append(entry)

    async def restore_from_backup(
        self,
        entity: str,
        validate_before_restore: bool = True,
        create_restore_point: bool = True,
        scope: Optional[str] = None,
        from_restore_point: bool = False
    ) -> int:
        """
        Replace the live records of an entity with a snapshot.

        Args:
            entity: Entity name
            validate_before_restore: Recompute the snapshot checksum first
            create_restore_point: Snapshot the current state before restoring
            scope: Tenant key
            from_restore_point: Restore the restore point instead of the backup

        Returns:
            Number of records restored

        Raises:
            NoBackupFound: no snapshot exists
            IntegrityCheckFailed: the snapshot checksum does not match its records
        """
        action = "restore_from_restore_point" if from_restore_point else "restore"
        snapshot = self.get_backup(entity, scope, restore_point=from_restore_point)

        if snapshot is None:
            message = f"No {'restore point' if from_restore_point else 'backup'} found for {entity}"
            self._append_history(entity, scope, self.default_version, action, False, message)
            raise NoBackupFound(message, entity=entity)

        version = snapshot.metadata.version
        try:
            if validate_before_restore:
                actual = calculate_checksum(snapshot.records)
                if actual != snapshot.metadata.checksum:
                    raise IntegrityCheckFailed(
                        f"Backup checksum mismatch for {entity}: "
                        f"expected {snapshot.metadata.checksum}, got {actual}",
                        entity=entity,
                    )

            current = await self._fetch_live(entity, scope)

            if create_restore_point:
                restore_point = self._build_snapshot(
                    entity, current, version, f"Restore point before {action}", scope, restore_point=True
                )
                with self._lock:
                    self._restore_points[(scope, entity)] = restore_point

            await self._write_batches([TxOp.delete(entity, r["id"]) for r in current if r.get("id") is not None])
            await self._write_batches([
                TxOp.update(entity, r["id"], {k: v for k, v in r.items() if k != "id"})
                for r in snapshot.records
            ])
        except Exception as e:
            self._append_history(entity, scope, version, action, False, str(e))
            logger.error(f"Restore of {entity} failed: {e}")
            raise

        self._append_history(entity, scope, version, action, True)
        logger.info(f"Restored {len(snapshot.records)} {entity} records from backup {version}")
        return len(snapshot.records)

    async def _write_batches(self, ops: List[TxOp]) -> None:
        for i in range(0, len(ops), self.restore_batch_size):
            await self.store.transact(ops[i:i + self.restore_batch_size])

    async def verify_backup(
        self,
        entity: str,
        scope: Optional[str] = None,
        compare_live: bool = True
    ) -> BackupVerification:
        """
        Check a snapshot without changing anything.

        Combines the snapshot checksum, required-field validation of the
        snapshot records and, with `compare_live`, a comparison of the live
        data against the snapshot.
        """
        snapshot = self.get_backup(entity, scope)
        if snapshot is None:
            return BackupVerification(exists=False, valid=False, issues=[f"No backup found for {entity}"])

        issues = []
        if calculate_checksum(snapshot.records) != snapshot.metadata.checksum:
            issues.append("Checksum mismatch: backup contents were modified after creation")
        if len(snapshot.records) != snapshot.metadata.record_count:
            issues.append(
                f"Record count mismatch: metadata says {snapshot.metadata.record_count}, "
                f"backup holds {len(snapshot.records)}"
            )
        issues.extend(self._required_field_issues(entity, snapshot.records))

        if compare_live:
            try:
                live = await self._fetch_live(entity, scope)
            except Exception as e:
                issues.append(f"Could not read live data: {e}")
            else:
                if calculate_checksum(live) != snapshot.metadata.checksum:
                    issues.append(
                        f"Checksum mismatch between backup and live data "
                        f"({len(snapshot.records)} backed up, {len(live)} live records)"
                    )

        return BackupVerification(exists=True, valid=not issues, issues=issues)

    def export_backup(self, entity: str, file_path: str, scope: Optional[str] = None) -> BackupSnapshot:
        """Write an entity's snapshot, records included, to a JSON file."""
        snapshot = self.get_backup(entity, scope)
        if snapshot is None:
            raise NoBackupFound(f"No backup found for {entity}", entity=entity)

        with open(file_path, 'w') as f:
            json.dump(snapshot.to_dict(include_records=True), f, indent=2, default=str)

        logger.info(f"Saved backup of {entity} to {file_path}")
        return snapshot

    def import_backup(self, file_path: str) -> BackupSnapshot:
        """
        Load a snapshot written by `export_backup` and make it the entity's backup.

        The stored checksum is kept as-is, so a file edited after export fails verification.
        """
        with open(file_path, 'r') as f:
            snapshot = BackupSnapshot.from_dict(json.load(f))

        table = self._restore_points if snapshot.restore_point else self._snapshots
        with self._lock:
            table[(snapshot.scope, snapshot.entity)] = snapshot

        logger.info(f"Loaded backup of {snapshot.entity} ({snapshot.metadata.record_count} records) from {file_path}")
        return snapshot

    def list_backups(self) -> List[Dict[str, Any]]:
        with self._lock:
            snapshots = list(self._snapshots.values()) + list(self._restore_points.values())
        return [s.to_dict() for s in snapshots]

    def get_rollback_history(self, entity: str, scope: Optional[str] = None) -> List[RollbackHistoryEntry]:
        with self._lock:
            return list(self._history.get((scope, entity), []))

    async def clear_backup(self, entity: str, force: bool = False, scope: Optional[str] = None) -> bool:
        """
        Delete the snapshot and restore point of an entity.

        Without `force` the backup is kept when the live data differs from it.

        Returns:
            True when something was removed
        """
        snapshot = self.get_backup(entity, scope)
        if snapshot is not None and not force:
            live = await self._fetch_live(entity, scope)
            if calculate_checksum(live) != snapshot.metadata.checksum:
                logger.warning(f"Not clearing backup of {entity}: live data differs from it (use force)")
                return False

        with self._lock:
            removed = self._snapshots.pop((scope, entity), None) is not None
            removed = self._restore_points.pop((scope, entity), None) is not None or removed

        if removed:
            logger.info(f"Cleared backup of {entity}")
        return removed
