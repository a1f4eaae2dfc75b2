"""Per-entity migration status table and the status transition functions."""

import json
import logging
import threading
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ..models.migration import (
    DEFAULT_VERSION,
    MigrationState,
    MigrationStatus,
)

logger = logging.getLogger(__name__)

StatusKey = Tuple[Optional[str], str]


class MigrationStatusStore:
    """
    In-memory table of migration statuses keyed by (scope, entity).

    Construct one per process and pass it to every component that needs it.
    Writes replace a whole status; the lock is held only for the map update.
    """

    def __init__(self):
        self._statuses: Dict[StatusKey, MigrationStatus] = {}
        self._lock = threading.Lock()

    def get(self, entity: str, scope: Optional[str] = None) -> Optional[MigrationStatus]:
        with self._lock:
            return self._statuses.get((scope, entity))

    def set(self, status: MigrationStatus) -> None:
        with self._lock:
            self._statuses[(status.scope, status.entity)] = status
        logger.debug(f"Status for {status.entity} (scope={status.scope}) -> {status.state.value}")

    def initialize(
        self,
        entities: Iterable[str],
        scope: Optional[str] = None,
        version: str = DEFAULT_VERSION
    ) -> List[MigrationStatus]:
        """Create not_started entries for entities not yet tracked."""
        created = []
        with self._lock:
            for entity in entities:
                key = (scope, entity)
                if key in self._statuses:
                    continue
                status = MigrationStatus(entity=entity, scope=scope, version=version)
                self._statuses[key] = status
                created.append(status)
        return created

    def all_statuses(self, scope: Optional[str] = None) -> List[MigrationStatus]:
        """All tracked statuses; restricted to one scope when given."""
        with self._lock:
            statuses = list(self._statuses.values())
        if scope is None:
            return statuses
        return [s for s in statuses if s.scope == scope]

    def is_migrated(self, entity: str, scope: Optional[str] = None) -> bool:
        status = self.get(entity, scope)
        return status is not None and status.is_completed

    def is_all_migrated(self, entities: Iterable[str], scope: Optional[str] = None) -> bool:
        return all(self.is_migrated(entity, scope) for entity in entities)

    def clear(self, scope: Optional[str] = None) -> None:
        """Drop all statuses, or only those of one scope."""
        with self._lock:
            if scope is None:
                self._statuses.clear()
            else:
                for key in [k for k in self._statuses if k[0] == scope]:
                    del self._statuses[key]

    def save(self, file_path: str) -> None:
        """Write every tracked status to a JSON file."""
        with open(file_path, 'w') as f:
            json.dump([s.to_dict() for s in self.all_statuses()], f, indent=2)
        logger.info(f"Saved migration statuses to {file_path}")

    def load(self, file_path: str) -> int:
        """Replace tracked statuses with those saved in a JSON file; returns how many were loaded."""
        with open(file_path) as f:
            data = json.load(f)

        for entry in data:
            self.set(MigrationStatus.from_dict(entry))

        logger.info(f"Loaded {len(data)} migration statuses from {file_path}")
        return len(data)

    def statistics(self) -> Dict[str, int]:
        """Counts of tracked statuses per state."""
        statuses = self.all_statuses()
        return {
            "totalEntities": len(statuses),
            "completedMigrations": sum(1 for s in statuses if s.state == MigrationState.COMPLETED),
            "failedMigrations": sum(1 for s in statuses if s.state == MigrationState.FAILED),
            "inProgressMigrations": sum(1 for s in statuses if s.state == MigrationState.IN_PROGRESS),
            "notStartedMigrations": sum(1 for s in statuses if s.state == MigrationState.NOT_STARTED),
        }

    def scope_summary(self, scope: Optional[str] = None) -> Dict[str, Any]:
        """Statuses of one tenant plus overall record counts."""
        statuses = self.all_statuses(scope) if scope is not None else [
            s for s in self.all_statuses() if s.scope is None
        ]
        return {
            "statuses": [s.to_dict() for s in statuses],
            "overall": {
                "totalRecords": sum(s.records_total for s in statuses),
                "migratedRecords": sum(s.records_migrated for s in statuses),
                "failedRecords": sum(s.records_failed for s in statuses),
                "isComplete": bool(statuses) and all(s.is_completed for s in statuses),
            },
        }


def _current(store: MigrationStatusStore, entity: str, scope: Optional[str]) -> MigrationStatus:
    return store.get(entity, scope) or MigrationStatus(entity=entity, scope=scope)


def start_migration(
    store: MigrationStatusStore,
    entity: str,
    total: int = 0,
    scope: Optional[str] = None,
    version: Optional[str] = None
) -> MigrationStatus:
    """Move an entity to in_progress with fresh counters."""
    status = _current(store, entity, scope).evolve(
        state=MigrationState.IN_PROGRESS,
        records_total=total,
        records_migrated=0,
        records_failed=0,
        started_at=datetime.utcnow(),
        completed_at=None,
        last_error=None,
    )
    if version:
        status = status.evolve(version=version)
    store.set(status)
    return status


def update_progress(
    store: MigrationStatusStore,
    entity: str,
    migrated: int,
    failed: int,
    scope: Optional[str] = None
) -> MigrationStatus:
    status = _current(store, entity, scope).evolve(
        records_migrated=migrated,
        records_failed=failed,
    )
    store.set(status)
    return status


def complete_migration(
    store: MigrationStatusStore,
    entity: str,
    scope: Optional[str] = None
) -> MigrationStatus:
    status = _current(store, entity, scope).evolve(
        state=MigrationState.COMPLETED,
        completed_at=datetime.utcnow(),
    )
    store.set(status)
    logger.info(f"Migration of {entity} completed")
    return status


def fail_migration(
    store: MigrationStatusStore,
    entity: str,
    error: str,
    scope: Optional[str] = None
) -> MigrationStatus:
    status = _current(store, entity, scope).evolve(
        state=MigrationState.FAILED,
        completed_at=datetime.utcnow(),
        last_error=error,
    )
    store.set(status)
    logger.error(f"Migration of {entity} failed: {error}")
    return status
