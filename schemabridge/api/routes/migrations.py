"""Migration execution, status and compatibility-layer endpoints."""

from typing import Any, Dict, Optional
from fastapi import APIRouter, Depends, HTTPException

from ...errors import MigrationError
from ...orchestrator import MigrationOrchestrator
from ..dependencies import get_orchestrator, to_http_error
from ..models import (
    AutoFixRequest,
    EmergencyRollbackRequest,
    FailMigrationRequest,
    MigrateAllRequest,
    ProgressUpdate,
    RunMigrationRequest,
    StartMigrationRequest,
)

router = APIRouter()


def _require_entity(orchestrator: MigrationOrchestrator, entity: str) -> None:
    if not orchestrator.registry.has_entity(entity):
        raise HTTPException(status_code=404, detail=f"Unknown entity: {entity}")


@router.get("")
async def list_statuses(
    scope: Optional[str] = None,
    orchestrator: MigrationOrchestrator = Depends(get_orchestrator)
) -> Dict[str, Any]:
    """List migration statuses with aggregate statistics."""
    return {
        "statuses": [s.to_dict() for s in orchestrator.status_store.all_statuses(scope)],
        "statistics": orchestrator.status_store.statistics(),
    }


@router.get("/compatibility/statistics")
async def compatibility_statistics(orchestrator: MigrationOrchestrator = Depends(get_orchestrator)):
    """Performance statistics of the compatibility layer."""
    return orchestrator.monitor.get_statistics()


@router.post("/run")
async def migrate_all(
    data: MigrateAllRequest,
    scope: Optional[str] = None,
    orchestrator: MigrationOrchestrator = Depends(get_orchestrator)
):
    """Migrate several entities one after another."""
    reports = await orchestrator.migrate_all(data.entities, scope)
    return {
        "success": all(r.success for r in reports),
        "reports": [r.to_dict() for r in reports],
    }


@router.post("/emergency-rollback")
async def emergency_rollback(
    data: EmergencyRollbackRequest,
    scope: Optional[str] = None,
    orchestrator: MigrationOrchestrator = Depends(get_orchestrator)
):
    """Roll entities back to their backups."""
    result = await orchestrator.emergency_rollback(
        data.reason,
        data.entities,
        scope,
        create_emergency_backup=data.create_emergency_backup,
    )
    return result.to_dict()


@router.get("/{entity}")
async def get_status(
    entity: str,
    scope: Optional[str] = None,
    orchestrator: MigrationOrchestrator = Depends(get_orchestrator)
):
    """Get the migration status of an entity."""
    status = orchestrator.get_status(entity, scope)
    if not status:
        raise HTTPException(status_code=404, detail="Migration status not found")
    return status.to_dict()


@router.post("/{entity}/run")
async def run_migration(
    entity: str,
    data: RunMigrationRequest,
    scope: Optional[str] = None,
    orchestrator: MigrationOrchestrator = Depends(get_orchestrator)
):
    """Migrate one entity."""
    _require_entity(orchestrator, entity)
    report = await orchestrator.run_migration(entity, scope, dry_run=data.dry_run)
    return report.to_dict()


@router.get("/{entity}/dry-run")
async def dry_run(
    entity: str,
    limit: int = 10,
    scope: Optional[str] = None,
    orchestrator: MigrationOrchestrator = Depends(get_orchestrator)
):
    """Preview the migration of an entity."""
    _require_entity(orchestrator, entity)
    return await orchestrator.dry_run_migration(entity, scope, limit=limit)


@router.post("/{entity}/start")
async def start_migration(
    entity: str,
    data: StartMigrationRequest,
    scope: Optional[str] = None,
    orchestrator: MigrationOrchestrator = Depends(get_orchestrator)
):
    return orchestrator.start_migration(entity, data.total, scope).to_dict()


@router.post("/{entity}/progress")
async def update_progress(
    entity: str,
    data: ProgressUpdate,
    scope: Optional[str] = None,
    orchestrator: MigrationOrchestrator = Depends(get_orchestrator)
):
    return orchestrator.update_progress(entity, data.migrated, data.failed, scope).to_dict()


@router.post("/{entity}/complete")
async def complete_migration(
    entity: str,
    scope: Optional[str] = None,
    orchestrator: MigrationOrchestrator = Depends(get_orchestrator)
):
    return orchestrator.complete_migration(entity, scope).to_dict()


@router.post("/{entity}/fail")
async def fail_migration(
    entity: str,
    data: FailMigrationRequest,
    scope: Optional[str] = None,
    orchestrator: MigrationOrchestrator = Depends(get_orchestrator)
):
    return orchestrator.fail_migration(entity, data.error, scope).to_dict()


@router.get("/{entity}/can-disable")
async def can_disable(
    entity: str,
    scope: Optional[str] = None,
    orchestrator: MigrationOrchestrator = Depends(get_orchestrator)
):
    """Check whether the compatibility layer can be turned off for an entity."""
    assessment = await orchestrator.safely_disable_compatibility_layer(entity, scope)
    return assessment.to_dict()


@router.post("/{entity}/disable-compatibility")
async def disable_compatibility(
    entity: str,
    scope: Optional[str] = None,
    orchestrator: MigrationOrchestrator = Depends(get_orchestrator)
):
    """Confirm the compatibility layer may be turned off; 409 with the blocking issues otherwise."""
    try:
        assessment = await orchestrator.require_safe_to_disable(entity, scope)
    except MigrationError as e:
        raise to_http_error(e)
    return assessment.to_dict()


@router.post("/{entity}/auto-fix")
async def auto_fix(
    entity: str,
    data: AutoFixRequest,
    scope: Optional[str] = None,
    orchestrator: MigrationOrchestrator = Depends(get_orchestrator)
):
    """Rename leftover legacy fields."""
    _require_entity(orchestrator, entity)
    return await orchestrator.auto_fix_legacy_fields(entity, scope, dry_run=data.dry_run)
