"""Backup, verification and restore endpoints."""

from typing import Optional
from fastapi import APIRouter, Depends

from ...errors import MigrationError
from ...orchestrator import MigrationOrchestrator
from ..dependencies import get_orchestrator, to_http_error
from ..models import BackupCreate, RestoreRequest

router = APIRouter()


@router.get("")
async def list_backups(orchestrator: MigrationOrchestrator = Depends(get_orchestrator)):
    """List all snapshots (without their records)."""
    backups = orchestrator.backups.list_backups()
    return {"backups": backups, "total": len(backups)}


@router.post("/{entity}")
async def create_backup(
    entity: str,
    data: BackupCreate,
    scope: Optional[str] = None,
    orchestrator: MigrationOrchestrator = Depends(get_orchestrator)
):
    """Snapshot the live records of an entity."""
    try:
        snapshot = await orchestrator.backups.create_backup(
            entity,
            version=data.version,
            description=data.description,
            validate_integrity=data.validate_integrity,
            scope=scope,
        )
    except MigrationError as e:
        raise to_http_error(e)
    return snapshot.to_dict()


@router.get("/{entity}/verify")
async def verify_backup(
    entity: str,
    scope: Optional[str] = None,
    compare_live: bool = True,
    orchestrator: MigrationOrchestrator = Depends(get_orchestrator)
):
    verification = await orchestrator.backups.verify_backup(entity, scope, compare_live=compare_live)
    return verification.to_dict()


@router.post("/{entity}/restore")
async def restore_backup(
    entity: str,
    data: RestoreRequest,
    scope: Optional[str] = None,
    orchestrator: MigrationOrchestrator = Depends(get_orchestrator)
):
    """Replace the live records of an entity with its snapshot."""
    try:
        restored = await orchestrator.backups.restore_from_backup(
            entity,
            validate_before_restore=data.validate_before_restore,
            create_restore_point=data.create_restore_point,
            scope=scope,
            from_restore_point=data.from_restore_point,
        )
    except MigrationError as e:
        raise to_http_error(e)
    return {"success": True, "entity": entity, "recordsRestored": restored}


@router.get("/{entity}/history")
async def rollback_history(
    entity: str,
    scope: Optional[str] = None,
    orchestrator: MigrationOrchestrator = Depends(get_orchestrator)
):
    history = orchestrator.backups.get_rollback_history(entity, scope)
    return {"entity": entity, "history": [entry.to_dict() for entry in history]}


@router.delete("/{entity}")
async def clear_backup(
    entity: str,
    force: bool = False,
    scope: Optional[str] = None,
    orchestrator: MigrationOrchestrator = Depends(get_orchestrator)
):
    """Delete a snapshot; refused without force while live data differs from it."""
    cleared = await orchestrator.backups.clear_backup(entity, force=force, scope=scope)
    return {"entity": entity, "cleared": cleared}
