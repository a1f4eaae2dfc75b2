"""Data-integrity audit endpoints."""

from typing import List, Optional
from fastapi import APIRouter, Depends, Query
from fastapi.responses import PlainTextResponse

from ...orchestrator import MigrationOrchestrator
from ..dependencies import get_orchestrator

router = APIRouter()


@router.get("")
async def audit_all(
    entity: Optional[List[str]] = Query(default=None),
    scope: Optional[str] = None,
    orchestrator: MigrationOrchestrator = Depends(get_orchestrator)
):
    """Audit several entities (all mapped entities by default)."""
    audit = await orchestrator.audit_all(entity, scope)
    return {
        "results": [r.to_dict() for r in audit["results"]],
        "overall": audit["overall"],
    }


@router.get("/report", response_class=PlainTextResponse)
async def summary_report(
    scope: Optional[str] = None,
    orchestrator: MigrationOrchestrator = Depends(get_orchestrator)
):
    """Human-readable status and health report."""
    return await orchestrator.report(scope=scope)


@router.get("/{entity}")
async def audit_entity(
    entity: str,
    scope: Optional[str] = None,
    orchestrator: MigrationOrchestrator = Depends(get_orchestrator)
):
    result = await orchestrator.report(entity, scope)
    return result.to_dict()
