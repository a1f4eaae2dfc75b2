"""Pydantic models for API requests."""

from typing import List, Optional
from pydantic import BaseModel, Field


class RunMigrationRequest(BaseModel):
    dry_run: bool = False


class MigrateAllRequest(BaseModel):
    entities: Optional[List[str]] = None


class StartMigrationRequest(BaseModel):
    total: int = Field(default=0, ge=0)


class FailMigrationRequest(BaseModel):
    error: str


class ProgressUpdate(BaseModel):
    migrated: int = Field(ge=0)
    failed: int = Field(default=0, ge=0)


class AutoFixRequest(BaseModel):
    dry_run: bool = True


class EmergencyRollbackRequest(BaseModel):
    reason: str
    entities: Optional[List[str]] = None
    create_emergency_backup: bool = True


class BackupCreate(BaseModel):
    version: Optional[str] = None
    description: Optional[str] = None
    validate_integrity: bool = True


class RestoreRequest(BaseModel):
    validate_before_restore: bool = True
    create_restore_point: bool = True
    from_restore_point: bool = False
