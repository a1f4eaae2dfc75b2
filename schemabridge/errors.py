"""Exception taxonomy for the migration engine."""

from typing import Any, Dict, List, Optional


class MigrationError(Exception):
    """Base class for all engine errors."""

    def __init__(self, message: str, entity: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.entity = entity

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": type(self).__name__,
            "message": self.message,
            "entity": self.entity,
        }


class ValidationFailed(MigrationError):
    """One or more records failed field-level validation."""

    def __init__(self, message: str, entity: Optional[str] = None, errors: Optional[List[str]] = None):
        super().__init__(message, entity)
        self.errors = errors or []

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result["errors"] = self.errors
        return result


class BatchWriteFailed(MigrationError):
    """A batch write was rejected by the document store."""

    def __init__(self, message: str, entity: Optional[str] = None, batch_index: Optional[int] = None):
        super().__init__(message, entity)
        self.batch_index = batch_index


class NoBackupFound(MigrationError):
    """No snapshot exists for the requested entity."""


class IntegrityCheckFailed(MigrationError):
    """A snapshot's stored checksum does not match its contents."""


class InsufficientData(MigrationError):
    """The engine lacks the state needed to allow an operation."""


class ConfigurationError(MigrationError):
    """Static configuration (field maps, rule tables) is inconsistent."""
