"""Engine configuration."""

import json
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .errors import ConfigurationError
from .models.migration import DEFAULT_VERSION

ENV_PREFIX = "SCHEMABRIDGE_"


@dataclass
class EngineConfig:
    """Configuration for the migration engine."""
    # Document store
    store_url: Optional[str] = None
    app_id: Optional[str] = None
    admin_token: Optional[str] = None
    request_timeout: float = 30.0
    max_retries: int = 3

    # Tenant boundary (storeId); None migrates every record
    scope: Optional[str] = None

    # Field maps
    field_map_file: Optional[str] = None
    entities: List[str] = field(default_factory=list)  # empty = every mapped entity

    # Execution options
    batch_size: int = 100
    max_concurrent_batches: int = 3
    restore_batch_size: int = 100
    migration_version: str = DEFAULT_VERSION
    create_backup: bool = True
    validate_backup: bool = False  # legacy data often misses canonical required fields
    rollback_on_failure: bool = True

    # Disable-compatibility threshold
    min_success_rate: float = 0.95

    def __post_init__(self):
        if self.batch_size < 1:
            raise ConfigurationError("batch_size must be at least 1")
        if self.max_concurrent_batches < 1:
            raise ConfigurationError("max_concurrent_batches must be at least 1")
        if self.restore_batch_size < 1:
            raise ConfigurationError("restore_batch_size must be at least 1")
        if not 0.0 <= self.min_success_rate <= 1.0:
            raise ConfigurationError("min_success_rate must be between 0 and 1")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation (the admin token is never included)."""
        return {
            "store_url": self.store_url,
            "app_id": self.app_id,
            "request_timeout": self.request_timeout,
            "max_retries": self.max_retries,
            "scope": self.scope,
            "field_map_file": self.field_map_file,
            "entities": self.entities,
            "batch_size": self.batch_size,
            "max_concurrent_batches": self.max_concurrent_batches,
            "restore_batch_size": self.restore_batch_size,
            "migration_version": self.migration_version,
            "create_backup": self.create_backup,
            "validate_backup": self.validate_backup,
            "rollback_on_failure": self.rollback_on_failure,
            "min_success_rate": self.min_success_rate,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EngineConfig":
        """Create from dictionary representation."""
        return cls(
            store_url=data.get("store_url"),
            app_id=data.get("app_id"),
            admin_token=data.get("admin_token"),
            request_timeout=float(data.get("request_timeout", 30.0)),
            max_retries=int(data.get("max_retries", 3)),
            scope=data.get("scope"),
            field_map_file=data.get("field_map_file"),
            entities=list(data.get("entities", [])),
            batch_size=int(data.get("batch_size", 100)),
            max_concurrent_batches=int(data.get("max_concurrent_batches", 3)),
            restore_batch_size=int(data.get("restore_batch_size", 100)),
            migration_version=data.get("migration_version", DEFAULT_VERSION),
            create_backup=data.get("create_backup", True),
            validate_backup=data.get("validate_backup", False),
            rollback_on_failure=data.get("rollback_on_failure", True),
            min_success_rate=float(data.get("min_success_rate", 0.95)),
        )

    @classmethod
    def from_json_file(cls, file_path: str) -> "EngineConfig":
        """Load configuration from a JSON file."""
        with open(file_path, 'r') as f:
            data = json.load(f)
        return cls.from_dict(data)

    @classmethod
    def from_env(cls, base: Optional["EngineConfig"] = None, environ: Optional[Dict[str, str]] = None) -> "EngineConfig":
        """
        Overlay SCHEMABRIDGE_* environment variables on a configuration.

        Args:
            base: Configuration to start from (defaults to EngineConfig())
            environ: Environment mapping (defaults to os.environ)

        Returns:
            New configuration
        """
        environ = os.environ if environ is None else environ
        data = (base or cls()).to_dict()
        data["admin_token"] = base.admin_token if base else None

        for key in data:
            value = environ.get(f"{ENV_PREFIX}{key.upper()}")
            if value is None:
                continue
            if key == "entities":
                data[key] = [e.strip() for e in value.split(",") if e.strip()]
            elif key in ("create_backup", "validate_backup", "rollback_on_failure"):
                data[key] = value.lower() in ("1", "true", "yes", "on")
            else:
                data[key] = value

        try:
            return cls.from_dict(data)
        except ValueError as e:
            raise ConfigurationError(f"Invalid environment configuration: {e}") from e
