"""Request dependencies shared by the routers."""

import logging

from fastapi import HTTPException, Request

from ..config import EngineConfig
from ..errors import (
    ConfigurationError,
    IntegrityCheckFailed,
    InsufficientData,
    MigrationError,
    NoBackupFound,
    ValidationFailed,
)
from ..orchestrator import MigrationOrchestrator

logger = logging.getLogger(__name__)


def get_orchestrator(request: Request) -> MigrationOrchestrator:
    """The engine shared by all requests, built from the environment on first use."""
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        try:
            orchestrator = MigrationOrchestrator(EngineConfig.from_env())
        except ConfigurationError as e:
            raise HTTPException(status_code=503, detail=e.to_dict())
        request.app.state.orchestrator = orchestrator
        logger.info("Migration engine initialized from environment")
    return orchestrator


def to_http_error(error: MigrationError) -> HTTPException:
    """Map an engine error to an HTTP error response."""
    if isinstance(error, NoBackupFound):
        status_code = 404
    elif isinstance(error, (IntegrityCheckFailed, InsufficientData)):
        status_code = 409
    elif isinstance(error, ValidationFailed):
        status_code = 422
    else:
        status_code = 400
    return HTTPException(status_code=status_code, detail=error.to_dict())
