"""FastAPI application entry point."""

from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ..orchestrator import MigrationOrchestrator
from .routes import backups, integrity, migrations


def create_app(orchestrator: Optional[MigrationOrchestrator] = None) -> FastAPI:
    """
    Build the API application.

    Args:
        orchestrator: Engine to serve; when omitted one is built from
            SCHEMABRIDGE_* environment variables on the first request
    """
    app = FastAPI(
        title="schemabridge API",
        description="API for running and monitoring schema migrations",
        version="0.1.0",
    )
    app.state.orchestrator = orchestrator

    # CORS middleware for the admin frontend
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173", "http://127.0.0.1:5173", "http://localhost:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(migrations.router, prefix="/api/migrations", tags=["migrations"])
    app.include_router(backups.router, prefix="/api/backups", tags=["backups"])
    app.include_router(integrity.router, prefix="/api/integrity", tags=["integrity"])

    @app.get("/api/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy"}

    return app


app = create_app()
