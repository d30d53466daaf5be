"""FastAPI application factory."""

from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from vaultflow import __version__
from vaultflow.api.runtime import OperationRuntime
from vaultflow.config import get_settings


def create_app(runtime: Optional[OperationRuntime] = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Vaultflow API",
        description="Cross-chain vault deposit and withdrawal orchestration",
        version=__version__,
        debug=settings.debug,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.debug else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.runtime = runtime or OperationRuntime(settings)

    # Register routes
    from vaultflow.api.routes import health, operations

    app.include_router(health.router, tags=["Health"])
    app.include_router(operations.router, prefix="/api/v1", tags=["Operations"])

    return app
