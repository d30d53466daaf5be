"""Health check endpoints."""

from fastapi import APIRouter

from vaultflow import __version__
from vaultflow.chains import get_chain_name, get_supported_chains
from vaultflow.config import get_settings

router = APIRouter()


@router.get("/health")
async def health_check():
    """Basic health check endpoint."""
    return {"status": "healthy", "service": "vaultflow"}


@router.get("/health/detailed")
async def detailed_health():
    """Detailed health check with configuration info."""
    settings = get_settings()
    return {
        "status": "healthy",
        "service": "vaultflow",
        "version": __version__,
        "chains": {str(c): get_chain_name(c) for c in get_supported_chains()},
        "config": settings.get_safe_dict(),
    }
