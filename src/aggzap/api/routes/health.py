"""Health check endpoints."""

from fastapi import APIRouter, Request

from aggzap import __version__
from aggzap.config import get_settings

router = APIRouter()


@router.get("/health")
async def health_check():
    """Basic health check endpoint."""
    return {"status": "healthy", "service": "aggzap"}


@router.get("/health/detailed")
async def detailed_health(request: Request):
    """Detailed health check with configuration and network info."""
    settings = get_settings()
    deployment = request.app.state.deployment

    networks = []
    if deployment is not None:
        for chain in (deployment.source, deployment.destination):
            networks.append({"network_id": chain.network_id, "name": chain.name})

    return {
        "status": "healthy" if deployment is not None else "starting",
        "service": "aggzap",
        "version": __version__,
        "networks": networks,
        "config": settings.get_safe_dict(),
    }
