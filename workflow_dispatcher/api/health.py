"""
Health check endpoints
"""
from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from workflow_dispatcher.api.deps import get_container
from workflow_dispatcher.services.container import ServiceContainer

router = APIRouter()


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get("/health")
async def health_check():
    """Simple liveness check."""
    return {"status": "ok", "timestamp": _timestamp()}


@router.get("/api/health/db")
async def database_health(container: ServiceContainer = Depends(get_container)):
    """Probe the database and refresh the availability flag."""
    if container.connection.engine is None:
        return {"status": "disabled", "database": "not_configured", "timestamp": _timestamp()}

    if await container.connection.check_and_set():
        return {"status": "healthy", "database": "connected", "timestamp": _timestamp()}
    return {"status": "unhealthy", "database": "disconnected", "timestamp": _timestamp()}
