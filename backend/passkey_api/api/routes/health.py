from fastapi import APIRouter, Depends
from datetime import datetime, timezone

from ...core.config import Settings
from ...db.database import Database
from ...models.auth_models import HealthResponse
from ..dependencies import get_coordinator, get_database, get_settings
from ...services.ceremony_coordinator import CeremonyCoordinator

router = APIRouter(prefix="/health", tags=["health"])


@router.get("/", response_model=HealthResponse)
async def health_check(
    database: Database = Depends(get_database),
    settings: Settings = Depends(get_settings)
):
    """Health check endpoint"""
    database_status = "connected" if await database.ping() else "disconnected"

    return HealthResponse(
        status="healthy" if database_status == "connected" else "unhealthy",
        service="passkey-api",
        version=settings.VERSION,
        timestamp=datetime.now(timezone.utc).isoformat(),
        database=database_status
    )


@router.get("/sessions", response_model=dict)
async def session_health(coordinator: CeremonyCoordinator = Depends(get_coordinator)):
    """Count of live authenticated sessions"""
    active = await coordinator.session_manager.get_active_sessions_count()
    return {"status": "connected", "active_sessions": active}


@router.get("/version", response_model=dict)
async def get_version(settings: Settings = Depends(get_settings)):
    """Get API version information"""
    return {
        "service": "passkey-api",
        "version": settings.VERSION,
        "app_name": settings.APP_NAME,
        "debug": settings.DEBUG
    }
