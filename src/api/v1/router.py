from fastapi import APIRouter

from config import settings
from .harvest_router import router as harvest_router
from .health_router import router as health_router

router = APIRouter(prefix="/api/v1", tags=["v1"])
router.include_router(harvest_router)
router.include_router(health_router)


@router.get("/info")
async def info():
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "debug": settings.debug,
        "cors_origins": settings.cors_origins,
        "harvest_enabled": settings.harvest_enabled,
        "gfs_base_url": settings.gfs_base_url,
        "grid_interval_hours": settings.grid_interval_hours,
        "harvest_horizon_days": settings.harvest_horizon_days,
        "harvest_poll_minutes": settings.harvest_poll_minutes,
    }
