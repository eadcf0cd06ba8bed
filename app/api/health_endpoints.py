"""
Health check endpoint.
"""

from fastapi import APIRouter
import time

from app.config.settings import settings
from app.core.error_handlers import error_handler

router = APIRouter(tags=["health"])

# Application start time for uptime calculation
_app_start_time = time.time()


@router.get("/health")
async def health_check():
    """Liveness probe with version, uptime and error counts since startup."""
    return {
        "status": "ok",
        "data": {
            "service": settings.app_name,
            "version": settings.app_version,
            "environment": settings.environment.value,
            "uptime_seconds": round(time.time() - _app_start_time, 1),
            "errors": error_handler.get_error_statistics(),
        },
        "error": None,
    }
