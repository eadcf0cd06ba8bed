# API endpoints and routers

from .health_endpoints import router as health_router
from .location_endpoints import router as location_router
from .places_endpoints import router as places_router

__all__ = [
    "health_router",
    "location_router",
    "places_router",
]
