# API endpoints and routers

from .health_endpoints import router as health_router
from .location_endpoints import router as location_router
from .metrics_endpoints import router as metrics_router
from .places_endpoints import router as places_router

__all__ = [
    "health_router",
    "location_router",
    "metrics_router",
    "places_router",
]
