"""
Health check endpoint.

GET /api/v1/health reports the configured place backends, the storage
backend and, for Redis storage, whether Redis answers a ping.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends

from wanderlens.config.settings import get_settings
from wanderlens.core.dependencies import ServiceContainer, get_service_container
from wanderlens.services.location_store import RedisKeyValueStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["health"])

# Application start time for uptime calculation
_app_start_time = time.time()


@router.get("/health", summary="Basic health check")
async def health_check(
    container: ServiceContainer = Depends(get_service_container),
) -> Dict[str, Any]:
    settings = get_settings()
    details: Dict[str, Any] = {"storage": {"backend": settings.storage.backend.value}}
    healthy = container.is_initialized

    if healthy:
        place_search = container.get_place_search()
        details["place_backends"] = [b.provider_name for b in place_search.backends]
        details["needs_search"] = container.get_needs_search().tomtom.is_available()
        details["place_cache"] = place_search.cache.stats()

        backend = container.get_store(None).backend
        if isinstance(backend, RedisKeyValueStore):
            redis_ok = await backend.client.ping()
            details["storage"]["redis"] = "healthy" if redis_ok else "unreachable"
            if not redis_ok:
                logger.warning("Redis health check failed")
                healthy = False

    return {
        "status": "healthy" if healthy else "degraded",
        "version": settings.app_version,
        "environment": settings.environment.value,
        "uptime_seconds": int(time.time() - _app_start_time),
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "details": details,
    }
