"""
FastAPI application setup with dependency injection.
"""

import logging
import time
import uuid
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from wanderlens.config.settings import get_settings
from wanderlens.core.dependencies import ServiceContainer
from wanderlens.core.error_handlers import setup_error_handlers
from wanderlens.core.logging import configure_logging

settings = get_settings()

configure_logging(settings.log_level.value, settings.log_format)

logger = logging.getLogger(__name__)


def create_app(container: Optional[ServiceContainer] = None) -> FastAPI:
    """
    Create and configure FastAPI application.

    Args:
        container: Service container to use; a default one is built otherwise

    Returns:
        FastAPI: Configured application instance
    """
    service_container = container or ServiceContainer()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Starting {settings.app_name} v{settings.app_version}")

        try:
            await service_container.initialize_services()
            app.state.service_container = service_container

            logger.info("Application startup complete")

            yield

        except Exception as e:
            logger.error(f"Application startup failed: {e}", exc_info=True)
            raise

        finally:
            logger.info("Shutting down application")
            await service_container.cleanup_services()
            logger.info("Application shutdown complete")

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        debug=settings.debug,
        lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        **settings.get_cors_config()
    )

    setup_error_handlers(app)

    @app.middleware("http")
    async def metrics_middleware(request: Request, call_next):
        """Collect per-endpoint request metrics."""
        from wanderlens.api.metrics_endpoints import metrics_collector

        if request.url.path == "/metrics":
            return await call_next(request)

        start_time = time.time()
        response = await call_next(request)
        latency = time.time() - start_time

        endpoint = f"{request.method} {request.url.path}"
        metrics_collector.record_request(endpoint, latency, response.status_code >= 400)

        return response

    # Registered last so it runs first and the request id is set for everything below
    @app.middleware("http")
    async def logging_middleware(request: Request, call_next):
        """Log requests and responses with timing information."""
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id

        start_time = time.time()

        logger.info(
            f"Request {request_id} started: {request.method} {request.url.path}",
            extra={
                'request_id': request_id,
                'method': request.method,
                'path': request.url.path,
                'client_ip': request.client.host if request.client else 'unknown'
            }
        )

        response = await call_next(request)

        processing_time = (time.time() - start_time) * 1000

        logger.info(
            f"Request {request_id} completed: {response.status_code} ({processing_time:.2f}ms)",
            extra={
                'request_id': request_id,
                'status_code': response.status_code,
                'processing_time_ms': processing_time
            }
        )

        response.headers["X-Request-ID"] = request_id
        return response

    from wanderlens.api.health_endpoints import router as health_router
    from wanderlens.api.location_endpoints import router as location_router
    from wanderlens.api.metrics_endpoints import router as metrics_router
    from wanderlens.api.places_endpoints import router as places_router
    app.include_router(health_router)
    app.include_router(location_router)
    app.include_router(places_router)
    app.include_router(metrics_router)

    @app.get("/")
    async def root():
        """Root endpoint for basic health check."""
        return {
            "message": f"Welcome to {settings.app_name}",
            "version": settings.app_version,
            "status": "running"
        }

    return app


# Create application instance
app = create_app()
