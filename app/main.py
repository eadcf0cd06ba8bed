"""
FastAPI application setup with dependency injection.
"""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
import logging
import time
import uuid
from contextlib import asynccontextmanager

from app.config.settings import get_settings
from app.core.db import dispose_db, init_db
from app.core.error_handlers import setup_error_handlers
from app.core.logging import configure_logging

settings = get_settings()

configure_logging(settings.log_level.value, json_format=settings.log_json)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan: create tables and services on startup, stop every
    location tracker and close provider connections on shutdown.
    """
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")

    from app.core.dependencies import service_container
    await init_db()
    await service_container.initialize_services()
    app.state.service_container = service_container
    logger.info("Application startup complete")

    try:
        yield
    finally:
        logger.info("Shutting down application")
        try:
            await app.state.service_container.cleanup_services()
            await dispose_db()
            logger.info("Application shutdown complete")
        except Exception as e:
            logger.error(f"Application shutdown failed: {e}", exc_info=True)


def create_app() -> FastAPI:
    """
    Create and configure FastAPI application.

    Returns:
        FastAPI: Configured application instance
    """
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
    async def logging_middleware(request: Request, call_next):
        """Log requests and responses with timing information."""
        request_id = str(uuid.uuid4())
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

    from app.api import health_router, location_router, places_router
    app.include_router(health_router)
    app.include_router(location_router)
    app.include_router(places_router)

    return app


# Create application instance
app = create_app()


@app.get("/")
async def root():
    return {
        "message": settings.app_name,
        "version": settings.app_version,
        "status": "running",
    }
