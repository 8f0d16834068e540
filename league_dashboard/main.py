"""
League dashboard REST API
"""

import time
from contextlib import asynccontextmanager
from typing import Callable, Optional

import prometheus_client
import structlog
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from .api_clients import SpotifyClient, create_spotify_client
from .config import Settings, get_settings
from .database import DocumentStore, MongoConnection
from .metrics import http_request_duration, http_requests_total
from .routers import admin, genres, leagues, songs, stats

logger = structlog.get_logger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[DocumentStore] = None,
    catalog_client_factory: Optional[Callable[[], SpotifyClient]] = None
) -> FastAPI:
    """
    Build the application.

    When ``store`` is given the lifespan does not open a database connection;
    tests pass an in-memory store this way.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        connection = None
        if app.state.store is None:
            connection = MongoConnection(settings)
            app.state.store = await connection.open()
        logger.info("Service started", service=settings.service_name, version=settings.service_version)
        yield
        if connection is not None:
            await connection.close()
            app.state.store = None

    app = FastAPI(
        title=settings.service_name,
        version=settings.service_version,
        description="Music league statistics and catalog enrichment",
        lifespan=lifespan
    )
    app.state.settings = settings
    app.state.store = store
    app.state.catalog_client_factory = catalog_client_factory or (lambda: create_spotify_client(settings))

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def metrics_middleware(request: Request, call_next):
        start_time = time.perf_counter()
        response = await call_next(request)

        route = request.scope.get("route")
        route_path = getattr(route, "path", "unmatched")
        http_request_duration.labels(route=route_path).observe(time.perf_counter() - start_time)
        http_requests_total.labels(
            method=request.method,
            route=route_path,
            status=response.status_code
        ).inc()
        return response

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=getattr(exc, "headers", None)
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={"error": "Invalid request", "details": jsonable_encoder(exc.errors())}
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.error("Unhandled exception", path=request.url.path, error=str(exc))
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error", "details": str(exc)}
        )

    @app.get("/health")
    async def health_check():
        checks = {}
        try:
            await app.state.store.ping()
            checks["database"] = "healthy"
        except Exception as e:
            checks["database"] = f"unhealthy: {str(e)}"

        healthy = all(status == "healthy" for status in checks.values())
        return JSONResponse(
            status_code=200 if healthy else 503,
            content={
                "status": "healthy" if healthy else "unhealthy",
                "service": settings.service_name,
                "version": settings.service_version,
                "checks": checks
            }
        )

    @app.get("/metrics")
    async def metrics():
        return Response(
            prometheus_client.generate_latest(prometheus_client.REGISTRY),
            media_type=prometheus_client.CONTENT_TYPE_LATEST
        )

    for module in (leagues, stats, songs, genres, admin):
        app.include_router(module.router)

    return app
