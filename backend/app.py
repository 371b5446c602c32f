"""FastAPI application entry point for the catalog API."""

import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from config import Settings, settings
from errors import register_error_handlers
from services.catalog import CatalogDB
from services.response_cache import ResponseCache

# Structured logging: JSON for production, human-readable for local
if settings.is_production:
    logging.basicConfig(
        level=logging.INFO,
        format='{"time":"%(asctime)s","level":"%(levelname)s","logger":"%(name)s","message":"%(message)s"}',
        stream=sys.stdout,
    )
else:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

logger = logging.getLogger(__name__)


def create_app(app_settings: Settings | None = None, response_cache: ResponseCache | None = None) -> FastAPI:
    app_settings = app_settings or settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        for problem in app_settings.validate():
            logger.warning("Config: %s", problem)
        app.state.catalog = await CatalogDB.open(app_settings.database_path)
        await app.state.response_cache.start()
        try:
            yield
        finally:
            await app.state.response_cache.stop()
            await app.state.catalog.close()
            app.state.catalog = None

    app = FastAPI(title="Catalog API", version="1.0.0", lifespan=lifespan)

    # One cache per process, owned by the app and started/stopped with it
    app.state.settings = app_settings
    app.state.response_cache = response_cache or ResponseCache(
        sweep_interval_seconds=app_settings.cache_sweep_interval_seconds,
        coalesce=app_settings.cache_coalesce,
        cache_error_responses=app_settings.cache_error_responses,
    )
    app.state.catalog = None

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Security headers
    @app.middleware("http")
    async def add_security_headers(request: Request, call_next):
        response: Response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        if app_settings.is_production:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response

    # Centralized error handlers
    register_error_handlers(app)

    from routes.health import router as health_router
    from routes.catalog import router as catalog_router

    app.include_router(health_router)
    app.include_router(catalog_router)

    return app


app = create_app()
