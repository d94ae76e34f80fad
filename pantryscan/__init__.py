"""Application factory for the pantry scan ingestion service.

Wires configuration, the database engine, the catalog client and the scan
pipeline together. Long-lived resources are created in the lifespan handler so
that every event loop (uvicorn worker, test client) gets its own.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .core.config import AppSettings, get_settings
from .core.errors import ScanError, scan_error_handler, unhandled_exception_handler
from .db.session import build_engine, build_session_factory, create_all
from .middlewares import RequestIdMiddleware
from .services.catalog import CatalogClient
from .services.ingestion import ScanPipeline

logger = logging.getLogger(__name__)

CORS_HEADERS = ["authorization", "x-client-info", "apikey", "content-type"]


def create_app(
    settings: AppSettings | None = None,
    *,
    catalog_transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    """Build the FastAPI application.

    ``catalog_transport`` lets callers swap the HTTP transport used for catalog
    lookups, e.g. ``httpx.MockTransport`` in tests.
    """

    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        engine = build_engine(settings.database_url, echo=settings.DB_ECHO)
        await create_all(engine)
        catalog = CatalogClient(
            settings.CATALOG_BASE_URL,
            timeout=settings.CATALOG_TIMEOUT_SECONDS,
            user_agent=settings.CATALOG_USER_AGENT,
            transport=catalog_transport,
        )
        session_factory = build_session_factory(engine)
        app.state.engine = engine
        app.state.session_factory = session_factory
        app.state.pipeline = ScanPipeline(session_factory, catalog, settings)
        logger.info("startup.complete", extra={"extra_data": {"app": settings.APP_NAME}})
        try:
            yield
        finally:
            await app.state.pipeline.drain()
            await catalog.aclose()
            await engine.dispose()

    app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)
    app.state.settings = settings

    # CORS wraps RequestIdMiddleware, which renders unexpected errors.
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=CORS_HEADERS,
    )

    app.add_exception_handler(ScanError, scan_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    from .routers import api_scanner as api_scanner_router

    app.include_router(api_scanner_router.router)

    @app.get("/health")
    async def health() -> dict[str, bool]:
        return {"ok": True}

    return app


__all__ = ["create_app"]
