"""
Sitemap Audit - Main Application Entry Point
FastAPI application with lifespan management.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from sitemap_audit.api.v1.routes import crawl, health
from sitemap_audit.core.config import get_settings
from sitemap_audit.core.http import build_http_client
from sitemap_audit.core.logging import configure_logging
from sitemap_audit.engines.base import InvalidSiteInputError, SitemapNotFoundError

logger = structlog.get_logger(__name__)
settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """Manage application lifecycle: startup and shutdown."""
    configure_logging(settings)
    logger.info("Starting Sitemap Audit", version=settings.APP_VERSION, env=settings.ENV)

    app.state.http_client = build_http_client(settings)
    logger.info("HTTP client ready", user_agent=settings.CRAWLER_USER_AGENT)

    yield

    # Graceful shutdown
    await app.state.http_client.aclose()
    logger.info("Application shutdown complete")


def create_application() -> FastAPI:
    app = FastAPI(
        title="Sitemap Audit API",
        description="Sitemap discovery, redirect-chain resolution and SEO scoring.",
        version=settings.APP_VERSION,
        debug=settings.DEBUG,
        docs_url="/docs" if settings.ENV != "production" else None,
        redoc_url="/redoc" if settings.ENV != "production" else None,
        lifespan=lifespan,
    )

    # Middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=1000)

    # Routers
    app.include_router(health.router, prefix="/health", tags=["Health"])
    app.include_router(crawl.router, prefix="/api/v1", tags=["Crawl"])

    @app.exception_handler(SitemapNotFoundError)
    async def sitemap_not_found_handler(request: Request, exc: SitemapNotFoundError) -> JSONResponse:
        return JSONResponse(
            status_code=404,
            content={
                "error": str(exc),
                "attempts": [{"url": url, "reason": reason} for url, reason in exc.attempts],
            },
        )

    @app.exception_handler(InvalidSiteInputError)
    async def invalid_input_handler(request: Request, exc: InvalidSiteInputError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"error": str(exc)})

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error("Unhandled exception", path=request.url.path, error=str(exc), exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error", "request_id": request.headers.get("x-request-id")},
        )

    return app


app = create_application()


def run() -> None:
    """Console entry point: serve the API with uvicorn."""
    uvicorn.run("sitemap_audit.main:app", host=settings.HOST, port=settings.PORT)
