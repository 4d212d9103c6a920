"""FastAPI application exposing the manual trigger surface."""

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import Optional

import uvicorn
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..config import ConfigLoader, get_settings
from ..config.settings import AppSettings, validate_settings
from ..scheduler.manager import SchedulerManager
from ..scheduler.orchestrator import cleanup_crawl_orchestrator, get_crawl_orchestrator
from ..scraper.browser import cleanup_browser_runtime
from ..storage import cleanup_database_manager, cleanup_storage_manager, get_storage_manager
from ..utils.logging import get_structured_logger, setup_logging
from .routers import changes_router, scraping_router, sites_router
from .types import APIError, HealthResponse

logger = get_structured_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Start storage, orchestrator and scheduler; tear them down on exit."""
    settings = app.state.settings
    logger.info("Starting locwatch API application")

    validate_settings(settings)
    storage = await get_storage_manager()
    orchestrator = await get_crawl_orchestrator()
    await orchestrator.register_configured_sites(
        ConfigLoader(Path(settings.sites_file)).get_sites_config()
    )

    scheduler = SchedulerManager(orchestrator, settings.scheduler)
    await scheduler.setup()

    app.state.storage = storage
    app.state.orchestrator = orchestrator
    app.state.scheduler = scheduler

    try:
        yield
    finally:
        logger.info("Shutting down locwatch API application")
        await scheduler.cleanup()
        await cleanup_crawl_orchestrator()
        await cleanup_browser_runtime()
        await cleanup_storage_manager()
        await cleanup_database_manager()
        logger.info("Shutdown complete")


def create_app(settings: Optional[AppSettings] = None) -> FastAPI:
    """Create and configure FastAPI application."""
    if settings is None:
        settings = get_settings()

    app = FastAPI(
        title="locwatch API",
        description="Manual triggers and status for location page monitoring",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings

    setup_middleware(app, settings)
    setup_exception_handlers(app)
    setup_routers(app)

    return app


def setup_middleware(app: FastAPI, settings: AppSettings) -> None:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.api.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        loop = asyncio.get_running_loop()
        start_time = loop.time()
        response = await call_next(request)
        logger.info(
            "HTTP request",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            process_time=loop.time() - start_time,
        )
        return response


def setup_exception_handlers(app: FastAPI) -> None:
    """Errors are returned as ``{"error": ...}`` payloads."""

    @app.exception_handler(HTTPException)
    async def http_exception_handler(
        request: Request, exc: HTTPException
    ) -> JSONResponse:
        logger.warning(
            "HTTP exception",
            status_code=exc.status_code,
            detail=exc.detail,
            path=request.url.path,
        )
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})

    @app.exception_handler(APIError)
    async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
        logger.warning("API error", error=str(exc), path=request.url.path)
        return JSONResponse(status_code=400, content={"error": str(exc)})


def setup_routers(app: FastAPI) -> None:
    @app.get("/health", response_model=HealthResponse)
    async def health_check(request: Request) -> HealthResponse:
        checks = {}
        storage = getattr(request.app.state, "storage", None)
        orchestrator = getattr(request.app.state, "orchestrator", None)

        checks["storage"] = bool(storage and await storage.health_check())
        if orchestrator is not None:
            checks["browser"] = orchestrator.browser_healthy
            checks["content_sweep_running"] = orchestrator.content_sweep_running

        return HealthResponse(
            status="healthy" if checks["storage"] else "unhealthy",
            timestamp=datetime.utcnow(),
            checks=checks,
        )

    api_prefix = "/api/v1"
    app.include_router(sites_router, prefix=f"{api_prefix}/sites", tags=["Sites"])
    app.include_router(
        scraping_router, prefix=f"{api_prefix}/scraping", tags=["Scraping"]
    )
    app.include_router(changes_router, prefix=f"{api_prefix}/changes", tags=["Changes"])


def main() -> None:
    """Run the FastAPI application."""
    settings = get_settings()
    setup_logging(settings.log_level, json_logs=settings.json_logs)

    logger.info(
        "Starting API server", host=settings.api.host, port=settings.api.port
    )
    uvicorn.run(
        "locwatch.api.app:create_app",
        factory=True,
        host=settings.api.host,
        port=settings.api.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
