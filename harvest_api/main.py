"""Tweet Harvest API - FastAPI application."""

import logging
from contextlib import asynccontextmanager
from typing import Callable, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from harvest_api.api.router import api_router, root_router
from harvest_api.config import Settings, settings as default_settings
from harvest_api.errors import HarvestError
from harvest_api.jobs.broadcaster import EventBroadcaster
from harvest_api.jobs.registry import JobRegistry
from harvest_api.jobs.runner import JobRunner
from harvest_api.logging_config import configure_logging
from harvest_api.scraper.tweet_harvest import TweetHarvestCommand
from harvest_api.storage.result_store import ResultStore

logger = logging.getLogger("harvest.api")


async def harvest_error_handler(request: Request, exc: HarvestError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    if errors:
        first = errors[0]
        where = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        message = f"{where}: {first.get('msg')}" if where else str(first.get("msg"))
    else:
        message = "Invalid request"
    return JSONResponse(status_code=400, content={"error": message})


def create_app(
    settings: Optional[Settings] = None,
    operation: Optional[Callable] = None,
) -> FastAPI:
    """Build the application with its own registry, broadcaster, runner and store.

    operation defaults to the tweet-harvest CLI; tests pass a stand-in.
    """
    settings = settings or default_settings

    registry = JobRegistry()
    broadcaster = EventBroadcaster()
    registry.add_listener(broadcaster.publish)

    if operation is None:
        operation = TweetHarvestCommand(
            command=settings.crawler_command,
            package=settings.crawler_package,
            progress_pattern=settings.crawler_progress_pattern,
        )
    runner = JobRunner(
        registry,
        operation,
        output_dir=settings.data_dir,
        default_target_count=settings.default_target_count,
        default_delay_each_tweet=settings.default_delay_each_tweet,
        default_delay_every_100=settings.default_delay_every_100,
    )
    result_store = ResultStore(settings.data_dir)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup and shutdown logic."""
        logger.info("Starting Tweet Harvest API on port %d", settings.port)
        logger.info("Data dir: %s", result_store.base_dir)
        yield
        logger.info("Shutting down Tweet Harvest API")
        await runner.shutdown()

    app = FastAPI(
        title="Tweet Harvest API",
        description="Runs tweet crawls in the background and serves their CSV / XLSX exports",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.registry = registry
    app.state.broadcaster = broadcaster
    app.state.runner = runner
    app.state.result_store = result_store

    app.add_exception_handler(HarvestError, harvest_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(root_router)
    app.include_router(api_router)
    return app


def run() -> None:
    """Console entry point: serve the API with uvicorn."""
    import uvicorn

    configure_logging(default_settings.log_level, default_settings.log_format)
    uvicorn.run(
        "harvest_api.main:create_app",
        factory=True,
        host=default_settings.host,
        port=default_settings.port,
        log_config=None,
    )
