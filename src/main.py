"""MGNREGA district dashboard FastAPI application entry point.

Creates the FastAPI app, configures middleware, includes routers, and
manages the lifecycle of the district store, the data.gov.in client,
the sync pipeline, and its scheduler.
"""

from __future__ import annotations

import time
from contextlib import asynccontextmanager
from typing import AsyncIterator

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from prometheus_fastapi_instrumentator import Instrumentator

from config.settings import settings
from src.api.router import api_router

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Structured logging configuration
# ---------------------------------------------------------------------------


def _configure_logging() -> None:
    """Set up structlog with JSON or console rendering based on settings."""
    processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if settings.log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            structlog.get_level_from_name(settings.log_level),
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


# ---------------------------------------------------------------------------
# Application lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage startup and shutdown of the sync services.

    On startup:
      1. Initialise the district store (Redis; in-memory only without a URL)
      2. Initialise the data.gov.in client and record collector
      3. Initialise the sync pipeline
      4. Start the scheduler (initial sync if empty, then periodic)

    On shutdown:
      - Stop the scheduler.
      - Wait for (or cancel) an in-flight sync.
      - Close the HTTP client and the store.
    """
    _configure_logging()
    logger.info("app.startup", env=settings.env, target_state=settings.target_state)

    app.state.start_time = time.time()

    # -- 1. District store --------------------------------------------------
    from src.services.district_store import DistrictStore

    store = DistrictStore(
        redis_url=settings.redis_url if settings.redis_url else None,
        namespace=settings.store_namespace,
    )
    app.state.store = store
    logger.info("app.store_initialised")

    # -- 2. Collector -------------------------------------------------------
    from src.services.ingestion import (
        CollectionLimits,
        DataGovClient,
        DistrictSyncPipeline,
        RecordCollector,
        SyncScheduler,
    )

    datagov_client = DataGovClient(
        resource_id=settings.data_gov_resource_id,
        api_key=settings.data_gov_api_key,
        timeout=settings.request_timeout_seconds,
    )
    collector = RecordCollector(datagov_client, CollectionLimits.from_settings(settings))
    app.state.datagov_client = datagov_client

    # -- 3. Sync pipeline ---------------------------------------------------
    pipeline = DistrictSyncPipeline(collector=collector, store=store)
    app.state.sync_pipeline = pipeline
    logger.info("app.sync_pipeline_initialised")

    # -- 4. Scheduler -------------------------------------------------------
    scheduler: SyncScheduler | None = None
    if settings.enable_auto_sync:
        scheduler = SyncScheduler(
            pipeline=pipeline,
            store=store,
            interval_hours=settings.sync_interval_hours,
        )
        scheduler.start()
        logger.info("app.sync_scheduler_started", interval_hours=settings.sync_interval_hours)
    app.state.scheduler = scheduler

    logger.info("app.startup_complete")

    yield

    # -- Shutdown -----------------------------------------------------------
    logger.info("app.shutdown_start")

    if scheduler is not None:
        await scheduler.stop()

    # The run outlives the scheduler task (it is shielded); drain it first.
    await pipeline.shutdown()

    await datagov_client.close()
    await store.close()

    logger.info("app.shutdown_complete")


# ---------------------------------------------------------------------------
# FastAPI application
# ---------------------------------------------------------------------------

app = FastAPI(
    title="MGNREGA District Dashboard API",
    description=(
        "District-wise MGNREGA employment statistics synced from data.gov.in, "
        "with monthly history, comparison, and location lookup."
    ),
    version="0.1.0",
    lifespan=lifespan,
    default_response_class=ORJSONResponse,
    docs_url="/docs" if not settings.is_production else None,
    redoc_url="/redoc" if not settings.is_production else None,
)

# -- CORS middleware --------------------------------------------------------
if settings.is_production:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=False,
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type", "X-Admin-API-Key"],
    )
else:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["GET", "POST", "OPTIONS", "HEAD"],
        allow_headers=["Content-Type", "Accept", "X-Admin-API-Key"],
    )

# -- Prometheus metrics -----------------------------------------------------
Instrumentator(
    should_group_status_codes=True,
    should_ignore_untemplated=True,
    excluded_handlers=["/metrics", "/api/v1/health"],
).instrument(app).expose(
    app,
    endpoint="/metrics",
    include_in_schema=not settings.is_production,
)

# -- Include routers -------------------------------------------------------
app.include_router(api_router)


@app.get("/api", response_class=ORJSONResponse)
async def api_info() -> dict:
    """API information endpoint."""
    return {
        "name": "MGNREGA District Dashboard API",
        "version": app.version,
        "docs": "/docs",
        "target_state": settings.target_state,
        "endpoints": {
            "districts": "/api/v1/districts",
            "district": "/api/v1/districts/{slug}",
            "compare": "/api/v1/districts/compare?slugs=a,b",
            "lookup": "/api/v1/lookup?lat=..&lon=..",
            "sync": "/api/v1/admin/sync",
            "health": "/api/v1/health",
        },
    }


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    import uvicorn

    uvicorn.run(
        "src.main:app",
        host=settings.api_host,
        port=settings.api_port,
    )
