"""
VeriClean Compliance Watchdog - Main Application
================================================

Service hosting the checkpoint SLA watchdog.

Startup wires the document store, the SLA policy file, the watchdog
pipeline and its 15-minute scheduler. The HTTP surface exposes health,
a manual run trigger, the open alert listing with its sanitized export
and the cleaning-log analytics mirror.
"""

import asyncio
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Tuple

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from vericlean.analytics import AnalyticsMirror, InMemoryAnalyticsSink, SQLAlchemyAnalyticsSink
from vericlean.analytics.controllers import analytics_router
from vericlean.config import settings
from vericlean.core import ApplicationException, WatchdogStageError

from vericlean.infrastructure.database import init_database, close_database, create_tables

from vericlean.compliance.application import ComplianceWatchdog, IDocumentStore
from vericlean.compliance.infrastructure import (
    InMemoryDocumentStore,
    SLAConfigManager,
    SQLAlchemyDocumentStore,
    WatchdogJob,
    WatchdogScheduler,
)
from vericlean.compliance.interfaces import compliance_router

from vericlean.shared.api.middleware import (
    CorrelationIDMiddleware,
    LoggingMiddleware,
    application_exception_handler,
    global_exception_handler,
)
from vericlean.shared.infrastructure.grafana import get_grafana_exporter
from vericlean.shared.infrastructure.logging import setup_logging, get_logger

logger = get_logger(__name__)


async def build_store() -> IDocumentStore:
    """Create the configured document store."""
    if settings.store_backend == "memory":
        logger.warning("Using in-memory document store - data is not persisted")
        return InMemoryDocumentStore(
            max_in_values=settings.membership_test_limit,
            max_batch_operations=settings.batch_write_limit,
        )

    init_database()
    # Development convenience - production schemas come from migrations
    if settings.environment == "development":
        try:
            await create_tables()
        except (SQLAlchemyError, OSError) as e:
            logger.warning(f"Database not available - running in degraded mode: {e}")

    return SQLAlchemyDocumentStore(
        max_in_values=settings.membership_test_limit,
        max_batch_operations=settings.batch_write_limit,
    )


def build_analytics_mirror() -> AnalyticsMirror:
    if settings.store_backend == "memory":
        return AnalyticsMirror(InMemoryAnalyticsSink(), enabled=settings.analytics_enabled)
    return AnalyticsMirror(SQLAlchemyAnalyticsSink(), enabled=settings.analytics_enabled)


def build_watchdog(store: IDocumentStore, config_manager: SLAConfigManager) -> WatchdogJob:
    """Assemble the watchdog pipeline and its scheduler job."""
    watchdog = ComplianceWatchdog(
        store,
        config_manager,
        page_size=settings.overdue_query_page_size,
        chunk_size=settings.membership_test_limit,
        dedup_concurrency=settings.dedup_max_concurrency,
        batch_limit=settings.batch_write_limit,
    )
    return WatchdogJob(watchdog, get_grafana_exporter())


async def startup() -> Tuple[IDocumentStore, SLAConfigManager, WatchdogJob]:
    store = await build_store()

    logger.info("Loading SLA configuration", extra={"path": str(settings.sla_config_path)})
    config_manager = SLAConfigManager()
    config_manager.load(settings.sla_config_path)

    return store, config_manager, build_watchdog(store, config_manager)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager.

    STARTUP:
    1. Setup structured logging
    2. Initialize the document store
    3. Load and watch the SLA policy file
    4. Start the watchdog scheduler
    5. Attach the analytics mirror

    SHUTDOWN:
    1. Stop the scheduler
    2. Stop the config watcher
    3. Close database connections
    """
    setup_logging(settings.log_level, settings.environment)
    logger.info("Starting Compliance Watchdog service", extra={
        "version": settings.app_version,
        "environment": settings.environment,
        "store_backend": settings.store_backend,
    })

    store, config_manager, watchdog_job = await startup()
    config_manager.start_watching()

    scheduler = None
    if settings.watchdog_enabled:
        scheduler = WatchdogScheduler(interval_minutes=settings.watchdog_interval_minutes)
        await scheduler.start(watchdog_job)
    else:
        logger.info("Scheduled watchdog disabled - manual runs only")

    app.state.settings = settings
    app.state.store = store
    app.state.watchdog_job = watchdog_job
    app.state.analytics_mirror = build_analytics_mirror()
    app.state.scheduler = scheduler

    logger.info("Compliance Watchdog service started")

    yield

    logger.info("Shutting down Compliance Watchdog service")

    if scheduler:
        await scheduler.stop()
    config_manager.stop_watching()
    await close_database()

    logger.info("Compliance Watchdog service shutdown complete")


app = FastAPI(
    title="VeriClean Compliance Watchdog",
    description="Detects checkpoints that missed their cleaning SLA and raises one open alert per breach.",
    version=settings.app_version,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(CorrelationIDMiddleware)
app.add_middleware(LoggingMiddleware)
app.add_exception_handler(ApplicationException, application_exception_handler)
app.add_exception_handler(Exception, global_exception_handler)

app.include_router(compliance_router)
app.include_router(analytics_router)


@app.get("/health", tags=["Health"])
async def health_check(request: Request):
    """Health check endpoint for load balancers and orchestrators."""
    scheduler = getattr(request.app.state, "scheduler", None)
    job = getattr(request.app.state, "watchdog_job", None)
    last = job.last_summary if job else None

    return {
        "status": "healthy",
        "version": settings.app_version,
        "environment": settings.environment,
        "checks": {
            "store": settings.store_backend,
            "scheduler": "running" if scheduler and scheduler.is_running else "stopped",
            "last_run_outcome": last.outcome if last else None,
            "last_run_at": last.started_at.isoformat() if last else None,
        }
    }


async def _run_once() -> int:
    _, _, watchdog_job = await startup()
    try:
        await watchdog_job()
        return 0
    except WatchdogStageError:
        return 1
    finally:
        await close_database()


def run_once() -> None:
    """
    Run a single watchdog invocation and exit.

    For external schedulers (cron, Cloud Scheduler): exit status 0 on
    success, 1 on a failed run.
    """
    setup_logging(settings.log_level, settings.environment)
    sys.exit(asyncio.run(_run_once()))


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "vericlean.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.environment == "development",
        log_level="info"
    )
