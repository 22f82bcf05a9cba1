"""
Customer Lifecycle Engine

FastAPI application entry point.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from backend.app.core.config import get_settings
from backend.app.core.database import async_session_maker
from backend.app.core.logging import setup_logging, get_logger
from backend.app.core.observability import setup_tracing
from backend.app.api import health, customer_status, payments
from backend.app.middleware.trace import TracingMiddleware
from backend.app.services.notification_dispatcher import build_notification_dispatcher
from backend.app.services.status_coordinator import StatusUpdateCoordinator
from backend.app.services.status_sweep import StatusSweepService
from backend.app.services.threshold_calculator import ThresholdCalculator
from backend.app.workers.scheduled import PeriodicScheduler

settings = get_settings()

# Initialize logging
setup_logging(level=settings.log_level)
logger = get_logger(__name__)

STATUS_SWEEP_JOB = "customer-status-sweep"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logger.info(f"🚀 Starting {settings.app_name} v{settings.app_version}")

    scheduler = PeriodicScheduler()
    app.state.scheduler = scheduler

    if settings.status_sweep_enabled:
        coordinator = StatusUpdateCoordinator(
            async_session_maker,
            build_notification_dispatcher(settings),
            threshold_calculator=ThresholdCalculator(settings.at_risk_default_days, settings.lost_default_days),
        )
        sweep = StatusSweepService(async_session_maker, coordinator)

        async def _sweep_all_businesses():
            await sweep.run()

        scheduler.schedule(
            settings.status_sweep_interval_seconds,
            _sweep_all_businesses,
            name=STATUS_SWEEP_JOB,
        )
        logger.info(
            f"Customer status sweep scheduled "
            f"(interval={settings.status_sweep_interval_seconds}s, "
            f"thresholds={settings.at_risk_default_days}/{settings.lost_default_days} days)"
        )

    yield
    logger.info(f"👋 Shutting down {settings.app_name}")
    await scheduler.stop_all()


app = FastAPI(
    title=settings.app_name,
    description="Customer lifecycle status tracking for appointment-based businesses",
    version=settings.app_version,
    lifespan=lifespan,
)

setup_tracing(app)

app.add_middleware(TracingMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Correlation-ID"],
)

app.include_router(health.router, tags=["Health"])
app.include_router(
    customer_status.router,
    prefix=f"{settings.api_prefix}/customer-status",
    tags=["Customer Status"],
)
app.include_router(
    payments.router,
    prefix=f"{settings.api_prefix}/payments",
    tags=["Payments"],
)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "docs": "/docs",
    }
