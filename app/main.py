"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
import structlog

from app import __version__
from app.api.routes import router
from app.api.schemas import RootResponse
from app.bootstrap import build_poller, build_sync_service
from app.config import settings
from app.monitoring.metrics import registry


def configure_logging() -> None:
    """Configure structlog (console output in debug, JSON otherwise)."""
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    renderer = structlog.dev.ConsoleRenderer() if settings.debug else structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )


configure_logging()
logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    sync_service = build_sync_service(settings)
    app.state.sync_service = sync_service
    app.state.poller = build_poller(settings, sync_service=sync_service)

    logger.info(
        "service_started",
        app=settings.app_name,
        env=settings.app_env,
        version=__version__,
        locations=len(sync_service.normalizer.locations),
    )
    yield
    logger.info("service_stopped")


app = FastAPI(
    title="Chatmeter Zendesk Bridge",
    version=__version__,
    lifespan=lifespan,
)

app.include_router(router, prefix="/api/v1")


@app.get("/", response_model=RootResponse)
async def root():
    return RootResponse(service=settings.app_name, status="running", version=__version__)


@app.get("/metrics")
async def metrics():
    """Prometheus metrics endpoint."""
    if not settings.metrics_enabled:
        return Response(status_code=404)
    return Response(content=generate_latest(registry), media_type=CONTENT_TYPE_LATEST)
