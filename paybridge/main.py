"""
PayBridge - Splynx to UISP payment reconciliation bridge.
Main FastAPI application entry point.
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from paybridge.api.router import api_router
from paybridge.config import Settings, get_settings
from paybridge.database import (
    create_engine_from_settings,
    create_session_factory,
    dispose_engine,
    init_models,
)
from paybridge.services.container import build_services
from paybridge.utils.logging import bind_correlation_id, configure_structured_logging

logger = logging.getLogger("paybridge")


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Injects a correlation ID into every request context and response header."""

    async def dispatch(self, request: Request, call_next) -> Response:
        cid = bind_correlation_id(request.headers.get("X-Correlation-ID"))
        response = await call_next(request)
        response.headers["X-Correlation-ID"] = cid
        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown events."""
    settings: Settings = app.state.settings
    logger.info("PayBridge starting up (env=%s)", settings.app_env)

    # Security / configuration warnings
    if not settings.splynx_webhook_secret:
        logger.warning(
            "SPLYNX_WEBHOOK_SECRET not set - webhook signatures will not be validated."
        )
    elif not settings.require_valid_signature:
        logger.warning(
            "REQUIRE_VALID_SIGNATURE is off - unsigned webhooks are flagged but still processed."
        )
    if not settings.uisp_app_key:
        logger.warning("UISP_APP_KEY not set - payments cannot be forwarded to UISP.")
    if not settings.convex_url:
        logger.info("CONVEX_URL not set - mirror propagation disabled")

    # Initialize Sentry if configured
    if settings.sentry_dsn:
        try:
            import sentry_sdk
            sentry_sdk.init(
                dsn=settings.sentry_dsn,
                traces_sample_rate=0.1,
                environment=settings.app_env,
            )
            logger.info("Sentry initialized")
        except Exception as e:
            logger.warning("Sentry initialization failed: %s", str(e))

    engine = create_engine_from_settings(settings)
    if settings.database_url.startswith("sqlite"):
        # Postgres schemas come from Alembic
        await init_models(engine)

    services = build_services(settings, create_session_factory(engine))
    app.state.engine = engine
    app.state.services = services

    yield

    logger.info("PayBridge shutting down - %d background tasks in flight", services.runner.pending)
    await services.runner.shutdown(timeout=10.0)
    await dispose_engine(engine)
    logger.info("PayBridge shutdown complete")


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Application factory."""
    settings = settings or get_settings()

    # Configure structured JSON logging with correlation IDs
    configure_structured_logging(settings.log_level, settings.app_env)

    application = FastAPI(
        title="PayBridge",
        description="Splynx to UISP payment reconciliation bridge",
        version="1.0.0",
        lifespan=lifespan,
    )
    application.state.settings = settings

    application.add_middleware(CorrelationIdMiddleware)
    application.include_router(api_router)

    return application


app = create_app()
