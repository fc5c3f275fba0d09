"""
LeadLedger - lead-import settlement service.
Main FastAPI application entry point.
"""
import asyncio
import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from leadledger.config import get_settings
from leadledger.api.router import api_router
from leadledger.database import dispose_engine
from leadledger.utils.logging import (
    configure_structured_logging,
    generate_correlation_id,
    set_correlation_id,
)

logger = logging.getLogger("leadledger")


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Injects a correlation ID into every request context and response header."""

    async def dispatch(self, request: Request, call_next) -> Response:
        cid = request.headers.get("X-Correlation-ID") or generate_correlation_id()
        set_correlation_id(cid)
        response = await call_next(request)
        response.headers["X-Correlation-ID"] = cid
        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown events."""
    settings = get_settings()
    logger.info("LeadLedger starting up (env=%s)", settings.app_env)

    if not settings.facebook_app_secret:
        logger.warning(
            "FACEBOOK_APP_SECRET not set - webhook signatures cannot be verified."
        )
    if not settings.stripe_secret_key:
        logger.warning("STRIPE_SECRET_KEY not set - auto-recharge is disabled.")
    if not settings.internal_api_key:
        logger.warning("INTERNAL_API_KEY not set - balance endpoints will reject all calls.")

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

    # Shared outbound client for platform lead fetches
    app.state.http_client = httpx.AsyncClient(
        timeout=settings.platform_fetch_timeout_seconds,
    )

    worker_tasks: list[asyncio.Task] = []

    from leadledger.workers.pending_lead_sweeper import run_pending_lead_sweeper
    worker_tasks.append(asyncio.create_task(run_pending_lead_sweeper()))
    logger.info("Pending lead sweeper started")

    yield

    logger.info("LeadLedger shutting down - stopping %d workers...", len(worker_tasks))
    for task in worker_tasks:
        task.cancel()
    if worker_tasks:
        await asyncio.gather(*worker_tasks, return_exceptions=True)

    await app.state.http_client.aclose()
    await dispose_engine()
    logger.info("LeadLedger shutdown complete")


def create_app() -> FastAPI:
    """Application factory."""
    settings = get_settings()

    # Configure structured JSON logging with correlation IDs
    configure_structured_logging(settings.log_level)

    application = FastAPI(
        title="LeadLedger",
        description="Lead-import settlement: webhooks, scoring and prepaid balance billing",
        version="1.0.0",
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=[
            "http://localhost:3000",
            settings.app_base_url,
        ],
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=[
            "Authorization", "Content-Type", "X-Correlation-ID",
            "X-Internal-Api-Key", "Accept", "Origin",
        ],
    )

    # Correlation ID middleware (must be added AFTER CORS so it runs on every request)
    application.add_middleware(CorrelationIdMiddleware)

    application.include_router(api_router)

    return application


app = create_app()
