# /app/utils/lifecycle.py

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.httpx import HttpxIntegration
from sentry_sdk.integrations.redis import RedisIntegration

from app.utils.logging import setup_logging
from app.services.ai_service import AIService
from app.services.chat_service import build_orchestrator
from app.services.session_store import build_session_store
from app.services.tool_service import build_tool_service
from app.config.settings import settings

# This file manages the application's lifespan: the process registry, session
# store and external clients are built at startup and closed at shutdown.

logger = logging.getLogger(__name__)


def setup_sentry() -> bool:
    """Error tracking is enabled only when a DSN is configured."""
    if not settings.sentry_dsn:
        return False
    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.sentry_environment,
        traces_sample_rate=0.1,
        integrations=[
            FastApiIntegration(),
            HttpxIntegration(),
            RedisIntegration(),
        ],
        before_send=lambda event, hint: event if event.get("level") != "info" else None,
        attach_stacktrace=True,
        send_default_pii=False,  # chat messages stay out of error reports
    )
    logger.info(f"Sentry initialised for environment '{settings.sentry_environment}'")
    return True


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown events."""
    setup_logging()
    setup_sentry()

    logger.info(f"Application starting up ({settings.environment})...")

    tool_service = build_tool_service()
    session_store = build_session_store()
    app.state.orchestrator = build_orchestrator(tool_service, session_store, AIService())

    logger.info(
        f"Application startup complete with {len(app.state.orchestrator.registry)} processes. "
        "Ready to accept requests."
    )

    yield  # Application is now running

    logger.info("Application shutting down...")

    await tool_service.aclose()
    await session_store.close()
