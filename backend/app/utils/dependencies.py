# /app/utils/dependencies.py

import secrets
import structlog
from fastapi import Request, HTTPException

from app.config.settings import settings
from app.services.chat_service import ChatOrchestrator

log = structlog.get_logger(__name__)


async def verify_api_key(request: Request):
    """Checks X-API-KEY when an API key is configured; open otherwise."""
    if settings.api_key:
        provided_key = request.headers.get("X-API-KEY")
        if not (provided_key and secrets.compare_digest(provided_key, settings.api_key)):
            log.warning("Rejected request with invalid API key.", path=request.url.path)
            raise HTTPException(status_code=403, detail="Invalid or missing API key")


def get_orchestrator(request: Request) -> ChatOrchestrator:
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(status_code=503, detail="Chat service is not ready")
    return orchestrator
