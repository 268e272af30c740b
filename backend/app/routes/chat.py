# /app/routes/chat.py

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Request

from app.config.settings import settings
from app.models.api import ActiveProcessState, APIResponse, ChatRequest, ChatResponse, ProcessSummary
from app.services.chat_service import ChatOrchestrator
from app.utils.dependencies import get_orchestrator, verify_api_key
from app.utils.rate_limiter import limiter

logger = logging.getLogger(__name__)

router = APIRouter(
    tags=["Chat"],
    dependencies=[Depends(verify_api_key)]
)


@router.post("/chat", response_model=ChatResponse)
@limiter.limit(f"{settings.rate_limit_per_minute}/minute")
async def chat(request: Request, chat_request: ChatRequest, orchestrator: ChatOrchestrator = Depends(get_orchestrator)):
    """Handles one chat turn: structured process first, language model as fallback."""
    response = await orchestrator.chat(chat_request)
    logger.info(
        f"Chat turn for session {response.session_id} handled by {response.handled_by}"
        + (f" ({response.process_id}, {response.status.value})" if response.process_id else "")
    )
    return response


@router.get("/chat/sessions/{session_id}", response_model=ActiveProcessState)
async def get_session(session_id: str, orchestrator: ChatOrchestrator = Depends(get_orchestrator)):
    state = await orchestrator.get_active_process_state(session_id)
    if state is None:
        raise HTTPException(status_code=404, detail="No active process for this session")
    return state


@router.delete("/chat/sessions/{session_id}", response_model=APIResponse)
async def clear_session(session_id: str, orchestrator: ChatOrchestrator = Depends(get_orchestrator)):
    await orchestrator.clear_session(session_id)
    return APIResponse(success=True, message="Session cleared", data={"session_id": session_id},
                       version=settings.api_version)


@router.get("/processes", response_model=List[ProcessSummary])
async def list_processes(orchestrator: ChatOrchestrator = Depends(get_orchestrator)):
    """Registered processes, in registration order."""
    return [
        ProcessSummary(
            id=definition.id,
            name=definition.name,
            description=definition.description,
            version=definition.version,
            requires_confirmation=definition.config.requires_confirmation,
        )
        for definition in orchestrator.registry.all()
    ]
