# /app/models/api.py

from pydantic import BaseModel, Field
from typing import List, Dict, Optional, Any, Literal
from datetime import datetime

from app.models.flow import ProcessStatus, utcnow
from app.models.process import QuickReply

# This file contains Pydantic models that define the structure of data for
# API requests and responses, ensuring type safety and validation.


class AwaitingInput(BaseModel):
    slot_name: str
    prompt: str


class AwaitingConfirmation(BaseModel):
    message: str
    data: Dict[str, Any] = Field(default_factory=dict)


class ProcessMetrics(BaseModel):
    tool_calls_count: int = 0
    duration_ms: int = 0


class ProcessResult(BaseModel):
    """Outcome of one user turn handled by a structured process."""
    success: bool = True
    process_id: str
    status: ProcessStatus
    response: str
    completed: bool = False
    data: Optional[Any] = None
    awaiting_input: Optional[AwaitingInput] = None
    awaiting_confirmation: Optional[AwaitingConfirmation] = None
    quick_replies: List[QuickReply] = Field(default_factory=list)
    error: Optional[str] = None
    metrics: Optional[ProcessMetrics] = None


class ChatMessage(BaseModel):
    role: Literal["user", "assistant", "system"]
    content: str


class ChatRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=4000)
    user_id: str = Field(..., min_length=1)
    session_id: Optional[str] = None
    is_admin: bool = False
    user_name: Optional[str] = None
    conversation_history: List[ChatMessage] = Field(default_factory=list)
    processes_only: bool = False
    skip_processes: bool = False


class ChatMetrics(BaseModel):
    tokens_used: int = 0
    estimated_tokens_saved: int = 0
    duration_ms: int = 0


class ChatResponse(BaseModel):
    content: str
    handled_by: Literal["process", "llm"]
    session_id: str
    process_id: Optional[str] = None
    status: Optional[ProcessStatus] = None
    completed: Optional[bool] = None
    quick_replies: List[QuickReply] = Field(default_factory=list)
    conversation_history: List[ChatMessage] = Field(default_factory=list)
    metrics: Optional[ChatMetrics] = None


class ActiveProcessState(BaseModel):
    process_id: str
    status: ProcessStatus
    current_step: str
    awaiting_input: bool
    awaiting_confirmation: bool
    slots: Dict[str, Any] = Field(default_factory=dict)


class ProcessSummary(BaseModel):
    id: str
    name: str
    description: str
    version: str
    requires_confirmation: bool


class APIResponse(BaseModel):
    success: bool
    message: str
    data: Optional[Dict] = None
    timestamp: datetime = Field(default_factory=utcnow)
    version: str
