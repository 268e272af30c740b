# /app/models/flow.py

from enum import Enum
from typing import Optional, List, Dict, Any
from datetime import datetime, timezone
from pydantic import BaseModel, Field

# Sentinels stored in ProcessContext.current_step once a run is terminal
COMPLETED_STEP = "__completed__"
CANCELLED_STEP = "__cancelled__"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProcessStatus(str, Enum):
    COLLECTING = "collecting"
    CONFIRMING = "confirming"
    EXECUTING = "executing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (ProcessStatus.COMPLETED, ProcessStatus.CANCELLED)


class UserContext(BaseModel):
    """Authorization-relevant facts injected by the caller. Read-only to processes."""
    is_admin: bool = False
    user_name: Optional[str] = None


class ExecutionEvent(BaseModel):
    step: str
    action: str = Field(..., description="enter, tool or error")
    timestamp: datetime = Field(default_factory=utcnow)
    detail: Optional[str] = None


class ProcessContext(BaseModel):
    """
    Mutable state of one in-flight process for one session.

    current_step IS the state-machine state: it always names a step of the
    owning definition, or one of the terminal sentinels.
    """
    process_id: str
    session_id: str
    user_id: str
    status: ProcessStatus = ProcessStatus.COLLECTING
    current_step: str

    slots: Dict[str, Any] = Field(default_factory=dict)
    tool_results: Dict[str, Any] = Field(default_factory=dict)

    original_message: str = ""
    latest_message: str = ""
    pending_responses: List[str] = Field(default_factory=list)

    awaiting_input: bool = False
    awaiting_slot: Optional[str] = None
    awaiting_confirmation: bool = False
    awaiting_retry: bool = False
    retry_count: int = 0

    user_context: UserContext = Field(default_factory=UserContext)
    execution_history: List[ExecutionEvent] = Field(default_factory=list)

    timeout_ms: int = 300000
    started_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    version: int = 1

    def touch(self) -> None:
        self.updated_at = utcnow()
        self.version += 1

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """Inactivity is measured from the last user turn."""
        now = now or utcnow()
        elapsed_ms = (now - self.updated_at).total_seconds() * 1000
        return elapsed_ms > self.timeout_ms
