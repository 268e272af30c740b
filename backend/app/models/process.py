# /app/models/process.py

import re
from typing import Optional, List, Dict, Any, Callable, Literal, Union, Annotated
from pydantic import BaseModel, Field, ConfigDict, field_validator

# This file defines the declarative structure of a conversational process:
# triggers that select it, slots it must fill and the step graph it walks.
# Definitions are immutable once built; embedded callables receive the
# live ProcessContext (or UserContext for trigger conditions).


class QuickReply(BaseModel):
    """A suggested reply the client can render as a button."""
    model_config = ConfigDict(frozen=True)

    label: str
    payload: str


class ProcessTrigger(BaseModel):
    """A rule deciding whether a process should handle an incoming message."""
    model_config = ConfigDict(frozen=True)

    type: Literal["pattern", "keyword", "intent", "command"]
    patterns: List[Any] = Field(default_factory=list, description="Regular expressions, matched case-insensitively")
    keywords: List[str] = Field(default_factory=list, description="Literal phrases, matched on normalised text")
    intents: List[str] = Field(default_factory=list, description="Intent tags from the intent classifier")
    commands: List[str] = Field(default_factory=list, description="Command prefixes such as /tareas")
    priority: int = Field(default=0, description="Higher wins")
    condition: Optional[Callable[..., bool]] = Field(default=None, description="Predicate over UserContext")

    @field_validator("patterns", mode="before")
    @classmethod
    def compile_patterns(cls, v):
        compiled = []
        for pattern in v or []:
            if isinstance(pattern, str):
                compiled.append(re.compile(pattern, re.IGNORECASE))
            elif pattern.flags & re.IGNORECASE:
                compiled.append(pattern)
            else:
                compiled.append(re.compile(pattern.pattern, pattern.flags | re.IGNORECASE))
        return compiled


class SlotValidation(BaseModel):
    model_config = ConfigDict(frozen=True)

    min_length: Optional[int] = None
    max_length: Optional[int] = None
    enum: Optional[List[str]] = None


class ProcessSlot(BaseModel):
    """A named, typed piece of information a process needs."""
    model_config = ConfigDict(frozen=True)

    name: str
    type: Literal["string", "number", "boolean", "array", "date", "reference"] = "string"
    required: bool = False
    description: str = ""
    extract_from: Literal["message", "tool", "context", "default"] = "message"
    default_value: Any = None
    validation: Optional[SlotValidation] = None
    prompt_if_missing: Optional[str] = None
    tool_to_call: Optional[str] = None
    tool_args: Dict[str, Any] = Field(default_factory=dict)
    context_key: Optional[str] = Field(default=None, description="UserContext attribute for extract_from='context'")


class StepBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str = ""
    next_step: Optional[str] = None
    # Slot extractor: (message, context) -> partial slots, merged before the step runs
    extractor: Optional[Callable[..., Dict[str, Any]]] = None
    on_enter: Optional[Callable[..., Any]] = None
    on_exit: Optional[Callable[..., Any]] = None


class CollectStep(StepBase):
    type: Literal["collect"] = "collect"
    slots: List[str]


class ExecuteStep(StepBase):
    type: Literal["execute"] = "execute"
    tool: str
    tool_args: Union[Dict[str, Any], Callable[..., Dict[str, Any]]] = Field(default_factory=dict)
    mutates: bool = Field(default=False, description="True when the tool changes external state")


class Branch(BaseModel):
    model_config = ConfigDict(frozen=True)

    condition: Callable[..., bool]
    next_step: str


class BranchStep(StepBase):
    type: Literal["branch"] = "branch"
    branches: List[Branch]


class ConfirmStep(StepBase):
    type: Literal["confirm"] = "confirm"
    confirm_message: Union[str, Callable[..., str], None] = None


class RespondStep(StepBase):
    type: Literal["respond"] = "respond"
    response: Union[str, Callable[..., str]]
    quick_replies: List[QuickReply] = Field(default_factory=list)


ProcessStep = Annotated[
    Union[CollectStep, ExecuteStep, BranchStep, ConfirmStep, RespondStep],
    Field(discriminator="type"),
]

BLOCKING_STEP_TYPES = ("collect", "confirm")


class ProcessConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    requires_confirmation: bool = False
    max_retries: int = 3
    timeout: Optional[int] = Field(default=None, description="Milliseconds of inactivity before the session is abandoned")
    allow_cancel: bool = True
    track_in_history: bool = True


class ProcessDefinition(BaseModel):
    """Complete, statically registered definition of a conversational flow."""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str = ""
    version: str = "1.0.0"
    triggers: List[ProcessTrigger] = Field(default_factory=list)
    slots: List[ProcessSlot] = Field(default_factory=list)
    steps: List[ProcessStep]
    initial_step: str
    config: ProcessConfig = Field(default_factory=ProcessConfig)
    quick_replies: List[QuickReply] = Field(default_factory=list, description="Suggestions shown on completion")
    metadata: Dict[str, Any] = Field(default_factory=dict)

    def get_step(self, step_id: Optional[str]):
        for step in self.steps:
            if step.id == step_id:
                return step
        return None

    def get_slot(self, name: str) -> Optional[ProcessSlot]:
        for slot in self.slots:
            if slot.name == name:
                return slot
        return None

    @property
    def slot_names(self) -> List[str]:
        return [slot.name for slot in self.slots]
