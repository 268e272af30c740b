# /app/workflows/engine.py

"""
Process executor: walks a definition's step graph for one ProcessContext.

A turn runs non-blocking steps (execute, branch, respond) back to back and
stops at the first blocking step (collect with a missing slot, confirm) or
when the process terminates. The executor mutates the context it is given;
persisting it is the caller's job.
"""

import inspect
import re
import time
from typing import Any, Dict, List, Optional

import structlog

from app.config import strings
from app.config.settings import settings
from app.models.api import AwaitingConfirmation, AwaitingInput, ProcessMetrics, ProcessResult
from app.models.flow import (
    CANCELLED_STEP,
    COMPLETED_STEP,
    ExecutionEvent,
    ProcessContext,
    ProcessStatus,
    UserContext,
)
from app.models.process import ProcessDefinition, ProcessSlot, QuickReply
from app.services.tool_service import ToolService, normalize_tool_result, raise_for_tool_failure, records
from app.utils.metrics import process_runs_counter, process_steps_counter, tool_calls_counter
from app.workflows.extractors import extract_entities, parse_slot_value
from app.workflows.intent_detector import ReplyClassification
from app.workflows.validator import is_slot_filled, validate_slot_value

log = structlog.get_logger(__name__)

_PLACEHOLDER_RE = re.compile(r"\{(\w+)\}")

CONFIRM_QUICK_REPLIES = [
    QuickReply(label=strings.QUICK_REPLY_CONFIRM, payload="sí"),
    QuickReply(label=strings.QUICK_REPLY_CANCEL, payload="cancelar"),
]


class StepNotFoundError(RuntimeError):
    pass


def interpolate(template: str, slots: Dict[str, Any]) -> str:
    """Replaces {slot} placeholders; unknown or empty slots render as-is."""
    def replace(match):
        value = slots.get(match.group(1))
        return str(value) if value is not None else match.group(0)
    return _PLACEHOLDER_RE.sub(replace, template)


class ProcessExecutor:
    def __init__(self, registry, tool_service: ToolService, max_iterations: Optional[int] = None):
        self.registry = registry
        self.tool_service = tool_service
        self.max_iterations = max_iterations or settings.max_step_iterations

    # ---------------- Context lifecycle ---------------- #

    def create_context(
        self,
        definition: ProcessDefinition,
        *,
        session_id: str,
        user_id: str,
        message: str,
        user_context: Optional[UserContext] = None,
        extracted_data: Optional[Dict[str, Any]] = None,
    ) -> ProcessContext:
        """
        A fresh context positioned at the initial step.

        Slots are seeded from trigger captures first, then from entities found
        in the message, then from defaults. Values that fail validation are
        dropped so the collect step asks for them again.
        """
        context = ProcessContext(
            process_id=definition.id,
            session_id=session_id,
            user_id=user_id,
            current_step=definition.initial_step,
            original_message=message,
            latest_message=message,
            user_context=user_context or UserContext(),
            timeout_ms=definition.config.timeout or settings.default_process_timeout_ms,
        )

        entities = extract_entities(message)
        extracted_data = extracted_data or {}
        for slot in definition.slots:
            for candidate in (extracted_data.get(slot.name), entities.get(slot.name)):
                if candidate is None:
                    continue
                check = validate_slot_value(slot, candidate)
                if check["is_valid"]:
                    context.slots[slot.name] = check["value"]
                    break
            if slot.name not in context.slots and slot.default_value is not None:
                context.slots[slot.name] = slot.default_value

        return context

    async def start(self, context: ProcessContext) -> ProcessResult:
        return await self.run(context)

    async def run(self, context: ProcessContext) -> ProcessResult:
        """Advances the context until it blocks or terminates."""
        definition = self.registry.get(context.process_id)
        if definition is None:
            log.error("process_not_registered", process_id=context.process_id)
            return self._finish(None, context, ProcessStatus.CANCELLED, strings.GENERIC_ERROR,
                                success=False, error="PROCESS_NOT_FOUND")
        try:
            return await self._advance(definition, context)
        except Exception as e:
            return self._fail(definition, context, e)

    async def resume(self, context: ProcessContext, message: str, reply: ReplyClassification) -> ProcessResult:
        """Feeds a user reply into a context that is waiting for one."""
        definition = self.registry.get(context.process_id)
        if definition is None:
            log.error("process_not_registered", process_id=context.process_id)
            return self._finish(None, context, ProcessStatus.CANCELLED, strings.GENERIC_ERROR,
                                success=False, error="PROCESS_NOT_FOUND")

        context.latest_message = message
        context.touch()
        try:
            return await self._resume(definition, context, message, reply)
        except Exception as e:
            return self._fail(definition, context, e)

    # ---------------- Turn handling ---------------- #

    async def _resume(
        self, definition: ProcessDefinition, context: ProcessContext, message: str, reply: ReplyClassification
    ) -> ProcessResult:
        if reply.action == "cancel":
            if definition.config.allow_cancel or context.awaiting_retry:
                log.info("process_cancelled_by_user", process_id=definition.id, step=context.current_step)
                return self._finish(definition, context, ProcessStatus.CANCELLED, strings.OPERATION_CANCELLED)
            return self._block_again(definition, context, strings.CANCEL_NOT_ALLOWED)

        if context.awaiting_retry:
            if reply.action == "confirm":
                context.awaiting_retry = False
                return await self._advance(definition, context)
            return self._retry_prompt(definition, context)

        if context.awaiting_confirmation:
            step = definition.get_step(context.current_step)
            if reply.action == "confirm":
                context.awaiting_confirmation = False
                await self._run_hook(definition, step.on_exit, context)
                if step.next_step is None:
                    return self._finish(definition, context, ProcessStatus.COMPLETED, strings.OPERATION_COMPLETED)
                context.current_step = step.next_step
                return await self._advance(definition, context)
            if reply.action == "modify":
                self._merge_slots(definition, context, reply.modifications)
                text = self._render(step.confirm_message or strings.DEFAULT_CONFIRM, context)
                return self._confirm_result(definition, context, strings.CONFIRMATION_UPDATED.format(message=text))
            text = self._render(step.confirm_message or strings.DEFAULT_CONFIRM, context)
            return self._confirm_result(definition, context, strings.CONFIRMATION_REPEAT.format(message=text))

        if context.awaiting_input and context.awaiting_slot:
            slot = definition.get_slot(context.awaiting_slot)
            check = validate_slot_value(slot, parse_slot_value(slot, message))
            if not check["is_valid"]:
                prompt = self._slot_prompt(slot, context)
                return self._input_result(definition, context, slot, f"{check['message']}\n\n{prompt}")
            context.slots[slot.name] = check["value"]
            context.awaiting_input = False
            context.awaiting_slot = None

        return await self._advance(definition, context)

    async def _advance(self, definition: ProcessDefinition, context: ProcessContext) -> ProcessResult:
        quick_replies: List[QuickReply] = []

        for _ in range(self.max_iterations):
            step = definition.get_step(context.current_step)
            if step is None:
                raise StepNotFoundError(f"Step '{context.current_step}' not found in '{definition.id}'")

            self._record(definition, context, step.id, "enter")
            process_steps_counter.labels(process_id=definition.id, step_type=step.type).inc()
            await self._run_hook(definition, step.on_enter, context)
            if step.extractor is not None:
                self._merge_slots(definition, context, step.extractor(context.latest_message, context))

            if step.type == "collect":
                blocked = await self._collect(definition, step, context)
                if blocked is not None:
                    return blocked
                next_step = step.next_step

            elif step.type == "confirm":
                context.status = ProcessStatus.CONFIRMING
                context.awaiting_confirmation = True
                text = self._render(step.confirm_message or strings.DEFAULT_CONFIRM, context)
                return self._confirm_result(definition, context, text)

            elif step.type == "execute":
                context.status = ProcessStatus.EXECUTING
                args = step.tool_args(context) if callable(step.tool_args) else self._resolve_args(step.tool_args, context)
                error = await self._call_tool(definition, context, step.id, step.tool, args)
                if error is not None:
                    return self._tool_failed(definition, context, error)
                next_step = step.next_step

            elif step.type == "branch":
                next_step = None
                for branch in step.branches:
                    if branch.condition(context):
                        next_step = branch.next_step
                        break
                if next_step is None:
                    raise StepNotFoundError(f"No branch of '{step.id}' matched in '{definition.id}'")

            else:
                context.pending_responses.append(self._render(step.response, context))
                quick_replies = list(step.quick_replies)
                next_step = step.next_step

            await self._run_hook(definition, step.on_exit, context)

            if next_step is None:
                text = "\n\n".join(context.pending_responses) or strings.OPERATION_COMPLETED
                return self._finish(definition, context, ProcessStatus.COMPLETED, text,
                                    quick_replies=quick_replies or list(definition.quick_replies))
            context.current_step = next_step

        log.error("process_iteration_limit", process_id=definition.id, step=context.current_step,
                  limit=self.max_iterations)
        return self._finish(definition, context, ProcessStatus.CANCELLED, strings.GENERIC_ERROR,
                            success=False, error="MAX_ITERATIONS_EXCEEDED")

    async def _collect(self, definition: ProcessDefinition, step, context: ProcessContext) -> Optional[ProcessResult]:
        context.status = ProcessStatus.COLLECTING
        for name in step.slots:
            if is_slot_filled(context.slots.get(name)):
                continue
            slot = definition.get_slot(name)
            if slot.extract_from == "tool":
                args = self._resolve_args(slot.tool_args, context)
                error = await self._call_tool(definition, context, step.id, slot.tool_to_call, args)
                if error is not None:
                    return self._tool_failed(definition, context, error)
            value = self._extract_slot(slot, context)
            if value is not None:
                context.slots[name] = value
                continue
            if slot.required:
                context.awaiting_input = True
                context.awaiting_slot = name
                return self._input_result(definition, context, slot, self._slot_prompt(slot, context))
        return None

    def _extract_slot(self, slot: ProcessSlot, context: ProcessContext) -> Any:
        candidate = None
        if slot.extract_from == "message":
            candidate = extract_entities(context.latest_message).get(slot.name)
        elif slot.extract_from == "tool":
            # reference slots take the id of the first record found
            result = context.tool_results.get(slot.tool_to_call)
            found = records(result)
            if slot.type == "reference":
                candidate = found[0].get("id") if found else None
            else:
                candidate = result if is_slot_filled(result) else None
        elif slot.extract_from == "context":
            candidate = getattr(context.user_context, slot.context_key or slot.name, None)
        else:
            candidate = slot.default_value

        if candidate is None:
            return None
        check = validate_slot_value(slot, candidate)
        return check["value"] if check["is_valid"] else None

    async def _call_tool(
        self, definition: ProcessDefinition, context: ProcessContext, step_id: str, tool: str, args: Dict[str, Any]
    ) -> Optional[Exception]:
        """Calls a tool and stores its normalised result; returns the error instead of raising."""
        self._record(definition, context, step_id, "tool", tool)
        try:
            raw = await self.tool_service.call(
                tool, args, user_id=context.user_id, is_admin=context.user_context.is_admin
            )
            context.tool_results[tool] = normalize_tool_result(raise_for_tool_failure(tool, raw))
        except Exception as e:
            tool_calls_counter.labels(tool=tool, status="error").inc()
            self._record(definition, context, step_id, "error", str(e))
            log.warning("tool_call_failed", process_id=definition.id, step=step_id, tool=tool, error=str(e))
            return e
        tool_calls_counter.labels(tool=tool, status="success").inc()
        return None

    def _tool_failed(self, definition: ProcessDefinition, context: ProcessContext, error: Exception) -> ProcessResult:
        context.retry_count += 1
        context.pending_responses = []
        if context.retry_count < definition.config.max_retries:
            return self._retry_prompt(definition, context)
        log.error("process_retries_exhausted", process_id=definition.id, step=context.current_step,
                  retries=context.retry_count, error=str(error))
        return self._finish(definition, context, ProcessStatus.CANCELLED, strings.GENERIC_ERROR,
                            success=False, error="TOOL_ERROR")

    def _fail(self, definition: ProcessDefinition, context: ProcessContext, error: Exception) -> ProcessResult:
        log.error("process_step_failed", process_id=definition.id, step=context.current_step,
                  error=str(error), exc_info=True)
        return self._finish(definition, context, ProcessStatus.CANCELLED, strings.GENERIC_ERROR,
                            success=False, error="EXECUTION_ERROR")

    # ---------------- Results ---------------- #

    def _input_result(
        self, definition: ProcessDefinition, context: ProcessContext, slot: ProcessSlot, prompt: str
    ) -> ProcessResult:
        response = self._flush(context, prompt)
        return self._result(definition, context, response,
                             awaiting_input=AwaitingInput(slot_name=slot.name, prompt=prompt))

    def _confirm_result(self, definition: ProcessDefinition, context: ProcessContext, text: str) -> ProcessResult:
        response = self._flush(context, text)
        return self._result(definition, context, response,
                            awaiting_confirmation=AwaitingConfirmation(message=text, data=dict(context.slots)),
                            quick_replies=list(CONFIRM_QUICK_REPLIES))

    def _retry_prompt(self, definition: ProcessDefinition, context: ProcessContext) -> ProcessResult:
        context.awaiting_retry = True
        context.status = ProcessStatus.CONFIRMING
        return self._result(definition, context, strings.TOOL_RETRY_PROMPT,
                            success=False, error="TOOL_ERROR", quick_replies=list(CONFIRM_QUICK_REPLIES))

    def _block_again(self, definition: ProcessDefinition, context: ProcessContext, template: str) -> ProcessResult:
        """Re-issues whatever the context is currently waiting on, prefixed by a notice."""
        if context.awaiting_confirmation:
            step = definition.get_step(context.current_step)
            text = self._render(step.confirm_message or strings.DEFAULT_CONFIRM, context)
            return self._confirm_result(definition, context, template.format(message=text))
        slot = definition.get_slot(context.awaiting_slot)
        return self._input_result(definition, context, slot,
                                  template.format(message=self._slot_prompt(slot, context)))

    def _result(self, definition: ProcessDefinition, context: ProcessContext, response: str, **fields) -> ProcessResult:
        process_runs_counter.labels(process_id=definition.id, status=context.status.value).inc()
        return ProcessResult(
            process_id=definition.id,
            status=context.status,
            response=response,
            completed=False,
            metrics=self._metrics(context),
            **fields,
        )

    def _finish(
        self,
        definition: Optional[ProcessDefinition],
        context: ProcessContext,
        status: ProcessStatus,
        response: str,
        success: bool = True,
        error: Optional[str] = None,
        quick_replies: Optional[List[QuickReply]] = None,
    ) -> ProcessResult:
        context.status = status
        context.current_step = COMPLETED_STEP if status == ProcessStatus.COMPLETED else CANCELLED_STEP
        context.awaiting_input = False
        context.awaiting_slot = None
        context.awaiting_confirmation = False
        context.awaiting_retry = False
        context.pending_responses = []

        process_runs_counter.labels(process_id=context.process_id, status=status.value).inc()
        log.info("process_finished", process_id=context.process_id, session_id=context.session_id,
                 status=status.value, error=error)
        return ProcessResult(
            success=success,
            process_id=context.process_id,
            status=status,
            response=response,
            completed=True,
            data=context.tool_results or None,
            quick_replies=quick_replies or [],
            error=error,
            metrics=self._metrics(context),
        )

    # ---------------- Helpers ---------------- #

    @staticmethod
    def _flush(context: ProcessContext, text: str) -> str:
        parts = context.pending_responses + [text]
        context.pending_responses = []
        return "\n\n".join(parts)

    @staticmethod
    def _render(value, context: ProcessContext) -> str:
        if callable(value):
            return value(context)
        return interpolate(value, context.slots)

    def _slot_prompt(self, slot: ProcessSlot, context: ProcessContext) -> str:
        if slot.prompt_if_missing:
            return self._render(slot.prompt_if_missing, context)
        return strings.DEFAULT_SLOT_PROMPT.format(description=slot.description or slot.name)

    @staticmethod
    def _resolve_args(args: Dict[str, Any], context: ProcessContext) -> Dict[str, Any]:
        """String values of the form "$slot_name" are replaced by that slot's value."""
        resolved = {}
        for key, value in args.items():
            if isinstance(value, str) and value.startswith("$"):
                resolved[key] = context.slots.get(value[1:])
            else:
                resolved[key] = value
        return resolved

    def _merge_slots(self, definition: ProcessDefinition, context: ProcessContext, updates: Optional[Dict[str, Any]]) -> None:
        for name, value in (updates or {}).items():
            if value is None:
                continue
            slot = definition.get_slot(name)
            if slot is not None:
                check = validate_slot_value(slot, value)
                if not check["is_valid"]:
                    log.debug("slot_update_rejected", process_id=definition.id, slot=name, value=value)
                    continue
                value = check["value"]
            context.slots[name] = value

    async def _run_hook(self, definition: ProcessDefinition, hook, context: ProcessContext) -> None:
        """Hooks may mutate the context or return slot updates to merge."""
        if hook is None:
            return
        outcome = hook(context)
        if inspect.isawaitable(outcome):
            outcome = await outcome
        if isinstance(outcome, dict):
            self._merge_slots(definition, context, outcome)

    @staticmethod
    def _record(definition: ProcessDefinition, context: ProcessContext, step_id: str, action: str,
                detail: Optional[str] = None) -> None:
        if definition.config.track_in_history:
            context.execution_history.append(ExecutionEvent(step=step_id, action=action, detail=detail))

    @staticmethod
    def _metrics(context: ProcessContext) -> ProcessMetrics:
        tool_calls = sum(1 for event in context.execution_history if event.action == "tool")
        duration_ms = int((time.time() - context.started_at.timestamp()) * 1000)
        return ProcessMetrics(tool_calls_count=tool_calls, duration_ms=duration_ms)
