# /app/services/chat_service.py

import logging
import time
from typing import Optional

from app.config import strings
from app.models.api import ActiveProcessState, ChatMessage, ChatMetrics, ChatRequest, ChatResponse, ProcessResult
from app.models.flow import ProcessContext, UserContext
from app.services.ai_service import AIService, estimate_tokens
from app.services.session_store import SessionContextStore
from app.utils.metrics import fallback_chat_counter
from app.workflows.engine import ProcessExecutor
from app.workflows.intent_detector import IntentDetector, KeywordIntentClassifier, TriggerMatch
from app.workflows.registry import ProcessRegistry, build_default_registry

# This service is the single entry point for chat messages: it resumes the
# session's in-flight process, starts a new one, or hands the message to the
# fallback language model.

logger = logging.getLogger(__name__)

# System prompt, typical history, tool-call overhead and reply a model call would have cost
LLM_BASELINE_TOKENS = 2000 + 500 + 200 + 300


class ChatOrchestrator:
    def __init__(
        self,
        registry: ProcessRegistry,
        detector: IntentDetector,
        executor: ProcessExecutor,
        store: SessionContextStore,
        ai_service: Optional[AIService] = None,
    ):
        self.registry = registry
        self.detector = detector
        self.executor = executor
        self.store = store
        self.ai_service = ai_service

    async def process_message(
        self,
        message: str,
        user_id: str,
        session_id: str,
        is_admin: bool = False,
        user_name: Optional[str] = None,
    ) -> Optional[ProcessResult]:
        """
        Handles one turn with the structured processes.
        Returns None when no process owns or matches the message.
        """
        user_context = UserContext(is_admin=is_admin, user_name=user_name)

        async with self.store.lock(session_id):
            context = await self.store.get(session_id)
            if context is not None and context.process_id not in self.registry:
                logger.warning(f"Dropping context of unregistered process '{context.process_id}' for session {session_id}")
                await self.store.clear(session_id)
                context = None

            if context is not None:
                return await self._continue(context, message, session_id, user_id, user_context)

            match = self.detector.detect(message, user_context)
            if match is None:
                return None
            return await self._start(match, message, session_id, user_id, user_context)

    async def _continue(
        self, context: ProcessContext, message: str, session_id: str, user_id: str, user_context: UserContext
    ) -> ProcessResult:
        definition = self.registry.get(context.process_id)
        reply = self.detector.classify_reply(message, context, definition)

        if reply.action == "unknown" and context.awaiting_confirmation and definition.config.allow_cancel:
            match = self.detector.detect(message, user_context)
            if match is not None and match.process_id != context.process_id:
                logger.info(
                    f"Session {session_id}: '{match.process_id}' supersedes pending '{context.process_id}'"
                )
                await self.store.clear(session_id)
                return await self._start(match, message, session_id, user_id, user_context)

        result = await self.executor.resume(context, message, reply)
        await self._persist(session_id, context, result)
        return result

    async def _start(
        self, match: TriggerMatch, message: str, session_id: str, user_id: str, user_context: UserContext
    ) -> ProcessResult:
        definition = self.registry.get(match.process_id)
        context = self.executor.create_context(
            definition,
            session_id=session_id,
            user_id=user_id,
            message=message,
            user_context=user_context,
            extracted_data=match.extracted_data,
        )
        result = await self.executor.start(context)
        await self._persist(session_id, context, result)
        return result

    async def _persist(self, session_id: str, context: ProcessContext, result: ProcessResult) -> None:
        if result.completed:
            await self.store.clear(session_id)
        else:
            await self.store.set(session_id, context)

    async def chat(self, request: ChatRequest) -> ChatResponse:
        """Process-first chat with fallback to the language model."""
        start_time = time.time()
        session_id = request.session_id or f"session_{request.user_id}_{int(start_time * 1000)}"
        history = list(request.conversation_history)
        user_turn = ChatMessage(role="user", content=request.message)

        if not request.skip_processes:
            try:
                result = await self.process_message(
                    request.message,
                    user_id=request.user_id,
                    session_id=session_id,
                    is_admin=request.is_admin,
                    user_name=request.user_name,
                )
            except Exception as e:
                logger.error(f"Process handling failed for session {session_id}, delegating to LLM: {e}", exc_info=True)
                result = None

            if result is not None:
                return ChatResponse(
                    content=result.response,
                    handled_by="process",
                    session_id=session_id,
                    process_id=result.process_id,
                    status=result.status,
                    completed=result.completed,
                    quick_replies=result.quick_replies,
                    conversation_history=history + [user_turn, ChatMessage(role="assistant", content=result.response)],
                    metrics=ChatMetrics(
                        tokens_used=0,
                        estimated_tokens_saved=LLM_BASELINE_TOKENS + estimate_tokens(request.message),
                        duration_ms=int((time.time() - start_time) * 1000),
                    ),
                )

            if request.processes_only:
                return ChatResponse(
                    content=strings.PROCESSES_ONLY_NO_MATCH,
                    handled_by="process",
                    session_id=session_id,
                    conversation_history=history + [user_turn],
                    metrics=ChatMetrics(duration_ms=int((time.time() - start_time) * 1000)),
                )

        if self.ai_service is None:
            fallback_chat_counter.labels(status="unavailable").inc()
            content, tokens = strings.ERROR_AI_CONNECTION, 0
        else:
            content, tokens = await self.ai_service.generate_response(request.message, history, request.user_name)
            fallback_chat_counter.labels(status="success" if tokens else "error").inc()

        return ChatResponse(
            content=content,
            handled_by="llm",
            session_id=session_id,
            conversation_history=history + [user_turn, ChatMessage(role="assistant", content=content)],
            metrics=ChatMetrics(tokens_used=tokens, duration_ms=int((time.time() - start_time) * 1000)),
        )

    async def clear_session(self, session_id: str) -> None:
        async with self.store.lock(session_id):
            await self.store.clear(session_id)

    async def has_active_process(self, session_id: str) -> bool:
        context = await self.store.get(session_id)
        return context is not None and not context.status.is_terminal

    async def get_active_process_state(self, session_id: str) -> Optional[ActiveProcessState]:
        context = await self.store.get(session_id)
        if context is None:
            return None
        return ActiveProcessState(
            process_id=context.process_id,
            status=context.status,
            current_step=context.current_step,
            awaiting_input=context.awaiting_input,
            awaiting_confirmation=context.awaiting_confirmation,
            slots=context.slots,
        )


def build_orchestrator(tool_service, store: SessionContextStore, ai_service: Optional[AIService] = None) -> ChatOrchestrator:
    registry = build_default_registry()
    return ChatOrchestrator(
        registry=registry,
        detector=IntentDetector(registry, KeywordIntentClassifier()),
        executor=ProcessExecutor(registry, tool_service),
        store=store,
        ai_service=ai_service,
    )
