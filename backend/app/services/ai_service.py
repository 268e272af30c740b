# /app/services/ai_service.py

import logging
import math
from typing import List, Optional, Tuple

from openai import AsyncOpenAI

from app.config import strings
from app.config.persona import AI_SYSTEM_PROMPT
from app.config.settings import settings
from app.models.api import ChatMessage
from app.utils.circuit_breaker import CircuitBreaker
from app.utils.metrics import ai_requests_counter

# This service is the fallback chat path: free-text answers from the language
# model for messages no structured process handles.

logger = logging.getLogger(__name__)


def estimate_tokens(text: str) -> int:
    """Rough token count (about four characters per token)."""
    return math.ceil(len(text or "") / 4)


class AIService:
    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None):
        api_key = api_key if api_key is not None else settings.openai_api_key
        self.model = model or settings.openai_model
        self.openai_client = AsyncOpenAI(api_key=api_key) if api_key else None
        self.openai_breaker = CircuitBreaker("openai")

    async def generate_response(
        self, message: str, history: Optional[List[ChatMessage]] = None, user_name: Optional[str] = None
    ) -> Tuple[str, int]:
        """Returns (reply, tokens used). Failures yield a friendly apology, never an exception."""
        if not self.openai_client:
            logger.warning("Fallback chat requested but no OpenAI key is configured")
            return strings.ERROR_AI_CONNECTION, 0

        try:
            reply, tokens = await self.openai_breaker.call(self._generate_openai_response, message, history or [], user_name)
            ai_requests_counter.labels(model=self.model, status="success").inc()
            return reply, tokens
        except Exception as e:
            logger.error(f"OpenAI fallback failed: {e}")
            ai_requests_counter.labels(model=self.model, status="error").inc()
            return strings.ERROR_AI_CONNECTION, 0

    async def _generate_openai_response(
        self, message: str, history: List[ChatMessage], user_name: Optional[str]
    ) -> Tuple[str, int]:
        system_prompt = AI_SYSTEM_PROMPT
        if user_name:
            system_prompt += f"\nEl usuario se llama {user_name}."
        messages = [{"role": "system", "content": system_prompt}]
        for entry in history:
            messages.append({"role": entry.role, "content": entry.content})
        messages.append({"role": "user", "content": message})

        response = await self.openai_client.chat.completions.create(
            model=self.model,
            messages=messages,
            max_tokens=settings.openai_max_tokens,
            temperature=settings.openai_temperature,
        )
        content = (response.choices[0].message.content or "").strip()
        usage = getattr(response, "usage", None)
        tokens = usage.total_tokens if usage else estimate_tokens(content)
        return content, tokens
