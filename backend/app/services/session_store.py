# /app/services/session_store.py

import asyncio
import logging
import math
import weakref
from typing import Dict, Optional

import redis.asyncio as redis
from pydantic import ValidationError

from app.config.settings import settings
from app.models.flow import ProcessContext
from app.utils.metrics import session_store_operations

# This service keeps at most one in-flight ProcessContext per session.
# Expired contexts are discarded lazily, on the next read.

logger = logging.getLogger(__name__)


class SessionContextStore:
    backend = "base"

    def __init__(self):
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def lock(self, session_id: str) -> asyncio.Lock:
        """Serialises turns of the same session; locks vanish once nobody holds them."""
        lock = self._locks.get(session_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[session_id] = lock
        return lock

    async def get(self, session_id: str) -> Optional[ProcessContext]:
        raise NotImplementedError

    async def set(self, session_id: str, context: ProcessContext) -> None:
        raise NotImplementedError

    async def clear(self, session_id: str) -> None:
        raise NotImplementedError

    async def close(self) -> None:
        return None

    def _expired(self, session_id: str, context: ProcessContext) -> bool:
        if context.is_expired():
            logger.info(f"Process '{context.process_id}' for session {session_id} timed out after {context.timeout_ms}ms")
            session_store_operations.labels(backend=self.backend, operation="expire", status="success").inc()
            return True
        return False


class InMemorySessionStore(SessionContextStore):
    backend = "memory"

    def __init__(self):
        super().__init__()
        self._contexts: Dict[str, ProcessContext] = {}

    async def get(self, session_id: str) -> Optional[ProcessContext]:
        context = self._contexts.get(session_id)
        if context is None:
            session_store_operations.labels(backend=self.backend, operation="get", status="miss").inc()
            return None
        if self._expired(session_id, context):
            self._contexts.pop(session_id, None)
            return None
        session_store_operations.labels(backend=self.backend, operation="get", status="hit").inc()
        return context

    async def set(self, session_id: str, context: ProcessContext) -> None:
        self._contexts[session_id] = context
        session_store_operations.labels(backend=self.backend, operation="set", status="success").inc()

    async def clear(self, session_id: str) -> None:
        self._contexts.pop(session_id, None)
        session_store_operations.labels(backend=self.backend, operation="clear", status="success").inc()

    def __len__(self) -> int:
        return len(self._contexts)


class RedisSessionStore(SessionContextStore):
    """
    Contexts are stored as JSON with a TTL equal to the process timeout, so
    abandoned sessions also disappear from Redis without a sweeper.
    """
    backend = "redis"

    def __init__(self, redis_client: redis.Redis, key_prefix: str = "process_ctx"):
        super().__init__()
        self.redis = redis_client
        self.key_prefix = key_prefix

    @classmethod
    def from_url(cls, redis_url: str, key_prefix: str = "process_ctx") -> "RedisSessionStore":
        pool = redis.ConnectionPool.from_url(redis_url, max_connections=20)
        return cls(redis.Redis(connection_pool=pool), key_prefix)

    def _key(self, session_id: str) -> str:
        return f"{self.key_prefix}:{session_id}"

    async def get(self, session_id: str) -> Optional[ProcessContext]:
        try:
            raw = await self.redis.get(self._key(session_id))
        except redis.RedisError as e:
            session_store_operations.labels(backend=self.backend, operation="get", status="error").inc()
            logger.warning(f"Session store get failed for {session_id}: {e}")
            return None

        if not raw:
            session_store_operations.labels(backend=self.backend, operation="get", status="miss").inc()
            return None

        try:
            context = ProcessContext.model_validate_json(raw)
        except ValidationError as e:
            session_store_operations.labels(backend=self.backend, operation="get", status="corrupt").inc()
            logger.warning(f"Discarding unreadable context for {session_id}: {e.error_count()} error(s)")
            await self.clear(session_id)
            return None

        if self._expired(session_id, context):
            await self.clear(session_id)
            return None
        session_store_operations.labels(backend=self.backend, operation="get", status="hit").inc()
        return context

    async def set(self, session_id: str, context: ProcessContext) -> None:
        ttl = max(1, math.ceil(context.timeout_ms / 1000))
        try:
            await self.redis.setex(self._key(session_id), ttl, context.model_dump_json())
            session_store_operations.labels(backend=self.backend, operation="set", status="success").inc()
        except redis.RedisError as e:
            session_store_operations.labels(backend=self.backend, operation="set", status="error").inc()
            logger.error(f"Session store set failed for {session_id}: {e}")

    async def clear(self, session_id: str) -> None:
        try:
            await self.redis.delete(self._key(session_id))
            session_store_operations.labels(backend=self.backend, operation="clear", status="success").inc()
        except redis.RedisError as e:
            session_store_operations.labels(backend=self.backend, operation="clear", status="error").inc()
            logger.warning(f"Session store clear failed for {session_id}: {e}")

    async def close(self) -> None:
        await self.redis.aclose()


def build_session_store() -> SessionContextStore:
    if settings.session_store_backend == "redis":
        logger.info(f"Using Redis session store at {settings.redis_url}")
        return RedisSessionStore.from_url(settings.redis_url, settings.session_key_prefix)
    logger.info("Using in-memory session store")
    return InMemorySessionStore()
