# /app/services/tool_service.py

import httpx
import logging
import tenacity
from typing import Any, Dict, List, Optional

from app.config.settings import settings
from app.utils.circuit_breaker import CircuitBreaker, CircuitOpenError

logger = logging.getLogger(__name__)

# Wrapper keys the entity resolver uses around list results
LIST_WRAPPER_KEYS = ("tasks", "clients", "users", "data", "results", "items")
# Wrapper keys around a single entity
ENTITY_WRAPPER_KEYS = ("task", "client", "user")


class ToolExecutionError(Exception):
    """A tool call failed, either in transport or because the tool reported failure."""

    def __init__(self, tool: str, message: str):
        self.tool = tool
        self.message = message
        super().__init__(f"Tool '{tool}' failed: {message}")


def raise_for_tool_failure(tool: str, result: Any) -> Any:
    """Turns a `{"success": false, ...}` payload into a ToolExecutionError."""
    if isinstance(result, dict) and result.get("success") is False:
        raise ToolExecutionError(tool, str(result.get("error") or result.get("message") or "tool reported failure"))
    return result


def normalize_tool_result(result: Any) -> Any:
    """
    Unwraps the entity resolver's envelopes so process code sees one shape:
    a bare list for searches and a bare dict for single entities.
    """
    if isinstance(result, list):
        return result
    if isinstance(result, dict):
        for key in LIST_WRAPPER_KEYS:
            if isinstance(result.get(key), list):
                return result[key]
        if "id" not in result:
            for key in ENTITY_WRAPPER_KEYS:
                if isinstance(result.get(key), dict):
                    return result[key]
    return result


def records(result: Any) -> List[Dict[str, Any]]:
    """The dict records of a normalised result; anything else yields []."""
    if isinstance(result, list):
        return [item for item in result if isinstance(item, dict)]
    if isinstance(result, dict) and result:
        return [result]
    return []


class ToolService:
    """Interface to the entity resolver: named tools taking JSON arguments."""

    async def call(self, name: str, arguments: Dict[str, Any], *, user_id: str, is_admin: bool = False) -> Any:
        raise NotImplementedError

    async def aclose(self) -> None:
        return None


class HttpToolService(ToolService):
    """Calls tools over HTTP: POST {base_url}/tools/{name}."""

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = 10.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.circuit_breaker = CircuitBreaker("entity_resolver")
        self.http_client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout, connect=5.0)
        )

    @tenacity.retry(
        # Retried only when the request never reached the resolver
        retry=tenacity.retry_if_exception_type((httpx.ConnectError, httpx.ConnectTimeout)),
        stop=tenacity.stop_after_attempt(3),
        wait=tenacity.wait_exponential(multiplier=1, min=0.5, max=4),
        before_sleep=tenacity.before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def resilient_api_call(self, func, *args, **kwargs):
        return await func(*args, **kwargs)

    async def _post(self, url: str, payload: Dict[str, Any], headers: Dict[str, str]) -> httpx.Response:
        resp = await self.resilient_api_call(self.http_client.post, url, json=payload, headers=headers)
        # Only 5xx counts against the circuit
        if resp.status_code >= 500:
            resp.raise_for_status()
        return resp

    async def call(self, name: str, arguments: Dict[str, Any], *, user_id: str, is_admin: bool = False) -> Any:
        url = f"{self.base_url}/tools/{name}"
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["X-API-Key"] = self.api_key
        payload = {"arguments": arguments, "userId": user_id, "isAdmin": is_admin}

        try:
            resp = await self.circuit_breaker.call(self._post, url, payload, headers)
            resp.raise_for_status()
            return resp.json()
        except CircuitOpenError as e:
            raise ToolExecutionError(name, str(e)) from e
        except httpx.HTTPStatusError as e:
            logger.error(f"Tool '{name}' returned HTTP {e.response.status_code}")
            raise ToolExecutionError(name, f"HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.error(f"Tool '{name}' request failed: {e}")
            raise ToolExecutionError(name, str(e)) from e
        except ValueError as e:
            logger.error(f"Tool '{name}' returned a non-JSON body")
            raise ToolExecutionError(name, "invalid JSON response") from e

    async def aclose(self) -> None:
        await self.http_client.aclose()


def build_tool_service() -> ToolService:
    return HttpToolService(
        base_url=settings.tool_service_url,
        api_key=settings.tool_service_api_key,
        timeout=settings.tool_service_timeout,
    )
