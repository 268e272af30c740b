

import inspect

import pytest
from fastapi.testclient import TestClient
from dotenv import load_dotenv

# Load environment variables FIRST, before any app imports, so Settings
# sees ENVIRONMENT=test (rate limiting off, docs exposed).
load_dotenv(dotenv_path="backend/.env.test")

# Now it's safe to import the application and its components
from app.main import app # noqa: E402
from app.models.flow import UserContext # noqa: E402
from app.services.chat_service import build_orchestrator # noqa: E402
from app.services.session_store import InMemorySessionStore # noqa: E402
from app.services.tool_service import ToolService # noqa: E402
from app.workflows.engine import ProcessExecutor # noqa: E402
from app.workflows.intent_detector import IntentDetector, KeywordIntentClassifier # noqa: E402
from app.workflows.registry import build_default_registry # noqa: E402


class FakeToolService(ToolService):
    """
    Stands in for the entity resolver. `responses` maps a tool name to a
    value, a callable taking the arguments (plain or async), or an exception
    to raise.
    Every call is recorded in `calls` as (name, arguments).
    """

    def __init__(self, responses=None):
        self.responses = dict(responses or {})
        self.calls = []

    async def call(self, name, arguments, *, user_id, is_admin=False):
        self.calls.append((name, dict(arguments)))
        response = self.responses.get(name, [])
        if isinstance(response, Exception):
            raise response
        if inspect.iscoroutinefunction(response):
            return await response(arguments)
        if callable(response):
            return response(arguments)
        return response

    def calls_to(self, name):
        return [args for tool, args in self.calls if tool == name]


@pytest.fixture
def tool_service():
    return FakeToolService()


@pytest.fixture
def registry():
    return build_default_registry()


@pytest.fixture
def detector(registry):
    return IntentDetector(registry, KeywordIntentClassifier())


@pytest.fixture
def executor(registry, tool_service):
    return ProcessExecutor(registry, tool_service)


@pytest.fixture
def session_store():
    return InMemorySessionStore()


@pytest.fixture
def orchestrator(tool_service, session_store):
    return build_orchestrator(tool_service, session_store, ai_service=None)


@pytest.fixture
def admin():
    return UserContext(is_admin=True, user_name="Ana")


@pytest.fixture(scope="function")
def test_client(orchestrator):
    """
    Provides a TestClient for API integration tests.
    The orchestrator built at startup is swapped for one backed by the fake tool service.
    """
    # The app's lifespan (startup/shutdown events) is managed by the TestClient
    with TestClient(app) as client:
        app.state.orchestrator = orchestrator
        yield client
