# backend/tests/unit/test_engine.py
import pytest

from app.config import strings
from app.models.flow import CANCELLED_STEP, COMPLETED_STEP, ProcessStatus, UserContext
from app.models.process import (
    CollectStep,
    ExecuteStep,
    ProcessConfig,
    ProcessDefinition,
    ProcessSlot,
    RespondStep,
)
from app.services.tool_service import ToolExecutionError
from app.workflows.engine import ProcessExecutor, interpolate
from app.workflows.intent_detector import ReplyClassification
from app.workflows.registry import ProcessRegistry

CONFIRM = ReplyClassification(action="confirm")
CANCEL = ReplyClassification(action="cancel")
UNKNOWN = ReplyClassification(action="unknown")


def _input():
    return ReplyClassification(action="input")


def _start_context(executor, process_id, message, **kwargs):
    definition = executor.registry.get(process_id)
    return executor.create_context(definition, session_id="s1", user_id="u1", message=message, **kwargs)


def test_interpolate_leaves_unknown_placeholders():
    assert interpolate("Hola {name}, {missing}", {"name": "Ana"}) == "Hola Ana, {missing}"


def test_create_context_seeds_slots_in_order(executor):
    context = _start_context(
        executor, "task-creation",
        "crear tarea Revisión de diseño para cliente Acme con prioridad alta",
        extracted_data={"task_name": "Desde el disparador", "priority": "altísima"},
    )
    assert context.current_step == "collect_task_name"
    assert context.slots["task_name"] == "Desde el disparador"
    assert context.slots["client_name"] == "Acme"
    # the invalid captured value gives way to the one found in the text
    assert context.slots["priority"] == "Alta"
    assert context.slots["project"] == "chatbotTasks"
    assert context.slots["status"] == "En Proceso"
    assert context.timeout_ms == 300000


@pytest.mark.asyncio
async def test_collect_prompts_and_validates_input(executor):
    context = _start_context(executor, "task-creation", "crear tarea")

    result = await executor.start(context)
    assert result.status == ProcessStatus.COLLECTING
    assert result.awaiting_input.slot_name == "task_name"
    assert result.response == strings.TASK_NAME_PROMPT

    result = await executor.resume(context, "ab", _input())
    assert result.awaiting_input.slot_name == "task_name"
    assert "al menos 3" in result.response
    assert "task_name" not in context.slots

    result = await executor.resume(context, "Revisar contrato", _input())
    assert context.slots["task_name"] == "Revisar contrato"
    assert result.awaiting_input.slot_name == "client_name"
    assert result.response == strings.CLIENT_NAME_PROMPT
    assert context.current_step == "collect_client_name"


@pytest.mark.asyncio
async def test_confirm_modify_and_execute(executor, tool_service):
    tool_service.responses["search_clients"] = {"clients": [{"id": "c-1", "name": "Acme"}]}
    tool_service.responses["create_task"] = {"success": True, "task": {"id": "t-1", "name": "Revisión de diseño"}}
    context = _start_context(executor, "task-creation", "crear tarea Revisión de diseño para cliente Acme")

    result = await executor.start(context)
    assert result.status == ProcessStatus.CONFIRMING
    assert result.awaiting_confirmation is not None
    assert "Tarea: Revisión de diseño" in result.response
    assert "Cliente: Acme" in result.response
    assert tool_service.calls_to("search_clients") == [{"query": "Acme", "limit": 5}]
    assert tool_service.calls_to("create_task") == []

    result = await executor.resume(context, "prioridad alta",
                                   ReplyClassification(action="modify", modifications={"priority": "Alta"}))
    assert result.response.startswith("Actualizado.")
    assert "Prioridad: Alta" in result.response
    assert context.awaiting_confirmation

    result = await executor.resume(context, "no sé", UNKNOWN)
    assert result.response.startswith("No entendí tu respuesta")
    assert context.current_step == "confirm_task"

    result = await executor.resume(context, "sí", CONFIRM)
    assert result.completed
    assert result.status == ProcessStatus.COMPLETED
    assert "Revisión de diseño" in result.response and "Acme" in result.response
    assert tool_service.calls_to("create_task") == [{
        "name": "Revisión de diseño",
        "clientId": "c-1",
        "project": "chatbotTasks",
        "priority": "Alta",
        "status": "En Proceso",
    }]
    assert result.data["create_task"]["id"] == "t-1"
    assert result.metrics.tool_calls_count == 2
    assert [reply.payload for reply in result.quick_replies] == ["mis tareas"]
    assert context.current_step == COMPLETED_STEP


@pytest.mark.asyncio
async def test_cancel_at_confirmation(executor, tool_service):
    tool_service.responses["search_clients"] = [{"id": "c-1", "name": "Acme"}]
    context = _start_context(executor, "task-creation", "crear tarea Revisión de diseño para cliente Acme")
    await executor.start(context)

    result = await executor.resume(context, "cancelar", CANCEL)
    assert result.completed
    assert result.status == ProcessStatus.CANCELLED
    assert result.response == strings.OPERATION_CANCELLED
    assert context.current_step == CANCELLED_STEP
    assert tool_service.calls_to("create_task") == []


def _registry_with(*definitions):
    return ProcessRegistry(list(definitions))


@pytest.mark.asyncio
async def test_cancel_refused_when_not_allowed(tool_service):
    definition = ProcessDefinition(
        id="survey",
        name="Survey",
        slots=[ProcessSlot(name="name", required=True, prompt_if_missing="¿Nombre?")],
        steps=[
            CollectStep(id="ask", slots=["name"], next_step="thanks"),
            RespondStep(id="thanks", response="Gracias, {name}."),
        ],
        initial_step="ask",
        config=ProcessConfig(allow_cancel=False),
    )
    executor = ProcessExecutor(_registry_with(definition), tool_service)
    context = _start_context(executor, "survey", "encuesta")
    await executor.start(context)

    result = await executor.resume(context, "cancelar", CANCEL)
    assert not result.completed
    assert result.response.startswith("Esta operación no se puede cancelar")
    assert result.response.endswith("¿Nombre?")

    result = await executor.resume(context, "Luis", _input())
    assert result.completed
    assert result.response == "Gracias, Luis."


def _lookup_definition(max_retries):
    return ProcessDefinition(
        id="lookup",
        name="Lookup",
        slots=[ProcessSlot(name="term", default_value="reporte", extract_from="default")],
        steps=[
            ExecuteStep(id="search", tool="search_tasks", tool_args={"name": "$term", "limit": 5},
                        next_step="reply"),
            RespondStep(id="reply", response=lambda ctx: f"{len(ctx.tool_results['search_tasks'])} resultado(s)"),
        ],
        initial_step="search",
        config=ProcessConfig(max_retries=max_retries),
    )


@pytest.mark.asyncio
async def test_tool_failure_offers_retry(tool_service):
    executor = ProcessExecutor(_registry_with(_lookup_definition(max_retries=3)), tool_service)
    tool_service.responses["search_tasks"] = ToolExecutionError("search_tasks", "timeout")
    context = _start_context(executor, "lookup", "buscar")

    result = await executor.start(context)
    assert not result.completed
    assert not result.success
    assert result.error == "TOOL_ERROR"
    assert result.response == strings.TOOL_RETRY_PROMPT
    assert context.awaiting_retry
    assert context.retry_count == 1

    tool_service.responses["search_tasks"] = {"tasks": [{"id": "t-1"}, {"id": "t-2"}]}
    result = await executor.resume(context, "sí", CONFIRM)
    assert result.completed
    assert result.response == "2 resultado(s)"
    assert tool_service.calls_to("search_tasks") == [{"name": "reporte", "limit": 5}] * 2


@pytest.mark.asyncio
async def test_reported_tool_failure_exhausts_retries(tool_service):
    executor = ProcessExecutor(_registry_with(_lookup_definition(max_retries=2)), tool_service)
    tool_service.responses["search_tasks"] = {"success": False, "error": "database offline"}
    context = _start_context(executor, "lookup", "buscar")

    result = await executor.start(context)
    assert context.awaiting_retry

    result = await executor.resume(context, "sí", CONFIRM)
    assert result.completed
    assert result.status == ProcessStatus.CANCELLED
    assert result.error == "TOOL_ERROR"
    assert result.response == strings.GENERIC_ERROR
    assert context.retry_count == 2


@pytest.mark.asyncio
async def test_retry_can_be_declined_even_without_cancel(tool_service):
    definition = _lookup_definition(max_retries=3).model_copy(update={"config": ProcessConfig(allow_cancel=False)})
    executor = ProcessExecutor(_registry_with(definition), tool_service)
    tool_service.responses["search_tasks"] = ToolExecutionError("search_tasks", "timeout")
    context = _start_context(executor, "lookup", "buscar")
    await executor.start(context)

    result = await executor.resume(context, "no", CANCEL)
    assert result.status == ProcessStatus.CANCELLED
    assert result.response == strings.OPERATION_CANCELLED


@pytest.mark.asyncio
async def test_failing_hook_cancels_the_process(tool_service):
    def explode(context):
        raise RuntimeError("hook failed")

    definition = ProcessDefinition(
        id="fragile",
        name="Fragile",
        steps=[RespondStep(id="reply", response="hola", on_enter=explode)],
        initial_step="reply",
    )
    executor = ProcessExecutor(_registry_with(definition), tool_service)
    context = _start_context(executor, "fragile", "hola")

    result = await executor.start(context)
    assert result.status == ProcessStatus.CANCELLED
    assert result.error == "EXECUTION_ERROR"
    assert result.response == strings.GENERIC_ERROR


@pytest.mark.asyncio
async def test_iteration_limit(tool_service):
    definition = ProcessDefinition(
        id="chain",
        name="Chain",
        steps=[
            RespondStep(id="one", response="1", next_step="two"),
            RespondStep(id="two", response="2", next_step="three"),
            RespondStep(id="three", response="3"),
        ],
        initial_step="one",
    )
    context_executor = ProcessExecutor(_registry_with(definition), tool_service, max_iterations=2)
    context = _start_context(context_executor, "chain", "go")

    result = await context_executor.start(context)
    assert result.status == ProcessStatus.CANCELLED
    assert result.error == "MAX_ITERATIONS_EXCEEDED"

    unbounded = ProcessExecutor(_registry_with(definition), tool_service, max_iterations=10)
    result = await unbounded.start(_start_context(unbounded, "chain", "go"))
    assert result.response == "1\n\n2\n\n3"


@pytest.mark.asyncio
async def test_hooks_may_return_slot_updates(tool_service):
    async def annotate(context):
        return {"greeting": "Hola"}

    definition = ProcessDefinition(
        id="greeter",
        name="Greeter",
        steps=[RespondStep(id="reply", response="{greeting}!", on_enter=annotate)],
        initial_step="reply",
    )
    executor = ProcessExecutor(_registry_with(definition), tool_service)
    result = await executor.start(_start_context(executor, "greeter", "hola"))
    assert result.response == "Hola!"


def _member_lookup_definition():
    return ProcessDefinition(
        id="member-lookup",
        name="Member lookup",
        slots=[
            ProcessSlot(name="member", default_value="Ana", extract_from="default"),
            ProcessSlot(name="member_id", type="reference", required=True, extract_from="tool",
                        tool_to_call="get_team_workload", tool_args={"name": "$member"},
                        prompt_if_missing="¿A quién te refieres?"),
        ],
        steps=[
            CollectStep(id="find", slots=["member_id"], next_step="reply"),
            RespondStep(id="reply", response="Miembro {member_id}"),
        ],
        initial_step="find",
    )


@pytest.mark.asyncio
async def test_collect_fills_reference_slot_from_tool(tool_service):
    executor = ProcessExecutor(_registry_with(_member_lookup_definition()), tool_service)
    tool_service.responses["get_team_workload"] = {"users": [{"id": "m-7", "name": "Ana"}]}

    result = await executor.start(_start_context(executor, "member-lookup", "buscar"))
    assert result.completed
    assert result.response == "Miembro m-7"
    assert tool_service.calls_to("get_team_workload") == [{"name": "Ana"}]


@pytest.mark.asyncio
async def test_empty_tool_result_asks_for_the_slot(tool_service):
    executor = ProcessExecutor(_registry_with(_member_lookup_definition()), tool_service)
    tool_service.responses["get_team_workload"] = []

    result = await executor.start(_start_context(executor, "member-lookup", "buscar"))
    assert result.awaiting_input.slot_name == "member_id"
    assert result.response == "¿A quién te refieres?"


@pytest.mark.asyncio
async def test_tool_error_while_collecting_offers_retry(tool_service):
    executor = ProcessExecutor(_registry_with(_member_lookup_definition()), tool_service)
    tool_service.responses["get_team_workload"] = ToolExecutionError("get_team_workload", "HTTP 503")
    context = _start_context(executor, "member-lookup", "buscar")

    result = await executor.start(context)
    assert not result.completed
    assert result.error == "TOOL_ERROR"
    assert result.response == strings.TOOL_RETRY_PROMPT
    assert context.awaiting_retry
    assert context.awaiting_slot is None

    tool_service.responses["get_team_workload"] = [{"id": "m-7", "name": "Ana"}]
    result = await executor.resume(context, "sí", CONFIRM)
    assert result.completed
    assert result.response == "Miembro m-7"
    assert len(tool_service.calls_to("get_team_workload")) == 2


@pytest.mark.asyncio
async def test_collect_fills_slot_from_user_context(tool_service):
    definition = ProcessDefinition(
        id="greeting",
        name="Greeting",
        slots=[ProcessSlot(name="owner", required=True, extract_from="context", context_key="user_name")],
        steps=[
            CollectStep(id="who", slots=["owner"], next_step="reply"),
            RespondStep(id="reply", response="Hola {owner}"),
        ],
        initial_step="who",
    )
    executor = ProcessExecutor(_registry_with(definition), tool_service)

    result = await executor.start(_start_context(executor, "greeting", "hola", user_context=UserContext(user_name="Luis")))
    assert result.response == "Hola Luis"

    result = await executor.start(_start_context(executor, "greeting", "hola"))
    assert result.awaiting_input.slot_name == "owner"
