# backend/tests/integration/test_chat_flow.py
import asyncio

import pytest

from app.config import strings
from app.models.flow import ProcessStatus


def _search_tasks_by_name(tasks):
    def respond(arguments):
        wanted = (arguments.get("name") or "").lower()
        return {"tasks": [task for task in tasks if wanted in task["name"].lower()]}
    return respond


@pytest.mark.asyncio
async def test_task_creation_happy_path(orchestrator, tool_service):
    tool_service.responses["search_clients"] = [{"id": "c-1", "name": "Acme"}]
    tool_service.responses["create_task"] = {"success": True, "task": {"id": "t-1", "name": "Revisión de diseño"}}

    result = await orchestrator.process_message("crear tarea Revisión de diseño para cliente Acme", "u1", "s1")
    assert result.process_id == "task-creation"
    assert result.status == ProcessStatus.CONFIRMING
    assert "Tarea: Revisión de diseño" in result.response
    assert "Cliente: Acme" in result.response
    assert tool_service.calls_to("search_clients") == [{"query": "Acme", "limit": 5}]
    assert await orchestrator.has_active_process("s1")

    result = await orchestrator.process_message("sí", "u1", "s1")
    assert result.completed
    assert result.status == ProcessStatus.COMPLETED
    assert "Revisión de diseño" in result.response and "Acme" in result.response
    assert tool_service.calls_to("create_task")[0]["clientId"] == "c-1"
    assert not await orchestrator.has_active_process("s1")


@pytest.mark.asyncio
async def test_task_creation_creates_missing_client(orchestrator, tool_service):
    tool_service.responses["search_clients"] = []
    tool_service.responses["create_client"] = {"success": True, "client": {"id": "c-9", "name": "Acme"}}
    tool_service.responses["create_task"] = {"success": True, "task": {"id": "t-1"}}

    result = await orchestrator.process_message("crear tarea Revisión de diseño para cliente Acme", "u1", "s1")
    assert "¿Deseas que lo cree?" in result.response
    assert tool_service.calls_to("create_client") == []

    result = await orchestrator.process_message("sí", "u1", "s1")
    assert tool_service.calls_to("create_client") == [{"name": "Acme"}]
    assert result.status == ProcessStatus.CONFIRMING
    assert "Tarea: Revisión de diseño" in result.response

    result = await orchestrator.process_message("dale", "u1", "s1")
    assert result.completed
    assert tool_service.calls_to("create_task")[0]["clientId"] == "c-9"


@pytest.mark.asyncio
async def test_active_task_query(orchestrator, tool_service):
    tool_service.responses["search_tasks"] = {"tasks": [
        {"name": "Reporte", "status": "En Proceso", "priority": "Alta"},
        {"name": "Diseño", "status": "Por Finalizar", "priority": "Baja"},
    ]}

    result = await orchestrator.process_message("tareas activas", "u1", "s1")
    assert result.completed
    assert tool_service.calls_to("search_tasks") == [{"onlyActive": True, "limit": 20}]
    assert "1. 🔴 **Reporte**" in result.response
    assert "2. 🟢 **Diseño**" in result.response


@pytest.mark.asyncio
async def test_empty_task_query_is_not_an_error(orchestrator, tool_service):
    tool_service.responses["search_tasks"] = []
    result = await orchestrator.process_message("tareas activas", "u1", "s1")
    assert result.success
    assert result.response == strings.NO_TASKS_FOUND


@pytest.mark.asyncio
async def test_archive_rejects_non_admins_without_tool_calls(orchestrator, tool_service):
    result = await orchestrator.process_message("eliminar tarea Reporte mensual", "u1", "s1", is_admin=False)
    assert result.process_id == "task-archive"
    assert result.completed
    assert result.response == strings.ARCHIVE_NOT_AUTHORIZED
    assert tool_service.calls == []


@pytest.mark.asyncio
async def test_archive_by_admin(orchestrator, tool_service):
    tool_service.responses["search_tasks"] = [{"id": "t-1", "name": "Reporte mensual", "status": "Backlog"}]
    tool_service.responses["archive_task"] = {"success": True}

    result = await orchestrator.process_message("eliminar tarea Reporte mensual", "u1", "s1", is_admin=True)
    assert 'archivar la tarea "Reporte mensual"' in result.response

    result = await orchestrator.process_message("sí", "u1", "s1", is_admin=True)
    assert tool_service.calls_to("archive_task") == [{"taskId": "t-1"}]
    assert result.response == 'Tarea "Reporte mensual" archivada correctamente.'


@pytest.mark.asyncio
async def test_ambiguous_task_lists_candidates_then_exact_name_succeeds(orchestrator, tool_service):
    tool_service.responses["search_tasks"] = _search_tasks_by_name([
        {"id": "t-1", "name": "Reporte mensual", "status": "En Proceso"},
        {"id": "t-2", "name": "Reporte anual", "status": "Backlog"},
        {"id": "t-3", "name": "Reporte semanal", "status": "Por Iniciar"},
    ])
    tool_service.responses["update_task"] = {"success": True}

    result = await orchestrator.process_message("marcar tarea Reporte como finalizada", "u1", "s1")
    assert result.completed
    for name in ("Reporte mensual", "Reporte anual", "Reporte semanal"):
        assert name in result.response
    assert tool_service.calls_to("update_task") == []
    assert not await orchestrator.has_active_process("s1")

    result = await orchestrator.process_message("marcar tarea Reporte anual como finalizada", "u1", "s1")
    assert result.status == ProcessStatus.CONFIRMING
    assert 'de "Backlog" a "Finalizado"' in result.response

    result = await orchestrator.process_message("sí", "u1", "s1")
    assert result.completed
    assert tool_service.calls_to("update_task") == [{"taskId": "t-2", "status": "Finalizado"}]


@pytest.mark.asyncio
async def test_assignment_flow(orchestrator, tool_service):
    tool_service.responses["search_tasks"] = [{"id": "t-1", "name": "Reporte mensual", "status": "En Proceso"}]
    tool_service.responses["get_team_workload"] = [{"id": "u-7", "userName": "Juan López", "taskCount": 3}]
    tool_service.responses["update_task"] = {"success": True}

    result = await orchestrator.process_message("asignar tarea Reporte mensual a Juan", "u1", "s1")
    assert result.response == 'Voy a asignar la tarea "Reporte mensual" a Juan López. ¿Confirmas?'

    result = await orchestrator.process_message("sí", "u1", "s1")
    assert tool_service.calls_to("update_task") == [{"taskId": "t-1", "AssignedTo": ["u-7"]}]
    assert result.response == 'Tarea "Reporte mensual" asignada a Juan López.'


@pytest.mark.asyncio
async def test_sessions_are_isolated(orchestrator, tool_service):
    tool_service.responses["search_clients"] = [{"id": "c-1", "name": "Acme"}]
    tool_service.responses["create_task"] = {"success": True}

    first, second = await asyncio.gather(
        orchestrator.process_message("crear tarea Primera tarea para cliente Acme", "u1", "s-a"),
        orchestrator.process_message("crear tarea", "u2", "s-b"),
    )
    assert first.status == ProcessStatus.CONFIRMING
    assert second.awaiting_input.slot_name == "task_name"

    done = await orchestrator.process_message("sí", "u1", "s-a")
    assert done.completed

    state = await orchestrator.get_active_process_state("s-b")
    assert state.current_step == "collect_task_name"
    assert "task_name" not in state.slots
    assert await orchestrator.get_active_process_state("s-a") is None

    result = await orchestrator.process_message("Segunda tarea", "u2", "s-b")
    assert result.awaiting_input.slot_name == "client_name"


@pytest.mark.asyncio
async def test_new_request_supersedes_pending_confirmation(orchestrator, tool_service):
    tool_service.responses["search_clients"] = [{"id": "c-1", "name": "Acme"}]
    await orchestrator.process_message("crear tarea Revisión para cliente Acme", "u1", "s1")

    result = await orchestrator.process_message("mis tareas", "u1", "s1")
    assert result.process_id == "task-query"
    assert result.completed
    assert tool_service.calls_to("create_task") == []
    assert not await orchestrator.has_active_process("s1")


@pytest.mark.asyncio
async def test_cancel_mid_collection(orchestrator):
    await orchestrator.process_message("crear tarea", "u1", "s1")
    result = await orchestrator.process_message("cancelar", "u1", "s1")
    assert result.status == ProcessStatus.CANCELLED
    assert result.response == strings.OPERATION_CANCELLED
    assert not await orchestrator.has_active_process("s1")


@pytest.mark.asyncio
async def test_unmatched_message_is_left_to_the_fallback(orchestrator):
    assert await orchestrator.process_message("¿qué tiempo hace hoy?", "u1", "s1") is None


@pytest.mark.asyncio
async def test_negative_reply_at_confirmation_never_creates(orchestrator, tool_service):
    tool_service.responses["search_clients"] = [{"id": "c-1", "name": "Acme"}]
    tool_service.responses["create_task"] = {"success": True}
    await orchestrator.process_message("crear tarea Revisión de diseño para cliente Acme", "u1", "s1")

    result = await orchestrator.process_message("no, no quiero confirmar", "u1", "s1")
    assert result.status == ProcessStatus.CANCELLED
    assert result.response == strings.OPERATION_CANCELLED
    assert tool_service.calls_to("create_task") == []


@pytest.mark.asyncio
async def test_concurrent_turns_of_one_session_run_in_order(orchestrator, tool_service):
    async def slow_search(arguments):
        await asyncio.sleep(0.05)
        return [{"id": "c-1", "name": "Acme"}]

    tool_service.responses["search_clients"] = slow_search
    tool_service.responses["create_task"] = {"success": True}

    started, confirmed = await asyncio.gather(
        orchestrator.process_message("crear tarea Revisión de diseño para cliente Acme", "u1", "s1"),
        orchestrator.process_message("sí", "u1", "s1"),
    )
    assert started.status == ProcessStatus.CONFIRMING
    assert confirmed.status == ProcessStatus.COMPLETED
    assert [name for name, _ in tool_service.calls] == ["search_clients", "create_task"]
    assert len(tool_service.calls_to("create_task")) == 1
