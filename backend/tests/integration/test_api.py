# backend/tests/integration/test_api.py
from app.config import strings
from app.config.settings import settings

API_PREFIX = f"/api/{settings.api_version}"


def test_health_endpoints(test_client):
    assert test_client.get("/health").json()["status"] == "healthy"
    assert test_client.get("/health/live").json() == {"status": "alive"}

    ready = test_client.get("/health/ready")
    assert ready.status_code == 200
    assert ready.json()["processes"] == 6
    assert ready.json()["session_store"] == "memory"


def test_list_processes(test_client):
    response = test_client.get(f"{API_PREFIX}/processes")
    assert response.status_code == 200
    processes = response.json()
    assert [p["id"] for p in processes][:2] == ["task-creation", "task-query"]
    creation = processes[0]
    assert creation["requires_confirmation"] is True
    assert creation["version"] == "1.0.0"


def test_chat_runs_a_process_across_turns(test_client, tool_service):
    tool_service.responses["search_clients"] = [{"id": "c-1", "name": "Acme"}]
    tool_service.responses["create_task"] = {"success": True}

    payload = {"message": "crear tarea Revisión de diseño para cliente Acme", "user_id": "u1", "session_id": "web-1"}
    response = test_client.post(f"{API_PREFIX}/chat", json=payload)
    assert response.status_code == 200
    body = response.json()
    assert body["handled_by"] == "process"
    assert body["process_id"] == "task-creation"
    assert body["status"] == "confirming"
    assert body["completed"] is False
    assert [reply["payload"] for reply in body["quick_replies"]] == ["sí", "cancelar"]
    assert body["metrics"]["tokens_used"] == 0
    assert body["metrics"]["estimated_tokens_saved"] > 3000
    assert len(body["conversation_history"]) == 2

    state = test_client.get(f"{API_PREFIX}/chat/sessions/web-1").json()
    assert state["current_step"] == "confirm_task"
    assert state["awaiting_confirmation"] is True

    payload.update(message="sí", conversation_history=body["conversation_history"])
    body = test_client.post(f"{API_PREFIX}/chat", json=payload).json()
    assert body["status"] == "completed"
    assert body["completed"] is True
    assert len(body["conversation_history"]) == 4

    assert test_client.get(f"{API_PREFIX}/chat/sessions/web-1").status_code == 404


def test_clear_session(test_client):
    test_client.post(f"{API_PREFIX}/chat", json={"message": "crear tarea", "user_id": "u1", "session_id": "web-2"})
    assert test_client.get(f"{API_PREFIX}/chat/sessions/web-2").status_code == 200

    response = test_client.delete(f"{API_PREFIX}/chat/sessions/web-2")
    assert response.status_code == 200
    assert response.json()["success"] is True
    assert test_client.get(f"{API_PREFIX}/chat/sessions/web-2").status_code == 404


def test_unmatched_message_falls_back_to_llm(test_client):
    response = test_client.post(f"{API_PREFIX}/chat", json={"message": "cuéntame un chiste", "user_id": "u1"})
    body = response.json()
    assert body["handled_by"] == "llm"
    assert body["content"] == strings.ERROR_AI_CONNECTION
    assert body["session_id"].startswith("session_u1_")


def test_processes_only_never_calls_the_llm(test_client):
    response = test_client.post(f"{API_PREFIX}/chat", json={
        "message": "cuéntame un chiste", "user_id": "u1", "processes_only": True,
    })
    body = response.json()
    assert body["handled_by"] == "process"
    assert body["content"] == strings.PROCESSES_ONLY_NO_MATCH


def test_skip_processes_goes_straight_to_llm(test_client, tool_service):
    response = test_client.post(f"{API_PREFIX}/chat", json={
        "message": "tareas activas", "user_id": "u1", "skip_processes": True,
    })
    assert response.json()["handled_by"] == "llm"
    assert tool_service.calls == []


def test_chat_request_validation(test_client):
    response = test_client.post(f"{API_PREFIX}/chat", json={"message": "", "user_id": "u1"})
    assert response.status_code == 422


def test_api_key_is_enforced_when_configured(test_client, mocker):
    mocker.patch.object(settings, "api_key", "top-secret")
    assert test_client.get(f"{API_PREFIX}/processes").status_code == 403
    response = test_client.get(f"{API_PREFIX}/processes", headers={"X-API-KEY": "top-secret"})
    assert response.status_code == 200
