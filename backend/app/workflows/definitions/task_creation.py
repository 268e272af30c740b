# /app/workflows/definitions/task_creation.py

"""
Task creation: collect the task and client names, resolve the client (offering
to create it when missing), confirm, then create the task.
"""

from typing import Any, Dict

from app.config import strings
from app.config.rules import TASK_PRIORITIES
from app.models.flow import ProcessContext
from app.models.process import (
    Branch,
    BranchStep,
    CollectStep,
    ConfirmStep,
    ExecuteStep,
    ProcessConfig,
    ProcessDefinition,
    ProcessSlot,
    ProcessTrigger,
    QuickReply,
    RespondStep,
    SlotValidation,
)
from app.services.tool_service import records

DEFAULT_PROJECT = "chatbotTasks"
DEFAULT_PRIORITY = "Media"
DEFAULT_STATUS = "En Proceso"


def pick_found_client(context: ProcessContext) -> Dict[str, Any]:
    clients = records(context.tool_results.get("search_clients"))
    if not clients:
        return {}
    return {"client_id": clients[0].get("id"), "client_found_name": clients[0].get("name")}


def pick_created_client(context: ProcessContext) -> Dict[str, Any]:
    created = context.tool_results.get("create_client")
    if isinstance(created, dict) and created.get("id"):
        return {"client_id": created["id"], "client_found_name": created.get("name") or context.slots.get("client_name")}
    return {}


def confirm_task_message(context: ProcessContext) -> str:
    slots = context.slots
    return strings.CONFIRM_TASK_CREATION.format(
        task_name=slots.get("task_name"),
        client_name=slots.get("client_found_name") or slots.get("client_name"),
        project=slots.get("project") or DEFAULT_PROJECT,
        priority=slots.get("priority") or DEFAULT_PRIORITY,
        status=slots.get("status") or DEFAULT_STATUS,
    )


def create_task_args(context: ProcessContext) -> Dict[str, Any]:
    slots = context.slots
    args = {
        "name": slots.get("task_name"),
        "clientId": slots.get("client_id"),
        "project": slots.get("project") or DEFAULT_PROJECT,
        "priority": slots.get("priority") or DEFAULT_PRIORITY,
        "status": slots.get("status") or DEFAULT_STATUS,
    }
    if slots.get("description"):
        args["description"] = slots["description"]
    if slots.get("due_date"):
        args["endDate"] = slots["due_date"]
    return args


def task_created_message(context: ProcessContext) -> str:
    created = strings.TASK_CREATED.format(
        task_name=context.slots.get("task_name"),
        client_name=context.slots.get("client_found_name") or context.slots.get("client_name"),
    )
    return f"{created}\n\n{strings.FOLLOW_UP_TASK_CREATED}"


TASK_CREATION_PROCESS = ProcessDefinition(
    id="task-creation",
    name="Creación de Tareas",
    description="Crea una tarea nueva buscando automáticamente el cliente",
    version="1.0.0",
    triggers=[
        ProcessTrigger(type="command", commands=["/nueva-tarea", "/crear-tarea"], priority=120),
        ProcessTrigger(
            type="pattern",
            patterns=[
                r"^crea(?:r)?\s+(?:una?\s+)?tarea\s+(.+)",
                r"^nueva\s+tarea\s+(.+)",
                r"^agregar?\s+(?:una?\s+)?tarea\s+(.+)",
                r"^add\s+task\s+(.+)",
                r"^create\s+task\s+(.+)",
            ],
            priority=110,
        ),
        ProcessTrigger(type="intent", intents=["TASK_CREATE"], priority=100),
        ProcessTrigger(
            type="keyword",
            keywords=["crear tarea", "nueva tarea", "agregar tarea", "create task", "new task"],
            priority=90,
        ),
    ],
    slots=[
        ProcessSlot(
            name="task_name",
            required=True,
            description="nombre de la tarea",
            prompt_if_missing=strings.TASK_NAME_PROMPT,
            validation=SlotValidation(min_length=3, max_length=200),
        ),
        ProcessSlot(
            name="client_name",
            required=True,
            description="nombre del cliente",
            prompt_if_missing=strings.CLIENT_NAME_PROMPT,
        ),
        ProcessSlot(
            name="client_id",
            type="reference",
            required=True,
            description="ID del cliente",
        ),
        ProcessSlot(
            name="priority",
            description="prioridad",
            extract_from="default",
            default_value=DEFAULT_PRIORITY,
            validation=SlotValidation(enum=TASK_PRIORITIES),
        ),
        ProcessSlot(name="project", description="proyecto", extract_from="default", default_value=DEFAULT_PROJECT),
        ProcessSlot(
            name="status",
            description="estado inicial",
            extract_from="default",
            default_value=DEFAULT_STATUS,
            validation=SlotValidation(enum=["Por Iniciar", "En Proceso", "Backlog"]),
        ),
        ProcessSlot(name="description", description="descripción"),
        ProcessSlot(name="due_date", type="date", description="fecha de entrega"),
    ],
    steps=[
        CollectStep(id="collect_task_name", name="Recolectar nombre de tarea",
                    slots=["task_name"], next_step="collect_client_name"),
        CollectStep(id="collect_client_name", name="Recolectar cliente",
                    slots=["client_name"], next_step="search_client"),
        ExecuteStep(
            id="search_client",
            name="Buscar cliente",
            tool="search_clients",
            tool_args={"query": "$client_name", "limit": 5},
            on_exit=pick_found_client,
            next_step="check_client_found",
        ),
        BranchStep(
            id="check_client_found",
            name="Verificar cliente encontrado",
            branches=[
                Branch(condition=lambda ctx: bool(ctx.slots.get("client_id")), next_step="confirm_task"),
                Branch(condition=lambda ctx: True, next_step="client_not_found"),
            ],
        ),
        ConfirmStep(
            id="client_not_found",
            name="Cliente no encontrado",
            confirm_message=strings.CONFIRM_CLIENT_CREATION,
            next_step="create_client",
        ),
        ExecuteStep(
            id="create_client",
            name="Crear cliente",
            tool="create_client",
            tool_args={"name": "$client_name"},
            mutates=True,
            on_exit=pick_created_client,
            next_step="confirm_task",
        ),
        ConfirmStep(id="confirm_task", name="Confirmar tarea",
                    confirm_message=confirm_task_message, next_step="create_task"),
        ExecuteStep(id="create_task", name="Crear tarea", tool="create_task",
                    tool_args=create_task_args, mutates=True, next_step="success_response"),
        RespondStep(id="success_response", name="Responder éxito", response=task_created_message),
    ],
    initial_step="collect_task_name",
    config=ProcessConfig(requires_confirmation=True, max_retries=3, timeout=300000, allow_cancel=True),
    quick_replies=[QuickReply(label="Ver mis tareas", payload="mis tareas")],
    metadata={"tags": ["tasks", "crud", "core"]},
)
