# /app/workflows/definitions/task_update.py

"""
Task update: find the task by name, then change its status, priority or
assignee after confirmation. Ambiguous names end the process with a list of
candidates instead of guessing.
"""

from typing import Any, Dict

from app.config import strings
from app.config.rules import TASK_PRIORITIES, TASK_STATUSES
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
    RespondStep,
    SlotValidation,
)
from app.services.tool_service import records
from app.workflows.definitions.common import format_task_candidates, resolve_task_match, task_search_args
from app.workflows.extractors import detect_update_changes, normalize_message


def pick_assignee(context: ProcessContext) -> Dict[str, Any]:
    wanted = normalize_message(context.slots.get("assign_to") or "")
    if not wanted:
        return {}
    for member in records(context.tool_results.get("get_team_workload")):
        name = member.get("userName") or ""
        if wanted in normalize_message(name):
            return {"assign_to_user_id": member.get("id") or member.get("userId"), "assign_to_user_name": name}
    return {}


def confirm_status_message(context: ProcessContext) -> str:
    return strings.CONFIRM_STATUS_CHANGE.format(
        task_name=context.slots.get("task_name"),
        current_status=context.slots.get("current_status") or strings.NO_STATUS,
        new_status=context.slots.get("new_status"),
    )


def update_task_args(context: ProcessContext) -> Dict[str, Any]:
    args: Dict[str, Any] = {"taskId": context.slots.get("task_id")}
    if context.slots.get("new_status"):
        args["status"] = context.slots["new_status"]
    if context.slots.get("new_priority"):
        args["priority"] = context.slots["new_priority"]
    return args


def update_success_message(context: ProcessContext) -> str:
    slots = context.slots
    if slots.get("assign_to_user_name") and slots.get("update_type") == "assign":
        return strings.TASK_ASSIGNED.format(task_name=slots.get("task_name"), user_name=slots["assign_to_user_name"])
    if slots.get("new_status"):
        return strings.TASK_STATUS_UPDATED.format(task_name=slots.get("task_name"), new_status=slots["new_status"])
    if slots.get("new_priority"):
        return strings.TASK_PRIORITY_UPDATED.format(task_name=slots.get("task_name"), new_priority=slots["new_priority"])
    return strings.TASK_UPDATED.format(task_name=slots.get("task_name"))


TASK_UPDATE_PROCESS = ProcessDefinition(
    id="task-update",
    name="Actualización de Tareas",
    description="Cambia el estado, la prioridad o la asignación de una tarea existente",
    version="1.0.0",
    triggers=[
        ProcessTrigger(
            type="pattern",
            patterns=[
                r"^(?:marcar?|poner?)\s+(?:la\s+)?tarea\s+(?P<task_identifier>.+?)\s+como\s+\w+",
                r"^cambiar?\s+(?:el\s+)?estado\s+(?:de\s+)?(?:la\s+tarea\s+)?(?P<task_identifier>.+?)\s+a\s+\w+",
                r"^cambiar?\s+(?:la\s+)?prioridad\s+(?:de\s+)?(?:la\s+tarea\s+)?(?P<task_identifier>.+?)\s+a\s+\w+",
                r"^asignar?\s+(?:la\s+)?tarea\s+(?P<task_identifier>.+?)\s+a\s+(?P<assign_to>\w+)",
                r"^(?:actualizar?|editar?|modificar?|cambiar?)\s+(?:la\s+)?tarea\s+(?P<task_identifier>.+)",
            ],
            priority=110,
        ),
        ProcessTrigger(type="intent", intents=["TASK_UPDATE"], priority=100),
        ProcessTrigger(
            type="keyword",
            keywords=["actualizar tarea", "editar tarea", "cambiar estado", "marcar como",
                      "asignar tarea", "update task"],
            priority=90,
        ),
    ],
    slots=[
        ProcessSlot(
            name="task_identifier",
            required=True,
            description="nombre de la tarea",
            prompt_if_missing=strings.TASK_IDENTIFIER_PROMPT,
        ),
        ProcessSlot(name="task_id", type="reference", description="ID de la tarea"),
        ProcessSlot(name="task_name", description="nombre de la tarea encontrada"),
        ProcessSlot(name="current_status", description="estado actual"),
        ProcessSlot(name="new_status", description="nuevo estado", validation=SlotValidation(enum=TASK_STATUSES)),
        ProcessSlot(name="new_priority", description="nueva prioridad", validation=SlotValidation(enum=TASK_PRIORITIES)),
        ProcessSlot(name="assign_to", description="usuario a asignar"),
        ProcessSlot(name="assign_to_user_id", type="reference", description="ID del usuario a asignar"),
        ProcessSlot(name="assign_to_user_name", description="usuario encontrado"),
        ProcessSlot(
            name="update_type",
            description="tipo de actualización",
            extract_from="default",
            default_value="general",
            validation=SlotValidation(enum=["general", "status", "priority", "assign"]),
        ),
    ],
    steps=[
        BranchStep(
            id="detect_update_type",
            name="Detectar tipo de actualización",
            extractor=detect_update_changes,
            branches=[Branch(condition=lambda ctx: True, next_step="collect_task_identifier")],
        ),
        CollectStep(id="collect_task_identifier", name="Recolectar identificador de tarea",
                    slots=["task_identifier"], next_step="search_task"),
        ExecuteStep(id="search_task", name="Buscar tarea", tool="search_tasks",
                    tool_args=task_search_args, on_exit=resolve_task_match, next_step="find_matching_task"),
        BranchStep(
            id="find_matching_task",
            name="Encontrar tarea coincidente",
            branches=[
                Branch(condition=lambda ctx: bool(ctx.slots.get("task_id")), next_step="check_update_type"),
                Branch(condition=lambda ctx: bool(ctx.slots.get("task_candidates")), next_step="show_candidates"),
                Branch(condition=lambda ctx: True, next_step="task_not_found"),
            ],
        ),
        RespondStep(id="show_candidates", name="Mostrar candidatas", response=format_task_candidates),
        RespondStep(id="task_not_found", name="Tarea no encontrada", response=strings.TASK_NOT_FOUND.replace(
            "{identifier}", "{task_identifier}")),
        BranchStep(
            id="check_update_type",
            name="Verificar tipo de actualización",
            branches=[
                Branch(condition=lambda ctx: bool(ctx.slots.get("assign_to")) and ctx.slots.get("update_type") == "assign",
                       next_step="search_user_to_assign"),
                Branch(condition=lambda ctx: bool(ctx.slots.get("new_status")), next_step="confirm_status_change"),
                Branch(condition=lambda ctx: bool(ctx.slots.get("new_priority")), next_step="confirm_priority_change"),
                Branch(condition=lambda ctx: True, next_step="ask_what_to_update"),
            ],
        ),
        RespondStep(id="ask_what_to_update", name="Preguntar qué actualizar",
                    response=strings.ASK_WHAT_TO_UPDATE),
        ConfirmStep(id="confirm_status_change", name="Confirmar cambio de estado",
                    confirm_message=confirm_status_message, next_step="execute_update"),
        ConfirmStep(id="confirm_priority_change", name="Confirmar cambio de prioridad",
                    confirm_message=strings.CONFIRM_PRIORITY_CHANGE, next_step="execute_update"),
        ExecuteStep(id="search_user_to_assign", name="Buscar usuario", tool="get_team_workload",
                    on_exit=pick_assignee, next_step="check_user_found"),
        BranchStep(
            id="check_user_found",
            name="Verificar usuario encontrado",
            branches=[
                Branch(condition=lambda ctx: bool(ctx.slots.get("assign_to_user_id")), next_step="confirm_assignment"),
                Branch(condition=lambda ctx: True, next_step="user_not_found"),
            ],
        ),
        RespondStep(id="user_not_found", name="Usuario no encontrado",
                    response=strings.USER_NOT_FOUND.replace("{user_name}", "{assign_to}")),
        ConfirmStep(id="confirm_assignment", name="Confirmar asignación",
                    confirm_message=strings.CONFIRM_ASSIGNMENT.replace("{user_name}", "{assign_to_user_name}"),
                    next_step="execute_assignment"),
        ExecuteStep(
            id="execute_assignment",
            name="Ejecutar asignación",
            tool="update_task",
            tool_args=lambda ctx: {"taskId": ctx.slots.get("task_id"), "AssignedTo": [ctx.slots.get("assign_to_user_id")]},
            mutates=True,
            next_step="update_success",
        ),
        ExecuteStep(id="execute_update", name="Ejecutar actualización", tool="update_task",
                    tool_args=update_task_args, mutates=True, next_step="update_success"),
        RespondStep(id="update_success", name="Actualización exitosa", response=update_success_message),
    ],
    initial_step="detect_update_type",
    config=ProcessConfig(requires_confirmation=True, max_retries=3, timeout=300000, allow_cancel=True),
    metadata={"tags": ["tasks", "update", "core"]},
)
