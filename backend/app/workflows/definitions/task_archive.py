# /app/workflows/definitions/task_archive.py

"""
Task archive (administrators only). Non-admin users reach the process but are
turned away by its first step, before any tool is called.
"""

from app.config import strings
from app.config.rules import INTENT_KEYWORDS
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
)
from app.workflows.definitions.common import format_task_candidates, resolve_task_match, task_search_args

TASK_ARCHIVE_PROCESS = ProcessDefinition(
    id="task-archive",
    name="Archivar Tarea",
    description="Archiva una tarea cambiando su estado a Cancelado (solo administradores)",
    version="1.0.0",
    triggers=[
        ProcessTrigger(
            type="pattern",
            patterns=[
                r"^(?:eliminar?|borrar?|archivar?)\s+(?:la\s+)?tarea\s+(?P<task_identifier>.+)",
                r"^cancelar?\s+(?:la\s+)?tarea\s+(?P<task_identifier>.+)",
            ],
            priority=110,
        ),
        ProcessTrigger(type="intent", intents=["TASK_ARCHIVE"], priority=100),
        ProcessTrigger(type="keyword", keywords=INTENT_KEYWORDS["TASK_ARCHIVE"], priority=90),
    ],
    slots=[
        ProcessSlot(
            name="task_identifier",
            required=True,
            description="nombre de la tarea",
            prompt_if_missing=strings.ARCHIVE_IDENTIFIER_PROMPT,
        ),
        ProcessSlot(name="task_id", type="reference", description="ID de la tarea"),
        ProcessSlot(name="task_name", description="nombre de la tarea encontrada"),
        ProcessSlot(name="current_status", description="estado actual"),
    ],
    steps=[
        BranchStep(
            id="check_admin",
            name="Verificar permisos",
            branches=[
                Branch(condition=lambda ctx: ctx.user_context.is_admin, next_step="collect_task"),
                Branch(condition=lambda ctx: True, next_step="not_authorized"),
            ],
        ),
        RespondStep(id="not_authorized", name="No autorizado", response=strings.ARCHIVE_NOT_AUTHORIZED),
        CollectStep(id="collect_task", name="Recolectar tarea", slots=["task_identifier"], next_step="search_task"),
        ExecuteStep(id="search_task", name="Buscar tarea", tool="search_tasks",
                    tool_args=task_search_args, on_exit=resolve_task_match, next_step="find_matching_task"),
        BranchStep(
            id="find_matching_task",
            name="Encontrar tarea coincidente",
            branches=[
                Branch(condition=lambda ctx: bool(ctx.slots.get("task_id")), next_step="confirm_archive"),
                Branch(condition=lambda ctx: bool(ctx.slots.get("task_candidates")), next_step="show_candidates"),
                Branch(condition=lambda ctx: True, next_step="task_not_found"),
            ],
        ),
        RespondStep(id="show_candidates", name="Mostrar candidatas", response=format_task_candidates),
        RespondStep(id="task_not_found", name="Tarea no encontrada",
                    response=strings.TASK_NOT_FOUND.replace("{identifier}", "{task_identifier}")),
        ConfirmStep(id="confirm_archive", name="Confirmar archivo",
                    confirm_message=strings.CONFIRM_TASK_ARCHIVE, next_step="execute_archive"),
        ExecuteStep(id="execute_archive", name="Ejecutar archivo", tool="archive_task",
                    tool_args={"taskId": "$task_id"}, mutates=True, next_step="archive_success"),
        RespondStep(id="archive_success", name="Archivo exitoso", response=strings.TASK_ARCHIVED),
    ],
    initial_step="check_admin",
    config=ProcessConfig(requires_confirmation=True, max_retries=2, timeout=120000, allow_cancel=True),
    metadata={"tags": ["tasks", "archive", "admin"]},
)
