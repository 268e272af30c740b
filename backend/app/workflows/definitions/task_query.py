# /app/workflows/definitions/task_query.py

from typing import Any, Dict

from app.config import strings
from app.config.rules import TASK_PRIORITIES, TASK_STATUSES
from app.models.flow import ProcessContext
from app.models.process import (
    Branch,
    BranchStep,
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
from app.workflows.definitions.common import format_task_list
from app.workflows.extractors import detect_query_filters

MAX_WORKLOAD_BAR = 10


def search_tasks_args(context: ProcessContext) -> Dict[str, Any]:
    args: Dict[str, Any] = {"limit": context.slots.get("limit") or 20}
    if context.slots.get("only_active"):
        args["onlyActive"] = True
    if context.slots.get("status_filter"):
        args["status"] = context.slots["status_filter"]
    if context.slots.get("priority_filter"):
        args["priority"] = context.slots["priority_filter"]
    return args


def task_list_response(context: ProcessContext) -> str:
    return format_task_list(records(context.tool_results.get("search_tasks")), context)


def workload_response(context: ProcessContext) -> str:
    members = records(context.tool_results.get("get_team_workload"))
    if not members:
        return strings.NO_WORKLOAD_DATA

    members.sort(key=lambda member: -(member.get("taskCount") or 0))
    lines = []
    for index, member in enumerate(members, start=1):
        count = member.get("taskCount") or 0
        bar = "█" * min(count, MAX_WORKLOAD_BAR) + ("..." if count > MAX_WORKLOAD_BAR else "")
        lines.append(strings.WORKLOAD_LINE.format(
            index=index, user_name=member.get("userName"), count=count, bar=bar
        ).rstrip())
    return f"{strings.WORKLOAD_HEADER}\n\n" + "\n".join(lines)


TASK_QUERY_PROCESS = ProcessDefinition(
    id="task-query",
    name="Consulta de Tareas",
    description="Lista las tareas del usuario, con filtros por estado, prioridad o solo activas",
    version="1.0.0",
    triggers=[
        ProcessTrigger(type="command", commands=["/tareas"], priority=120),
        ProcessTrigger(
            type="pattern",
            patterns=[
                r"^(?:mis\s+)?tareas$",
                r"^(?:mostrar?|ver|listar?)\s+(?:mis\s+)?tareas$",
                r"^(?:cuántas?|cuantas?)\s+tareas\s+tengo",
                r"^(?:que|qué)\s+tareas\s+tengo",
                r"^tareas\s+(?:pendientes|activas|finalizadas|en\s+proceso|de\s+alta\s+prioridad|urgentes)",
            ],
            priority=110,
        ),
        ProcessTrigger(type="intent", intents=["TASK_QUERY"], priority=100),
        ProcessTrigger(
            type="keyword",
            keywords=["mis tareas", "ver tareas", "mostrar tareas", "listar tareas",
                      "tareas pendientes", "tareas activas", "my tasks", "show tasks"],
            priority=90,
        ),
    ],
    slots=[
        ProcessSlot(
            name="query_type",
            description="tipo de consulta",
            extract_from="default",
            default_value="all",
            validation=SlotValidation(enum=["all", "active", "by_status", "by_priority"]),
        ),
        ProcessSlot(name="status_filter", description="estado", validation=SlotValidation(enum=TASK_STATUSES)),
        ProcessSlot(name="priority_filter", description="prioridad", validation=SlotValidation(enum=TASK_PRIORITIES)),
        ProcessSlot(name="only_active", type="boolean", description="solo tareas activas",
                    extract_from="default", default_value=False),
        ProcessSlot(name="limit", type="number", description="límite de resultados",
                    extract_from="default", default_value=20),
    ],
    steps=[
        BranchStep(
            id="detect_query_type",
            name="Detectar tipo de consulta",
            extractor=detect_query_filters,
            branches=[Branch(condition=lambda ctx: True, next_step="execute_query")],
        ),
        ExecuteStep(id="execute_query", name="Buscar tareas", tool="search_tasks",
                    tool_args=search_tasks_args, next_step="format_response"),
        RespondStep(id="format_response", name="Formatear respuesta", response=task_list_response),
    ],
    initial_step="detect_query_type",
    config=ProcessConfig(requires_confirmation=False, max_retries=2, timeout=60000, allow_cancel=False),
    quick_replies=[
        QuickReply(label="Tareas activas", payload="tareas activas"),
        QuickReply(label="Carga de trabajo", payload="carga de trabajo"),
    ],
    metadata={"tags": ["tasks", "query", "core"]},
)


WORKLOAD_QUERY_PROCESS = ProcessDefinition(
    id="workload-query",
    name="Consulta de Carga de Trabajo",
    description="Muestra cuántas tareas activas tiene cada miembro del equipo",
    version="1.0.0",
    triggers=[
        ProcessTrigger(type="command", commands=["/carga"], priority=120),
        ProcessTrigger(
            type="pattern",
            patterns=[
                r"^carga\s+(?:de\s+)?trabajo",
                r"^workload",
                r"^(?:cuántas?|cuantas?)\s+tareas\s+tiene\s+(\w+)",
                r"^tareas\s+del\s+equipo",
                r"^distribuci[oó]n\s+(?:de\s+)?tareas",
            ],
            priority=110,
        ),
        ProcessTrigger(type="intent", intents=["WORKLOAD"], priority=100),
        ProcessTrigger(
            type="keyword",
            keywords=["carga de trabajo", "workload", "tareas del equipo", "balance de carga"],
            priority=90,
        ),
    ],
    steps=[
        ExecuteStep(id="get_workload", name="Obtener carga de trabajo", tool="get_team_workload",
                    next_step="format_workload"),
        RespondStep(id="format_workload", name="Formatear carga de trabajo", response=workload_response),
    ],
    initial_step="get_workload",
    config=ProcessConfig(requires_confirmation=False, max_retries=2, timeout=60000, allow_cancel=False),
    metadata={"tags": ["analytics", "workload", "team"]},
)
