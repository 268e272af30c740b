# /app/workflows/definitions/common.py

"""Formatting and lookup helpers shared by the task process definitions."""

from typing import Any, Dict, List

from app.config import strings
from app.config.rules import PRIORITY_MARKERS
from app.models.flow import ProcessContext
from app.services.tool_service import records
from app.workflows.extractors import normalize_message

MAX_LISTED_TASKS = 10
MAX_TASK_CANDIDATES = 5


def format_task_list(tasks: List[Dict[str, Any]], context: ProcessContext) -> str:
    if not tasks:
        return strings.NO_TASKS_FOUND

    count = len(tasks)
    if context.slots.get("only_active"):
        header = strings.TASK_LIST_HEADER_ACTIVE.format(count=count)
    elif context.slots.get("status_filter"):
        header = strings.TASK_LIST_HEADER_STATUS.format(count=count, status=context.slots["status_filter"])
    elif context.slots.get("priority_filter"):
        header = strings.TASK_LIST_HEADER_PRIORITY.format(count=count, priority=context.slots["priority_filter"])
    else:
        header = strings.TASK_LIST_HEADER.format(count=count)

    lines = []
    for index, task in enumerate(tasks[:MAX_LISTED_TASKS], start=1):
        client = task.get("clientName")
        lines.append(strings.TASK_LIST_ITEM.format(
            index=index,
            marker=PRIORITY_MARKERS.get(task.get("priority"), PRIORITY_MARKERS["Baja"]),
            name=task.get("name") or strings.UNNAMED_TASK,
            status=task.get("status") or strings.NO_STATUS,
            client=f" | {client}" if client else "",
        ))

    text = f"{header}\n\n" + "\n".join(lines)
    if count > MAX_LISTED_TASKS:
        text += "\n\n" + strings.TASK_LIST_MORE.format(count=count - MAX_LISTED_TASKS)
    return text


def resolve_task_match(context: ProcessContext) -> Dict[str, Any]:
    """
    Picks the task the user meant from the search_tasks result.

    An exact (normalised) name match wins, then a single result. Several
    results without an exact match become candidates and nothing is picked.
    """
    tasks = records(context.tool_results.get("search_tasks"))
    identifier = normalize_message(context.slots.get("task_identifier") or "")

    match = None
    for task in tasks:
        if normalize_message(task.get("name") or "") == identifier:
            match = task
            break
    if match is None and len(tasks) == 1:
        match = tasks[0]

    if match is not None:
        return {
            "task_id": match.get("id"),
            "task_name": match.get("name"),
            "current_status": match.get("status"),
        }
    if tasks:
        return {"task_candidates": tasks[:MAX_TASK_CANDIDATES]}
    return {}


def format_task_candidates(context: ProcessContext) -> str:
    lines = [
        strings.TASK_CANDIDATE_LINE.format(
            index=index,
            name=task.get("name") or strings.UNNAMED_TASK,
            status=task.get("status") or strings.NO_STATUS,
        )
        for index, task in enumerate(context.slots.get("task_candidates") or [], start=1)
    ]
    return strings.TASK_CANDIDATES.format(
        identifier=context.slots.get("task_identifier"),
        candidates="\n".join(lines),
    )


def task_search_args(context: ProcessContext) -> Dict[str, Any]:
    return {"name": context.slots.get("task_identifier"), "limit": MAX_TASK_CANDIDATES}
