# /app/workflows/extractors.py

"""
Message parsing helpers shared by the intent detector and the executor.

A slot extractor has the signature ``(message, context) -> dict`` and returns
the slots it could infer from the text. Extractors never clear a slot: a
value of None in the returned mapping means "nothing found".
"""

import re
import unicodedata
from datetime import date, timedelta
from typing import Any, Dict, Optional

from app.config.rules import (
    AFFIRMATIVE_BOOLEANS,
    MODIFICATION_RULES,
    MONTHS,
    PROJECT_MODIFICATION_RE,
    STATUS_KEYWORD_RULES,
)

_PUNCTUATION_RE = re.compile(r"[^\w\s]")
_SPACES_RE = re.compile(r"\s+")

# A task name ends before the client, the priority or the end of the message
_TASK_NAME_END = r"(?=\s+para\b|\s+(?:del?|en)\s+(?:el\s+)?cliente\b|\s+con\s+prioridad\b|\s*[.!?]?\s*$)"

TASK_NAME_PATTERNS = [
    re.compile(r"[\"“]([^\"”]+)[\"”]"),
    re.compile(r"'([^']+)'"),
    re.compile(r"\bllamad[ao]\s+(.+?)" + _TASK_NAME_END, re.IGNORECASE),
    re.compile(r"\btarea\s+(?!para\b)(?:de\s+)?(.+?)" + _TASK_NAME_END, re.IGNORECASE),
]

CLIENT_NAME_PATTERNS = [
    re.compile(r"\bdel?\s+cliente[:\s]+(\w[\w&-]*)", re.IGNORECASE),
    re.compile(r"\bpara\s+(?:el\s+)?(?:cliente\s+)?(?!hoy\b|ma[ñn]ana\b)(\w[\w&-]*)", re.IGNORECASE),
    re.compile(r"\bcliente[:\s]+(\w[\w&-]*)", re.IGNORECASE),
    re.compile(r"\bpertenece\s+a\s+(\w[\w&-]*)", re.IGNORECASE),
]

PRIORITY_PATTERNS = [
    re.compile(r"prioridad\s+(alta|media|baja)", re.IGNORECASE),
    re.compile(r"(alta|media|baja)\s+prioridad", re.IGNORECASE),
    re.compile(r"\burgente\b", re.IGNORECASE),
]

DATE_PATTERNS = [
    re.compile(r"\bpara\s+(hoy|mañana|manana)\b", re.IGNORECASE),
    re.compile(r"\bfecha[:\s]+(\d{1,2}[/-]\d{1,2}(?:[/-]\d{2,4})?)", re.IGNORECASE),
    re.compile(r"\b(\d{1,2})\s+de\s+(" + "|".join(MONTHS) + r")\b", re.IGNORECASE),
]

_NUMERIC_DATE_RE = re.compile(r"(\d{1,2})[/-](\d{1,2})(?:[/-](\d{2,4}))?")
_ASSIGN_RE = re.compile(r"\basignar?\s+(?:.*?\s+)?a\s+(\w+)", re.IGNORECASE)
_PRIORITY_WORD_RE = re.compile(r"\bprioridad\b.*?\b(alta|media|baja)\b|\b(alta|media|baja)\b.*?\bprioridad\b")


def normalize_message(message: str) -> str:
    """Lowercase, strip accents and punctuation, collapse whitespace."""
    text = unicodedata.normalize("NFD", (message or "").lower().strip())
    text = "".join(ch for ch in text if unicodedata.category(ch) != "Mn")
    text = _PUNCTUATION_RE.sub(" ", text)
    return _SPACES_RE.sub(" ", text).strip()


def parse_date(text: str, today: Optional[date] = None) -> Optional[str]:
    """Parses 'hoy', 'mañana', 'dd/mm[/yyyy]' or '15 de marzo' into an ISO date."""
    today = today or date.today()
    lower = text.lower()

    if "hoy" in lower:
        return today.isoformat()
    if "mañana" in lower or "manana" in lower:
        return (today + timedelta(days=1)).isoformat()

    try:
        numeric = _NUMERIC_DATE_RE.search(text)
        if numeric:
            day, month = int(numeric.group(1)), int(numeric.group(2))
            year = today.year
            if numeric.group(3):
                year = int(numeric.group(3))
                if year < 100:
                    year += 2000
            return date(year, month, day).isoformat()

        for name, month in MONTHS.items():
            named = re.search(r"(\d{1,2})\s+de\s+" + name, lower)
            if named:
                return date(today.year, month, int(named.group(1))).isoformat()
    except ValueError:
        return None

    return None


def extract_entities(message: str, today: Optional[date] = None) -> Dict[str, Any]:
    """Extracts task name, client name, priority and due date from free text."""
    entities: Dict[str, Any] = {}

    for pattern in TASK_NAME_PATTERNS:
        match = pattern.search(message)
        if match and match.group(1).strip():
            entities["task_name"] = match.group(1).strip()
            break

    for pattern in CLIENT_NAME_PATTERNS:
        match = pattern.search(message)
        if match:
            entities["client_name"] = match.group(1).strip()
            break

    for pattern in PRIORITY_PATTERNS:
        match = pattern.search(message)
        if match:
            if "urgente" in match.group(0).lower():
                entities["priority"] = "Alta"
            else:
                entities["priority"] = match.group(1).capitalize()
            break

    for pattern in DATE_PATTERNS:
        match = pattern.search(message)
        if match:
            due_date = parse_date(match.group(0), today)
            if due_date:
                entities["due_date"] = due_date
            break

    return entities


def detect_modifications(message: str) -> Dict[str, Any]:
    """Changes requested while a confirmation is pending ("prioridad alta", "proyecto: X")."""
    normalized = normalize_message(message)
    modifications: Dict[str, Any] = {}

    for slot_name, phrases, value in MODIFICATION_RULES:
        if slot_name in modifications:
            continue
        if any(phrase in normalized for phrase in phrases):
            modifications[slot_name] = value

    project = PROJECT_MODIFICATION_RE.search(message)
    if project:
        modifications["project"] = project.group(1).strip()

    return modifications


def detect_query_filters(message: str, context) -> Dict[str, Any]:
    """Slot extractor for task queries: active-only, status or priority filters."""
    text = normalize_message(message)

    if any(word in text for word in ("activa", "carga", "workload")):
        return {"only_active": True, "query_type": "active"}
    if "pendiente" in text or "por iniciar" in text:
        return {"status_filter": "Por Iniciar", "query_type": "by_status"}
    if "en proceso" in text:
        return {"status_filter": "En Proceso", "query_type": "by_status"}
    if any(word in text for word in ("finalizada", "terminada", "completada")):
        return {"status_filter": "Finalizado", "query_type": "by_status"}
    if "alta prioridad" in text or "prioridad alta" in text or "urgente" in text:
        return {"priority_filter": "Alta", "query_type": "by_priority"}
    if "baja prioridad" in text or "prioridad baja" in text:
        return {"priority_filter": "Baja", "query_type": "by_priority"}
    return {}


def detect_update_changes(message: str, context) -> Dict[str, Any]:
    """Slot extractor for task updates: new status, new priority or assignee."""
    text = normalize_message(message)
    identifier = context.slots.get("task_identifier")
    if identifier:
        text = text.replace(normalize_message(identifier), " ")

    changes: Dict[str, Any] = {}

    for pattern, status in STATUS_KEYWORD_RULES:
        if pattern.search(text):
            changes["new_status"] = status
            changes["update_type"] = "status"
            break

    priority = None
    if "urgente" in text:
        priority = "Alta"
    else:
        match = _PRIORITY_WORD_RE.search(text)
        if match:
            priority = (match.group(1) or match.group(2)).capitalize()
    if priority:
        changes["new_priority"] = priority
        changes["update_type"] = "priority"

    assign = _ASSIGN_RE.search(message)
    if assign:
        changes["assign_to"] = assign.group(1)
        changes["update_type"] = "assign"

    return changes


def parse_slot_value(slot, raw: str) -> Any:
    """Coerces a raw user reply into the slot's declared type."""
    text = (raw or "").strip()
    if slot.type == "number":
        try:
            number = float(text.replace(",", "."))
        except ValueError:
            return None
        return int(number) if number.is_integer() else number
    if slot.type == "boolean":
        return normalize_message(text) in AFFIRMATIVE_BOOLEANS
    if slot.type == "array":
        return [part.strip() for part in text.split(",") if part.strip()]
    if slot.type == "date":
        return parse_date(text) or text
    return text
