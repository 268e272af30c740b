# /app/workflows/validator.py

"""
Pure validation functions for process definitions and slot values.

Definition checks run once, at registration time, and reject graphs the
executor could not walk safely. Slot checks run every time a value is about
to be written into a ProcessContext.

All functions are:
- Pure (no side effects)
- Deterministic (same input = same output)
- No tool calls
- No AI calls
- No logging
"""

from collections import deque
from typing import Any, Dict, List, Optional, Set, Tuple, TypedDict

from app.config import strings
from app.models.process import BLOCKING_STEP_TYPES, ProcessDefinition, ProcessSlot
from app.workflows.extractors import normalize_message


class ProcessDefinitionError(ValueError):
    """Raised when a process definition is rejected at registration time."""

    def __init__(self, process_id: str, error_code: str, message: str):
        self.process_id = process_id
        self.error_code = error_code
        super().__init__(f"[{process_id}] {error_code}: {message}")


class ValidationResult(TypedDict):
    """Result of a validation check."""
    is_valid: bool
    error_code: Optional[str]
    message: Optional[str]


class SlotValidationResult(ValidationResult):
    """Slot check result; value holds the canonical form of an accepted value."""
    value: Any


def _ok() -> ValidationResult:
    return {"is_valid": True, "error_code": None, "message": None}


def _error(error_code: str, message: str) -> ValidationResult:
    return {"is_valid": False, "error_code": error_code, "message": message}


def is_slot_filled(value: Any) -> bool:
    """None, blank strings and empty collections count as missing."""
    if value is None:
        return False
    if isinstance(value, str) and not value.strip():
        return False
    if isinstance(value, (list, dict)) and len(value) == 0:
        return False
    return True


def validate_slot_value(slot: ProcessSlot, value: Any) -> SlotValidationResult:
    """
    Validate a candidate value against a slot's rules.

    Enum values are matched ignoring case and accents, and the canonical enum
    member is returned in `value` so "alta" is stored as "Alta".
    """
    label = slot.description or slot.name

    if not is_slot_filled(value):
        return {
            "is_valid": False,
            "error_code": "EMPTY_VALUE",
            "message": strings.DEFAULT_SLOT_PROMPT.format(description=label),
            "value": None,
        }

    rules = slot.validation
    if rules is None:
        return {"is_valid": True, "error_code": None, "message": None, "value": value}

    if rules.enum:
        wanted = normalize_message(str(value))
        for option in rules.enum:
            if normalize_message(option) == wanted:
                return {"is_valid": True, "error_code": None, "message": None, "value": option}
        message = strings.INVALID_SLOT_VALUE.format(value=value, description=label)
        message += " " + strings.INVALID_SLOT_OPTIONS.format(options=", ".join(rules.enum))
        return {"is_valid": False, "error_code": "INVALID_OPTION", "message": message, "value": None}

    if isinstance(value, str):
        if rules.min_length is not None and len(value.strip()) < rules.min_length:
            message = strings.INVALID_SLOT_VALUE.format(value=value, description=label)
            message += " " + strings.INVALID_SLOT_MIN_LENGTH.format(min_length=rules.min_length)
            return {"is_valid": False, "error_code": "TOO_SHORT", "message": message, "value": None}
        if rules.max_length is not None and len(value.strip()) > rules.max_length:
            message = strings.INVALID_SLOT_VALUE.format(value=value, description=label)
            message += " " + strings.INVALID_SLOT_MAX_LENGTH.format(max_length=rules.max_length)
            return {"is_valid": False, "error_code": "TOO_LONG", "message": message, "value": None}

    return {"is_valid": True, "error_code": None, "message": None, "value": value}


def validate_step_references(definition: ProcessDefinition) -> ValidationResult:
    """Every step id is unique and every transition names an existing step."""
    step_ids: Set[str] = set()
    for step in definition.steps:
        if step.id in step_ids:
            return _error("DUPLICATE_STEP", f"Step '{step.id}' is defined more than once")
        step_ids.add(step.id)

    if definition.initial_step not in step_ids:
        return _error("UNKNOWN_INITIAL_STEP", f"Initial step '{definition.initial_step}' is not defined")

    for step in definition.steps:
        for target in _successors(step):
            if target not in step_ids:
                return _error("UNKNOWN_STEP", f"Step '{step.id}' points to undefined step '{target}'")
        if step.type == "branch" and not step.branches:
            return _error("EMPTY_BRANCH", f"Branch step '{step.id}' has no branches")

    return _ok()


def validate_slot_references(definition: ProcessDefinition) -> ValidationResult:
    """Collect steps only ask for declared slots; slot names are unique."""
    names = definition.slot_names
    duplicates = {name for name in names if names.count(name) > 1}
    if duplicates:
        return _error("DUPLICATE_SLOT", f"Slots defined more than once: {', '.join(sorted(duplicates))}")

    for step in definition.steps:
        if step.type != "collect":
            continue
        missing = [name for name in step.slots if name not in names]
        if missing:
            return _error("UNKNOWN_SLOT", f"Step '{step.id}' collects undeclared slots: {', '.join(missing)}")
        for name in step.slots:
            slot = definition.get_slot(name)
            if slot.extract_from == "tool" and not slot.tool_to_call:
                return _error("MISSING_SLOT_TOOL", f"Slot '{name}' extracts from a tool but names none")

    return _ok()


def validate_confirmation_paths(definition: ProcessDefinition) -> ValidationResult:
    """
    Every path from the initial step to a mutating execute step passes
    through a confirm step, for definitions that set `requires_confirmation`.

    Walks (step, confirmed) pairs breadth-first; reaching a mutating step in
    the unconfirmed state is a violation.
    """
    if not definition.config.requires_confirmation:
        return _ok()

    start = (definition.initial_step, False)
    seen: Set[Tuple[str, bool]] = {start}
    queue = deque([start])

    while queue:
        step_id, confirmed = queue.popleft()
        step = definition.get_step(step_id)
        if step is None:
            continue
        if step.type == "execute" and step.mutates and not confirmed:
            return _error(
                "UNCONFIRMED_MUTATION",
                f"Step '{step.id}' changes external state without a preceding confirmation",
            )
        confirmed_after = confirmed or step.type == "confirm"
        for target in _successors(step):
            state = (target, confirmed_after)
            if state not in seen:
                seen.add(state)
                queue.append(state)

    return _ok()


def validate_termination(definition: ProcessDefinition) -> ValidationResult:
    """No cycle may be made only of non-blocking steps."""
    graph: Dict[str, List[str]] = {}
    for step in definition.steps:
        if step.type in BLOCKING_STEP_TYPES:
            continue
        graph[step.id] = [target for target in _successors(step)]

    visiting: Set[str] = set()
    done: Set[str] = set()

    def has_cycle(node: str) -> bool:
        if node in done or node not in graph:
            return False
        if node in visiting:
            return True
        visiting.add(node)
        if any(has_cycle(target) for target in graph[node]):
            return True
        visiting.discard(node)
        done.add(node)
        return False

    for step_id in graph:
        if has_cycle(step_id):
            return _error("NON_BLOCKING_CYCLE", f"Step '{step_id}' is part of a loop that never waits for the user")

    return _ok()


def validate_reachable_end(definition: ProcessDefinition) -> ValidationResult:
    """Some step without a successor can be reached from the initial step."""
    seen: Set[str] = {definition.initial_step}
    queue = deque([definition.initial_step])
    while queue:
        step = definition.get_step(queue.popleft())
        if step is None:
            continue
        targets = _successors(step)
        if not targets:
            return _ok()
        for target in targets:
            if target not in seen:
                seen.add(target)
                queue.append(target)
    return _error("NO_TERMINAL_STEP", "No step that ends the process is reachable from the initial step")


def validate_definition(definition: ProcessDefinition) -> ValidationResult:
    """Runs every structural check and returns the first failure."""
    for check in (
        validate_step_references,
        validate_slot_references,
        validate_confirmation_paths,
        validate_termination,
        validate_reachable_end,
    ):
        result = check(definition)
        if not result["is_valid"]:
            return result
    return _ok()


def _successors(step) -> List[str]:
    targets = []
    if step.next_step:
        targets.append(step.next_step)
    if step.type == "branch":
        targets.extend(branch.next_step for branch in step.branches)
    return targets
