# /app/workflows/registry.py

import logging
from typing import Dict, Iterator, List, Optional

from app.models.process import ProcessDefinition
from app.workflows.validator import ProcessDefinitionError, validate_definition

logger = logging.getLogger(__name__)


class ProcessRegistry:
    """
    Holds the process definitions known to the engine, in registration order.

    Registration order is the final tie-break when two processes match a
    message with equal priority and confidence.
    """

    def __init__(self, definitions: Optional[List[ProcessDefinition]] = None):
        self._definitions: Dict[str, ProcessDefinition] = {}
        for definition in definitions or []:
            self.register(definition)

    def register(self, definition: ProcessDefinition) -> None:
        if definition.id in self._definitions:
            raise ProcessDefinitionError(definition.id, "DUPLICATE_PROCESS", "A process with this id is already registered")

        result = validate_definition(definition)
        if not result["is_valid"]:
            raise ProcessDefinitionError(definition.id, result["error_code"], result["message"])

        self._definitions[definition.id] = definition
        logger.info(f"Registered process '{definition.id}' v{definition.version} ({len(definition.steps)} steps)")

    def get(self, process_id: str) -> Optional[ProcessDefinition]:
        return self._definitions.get(process_id)

    def all(self) -> List[ProcessDefinition]:
        return list(self._definitions.values())

    def __contains__(self, process_id: str) -> bool:
        return process_id in self._definitions

    def __iter__(self) -> Iterator[ProcessDefinition]:
        return iter(list(self._definitions.values()))

    def __len__(self) -> int:
        return len(self._definitions)


def build_default_registry() -> ProcessRegistry:
    """Registry with the built-in task management processes."""
    from app.workflows.definitions.help import HELP_PROCESS
    from app.workflows.definitions.task_archive import TASK_ARCHIVE_PROCESS
    from app.workflows.definitions.task_creation import TASK_CREATION_PROCESS
    from app.workflows.definitions.task_query import TASK_QUERY_PROCESS, WORKLOAD_QUERY_PROCESS
    from app.workflows.definitions.task_update import TASK_UPDATE_PROCESS

    return ProcessRegistry([
        TASK_CREATION_PROCESS,
        TASK_QUERY_PROCESS,
        WORKLOAD_QUERY_PROCESS,
        TASK_UPDATE_PROCESS,
        TASK_ARCHIVE_PROCESS,
        HELP_PROCESS,
    ])
