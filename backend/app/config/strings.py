# /app/config/strings.py

# This file contains all user-facing strings, making them easy to manage,
# update, and eventually localize without changing process logic.
# Placeholders use str.format syntax.

# Task creation
TASK_NAME_PROMPT = "¿Cómo quieres llamar a esta tarea?"
CLIENT_NAME_PROMPT = "¿Para qué cliente es esta tarea?"

CONFIRM_CLIENT_CREATION = 'No encontré un cliente llamado "{client_name}". ¿Deseas que lo cree?'

CONFIRM_TASK_CREATION = """Voy a crear la siguiente tarea:

• Tarea: {task_name}
• Cliente: {client_name}
• Proyecto: {project}
• Prioridad: {priority}
• Estado: {status}

¿Confirmas?"""

TASK_CREATED = '✅ Tarea "{task_name}" creada para {client_name}.'
FOLLOW_UP_TASK_CREATED = "¿Quieres agregar personas o cambiar algo? Solo dime."

# Task query
NO_TASKS_FOUND = "No encontré tareas con esos criterios."
TASK_LIST_HEADER = "Encontré {count} tarea(s):"
TASK_LIST_HEADER_ACTIVE = "Encontré {count} tarea(s) activa(s):"
TASK_LIST_HEADER_STATUS = 'Encontré {count} tarea(s) con estado "{status}":'
TASK_LIST_HEADER_PRIORITY = 'Encontré {count} tarea(s) con prioridad "{priority}":'
TASK_LIST_ITEM = "{index}. {marker} **{name}** - {status}{client}"
TASK_LIST_MORE = "_...y {count} tarea(s) más._"
UNNAMED_TASK = "Sin nombre"
NO_STATUS = "Sin estado"

# Workload
WORKLOAD_HEADER = "**Carga de Trabajo del Equipo**\n_(Solo tareas activas: En Proceso, Por Finalizar)_"
WORKLOAD_LINE = "{index}. **{user_name}**: {count} tarea(s) {bar}"
NO_WORKLOAD_DATA = "No hay tareas activas asignadas al equipo actualmente."

# Task update
TASK_IDENTIFIER_PROMPT = "¿Qué tarea deseas actualizar? (nombre o parte del nombre)"
TASK_CANDIDATES = """No encontré una tarea exacta con "{identifier}". ¿Te refieres a alguna de estas?

{candidates}

Escribe de nuevo tu solicitud con el nombre exacto de la tarea."""
TASK_CANDIDATE_LINE = "{index}. {name} ({status})"
TASK_NOT_FOUND = 'No encontré ninguna tarea con "{identifier}". ¿Podrías verificar el nombre?'
ASK_WHAT_TO_UPDATE = """Encontré la tarea "{task_name}". ¿Qué deseas cambiar?

• Estado (ej: "marcar como finalizada")
• Prioridad (ej: "prioridad alta")
• Asignación (ej: "asignar a Juan")"""
CONFIRM_STATUS_CHANGE = 'Voy a cambiar el estado de "{task_name}" de "{current_status}" a "{new_status}". ¿Confirmas?'
CONFIRM_PRIORITY_CHANGE = 'Voy a cambiar la prioridad de "{task_name}" a "{new_priority}". ¿Confirmas?'
CONFIRM_ASSIGNMENT = 'Voy a asignar la tarea "{task_name}" a {user_name}. ¿Confirmas?'
USER_NOT_FOUND = 'No encontré un usuario llamado "{user_name}". Verifica el nombre e intenta de nuevo.'
TASK_STATUS_UPDATED = 'Tarea "{task_name}" actualizada a estado "{new_status}".'
TASK_PRIORITY_UPDATED = 'Prioridad de "{task_name}" cambiada a "{new_priority}".'
TASK_ASSIGNED = 'Tarea "{task_name}" asignada a {user_name}.'
TASK_UPDATED = 'Tarea "{task_name}" actualizada correctamente.'

# Task archive
ARCHIVE_IDENTIFIER_PROMPT = "¿Qué tarea deseas archivar?"
ARCHIVE_NOT_AUTHORIZED = 'Solo los administradores pueden archivar tareas. Puedo ayudarte a cambiar el estado a "Cancelado" si lo deseas.'
CONFIRM_TASK_ARCHIVE = '¿Estás seguro de que deseas archivar la tarea "{task_name}"? Esta acción cambiará su estado a "Cancelado".'
TASK_ARCHIVED = 'Tarea "{task_name}" archivada correctamente.'

# Help
HELP_MESSAGE = """**¿En qué puedo ayudarte?**

**Tareas:**
• "Crear tarea X para cliente Y"
• "Mis tareas" o "tareas activas"
• "Marcar tarea X como finalizada"
• "Cambiar prioridad de X a alta"

**Consultas:**
• "Carga de trabajo del equipo"
• "Tareas pendientes"
• "Tareas de alta prioridad"

Solo di lo que necesitas en lenguaje natural."""

# Generic process messages
DEFAULT_CONFIRM = "¿Confirmas esta acción?"
DEFAULT_SLOT_PROMPT = "Por favor, proporciona: {description}"
INVALID_SLOT_VALUE = 'El valor "{value}" no es válido para {description}.'
INVALID_SLOT_OPTIONS = "Opciones válidas: {options}."
INVALID_SLOT_MIN_LENGTH = "Debe tener al menos {min_length} caracteres."
INVALID_SLOT_MAX_LENGTH = "Debe tener como máximo {max_length} caracteres."
CONFIRMATION_UPDATED = "Actualizado. {message}"
CONFIRMATION_REPEAT = "No entendí tu respuesta. Responde \"sí\" para confirmar o \"no\" para cancelar.\n\n{message}"
CANCEL_NOT_ALLOWED = "Esta operación no se puede cancelar en este punto.\n\n{message}"
OPERATION_CANCELLED = "Operación cancelada. ¿En qué más puedo ayudarte?"
OPERATION_COMPLETED = "Operación completada."
TOOL_RETRY_PROMPT = "Tuve un problema al procesar tu solicitud. ¿Quieres que lo intente de nuevo?"
GENERIC_ERROR = "Lo siento, ocurrió un problema al procesar tu solicitud. Por favor, intenta de nuevo más tarde."

# Quick replies
QUICK_REPLY_CONFIRM = "Sí, confirmar"
QUICK_REPLY_CANCEL = "Cancelar"

# Chat orchestration
PROCESSES_ONLY_NO_MATCH = "No encontré un proceso que pueda manejar tu solicitud. Por favor, intenta ser más específico."
ERROR_AI_CONNECTION = "Lo siento, tengo problemas para conectarme en este momento. ¿Podrías reformular tu pregunta?"
