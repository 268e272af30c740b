# /app/config/rules.py

import re

# This file contains the keyword vocabularies used to understand chat messages
# without calling the language model. All phrases are written in normalised
# form: lowercase, no accents, no punctuation.

# Intent tags produced by the keyword classifier, mapped to the phrases that
# signal them. Longer phrases score higher.
INTENT_KEYWORDS = {
    "TASK_CREATE": [
        "crear tarea", "crea tarea", "nueva tarea", "agregar tarea",
        "create task", "new task", "add task",
        "necesito una tarea", "quiero crear", "agrega una tarea",
    ],
    "TASK_QUERY": [
        "mis tareas", "mostrar tareas", "ver tareas", "lista tareas",
        "cuantas tareas", "que tareas", "buscar tarea",
        "my tasks", "show tasks", "list tasks",
    ],
    "TASK_UPDATE": [
        "actualizar tarea", "editar tarea", "modificar tarea",
        "cambiar tarea", "update task", "edit task",
        "cambiar estado", "cambiar prioridad", "asignar tarea",
    ],
    "TASK_ARCHIVE": [
        "eliminar tarea", "borrar tarea", "archivar tarea",
        "delete task", "archive task", "remove task",
        "cancelar tarea",
    ],
    "WORKLOAD": [
        "carga de trabajo", "workload", "cuantas tareas tiene",
        "tareas del equipo", "distribucion de tareas",
        "quien tiene mas tareas", "balance de carga",
    ],
    "CLIENT_SEARCH": [
        "buscar cliente", "para el cliente", "pertenece a",
        "del cliente", "search client",
    ],
    "CLIENT_CREATE": [
        "crear cliente", "nuevo cliente", "agregar cliente",
        "create client", "new client",
    ],
    "HELP": [
        "ayuda", "help", "que puedes hacer", "comandos",
        "como funciona", "instrucciones",
    ],
}

# Replies to a pending confirmation (matched against the normalised message)
CONFIRMATION_PATTERNS = [
    re.compile(r"^(si|yes|ok|okay|dale|confirmo|adelante|hazlo|procede|correcto|va)$"),
    re.compile(r"^(esta bien|de acuerdo|afirmativo|claro|por supuesto|si confirmo|si por favor)$"),
    re.compile(r"^(si )?(quiero )?confirmar?$"),
]

# A reply opening with a negation is never read as a yes
NEGATION_PATTERN = re.compile(r"^(no|nunca|jamas|tampoco)\b")

CANCELLATION_PATTERNS = [
    re.compile(r"^(no|cancel|cancelar|detener|para|stop|olvida|nop|nel)$"),
    re.compile(r"^(no quiero|dejalo|mejor no|olvidalo|no gracias|ya no)$"),
    re.compile(r"cancelar?$"),
]

# Values that may be changed while a confirmation is pending.
# Each rule is a tuple: (slot_name, [normalised phrases], value)
MODIFICATION_RULES = [
    ("priority", ["prioridad alta", "alta prioridad", "urgente"], "Alta"),
    ("priority", ["prioridad baja", "baja prioridad"], "Baja"),
    ("priority", ["prioridad media", "media prioridad"], "Media"),
    ("status", ["por iniciar", "sin empezar"], "Por Iniciar"),
    ("status", ["backlog"], "Backlog"),
    ("status", ["en proceso"], "En Proceso"),
]

PROJECT_MODIFICATION_RE = re.compile(r"proyecto[:\s]+[\"']?([^\"'\n,]+)[\"']?", re.IGNORECASE)

# Task vocabulary shared by the process definitions
TASK_STATUSES = ["Por Iniciar", "En Proceso", "Backlog", "Por Finalizar", "Finalizado", "Cancelado"]
ACTIVE_TASK_STATUSES = ["En Proceso", "Por Finalizar"]
TASK_PRIORITIES = ["Alta", "Media", "Baja"]

PRIORITY_MARKERS = {"Alta": "🔴", "Media": "🟡", "Baja": "🟢"}

# Status keywords sniffed from update requests, evaluated in order
STATUS_KEYWORD_RULES = [
    (re.compile(r"por\s*finalizar|casi\s*list[ao]"), "Por Finalizar"),
    (re.compile(r"finalizad[ao]s?|finalizar|terminad[ao]s?|terminar|completad[ao]s?|completar|hech[ao]"), "Finalizado"),
    (re.compile(r"por\s*iniciar|sin\s*empezar"), "Por Iniciar"),
    (re.compile(r"en\s*proceso|iniciar|empezar|en\s*curso"), "En Proceso"),
    (re.compile(r"cancelad[ao]|cancelar"), "Cancelado"),
    (re.compile(r"backlog|pendiente|en\s*espera"), "Backlog"),
]

MONTHS = {
    "enero": 1, "febrero": 2, "marzo": 3, "abril": 4, "mayo": 5, "junio": 6,
    "julio": 7, "agosto": 8, "septiembre": 9, "octubre": 10, "noviembre": 11, "diciembre": 12,
}

AFFIRMATIVE_BOOLEANS = {"si", "yes", "true", "1", "verdadero"}
