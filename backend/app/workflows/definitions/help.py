# /app/workflows/definitions/help.py

from app.config import strings
from app.models.process import ProcessConfig, ProcessDefinition, ProcessTrigger, QuickReply, RespondStep

HELP_PROCESS = ProcessDefinition(
    id="help",
    name="Ayuda",
    description="Explica qué puede hacer el asistente",
    version="1.0.0",
    triggers=[
        ProcessTrigger(type="command", commands=["/ayuda", "/help"], priority=120),
        ProcessTrigger(type="pattern", patterns=[r"^(?:ayuda|help|comandos)$"], priority=110),
        ProcessTrigger(type="intent", intents=["HELP"], priority=50),
    ],
    steps=[RespondStep(id="show_help", name="Mostrar ayuda", response=strings.HELP_MESSAGE)],
    initial_step="show_help",
    config=ProcessConfig(max_retries=1, timeout=60000, allow_cancel=False, track_in_history=False),
    quick_replies=[
        QuickReply(label="Mis tareas", payload="mis tareas"),
        QuickReply(label="Crear tarea", payload="crear tarea"),
    ],
)
