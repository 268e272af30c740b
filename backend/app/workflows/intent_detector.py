# /app/workflows/intent_detector.py

"""
Decides which process, if any, should handle a message, and how a reply to
an in-flight process should be read (confirm, cancel, modify or plain input).

Detection is deterministic: candidates are ranked by trigger priority, then
confidence, then registration order.
"""

import logging
from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, Field

from app.config.rules import CANCELLATION_PATTERNS, CONFIRMATION_PATTERNS, INTENT_KEYWORDS, NEGATION_PATTERN
from app.models.flow import ProcessContext, UserContext
from app.models.process import ProcessDefinition, ProcessTrigger
from app.utils.metrics import intent_matches_counter
from app.workflows.extractors import detect_modifications, normalize_message

logger = logging.getLogger(__name__)

PATTERN_CONFIDENCE = 0.9
KEYWORD_EXACT_CONFIDENCE = 0.95
KEYWORD_CONTAINED_CONFIDENCE = 0.7
COMMAND_CONFIDENCE = 1.0


class TriggerMatch(BaseModel):
    process_id: str
    trigger_type: str
    priority: int = 0
    confidence: float
    order: Tuple[int, int] = (0, 0)
    extracted_data: Dict[str, Any] = Field(default_factory=dict)


class ReplyClassification(BaseModel):
    action: Literal["confirm", "cancel", "modify", "input", "unknown"]
    modifications: Dict[str, Any] = Field(default_factory=dict)


class IntentClassifier:
    """Maps a normalised message to (intent tag, confidence) pairs."""

    def classify(self, normalized_message: str) -> List[Tuple[str, float]]:
        raise NotImplementedError


class NullIntentClassifier(IntentClassifier):
    def classify(self, normalized_message: str) -> List[Tuple[str, float]]:
        return []


class KeywordIntentClassifier(IntentClassifier):
    """Keyword vocabulary classifier; longer matching phrases score higher."""

    def __init__(self, keywords: Optional[Dict[str, List[str]]] = None):
        self.keywords = keywords if keywords is not None else INTENT_KEYWORDS

    def classify(self, normalized_message: str) -> List[Tuple[str, float]]:
        if not normalized_message:
            return []
        results = []
        for tag, phrases in self.keywords.items():
            best = 0.0
            for phrase in phrases:
                if phrase in normalized_message:
                    best = max(best, min(0.95, 0.6 + len(phrase) / len(normalized_message)))
            if best:
                results.append((tag, best))
        results.sort(key=lambda item: -item[1])
        return results


def is_confirmation(normalized_message: str) -> bool:
    if NEGATION_PATTERN.search(normalized_message):
        return False
    return any(pattern.search(normalized_message) for pattern in CONFIRMATION_PATTERNS)


def is_cancellation(normalized_message: str) -> bool:
    return any(pattern.search(normalized_message) for pattern in CANCELLATION_PATTERNS)


class IntentDetector:
    def __init__(self, registry, classifier: Optional[IntentClassifier] = None):
        self.registry = registry
        self.classifier = classifier or NullIntentClassifier()

    def detect(self, message: str, user_context: Optional[UserContext] = None) -> Optional[TriggerMatch]:
        matches = self.detect_all(message, user_context)
        if not matches:
            return None
        best = matches[0]
        intent_matches_counter.labels(process_id=best.process_id, trigger_type=best.trigger_type).inc()
        logger.info(
            f"Message matched process '{best.process_id}' via {best.trigger_type} "
            f"(priority={best.priority}, confidence={best.confidence:.2f})"
        )
        return best

    def detect_all(self, message: str, user_context: Optional[UserContext] = None) -> List[TriggerMatch]:
        """Every (process, trigger) that fires for the message, best first."""
        user_context = user_context or UserContext()
        normalized = normalize_message(message)
        intents = dict(self.classifier.classify(normalized)) if normalized else {}

        matches: List[TriggerMatch] = []
        for process_index, definition in enumerate(self.registry.all()):
            for trigger_index, trigger in enumerate(definition.triggers):
                if trigger.condition is not None and not trigger.condition(user_context):
                    continue
                evaluated = self._evaluate(trigger, message, normalized, intents)
                if evaluated is None:
                    continue
                confidence, extracted = evaluated
                matches.append(TriggerMatch(
                    process_id=definition.id,
                    trigger_type=trigger.type,
                    priority=trigger.priority,
                    confidence=confidence,
                    order=(process_index, trigger_index),
                    extracted_data=extracted,
                ))

        matches.sort(key=lambda m: (-m.priority, -m.confidence, m.order))
        return matches

    def _evaluate(
        self, trigger: ProcessTrigger, message: str, normalized: str, intents: Dict[str, float]
    ) -> Optional[Tuple[float, Dict[str, Any]]]:
        if trigger.type == "pattern":
            for pattern in trigger.patterns:
                match = pattern.search(message.strip())
                if match:
                    extracted = {k: v.strip() for k, v in match.groupdict().items() if v and v.strip()}
                    return PATTERN_CONFIDENCE, extracted
            return None

        if trigger.type == "keyword":
            best = None
            for keyword in trigger.keywords:
                phrase = normalize_message(keyword)
                if not phrase:
                    continue
                if normalized == phrase:
                    return KEYWORD_EXACT_CONFIDENCE, {}
                if phrase in normalized:
                    best = KEYWORD_CONTAINED_CONFIDENCE
            return (best, {}) if best else None

        if trigger.type == "command":
            lowered = message.strip().lower()
            for command in trigger.commands:
                if lowered.startswith(command.lower()):
                    return COMMAND_CONFIDENCE, {}
            return None

        if trigger.type == "intent":
            scores = [intents[tag] for tag in trigger.intents if tag in intents]
            if scores:
                return max(scores), {}
            return None

        return None

    def classify_reply(
        self, message: str, context: ProcessContext, definition: ProcessDefinition
    ) -> ReplyClassification:
        """How a message should be read by the process currently waiting on it."""
        normalized = normalize_message(message)

        if context.awaiting_confirmation or context.awaiting_retry:
            if is_cancellation(normalized) or NEGATION_PATTERN.search(normalized):
                return ReplyClassification(action="cancel")
            if is_confirmation(normalized):
                return ReplyClassification(action="confirm")
            if context.awaiting_confirmation:
                modifications = {
                    name: value
                    for name, value in detect_modifications(message).items()
                    if name in definition.slot_names
                }
                if modifications:
                    return ReplyClassification(action="modify", modifications=modifications)
            return ReplyClassification(action="unknown")

        if context.awaiting_input:
            if is_cancellation(normalized):
                return ReplyClassification(action="cancel")
            return ReplyClassification(action="input")

        return ReplyClassification(action="unknown")
