"""Rule-based responder that maps a learner question to a catalog answer."""

from __future__ import annotations

import logging
import random
import re
from dataclasses import dataclass
from typing import Iterable, List, Literal, Optional, Sequence

from catalog import CATALOG, GENERIC_RESPONSES, CatalogRegistry, CatalogRule
from schemas import Message
from subjects import SUBJECT_ORDER, Subject, coerce_subject

logger = logging.getLogger(__name__)

_PUNCTUATION_PATTERN = re.compile(r"[¿?¡!]")
_WHITESPACE_PATTERN = re.compile(r"\s+")

RESOURCES_HEADER = "📚 Recursos adicionales:"

Complexity = Literal["basic", "intermediate", "advanced"]
Emotion = Literal["frustrated", "curious", "confident", "neutral"]
Urgency = Literal["low", "medium", "high"]


@dataclass(frozen=True)
class ContextAnalysis:
    complexity: Complexity
    emotion: Emotion
    urgency: Urgency


class EducationalResponder:
    """Resolve questions against the subject catalog.

    Resolution order:
        1. the selected subject's rules, in declaration order;
        2. every subject's rules, in enumeration order (bare response only);
        3. a random entry from the generic fallback pool.

    ``rng`` only affects step 3 and can be replaced by a seeded
    ``random.Random`` for deterministic tests.
    """

    advanced_keywords = ("demostrar", "derivar", "analizar", "sintetizar", "evaluar")
    intermediate_keywords = ("explicar", "comparar", "relacionar", "aplicar")
    frustrated_markers = ("no entiendo", "confundido", "difícil")
    curious_markers = ("interesante", "quiero saber", "me pregunto")
    confident_markers = ("creo que", "pienso que")
    high_urgency_markers = ("examen", "tarea", "mañana")
    medium_urgency_markers = ("pronto", "necesito")

    def __init__(
        self,
        catalog: CatalogRegistry = CATALOG,
        generic_responses: Sequence[str] = GENERIC_RESPONSES,
        rng: Optional[random.Random] = None,
    ):
        if not generic_responses:
            raise ValueError("generic_responses may not be empty")
        self.catalog = catalog
        self.generic_responses = tuple(generic_responses)
        self.rng = rng or random.Random()

    def generate_response(
        self,
        user_message: str,
        selected_subject: Subject | str,
        conversation_history: Sequence[Message] = (),
    ) -> str:
        """Return the assistant's reply to ``user_message``."""

        clean_message = self.preprocess_message(user_message)
        subject = self._resolve_subject(selected_subject)

        subject_rules = self.catalog.rules_for(subject) if subject else ()
        matched = self.find_matching_rule(clean_message, subject_rules)
        if matched:
            return self.format_response(matched, conversation_history)

        cross_subject = self.search_across_subjects(clean_message)
        if cross_subject:
            logger.debug(
                "Question for %s answered from %s", selected_subject, cross_subject.subject.value
            )
            label = subject.display_name if subject else str(selected_subject)
            return (
                f"Aunque preguntaste sobre {label}, encontré información relevante: "
                f"{cross_subject.response}"
            )

        return self.generic_response()

    @staticmethod
    def preprocess_message(message: Optional[str]) -> str:
        """Lowercase, trim, drop ``¿?¡!`` and collapse whitespace runs."""

        text = str(message or "").lower().strip()
        text = _PUNCTUATION_PATTERN.sub("", text)
        return _WHITESPACE_PATTERN.sub(" ", text)

    @staticmethod
    def find_matching_rule(message: str, rules: Iterable[CatalogRule]) -> Optional[CatalogRule]:
        for rule in rules:
            if rule.matches(message):
                return rule
        return None

    def search_across_subjects(self, message: str) -> Optional[CatalogRule]:
        for subject in SUBJECT_ORDER:
            match = self.find_matching_rule(message, self.catalog.rules_for(subject))
            if match:
                return match
        return None

    @staticmethod
    def format_response(rule: CatalogRule, history: Sequence[Message] = ()) -> str:
        formatted = rule.response
        if rule.follow_up:
            formatted += f"\n\n{rule.follow_up}"
        if rule.resources:
            bullets = "\n".join(f"• {resource}" for resource in rule.resources)
            formatted += f"\n\n{RESOURCES_HEADER}\n{bullets}"
        return formatted

    def generic_response(self) -> str:
        return self.rng.choice(self.generic_responses)

    @staticmethod
    def _resolve_subject(value: Subject | str) -> Optional[Subject]:
        try:
            return coerce_subject(value)
        except ValueError:
            logger.warning("Unknown subject %r; searching all subjects instead", value)
            return None

    # ------------------------------------------------------------------
    def analyze_context(self, message: str) -> ContextAnalysis:
        """Classify a question's complexity, emotional tone and urgency by keyword."""

        text = str(message or "").lower()

        complexity: Complexity = "basic"
        if any(keyword in text for keyword in self.advanced_keywords):
            complexity = "advanced"
        elif any(keyword in text for keyword in self.intermediate_keywords):
            complexity = "intermediate"

        emotion: Emotion = "neutral"
        if any(marker in text for marker in self.frustrated_markers):
            emotion = "frustrated"
        elif any(marker in text for marker in self.curious_markers):
            emotion = "curious"
        elif any(marker in text for marker in self.confident_markers):
            emotion = "confident"

        urgency: Urgency = "low"
        if any(marker in text for marker in self.high_urgency_markers):
            urgency = "high"
        elif any(marker in text for marker in self.medium_urgency_markers):
            urgency = "medium"

        return ContextAnalysis(complexity=complexity, emotion=emotion, urgency=urgency)

    def generate_study_suggestions(
        self,
        subject: Subject | str,
        recent_messages: Sequence[Message],
    ) -> List[str]:
        """Suggest next study steps from the topics in the learner's own messages."""

        resolved = self._resolve_subject(subject)
        topics = " ".join(msg.content.lower() for msg in recent_messages if not msg.is_bot)
        suggestions: List[str] = []

        if resolved is Subject.MATEMATICAS:
            if "ecuación" in topics:
                suggestions.append("Practica más ejercicios de ecuaciones paso a paso")
                suggestions.append("Revisa los fundamentos de álgebra")
            if "función" in topics:
                suggestions.append("Dibuja gráficas de funciones para visualizar mejor")
                suggestions.append("Practica identificando dominio y rango")
        elif resolved is Subject.CIENCIAS:
            if "célula" in topics:
                suggestions.append("Estudia diagramas de células con sus organelos")
                suggestions.append("Compara células procariotas y eucariotas")
        else:
            label = resolved.display_name if resolved else str(subject)
            suggestions.append(f"Repasa los conceptos fundamentales de {label}")
            suggestions.append("Practica con ejercicios de diferentes niveles")

        if not suggestions:
            suggestions.extend(
                [
                    "Crea un mapa conceptual de lo que has estudiado",
                    "Practica explicando los conceptos con tus palabras",
                    "Busca ejemplos prácticos del tema en la vida real",
                ]
            )
        return suggestions


DEFAULT_RESPONDER = EducationalResponder()


def generate_response(
    user_message: str,
    selected_subject: Subject | str,
    conversation_history: Sequence[Message] = (),
) -> str:
    """Module-level shortcut around :data:`DEFAULT_RESPONDER`."""

    return DEFAULT_RESPONDER.generate_response(user_message, selected_subject, conversation_history)
