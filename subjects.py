"""Subject enumeration shared by the catalog, conversations and usage stats."""

from __future__ import annotations

from enum import Enum
from typing import Dict, Tuple


class Subject(str, Enum):
    """Academic subjects the assistant can talk about.

    Declaration order is significant: it is the order used when a question is
    searched across every subject's rules.
    """

    MATEMATICAS = "matematicas"
    CIENCIAS = "ciencias"
    HISTORIA = "historia"
    LITERATURA = "literatura"
    INGLES = "ingles"
    FISICA = "fisica"
    QUIMICA = "quimica"

    @property
    def display_name(self) -> str:
        return SUBJECT_NAMES[self]

    @property
    def title_prefix(self) -> str:
        return SUBJECT_ABBREVIATIONS[self]


SUBJECT_ORDER: Tuple[Subject, ...] = tuple(Subject)

SUBJECT_NAMES: Dict[Subject, str] = {
    Subject.MATEMATICAS: "Matemáticas",
    Subject.CIENCIAS: "Ciencias Naturales",
    Subject.HISTORIA: "Historia",
    Subject.LITERATURA: "Literatura",
    Subject.INGLES: "Inglés",
    Subject.FISICA: "Física",
    Subject.QUIMICA: "Química",
}

# Prefixes used when a conversation title is derived from the first question.
SUBJECT_ABBREVIATIONS: Dict[Subject, str] = {
    Subject.MATEMATICAS: "Mat",
    Subject.CIENCIAS: "Ciencias",
    Subject.HISTORIA: "Historia",
    Subject.LITERATURA: "Literatura",
    Subject.INGLES: "Inglés",
    Subject.FISICA: "Física",
    Subject.QUIMICA: "Química",
}


def coerce_subject(value: Subject | str) -> Subject:
    """Return ``value`` as a :class:`Subject`.

    Raises ``ValueError`` for anything outside the closed enumeration.
    """

    if isinstance(value, Subject):
        return value
    text = str(value or "").strip().lower()
    try:
        return Subject(text)
    except ValueError as exc:
        raise ValueError(f"Unknown subject: {value!r}") from exc


def empty_distribution() -> Dict[str, int]:
    """Return a subject -> count mapping with every subject seeded at zero."""

    return {subject.value: 0 for subject in SUBJECT_ORDER}
