"""Educational response catalog: ordered pattern rules per subject."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Pattern, Sequence, Tuple

from subjects import SUBJECT_ORDER, Subject


class CatalogConfigError(ValueError):
    """Raised when the rule table contains invalid data."""


@dataclass(frozen=True)
class CatalogRule:
    """One ``(pattern, response, follow-up, resources)`` entry of a subject."""

    subject: Subject
    pattern: Pattern[str]
    response: str
    follow_up: Optional[str] = None
    resources: Tuple[str, ...] = ()

    def matches(self, text: str) -> bool:
        return self.pattern.search(text) is not None


# Rules are evaluated top to bottom inside a subject; the first match wins.
_RAW_CATALOG: Dict[str, List[Dict[str, Any]]] = {
    "matematicas": [
        {
            "pattern": r"ecuaci(?:[óo]n|ones) cuadr[áa]ticas?|ax2|discriminante",
            "response": (
                "Una ecuación cuadrática tiene la forma ax² + bx + c = 0. Para resolverla puedes usar "
                "la fórmula: x = (-b ± √(b²-4ac)) / 2a. El discriminante (b²-4ac) te dice cuántas "
                "soluciones reales tiene."
            ),
            "follow_up": "¿Te gustaría que practiquemos con un ejemplo específico?",
            "resources": ["https://es.khanacademy.org/math/algebra/quadratics"],
        },
        {
            "pattern": r"fracci(?:[óo]n|ones)|numerador|denominador|simplificar",
            "response": (
                "Las fracciones representan partes de un todo. Para simplificar una fracción, divide "
                "numerador y denominador por su máximo común divisor (MCD). Para sumar fracciones, "
                "necesitas el mismo denominador."
            ),
            "follow_up": "¿Necesitas ayuda con alguna operación específica con fracciones?",
            "resources": ["https://es.khanacademy.org/math/arithmetic/fractions"],
        },
        {
            "pattern": r"funci(?:[óo]n|ones)|dominio|rango|gr[áa]fica",
            "response": (
                "Una función es una relación donde cada entrada (x) tiene exactamente una salida (y). "
                "El dominio son todos los valores posibles de x, y el rango todos los valores posibles de y."
            ),
            "follow_up": "¿Quieres que veamos cómo graficar una función específica?",
            "resources": ["https://es.khanacademy.org/math/algebra/functions"],
        },
    ],
    "ciencias": [
        {
            "pattern": r"c[ée]lulas?|mitosis|meiosis|organelos",
            "response": (
                "La célula es la unidad básica de la vida. Las células eucariotas tienen núcleo y "
                "organelos como mitocondrias, ribosomas y retículo endoplasmático. La mitosis produce "
                "células idénticas, la meiosis produce gametos."
            ),
            "follow_up": "¿Te interesa profundizar en algún organelo específico?",
            "resources": ["https://es.khanacademy.org/science/biology/cell-structure"],
        },
        {
            "pattern": r"ecosistemas?|cadena alimentaria|productor|consumidor",
            "response": (
                "Un ecosistema incluye todos los seres vivos y factores abióticos de un área. La energía "
                "fluye desde productores (plantas) hacia consumidores primarios (herbívoros) y "
                "secundarios (carnívoros)."
            ),
            "follow_up": "¿Quieres explorar un ecosistema específico como el bosque o el océano?",
            "resources": ["https://es.khanacademy.org/science/biology/ecology"],
        },
    ],
    "historia": [
        {
            "pattern": r"independencia|revoluci[óo]n|colonia|libertad",
            "response": (
                "Los procesos de independencia latinoamericanos (1810-1825) fueron movimientos donde "
                "las colonias se liberaron del dominio español. Líderes como Bolívar, San Martín e "
                "Hidalgo fueron fundamentales."
            ),
            "follow_up": "¿Te gustaría conocer más sobre algún prócer en particular?",
            "resources": ["http://www.educarchile.cl/historia-independencia"],
        },
        {
            "pattern": r"guerra mundial|hitler|nazismo|holocausto",
            "response": (
                "Las Guerras Mundiales (1914-1918 y 1939-1945) transformaron el mundo. La Primera surgió "
                "por tensiones europeas, la Segunda por el fascismo. Ambas tuvieron consecuencias "
                "políticas, sociales y económicas duraderas."
            ),
            "follow_up": "¿Quieres analizar las causas o consecuencias de alguna de estas guerras?",
            "resources": ["https://encyclopedia.britannica.com/event/World-War-I"],
        },
    ],
    "literatura": [
        {
            "pattern": r"g[ée]nero literario|narrativa|l[íi]rica|drama",
            "response": (
                "Los géneros literarios principales son: Épico (narrativa: novela, cuento), Lírico "
                "(poesía, expresión de sentimientos) y Dramático (teatro, diálogos). Cada uno tiene "
                "características y estructuras específicas."
            ),
            "follow_up": "¿Te interesa analizar alguna obra en particular?",
            "resources": ["https://www.cervantes.es/lengua_y_ensenanza/generos_literarios.htm"],
        },
        {
            "pattern": r"met[áa]fora|s[íi]mil|personificaci[óo]n|figura ret[óo]rica",
            "response": (
                "Las figuras retóricas embellecen el lenguaje: la metáfora compara sin usar 'como' "
                "(sus ojos son estrellas), el símil usa 'como' (rápido como el viento), la "
                "personificación da cualidades humanas a objetos."
            ),
            "follow_up": "¿Quieres que identifiquemos figuras retóricas en algún poema?",
            "resources": ["https://www.rae.es/dpd/figuras-retorica"],
        },
    ],
    "ingles": [
        {
            "pattern": r"present perfect|past simple|future|verb tense",
            "response": (
                "Los tiempos verbales en inglés expresan cuándo ocurre una acción. Present Simple "
                "(I work), Past Simple (I worked), Present Perfect (I have worked), Future (I will work). "
                "Cada uno tiene usos específicos."
            ),
            "follow_up": "Would you like to practice with some examples?",
            "resources": ["https://www.englishgrammar.org/verb-tenses/"],
        },
        {
            "pattern": r"vocabulary|words|meaning|definition",
            "response": (
                "Building vocabulary is essential for English fluency. Try learning 5-10 new words "
                "daily, use them in sentences, and practice with context. Reading and listening help "
                "expand your vocabulary naturally."
            ),
            "follow_up": "¿Hay algún tema específico de vocabulario que te interese?",
            "resources": ["https://www.merriam-webster.com/"],
        },
    ],
    "fisica": [
        {
            "pattern": r"movimiento|velocidad|aceleraci[óo]n|cin[ée]tica",
            "response": (
                "El movimiento se describe con velocidad (distancia/tiempo) y aceleración (cambio de "
                "velocidad/tiempo). Las leyes de Newton explican cómo las fuerzas afectan el movimiento "
                "de los objetos."
            ),
            "follow_up": "¿Quieres resolver algún problema de cinemática?",
            "resources": ["https://es.khanacademy.org/science/physics/one-dimensional-motion"],
        },
        {
            # "cinética" is already claimed by the movement rule above.
            "pattern": r"energ[íi]a|potencial|trabajo|potencia",
            "response": (
                "La energía es la capacidad de realizar trabajo. Energía cinética = ½mv², energía "
                "potencial = mgh. La energía se conserva: no se crea ni se destruye, solo se transforma."
            ),
            "follow_up": "¿Te gustaría ver ejemplos de transformaciones de energía?",
            "resources": ["https://es.khanacademy.org/science/physics/work-and-energy"],
        },
    ],
    "quimica": [
        {
            "pattern": r"tabla peri[óo]dica|elemento|[áa]tomo|valencia",
            "response": (
                "La tabla periódica organiza elementos por número atómico. Los grupos (columnas) tienen "
                "propiedades similares, los períodos (filas) indican niveles de energía. La valencia "
                "determina cómo se combinan los elementos."
            ),
            "follow_up": "¿Quieres que veamos las propiedades de algún elemento específico?",
            "resources": ["https://es.khanacademy.org/science/chemistry/periodic-table"],
        },
        {
            "pattern": r"enlace|i[óo]nico|covalente|met[áa]lico|mol[ée]cula",
            "response": (
                "Los enlaces químicos unen átomos: iónicos (transferencia de electrones), covalentes "
                "(compartir electrones), metálicos (mar de electrones). Determinan las propiedades de "
                "los compuestos."
            ),
            "follow_up": "¿Te interesa practicar con estructuras de Lewis?",
            "resources": ["https://es.khanacademy.org/science/chemistry/chemical-bonds"],
        },
    ],
}

GENERIC_RESPONSES: Tuple[str, ...] = (
    "Es una excelente pregunta. ¿Podrías ser más específico sobre qué aspecto te interesa más?",
    "Me gustaría ayudarte mejor. ¿Podrías reformular tu pregunta o dar más contexto?",
    "Esa es un área interesante de estudio. ¿Hay algún concepto particular que te genere dudas?",
    "Para darte una respuesta más precisa, ¿podrías especificar en qué materia se enmarca tu pregunta?",
)

WELCOME_TEMPLATES: Dict[str, str] = {
    "student": (
        "¡Hola {name}! Bienvenido/a a tu sesión de {subject}. Estoy aquí para ayudarte con tus "
        "dudas y apoyar tu aprendizaje. ¿Qué te gustaría estudiar hoy?"
    ),
    "teacher": (
        "Hola {name}. Como docente, puedes usar esta herramienta para explorar cómo los "
        "estudiantes interactúan con el contenido de {subject}. ¿En qué puedo asistirte?"
    ),
}


def welcome_text(name: str, role: str, subject: Subject) -> str:
    """Return the welcome message for a freshly created conversation."""

    template = WELCOME_TEMPLATES[role]
    return template.format(name=name, subject=subject.display_name)


class CatalogRegistry:
    """Compile and validate the per-subject rule table."""

    def __init__(self, raw: Mapping[str, Sequence[Mapping[str, Any]]] | None = None) -> None:
        self._raw = raw if raw is not None else _RAW_CATALOG
        self._rules: Dict[Subject, Tuple[CatalogRule, ...]] = {}
        self.reload()

    # ------------------------------------------------------------------
    def reload(self) -> None:
        """Rebuild the compiled rules from the raw table."""

        unknown = set(self._raw) - {subject.value for subject in SUBJECT_ORDER}
        if unknown:
            raise CatalogConfigError(f"Unknown subjects in catalog: {', '.join(sorted(unknown))}")

        rules: Dict[Subject, Tuple[CatalogRule, ...]] = {}
        for subject in SUBJECT_ORDER:
            entries = self._raw.get(subject.value, ())
            compiled: List[CatalogRule] = []
            for idx, entry in enumerate(entries, start=1):
                compiled.append(self._compile(subject, idx, entry))
            rules[subject] = tuple(compiled)
        self._rules = rules

    @staticmethod
    def _compile(subject: Subject, idx: int, entry: Mapping[str, Any]) -> CatalogRule:
        label = f"{subject.value} rule #{idx}"
        pattern_text = str(entry.get("pattern") or "").strip()
        if not pattern_text:
            raise CatalogConfigError(f"{label} is missing a non-empty 'pattern'")
        response = str(entry.get("response") or "").strip()
        if not response:
            raise CatalogConfigError(f"{label} is missing a non-empty 'response'")
        try:
            pattern = re.compile(pattern_text, re.IGNORECASE)
        except re.error as exc:
            raise CatalogConfigError(f"{label} has an invalid pattern: {exc}") from exc

        follow_up = entry.get("follow_up")
        resources = entry.get("resources") or ()
        if isinstance(resources, str):
            raise CatalogConfigError(f"{label} resources must be a list")
        return CatalogRule(
            subject=subject,
            pattern=pattern,
            response=response,
            follow_up=str(follow_up).strip() if follow_up else None,
            resources=tuple(str(item) for item in resources if str(item).strip()),
        )

    # ------------------------------------------------------------------
    def rules_for(self, subject: Subject) -> Tuple[CatalogRule, ...]:
        """Return ``subject``'s rules in evaluation order."""

        return self._rules.get(subject, ())

    def all_rules(self) -> Iterable[CatalogRule]:
        """Yield every rule, subjects in enumeration order."""

        for subject in SUBJECT_ORDER:
            yield from self._rules.get(subject, ())

    def __len__(self) -> int:
        return sum(len(rules) for rules in self._rules.values())


CATALOG = CatalogRegistry()
"""Singleton rule table used throughout the application."""
