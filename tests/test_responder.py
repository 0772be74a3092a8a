import random

import pytest

from catalog import GENERIC_RESPONSES
from engines.responder import RESOURCES_HEADER, EducationalResponder, generate_response
from schemas import Message
from subjects import Subject


@pytest.fixture
def responder():
    return EducationalResponder(rng=random.Random(7))


@pytest.mark.parametrize(
    "subject, question, expected",
    [
        ("matematicas", "¿Cómo resuelvo ecuaciones cuadráticas?", "discriminante"),
        ("matematicas", "no sé simplificar esto", "máximo común divisor"),
        ("matematicas", "¿qué es el dominio?", "cada entrada (x)"),
        ("ciencias", "explícame la mitosis", "unidad básica de la vida"),
        ("ciencias", "¿qué es un ecosistema?", "Un ecosistema"),
        ("historia", "la independencia de México", "independencia"),
        ("historia", "¿por qué empezó la segunda guerra mundial?", "Guerras Mundiales"),
        ("literatura", "¿qué es la lírica?", "géneros literarios"),
        ("literatura", "dame una metáfora", "metáfora"),
        ("ingles", "when do I use present perfect?", "Present Perfect"),
        ("ingles", "what is the meaning of this?", "Building vocabulary"),
        ("fisica", "¿qué es la aceleración?", "Newton"),
        ("fisica", "energía potencial", "mgh"),
        ("quimica", "¿qué es la valencia?", "tabla periódica"),
        ("quimica", "enlace covalente", "Lewis"),
    ],
)
def test_each_rule_answers_in_its_subject(responder, subject, question, expected):
    reply = responder.generate_response(question, subject)
    assert expected in reply
    assert RESOURCES_HEADER in reply
    assert not reply.startswith("Aunque preguntaste")


def test_direct_match_includes_follow_up_and_resources(responder):
    reply = responder.generate_response("¿Cómo resuelvo ecuaciones cuadráticas?", Subject.MATEMATICAS)
    body, follow_up, resources = reply.split("\n\n")
    assert body.startswith("Una ecuación cuadrática")
    assert follow_up == "¿Te gustaría que practiquemos con un ejemplo específico?"
    assert resources == f"{RESOURCES_HEADER}\n• https://es.khanacademy.org/math/algebra/quadratics"


def test_cross_subject_match_uses_bare_response(responder):
    reply = responder.generate_response("¿Qué es la mitosis?", "matematicas")
    assert reply.startswith("Aunque preguntaste sobre Matemáticas, encontré información relevante: ")
    assert "células" in reply
    assert RESOURCES_HEADER not in reply
    assert "\n\n" not in reply


def test_cross_subject_search_follows_subject_order(responder):
    # "elemento" lives in chemistry, "trabajo" in physics; physics is searched first.
    reply = responder.generate_response("trabajo con un elemento", "historia")
    assert "La energía es la capacidad" in reply


def test_first_match_wins_inside_subject(responder):
    reply = responder.generate_response("velocidad y energía", Subject.FISICA)
    assert reply.startswith("El movimiento se describe")


def test_unmatched_question_gets_generic_response(responder):
    assert responder.generate_response("xyz qwq", Subject.HISTORIA) in GENERIC_RESPONSES


def test_empty_input_gets_generic_response(responder):
    assert responder.generate_response("", Subject.HISTORIA) in GENERIC_RESPONSES
    assert responder.generate_response("   ¿?  ", Subject.HISTORIA) in GENERIC_RESPONSES


def test_generic_choice_is_deterministic_with_seeded_rng():
    first = EducationalResponder(rng=random.Random(3)).generate_response("xyz", "historia")
    second = EducationalResponder(rng=random.Random(3)).generate_response("xyz", "historia")
    assert first == second


def test_unknown_subject_still_searches_everything(responder):
    reply = responder.generate_response("¿Qué es la mitosis?", "astronomia")
    assert reply.startswith("Aunque preguntaste sobre astronomia")


def test_preprocess_message_normalizes_text():
    assert EducationalResponder.preprocess_message("  ¿Qué   ES\testo?! ") == "qué es esto"
    assert EducationalResponder.preprocess_message(None) == ""


def test_responder_requires_generic_pool():
    with pytest.raises(ValueError):
        EducationalResponder(generic_responses=())


def test_module_level_generate_response():
    assert "discriminante" in generate_response("discriminante", "matematicas")


def test_analyze_context(responder):
    analysis = responder.analyze_context("No entiendo, necesito demostrar esto para el examen")
    assert analysis.complexity == "advanced"
    assert analysis.emotion == "frustrated"
    assert analysis.urgency == "high"

    calm = responder.analyze_context("Creo que quiero comparar dos cosas")
    assert calm.complexity == "intermediate"
    assert calm.emotion == "confident"
    assert calm.urgency == "low"


def _user_message(text):
    return Message(id="m1", content=text, is_bot=False, subject="matematicas", user_id="u1")


def test_study_suggestions_follow_learner_topics(responder):
    suggestions = responder.generate_study_suggestions(
        "matematicas", [_user_message("tengo una ecuación difícil")]
    )
    assert suggestions[0] == "Practica más ejercicios de ecuaciones paso a paso"

    generic = responder.generate_study_suggestions("matematicas", [])
    assert "Crea un mapa conceptual de lo que has estudiado" in generic

    other = responder.generate_study_suggestions("historia", [])
    assert other[0] == "Repasa los conceptos fundamentales de Historia"
