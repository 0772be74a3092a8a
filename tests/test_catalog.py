import pytest

from catalog import CATALOG, CatalogConfigError, CatalogRegistry, welcome_text
from subjects import SUBJECT_ORDER, Subject


def test_every_subject_has_rules():
    for subject in SUBJECT_ORDER:
        assert CATALOG.rules_for(subject), subject
    assert len(CATALOG) == 15


def test_patterns_are_case_insensitive():
    rule = CATALOG.rules_for(Subject.QUIMICA)[0]
    assert rule.matches("la TABLA PERIÓDICA")


def test_all_rules_follow_subject_order():
    subjects = [rule.subject for rule in CATALOG.all_rules()]
    assert subjects == sorted(subjects, key=SUBJECT_ORDER.index)


def test_registry_rejects_unknown_subject():
    with pytest.raises(CatalogConfigError):
        CatalogRegistry({"alquimia": [{"pattern": "oro", "response": "No."}]})


def test_registry_rejects_invalid_pattern():
    with pytest.raises(CatalogConfigError, match="invalid pattern"):
        CatalogRegistry({"historia": [{"pattern": "(roma", "response": "Imperio."}]})


def test_registry_rejects_missing_response():
    with pytest.raises(CatalogConfigError, match="response"):
        CatalogRegistry({"historia": [{"pattern": "roma"}]})


def test_registry_keeps_declaration_order():
    registry = CatalogRegistry(
        {
            "historia": [
                {"pattern": "roma", "response": "primero"},
                {"pattern": "roma|grecia", "response": "segundo"},
            ]
        }
    )
    responses = [rule.response for rule in registry.rules_for(Subject.HISTORIA)]
    assert responses == ["primero", "segundo"]
    assert registry.rules_for(Subject.FISICA) == ()


def test_welcome_text_depends_on_role():
    student = welcome_text("Ana", "student", Subject.MATEMATICAS)
    teacher = welcome_text("Luis", "teacher", Subject.FISICA)
    assert student.startswith("¡Hola Ana!")
    assert "Matemáticas" in student
    assert teacher.startswith("Hola Luis. Como docente")
    assert "Física" in teacher


def test_welcome_text_rejects_unknown_role():
    with pytest.raises(KeyError):
        welcome_text("Eva", "admin", Subject.HISTORIA)
