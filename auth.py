"""Local user session: validation, login/logout and subject interests.

There are no credentials; logging in simply creates a profile on this device
and persists it through :mod:`db`.
"""

from __future__ import annotations

import logging
import secrets
import string
from typing import Any, Dict, List, Mapping, Optional

import db
from schemas import User, UserRole, ValidationResult, utcnow
from subjects import Subject, coerce_subject

logger = logging.getLogger(__name__)

VALID_ROLES = ("student", "teacher")
MIN_NAME_LENGTH = 2

_ID_ALPHABET = string.ascii_lowercase + string.digits


def _new_user_id() -> str:
    millis = int(utcnow().timestamp() * 1000)
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"user_{millis}_{suffix}"


def validate_user_data(data: Mapping[str, Any]) -> ValidationResult:
    errors: List[str] = []

    name = str(data.get("name") or "").strip()
    if len(name) < MIN_NAME_LENGTH:
        errors.append("El nombre debe tener al menos 2 caracteres")

    role = data.get("role")
    if role not in VALID_ROLES:
        errors.append("Debe seleccionar un rol válido")

    if role == "student" and not str(data.get("grade") or "").strip():
        errors.append("Los estudiantes deben indicar su grado")

    return ValidationResult(is_valid=not errors, errors=errors)


class AuthSession:
    """Holds the logged-in user for this device, if any."""

    def __init__(self, user: Optional[User] = None):
        self.user = user

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None

    def restore(self) -> Optional[User]:
        self.user = db.get_user()
        if self.user:
            logger.info("Restored session for %s", self.user.name)
        return self.user

    def login(self, data: Mapping[str, Any]) -> bool:
        result = validate_user_data(data)
        if not result.is_valid:
            logger.warning("Login rejected: %s", "; ".join(result.errors))
            return False

        grade = str(data.get("grade") or "").strip() or None
        try:
            subjects = [coerce_subject(value) for value in data.get("subjects") or []]
        except ValueError as exc:
            logger.warning("Login rejected: %s", exc)
            return False

        user = User(
            id=_new_user_id(),
            name=str(data["name"]).strip(),
            role=data["role"],
            grade=grade,
            subjects=subjects,
        )
        db.save_user(user)
        self.user = user
        logger.info("User logged in: %s (%s)", user.name, user.role)
        return True

    def logout(self) -> None:
        if self.user:
            logger.info("User logged out: %s", self.user.name)
        db.clear_user()
        self.user = None

    def update_user(self, **changes: Any) -> bool:
        """Apply ``changes`` to the current profile; the id is never replaced."""

        if not self.user:
            logger.warning("Cannot update user: nobody is logged in")
            return False
        changes.pop("id", None)
        candidate = {**self.user.model_dump(), **changes}
        result = validate_user_data(candidate)
        if not result.is_valid:
            logger.warning("User update rejected: %s", "; ".join(result.errors))
            return False
        try:
            updated = User.model_validate(candidate)
        except ValueError as exc:
            logger.warning("User update rejected: %s", exc)
            return False
        db.save_user(updated)
        self.user = updated
        return True

    def has_access(self, required_role: Optional[UserRole] = None) -> bool:
        if not self.user:
            return False
        if required_role is None:
            return True
        return self.user.role == required_role

    # -------------- subject interests --------------
    def is_interested_in_subject(self, subject: Subject | str) -> bool:
        if not self.user:
            return False
        try:
            return coerce_subject(subject) in self.user.subjects
        except ValueError:
            return False

    def add_subject_interest(self, subject: Subject | str) -> bool:
        if not self.user:
            return False
        resolved = coerce_subject(subject)
        if resolved in self.user.subjects:
            return True
        return self.update_user(subjects=[*self.user.subjects, resolved])

    def remove_subject_interest(self, subject: Subject | str) -> bool:
        if not self.user:
            return False
        resolved = coerce_subject(subject)
        return self.update_user(subjects=[s for s in self.user.subjects if s != resolved])

    def get_user_profile(self) -> Optional[Dict[str, Any]]:
        if not self.user:
            return None
        user = self.user
        return {
            **user.model_dump(mode="json"),
            "isStudent": user.role == "student",
            "isTeacher": user.role == "teacher",
            "hasGrade": bool(user.grade),
            "subjectCount": len(user.subjects),
            "profileComplete": bool(user.name and user.role and (user.role == "teacher" or user.grade)),
        }
