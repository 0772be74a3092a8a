"""Pydantic schemas for users, conversations, usage stats and helper utilities."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Type, TypeVar

from pydantic import BaseModel, Field, ValidationError, field_validator

from subjects import Subject, empty_distribution

__all__ = [
    "UserRole",
    "User",
    "Message",
    "Conversation",
    "DailyUsage",
    "UsageStats",
    "ValidationResult",
    "UserDataExport",
    "DEFAULT_SETTINGS",
    "utcnow",
    "as_utc",
    "dump_model",
    "parse_json_safe",
]

UserRole = Literal["student", "teacher"]

DEFAULT_SETTINGS: Dict[str, Any] = {
    "theme": "light",
    "notifications": True,
    "preferredSubjects": [],
    "studyReminders": False,
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC; aware ones are converted to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class User(BaseModel):
    id: str = Field(description="Opaque identifier allocated at login; never changes.")
    name: str
    role: UserRole
    grade: str | None = Field(default=None, description="Academic grade, required for students.")
    subjects: list[Subject] = Field(
        default_factory=list,
        description="Subjects the user is interested in (or teaches).",
    )


class Message(BaseModel):
    id: str
    content: str
    is_bot: bool = Field(alias="isBot")
    timestamp: datetime = Field(default_factory=utcnow)
    subject: Subject | None = None
    user_id: str = Field(alias="userId")

    model_config = {
        "populate_by_name": True,
        "frozen": True,
    }

    @field_validator("timestamp")
    @classmethod
    def _timestamp_in_utc(cls, value: datetime) -> datetime:
        return as_utc(value)


class Conversation(BaseModel):
    id: str
    user_id: str = Field(alias="userId")
    subject: Subject
    title: str
    messages: list[Message] = Field(
        default_factory=list,
        description="Chronological, append-only message sequence.",
    )
    created_at: datetime = Field(alias="createdAt", default_factory=utcnow)
    updated_at: datetime = Field(alias="updatedAt", default_factory=utcnow)

    model_config = {
        "populate_by_name": True,
    }

    @field_validator("created_at", "updated_at")
    @classmethod
    def _dates_in_utc(cls, value: datetime) -> datetime:
        return as_utc(value)


class DailyUsage(BaseModel):
    date: str = Field(description="Calendar date bucket formatted as YYYY-MM-DD.")
    count: int = Field(default=0, ge=0)


class UsageStats(BaseModel):
    total_questions: int = Field(alias="totalQuestions", default=0, ge=0)
    subject_distribution: Dict[str, int] = Field(
        alias="subjectDistribution",
        default_factory=empty_distribution,
    )
    daily_usage: list[DailyUsage] = Field(
        alias="dailyUsage",
        default_factory=list,
        description="Most recent calendar dates first, at most 30 entries.",
    )
    average_response_time: float = Field(
        alias="averageResponseTime",
        default=0.0,
        description="Reserved; not computed yet.",
    )
    user_engagement: float = Field(alias="userEngagement", default=0.0)

    model_config = {
        "populate_by_name": True,
    }

    @field_validator("subject_distribution")
    @classmethod
    def _seed_every_subject(cls, value: Dict[str, int]) -> Dict[str, int]:
        seeded = empty_distribution()
        for key, count in (value or {}).items():
            seeded[key] = int(count)
        return seeded


class ValidationResult(BaseModel):
    is_valid: bool = Field(alias="isValid")
    errors: list[str] = Field(default_factory=list)

    model_config = {
        "populate_by_name": True,
    }


class UserDataExport(BaseModel):
    user: User
    conversations: list[Conversation]
    stats: UsageStats | None = None
    settings: Dict[str, Any] | None = None
    export_date: datetime | None = Field(alias="exportDate", default=None)

    model_config = {
        "populate_by_name": True,
    }


def dump_model(model: BaseModel) -> Dict[str, Any]:
    """Return the on-disk JSON representation of ``model`` (ISO dates, camelCase keys)."""

    return model.model_dump(mode="json", by_alias=True)


_T = TypeVar("_T", bound=BaseModel)


def _find_first_json_object(text: str) -> tuple[str, int, int]:
    """Locate the first complete JSON object in ``text``.

    Each ``{`` is handed to the JSON decoder, so braces inside string values
    never end the object early.
    """
    decoder = json.JSONDecoder()
    start = text.find("{")
    while start != -1:
        try:
            _, end = decoder.raw_decode(text, start)
        except json.JSONDecodeError:
            start = text.find("{", start + 1)
            continue
        return text[start:end], start, end
    raise ValueError("No JSON object found in provided text")


def parse_json_safe(text: str, model: Type[_T]) -> _T:
    """Parse ``text`` into ``model``, retrying once on the first embedded JSON object.

    Backups pasted by hand often carry a stray header or a trailing newline; only
    leading noise is tolerated, trailing content is rejected.
    """

    first_error: Exception | None = None
    try:
        return model.model_validate_json(text)
    except (ValidationError, ValueError, TypeError) as exc:
        first_error = exc

    try:
        snippet, _, end = _find_first_json_object(text)
    except ValueError:
        if first_error:
            raise first_error
        raise

    trailing = text[end:]
    if trailing.strip():
        if isinstance(first_error, ValidationError):
            raise first_error
        raise ValueError("Trailing content detected after JSON object")

    return model.model_validate_json(snippet)
