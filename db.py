import copy
import json
import logging
import os
import sqlite3
from datetime import datetime, timedelta
from typing import Any, Dict, Mapping, Optional, Sequence

from pydantic import ValidationError

from db_pool import SQLiteConnectionPool
from schemas import (
    DEFAULT_SETTINGS,
    Conversation,
    UsageStats,
    User,
    UserDataExport,
    dump_model,
    parse_json_safe,
    as_utc,
    utcnow,
)

logger = logging.getLogger(__name__)

DB_PATH = os.getenv("DB_PATH", "data.db")

# Initialize connection pool
_pool = SQLiteConnectionPool(DB_PATH, max_connections=10)

STORAGE_KEYS = {
    "USER": "edu_assistant_user",
    "CONVERSATIONS": "edu_assistant_conversations",
    "USAGE_STATS": "edu_assistant_usage_stats",
    "SETTINGS": "edu_assistant_settings",
}

# Errors that degrade a read to its default value instead of reaching the caller.
_LOAD_ERRORS = (sqlite3.Error, json.JSONDecodeError, ValidationError, TypeError, ValueError)

_CREATE_STORAGE_SQL = """
    CREATE TABLE IF NOT EXISTS storage (
      key         TEXT PRIMARY KEY,
      value       TEXT NOT NULL,
      updated_at  TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
"""


def _conn():
    """Return a context manager for acquiring a pooled SQLite connection."""
    return _pool.get_connection()


def init():
    with _conn() as con:
        con.execute("PRAGMA journal_mode=WAL")
        con.execute(_CREATE_STORAGE_SQL)
        con.commit()


def _stats_key(user_id: str) -> str:
    return f"{STORAGE_KEYS['USAGE_STATS']}_{user_id}"


def _settings_key(user_id: str) -> str:
    return f"{STORAGE_KEYS['SETTINGS']}_{user_id}"


# -------------- raw key/value access --------------
def _get_item(key: str) -> Optional[str]:
    with _conn() as con:
        con.execute(_CREATE_STORAGE_SQL)
        row = con.execute("SELECT value FROM storage WHERE key = ?", (key,)).fetchone()
    return row["value"] if row else None


def _set_items(items: Mapping[str, str]) -> None:
    """Write every ``key -> value`` pair in a single transaction."""
    with _conn() as con:
        con.execute(_CREATE_STORAGE_SQL)
        con.executemany(
            """
            INSERT INTO storage (key, value, updated_at)
            VALUES (?, ?, CURRENT_TIMESTAMP)
            ON CONFLICT(key) DO UPDATE SET
                value = excluded.value,
                updated_at = CURRENT_TIMESTAMP
            """,
            list(items.items()),
        )
        con.commit()


def _set_item(key: str, value: str) -> None:
    _set_items({key: value})


def _remove_item(key: str) -> None:
    with _conn() as con:
        con.execute(_CREATE_STORAGE_SQL)
        con.execute("DELETE FROM storage WHERE key = ?", (key,))
        con.commit()


# -------------- user --------------
def save_user(user: User) -> None:
    try:
        _set_item(STORAGE_KEYS["USER"], json_dumps(dump_model(user)))
    except sqlite3.Error as exc:
        logger.error("Error saving user data: %s", exc, exc_info=True)


def get_user() -> Optional[User]:
    try:
        raw = _get_item(STORAGE_KEYS["USER"])
        if not raw:
            return None
        return User.model_validate_json(raw)
    except _LOAD_ERRORS as exc:
        logger.error("Error loading user data: %s", exc)
        return None


def clear_user() -> None:
    try:
        _remove_item(STORAGE_KEYS["USER"])
    except sqlite3.Error as exc:
        logger.error("Error clearing user data: %s", exc, exc_info=True)


# -------------- conversations --------------
def _serialize_conversations(conversations: Sequence[Conversation]) -> str:
    return json_dumps([dump_model(conv) for conv in conversations])


def save_conversations(conversations: Sequence[Conversation]) -> None:
    """Replace the stored conversation list (every user's) with ``conversations``."""
    try:
        _set_item(STORAGE_KEYS["CONVERSATIONS"], _serialize_conversations(conversations))
    except sqlite3.Error as exc:
        logger.error("Error saving conversations: %s", exc, exc_info=True)


def get_conversations() -> list[Conversation]:
    """Return every stored conversation, or ``[]`` when the list is missing or unreadable."""
    try:
        raw = _get_item(STORAGE_KEYS["CONVERSATIONS"])
        if not raw:
            return []
        parsed = json.loads(raw)
        if not isinstance(parsed, list):
            raise TypeError("conversation list must be a JSON array")
        return [Conversation.model_validate(item) for item in parsed]
    except _LOAD_ERRORS as exc:
        logger.error("Error loading conversations: %s", exc)
        return []


def save_conversation(conversation: Conversation) -> None:
    """Insert or replace one conversation by id (full read-modify-write)."""
    conversations = get_conversations()
    for idx, existing in enumerate(conversations):
        if existing.id == conversation.id:
            conversations[idx] = conversation
            break
    else:
        conversations.append(conversation)
    save_conversations(conversations)


def delete_conversation(conversation_id: str) -> None:
    conversations = get_conversations()
    remaining = [conv for conv in conversations if conv.id != conversation_id]
    save_conversations(remaining)


# -------------- usage stats --------------
def get_usage_stats(user_id: str) -> UsageStats:
    try:
        raw = _get_item(_stats_key(user_id))
        if not raw:
            return UsageStats()
        return UsageStats.model_validate_json(raw)
    except _LOAD_ERRORS as exc:
        logger.error("Error loading usage stats for %s: %s", user_id, exc)
        return UsageStats()


def save_usage_stats(user_id: str, stats: UsageStats) -> None:
    try:
        _set_item(_stats_key(user_id), json_dumps(dump_model(stats)))
    except sqlite3.Error as exc:
        logger.error("Error saving usage stats for %s: %s", user_id, exc, exc_info=True)


# -------------- settings --------------
def save_settings(user_id: str, settings: Mapping[str, Any]) -> None:
    try:
        _set_item(_settings_key(user_id), json_dumps(dict(settings)))
    except (sqlite3.Error, TypeError, ValueError) as exc:
        logger.error("Error saving user settings for %s: %s", user_id, exc, exc_info=True)


def get_settings(user_id: str) -> Dict[str, Any]:
    """Return the user's settings, the defaults when none are stored, ``{}`` when unreadable."""
    try:
        raw = _get_item(_settings_key(user_id))
        if not raw:
            return copy.deepcopy(DEFAULT_SETTINGS)
        settings = json.loads(raw)
        if not isinstance(settings, dict):
            raise TypeError("settings must be a JSON object")
        return settings
    except _LOAD_ERRORS as exc:
        logger.error("Error loading user settings for %s: %s", user_id, exc)
        return {}


# -------------- maintenance --------------
def cleanup_old_data(days_to_keep: int = 90, *, now: Optional[datetime] = None) -> int:
    """Drop conversations not updated within ``days_to_keep`` days; return how many remain."""
    current = as_utc(now or utcnow())
    cutoff = current - timedelta(days=days_to_keep)

    conversations = get_conversations()
    recent = [conv for conv in conversations if conv.updated_at > cutoff]
    if len(recent) != len(conversations):
        save_conversations(recent)
    logger.info("Cleaned up old data, kept %s recent conversations", len(recent))
    return len(recent)


# -------------- export / import --------------
def export_user_data(user_id: str) -> str:
    """Serialize user, all conversations, stats and settings to one JSON document."""
    try:
        user = get_user()
        bundle: Dict[str, Any] = {
            "user": dump_model(user) if user else None,
            "conversations": [dump_model(conv) for conv in get_conversations()],
            "stats": dump_model(get_usage_stats(user_id)),
            "settings": get_settings(user_id),
            "exportDate": utcnow().isoformat(),
        }
        return json.dumps(bundle, ensure_ascii=False, indent=2)
    except (TypeError, ValueError) as exc:
        logger.error("Error exporting user data: %s", exc, exc_info=True)
        return ""


def import_user_data(json_data: str) -> bool:
    """Replace stored state with an exported document.

    The whole document is validated before anything is written, and all keys
    are written in one transaction, so a rejected import leaves storage as it was.
    """
    try:
        payload = parse_json_safe(json_data, UserDataExport)
    except (ValidationError, ValueError, TypeError) as exc:
        logger.error("Error importing user data: %s", exc)
        return False

    user = payload.user
    items = {
        STORAGE_KEYS["USER"]: json_dumps(dump_model(user)),
        STORAGE_KEYS["CONVERSATIONS"]: _serialize_conversations(payload.conversations),
    }
    if payload.settings:
        items[_settings_key(user.id)] = json_dumps(payload.settings)
    if payload.stats is not None:
        items[_stats_key(user.id)] = json_dumps(dump_model(payload.stats))

    try:
        _set_items(items)
    except (sqlite3.Error, TypeError, ValueError) as exc:
        logger.error("Error importing user data: %s", exc, exc_info=True)
        return False
    logger.info("Imported %s conversations for user %s", len(payload.conversations), user.id)
    return True


# -------------- helpers --------------
def json_dumps(obj: Any) -> str:
    return json.dumps(obj, ensure_ascii=False, separators=(",", ":"))
