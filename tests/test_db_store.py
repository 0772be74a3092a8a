"""Test cases for the local key/value store."""

import json
from datetime import datetime, timedelta, timezone

import db
from engines import usage
from schemas import Conversation, DailyUsage, Message, UsageStats, dump_model


NOW = datetime(2024, 5, 10, 12, 0, tzinfo=timezone.utc)


def _conversation(conv_id, user_id="user_1_ana", updated_at=NOW, subject="matematicas"):
    welcome = Message(
        id=f"{conv_id}_welcome",
        content="¡Hola!",
        is_bot=True,
        timestamp=updated_at,
        subject=subject,
        user_id=user_id,
    )
    return Conversation(
        id=conv_id,
        user_id=user_id,
        subject=subject,
        title=f"Nueva conversación de {subject}",
        messages=[welcome],
        created_at=updated_at,
        updated_at=updated_at,
    )


def test_user_round_trip_and_clear(student):
    assert db.get_user() is None
    db.save_user(student)
    assert db.get_user() == student

    db.clear_user()
    assert db.get_user() is None


def test_conversations_are_stored_with_camel_case_keys(student):
    db.save_conversation(_conversation("conv_1"))

    with db._conn() as con:
        raw = con.execute(
            "SELECT value FROM storage WHERE key = ?", (db.STORAGE_KEYS["CONVERSATIONS"],)
        ).fetchone()["value"]
    stored = json.loads(raw)
    assert stored[0]["userId"] == "user_1_ana"
    assert stored[0]["messages"][0]["isBot"] is True
    assert "createdAt" in stored[0]


def test_save_conversation_upserts_by_id(student):
    db.save_conversation(_conversation("conv_1"))
    db.save_conversation(_conversation("conv_2"))
    renamed = _conversation("conv_1").model_copy(update={"title": "Mat: nueva"})
    db.save_conversation(renamed)

    conversations = db.get_conversations()
    assert [conv.id for conv in conversations] == ["conv_1", "conv_2"]
    assert conversations[0].title == "Mat: nueva"


def test_delete_conversation_is_idempotent(student):
    db.save_conversation(_conversation("conv_1"))
    db.delete_conversation("conv_1")
    db.delete_conversation("conv_1")
    assert db.get_conversations() == []


def test_corrupt_values_degrade_to_defaults(temp_db):
    for key in (
        db.STORAGE_KEYS["USER"],
        db.STORAGE_KEYS["CONVERSATIONS"],
        f"{db.STORAGE_KEYS['USAGE_STATS']}_u1",
        f"{db.STORAGE_KEYS['SETTINGS']}_u1",
    ):
        with db._conn() as con:
            con.execute("INSERT INTO storage (key, value) VALUES (?, ?)", (key, "{not json"))
            con.commit()

    assert db.get_user() is None
    assert db.get_conversations() == []
    assert db.get_usage_stats("u1") == UsageStats()
    assert db.get_settings("u1") == {}


def test_usage_stats_default_has_every_subject(temp_db):
    stats = db.get_usage_stats("nobody")
    assert stats.total_questions == 0
    assert set(stats.subject_distribution) == {
        "matematicas", "ciencias", "historia", "literatura", "ingles", "fisica", "quimica"
    }
    assert stats.daily_usage == []


def test_usage_stats_round_trip(temp_db):
    stats = UsageStats(
        total_questions=3,
        subject_distribution={"fisica": 3},
        daily_usage=[DailyUsage(date="2024-05-10", count=3)],
        user_engagement=3 / 7,
    )
    db.save_usage_stats("u1", stats)
    loaded = db.get_usage_stats("u1")
    assert loaded == stats
    assert loaded.subject_distribution["matematicas"] == 0


def test_settings_defaults_and_round_trip(temp_db):
    defaults = db.get_settings("u1")
    assert defaults == {
        "theme": "light",
        "notifications": True,
        "preferredSubjects": [],
        "studyReminders": False,
    }
    defaults["preferredSubjects"].append("historia")
    assert db.get_settings("u1")["preferredSubjects"] == []

    db.save_settings("u1", {"theme": "dark"})
    assert db.get_settings("u1") == {"theme": "dark"}


def test_cleanup_old_data_keeps_recent_and_is_idempotent(temp_db):
    db.save_conversation(_conversation("old", updated_at=NOW - timedelta(days=120)))
    db.save_conversation(_conversation("edge", updated_at=NOW - timedelta(days=90)))
    db.save_conversation(_conversation("fresh", updated_at=NOW - timedelta(days=1)))

    assert db.cleanup_old_data(90, now=NOW) == 1
    assert [conv.id for conv in db.get_conversations()] == ["fresh"]
    assert db.cleanup_old_data(90, now=NOW) == 1


def test_export_then_import_restores_state(student):
    db.save_user(student)
    db.save_conversation(_conversation("conv_1"))
    db.save_settings(student.id, {"theme": "dark"})
    db.save_usage_stats(student.id, UsageStats(total_questions=4))

    exported = db.export_user_data(student.id)
    document = json.loads(exported)
    assert document["user"]["name"] == "Ana"
    assert document["stats"]["totalQuestions"] == 4
    assert "exportDate" in document

    db.clear_user()
    db.save_conversations([])
    db.save_settings(student.id, {})
    assert db.import_user_data(exported) is True

    assert db.get_user() == student
    assert [conv.id for conv in db.get_conversations()] == ["conv_1"]
    assert db.get_settings(student.id) == {"theme": "dark"}
    assert db.get_usage_stats(student.id).total_questions == 4


def test_rejected_import_leaves_storage_untouched(student):
    db.save_user(student)
    db.save_conversation(_conversation("conv_1"))

    assert db.import_user_data("definitely not json") is False
    assert db.import_user_data(json.dumps({"conversations": []})) is False
    assert db.import_user_data(json.dumps({"user": {"id": "x", "name": "X", "role": "admin"}, "conversations": []})) is False

    assert db.get_user() == student
    assert [conv.id for conv in db.get_conversations()] == ["conv_1"]


def test_imported_naive_timestamps_are_read_as_utc(teacher):
    document = {
        "user": dump_model(teacher),
        "conversations": [
            {
                "id": "conv_naive",
                "userId": teacher.id,
                "subject": "fisica",
                "title": "Física: energía...",
                "messages": [
                    {
                        "id": "msg_1",
                        "content": "energía",
                        "isBot": False,
                        "timestamp": "2024-05-10T10:05:00",
                        "userId": teacher.id,
                    }
                ],
                "createdAt": "2024-05-10T10:00:00Z",
                "updatedAt": "2024-05-10T10:30:00",
            }
        ],
    }
    assert db.import_user_data(json.dumps(document)) is True

    stored = db.get_conversations()[0]
    assert stored.updated_at == datetime(2024, 5, 10, 10, 30, tzinfo=timezone.utc)
    assert stored.messages[0].timestamp.tzinfo is not None

    summary = usage.conversation_analytics(db.get_conversations(), teacher.id, today=NOW.date())
    assert summary["avgConversationDuration"] == 30
    assert summary["dailyActivity"][-1] == {"date": "2024-05-10", "count": 1}

    assert db.cleanup_old_data(90, now=NOW) == 1
    assert db.cleanup_old_data(90, now=datetime(2024, 9, 1)) == 0
