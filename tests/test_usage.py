from datetime import date, datetime, timedelta, timezone

import pytest

import db
from engines import usage
from schemas import Conversation, DailyUsage, UsageStats


TODAY = date(2024, 5, 10)


def test_single_question_scores_one_seventh(temp_db):
    stats = usage.record_question("u1", "matematicas", today=TODAY)

    assert stats.total_questions == 1
    assert stats.subject_distribution["matematicas"] == 1
    assert stats.daily_usage == [DailyUsage(date="2024-05-10", count=1)]
    assert stats.user_engagement == pytest.approx(1 / 7)
    assert db.get_usage_stats("u1") == stats


def test_same_day_questions_share_a_bucket(temp_db):
    usage.record_question("u1", "fisica", today=TODAY)
    stats = usage.record_question("u1", "quimica", today=TODAY)

    assert stats.daily_usage == [DailyUsage(date="2024-05-10", count=2)]
    assert stats.subject_distribution["fisica"] == 1
    assert stats.subject_distribution["quimica"] == 1
    assert stats.total_questions == 2


def test_one_question_a_day_for_a_week_scores_one(temp_db):
    for offset in range(7):
        stats = usage.record_question("u1", "historia", today=TODAY - timedelta(days=6 - offset))

    assert stats.user_engagement == pytest.approx(1.0)
    assert [bucket.date for bucket in stats.daily_usage][0] == "2024-05-10"


def test_daily_usage_is_capped_at_thirty_newest_days():
    stats = UsageStats()
    for offset in range(35):
        stats = usage.apply_question(stats, "ingles", TODAY - timedelta(days=offset))

    dates = [bucket.date for bucket in stats.daily_usage]
    assert len(dates) == 30
    assert dates[0] == "2024-05-10"
    assert dates == sorted(dates, reverse=True)
    assert stats.total_questions == 35


def test_apply_question_does_not_mutate_input():
    stats = UsageStats(daily_usage=[DailyUsage(date="2024-05-10", count=1)])
    updated = usage.apply_question(stats, "ciencias", TODAY)

    assert stats.daily_usage[0].count == 1
    assert updated.daily_usage[0].count == 2


def test_apply_question_rejects_unknown_subject():
    with pytest.raises(ValueError):
        usage.apply_question(UsageStats(), "astronomia", TODAY)


def test_compute_engagement_uses_fixed_divisor():
    assert usage.compute_engagement([]) == 0.0
    buckets = [DailyUsage(date=f"2024-05-{day:02d}", count=2) for day in range(10, 0, -1)]
    assert usage.compute_engagement(buckets) == pytest.approx(2.0)


def _conversation(conv_id, subject, created, minutes, messages=1, user_id="u1"):
    created_at = datetime.combine(created, datetime.min.time(), tzinfo=timezone.utc)
    return Conversation.model_validate(
        {
            "id": conv_id,
            "userId": user_id,
            "subject": subject,
            "title": conv_id,
            "messages": [
                {"id": f"{conv_id}_{i}", "content": "hola", "isBot": i % 2 == 0, "userId": user_id}
                for i in range(messages)
            ],
            "createdAt": created_at,
            "updatedAt": created_at + timedelta(minutes=minutes),
        }
    )


def test_conversation_analytics_summary():
    conversations = [
        _conversation("a", "fisica", TODAY, minutes=10, messages=3),
        _conversation("b", "fisica", TODAY - timedelta(days=2), minutes=20, messages=5),
        _conversation("c", "historia", TODAY - timedelta(days=20), minutes=30, messages=1),
        _conversation("other", "quimica", TODAY, minutes=5, user_id="someone-else"),
    ]

    summary = usage.conversation_analytics(conversations, "u1", today=TODAY)

    assert summary["totalConversations"] == 3
    assert summary["totalMessages"] == 9
    assert summary["avgMessagesPerConv"] == 3
    assert summary["subjectDistribution"] == {"fisica": 2, "historia": 1}
    assert summary["mostPopularSubject"] == "fisica"
    assert summary["avgConversationDuration"] == 20
    assert [day["date"] for day in summary["dailyActivity"]] == [
        (TODAY - timedelta(days=offset)).isoformat() for offset in range(6, -1, -1)
    ]
    assert [day["count"] for day in summary["dailyActivity"]] == [0, 0, 0, 0, 1, 0, 1]


def test_conversation_analytics_empty():
    summary = usage.conversation_analytics([], "u1", today=TODAY)
    assert summary["totalConversations"] == 0
    assert summary["mostPopularSubject"] is None
    assert summary["avgConversationDuration"] == 0
    assert len(summary["dailyActivity"]) == 7
