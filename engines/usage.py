"""Per-user usage statistics and conversation analytics for the teacher dashboard."""

from __future__ import annotations

import logging
from collections import Counter
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence

import db
from schemas import Conversation, DailyUsage, UsageStats
from subjects import Subject, coerce_subject

logger = logging.getLogger(__name__)

DAILY_WINDOW_DAYS = 30
ENGAGEMENT_WINDOW_DAYS = 7


def _today_utc() -> date:
    return datetime.now(timezone.utc).date()


def compute_engagement(daily_usage: Sequence[DailyUsage]) -> float:
    """Average questions per day over the most recent week of buckets.

    The divisor is always the full window, so a single active day of one
    question scores ``1/7``.
    """

    recent = daily_usage[:ENGAGEMENT_WINDOW_DAYS]
    if not recent:
        return 0.0
    return sum(day.count for day in recent) / ENGAGEMENT_WINDOW_DAYS


def apply_question(stats: UsageStats, subject: Subject | str, day: date) -> UsageStats:
    """Return a copy of ``stats`` with one more question recorded on ``day``."""

    key = coerce_subject(subject).value
    distribution = dict(stats.subject_distribution)
    distribution[key] = distribution.get(key, 0) + 1

    day_key = day.isoformat()
    buckets = [bucket.model_copy() for bucket in stats.daily_usage]
    for bucket in buckets:
        if bucket.date == day_key:
            bucket.count += 1
            break
    else:
        buckets.append(DailyUsage(date=day_key, count=1))

    # ISO dates sort chronologically as strings.
    buckets.sort(key=lambda bucket: bucket.date, reverse=True)
    buckets = buckets[:DAILY_WINDOW_DAYS]

    return stats.model_copy(
        update={
            "total_questions": stats.total_questions + 1,
            "subject_distribution": distribution,
            "daily_usage": buckets,
            "user_engagement": compute_engagement(buckets),
        }
    )


def record_question(user_id: str, subject: Subject | str, *, today: Optional[date] = None) -> UsageStats:
    """Load, update and persist ``user_id``'s stats for one answered question."""

    stats = db.get_usage_stats(user_id)
    updated = apply_question(stats, subject, today or _today_utc())
    db.save_usage_stats(user_id, updated)
    logger.debug(
        "Usage for %s: total=%s engagement=%.3f",
        user_id,
        updated.total_questions,
        updated.user_engagement,
    )
    return updated


def conversation_analytics(
    conversations: Sequence[Conversation],
    user_id: str,
    *,
    today: Optional[date] = None,
) -> Dict[str, Any]:
    """Summarize a user's conversations for the statistics panel."""

    owned = [conv for conv in conversations if conv.user_id == user_id]
    total_conversations = len(owned)
    total_messages = sum(len(conv.messages) for conv in owned)

    subject_counts = Counter(conv.subject.value for conv in owned)
    most_popular = subject_counts.most_common(1)[0][0] if subject_counts else None

    end = today or _today_utc()
    created_days = Counter(conv.created_at.date().isoformat() for conv in owned)
    daily_activity: List[Dict[str, Any]] = []
    for offset in range(ENGAGEMENT_WINDOW_DAYS - 1, -1, -1):
        day_key = (end - timedelta(days=offset)).isoformat()
        daily_activity.append({"date": day_key, "count": created_days.get(day_key, 0)})

    if owned:
        minutes = [
            (conv.updated_at - conv.created_at).total_seconds() / 60
            for conv in owned
        ]
        avg_duration = round(sum(minutes) / len(minutes))
        avg_messages = round(total_messages / total_conversations)
    else:
        avg_duration = 0
        avg_messages = 0

    return {
        "totalConversations": total_conversations,
        "totalMessages": total_messages,
        "avgMessagesPerConv": avg_messages,
        "subjectDistribution": dict(subject_counts),
        "dailyActivity": daily_activity,
        "mostPopularSubject": most_popular,
        "avgConversationDuration": avg_duration,
    }
