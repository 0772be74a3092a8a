"""Conversation lifecycle for one user session.

The manager keeps a working copy of the user's conversations in memory and
writes every mutation straight through to :mod:`db`. It moves between three
states:

    ``NoActiveConversation``  nothing is selected
    ``ActiveConversation``    a conversation is receiving messages
    ``AwaitingResponse``      a send is in flight (the assistant is "thinking")

A send started while ``AwaitingResponse`` is rejected. An in-flight send always runs to
completion; there is no cancellation path. Deleting or switching away from the
conversation during the wait does not stop it: the finished send writes the
conversation back to the store and makes it the active one again.
"""

from __future__ import annotations

import asyncio
import logging
import random
import sqlite3
from collections import Counter
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional
from uuid import uuid4

import db
from catalog import welcome_text
from engines import usage
from engines.responder import DEFAULT_RESPONDER, EducationalResponder
from schemas import Conversation, Message, User, utcnow
from subjects import Subject, coerce_subject

logger = logging.getLogger(__name__)

STATE_IDLE = "NoActiveConversation"
STATE_ACTIVE = "ActiveConversation"
STATE_AWAITING = "AwaitingResponse"

DEFAULT_SUBJECT = Subject.MATEMATICAS
THINKING_DELAY_RANGE = (1.0, 3.0)
TITLE_WORD_COUNT = 4
TITLE_FREEZE_AFTER = 3

Sleep = Callable[[float], Awaitable[Any]]
Clock = Callable[[], datetime]


def _make_id(prefix: str, now: datetime, suffix: Optional[str] = None) -> str:
    millis = int(now.timestamp() * 1000)
    return f"{prefix}_{millis}_{suffix or uuid4().hex[:9]}"


def generate_conversation_title(first_message: str, subject: Subject) -> str:
    words = first_message.lower().split()[:TITLE_WORD_COUNT]
    return f"{subject.title_prefix}: {' '.join(words)}..."


class ConversationManager:
    """Create, extend, title, search, export and retire a user's conversations."""

    def __init__(
        self,
        user: Optional[User],
        *,
        responder: Optional[EducationalResponder] = None,
        rng: Optional[random.Random] = None,
        sleep: Optional[Sleep] = None,
        clock: Optional[Clock] = None,
        delay_range: tuple[float, float] = THINKING_DELAY_RANGE,
    ):
        self.user = user
        self.responder = responder or DEFAULT_RESPONDER
        self.rng = rng or random.Random()
        self.sleep: Sleep = sleep or asyncio.sleep
        self.clock: Clock = clock or utcnow
        self.delay_range = delay_range

        self.conversations: List[Conversation] = []
        self.current_conversation: Optional[Conversation] = None
        self.selected_subject: Subject = DEFAULT_SUBJECT
        self.is_typing = False

        if user:
            self.load_user_conversations()

    @property
    def state(self) -> str:
        if self.is_typing:
            return STATE_AWAITING
        if self.current_conversation is not None:
            return STATE_ACTIVE
        return STATE_IDLE

    def _find(self, conversation_id: str) -> Optional[Conversation]:
        for conv in self.conversations:
            if conv.id == conversation_id:
                return conv
        return None

    # ------------------------------------------------------------------
    def load_user_conversations(self) -> List[Conversation]:
        if not self.user:
            self.conversations = []
            return []
        stored = db.get_conversations()
        self.conversations = [conv for conv in stored if conv.user_id == self.user.id]
        logger.info("Loaded %s conversations for user %s", len(self.conversations), self.user.name)
        return self.conversations

    def create_conversation(self, subject: Subject | str, title: Optional[str] = None) -> Optional[Conversation]:
        """Open a new conversation seeded with a welcome message and make it active."""

        if not self.user:
            logger.error("Cannot create conversation without user")
            return None
        try:
            resolved = coerce_subject(subject)
        except ValueError as exc:
            logger.error("Cannot create conversation: %s", exc)
            return None

        now = self.clock()
        welcome = Message(
            id=_make_id("msg", now, "welcome"),
            content=welcome_text(self.user.name, self.user.role, resolved),
            is_bot=True,
            timestamp=now,
            subject=resolved,
            user_id=self.user.id,
        )
        conversation = Conversation(
            id=_make_id("conv", now),
            user_id=self.user.id,
            subject=resolved,
            title=title or f"Nueva conversación de {resolved.value}",
            messages=[welcome],
            created_at=now,
            updated_at=now,
        )

        self.current_conversation = conversation
        self.selected_subject = resolved
        self.save_conversation(conversation)
        logger.info("Created new conversation: %s", conversation.title)
        return conversation

    async def send_message(self, content: str) -> Optional[Conversation]:
        """Append the user's message, wait, append the assistant's reply and persist.

        Returns the updated conversation, or ``None`` when the send was rejected
        (no user, no active conversation, blank text or a send already in flight).
        """

        text = (content or "").strip()
        conversation = self.current_conversation
        if not self.user or conversation is None or not text:
            logger.error("Cannot send message: missing user, conversation, or content")
            return None
        if self.is_typing:
            logger.warning("Rejected message while a response is pending in %s", conversation.id)
            return None

        user = self.user
        subject = conversation.subject
        self.is_typing = True
        try:
            now = self.clock()
            user_message = Message(
                id=_make_id("msg", now),
                content=text,
                is_bot=False,
                timestamp=now,
                subject=subject,
                user_id=user.id,
            )
            conversation = conversation.model_copy(
                update={"messages": [*conversation.messages, user_message], "updated_at": now}
            )
            self.current_conversation = conversation

            low, high = self.delay_range
            await self.sleep(low + (high - low) * self.rng.random())

            reply = self.responder.generate_response(text, subject, conversation.messages)
            now = self.clock()
            bot_message = Message(
                id=_make_id("msg", now),
                content=reply,
                is_bot=True,
                timestamp=now,
                subject=subject,
                user_id=user.id,
            )
            update: Dict[str, Any] = {
                "messages": [*conversation.messages, bot_message],
                "updated_at": now,
            }
            if len(update["messages"]) <= TITLE_FREEZE_AFTER:
                first_question = next(msg for msg in update["messages"] if not msg.is_bot)
                update["title"] = generate_conversation_title(first_question.content, subject)
            conversation = conversation.model_copy(update=update)

            self.current_conversation = conversation
            self.save_conversation(conversation)
            usage.record_question(user.id, subject, today=now.date())
            logger.info("Message sent and response generated in %s", conversation.id)
            return conversation
        except (sqlite3.Error, ValueError, TypeError) as exc:
            logger.error("Error sending message in %s: %s", conversation.id, exc, exc_info=True)
            return None
        finally:
            self.is_typing = False

    def save_conversation(self, conversation: Conversation) -> None:
        db.save_conversation(conversation)
        for idx, existing in enumerate(self.conversations):
            if existing.id == conversation.id:
                self.conversations[idx] = conversation
                break
        else:
            self.conversations.append(conversation)

    def load_conversation(self, conversation_id: str) -> bool:
        conversation = self._find(conversation_id)
        if conversation is None:
            logger.error("Conversation not found: %s", conversation_id)
            return False
        self.current_conversation = conversation
        self.selected_subject = conversation.subject
        logger.info("Loaded conversation: %s", conversation.title)
        return True

    def delete_conversation(self, conversation_id: str) -> bool:
        db.delete_conversation(conversation_id)
        before = len(self.conversations)
        self.conversations = [conv for conv in self.conversations if conv.id != conversation_id]
        if self.current_conversation is not None and self.current_conversation.id == conversation_id:
            self.current_conversation = None
        if len(self.conversations) == before:
            logger.warning("Deleted conversation %s was not in the working set", conversation_id)
        return True

    def change_subject(self, new_subject: Subject | str) -> Optional[Conversation]:
        """Point the session at ``new_subject``; switching away from an active
        conversation opens a new one instead of mutating it."""

        try:
            resolved = coerce_subject(new_subject)
        except ValueError as exc:
            logger.error("Cannot change subject: %s", exc)
            return None
        self.selected_subject = resolved
        if self.current_conversation is not None and self.current_conversation.subject != resolved:
            return self.create_conversation(resolved)
        return None

    def clear_current_conversation(self) -> None:
        self.current_conversation = None

    # ------------------------------------------------------------------
    def search_conversations(self, query: str) -> List[Conversation]:
        if not (query or "").strip():
            return list(self.conversations)
        term = query.lower()
        return [
            conv
            for conv in self.conversations
            if term in conv.title.lower() or any(term in msg.content.lower() for msg in conv.messages)
        ]

    def export_conversation(self, conversation_id: str) -> str:
        """Render a plain-text transcript, or ``""`` for an unknown id."""

        conversation = self._find(conversation_id)
        if conversation is None:
            return ""

        lines = [
            f"Conversación: {conversation.title}",
            f"Materia: {conversation.subject.value}",
            f"Fecha: {conversation.created_at.strftime('%d/%m/%Y')}",
            "",
        ]
        for msg in conversation.messages:
            sender = "Asistente" if msg.is_bot else "Usuario"
            lines.append(f"[{msg.timestamp.strftime('%H:%M:%S')}] {sender}: {msg.content}")
            lines.append("")
        return "\n".join(lines) + "\n"

    def conversation_stats(self) -> Optional[Dict[str, Any]]:
        if not self.user:
            return None
        owned = [conv for conv in self.conversations if conv.user_id == self.user.id]
        total_messages = sum(len(conv.messages) for conv in owned)
        subject_counts = Counter(conv.subject.value for conv in owned)
        return {
            "totalConversations": len(owned),
            "totalMessages": total_messages,
            "subjectDistribution": dict(subject_counts),
            "averageMessagesPerConversation": round(total_messages / len(owned)) if owned else 0,
            "mostUsedSubject": subject_counts.most_common(1)[0][0] if subject_counts else None,
        }

    def study_suggestions(self) -> List[str]:
        if self.current_conversation is None:
            return self.responder.generate_study_suggestions(self.selected_subject, [])
        return self.responder.generate_study_suggestions(
            self.current_conversation.subject, self.current_conversation.messages
        )

