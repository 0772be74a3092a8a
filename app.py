# app.py: local composition surface for the offline study assistant
# - One in-process session (this device's user)
# - Thin routes over auth / conversations / db / engines.usage

import logging
import random
from contextlib import asynccontextmanager
from dataclasses import asdict
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, Field

import db
from auth import AuthSession, validate_user_data
from conversations import ConversationManager
from engines import usage
from env_validation import get_env_bool, get_env_int, thinking_delay_range, validate_environment
from schemas import Conversation, dump_model
from subjects import Subject, coerce_subject

logger = logging.getLogger(__name__)

_CHAT_LOGGER = logging.getLogger("edu.chat")
if not _CHAT_LOGGER.handlers:
    _handler = logging.StreamHandler()
    _handler.setFormatter(logging.Formatter("%(message)s"))
    _CHAT_LOGGER.addHandler(_handler)
_CHAT_LOGGER.setLevel(logging.INFO)
_CHAT_LOGGER.propagate = False

WELCOME_TITLE = "Bienvenida"
QUICK_CHAT_TITLE = "Nueva consulta"


@asynccontextmanager
async def _lifespan(_: FastAPI):
    try:
        # Validate environment variables first
        validate_environment()

        db.init()
        if get_env_bool("CLEANUP_ON_STARTUP", True):
            db.cleanup_old_data(get_env_int("CLEANUP_DAYS", 90))
        _restore_session()
        yield
    except Exception as e:
        logger.error("Failed to initialize application: %s", str(e), exc_info=True)
        raise


app = FastAPI(title="Asistente Educativo", version="1.0.0", lifespan=_lifespan)

SESSION = AuthSession()
MANAGER: Optional[ConversationManager] = None


def _new_manager() -> ConversationManager:
    return ConversationManager(
        SESSION.user,
        rng=random.Random(),
        delay_range=thinking_delay_range(),
    )


def _restore_session() -> None:
    global MANAGER
    MANAGER = _new_manager() if SESSION.restore() else None


def _require_manager() -> ConversationManager:
    if not SESSION.user or MANAGER is None:
        raise HTTPException(status_code=401, detail="login required")
    return MANAGER


def _require_teacher() -> ConversationManager:
    manager = _require_manager()
    if not SESSION.has_access("teacher"):
        raise HTTPException(status_code=403, detail="teacher role required")
    return manager


def _subject_or_400(value: str) -> Subject:
    try:
        return coerce_subject(value)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def _conversation_out(conversation: Optional[Conversation]) -> Optional[Dict[str, Any]]:
    return dump_model(conversation) if conversation else None


# ---------- Schemas ----------
class LoginBody(BaseModel):
    name: str = ""
    role: Optional[str] = None
    grade: Optional[str] = None
    subjects: List[str] = Field(default_factory=list)

class CreateConversationBody(BaseModel):
    subject: str
    title: Optional[str] = None

class SubjectBody(BaseModel):
    subject: str

class ProfileUpdateBody(BaseModel):
    name: Optional[str] = None
    grade: Optional[str] = None
    subjects: Optional[List[str]] = None

class ChatBody(BaseModel):
    text: str

class SettingsBody(BaseModel):
    settings: Dict[str, Any]

class ImportBody(BaseModel):
    data: str


# ---------- Auth ----------
@app.post("/auth/validate")
def auth_validate(body: LoginBody):
    return dump_model(validate_user_data(body.model_dump()))

@app.post("/auth/login")
def auth_login(body: LoginBody):
    global MANAGER
    result = validate_user_data(body.model_dump())
    if not result.is_valid:
        raise HTTPException(status_code=400, detail=result.errors)
    if not SESSION.login(body.model_dump()):
        raise HTTPException(status_code=400, detail="invalid subjects")
    MANAGER = _new_manager()
    MANAGER.create_conversation(Subject.MATEMATICAS, WELCOME_TITLE)
    _CHAT_LOGGER.info("[session] %s logged in as %s", SESSION.user.name, SESSION.user.role)
    return {
        "user": SESSION.get_user_profile(),
        "conversation": _conversation_out(MANAGER.current_conversation),
    }

@app.post("/auth/logout")
def auth_logout():
    global MANAGER
    SESSION.logout()
    MANAGER = None
    return {"ok": True}

@app.get("/profile")
def profile():
    _require_manager()
    return SESSION.get_user_profile()

@app.patch("/profile")
def update_profile(body: ProfileUpdateBody):
    manager = _require_manager()
    changes = body.model_dump(exclude_none=True)
    if not SESSION.update_user(**changes):
        raise HTTPException(status_code=400, detail="invalid profile data")
    manager.user = SESSION.user
    return SESSION.get_user_profile()

@app.post("/profile/subjects/{subject}")
def add_subject_interest(subject: str):
    manager = _require_manager()
    if not SESSION.add_subject_interest(_subject_or_400(subject)):
        raise HTTPException(status_code=400, detail="invalid profile data")
    manager.user = SESSION.user
    return SESSION.get_user_profile()

@app.delete("/profile/subjects/{subject}")
def remove_subject_interest(subject: str):
    manager = _require_manager()
    if not SESSION.remove_subject_interest(_subject_or_400(subject)):
        raise HTTPException(status_code=400, detail="invalid profile data")
    manager.user = SESSION.user
    return SESSION.get_user_profile()


# ---------- Conversations ----------
@app.get("/conversations")
def list_conversations(q: Optional[str] = None):
    manager = _require_manager()
    found = manager.search_conversations(q or "")
    found.sort(key=lambda conv: conv.updated_at, reverse=True)
    return {"conversations": [dump_model(conv) for conv in found]}

@app.get("/conversations/stats")
def conversation_stats():
    manager = _require_manager()
    return manager.conversation_stats()

@app.post("/conversations")
def create_conversation(body: CreateConversationBody):
    manager = _require_manager()
    conversation = manager.create_conversation(body.subject, body.title)
    if conversation is None:
        raise HTTPException(status_code=400, detail=f"unknown subject: {body.subject}")
    return _conversation_out(conversation)

@app.get("/conversations/{conversation_id}")
def load_conversation(conversation_id: str):
    manager = _require_manager()
    if not manager.load_conversation(conversation_id):
        raise HTTPException(status_code=404, detail="conversation not found")
    return _conversation_out(manager.current_conversation)

@app.delete("/conversations/{conversation_id}")
def delete_conversation(conversation_id: str):
    manager = _require_manager()
    manager.delete_conversation(conversation_id)
    return {"deleted": conversation_id}

@app.get("/conversations/{conversation_id}/export", response_class=PlainTextResponse)
def export_conversation(conversation_id: str):
    manager = _require_manager()
    text = manager.export_conversation(conversation_id)
    if not text:
        raise HTTPException(status_code=404, detail="conversation not found")
    return PlainTextResponse(text)

@app.post("/subject")
def change_subject(body: SubjectBody):
    manager = _require_manager()
    created = manager.change_subject(_subject_or_400(body.subject))
    return {
        "selectedSubject": manager.selected_subject.value,
        "conversation": _conversation_out(created or manager.current_conversation),
    }


# ---------- Chat ----------
@app.post("/chat")
async def chat(body: ChatBody):
    manager = _require_manager()
    if not body.text.strip():
        raise HTTPException(status_code=400, detail="text required")
    if manager.is_typing:
        raise HTTPException(status_code=409, detail="a response is already pending")
    if manager.current_conversation is None:
        manager.create_conversation(manager.selected_subject, QUICK_CHAT_TITLE)

    conversation = await manager.send_message(body.text)
    if conversation is None:
        raise HTTPException(status_code=409, detail="message rejected")
    reply = conversation.messages[-1]
    _CHAT_LOGGER.info("[chat] %s | %s -> %s chars", conversation.subject.value, conversation.id, len(reply.content))
    return {
        "reply": reply.content,
        "conversation": _conversation_out(conversation),
        "suggestions": manager.study_suggestions(),
        "context": asdict(manager.responder.analyze_context(body.text)),
    }


# ---------- Teacher dashboard ----------
@app.get("/stats")
def stats():
    _require_teacher()
    return dump_model(db.get_usage_stats(SESSION.user.id))

@app.get("/analytics")
def analytics():
    manager = _require_teacher()
    return usage.conversation_analytics(manager.conversations, SESSION.user.id)


# ---------- Settings & account ----------
@app.get("/settings")
def get_settings():
    _require_manager()
    return db.get_settings(SESSION.user.id)

@app.post("/settings")
def save_settings(body: SettingsBody):
    _require_manager()
    db.save_settings(SESSION.user.id, body.settings)
    return db.get_settings(SESSION.user.id)

@app.get("/account/export", response_class=PlainTextResponse)
def account_export():
    _require_manager()
    data = db.export_user_data(SESSION.user.id)
    if not data:
        raise HTTPException(status_code=500, detail="export failed")
    return PlainTextResponse(data, media_type="application/json")

@app.post("/account/import")
def account_import(body: ImportBody):
    if not db.import_user_data(body.data):
        raise HTTPException(status_code=400, detail="invalid account data")
    _restore_session()
    return {"ok": True, "user": SESSION.get_user_profile()}
