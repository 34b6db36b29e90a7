from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
import json
import logging
import re

from ...core.db import get_db
from ...core.config import settings
from ...core.security import create_session_token
from ..deps import get_session_state, locked_state
from ..schemas import SessionCreated, SessionView, TurnOut, MessageIn, ReplyOut
from ...conversation.state import ConversationState
from ...conversation.orchestrator import handle_turn, start_session, reset_session
from ...services.session_store import store
from ...services.artifacts import persist_events, cancel_bookings

router = APIRouter(prefix="/sessions", tags=["sessions"])
logger = logging.getLogger(__name__)

def reply_out(state: ConversationState, reply: str, meta: dict) -> ReplyOut:
    return ReplyOut(
        reply=reply,
        stage=state.stage.value,
        completion=state.completion,
        error=meta.get("error"),
        meta=meta if settings.ALLOW_DEV_DEBUG_META else None,
    )

def session_view(state: ConversationState) -> SessionView:
    return SessionView(
        sessionId=state.session_id,
        stage=state.stage.value,
        completion=state.completion,
        coveredTopics=sorted(state.covered_topics),
        phq9Answered=len(state.phq9.responses),
        phq9Score=state.phq9_score,
        phq9Severity=state.phq9_severity,
        selectedPsychiatristId=state.selected_psychiatrist_id,
        turns=[TurnOut(role=t.role, content=t.content) for t in state.turns],
    )

def commit(db: Session, state: ConversationState, meta: dict) -> None:
    # the live state goes first: a sent referral must not be resent on retry
    if not store.save(state):
        return
    if settings.PERSIST_ARTIFACTS and not meta.get("error"):
        try:
            persist_events(db, state, meta)
        except SQLAlchemyError:
            db.rollback()
            logger.exception("session %s: could not store artifacts", state.session_id)

async def _turn(session_id: str, text: str, db: Session):
    text = text.strip()
    if not text:
        raise HTTPException(status_code=422, detail="message required")
    with locked_state(session_id) as state:
        new_state, reply, meta = await handle_turn(state, text)
        commit(db, new_state, meta)
    return new_state, reply, meta

@router.post("", response_model=SessionCreated)
def create_session():
    state = store.create()
    state, greeting = start_session(state)
    store.save(state)
    token, ttl = create_session_token(state.session_id)
    return SessionCreated(sessionId=state.session_id, token=token, expiresIn=ttl, stage=state.stage.value, greeting=greeting)

@router.get("/{session_id}", response_model=SessionView)
def get_session(state: ConversationState = Depends(get_session_state)):
    return session_view(state)

@router.delete("/{session_id}")
def delete_session(state: ConversationState = Depends(get_session_state), db: Session = Depends(get_db)):
    with locked_state(state.session_id) as current:
        if settings.PERSIST_ARTIFACTS:
            cancel_bookings(db, current.session_id)
        store.delete(current.session_id)
    return {"ok": True}

@router.post("/{session_id}/reset", response_model=ReplyOut)
def reset(state: ConversationState = Depends(get_session_state), db: Session = Depends(get_db)):
    with locked_state(state.session_id) as current:
        if settings.PERSIST_ARTIFACTS:
            cancel_bookings(db, current.session_id)
        fresh, greeting = reset_session(current)
        store.save(fresh)
    return reply_out(fresh, greeting, {"events": ["reset"]})

@router.post("/{session_id}/messages", response_model=ReplyOut)
async def post_message(payload: MessageIn, state: ConversationState = Depends(get_session_state), db: Session = Depends(get_db)):
    new_state, reply, meta = await _turn(state.session_id, payload.message, db)
    return reply_out(new_state, reply, meta)

def _emit_sse(event: str, data: dict) -> str:
    return f"event: {event}\ndata: {json.dumps(data)}\n\n"

@router.post("/{session_id}/messages/stream")
async def post_message_stream(payload: MessageIn, state: ConversationState = Depends(get_session_state), db: Session = Depends(get_db)):
    # the turn finishes before the first byte goes out, so turn order holds
    new_state, reply, meta = await _turn(state.session_id, payload.message, db)
    done = reply_out(new_state, reply, meta).model_dump()

    def event_stream():
        for chunk in re.findall(r"\S+\s*", reply):
            yield _emit_sse("token", {"delta": chunk})
        yield _emit_sse("done", done)

    return StreamingResponse(event_stream(), media_type="text/event-stream")
