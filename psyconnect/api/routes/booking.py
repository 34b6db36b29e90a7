from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
import copy

from ...core.db import get_db
from ...core.config import settings
from ...core.errors import EmailDeliveryError, IllegalTransition
from ..deps import get_session_state, locked_state
from ..schemas import BookingOut, DraftPatch, ReplyOut
from ...conversation.orchestrator import approve_email, edit_email_draft
from ...conversation.state import ConversationState
from ...services.artifacts import save_booking
from ...services.email import is_valid_email
from ...services.session_store import store
from .sessions import reply_out, commit

router = APIRouter(prefix="/sessions", tags=["booking"])

def booking_out(state: ConversationState) -> BookingOut:
    b = state.booking
    return BookingOut(
        stage=state.stage.value,
        psychiatristId=b.psychiatrist_id,
        recipient=b.recipient,
        availability=b.availability,
        subject=b.subject,
        body=b.body,
        approved=b.approved,
        sent=b.sent,
        bookingId=b.booking_id,
    )

@router.get("/{session_id}/booking", response_model=BookingOut)
def get_booking(state: ConversationState = Depends(get_session_state)):
    if state.booking is None:
        raise HTTPException(status_code=404, detail="No booking in progress")
    return booking_out(state)

@router.patch("/{session_id}/booking/draft", response_model=BookingOut)
def patch_draft(payload: DraftPatch, state: ConversationState = Depends(get_session_state), db: Session = Depends(get_db)):
    if payload.recipient is not None and not is_valid_email(payload.recipient):
        raise HTTPException(status_code=422, detail="Invalid email address format")
    with locked_state(state.session_id) as current:
        working = copy.deepcopy(current)
        try:
            edit_email_draft(working, subject=payload.subject, body=payload.body, recipient=payload.recipient)
        except IllegalTransition as e:
            raise HTTPException(status_code=409, detail=str(e))
        if settings.PERSIST_ARTIFACTS:
            save_booking(db, working)
        store.save(working)
    return booking_out(working)

@router.post("/{session_id}/booking/approve", response_model=ReplyOut)
async def approve(state: ConversationState = Depends(get_session_state), db: Session = Depends(get_db)):
    with locked_state(state.session_id) as current:
        try:
            new_state, reply, meta = await approve_email(current)
        except IllegalTransition as e:
            raise HTTPException(status_code=409, detail=str(e))
        except EmailDeliveryError:
            raise HTTPException(status_code=502, detail="The email could not be sent. Please try again.")
        commit(db, new_state, meta)
    return reply_out(new_state, reply, meta)
