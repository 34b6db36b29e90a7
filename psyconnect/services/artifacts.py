"""Write-mostly storage of the two things worth keeping after a session:
the clinical summary and the booking outreach record."""
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from ..conversation.state import ConversationState
from ..models import Booking, ClinicalSummaryRecord

logger = logging.getLogger(__name__)


def save_summary(db: Session, state: ConversationState) -> ClinicalSummaryRecord | None:
    if state.summary is None:
        return None
    rec = None
    if state.summary_record_id:
        rec = db.get(ClinicalSummaryRecord, state.summary_record_id)
    if rec is None:
        rec = ClinicalSummaryRecord(session_id=state.session_id)
        db.add(rec)
    rec.payload_json = json.dumps(state.summary.model_dump(), ensure_ascii=False)
    rec.phq9_score = state.summary.phq9_score
    rec.phq9_severity = state.summary.phq9_severity
    rec.risk_level = state.summary.safety_concerns.risk_level
    rec.updated_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(rec)
    state.summary_record_id = rec.id
    return rec


def save_booking(db: Session, state: ConversationState, message_id: str | None = None) -> Booking | None:
    draft = state.booking
    if draft is None:
        return None
    row = db.get(Booking, draft.booking_id) if draft.booking_id else None
    if row is None:
        row = Booking(session_id=state.session_id, psychiatrist_id=draft.psychiatrist_id)
        db.add(row)
    row.summary_id = state.summary_record_id
    row.recipient = draft.recipient
    row.subject = draft.subject
    row.body = draft.body
    if draft.sent and row.status != "sent":
        row.status = "sent"
        row.sent_at = datetime.now(timezone.utc)
        row.message_id = message_id
    db.commit()
    db.refresh(row)
    draft.booking_id = row.id
    logger.info("booking %s stored as %s", row.id, row.status)
    return row


def cancel_bookings(db: Session, session_id: str) -> int:
    rows = db.query(Booking).filter(Booking.session_id == session_id, Booking.status == "draft").all()
    for r in rows:
        r.status = "cancelled"
    db.commit()
    return len(rows)


def persist_events(db: Session, state: ConversationState, meta: dict) -> None:
    """Store whatever artifacts the last turn produced."""
    events = set(meta.get("events") or [])
    if events & {"summary_generated", "summary_edited"}:
        save_summary(db, state)
    if events & {"email_drafted", "email_edited", "email_sent"}:
        save_booking(db, state, meta.get("messageId"))
