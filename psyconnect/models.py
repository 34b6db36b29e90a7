import uuid
from datetime import datetime, timezone
from sqlalchemy import String, DateTime, Text, Integer, Index
from sqlalchemy.orm import Mapped, mapped_column
from .core.db import Base

def _uuid() -> str:
    return str(uuid.uuid4())

def _now() -> datetime:
    return datetime.now(timezone.utc)

class ClinicalSummaryRecord(Base):
    __tablename__ = "clinical_summaries"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    session_id: Mapped[str] = mapped_column(String(36), index=True)
    # full ClinicalSummary as JSON; score columns duplicated for querying
    payload_json: Mapped[str] = mapped_column(Text, default="{}")
    phq9_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    phq9_severity: Mapped[str | None] = mapped_column(String(30), nullable=True)
    risk_level: Mapped[str] = mapped_column(String(20), default="low")  # low|moderate|high|emergency
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now)

class Booking(Base):
    __tablename__ = "bookings"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    session_id: Mapped[str] = mapped_column(String(36), index=True)
    summary_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    psychiatrist_id: Mapped[str] = mapped_column(String(40))
    recipient: Mapped[str | None] = mapped_column(String(320), nullable=True)
    subject: Mapped[str] = mapped_column(String(300), default="")
    body: Mapped[str] = mapped_column(Text, default="")
    status: Mapped[str] = mapped_column(String(20), default="draft")  # draft|sent|cancelled
    message_id: Mapped[str | None] = mapped_column(String(120), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now)
    sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

Index("ix_bookings_session_status", Booking.session_id, Booking.status)
