import logging
from typing import Optional, Tuple

from pydantic import BaseModel, ValidationError

from . import openai_client
from .prompts import SYSTEM, EMAIL_INSTRUCTIONS
from ..core.config import settings
from ..conversation.state import ClinicalSummary
from ..matching.loader import Psychiatrist
from ..utils.jsonparse import parse_json_object

logger = logging.getLogger(__name__)


class EmailDraft(BaseModel):
    subject: str
    body: str


def template_email(summary: Optional[ClinicalSummary], doctor: Psychiatrist, availability: str) -> Tuple[str, str]:
    concern = (summary.chief_complaint if summary and summary.chief_complaint else "my mental health").rstrip(".")
    subject = f"New patient appointment request for {doctor.name}"
    body = (
        f"Dear {doctor.name},\n\n"
        f"I am looking for a first appointment to talk about {concern}. "
        f"I found your practice while searching for a {doctor.credential or 'psychiatrist'} in {doctor.location}.\n\n"
        f"My availability and contact details: {availability}\n\n"
        "Please let me know whether you are accepting new patients and what times might work.\n\n"
        "Thank you,\nThe patient"
    )
    return subject, body


async def draft_referral_email(
    summary: Optional[ClinicalSummary],
    doctor: Psychiatrist,
    availability: str,
    edits: Optional[str] = None,
    previous: Optional[Tuple[str, str]] = None,
) -> Tuple[str, str]:
    """Return (subject, body) for the outreach email."""
    lines = [
        f"Psychiatrist: {doctor.name}, {doctor.credential}, {doctor.location}",
        f"Main concern: {summary.chief_complaint if summary else 'not stated'}",
        f"Patient availability and contact: {availability}",
    ]
    if previous and edits:
        lines.append(f"Previous draft subject: {previous[0]}\nPrevious draft body:\n{previous[1]}")
        lines.append(f"Patient's requested changes: {edits}")
    messages = [
        {"role": "system", "content": SYSTEM},
        {"role": "system", "content": EMAIL_INSTRUCTIONS},
        {"role": "user", "content": "\n".join(lines)},
    ]
    raw = await openai_client.chat_completion(
        messages,
        temperature=settings.CHAT_TEMPERATURE,
        response_format={"type": "json_object"},
    )
    try:
        draft = EmailDraft.model_validate(parse_json_object(raw))
    except (ValueError, ValidationError) as e:
        logger.warning("email draft unusable (%s); using template", type(e).__name__)
        return template_email(summary, doctor, availability)
    if not draft.subject.strip() or not draft.body.strip():
        return template_email(summary, doctor, availability)
    return draft.subject.strip(), draft.body.strip()
