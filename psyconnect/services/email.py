"""Referral email delivery.

Sends through an HTTP email API when EMAIL_API_URL is configured. Without it
the send is logged and a local message id is returned, which is what dev and
test environments use.
"""
from __future__ import annotations

import logging
import re
import uuid

import httpx

from ..core.config import settings
from ..core.errors import EmailDeliveryError

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def is_valid_email(address: str | None) -> bool:
    return bool(address) and bool(EMAIL_RE.match(address.strip()))


async def send_email(to: str, subject: str, body: str) -> str:
    """Deliver one plain-text email and return the provider message id."""
    if not to or not subject or not body:
        raise EmailDeliveryError("recipient, subject and body are required")
    if not is_valid_email(to):
        raise EmailDeliveryError("invalid recipient address")

    if not settings.EMAIL_API_URL:
        message_id = f"local-{uuid.uuid4()}"
        logger.info("mock email send %s (body %d chars)", message_id, len(body))
        return message_id

    payload = {"from": settings.EMAIL_FROM, "to": [to.strip()], "subject": subject, "text": body}
    headers = {"Authorization": f"Bearer {settings.EMAIL_API_KEY}"} if settings.EMAIL_API_KEY else {}
    try:
        async with httpx.AsyncClient(timeout=15) as client:
            r = await client.post(settings.EMAIL_API_URL, headers=headers, json=payload)
            r.raise_for_status()
            data = r.json() if r.content else {}
    except (httpx.HTTPError, ValueError) as e:
        logger.warning("email delivery failed: %s", type(e).__name__)
        raise EmailDeliveryError("email service unavailable") from e
    message_id = str(data.get("id") or data.get("messageId") or uuid.uuid4())
    logger.info("email sent %s", message_id)
    return message_id
