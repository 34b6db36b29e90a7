import json
import logging
from typing import Any, Dict, List

from pydantic import ValidationError

from . import openai_client
from .prompts import SYSTEM, EXTRACTOR_INSTRUCTIONS, PREFERENCE_INSTRUCTIONS
from ..core.config import settings
from ..core.errors import CompletionError
from ..conversation.state import (
    IntakeData, RecommendationPreferences, Turn, novel_fields, validate_partial,
)
from ..utils.jsonparse import parse_json_object

logger = logging.getLogger(__name__)


def _transcript(window: List[Turn]) -> str:
    lines = []
    for t in window:
        role = "assistant" if t.role == "assistant" else "patient"
        lines.append(f"{role}: {t.content}")
    return "\n".join(lines)


def _known(model) -> str:
    return json.dumps(model.model_dump(exclude_none=True, exclude_defaults=True), ensure_ascii=False)


async def _extract(instructions: str, schema, window: List[Turn], known) -> Dict[str, Any]:
    messages = [
        {"role": "system", "content": SYSTEM},
        {"role": "system", "content": instructions},
        {"role": "user", "content": f"Known fields: {_known(known)}\n\nConversation:\n{_transcript(window)}"},
    ]
    try:
        raw = await openai_client.chat_completion(
            messages,
            temperature=settings.EXTRACTION_TEMPERATURE,
            response_format={"type": "json_object"},
        )
    except CompletionError:
        logger.warning("%s extraction skipped: completion failed", schema.__name__)
        return {}
    try:
        candidate = validate_partial(schema, parse_json_object(raw))
    except (ValueError, ValidationError) as e:
        logger.warning("%s extraction discarded: %s", schema.__name__, type(e).__name__)
        return {}
    return novel_fields(known, candidate)


async def extract_intake(window: List[Turn], known: IntakeData) -> Dict[str, Any]:
    """Fields the window adds to ``known``; empty when nothing new or on failure."""
    window = window[-settings.EXTRACTION_WINDOW_TURNS:]
    return await _extract(EXTRACTOR_INSTRUCTIONS, IntakeData, window, known)


async def extract_preferences(window: List[Turn], known: RecommendationPreferences) -> Dict[str, Any]:
    window = window[-settings.EXTRACTION_WINDOW_TURNS:]
    return await _extract(PREFERENCE_INSTRUCTIONS, RecommendationPreferences, window, known)
