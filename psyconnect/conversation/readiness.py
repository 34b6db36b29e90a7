import math
from typing import List

from .state import IntakeData, ConversationState
from ..core.config import settings

# the questionnaire counts as one extra slot in the denominator
REQUIRED_FIELDS = (
    "chief_complaint",
    "history_of_present_illness",
    "past_psychiatric_history",
    "medications",
    "safety_concerns",
    "substance_use",
    "functional_impact",
)


def _filled(value) -> bool:
    return isinstance(value, str) and bool(value.strip())


def missing_fields(intake: IntakeData) -> List[str]:
    return [f for f in REQUIRED_FIELDS if not _filled(getattr(intake, f))]


def completion_percentage(intake: IntakeData, phq9_completed: bool) -> int:
    filled = len(REQUIRED_FIELDS) - len(missing_fields(intake))
    if phq9_completed:
        filled += 1
    pct = filled / (len(REQUIRED_FIELDS) + 1) * 100
    return int(math.floor(pct + 0.5))


def refresh_completion(state: ConversationState) -> int:
    state.completion = completion_percentage(state.intake, state.phq9_completed)
    return state.completion


def intake_threshold_met(state: ConversationState) -> bool:
    return state.completion >= settings.INTAKE_COMPLETION_THRESHOLD
