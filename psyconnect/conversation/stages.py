from __future__ import annotations
from enum import Enum
from typing import TYPE_CHECKING, Dict, FrozenSet
import logging

from ..core.config import settings
from ..core.errors import IllegalTransition

if TYPE_CHECKING:
    from .state import ConversationState

logger = logging.getLogger(__name__)


class Stage(str, Enum):
    INTAKE = "intake"
    PHQ9 = "phq9"
    SUMMARY = "summary"
    RECOMMENDATION = "recommendation"
    BOOKING = "booking"
    COMPLETE = "complete"


# forward-only; reset() is the single way back to INTAKE
TRANSITIONS: Dict[Stage, FrozenSet[Stage]] = {
    Stage.INTAKE: frozenset({Stage.PHQ9}),
    Stage.PHQ9: frozenset({Stage.SUMMARY}),
    Stage.SUMMARY: frozenset({Stage.RECOMMENDATION, Stage.COMPLETE}),
    Stage.RECOMMENDATION: frozenset({Stage.BOOKING}),
    Stage.BOOKING: frozenset({Stage.COMPLETE}),
    Stage.COMPLETE: frozenset(),
}

ORDER = [Stage.INTAKE, Stage.PHQ9, Stage.SUMMARY, Stage.RECOMMENDATION, Stage.BOOKING, Stage.COMPLETE]


def can_transition(current: Stage, target: Stage) -> bool:
    return target in TRANSITIONS.get(current, frozenset())


def reached(state: "ConversationState", stage: Stage) -> bool:
    return ORDER.index(state.stage) >= ORDER.index(stage)


def _guard(state: "ConversationState", target: Stage) -> str | None:
    """Return a reason string when the move is blocked, else None."""
    if target == Stage.PHQ9:
        if state.completion < settings.INTAKE_COMPLETION_THRESHOLD:
            return f"intake completion {state.completion}% is below {settings.INTAKE_COMPLETION_THRESHOLD}%"
        if not state.patient_ready_for_summary:
            return "patient has not confirmed there is nothing else to share"
    elif target == Stage.SUMMARY:
        if not state.phq9.is_complete:
            return "questionnaire is not complete"
    elif target == Stage.BOOKING:
        if not state.selected_psychiatrist_id or state.selected_psychiatrist_id not in state.candidates:
            return "no psychiatrist selected from the candidate list"
    elif target == Stage.COMPLETE and state.stage == Stage.BOOKING:
        if state.booking is None or not state.booking.sent:
            return "referral email has not been approved and sent"
    return None


def transition(state: "ConversationState", target: Stage) -> "ConversationState":
    current = state.stage
    if not can_transition(current, target):
        raise IllegalTransition(current.value, target.value)
    reason = _guard(state, target)
    if reason:
        raise IllegalTransition(current.value, target.value, reason)

    if target == Stage.PHQ9:
        state.intake_complete = True
    elif target == Stage.SUMMARY:
        state.phq9_score = state.phq9.total()
        state.phq9_severity = state.phq9.severity()

    state.stage = target
    logger.info("session %s: %s -> %s", state.session_id, current.value, target.value)
    return state


def reset(state: "ConversationState") -> "ConversationState":
    """Drop everything gathered so far and start again at INTAKE."""
    from .state import ConversationState

    logger.info("session %s: reset from %s", state.session_id, state.stage.value)
    return ConversationState(session_id=state.session_id)
