from __future__ import annotations
from typing import Any, Dict, List, Optional, Tuple
import copy
import logging

from .stages import Stage, transition, reset, reached
from .state import BookingDraft, ClinicalSummary, ConversationState, merge_fields, merge_intake
from .memory import record_topics
from .phq9 import parse_item_response, parse_batch_responses, next_question
from .readiness import refresh_completion, intake_threshold_met
from .planner import plan_intake, remaining_sections
from .intents import (
    ACT_CRISIS, ACT_CONFUSION, ACT_FAQ, ACT_RESIST, YES, NO,
    classify_act, classify_yes_no, is_nothing_more, is_no_preference,
    normalize_gender_preference, parse_selection,
)
from ..core.config import settings
from ..core.errors import CompletionError, EmailDeliveryError, IllegalTransition
from ..llm import composer, drafts, extractor, summarizer
from ..matching import engine
from ..matching.loader import get_psychiatrist, load_psychiatrists
from ..services import email as email_service

logger = logging.getLogger(__name__)

# what the last assistant reply asked for
ANYTHING_ELSE = "anything_else"
PHQ9_ITEM = "phq9_item"
SUMMARY_REVIEW = "summary_review"
RECOMMENDATIONS_OFFER = "recommendations_offer"
PREFERENCE = "preference:"
SELECTION = "selection"
AVAILABILITY = "availability"
EMAIL_APPROVAL = "email_approval"
EMAIL_CHANGES = "email_changes"

GREETING = ("Hi, I'm here to help you get ready for a first visit with a psychiatrist. "
            "There are no right or wrong answers. What brings you in today?")

APOLOGY = "I'm sorry, I'm having trouble responding right now. Could you send that again in a moment?"

CRISIS_REPLY = (
    "I'm really sorry you're feeling this way. If you might be in immediate danger or are thinking about harming "
    "yourself or someone else, please call your local emergency number now, or call or text 988 to reach the "
    "Suicide & Crisis Lifeline (US). Reaching out to someone you trust can help too.\n\n"
    "If you feel safe to continue, I'm here and we can keep going whenever you're ready."
)

PHQ9_INTRO = ("Thank you for sharing all of that. Next I'd like to ask a few short questions about how you've been "
              "feeling over the last two weeks. For each one you can answer not at all, several days, more than "
              "half the days, or nearly every day.")
PHQ9_CLARIFY = ("I want to make sure I record that correctly. Thinking about the last two weeks, would you say "
                "not at all, several days, more than half the days, or nearly every day?")

SUMMARY_REVIEW_QUESTION = "Would you like to review a summary of what you've shared before we look at psychiatrists?"
RECOMMENDATION_QUESTION = "Would you like me to suggest psychiatrists who may be a good fit for you?"
SELECTION_QUESTION = "Which psychiatrist would you like to contact? You can reply with their number or name."
SEND_QUESTION = "Would you like me to send this email?"

CLOSING_NO_RECOMMENDATIONS = ("That's completely fine. Your summary is saved for this session. If you change your "
                              "mind or things get harder, please reach out to a professional or call 988. Take care.")

PREFERENCE_QUESTIONS = [
    ("location", "Which city or area would you like to be seen in?"),
    ("insurance_carrier", "Which insurance carrier do you have, if any?"),
    ("in_network_only", "Should I only show psychiatrists who are in-network with your insurance?"),
    ("gender_preference", "Do you have a preference for your psychiatrist's gender?"),
    ("therapy_style", "Is there a particular kind of care you're hoping for, such as medication management, talk therapy, or both?"),
]

EXPLAIN_NOTE = "The patient seems unsure or asked a question. Explain briefly in plain language before continuing."


def _meta(state: ConversationState, meta: Dict[str, Any]) -> Dict[str, Any]:
    meta.update({
        "stage": state.stage.value,
        "completion": state.completion,
        "pendingPrompt": state.pending_prompt,
        "coveredTopics": sorted(state.covered_topics),
        "phq9Answered": len(state.phq9.responses),
    })
    meta.setdefault("events", [])
    return meta


def start_session(state: ConversationState) -> Tuple[ConversationState, str]:
    state.add_turn("assistant", GREETING)
    return state, GREETING


def reset_session(state: ConversationState) -> Tuple[ConversationState, str]:
    fresh = reset(state)
    return start_session(fresh)


async def handle_turn(state: ConversationState, user_text: str) -> Tuple[ConversationState, str, Dict[str, Any]]:
    """Run one patient message through the current stage.

    Works on a copy: if the completion service fails the caller gets the
    original state back untouched along with an apology.
    """
    working = copy.deepcopy(state)
    try:
        reply, meta = await _run_turn(working, user_text.strip())
    except CompletionError:
        logger.warning("session %s: turn failed upstream in stage %s", state.session_id, state.stage.value)
        return state, APOLOGY, _meta(state, {"error": "upstream_unavailable", "events": []})
    working.add_turn("assistant", reply)
    return working, reply, _meta(working, meta)


async def _run_turn(state: ConversationState, text: str) -> Tuple[str, Dict[str, Any]]:
    prompt = state.pending_prompt
    state.pending_prompt = None
    state.add_turn("user", text)
    record_topics(state.covered_topics, text)
    meta: Dict[str, Any] = {"events": []}

    act = classify_act(text).act
    if act == ACT_CRISIS:
        if state.stage == Stage.PHQ9 and parse_item_response(text) is not None:
            # a readable answer still counts; the safety message goes first
            reply = await _phq9_turn(state, text, prompt, act, meta)
            meta["events"].append("crisis")
            return f"{CRISIS_REPLY}\n\n{reply}", meta
        if state.stage == Stage.INTAKE:
            await _absorb_intake(state)
        # the open question is still open after the safety message
        state.pending_prompt = prompt
        meta["intent"] = "crisis_referral"
        meta["events"].append("crisis")
        reply = CRISIS_REPLY
        if state.stage == Stage.PHQ9 and next_question(state.phq9):
            reply += "\n\n" + next_question(state.phq9)
            state.pending_prompt = PHQ9_ITEM
        return reply, meta

    handler = _HANDLERS[state.stage]
    reply = await handler(state, text, prompt, act, meta)
    return reply, meta


async def _compose(state: ConversationState, text: str, intent: str, question: Optional[str],
                   meta: Dict[str, Any], extra: Optional[str] = None) -> str:
    meta["intent"] = intent
    remaining = remaining_sections(state) if state.stage == Stage.INTAKE else []
    known = state.intake.model_dump(exclude_none=True, exclude_defaults=True)
    return await composer.compose(
        state.stage.value,
        text,
        state.history(settings.HISTORY_WINDOW_TURNS),
        state.covered_topics,
        remaining,
        known,
        intent,
        question,
        extra,
    )


# intake

async def _absorb_intake(state: ConversationState) -> Dict[str, Any]:
    delta = await extractor.extract_intake(state.turns, state.intake)
    if delta:
        state.intake = merge_intake(state.intake, delta)
    refresh_completion(state)
    return delta


async def _intake_turn(state, text, prompt, act, meta) -> str:
    delta = await _absorb_intake(state)
    meta["extracted"] = sorted(delta)

    if prompt == ANYTHING_ELSE and is_nothing_more(text):
        if intake_threshold_met(state):
            state.patient_ready_for_summary = True
            transition(state, Stage.PHQ9)
            meta["events"].append("intake_complete")
            meta["intent"] = "start_phq9"
            state.pending_prompt = PHQ9_ITEM
            return f"{PHQ9_INTRO}\n\n{next_question(state.phq9)}"
        # too early to wrap up; keep interviewing
        meta["events"].append("affirmation_discarded")

    plan = plan_intake(state, act)
    state.last_question_fingerprint = plan.fingerprint
    extra = EXPLAIN_NOTE if act in (ACT_CONFUSION, ACT_FAQ, ACT_RESIST) else None
    reply = await _compose(state, text, plan.intent, plan.question, meta, extra)
    meta["track"] = plan.track
    if plan.intent == "anything_else" or "anything else" in reply.lower():
        state.pending_prompt = ANYTHING_ELSE
    return reply


# phq9

def _finish_phq9(state: ConversationState, meta: Dict[str, Any]) -> str:
    transition(state, Stage.SUMMARY)
    refresh_completion(state)
    meta["events"].append("phq9_complete")
    meta["intent"] = "offer_summary"
    state.pending_prompt = SUMMARY_REVIEW
    return f"Thank you, that's all of those questions. {SUMMARY_REVIEW_QUESTION}"


async def _phq9_turn(state, text, prompt, act, meta) -> str:
    if not state.phq9.responses:
        batch = parse_batch_responses(text)
        if batch is not None:
            state.phq9.record_all(batch)
            return _finish_phq9(state, meta)

    value = parse_item_response(text)
    if value is None:
        meta["intent"] = "phq9_clarify"
        state.pending_prompt = PHQ9_ITEM
        return PHQ9_CLARIFY

    state.phq9.record(value)
    if state.phq9.is_complete:
        return _finish_phq9(state, meta)
    meta["intent"] = "phq9_next"
    state.pending_prompt = PHQ9_ITEM
    return f"Thank you. {next_question(state.phq9)}"


def submit_phq9(state: ConversationState, responses: List[int]) -> Tuple[ConversationState, str, Dict[str, Any]]:
    """Take all nine answers at once from the form."""
    if state.stage != Stage.PHQ9:
        raise IllegalTransition(state.stage.value, Stage.SUMMARY.value, "questionnaire is not open")
    state = copy.deepcopy(state)
    state.phq9.record_all(responses)
    meta: Dict[str, Any] = {"events": ["phq9_form"]}
    reply = _finish_phq9(state, meta)
    state.add_turn("assistant", reply)
    return state, reply, _meta(state, meta)


# summary

async def _ensure_summary(state: ConversationState, meta: Dict[str, Any]) -> ClinicalSummary:
    if state.summary is None:
        state.summary = await summarizer.generate_summary(state.intake, state.phq9, state.turns)
        meta["events"].append("summary_generated")
    return state.summary


async def _summary_turn(state, text, prompt, act, meta) -> str:
    if prompt == SUMMARY_REVIEW:
        answer = classify_yes_no(text)
        if answer == YES:
            summary = await _ensure_summary(state, meta)
            meta["intent"] = "show_summary"
            state.pending_prompt = RECOMMENDATIONS_OFFER
            return f"Here's a summary of what you've shared:\n\n{summary.narrative}\n\n{RECOMMENDATION_QUESTION}"
        if answer == NO:
            await _ensure_summary(state, meta)
            transition(state, Stage.RECOMMENDATION)
            return _next_preference(state, meta, "No problem. Let's find a psychiatrist who fits your needs.")
    elif prompt == RECOMMENDATIONS_OFFER:
        answer = classify_yes_no(text)
        if answer == YES:
            transition(state, Stage.RECOMMENDATION)
            return _next_preference(state, meta, "Great. A few quick questions so I can narrow things down.")
        if answer == NO:
            transition(state, Stage.COMPLETE)
            meta["intent"] = "close_without_recommendations"
            return CLOSING_NO_RECOMMENDATIONS

    if state.summary is None:
        state.pending_prompt = SUMMARY_REVIEW
        return await _compose(state, text, "reoffer_summary", SUMMARY_REVIEW_QUESTION, meta)
    state.pending_prompt = RECOMMENDATIONS_OFFER
    return await _compose(state, text, "reoffer_recommendations", RECOMMENDATION_QUESTION, meta)


def edit_summary(state: ConversationState, changes: Dict[str, Any]) -> ClinicalSummary:
    """Apply a reviewer's edits. Score fields always stay what the questionnaire produced."""
    if state.summary is None:
        raise IllegalTransition(state.stage.value, state.stage.value, "no summary has been generated yet")
    data = state.summary.model_dump()
    data.update({k: v for k, v in changes.items() if k not in ("phq9_score", "phq9_severity")})
    summary = ClinicalSummary.model_validate(data)
    summary.phq9_score = state.summary.phq9_score
    summary.phq9_severity = state.summary.phq9_severity
    state.summary = summary
    return summary


# recommendation

def _preference_value(key: str, text: str):
    if key == "in_network_only":
        answer = classify_yes_no(text)
        return True if answer == YES else (False if answer == NO else None)
    if is_no_preference(text):
        return None
    if key == "gender_preference":
        return normalize_gender_preference(text)
    return text.strip()[:120] or None


async def _absorb_preference(state: ConversationState, key: str, text: str) -> None:
    delta = await extractor.extract_preferences(state.turns, state.preferences)
    if delta:
        state.preferences = merge_fields(state.preferences, delta)
    if getattr(state.preferences, key) is None:
        value = _preference_value(key, text)
        if value is not None:
            state.preferences = merge_fields(state.preferences, {key: value})


def current_matches(state: ConversationState) -> List[engine.Match]:
    """Rank the directory for this patient and remember the candidate ids."""
    if not reached(state, Stage.RECOMMENDATION) or state.summary is None:
        raise IllegalTransition(state.stage.value, Stage.RECOMMENDATION.value, "summary is not ready")
    directory = load_psychiatrists()
    matches = engine.match_psychiatrists(directory, state.summary, state.preferences, settings.MATCH_LIMIT)
    if not matches:
        # nothing passes every hard filter; fall back to the closest options
        relaxed = state.preferences.model_copy(update={"in_network_only": None, "gender_preference": None})
        matches = engine.match_psychiatrists(directory, state.summary, relaxed, settings.MATCH_LIMIT)
    if state.stage == Stage.RECOMMENDATION:
        state.candidates = [m.psychiatrist.id for m in matches]
    return matches


def _listing(matches: List[engine.Match]) -> str:
    lines = []
    for i, m in enumerate(matches, start=1):
        d = m.psychiatrist
        lines.append(f"{i}. {d.name}, {d.credential} - {', '.join(d.specialties)}. {d.location}. Available {d.availability}.")
    return "\n".join(lines)


def _next_preference(state: ConversationState, meta: Dict[str, Any], lead: str = "") -> str:
    for key, question in PREFERENCE_QUESTIONS:
        if key in state.preferences_asked or getattr(state.preferences, key) is not None:
            continue
        if key == "in_network_only" and not state.preferences.insurance_carrier:
            continue
        state.preferences_asked.append(key)
        state.pending_prompt = PREFERENCE + key
        meta["intent"] = f"ask_{key}"
        return f"{lead} {question}".strip()

    matches = current_matches(state)
    meta["events"].append("recommendations_ready")
    meta["intent"] = "present_recommendations"
    if not matches:
        return "I'm sorry, I couldn't find any psychiatrists in our directory who are accepting new patients right now."
    state.pending_prompt = SELECTION
    return f"Here are the psychiatrists who look like the best fit for you:\n\n{_listing(matches)}\n\n{SELECTION_QUESTION}"


async def _recommendation_turn(state, text, prompt, act, meta) -> str:
    if prompt and prompt.startswith(PREFERENCE):
        await _absorb_preference(state, prompt[len(PREFERENCE):], text)
        return _next_preference(state, meta, "Thanks.")

    if state.candidates:
        options = [{"id": pid, "name": get_psychiatrist(pid).name} for pid in state.candidates if get_psychiatrist(pid)]
        chosen = parse_selection(text, options)
        if chosen:
            return _select(state, chosen, meta)
        state.pending_prompt = SELECTION
        return await _compose(state, text, "help_choose", SELECTION_QUESTION, meta)

    return _next_preference(state, meta)


def _select(state: ConversationState, psychiatrist_id: str, meta: Dict[str, Any]) -> str:
    doc = get_psychiatrist(psychiatrist_id)
    if doc is None:
        raise IllegalTransition(state.stage.value, Stage.BOOKING.value, "unknown psychiatrist")
    state.selected_psychiatrist_id = psychiatrist_id
    transition(state, Stage.BOOKING)
    state.booking = BookingDraft(psychiatrist_id=psychiatrist_id, recipient=doc.email)
    state.pending_prompt = AVAILABILITY
    meta["events"].append("psychiatrist_selected")
    meta["intent"] = "ask_availability"
    return (f"{doc.name} sounds like a good choice. To draft an email to their office, which days and times work "
            f"for you, and how should they reach you (phone or email)?")


def select_psychiatrist(state: ConversationState, psychiatrist_id: str) -> Tuple[ConversationState, str, Dict[str, Any]]:
    if state.stage != Stage.RECOMMENDATION:
        raise IllegalTransition(state.stage.value, Stage.BOOKING.value)
    state = copy.deepcopy(state)
    if psychiatrist_id not in state.candidates:
        raise IllegalTransition(state.stage.value, Stage.BOOKING.value, "psychiatrist is not in the recommended list")
    meta: Dict[str, Any] = {"events": []}
    reply = _select(state, psychiatrist_id, meta)
    state.add_turn("assistant", reply)
    return state, reply, _meta(state, meta)


# booking

async def _draft_email(state: ConversationState, meta: Dict[str, Any], edits: Optional[str] = None) -> None:
    booking = state.booking
    doc = get_psychiatrist(booking.psychiatrist_id)
    previous = (booking.subject, booking.body) if booking.subject else None
    booking.subject, booking.body = await drafts.draft_referral_email(
        state.summary, doc, booking.availability or "", edits=edits, previous=previous,
    )
    booking.approved = False
    meta["events"].append("email_edited" if edits else "email_drafted")


def _show_draft(state: ConversationState, lead: str) -> str:
    b = state.booking
    return f"{lead}\n\nSubject: {b.subject}\n\n{b.body}\n\n{SEND_QUESTION}"


async def _send(state: ConversationState, meta: Dict[str, Any]) -> str:
    booking = state.booking
    booking.approved = True
    try:
        message_id = await email_service.send_email(booking.recipient, booking.subject, booking.body)
    except EmailDeliveryError:
        booking.approved = False
        raise
    booking.sent = True
    meta["messageId"] = message_id
    meta["events"].append("email_sent")
    transition(state, Stage.COMPLETE)
    doc = get_psychiatrist(booking.psychiatrist_id)
    meta["intent"] = "confirm_sent"
    return (f"Your email has been sent to {doc.name}'s office. They should get back to you using the details you "
            f"shared. If things get harder before your appointment, please call 988 or your local emergency number. "
            f"Take care.")


async def _booking_turn(state, text, prompt, act, meta) -> str:
    booking = state.booking
    if prompt == AVAILABILITY or not booking.subject:
        booking.availability = text
        await _draft_email(state, meta)
        state.pending_prompt = EMAIL_APPROVAL
        meta["intent"] = "show_draft"
        return _show_draft(state, "Here's the email I drafted:")

    if prompt == EMAIL_APPROVAL:
        answer = classify_yes_no(text)
        if answer == YES:
            try:
                return await _send(state, meta)
            except EmailDeliveryError:
                state.pending_prompt = EMAIL_APPROVAL
                meta["error"] = "email_failed"
                return "I'm sorry, I couldn't send the email just now. Would you like me to try again?"
        if answer == NO:
            state.pending_prompt = EMAIL_CHANGES
            meta["intent"] = "ask_changes"
            return "No problem. What would you like me to change in the email?"

    if prompt == EMAIL_CHANGES:
        await _draft_email(state, meta, edits=text)
        state.pending_prompt = EMAIL_APPROVAL
        meta["intent"] = "show_draft"
        return _show_draft(state, "I've updated the email:")

    state.pending_prompt = EMAIL_APPROVAL
    return await _compose(state, text, "reoffer_send", SEND_QUESTION, meta)


def edit_email_draft(state: ConversationState, subject: Optional[str] = None, body: Optional[str] = None,
                     recipient: Optional[str] = None) -> BookingDraft:
    """Manual edits always put the draft back to unapproved."""
    if state.stage != Stage.BOOKING or state.booking is None or not state.booking.subject:
        raise IllegalTransition(state.stage.value, state.stage.value, "there is no email draft to edit")
    b = state.booking
    if subject is not None:
        b.subject = subject
    if body is not None:
        b.body = body
    if recipient is not None:
        b.recipient = recipient
    b.approved = False
    state.pending_prompt = EMAIL_APPROVAL
    return b


async def approve_email(state: ConversationState) -> Tuple[ConversationState, str, Dict[str, Any]]:
    if state.stage != Stage.BOOKING or state.booking is None or not state.booking.subject:
        raise IllegalTransition(state.stage.value, Stage.COMPLETE.value, "there is no email draft to approve")
    state = copy.deepcopy(state)
    meta: Dict[str, Any] = {"events": []}
    reply = await _send(state, meta)
    state.pending_prompt = None
    state.add_turn("assistant", reply)
    return state, reply, _meta(state, meta)


# complete

async def _complete_turn(state, text, prompt, act, meta) -> str:
    return await _compose(state, text, "closing", None, meta)


_HANDLERS = {
    Stage.INTAKE: _intake_turn,
    Stage.PHQ9: _phq9_turn,
    Stage.SUMMARY: _summary_turn,
    Stage.RECOMMENDATION: _recommendation_turn,
    Stage.BOOKING: _booking_turn,
    Stage.COMPLETE: _complete_turn,
}
