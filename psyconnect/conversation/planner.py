from dataclasses import dataclass
from typing import List, Optional
import hashlib

from .memory import TOPIC_LABELS
from .readiness import missing_fields, intake_threshold_met
from .state import ConversationState
from .intents import ACT_CONFUSION, ACT_RESIST, ACT_FAQ

RELATIONAL = "RELATIONAL"
CLINICAL = "CLINICAL"

ANYTHING_ELSE_QUESTION = "Is there anything else you'd like to share before I summarize what you've told me?"


@dataclass
class Plan:
    track: str
    intent: str
    question: Optional[str]
    targets: List[str]
    fingerprint: str


# required field -> (topic that already covers it, question, softer rephrase)
FIELD_QUESTIONS = {
    "chief_complaint": (
        "chiefComplaint",
        "What has been bringing you in to talk with someone right now?",
        "What feels like the main thing you'd like help with?",
    ),
    "history_of_present_illness": (
        "presentIllness",
        "How long has this been going on, and how has it changed over time?",
        "When did you first notice things starting to feel this way?",
    ),
    "past_psychiatric_history": (
        "pastPsychiatric",
        "Have you ever seen a therapist or psychiatrist, or had any mental health treatment before?",
        "Has anyone ever talked with you about a mental health diagnosis or treatment in the past?",
    ),
    "medications": (
        None,
        "Are you currently taking any medications, including anything for mood, sleep or anxiety?",
        "Is there any medication or supplement you take regularly?",
    ),
    "safety_concerns": (
        "mentalStatus",
        "Have you had any thoughts of hurting yourself, or that life isn't worth living?",
        "Some people going through this have thoughts of not wanting to be here. Has anything like that come up for you?",
    ),
    "substance_use": (
        "substanceUse",
        "How much alcohol, cannabis or other substances do you use in a typical week?",
        "Do you drink or use anything else to help you cope?",
    ),
    "functional_impact": (
        "functioning",
        "How has this been affecting your work, school or relationships?",
        "How are you managing day to day with things like work and time with other people?",
    ),
}

# explored only once every required field's topic has come up
SUPPLEMENTAL_TOPICS = {
    "sleep": "How has your sleep been lately?",
    "energy": "How has your energy been during the day?",
    "appetite": "Have you noticed any changes in your appetite or weight?",
    "familyHistory": "Does anyone in your family have a history of mental health conditions?",
    "medicalHistory": "Do you have any medical conditions we should know about?",
}

INTERVIEW_SECTIONS = [
    "Reason for visit",
    "Identifying information",
    "Chief complaint",
    "History of present illness",
    "Past psychiatric history",
    "Family history",
    "Medical history",
    "Substance use",
    "Mental status",
    "Social/work functioning",
]


def fingerprint_intent(intent: str, targets: List[str]) -> str:
    raw = intent + "|" + ",".join(targets)
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def _plan(track: str, intent: str, question: Optional[str], targets: List[str]) -> Plan:
    return Plan(track, intent, question, targets, fingerprint_intent(intent, targets))


def remaining_sections(state: ConversationState) -> List[str]:
    missing = missing_fields(state.intake)
    out = [TOPIC_LABELS[FIELD_QUESTIONS[f][0]] if FIELD_QUESTIONS[f][0] else f.replace("_", " ") for f in missing]
    out += [TOPIC_LABELS[t] for t in SUPPLEMENTAL_TOPICS if t not in state.covered_topics]
    return out


def plan_intake(state: ConversationState, act: str) -> Plan:
    """Choose the single thing the next intake reply should ask."""
    if act in (ACT_CONFUSION, ACT_RESIST, ACT_FAQ):
        # answer first, then come back to whatever was open
        return _plan(RELATIONAL, "reflect_and_clarify", None, [])

    if not state.intake.chief_complaint and "chiefComplaint" not in state.covered_topics \
            and "reasonForVisit" not in state.covered_topics:
        return _plan(RELATIONAL, "rapport_open", FIELD_QUESTIONS["chief_complaint"][1], ["chief_complaint"])

    if intake_threshold_met(state):
        return _plan(RELATIONAL, "anything_else", ANYTHING_ELSE_QUESTION, [])

    missing = missing_fields(state.intake)
    for f in missing:
        topic = FIELD_QUESTIONS[f][0]
        if topic is None or topic not in state.covered_topics:
            return _clarify(state, f)

    for topic, question in SUPPLEMENTAL_TOPICS.items():
        if topic not in state.covered_topics:
            return _plan(CLINICAL, f"explore_{topic}", question, [topic])

    if missing:
        return _clarify(state, missing[0])
    return _plan(RELATIONAL, "anything_else", ANYTHING_ELSE_QUESTION, [])


def _clarify(state: ConversationState, field_name: str) -> Plan:
    _, question, rephrase = FIELD_QUESTIONS[field_name]
    plan = _plan(CLINICAL, f"clarify_{field_name}", question, [field_name])
    if state.last_question_fingerprint and plan.fingerprint == state.last_question_fingerprint:
        # same ask twice in a row: soften it
        plan = _plan(CLINICAL, f"clarify_{field_name}_rephrase", rephrase, [field_name])
    return plan
