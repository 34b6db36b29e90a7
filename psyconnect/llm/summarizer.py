"""Clinical summary generation.

One JSON completion call turns the intake record and transcript into a
ClinicalSummary. If the model's output can't be parsed we fall back to a
summary built straight from the extracted fields, so the patient is never
stuck at this step because of a formatting problem. Upstream failures are not
caught here; the turn is retried as a whole.
"""
import json
import logging
import re
from typing import List

from pydantic import ValidationError

from . import openai_client
from .prompts import SYSTEM, SUMMARY_INSTRUCTIONS
from ..core.config import settings
from ..conversation.phq9 import PHQ9Assessment
from ..conversation.state import ClinicalSummary, IntakeData, SafetyConcerns, Turn
from ..utils.jsonparse import parse_json_object

logger = logging.getLogger(__name__)

_SPLIT = re.compile(r"\s*(?:,|;|\band\b)\s*")


def _items(text: str | None) -> List[str]:
    if not text:
        return []
    return [p.strip() for p in _SPLIT.split(text) if p.strip()]


def _safety_from_text(text: str | None) -> SafetyConcerns:
    t = (text or "").lower()
    denial = bool(re.match(r"(patient )?(denies|no|none|never|not)\b", t)) and not re.search(r"\b(but|however|sometimes)\b", t)
    suicidal = bool(re.search(r"suicid|end (my|their) life|not wanting to be here|better off dead", t)) and not denial
    self_harm = bool(re.search(r"self[- ]?harm|cutting|hurt (myself|themself|themselves)", t)) and not denial
    homicidal = bool(re.search(r"homicid|hurt (someone|others)|kill (someone|him|her|them)", t)) and not denial
    hallucinations = "hallucinat" in t or "hearing voices" in t
    delusions = "delusion" in t or "paranoi" in t
    risk = "high" if (suicidal or homicidal) else ("moderate" if (self_harm or hallucinations or delusions) else "low")
    return SafetyConcerns(
        suicidal_ideation=suicidal,
        self_harm=self_harm,
        homicidal_ideation=homicidal,
        hallucinations=hallucinations,
        delusions=delusions,
        risk_level=risk,
        notes=text or None,
    )


def heuristic_summary(intake: IntakeData, phq9: PHQ9Assessment) -> ClinicalSummary:
    parts = []
    if intake.chief_complaint:
        parts.append(f"The patient presents with {intake.chief_complaint.rstrip('.')}.")
    if intake.history_of_present_illness:
        parts.append(f"History of present illness: {intake.history_of_present_illness.rstrip('.')}.")
    if intake.past_psychiatric_history:
        parts.append(f"Past psychiatric history: {intake.past_psychiatric_history.rstrip('.')}.")
    if intake.medications:
        parts.append(f"Current medications: {intake.medications.rstrip('.')}.")
    if intake.substance_use:
        parts.append(f"Substance use: {intake.substance_use.rstrip('.')}.")
    if intake.functional_impact:
        parts.append(f"Functional impact: {intake.functional_impact.rstrip('.')}.")
    if phq9.is_complete:
        parts.append(f"Depression screening score {phq9.total()} ({phq9.severity().lower()}).")
    symptoms = sorted(set(intake.symptom_durations) | set(intake.symptom_severity))
    return ClinicalSummary(
        narrative=" ".join(parts) or "Limited information was gathered during the intake.",
        chief_complaint=intake.chief_complaint,
        symptoms=symptoms,
        diagnoses=[],
        medications=_items(intake.medications),
        safety_concerns=_safety_from_text(intake.safety_concerns),
        functional_impact=intake.functional_impact,
        patient_age=intake.patient_age,
        gender=intake.gender,
    )


async def generate_summary(intake: IntakeData, phq9: PHQ9Assessment, history: List[Turn]) -> ClinicalSummary:
    transcript = "\n".join(
        f"{'assistant' if t.role == 'assistant' else 'patient'}: {t.content}"
        for t in history[-settings.HISTORY_WINDOW_TURNS:]
    )
    fields = json.dumps(intake.model_dump(exclude_none=True, exclude_defaults=True), ensure_ascii=False)
    messages = [
        {"role": "system", "content": SYSTEM},
        {"role": "system", "content": SUMMARY_INSTRUCTIONS},
        {"role": "user", "content": f"Extracted fields: {fields}\n\nConversation:\n{transcript}"},
    ]
    raw = await openai_client.chat_completion(
        messages,
        temperature=settings.EXTRACTION_TEMPERATURE,
        response_format={"type": "json_object"},
    )
    try:
        summary = ClinicalSummary.model_validate(parse_json_object(raw))
    except (ValueError, ValidationError) as e:
        logger.warning("summary output unusable (%s); using heuristic summary", type(e).__name__)
        summary = heuristic_summary(intake, phq9)

    # never trust the model with the score
    summary.phq9_score = phq9.total()
    summary.phq9_severity = phq9.severity()
    summary.confirmed = False
    if not summary.chief_complaint:
        summary.chief_complaint = intake.chief_complaint
    return summary
