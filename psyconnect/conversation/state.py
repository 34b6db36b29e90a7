from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Set, Type, TypeVar

from pydantic import BaseModel, Field, field_validator

from .phq9 import PHQ9Assessment
from .stages import Stage

M = TypeVar("M", bound=BaseModel)


def _as_text(v):
    # models sometimes answer with numbers or lists where we keep free text
    if v is None or isinstance(v, str):
        return v
    if isinstance(v, bool):
        return "yes" if v else "no"
    if isinstance(v, (int, float)):
        return str(v)
    if isinstance(v, (list, tuple)):
        return ", ".join(str(x) for x in v if x not in (None, ""))
    return v


def _as_text_map(v):
    if v is None:
        return {}
    if isinstance(v, dict):
        return {str(k): _as_text(val) for k, val in v.items() if val not in (None, "")}
    return v


class IntakeData(BaseModel):
    chief_complaint: Optional[str] = None
    history_of_present_illness: Optional[str] = None
    past_psychiatric_history: Optional[str] = None
    medications: Optional[str] = None
    medication_duration: Optional[str] = None
    safety_concerns: Optional[str] = None
    substance_use: Optional[str] = None
    functional_impact: Optional[str] = None
    patient_age: Optional[str] = None
    gender: Optional[str] = None
    pronouns: Optional[str] = None
    symptom_durations: Dict[str, str] = Field(default_factory=dict)
    symptom_severity: Dict[str, str] = Field(default_factory=dict)

    coerce_text = field_validator(
        "chief_complaint", "history_of_present_illness", "past_psychiatric_history",
        "medications", "medication_duration", "safety_concerns", "substance_use",
        "functional_impact", "patient_age", "gender", "pronouns",
        mode="before",
    )(_as_text)
    coerce_maps = field_validator("symptom_durations", "symptom_severity", mode="before")(_as_text_map)


class RecommendationPreferences(BaseModel):
    location: Optional[str] = None
    insurance_carrier: Optional[str] = None
    in_network_only: Optional[bool] = None
    gender_preference: Optional[str] = None
    therapy_style: Optional[str] = None
    accepting_new_patients_only: Optional[bool] = None

    coerce_text = field_validator(
        "location", "insurance_carrier", "gender_preference", "therapy_style", mode="before",
    )(_as_text)


class SafetyConcerns(BaseModel):
    suicidal_ideation: bool = False
    self_harm: bool = False
    homicidal_ideation: bool = False
    hallucinations: bool = False
    delusions: bool = False
    risk_level: str = "low"  # low|moderate|high|emergency
    notes: Optional[str] = None

    @field_validator("risk_level", mode="before")
    @classmethod
    def _risk(cls, v):
        v = str(v or "low").strip().lower()
        return v if v in ("low", "moderate", "high", "emergency") else "low"

    @property
    def any_present(self) -> bool:
        return any([self.suicidal_ideation, self.self_harm, self.homicidal_ideation,
                    self.hallucinations, self.delusions])


class ClinicalSummary(BaseModel):
    narrative: str = ""
    chief_complaint: Optional[str] = None
    symptoms: List[str] = Field(default_factory=list)
    diagnoses: List[str] = Field(default_factory=list)
    medications: List[str] = Field(default_factory=list)
    safety_concerns: SafetyConcerns = Field(default_factory=SafetyConcerns)
    functional_impact: Optional[str] = None
    phq9_score: Optional[int] = None
    phq9_severity: Optional[str] = None
    patient_age: Optional[str] = None
    gender: Optional[str] = None
    confirmed: bool = False

    coerce_text = field_validator(
        "chief_complaint", "functional_impact", "patient_age", "gender", mode="before",
    )(_as_text)

    @field_validator("symptoms", "diagnoses", "medications", mode="before")
    @classmethod
    def _listify(cls, v):
        if v is None:
            return []
        if isinstance(v, str):
            return [p.strip() for p in v.split(",") if p.strip()]
        return v


class BookingDraft(BaseModel):
    psychiatrist_id: str
    availability: Optional[str] = None
    recipient: Optional[str] = None
    subject: str = ""
    body: str = ""
    approved: bool = False
    sent: bool = False
    booking_id: Optional[str] = None


def _is_filled(v: Any) -> bool:
    if v is None:
        return False
    if isinstance(v, str):
        return bool(v.strip())
    if isinstance(v, dict):
        return bool(v)
    return True


def novel_fields(known: BaseModel, candidate: Dict[str, Any]) -> Dict[str, Any]:
    """Keep only what ``candidate`` adds to ``known``.

    Scalars count when the known value is empty; map fields contribute the
    keys that are missing or carry a different value. Unknown names and empty
    values are dropped.
    """
    delta: Dict[str, Any] = {}
    for name, value in candidate.items():
        if name not in type(known).model_fields or not _is_filled(value):
            continue
        current = getattr(known, name)
        if isinstance(current, dict):
            changed = {k: v for k, v in value.items() if _is_filled(v) and current.get(k) != v}
            if changed:
                delta[name] = changed
        elif not _is_filled(current):
            delta[name] = value.strip() if isinstance(value, str) else value
    return delta


def merge_fields(known: M, delta: Dict[str, Any]) -> M:
    """Apply a delta without clearing anything.

    Map fields are unioned with the delta winning on shared keys; scalars are
    only written when currently empty.
    """
    updates: Dict[str, Any] = {}
    for name, value in delta.items():
        if name not in type(known).model_fields or not _is_filled(value):
            continue
        current = getattr(known, name)
        if isinstance(current, dict):
            merged = dict(current)
            merged.update({k: v for k, v in value.items() if _is_filled(v)})
            updates[name] = merged
        elif not _is_filled(current):
            updates[name] = value
    return known.model_copy(update=updates)


def merge_intake(known: IntakeData, delta: Dict[str, Any]) -> IntakeData:
    return merge_fields(known, delta)


def validate_partial(model: Type[M], raw: Dict[str, Any]) -> Dict[str, Any]:
    """Validate an untrusted partial record and return only the fields it set."""
    parsed = model.model_validate(raw)
    return parsed.model_dump(include=parsed.model_fields_set)


@dataclass
class Turn:
    role: str  # user | assistant
    content: str


@dataclass
class ConversationState:
    session_id: str
    stage: Stage = Stage.INTAKE
    turns: List[Turn] = field(default_factory=list)
    covered_topics: Set[str] = field(default_factory=set)
    intake_complete: bool = False
    patient_ready_for_summary: bool = False
    completion: int = 0
    # what the last assistant reply asked; only the next user message may answer it
    pending_prompt: Optional[str] = None
    last_question_fingerprint: Optional[str] = None
    intake: IntakeData = field(default_factory=IntakeData)
    phq9: PHQ9Assessment = field(default_factory=PHQ9Assessment)
    phq9_score: Optional[int] = None
    phq9_severity: Optional[str] = None
    summary: Optional[ClinicalSummary] = None
    summary_record_id: Optional[str] = None
    preferences: RecommendationPreferences = field(default_factory=RecommendationPreferences)
    preferences_asked: List[str] = field(default_factory=list)
    candidates: List[str] = field(default_factory=list)
    selected_psychiatrist_id: Optional[str] = None
    booking: Optional[BookingDraft] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def phq9_completed(self) -> bool:
        return self.phq9.is_complete

    def add_turn(self, role: str, content: str) -> None:
        self.turns.append(Turn(role=role, content=content))

    def history(self, limit: int | None = None) -> List[Turn]:
        return self.turns[-limit:] if limit else list(self.turns)
