"""PHQ-9 items, free-text answer parsing and scoring."""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import List, Optional
import re

from ..core.errors import IncompleteAssessment

ITEM_COUNT = 9
MAX_ITEM_SCORE = 3

PHQ9_ITEMS = [
    "Little interest or pleasure in doing things",
    "Feeling down, depressed, or hopeless",
    "Trouble falling asleep or sleeping too much",
    "Feeling tired or having little energy",
    "Poor appetite or overeating",
    "Feeling bad about yourself - or that you are a failure or have let yourself or your family down",
    "Trouble concentrating on things, such as reading the newspaper or watching television",
    "Moving or speaking so slowly that other people could have noticed. Or the opposite - being so fidgety or restless that you have been moving around a lot more than usual",
    "Thoughts that you would be better off dead, or of hurting yourself in some way",
]

# conversational wording; never names the instrument
CONVERSATIONAL_QUESTIONS = [
    "Over the last two weeks, how often have you had little interest or pleasure in doing things?",
    "Over the last two weeks, how often have you felt down, depressed, or hopeless?",
    "Over the last two weeks, how often have you had trouble falling or staying asleep, or sleeping too much?",
    "Over the last two weeks, how often have you felt tired or had little energy?",
    "Over the last two weeks, how often have you had a poor appetite or been overeating?",
    "Over the last two weeks, how often have you felt bad about yourself, or that you are a failure or have let yourself or your family down?",
    "Over the last two weeks, how often have you had trouble concentrating on things, like reading or watching TV?",
    "Over the last two weeks, how often have you been moving or speaking so slowly that others could notice, or the opposite, being so fidgety or restless that you moved around a lot more than usual?",
    "Over the last two weeks, how often have you had thoughts that you would be better off dead, or of hurting yourself?",
]

ANSWER_OPTIONS = [
    ("Not at all", 0),
    ("Several days", 1),
    ("More than half the days", 2),
    ("Nearly every day", 3),
]

CLARIFY_OPTIONS = "Would you say not at all, several days, more than half the days, or nearly every day?"

SEVERITY_BANDS = [
    (4, "Minimal"),
    (9, "Mild"),
    (14, "Moderate"),
    (19, "Moderately Severe"),
    (27, "Severe"),
]

_DIGIT = re.compile(r"\b([0-3])\b")

# checked in this order; first match wins
_PHRASES = [
    (0, re.compile(r"\b(not at all|never|none|no|zero)\b")),
    (1, re.compile(r"\b(several days|some days|a few|occasionally|sometimes|once or twice|one)\b")),
    (2, re.compile(r"\b(more than half|often|most days|frequently|regularly|two)\b")),
    (3, re.compile(r"\b(nearly every day|every day|almost every day|almost always|all the time|always|constantly|three)\b")),
]


def parse_item_response(text: str) -> Optional[int]:
    """Map one free-text answer to 0..3, or None when it can't be read."""
    if not text or not isinstance(text, str):
        return None
    t = text.strip().lower()
    m = _DIGIT.search(t)
    if m:
        return int(m.group(1))
    for score, pat in _PHRASES:
        if pat.search(t):
            return score
    return None


def parse_batch_responses(text: str) -> Optional[List[int]]:
    """Read a full set of nine answers from one message.

    Accepts a comma separated list ("0,1,2,...") or exactly nine digits.
    Anything that does not come to exactly nine valid values is rejected.
    """
    if not text:
        return None
    if "," in text:
        parts = [p.strip() for p in text.split(",") if p.strip()]
        if len(parts) != ITEM_COUNT:
            return None
        values = [parse_item_response(p) for p in parts]
        if any(v is None for v in values):
            return None
        return values
    digits = re.findall(r"\d", text)
    if len(digits) != ITEM_COUNT:
        return None
    values = [int(d) for d in digits]
    if any(v > MAX_ITEM_SCORE for v in values):
        return None
    return values


def validate_responses(responses: List[int]) -> None:
    if len(responses) > ITEM_COUNT:
        raise ValueError(f"PHQ-9 takes {ITEM_COUNT} answers, got {len(responses)}")
    for v in responses:
        if isinstance(v, bool) or not isinstance(v, int) or not 0 <= v <= MAX_ITEM_SCORE:
            raise ValueError(f"PHQ-9 answers must be integers 0-{MAX_ITEM_SCORE}, got {v!r}")


def score_responses(responses: List[int]) -> int:
    validate_responses(responses)
    if len(responses) < ITEM_COUNT:
        raise IncompleteAssessment(f"{len(responses)} of {ITEM_COUNT} items answered")
    return sum(responses)


def severity_for(score: int) -> str:
    if not 0 <= score <= ITEM_COUNT * MAX_ITEM_SCORE:
        raise ValueError(f"PHQ-9 total out of range: {score}")
    for upper, label in SEVERITY_BANDS:
        if score <= upper:
            return label
    raise AssertionError("unreachable")


@dataclass
class PHQ9Assessment:
    responses: List[int] = field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        return len(self.responses) == ITEM_COUNT

    @property
    def next_index(self) -> Optional[int]:
        return None if self.is_complete else len(self.responses)

    def record(self, score: int) -> None:
        if self.is_complete:
            raise ValueError("All nine items are already answered")
        validate_responses([score])
        self.responses.append(score)

    def record_all(self, responses: List[int]) -> None:
        validate_responses(responses)
        if len(responses) != ITEM_COUNT:
            raise IncompleteAssessment(f"{len(responses)} of {ITEM_COUNT} items answered")
        self.responses = list(responses)

    def total(self) -> int:
        return score_responses(self.responses)

    def severity(self) -> str:
        return severity_for(self.total())


def next_question(assessment: PHQ9Assessment) -> Optional[str]:
    idx = assessment.next_index
    return None if idx is None else CONVERSATIONAL_QUESTIONS[idx]
