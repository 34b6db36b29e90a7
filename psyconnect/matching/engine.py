"""Keyword-weighted psychiatrist ranking.

Score per candidate, all matching case-insensitive substring tests:
  +2 per tag found in the symptom text
  +2 per specialty found in the symptom text
  +3 per specialty found in the prior diagnoses
  +4 once if hallucinations or delusions were reported and the candidate
     carries a psychosis / schizophrenia / severe-mental-illness tag
  +3 if the preferred insurance carrier is accepted, +1 more if in-network
  +2 if the preferred location matches
  + rating * 0.5 + years of experience * 0.1
"""
from dataclasses import dataclass
from typing import List, Optional

from .loader import Psychiatrist
from ..conversation.state import ClinicalSummary, RecommendationPreferences

SAFETY_TAGS = {"psychosis", "schizophrenia", "severe-mental-illness"}

TAG_WEIGHT = 2
SPECIALTY_SYMPTOM_WEIGHT = 2
SPECIALTY_DIAGNOSIS_WEIGHT = 3
SAFETY_BONUS = 4
INSURANCE_WEIGHT = 3
IN_NETWORK_BONUS = 1
LOCATION_WEIGHT = 2


@dataclass
class Match:
    psychiatrist: Psychiatrist
    score: float


def _lower(items) -> List[str]:
    return [i.lower() for i in items if i]


def _location_matches(preferred: str, location: str) -> bool:
    p, loc = preferred.strip().lower(), location.lower()
    if not p or not loc:
        return False
    if p in loc or loc in p:
        return True
    # "Chicago" vs "Chicago, IL"
    return any(len(part.strip()) > 2 and part.strip() in p for part in loc.split(","))


def score_candidate(doc: Psychiatrist, summary: ClinicalSummary, prefs: Optional[RecommendationPreferences] = None) -> float:
    symptoms_text = " ".join(summary.symptoms).lower()
    diagnoses_text = " ".join(summary.diagnoses).lower()

    score = 0.0
    for tag in _lower(doc.tags):
        if tag in symptoms_text:
            score += TAG_WEIGHT
    for spec in _lower(doc.specialties):
        if spec in diagnoses_text:
            score += SPECIALTY_DIAGNOSIS_WEIGHT
        if spec in symptoms_text:
            score += SPECIALTY_SYMPTOM_WEIGHT

    safety = summary.safety_concerns
    if (safety.hallucinations or safety.delusions) and SAFETY_TAGS & set(_lower(doc.tags)):
        score += SAFETY_BONUS

    if prefs is not None:
        carrier = (prefs.insurance_carrier or "").strip().lower()
        if carrier:
            if any(carrier in c or c in carrier for c in _lower(doc.insurance_carriers)):
                score += INSURANCE_WEIGHT
                if any(carrier in c or c in carrier for c in _lower(doc.in_network_carriers)):
                    score += IN_NETWORK_BONUS
        if prefs.location and _location_matches(prefs.location, doc.location):
            score += LOCATION_WEIGHT

    score += doc.rating * 0.5
    score += doc.years_experience * 0.1
    return round(score, 4)


def filter_candidates(candidates: List[Psychiatrist], prefs: Optional[RecommendationPreferences]) -> List[Psychiatrist]:
    """Hard filters from stated preferences. Order is preserved."""
    if prefs is None:
        prefs = RecommendationPreferences()
    out = []
    carrier = (prefs.insurance_carrier or "").strip().lower()
    for doc in candidates:
        if prefs.accepting_new_patients_only is not False and not doc.accepts_new_patients:
            continue
        if prefs.in_network_only:
            networks = _lower(doc.in_network_carriers)
            if carrier and not any(carrier in c or c in carrier for c in networks):
                continue
            if not networks:
                continue
        if prefs.gender_preference in ("male", "female") and (doc.gender or "").lower() != prefs.gender_preference:
            continue
        out.append(doc)
    return out


def rank(candidates: List[Psychiatrist], summary: ClinicalSummary,
         prefs: Optional[RecommendationPreferences] = None, limit: int = 5) -> List[Match]:
    scored = [Match(doc, score_candidate(doc, summary, prefs)) for doc in candidates]
    # sorted() is stable, so equal scores keep directory order
    scored = sorted(scored, key=lambda m: m.score, reverse=True)
    return scored[:limit]


def match_psychiatrists(candidates: List[Psychiatrist], summary: ClinicalSummary,
                        prefs: Optional[RecommendationPreferences] = None, limit: int = 5) -> List[Match]:
    return rank(filter_candidates(candidates, prefs), summary, prefs, limit)
