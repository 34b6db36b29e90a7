"""Topic coverage memory.

Keeps track of which interview topics the patient has already touched so the
response generator can be told not to ask about them again. Matching is a
plain case-insensitive substring test against each topic's keyword list.
"""
from typing import Dict, List, Set

TOPIC_KEYWORDS: Dict[str, List[str]] = {
    "reasonForVisit": ["reason", "why", "visit", "here", "come", "problem", "issue", "concern"],
    "identifyingInfo": ["name", "age", "date of birth", "dob", "address", "phone", "email", "contact"],
    "chiefComplaint": ["chief complaint", "main concern", "primary issue", "what brings you"],
    "presentIllness": ["feeling", "symptoms", "mood", "depressed", "anxious", "stress", "worried", "sad", "down", "recent"],
    "pastPsychiatric": ["therapy", "counseling", "psychiatrist", "psychologist", "medication", "meds", "treatment", "diagnosis", "past", "previous", "history"],
    "familyHistory": ["family", "parent", "mother", "father", "sibling", "relative", "genetic", "hereditary"],
    "medicalHistory": ["medical", "health", "condition", "disease", "illness", "doctor", "physician", "hospital"],
    "substanceUse": ["alcohol", "drug", "substance", "smoking", "drinking", "marijuana", "cannabis", "cocaine", "opioid", "tobacco"],
    "mentalStatus": ["concentration", "focus", "memory", "thinking", "thoughts", "suicidal", "self-harm", "cognitive"],
    "functioning": ["work", "job", "school", "daily", "function", "activities", "routine", "social", "relationships"],
    "sleep": ["sleep", "insomnia", "sleeping", "tired", "rest", "wake", "night"],
    "energy": ["energy", "fatigue", "tired", "exhausted", "lethargic"],
    "appetite": ["appetite", "eating", "food", "hungry", "weight"],
}

# human-readable labels used when listing topics in prompts
TOPIC_LABELS: Dict[str, str] = {
    "reasonForVisit": "reason for visit",
    "identifyingInfo": "identifying information",
    "chiefComplaint": "chief complaint",
    "presentIllness": "current symptoms and mood",
    "pastPsychiatric": "past psychiatric history and treatment",
    "familyHistory": "family history",
    "medicalHistory": "medical history",
    "substanceUse": "alcohol, drug and tobacco use",
    "mentalStatus": "concentration, thinking and safety",
    "functioning": "work, school and daily functioning",
    "sleep": "sleep",
    "energy": "energy",
    "appetite": "appetite and weight",
}


def detect_topics(text: str) -> Set[str]:
    lower = (text or "").lower()
    return {
        topic for topic, keywords in TOPIC_KEYWORDS.items()
        if any(k in lower for k in keywords)
    }


def record_topics(covered: Set[str], text: str) -> Set[str]:
    """Return the topics matched in ``text`` and add them to ``covered``.

    ``covered`` only ever grows for the life of a session.
    """
    found = detect_topics(text)
    covered.update(found)
    return found


def uncovered_topics(covered: Set[str]) -> List[str]:
    return [t for t in TOPIC_KEYWORDS if t not in covered]


def describe_topics(topics) -> str:
    labels = [TOPIC_LABELS.get(t, t) for t in topics]
    return ", ".join(labels) if labels else "none yet"
