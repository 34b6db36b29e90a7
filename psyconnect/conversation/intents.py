from dataclasses import dataclass
from typing import List, Optional, Sequence
import re

ACT_GREETING = "GREETING"
ACT_DISCLOSURE = "DISCLOSURE"
ACT_FAQ = "QUESTION_FAQ"
ACT_CONFUSION = "CONFUSION"
ACT_RESIST = "RESISTANCE"
ACT_CRISIS = "CRISIS"

YES = "YES"
NO = "NO"
UNCLEAR = "UNCLEAR"

CRISIS_PATTERNS = [
    r"\b(suicide|suicidal|kill myself|end my life|end it all|self[- ]?harm|hurt myself|better off dead)\b",
    r"\b(kill (him|her|them|someone)|hurt someone|homicide)\b",
]

FAQ_PATTERNS = [
    r"\bwhat is\b",
    r"\bwhy (are|do) you\b",
    r"\bmeaning of\b",
    r"\bexplain\b",
]

GREETING_PATTERNS = [
    r"^\s*(hi|hello|hey|good (morning|afternoon|evening))\b",
]

CONFUSION_PATTERNS = [
    r"(i don't understand|dont understand|confus|huh\?|what\?)",
]

RESIST_PATTERNS = [
    r"\b(why do you ask|stop asking|don't ask|dont ask|none of your business|rather not say)\b",
]

UNCLEAR_PATTERNS = [
    r"\b(not sure|maybe|don't know|dont know|i guess|unsure|depends)\b",
]

YES_PATTERNS = [
    r"\b(yes|yeah|yep|yup|sure|ok|okay|please|go ahead|sounds good|of course|definitely|absolutely|let's do it|i would|i'd like)\b",
]

NO_PATTERNS = [
    r"\b(no|nope|nah|not really|no thanks|no thank you|don't want|do not want|don't need|skip)\b",
]

# explicit "nothing more to add" answers; these count wherever they appear
CLOSER_PATTERNS = [
    r"\b(that's all|thats all|that is all|that's it|thats it|nothing else|nothing more|no thanks|no thank you|that's everything|thats everything|i'm done|im done|i'm finished|im finished|i think that covers it)\b",
]

ORDINALS = {
    "first": 1, "1st": 1,
    "second": 2, "2nd": 2,
    "third": 3, "3rd": 3,
    "fourth": 4, "4th": 4,
    "fifth": 5, "5th": 5,
    # plain number words last: "the second one" means 2
    "one": 1, "two": 2, "three": 3, "four": 4, "five": 5,
}


@dataclass
class ActResult:
    act: str
    signals: dict


def _any(patterns: Sequence[str], text: str) -> bool:
    return any(re.search(p, text) for p in patterns)


def _norm(text: str) -> str:
    return (text or "").strip().lower().replace("’", "'")


def is_crisis(user_text: str) -> bool:
    return _any(CRISIS_PATTERNS, _norm(user_text))


def classify_act(user_text: str) -> ActResult:
    t = _norm(user_text)
    if _any(CRISIS_PATTERNS, t):
        return ActResult(ACT_CRISIS, {"crisis": True})
    if _any(CONFUSION_PATTERNS, t):
        return ActResult(ACT_CONFUSION, {"confusion": True})
    if _any(RESIST_PATTERNS, t):
        return ActResult(ACT_RESIST, {"resistance": True})
    if _any(FAQ_PATTERNS, t) and t.endswith("?"):
        return ActResult(ACT_FAQ, {"faq": True})
    if _any(GREETING_PATTERNS, t) and len(t.split()) <= 4:
        return ActResult(ACT_GREETING, {})
    return ActResult(ACT_DISCLOSURE, {})


def classify_yes_no(user_text: str) -> str:
    t = _norm(user_text)
    if not t or _any(UNCLEAR_PATTERNS, t):
        return UNCLEAR
    yes = _any(YES_PATTERNS, t)
    no = _any(NO_PATTERNS, t)
    if yes and not no:
        return YES
    if no and not yes:
        return NO
    return UNCLEAR


def is_nothing_more(user_text: str) -> bool:
    """True when the reply to "anything else to share?" means no.

    A bare "no"/"nope" only counts in a short reply, so "no, but my sleep has
    been awful" keeps the interview going.
    """
    t = _norm(user_text)
    if _any(CLOSER_PATTERNS, t):
        return True
    if len(t.split()) <= 6 and classify_yes_no(t) == NO:
        return not re.search(r"\b(but|although|though|actually|also)\b", t)
    return False


def parse_selection(user_text: str, options: List[dict]) -> Optional[str]:
    """Pick one id from ``options`` (dicts with id/name) by name, number or ordinal."""
    t = _norm(user_text)
    if not t or not options:
        return None
    for opt in options:
        name = re.sub(r"^dr\.?\s+", "", _norm(opt["name"]))
        parts = [p for p in re.split(r"\s+", name) if len(p) > 2]
        if name and name in t:
            return opt["id"]
        if parts and re.search(rf"\b{re.escape(parts[-1])}\b", t):
            return opt["id"]
    # a bare "2", or "#2" / "number 2" / "option 2"; not a time of day
    m = re.fullmatch(r"#?\s*(\d+)\s*[.!]?", t) or re.search(r"(?:#\s*|\bnumber\s+|\boption\s+)(\d+)\b", t)
    if m:
        n = int(m.group(1))
        if 1 <= n <= len(options):
            return options[n - 1]["id"]
    if re.search(r"\b(last|final) one\b", t):
        return options[-1]["id"]
    for word, n in ORDINALS.items():
        if re.search(rf"\b{re.escape(word)}\b", t) and n <= len(options):
            return options[n - 1]["id"]
    return None


def normalize_gender_preference(user_text: str) -> Optional[str]:
    t = _norm(user_text)
    if re.search(r"\b(female|woman|women|she|her)\b", t):
        return "female"
    if re.search(r"\b(male|man|men|he|him)\b", t):
        return "male"
    return None


def is_no_preference(user_text: str) -> bool:
    t = _norm(user_text)
    return bool(re.search(r"\b(no preference|doesn't matter|doesnt matter|don't mind|dont mind|either|any|not important|skip)\b", t)) \
        or t in ("no", "nope", "nah", "none")
