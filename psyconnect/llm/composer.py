import json
import re
from typing import Dict, Iterable, List, Optional

from . import openai_client
from .prompts import SYSTEM, STYLE_RULES, STAGE_INSTRUCTIONS
from ..core.config import settings
from ..conversation.memory import describe_topics
from ..conversation.state import Turn

_INSTRUMENT = re.compile(
    r"\b(?:(?:the|a|an|your)\s+)?(?:PHQ[\s-]?9|Patient Health Questionnaire(?:[\s-]?9)?)"
    r"(?:\s+(?:questionnaire|assessment|screening|screener|scale|test))?",
    re.IGNORECASE,
)
_ECHO_OPENERS = re.compile(
    r"^(?:so,?\s+)?(?:you (?:said|mentioned|told me|shared|wrote)|you've (?:said|mentioned|told me)|i hear you saying|what i'm hearing is)\b",
    re.IGNORECASE,
)
_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+")


def _norm(s: str) -> str:
    return re.sub(r"[^a-z0-9 ]+", "", re.sub(r"\s+", " ", s.lower())).strip()


def build_messages(
    stage: str,
    user_text: str,
    history: List[Turn],
    covered_topics: Iterable[str],
    remaining: List[str],
    known_fields: Dict,
    intent: str,
    question: Optional[str],
    extra: Optional[str] = None,
) -> List[Dict[str, str]]:
    """Assemble the prompt for one reply. Pure: same inputs, same messages."""
    context = [
        f"Topics already covered (do not re-ask): {describe_topics(sorted(covered_topics))}",
        f"Sections still open: {', '.join(remaining) if remaining else 'none'}",
        f"Known information: {json.dumps(known_fields, sort_keys=True, ensure_ascii=False)}",
    ]
    messages = [
        {"role": "system", "content": SYSTEM},
        {"role": "system", "content": STAGE_INSTRUCTIONS[stage] + "\n\n" + STYLE_RULES},
        {"role": "system", "content": "\n".join(context)},
    ]
    for t in history:
        messages.append({"role": "assistant" if t.role == "assistant" else "user", "content": t.content})
    if not history or history[-1].role != "user" or history[-1].content != user_text:
        messages.append({"role": "user", "content": user_text})

    directive = [f"Directive: {intent}"]
    if extra:
        directive.append(f"Note (brief, only if relevant): {extra}")
    if question:
        directive.append(f"Question: {question}")
    else:
        directive.append("Question: none. Do not ask a question.")
    messages.append({"role": "system", "content": "\n".join(directive)})
    return messages


def enforce_reply_rules(reply: str, user_text: str, question: Optional[str] = None) -> str:
    """Hold the reply to the rules regardless of what the model did.

    Drops sentences that echo the patient's message, cuts everything after the
    first question mark and removes instrument names.
    """
    text = (reply or "").strip()
    user_norm = _norm(user_text or "")
    kept = []
    for sentence in _SENTENCE_SPLIT.split(text):
        s_norm = _norm(sentence)
        if not s_norm:
            continue
        if _ECHO_OPENERS.match(sentence.strip()):
            continue
        if len(user_norm) >= 12 and user_norm in s_norm:
            continue
        kept.append(sentence.strip())
    text = " ".join(kept)

    q = text.find("?")
    if q != -1:
        text = text[: q + 1]

    text = _INSTRUMENT.sub("a few questions about your mood", text)
    text = re.sub(r"\s{2,}", " ", text).strip()
    if not text:
        return question or "Could you tell me a little more about that?"
    return text


async def compose(
    stage: str,
    user_text: str,
    history: List[Turn],
    covered_topics: Iterable[str],
    remaining: List[str],
    known_fields: Dict,
    intent: str,
    question: Optional[str],
    extra: Optional[str] = None,
) -> str:
    messages = build_messages(stage, user_text, history, covered_topics, remaining, known_fields, intent, question, extra)
    text = await openai_client.chat_completion(messages, temperature=settings.CHAT_TEMPERATURE)
    return enforce_reply_rules(text, user_text, question)
