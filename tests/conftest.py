import os

# must be set before the app reads its settings
os.environ["DATABASE_URL"] = "sqlite:///./test_psyconnect.db"
os.environ["OPENAI_API_KEY"] = "test-key"
os.environ["EMAIL_API_URL"] = ""
os.environ["PERSIST_ARTIFACTS"] = "true"

import json
import re

import pytest
from fastapi.testclient import TestClient

from psyconnect.main import app
from psyconnect.core.db import Base, engine
from psyconnect.core.config import settings
from psyconnect.core.errors import CompletionError
from psyconnect.conversation.readiness import refresh_completion
from psyconnect.conversation.state import ConversationState, IntakeData
from psyconnect.llm import prompts

DEFAULT_SUMMARY = {
    "narrative": "The patient reports three months of low mood and anxiety affecting work.",
    "chief_complaint": "low mood and anxiety",
    "symptoms": ["depression", "anxiety", "poor sleep"],
    "diagnoses": [],
    "medications": ["sertraline"],
    "safety_concerns": {"suicidal_ideation": False, "risk_level": "low"},
    "functional_impact": "trouble focusing at work",
    # the model is not allowed to set these
    "phq9_score": 99,
    "phq9_severity": "Catastrophic",
}


class FakeLLM:
    """Scripted completion service.

    Call kinds are told apart by the instruction block each caller sends.
    Extraction answers are looked up by the latest patient message.
    """

    def __init__(self):
        self.calls = []
        self.intake = {}
        self.preferences = {}
        self.summary = DEFAULT_SUMMARY
        self.email = {"subject": "Appointment request", "body": "Hello, I would like to book a first visit."}
        self.compose_reply = None
        self.fail = set()

    @staticmethod
    def kind(messages):
        second = messages[1]["content"]
        if second == prompts.EXTRACTOR_INSTRUCTIONS:
            return "extract"
        if second == prompts.PREFERENCE_INSTRUCTIONS:
            return "preferences"
        if second == prompts.SUMMARY_INSTRUCTIONS:
            return "summary"
        if second == prompts.EMAIL_INSTRUCTIONS:
            return "email"
        return "compose"

    @staticmethod
    def _last_patient(messages):
        lines = [l for l in messages[-1]["content"].splitlines() if l.startswith("patient: ")]
        return lines[-1][len("patient: "):] if lines else ""

    async def __call__(self, messages, temperature=0.2, response_format=None):
        kind = self.kind(messages)
        self.calls.append(kind)
        if kind in self.fail:
            raise CompletionError("scripted failure")
        if kind == "extract":
            return json.dumps(self.intake.get(self._last_patient(messages), {}))
        if kind == "preferences":
            return json.dumps(self.preferences.get(self._last_patient(messages), {}))
        if kind == "summary":
            return self.summary if isinstance(self.summary, str) else json.dumps(self.summary)
        if kind == "email":
            return self.email if isinstance(self.email, str) else json.dumps(self.email)
        if self.compose_reply is not None:
            return self.compose_reply
        m = re.search(r"^Question: (.*)$", messages[-1]["content"], re.MULTILINE)
        question = m.group(1) if m else ""
        if question.startswith("none"):
            return "Thank you for talking with me today."
        return f"Thanks for sharing. {question}"


FULL_INTAKE = dict(
    chief_complaint="low mood and anxiety",
    history_of_present_illness="three months of worsening low mood",
    past_psychiatric_history="saw a therapist in college",
    medications="sertraline 50mg",
    safety_concerns="denies suicidal ideation",
    substance_use="two beers on weekends",
    functional_impact="trouble focusing at work",
)


def make_state(session_id="test-session", **intake):
    state = ConversationState(session_id=session_id)
    state.intake = IntakeData(**intake)
    refresh_completion(state)
    return state


@pytest.fixture(autouse=True, scope="session")
def setup_db():
    # fresh db for tests
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def fake_llm(monkeypatch):
    fake = FakeLLM()
    monkeypatch.setattr("psyconnect.llm.openai_client.chat_completion", fake)
    return fake


@pytest.fixture()
def client(fake_llm):
    settings.ALLOW_DEV_DEBUG_META = True
    return TestClient(app)
