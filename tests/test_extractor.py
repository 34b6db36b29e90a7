import asyncio

from psyconnect.conversation.state import IntakeData, Turn, merge_intake, novel_fields, validate_partial
from psyconnect.llm import extractor

WINDOW = [
    Turn("assistant", "What brings you in today?"),
    Turn("user", "I've been anxious for months and I'm on sertraline"),
]


def test_second_pass_over_same_window_adds_nothing(fake_llm):
    fake_llm.intake["I've been anxious for months and I'm on sertraline"] = {
        "chief_complaint": "anxiety",
        "medications": "sertraline",
        "symptom_durations": {"anxiety": "months"},
    }
    known = IntakeData()
    first = asyncio.run(extractor.extract_intake(WINDOW, known))
    assert set(first) == {"chief_complaint", "medications", "symptom_durations"}
    known = merge_intake(known, first)
    second = asyncio.run(extractor.extract_intake(WINDOW, known))
    assert second == {}


def test_malformed_output_yields_empty(fake_llm, monkeypatch):
    async def garbage(messages, temperature=0.2, response_format=None):
        return "I'm not sure what you mean"

    monkeypatch.setattr("psyconnect.llm.openai_client.chat_completion", garbage)
    assert asyncio.run(extractor.extract_intake(WINDOW, IntakeData())) == {}


def test_upstream_failure_yields_empty(fake_llm):
    fake_llm.fail.add("extract")
    assert asyncio.run(extractor.extract_intake(WINDOW, IntakeData())) == {}


def test_fenced_json_is_accepted(fake_llm, monkeypatch):
    async def fenced(messages, temperature=0.2, response_format=None):
        return '```json\n{"substance_use": "two beers a week"}\n```'

    monkeypatch.setattr("psyconnect.llm.openai_client.chat_completion", fenced)
    out = asyncio.run(extractor.extract_intake(WINDOW, IntakeData()))
    assert out == {"substance_use": "two beers a week"}


def test_merge_never_clears_or_overwrites():
    known = IntakeData(chief_complaint="anxiety", symptom_durations={"anxiety": "months"})
    merged = merge_intake(known, {"chief_complaint": "something else", "medications": None,
                                  "symptom_durations": {"insomnia": "2 weeks"}})
    assert merged.chief_complaint == "anxiety"
    assert merged.medications is None
    assert merged.symptom_durations == {"anxiety": "months", "insomnia": "2 weeks"}


def test_map_fields_take_changed_values():
    known = IntakeData(symptom_severity={"anxiety": "mild"})
    delta = novel_fields(known, {"symptom_severity": {"anxiety": "severe"}})
    assert delta == {"symptom_severity": {"anxiety": "severe"}}
    assert merge_intake(known, delta).symptom_severity == {"anxiety": "severe"}


def test_partial_validation_coerces_loose_types():
    raw = {"patient_age": 34, "medications": ["sertraline", "melatonin"], "unknown_field": "x"}
    out = validate_partial(IntakeData, raw)
    assert out == {"patient_age": "34", "medications": "sertraline, melatonin"}


def test_unknown_and_empty_fields_dropped():
    out = novel_fields(IntakeData(), {"bogus": "x", "gender": "  ", "pronouns": "they/them"})
    assert out == {"pronouns": "they/them"}
