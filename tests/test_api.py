from fastapi.testclient import TestClient
from sqlalchemy.exc import SQLAlchemyError

from psyconnect.main import app
from psyconnect.core.config import settings
from psyconnect.core.db import SessionLocal
from psyconnect.models import Booking, ClinicalSummaryRecord
from psyconnect.services.session_store import store

from conftest import FULL_INTAKE

OPENING = "I've felt low and anxious for three months and it's wrecking my work"


def new_session(client):
    r = client.post("/sessions")
    assert r.status_code == 200, r.text
    data = r.json()
    return data["sessionId"], {"Authorization": f"Bearer {data['token']}"}


def say(client, sid, headers, text):
    r = client.post(f"/sessions/{sid}/messages", headers=headers, json={"message": text})
    assert r.status_code == 200, r.text
    return r.json()


def test_session_created_with_greeting(client):
    r = client.post("/sessions")
    data = r.json()
    assert data["stage"] == "intake"
    assert data["greeting"].endswith("?")
    view = client.get(f"/sessions/{data['sessionId']}", headers={"Authorization": f"Bearer {data['token']}"}).json()
    assert view["turns"][0]["role"] == "assistant"
    assert view["completion"] == 0


def test_token_rules(client):
    sid, headers = new_session(client)
    other_sid, other_headers = new_session(client)
    assert client.get(f"/sessions/{sid}").status_code == 401
    assert client.get(f"/sessions/{sid}", headers={"Authorization": "Bearer nope"}).status_code == 401
    assert client.get(f"/sessions/{sid}", headers=other_headers).status_code == 403
    assert client.get(f"/sessions/{sid}", headers=headers).status_code == 200


def test_missing_completion_key_is_503(monkeypatch):
    monkeypatch.setattr(settings, "OPENAI_API_KEY", "")
    client = TestClient(app)
    sid, headers = new_session(client)
    r = client.post(f"/sessions/{sid}/messages", headers=headers, json={"message": "hello"})
    assert r.status_code == 503
    # the session is released again
    assert client.get(f"/sessions/{sid}", headers=headers).json()["turns"][-1]["role"] == "assistant"


def test_busy_session_rejects_second_message(client):
    sid, headers = new_session(client)
    with store.claim(sid):
        r = client.post(f"/sessions/{sid}/messages", headers=headers, json={"message": "hello"})
    assert r.status_code == 409


def test_empty_message_rejected(client):
    sid, headers = new_session(client)
    r = client.post(f"/sessions/{sid}/messages", headers=headers, json={"message": "   "})
    assert r.status_code == 422


def test_questions_endpoint(client):
    data = client.get("/phq9/questions").json()
    assert len(data["questions"]) == 9
    assert [o["value"] for o in data["options"]] == [0, 1, 2, 3]
    assert all("PHQ" not in q["prompt"] for q in data["questions"])


def test_psychiatrist_detail(client):
    assert client.get("/psychiatrists/psy-002").json()["name"] == "Dr. Michael Rodriguez"
    assert client.get("/psychiatrists/psy-999").status_code == 404


def test_stream_sends_tokens_then_done(client):
    sid, headers = new_session(client)
    r = client.post(f"/sessions/{sid}/messages/stream", headers=headers, json={"message": "hi"})
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/event-stream")
    body = r.text
    assert "event: token" in body
    assert body.rstrip().split("\n\n")[-1].startswith("event: done")


def test_reset_and_delete(client):
    sid, headers = new_session(client)
    say(client, sid, headers, "I have trouble sleeping")
    r = client.post(f"/sessions/{sid}/reset", headers=headers)
    assert r.json()["stage"] == "intake"
    view = client.get(f"/sessions/{sid}", headers=headers).json()
    assert view["coveredTopics"] == []
    assert len(view["turns"]) == 1
    assert client.delete(f"/sessions/{sid}", headers=headers).json() == {"ok": True}
    assert client.get(f"/sessions/{sid}", headers=headers).status_code == 404


def test_delete_refused_while_turn_running(client):
    sid, headers = new_session(client)
    with store.claim(sid):
        r = client.delete(f"/sessions/{sid}", headers=headers)
    assert r.status_code == 409
    assert client.get(f"/sessions/{sid}", headers=headers).status_code == 200


def test_session_deleted_mid_turn_stays_deleted(client, monkeypatch):
    sid, headers = new_session(client)

    async def compose_then_delete(*args, **kwargs):
        store.delete(sid)
        return "Thanks for sharing. How long has this been going on?"

    monkeypatch.setattr("psyconnect.llm.composer.compose", compose_then_delete)
    say(client, sid, headers, "I have trouble sleeping")
    assert store.get(sid) is None
    assert client.get(f"/sessions/{sid}", headers=headers).status_code == 404


def test_artifact_failure_keeps_the_conversation(client, monkeypatch):
    def broken(db, state, meta):
        raise SQLAlchemyError("database is locked")

    monkeypatch.setattr("psyconnect.api.routes.sessions.persist_events", broken)
    sid, headers = new_session(client)
    out = say(client, sid, headers, "I have trouble sleeping")
    view = client.get(f"/sessions/{sid}", headers=headers).json()
    assert len(view["turns"]) == 3
    assert view["turns"][-1]["content"] == out["reply"]


def test_intake_to_sent_referral(client, fake_llm):
    fake_llm.intake[OPENING] = FULL_INTAKE
    sid, headers = new_session(client)

    out = say(client, sid, headers, OPENING)
    assert out["stage"] == "intake"
    assert out["completion"] == 88
    assert out["meta"]["pendingPrompt"] == "anything_else"

    out = say(client, sid, headers, "no, that's all")
    assert out["stage"] == "phq9"

    # the form must be complete and in range
    r = client.post(f"/sessions/{sid}/phq9", headers=headers, json={"responses": [1, 1, 1]})
    assert r.status_code == 422
    r = client.post(f"/sessions/{sid}/phq9", headers=headers, json={"responses": [0] * 8 + [5]})
    assert r.status_code == 422
    r = client.post(f"/sessions/{sid}/phq9", headers=headers, json={"responses": [1, 2, 0, 1, 1, 0, 0, 0, 0]})
    assert r.status_code == 200
    assert r.json()["stage"] == "summary"
    assert r.json()["completion"] == 100
    r = client.post(f"/sessions/{sid}/phq9", headers=headers, json={"responses": [0] * 9})
    assert r.status_code == 409

    assert client.get(f"/sessions/{sid}/summary", headers=headers).status_code == 404
    out = say(client, sid, headers, "yes")
    summary = client.get(f"/sessions/{sid}/summary", headers=headers).json()["summary"]
    assert summary["phq9_score"] == 5
    assert summary["phq9_severity"] == "Mild"
    r = client.patch(f"/sessions/{sid}/summary", headers=headers, json={"narrative": "Edited by patient."})
    assert r.json()["summary"]["narrative"] == "Edited by patient."
    assert r.json()["summary"]["phq9_score"] == 5

    out = say(client, sid, headers, "yes")
    assert out["stage"] == "recommendation"
    recs = client.get(f"/sessions/{sid}/recommendations", headers=headers).json()
    ids = [i["id"] for i in recs["items"]]
    assert "psy-007" not in ids
    assert len(ids) == settings.MATCH_LIMIT

    r = client.post(f"/sessions/{sid}/recommendations/select", headers=headers, json={"psychiatristId": "psy-007"})
    assert r.status_code == 409
    r = client.post(f"/sessions/{sid}/recommendations/select", headers=headers, json={"psychiatristId": ids[0]})
    assert r.json()["stage"] == "booking"

    out = say(client, sid, headers, "weekday evenings, you can email me at pat@example.com")
    booking = client.get(f"/sessions/{sid}/booking", headers=headers).json()
    assert booking["subject"] == "Appointment request"
    assert not booking["approved"]

    r = client.patch(f"/sessions/{sid}/booking/draft", headers=headers, json={"recipient": "not-an-email"})
    assert r.status_code == 422
    r = client.patch(f"/sessions/{sid}/booking/draft", headers=headers, json={"body": "Hello, could I book a first visit?"})
    assert r.json()["body"] == "Hello, could I book a first visit?"

    r = client.post(f"/sessions/{sid}/booking/approve", headers=headers)
    assert r.status_code == 200, r.text
    assert r.json()["stage"] == "complete"

    db = SessionLocal()
    try:
        rows = db.query(Booking).filter(Booking.session_id == sid).all()
        assert [b.status for b in rows] == ["sent"]
        assert rows[0].body == "Hello, could I book a first visit?"
        assert rows[0].message_id.startswith("local-")
        assert rows[0].sent_at is not None
        record = db.query(ClinicalSummaryRecord).filter(ClinicalSummaryRecord.session_id == sid).one()
        assert record.phq9_score == 5
    finally:
        db.close()

    r = client.post(f"/sessions/{sid}/booking/approve", headers=headers)
    assert r.status_code == 409
