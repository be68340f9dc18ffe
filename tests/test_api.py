import asyncio
from datetime import datetime, timedelta, timezone

from api.app import app, get_dispatcher
from core.credential_pool import CredentialPool
from core.dispatcher import KeyRotatingDispatcher
from core.exceptions import PersistenceError
from flows import emails
from flows import schedule_follow_up as schedule_flow
from flows import suggest_follow_up as suggest_flow
from flows.schedule_follow_up import ScheduleFollowUpOutput
from flows.suggest_follow_up import APOLOGY_MESSAGE, SuggestFollowUpOutput

PAYLOAD = {
    "to": "hr@example.com",
    "subject": "Internship application",
    "body": "Hello, I am applying for the summer internship.",
    "category": "internship",
    "attachments": [{"name": "cv.pdf", "size": 2048}],
    "user_email": "me@example.com",
}


def use_keys(*keys):
    dispatcher = KeyRotatingDispatcher(CredentialPool(list(keys)), attempt_timeout=None)
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher


def test_record_email_without_keys_uses_default_schedule(client):
    before = datetime.now(timezone.utc)

    resp = client.post("/emails", json=PAYLOAD)

    assert resp.status_code == 201
    assert "X-Request-ID" in resp.headers
    data = resp.json()
    assert data["follow_up"]["follow_up_scheduled"] is True
    assert data["notice"].startswith("Email recorded.")
    assert "AI service unavailable" in data["notice"]

    follow_up_at = datetime.fromisoformat(data["email"]["follow_up_at"].replace("Z", "+00:00"))
    assert follow_up_at.tzinfo is not None
    assert before + timedelta(hours=35) < follow_up_at < before + timedelta(hours=37)


def test_record_email_with_ai_decision(client, monkeypatch):
    async def fake_generate_structured(credential, **kwargs):
        return ScheduleFollowUpOutput(follow_up_scheduled=False, reason="No reply expected.")

    monkeypatch.setattr(schedule_flow, "generate_structured", fake_generate_structured)
    use_keys("k1")

    resp = client.post("/emails", json=PAYLOAD)

    assert resp.status_code == 201
    data = resp.json()
    assert data["email"]["follow_up_at"] is None
    assert data["notice"] == "Email recorded. No reply expected."


def test_record_email_persistence_failure(client, monkeypatch):
    def broken_add_email(email):
        raise PersistenceError("Could not add email.")

    monkeypatch.setattr("api.app.emails.add_email", broken_add_email)

    resp = client.post("/emails", json=PAYLOAD)

    assert resp.status_code == 500
    assert resp.json()["detail"] == "Could not add email."


def test_record_email_rejects_unknown_category(client):
    resp = client.post("/emails", json={**PAYLOAD, "category": "newsletter"})

    assert resp.status_code == 422


def test_list_emails_and_follow_ups(client):
    client.post("/emails", json=PAYLOAD)
    client.post("/emails", json={**PAYLOAD, "user_email": "other@example.com"})

    listed = client.get("/emails", params={"user_email": "me@example.com"}).json()
    follow_ups = client.get("/follow-ups", params={"user_email": "me@example.com"}).json()
    due = client.get("/follow-ups", params={"user_email": "me@example.com", "due_only": True}).json()

    assert len(listed) == 1
    assert listed[0]["attachments"] == [{"name": "cv.pdf", "size": 2048}]
    assert len(follow_ups) == 1
    assert due == []


def test_suggest_follow_up_fallback(client):
    resp = client.post("/follow-ups/suggest", json={"original_email": "Hello", "email_category": "job"})

    assert resp.status_code == 200
    data = resp.json()
    assert data["follow_up_suggestion"] == APOLOGY_MESSAGE
    assert data["generated"] is False
    assert data["notice"]


def test_suggest_follow_up_success(client, monkeypatch):
    async def fake_generate_structured(credential, **kwargs):
        return SuggestFollowUpOutput(follow_up_suggestion="Following up on my application.")

    monkeypatch.setattr(suggest_flow, "generate_structured", fake_generate_structured)
    use_keys("k1")

    data = client.post("/follow-ups/suggest", json={"original_email": "Hello"}).json()

    assert data["follow_up_suggestion"] == "Following up on my application."
    assert data["notice"] is None


def test_health_degraded_without_keys(client):
    resp = client.get("/health")

    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "degraded"
    assert body["dependencies"]["database"] == "ok"
    assert body["dependencies"]["credentials"] == "fail"


def test_readiness_ok_with_keys(client):
    use_keys("k1")

    resp = client.get("/health/ready")

    assert resp.status_code == 200
    assert resp.json()["credentials_configured"] == 1


def test_metrics_endpoint(client):
    client.post("/emails", json=PAYLOAD)

    resp = client.get("/metrics")

    assert resp.status_code == 200
    assert "dispatch_outcomes_total" in resp.text
    assert "emails_recorded_total" in resp.text


def test_store_calls_run_off_the_event_loop(client, monkeypatch):
    seen = {}

    def on_event_loop():
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return False
        return True

    def spy(name, real):
        def wrapper(*args):
            seen[name] = on_event_loop()
            return real(*args)
        return wrapper

    for name in ("add_email", "list_emails", "list_follow_ups", "list_due_follow_ups"):
        monkeypatch.setattr(f"api.app.emails.{name}", spy(name, getattr(emails, name)))

    client.post("/emails", json=PAYLOAD)
    client.get("/emails", params={"user_email": "me@example.com"})
    client.get("/follow-ups", params={"user_email": "me@example.com"})
    client.get("/follow-ups", params={"user_email": "me@example.com", "due_only": True})

    assert seen == {
        "add_email": False,
        "list_emails": False,
        "list_follow_ups": False,
        "list_due_follow_ups": False,
    }
