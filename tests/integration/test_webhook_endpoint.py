import json

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from otto.modules import Module, ModuleRegistry
from otto.webhook.application import EventDispatcher, IssueCommentEvent, PingEvent, compute_signature
from otto.webhook.interfaces import get_webhook_secret, router

SECRET = "test-secret"


class RecordingModule(Module):
    def __init__(self):
        self.events = []

    @property
    def name(self):
        return "recorder"

    async def handle_event(self, event_type, event, raw):
        self.events.append((event_type, event, raw))


class ExplodingModule(Module):
    @property
    def name(self):
        return "exploding"

    async def handle_event(self, event_type, event, raw):
        raise RuntimeError("boom")


@pytest.fixture
def recorder():
    return RecordingModule()


@pytest.fixture
def app(recorder):
    registry = ModuleRegistry()
    registry.register(ExplodingModule())
    registry.register(recorder)

    app = FastAPI()
    app.include_router(router)
    app.state.dispatcher = EventDispatcher(registry)
    app.dependency_overrides[get_webhook_secret] = lambda: SECRET
    return app


def _post(client, event_type, payload, secret=SECRET, signature=None):
    raw = payload if isinstance(payload, bytes) else json.dumps(payload).encode("utf-8")
    headers = {
        "Content-Type": "application/json",
        "X-GitHub-Event": event_type,
        "X-GitHub-Delivery": "delivery-123",
    }
    if signature is None and secret is not None:
        signature = compute_signature(secret, raw)
    if signature is not None:
        headers["X-Hub-Signature-256"] = signature
    return client.post("/webhook", content=raw, headers=headers)


def _drain(client, app):
    client.portal.call(app.state.dispatcher.drain, 5)


def test_ping_is_accepted_and_dispatched(app, recorder):
    with TestClient(app) as client:
        response = _post(client, "ping", {"zen": "Design for failure.", "hook_id": 1})
        _drain(client, app)

    assert response.status_code == 200
    assert response.json() == {"status": "accepted", "event": "ping"}
    assert len(recorder.events) == 1
    event_type, event, raw = recorder.events[0]
    assert event_type == "ping"
    assert isinstance(event, PingEvent)
    assert event.zen == "Design for failure."
    assert json.loads(raw)["hook_id"] == 1


def test_issue_comment_is_parsed(app, recorder):
    payload = {
        "action": "created",
        "issue": {"number": 42},
        "comment": {"body": "/ack", "user": {"login": "alice"}},
        "repository": {"full_name": "acme/repo"},
    }
    with TestClient(app) as client:
        response = _post(client, "issue_comment", payload)
        _drain(client, app)

    assert response.status_code == 200
    event = recorder.events[0][1]
    assert isinstance(event, IssueCommentEvent)
    assert event.comment.user.login == "alice"


def test_unknown_event_passes_decoded_json(app, recorder):
    with TestClient(app) as client:
        response = _post(client, "deployment", {"action": "created", "id": 5})
        _drain(client, app)

    assert response.status_code == 200
    assert response.json()["event"] == "deployment"
    assert recorder.events[0][1] == {"action": "created", "id": 5}


@pytest.mark.parametrize(
    "signature",
    [None, "bad", "sha256=deadbeef", compute_signature("wrong-secret", b"{}")],
)
def test_bad_signature_is_rejected(app, recorder, signature):
    with TestClient(app) as client:
        response = _post(client, "ping", {}, secret=None, signature=signature)

    assert response.status_code == 401
    assert recorder.events == []


def test_unconfigured_secret_rejects_everything(app, recorder):
    app.dependency_overrides[get_webhook_secret] = lambda: None

    with TestClient(app) as client:
        response = _post(client, "ping", {}, signature=compute_signature(SECRET, b"{}"))

    assert response.status_code == 401
    assert recorder.events == []


def test_invalid_json_is_rejected(app, recorder):
    with TestClient(app) as client:
        response = _post(client, "ping", b"not json")

    assert response.status_code == 400
    assert recorder.events == []


def test_invalid_known_payload_is_rejected(app, recorder):
    with TestClient(app) as client:
        response = _post(client, "issue_comment", {"action": "created"})

    assert response.status_code == 400
    assert recorder.events == []
