import json

import pytest

from jobcore.config.settings import Settings
from jobcore.v1.webhooks import signing
from jobcore.v1.webhooks.receiver import ReceiveOutcome, WebhookReceiver
from jobcore.v1.webhooks.schemas import ContentEventType

SECRET = "sync-secret"
NOW = 1_767_225_600_000


@pytest.fixture
def receiver():
    return WebhookReceiver(
        "content-sync", SECRET, [event_type.value for event_type in ContentEventType]
    )


def signed(body, ts=NOW, secret=SECRET):
    raw = body if isinstance(body, str) else json.dumps(body)
    return raw, signing.sign(secret, ts, raw), str(ts)


def event(event_type="article.updated", **overrides):
    body = {
        "type": event_type,
        "data": {"article_id": "a1", "title": "Hello"},
        "timestamp": "2026-01-01T00:00:00Z",
    }
    body.update(overrides)
    return body


def test_accepts_valid_event(receiver):
    raw, signature, ts = signed(event())

    result = receiver.receive(raw, signature, ts, now=NOW)

    assert result.ok
    assert result.outcome == ReceiveOutcome.ACCEPTED
    assert result.status_code == 200
    assert result.message == "Processed article.updated"
    assert result.event.data["article_id"] == "a1"


def test_accepts_bytes_body(receiver):
    raw, signature, ts = signed(event())
    assert receiver.receive(raw.encode(), signature, ts, now=NOW).ok


class TestAuthentication:
    def test_missing_signature(self, receiver):
        raw, _, ts = signed(event())
        result = receiver.receive(raw, None, ts, now=NOW)
        assert result.outcome == ReceiveOutcome.MISSING_SIGNATURE
        assert result.status_code == 401

    def test_invalid_signature(self, receiver):
        raw, _, ts = signed(event())
        result = receiver.receive(raw, "sha256=" + "0" * 64, ts, now=NOW)
        assert result.outcome == ReceiveOutcome.INVALID_SIGNATURE
        assert result.status_code == 401
        assert result.message == "Invalid signature"

    def test_missing_timestamp(self, receiver):
        raw, signature, _ = signed(event())
        result = receiver.receive(raw, signature, None, now=NOW)
        assert result.outcome == ReceiveOutcome.INVALID_SIGNATURE
        assert result.message == "Missing timestamp"

    def test_expired_timestamp(self, receiver):
        old = NOW - 10 * 60 * 1000
        raw, signature, ts = signed(event(), ts=old)
        result = receiver.receive(raw, signature, ts, now=NOW)
        assert result.outcome == ReceiveOutcome.INVALID_SIGNATURE
        assert result.message == "Webhook timestamp expired"

    def test_future_timestamp(self, receiver):
        raw, signature, ts = signed(event(), ts=NOW + 5 * 60 * 1000)
        result = receiver.receive(raw, signature, ts, now=NOW)
        assert result.message == "Webhook timestamp is in the future"

    def test_custom_window(self):
        strict = WebhookReceiver("strict", SECRET, ["article.updated"], max_age_ms=1000)
        raw, signature, ts = signed(event(), ts=NOW - 2000)
        assert not strict.receive(raw, signature, ts, now=NOW).ok

    def test_empty_secret_rejects(self):
        open_receiver = WebhookReceiver("open", "", ["article.updated"])
        raw, signature, ts = signed(event(), secret="")
        result = open_receiver.receive(raw, signature, ts, now=NOW)
        assert result.outcome == ReceiveOutcome.INVALID_SIGNATURE

    def test_signature_checked_before_body(self, receiver):
        result = receiver.receive("not json", "sha256=bad", str(NOW), now=NOW)
        assert result.outcome == ReceiveOutcome.INVALID_SIGNATURE


class TestBodyValidation:
    def test_invalid_json(self, receiver):
        raw, signature, ts = signed("{not json")
        result = receiver.receive(raw, signature, ts, now=NOW)
        assert result.outcome == ReceiveOutcome.INVALID_JSON
        assert result.status_code == 400

    @pytest.mark.parametrize(
        "body",
        [
            [1, 2, 3],
            "just a string",
            {"data": {}, "timestamp": "2026-01-01T00:00:00Z"},
            {"type": 7, "data": {}, "timestamp": "2026-01-01T00:00:00Z"},
            {"type": "article.updated", "data": [1], "timestamp": "2026-01-01T00:00:00Z"},
            {"type": "article.updated", "data": {}},
            {"type": "article.updated", "data": {}, "timestamp": 1767225600},
        ],
    )
    def test_invalid_event_format(self, receiver, body):
        raw, signature, ts = signed(json.dumps(body))
        result = receiver.receive(raw, signature, ts, now=NOW)
        assert result.outcome == ReceiveOutcome.INVALID_EVENT_FORMAT
        assert result.status_code == 400

    def test_unknown_event_type(self, receiver):
        raw, signature, ts = signed(event("payment.success"))
        result = receiver.receive(raw, signature, ts, now=NOW)
        assert result.outcome == ReceiveOutcome.UNKNOWN_EVENT_TYPE
        assert result.status_code == 422
        assert result.message == "Unknown event type: payment.success"


def test_from_settings_uses_configured_window():
    settings = Settings(webhook_max_age_ms=1234, webhook_max_future_skew_ms=56)
    receiver = WebhookReceiver.from_settings("payment", "s", ["payment.success"], settings)
    assert receiver.max_age_ms == 1234
    assert receiver.max_future_ms == 56
    assert receiver.event_types == frozenset({"payment.success"})
