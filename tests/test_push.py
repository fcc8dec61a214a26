import json

import httpx
import pytest

from dnp.config import Settings
from dnp.notifications.push import HttpPushSender


def _settings(**overrides) -> Settings:
    values = {"PUSH_API_URL": "https://push.test/send", "PUSH_API_KEY": "secret", "PUSH_MAX_RETRIES": 2}
    values.update(overrides)
    return Settings(_env_file=None, **values)


def _sender(handler, **overrides) -> HttpPushSender:
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return HttpPushSender(_settings(**overrides), client=client, backoff_seconds=0)


def test_send_posts_payload_with_bearer_key():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"ok": True})

    sender = _sender(handler)
    assert sender.send("u1", "Ново съобщение", "Спиране на водата", {"messageId": "m1"}) is True

    request = seen[0]
    assert request.method == "POST"
    assert str(request.url) == "https://push.test/send"
    assert request.headers["authorization"] == "Bearer secret"
    assert json.loads(request.content) == {
        "userId": "u1",
        "title": "Ново съобщение",
        "body": "Спиране на водата",
        "data": {"messageId": "m1"},
    }


def test_client_error_is_not_retried():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(400, text="bad token")

    assert _sender(handler).send("u1", "t", "b", {}) is False
    assert len(calls) == 1


def test_server_error_is_retried_then_succeeds():
    responses = iter([httpx.Response(503), httpx.Response(200)])
    assert _sender(lambda request: next(responses)).send("u1", "t", "b", {}) is True


def test_server_error_gives_up_after_retries():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(502)

    assert _sender(handler).send("u1", "t", "b", {}) is False
    assert len(calls) == 3


def test_network_error_returns_false():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        raise httpx.ConnectError("connection refused", request=request)

    assert _sender(handler, PUSH_MAX_RETRIES=1).send("u1", "t", "b", {}) is False
    assert len(calls) == 2


def test_missing_push_url_is_rejected(monkeypatch):
    monkeypatch.delenv("PUSH_API_URL", raising=False)
    with pytest.raises(ValueError):
        HttpPushSender(Settings(_env_file=None))
