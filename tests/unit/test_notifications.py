"""Tests for review event rendering and webhook delivery."""

import asyncio
import json

import httpx
import pytest

from reviewflow.core.config import Settings
from reviewflow.services.notifications import NotificationDispatcher, ReviewEvent


def _event(event_type="step_approved", **kwargs):
    context = {
        "deliverable_title": "Homepage mockup",
        "version_number": 2,
        "step_name": "Client Sign-off",
    }
    context.update(kwargs.pop("context", {}))
    return ReviewEvent(
        event_type=event_type,
        deliverable_id="d-1",
        workflow_id="w-1",
        status=kwargs.pop("status", "in_progress"),
        actor_id="bob",
        actor_name="Bob",
        context=context,
        **kwargs,
    )


def _settings(**overrides):
    values = {"webhook_url": "https://hooks.example.com/review", "webhook_max_retries": 2}
    values.update(overrides)
    return Settings(**values)


class TestRender:

    def test_step_approved(self):
        message = NotificationDispatcher(_settings()).render(_event())
        assert message == 'Bob approved step "Client Sign-off" of Homepage mockup v2.'

    def test_final_approval_mentioned(self):
        message = NotificationDispatcher(_settings()).render(_event(status="approved"))
        assert message.endswith("The deliverable is fully approved.")

    def test_rejection_reason(self):
        message = NotificationDispatcher(_settings()).render(
            _event("step_rejected", status="rejected", context={"comments": "missing assets"})
        )
        assert "Reason: missing assets" in message

    def test_unknown_event_falls_back(self):
        message = NotificationDispatcher(_settings()).render(_event("archived"))
        assert message == "archived on Homepage mockup v2 by Bob."


class TestDispatch:

    def test_log_only_without_webhook(self):
        dispatcher = NotificationDispatcher(_settings(webhook_url=None))
        event = _event()
        assert asyncio.run(dispatcher.dispatch(event)) is True
        assert event.message.startswith("Bob approved")

    def test_webhook_payload(self):
        received = []

        def handler(request: httpx.Request) -> httpx.Response:
            received.append(request)
            return httpx.Response(204)

        dispatcher = NotificationDispatcher(_settings(), transport=httpx.MockTransport(handler), retry_delay=0)
        assert asyncio.run(dispatcher.dispatch(_event())) is True

        assert len(received) == 1
        assert str(received[0].url) == "https://hooks.example.com/review"
        body = json.loads(received[0].content)
        assert body["event_type"] == "step_approved"
        assert body["workflow_id"] == "w-1"
        assert body["review_url"].endswith("/d-1")
        assert body["message"].startswith("Bob approved")

    def test_retries_then_succeeds(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(503 if len(calls) == 1 else 200)

        dispatcher = NotificationDispatcher(_settings(), transport=httpx.MockTransport(handler), retry_delay=0)
        assert asyncio.run(dispatcher.dispatch(_event())) is True
        assert len(calls) == 2

    @pytest.mark.parametrize("failure", ["status", "connect"])
    def test_gives_up_after_max_retries(self, failure):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            if failure == "connect":
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(500)

        dispatcher = NotificationDispatcher(_settings(), transport=httpx.MockTransport(handler), retry_delay=0)
        assert asyncio.run(dispatcher.dispatch(_event())) is False
        assert len(calls) == 2
