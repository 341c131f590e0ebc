"""Tests for webhook delivery, retries, signatures, and external integrations."""

import json
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import httpx
import pytest

from app.core.schemas_integrations import (
    SlackMessageRequest,
    WebhookEndpointCreate,
    WebhookEndpointUpdate,
)
from app.db import integrations as integrations_db
from app.services.webhook_system import (
    WebhookSystem,
    retry_delay,
    sign_payload,
    verify_signature,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
ORG = "org-1"


class Recorder:
    """MockTransport handler that records requests and answers with a fixed status."""

    def __init__(self, status_code: int = 200, raise_error: bool = False):
        self.status_code = status_code
        self.raise_error = raise_error
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.raise_error:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(self.status_code, text="ok" if self.status_code < 400 else "boom")


def _system(recorder: Recorder) -> WebhookSystem:
    return WebhookSystem(transport=httpx.MockTransport(recorder))


def _endpoint(**overrides) -> dict:
    row = {
        "id": "ep-1",
        "organization_id": ORG,
        "url": "https://hooks.example.com/a",
        "events": ["guardian.invited"],
        "secret": "s3cret",
        "is_active": True,
        "failure_count": 0,
        "max_retries": 3,
        "retry_backoff": 300,
        "headers": {},
    }
    row.update(overrides)
    return row


def _delivery(**overrides) -> dict:
    row = {
        "id": "del-1",
        "webhook_endpoint_id": "ep-1",
        "event_type": "guardian.invited",
        "payload": {"id": "evt-1", "event": "guardian.invited", "data": {"x": 1}},
        "status": "pending",
        "attempt_count": 0,
    }
    row.update(overrides)
    return row


class TestSignatures:
    def test_sign_and_verify(self):
        body = b'{"a": 1}'
        signature = sign_payload(body, "key")

        assert len(signature) == 64
        assert verify_signature(body, "key", signature)
        assert not verify_signature(b'{"a": 2}', "key", signature)
        assert not verify_signature(body, "other", signature)

    def test_retry_delay_doubles(self):
        assert retry_delay(300, 0) == timedelta(seconds=300)
        assert retry_delay(300, 2) == timedelta(seconds=1200)


class TestEndpoints:
    def test_create_generates_secret(self, fake_db):
        system = _system(Recorder())

        result = system.create_webhook_endpoint(
            WebhookEndpointCreate(
                organization_id=ORG, url="https://hooks.example.com/a", events=["*"]
            )
        )

        assert result.success
        assert len(result.data.secret) == 64
        assert result.data.is_active is True

    def test_reactivation_resets_failures(self, fake_db):
        fake_db.tables["webhook_endpoints"] = [_endpoint(is_active=False, failure_count=10)]
        system = _system(Recorder())

        result = system.update_webhook_endpoint("ep-1", WebhookEndpointUpdate(is_active=True))

        assert result.data.is_active is True
        assert result.data.failure_count == 0

    def test_update_unknown_endpoint(self, fake_db):
        result = _system(Recorder()).update_webhook_endpoint(
            "missing", WebhookEndpointUpdate(max_retries=1)
        )

        assert result.error == "Webhook endpoint not found"


class TestTriggerEvent:
    @pytest.mark.asyncio
    async def test_fans_out_to_subscribed_endpoints(self, fake_db):
        fake_db.tables["webhook_endpoints"] = [
            _endpoint(id="ep-1", events=["guardian.invited"]),
            _endpoint(id="ep-2", events=["*"], url="https://hooks.example.com/b"),
            _endpoint(id="ep-3", events=["guardian.revoked"]),
            _endpoint(id="ep-4", is_active=False, events=["*"]),
            _endpoint(id="ep-5", organization_id="org-2", events=["*"]),
        ]
        recorder = Recorder()

        result = await _system(recorder).trigger_webhook_event(
            ORG, "guardian.invited", {"guardian_id": "g-1"}, source="guardians"
        )

        assert result.data["deliveries"] == 2
        assert result.data["delivered"] == 2
        assert {str(r.url) for r in recorder.requests} == {
            "https://hooks.example.com/a",
            "https://hooks.example.com/b",
        }
        assert fake_db.rows("webhook_events")[0]["processed"] is True

    @pytest.mark.asyncio
    async def test_request_is_signed_over_exact_body(self, fake_db):
        fake_db.tables["webhook_endpoints"] = [_endpoint(headers={"X-Tenant": "t1"})]
        recorder = Recorder()

        await _system(recorder).trigger_webhook_event(ORG, "guardian.invited", {"k": "v"})

        request = recorder.requests[0]
        body = request.content
        assert verify_signature(body, "s3cret", request.headers["X-Webhook-Signature"])
        assert request.headers["X-Webhook-Event"] == "guardian.invited"
        assert request.headers["X-Tenant"] == "t1"
        envelope = json.loads(body)
        assert envelope["event"] == "guardian.invited"
        assert envelope["organization_id"] == ORG
        assert envelope["data"] == {"k": "v"}

    @pytest.mark.asyncio
    async def test_no_subscribers(self, fake_db):
        recorder = Recorder()

        result = await _system(recorder).trigger_webhook_event(ORG, "guardian.invited", {})

        assert result.success
        assert result.data["deliveries"] == 0
        assert recorder.requests == []

    @pytest.mark.asyncio
    async def test_mark_processed_failure_keeps_deliveries(self, fake_db):
        fake_db.tables["webhook_endpoints"] = [_endpoint()]
        recorder = Recorder()

        with patch(
            "app.db.integrations.mark_event_processed", side_effect=RuntimeError("db down")
        ):
            result = await _system(recorder).trigger_webhook_event(ORG, "guardian.invited", {})

        assert result.success
        assert result.data["delivered"] == 1
        assert fake_db.rows("webhook_deliveries")[0]["status"] == "delivered"


class TestDeliver:
    @pytest.mark.asyncio
    async def test_success_resets_endpoint_failures(self, fake_db):
        fake_db.tables["webhook_endpoints"] = [_endpoint(failure_count=4)]
        fake_db.tables["webhook_deliveries"] = [_delivery()]

        ok = await _system(Recorder()).deliver(
            fake_db.rows("webhook_deliveries")[0], now=NOW
        )

        assert ok is True
        stored = fake_db.rows("webhook_deliveries")[0]
        assert stored["status"] == "delivered"
        assert stored["attempt_count"] == 1
        assert stored["response_status"] == 200
        assert fake_db.rows("webhook_endpoints")[0]["failure_count"] == 0

    @pytest.mark.asyncio
    async def test_server_error_schedules_retry(self, fake_db):
        fake_db.tables["webhook_endpoints"] = [_endpoint()]
        fake_db.tables["webhook_deliveries"] = [_delivery(attempt_count=1)]

        ok = await _system(Recorder(status_code=500)).deliver(
            fake_db.rows("webhook_deliveries")[0], now=NOW
        )

        assert ok is False
        stored = fake_db.rows("webhook_deliveries")[0]
        assert stored["status"] == "retrying"
        assert stored["attempt_count"] == 2
        assert stored["response_body"] == "boom"
        assert stored["next_retry_at"] == (NOW + timedelta(seconds=600)).isoformat()
        assert fake_db.rows("webhook_endpoints")[0]["failure_count"] == 1

    @pytest.mark.asyncio
    async def test_exhausted_retries_fail(self, fake_db):
        fake_db.tables["webhook_endpoints"] = [_endpoint(max_retries=3)]
        fake_db.tables["webhook_deliveries"] = [_delivery(attempt_count=3)]

        await _system(Recorder(raise_error=True)).deliver(
            fake_db.rows("webhook_deliveries")[0], now=NOW
        )

        stored = fake_db.rows("webhook_deliveries")[0]
        assert stored["status"] == "failed"
        assert stored["next_retry_at"] is None
        assert "connection refused" in stored["error_message"]

    @pytest.mark.asyncio
    async def test_tenth_failure_deactivates_endpoint(self, fake_db):
        fake_db.tables["webhook_endpoints"] = [_endpoint(failure_count=9)]
        fake_db.tables["webhook_deliveries"] = [_delivery()]

        await _system(Recorder(status_code=503)).deliver(
            fake_db.rows("webhook_deliveries")[0], now=NOW
        )

        endpoint = fake_db.rows("webhook_endpoints")[0]
        assert endpoint["failure_count"] == 10
        assert endpoint["is_active"] is False

    @pytest.mark.asyncio
    async def test_inactive_endpoint_is_not_called(self, fake_db):
        fake_db.tables["webhook_endpoints"] = [_endpoint(is_active=False, failure_count=10)]
        fake_db.tables["webhook_deliveries"] = [_delivery()]
        recorder = Recorder()

        ok = await _system(recorder).deliver(fake_db.rows("webhook_deliveries")[0], now=NOW)

        assert ok is False
        assert recorder.requests == []
        assert fake_db.rows("webhook_deliveries")[0]["status"] == "failed"
        assert fake_db.rows("webhook_endpoints")[0]["failure_count"] == 10

    @pytest.mark.asyncio
    async def test_process_retries_only_due(self, fake_db):
        fake_db.tables["webhook_endpoints"] = [_endpoint()]
        fake_db.tables["webhook_deliveries"] = [
            _delivery(
                id="due", status="retrying", attempt_count=1,
                next_retry_at=(NOW - timedelta(minutes=1)).isoformat(),
            ),
            _delivery(
                id="later", status="retrying", attempt_count=1,
                next_retry_at=(NOW + timedelta(minutes=5)).isoformat(),
            ),
        ]
        recorder = Recorder()

        delivered = await _system(recorder).process_retries(now=NOW)

        assert delivered == 1
        statuses = {d["id"]: d["status"] for d in fake_db.rows("webhook_deliveries")}
        assert statuses == {"due": "delivered", "later": "retrying"}

    @pytest.mark.asyncio
    async def test_process_retries_survives_one_failed_update(self, fake_db):
        fake_db.tables["webhook_endpoints"] = [_endpoint()]
        fake_db.tables["webhook_deliveries"] = [
            _delivery(
                id=delivery_id, status="retrying", attempt_count=1,
                next_retry_at=(NOW - timedelta(minutes=1)).isoformat(),
            )
            for delivery_id in ("broken", "fine")
        ]
        real_update = integrations_db.update_delivery

        def flaky_update(delivery_id, updates):
            if delivery_id == "broken":
                raise RuntimeError("db down")
            return real_update(delivery_id, updates)

        with patch("app.db.integrations.update_delivery", side_effect=flaky_update):
            delivered = await _system(Recorder()).process_retries(now=NOW)

        assert delivered == 1
        statuses = {d["id"]: d["status"] for d in fake_db.rows("webhook_deliveries")}
        assert statuses == {"broken": "retrying", "fine": "delivered"}


class TestExternalIntegrations:
    def _integration(self, fake_db, **overrides) -> None:
        row = {
            "id": "int-1",
            "organization_id": ORG,
            "integration_type": "slack",
            "name": "Ops",
            "configuration": {"webhook_url": "https://slack.example.com/hook", "channel": "#ops"},
            "is_active": True,
            "error_count": 0,
            "success_count": 0,
        }
        row.update(overrides)
        fake_db.tables["external_integrations"] = [row]

    @pytest.mark.asyncio
    async def test_slack_connection_test(self, fake_db):
        self._integration(fake_db)
        recorder = Recorder()

        result = await _system(recorder).test_integration("int-1")

        assert result.success
        assert json.loads(recorder.requests[0].content) == {
            "text": "LegacyGuard integration test - connection successful!"
        }
        assert fake_db.rows("external_integrations")[0]["success_count"] == 1

    @pytest.mark.asyncio
    async def test_missing_webhook_url(self, fake_db):
        self._integration(fake_db, integration_type="teams", configuration={})

        result = await _system(Recorder()).test_integration("int-1")

        assert result.message == "Teams webhook URL not configured"

    @pytest.mark.asyncio
    async def test_email_needs_smtp_or_api_key(self, fake_db):
        self._integration(fake_db, integration_type="email", configuration={})
        system = _system(Recorder())

        assert (await system.test_integration("int-1")).success is False

        fake_db.rows("external_integrations")[0]["configuration"] = {"api_key": "k"}
        assert (await system.test_integration("int-1")).success is True

    @pytest.mark.asyncio
    async def test_unsupported_type(self, fake_db):
        self._integration(fake_db, integration_type="sms")

        result = await _system(Recorder()).test_integration("int-1")

        assert result.message == "Integration type not supported for testing"

    @pytest.mark.asyncio
    async def test_failed_test_counts_error(self, fake_db):
        self._integration(fake_db)

        result = await _system(Recorder(status_code=404)).test_integration("int-1")

        assert not result.success
        assert fake_db.rows("external_integrations")[0]["error_count"] == 1

    @pytest.mark.asyncio
    async def test_slack_message_defaults(self, fake_db):
        self._integration(fake_db)
        recorder = Recorder()

        result = await _system(recorder).send_slack_message(
            "int-1", SlackMessageRequest(message="Guardian accepted")
        )

        assert result.success
        payload = json.loads(recorder.requests[0].content)
        assert payload["channel"] == "#ops"
        assert payload["username"] == "LegacyGuard"
        assert payload["icon_emoji"] == ":shield:"
        assert "attachments" not in payload

    @pytest.mark.asyncio
    async def test_slack_message_error(self, fake_db):
        self._integration(fake_db)

        result = await _system(Recorder(raise_error=True)).send_slack_message(
            "int-1", SlackMessageRequest(message="hi")
        )

        assert result.error.startswith("Slack API error:")

    @pytest.mark.asyncio
    async def test_slack_message_to_non_slack_integration(self, fake_db):
        self._integration(fake_db, integration_type="teams")

        result = await _system(Recorder()).send_slack_message(
            "int-1", SlackMessageRequest(message="hi")
        )

        assert result.error == "Integration is not a Slack integration"
