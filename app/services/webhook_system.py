"""Outbound webhooks and third-party notification integrations.

Events are stored, fanned out to every active endpoint subscribed to the
event type (or "*"), and POSTed with an HMAC-SHA256 signature of the exact
body bytes. Failed deliveries back off exponentially until the endpoint's
max_retries is exhausted; an endpoint with 10 consecutive failures is
deactivated.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import secrets
from datetime import datetime, timedelta
from functools import lru_cache
from typing import Any

import httpx

from app.core.config import get_settings
from app.core.logging import get_logger
from app.core.schemas_integrations import (
    ExternalIntegration,
    ExternalIntegrationCreate,
    IntegrationTestResult,
    SlackMessageRequest,
    WebhookDelivery,
    WebhookEndpoint,
    WebhookEndpointCreate,
    WebhookEndpointUpdate,
)
from app.core.service_result import ServiceResult
from app.db import integrations as integrations_db
from app.db.supabase_client import utc_now

logger = get_logger(__name__)

MAX_ENDPOINT_FAILURES = 10
MAX_RESPONSE_BODY = 2000


def sign_payload(body: bytes, secret: str) -> str:
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def verify_signature(body: bytes, secret: str, signature: str) -> bool:
    """Check an X-Webhook-Signature header the way receivers are expected to."""
    return hmac.compare_digest(signature, sign_payload(body, secret))


def retry_delay(backoff_seconds: int, attempts: int) -> timedelta:
    return timedelta(seconds=backoff_seconds * (2**attempts))


def _subscribed(endpoint: dict, event_type: str) -> bool:
    events = endpoint.get("events") or []
    return event_type in events or "*" in events


def _test_payload(integration_type: str) -> dict[str, Any] | None:
    """Connection-test message for webhook-style integrations; None when untestable."""
    if integration_type == "slack":
        return {"text": "LegacyGuard integration test - connection successful!"}
    if integration_type == "teams":
        return {
            "@type": "MessageCard",
            "@context": "http://schema.org/extensions",
            "summary": "LegacyGuard Integration Test",
            "themeColor": "0076D7",
            "sections": [
                {
                    "activityTitle": "LegacyGuard Integration Test",
                    "activitySubtitle": "Connection successful!",
                    "markdown": True,
                }
            ],
        }
    if integration_type == "zapier":
        return {
            "event": "test",
            "data": {
                "message": "LegacyGuard integration test",
                "timestamp": utc_now().isoformat(),
            },
        }
    return None


class WebhookSystem:
    def __init__(self, transport: httpx.AsyncBaseTransport | None = None) -> None:
        # transport is only swapped out in tests
        self.transport = transport
        self.settings = get_settings()

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.settings.WEBHOOK_TIMEOUT_SECONDS, transport=self.transport
        )

    # =========================
    # Endpoints
    # =========================

    def create_webhook_endpoint(self, data: WebhookEndpointCreate) -> ServiceResult:
        try:
            row = integrations_db.create_endpoint(
                {
                    **data.model_dump(mode="json"),
                    "secret": secrets.token_hex(32),
                    "is_active": True,
                    "failure_count": 0,
                    "metadata": {},
                }
            )
        except Exception as e:
            logger.exception("Failed to create webhook endpoint")
            return ServiceResult.fail(str(e))

        logger.info(
            f"Created webhook endpoint {row['id']} for organization {data.organization_id}",
            extra={"extra_data": {"events": data.events}},
        )
        return ServiceResult.ok(WebhookEndpoint.model_validate(row))

    def update_webhook_endpoint(
        self, endpoint_id: str, updates: WebhookEndpointUpdate
    ) -> ServiceResult:
        changes = updates.model_dump(mode="json", exclude_none=True)
        if not changes:
            return ServiceResult.fail("No fields to update")
        if changes.get("is_active"):
            # reactivating gives the endpoint a clean slate
            changes["failure_count"] = 0

        try:
            row = integrations_db.update_endpoint(endpoint_id, changes)
        except Exception as e:
            logger.exception(f"Failed to update webhook endpoint {endpoint_id}")
            return ServiceResult.fail(str(e))
        if row is None:
            return ServiceResult.fail("Webhook endpoint not found")
        return ServiceResult.ok(WebhookEndpoint.model_validate(row))

    def delete_webhook_endpoint(self, endpoint_id: str) -> ServiceResult:
        try:
            integrations_db.delete_endpoint(endpoint_id)
        except Exception as e:
            logger.exception(f"Failed to delete webhook endpoint {endpoint_id}")
            return ServiceResult.fail(str(e))
        return ServiceResult.ok(message="Webhook endpoint deleted")

    # =========================
    # Events and delivery
    # =========================

    async def trigger_webhook_event(
        self,
        organization_id: str,
        event_type: str,
        payload: dict[str, Any],
        source: str = "api",
        correlation_id: str | None = None,
    ) -> ServiceResult:
        """Store the event and deliver it to every subscribed endpoint, one at a time."""
        try:
            event = integrations_db.create_event(
                {
                    "organization_id": organization_id,
                    "event_type": event_type,
                    "payload": payload,
                    "source": source,
                    "correlation_id": correlation_id,
                }
            )
            endpoints = [
                e
                for e in integrations_db.list_active_endpoints(organization_id)
                if _subscribed(e, event_type)
            ]
            envelope = {
                "id": event["id"],
                "event": event_type,
                "organization_id": organization_id,
                "created_at": event["created_at"],
                "data": payload,
            }
            deliveries = integrations_db.create_deliveries(
                [
                    {
                        "webhook_endpoint_id": endpoint["id"],
                        "event_type": event_type,
                        "payload": envelope,
                        "status": "pending",
                        "attempt_count": 0,
                    }
                    for endpoint in endpoints
                ]
            )
        except Exception as e:
            logger.exception(f"Failed to trigger webhook event {event_type}")
            return ServiceResult.fail(str(e))

        endpoints_by_id = {e["id"]: e for e in endpoints}
        delivered = 0
        for delivery in deliveries:
            endpoint = endpoints_by_id.get(delivery["webhook_endpoint_id"])
            if await self._deliver_logged(delivery, endpoint):
                delivered += 1

        try:
            integrations_db.mark_event_processed(event["id"])
        except Exception:
            logger.exception(f"Failed to mark webhook event {event['id']} processed")

        logger.info(
            f"Webhook event {event_type} delivered to {delivered}/{len(deliveries)} endpoints"
        )
        return ServiceResult.ok(
            {"event_id": event["id"], "deliveries": len(deliveries), "delivered": delivered}
        )

    async def deliver(
        self, delivery: dict, endpoint: dict | None = None, now: datetime | None = None
    ) -> bool:
        """POST one delivery and record the outcome. Returns True when delivered."""
        if endpoint is None:
            endpoint = integrations_db.get_endpoint(delivery["webhook_endpoint_id"])
        if endpoint is None or not endpoint.get("is_active", True):
            integrations_db.update_delivery(
                delivery["id"],
                {"status": "failed", "error_message": "Webhook endpoint missing or inactive"},
            )
            return False

        previous_attempts = delivery.get("attempt_count") or 0
        body = json.dumps(delivery["payload"]).encode()
        headers = {
            "Content-Type": "application/json",
            "X-Webhook-Signature": sign_payload(body, endpoint["secret"]),
            "X-Webhook-Event": delivery["event_type"],
            "X-Webhook-Delivery": delivery["id"],
            "User-Agent": self.settings.WEBHOOK_USER_AGENT,
            **(endpoint.get("headers") or {}),
        }

        record: dict[str, Any] = {"attempt_count": previous_attempts + 1}
        success = False
        try:
            async with self._client() as client:
                resp = await client.post(endpoint["url"], content=body, headers=headers)
            record["response_status"] = resp.status_code
            record["response_body"] = resp.text[:MAX_RESPONSE_BODY]
            success = resp.is_success
        except httpx.HTTPError as e:
            logger.warning(f"Webhook delivery {delivery['id']} to {endpoint['url']} failed: {e}")
            record["error_message"] = str(e)

        now = now or utc_now()
        if success:
            record["status"] = "delivered"
            record["delivered_at"] = now.isoformat()
            record["next_retry_at"] = None
            integrations_db.update_delivery(delivery["id"], record)
            integrations_db.update_endpoint(
                endpoint["id"], {"failure_count": 0, "last_delivery_attempt": now.isoformat()}
            )
            return True

        self._record_failure(delivery, endpoint, record, previous_attempts, now)
        return False

    def _record_failure(
        self,
        delivery: dict,
        endpoint: dict,
        record: dict[str, Any],
        previous_attempts: int,
        now: datetime,
    ) -> None:
        max_retries = endpoint.get("max_retries", 3)
        if previous_attempts < max_retries:
            backoff = endpoint.get("retry_backoff", 300)
            record["status"] = "retrying"
            record["next_retry_at"] = (now + retry_delay(backoff, previous_attempts)).isoformat()
        else:
            record["status"] = "failed"
            record["next_retry_at"] = None
        integrations_db.update_delivery(delivery["id"], record)

        failures = (endpoint.get("failure_count") or 0) + 1
        endpoint_updates: dict[str, Any] = {
            "failure_count": failures,
            "last_delivery_attempt": now.isoformat(),
        }
        if failures >= MAX_ENDPOINT_FAILURES:
            endpoint_updates["is_active"] = False
            logger.warning(
                f"Deactivating webhook endpoint {endpoint['id']} after {failures} failures"
            )
        integrations_db.update_endpoint(endpoint["id"], endpoint_updates)
        endpoint.update(endpoint_updates)

    async def _deliver_logged(
        self, delivery: dict, endpoint: dict | None, now: datetime | None = None
    ) -> bool:
        """deliver() for batch loops: a storage error on one delivery is logged, not raised."""
        try:
            return await self.deliver(delivery, endpoint, now=now)
        except Exception:
            logger.exception(f"Webhook delivery {delivery.get('id')} could not be recorded")
            return False

    async def process_retries(self, now: datetime | None = None) -> int:
        """Redeliver every retrying delivery whose next_retry_at has passed."""
        now = now or utc_now()
        due = integrations_db.list_due_retries(now)
        delivered = 0
        endpoints: dict[str, dict | None] = {}
        for delivery in due:
            endpoint_id = delivery["webhook_endpoint_id"]
            if endpoint_id not in endpoints:
                try:
                    endpoints[endpoint_id] = integrations_db.get_endpoint(endpoint_id)
                except Exception:
                    logger.exception(f"Failed to load webhook endpoint {endpoint_id}")
                    continue
            if await self._deliver_logged(delivery, endpoints[endpoint_id], now=now):
                delivered += 1
        if due:
            logger.info(f"Processed {len(due)} webhook retries, {delivered} delivered")
        return delivered

    def get_webhook_deliveries(
        self, endpoint_id: str, status: str | None = None, limit: int = 10, offset: int = 0
    ) -> ServiceResult:
        try:
            rows = integrations_db.list_deliveries(endpoint_id, status, limit, offset)
        except Exception as e:
            logger.exception(f"Failed to list deliveries for endpoint {endpoint_id}")
            return ServiceResult.fail(str(e))
        return ServiceResult.ok([WebhookDelivery.model_validate(r) for r in rows])

    # =========================
    # External integrations
    # =========================

    def create_external_integration(self, data: ExternalIntegrationCreate) -> ServiceResult:
        try:
            row = integrations_db.create_integration(
                {
                    **data.model_dump(mode="json"),
                    "is_active": True,
                    "error_count": 0,
                    "success_count": 0,
                }
            )
        except Exception as e:
            logger.exception("Failed to create external integration")
            return ServiceResult.fail(str(e))
        return ServiceResult.ok(ExternalIntegration.model_validate(row))

    def _get_integration(self, integration_id: str) -> ExternalIntegration:
        row = integrations_db.get_integration(integration_id)
        if row is None:
            raise LookupError(f"Integration {integration_id} not found")
        return ExternalIntegration.model_validate(row)

    async def _post_json(self, url: str, payload: dict[str, Any]) -> None:
        async with self._client() as client:
            resp = await client.post(url, json=payload)
            resp.raise_for_status()

    async def test_integration(self, integration_id: str) -> IntegrationTestResult:
        """Send a harmless test message through the integration's channel."""
        try:
            integration = self._get_integration(integration_id)
        except LookupError as e:
            return IntegrationTestResult(success=False, message=str(e))

        config = integration.configuration
        kind = integration.integration_type
        if kind == "email":
            if not config.get("smtp_host") and not config.get("api_key"):
                return IntegrationTestResult(
                    success=False, message="Email integration not configured"
                )
            return IntegrationTestResult(success=True, message="Email integration configured")

        payload = _test_payload(kind)
        if payload is None:
            return IntegrationTestResult(
                success=False, message="Integration type not supported for testing"
            )
        if not config.get("webhook_url"):
            return IntegrationTestResult(
                success=False, message=f"{kind.capitalize()} webhook URL not configured"
            )

        try:
            await self._post_json(config["webhook_url"], payload)
        except httpx.HTTPError as e:
            logger.warning(f"Integration test failed for {integration_id}: {e}")
            self._record_usage(integration, success=False)
            return IntegrationTestResult(success=False, message=f"Integration test failed: {e}")

        self._record_usage(integration, success=True)
        return IntegrationTestResult(success=True, message="Integration test successful")

    async def send_slack_message(
        self, integration_id: str, request: SlackMessageRequest
    ) -> ServiceResult:
        try:
            integration = self._get_integration(integration_id)
        except LookupError as e:
            return ServiceResult.fail(str(e))
        if integration.integration_type != "slack":
            return ServiceResult.fail("Integration is not a Slack integration")
        if not integration.is_active:
            return ServiceResult.fail("Integration is inactive")

        config = integration.configuration
        if not config.get("webhook_url"):
            return ServiceResult.fail("Slack webhook URL not configured")

        payload: dict[str, Any] = {
            "text": request.message,
            "channel": request.channel or config.get("channel"),
            "username": request.username or "LegacyGuard",
            "icon_emoji": request.icon_emoji or ":shield:",
        }
        if request.attachments:
            payload["attachments"] = request.attachments

        try:
            await self._post_json(config["webhook_url"], payload)
        except httpx.HTTPError as e:
            logger.warning(f"Slack message via integration {integration_id} failed: {e}")
            self._record_usage(integration, success=False)
            return ServiceResult.fail(f"Slack API error: {e}")

        self._record_usage(integration, success=True)
        return ServiceResult.ok(message="Slack message sent")

    def _record_usage(self, integration: ExternalIntegration, success: bool) -> None:
        updates: dict[str, Any] = {"last_used_at": utc_now().isoformat()}
        if success:
            updates["success_count"] = integration.success_count + 1
        else:
            updates["error_count"] = integration.error_count + 1
        try:
            integrations_db.update_integration(integration.id, updates)
        except Exception:
            logger.exception(f"Failed to record usage for integration {integration.id}")


@lru_cache(maxsize=1)
def get_webhook_system() -> WebhookSystem:
    return WebhookSystem()
