"""Pydantic schemas for outbound webhooks and external integrations."""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field, HttpUrl

DeliveryStatus = Literal["pending", "delivered", "failed", "retrying"]
IntegrationType = Literal["slack", "teams", "email", "sms", "zapier", "custom"]


class WebhookEndpointCreate(BaseModel):
    organization_id: str
    url: HttpUrl
    events: list[str] = Field(..., min_length=1)  # event types, or "*" for all
    headers: dict[str, str] = Field(default_factory=dict)
    max_retries: int = Field(default=3, ge=0, le=10)
    retry_backoff: int = Field(default=300, ge=1)  # seconds


class WebhookEndpointUpdate(BaseModel):
    url: HttpUrl | None = None
    events: list[str] | None = None
    headers: dict[str, str] | None = None
    is_active: bool | None = None
    max_retries: int | None = Field(default=None, ge=0, le=10)
    retry_backoff: int | None = Field(default=None, ge=1)


class WebhookEndpoint(BaseModel):
    id: str
    organization_id: str
    url: str
    events: list[str]
    secret: str
    is_active: bool = True
    failure_count: int = 0
    max_retries: int = 3
    retry_backoff: int = 300
    headers: dict[str, str] = Field(default_factory=dict)
    metadata: dict[str, Any] = Field(default_factory=dict)
    last_delivery_attempt: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class WebhookEventCreate(BaseModel):
    organization_id: str
    event_type: str
    payload: dict[str, Any] = Field(default_factory=dict)
    source: str = "api"
    correlation_id: str | None = None


class WebhookDelivery(BaseModel):
    id: str
    webhook_endpoint_id: str
    event_type: str
    payload: dict[str, Any]
    status: DeliveryStatus
    attempt_count: int = 0
    response_status: int | None = None
    response_body: str | None = None
    error_message: str | None = None
    created_at: datetime | None = None
    delivered_at: datetime | None = None
    next_retry_at: datetime | None = None


class ExternalIntegrationCreate(BaseModel):
    organization_id: str
    integration_type: IntegrationType
    name: str
    configuration: dict[str, Any] = Field(default_factory=dict)


class ExternalIntegration(ExternalIntegrationCreate):
    id: str
    is_active: bool = True
    error_count: int = 0
    success_count: int = 0
    last_used_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class IntegrationTestResult(BaseModel):
    success: bool
    message: str


class SlackMessageRequest(BaseModel):
    message: str
    channel: str | None = None
    username: str | None = None
    icon_emoji: str | None = None
    attachments: list[dict[str, Any]] = Field(default_factory=list)
