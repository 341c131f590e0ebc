"""Integrations API: webhook endpoints, event triggering, deliveries, and external integrations."""

from fastapi import APIRouter, Depends

from app.api.api_helpers import unwrap
from app.core.auth_middleware import AuthContext, get_admin_user
from app.core.schemas_integrations import (
    DeliveryStatus,
    ExternalIntegrationCreate,
    IntegrationTestResult,
    SlackMessageRequest,
    WebhookEndpointCreate,
    WebhookEndpointUpdate,
    WebhookEventCreate,
)
from app.core.service_result import ServiceResult
from app.services.webhook_system import get_webhook_system

router = APIRouter(prefix="/integrations")


@router.post("/webhooks", response_model=ServiceResult, status_code=201)
async def create_webhook_endpoint(
    request: WebhookEndpointCreate, auth: AuthContext = Depends(get_admin_user)
):
    """Register an endpoint. The response carries the generated signing secret."""
    return unwrap(get_webhook_system().create_webhook_endpoint(request))


@router.patch("/webhooks/{endpoint_id}", response_model=ServiceResult)
async def update_webhook_endpoint(
    endpoint_id: str, updates: WebhookEndpointUpdate, auth: AuthContext = Depends(get_admin_user)
):
    return unwrap(get_webhook_system().update_webhook_endpoint(endpoint_id, updates))


@router.delete("/webhooks/{endpoint_id}", response_model=ServiceResult)
async def delete_webhook_endpoint(endpoint_id: str, auth: AuthContext = Depends(get_admin_user)):
    return unwrap(get_webhook_system().delete_webhook_endpoint(endpoint_id))


@router.get("/webhooks/{endpoint_id}/deliveries", response_model=ServiceResult)
async def get_webhook_deliveries(
    endpoint_id: str,
    status: DeliveryStatus | None = None,
    limit: int = 10,
    offset: int = 0,
    auth: AuthContext = Depends(get_admin_user),
):
    return unwrap(get_webhook_system().get_webhook_deliveries(endpoint_id, status, limit, offset))


@router.post("/events", response_model=ServiceResult, status_code=202)
async def trigger_webhook_event(
    request: WebhookEventCreate, auth: AuthContext = Depends(get_admin_user)
):
    return unwrap(
        await get_webhook_system().trigger_webhook_event(
            request.organization_id,
            request.event_type,
            request.payload,
            source=request.source,
            correlation_id=request.correlation_id,
        )
    )


@router.post("/retries", response_model=ServiceResult)
async def process_retries(auth: AuthContext = Depends(get_admin_user)):
    delivered = await get_webhook_system().process_retries()
    return ServiceResult.ok({"delivered": delivered})


@router.post("/external", response_model=ServiceResult, status_code=201)
async def create_external_integration(
    request: ExternalIntegrationCreate, auth: AuthContext = Depends(get_admin_user)
):
    return unwrap(get_webhook_system().create_external_integration(request))


@router.post("/external/{integration_id}/test", response_model=IntegrationTestResult)
async def test_integration(integration_id: str, auth: AuthContext = Depends(get_admin_user)):
    return await get_webhook_system().test_integration(integration_id)


@router.post("/external/{integration_id}/slack", response_model=ServiceResult)
async def send_slack_message(
    integration_id: str, request: SlackMessageRequest, auth: AuthContext = Depends(get_admin_user)
):
    return unwrap(await get_webhook_system().send_slack_message(integration_id, request))
