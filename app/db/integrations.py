"""Database operations for webhook endpoints, events, deliveries, and external integrations."""

from datetime import datetime
from typing import Any

from app.db.supabase_client import get_supabase, new_id, now_iso

# =========================
# Endpoints
# =========================


def create_endpoint(row: dict[str, Any]) -> dict:
    supabase = get_supabase()
    now = now_iso()
    result = (
        supabase.table("webhook_endpoints")
        .insert({"id": new_id(), "created_at": now, "updated_at": now, **row})
        .execute()
    )
    if not result.data:
        raise ValueError("No data returned from webhook endpoint insert")
    return result.data[0]


def get_endpoint(endpoint_id: str) -> dict | None:
    supabase = get_supabase()
    result = (
        supabase.table("webhook_endpoints").select("*").eq("id", endpoint_id).limit(1).execute()
    )
    return result.data[0] if result.data else None


def update_endpoint(endpoint_id: str, updates: dict[str, Any]) -> dict | None:
    supabase = get_supabase()
    result = (
        supabase.table("webhook_endpoints")
        .update({**updates, "updated_at": now_iso()})
        .eq("id", endpoint_id)
        .execute()
    )
    return result.data[0] if result.data else None


def delete_endpoint(endpoint_id: str) -> None:
    supabase = get_supabase()
    supabase.table("webhook_endpoints").delete().eq("id", endpoint_id).execute()


def list_active_endpoints(organization_id: str) -> list[dict]:
    supabase = get_supabase()
    result = (
        supabase.table("webhook_endpoints")
        .select("*")
        .eq("organization_id", organization_id)
        .eq("is_active", True)
        .execute()
    )
    return result.data or []


# =========================
# Events and deliveries
# =========================


def create_event(row: dict[str, Any]) -> dict:
    supabase = get_supabase()
    result = (
        supabase.table("webhook_events")
        .insert({"id": new_id(), "created_at": now_iso(), "processed": False, **row})
        .execute()
    )
    if not result.data:
        raise ValueError("No data returned from webhook event insert")
    return result.data[0]


def mark_event_processed(event_id: str) -> None:
    supabase = get_supabase()
    supabase.table("webhook_events").update({"processed": True}).eq("id", event_id).execute()


def create_deliveries(rows: list[dict[str, Any]]) -> list[dict]:
    if not rows:
        return []
    supabase = get_supabase()
    now = now_iso()
    result = (
        supabase.table("webhook_deliveries")
        .insert([{"id": new_id(), "created_at": now, **row} for row in rows])
        .execute()
    )
    return result.data or []


def update_delivery(delivery_id: str, updates: dict[str, Any]) -> None:
    supabase = get_supabase()
    supabase.table("webhook_deliveries").update(updates).eq("id", delivery_id).execute()


def list_due_retries(now: datetime) -> list[dict]:
    supabase = get_supabase()
    result = (
        supabase.table("webhook_deliveries")
        .select("*")
        .eq("status", "retrying")
        .lte("next_retry_at", now.isoformat())
        .order("next_retry_at")
        .execute()
    )
    return result.data or []


def list_deliveries(
    endpoint_id: str, status: str | None = None, limit: int = 10, offset: int = 0
) -> list[dict]:
    supabase = get_supabase()
    query = (
        supabase.table("webhook_deliveries")
        .select("*")
        .eq("webhook_endpoint_id", endpoint_id)
    )
    if status:
        query = query.eq("status", status)
    result = query.order("created_at", desc=True).range(offset, offset + limit - 1).execute()
    return result.data or []


# =========================
# External integrations
# =========================


def create_integration(row: dict[str, Any]) -> dict:
    supabase = get_supabase()
    now = now_iso()
    result = (
        supabase.table("external_integrations")
        .insert({"id": new_id(), "created_at": now, "updated_at": now, **row})
        .execute()
    )
    if not result.data:
        raise ValueError("No data returned from external integration insert")
    return result.data[0]


def get_integration(integration_id: str) -> dict | None:
    supabase = get_supabase()
    result = (
        supabase.table("external_integrations")
        .select("*")
        .eq("id", integration_id)
        .limit(1)
        .execute()
    )
    return result.data[0] if result.data else None


def update_integration(integration_id: str, updates: dict[str, Any]) -> None:
    supabase = get_supabase()
    supabase.table("external_integrations").update({**updates, "updated_at": now_iso()}).eq(
        "id", integration_id
    ).execute()
