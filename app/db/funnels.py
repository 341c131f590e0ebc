"""Database operations for conversion funnels, funnel progress, and funnel events."""

from datetime import datetime
from typing import Any

from app.db.supabase_client import get_supabase, new_id, now_iso


def list_active_funnels() -> list[dict]:
    supabase = get_supabase()
    result = supabase.table("conversion_funnels").select("*").eq("is_active", True).execute()
    return result.data or []


def get_funnel(funnel_id: str) -> dict | None:
    supabase = get_supabase()
    result = (
        supabase.table("conversion_funnels").select("*").eq("id", funnel_id).limit(1).execute()
    )
    return result.data[0] if result.data else None


def create_funnel(row: dict[str, Any]) -> dict:
    supabase = get_supabase()
    now = now_iso()
    result = (
        supabase.table("conversion_funnels")
        .insert({"id": new_id(), "created_at": now, "updated_at": now, **row})
        .execute()
    )
    if not result.data:
        raise ValueError("No data returned from funnel insert")
    return result.data[0]


def insert_progress(row: dict[str, Any]) -> None:
    supabase = get_supabase()
    supabase.table("funnel_progress").insert(row).execute()


def get_progress(session_id: str, funnel_id: str) -> dict | None:
    supabase = get_supabase()
    result = (
        supabase.table("funnel_progress")
        .select("*")
        .eq("session_id", session_id)
        .eq("funnel_id", funnel_id)
        .limit(1)
        .execute()
    )
    return result.data[0] if result.data else None


def update_progress(session_id: str, funnel_id: str, updates: dict[str, Any]) -> None:
    supabase = get_supabase()
    supabase.table("funnel_progress").update(updates).eq("session_id", session_id).eq(
        "funnel_id", funnel_id
    ).execute()


def insert_conversion_event(row: dict[str, Any]) -> None:
    supabase = get_supabase()
    supabase.table("conversion_events").insert(
        {"id": new_id(), "timestamp": now_iso(), **row}
    ).execute()


def list_conversion_events(funnel_id: str, start: datetime, end: datetime) -> list[dict]:
    supabase = get_supabase()
    result = (
        supabase.table("conversion_events")
        .select("*")
        .eq("funnel_id", funnel_id)
        .gte("timestamp", start.isoformat())
        .lte("timestamp", end.isoformat())
        .order("timestamp")
        .execute()
    )
    return result.data or []
