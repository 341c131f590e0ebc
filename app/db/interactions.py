"""Database operations for raw user interactions."""

from datetime import datetime
from typing import Any

from app.db.supabase_client import get_supabase


def insert_interactions(rows: list[dict[str, Any]]) -> int:
    """Insert a batch of interactions; returns the number of stored rows."""
    if not rows:
        return 0
    supabase = get_supabase()
    result = supabase.table("user_interactions").insert(rows).execute()
    return len(result.data or [])


def list_session_interactions(session_id: str) -> list[dict]:
    supabase = get_supabase()
    result = (
        supabase.table("user_interactions")
        .select("*")
        .eq("session_id", session_id)
        .order("timestamp")
        .execute()
    )
    return result.data or []


def list_user_interactions(user_id: str, session_id: str | None = None, limit: int = 500) -> list[dict]:
    supabase = get_supabase()
    query = supabase.table("user_interactions").select("*").eq("user_id", user_id)
    if session_id:
        query = query.eq("session_id", session_id)
    result = query.order("timestamp").limit(limit).execute()
    return result.data or []


def list_page_interactions(
    page_path: str, since: datetime, event_types: list[str] | None = None
) -> list[dict]:
    supabase = get_supabase()
    query = (
        supabase.table("user_interactions")
        .select("*")
        .eq("page_path", page_path)
        .gte("timestamp", since.isoformat())
    )
    if event_types:
        query = query.in_("event_type", event_types)
    result = query.execute()
    return result.data or []


def list_page_views_since(since: datetime) -> list[dict]:
    supabase = get_supabase()
    result = (
        supabase.table("user_interactions")
        .select("session_id, page_path, timestamp")
        .eq("event_type", "page_view")
        .gte("timestamp", since.isoformat())
        .order("timestamp")
        .execute()
    )
    return result.data or []
