"""Database operations for curation strategies, issued recommendations, and feedback."""

from datetime import datetime
from typing import Any

from app.db.supabase_client import get_supabase


def list_active_curation_strategies() -> list[dict]:
    supabase = get_supabase()
    result = (
        supabase.table("content_curation_strategies").select("*").eq("is_active", True).execute()
    )
    return result.data or []


def get_curation_strategy(strategy_id: str) -> dict | None:
    supabase = get_supabase()
    result = (
        supabase.table("content_curation_strategies")
        .select("*")
        .eq("strategy_id", strategy_id)
        .limit(1)
        .execute()
    )
    return result.data[0] if result.data else None


def create_curation_strategy(row: dict[str, Any]) -> dict:
    supabase = get_supabase()
    result = supabase.table("content_curation_strategies").insert(row).execute()
    if not result.data:
        raise ValueError("No data returned from curation strategy insert")
    return result.data[0]


def insert_recommendations(rows: list[dict[str, Any]]) -> list[dict]:
    if not rows:
        return []
    supabase = get_supabase()
    result = supabase.table("ai_recommendations").insert(rows).execute()
    return result.data or []


def list_recommendations(start: datetime, end: datetime) -> list[dict]:
    """Recommendations issued inside a time window."""
    supabase = get_supabase()
    result = (
        supabase.table("ai_recommendations")
        .select("*")
        .gte("created_at", start.isoformat())
        .lte("created_at", end.isoformat())
        .execute()
    )
    return result.data or []


def insert_feedback(row: dict[str, Any]) -> dict:
    supabase = get_supabase()
    result = supabase.table("recommendation_feedback").insert(row).execute()
    if not result.data:
        raise ValueError("No data returned from recommendation feedback insert")
    return result.data[0]


def list_feedback(start: datetime, end: datetime | None = None) -> list[dict]:
    supabase = get_supabase()
    query = supabase.table("recommendation_feedback").select("*").gte("timestamp", start.isoformat())
    if end:
        query = query.lte("timestamp", end.isoformat())
    result = query.order("timestamp").execute()
    return result.data or []
