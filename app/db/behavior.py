"""Database operations for behavior patterns, strategies, profiles, and adaptations."""

from datetime import datetime
from typing import Any

from app.db.supabase_client import get_supabase, now_iso


def list_behavior_patterns() -> list[dict]:
    supabase = get_supabase()
    result = supabase.table("behavior_patterns").select("*").execute()
    return result.data or []


def create_behavior_pattern(row: dict[str, Any]) -> dict:
    supabase = get_supabase()
    now = now_iso()
    result = (
        supabase.table("behavior_patterns")
        .insert({"created_at": now, "last_updated": now, **row})
        .execute()
    )
    if not result.data:
        raise ValueError("No data returned from behavior pattern insert")
    return result.data[0]


def list_active_strategies() -> list[dict]:
    supabase = get_supabase()
    result = (
        supabase.table("personalization_strategies").select("*").eq("is_active", True).execute()
    )
    return result.data or []


def get_strategy(strategy_id: str) -> dict | None:
    supabase = get_supabase()
    result = (
        supabase.table("personalization_strategies")
        .select("*")
        .eq("id", strategy_id)
        .limit(1)
        .execute()
    )
    return result.data[0] if result.data else None


def create_strategy(row: dict[str, Any]) -> dict:
    supabase = get_supabase()
    result = supabase.table("personalization_strategies").insert(row).execute()
    if not result.data:
        raise ValueError("No data returned from personalization strategy insert")
    return result.data[0]


def get_behavior_profile(user_id: str) -> dict | None:
    supabase = get_supabase()
    result = (
        supabase.table("user_behavior_profiles")
        .select("*")
        .eq("user_id", user_id)
        .limit(1)
        .execute()
    )
    return result.data[0] if result.data else None


def upsert_behavior_profile(row: dict[str, Any]) -> None:
    supabase = get_supabase()
    supabase.table("user_behavior_profiles").upsert(
        {**row, "updated_at": now_iso()}, on_conflict="user_id"
    ).execute()


def insert_adaptation(row: dict[str, Any]) -> dict:
    supabase = get_supabase()
    result = supabase.table("real_time_adaptations").insert(row).execute()
    if not result.data:
        raise ValueError("No data returned from adaptation insert")
    return result.data[0]


def update_adaptation(adaptation_id: str, updates: dict[str, Any]) -> None:
    supabase = get_supabase()
    supabase.table("real_time_adaptations").update(updates).eq("id", adaptation_id).execute()


def list_adaptations(strategy_id: str, start: datetime, end: datetime) -> list[dict]:
    """Adaptation rows a strategy produced inside a time window."""
    supabase = get_supabase()
    result = (
        supabase.table("real_time_adaptations")
        .select("*")
        .eq("strategy_id", strategy_id)
        .gte("applied_at", start.isoformat())
        .lte("applied_at", end.isoformat())
        .execute()
    )
    return result.data or []
