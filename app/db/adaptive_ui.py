"""Database operations for adaptive UI components, variants, and per-user UI state."""

from datetime import datetime
from typing import Any

from app.db.supabase_client import get_supabase, new_id, now_iso


def list_component_configs() -> list[dict]:
    supabase = get_supabase()
    result = supabase.table("adaptive_component_configs").select("*").execute()
    return result.data or []


def upsert_component_config(row: dict[str, Any]) -> None:
    supabase = get_supabase()
    supabase.table("adaptive_component_configs").upsert(
        {**row, "updated_at": now_iso()}, on_conflict="component_id"
    ).execute()


def list_component_variants() -> list[dict]:
    supabase = get_supabase()
    result = supabase.table("component_variants").select("*").order("created_at").execute()
    return result.data or []


def create_component_variant(row: dict[str, Any]) -> dict:
    supabase = get_supabase()
    result = (
        supabase.table("component_variants").insert({**row, "created_at": now_iso()}).execute()
    )
    if not result.data:
        raise ValueError("No data returned from component variant insert")
    return result.data[0]


def update_variant_performance(variant_id: str, performance_data: dict[str, Any]) -> None:
    supabase = get_supabase()
    supabase.table("component_variants").update({"performance_data": performance_data}).eq(
        "variant_id", variant_id
    ).execute()


def insert_component_impression(component_id: str, variant_id: str, user_id: str) -> None:
    supabase = get_supabase()
    supabase.table("component_impressions").insert(
        {
            "id": new_id(),
            "component_id": component_id,
            "variant_id": variant_id,
            "user_id": user_id,
            "timestamp": now_iso(),
        }
    ).execute()


def insert_component_interaction(row: dict[str, Any]) -> None:
    supabase = get_supabase()
    supabase.table("component_interactions").insert(
        {"id": new_id(), "timestamp": now_iso(), **row}
    ).execute()


def list_component_interactions(component_id: str, start: datetime, end: datetime) -> list[dict]:
    supabase = get_supabase()
    result = (
        supabase.table("component_interactions")
        .select("*")
        .eq("component_id", component_id)
        .gte("timestamp", start.isoformat())
        .lte("timestamp", end.isoformat())
        .execute()
    )
    return result.data or []


def upsert_ui_state(row: dict[str, Any]) -> None:
    supabase = get_supabase()
    supabase.table("ui_personalization_states").upsert(
        {**row, "updated_at": now_iso()}, on_conflict="user_id"
    ).execute()


def get_ui_state(user_id: str) -> dict | None:
    supabase = get_supabase()
    result = (
        supabase.table("ui_personalization_states")
        .select("*")
        .eq("user_id", user_id)
        .limit(1)
        .execute()
    )
    return result.data[0] if result.data else None


def list_adaptation_strategies() -> list[dict]:
    supabase = get_supabase()
    result = supabase.table("adaptation_strategies").select("*").execute()
    return result.data or []


def create_adaptation_strategy(row: dict[str, Any]) -> dict:
    supabase = get_supabase()
    result = supabase.table("adaptation_strategies").insert(row).execute()
    if not result.data:
        raise ValueError("No data returned from adaptation strategy insert")
    return result.data[0]
