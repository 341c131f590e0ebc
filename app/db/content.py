"""Database operations for content experiments, variants, and interactions."""

from datetime import datetime
from typing import Any

from app.core.logging import get_logger
from app.db.supabase_client import get_supabase, new_id, now_iso

logger = get_logger(__name__)


# =========================
# Experiments
# =========================


def list_running_content_experiments() -> list[dict]:
    """List content experiments currently running."""
    supabase = get_supabase()
    result = supabase.table("content_experiments").select("*").eq("status", "running").execute()
    return result.data or []


def create_content_experiment(data: dict[str, Any]) -> dict:
    """Insert a content experiment and return the stored row."""
    supabase = get_supabase()
    row = {"id": new_id(), "status": "running", "start_date": now_iso(), **data}
    result = supabase.table("content_experiments").insert(row).execute()
    if not result.data:
        raise ValueError("No data returned from content experiment insert")
    return result.data[0]


def update_content_experiment(experiment_id: str, updates: dict[str, Any]) -> dict | None:
    supabase = get_supabase()
    result = (
        supabase.table("content_experiments")
        .update({**updates, "updated_at": now_iso()})
        .eq("id", experiment_id)
        .execute()
    )
    return result.data[0] if result.data else None


# =========================
# Variants
# =========================


def list_active_content_variants(content_id: str | None = None) -> list[dict]:
    """List active variants, optionally for a single content id."""
    supabase = get_supabase()
    query = supabase.table("content_variants").select("*").eq("is_active", True)
    if content_id:
        query = query.eq("content_id", content_id)
    result = query.order("created_at").execute()
    return result.data or []


def create_content_variant(data: dict[str, Any]) -> dict:
    supabase = get_supabase()
    now = now_iso()
    row = {
        "id": new_id(),
        "is_active": True,
        "performance_metrics": {
            "impressions": 0,
            "clicks": 0,
            "conversions": 0,
            "engagement_time": 0,
            "bounce_rate": 0,
        },
        "created_at": now,
        "updated_at": now,
        **data,
    }
    result = supabase.table("content_variants").insert(row).execute()
    if not result.data:
        raise ValueError("No data returned from content variant insert")
    return result.data[0]


def update_variant_metrics(variant_id: str, performance_metrics: dict[str, Any]) -> None:
    """Persist a variant's running performance counters."""
    supabase = get_supabase()
    supabase.table("content_variants").update(
        {"performance_metrics": performance_metrics, "updated_at": now_iso()}
    ).eq("id", variant_id).execute()


# =========================
# Interactions
# =========================


def insert_content_interaction(row: dict[str, Any]) -> dict:
    supabase = get_supabase()
    payload = {"id": new_id(), "timestamp": now_iso(), **row}
    result = supabase.table("content_interactions").insert(payload).execute()
    if not result.data:
        raise ValueError("No data returned from content interaction insert")
    return result.data[0]


def list_content_interactions(
    content_id: str | None = None,
    variant_id: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    content_ids: list[str] | None = None,
) -> list[dict]:
    """List content interactions filtered by content/variant and time window, oldest first."""
    supabase = get_supabase()
    query = supabase.table("content_interactions").select("*")
    if content_id:
        query = query.eq("content_id", content_id)
    if content_ids:
        query = query.in_("content_id", content_ids)
    if variant_id:
        query = query.eq("variant_id", variant_id)
    if start:
        query = query.gte("timestamp", start.isoformat())
    if end:
        query = query.lte("timestamp", end.isoformat())
    result = query.order("timestamp").execute()
    return result.data or []


# =========================
# Metrics cache
# =========================


def upsert_metrics_cache(content_id: str, cache_key: str, metrics: dict[str, Any]) -> None:
    supabase = get_supabase()
    supabase.table("content_metrics_cache").upsert(
        {
            "cache_key": cache_key,
            "content_id": content_id,
            "metrics": metrics,
            "updated_at": now_iso(),
        },
        on_conflict="cache_key",
    ).execute()


def list_recent_metrics_cache(since: datetime) -> list[dict]:
    supabase = get_supabase()
    result = (
        supabase.table("content_metrics_cache")
        .select("*")
        .gte("updated_at", since.isoformat())
        .execute()
    )
    return result.data or []
