"""Database operations for guardians table."""

from typing import Any

from app.db.supabase_client import get_supabase, new_id, now_iso


def count_active_guardians(user_id: str) -> int:
    """Count guardians that still occupy a slot (anything not revoked)."""
    supabase = get_supabase()
    result = (
        supabase.table("guardians")
        .select("id", count="exact")
        .eq("user_id", user_id)
        .neq("invitation_status", "revoked")
        .execute()
    )
    return result.count or 0


def create_guardian(row: dict[str, Any]) -> dict:
    supabase = get_supabase()
    now = now_iso()
    result = (
        supabase.table("guardians")
        .insert({"id": new_id(), "created_at": now, "updated_at": now, **row})
        .execute()
    )
    if not result.data:
        raise ValueError("No data returned from guardian insert")
    return result.data[0]


def list_guardians(user_id: str) -> list[dict]:
    supabase = get_supabase()
    result = (
        supabase.table("guardians")
        .select("*")
        .eq("user_id", user_id)
        .order("emergency_priority")
        .execute()
    )
    return result.data or []


def list_emergency_guardians(user_id: str) -> list[dict]:
    supabase = get_supabase()
    result = (
        supabase.table("guardians")
        .select("*")
        .eq("user_id", user_id)
        .eq("invitation_status", "accepted")
        .eq("can_trigger_emergency", True)
        .order("emergency_priority")
        .execute()
    )
    return result.data or []


def get_guardian(guardian_id: str, user_id: str) -> dict | None:
    supabase = get_supabase()
    result = (
        supabase.table("guardians")
        .select("*")
        .eq("id", guardian_id)
        .eq("user_id", user_id)
        .limit(1)
        .execute()
    )
    return result.data[0] if result.data else None


def get_pending_by_token(token: str) -> dict | None:
    supabase = get_supabase()
    result = (
        supabase.table("guardians")
        .select("*")
        .eq("invitation_token", token)
        .eq("invitation_status", "pending")
        .limit(1)
        .execute()
    )
    return result.data[0] if result.data else None


def update_guardian(
    guardian_id: str,
    user_id: str,
    updates: dict[str, Any],
    only_status: str | None = None,
) -> dict | None:
    """Update a guardian owned by user_id, optionally only while it has the given status."""
    supabase = get_supabase()
    query = (
        supabase.table("guardians")
        .update({**updates, "updated_at": now_iso()})
        .eq("id", guardian_id)
        .eq("user_id", user_id)
    )
    if only_status:
        query = query.eq("invitation_status", only_status)
    result = query.execute()
    return result.data[0] if result.data else None


def delete_guardian(guardian_id: str, user_id: str) -> None:
    supabase = get_supabase()
    supabase.table("guardians").delete().eq("id", guardian_id).eq("user_id", user_id).execute()
