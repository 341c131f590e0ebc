"""Database operations for content-personalization user profiles."""

from typing import Any

from app.db.supabase_client import get_supabase, now_iso


def get_user_profile(user_id: str) -> dict | None:
    """Get a user's personalization profile, or None when missing."""
    supabase = get_supabase()
    result = supabase.table("user_profiles").select("*").eq("user_id", user_id).limit(1).execute()
    return result.data[0] if result.data else None


def create_user_profile(profile: dict[str, Any]) -> dict:
    supabase = get_supabase()
    result = supabase.table("user_profiles").insert(profile).execute()
    if not result.data:
        raise ValueError("No data returned from user profile insert")
    return result.data[0]


def update_user_profile(user_id: str, updates: dict[str, Any]) -> None:
    supabase = get_supabase()
    supabase.table("user_profiles").update(
        {**updates, "last_updated": now_iso()}
    ).eq("user_id", user_id).execute()
