"""Database operations for account profiles (subscription tier, contact details)."""

from app.db.supabase_client import get_supabase


def get_account_profile(user_id: str) -> dict | None:
    """Get the account profile for a user, or None when missing."""
    supabase = get_supabase()
    result = (
        supabase.table("profiles")
        .select("*")
        .eq("user_id", user_id)
        .limit(1)
        .execute()
    )
    return result.data[0] if result.data else None
