"""Database operations for notifications table."""

from app.db.supabase_client import get_supabase, new_id, now_iso


def create_notification(
    user_id: str,
    type: str,
    title: str,
    body: str | None = None,
    entity_type: str | None = None,
    entity_id: str | None = None,
    metadata: dict | None = None,
) -> dict:
    """Create a new notification."""
    supabase = get_supabase()
    row: dict = {
        "id": new_id(),
        "user_id": user_id,
        "type": type,
        "title": title,
        "read": False,
        "created_at": now_iso(),
    }
    if body:
        row["body"] = body
    if entity_type:
        row["entity_type"] = entity_type
    if entity_id:
        row["entity_id"] = entity_id
    if metadata:
        row["metadata"] = metadata

    result = supabase.table("notifications").insert(row).execute()
    if not result.data:
        raise ValueError("No data returned from notification insert")
    return result.data[0]


def list_notifications(user_id: str, unread_only: bool = False, limit: int = 20) -> list[dict]:
    """List notifications for a user, newest first."""
    supabase = get_supabase()
    query = supabase.table("notifications").select("*").eq("user_id", user_id)
    if unread_only:
        query = query.eq("read", False)
    result = query.order("created_at", desc=True).limit(limit).execute()
    return result.data or []


def count_unread(user_id: str) -> int:
    supabase = get_supabase()
    result = (
        supabase.table("notifications")
        .select("id", count="exact")
        .eq("user_id", user_id)
        .eq("read", False)
        .execute()
    )
    return result.count or 0


def mark_read(user_id: str, notification_id: str | None = None) -> int:
    """Mark one notification, or every unread one when no id is given, as read."""
    supabase = get_supabase()
    query = supabase.table("notifications").update({"read": True}).eq("user_id", user_id)
    if notification_id:
        query = query.eq("id", notification_id)
    result = query.eq("read", False).execute()
    return len(result.data or [])
