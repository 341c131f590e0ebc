"""Database operations for A/B experiments, assignments, and results."""

from typing import Any

from app.db.supabase_client import get_supabase, new_id, now_iso


def get_experiment_by_name(name: str) -> dict | None:
    supabase = get_supabase()
    result = supabase.table("ab_experiments").select("*").eq("name", name).limit(1).execute()
    return result.data[0] if result.data else None


def get_experiment(experiment_id: str) -> dict | None:
    supabase = get_supabase()
    result = (
        supabase.table("ab_experiments").select("*").eq("id", experiment_id).limit(1).execute()
    )
    return result.data[0] if result.data else None


def list_running_experiments() -> list[dict]:
    supabase = get_supabase()
    result = supabase.table("ab_experiments").select("*").eq("status", "running").execute()
    return result.data or []


def create_experiment(row: dict[str, Any]) -> dict:
    supabase = get_supabase()
    now = now_iso()
    result = (
        supabase.table("ab_experiments")
        .insert({"id": new_id(), "created_at": now, "updated_at": now, **row})
        .execute()
    )
    if not result.data:
        raise ValueError("No data returned from experiment insert")
    return result.data[0]


def update_experiment(experiment_id: str, updates: dict[str, Any]) -> dict | None:
    supabase = get_supabase()
    result = (
        supabase.table("ab_experiments")
        .update({**updates, "updated_at": now_iso()})
        .eq("id", experiment_id)
        .execute()
    )
    return result.data[0] if result.data else None


def list_variants(experiment_id: str) -> list[dict]:
    supabase = get_supabase()
    result = (
        supabase.table("ab_variants").select("*").eq("experiment_id", experiment_id).execute()
    )
    return result.data or []


def create_variants(experiment_id: str, variants: list[dict[str, Any]]) -> list[dict]:
    supabase = get_supabase()
    rows = [{"id": new_id(), "experiment_id": experiment_id, **v} for v in variants]
    result = supabase.table("ab_variants").insert(rows).execute()
    return result.data or []


def get_assignment(experiment_name: str, user_id: str) -> dict | None:
    supabase = get_supabase()
    result = (
        supabase.table("ab_user_assignments")
        .select("*")
        .eq("experiment_name", experiment_name)
        .eq("user_id", user_id)
        .limit(1)
        .execute()
    )
    return result.data[0] if result.data else None


def create_assignment(
    experiment_id: str, experiment_name: str, user_id: str, variant_name: str
) -> None:
    supabase = get_supabase()
    supabase.table("ab_user_assignments").insert(
        {
            "id": new_id(),
            "experiment_id": experiment_id,
            "experiment_name": experiment_name,
            "user_id": user_id,
            "variant_name": variant_name,
            "assigned_at": now_iso(),
        }
    ).execute()


def list_assignments(experiment_id: str) -> list[dict]:
    supabase = get_supabase()
    result = (
        supabase.table("ab_user_assignments")
        .select("*")
        .eq("experiment_id", experiment_id)
        .execute()
    )
    return result.data or []


def insert_result(row: dict[str, Any]) -> None:
    supabase = get_supabase()
    supabase.table("ab_test_results").insert(
        {"id": new_id(), "timestamp": now_iso(), **row}
    ).execute()


def list_results(experiment_id: str) -> list[dict]:
    supabase = get_supabase()
    result = (
        supabase.table("ab_test_results").select("*").eq("experiment_id", experiment_id).execute()
    )
    return result.data or []
