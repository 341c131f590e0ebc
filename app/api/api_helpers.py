"""Shared helpers used across the v1 routers."""

from datetime import datetime, timedelta

from fastapi import HTTPException

from app.core.service_result import ServiceResult
from app.db.supabase_client import utc_now


def resolve_window(
    start: datetime | None, end: datetime | None, days: int = 30
) -> tuple[datetime, datetime]:
    """Fill in a missing reporting window: end defaults to now, start to `days` before end."""
    end = end or utc_now()
    start = start or end - timedelta(days=days)
    if start > end:
        raise HTTPException(status_code=400, detail="start must be before end")
    return start, end


def unwrap(result: ServiceResult) -> ServiceResult:
    """Turn a failed ServiceResult into an HTTP error; pass successes through."""
    if result.success:
        return result
    status_code = 404 if result.error and "not found" in result.error.lower() else 400
    raise HTTPException(status_code=status_code, detail=result.error)
