"""Supabase client initialization and shared row helpers."""

from datetime import UTC, datetime
from functools import lru_cache
from uuid import uuid4

from supabase import Client, create_client

from app.core.config import get_settings


@lru_cache(maxsize=1)
def get_supabase() -> Client:
    """
    Get Supabase client instance (cached singleton).

    Returns:
        Supabase client configured with service role key

    Raises:
        RuntimeError: If client initialization fails
    """
    try:
        settings = get_settings()
        client = create_client(settings.SUPABASE_URL, settings.SUPABASE_SERVICE_ROLE_KEY)
        return client
    except Exception as e:
        raise RuntimeError(f"Failed to initialize Supabase client: {e}") from e


def utc_now() -> datetime:
    return datetime.now(UTC)


def now_iso() -> str:
    """Current UTC time as an ISO-8601 string, the format every table stores."""
    return utc_now().isoformat()


def new_id() -> str:
    return str(uuid4())


def parse_ts(value: str | datetime | None) -> datetime | None:
    """Parse a timestamp column into an aware datetime."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)
