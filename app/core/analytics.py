"""Server-side PostHog analytics.

Every helper is a no-op when POSTHOG_API_KEY is unset, so dev and test
environments never talk to PostHog. Capture failures are logged and never
reach the caller.
"""

from functools import lru_cache
from typing import Any

from posthog import Posthog

from app.core.config import get_settings
from app.core.logging import get_logger

logger = get_logger(__name__)


@lru_cache(maxsize=1)
def get_posthog() -> Posthog | None:
    settings = get_settings()
    if not settings.POSTHOG_API_KEY:
        logger.debug("PostHog API key not set, analytics disabled")
        return None
    logger.info(f"PostHog analytics enabled against {settings.POSTHOG_HOST}")
    return Posthog(settings.POSTHOG_API_KEY, host=settings.POSTHOG_HOST)


def track_server_event(
    distinct_id: str,
    event: str,
    properties: dict[str, Any] | None = None,
) -> None:
    """Capture one event.

    Args:
        distinct_id: User id, or the session id for anonymous traffic
        event: Event name (e.g. 'guardian_invited', 'experiment_assigned')
        properties: Optional event properties
    """
    client = get_posthog()
    if client is None:
        return
    try:
        client.capture(distinct_id=distinct_id, event=event, properties=properties or {})
    except Exception as e:
        logger.warning(f"Failed to track event '{event}': {e}")


def track_interaction_batch(interactions: list[dict[str, Any]]) -> None:
    """Forward a flushed batch of stored interaction rows, one event per row."""
    if get_posthog() is None:
        return
    for row in interactions:
        track_server_event(
            row.get("user_id") or row.get("session_id") or "anonymous",
            f"interaction_{row.get('event_type', 'unknown')}",
            {
                "page_path": row.get("page_path"),
                "element_selector": row.get("element_selector"),
                "session_id": row.get("session_id"),
            },
        )


def shutdown_analytics() -> None:
    """Flush queued events; called once when the app stops."""
    client = get_posthog()
    if client is None:
        return
    try:
        client.shutdown()
    except Exception as e:
        logger.warning(f"PostHog shutdown failed: {e}")
