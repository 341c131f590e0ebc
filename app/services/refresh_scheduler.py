"""Periodic background jobs: cache refreshes, rule evaluation, buffer flushes, webhook retries."""

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from typing import Any

from app.core.adaptive_ui import get_adaptive_ui_engine
from app.core.config import get_settings
from app.core.content_optimizer import get_content_optimizer
from app.core.logging import get_logger
from app.core.recommendation_engine import get_recommendation_engine
from app.services.behavior_tracker import get_behavior_tracker
from app.services.webhook_system import get_webhook_system

logger = get_logger(__name__)

Job = Callable[[], Any | Awaitable[Any]]


async def run_periodic(name: str, interval: float, job: Job, stop_event: asyncio.Event) -> None:
    """Run job every interval seconds until stop_event is set.

    The first run happens one interval after start, since the lifespan has
    already warmed every cache. A failing cycle is logged and skipped.
    """
    logger.info(f"[{name}] Starting, interval={interval}s")
    while True:
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=interval)
            break
        except TimeoutError:
            pass
        try:
            result = job()
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception(f"[{name}] Error in cycle")
    logger.info(f"[{name}] Stopped")


def _refresh_content() -> None:
    optimizer = get_content_optimizer()
    optimizer.refresh()
    updated = optimizer.optimize_all()
    if updated:
        logger.info(f"[content_refresh] Re-weighted traffic for {updated} content items")


def _purge_recommendations() -> None:
    removed = get_recommendation_engine().refresh()
    if removed:
        logger.debug(f"[recommendation_refresh] Purged {removed} expired cache entries")


def _evaluate_adaptive_ui() -> None:
    triggered = get_adaptive_ui_engine().evaluate_components()
    if triggered:
        logger.info(f"[adaptive_ui] {len(triggered)} adaptation rules triggered")


def _flush_tracker() -> None:
    get_behavior_tracker().flush()


async def _process_webhook_retries() -> None:
    await get_webhook_system().process_retries()


def build_jobs() -> list[tuple[str, float, Job]]:
    settings = get_settings()
    return [
        ("content_refresh", settings.CONTENT_REFRESH_SECONDS, _refresh_content),
        ("recommendation_refresh", settings.RECOMMENDATION_REFRESH_SECONDS, _purge_recommendations),
        ("adaptive_ui", settings.ADAPTIVE_UI_EVALUATION_SECONDS, _evaluate_adaptive_ui),
        ("tracker_flush", settings.TRACKER_FLUSH_SECONDS, _flush_tracker),
        ("webhook_retries", settings.WEBHOOK_RETRY_POLL_SECONDS, _process_webhook_retries),
    ]


def start_background_jobs(stop_event: asyncio.Event) -> list[asyncio.Task]:
    return [
        asyncio.create_task(run_periodic(name, interval, job, stop_event), name=name)
        for name, interval, job in build_jobs()
    ]
