"""FastAPI lifespan: warm the in-memory engines, run background jobs, flush on shutdown."""

import asyncio
import contextlib
from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.core.adaptive_ui import get_adaptive_ui_engine
from app.core.analytics import shutdown_analytics
from app.core.config import get_settings
from app.core.content_analytics import get_content_analytics
from app.core.content_optimizer import get_content_optimizer
from app.core.funnel_tracker import get_funnel_tracker
from app.core.logging import get_logger
from app.core.personalization_engine import get_personalization_engine
from app.core.recommendation_engine import get_recommendation_engine
from app.services.behavior_tracker import get_behavior_tracker
from app.services.refresh_scheduler import start_background_jobs

logger = get_logger(__name__)


def warm_engines() -> None:
    """Load every engine's cache from the database. Each loader logs its own failures."""
    get_content_optimizer().refresh()
    get_personalization_engine().refresh()
    get_recommendation_engine().load()
    get_adaptive_ui_engine().load()
    cached_metrics = get_content_analytics().load_existing_metrics()
    funnels = get_funnel_tracker().load_active_funnels()
    logger.info(f"Engines warmed, {funnels} active funnels, {cached_metrics} cached content metrics")


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    warm_engines()

    stop_event = asyncio.Event()
    tasks: list[asyncio.Task] = []
    if settings.ENABLE_BACKGROUND_JOBS:
        tasks = start_background_jobs(stop_event)

    yield

    stop_event.set()
    for task in tasks:
        if not task.done():
            task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    flushed = get_behavior_tracker().flush()
    logger.info(f"Shutdown complete, flushed {flushed} buffered interactions")
    shutdown_analytics()
