"""Buffered ingestion of raw user interactions, plus session and page analysis over them."""

from collections import Counter, defaultdict
from datetime import datetime, timedelta
from functools import lru_cache

from app.core.analytics import track_interaction_batch
from app.core.config import get_settings
from app.core.logging import get_logger
from app.core.schemas_tracking import (
    HeatmapElement,
    HeatmapPoint,
    NavigationTransition,
    SessionSummary,
    UserInteractionCreate,
)
from app.db import interactions as interactions_db
from app.db.supabase_client import new_id, parse_ts, utc_now

logger = get_logger(__name__)

MAX_ELEMENT_TEXT = 100
HEATMAP_GRID_PX = 10


def truncate_text(text: str | None) -> str | None:
    if text is None:
        return None
    text = text.strip()
    if len(text) > MAX_ELEMENT_TEXT:
        return text[: MAX_ELEMENT_TEXT - 3] + "..."
    return text


class BehaviorTracker:
    def __init__(self, buffer_size: int | None = None) -> None:
        self.buffer_size = buffer_size or get_settings().TRACKER_BUFFER_SIZE
        self.buffer: list[dict] = []

    def record_interaction(self, data: UserInteractionCreate) -> dict:
        """Buffer one interaction; a full buffer is flushed immediately."""
        row = data.model_dump(mode="json")
        row["id"] = new_id()
        row["timestamp"] = (data.timestamp or utc_now()).isoformat()
        row["element_text"] = truncate_text(data.element_text)
        self.buffer.append(row)

        if len(self.buffer) >= self.buffer_size:
            self.flush()
        return row

    def flush(self) -> int:
        """Write the buffer out; on failure the batch goes back to the front of the buffer."""
        if not self.buffer:
            return 0

        batch, self.buffer = self.buffer, []
        try:
            stored = interactions_db.insert_interactions(batch)
        except Exception:
            logger.exception(f"Failed to flush {len(batch)} interactions, re-queueing")
            self.buffer = batch + self.buffer
            return 0

        track_interaction_batch(batch)
        logger.debug(f"Flushed {stored} interactions")
        return stored

    # =========================
    # Analysis
    # =========================

    def _session_rows(self, session_id: str) -> list[dict]:
        stored = interactions_db.list_session_interactions(session_id)
        seen = {r["id"] for r in stored}
        pending = [r for r in self.buffer if r["session_id"] == session_id and r["id"] not in seen]
        return sorted(stored + pending, key=lambda r: parse_ts(r["timestamp"]))

    def get_session_data(self, session_id: str) -> SessionSummary:
        rows = self._session_rows(session_id)
        if not rows:
            raise LookupError(f"No interactions recorded for session {session_id}")

        start = parse_ts(rows[0]["timestamp"])
        end = parse_ts(rows[-1]["timestamp"])
        page_views = [r for r in rows if r["event_type"] == "page_view"]
        pages = list(dict.fromkeys(r["page_path"] for r in page_views))
        conversions = [
            r["metadata"]["custom_event"]
            for r in rows
            if (r.get("metadata") or {}).get("custom_event")
        ]

        return SessionSummary(
            id=session_id,
            user_id=next((r["user_id"] for r in rows if r.get("user_id")), None),
            start_time=start,
            end_time=end,
            page_views=max(1, len(page_views)),
            pages=pages,
            total_duration=(end - start).total_seconds() * 1000,
            interactions_count=len(rows),
            interaction_counts=dict(Counter(r["event_type"] for r in rows)),
            bounce_rate=1.0 if len(page_views) <= 1 else 0.0,
            conversion_events=conversions,
        )

    def get_user_journey(self, user_id: str, session_id: str | None = None) -> list[dict]:
        return interactions_db.list_user_interactions(user_id, session_id)

    def generate_heatmap_data(self, page_path: str, days: int = 7) -> list[HeatmapElement]:
        """Click and hover counts per element, intensity normalized to the busiest element."""
        since = utc_now() - timedelta(days=days)
        rows = interactions_db.list_page_interactions(page_path, since, ["click", "hover"])

        grouped: dict[str, list[dict]] = defaultdict(list)
        for row in rows:
            grouped[row.get("element_selector") or "(page)"].append(row)
        if not grouped:
            return []

        busiest = max(len(items) for items in grouped.values())
        elements = []
        for selector, items in grouped.items():
            cells: Counter = Counter()
            for item in items:
                point = item.get("coordinates")
                if point:
                    cells[
                        (
                            round(point["x"] / HEATMAP_GRID_PX) * HEATMAP_GRID_PX,
                            round(point["y"] / HEATMAP_GRID_PX) * HEATMAP_GRID_PX,
                        )
                    ] += 1
            hottest = max(cells.values(), default=1)

            elements.append(
                HeatmapElement(
                    page_path=page_path,
                    element_selector=selector,
                    click_count=sum(1 for i in items if i["event_type"] == "click"),
                    hover_count=sum(1 for i in items if i["event_type"] == "hover"),
                    attention_duration=sum(i.get("duration") or 0 for i in items),
                    intensity=len(items) / busiest,
                    coordinates=[
                        HeatmapPoint(x=x, y=y, intensity=count / hottest)
                        for (x, y), count in cells.most_common()
                    ],
                )
            )
        elements.sort(key=lambda e: e.intensity, reverse=True)
        return elements

    def analyze_navigation_patterns(
        self, days: int = 7, limit: int = 10, now: datetime | None = None
    ) -> list[NavigationTransition]:
        """Most frequent consecutive page_view transitions within sessions."""
        since = (now or utc_now()) - timedelta(days=days)
        rows = interactions_db.list_page_views_since(since)

        by_session: dict[str, list[str]] = defaultdict(list)
        for row in rows:
            by_session[row["session_id"]].append(row["page_path"])

        transitions: Counter = Counter()
        for pages in by_session.values():
            for current, following in zip(pages, pages[1:]):
                if current != following:
                    transitions[(current, following)] += 1

        total = sum(transitions.values())
        return [
            NavigationTransition(from_page=a, to_page=b, count=count, share=count / total)
            for (a, b), count in transitions.most_common(limit)
        ]


@lru_cache(maxsize=1)
def get_behavior_tracker() -> BehaviorTracker:
    return BehaviorTracker()
