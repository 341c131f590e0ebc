"""
Conversion funnel tracking.

A funnel is an ordered list of steps, each matched by a page-path regex.
Progress is kept per (session, funnel) and every enter/progress/complete/
drop-off is logged as a conversion event, which is what the analytics
are computed from.
"""

import re
from collections import Counter, defaultdict
from datetime import datetime
from functools import lru_cache
from typing import Any

from app.core.analytics import track_server_event
from app.core.logging import get_logger
from app.core.schemas_funnels import (
    ConversionSegment,
    FunnelAnalytics,
    FunnelCreate,
    FunnelDefinition,
    FunnelProgress,
    FunnelSummary,
    StepPerformance,
)
from app.db import funnels as funnels_db
from app.db.supabase_client import parse_ts, utc_now

logger = get_logger(__name__)

BOTTLENECK_RATE = 0.5
LOW_CONVERSION = 0.1
HIGH_CONVERSION = 0.3


class FunnelTracker:
    def __init__(self) -> None:
        self.funnels: dict[str, FunnelDefinition] = {}
        # session_id -> funnel_id -> progress
        self.progress: dict[str, dict[str, FunnelProgress]] = defaultdict(dict)

    def load_active_funnels(self) -> int:
        try:
            rows = funnels_db.list_active_funnels()
        except Exception:
            logger.exception("Failed to load active funnels")
            return 0
        self.funnels = {row["id"]: FunnelDefinition.model_validate(row) for row in rows}
        return len(self.funnels)

    def create_funnel(self, data: FunnelCreate) -> FunnelDefinition:
        if not data.steps:
            raise ValueError("A funnel needs at least one step")
        for step in data.steps:
            try:
                re.compile(step.page_pattern)
            except re.error as e:
                raise ValueError(f"Invalid page pattern for step {step.id}: {e}") from e

        steps = sorted(data.steps, key=lambda s: s.order)
        row = funnels_db.create_funnel(
            {**data.model_dump(mode="json"), "steps": [s.model_dump() for s in steps]}
        )
        funnel = FunnelDefinition.model_validate(row)
        self.funnels[funnel.id] = funnel
        return funnel

    def get_funnel(self, funnel_id: str) -> FunnelDefinition | None:
        funnel = self.funnels.get(funnel_id)
        if funnel:
            return funnel
        row = funnels_db.get_funnel(funnel_id)
        if not row:
            return None
        funnel = FunnelDefinition.model_validate(row)
        self.funnels[funnel_id] = funnel
        return funnel

    def _get_progress(self, session_id: str, funnel_id: str) -> FunnelProgress | None:
        progress = self.progress.get(session_id, {}).get(funnel_id)
        if progress is None:
            row = funnels_db.get_progress(session_id, funnel_id)
            if row:
                progress = FunnelProgress.model_validate(row)
                self.progress[session_id][funnel_id] = progress
        return progress

    def _record_event(
        self,
        progress: FunnelProgress,
        step_id: str,
        event_type: str,
        value: float | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        try:
            funnels_db.insert_conversion_event(
                {
                    "session_id": progress.session_id,
                    "user_id": progress.user_id,
                    "funnel_id": progress.funnel_id,
                    "step_id": step_id,
                    "event_type": event_type,
                    "value": value,
                    "metadata": metadata or {},
                }
            )
        except Exception:
            logger.exception(f"Failed to record {event_type} event for funnel {progress.funnel_id}")

    # =========================
    # Tracking
    # =========================

    def start_funnel_tracking(
        self, session_id: str, user_id: str, funnel_id: str, now: datetime | None = None
    ) -> FunnelProgress:
        funnel = self.get_funnel(funnel_id)
        if funnel is None:
            raise LookupError(f"Funnel {funnel_id} not found")
        if not funnel.steps:
            raise ValueError(f"Funnel {funnel_id} has no steps")

        now = now or utc_now()
        progress = FunnelProgress(
            session_id=session_id,
            user_id=user_id,
            funnel_id=funnel_id,
            started_at=now,
            last_activity=now,
        )
        self.progress[session_id][funnel_id] = progress

        try:
            funnels_db.insert_progress(progress.model_dump(mode="json"))
        except Exception:
            logger.exception(f"Failed to store funnel progress for session {session_id}")

        self._record_event(progress, funnel.steps[0].id, "enter")
        track_server_event(
            user_id, "funnel_step", {"funnel": funnel.name, "step": funnel.steps[0].name, "action": "enter"}
        )
        return progress

    def track_step_progress(
        self,
        session_id: str,
        funnel_id: str,
        step_id: str,
        metadata: dict[str, Any] | None = None,
        now: datetime | None = None,
    ) -> FunnelProgress | None:
        """Advance a session's progress; reaching the last step completes the funnel."""
        progress = self._get_progress(session_id, funnel_id)
        funnel = self.get_funnel(funnel_id)
        if progress is None or funnel is None:
            return None

        index = next((i for i, s in enumerate(funnel.steps) if s.id == step_id), -1)
        if index == -1:
            return None

        step = funnel.steps[index]
        progress.current_step = max(progress.current_step, index)
        progress.last_activity = now or utc_now()

        if index == len(funnel.steps) - 1:
            progress.completed = True
            if step.conversion_value:
                progress.conversion_value = step.conversion_value
            self._record_event(progress, step_id, "complete", step.conversion_value, metadata)
            track_server_event(
                progress.user_id,
                "funnel_completed",
                {"funnel": funnel.name, "value": step.conversion_value},
            )
        else:
            self._record_event(progress, step_id, "progress", metadata=metadata)

        try:
            funnels_db.update_progress(
                session_id,
                funnel_id,
                {
                    "current_step": progress.current_step,
                    "last_activity": progress.last_activity.isoformat(),
                    "completed": progress.completed,
                    "conversion_value": progress.conversion_value,
                },
            )
        except Exception:
            logger.exception(f"Failed to update funnel progress for session {session_id}")
        return progress

    def track_step_drop_off(
        self,
        session_id: str,
        funnel_id: str,
        step_id: str,
        reason: str | None = None,
        now: datetime | None = None,
    ) -> FunnelProgress | None:
        progress = self._get_progress(session_id, funnel_id)
        funnel = self.get_funnel(funnel_id)
        if progress is None or funnel is None:
            return None

        index = next((i for i, s in enumerate(funnel.steps) if s.id == step_id), -1)
        if index == -1:
            return None

        progress.drop_off_step = index
        progress.drop_off_reason = reason
        progress.last_activity = now or utc_now()

        self._record_event(progress, step_id, "drop_off", metadata={"reason": reason})
        track_server_event(
            progress.user_id,
            "funnel_step",
            {"funnel": funnel.name, "step": funnel.steps[index].name, "action": "drop"},
        )

        try:
            funnels_db.update_progress(
                session_id,
                funnel_id,
                {
                    "drop_off_step": index,
                    "drop_off_reason": reason,
                    "last_activity": progress.last_activity.isoformat(),
                },
            )
        except Exception:
            logger.exception(f"Failed to update funnel drop-off for session {session_id}")
        return progress

    def check_funnel_progression(
        self, session_id: str, user_id: str, page_path: str
    ) -> list[FunnelProgress]:
        """Advance every open funnel in the session whose step pattern matches the page."""
        advanced = []
        for funnel_id, funnel in self.funnels.items():
            progress = self._get_progress(session_id, funnel_id)
            if progress is None or progress.completed or progress.user_id != user_id:
                continue
            step = next((s for s in funnel.steps if re.search(s.page_pattern, page_path)), None)
            if step:
                updated = self.track_step_progress(session_id, funnel_id, step.id)
                if updated:
                    advanced.append(updated)
        return advanced

    # =========================
    # Analytics
    # =========================

    def get_funnel_analytics(
        self, funnel_id: str, start: datetime, end: datetime
    ) -> FunnelAnalytics:
        funnel = self.get_funnel(funnel_id)
        if funnel is None:
            raise LookupError(f"Funnel {funnel_id} not found")
        events = funnels_db.list_conversion_events(funnel_id, start, end)
        return analyze_funnel(funnel, events, start, end)

    def get_top_performing_funnels(
        self, start: datetime, end: datetime, limit: int = 10
    ) -> list[FunnelSummary]:
        summaries = []
        for funnel_id, funnel in self.funnels.items():
            try:
                analytics = self.get_funnel_analytics(funnel_id, start, end)
            except Exception:
                logger.exception(f"Failed to get analytics for funnel {funnel_id}")
                continue
            final_value = (funnel.steps[-1].conversion_value or 0) if funnel.steps else 0
            summaries.append(
                FunnelSummary(
                    funnel_id=funnel_id,
                    name=funnel.name,
                    conversion_rate=analytics.overall_conversion_rate,
                    total_entries=analytics.total_entries,
                    total_revenue=analytics.total_completions * final_value,
                )
            )
        summaries.sort(key=lambda s: s.conversion_rate, reverse=True)
        return summaries[:limit]


def _stamp(event: dict) -> datetime:
    return parse_ts(event.get("timestamp"))


def analyze_funnel(
    funnel: FunnelDefinition, events: list[dict], start: datetime, end: datetime
) -> FunnelAnalytics:
    """Aggregate conversion events (ordered by timestamp) into funnel analytics."""
    by_type = Counter(e.get("event_type") for e in events)
    entries = by_type["enter"]
    completions = by_type["complete"]
    rate = completions / entries if entries else 0.0

    starts: dict[str, datetime] = {}
    finishes: dict[str, datetime] = {}
    for event in events:
        if event.get("event_type") == "enter":
            starts[event["session_id"]] = _stamp(event)
        elif event.get("event_type") == "complete":
            finishes[event["session_id"]] = _stamp(event)
    durations = [
        (done - starts[sid]).total_seconds() * 1000 for sid, done in finishes.items() if sid in starts
    ]

    steps = [_step_performance(step.id, step.name, events) for step in funnel.steps]

    return FunnelAnalytics(
        funnel_id=funnel.id,
        start=start,
        end=end,
        total_entries=entries,
        total_completions=completions,
        overall_conversion_rate=rate,
        average_completion_time=sum(durations) / len(durations) if durations else 0.0,
        step_performance=steps,
        conversion_segments=conversion_segments(events),
        optimization_recommendations=funnel_recommendations(steps, rate),
    )


def _step_performance(step_id: str, step_name: str, events: list[dict]) -> StepPerformance:
    mine = [e for e in events if e.get("step_id") == step_id]
    step_entries = sum(1 for e in mine if e.get("event_type") != "drop_off")
    step_completions = sum(1 for e in mine if e.get("event_type") in ("progress", "complete"))
    drop_offs = [e for e in mine if e.get("event_type") == "drop_off"]

    # time from an event at this step to the session's next funnel event
    by_session: dict[str, list[dict]] = defaultdict(list)
    for event in events:
        by_session[event.get("session_id")].append(event)
    dwell = []
    for session_events in by_session.values():
        for current, following in zip(session_events, session_events[1:]):
            if current.get("step_id") == step_id and current.get("event_type") != "drop_off":
                dwell.append((_stamp(following) - _stamp(current)).total_seconds() * 1000)

    reasons = Counter((e.get("metadata") or {}).get("reason") or "Unknown" for e in drop_offs)

    return StepPerformance(
        step_id=step_id,
        step_name=step_name,
        entries=step_entries,
        completions=step_completions,
        drop_offs=len(drop_offs),
        conversion_rate=step_completions / step_entries if step_entries else 0.0,
        average_time_spent=sum(dwell) / len(dwell) if dwell else 0.0,
        most_common_drop_reasons=[reason for reason, _ in reasons.most_common(3)],
    )


def conversion_segments(events: list[dict]) -> list[ConversionSegment]:
    """All users, then one segment per device type reported in event metadata."""
    def segment(name: str, subset: list[dict], traits: list[str]) -> ConversionSegment:
        entered = sum(1 for e in subset if e.get("event_type") == "enter")
        completed = sum(1 for e in subset if e.get("event_type") == "complete")
        return ConversionSegment(
            segment_name=name,
            entries=entered,
            conversion_rate=completed / max(1, entered),
            characteristics=traits,
        )

    segments = [segment("All Users", events, ["General population"])]

    device_by_session: dict[str, str] = {}
    for event in events:
        device = (event.get("metadata") or {}).get("device_type")
        if device:
            device_by_session.setdefault(event.get("session_id"), device)
    for device in sorted(set(device_by_session.values())):
        subset = [e for e in events if device_by_session.get(e.get("session_id")) == device]
        segments.append(segment(f"{device.title()} Users", subset, [f"device_type={device}"]))

    return segments


def funnel_recommendations(steps: list[StepPerformance], overall_rate: float) -> list[str]:
    recommendations = []

    bottlenecks = [s for s in steps if s.conversion_rate < BOTTLENECK_RATE]
    if bottlenecks:
        worst = bottlenecks[0]
        recommendations.append(
            f"Optimize step: {worst.step_name} ({worst.conversion_rate * 100:.1f}% conversion rate)"
        )

    if overall_rate < LOW_CONVERSION:
        recommendations.append("Consider simplifying the funnel flow or improving value proposition")
    elif overall_rate > HIGH_CONVERSION:
        recommendations.append("High-performing funnel - test incremental improvements")

    leaking = [s for s in steps if s.drop_offs > s.completions]
    if leaking:
        recommendations.append(f"Investigate high drop-off at: {leaking[0].step_name}")

    return recommendations


@lru_cache(maxsize=1)
def get_funnel_tracker() -> FunnelTracker:
    return FunnelTracker()
