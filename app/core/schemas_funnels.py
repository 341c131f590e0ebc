"""Pydantic schemas for conversion funnels."""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

FunnelEventType = Literal["enter", "progress", "complete", "drop_off"]


class FunnelStep(BaseModel):
    id: str
    name: str
    order: int
    page_pattern: str  # regex matched against page paths
    required_actions: list[str] = Field(default_factory=list)
    conversion_value: float | None = None
    time_limit_minutes: int | None = None


class FunnelCreate(BaseModel):
    name: str
    description: str = ""
    steps: list[FunnelStep]
    is_active: bool = True
    target_conversion_rate: float = 0


class FunnelDefinition(FunnelCreate):
    id: str
    created_at: datetime | None = None
    updated_at: datetime | None = None


class FunnelProgress(BaseModel):
    session_id: str
    user_id: str
    funnel_id: str
    current_step: int = 0
    started_at: datetime
    last_activity: datetime
    completed: bool = False
    conversion_value: float | None = None
    drop_off_step: int | None = None
    drop_off_reason: str | None = None


class StartTrackingRequest(BaseModel):
    session_id: str
    user_id: str


class StepProgressRequest(BaseModel):
    session_id: str
    step_id: str
    metadata: dict[str, Any] = Field(default_factory=dict)


class StepDropOffRequest(BaseModel):
    session_id: str
    step_id: str
    reason: str | None = None


class PageViewRequest(BaseModel):
    session_id: str
    user_id: str
    page_path: str


class StepPerformance(BaseModel):
    step_id: str
    step_name: str
    entries: int
    completions: int
    drop_offs: int
    conversion_rate: float
    average_time_spent: float  # ms until the session's next funnel event
    most_common_drop_reasons: list[str]


class ConversionSegment(BaseModel):
    segment_name: str
    entries: int
    conversion_rate: float
    characteristics: list[str]


class FunnelAnalytics(BaseModel):
    funnel_id: str
    start: datetime
    end: datetime
    total_entries: int
    total_completions: int
    overall_conversion_rate: float
    average_completion_time: float  # ms
    step_performance: list[StepPerformance]
    conversion_segments: list[ConversionSegment]
    optimization_recommendations: list[str]


class FunnelSummary(BaseModel):
    funnel_id: str
    name: str
    conversion_rate: float
    total_entries: int
    total_revenue: float
