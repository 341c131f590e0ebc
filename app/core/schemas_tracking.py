"""Pydantic schemas for raw user interaction tracking."""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

InteractionEventType = Literal[
    "click",
    "scroll",
    "hover",
    "focus",
    "blur",
    "form_input",
    "page_view",
    "navigation",
    "error_encounter",
]


class Point(BaseModel):
    x: float
    y: float


class ViewportSize(BaseModel):
    width: int
    height: int


class UserInteractionCreate(BaseModel):
    session_id: str
    user_id: str | None = None
    event_type: InteractionEventType
    element_selector: str | None = None
    element_text: str | None = None
    page_path: str
    coordinates: Point | None = None
    scroll_position: Point | None = None
    viewport_size: ViewportSize | None = None
    timestamp: datetime | None = None
    duration: float | None = None  # ms
    metadata: dict[str, Any] = Field(default_factory=dict)


class InteractionBatch(BaseModel):
    interactions: list[UserInteractionCreate] = Field(..., min_length=1)


class InteractionBatchResponse(BaseModel):
    accepted: int
    buffered: int


class SessionSummary(BaseModel):
    id: str
    user_id: str | None = None
    start_time: datetime
    end_time: datetime
    page_views: int
    pages: list[str]
    total_duration: float  # ms
    interactions_count: int
    interaction_counts: dict[str, int]
    bounce_rate: float
    conversion_events: list[str]


class HeatmapPoint(BaseModel):
    x: float
    y: float
    intensity: float


class HeatmapElement(BaseModel):
    page_path: str
    element_selector: str
    click_count: int
    hover_count: int
    attention_duration: float  # ms
    intensity: float
    coordinates: list[HeatmapPoint]


class NavigationTransition(BaseModel):
    from_page: str
    to_page: str
    count: int
    share: float
