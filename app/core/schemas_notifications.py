"""Pydantic schemas for owner notifications (guardian acceptances and similar)."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class Notification(BaseModel):
    id: str
    type: str
    title: str
    body: str | None = None
    entity_type: str | None = None
    entity_id: str | None = None
    read: bool = False
    created_at: datetime
    metadata: dict[str, Any] = Field(default_factory=dict)


class UnreadCount(BaseModel):
    count: int


class MarkedRead(BaseModel):
    updated: int
