"""Pydantic schemas for A/B experiments."""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

ExperimentStatus = Literal["draft", "running", "paused", "completed", "cancelled"]


class ABVariantCreate(BaseModel):
    name: str
    description: str = ""
    config: dict[str, Any] = Field(default_factory=dict)
    is_control: bool = False


class ABVariant(ABVariantCreate):
    id: str
    experiment_id: str | None = None


class ABExperimentCreate(BaseModel):
    name: str
    description: str = ""
    hypothesis: str = ""
    variants: list[ABVariantCreate]
    traffic_split: dict[str, float]  # variant name -> percentage
    target_metric: str
    secondary_metrics: list[str] = Field(default_factory=list)
    end_date: datetime | None = None
    status: ExperimentStatus = "draft"
    sample_size: int = 0
    confidence_level: float = 95
    created_by: str | None = None


class ABExperiment(BaseModel):
    id: str
    name: str
    description: str = ""
    hypothesis: str = ""
    variants: list[ABVariant] = Field(default_factory=list)
    traffic_split: dict[str, float]
    target_metric: str
    secondary_metrics: list[str] = Field(default_factory=list)
    start_date: datetime | None = None
    end_date: datetime | None = None
    status: ExperimentStatus = "draft"
    sample_size: int = 0
    confidence_level: float = 95
    created_by: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def control_name(self) -> str:
        control = next((v for v in self.variants if v.is_control), None)
        return control.name if control else "control"


class ConversionRequest(BaseModel):
    user_id: str
    event_type: str
    event_value: float | None = None
    session_id: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class WillGenerationOutcome(BaseModel):
    user_id: str
    variant: Literal["wizard", "form"]
    completed: bool


class OnboardingStep(BaseModel):
    user_id: str
    step: int = Field(ge=1)
    completed: bool


class OnboardingCompletion(BaseModel):
    user_id: str
    time_to_complete: float = Field(ge=0, description="Seconds from first step to finish")


class VariantAssignment(BaseModel):
    experiment_name: str
    user_id: str
    variant: str


class ExperimentStats(BaseModel):
    variant_id: str
    variant_name: str
    participants: int
    conversions: int
    conversion_rate: float
    average_value: float
    confidence_interval: tuple[float, float]
    statistical_significance: bool
    p_value: float


class ExperimentResults(BaseModel):
    stats: list[ExperimentStats]
    winner: str | None = None
    recommendation: str
