"""Pydantic schemas for behavior-driven personalization."""

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

InteractionStyle = Literal["browser", "reader", "action_oriented"]
DecisionSpeed = Literal["quick", "deliberate", "research_heavy"]
ContentComplexity = Literal["simple", "moderate", "detailed"]


class TriggerConditions(BaseModel):
    page_views: int | None = None
    session_duration: int | None = None  # seconds
    scroll_depth: float | None = None
    interaction_frequency: int | None = None  # interactions within 5 minutes
    time_on_site: int | None = None
    return_frequency: int | None = None


class UserCharacteristics(BaseModel):
    engagement_level: Literal["low", "medium", "high"] = "medium"
    intent_signals: list[str] = Field(default_factory=list)
    preferred_content_types: list[str] = Field(default_factory=list)
    typical_user_journey: list[str] = Field(default_factory=list)


class PersonalizationRules(BaseModel):
    content_adjustments: dict[str, Any] = Field(default_factory=dict)
    ui_modifications: dict[str, Any] = Field(default_factory=dict)
    messaging_tone: str = "informational"
    call_to_action_style: str = "subtle"


class SuccessMetrics(BaseModel):
    engagement_improvement: float = 0
    conversion_lift: float = 0
    retention_impact: float = 0


class BehaviorPatternCreate(BaseModel):
    pattern_name: str
    description: str = ""
    trigger_conditions: TriggerConditions = Field(default_factory=TriggerConditions)
    user_characteristics: UserCharacteristics = Field(default_factory=UserCharacteristics)
    personalization_rules: PersonalizationRules = Field(default_factory=PersonalizationRules)
    success_metrics: SuccessMetrics = Field(default_factory=SuccessMetrics)


class BehaviorPattern(BehaviorPatternCreate):
    id: str
    created_at: datetime | None = None
    last_updated: datetime | None = None


class AdaptationRule(BaseModel):
    trigger: str = ""
    modification_type: Literal["content", "layout", "messaging", "flow"]
    changes: dict[str, Any] = Field(default_factory=dict)
    priority: int = 0


class SuccessCriteria(BaseModel):
    primary_metric: str = "conversion"
    target_improvement: float = 0
    measurement_period: int = 30


class PersonalizationStrategyCreate(BaseModel):
    name: str
    description: str = ""
    target_behaviors: list[str] = Field(default_factory=list)
    adaptation_rules: list[AdaptationRule] = Field(default_factory=list)
    success_criteria: SuccessCriteria = Field(default_factory=SuccessCriteria)
    is_active: bool = True


class PersonalizationStrategy(PersonalizationStrategyCreate):
    id: str


# =========================
# Behavior profile
# =========================


class InteractionRecord(BaseModel):
    timestamp: datetime
    action_type: str
    context: dict[str, Any] = Field(default_factory=dict)
    outcome: str | None = None

    @field_validator("timestamp")
    @classmethod
    def assume_utc(cls, value: datetime) -> datetime:
        # Browsers may send offset-less timestamps; history is compared against aware now
        return value if value.tzinfo else value.replace(tzinfo=UTC)


class BehaviorScore(BaseModel):
    engagement: float = 0.5
    intent: float = 0.5
    urgency: float = 0.5
    knowledge_level: float = 0.5


class InferredPreferences(BaseModel):
    content_complexity: ContentComplexity = "moderate"
    interaction_style: InteractionStyle = "browser"
    decision_speed: DecisionSpeed = "deliberate"


class PersonalizationState(BaseModel):
    current_strategy: str = "default"
    adaptations_applied: list[str] = Field(default_factory=list)
    effectiveness_score: float = 0.5
    last_adaptation: datetime


class NextAction(BaseModel):
    action: str
    probability: float
    timing_estimate: int  # ms


class PredictiveInsights(BaseModel):
    likely_next_actions: list[NextAction] = Field(default_factory=list)
    conversion_probability: float = 0.1
    churn_risk: float = 0.3
    value_potential: float = 0.5


class UserBehaviorProfile(BaseModel):
    user_id: str
    session_id: str | None = None
    current_patterns: list[str] = Field(default_factory=list)
    behavior_score: BehaviorScore = Field(default_factory=BehaviorScore)
    interaction_history: list[InteractionRecord] = Field(default_factory=list)
    preferences_inferred: InferredPreferences = Field(default_factory=InferredPreferences)
    personalization_state: PersonalizationState
    predictive_insights: PredictiveInsights = Field(default_factory=PredictiveInsights)


# =========================
# Adaptations
# =========================


class Adaptation(BaseModel):
    component: str
    original_config: dict[str, Any] = Field(default_factory=dict)
    adapted_config: dict[str, Any] = Field(default_factory=dict)
    reasoning: str
    confidence: float
    strategy_id: str | None = None


class EffectivenessTracking(BaseModel):
    engagement_before: float
    engagement_after: float = 0
    conversion_impact: bool = False


class RealTimeAdaptation(BaseModel):
    id: str
    user_id: str
    adaptations: list[Adaptation]
    applied_at: datetime
    effectiveness_tracking: EffectivenessTracking


class PersonalizationRequest(BaseModel):
    user_id: str
    session_id: str | None = None
    context: dict[str, Any] = Field(default_factory=dict)


class InteractionEvent(BaseModel):
    action_type: str
    context: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime | None = None


class OutcomeEvent(BaseModel):
    interaction_type: str
    outcome: str
    context: dict[str, Any] = Field(default_factory=dict)


class TopAdaptation(BaseModel):
    adaptation: str
    impact_score: float
    usage_frequency: int


class StrategyEffectiveness(BaseModel):
    strategy_name: str
    participants: int
    engagement_improvement: float
    conversion_lift: float
    statistical_significance: float
    top_adaptations: list[TopAdaptation]
    insights: list[str]
