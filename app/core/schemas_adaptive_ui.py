"""Pydantic schemas for adaptive UI components."""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

ComponentType = Literal["button", "card", "header", "form", "navigation", "content_block"]
Urgency = Literal["immediate", "next_interaction", "next_session"]
Outcome = Literal["positive", "negative", "neutral"]


class TriggerCondition(BaseModel):
    user_segment: list[str] = Field(default_factory=list)
    behavior_pattern: list[str] = Field(default_factory=list)
    context_match: dict[str, Any] = Field(default_factory=dict)
    performance_threshold: float | None = None


class RuleAdaptations(BaseModel):
    style_changes: dict[str, Any] = Field(default_factory=dict)
    content_changes: dict[str, Any] = Field(default_factory=dict)
    layout_changes: dict[str, Any] = Field(default_factory=dict)
    interaction_changes: dict[str, Any] = Field(default_factory=dict)


class ComponentAdaptationRule(BaseModel):
    trigger_condition: TriggerCondition = Field(default_factory=TriggerCondition)
    adaptations: RuleAdaptations = Field(default_factory=RuleAdaptations)
    priority: int = 0
    confidence_threshold: float = 0.5


class PerformanceTracking(BaseModel):
    metrics_to_track: list[str] = Field(default_factory=list)
    success_criteria: dict[str, float] = Field(default_factory=dict)


class AdaptiveComponentConfig(BaseModel):
    component_id: str
    component_type: ComponentType
    adaptation_rules: list[ComponentAdaptationRule] = Field(default_factory=list)
    fallback_config: dict[str, Any] = Field(default_factory=dict)
    performance_tracking: PerformanceTracking = Field(default_factory=PerformanceTracking)


class ComponentTargetAudience(BaseModel):
    segments: list[str] = Field(default_factory=list)
    behaviors: list[str] = Field(default_factory=list)
    contexts: list[str] = Field(default_factory=list)


class ComponentPerformanceData(BaseModel):
    impressions: int = 0
    interactions: int = 0
    conversions: int = 0
    engagement_score: float = 0
    satisfaction_rating: float = 0


class ComponentVariantCreate(BaseModel):
    component_id: str
    variant_name: str
    configuration: dict[str, Any] = Field(default_factory=dict)
    target_audience: ComponentTargetAudience = Field(default_factory=ComponentTargetAudience)


class ComponentVariant(ComponentVariantCreate):
    variant_id: str
    performance_data: ComponentPerformanceData = Field(default_factory=ComponentPerformanceData)


# =========================
# Per-user UI state
# =========================


class ActiveAdaptation(BaseModel):
    component_id: str
    variant_id: str
    adaptation_reason: str
    applied_at: datetime
    effectiveness_score: float = 0.7


class AdaptationHistoryEntry(BaseModel):
    component_id: str
    from_variant: str
    to_variant: str
    timestamp: datetime
    trigger_reason: str
    outcome: Outcome = "neutral"


class UserUIPreferences(BaseModel):
    preferred_layouts: list[str] = Field(default_factory=list)
    preferred_interactions: list[str] = Field(default_factory=list)
    accessibility_needs: list[str] = Field(default_factory=list)
    performance_preferences: list[str] = Field(default_factory=list)


class ContextAwareness(BaseModel):
    device_capabilities: dict[str, Any] = Field(default_factory=dict)
    network_conditions: dict[str, Any] = Field(default_factory=dict)
    time_constraints: dict[str, Any] = Field(default_factory=dict)
    usage_patterns: dict[str, Any] = Field(default_factory=dict)


class UIPersonalizationState(BaseModel):
    user_id: str
    session_id: str | None = None
    active_adaptations: list[ActiveAdaptation] = Field(default_factory=list)
    adaptation_history: list[AdaptationHistoryEntry] = Field(default_factory=list)
    user_preferences: UserUIPreferences = Field(default_factory=UserUIPreferences)
    context_awareness: ContextAwareness = Field(default_factory=ContextAwareness)


# =========================
# Strategies
# =========================


class DecisionNode(BaseModel):
    condition: str
    action: str
    confidence: float


class RuleLogic(BaseModel):
    if_condition: dict[str, Any] = Field(default_factory=dict)
    then_adaptation: dict[str, Any] = Field(default_factory=dict)
    weight: float = 1.0


class AdaptationLogic(BaseModel):
    decision_tree: list[DecisionNode] = Field(default_factory=list)
    machine_learning_model: str | None = None
    rule_based_logic: list[RuleLogic] = Field(default_factory=list)


class RollbackCondition(BaseModel):
    metric: str
    threshold: float
    action: Literal["revert", "adjust", "pause"]


class AdaptationStrategyCreate(BaseModel):
    name: str
    description: str = ""
    target_components: list[str] = Field(default_factory=list)
    adaptation_logic: AdaptationLogic = Field(default_factory=AdaptationLogic)
    success_metrics: list[str] = Field(default_factory=list)
    rollback_conditions: list[RollbackCondition] = Field(default_factory=list)


class AdaptationStrategy(AdaptationStrategyCreate):
    strategy_id: str


# =========================
# Decisions and reporting
# =========================


class ExpectedUIPerformance(BaseModel):
    engagement_lift: float
    conversion_impact: float
    user_satisfaction: float


class AdaptationDecision(BaseModel):
    component_id: str
    recommended_variant: str
    confidence_score: float
    reasoning: list[str]
    expected_performance: ExpectedUIPerformance
    implementation_urgency: Urgency
    fallback_options: list[str]


class VariantRequest(BaseModel):
    user_id: str
    context: dict[str, Any] = Field(default_factory=dict)


class ApplyAdaptationRequest(BaseModel):
    user_id: str
    variant_id: str
    context: dict[str, Any] = Field(default_factory=dict)


class ComponentInteractionRequest(BaseModel):
    variant_id: str
    user_id: str
    interaction_type: str
    outcome: Outcome | None = None


class UIVariantPerformance(BaseModel):
    variant_id: str
    impressions: int
    interactions: int
    conversion_rate: float
    user_satisfaction: float


class UIOptimizationOpportunity(BaseModel):
    opportunity_type: str
    description: str
    potential_impact: float
    implementation_effort: Literal["low", "medium", "high"]


class AdaptationPerformance(BaseModel):
    component_id: str
    total_adaptations: int
    success_rate: float
    average_effectiveness: float
    variant_performance: list[UIVariantPerformance]
    optimization_opportunities: list[UIOptimizationOpportunity]


class TriggeredRule(BaseModel):
    component_id: str
    rule_index: int
    performance_threshold: float
    best_conversion_rate: float
