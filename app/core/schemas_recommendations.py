"""Pydantic schemas for content recommendations and curation."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

PrimaryFactor = Literal[
    "behavioral_match", "content_performance", "user_progression", "contextual_relevance"
]
FeedbackType = Literal["view", "click", "complete", "share", "dismiss", "rate"]


class RecommendedContent(BaseModel):
    title: str
    description: str
    content_url: str
    content_preview: str = ""
    estimated_read_time: int = 5
    difficulty_level: Literal["beginner", "intermediate", "advanced"] = "beginner"
    topics: list[str] = Field(default_factory=list)
    format: str = "article"


class RecommendationReason(BaseModel):
    primary_factor: PrimaryFactor
    confidence_score: float
    explanation: str
    supporting_factors: list[str] = Field(default_factory=list)


class TimingOptimization(BaseModel):
    best_time: str
    urgency_level: Literal["low", "medium", "high"]


class PersonalizationData(BaseModel):
    user_segment: str
    behavior_patterns: list[str] = Field(default_factory=list)
    content_preferences: dict[str, float] = Field(default_factory=dict)
    timing_optimization: TimingOptimization


class PredictedOutcomes(BaseModel):
    engagement_probability: float
    completion_probability: float
    conversion_probability: float
    satisfaction_score: float
    learning_value: float


class PresentationStrategy(BaseModel):
    messaging_tone: Literal["educational", "urgent", "supportive", "promotional"]
    visual_emphasis: Literal["minimal", "moderate", "high"]
    call_to_action: str
    placement_priority: int


class AIContentRecommendation(BaseModel):
    recommendation_id: str
    user_id: str
    content_type: Literal["article", "guide", "tool", "video", "interactive", "form"]
    recommended_content: RecommendedContent
    recommendation_reason: RecommendationReason
    personalization_data: PersonalizationData
    predicted_outcomes: PredictedOutcomes
    presentation_strategy: PresentationStrategy
    created_at: datetime
    expires_at: datetime


class RecommendationContext(BaseModel):
    current_page: str | None = None
    session_id: str | None = None
    device_type: str = "desktop"
    time_context: str = "default"
    user_intent: str | None = None


class ImplicitSignals(BaseModel):
    time_spent: float = 0
    scroll_depth: float = 0
    return_visits: int = 0
    context_switches: int = 0


class ExplicitFeedback(BaseModel):
    rating: float
    relevance_score: float | None = None
    quality_score: float | None = None
    usefulness_score: float | None = None
    comments: str | None = None


class OutcomeData(BaseModel):
    completed_action: bool = False
    converted: bool = False
    satisfaction_indicated: bool = False


class RecommendationFeedbackCreate(BaseModel):
    recommendation_id: str
    user_id: str
    feedback_type: FeedbackType
    feedback_value: float | None = None
    implicit_signals: ImplicitSignals = Field(default_factory=ImplicitSignals)
    explicit_feedback: ExplicitFeedback | None = None
    outcome_data: OutcomeData = Field(default_factory=OutcomeData)


class RecommendationFeedback(RecommendationFeedbackCreate):
    timestamp: datetime
    primary_factor: PrimaryFactor | None = None
    content_id: str | None = None


class SelectionCriteria(BaseModel):
    quality_threshold: float = 0.0
    relevance_scoring: dict[str, float] = Field(default_factory=dict)
    freshness_weight: float = 0
    engagement_history_weight: float = 0
    user_feedback_weight: float = 0


class CurationStrategyCreate(BaseModel):
    name: str
    description: str = ""
    target_objectives: list[str] = Field(default_factory=list)
    content_selection_criteria: SelectionCriteria = Field(default_factory=SelectionCriteria)
    personalization_depth: Literal["surface", "moderate", "deep"] = "moderate"
    adaptation_frequency: Literal["real_time", "session_based", "daily", "weekly"] = "session_based"
    success_metrics: list[str] = Field(default_factory=list)
    is_active: bool = True


class CurationStrategy(CurationStrategyCreate):
    strategy_id: str


# =========================
# Insights
# =========================


class ContentGapInsight(BaseModel):
    gap_type: Literal["knowledge", "skill", "tool", "process"]
    description: str
    severity: Literal["low", "medium", "high"]
    recommended_content_types: list[str]
    learning_path_position: int


class OpportunityArea(BaseModel):
    content_area: str
    user_readiness: float
    market_demand: float
    content_availability: float
    recommendation_priority: float


class BehavioralInsight(BaseModel):
    pattern_identified: str
    pattern_strength: float
    content_implications: list[str]
    optimization_suggestions: list[str]


class JourneyStep(BaseModel):
    step_order: int
    content_type: str
    estimated_timing: str
    success_probability: float
    required_prerequisites: list[str] = Field(default_factory=list)


class AIInsights(BaseModel):
    user_id: str
    content_gap_analysis: list[ContentGapInsight] = Field(default_factory=list)
    content_opportunity_map: list[OpportunityArea] = Field(default_factory=list)
    behavioral_insights: list[BehavioralInsight] = Field(default_factory=list)
    predictive_journey: list[JourneyStep] = Field(default_factory=list)


# =========================
# Reporting
# =========================


class TopRecommendedContent(BaseModel):
    content_id: str
    recommendation_count: int
    engagement_rate: float
    user_rating: float


class OptimizationOpportunity(BaseModel):
    area: str
    current_performance: float
    potential_improvement: float
    recommended_action: str


class RecommendationPerformance(BaseModel):
    strategy_name: str
    recommendations_generated: int
    click_through_rate: float
    completion_rate: float
    satisfaction_score: float
    conversion_impact: float
    top_performing_content: list[TopRecommendedContent]
    optimization_opportunities: list[OptimizationOpportunity]


class EngineOptimization(BaseModel):
    optimization_summary: str
    feedback_analyzed: int
    previous_feature_weights: dict[str, float]
    new_feature_weights: dict[str, float]
