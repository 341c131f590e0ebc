"""Pydantic schemas for dynamic content optimization and content analytics."""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

VisitFrequency = Literal["first_time", "returning", "frequent"]
EngagementLevel = Literal["low", "medium", "high"]
TimeOfDay = Literal["morning", "afternoon", "evening", "night"]
ContentInteractionType = Literal["impression", "click", "conversion", "engagement"]


# =========================
# Targeting
# =========================


class AudienceDemographics(BaseModel):
    age_range: tuple[int, int] | None = None
    location: list[str] | None = None
    interests: list[str] | None = None


class AudienceBehavior(BaseModel):
    visit_frequency: VisitFrequency | None = None
    conversion_stage: Literal["awareness", "consideration", "decision", "retention"] | None = None
    engagement_level: EngagementLevel | None = None


class AudienceContext(BaseModel):
    device_type: Literal["mobile", "tablet", "desktop"] | None = None
    time_of_day: TimeOfDay | None = None
    session_duration: Literal["short", "medium", "long"] | None = None


class TargetAudience(BaseModel):
    demographics: AudienceDemographics | None = None
    behavior: AudienceBehavior | None = None
    context: AudienceContext | None = None


class VariantPerformanceMetrics(BaseModel):
    impressions: int = 0
    clicks: int = 0
    conversions: int = 0
    engagement_time: float = 0
    bounce_rate: float = 0


# =========================
# Variants and experiments
# =========================


class ContentVariant(BaseModel):
    id: str
    content_id: str
    variant_name: str
    content_type: Literal["text", "image", "video", "component", "layout"] = "text"
    content_data: dict[str, Any] = Field(default_factory=dict)
    target_audience: TargetAudience = Field(default_factory=TargetAudience)
    performance_metrics: VariantPerformanceMetrics = Field(default_factory=VariantPerformanceMetrics)
    is_active: bool = True
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ContentVariantCreate(BaseModel):
    content_id: str
    variant_name: str
    content_type: Literal["text", "image", "video", "component", "layout"] = "text"
    content_data: dict[str, Any] = Field(default_factory=dict)
    target_audience: TargetAudience = Field(default_factory=TargetAudience)


class ContentExperiment(BaseModel):
    id: str
    name: str
    description: str = ""
    content_id: str
    allocation_strategy: Literal["equal", "performance_based", "custom"] = "equal"
    optimization_goal: Literal["engagement", "conversion", "retention", "revenue"] = "conversion"
    status: Literal["draft", "running", "paused", "completed"] = "running"
    statistical_confidence: float = 0
    allocation_weights: dict[str, float] = Field(default_factory=dict)
    winning_variant_id: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None


class ContentExperimentCreate(BaseModel):
    name: str
    description: str = ""
    content_id: str
    allocation_strategy: Literal["equal", "performance_based", "custom"] = "equal"
    optimization_goal: Literal["engagement", "conversion", "retention", "revenue"] = "conversion"
    end_date: datetime | None = None


# =========================
# User profiles
# =========================


class ProfileDemographics(BaseModel):
    age: int | None = None
    location: str | None = None
    language: str | None = None
    timezone: str | None = None


class BehaviorProfile(BaseModel):
    visit_frequency: int = 1
    avg_session_duration: float = 0
    pages_per_session: float = 1
    conversion_events: list[str] = Field(default_factory=list)
    preferred_content_types: list[str] = Field(default_factory=list)
    engagement_patterns: dict[str, int] = Field(default_factory=dict)


class ProfileContext(BaseModel):
    current_device: str = "unknown"
    current_location: str | None = None
    session_start: datetime | None = None
    referrer_source: str | None = None


class UserProfile(BaseModel):
    user_id: str
    demographics: ProfileDemographics = Field(default_factory=ProfileDemographics)
    behavior_profile: BehaviorProfile = Field(default_factory=BehaviorProfile)
    preferences: dict[str, str] = Field(default_factory=dict)
    context: ProfileContext = Field(default_factory=ProfileContext)
    personalization_score: float = 0.5
    last_updated: datetime | None = None


# =========================
# Recommendations and analysis
# =========================


class ExpectedPerformance(BaseModel):
    click_probability: float
    conversion_probability: float
    engagement_score: float


class VariantScore(BaseModel):
    confidence_score: float
    reasoning: list[str] = Field(default_factory=list)
    expected_performance: ExpectedPerformance
    personalization_factors: list[str] = Field(default_factory=list)


class ContentRecommendation(BaseModel):
    content_id: str
    variant_id: str
    confidence_score: float
    reasoning: list[str]
    expected_performance: ExpectedPerformance
    personalization_factors: list[str]


class ContentInteractionRequest(BaseModel):
    variant_id: str
    user_id: str
    interaction_type: ContentInteractionType
    value: float | None = None


class VariantMetrics(BaseModel):
    ctr: float = 0
    conversion_rate: float = 0
    engagement_rate: float = 0
    bounce_rate: float = 0
    revenue_per_impression: float = 0


class TrendPoint(BaseModel):
    date: str
    impressions: int = 0
    conversions: int = 0


class VariantPerformance(BaseModel):
    variant_id: str
    metrics: VariantMetrics
    audience_breakdown: dict[str, float] = Field(default_factory=dict)
    performance_trend: list[TrendPoint] = Field(default_factory=list)


class OptimizationRecommendation(BaseModel):
    type: Literal["audience_targeting", "content_variation", "timing", "placement"]
    recommendation: str
    expected_impact: str
    confidence: float


class ContentPerformanceAnalysis(BaseModel):
    content_id: str
    variant_performance: list[VariantPerformance]
    optimization_recommendations: list[OptimizationRecommendation]
    insights: list[str]


# =========================
# Content performance analytics
# =========================


class PerformanceData(BaseModel):
    views: int = 0
    unique_views: int = 0
    time_on_content: float = 0  # ms
    scroll_depth: float = 0
    interactions: int = 0
    shares: int = 0
    conversions: int = 0
    bounce_rate: float = 0


class EngagementMetrics(BaseModel):
    average_read_time: float = 0  # seconds
    scroll_completion_rate: float = 0
    interaction_rate: float = 0
    return_visitor_rate: float = 0
    completion_rate: float = 0


class ConversionMetrics(BaseModel):
    conversion_rate: float = 0
    conversion_value: float = 0
    micro_conversions: int = 0


class QualityIndicators(BaseModel):
    readability_score: float = 0.75
    relevance_score: float = 0.8
    freshness_score: float = 0.8
    authority_score: float = 0.7


class AudienceInsights(BaseModel):
    behavior_segments: dict[str, float] = Field(default_factory=dict)
    device_breakdown: dict[str, float] = Field(default_factory=dict)


class ContentMetrics(BaseModel):
    content_id: str
    period_start: datetime
    period_end: datetime
    performance_data: PerformanceData = Field(default_factory=PerformanceData)
    engagement_metrics: EngagementMetrics = Field(default_factory=EngagementMetrics)
    conversion_metrics: ConversionMetrics = Field(default_factory=ConversionMetrics)
    quality_indicators: QualityIndicators = Field(default_factory=QualityIndicators)
    audience_insights: AudienceInsights = Field(default_factory=AudienceInsights)


class ExpectedImpact(BaseModel):
    metric: str
    improvement_estimate: float
    confidence_level: float


class OptimizationSuggestion(BaseModel):
    content_id: str
    suggestion_type: Literal["headline", "structure", "cta", "length", "format", "timing"]
    current_state: str
    suggested_change: str
    reasoning: str
    expected_impact: ExpectedImpact
    implementation_effort: Literal["low", "medium", "high"]
    priority_score: float


class ROIInvestment(BaseModel):
    creation_cost: float = 500
    maintenance_cost: float = 50
    promotion_cost: float = 200
    opportunity_cost: float = 100

    def total(self) -> float:
        return self.creation_cost + self.maintenance_cost + self.promotion_cost + self.opportunity_cost


class ROIReturns(BaseModel):
    direct_revenue: float
    attributed_revenue: float
    cost_savings: float
    brand_value: float

    def total(self) -> float:
        return self.direct_revenue + self.attributed_revenue + self.cost_savings + self.brand_value


class EfficiencyMetrics(BaseModel):
    roi_percentage: float
    cost_per_conversion: float
    lifetime_value_impact: float
    payback_period_days: float | None  # None when the content never pays back


class ContentROI(BaseModel):
    content_id: str
    investment_data: ROIInvestment
    return_data: ROIReturns
    efficiency_metrics: EfficiencyMetrics


class RankedContent(BaseModel):
    content_id: str
    metrics: ContentMetrics
    performance_rank: int
    improvement_potential: float


class BestPerformer(BaseModel):
    content_id: str
    metric: str
    value: float


class Underperformer(BaseModel):
    content_id: str
    issues: list[str]
    recommended_actions: list[str]
    priority_level: Literal["high", "medium", "low"]


class MetricTrend(BaseModel):
    metric: str
    direction: Literal["increasing", "decreasing", "stable"]
    change_percentage: float
    significance: float


class ContentComparison(BaseModel):
    content_items: list[RankedContent]
    best_performers: list[BestPerformer]
    underperformers: list[Underperformer]
    trends: list[MetricTrend]


class PerformanceDistribution(BaseModel):
    top_performers: int
    average_performers: int
    underperformers: int


class ContentGap(BaseModel):
    content_id: str
    views: int
    median_views: float
    recommendation: str


class Cannibalization(BaseModel):
    competing_content: list[str]
    overlap_percentage: float
    recommended_action: str


class RoadmapItem(BaseModel):
    quarter: str
    focus_areas: list[str]
    content_ids: list[str]


class PortfolioAnalysis(BaseModel):
    total_content_pieces: int
    performance_distribution: PerformanceDistribution
    content_gaps: list[ContentGap]
    cannibalization_analysis: list[Cannibalization]
    optimization_roadmap: list[RoadmapItem]


class CurrentPerformance(BaseModel):
    active_users: int = 0
    engagement_velocity: float = 0
    conversion_momentum: float = 0
    trending_score: float = 0


class RealTimeInsights(BaseModel):
    content_id: str
    current_performance: CurrentPerformance = Field(default_factory=CurrentPerformance)
    last_updated: datetime | None = None


class ContentPerformanceEvent(BaseModel):
    interaction_type: Literal[
        "page_view", "time_on_page", "scroll", "click", "share", "conversion", "micro_conversion"
    ]
    user_id: str | None = None
    session_id: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class ContentIdsRequest(BaseModel):
    content_ids: list[str]
    start: datetime | None = None
    end: datetime | None = None
