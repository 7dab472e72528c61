"""Structured-output models for the multi-phase health analysis.

The core phase returns ``CoreAnalysis``. Each recommendation phase returns
its own plan model. ``ComprehensiveAnalysis`` is the merged result.
"""

from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field


class OverallHealthAssessment(BaseModel):
    health_score: int = Field(..., ge=0, le=100)
    health_category: Literal["poor", "fair", "good", "excellent"]
    key_strengths: List[str] = Field(default_factory=list)
    priority_concerns: List[str] = Field(default_factory=list)
    trajectory: str = ""


class BiomarkerInsight(BaseModel):
    biomarker_name: str
    current_value: float
    unit: str
    status: Literal["deficient", "suboptimal", "optimal", "excess", "concerning"]
    optimal_range: str
    gap_analysis: str
    clinical_significance: str
    functional_medicine_perspective: str
    interconnections: List[str] = Field(default_factory=list)
    priority_for_intervention: Literal["critical", "high", "medium", "low"]


class RootCause(BaseModel):
    category: str
    affected_biomarkers: List[str] = Field(default_factory=list)
    description: str
    contributing_factors: List[str] = Field(default_factory=list)
    priority: Literal["high", "medium", "low"]
    intervention_approach: str


class MonitoringPlan(BaseModel):
    retest_timeline: str
    key_biomarkers_to_track: List[str] = Field(default_factory=list)
    symptoms_to_monitor: List[str] = Field(default_factory=list)
    success_metrics: List[str] = Field(default_factory=list)


class PersonalizationFactors(BaseModel):
    age_considerations: str = ""
    gender_considerations: str = ""
    individual_factors: List[str] = Field(default_factory=list)
    contraindications: List[str] = Field(default_factory=list)
    supplement_approach: str = ""


class EvidenceSummary(BaseModel):
    confidence_level: Literal["high", "medium", "low"]
    evidence_quality: str
    limitations: List[str] = Field(default_factory=list)
    clinical_correlation_needed: bool


class NextSteps(BaseModel):
    immediate_actions: List[str] = Field(default_factory=list)
    short_term_goals: List[str] = Field(default_factory=list)
    long_term_goals: List[str] = Field(default_factory=list)
    healthcare_provider_discussion: List[str] = Field(default_factory=list)


class CoreAnalysis(BaseModel):
    """Output of the ``core`` phase."""
    overall_health_assessment: OverallHealthAssessment
    biomarker_insights: List[BiomarkerInsight]
    root_cause_analysis: List[RootCause]
    monitoring_plan: MonitoringPlan
    personalization_factors: PersonalizationFactors
    evidence_summary: EvidenceSummary
    next_steps: NextSteps


class SupplementRecommendation(BaseModel):
    name: str
    form: str
    dosage: str
    frequency: str
    timing: str
    duration: str
    priority: Literal["essential", "beneficial", "optional"]
    reasoning: str
    target_biomarkers: List[str] = Field(default_factory=list)
    expected_improvement: str
    contraindications: List[str] = Field(default_factory=list)
    drug_interactions: List[str] = Field(default_factory=list)
    monitoring: str
    cost_estimate: Optional[str] = None


class DietRecommendation(BaseModel):
    category: str
    specific_foods: List[str] = Field(default_factory=list)
    reasoning: str
    target_biomarkers: List[str] = Field(default_factory=list)
    implementation: str
    expected_timeline: str
    portion_guidance: Optional[str] = None


class LifestyleRecommendation(BaseModel):
    category: str
    specific_recommendation: str
    reasoning: str
    target_biomarkers: List[str] = Field(default_factory=list)
    implementation_steps: List[str] = Field(default_factory=list)
    frequency: str
    expected_benefits: List[str] = Field(default_factory=list)


class WorkoutRecommendation(BaseModel):
    activity_type: str
    specific_exercises: List[str] = Field(default_factory=list)
    frequency: str
    duration: str
    intensity: Literal["low", "moderate", "high"]
    reasoning: str
    target_biomarkers: List[str] = Field(default_factory=list)
    progression: str


class SupplementPlan(BaseModel):
    supplement_recommendations: List[SupplementRecommendation]


class DietPlan(BaseModel):
    diet_recommendations: List[DietRecommendation]


class LifestylePlan(BaseModel):
    lifestyle_recommendations: List[LifestyleRecommendation]


class WorkoutPlan(BaseModel):
    workout_recommendations: List[WorkoutRecommendation]


class ComprehensiveAnalysis(CoreAnalysis):
    """Core sections plus whichever recommendation phases succeeded."""
    supplement_recommendations: List[SupplementRecommendation] = Field(default_factory=list)
    diet_recommendations: List[DietRecommendation] = Field(default_factory=list)
    lifestyle_recommendations: List[LifestyleRecommendation] = Field(default_factory=list)
    workout_recommendations: List[WorkoutRecommendation] = Field(default_factory=list)
    phase_statuses: Dict[str, str] = Field(default_factory=dict)
