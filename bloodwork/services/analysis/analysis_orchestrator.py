"""Multi-phase streaming health analysis.

The ``core`` phase runs first and must succeed. The recommendation phases
(supplements, diet, lifestyle, workout) then run one after another, each
with its own schema and status. A failed recommendation phase is recorded
and skipped; a failed core phase ends the analysis.
"""

import json
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Type
from uuid import UUID

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from bloodwork.core.exceptions import AnalysisError, StructuredResponseError
from bloodwork.core.llm_client import OpenAIStreamingClient
from bloodwork.prompts.analysis_prompts import (
    ANALYSIS_INPUT_TEMPLATE,
    ANALYSIS_SYSTEM_PROMPT,
    CORE_PHASE_INSTRUCTIONS,
    RECOMMENDATION_PHASE_INSTRUCTIONS,
)
from bloodwork.schemas.analysis import (
    ComprehensiveAnalysis,
    CoreAnalysis,
    DietPlan,
    LifestylePlan,
    SupplementPlan,
    WorkoutPlan,
)
from bloodwork.services.ai.stream_consumer import consume_stream
from bloodwork.services.ai.usage_tracker import UsageTracker
from bloodwork.services.progress.reasoning_narrator import ReasoningNarrator
from bloodwork.services.status.biomarker_status import classify_value
from bloodwork.services.status.phase_status import (
    ANALYSIS_PHASES,
    RECOMMENDATION_PHASES,
    PhaseStatus,
)
from bloodwork.utils.json_schema import strict_json_schema
from bloodwork.utils.logging import get_logger

LOGGER = get_logger(__name__)

PHASE_MODELS: Dict[str, Type[BaseModel]] = {
    "core": CoreAnalysis,
    "supplements": SupplementPlan,
    "diet": DietPlan,
    "lifestyle": LifestylePlan,
    "workout": WorkoutPlan,
}
PHASE_SCHEMAS: Dict[str, Dict[str, Any]] = {
    phase: strict_json_schema(model) for phase, model in PHASE_MODELS.items()
}
PHASE_OUTPUT_FIELDS: Dict[str, str] = {
    "supplements": "supplement_recommendations",
    "diet": "diet_recommendations",
    "lifestyle": "lifestyle_recommendations",
    "workout": "workout_recommendations",
}

PhaseListener = Callable[[str, str, Optional[BaseModel]], Awaitable[None]]
NarratorFactory = Callable[[str], Optional[ReasoningNarrator]]


@dataclass(frozen=True)
class AnalysisReading:
    name: str
    value: Optional[float]
    unit: Optional[str]
    biomarker_id: Optional[UUID] = None
    reference_range: Optional[str] = None

    @classmethod
    def from_model(cls, reading: Any) -> "AnalysisReading":
        return cls(
            name=reading.name,
            value=reading.value,
            unit=reading.unit,
            biomarker_id=reading.biomarker_id,
            reference_range=reading.reference_range,
        )


@dataclass(frozen=True)
class OptimalRange:
    biomarker_id: UUID
    optimal_min: Optional[float]
    optimal_max: Optional[float]
    unit: Optional[str] = None

    @classmethod
    def from_model(cls, optimal_range: Any) -> "OptimalRange":
        return cls(
            biomarker_id=optimal_range.biomarker_id,
            optimal_min=optimal_range.optimal_min,
            optimal_max=optimal_range.optimal_max,
            unit=optimal_range.unit,
        )


@dataclass(frozen=True)
class AnalysisProfile:
    age: Optional[int] = None
    gender: Optional[str] = None
    height_cm: Optional[float] = None
    weight_kg: Optional[float] = None
    activity_level: Optional[str] = None
    health_goals: List[str] = field(default_factory=list)
    medical_conditions: List[str] = field(default_factory=list)
    medications: List[str] = field(default_factory=list)
    allergies: List[str] = field(default_factory=list)
    dietary_preferences: List[str] = field(default_factory=list)

    @classmethod
    def from_model(cls, profile: Any, today: Optional[date] = None) -> "AnalysisProfile":
        if profile is None:
            return cls()
        return cls(
            age=age_from_birth_date(profile.date_of_birth, today),
            gender=profile.gender,
            height_cm=profile.height_cm,
            weight_kg=profile.weight_kg,
            activity_level=profile.activity_level,
            health_goals=list(profile.health_goals or []),
            medical_conditions=list(profile.medical_conditions or []),
            medications=list(profile.medications or []),
            allergies=list(profile.allergies or []),
            dietary_preferences=list(profile.dietary_preferences or []),
        )

    def render(self) -> str:
        lines = [
            f"- Age: {self.age if self.age is not None else 'unknown'}",
            f"- Gender: {self.gender or 'unknown'}",
        ]
        if self.height_cm:
            lines.append(f"- Height: {self.height_cm} cm")
        if self.weight_kg:
            lines.append(f"- Weight: {self.weight_kg} kg")
        if self.activity_level:
            lines.append(f"- Activity level: {self.activity_level}")
        for label, values in (
            ("Health goals", self.health_goals),
            ("Medical conditions", self.medical_conditions),
            ("Current medications", self.medications),
            ("Allergies", self.allergies),
            ("Dietary preferences", self.dietary_preferences),
        ):
            if values:
                lines.append(f"- {label}: {', '.join(values)}")
        return "\n".join(lines)


def age_from_birth_date(birth_date: Optional[date], today: Optional[date] = None) -> Optional[int]:
    if birth_date is None:
        return None
    today = today or date.today()
    return today.year - birth_date.year - ((today.month, today.day) < (birth_date.month, birth_date.day))


def validate_readings(readings: Sequence[AnalysisReading]) -> List[AnalysisReading]:
    """Keep readings that have both a value and a unit.

    Raises:
        AnalysisError: If no reading is usable
    """
    usable = [r for r in readings if r.value is not None and r.unit]
    if not usable:
        raise AnalysisError("No valid biomarker readings to analyze")
    return usable


def render_biomarkers(
    readings: Sequence[AnalysisReading], optimal_ranges: Sequence[OptimalRange]
) -> str:
    ranges: Dict[UUID, OptimalRange] = {}
    for optimal_range in optimal_ranges:
        # First range per biomarker wins; callers order primary ranges first
        ranges.setdefault(optimal_range.biomarker_id, optimal_range)

    lines = []
    for reading in readings:
        optimal = ranges.get(reading.biomarker_id) if reading.biomarker_id else None
        if optimal is not None:
            classification = classify_value(reading.value, optimal.optimal_min, optimal.optimal_max)
            range_text = f"{optimal.optimal_min}-{optimal.optimal_max} {optimal.unit or reading.unit}"
            status_text = classification.status
            if classification.severity:
                status_text += f" ({classification.severity})"
        else:
            range_text = "not available"
            status_text = "unclassified"
        line = f"- {reading.name}: {reading.value} {reading.unit} | optimal: {range_text} | {status_text}"
        if reading.reference_range:
            line += f" | lab reference: {reading.reference_range}"
        lines.append(line)
    return "\n".join(lines)


def summarize_core(core: CoreAnalysis) -> str:
    summary = {
        "health_score": core.overall_health_assessment.health_score,
        "health_category": core.overall_health_assessment.health_category,
        "priority_concerns": core.overall_health_assessment.priority_concerns,
        "insights": [
            {
                "biomarker": insight.biomarker_name,
                "status": insight.status,
                "priority": insight.priority_for_intervention,
            }
            for insight in core.biomarker_insights
        ],
        "root_causes": [cause.category for cause in core.root_cause_analysis],
    }
    return "\nCore assessment already completed:\n" + json.dumps(summary, indent=2)


class AnalysisOrchestrator:
    """Runs the phased analysis against one streaming client."""

    def __init__(
        self,
        llm_client: OpenAIStreamingClient,
        usage_tracker: Optional[UsageTracker] = None,
        model: Optional[str] = None,
    ):
        self.llm_client = llm_client
        self.usage_tracker = usage_tracker
        self.model = model or llm_client.model

    async def analyze(
        self,
        readings: Sequence[AnalysisReading],
        optimal_ranges: Sequence[OptimalRange],
        profile: AnalysisProfile,
        *,
        phase_listener: Optional[PhaseListener] = None,
        narrator_factory: Optional[NarratorFactory] = None,
        user_id: Optional[UUID] = None,
        request_id: Optional[str] = None,
    ) -> ComprehensiveAnalysis:
        """Produce a comprehensive analysis.

        Args:
            readings: Biomarker readings of one document
            optimal_ranges: Demographic-matched ranges, primary ranges first
            profile: Patient demographics and health context
            phase_listener: Called with (phase, status, output) on every phase transition
            narrator_factory: Builds the reasoning narrator for a phase
            user_id: Owner, for usage accounting
            request_id: Analysis id, for usage accounting

        Raises:
            AnalysisError: If there is nothing to analyze
            AIResponseError: If the core phase stream fails
            StructuredResponseError: If the core phase output is invalid
        """
        usable = validate_readings(readings)
        base_context = {
            "profile": profile.render(),
            "biomarkers": render_biomarkers(usable, optimal_ranges),
        }
        statuses: Dict[str, str] = {phase: PhaseStatus.PENDING.value for phase in ANALYSIS_PHASES}

        async def transition(phase: str, status: PhaseStatus, output: Optional[BaseModel] = None) -> None:
            statuses[phase] = status.value
            if phase_listener is not None:
                await phase_listener(phase, status.value, output)

        await transition("core", PhaseStatus.PROCESSING)
        try:
            core = await self._run_phase(
                "core", base_context, "", CORE_PHASE_INSTRUCTIONS, narrator_factory, user_id, request_id
            )
        except Exception:
            LOGGER.error("Core analysis phase failed", exc_info=True, extra={"request_id": request_id})
            await transition("core", PhaseStatus.FAILED)
            raise
        await transition("core", PhaseStatus.COMPLETED, core)

        recommendations: Dict[str, List[Any]] = {}
        core_summary = summarize_core(core)
        for phase in RECOMMENDATION_PHASES:
            await transition(phase, PhaseStatus.PROCESSING)
            try:
                plan = await self._run_phase(
                    phase,
                    base_context,
                    core_summary,
                    RECOMMENDATION_PHASE_INSTRUCTIONS[phase],
                    narrator_factory,
                    user_id,
                    request_id,
                )
                await transition(phase, PhaseStatus.COMPLETED, plan)
            except Exception as e:
                LOGGER.error(
                    f"Recommendation phase '{phase}' failed; continuing",
                    exc_info=True,
                    extra={"request_id": request_id, "error": str(e)},
                )
                try:
                    await transition(phase, PhaseStatus.FAILED)
                except Exception:
                    LOGGER.error(
                        f"Could not record failure of phase '{phase}'",
                        exc_info=True,
                        extra={"request_id": request_id},
                    )
                continue
            recommendations[PHASE_OUTPUT_FIELDS[phase]] = getattr(plan, PHASE_OUTPUT_FIELDS[phase])

        return ComprehensiveAnalysis(
            **core.model_dump(),
            **{name: [item.model_dump() for item in items] for name, items in recommendations.items()},
            phase_statuses=dict(statuses),
        )

    async def _run_phase(
        self,
        phase: str,
        base_context: Dict[str, str],
        core_summary: str,
        instructions: str,
        narrator_factory: Optional[NarratorFactory],
        user_id: Optional[UUID],
        request_id: Optional[str],
    ) -> BaseModel:
        LOGGER.info(f"Starting analysis phase '{phase}'", extra={"request_id": request_id})
        input_text = ANALYSIS_INPUT_TEMPLATE.format(
            profile=base_context["profile"],
            biomarkers=base_context["biomarkers"],
            core_summary=core_summary,
            phase_instructions=instructions,
        )
        events = self.llm_client.stream_structured(
            instructions=ANALYSIS_SYSTEM_PROMPT,
            input_text=input_text,
            schema_name=f"health_analysis_{phase}",
            schema=PHASE_SCHEMAS[phase],
            model=self.model,
        )
        narrator = narrator_factory(phase) if narrator_factory is not None else None
        result = await consume_stream(events, narrator=narrator)

        if self.usage_tracker is not None:
            await self.usage_tracker.save_usage(
                result.usage,
                model=self.model,
                request_type=f"{phase}_analysis",
                user_id=user_id,
                request_id=request_id,
                metadata={"phase": phase, "reasoning_chunks": result.reasoning_chunks},
            )

        try:
            return PHASE_MODELS[phase].model_validate(result.payload)
        except PydanticValidationError as e:
            raise StructuredResponseError(
                f"Analysis phase '{phase}' output does not match its schema",
                original_error=e,
            ) from e
