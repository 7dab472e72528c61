"""Analysis pipeline: persisted readings to a stored, phased health analysis."""

import functools
import traceback
from typing import Any, Dict, Optional
from uuid import UUID

from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from bloodwork.core.config import settings
from bloodwork.core.exceptions import AnalysisNotFoundError
from bloodwork.repositories.analysis_repository import AnalysisRepository
from bloodwork.repositories.biomarker_repository import (
    BiomarkerCatalogRepository,
    BiomarkerReadingRepository,
)
from bloodwork.repositories.user_profile_repository import UserProfileRepository
from bloodwork.services.analysis.analysis_orchestrator import (
    PHASE_OUTPUT_FIELDS,
    AnalysisOrchestrator,
    AnalysisProfile,
    AnalysisReading,
    OptimalRange,
)
from bloodwork.services.progress.progress_recorder import AnalysisProgressRecorder
from bloodwork.services.progress.reasoning_narrator import ReasoningNarrator
from bloodwork.services.status.phase_status import PhaseStatus, is_analysis_done
from bloodwork.utils.logging import get_logger

LOGGER = get_logger(__name__)

PHASE_LABELS = {
    "core": "Core health assessment",
    "supplements": "Supplement recommendations",
    "diet": "Diet recommendations",
    "lifestyle": "Lifestyle recommendations",
    "workout": "Workout recommendations",
}


class AnalysisPipeline:
    """Loads inputs, runs the orchestrator and persists each phase as it settles."""

    def __init__(
        self,
        session: AsyncSession,
        orchestrator: AnalysisOrchestrator,
        recorder: Optional[AnalysisProgressRecorder] = None,
        error_trace_max_chars: Optional[int] = None,
    ):
        self.session = session
        self.orchestrator = orchestrator
        self.recorder = recorder or AnalysisProgressRecorder()
        self.error_trace_max_chars = (
            error_trace_max_chars
            if error_trace_max_chars is not None
            else settings.pipeline.error_trace_max_chars
        )

        self.analyses = AnalysisRepository(session)
        self.readings = BiomarkerReadingRepository(session)
        self.catalog = BiomarkerCatalogRepository(session)
        self.profiles = UserProfileRepository(session)

    async def run(self, analysis_id: UUID, user_id: UUID) -> Dict[str, Any]:
        """Run every analysis phase for an existing analysis row.

        Returns:
            ``{analysisId, status, phaseStatuses}``

        Raises:
            AnalysisNotFoundError: If the analysis does not exist for this user
            AnalysisError: If there are no usable readings
            AIResponseError: If the core phase fails
        """
        analysis = await self.analyses.get_for_user(analysis_id, user_id)
        if analysis is None:
            raise AnalysisNotFoundError(f"Analysis {analysis_id} not found")
        document_id = analysis.document_id
        self.recorder.reset(analysis_id)

        try:
            await self.analyses.set_status(analysis_id, "processing", error_message=None)
            await self.recorder.record(analysis_id, "preparation", "Loading biomarker data...")

            readings = [
                AnalysisReading.from_model(r)
                for r in await self.readings.list_for_document(document_id)
            ]
            profile = AnalysisProfile.from_model(await self.profiles.get_by_user_id(user_id))
            biomarker_ids = list({r.biomarker_id for r in readings if r.biomarker_id})
            ranges = [
                OptimalRange.from_model(r)
                for r in await self.catalog.get_optimal_ranges(
                    biomarker_ids, age=profile.age, gender=profile.gender
                )
            ]
            await self.recorder.record(
                analysis_id,
                "preparation",
                f"Loaded {len(readings)} readings",
                {"readings": len(readings), "optimalRanges": len(ranges)},
            )

            result = await self.orchestrator.analyze(
                readings,
                ranges,
                profile,
                phase_listener=functools.partial(self._on_phase, analysis_id),
                narrator_factory=functools.partial(self._narrator, analysis_id),
                user_id=user_id,
                request_id=str(analysis_id),
            )

            phase_statuses = result.phase_statuses
            status = "completed" if is_analysis_done(phase_statuses) else "failed"
            await self.analyses.set_status(analysis_id, status)
            await self.recorder.record(
                analysis_id,
                "complete",
                "Analysis complete!",
                {"phaseStatuses": phase_statuses},
            )
        except Exception as e:
            await self._fail(analysis_id, e)
            raise

        LOGGER.info(
            "Analysis finished",
            extra={"analysis_id": str(analysis_id), "phase_statuses": phase_statuses},
        )
        return {
            "analysisId": str(analysis_id),
            "status": status,
            "phaseStatuses": phase_statuses,
        }

    def _narrator(self, analysis_id: UUID, phase: str) -> ReasoningNarrator:
        return ReasoningNarrator(
            functools.partial(self.recorder.record, analysis_id, phase),
            message=f"{PHASE_LABELS[phase]}: AI is reasoning...",
        )

    async def _on_phase(
        self,
        analysis_id: UUID,
        phase: str,
        status: str,
        output: Optional[BaseModel],
    ) -> None:
        if status == PhaseStatus.COMPLETED.value and output is not None:
            if phase == "core":
                await self.analyses.save_core_results(
                    analysis_id, output.model_dump(mode="json"), self.orchestrator.model
                )
            else:
                items = getattr(output, PHASE_OUTPUT_FIELDS[phase])
                await self.analyses.add_recommendations(
                    analysis_id, phase, [item.model_dump(mode="json") for item in items]
                )

        await self.analyses.set_phase_status(analysis_id, phase, status)

        label = PHASE_LABELS[phase]
        messages = {
            PhaseStatus.PROCESSING.value: f"{label}: running...",
            PhaseStatus.COMPLETED.value: f"{label}: done",
            PhaseStatus.FAILED.value: f"{label}: failed",
        }
        await self.recorder.record(
            analysis_id,
            phase,
            messages.get(status, f"{label}: {status}"),
            {"phase": phase, "phaseStatus": status},
        )

    async def _fail(self, analysis_id: UUID, error: Exception) -> None:
        LOGGER.error(
            "Analysis failed",
            exc_info=True,
            extra={"analysis_id": str(analysis_id), "error_type": type(error).__name__},
        )
        stack = "".join(traceback.format_exception(type(error), error, error.__traceback__))
        await self.recorder.record(
            analysis_id,
            "error",
            f"Analysis failed: {error}",
            {
                "error": str(error),
                "errorType": type(error).__name__,
                "stack": stack[: self.error_trace_max_chars],
            },
        )
        try:
            await self.session.rollback()
            await self.analyses.set_status(analysis_id, "failed", error_message=str(error))
        except Exception:
            LOGGER.error(
                "Could not mark analysis as failed",
                exc_info=True,
                extra={"analysis_id": str(analysis_id)},
            )
