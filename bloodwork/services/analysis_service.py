"""Analysis service for generating and reading health analyses."""

from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from bloodwork.core.exceptions import (
    AnalysisNotFoundError,
    AppError,
    DocumentNotFoundError,
    ValidationError,
)
from bloodwork.database.models import HealthAnalysis
from bloodwork.repositories.analysis_repository import RECOMMENDATION_MODELS, AnalysisRepository
from bloodwork.repositories.document_repository import DocumentRepository
from bloodwork.services.analysis.analysis_orchestrator import AnalysisOrchestrator
from bloodwork.services.base_service import BaseService
from bloodwork.services.pipeline.analysis_pipeline import AnalysisPipeline
from bloodwork.services.status.phase_status import analysis_phase_statuses
from bloodwork.utils.logging import get_logger

LOGGER = get_logger(__name__)

_ROW_EXCLUDE = {"analysis_id", "_sa_instance_state"}


def _iso(value: Any) -> Optional[str]:
    return value.isoformat() if value is not None else None


def recommendation_to_dict(row: Any) -> Dict[str, Any]:
    data = {
        column.key: getattr(row, column.key)
        for column in row.__table__.columns
        if column.key not in _ROW_EXCLUDE
    }
    data["id"] = str(row.id)
    data["created_at"] = _iso(row.created_at)
    return data


def analysis_to_dict(analysis: HealthAnalysis) -> Dict[str, Any]:
    return {
        "id": str(analysis.id),
        "user_id": str(analysis.user_id),
        "document_id": str(analysis.document_id),
        "status": analysis.status,
        "phase_statuses": analysis_phase_statuses(analysis),
        "health_score": analysis.health_score,
        "health_category": analysis.health_category,
        "overall_health_assessment": analysis.overall_assessment,
        "biomarker_insights": analysis.biomarker_insights or [],
        "root_cause_analysis": analysis.root_cause_analysis or [],
        "monitoring_plan": analysis.monitoring_plan,
        "personalization_factors": analysis.personalization_factors,
        "evidence_summary": analysis.evidence_summary,
        "next_steps": analysis.next_steps,
        "model": analysis.model,
        "error_message": analysis.error_message,
        "created_at": _iso(analysis.created_at),
        "completed_at": _iso(analysis.completed_at),
    }


class AnalysisService(BaseService):
    """Creates analyses, runs them to completion and serves their results."""

    def __init__(self, session: AsyncSession):
        super().__init__()
        self.session = session
        self.doc_repo = DocumentRepository(session)
        self.analysis_repo = AnalysisRepository(session)

    async def run(self, *args, **kwargs) -> Any:
        action = kwargs.get("action")

        if action == "generate_analysis":
            return await self._generate_analysis_logic(
                kwargs["document_id"],
                kwargs["user_id"],
                kwargs["orchestrator"],
            )
        else:
            raise AppError(f"Unknown action: {action}")

    async def generate_analysis(
        self,
        document_id: UUID,
        user_id: UUID,
        orchestrator: AnalysisOrchestrator,
    ) -> Dict[str, Any]:
        """Create an analysis row for a document and run every phase.

        Returns:
            ``{analysisId, status, phaseStatuses}``
        """
        return await self.execute(
            action="generate_analysis",
            document_id=document_id,
            user_id=user_id,
            orchestrator=orchestrator,
        )

    async def _generate_analysis_logic(
        self,
        document_id: UUID,
        user_id: UUID,
        orchestrator: AnalysisOrchestrator,
    ) -> Dict[str, Any]:
        document = await self.doc_repo.get_for_user(document_id, user_id)
        if document is None:
            raise DocumentNotFoundError(f"Document with ID {document_id} not found")
        if document.status != "completed":
            raise ValidationError(
                f"Document {document_id} is '{document.status}'; process it before analysis"
            )

        analysis = await self.analysis_repo.create_analysis(user_id, document_id)
        LOGGER.info(
            "Analysis created",
            extra={"analysis_id": str(analysis.id), "document_id": str(document_id)},
        )

        pipeline = AnalysisPipeline(self.session, orchestrator)
        return await pipeline.run(analysis.id, user_id)

    async def get_analysis(self, analysis_id: UUID, user_id: UUID) -> Dict[str, Any]:
        """Full analysis with its four recommendation collections."""
        analysis = await self.analysis_repo.get_for_user(analysis_id, user_id)
        if analysis is None:
            raise AnalysisNotFoundError(f"Analysis with ID {analysis_id} not found")

        data = analysis_to_dict(analysis)
        for category in RECOMMENDATION_MODELS:
            rows = await self.analysis_repo.list_recommendations(analysis_id, category)
            data[f"{category}_recommendations"] = [recommendation_to_dict(r) for r in rows]
        return data

    async def get_recommendations(
        self, analysis_id: UUID, user_id: UUID, category: str
    ) -> Dict[str, Any]:
        if category not in RECOMMENDATION_MODELS:
            raise ValidationError(
                f"Unknown recommendation category '{category}'; "
                f"expected one of {', '.join(RECOMMENDATION_MODELS)}"
            )
        analysis = await self.analysis_repo.get_for_user(analysis_id, user_id)
        if analysis is None:
            raise AnalysisNotFoundError(f"Analysis with ID {analysis_id} not found")

        rows = await self.analysis_repo.list_recommendations(analysis_id, category)
        return {
            "analysis_id": str(analysis_id),
            "category": category,
            "phase_status": analysis_phase_statuses(analysis)[category],
            "recommendations": [recommendation_to_dict(r) for r in rows],
        }
