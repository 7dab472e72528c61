from typing import Any, Dict, List, Optional, Type
from uuid import UUID
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from bloodwork.core.exceptions import ValidationError
from bloodwork.database.models import (
    DietRecommendation,
    HealthAnalysis,
    LifestyleRecommendation,
    SupplementRecommendation,
    WorkoutRecommendation,
)
from bloodwork.repositories.base_repository import BaseRepository
from bloodwork.utils.logging import get_logger

LOGGER = get_logger(__name__)

RECOMMENDATION_MODELS: Dict[str, Type[Any]] = {
    "supplements": SupplementRecommendation,
    "diet": DietRecommendation,
    "lifestyle": LifestyleRecommendation,
    "workout": WorkoutRecommendation,
}

PHASE_COLUMNS: Dict[str, str] = {
    "core": "core_status",
    "supplements": "supplements_status",
    "diet": "diet_status",
    "lifestyle": "lifestyle_status",
    "workout": "workout_status",
}


class AnalysisRepository(BaseRepository[HealthAnalysis]):
    """Repository for health analyses and their recommendation collections."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, HealthAnalysis)

    async def create_analysis(self, user_id: UUID, document_id: UUID) -> HealthAnalysis:
        """Create an analysis with every phase ``pending``."""
        return await self.create(
            user_id=user_id,
            document_id=document_id,
            status="pending",
            last_update_at=datetime.now(timezone.utc),
        )

    async def get_for_user(self, analysis_id: UUID, user_id: UUID) -> Optional[HealthAnalysis]:
        try:
            result = await self.session.execute(
                select(HealthAnalysis).where(
                    HealthAnalysis.id == analysis_id,
                    HealthAnalysis.user_id == user_id,
                )
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            LOGGER.error(f"Error retrieving analysis {analysis_id}: {str(e)}", exc_info=True)
            raise

    async def set_status(self, analysis_id: UUID, status: str, **fields: Any) -> bool:
        now = datetime.now(timezone.utc)
        if status == "processing":
            fields.setdefault("started_at", now)
        if status in ("completed", "failed"):
            fields.setdefault("completed_at", now)
        return await self.update(
            analysis_id, status=status, last_update_at=now, **fields
        ) is not None

    async def set_phase_status(self, analysis_id: UUID, phase: str, status: str) -> bool:
        """Set the status column of one named phase."""
        column = PHASE_COLUMNS.get(phase)
        if column is None:
            raise ValidationError(f"Unknown analysis phase: {phase}")
        return await self.update(
            analysis_id, **{column: status, "last_update_at": datetime.now(timezone.utc)}
        ) is not None

    async def save_core_results(self, analysis_id: UUID, core: Dict[str, Any], model: str) -> bool:
        """Store the core sections of a comprehensive analysis."""
        overall = core.get("overall_health_assessment") or {}
        return await self.update(
            analysis_id,
            health_score=overall.get("health_score"),
            health_category=overall.get("health_category"),
            overall_assessment=overall,
            biomarker_insights=core.get("biomarker_insights") or [],
            root_cause_analysis=core.get("root_cause_analysis") or [],
            monitoring_plan=core.get("monitoring_plan"),
            personalization_factors=core.get("personalization_factors"),
            evidence_summary=core.get("evidence_summary"),
            next_steps=core.get("next_steps"),
            model=model,
        ) is not None

    async def add_recommendations(
        self,
        analysis_id: UUID,
        category: str,
        items: List[Dict[str, Any]],
    ) -> List[Any]:
        """Insert the recommendation rows of one category."""
        model = RECOMMENDATION_MODELS.get(category)
        if model is None:
            raise ValidationError(f"Unknown recommendation category: {category}")
        if not items:
            return []
        try:
            rows = [model(analysis_id=analysis_id, **item) for item in items]
            self.session.add_all(rows)
            await self.session.flush()
            await self.session.commit()
            return rows
        except SQLAlchemyError as e:
            await self.session.rollback()
            LOGGER.error(
                f"Error saving {category} recommendations for {analysis_id}: {str(e)}",
                exc_info=True
            )
            raise

    async def list_recommendations(self, analysis_id: UUID, category: str) -> List[Any]:
        model = RECOMMENDATION_MODELS.get(category)
        if model is None:
            raise ValidationError(f"Unknown recommendation category: {category}")
        try:
            result = await self.session.execute(
                select(model).where(model.analysis_id == analysis_id).order_by(model.created_at.asc())
            )
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            LOGGER.error(
                f"Error listing {category} recommendations for {analysis_id}: {str(e)}",
                exc_info=True
            )
            raise
