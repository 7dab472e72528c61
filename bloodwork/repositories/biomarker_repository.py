from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from bloodwork.database.models import Biomarker, BiomarkerOptimalRange, BiomarkerReading
from bloodwork.repositories.base_repository import BaseRepository
from bloodwork.utils.logging import get_logger

LOGGER = get_logger(__name__)


class BiomarkerCatalogRepository(BaseRepository[Biomarker]):
    """Read access to the biomarker catalog and its demographic ranges."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, Biomarker)

    async def get_catalog(self) -> List[Biomarker]:
        """Fetch every active catalog entry, ordered by name."""
        try:
            query = select(Biomarker).where(Biomarker.is_active.is_(True)).order_by(Biomarker.name)
            result = await self.session.execute(query)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            LOGGER.error(f"Error loading biomarker catalog: {str(e)}", exc_info=True)
            raise

    async def get_optimal_ranges(
        self,
        biomarker_ids: List[UUID],
        age: Optional[int] = None,
        gender: Optional[str] = None,
    ) -> List[BiomarkerOptimalRange]:
        """Fetch active ranges applicable to a demographic.

        A range applies when its gender is unset or equal to ``gender``
        and ``age`` falls inside its bounds. Unset bounds are open.
        """
        if not biomarker_ids:
            return []
        try:
            query = select(BiomarkerOptimalRange).where(
                BiomarkerOptimalRange.biomarker_id.in_(biomarker_ids),
                BiomarkerOptimalRange.is_active.is_(True),
            )
            if gender:
                query = query.where(
                    (BiomarkerOptimalRange.gender.is_(None))
                    | (BiomarkerOptimalRange.gender == gender.lower())
                )
            if age is not None:
                query = query.where(
                    (BiomarkerOptimalRange.age_min.is_(None)) | (BiomarkerOptimalRange.age_min <= age)
                ).where(
                    (BiomarkerOptimalRange.age_max.is_(None)) | (BiomarkerOptimalRange.age_max >= age)
                )
            query = query.order_by(BiomarkerOptimalRange.is_primary.desc())
            result = await self.session.execute(query)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            LOGGER.error(f"Error loading optimal ranges: {str(e)}", exc_info=True)
            raise


class BiomarkerReadingRepository(BaseRepository[BiomarkerReading]):
    """Repository for extracted biomarker readings."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, BiomarkerReading)

    async def create_readings(self, rows: List[Dict[str, Any]]) -> List[BiomarkerReading]:
        """Insert one reading per extracted biomarker."""
        if not rows:
            return []
        return await self.create_many(rows)

    async def list_for_document(self, document_id: UUID) -> List[BiomarkerReading]:
        try:
            query = (
                select(BiomarkerReading)
                .where(BiomarkerReading.document_id == document_id)
                .order_by(BiomarkerReading.created_at.asc(), BiomarkerReading.name.asc())
            )
            result = await self.session.execute(query)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            LOGGER.error(f"Error listing readings for document {document_id}: {str(e)}", exc_info=True)
            raise

    async def delete_for_document(self, document_id: UUID) -> None:
        """Remove the readings of a document before it is deleted."""
        try:
            await self.session.execute(
                delete(BiomarkerReading).where(BiomarkerReading.document_id == document_id)
            )
            await self.session.commit()
        except SQLAlchemyError as e:
            LOGGER.error(f"Error deleting readings for document {document_id}: {str(e)}", exc_info=True)
            raise
