"""Append-only progress logs for documents and analyses."""

from typing import Any, Dict, List, Optional, Type, TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from bloodwork.database.models import AnalysisProcessingUpdate, DocumentProcessingUpdate
from bloodwork.repositories.base_repository import BaseRepository
from bloodwork.utils.logging import get_logger

LOGGER = get_logger(__name__)

UpdateType = TypeVar("UpdateType", DocumentProcessingUpdate, AnalysisProcessingUpdate)


class ProcessingUpdateRepository(BaseRepository[UpdateType]):
    """Insert and read progress rows keyed by a parent column.

    Rows are never updated or deleted individually; the parent's
    cascade removes them.
    """

    parent_column: str = ""

    def __init__(self, session: AsyncSession, model: Type[UpdateType]):
        super().__init__(session, model)

    async def add_update(
        self,
        parent_id: UUID,
        phase: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> UpdateType:
        """Append one progress row."""
        return await self.create(
            **{self.parent_column: parent_id},
            phase=phase,
            message=message,
            details=details or {},
        )

    async def list_updates(self, parent_id: UUID) -> List[UpdateType]:
        """List every progress row for a parent in insertion order."""
        column = getattr(self.model, self.parent_column)
        try:
            query = (
                select(self.model)
                .where(column == parent_id)
                .order_by(self.model.created_at.asc())
            )
            result = await self.session.execute(query)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            LOGGER.error(
                f"Error listing {self.model.__name__} rows for {parent_id}: {str(e)}",
                exc_info=True
            )
            raise


class DocumentUpdateRepository(ProcessingUpdateRepository[DocumentProcessingUpdate]):
    parent_column = "document_id"

    def __init__(self, session: AsyncSession):
        super().__init__(session, DocumentProcessingUpdate)


class AnalysisUpdateRepository(ProcessingUpdateRepository[AnalysisProcessingUpdate]):
    parent_column = "analysis_id"

    def __init__(self, session: AsyncSession):
        super().__init__(session, AnalysisProcessingUpdate)
