from typing import Any, Dict, List, Optional
from uuid import UUID
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from bloodwork.database.models import Document
from bloodwork.repositories.base_repository import BaseRepository
from bloodwork.utils.logging import get_logger

LOGGER = get_logger(__name__)


class DocumentRepository(BaseRepository[Document]):
    """Repository for Document records.

    Every read that originates from a user request goes through
    ``get_for_user`` so ownership is checked in one place.
    """

    def __init__(self, session: AsyncSession):
        super().__init__(session, Document)

    async def create_document(
        self,
        user_id: UUID,
        filename: str,
        storage_path: str,
        mime_type: str,
        file_size: Optional[int] = None,
        original_name: Optional[str] = None,
        status: str = "pending",
    ) -> Document:
        """Create a new document record in ``pending`` status."""
        return await self.create(
            user_id=user_id,
            filename=filename,
            original_name=original_name,
            storage_path=storage_path,
            mime_type=mime_type,
            file_size=file_size,
            status=status,
            uploaded_at=datetime.now(timezone.utc),
        )

    async def get_for_user(self, document_id: UUID, user_id: UUID) -> Optional[Document]:
        """Get a document only if it belongs to ``user_id``."""
        try:
            query = select(Document).where(
                Document.id == document_id,
                Document.user_id == user_id,
            )
            result = await self.session.execute(query)
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            LOGGER.error(
                f"Error retrieving document {document_id} for user {user_id}: {str(e)}",
                exc_info=True
            )
            raise

    async def list_for_user(self, user_id: UUID, limit: int = 50, offset: int = 0) -> List[Document]:
        """List a user's documents, newest upload first."""
        try:
            query = (
                select(Document)
                .where(Document.user_id == user_id)
                .order_by(Document.uploaded_at.desc())
                .offset(offset)
                .limit(limit)
            )
            result = await self.session.execute(query)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            LOGGER.error(f"Error listing documents for user {user_id}: {str(e)}", exc_info=True)
            raise

    async def update_status(self, document_id: UUID, status: str, **fields: Any) -> bool:
        """Update document status plus any extra columns.

        Returns:
            True if updated, False if not found
        """
        return await self.update(document_id, status=status, **fields) is not None

    async def mark_processing_started(self, document_id: UUID) -> bool:
        """Move a document into ``processing`` and clear earlier errors."""
        return await self.update_status(
            document_id,
            "processing",
            processing_started_at=datetime.now(timezone.utc),
            processing_errors=None,
        )

    async def save_ocr_data(self, document_id: UUID, text: str, confidence: float) -> bool:
        """Store a preview of the extracted text and its confidence."""
        return await self.update(
            document_id,
            ocr_data={"text": text[:1000], "confidence": confidence},
        ) is not None

    async def save_extraction_results(
        self,
        document_id: UUID,
        biomarkers: List[Dict[str, Any]],
        processing_metadata: Dict[str, Any],
    ) -> bool:
        """Store the extracted biomarker payload on the document."""
        return await self.update(
            document_id,
            extracted_biomarkers=biomarkers,
            processing_metadata=processing_metadata,
        ) is not None

    async def mark_failed(self, document_id: UUID, error_message: str) -> bool:
        """Mark a document failed with a single error message."""
        return await self.update_status(
            document_id,
            "failed",
            processing_errors=[error_message],
            processing_completed_at=datetime.now(timezone.utc),
        )
