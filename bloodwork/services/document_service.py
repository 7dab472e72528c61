"""Document service for upload, retrieval, deletion and the processing trigger."""

from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from bloodwork.core.config import settings
from bloodwork.core.exceptions import (
    AppError,
    DocumentNotFoundError,
    FileTooLargeError,
    UnsupportedDocumentTypeError,
    ValidationError,
)
from bloodwork.database.models import BiomarkerReading, Document
from bloodwork.repositories.biomarker_repository import BiomarkerReadingRepository
from bloodwork.repositories.document_repository import DocumentRepository
from bloodwork.services.ai.biomarker_extraction import BiomarkerExtractionClient
from bloodwork.services.base_service import BaseService
from bloodwork.services.extraction.text_extractor import SUPPORTED_MIME_TYPES
from bloodwork.services.pipeline.document_pipeline import DocumentProcessingPipeline
from bloodwork.services.progress.progress_recorder import DocumentProgressRecorder
from bloodwork.services.storage_service import StorageService, build_storage_path
from bloodwork.utils.logging import get_logger

LOGGER = get_logger(__name__)


def _iso(value: Any) -> Optional[str]:
    return value.isoformat() if value is not None else None


def document_to_dict(document: Document) -> Dict[str, Any]:
    return {
        "id": str(document.id),
        "user_id": str(document.user_id),
        "filename": document.filename,
        "original_name": document.original_name,
        "mime_type": document.mime_type,
        "file_size": document.file_size,
        "storage_path": document.storage_path,
        "status": document.status,
        "processing_errors": document.processing_errors or [],
        "ocr_data": document.ocr_data,
        "processing_metadata": document.processing_metadata,
        "uploaded_at": _iso(document.uploaded_at),
        "processing_started_at": _iso(document.processing_started_at),
        "processed_at": _iso(document.processed_at),
    }


def reading_to_dict(reading: BiomarkerReading) -> Dict[str, Any]:
    return {
        "id": str(reading.id),
        "biomarker_id": str(reading.biomarker_id) if reading.biomarker_id else None,
        "name": reading.name,
        "value": reading.value,
        "unit": reading.unit,
        "reference_range": reading.reference_range,
        "confidence": reading.confidence,
        "matched_from_db": reading.matched_from_db,
        "category": reading.category,
        "status": reading.status,
        "severity": reading.severity,
        "source_text": reading.source_text,
    }


class DocumentService(BaseService):
    """Service for document management and processing.

    Every lookup is scoped to the requesting user.
    """

    def __init__(self, session: AsyncSession, storage: Optional[StorageService] = None):
        super().__init__()
        self.session = session
        self.doc_repo = DocumentRepository(session)
        self.reading_repo = BiomarkerReadingRepository(session)
        self.storage_service = storage or StorageService()

    async def run(self, *args, **kwargs) -> Any:
        """Route to the handler named by ``action``."""
        action = kwargs.get("action")

        if action == "upload_document":
            return await self._upload_document_logic(
                kwargs["user_id"],
                kwargs["filename"],
                kwargs["content_type"],
                kwargs["content"],
            )
        elif action == "process_document":
            return await self._process_document_logic(
                kwargs["document_id"],
                kwargs["user_id"],
                kwargs["extraction_client"],
            )
        else:
            raise AppError(f"Unknown action: {action}")

    def validate(self, *args, **kwargs) -> None:
        if kwargs.get("action") != "upload_document":
            return
        if not kwargs.get("filename"):
            raise ValidationError("File has no filename")
        content_type = (kwargs.get("content_type") or "").split(";")[0].strip().lower()
        if content_type not in SUPPORTED_MIME_TYPES:
            raise UnsupportedDocumentTypeError(f"Unsupported file type: {kwargs.get('content_type')}")
        size = len(kwargs.get("content") or b"")
        if size > settings.pipeline.max_upload_bytes:
            raise FileTooLargeError(
                f"File is {size} bytes; the limit is {settings.pipeline.max_upload_bytes} bytes"
            )
        if size == 0:
            raise ValidationError("File is empty")

    async def upload_document(
        self, user_id: UUID, filename: str, content_type: str, content: bytes
    ) -> Dict[str, Any]:
        """Store an uploaded file and create its ``pending`` document row.

        Raises:
            UnsupportedDocumentTypeError: If the MIME type is not accepted
            FileTooLargeError: If the file exceeds the upload limit
            StorageError: If the storage write fails
        """
        return await self.execute(
            action="upload_document",
            user_id=user_id,
            filename=filename,
            content_type=content_type,
            content=content,
        )

    async def _upload_document_logic(
        self, user_id: UUID, filename: str, content_type: str, content: bytes
    ) -> Dict[str, Any]:
        storage_path = build_storage_path(user_id, filename)
        mime_type = content_type.split(";")[0].strip().lower()

        await self.storage_service.upload_file(
            content,
            bucket=settings.documents_bucket,
            path=storage_path,
            content_type=mime_type,
        )
        document = await self.doc_repo.create_document(
            user_id=user_id,
            filename=storage_path.rsplit("/", 1)[-1],
            original_name=filename,
            storage_path=storage_path,
            mime_type=mime_type,
            file_size=len(content),
        )

        LOGGER.info(
            "Document uploaded",
            extra={"document_id": str(document.id), "size": len(content), "mime_type": mime_type},
        )
        return document_to_dict(document)

    async def process_document(
        self,
        document_id: UUID,
        user_id: UUID,
        extraction_client: BiomarkerExtractionClient,
    ) -> Dict[str, Any]:
        """Queue and run the processing pipeline for one document, to completion."""
        return await self.execute(
            action="process_document",
            document_id=document_id,
            user_id=user_id,
            extraction_client=extraction_client,
        )

    async def _process_document_logic(
        self,
        document_id: UUID,
        user_id: UUID,
        extraction_client: BiomarkerExtractionClient,
    ) -> Dict[str, Any]:
        document = await self.doc_repo.get_for_user(document_id, user_id)
        if document is None:
            raise DocumentNotFoundError(f"Document with ID {document_id} not found")

        recorder = DocumentProgressRecorder()
        await recorder.record(document_id, "queued", "Queued for processing...")

        pipeline = DocumentProcessingPipeline(
            self.session,
            extraction_client,
            storage=self.storage_service,
            recorder=recorder,
        )
        return await pipeline.process(document_id, user_id)

    async def list_documents(self, user_id: UUID, limit: int = 50, offset: int = 0) -> Dict[str, Any]:
        documents = await self.doc_repo.list_for_user(user_id, limit=limit, offset=offset)
        return {
            "documents": [document_to_dict(d) for d in documents],
            "total": len(documents),
        }

    async def get_document(self, document_id: UUID, user_id: UUID) -> Dict[str, Any]:
        document = await self.doc_repo.get_for_user(document_id, user_id)
        if document is None:
            raise DocumentNotFoundError(f"Document with ID {document_id} not found")
        return document_to_dict(document)

    async def get_biomarkers(self, document_id: UUID, user_id: UUID) -> Dict[str, Any]:
        document = await self.doc_repo.get_for_user(document_id, user_id)
        if document is None:
            raise DocumentNotFoundError(f"Document with ID {document_id} not found")
        readings: List[BiomarkerReading] = await self.reading_repo.list_for_document(document_id)
        return {
            "document_id": str(document_id),
            "biomarkers": [reading_to_dict(r) for r in readings],
            "total": len(readings),
        }

    async def delete_document(self, document_id: UUID, user_id: UUID) -> bool:
        """Delete the stored file, the readings and the document row."""
        document = await self.doc_repo.get_for_user(document_id, user_id)
        if document is None:
            raise DocumentNotFoundError(f"Document with ID {document_id} not found")

        await self.storage_service.delete_file(settings.documents_bucket, document.storage_path)
        await self.reading_repo.delete_for_document(document_id)
        deleted = await self.doc_repo.delete(document_id)

        LOGGER.info("Document deleted", extra={"document_id": str(document_id)})
        return deleted
