"""Document processing pipeline: file bytes to persisted biomarker readings.

Phases run in a fixed order and each one is announced through the
document progress recorder before it starts:

    validation -> download -> ocr -> ai_extraction -> saving -> complete

``queued`` is written by the trigger before the pipeline is called. Any
failure records an ``error`` phase, marks the document ``failed`` and
propagates to the caller.
"""

import functools
import traceback
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from bloodwork.core.config import settings
from bloodwork.core.exceptions import DocumentNotFoundError
from bloodwork.repositories.biomarker_repository import (
    BiomarkerCatalogRepository,
    BiomarkerReadingRepository,
)
from bloodwork.repositories.document_repository import DocumentRepository
from bloodwork.schemas.extraction import MatchedBiomarker
from bloodwork.services.ai.biomarker_extraction import (
    BiomarkerExtractionClient,
    BiomarkerExtractionResult,
)
from bloodwork.services.extraction.text_extractor import get_text_extractor
from bloodwork.services.matching.biomarker_matcher import CatalogEntry
from bloodwork.services.progress.progress_recorder import DocumentProgressRecorder
from bloodwork.services.progress.reasoning_narrator import ReasoningNarrator
from bloodwork.services.status.biomarker_status import UNKNOWN_STATUS, classify_value
from bloodwork.services.storage_service import StorageService
from bloodwork.utils.logging import get_logger

LOGGER = get_logger(__name__)


class DocumentProcessingPipeline:
    """Runs one document through text extraction and biomarker extraction."""

    def __init__(
        self,
        session: AsyncSession,
        extraction_client: BiomarkerExtractionClient,
        storage: Optional[StorageService] = None,
        recorder: Optional[DocumentProgressRecorder] = None,
        bucket: Optional[str] = None,
        ocr_options: Optional[Dict[str, Any]] = None,
        error_trace_max_chars: Optional[int] = None,
    ):
        self.session = session
        self.extraction_client = extraction_client
        self.storage = storage or StorageService()
        self.recorder = recorder or DocumentProgressRecorder()
        self.bucket = bucket or settings.documents_bucket
        self.ocr_options = ocr_options or {}
        self.error_trace_max_chars = (
            error_trace_max_chars
            if error_trace_max_chars is not None
            else settings.pipeline.error_trace_max_chars
        )

        self.documents = DocumentRepository(session)
        self.catalog = BiomarkerCatalogRepository(session)
        self.readings = BiomarkerReadingRepository(session)

    async def process(self, document_id: UUID, user_id: UUID) -> Dict[str, Any]:
        """Process one document end to end.

        Args:
            document_id: Document to process
            user_id: Owner; documents of other users are not found

        Returns:
            Summary of the extraction

        Raises:
            DocumentNotFoundError: If the document does not exist for this user
            AppError: Any phase failure, after the document is marked failed
        """
        document = await self.documents.get_for_user(document_id, user_id)
        if document is None:
            raise DocumentNotFoundError(f"Document {document_id} not found")

        LOGGER.info(
            "Starting document processing",
            extra={"document_id": str(document_id), "mime_type": document.mime_type},
        )

        try:
            await self.recorder.record(document_id, "validation", "Validating document...")
            extractor = get_text_extractor(document.mime_type, **self.ocr_options)
            await self.documents.mark_processing_started(document_id)

            await self.recorder.record(
                document_id, "download", "Downloading document from storage..."
            )
            content = await self.storage.download_file(self.bucket, document.storage_path)

            await self.recorder.record(
                document_id,
                "ocr",
                f"Extracting text from {extractor.format.value}...",
                {"format": extractor.format.value, "size_bytes": len(content)},
            )
            extracted_text = await extractor.extract(content)
            await self.documents.save_ocr_data(
                document_id, extracted_text.text, extracted_text.confidence
            )

            await self.recorder.record(
                document_id,
                "ai_extraction",
                "AI is analyzing the document...",
                {"step": "starting", "textLength": len(extracted_text.text)},
            )
            catalog = [CatalogEntry.from_model(b) for b in await self.catalog.get_catalog()]
            narrator = ReasoningNarrator(
                functools.partial(self.recorder.record, document_id, "ai_extraction")
            )
            result = await self.extraction_client.extract(
                extracted_text.text,
                catalog,
                narrator=narrator,
                user_id=user_id,
                request_id=str(document_id),
            )

            await self.recorder.record(
                document_id,
                "saving",
                f"Saving {len(result.biomarkers)} biomarkers...",
                {"biomarkersFound": len(result.biomarkers), "matched": result.matched_count},
            )
            await self._save_results(document_id, user_id, result, catalog)

            await self.recorder.record(
                document_id,
                "complete",
                f"Extracted {len(result.biomarkers)} biomarkers",
                {
                    "biomarkersFound": len(result.biomarkers),
                    "matched": result.matched_count,
                    "confidence": result.confidence,
                },
            )
        except Exception as e:
            await self._fail(document_id, e)
            raise

        LOGGER.info(
            "Document processing completed",
            extra={"document_id": str(document_id), "biomarkers": len(result.biomarkers)},
        )
        return {
            "documentId": str(document_id),
            "status": "completed",
            "biomarkersFound": len(result.biomarkers),
            "matchedBiomarkers": result.matched_count,
            "confidence": result.confidence,
            "documentType": result.document_type,
            "processingNotes": result.notes,
            "textConfidence": extracted_text.confidence,
        }

    async def _save_results(
        self,
        document_id: UUID,
        user_id: UUID,
        result: BiomarkerExtractionResult,
        catalog: List[CatalogEntry],
    ) -> None:
        entries = {entry.id: entry for entry in catalog}
        rows = [
            self._reading_row(document_id, user_id, biomarker, entries.get(biomarker.biomarker_id))
            for biomarker in result.biomarkers
        ]
        await self.readings.create_readings(rows)
        await self.documents.save_extraction_results(
            document_id,
            [biomarker.model_dump(mode="json") for biomarker in result.biomarkers],
            {
                "document_type": result.document_type,
                "biomarkers_found": len(result.biomarkers),
                "overall_confidence": result.confidence,
                "processing_notes": result.notes,
                "model": result.model,
            },
        )

    @staticmethod
    def _reading_row(
        document_id: UUID,
        user_id: UUID,
        biomarker: MatchedBiomarker,
        entry: Optional[CatalogEntry],
    ) -> Dict[str, Any]:
        classification = (
            classify_value(biomarker.value, entry.optimal_min, entry.optimal_max)
            if entry is not None
            else UNKNOWN_STATUS
        )
        return {
            "user_id": user_id,
            "document_id": document_id,
            "biomarker_id": biomarker.biomarker_id,
            "name": biomarker.name,
            "value": biomarker.value,
            "unit": biomarker.unit,
            "reference_range": biomarker.reference_range,
            "confidence": biomarker.confidence,
            "matched_from_db": biomarker.matched_from_db,
            "category": entry.category if entry is not None else biomarker.category,
            "status": classification.status,
            "severity": classification.severity,
            "source_text": biomarker.source_text,
        }

    async def _fail(self, document_id: UUID, error: Exception) -> None:
        LOGGER.error(
            "Document processing failed",
            exc_info=True,
            extra={"document_id": str(document_id), "error_type": type(error).__name__},
        )
        stack = "".join(traceback.format_exception(type(error), error, error.__traceback__))
        await self.recorder.record(
            document_id,
            "error",
            f"Processing failed: {error}",
            {
                "error": str(error),
                "errorType": type(error).__name__,
                "stack": stack[: self.error_trace_max_chars],
            },
        )
        try:
            await self.session.rollback()
            await self.documents.mark_failed(document_id, str(error))
        except Exception:
            LOGGER.error(
                "Could not mark document as failed",
                exc_info=True,
                extra={"document_id": str(document_id)},
            )
