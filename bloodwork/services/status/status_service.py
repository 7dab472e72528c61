"""Read-side status views polled by clients."""

from typing import Any, Dict, Iterable, List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from bloodwork.core.exceptions import AnalysisNotFoundError, DocumentNotFoundError
from bloodwork.repositories.analysis_repository import AnalysisRepository
from bloodwork.repositories.document_repository import DocumentRepository
from bloodwork.repositories.processing_update_repository import (
    AnalysisUpdateRepository,
    DocumentUpdateRepository,
)
from bloodwork.services.status.phase_status import (
    ANALYSIS_STATUS_MESSAGES,
    DOCUMENT_STATUS_MESSAGES,
    PHASE_PROGRESS,
    analysis_phase_statuses,
    analysis_progress,
    document_progress,
    is_analysis_done,
    is_analysis_failed,
    current_run_updates,
    latest_document_update,
)
from bloodwork.utils.logging import get_logger

LOGGER = get_logger(__name__)


def _iso(value: Any) -> Optional[str]:
    return value.isoformat() if value is not None else None


def latest_thought_process(updates: Iterable[Any]) -> Optional[str]:
    """Reasoning text of the newest update that carries any."""
    thought = None
    for update in updates:
        details = update.details or {}
        if details.get("thoughtProcess"):
            thought = details["thoughtProcess"]
    return thought


def serialize_update(update: Any) -> Dict[str, Any]:
    return {
        "phase": update.phase,
        "message": update.message,
        "details": update.details or {},
        "createdAt": _iso(update.created_at),
    }


def build_document_status(document: Any, updates: List[Any]) -> Dict[str, Any]:
    """Assemble the document status payload from the row and its update log."""
    run_updates = current_run_updates(updates)
    latest = latest_document_update(run_updates)
    status = document.status or "pending"

    if latest is not None and latest.phase in PHASE_PROGRESS:
        progress = PHASE_PROGRESS[latest.phase]
    else:
        progress = document_progress(status)

    return {
        "status": status,
        "progress": progress,
        "currentPhase": latest.phase if latest is not None else status,
        "currentMessage": (
            latest.message
            if latest is not None and latest.message
            else DOCUMENT_STATUS_MESSAGES.get(status, DOCUMENT_STATUS_MESSAGES["processing"])
        ),
        "thoughtProcess": latest_thought_process(run_updates),
        "updates": [serialize_update(u) for u in updates],
        "document": {
            "id": str(document.id),
            "filename": document.filename,
            "mimeType": document.mime_type,
            "status": status,
            "uploadedAt": _iso(document.uploaded_at),
            "processedAt": _iso(document.processed_at),
            "processingErrors": document.processing_errors or [],
            "biomarkersFound": len(document.extracted_biomarkers or []),
        },
    }


def build_analysis_status(analysis: Any, updates: List[Any]) -> Dict[str, Any]:
    """Assemble the analysis status payload from the row and its update log."""
    phase_statuses = analysis_phase_statuses(analysis)
    status = analysis.status or "pending"
    latest = updates[-1] if updates else None
    is_failed = is_analysis_failed(phase_statuses) or status == "failed"

    return {
        "analysisId": str(analysis.id),
        "status": status,
        "progress": analysis_progress(phase_statuses),
        "currentPhase": latest.phase if latest is not None else status,
        "currentMessage": (
            latest.message
            if latest is not None and latest.message
            else ANALYSIS_STATUS_MESSAGES.get(status, ANALYSIS_STATUS_MESSAGES["processing"])
        ),
        "thoughtProcess": latest_thought_process(updates),
        "phaseStatuses": phase_statuses,
        "isDone": is_analysis_done(phase_statuses),
        "isFailed": is_failed,
        "details": (latest.details or {}) if latest is not None else {},
        "lastUpdate": _iso(analysis.last_update_at),
        "errorMessage": analysis.error_message,
    }


class StatusService:
    """Status lookups scoped to the requesting user."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.documents = DocumentRepository(session)
        self.document_updates = DocumentUpdateRepository(session)
        self.analyses = AnalysisRepository(session)
        self.analysis_updates = AnalysisUpdateRepository(session)

    async def get_document_status(self, document_id: UUID, user_id: UUID) -> Dict[str, Any]:
        document = await self.documents.get_for_user(document_id, user_id)
        if document is None:
            raise DocumentNotFoundError(f"Document {document_id} not found")
        updates = await self.document_updates.list_updates(document_id)
        return build_document_status(document, updates)

    async def get_analysis_status(self, analysis_id: UUID, user_id: UUID) -> Dict[str, Any]:
        analysis = await self.analyses.get_for_user(analysis_id, user_id)
        if analysis is None:
            raise AnalysisNotFoundError(f"Analysis {analysis_id} not found")
        updates = await self.analysis_updates.list_updates(analysis_id)
        return build_analysis_status(analysis, updates)
