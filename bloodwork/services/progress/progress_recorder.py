"""Best-effort, append-only progress logging for documents and analyses.

``record`` never raises. Each write runs in its own short-lived session so
a failing pipeline transaction cannot roll back the audit trail. The
returned ``RecordOutcome`` tells the caller whether the row landed; the
recorder has already logged any failure.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Set
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from bloodwork.core.database import async_session_maker
from bloodwork.repositories.analysis_repository import AnalysisRepository
from bloodwork.repositories.document_repository import DocumentRepository
from bloodwork.repositories.processing_update_repository import (
    AnalysisUpdateRepository,
    DocumentUpdateRepository,
)
from bloodwork.utils.logging import get_logger

LOGGER = get_logger(__name__)

TERMINAL_PHASES = frozenset({"complete", "error"})


@dataclass(frozen=True)
class RecordOutcome:
    written: bool
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.written and self.error is None


class ProgressRecorder(ABC):
    """Shared write path; subclasses choose the tables."""

    kind = "job"

    def __init__(self, session_factory: Callable[[], Any] = async_session_maker):
        self._session_factory = session_factory
        self._terminated: Set[UUID] = set()

    async def record(
        self,
        target_id: UUID,
        phase: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> RecordOutcome:
        """Append one progress row and mirror a summary onto the parent.

        Rows for a target are dropped once a terminal phase was recorded.
        """
        if target_id in self._terminated:
            LOGGER.warning(
                f"Dropping {self.kind} progress after terminal phase",
                extra={"target_id": str(target_id), "phase": phase},
            )
            return RecordOutcome(written=False)

        if phase in TERMINAL_PHASES:
            self._terminated.add(target_id)

        try:
            async with self._session_factory() as session:
                await self._write(session, target_id, phase, message, details or {})
        except Exception as e:
            LOGGER.error(
                f"Failed to record {self.kind} progress",
                exc_info=True,
                extra={"target_id": str(target_id), "phase": phase, "error": str(e)},
            )
            return RecordOutcome(written=False, error=e)

        LOGGER.debug(
            f"{self.kind} progress recorded",
            extra={"target_id": str(target_id), "phase": phase, "progress_message": message},
        )
        return RecordOutcome(written=True)

    def reset(self, target_id: UUID) -> None:
        """Allow a fresh run for a target that previously reached a terminal phase."""
        self._terminated.discard(target_id)

    @abstractmethod
    async def _write(
        self,
        session: AsyncSession,
        target_id: UUID,
        phase: str,
        message: str,
        details: Dict[str, Any],
    ) -> None:
        """Insert the row and mirror status inside ``session``."""


class DocumentProgressRecorder(ProgressRecorder):
    """Writes ``document_processing_updates`` and mirrors Document.status."""

    kind = "document"

    async def _write(self, session, target_id, phase, message, details) -> None:
        await DocumentUpdateRepository(session).add_update(target_id, phase, message, details)

        now = datetime.now(timezone.utc)
        documents = DocumentRepository(session)
        if phase == "complete":
            await documents.update_status(
                target_id, "completed", processed_at=now, processing_completed_at=now
            )
        elif phase == "error":
            await documents.update_status(target_id, "failed", processing_completed_at=now)
        else:
            await documents.update_status(target_id, "processing")


class AnalysisProgressRecorder(ProgressRecorder):
    """Writes ``analysis_processing_updates`` and touches HealthAnalysis.last_update_at.

    Analysis and phase statuses are owned by the analysis pipeline.
    """

    kind = "analysis"

    async def _write(self, session, target_id, phase, message, details) -> None:
        await AnalysisUpdateRepository(session).add_update(target_id, phase, message, details)
        await AnalysisRepository(session).update(
            target_id, last_update_at=datetime.now(timezone.utc)
        )
