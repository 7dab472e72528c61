"""Phase vocabularies, progress mapping and terminal-state rules."""

from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence


class PhaseStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


DOCUMENT_PHASES: Sequence[str] = (
    "queued",
    "validation",
    "download",
    "ocr",
    "ai_extraction",
    "saving",
    "complete",
    "error",
)
_DOCUMENT_PHASE_RANK = {phase: rank for rank, phase in enumerate(DOCUMENT_PHASES)}

PHASE_PROGRESS: Dict[str, int] = {
    "pending": 0,
    "queued": 5,
    "validation": 10,
    "download": 20,
    "ocr": 40,
    "ai_extraction": 70,
    "saving": 90,
    "complete": 100,
    "completed": 100,
    "error": 0,
    "failed": 0,
}

DOCUMENT_STATUS_MESSAGES: Dict[str, str] = {
    "pending": "Waiting to start...",
    "queued": "Queued for processing...",
    "processing": "Processing document...",
    "completed": "Processing complete!",
    "failed": "Processing failed",
    "error": "An error occurred",
}

ANALYSIS_PHASES: Sequence[str] = ("core", "supplements", "diet", "lifestyle", "workout")
RECOMMENDATION_PHASES: Sequence[str] = ANALYSIS_PHASES[1:]

ANALYSIS_PHASE_WEIGHTS: Dict[str, int] = {
    "core": 40,
    "supplements": 15,
    "diet": 15,
    "lifestyle": 15,
    "workout": 15,
}

ANALYSIS_STATUS_MESSAGES: Dict[str, str] = {
    "pending": "Waiting to start...",
    "processing": "Analyzing biomarkers...",
    "completed": "Analysis complete!",
    "failed": "Analysis failed",
}

_UNFINISHED = {PhaseStatus.PENDING.value, PhaseStatus.PROCESSING.value}


def document_phase_rank(phase: str) -> int:
    """Order of a document phase; unknown phases sort first."""
    return _DOCUMENT_PHASE_RANK.get(phase, -1)


def document_progress(phase_or_status: Optional[str]) -> int:
    return PHASE_PROGRESS.get(phase_or_status or "pending", 0)


def _update_key(update: Any, position: int):
    created = update.created_at.timestamp() if update.created_at else 0.0
    return created, position


def current_run_updates(updates: Iterable[Any]) -> List[Any]:
    """Updates logged by the newest run of a document.

    Every run starts with a ``queued`` row, so rows before the newest one
    belong to earlier attempts. Without a ``queued`` row every update counts.
    """
    indexed = sorted(enumerate(updates), key=lambda item: _update_key(item[1], item[0]))
    ordered = [update for _, update in indexed]
    start = 0
    for index, update in enumerate(ordered):
        if update.phase == "queued":
            start = index
    return ordered[start:]


def latest_document_update(updates: Iterable[Any]) -> Optional[Any]:
    """Pick the update that defines the current document status.

    Only the newest run is considered. Within it the highest phase wins;
    among rows of the same phase the newest wins.
    """
    latest = None
    latest_key = None
    for position, update in enumerate(current_run_updates(updates)):
        key = (document_phase_rank(update.phase), position)
        if latest_key is None or key > latest_key:
            latest, latest_key = update, key
    return latest


def is_analysis_failed(phase_statuses: Mapping[str, str]) -> bool:
    """A failed core phase fails the whole analysis."""
    return phase_statuses.get("core") == PhaseStatus.FAILED.value


def is_analysis_done(phase_statuses: Mapping[str, str]) -> bool:
    """All phases present and settled, with a completed core.

    Recommendation phases may have failed; partial results still count.
    """
    if any(phase not in phase_statuses for phase in ANALYSIS_PHASES):
        return False
    if any(phase_statuses[phase] in _UNFINISHED for phase in ANALYSIS_PHASES):
        return False
    return phase_statuses["core"] == PhaseStatus.COMPLETED.value


def analysis_progress(phase_statuses: Mapping[str, str]) -> int:
    """Weighted share of phases that have settled."""
    if is_analysis_done(phase_statuses):
        return 100
    settled = sum(
        weight
        for phase, weight in ANALYSIS_PHASE_WEIGHTS.items()
        if phase_statuses.get(phase) in (PhaseStatus.COMPLETED.value, PhaseStatus.FAILED.value)
    )
    return min(settled, 99)


def analysis_phase_statuses(analysis: Any) -> Dict[str, str]:
    """Read the five phase status columns of a HealthAnalysis."""
    return {phase: getattr(analysis, f"{phase}_status") for phase in ANALYSIS_PHASES}
