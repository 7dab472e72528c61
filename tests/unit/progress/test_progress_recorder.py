from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest
from sqlalchemy.exc import OperationalError

from bloodwork.services.progress.progress_recorder import (
    AnalysisProgressRecorder,
    DocumentProgressRecorder,
)

RECORDER_MODULE = "bloodwork.services.progress.progress_recorder"


@pytest.fixture
def document_repos():
    with patch(f"{RECORDER_MODULE}.DocumentUpdateRepository") as updates, \
            patch(f"{RECORDER_MODULE}.DocumentRepository") as documents:
        updates.return_value.add_update = AsyncMock()
        documents.return_value.update_status = AsyncMock(return_value=True)
        yield updates.return_value, documents.return_value


@pytest.mark.asyncio
async def test_record_writes_row_and_marks_document_processing(session_factory, document_repos):
    updates, documents = document_repos
    recorder = DocumentProgressRecorder(session_factory)
    document_id = uuid4()

    outcome = await recorder.record(document_id, "ocr", "Extracting text...", {"step": "ocr"})

    assert outcome.ok
    updates.add_update.assert_awaited_once_with(document_id, "ocr", "Extracting text...", {"step": "ocr"})
    documents.update_status.assert_awaited_once_with(document_id, "processing")


@pytest.mark.asyncio
async def test_complete_and_error_mirror_terminal_document_status(session_factory, document_repos):
    _, documents = document_repos
    recorder = DocumentProgressRecorder(session_factory)
    done, broken = uuid4(), uuid4()

    await recorder.record(done, "complete", "Processing complete!")
    await recorder.record(broken, "error", "Processing failed")

    first, second = documents.update_status.await_args_list
    assert first.args == (done, "completed")
    assert "processed_at" in first.kwargs
    assert second.args == (broken, "failed")
    assert "processed_at" not in second.kwargs


@pytest.mark.asyncio
async def test_database_failure_is_reported_not_raised(session_factory, document_repos):
    updates, _ = document_repos
    updates.add_update.side_effect = OperationalError("INSERT", {}, Exception("connection lost"))
    recorder = DocumentProgressRecorder(session_factory)

    outcome = await recorder.record(uuid4(), "download", "Downloading file...")

    assert outcome.written is False
    assert isinstance(outcome.error, OperationalError)
    assert not outcome.ok


@pytest.mark.asyncio
async def test_session_open_failure_is_reported_not_raised(document_repos):
    def broken_factory():
        raise RuntimeError("pool exhausted")

    recorder = DocumentProgressRecorder(broken_factory)

    outcome = await recorder.record(uuid4(), "validation", "Validating document...")

    assert outcome.written is False
    assert isinstance(outcome.error, RuntimeError)


@pytest.mark.asyncio
async def test_writes_after_terminal_phase_are_dropped(session_factory, document_repos):
    updates, _ = document_repos
    recorder = DocumentProgressRecorder(session_factory)
    document_id = uuid4()

    await recorder.record(document_id, "error", "Processing failed")
    late = await recorder.record(document_id, "saving", "Saving results...")

    assert late.written is False
    assert late.error is None
    assert updates.add_update.await_count == 1


@pytest.mark.asyncio
async def test_terminal_drop_is_per_target(session_factory, document_repos):
    updates, _ = document_repos
    recorder = DocumentProgressRecorder(session_factory)

    await recorder.record(uuid4(), "complete", "Processing complete!")
    outcome = await recorder.record(uuid4(), "queued", "Queued for processing...")

    assert outcome.ok
    assert updates.add_update.await_count == 2


@pytest.mark.asyncio
async def test_reset_allows_a_new_run(session_factory, document_repos):
    recorder = DocumentProgressRecorder(session_factory)
    document_id = uuid4()

    await recorder.record(document_id, "complete", "Processing complete!")
    recorder.reset(document_id)
    outcome = await recorder.record(document_id, "queued", "Queued for processing...")

    assert outcome.ok


@pytest.mark.asyncio
async def test_analysis_recorder_touches_last_update(session_factory):
    analysis_id = uuid4()
    with patch(f"{RECORDER_MODULE}.AnalysisUpdateRepository") as updates, \
            patch(f"{RECORDER_MODULE}.AnalysisRepository") as analyses:
        updates.return_value.add_update = AsyncMock()
        analyses.return_value.update = AsyncMock()
        recorder = AnalysisProgressRecorder(session_factory)

        outcome = await recorder.record(analysis_id, "core", "Core analysis completed", {"phase": "core"})

    assert outcome.ok
    updates.return_value.add_update.assert_awaited_once_with(
        analysis_id, "core", "Core analysis completed", {"phase": "core"}
    )
    _, kwargs = analyses.return_value.update.call_args
    assert "last_update_at" in kwargs
