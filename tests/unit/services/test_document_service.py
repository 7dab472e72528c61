from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest

from bloodwork.core.exceptions import (
    AppError,
    DocumentNotFoundError,
    FileTooLargeError,
    StorageError,
    UnsupportedDocumentTypeError,
    ValidationError,
)
from bloodwork.services.document_service import DocumentService

SERVICE_MODULE = "bloodwork.services.document_service"


def _document(user_id, **overrides):
    fields = dict(
        id=uuid4(),
        user_id=user_id,
        filename="1700000000000_labs.pdf",
        original_name="labs.pdf",
        mime_type="application/pdf",
        file_size=4,
        storage_path=f"{user_id}/1700000000000_labs.pdf",
        status="pending",
        processing_errors=None,
        ocr_data=None,
        processing_metadata=None,
        uploaded_at=datetime(2026, 3, 1, tzinfo=timezone.utc),
        processing_started_at=None,
        processed_at=None,
    )
    fields.update(overrides)
    return SimpleNamespace(**fields)


@pytest.fixture
def storage():
    storage = MagicMock()
    storage.upload_file = AsyncMock(return_value={})
    storage.delete_file = AsyncMock()
    return storage


@pytest.fixture
def service(mock_session, storage):
    service = DocumentService(mock_session, storage=storage)
    service.doc_repo = MagicMock()
    service.reading_repo = MagicMock()
    return service


@pytest.mark.asyncio
async def test_upload_stores_file_then_creates_pending_row(service, storage):
    user_id = uuid4()
    document = _document(user_id)
    service.doc_repo.create_document = AsyncMock(return_value=document)

    result = await service.upload_document(user_id, "labs.pdf", "application/pdf", b"%PDF")

    storage.upload_file.assert_awaited_once()
    upload_kwargs = storage.upload_file.call_args.kwargs
    assert upload_kwargs["path"].startswith(f"{user_id}/")
    assert upload_kwargs["path"].endswith("_labs.pdf")
    assert upload_kwargs["content_type"] == "application/pdf"

    create_kwargs = service.doc_repo.create_document.call_args.kwargs
    assert create_kwargs["original_name"] == "labs.pdf"
    assert create_kwargs["file_size"] == 4
    assert create_kwargs["storage_path"] == upload_kwargs["path"]
    assert result["status"] == "pending"
    assert result["id"] == str(document.id)


@pytest.mark.asyncio
async def test_upload_rejects_unsupported_type_before_storage(service, storage):
    with pytest.raises(UnsupportedDocumentTypeError):
        await service.upload_document(uuid4(), "notes.txt", "text/plain", b"hello")

    storage.upload_file.assert_not_awaited()


@pytest.mark.asyncio
async def test_upload_rejects_oversized_file(service, storage):
    with patch(f"{SERVICE_MODULE}.settings") as settings:
        settings.pipeline.max_upload_bytes = 3
        with pytest.raises(FileTooLargeError):
            await service.upload_document(uuid4(), "labs.pdf", "application/pdf", b"%PDF")

    storage.upload_file.assert_not_awaited()


@pytest.mark.asyncio
async def test_upload_rejects_empty_file(service):
    with pytest.raises(ValidationError, match="empty"):
        await service.upload_document(uuid4(), "labs.png", "image/png", b"")


@pytest.mark.asyncio
async def test_storage_failure_propagates_as_app_error(service, storage):
    storage.upload_file.side_effect = StorageError("Upload failed: bucket missing")

    with pytest.raises(StorageError):
        await service.upload_document(uuid4(), "labs.pdf", "application/pdf", b"%PDF")


@pytest.mark.asyncio
async def test_unexpected_failure_is_wrapped(service):
    service.doc_repo.create_document = AsyncMock(side_effect=KeyError("boom"))

    with pytest.raises(AppError, match="Service execution failed"):
        await service.upload_document(uuid4(), "labs.pdf", "application/pdf", b"%PDF")


@pytest.mark.asyncio
async def test_process_unknown_document_raises_not_found(service):
    service.doc_repo.get_for_user = AsyncMock(return_value=None)

    with pytest.raises(DocumentNotFoundError):
        await service.process_document(uuid4(), uuid4(), extraction_client=MagicMock())


@pytest.mark.asyncio
async def test_process_queues_then_runs_pipeline(service):
    user_id = uuid4()
    document = _document(user_id)
    service.doc_repo.get_for_user = AsyncMock(return_value=document)
    pipeline_result = {"documentId": str(document.id), "status": "completed"}

    with patch(f"{SERVICE_MODULE}.DocumentProgressRecorder") as recorder_cls, \
            patch(f"{SERVICE_MODULE}.DocumentProcessingPipeline") as pipeline_cls:
        recorder_cls.return_value.record = AsyncMock()
        pipeline_cls.return_value.process = AsyncMock(return_value=pipeline_result)

        result = await service.process_document(document.id, user_id, extraction_client=MagicMock())

    assert result == pipeline_result
    recorder_cls.return_value.record.assert_awaited_once_with(
        document.id, "queued", "Queued for processing..."
    )
    pipeline_cls.return_value.process.assert_awaited_once_with(document.id, user_id)


@pytest.mark.asyncio
async def test_get_biomarkers_for_foreign_document_is_not_found(service):
    service.doc_repo.get_for_user = AsyncMock(return_value=None)

    with pytest.raises(DocumentNotFoundError):
        await service.get_biomarkers(uuid4(), uuid4())


@pytest.mark.asyncio
async def test_delete_removes_blob_readings_and_row(service, storage):
    user_id = uuid4()
    document = _document(user_id)
    service.doc_repo.get_for_user = AsyncMock(return_value=document)
    service.doc_repo.delete = AsyncMock(return_value=True)
    service.reading_repo.delete_for_document = AsyncMock()

    assert await service.delete_document(document.id, user_id) is True

    storage.delete_file.assert_awaited_once_with("documents", document.storage_path)
    service.reading_repo.delete_for_document.assert_awaited_once_with(document.id)


@pytest.mark.asyncio
async def test_list_documents(service):
    user_id = uuid4()
    service.doc_repo.list_for_user = AsyncMock(return_value=[_document(user_id), _document(user_id)])

    result = await service.list_documents(user_id)

    assert result["total"] == 2
    assert result["documents"][0]["original_name"] == "labs.pdf"
