from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

from bloodwork.api.dependencies import get_extraction_client
from bloodwork.api.v1.endpoints import health
from bloodwork.api.v1.endpoints.documents import get_document_service, get_status_service
from bloodwork.core.exceptions import (
    DocumentNotFoundError,
    FileTooLargeError,
    StructuredResponseError,
    UnsupportedDocumentTypeError,
)
from bloodwork.main import app


def _override_document_service(service):
    app.dependency_overrides[get_document_service] = lambda: service


def test_root_endpoint(test_client):
    response = test_client.get("/")

    assert response.status_code == 200
    assert response.json()["health"] == "/health"


def test_health_reports_database_and_ai(test_client):
    db_health = {"status": "healthy", "connected": True, "database": "postgresql"}
    with patch.object(health.db_client, "health_check", AsyncMock(return_value=db_health)):
        response = test_client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["database"]["connected"] is True
    assert body["ai_configured"] is False


def test_upload_document_success(test_client, sample_pdf_content):
    user_id = uuid4()
    service = MagicMock()
    service.upload_document = AsyncMock(return_value={"id": str(uuid4()), "status": "pending"})
    _override_document_service(service)

    response = test_client.post(
        "/api/v1/documents/upload",
        files={"file": ("labs.pdf", sample_pdf_content, "application/pdf")},
        data={"user_id": str(user_id)},
    )

    assert response.status_code == 201
    body = response.json()
    assert body["status"] is True
    assert body["data"]["status"] == "pending"
    kwargs = service.upload_document.call_args.kwargs
    assert kwargs["user_id"] == user_id
    assert kwargs["filename"] == "labs.pdf"
    assert kwargs["content_type"] == "application/pdf"
    assert kwargs["content"] == sample_pdf_content


def test_upload_unsupported_type_returns_400(test_client):
    service = MagicMock()
    service.upload_document = AsyncMock(side_effect=UnsupportedDocumentTypeError("Unsupported file type: text/plain"))
    _override_document_service(service)

    response = test_client.post(
        "/api/v1/documents/upload",
        files={"file": ("notes.txt", b"hello", "text/plain")},
        data={"user_id": str(uuid4())},
    )

    assert response.status_code == 400
    detail = response.json()["detail"]
    assert detail["title"] == "Validation Error"
    assert "text/plain" in detail["detail"]


def test_upload_too_large_returns_413(test_client, sample_pdf_content):
    service = MagicMock()
    service.upload_document = AsyncMock(side_effect=FileTooLargeError("File is too big"))
    _override_document_service(service)

    response = test_client.post(
        "/api/v1/documents/upload",
        files={"file": ("labs.pdf", sample_pdf_content, "application/pdf")},
        data={"user_id": str(uuid4())},
    )

    assert response.status_code == 413


def test_upload_over_limit_is_rejected_before_service(test_client, sample_pdf_content):
    service = MagicMock()
    service.upload_document = AsyncMock()
    _override_document_service(service)
    limits = SimpleNamespace(pipeline=SimpleNamespace(max_upload_bytes=8))

    with patch("bloodwork.api.v1.endpoints.documents.settings", limits):
        response = test_client.post(
            "/api/v1/documents/upload",
            files={"file": ("labs.pdf", sample_pdf_content, "application/pdf")},
            data={"user_id": str(uuid4())},
        )

    assert len(sample_pdf_content) > 8
    assert response.status_code == 413
    assert "8 bytes" in response.json()["detail"]["detail"]
    service.upload_document.assert_not_awaited()


def test_upload_at_limit_passes_full_content(test_client):
    service = MagicMock()
    service.upload_document = AsyncMock(return_value={"id": str(uuid4()), "status": "pending"})
    _override_document_service(service)
    limits = SimpleNamespace(pipeline=SimpleNamespace(max_upload_bytes=8))

    with patch("bloodwork.api.v1.endpoints.documents.settings", limits):
        response = test_client.post(
            "/api/v1/documents/upload",
            files={"file": ("labs.pdf", b"%PDF-1.4", "application/pdf")},
            data={"user_id": str(uuid4())},
        )

    assert response.status_code == 201
    assert service.upload_document.call_args.kwargs["content"] == b"%PDF-1.4"


def test_process_document_runs_pipeline(test_client):
    document_id, user_id = uuid4(), uuid4()
    service = MagicMock()
    service.process_document = AsyncMock(return_value={
        "documentId": str(document_id),
        "status": "completed",
        "biomarkersFound": 12,
        "matchedBiomarkers": 10,
    })
    extraction_client = MagicMock()
    _override_document_service(service)
    app.dependency_overrides[get_extraction_client] = lambda: extraction_client

    response = test_client.post(
        "/api/v1/documents/process",
        json={"documentId": str(document_id), "userId": str(user_id)},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Extracted 12 biomarkers"
    assert body["data"]["matchedBiomarkers"] == 10
    service.process_document.assert_awaited_once_with(document_id, user_id, extraction_client)


def test_process_document_ai_failure_returns_502(test_client):
    service = MagicMock()
    service.process_document = AsyncMock(side_effect=StructuredResponseError("Model output is not valid JSON"))
    _override_document_service(service)
    app.dependency_overrides[get_extraction_client] = lambda: MagicMock()

    response = test_client.post(
        "/api/v1/documents/process",
        json={"documentId": str(uuid4()), "userId": str(uuid4())},
    )

    assert response.status_code == 502
    assert response.json()["detail"]["title"] == "Invalid AI Response"


def test_process_without_ai_client_is_misconfigured(test_client):
    _override_document_service(MagicMock())

    response = test_client.post(
        "/api/v1/documents/process",
        json={"documentId": str(uuid4()), "userId": str(uuid4())},
    )

    assert response.status_code == 500
    assert response.json()["detail"]["title"] == "Service Misconfigured"


def test_process_requires_document_id(test_client):
    _override_document_service(MagicMock())
    app.dependency_overrides[get_extraction_client] = lambda: MagicMock()

    response = test_client.post("/api/v1/documents/process", json={"userId": str(uuid4())})

    assert response.status_code == 422


def test_document_status_by_job_id(test_client):
    document_id, user_id = uuid4(), uuid4()
    status_service = MagicMock()
    status_service.get_document_status = AsyncMock(return_value={
        "status": "processing",
        "progress": 70,
        "currentPhase": "ai_extraction",
        "thoughtProcess": "Matching vitamin names",
    })
    app.dependency_overrides[get_status_service] = lambda: status_service

    response = test_client.get(
        "/api/v1/documents/status", params={"jobId": str(document_id), "user_id": str(user_id)}
    )

    assert response.status_code == 200
    assert response.json()["data"]["progress"] == 70
    status_service.get_document_status.assert_awaited_once_with(document_id, user_id)


def test_document_status_not_found(test_client):
    status_service = MagicMock()
    status_service.get_document_status = AsyncMock(side_effect=DocumentNotFoundError("Document not found"))
    app.dependency_overrides[get_status_service] = lambda: status_service

    response = test_client.get(
        "/api/v1/documents/status", params={"jobId": str(uuid4()), "user_id": str(uuid4())}
    )

    assert response.status_code == 404
    assert response.json()["detail"]["title"] == "Document Not Found"


def test_get_document_biomarkers(test_client):
    document_id = uuid4()
    service = MagicMock()
    service.get_biomarkers = AsyncMock(return_value={
        "document_id": str(document_id),
        "biomarkers": [{"name": "Vitamin D", "status": "deficient"}],
        "total": 1,
    })
    _override_document_service(service)

    response = test_client.get(
        f"/api/v1/documents/{document_id}/biomarkers", params={"user_id": str(uuid4())}
    )

    assert response.status_code == 200
    assert response.json()["data"]["total"] == 1


def test_delete_document(test_client):
    service = MagicMock()
    service.delete_document = AsyncMock(return_value=True)
    _override_document_service(service)

    response = test_client.delete(f"/api/v1/documents/{uuid4()}", params={"user_id": str(uuid4())})

    assert response.status_code == 200
    assert response.json()["message"] == "Document deleted successfully"


def test_correlation_id_is_echoed(test_client):
    service = MagicMock()
    service.list_documents = AsyncMock(return_value={"documents": [], "total": 0})
    _override_document_service(service)

    response = test_client.get(
        "/api/v1/documents",
        params={"user_id": str(uuid4())},
        headers={"X-Correlation-ID": "req-123"},
    )

    assert response.status_code == 200
    assert response.headers["X-Correlation-ID"] == "req-123"
    assert response.json()["meta"]["request_id"] == "req-123"
