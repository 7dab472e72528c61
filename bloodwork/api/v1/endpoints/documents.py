from typing import Annotated, Any, Dict
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Request, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from bloodwork.api.dependencies import get_extraction_client
from bloodwork.core.config import settings
from bloodwork.core.database import get_async_session as get_session
from bloodwork.core.exceptions import AppError, FileTooLargeError
from bloodwork.schemas.common import ApiResponse
from bloodwork.schemas.requests import ProcessDocumentRequest
from bloodwork.services.ai.biomarker_extraction import BiomarkerExtractionClient
from bloodwork.services.document_service import DocumentService
from bloodwork.services.status.status_service import StatusService
from bloodwork.utils.logging import get_logger
from bloodwork.utils.responses import create_api_response, http_error_from_exception

LOGGER = get_logger(__name__)

router = APIRouter()


async def get_document_service(
    db_session: Annotated[AsyncSession, Depends(get_session)]
) -> DocumentService:
    return DocumentService(db_session)


async def get_status_service(
    db_session: Annotated[AsyncSession, Depends(get_session)]
) -> StatusService:
    return StatusService(db_session)


@router.post(
    "/upload",
    response_model=ApiResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Upload a lab report",
    operation_id="upload_document",
)
async def upload_document(
    request: Request,
    file: UploadFile = File(..., description="PDF or image of a lab report"),
    user_id: UUID = Form(...),
    document_service: Annotated[DocumentService, Depends(get_document_service)] = None,
) -> Dict[str, Any]:
    """Store the file and create its document in ``pending`` status."""
    limit = settings.pipeline.max_upload_bytes
    content = await file.read(limit + 1)
    try:
        if len(content) > limit:
            raise FileTooLargeError(f"File exceeds the upload limit of {limit} bytes")
        document = await document_service.upload_document(
            user_id=user_id,
            filename=file.filename or "",
            content_type=file.content_type or "",
            content=content,
        )
    except AppError as e:
        raise http_error_from_exception(e, request)

    return create_api_response(
        data=document,
        message="Document uploaded successfully",
        request=request
    )


@router.post(
    "/process",
    response_model=ApiResponse,
    summary="Process a document",
    operation_id="process_document",
)
async def process_document(
    request: Request,
    body: ProcessDocumentRequest,
    document_service: Annotated[DocumentService, Depends(get_document_service)] = None,
    extraction_client: Annotated[BiomarkerExtractionClient, Depends(get_extraction_client)] = None,
) -> Dict[str, Any]:
    """Run the whole processing pipeline and return once it finishes.

    Clients are expected to poll the status endpoint while this runs.
    """
    try:
        result = await document_service.process_document(
            body.document_id, body.user_id, extraction_client
        )
    except AppError as e:
        raise http_error_from_exception(e, request)

    return create_api_response(
        data=result,
        message=f"Extracted {result['biomarkersFound']} biomarkers",
        request=request
    )


@router.get(
    "/status",
    response_model=ApiResponse,
    summary="Get document processing status",
    operation_id="get_document_status",
)
async def get_document_status(
    request: Request,
    job_id: UUID = Query(..., alias="jobId"),
    user_id: UUID = Query(...),
    status_service: Annotated[StatusService, Depends(get_status_service)] = None,
) -> Dict[str, Any]:
    """Latest aggregated status derived from the progress log."""
    try:
        result = await status_service.get_document_status(job_id, user_id)
    except AppError as e:
        raise http_error_from_exception(e, request)

    return create_api_response(
        data=result,
        message="Document status retrieved successfully",
        request=request
    )


@router.get(
    "",
    response_model=ApiResponse,
    summary="List documents",
    operation_id="list_documents",
)
async def list_documents(
    request: Request,
    user_id: UUID = Query(...),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    document_service: Annotated[DocumentService, Depends(get_document_service)] = None,
) -> Dict[str, Any]:
    """List a user's documents, newest first."""
    documents = await document_service.list_documents(user_id, limit=limit, offset=offset)

    return create_api_response(
        data=documents,
        message="Documents retrieved successfully",
        request=request
    )


@router.get(
    "/{document_id}",
    response_model=ApiResponse,
    summary="Get document details",
    operation_id="get_document",
)
async def get_document(
    request: Request,
    document_id: UUID,
    user_id: UUID = Query(...),
    document_service: Annotated[DocumentService, Depends(get_document_service)] = None,
) -> Dict[str, Any]:
    try:
        document = await document_service.get_document(document_id, user_id)
    except AppError as e:
        raise http_error_from_exception(e, request)

    return create_api_response(
        data=document,
        message="Document details retrieved successfully",
        request=request
    )


@router.get(
    "/{document_id}/processing-status",
    response_model=ApiResponse,
    summary="Get document processing status by path",
    operation_id="get_document_processing_status",
)
async def get_document_processing_status(
    request: Request,
    document_id: UUID,
    user_id: UUID = Query(...),
    status_service: Annotated[StatusService, Depends(get_status_service)] = None,
) -> Dict[str, Any]:
    try:
        result = await status_service.get_document_status(document_id, user_id)
    except AppError as e:
        raise http_error_from_exception(e, request)

    return create_api_response(
        data=result,
        message="Document status retrieved successfully",
        request=request
    )


@router.get(
    "/{document_id}/biomarkers",
    response_model=ApiResponse,
    summary="Get extracted biomarkers",
    operation_id="get_document_biomarkers",
)
async def get_document_biomarkers(
    request: Request,
    document_id: UUID,
    user_id: UUID = Query(...),
    document_service: Annotated[DocumentService, Depends(get_document_service)] = None,
) -> Dict[str, Any]:
    try:
        result = await document_service.get_biomarkers(document_id, user_id)
    except AppError as e:
        raise http_error_from_exception(e, request)

    return create_api_response(
        data=result,
        message="Biomarkers retrieved successfully",
        request=request
    )


@router.delete(
    "/{document_id}",
    response_model=ApiResponse,
    summary="Delete document",
    operation_id="delete_document",
)
async def delete_document(
    request: Request,
    document_id: UUID,
    user_id: UUID = Query(...),
    document_service: Annotated[DocumentService, Depends(get_document_service)] = None,
) -> Dict[str, Any]:
    """Delete the stored file, its readings and the document."""
    try:
        await document_service.delete_document(document_id, user_id)
    except AppError as e:
        raise http_error_from_exception(e, request)

    return create_api_response(
        data=None,
        message="Document deleted successfully",
        request=request
    )
