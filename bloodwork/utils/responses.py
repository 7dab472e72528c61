from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple
from uuid import uuid4

from fastapi import HTTPException, Request, status as http_status

from bloodwork.core.exceptions import (
    AIResponseError,
    AnalysisNotFoundError,
    AppError,
    ConfigurationError,
    DocumentNotFoundError,
    FileTooLargeError,
    StorageError,
    StructuredResponseError,
    ValidationError,
)
from bloodwork.schemas.common import ApiResponse, ErrorDetail, ResponseMeta


def _request_id(request: Optional[Request]) -> str:
    if request is not None and hasattr(request.state, "correlation_id"):
        return request.state.correlation_id
    return str(uuid4())


def create_api_response(
    data: Any,
    message: str = "Operation successful",
    status: bool = True,
    request: Optional[Request] = None,
    api_version: str = "v1"
) -> Dict[str, Any]:
    """Create a standardized API response as a dictionary."""
    meta = ResponseMeta(
        timestamp=datetime.now(timezone.utc),
        request_id=_request_id(request),
        api_version=api_version
    )

    data_dict: Dict[str, Any]
    if isinstance(data, dict):
        data_dict = data
    elif hasattr(data, "model_dump"):
        data_dict = data.model_dump(mode="json")
    elif isinstance(data, list):
        data_dict = {
            "items": [item.model_dump(mode="json") if hasattr(item, "model_dump") else item for item in data]
        }
    elif data is None:
        data_dict = {}
    else:
        data_dict = {"value": data}

    response = ApiResponse(
        status=status,
        message=message,
        data=data_dict,
        meta=meta
    )
    return response.model_dump(mode="json")


def create_error_detail(
    title: str,
    status: int,
    detail: str,
    request: Optional[Request] = None,
    instance: Optional[str] = None
) -> ErrorDetail:
    """Create a standardized error detail (RFC 7807)."""
    return ErrorDetail(
        title=title,
        status=status,
        detail=detail,
        instance=instance or (request.url.path if request else None),
        request_id=_request_id(request),
        timestamp=datetime.now(timezone.utc)
    )


# Most specific first
_ERROR_STATUS: Tuple[Tuple[type, int, str], ...] = (
    (DocumentNotFoundError, http_status.HTTP_404_NOT_FOUND, "Document Not Found"),
    (AnalysisNotFoundError, http_status.HTTP_404_NOT_FOUND, "Analysis Not Found"),
    (FileTooLargeError, http_status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, "File Too Large"),
    (ValidationError, http_status.HTTP_400_BAD_REQUEST, "Validation Error"),
    (StructuredResponseError, http_status.HTTP_502_BAD_GATEWAY, "Invalid AI Response"),
    (AIResponseError, http_status.HTTP_502_BAD_GATEWAY, "AI Service Error"),
    (StorageError, http_status.HTTP_502_BAD_GATEWAY, "Storage Error"),
    (ConfigurationError, http_status.HTTP_500_INTERNAL_SERVER_ERROR, "Service Misconfigured"),
)


def http_error_from_exception(error: AppError, request: Optional[Request] = None) -> HTTPException:
    """Map an application error to an HTTPException carrying an RFC 7807 body."""
    status_code = http_status.HTTP_500_INTERNAL_SERVER_ERROR
    title = "Processing Failed"
    for error_type, mapped_status, mapped_title in _ERROR_STATUS:
        if isinstance(error, error_type):
            status_code, title = mapped_status, mapped_title
            break

    error_detail = create_error_detail(
        title=title,
        status=status_code,
        detail=str(error),
        request=request,
    )
    return HTTPException(status_code=status_code, detail=error_detail.model_dump(mode="json"))
