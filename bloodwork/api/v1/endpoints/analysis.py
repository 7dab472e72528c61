from typing import Annotated, Any, Dict
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from bloodwork.api.dependencies import get_analysis_orchestrator
from bloodwork.core.database import get_async_session as get_session
from bloodwork.core.exceptions import AppError
from bloodwork.schemas.common import ApiResponse
from bloodwork.schemas.requests import GenerateAnalysisRequest
from bloodwork.services.analysis.analysis_orchestrator import AnalysisOrchestrator
from bloodwork.services.analysis_service import AnalysisService
from bloodwork.services.status.status_service import StatusService
from bloodwork.utils.logging import get_logger
from bloodwork.utils.responses import create_api_response, http_error_from_exception

LOGGER = get_logger(__name__)

router = APIRouter()


async def get_analysis_service(
    db_session: Annotated[AsyncSession, Depends(get_session)]
) -> AnalysisService:
    return AnalysisService(db_session)


async def get_status_service(
    db_session: Annotated[AsyncSession, Depends(get_session)]
) -> StatusService:
    return StatusService(db_session)


@router.post(
    "/generate",
    response_model=ApiResponse,
    summary="Generate a health analysis",
    operation_id="generate_analysis",
)
async def generate_analysis(
    request: Request,
    body: GenerateAnalysisRequest,
    analysis_service: Annotated[AnalysisService, Depends(get_analysis_service)] = None,
    orchestrator: Annotated[AnalysisOrchestrator, Depends(get_analysis_orchestrator)] = None,
) -> Dict[str, Any]:
    """Run every analysis phase for a processed document."""
    try:
        result = await analysis_service.generate_analysis(
            body.document_id, body.user_id, orchestrator
        )
    except AppError as e:
        raise http_error_from_exception(e, request)

    return create_api_response(
        data=result,
        message=f"Analysis {result['status']}",
        request=request
    )


@router.get(
    "/status",
    response_model=ApiResponse,
    summary="Get analysis status",
    operation_id="get_analysis_status",
)
async def get_analysis_status(
    request: Request,
    analysis_id: UUID = Query(..., alias="analysisId"),
    user_id: UUID = Query(...),
    status_service: Annotated[StatusService, Depends(get_status_service)] = None,
) -> Dict[str, Any]:
    """Per-phase status, progress and the latest reasoning text."""
    try:
        result = await status_service.get_analysis_status(analysis_id, user_id)
    except AppError as e:
        raise http_error_from_exception(e, request)

    return create_api_response(
        data=result,
        message="Analysis status retrieved successfully",
        request=request
    )


@router.get(
    "/{analysis_id}",
    response_model=ApiResponse,
    summary="Get a health analysis",
    operation_id="get_analysis",
)
async def get_analysis(
    request: Request,
    analysis_id: UUID,
    user_id: UUID = Query(...),
    analysis_service: Annotated[AnalysisService, Depends(get_analysis_service)] = None,
) -> Dict[str, Any]:
    try:
        result = await analysis_service.get_analysis(analysis_id, user_id)
    except AppError as e:
        raise http_error_from_exception(e, request)

    return create_api_response(
        data=result,
        message="Analysis retrieved successfully",
        request=request
    )


@router.get(
    "/{analysis_id}/{category}",
    response_model=ApiResponse,
    summary="Get one recommendation category",
    operation_id="get_analysis_recommendations",
)
async def get_analysis_recommendations(
    request: Request,
    analysis_id: UUID,
    category: str,
    user_id: UUID = Query(...),
    analysis_service: Annotated[AnalysisService, Depends(get_analysis_service)] = None,
) -> Dict[str, Any]:
    """Supplements, diet, lifestyle or workout recommendations."""
    try:
        result = await analysis_service.get_recommendations(analysis_id, user_id, category)
    except AppError as e:
        raise http_error_from_exception(e, request)

    return create_api_response(
        data=result,
        message=f"{category.capitalize()} recommendations retrieved successfully",
        request=request
    )
