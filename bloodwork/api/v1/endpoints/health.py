"""Health check API endpoints."""

from typing import Any, Dict

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from bloodwork.core.config import settings
from bloodwork.core.database import db_client
from bloodwork.utils.logging import get_logger

LOGGER = get_logger(__name__)

router = APIRouter()


class HealthCheckResponse(BaseModel):
    status: str = Field(..., description="Health check status")
    version: str = Field(..., description="Running application version")
    service: str = Field(..., description="Service name")
    database: Dict[str, Any] = Field(default_factory=dict, description="Database health details")
    ai_configured: bool = Field(..., description="Whether the AI client is available")


@router.get(
    "",
    response_model=HealthCheckResponse,
    summary="Health check endpoint",
    description="Check if the service is running and its database is reachable",
    operation_id="get_service_health_status",
)
async def health_check(request: Request) -> HealthCheckResponse:
    """Health check endpoint."""
    db_health = await db_client.health_check()

    return HealthCheckResponse(
        status="healthy" if db_health["status"] == "healthy" else "degraded",
        version=settings.app_version,
        service=settings.app_name,
        database=db_health,
        ai_configured=getattr(request.app.state, "llm_client", None) is not None,
    )
