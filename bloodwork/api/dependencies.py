"""Shared FastAPI dependencies for the AI-backed endpoints."""

from typing import Annotated

from fastapi import Depends, Request

from bloodwork.core.config import settings
from bloodwork.core.exceptions import ConfigurationError
from bloodwork.core.llm_client import OpenAIStreamingClient
from bloodwork.services.ai.biomarker_extraction import BiomarkerExtractionClient
from bloodwork.services.ai.usage_tracker import UsageTracker
from bloodwork.services.analysis.analysis_orchestrator import AnalysisOrchestrator


def get_llm_client(request: Request) -> OpenAIStreamingClient:
    """Return the streaming client built at startup.

    Raises:
        ConfigurationError: If startup could not build one
    """
    client = getattr(request.app.state, "llm_client", None)
    if client is None:
        raise ConfigurationError("AI client is not configured; set OPENAI_API_KEY")
    return client


def get_extraction_client(
    llm_client: Annotated[OpenAIStreamingClient, Depends(get_llm_client)],
) -> BiomarkerExtractionClient:
    return BiomarkerExtractionClient(llm_client, usage_tracker=UsageTracker())


def get_analysis_orchestrator(
    llm_client: Annotated[OpenAIStreamingClient, Depends(get_llm_client)],
) -> AnalysisOrchestrator:
    return AnalysisOrchestrator(
        llm_client,
        usage_tracker=UsageTracker(),
        model=settings.openai.analysis_model,
    )
