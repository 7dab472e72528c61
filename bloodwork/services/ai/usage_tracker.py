"""Out-of-band token usage accounting."""

from typing import Any, Callable, Dict, Optional
from uuid import UUID

from bloodwork.core.database import async_session_maker
from bloodwork.repositories.usage_log_repository import UsageLogRepository
from bloodwork.services.ai.stream_accumulator import TokenUsage
from bloodwork.utils.logging import get_logger

LOGGER = get_logger(__name__)

# USD per 1K tokens
MODEL_PRICING_PER_1K: Dict[str, float] = {
    "gpt-5-mini": 0.15,
    "gpt-4": 30.00,
    "gpt-4-turbo": 10.00,
    "gpt-3.5-turbo": 0.50,
}
DEFAULT_PRICE_PER_1K = 1.00


def get_model_pricing(model: str) -> float:
    return MODEL_PRICING_PER_1K.get(model, DEFAULT_PRICE_PER_1K)


def estimate_cost(total_tokens: int, model: str) -> float:
    return (total_tokens / 1000) * get_model_pricing(model)


class UsageTracker:
    """Writes ``openai_usage_logs`` rows. Failures are logged, never raised."""

    def __init__(self, session_factory: Callable[[], Any] = async_session_maker):
        self._session_factory = session_factory

    async def save_usage(
        self,
        usage: Optional[TokenUsage],
        *,
        model: str,
        request_type: str,
        user_id: Optional[UUID] = None,
        request_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """Persist one usage row.

        Returns:
            True if the row was written
        """
        if usage is None:
            LOGGER.info("No usage data in stream; skipping usage log", extra={"request_type": request_type})
            return False

        cost_per_1k = get_model_pricing(model)
        estimated = estimate_cost(usage.total_tokens, model)
        try:
            async with self._session_factory() as session:
                await UsageLogRepository(session).create(
                    user_id=user_id,
                    request_type=request_type,
                    request_id=request_id,
                    model=model,
                    prompt_tokens=usage.prompt_tokens,
                    completion_tokens=usage.completion_tokens,
                    total_tokens=usage.total_tokens,
                    cost_per_1k_tokens=cost_per_1k,
                    estimated_cost=estimated,
                    usage_metadata=metadata or {},
                )
        except Exception as e:
            LOGGER.error(
                "Failed to save model usage",
                exc_info=True,
                extra={"request_type": request_type, "error": str(e)},
            )
            return False

        LOGGER.info(
            f"Saved usage: {usage.total_tokens} tokens (${estimated:.4f}) for {request_type}",
            extra={"model": model, "request_id": request_id},
        )
        return True
