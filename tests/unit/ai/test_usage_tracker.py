from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest

from bloodwork.services.ai.stream_accumulator import TokenUsage
from bloodwork.services.ai.usage_tracker import UsageTracker, estimate_cost, get_model_pricing


def test_pricing_table_and_fallback():
    assert get_model_pricing("gpt-5-mini") == 0.15
    assert get_model_pricing("some-new-model") == 1.00
    assert estimate_cost(2000, "gpt-5-mini") == pytest.approx(0.30)


@pytest.mark.asyncio
async def test_save_usage_writes_one_row(session_factory):
    user_id = uuid4()
    with patch("bloodwork.services.ai.usage_tracker.UsageLogRepository") as repo:
        repo.return_value.create = AsyncMock()
        tracker = UsageTracker(session_factory)

        saved = await tracker.save_usage(
            TokenUsage(prompt_tokens=120, completion_tokens=80, total_tokens=200),
            model="gpt-5-mini",
            request_type="biomarker_extraction",
            user_id=user_id,
            request_id="doc-1",
        )

    assert saved is True
    kwargs = repo.return_value.create.call_args.kwargs
    assert kwargs["user_id"] == user_id
    assert kwargs["total_tokens"] == 200
    assert kwargs["cost_per_1k_tokens"] == 0.15
    assert kwargs["estimated_cost"] == pytest.approx(0.03)
    assert kwargs["usage_metadata"] == {}


@pytest.mark.asyncio
async def test_missing_usage_is_skipped(session_factory):
    tracker = UsageTracker(session_factory)

    assert await tracker.save_usage(None, model="gpt-5-mini", request_type="core_analysis") is False
    session_factory.assert_not_called()


@pytest.mark.asyncio
async def test_write_failure_returns_false(session_factory):
    with patch("bloodwork.services.ai.usage_tracker.UsageLogRepository") as repo:
        repo.return_value.create = AsyncMock(side_effect=RuntimeError("db down"))
        tracker = UsageTracker(session_factory)

        saved = await tracker.save_usage(TokenUsage(1, 1, 2), model="gpt-5-mini", request_type="diet_analysis")

    assert saved is False
