import asyncio
import itertools
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import httpx
import pytest

from bloodwork.client.status_poller import (
    CANCELLED,
    COMPLETED,
    AnalysisStatusSource,
    DocumentStatusSource,
    StatusPoller,
    analysis_poller,
    document_poller,
    evaluate_analysis_status,
    evaluate_document_status,
)
from bloodwork.core.exceptions import APIClientError, JobFailedError, PollingTimeoutError

PROCESSING = {"status": "processing", "currentPhase": "ocr", "progress": 40}
DONE = {"status": "completed", "currentPhase": "complete", "progress": 100}


def _poller(fetch, evaluate=evaluate_document_status, **options):
    options.setdefault("interval", 0)
    options.setdefault("timeout", 30)
    options.setdefault("max_consecutive_failures", 3)
    return StatusPoller(fetch, evaluate, **options)


@pytest.mark.parametrize("snapshot,expected", [
    ({"status": "completed"}, "completed"),
    ({"status": "failed"}, "failed"),
    ({"status": "processing", "currentPhase": "error"}, "failed"),
    ({"status": "processing", "currentPhase": "saving"}, "running"),
    ({}, "running"),
])
def test_evaluate_document_status(snapshot, expected):
    assert evaluate_document_status(snapshot) == expected


@pytest.mark.parametrize("snapshot,expected", [
    ({"isDone": True, "isFailed": False}, "completed"),
    ({"isDone": False, "isFailed": True}, "failed"),
    ({"isDone": False, "isFailed": False}, "running"),
])
def test_evaluate_analysis_status(snapshot, expected):
    assert evaluate_analysis_status(snapshot) == expected


@pytest.mark.asyncio
async def test_polls_until_completed_and_reports_every_snapshot():
    fetch = AsyncMock(side_effect=[PROCESSING, PROCESSING, DONE])
    seen = []

    outcome = await _poller(fetch, on_update=seen.append).run()

    assert outcome.state == COMPLETED
    assert outcome.status == DONE
    assert outcome.polls == 3
    assert seen == [PROCESSING, PROCESSING, DONE]


@pytest.mark.asyncio
async def test_async_update_callback_is_awaited():
    on_update = AsyncMock()

    await _poller(AsyncMock(return_value=DONE), on_update=on_update).run()

    on_update.assert_awaited_once_with(DONE)


@pytest.mark.asyncio
async def test_failed_job_raises_with_last_status():
    failed = {"status": "failed", "currentPhase": "error", "currentMessage": "OCR failed"}
    fetch = AsyncMock(side_effect=[PROCESSING, failed])

    with pytest.raises(JobFailedError, match="OCR failed") as exc_info:
        await _poller(fetch).run()

    assert exc_info.value.last_status == failed


@pytest.mark.asyncio
async def test_failed_analysis_prefers_error_message():
    failed = {"isFailed": True, "isDone": False, "errorMessage": "Core analysis failed"}

    with pytest.raises(JobFailedError, match="Core analysis failed"):
        await _poller(AsyncMock(return_value=failed), evaluate_analysis_status).run()


@pytest.mark.asyncio
async def test_timeout_is_absolute():
    clock = itertools.count(0, 5).__next__
    fetch = AsyncMock(return_value=PROCESSING)

    with pytest.raises(PollingTimeoutError) as exc_info:
        await _poller(fetch, timeout=12, clock=clock).run()

    assert fetch.await_count == 3
    assert exc_info.value.last_status == PROCESSING


@pytest.mark.asyncio
async def test_transient_fetch_failures_are_tolerated():
    fetch = AsyncMock(side_effect=[
        APIClientError("HTTP 503"),
        httpx.ConnectError("refused"),
        PROCESSING,
        APIClientError("HTTP 502"),
        DONE,
    ])

    outcome = await _poller(fetch).run()

    assert outcome.state == COMPLETED
    assert outcome.polls == 2


@pytest.mark.asyncio
async def test_too_many_consecutive_failures_raise():
    fetch = AsyncMock(side_effect=APIClientError("HTTP 500"))

    with pytest.raises(APIClientError):
        await _poller(fetch).run()

    assert fetch.await_count == 3


@pytest.mark.asyncio
async def test_cancel_from_update_callback_stops_polling():
    fetch = AsyncMock(return_value=PROCESSING)
    poller = None

    def stop(_snapshot):
        poller.cancel()

    poller = _poller(fetch, interval=60, on_update=stop)
    outcome = await asyncio.wait_for(poller.run(), timeout=5)

    assert outcome.state == CANCELLED
    assert outcome.cancelled
    assert outcome.status == PROCESSING
    assert fetch.await_count == 1


@pytest.mark.asyncio
async def test_cancel_during_fetch_abandons_request():
    never = asyncio.Event()

    async def hanging_fetch():
        await never.wait()
        return DONE

    poller = _poller(hanging_fetch)
    asyncio.get_running_loop().call_later(0.01, poller.cancel)

    outcome = await asyncio.wait_for(poller.run(), timeout=5)

    assert outcome.cancelled
    assert outcome.status is None
    assert outcome.polls == 0


@pytest.mark.asyncio
async def test_cancel_before_run_returns_immediately():
    fetch = AsyncMock(return_value=DONE)
    poller = _poller(fetch)
    poller.cancel()

    outcome = await poller.run()

    assert outcome.cancelled
    fetch.assert_not_awaited()


@pytest.mark.asyncio
async def test_document_source_requests_status_envelope():
    user_id, document_id = uuid4(), uuid4()
    client = MagicMock()
    client.get = AsyncMock(return_value=httpx.Response(200, json={"status": "success", "data": DONE}))
    source = DocumentStatusSource("http://api.local/", user_id, client=client)

    snapshot = await source.fetch(document_id)

    assert snapshot == DONE
    args, kwargs = client.get.call_args
    assert args[0] == "http://api.local/api/v1/documents/status"
    assert kwargs["params"] == {"jobId": str(document_id), "user_id": str(user_id)}


@pytest.mark.asyncio
async def test_source_maps_http_failures_to_api_client_error():
    client = MagicMock()
    client.get = AsyncMock(return_value=httpx.Response(404, json={"detail": {}}))
    source = AnalysisStatusSource("http://api.local", uuid4(), client=client)

    with pytest.raises(APIClientError, match="HTTP 404"):
        await source.fetch(uuid4())

    client.get = AsyncMock(side_effect=httpx.ConnectError("refused"))
    with pytest.raises(APIClientError, match="refused"):
        await source.fetch(uuid4())


@pytest.mark.asyncio
async def test_poller_helpers_bind_job_and_default_timeouts():
    source = MagicMock()
    source.fetch = AsyncMock(return_value={"isDone": True, "isFailed": False})
    analysis_id = uuid4()

    poller = analysis_poller(source, analysis_id, interval=0)
    outcome = await poller.run()

    assert outcome.state == COMPLETED
    source.fetch.assert_awaited_once_with(analysis_id)
    assert poller.timeout == 300.0
    assert document_poller(source, uuid4()).timeout == 180.0
