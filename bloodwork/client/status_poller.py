"""Client-side polling of document and analysis status endpoints.

``StatusPoller`` is generic: it calls a zero-argument fetch coroutine on a
fixed interval and asks an evaluator whether the snapshot is terminal.
Cancellation is cooperative and local; the server-side job keeps running.
"""

import asyncio
import contextlib
import functools
import inspect
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional
from uuid import UUID

import httpx

from bloodwork.core.config import settings
from bloodwork.core.exceptions import APIClientError, JobFailedError, PollingTimeoutError
from bloodwork.utils.logging import get_logger

LOGGER = get_logger(__name__)

RUNNING = "running"
COMPLETED = "completed"
FAILED = "failed"
CANCELLED = "cancelled"

StatusSnapshot = Dict[str, Any]
FetchStatus = Callable[[], Awaitable[StatusSnapshot]]
EvaluateStatus = Callable[[StatusSnapshot], str]
UpdateCallback = Callable[[StatusSnapshot], Any]


@dataclass
class PollOutcome:
    state: str
    status: Optional[StatusSnapshot]
    polls: int

    @property
    def cancelled(self) -> bool:
        return self.state == CANCELLED


def evaluate_document_status(snapshot: StatusSnapshot) -> str:
    if snapshot.get("status") == "completed":
        return COMPLETED
    if snapshot.get("status") == "failed" or snapshot.get("currentPhase") == "error":
        return FAILED
    return RUNNING


def evaluate_analysis_status(snapshot: StatusSnapshot) -> str:
    if snapshot.get("isFailed"):
        return FAILED
    if snapshot.get("isDone"):
        return COMPLETED
    return RUNNING


class StatusPoller:
    """Poll until a terminal state, a timeout or a cancel.

    Args:
        fetch: Returns the current status snapshot
        evaluate: Maps a snapshot to running, completed or failed
        interval: Seconds between polls
        timeout: Absolute wall-clock budget in seconds
        max_consecutive_failures: Fetch errors tolerated in a row
        on_update: Called with every snapshot; may be a coroutine function
    """

    def __init__(
        self,
        fetch: FetchStatus,
        evaluate: EvaluateStatus,
        interval: Optional[float] = None,
        timeout: Optional[float] = None,
        max_consecutive_failures: Optional[int] = None,
        on_update: Optional[UpdateCallback] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        config = settings.pipeline
        self.fetch = fetch
        self.evaluate = evaluate
        self.interval = interval if interval is not None else config.poll_interval_seconds
        self.timeout = timeout if timeout is not None else config.document_poll_timeout_seconds
        self.max_consecutive_failures = (
            max_consecutive_failures
            if max_consecutive_failures is not None
            else config.poll_max_consecutive_failures
        )
        self.on_update = on_update
        self._clock = clock
        self._cancelled = asyncio.Event()

    def cancel(self) -> None:
        """Stop polling; ``run`` returns a cancelled outcome."""
        self._cancelled.set()

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled.is_set()

    async def run(self) -> PollOutcome:
        """Poll to a terminal state.

        Raises:
            JobFailedError: If the server reports the job failed
            PollingTimeoutError: If the timeout passes first
            APIClientError: If fetching fails more times in a row than allowed
        """
        deadline = self._clock() + self.timeout
        failures = 0
        polls = 0
        last: Optional[StatusSnapshot] = None

        while True:
            if self.is_cancelled:
                return PollOutcome(CANCELLED, last, polls)

            try:
                snapshot = await self._fetch_unless_cancelled()
            except (APIClientError, httpx.HTTPError) as e:
                failures += 1
                LOGGER.warning(
                    "Status fetch failed",
                    extra={"failures": failures, "limit": self.max_consecutive_failures, "error": str(e)},
                )
                if failures >= self.max_consecutive_failures:
                    raise
            else:
                if snapshot is None:
                    return PollOutcome(CANCELLED, last, polls)
                failures = 0
                polls += 1
                last = snapshot
                await self._notify(snapshot)

                state = self.evaluate(snapshot)
                if state == FAILED:
                    message = snapshot.get("errorMessage") or snapshot.get("currentMessage") or "Job failed"
                    raise JobFailedError(message, last_status=snapshot)
                if state == COMPLETED:
                    return PollOutcome(COMPLETED, snapshot, polls)

            remaining = deadline - self._clock()
            if remaining <= 0:
                raise PollingTimeoutError(
                    f"Job did not finish within {self.timeout:g}s", last_status=last
                )

            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(self._cancelled.wait(), timeout=min(self.interval, remaining))

    async def _fetch_unless_cancelled(self) -> Optional[StatusSnapshot]:
        """Fetch once; a cancel during the request abandons it and returns None."""
        fetch_task = asyncio.ensure_future(self.fetch())
        cancel_task = asyncio.ensure_future(self._cancelled.wait())
        done, _ = await asyncio.wait({fetch_task, cancel_task}, return_when=asyncio.FIRST_COMPLETED)

        if fetch_task in done:
            cancel_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await cancel_task
            return fetch_task.result()

        fetch_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await fetch_task
        return None

    async def _notify(self, snapshot: StatusSnapshot) -> None:
        if self.on_update is None:
            return
        result = self.on_update(snapshot)
        if inspect.isawaitable(result):
            await result


class StatusSource:
    """Fetches one status envelope from the service over HTTP."""

    path = ""
    id_param = ""

    def __init__(
        self,
        base_url: str,
        user_id: UUID,
        client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.user_id = user_id
        self.client = client
        self.timeout = timeout or settings.http_timeout

    async def fetch(self, job_id: UUID) -> StatusSnapshot:
        url = f"{self.base_url}{settings.api_v1_prefix}{self.path}"
        params = {self.id_param: str(job_id), "user_id": str(self.user_id)}
        try:
            if self.client is not None:
                response = await self.client.get(url, params=params, timeout=self.timeout)
            else:
                async with httpx.AsyncClient() as client:
                    response = await client.get(url, params=params, timeout=self.timeout)
        except httpx.HTTPError as e:
            raise APIClientError(f"Status request failed: {str(e)}", original_error=e) from e

        if response.status_code != 200:
            raise APIClientError(f"Status request returned HTTP {response.status_code}")
        return response.json().get("data") or {}


class DocumentStatusSource(StatusSource):
    path = "/documents/status"
    id_param = "jobId"


class AnalysisStatusSource(StatusSource):
    path = "/analysis/status"
    id_param = "analysisId"


def document_poller(
    source: DocumentStatusSource, document_id: UUID, **options: Any
) -> StatusPoller:
    options.setdefault("timeout", settings.pipeline.document_poll_timeout_seconds)
    return StatusPoller(
        functools.partial(source.fetch, document_id), evaluate_document_status, **options
    )


def analysis_poller(
    source: AnalysisStatusSource, analysis_id: UUID, **options: Any
) -> StatusPoller:
    options.setdefault("timeout", settings.pipeline.analysis_poll_timeout_seconds)
    return StatusPoller(
        functools.partial(source.fetch, analysis_id), evaluate_analysis_status, **options
    )
