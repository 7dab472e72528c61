"""Throttled forwarding of model reasoning text to a progress sink."""

import time
from typing import Any, Awaitable, Callable, Dict, Optional

from bloodwork.core.config import settings

ProgressSink = Callable[[str, Dict[str, Any]], Awaitable[Any]]


class ReasoningNarrator:
    """Writes reasoning summaries and throttled partial text.

    Completed summaries are always written. Partial text of the summary
    in progress is written at most once per ``interval_ms``.
    """

    def __init__(
        self,
        sink: ProgressSink,
        interval_ms: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
        message: str = "AI is analyzing the document...",
    ):
        self._sink = sink
        self._interval = (
            interval_ms if interval_ms is not None else settings.pipeline.reasoning_write_interval_ms
        ) / 1000.0
        self._clock = clock
        self._message = message
        self._last_write: Optional[float] = None
        self.summaries_written = 0

    async def flush(self, text: str, summary_index: Optional[int], chunks_received: int) -> None:
        """Write a completed reasoning summary."""
        self._last_write = self._clock()
        self.summaries_written += 1
        await self._sink(
            self._message,
            {
                "thoughtProcess": text,
                "step": "thinking",
                "summaryIndex": summary_index,
                "chunksReceived": chunks_received,
            },
        )

    async def partial(self, text: str, chunks_received: int) -> bool:
        """Write in-progress reasoning text if the throttle window has passed.

        Returns:
            True when a write was issued
        """
        if not text.strip():
            return False
        now = self._clock()
        if self._last_write is not None and now - self._last_write < self._interval:
            return False
        self._last_write = now
        await self._sink(
            self._message,
            {
                "thoughtProcess": text,
                "step": "thinking",
                "partial": True,
                "chunksReceived": chunks_received,
            },
        )
        return True
