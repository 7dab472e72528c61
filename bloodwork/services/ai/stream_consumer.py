"""Drive a model event stream through the accumulator."""

from dataclasses import dataclass
from typing import Any, AsyncIterable, Dict, List, Optional

from bloodwork.core.exceptions import AIResponseError
from bloodwork.services.ai.stream_accumulator import (
    REASONING_DELTA,
    ReasoningFlush,
    StreamEffect,
    StreamFailure,
    StreamState,
    TokenUsage,
    event_field,
    finish_stream,
    parse_output,
    reduce_stream_event,
)
from bloodwork.services.progress.reasoning_narrator import ReasoningNarrator
from bloodwork.utils.logging import get_logger

LOGGER = get_logger(__name__)


@dataclass
class StreamResult:
    payload: Dict[str, Any]
    usage: Optional[TokenUsage]
    reasoning_chunks: int
    event_count: int


async def _apply_effects(
    effects: List[StreamEffect],
    state: StreamState,
    narrator: Optional[ReasoningNarrator],
) -> None:
    for effect in effects:
        if isinstance(effect, StreamFailure):
            raise AIResponseError(effect.message)
        if isinstance(effect, ReasoningFlush) and narrator is not None:
            await narrator.flush(effect.text, effect.summary_index, state.reasoning_chunks)


async def consume_stream(
    events: AsyncIterable[Any],
    narrator: Optional[ReasoningNarrator] = None,
) -> StreamResult:
    """Consume a stream to completion and parse its JSON output.

    Raises:
        AIResponseError: If the provider reports a failed or incomplete response
        StructuredResponseError: If the final output is not a JSON object
    """
    state = StreamState()
    async for event in events:
        state, effects = reduce_stream_event(state, event)
        await _apply_effects(effects, state, narrator)
        if narrator is not None and event_field(event, "type") == REASONING_DELTA:
            await narrator.partial(state.pending_reasoning_text, state.reasoning_chunks)

    state, effects = finish_stream(state)
    await _apply_effects(effects, state, narrator)

    if not state.completed:
        LOGGER.warning(
            "Model stream ended without a completion event",
            extra={"event_count": state.event_count, "output_length": len(state.output_buffer)},
        )

    payload = parse_output(state)
    return StreamResult(
        payload=payload,
        usage=state.usage,
        reasoning_chunks=state.reasoning_chunks,
        event_count=state.event_count,
    )
