"""Pure accumulator for Responses API stream events.

``reduce_stream_event`` folds one event into an immutable ``StreamState``
and returns the side effects the caller must perform (reasoning flushes,
fatal stream failures). It does no I/O, so ordering rules such as
flush-on-summary-index-change can be tested without a network.
"""

import json
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional, Tuple, Union

from bloodwork.core.exceptions import StructuredResponseError

REASONING_DELTA = "response.reasoning_summary_text.delta"
REASONING_DONE = "response.reasoning_summary_text.done"
OUTPUT_DELTA = "response.output_text.delta"
OUTPUT_DONE = "response.output_text.done"
RESPONSE_COMPLETED = "response.completed"
RESPONSE_FAILED = "response.failed"
RESPONSE_INCOMPLETE = "response.incomplete"
STREAM_ERROR = "error"


@dataclass(frozen=True)
class TokenUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def as_dict(self) -> Dict[str, int]:
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
        }


@dataclass(frozen=True)
class StreamState:
    pending_reasoning_text: str = ""
    pending_reasoning_index: Optional[int] = None
    output_buffer: str = ""
    usage: Optional[TokenUsage] = None
    completed: bool = False
    reasoning_chunks: int = 0
    event_count: int = 0


@dataclass(frozen=True)
class ReasoningFlush:
    """A finished reasoning summary that should be written to progress."""
    text: str
    summary_index: Optional[int]


@dataclass(frozen=True)
class StreamFailure:
    """The provider reported the response as failed or cut short."""
    message: str


StreamEffect = Union[ReasoningFlush, StreamFailure]


def event_field(event: Any, name: str, default: Any = None) -> Any:
    """Read a field from an SDK event object or a plain dict."""
    if isinstance(event, dict):
        return event.get(name, default)
    return getattr(event, name, default)


def _usage_from_response(response: Any) -> Optional[TokenUsage]:
    usage = event_field(response, "usage")
    if usage is None:
        return None
    prompt = event_field(usage, "input_tokens") or event_field(usage, "prompt_tokens") or 0
    completion = event_field(usage, "output_tokens") or event_field(usage, "completion_tokens") or 0
    total = event_field(usage, "total_tokens", None)
    return TokenUsage(
        prompt_tokens=prompt,
        completion_tokens=completion,
        total_tokens=total if total is not None else prompt + completion,
    )


def _failure_message(event: Any, event_type: str) -> str:
    if event_type == STREAM_ERROR:
        return event_field(event, "message") or "Model stream reported an error"
    response = event_field(event, "response")
    if event_type == RESPONSE_INCOMPLETE:
        details = event_field(response, "incomplete_details")
        reason = event_field(details, "reason") if details is not None else None
        return f"Model response incomplete: {reason or 'unknown reason'}"
    error = event_field(response, "error")
    message = event_field(error, "message") if error is not None else None
    return f"Model response failed: {message or 'unknown error'}"


def reduce_stream_event(state: StreamState, event: Any) -> Tuple[StreamState, List[StreamEffect]]:
    """Fold one stream event into the accumulator.

    Args:
        state: Accumulator before the event
        event: SDK event object or dict with a ``type`` field

    Returns:
        The new state and the effects produced by this event
    """
    event_type = event_field(event, "type")
    state = replace(state, event_count=state.event_count + 1)

    if event_type == REASONING_DELTA:
        index = event_field(event, "summary_index", 0)
        delta = event_field(event, "delta") or ""
        effects: List[StreamEffect] = []
        if index != state.pending_reasoning_index:
            # A new summary starts; finish the previous one first
            if state.pending_reasoning_text.strip():
                effects.append(
                    ReasoningFlush(state.pending_reasoning_text, state.pending_reasoning_index)
                )
            text = delta
        else:
            text = state.pending_reasoning_text + delta
        return (
            replace(
                state,
                pending_reasoning_text=text,
                pending_reasoning_index=index,
                reasoning_chunks=state.reasoning_chunks + 1,
            ),
            effects,
        )

    if event_type == REASONING_DONE:
        index = event_field(event, "summary_index", state.pending_reasoning_index)
        text = event_field(event, "text") or state.pending_reasoning_text
        effects = [ReasoningFlush(text, index)] if text.strip() else []
        return replace(state, pending_reasoning_text="", pending_reasoning_index=index), effects

    if event_type == OUTPUT_DELTA:
        delta = event_field(event, "delta") or ""
        return replace(state, output_buffer=state.output_buffer + delta), []

    if event_type == OUTPUT_DONE:
        final_text = event_field(event, "text")
        if isinstance(final_text, str) and final_text:
            return replace(state, output_buffer=final_text), []
        return state, []

    if event_type == RESPONSE_COMPLETED:
        response = event_field(event, "response")
        usage = _usage_from_response(response) if response is not None else None
        output_buffer = state.output_buffer
        if not output_buffer and response is not None:
            final_text = event_field(response, "output_text")
            if isinstance(final_text, str):
                output_buffer = final_text
        return (
            replace(
                state,
                usage=usage or state.usage,
                output_buffer=output_buffer,
                completed=True,
            ),
            [],
        )

    if event_type in (RESPONSE_FAILED, RESPONSE_INCOMPLETE, STREAM_ERROR):
        return state, [StreamFailure(_failure_message(event, event_type))]

    return state, []


def finish_stream(state: StreamState) -> Tuple[StreamState, List[StreamEffect]]:
    """Flush any reasoning text still pending when the stream ends."""
    if state.pending_reasoning_text.strip():
        return (
            replace(state, pending_reasoning_text=""),
            [ReasoningFlush(state.pending_reasoning_text, state.pending_reasoning_index)],
        )
    return state, []


def parse_output(state: StreamState) -> Dict[str, Any]:
    """Parse the accumulated output text as one JSON object.

    Raises:
        StructuredResponseError: If the buffer is empty, not JSON, or not an object
    """
    if not state.output_buffer.strip():
        raise StructuredResponseError("Model returned no output text")
    try:
        parsed = json.loads(state.output_buffer)
    except json.JSONDecodeError as e:
        raise StructuredResponseError(f"Model output is not valid JSON: {e}", original_error=e) from e
    if not isinstance(parsed, dict):
        raise StructuredResponseError("Model output is not a JSON object")
    return parsed
