"""Streaming structured-output client for the OpenAI Responses API."""

from typing import Any, AsyncIterator, Dict, Optional

import openai
from openai import AsyncOpenAI

from bloodwork.core.config import OpenAISettings, settings
from bloodwork.core.exceptions import AIResponseError, APITimeoutError, ConfigurationError
from bloodwork.utils.logging import get_logger

LOGGER = get_logger(__name__)


class OpenAIStreamingClient:
    """Thin wrapper that opens a reasoning-enabled, schema-constrained stream.

    The client never retries; callers decide what a failed stream means.
    One instance is built at startup and passed to the services that need
    it.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-5-mini",
        reasoning_effort: str = "medium",
        reasoning_summary: str = "auto",
        timeout: int = 300,
        client: Optional[AsyncOpenAI] = None,
    ):
        if client is None:
            if not api_key:
                raise ConfigurationError("OPENAI_API_KEY is not configured")
            client = AsyncOpenAI(api_key=api_key, timeout=timeout, max_retries=0)
        self.client = client
        self.model = model
        self.reasoning_effort = reasoning_effort
        self.reasoning_summary = reasoning_summary
        self.timeout = timeout

        LOGGER.info(
            "Initialized OpenAI streaming client",
            extra={"model": self.model, "reasoning_effort": self.reasoning_effort},
        )

    @classmethod
    def from_settings(cls, openai_settings: Optional[OpenAISettings] = None) -> "OpenAIStreamingClient":
        config = openai_settings or settings.openai
        return cls(
            api_key=config.api_key,
            model=config.model,
            reasoning_effort=config.reasoning_effort,
            reasoning_summary=config.reasoning_summary,
            timeout=config.timeout,
        )

    async def stream_structured(
        self,
        *,
        instructions: str,
        input_text: str,
        schema_name: str,
        schema: Dict[str, Any],
        model: Optional[str] = None,
    ) -> AsyncIterator[Any]:
        """Yield stream events for one structured-output request.

        Args:
            instructions: System instructions
            input_text: User input
            schema_name: Name of the JSON schema format
            schema: Strict JSON schema the output must follow
            model: Model override for this request

        Raises:
            APITimeoutError: If the request or stream times out
            AIResponseError: If the provider rejects the request or drops the stream
        """
        request_model = model or self.model
        LOGGER.info(
            "Opening model stream",
            extra={"model": request_model, "schema_name": schema_name, "input_length": len(input_text)},
        )
        try:
            stream = await self.client.responses.create(
                model=request_model,
                instructions=instructions,
                input=input_text,
                reasoning={"effort": self.reasoning_effort, "summary": self.reasoning_summary},
                text={
                    "format": {
                        "type": "json_schema",
                        "name": schema_name,
                        "schema": schema,
                        "strict": True,
                    }
                },
                stream=True,
            )
            async for event in stream:
                yield event
        except openai.APITimeoutError as e:
            LOGGER.error("Model stream timed out", extra={"model": request_model})
            raise APITimeoutError(f"Model request timed out after {self.timeout}s", original_error=e) from e
        except openai.APIError as e:
            LOGGER.error(
                "Model request failed",
                exc_info=True,
                extra={"model": request_model, "error": str(e)},
            )
            raise AIResponseError(f"Model request failed: {str(e)}", original_error=e) from e
