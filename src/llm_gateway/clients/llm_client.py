"""Async client for the OpenAI-compatible routing proxy."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import openai
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from llm_gateway.errors import UpstreamError

logger = logging.getLogger(__name__)

TRANSIENT_ERRORS = (openai.APIConnectionError, openai.APITimeoutError)


@dataclass
class ChatResult:
    """Completion text plus the token usage reported by the proxy."""

    text: str
    input_tokens: int
    output_tokens: int

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


class LLMClient:
    """Chat-completion client with exponential-backoff retries on transport errors.

    ``max_retries`` counts attempts after the first one, so 0 disables retrying.

    Non-2xx responses are not retried; they surface as ``UpstreamError``.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        timeout: float | None = None,
        max_retries: int = 2,
    ):
        kwargs: dict = {"base_url": base_url.rstrip("/") + "/v1", "max_retries": 0}
        kwargs["api_key"] = api_key or "not-set"
        if timeout is not None:
            kwargs["timeout"] = timeout
        self.client = openai.AsyncOpenAI(**kwargs)
        self.max_retries = max_retries

    async def _call_api(
        self,
        model: str,
        messages: list[dict],
        max_tokens: int | None,
        temperature: float | None,
        api_key: str | None,
    ):
        client = self.client.with_options(api_key=api_key) if api_key else self.client
        kwargs: dict = {"model": model, "messages": messages}
        if max_tokens is not None:
            kwargs["max_tokens"] = max_tokens
        if temperature is not None:
            kwargs["temperature"] = temperature

        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_exponential(min=1, max=10),
            retry=retry_if_exception_type(TRANSIENT_ERRORS),
            reraise=True,
        ):
            with attempt:
                return await client.chat.completions.create(**kwargs)

    async def chat(
        self,
        model: str,
        messages: list[dict],
        *,
        max_tokens: int | None = None,
        temperature: float | None = None,
        api_key: str | None = None,
    ) -> ChatResult:
        """Send a message list to one model and return its reply with usage.

        Args:
            model: Model id known to the routing proxy.
            messages: ``[{"role": ..., "content": ...}]`` in order.
            max_tokens: Completion token cap, omitted when None.
            temperature: Sampling temperature, omitted when None.
            api_key: Bearer credential overriding the master key for this call.

        Raises:
            UpstreamError: Non-2xx status, transport failure after retries, or
                a response the SDK could not parse.
        """
        logger.debug("LLM call: model=%s messages=%d", model, len(messages))
        try:
            response = await self._call_api(model, messages, max_tokens, temperature, api_key)
        except openai.APIStatusError as e:
            raise UpstreamError(
                model,
                f"Chat completion error: {e.status_code} - {e.message}",
                status_code=e.status_code,
            ) from e
        except openai.APIError as e:
            raise UpstreamError(model, f"Chat completion error: {e}") from e

        text = ""
        if response.choices:
            text = response.choices[0].message.content or ""
        usage = response.usage
        input_tokens = usage.prompt_tokens if usage else 0
        output_tokens = usage.completion_tokens if usage else 0
        logger.debug(
            "LLM response: model=%s %d input, %d output tokens",
            model, input_tokens, output_tokens,
        )
        return ChatResult(text=text, input_tokens=input_tokens, output_tokens=output_tokens)

    async def close(self) -> None:
        await self.client.close()
