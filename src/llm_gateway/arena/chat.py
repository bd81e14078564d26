"""Single-model chat through the routing proxy, recorded in the ledger."""

from __future__ import annotations

import logging
import sqlite3
import time

from pydantic import BaseModel

from llm_gateway.clients.llm_client import LLMClient
from llm_gateway.errors import InternalError, UpstreamError, ValidationError
from llm_gateway.ledger.cost_calculator import calculate_cost_micros
from llm_gateway.ledger.usage_store import UsageStore
from llm_gateway.models.usage import CamelModel, UsageEntry
from llm_gateway.registry import ModelRegistry

logger = logging.getLogger(__name__)

VALID_ROLES = {"system", "user", "assistant"}


class TokenUsage(BaseModel):
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


class ChatReply(CamelModel):
    content: str
    usage: TokenUsage
    latency_ms: int


class ChatProxy:
    def __init__(
        self,
        llm: LLMClient,
        ledger: UsageStore,
        registry: ModelRegistry,
        *,
        max_tokens: int = 2048,
        temperature: float = 0.7,
    ):
        self.llm = llm
        self.ledger = ledger
        self.registry = registry
        self.max_tokens = max_tokens
        self.temperature = temperature

    @staticmethod
    def validate(model: str, messages: list[dict]) -> None:
        if not model or not isinstance(model, str):
            raise ValidationError("Model is required")
        if not messages or not isinstance(messages, list):
            raise ValidationError("Messages are required")
        for message in messages:
            if not isinstance(message, dict) or message.get("role") not in VALID_ROLES:
                raise ValidationError(f"Invalid message: {message!r}")
            if not isinstance(message.get("content"), str):
                raise ValidationError("Message content must be a string")

    def _record(self, entry: UsageEntry) -> None:
        try:
            self.ledger.append(entry)
        except sqlite3.Error as e:
            logger.exception("Failed to append usage entry for %s", entry.model)
            raise InternalError("Failed to record usage") from e

    async def chat(
        self,
        user_id: str,
        model: str,
        messages: list[dict],
        *,
        api_key: str | None = None,
        api_key_id: str | None = None,
    ) -> ChatReply:
        self.validate(model, messages)
        provider = self.registry.provider_for(model)
        start = time.monotonic()
        try:
            result = await self.llm.chat(
                model,
                messages,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                api_key=api_key,
            )
        except Exception as e:
            latency_ms = int((time.monotonic() - start) * 1000)
            message = e.detail if isinstance(e, UpstreamError) else str(e) or type(e).__name__
            self._record(UsageEntry.from_failure(
                user_id=user_id,
                api_key_id=api_key_id,
                model=model,
                provider=provider,
                error_message=message,
                latency_ms=latency_ms,
            ))
            raise

        latency_ms = int((time.monotonic() - start) * 1000)
        self._record(UsageEntry.from_completion(
            user_id=user_id,
            api_key_id=api_key_id,
            model=model,
            provider=provider,
            input_tokens=result.input_tokens,
            output_tokens=result.output_tokens,
            cost_micros=calculate_cost_micros(
                self.registry, model, result.input_tokens, result.output_tokens
            ),
            latency_ms=latency_ms,
        ))
        return ChatReply(
            content=result.text,
            usage=TokenUsage(
                prompt_tokens=result.input_tokens,
                completion_tokens=result.output_tokens,
                total_tokens=result.total_tokens,
            ),
            latency_ms=latency_ms,
        )
