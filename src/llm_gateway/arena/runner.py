"""Side-by-side comparison of two models on the same prompt."""

from __future__ import annotations

import asyncio
import logging
import sqlite3
import time
from dataclasses import dataclass

from llm_gateway.arena.session_store import SessionStore
from llm_gateway.clients.llm_client import LLMClient
from llm_gateway.errors import InternalError, UpstreamError, ValidationError
from llm_gateway.ledger.cost_calculator import calculate_cost_micros
from llm_gateway.ledger.usage_store import UsageStore
from llm_gateway.models.arena import ComparisonResult, ComparisonSession, ModelResponse
from llm_gateway.models.usage import UsageEntry
from llm_gateway.registry import ModelRegistry

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60.0
DEFAULT_MAX_TOKENS = 2048
DEFAULT_TEMPERATURE = 0.7


def build_messages(prompt: str, system_prompt: str | None = None) -> list[dict]:
    messages: list[dict] = []
    if system_prompt:
        messages.append({"role": "system", "content": system_prompt})
    messages.append({"role": "user", "content": prompt})
    return messages


@dataclass
class BranchOutcome:
    """One finished branch: the response shown to the user and its ledger row."""

    model: str
    response: ModelResponse
    usage: UsageEntry


class ComparisonRunner:
    """Runs two completions concurrently and persists the pair as one session.

    Each branch has its own timer and its own failure handling: an error or
    timeout on one model becomes that model's ``error`` value and never
    affects the other branch.
    """

    def __init__(
        self,
        llm: LLMClient,
        sessions: SessionStore,
        ledger: UsageStore,
        registry: ModelRegistry,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        temperature: float = DEFAULT_TEMPERATURE,
    ):
        self.llm = llm
        self.sessions = sessions
        self.ledger = ledger
        self.registry = registry
        self.timeout = timeout
        self.max_tokens = max_tokens
        self.temperature = temperature

    @staticmethod
    def validate(models: list[str], prompt: str) -> None:
        if not isinstance(models, (list, tuple)) or len(models) != 2:
            raise ValidationError("Two models are required")
        if not all(isinstance(m, str) and m.strip() for m in models):
            raise ValidationError("Model identifiers must be non-empty strings")
        if models[0] == models[1]:
            raise ValidationError("The two models must be different")
        if not isinstance(prompt, str) or not prompt.strip():
            raise ValidationError("Prompt is required")

    async def _run_branch(self, user_id: str, model: str, messages: list[dict]) -> BranchOutcome:
        provider = self.registry.provider_for(model)
        start = time.monotonic()
        try:
            result = await asyncio.wait_for(
                self.llm.chat(
                    model,
                    messages,
                    max_tokens=self.max_tokens,
                    temperature=self.temperature,
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            latency_ms = int((time.monotonic() - start) * 1000)
            message = f"Request timed out after {self.timeout:g}s"
        except UpstreamError as e:
            latency_ms = int((time.monotonic() - start) * 1000)
            message = e.detail
        except Exception as e:
            latency_ms = int((time.monotonic() - start) * 1000)
            message = str(e) or type(e).__name__
        else:
            latency_ms = int((time.monotonic() - start) * 1000)
            cost = calculate_cost_micros(
                self.registry, model, result.input_tokens, result.output_tokens
            )
            return BranchOutcome(
                model=model,
                response=ModelResponse(content=result.text, latency_ms=latency_ms),
                usage=UsageEntry.from_completion(
                    user_id=user_id,
                    model=model,
                    provider=provider,
                    input_tokens=result.input_tokens,
                    output_tokens=result.output_tokens,
                    cost_micros=cost,
                    latency_ms=latency_ms,
                ),
            )

        logger.warning("Arena branch failed: model=%s latency_ms=%d error=%s", model, latency_ms, message)
        return BranchOutcome(
            model=model,
            response=ModelResponse(error=message, latency_ms=latency_ms),
            usage=UsageEntry.from_failure(
                user_id=user_id,
                model=model,
                provider=provider,
                error_message=message,
                latency_ms=latency_ms,
            ),
        )

    async def run_comparison(
        self,
        user_id: str,
        models: list[str],
        prompt: str,
        system_prompt: str | None = None,
    ) -> ComparisonResult:
        """Run both models on the prompt and save the paired outcome.

        Returns only after both branches have finished, successfully or not.

        Raises:
            ValidationError: Bad model pair or empty prompt; nothing is called.
            InternalError: The ledger or session write failed.
        """
        if not user_id:
            raise ValidationError("user_id is required")
        self.validate(models, prompt)
        models = list(models)
        messages = build_messages(prompt, system_prompt)

        outcomes = await asyncio.gather(
            *(self._run_branch(user_id, model, messages) for model in models)
        )

        session = ComparisonSession(
            user_id=user_id,
            prompt=prompt,
            system_prompt=system_prompt or None,
            models=models,
            responses={o.model: o.response for o in outcomes},
        )
        try:
            self.ledger.append_many([o.usage for o in outcomes])
            self.sessions.insert(session)
        except sqlite3.Error as e:
            logger.exception("Failed to persist arena session %s", session.id)
            raise InternalError("Failed to save comparison session") from e

        logger.info(
            "Arena comparison %s: %s",
            session.id,
            ", ".join(f"{o.model}={'ok' if o.response.ok else 'error'}" for o in outcomes),
        )
        return ComparisonResult(session_id=session.id, responses=session.responses)
