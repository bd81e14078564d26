"""Pydantic models for arena comparisons."""

from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import Field, field_validator, model_validator

from llm_gateway.models.usage import CamelModel, as_utc, utc_now


class ModelResponse(CamelModel):
    """Outcome of one branch: either content or error, plus elapsed time."""

    content: str | None = None
    error: str | None = None
    latency_ms: int | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class ComparisonSession(CamelModel):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    user_id: str
    prompt: str
    system_prompt: str | None = None
    models: list[str]
    responses: dict[str, ModelResponse] = Field(default_factory=dict)
    winner: str | None = None
    voted_at: datetime | None = None
    created_at: datetime = Field(default_factory=utc_now)

    @field_validator("created_at", "voted_at")
    @classmethod
    def _normalise_times(cls, value: datetime | None) -> datetime | None:
        return as_utc(value) if value is not None else None

    @model_validator(mode="after")
    def _check_models(self) -> ComparisonSession:
        if len(self.models) != 2 or self.models[0] == self.models[1]:
            raise ValueError("a comparison needs exactly two distinct models")
        if self.winner is not None and self.winner not in self.models:
            raise ValueError(f"winner {self.winner!r} is not one of {self.models}")
        return self


class ComparisonResult(CamelModel):
    """What the caller gets back from a comparison run."""

    session_id: str
    responses: dict[str, ModelResponse]


class SessionSummary(CamelModel):
    id: str
    prompt: str
    models: list[str]
    winner: str | None = None
    created_at: datetime
