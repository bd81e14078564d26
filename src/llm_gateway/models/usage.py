"""Pydantic models for the usage ledger and its aggregated views."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and normalise aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class UsageEntry(CamelModel):
    """One completed (or failed) upstream model call. Never mutated once written."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str
    api_key_id: str | None = None
    model: str
    provider: str = "unknown"
    input_tokens: int = Field(default=0, ge=0)
    output_tokens: int = Field(default=0, ge=0)
    total_tokens: int = Field(default=0, ge=0)
    cost_micros: int = Field(default=0, ge=0)  # 1e-6 USD
    latency_ms: int | None = None
    success: bool = True
    error_message: str | None = None
    created_at: datetime = Field(default_factory=utc_now)

    @field_validator("created_at")
    @classmethod
    def _normalise_created_at(cls, value: datetime) -> datetime:
        return as_utc(value)

    @model_validator(mode="after")
    def _check_token_sum(self) -> UsageEntry:
        if (self.input_tokens or self.output_tokens) and (
            self.total_tokens != self.input_tokens + self.output_tokens
        ):
            raise ValueError(
                f"total_tokens ({self.total_tokens}) must equal input_tokens + output_tokens "
                f"({self.input_tokens} + {self.output_tokens})"
            )
        return self

    @classmethod
    def from_completion(
        cls,
        *,
        user_id: str,
        model: str,
        provider: str,
        input_tokens: int,
        output_tokens: int,
        cost_micros: int,
        latency_ms: int | None = None,
        api_key_id: str | None = None,
    ) -> UsageEntry:
        return cls(
            user_id=user_id,
            api_key_id=api_key_id,
            model=model,
            provider=provider,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            total_tokens=input_tokens + output_tokens,
            cost_micros=cost_micros,
            latency_ms=latency_ms,
            success=True,
        )

    @classmethod
    def from_failure(
        cls,
        *,
        user_id: str,
        model: str,
        provider: str,
        error_message: str,
        latency_ms: int | None = None,
        api_key_id: str | None = None,
    ) -> UsageEntry:
        return cls(
            user_id=user_id,
            api_key_id=api_key_id,
            model=model,
            provider=provider,
            latency_ms=latency_ms,
            success=False,
            error_message=error_message,
        )


class DailyBucket(CamelModel):
    date: str  # YYYY-MM-DD
    cost_micros: int = 0
    cost: float = 0.0
    requests: int = 0
    tokens: int = 0


class ModelBreakdown(CamelModel):
    model: str
    cost_micros: int
    cost: float
    requests: int
    percentage_of_total: float


class RecentRequest(CamelModel):
    id: str
    model: str
    input_tokens: int
    output_tokens: int
    cost: float
    success: bool
    created_at: datetime


class UsageSummary(CamelModel):
    start: datetime
    end: datetime
    total_cost: float
    total_cost_micros: int
    total_requests: int
    total_tokens: int
    daily_series: list[DailyBucket]
    model_breakdown: list[ModelBreakdown]
    recent_requests: list[RecentRequest]
