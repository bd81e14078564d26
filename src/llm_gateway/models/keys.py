"""Pydantic models for issued API keys."""

from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import Field, field_validator

from llm_gateway.models.usage import CamelModel, as_utc, utc_now


class ApiKeyRecord(CamelModel):
    """A stored key. Only the sha256 hash and a display prefix are kept."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    user_id: str
    name: str
    key_hash: str
    key_prefix: str
    source: str = "proxy"  # proxy | local
    is_active: bool = True
    last_used_at: datetime | None = None
    created_at: datetime = Field(default_factory=utc_now)
    expires_at: datetime | None = None

    @field_validator("last_used_at", "created_at", "expires_at")
    @classmethod
    def _normalise_times(cls, value: datetime | None) -> datetime | None:
        return as_utc(value) if value is not None else None

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at <= now


class ApiKeyView(CamelModel):
    """What the owner sees when listing keys."""

    id: str
    name: str
    key_prefix: str
    is_active: bool
    last_used_at: datetime | None = None
    created_at: datetime
    expires_at: datetime | None = None

    @classmethod
    def from_record(cls, record: ApiKeyRecord) -> ApiKeyView:
        return cls(**record.model_dump(include=set(cls.model_fields)))


class IssuedKey(CamelModel):
    """Returned once, at creation. The secret is never stored or shown again."""

    key: str
    id: str
    name: str
    key_prefix: str
    expires_at: datetime | None = None
