"""Data models for the gateway core."""

from llm_gateway.models.arena import (
    ComparisonResult,
    ComparisonSession,
    ModelResponse,
    SessionSummary,
)
from llm_gateway.models.keys import ApiKeyRecord, ApiKeyView, IssuedKey
from llm_gateway.models.usage import (
    DailyBucket,
    ModelBreakdown,
    RecentRequest,
    UsageEntry,
    UsageSummary,
)

__all__ = [
    "ApiKeyRecord",
    "ApiKeyView",
    "ComparisonResult",
    "ComparisonSession",
    "DailyBucket",
    "IssuedKey",
    "ModelBreakdown",
    "ModelResponse",
    "RecentRequest",
    "SessionSummary",
    "UsageEntry",
    "UsageSummary",
]
