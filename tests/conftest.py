"""Shared test fixtures."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from llm_gateway.arena.session_store import SessionStore
from llm_gateway.clients.llm_client import ChatResult, LLMClient
from llm_gateway.clients.proxy_admin import ProxyAdminClient
from llm_gateway.keys.key_store import KeyStore
from llm_gateway.ledger.usage_store import UsageStore
from llm_gateway.models.usage import UsageEntry
from llm_gateway.registry import ModelRegistry


def _make_entry(
    model: str = "gpt-4o",
    cost_micros: int = 0,
    created_at: datetime | None = None,
    user_id: str = "u1",
    input_tokens: int = 10,
    output_tokens: int = 5,
    success: bool = True,
) -> UsageEntry:
    return UsageEntry(
        user_id=user_id,
        model=model,
        provider="OpenAI",
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        total_tokens=input_tokens + output_tokens,
        cost_micros=cost_micros,
        success=success,
        error_message=None if success else "boom",
        created_at=created_at or datetime(2024, 1, 1, 12, tzinfo=timezone.utc),
    )


@pytest.fixture
def make_entry():
    """Factory for ledger entries; defaults to user u1 on 2024-01-01 12:00 UTC."""
    return _make_entry


@pytest.fixture
def registry() -> ModelRegistry:
    return ModelRegistry.from_dict({
        "gpt-4o": {"name": "GPT-4o", "provider": "OpenAI", "input_cost": 2.50, "output_cost": 10.00},
        "claude": {"name": "Claude", "provider": "Anthropic", "input_cost": 3.00, "output_cost": 15.00},
        "a": {"name": "Model A", "provider": "TestCo", "input_cost": 1.00, "output_cost": 2.00},
        "b": {"name": "Model B", "provider": "TestCo", "input_cost": 0.50, "output_cost": 1.00},
    })


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "gateway.db"


@pytest.fixture
def ledger(db_path: Path) -> UsageStore:
    return UsageStore(db_path=db_path)


@pytest.fixture
def sessions(db_path: Path) -> SessionStore:
    return SessionStore(db_path=db_path)


@pytest.fixture
def mock_llm_client() -> LLMClient:
    """Create a mock LLM client that answers every call successfully."""
    client = AsyncMock(spec=LLMClient)
    client.chat = AsyncMock(
        return_value=ChatResult(text="hello", input_tokens=100, output_tokens=50)
    )
    return client


@pytest.fixture
def key_store(db_path: Path) -> KeyStore:
    return KeyStore(db_path=db_path)


@pytest.fixture
def mock_admin_client() -> ProxyAdminClient:
    """Create a mock proxy admin client that issues one fixed key."""
    client = AsyncMock(spec=ProxyAdminClient)
    client.generate_key = AsyncMock(return_value="sk-proxy-0123456789abcdef")
    client.delete_key = AsyncMock(return_value=None)
    return client
