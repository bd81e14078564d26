"""Tests for the single-model chat proxy."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from llm_gateway.arena.chat import ChatProxy
from llm_gateway.errors import UpstreamError, ValidationError

WIDE_START = datetime(2000, 1, 1, tzinfo=timezone.utc)
WIDE_END = datetime(2100, 1, 1, tzinfo=timezone.utc)
MESSAGES = [{"role": "user", "content": "hi"}]


@pytest.fixture
def proxy(mock_llm_client, ledger, registry) -> ChatProxy:
    return ChatProxy(mock_llm_client, ledger, registry)


class TestChatProxy:
    async def test_reply_and_usage(self, proxy, ledger):
        reply = await proxy.chat("u1", "gpt-4o", MESSAGES, api_key_id="key-1")

        assert reply.content == "hello"
        assert reply.usage.prompt_tokens == 100
        assert reply.usage.completion_tokens == 50
        assert reply.usage.total_tokens == 150

        [entry] = ledger.list_for_user("u1", WIDE_START, WIDE_END)
        assert entry.success is True
        assert entry.api_key_id == "key-1"
        assert entry.provider == "OpenAI"
        # 100 * 2.50 + 50 * 10.00
        assert entry.cost_micros == 750

    async def test_forwards_caller_key(self, proxy, mock_llm_client):
        await proxy.chat("u1", "gpt-4o", MESSAGES, api_key="sk-user")
        assert mock_llm_client.chat.await_args.kwargs["api_key"] == "sk-user"

    async def test_upstream_failure_recorded_and_reraised(self, proxy, ledger, mock_llm_client):
        mock_llm_client.chat.side_effect = UpstreamError(
            "gpt-4o", "Chat completion error: 503 - unavailable", status_code=503
        )
        with pytest.raises(UpstreamError):
            await proxy.chat("u1", "gpt-4o", MESSAGES)

        [entry] = ledger.list_for_user("u1", WIDE_START, WIDE_END)
        assert entry.success is False
        assert "503" in entry.error_message
        assert entry.cost_micros == 0

    @pytest.mark.parametrize(
        "model, messages",
        [
            ("", MESSAGES),
            ("gpt-4o", []),
            ("gpt-4o", [{"role": "tool", "content": "x"}]),
            ("gpt-4o", [{"role": "user", "content": 5}]),
        ],
    )
    async def test_invalid_input(self, proxy, mock_llm_client, model, messages):
        with pytest.raises(ValidationError):
            await proxy.chat("u1", model, messages)
        mock_llm_client.chat.assert_not_called()

    async def test_unexpected_failure_recorded_and_reraised(self, proxy, ledger, mock_llm_client):
        mock_llm_client.chat.side_effect = RuntimeError("malformed completion")
        with pytest.raises(RuntimeError):
            await proxy.chat("u1", "gpt-4o", MESSAGES, api_key_id="key-1")

        [entry] = ledger.list_for_user("u1", WIDE_START, WIDE_END)
        assert entry.success is False
        assert entry.error_message == "malformed completion"
        assert entry.api_key_id == "key-1"
