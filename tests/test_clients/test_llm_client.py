"""Tests for LLMClient (OpenAI-compatible proxy wrapper)."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import openai
import pytest

from llm_gateway.clients.llm_client import ChatResult, LLMClient
from llm_gateway.errors import UpstreamError

PATCH_TARGET = "llm_gateway.clients.llm_client.openai.AsyncOpenAI"
REQUEST = httpx.Request("POST", "http://proxy.test/v1/chat/completions")


def _make_completion(text: str | None, prompt_tokens: int = 100, completion_tokens: int = 50):
    """Build a mock ChatCompletion-like object."""
    completion = MagicMock()
    completion.choices = [MagicMock()]
    completion.choices[0].message.content = text
    completion.usage.prompt_tokens = prompt_tokens
    completion.usage.completion_tokens = completion_tokens
    return completion


def _status_error(status: int, message: str) -> openai.APIStatusError:
    return openai.APIStatusError(
        message, response=httpx.Response(status, request=REQUEST), body=None
    )


class TestLLMClientInit:
    def test_init_points_at_v1_and_disables_sdk_retries(self):
        with patch(PATCH_TARGET) as mock_cls:
            LLMClient("http://proxy.test/", api_key="sk-master")
            mock_cls.assert_called_once_with(
                base_url="http://proxy.test/v1", max_retries=0, api_key="sk-master"
            )

    def test_init_with_timeout(self):
        with patch(PATCH_TARGET) as mock_cls:
            LLMClient("http://proxy.test", timeout=30.0)
            kwargs = mock_cls.call_args.kwargs
            assert kwargs["timeout"] == 30.0
            assert kwargs["api_key"] == "not-set"


class TestLLMClientChat:
    async def test_chat_returns_text_and_usage(self):
        with patch(PATCH_TARGET) as mock_cls:
            mock_client = MagicMock()
            mock_client.chat.completions.create = AsyncMock(
                return_value=_make_completion("hello world", 12, 7)
            )
            mock_cls.return_value = mock_client

            llm = LLMClient("http://proxy.test")
            result = await llm.chat("gpt-4o", [{"role": "user", "content": "hi"}])

        assert isinstance(result, ChatResult)
        assert result.text == "hello world"
        assert result.input_tokens == 12
        assert result.output_tokens == 7
        assert result.total_tokens == 19

    async def test_chat_forwards_sampling_params(self):
        with patch(PATCH_TARGET) as mock_cls:
            mock_client = MagicMock()
            mock_client.chat.completions.create = AsyncMock(return_value=_make_completion("x"))
            mock_cls.return_value = mock_client

            llm = LLMClient("http://proxy.test")
            await llm.chat("gpt-4o", [], max_tokens=2048, temperature=0.7)

        mock_client.chat.completions.create.assert_awaited_once_with(
            model="gpt-4o", messages=[], max_tokens=2048, temperature=0.7
        )

    async def test_chat_omits_unset_params(self):
        with patch(PATCH_TARGET) as mock_cls:
            mock_client = MagicMock()
            mock_client.chat.completions.create = AsyncMock(return_value=_make_completion("x"))
            mock_cls.return_value = mock_client

            llm = LLMClient("http://proxy.test")
            await llm.chat("gpt-4o", [])

        mock_client.chat.completions.create.assert_awaited_once_with(model="gpt-4o", messages=[])

    async def test_chat_empty_content_becomes_empty_string(self):
        with patch(PATCH_TARGET) as mock_cls:
            mock_client = MagicMock()
            mock_client.chat.completions.create = AsyncMock(return_value=_make_completion(None))
            mock_cls.return_value = mock_client

            result = await LLMClient("http://proxy.test").chat("gpt-4o", [])

        assert result.text == ""

    async def test_per_call_api_key_uses_with_options(self):
        with patch(PATCH_TARGET) as mock_cls:
            mock_client = MagicMock()
            scoped = MagicMock()
            scoped.chat.completions.create = AsyncMock(return_value=_make_completion("x"))
            mock_client.with_options.return_value = scoped
            mock_cls.return_value = mock_client

            await LLMClient("http://proxy.test").chat("gpt-4o", [], api_key="sk-user")

        mock_client.with_options.assert_called_once_with(api_key="sk-user")
        scoped.chat.completions.create.assert_awaited_once()


class TestLLMClientErrors:
    async def test_status_error_maps_to_upstream_error(self):
        with patch(PATCH_TARGET) as mock_cls:
            mock_client = MagicMock()
            mock_client.chat.completions.create = AsyncMock(
                side_effect=_status_error(500, "boom")
            )
            mock_cls.return_value = mock_client

            llm = LLMClient("http://proxy.test")
            with pytest.raises(UpstreamError) as exc_info:
                await llm.chat("gpt-4o", [])

        assert exc_info.value.status_code == 500
        assert exc_info.value.model == "gpt-4o"
        assert "Chat completion error: 500" in exc_info.value.detail
        assert "boom" in exc_info.value.detail

    async def test_status_error_not_retried(self):
        with patch(PATCH_TARGET) as mock_cls:
            mock_client = MagicMock()
            mock_client.chat.completions.create = AsyncMock(
                side_effect=_status_error(429, "rate limited")
            )
            mock_cls.return_value = mock_client

            llm = LLMClient("http://proxy.test", max_retries=3)
            with pytest.raises(UpstreamError):
                await llm.chat("gpt-4o", [])

        assert mock_client.chat.completions.create.await_count == 1

    async def test_connection_error_maps_to_upstream_error(self):
        with patch(PATCH_TARGET) as mock_cls:
            mock_client = MagicMock()
            mock_client.chat.completions.create = AsyncMock(
                side_effect=openai.APIConnectionError(request=REQUEST)
            )
            mock_cls.return_value = mock_client

            llm = LLMClient("http://proxy.test", max_retries=0)
            with pytest.raises(UpstreamError) as exc_info:
                await llm.chat("gpt-4o", [])

        assert exc_info.value.status_code is None
        assert exc_info.value.detail.startswith("Chat completion error:")
        assert mock_client.chat.completions.create.await_count == 1

    async def test_max_retries_counts_attempts_after_the_first(self):
        with patch(PATCH_TARGET) as mock_cls:
            mock_client = MagicMock()
            mock_client.chat.completions.create = AsyncMock(
                side_effect=openai.APIConnectionError(request=REQUEST)
            )
            mock_cls.return_value = mock_client

            llm = LLMClient("http://proxy.test", max_retries=1)
            with pytest.raises(UpstreamError):
                await llm.chat("gpt-4o", [])

        assert mock_client.chat.completions.create.await_count == 2

    async def test_other_sdk_error_maps_to_upstream_error(self):
        with patch(PATCH_TARGET) as mock_cls:
            mock_client = MagicMock()
            mock_client.chat.completions.create = AsyncMock(
                side_effect=openai.APIError("bad payload", request=REQUEST, body=None)
            )
            mock_cls.return_value = mock_client

            llm = LLMClient("http://proxy.test")
            with pytest.raises(UpstreamError) as exc_info:
                await llm.chat("gpt-4o", [])

        assert exc_info.value.model == "gpt-4o"
        assert exc_info.value.status_code is None
        assert exc_info.value.detail == "Chat completion error: bad payload"
        assert mock_client.chat.completions.create.await_count == 1

    async def test_connection_error_retried_then_succeeds(self):
        with patch(PATCH_TARGET) as mock_cls:
            mock_client = MagicMock()
            mock_client.chat.completions.create = AsyncMock(
                side_effect=[
                    openai.APIConnectionError(request=REQUEST),
                    _make_completion("recovered"),
                ]
            )
            mock_cls.return_value = mock_client

            llm = LLMClient("http://proxy.test", max_retries=2)
            result = await llm.chat("gpt-4o", [])

        assert result.text == "recovered"
        assert mock_client.chat.completions.create.await_count == 2


class TestLLMClientClose:
    async def test_close_closes_underlying_client(self):
        with patch(PATCH_TARGET) as mock_cls:
            mock_client = MagicMock()
            mock_client.close = AsyncMock()
            mock_cls.return_value = mock_client

            llm = LLMClient("http://proxy.test")
            await llm.close()

        mock_client.close.assert_awaited_once()
