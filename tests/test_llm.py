"""Tests for chronicle.llm — HttpLLM and EchoLLM."""

import json
from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from chronicle.llm import EchoLLM, HttpLLM, LLMError, _parse_sse_line

MESSAGES = [
    {"role": "system", "content": "你是叙述者"},
    {"role": "user", "content": "走进庭院"},
]


# ---------------------------------------------------------------------------
# EchoLLM
# ---------------------------------------------------------------------------

class TestEchoLLM:
    async def test_complete_returns_last_user_message(self) -> None:
        assert await EchoLLM().complete(MESSAGES) == "走进庭院"

    async def test_stream_reports_chunk(self) -> None:
        chunks: list[str] = []
        result = await EchoLLM().stream(MESSAGES, chunks.append)
        assert result == "走进庭院"
        assert chunks == ["走进庭院"]

    async def test_no_user_message(self) -> None:
        assert await EchoLLM().complete([{"role": "system", "content": "x"}]) == ""


# ---------------------------------------------------------------------------
# HttpLLM — one-shot completion
# ---------------------------------------------------------------------------

def _mock_response(body: dict, status: int = 200) -> MagicMock:
    resp = MagicMock()
    resp.status_code = status
    resp.json.return_value = body
    resp.raise_for_status = MagicMock(
        side_effect=None if status < 400 else httpx.HTTPStatusError(
            "", request=MagicMock(), response=resp
        )
    )
    return resp


def _completion(text: str) -> dict:
    return {"choices": [{"message": {"role": "assistant", "content": text}}]}


class TestHttpLLMComplete:
    @pytest.fixture
    def llm(self) -> HttpLLM:
        return HttpLLM(base_url="http://localhost:8080", model="local")

    async def test_happy_path(self, llm: HttpLLM) -> None:
        mock_post = AsyncMock(return_value=_mock_response(_completion("摘要内容")))
        with patch("httpx.AsyncClient.post", mock_post):
            result = await llm.complete(MESSAGES)
        assert result == "摘要内容"

    async def test_posts_to_chat_completions(self, llm: HttpLLM) -> None:
        mock_post = AsyncMock(return_value=_mock_response(_completion("ok")))
        with patch("httpx.AsyncClient.post", mock_post):
            await llm.complete(MESSAGES)
        assert mock_post.call_args[0][0] == "http://localhost:8080/v1/chat/completions"

    async def test_sends_messages_and_model(self, llm: HttpLLM) -> None:
        mock_post = AsyncMock(return_value=_mock_response(_completion("ok")))
        with patch("httpx.AsyncClient.post", mock_post):
            await llm.complete(MESSAGES)
        sent = mock_post.call_args.kwargs["json"]
        assert sent["messages"] == MESSAGES
        assert sent["model"] == "local"
        assert sent["stream"] is False

    async def test_bearer_token_sent_when_api_key_set(self) -> None:
        llm = HttpLLM(base_url="http://localhost:8080", api_key="secret")
        mock_post = AsyncMock(return_value=_mock_response(_completion("ok")))
        with patch("httpx.AsyncClient.post", mock_post):
            await llm.complete(MESSAGES)
        assert mock_post.call_args.kwargs["headers"]["Authorization"] == "Bearer secret"

    async def test_no_auth_header_without_api_key(self, llm: HttpLLM) -> None:
        mock_post = AsyncMock(return_value=_mock_response(_completion("ok")))
        with patch("httpx.AsyncClient.post", mock_post):
            await llm.complete(MESSAGES)
        assert "Authorization" not in mock_post.call_args.kwargs["headers"]

    async def test_trailing_slash_stripped(self) -> None:
        llm = HttpLLM(base_url="http://localhost:8080/")
        assert llm.url == "http://localhost:8080/v1/chat/completions"

    async def test_connect_error_raises_llm_error(self, llm: HttpLLM) -> None:
        mock_post = AsyncMock(side_effect=httpx.ConnectError("refused"))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(LLMError, match="Cannot connect"):
                await llm.complete(MESSAGES)

    async def test_timeout_raises_llm_error(self, llm: HttpLLM) -> None:
        mock_post = AsyncMock(side_effect=httpx.TimeoutException("timeout"))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(LLMError, match="timed out"):
                await llm.complete(MESSAGES)

    async def test_http_error_raises_llm_error(self, llm: HttpLLM) -> None:
        mock_post = AsyncMock(return_value=_mock_response({}, status=503))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(LLMError, match="HTTP 503"):
                await llm.complete(MESSAGES)

    async def test_malformed_response_raises_llm_error(self, llm: HttpLLM) -> None:
        mock_post = AsyncMock(return_value=_mock_response({"unexpected": "format"}))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(LLMError, match="Unexpected response format"):
                await llm.complete(MESSAGES)


# ---------------------------------------------------------------------------
# HttpLLM — streaming
# ---------------------------------------------------------------------------

def _sse(*contents: str) -> list[str]:
    lines = [
        'data: {"choices": [{"delta": {"content": %s}}]}' % json.dumps(c)
        for c in contents
    ]
    return [": keep-alive", *lines, "", "data: [DONE]", 'data: {"choices": [{"delta": {"content": "late"}}]}']


def _fake_stream(lines: list[str], status: int = 200, calls: list | None = None):
    resp = _mock_response({}, status)

    async def aiter_lines():
        for line in lines:
            yield line

    resp.aiter_lines = aiter_lines

    @asynccontextmanager
    async def stream(self, method, url, **kwargs):
        if calls is not None:
            calls.append((method, url, kwargs))
        yield resp

    return stream


class TestHttpLLMStream:
    @pytest.fixture
    def llm(self) -> HttpLLM:
        return HttpLLM(base_url="http://localhost:8080")

    async def test_accumulates_deltas_until_done(self, llm: HttpLLM) -> None:
        chunks: list[str] = []
        with patch("httpx.AsyncClient.stream", _fake_stream(_sse("晨光", "洒进", "庭院"))):
            text = await llm.stream(MESSAGES, chunks.append)
        assert text == "晨光洒进庭院"
        assert chunks == ["晨光", "洒进", "庭院"]

    async def test_requests_streaming(self, llm: HttpLLM) -> None:
        calls: list = []
        with patch("httpx.AsyncClient.stream", _fake_stream(_sse("x"), calls=calls)):
            await llm.stream(MESSAGES, lambda _: None)
        method, url, kwargs = calls[0]
        assert method == "POST"
        assert url == "http://localhost:8080/v1/chat/completions"
        assert kwargs["json"]["stream"] is True

    async def test_http_error_raises_llm_error(self, llm: HttpLLM) -> None:
        with patch("httpx.AsyncClient.stream", _fake_stream([], status=500)):
            with pytest.raises(LLMError, match="HTTP 500"):
                await llm.stream(MESSAGES, lambda _: None)

    async def test_empty_stream_returns_empty_text(self, llm: HttpLLM) -> None:
        with patch("httpx.AsyncClient.stream", _fake_stream(["data: [DONE]"])):
            assert await llm.stream(MESSAGES, lambda _: None) == ""


class TestParseSSELine:
    def test_ignores_comments_and_blank_lines(self) -> None:
        assert _parse_sse_line(": ping") is None
        assert _parse_sse_line("") is None

    def test_malformed_json_skipped(self) -> None:
        assert _parse_sse_line("data: {not json") is None

    def test_role_only_delta_skipped(self) -> None:
        assert _parse_sse_line('data: {"choices": [{"delta": {"role": "assistant"}}]}') is None
