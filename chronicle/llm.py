"""LLM client — HTTP connection to a chat-completion backend.

The engine consumes two capabilities, injected as callables matching these
protocols:

    async def stream(messages, on_chunk) -> str: ...   # ChatStream
    async def complete(messages) -> str: ...           # Completion

`messages` is an ordered list of {"role": "system"|"user"|"assistant",
"content": str}. A ChatStream calls `on_chunk` with every text increment and
returns the accumulated text; the engine only relies on the return value.

Two implementations are provided:

    HttpLLM   — OpenAI-compatible /v1/chat/completions client, both streaming
                (server-sent events) and one-shot.
    EchoLLM   — answers with the last user message. Useful for smoke-testing
                the turn wiring without a running model.

Tests use StubLLM (defined in conftest) instead.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from typing import Protocol

import httpx

logger = logging.getLogger(__name__)

ChatMessage = dict[str, str]
ChunkCallback = Callable[[str], None]


# ---------------------------------------------------------------------------
# Protocols — every LLM implementation must match these signatures
# ---------------------------------------------------------------------------

class ChatStream(Protocol):
    async def __call__(self, messages: list[ChatMessage], on_chunk: ChunkCallback) -> str: ...


class Completion(Protocol):
    async def __call__(self, messages: list[ChatMessage]) -> str: ...


# ---------------------------------------------------------------------------
# HttpLLM — connects to a real backend
# ---------------------------------------------------------------------------

class HttpLLM:
    """Async HTTP client for OpenAI-compatible chat backends.

    Instances are usable both as a ChatStream (`await llm.stream(...)`) and as
    a Completion (`await llm.complete(...)`).

    Args:
        base_url:    Base URL of the backend, e.g. "http://localhost:8080".
        api_key:     Bearer token, or empty string if not required.
        model:       Model identifier sent with every request.
        timeout:     HTTP timeout in seconds. Defaults to 120.
        temperature: Sampling temperature for narration.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        model: str = "",
        timeout: float = 120.0,
        temperature: float = 0.8,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._model = model
        self._timeout = timeout
        self._temperature = temperature

    @property
    def url(self) -> str:
        return f"{self._base_url}/v1/chat/completions"

    def _headers(self) -> dict[str, str]:
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def _body(self, messages: list[ChatMessage], stream: bool) -> dict:
        body: dict = {
            "messages": messages,
            "stream": stream,
            "temperature": self._temperature,
        }
        if self._model:
            body["model"] = self._model
        return body

    async def complete(self, messages: list[ChatMessage]) -> str:
        logger.debug("llm complete url=%s messages=%d", self.url, len(messages))
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(
                    self.url, json=self._body(messages, stream=False), headers=self._headers(),
                )
                resp.raise_for_status()
        except httpx.ConnectError as e:
            raise LLMError(f"Cannot connect to LLM backend at {self._base_url}") from e
        except httpx.HTTPStatusError as e:
            raise LLMError(f"LLM backend returned HTTP {e.response.status_code}") from e
        except httpx.TimeoutException as e:
            raise LLMError(f"LLM backend timed out after {self._timeout}s") from e

        choices = resp.json().get("choices")
        if not choices or "content" not in choices[0].get("message", {}):
            raise LLMError("Unexpected response format from chat backend")
        text = choices[0]["message"]["content"] or ""
        logger.debug("llm complete response len=%d", len(text))
        return text

    async def stream(self, messages: list[ChatMessage], on_chunk: ChunkCallback) -> str:
        logger.debug("llm stream url=%s messages=%d", self.url, len(messages))
        parts: list[str] = []
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                async with client.stream(
                    "POST", self.url, json=self._body(messages, stream=True), headers=self._headers(),
                ) as resp:
                    resp.raise_for_status()
                    async for line in resp.aiter_lines():
                        chunk = _parse_sse_line(line)
                        if chunk is None:
                            continue
                        if chunk is _DONE:
                            break
                        parts.append(chunk)
                        on_chunk(chunk)
        except httpx.ConnectError as e:
            raise LLMError(f"Cannot connect to LLM backend at {self._base_url}") from e
        except httpx.HTTPStatusError as e:
            raise LLMError(f"LLM backend returned HTTP {e.response.status_code}") from e
        except httpx.TimeoutException as e:
            raise LLMError(f"LLM backend timed out after {self._timeout}s") from e

        text = "".join(parts)
        logger.debug("llm stream response len=%d", len(text))
        return text


_DONE = object()


def _parse_sse_line(line: str):
    """Return the text delta carried by one SSE line, _DONE, or None."""
    line = line.strip()
    if not line.startswith("data:"):
        return None
    payload = line[len("data:"):].strip()
    if payload == "[DONE]":
        return _DONE
    try:
        data = json.loads(payload)
    except json.JSONDecodeError:
        logger.warning("Skipping malformed stream line: %r", payload[:200])
        return None
    choices = data.get("choices") or []
    if not choices:
        return None
    return (choices[0].get("delta") or {}).get("content") or None


# ---------------------------------------------------------------------------
# EchoLLM — answers with the last user message; no network calls
# ---------------------------------------------------------------------------

class EchoLLM:
    """Echoes the last user message back as narration.

    Lets you verify the turn wiring (prompt building, parsing, state updates,
    saving) end-to-end without a running model.
    """

    async def stream(self, messages: list[ChatMessage], on_chunk: ChunkCallback) -> str:
        text = await self.complete(messages)
        on_chunk(text)
        return text

    async def complete(self, messages: list[ChatMessage]) -> str:
        logger.debug("EchoLLM messages=%d", len(messages))
        for msg in reversed(messages):
            if msg["role"] == "user":
                return msg["content"]
        return ""


# ---------------------------------------------------------------------------
# LLMError — raised by HttpLLM for all connection and protocol failures
# ---------------------------------------------------------------------------

class LLMError(RuntimeError):
    """Raised when the LLM backend cannot be reached or returns an error."""
