"""Chat transports yielding the assistant's reply as text chunks."""

from __future__ import annotations

import logging
from typing import Any, AsyncGenerator, Mapping, Protocol, Sequence

import httpx

from ..client import AIClient
from ..prompts import DocumentContext

__all__ = [
    "TransportError",
    "ChatTransport",
    "AIClientTransport",
    "HttpTextStreamTransport",
]

LOGGER = logging.getLogger(__name__)


class TransportError(RuntimeError):
    """Raised when a transport cannot produce a reply."""

    def __init__(self, message: str, *, status_code: int | None = None, body: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class ChatTransport(Protocol):
    """Produces one assistant turn for the given history.

    ``stream`` returns an async generator. The session closes it when the
    turn ends, including on cancellation.
    """

    def stream(
        self,
        messages: Sequence[Mapping[str, str]],
        *,
        system_prompt: str,
        context: DocumentContext | None = None,
    ) -> AsyncGenerator[str, None]:
        ...


class AIClientTransport:
    """Streams replies through :class:`AIClient` (OpenAI chat completions)."""

    def __init__(self, client: AIClient) -> None:
        self._client = client

    @property
    def client(self) -> AIClient:
        return self._client

    async def stream(
        self,
        messages: Sequence[Mapping[str, str]],
        *,
        system_prompt: str,
        context: DocumentContext | None = None,
    ) -> AsyncGenerator[str, None]:
        payload = [{"role": "system", "content": system_prompt}]
        payload.extend(dict(message) for message in messages)
        async for event in self._client.stream_chat(payload):
            if event.type == "content.delta" and event.content:
                yield event.content
            elif event.type == "refusal.done" and event.content:
                LOGGER.warning("Model refused the request: %s", event.content)
                yield event.content

    async def aclose(self) -> None:
        await self._client.aclose()


class HttpTextStreamTransport:
    """POSTs the conversation to a chat endpoint that streams plain text back.

    The request body is ``{"messages": [...], "documentContext": {...}}``.
    The system prompt is built server-side from ``documentContext``.
    """

    def __init__(
        self,
        endpoint: str,
        *,
        context: DocumentContext | None = None,
        client: httpx.AsyncClient | None = None,
        timeout: float | None = 90.0,
        headers: Mapping[str, str] | None = None,
    ) -> None:
        self._endpoint = endpoint
        self._context = context
        self._client = client
        self._owns_client = client is None
        self._timeout = timeout
        self._headers = dict(headers or {})

    def set_context(self, context: DocumentContext | None) -> None:
        self._context = context

    async def stream(
        self,
        messages: Sequence[Mapping[str, str]],
        *,
        system_prompt: str,
        context: DocumentContext | None = None,
    ) -> AsyncGenerator[str, None]:
        body: dict[str, Any] = {"messages": [dict(message) for message in messages]}
        context = context or self._context
        if context is not None:
            body["documentContext"] = context.to_dict()
        client = self._ensure_client()
        LOGGER.debug("POST %s with %s message(s)", self._endpoint, len(body["messages"]))
        async with client.stream("POST", self._endpoint, json=body, headers=self._headers) as response:
            if response.status_code // 100 != 2:
                error_text = (await response.aread()).decode("utf-8", errors="replace")
                LOGGER.error("Chat endpoint returned %s: %s", response.status_code, error_text)
                raise TransportError(
                    f"Chat endpoint returned HTTP {response.status_code}",
                    status_code=response.status_code,
                    body=error_text,
                )
            async for text in response.aiter_text():
                if text:
                    yield text

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
