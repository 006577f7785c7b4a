"""Tests for the OpenAI-compatible AI client and the chat transports."""

from __future__ import annotations

import json
from types import SimpleNamespace
from typing import Any, cast

import httpx
import pytest
from openai import AsyncOpenAI

from blockscribe.ai.client import AIClient, AIStreamEvent, ClientSettings
from blockscribe.ai.orchestration.transport import AIClientTransport, HttpTextStreamTransport, TransportError
from blockscribe.ai.prompts import DocumentContext

from tests.helpers import FakeCompletions, FakeStreamEvent


def _settings(**overrides: Any) -> ClientSettings:
    base = dict(base_url="https://example.test/v1", api_key="test-key", model="gpt-test")
    base.update(overrides)
    return ClientSettings(**base)


def _client(events: list[FakeStreamEvent], **overrides: Any) -> tuple[AIClient, FakeCompletions]:
    completions = FakeCompletions(events)
    fake = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    return AIClient(_settings(**overrides), client=cast(AsyncOpenAI, fake)), completions


@pytest.mark.asyncio
async def test_stream_chat_normalizes_events() -> None:
    client, completions = _client(
        [
            FakeStreamEvent(type="chunk"),
            FakeStreamEvent(type="content.delta", delta="Hel"),
            FakeStreamEvent(type="content.delta", delta=""),
            FakeStreamEvent(type="content.delta", delta="lo"),
            FakeStreamEvent(type="content.done", content="Hello"),
            FakeStreamEvent(type="tool_calls.function.arguments.delta"),
        ]
    )

    events = [event async for event in client.stream_chat([{"role": "user", "content": "hi"}])]

    assert events == [
        AIStreamEvent(type="content.delta", content="Hel"),
        AIStreamEvent(type="content.delta", content="lo"),
        AIStreamEvent(type="content.done", content="Hello"),
    ]
    assert completions.calls[0] == {
        "model": "gpt-test",
        "messages": [{"role": "user", "content": "hi"}],
        "temperature": 0.2,
    }


@pytest.mark.asyncio
async def test_stream_chat_passes_overrides() -> None:
    client, completions = _client([], temperature=None)

    _ = [event async for event in client.stream_chat([{"role": "user", "content": "hi"}], max_tokens=64, top_p=0.5)]

    assert completions.calls[0]["max_tokens"] == 64
    assert completions.calls[0]["top_p"] == 0.5
    assert "temperature" not in completions.calls[0]


@pytest.mark.asyncio
async def test_stream_chat_requires_messages() -> None:
    client, _ = _client([])

    with pytest.raises(ValueError):
        _ = [event async for event in client.stream_chat([])]


@pytest.mark.asyncio
async def test_client_transport_prepends_system_prompt() -> None:
    client, completions = _client(
        [
            FakeStreamEvent(type="content.delta", delta="Sure"),
            FakeStreamEvent(type="content.done", content="Sure"),
        ]
    )
    transport = AIClientTransport(client)

    chunks = [chunk async for chunk in transport.stream([{"role": "user", "content": "hi"}], system_prompt="SYS")]

    assert chunks == ["Sure"]
    assert completions.calls[0]["messages"][0] == {"role": "system", "content": "SYS"}
    assert completions.calls[0]["messages"][1] == {"role": "user", "content": "hi"}


@pytest.mark.asyncio
async def test_client_transport_surfaces_refusals() -> None:
    client, _ = _client([FakeStreamEvent(type="refusal.done", refusal="I can't help with that.")])

    chunks = [chunk async for chunk in AIClientTransport(client).stream([{"role": "user", "content": "x"}], system_prompt="")]

    assert chunks == ["I can't help with that."]


@pytest.mark.asyncio
async def test_http_transport_posts_messages_and_context() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, text="Hello from the endpoint")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
        transport = HttpTextStreamTransport(
            "https://docs.test/api/ai/doc-chat",
            context=DocumentContext(title="Stale"),
            client=http_client,
            headers={"X-Doc": "1"},
        )
        context = DocumentContext(title="Guide", description="Travel", blocks_preview="[a] paragraph: hi")
        chunks = [
            chunk
            async for chunk in transport.stream(
                [{"role": "user", "content": "hi"}], system_prompt="ignored", context=context
            )
        ]
        await transport.aclose()
        assert not http_client.is_closed

    assert "".join(chunks) == "Hello from the endpoint"
    body = json.loads(seen[0].content)
    assert body == {
        "messages": [{"role": "user", "content": "hi"}],
        "documentContext": {"title": "Guide", "description": "Travel", "blocksPreview": "[a] paragraph: hi"},
    }
    assert seen[0].headers["X-Doc"] == "1"


@pytest.mark.asyncio
async def test_http_transport_raises_on_error_status() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(502, text="upstream down")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
        transport = HttpTextStreamTransport("https://docs.test/chat", client=http_client)
        with pytest.raises(TransportError) as excinfo:
            _ = [chunk async for chunk in transport.stream([], system_prompt="")]

    assert excinfo.value.status_code == 502
    assert excinfo.value.body == "upstream down"


@pytest.mark.asyncio
async def test_http_transport_falls_back_to_stored_context() -> None:
    bodies: list[dict[str, Any]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(200, text="ok")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
        transport = HttpTextStreamTransport("https://docs.test/chat", client=http_client)
        _ = [chunk async for chunk in transport.stream([], system_prompt="")]
        transport.set_context(DocumentContext(title="Later"))
        _ = [chunk async for chunk in transport.stream([], system_prompt="")]

    assert "documentContext" not in bodies[0]
    assert bodies[1]["documentContext"]["title"] == "Later"
