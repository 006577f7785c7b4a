"""Shared test helpers and stub classes.

Import from here instead of duplicating these classes in individual test files.
"""

from __future__ import annotations

import asyncio
import itertools
import json
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Mapping, Sequence

from blockscribe.editor.document_model import BlockDocument

SAMPLE_BLOCKS: list[dict[str, Any]] = [
    {"id": "h1", "type": "heading", "props": {"level": 1}, "content": "Why Visit Butwal?"},
    {"id": "p1", "type": "paragraph", "content": "Butwal sits where the hills meet the plains."},
    {"id": "h2", "type": "heading", "props": {"level": 2}, "content": "Getting There"},
    {
        "id": "l1",
        "type": "bulletListItem",
        "content": "Take the bus from Kathmandu",
        "children": [{"id": "l1a", "type": "paragraph", "content": "Buses leave every morning"}],
    },
]


def sequential_ids(prefix: str = "n") -> Callable[[], str]:
    """Deterministic id factory: ``n1``, ``n2``, ..."""

    counter = itertools.count(1)
    return lambda: f"{prefix}{next(counter)}"


def make_document(blocks: Iterable[Mapping[str, Any]] | None = None, *, editable: bool = True) -> BlockDocument:
    payload = SAMPLE_BLOCKS if blocks is None else list(blocks)
    return BlockDocument(payload, id_factory=sequential_ids(), editable=editable)


def fence(tool: str, **parameters: Any) -> str:
    """Wrap a tool call in the markers the parser recognises."""

    body = json.dumps({"tool": tool, "parameters": parameters})
    return f"<tool_call>{body}</tool_call>"


def chunked(text: str, size: int) -> list[str]:
    return [text[index:index + size] for index in range(0, len(text), size)]


class ScriptedTransport:
    """Chat transport replaying one scripted reply per turn."""

    def __init__(self, *replies: str | Sequence[str], chunk_size: int | None = None) -> None:
        self._replies: list[list[str]] = []
        for reply in replies:
            if isinstance(reply, str):
                self._replies.append(chunked(reply, chunk_size) if chunk_size else [reply])
            else:
                self._replies.append(list(reply))
        self.calls: list[dict[str, Any]] = []

    async def stream(
        self,
        messages: Sequence[Mapping[str, str]],
        *,
        system_prompt: str,
        context: Any = None,
    ):
        self.calls.append(
            {
                "messages": [dict(message) for message in messages],
                "system_prompt": system_prompt,
                "context": context,
            }
        )
        chunks = self._replies.pop(0) if self._replies else []
        for chunk in chunks:
            await asyncio.sleep(0)
            yield chunk


class FailingTransport:
    """Yields ``chunks`` and then raises ``error``."""

    def __init__(self, error: Exception, chunks: Sequence[str] = ()) -> None:
        self._error = error
        self._chunks = list(chunks)
        self.calls = 0

    async def stream(self, messages, *, system_prompt, context=None):  # type: ignore[no-untyped-def]
        self.calls += 1
        for chunk in self._chunks:
            await asyncio.sleep(0)
            yield chunk
        raise self._error


class BlockingTransport:
    """Yields ``chunks`` then waits until released; used for cancellation."""

    def __init__(self, chunks: Sequence[str] = ()) -> None:
        self._chunks = list(chunks)
        self.started = asyncio.Event()
        self.release = asyncio.Event()
        self.closed = False

    async def stream(self, messages, *, system_prompt, context=None):  # type: ignore[no-untyped-def]
        try:
            for chunk in self._chunks:
                yield chunk
            self.started.set()
            await self.release.wait()
        finally:
            self.closed = True


class EventRecorder:
    """Session listener collecting every emitted event."""

    def __init__(self) -> None:
        self.events: list[Any] = []

    def __call__(self, event: Any) -> None:
        self.events.append(event)

    def of_type(self, event_type: str) -> list[Any]:
        return [event for event in self.events if event.type == event_type]

    def states(self) -> list[str]:
        return [event.payload["state"] for event in self.of_type("state.changed")]


# ----------------------------------------------------------------------
# OpenAI streaming fakes
# ----------------------------------------------------------------------
@dataclass
class FakeStreamEvent:
    """Simple structure emulating ChatCompletionStreamEvent attributes."""

    type: str
    delta: str | None = None
    content: str | None = None
    refusal: str | None = None


class FakeStream:
    def __init__(self, events: Iterable[FakeStreamEvent]):
        self._iterator = iter(list(events))

    def __aiter__(self) -> "FakeStream":
        return self

    async def __anext__(self) -> FakeStreamEvent:
        try:
            return next(self._iterator)
        except StopIteration as exc:
            raise StopAsyncIteration from exc


class FakeStreamContext:
    def __init__(self, events: Iterable[FakeStreamEvent]):
        self._events = list(events)

    async def __aenter__(self) -> FakeStream:
        return FakeStream(self._events)

    async def __aexit__(self, exc_type, exc, tb) -> bool:  # type: ignore[no-untyped-def]
        return False


class FakeCompletions:
    def __init__(self, events: Iterable[FakeStreamEvent]):
        self._events = list(events)
        self.calls: list[dict[str, Any]] = []

    def stream(self, **kwargs: Any) -> FakeStreamContext:
        self.calls.append(kwargs)
        return FakeStreamContext(self._events)
