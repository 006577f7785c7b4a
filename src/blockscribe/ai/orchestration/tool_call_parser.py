"""Tool call parsing for fenced payloads embedded in streamed assistant text.

The assistant embeds document tool calls in its prose as
``<tool_call>{"tool": ..., "parameters": {...}}</tool_call>``. The parser
recovers every complete fence from the text seen so far and returns the
prose with the parsed fences removed.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Mapping, Union

from ..tools.errors import ToolError
from ..tools.types import ToolCall, parse_tool_call

__all__ = [
    "TOOL_CALL_START",
    "TOOL_CALL_END",
    "TOOL_MARKER_TRANSLATION",
    "TOOL_CALL_FENCE_RE",
    "ParsedCall",
    "ParseError",
    "ParseSnapshot",
    "StreamToolCallParser",
    "normalize_tool_marker_text",
    "parse_tool_calls",
    "try_parse_json_block",
]

LOGGER = logging.getLogger(__name__)

# A JSON envelope that failed validation stays raw; executing it reports the error.
ParsedCall = Union[ToolCall, Mapping[str, Any]]

TOOL_CALL_START = "<tool_call>"
TOOL_CALL_END = "</tool_call>"

# Normalizes stylized glyphs inside tool markers emitted by some models.
# Every entry maps one character to one character so offsets survive.
TOOL_MARKER_TRANSLATION = str.maketrans(
    {
        ord("＜"): "<",
        ord("﹤"): "<",
        ord("〈"): "<",
        ord("《"): "<",
        ord("＞"): ">",
        ord("﹥"): ">",
        ord("〉"): ">",
        ord("》"): ">",
        ord("｜"): "|",
        ord("￨"): "|",
        ord("│"): "|",
        ord("／"): "/",
        ord("▁"): "_",
        ord("＿"): "_",
        ord("\u00a0"): " ",
        ord("\u2002"): " ",
        ord("\u2003"): " ",
        ord("\u2009"): " ",
        ord("\u200b"): " ",
        ord("\u202f"): " ",
        ord("\u3000"): " ",
        ord("\ufeff"): " ",
    }
)

_START_PATTERN = r"<\s*\|?\s*tool[\s_]*call\s*\|?\s*>"
_END_PATTERN = r"<\s*\|?\s*/\s*tool[\s_]*call\s*\|?\s*>"

TOOL_CALL_FENCE_RE = re.compile(
    _START_PATTERN + r"(?P<body>.*?)" + _END_PATTERN,
    re.IGNORECASE | re.DOTALL,
)
_START_RE = re.compile(_START_PATTERN, re.IGNORECASE)
# A start marker cut off by a chunk boundary, e.g. "<tool_ca".
_PARTIAL_START_RE = re.compile(
    r"<[\s|]*(?:t(?:o(?:o(?:l(?:[\s_]*(?:c(?:a(?:l(?:l\s*\|?\s*)?)?)?)?)?)?)?)?)?$",
    re.IGNORECASE,
)
_CODE_FENCE_RE = re.compile(r"^```(?:json)?\s*(?P<body>.*?)\s*```$", re.IGNORECASE | re.DOTALL)


@dataclass(slots=True, frozen=True)
class ParseError:
    """A fence whose body could not be turned into a tool call."""

    start: int
    end: int
    message: str
    raw: str


@dataclass(slots=True, frozen=True)
class ParseSnapshot:
    """Result of one parsing pass over the buffered text."""

    display_text: str
    tool_calls: tuple[ParsedCall, ...] = ()
    errors: tuple[ParseError, ...] = ()
    pending: bool = False


def normalize_tool_marker_text(text: str) -> str:
    """Normalize stylized Unicode glyphs to ASCII equivalents for tool parsing."""
    return text.translate(TOOL_MARKER_TRANSLATION)


def try_parse_json_block(text: str) -> dict[str, Any] | None:
    """Attempt to parse text as a JSON object, returning None on failure."""
    if not text:
        return None
    match = _CODE_FENCE_RE.match(text.strip())
    if match:
        text = match.group("body")
    try:
        result = json.loads(text)
    except json.JSONDecodeError:
        return None
    if isinstance(result, dict):
        return result
    return None


def parse_tool_calls(text: str, *, final: bool = True) -> ParseSnapshot:
    """Extract every complete fenced tool call from ``text``.

    Fences whose body is not a JSON object are logged and left in the
    display text. A JSON object that names an unknown tool or carries invalid
    parameters is still removed and returned as its raw mapping. With
    ``final=False`` a trailing start marker that has not been closed yet is
    hidden from the display text and ``pending`` is set.
    """

    if not text:
        return ParseSnapshot(display_text="")

    normalized = normalize_tool_marker_text(text)
    calls: list[ParsedCall] = []
    errors: list[ParseError] = []
    kept: list[str] = []
    cursor = 0
    log = LOGGER.warning if final else LOGGER.debug

    for match in TOOL_CALL_FENCE_RE.finditer(normalized):
        body = match.group("body").strip()
        payload = try_parse_json_block(body)
        if payload is None:
            message = "Tool call body is not a JSON object"
            log("Skipping unparseable tool call at %s: %s", match.start(), message)
            errors.append(ParseError(match.start(), match.end(), message, text[match.start():match.end()]))
            continue
        try:
            calls.append(parse_tool_call(payload))
        except ToolError as exc:
            log("Invalid tool call at %s: %s", match.start(), exc.message)
            calls.append(payload)
        kept.append(text[cursor:match.start()])
        cursor = match.end()

    tail = text[cursor:]
    pending = False
    if not final:
        normalized_tail = normalized[cursor:]
        last_fence_end = max((error.end for error in errors), default=cursor) - cursor
        open_match = _START_RE.search(normalized_tail, max(last_fence_end, 0))
        if open_match is not None:
            tail = tail[:open_match.start()]
            pending = True
        else:
            partial = _PARTIAL_START_RE.search(normalized_tail, max(last_fence_end, 0))
            if partial is not None:
                tail = tail[:partial.start()]
                pending = True
    kept.append(tail)

    return ParseSnapshot(
        display_text="".join(kept),
        tool_calls=tuple(calls),
        errors=tuple(errors),
        pending=pending,
    )


@dataclass(slots=True)
class StreamToolCallParser:
    """Incremental parser fed with streamed chunks of one assistant turn.

    Each :meth:`feed` re-derives the snapshot from the whole buffer, so a
    call whose fence closes between two chunks is counted exactly once.
    """

    _buffer: list[str] = field(default_factory=list)
    _snapshot: ParseSnapshot = field(default_factory=lambda: ParseSnapshot(display_text=""))

    @property
    def text(self) -> str:
        return "".join(self._buffer)

    @property
    def snapshot(self) -> ParseSnapshot:
        return self._snapshot

    @property
    def tool_calls(self) -> tuple[ParsedCall, ...]:
        return self._snapshot.tool_calls

    @property
    def display_text(self) -> str:
        return self._snapshot.display_text

    def feed(self, chunk: str) -> ParseSnapshot:
        if chunk:
            self._buffer.append(chunk)
        self._snapshot = parse_tool_calls(self.text, final=False)
        return self._snapshot

    def finalize(self) -> ParseSnapshot:
        self._snapshot = parse_tool_calls(self.text, final=True)
        return self._snapshot

    def reset(self) -> None:
        self._buffer.clear()
        self._snapshot = ParseSnapshot(display_text="")
