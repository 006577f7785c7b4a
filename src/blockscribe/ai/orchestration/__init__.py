"""Streaming conversation orchestration for document editing."""

from importlib import import_module
from typing import Any

_EXPORTS = {
    "ParsedCall": "tool_call_parser",
    "ParseError": "tool_call_parser",
    "ParseSnapshot": "tool_call_parser",
    "StreamToolCallParser": "tool_call_parser",
    "normalize_tool_marker_text": "tool_call_parser",
    "parse_tool_calls": "tool_call_parser",
    "try_parse_json_block": "tool_call_parser",
    "AIClientTransport": "transport",
    "ChatTransport": "transport",
    "HttpTextStreamTransport": "transport",
    "TransportError": "transport",
    "ChatMessage": "session",
    "ConversationSession": "session",
    "PendingPermission": "session",
    "SessionConfig": "session",
    "SessionEvent": "session",
    "SessionState": "session",
    "describe_tool_call": "session",
}

__all__ = sorted(_EXPORTS)


def __getattr__(name: str) -> Any:
    # Submodules load on first use; prompts imports the parser module directly.
    module_name = _EXPORTS.get(name)
    if module_name is None:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    value = getattr(import_module(f"{__name__}.{module_name}"), name)
    globals()[name] = value
    return value
