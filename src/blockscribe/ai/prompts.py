"""Prompt templates for the document assistant."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, Sequence

from ..editor.document_model import BlockDocument
from .orchestration.tool_call_parser import TOOL_CALL_END, TOOL_CALL_START
from .tools.types import ToolExecutionResult

__all__ = [
    "DocumentContext",
    "build_blocks_preview",
    "build_system_prompt",
    "auto_continue_prompt",
]

DEFAULT_PREVIEW_BLOCKS = 30
DEFAULT_PREVIEW_CHARS = 2000


@dataclass(slots=True)
class DocumentContext:
    """Metadata about the document that is shown to the assistant."""

    title: str = ""
    description: str = ""
    blocks_preview: str = ""

    def to_dict(self) -> Dict[str, str]:
        return {
            "title": self.title,
            "description": self.description,
            "blocksPreview": self.blocks_preview,
        }


def build_blocks_preview(
    document: BlockDocument,
    max_blocks: int = DEFAULT_PREVIEW_BLOCKS,
    max_chars: int = DEFAULT_PREVIEW_CHARS,
) -> str:
    """Summarize the document as ``[id] type: text`` lines for the prompt."""

    lines: list[str] = []
    total = 0
    for index, block in enumerate(document.walk()):
        if index >= max_blocks:
            lines.append("...")
            break
        label = block.type
        if block.type == "heading":
            label = f"heading (level {block.props.get('level') or 1})"
        line = f"[{block.id}] {label}: {block.text()}".rstrip()
        if total + len(line) > max_chars:
            lines.append("...")
            break
        lines.append(line)
        total += len(line) + 1
    return "\n".join(lines)


_TOOL_REFERENCE = f"""\
You can edit the document directly. To call a tool, write a JSON object
between {TOOL_CALL_START} and {TOOL_CALL_END} markers, for example:

{TOOL_CALL_START}
{{"tool": "search_blocks", "parameters": {{"query": "Installation"}}}}
{TOOL_CALL_END}

Available tools:
- insert_blocks: {{"blocks": [{{"type", "props"?, "content"?, "children"?}}], "position": "start"|"end"|"before"|"after", "referenceBlockId"?}}
- update_block: {{"blockId", "update": {{"type"?, "content"?, "props"?}}}}
- delete_blocks: {{"blockIds": [...]}}
- search_blocks: {{"query"?, "type"?}}
- get_blocks_structure: {{}}
- replace_text: {{"find", "replace", "blockIds"?}}

Block types: paragraph, heading (props.level 1-6), quote, bulletListItem,
numberedListItem, checkListItem (props.checked), codeBlock (props.language),
image (props.url, props.caption). Use plain strings for content.
Search for blocks or read the structure before updating or deleting so that
you use real block IDs. Fuzzy search matches must be confirmed with the user."""


def build_system_prompt(context: DocumentContext | None = None) -> str:
    """Return the system prompt carrying the document context and tool guide."""

    context = context or DocumentContext()
    return (
        "You are an AI assistant helping users improve their documentation. "
        "You are embedded in a documentation editor and have context about the current document.\n\n"
        "Document Context:\n"
        f"- Title: {context.title or 'Untitled'}\n"
        f"- Description: {context.description or 'No description'}\n"
        f"- Content Preview:\n{context.blocks_preview or 'No content yet'}\n\n"
        f"{_TOOL_REFERENCE}"
    )


def auto_continue_prompt(result: ToolExecutionResult, tool: str) -> str:
    """Follow-up user turn asking the assistant to act on ``result``."""

    payload: Any = result.data
    if isinstance(payload, Sequence) and not isinstance(payload, str):
        payload = list(payload)
    return (
        f"The {tool} tool returned: {result.message}\n"
        f"Data:\n{json.dumps(payload, indent=2, ensure_ascii=False, default=str)}\n\n"
        "Proceed with the original request using these block IDs."
    )
