"""Dataclasses representing blocks of a rich-text document tree."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Mapping, Optional

__all__ = [
    "INLINE_STYLES",
    "InlineRun",
    "Block",
    "coerce_content",
    "content_to_string",
]

INLINE_STYLES: frozenset[str] = frozenset(
    {"bold", "italic", "underline", "strike", "code", "textColor", "backgroundColor"}
)


@dataclass(slots=True)
class InlineRun:
    """A run of inline text, optionally styled or linked."""

    text: str
    styles: Dict[str, Any] = field(default_factory=dict)
    href: Optional[str] = None

    @property
    def is_plain(self) -> bool:
        return not self.styles and self.href is None

    @classmethod
    def from_value(cls, value: Any) -> "InlineRun":
        """Build a run from a plain string or a styled/link mapping."""

        if isinstance(value, InlineRun):
            return cls(text=value.text, styles=dict(value.styles), href=value.href)
        if isinstance(value, str):
            return cls(text=value)
        if isinstance(value, Mapping):
            href = value.get("href")
            if href is not None and "text" not in value:
                # Link runs carry their text as nested runs.
                text = content_to_string(value.get("content"))
            else:
                text = value.get("text")
            styles = value.get("styles")
            return cls(
                text="" if text is None else str(text),
                styles={k: v for k, v in dict(styles).items() if k in INLINE_STYLES}
                if isinstance(styles, Mapping)
                else {},
                href=str(href) if href is not None else None,
            )
        raise TypeError(f"Unsupported inline content: {value!r}")

    def to_dict(self) -> Dict[str, Any]:
        if self.href is not None:
            return {
                "type": "link",
                "href": self.href,
                "content": [{"type": "text", "text": self.text, "styles": dict(self.styles)}],
            }
        return {"type": "text", "text": self.text, "styles": dict(self.styles)}


def coerce_content(value: Any) -> list[InlineRun]:
    """Normalize a content value (string, run list or mapping) into runs."""

    if value is None:
        return []
    if isinstance(value, str):
        return [InlineRun(text=value)] if value else []
    if isinstance(value, (InlineRun, Mapping)):
        return [InlineRun.from_value(value)]
    if isinstance(value, Iterable):
        return [InlineRun.from_value(item) for item in value if item is not None]
    raise TypeError(f"Unsupported block content: {value!r}")


def content_to_string(content: Any) -> str:
    """Collapse any content value to plain text.

    Plain strings pass through, objects exposing ``text`` contribute that
    text and everything else contributes an empty string.
    """

    if isinstance(content, str):
        return content
    if isinstance(content, InlineRun):
        return content.text
    if isinstance(content, (list, tuple)):
        parts: list[str] = []
        for item in content:
            if isinstance(item, str):
                parts.append(item)
            elif isinstance(item, InlineRun):
                parts.append(item.text)
            elif isinstance(item, Mapping) and "text" in item:
                parts.append(str(item["text"]))
            else:
                parts.append("")
        return "".join(parts)
    return ""


@dataclass(slots=True)
class Block:
    """A node in the document tree.

    ``id`` is assigned once by the owning document and is the only stable
    handle for the block; ``type``, ``props`` and ``content`` may change.
    """

    id: str
    type: str
    props: Dict[str, Any] = field(default_factory=dict)
    content: list[InlineRun] = field(default_factory=list)
    children: list["Block"] = field(default_factory=list)

    def text(self) -> str:
        """Return the flattened plain text of the block's inline content."""

        return "".join(run.text for run in self.content)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"id": self.id, "type": self.type}
        if self.props:
            payload["props"] = dict(self.props)
        if self.content:
            payload["content"] = [run.to_dict() for run in self.content]
        if self.children:
            payload["children"] = [child.to_dict() for child in self.children]
        return payload
