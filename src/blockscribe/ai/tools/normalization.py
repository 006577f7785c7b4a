"""Split requested blocks into structural skeletons and detached text."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Mapping, Optional

from ...editor.blocks import content_to_string

__all__ = ["LEGACY_LIST_TYPE", "NormalizedBlock", "normalize_blocks"]

LEGACY_LIST_TYPE = "list"
_STRIPPED_PROPS = ("ordered",)


@dataclass(slots=True)
class NormalizedBlock:
    """A block reduced to ``type``/``props``/``children`` plus its text.

    ``skeleton`` is what gets inserted; ``text`` (when not ``None``) is
    applied afterwards with an update. ``children`` mirrors the skeleton's
    children so their text can be applied too.
    """

    skeleton: Dict[str, Any]
    text: Optional[str] = None
    children: list["NormalizedBlock"] = field(default_factory=list)

    @property
    def type(self) -> str:
        return self.skeleton["type"]

    @property
    def label(self) -> str:
        """Human-readable type, e.g. ``heading (level 2)``."""

        if self.type == "heading":
            level = (self.skeleton.get("props") or {}).get("level") or 1
            return f"heading (level {level})"
        return self.type or "block"


def normalize_blocks(blocks: Iterable[Any]) -> list[NormalizedBlock]:
    """Normalize requested blocks before insertion.

    Legacy ``list`` containers are expanded into one list item per child,
    typed ``numberedListItem`` when ``props.ordered`` is true and
    ``bulletListItem`` otherwise. A ``list`` without children becomes a
    single list item. Applied recursively to nested children.
    """

    results: list[NormalizedBlock] = []
    for block in blocks:
        if not isinstance(block, Mapping):
            # Leave the failure to the schema check so it is reported with the skeleton.
            results.append(NormalizedBlock(skeleton={"type": block}))
            continue
        block_type = block.get("type") or "paragraph"
        raw_props = block.get("props")
        raw_children = block.get("children") or []

        if block_type == LEGACY_LIST_TYPE:
            ordered = isinstance(raw_props, Mapping) and raw_props.get("ordered") is True
            block_type = "numberedListItem" if ordered else "bulletListItem"
            if raw_children:
                for child in normalize_blocks(raw_children):
                    skeleton: Dict[str, Any] = {"type": block_type}
                    if "props" in child.skeleton:
                        skeleton["props"] = child.skeleton["props"]
                    results.append(NormalizedBlock(skeleton=skeleton, text=child.text))
                continue

        skeleton = {"type": block_type}
        props = _normalize_props(raw_props)
        if props:
            skeleton["props"] = props
        children = normalize_blocks(raw_children) if raw_children else []
        if children:
            skeleton["children"] = [child.skeleton for child in children]

        text = None
        if "content" in block and block["content"] is not None:
            text = content_to_string(block["content"])
        results.append(NormalizedBlock(skeleton=skeleton, text=text, children=children))
    return results


def _normalize_props(props: Any) -> Dict[str, Any]:
    if not isinstance(props, Mapping):
        return {}
    return {
        name: value
        for name, value in props.items()
        if name not in _STRIPPED_PROPS and value is not None
    }
