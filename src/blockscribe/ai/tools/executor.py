"""Executor applying assistant tool calls to a block document."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping

from ...editor.blocks import Block, content_to_string
from ...editor.document_model import BlockDocument
from ...editor.document_model import BlockNotFoundError as DocumentBlockNotFoundError
from ...editor.schema import BlockSchemaError
from .errors import (
    BlockNotFoundError,
    BlockStructureError,
    DocumentLockedError,
    InvalidParameterError,
    MissingParameterError,
    ToolError,
)
from .matching import DEFAULT_FUZZY_THRESHOLD, FuzzyMatcher
from .normalization import NormalizedBlock, normalize_blocks
from .types import (
    DeleteBlocksCall,
    GetBlocksStructureCall,
    InsertBlocksCall,
    Position,
    ReplaceTextCall,
    SearchBlocksCall,
    ToolCall,
    ToolExecutionResult,
    UpdateBlockCall,
    is_mutating,
    parse_tool_call,
)

__all__ = ["ExecutorConfig", "DocumentToolExecutor"]

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class ExecutorConfig:
    """Tunables for :class:`DocumentToolExecutor`."""

    fuzzy_threshold: float = DEFAULT_FUZZY_THRESHOLD
    update_preview_chars: int = 50
    delete_preview_chars: int = 30


class DocumentToolExecutor:
    """Runs typed tool calls against a :class:`BlockDocument`.

    :meth:`execute` never raises. Tool errors become failed results carrying
    their message; anything unexpected is logged and reported the same way.
    """

    def __init__(self, document: BlockDocument, config: ExecutorConfig | None = None) -> None:
        self._document = document
        self._config = config or ExecutorConfig()
        self._matcher = FuzzyMatcher(self._config.fuzzy_threshold)

    @property
    def document(self) -> BlockDocument:
        return self._document

    @property
    def config(self) -> ExecutorConfig:
        return self._config

    def execute(self, call: ToolCall | Mapping[str, Any]) -> ToolExecutionResult:
        """Execute one tool call (typed or raw wire payload)."""

        tool_name = getattr(call, "tool", None)
        try:
            if isinstance(call, Mapping):
                tool_name = call.get("tool")
                call = parse_tool_call(call)
                tool_name = call.tool
            if is_mutating(call) and not self._document.editable:
                raise DocumentLockedError()
            return self._dispatch(call)
        except ToolError as exc:
            LOGGER.debug("Tool %s failed: %s", _tool_label(tool_name), exc)
            return ToolExecutionResult(success=False, message=exc.message, data=exc.to_dict())
        except Exception as exc:
            LOGGER.exception("Tool %s failed unexpectedly", _tool_label(tool_name))
            return ToolExecutionResult(success=False, message=f"Internal error: {exc}")

    def _dispatch(self, call: ToolCall) -> ToolExecutionResult:
        if isinstance(call, InsertBlocksCall):
            return self.insert_blocks(call)
        if isinstance(call, UpdateBlockCall):
            return self.update_block(call)
        if isinstance(call, DeleteBlocksCall):
            return self.delete_blocks(call)
        if isinstance(call, SearchBlocksCall):
            return self.search_blocks(call)
        if isinstance(call, GetBlocksStructureCall):
            return self.get_blocks_structure()
        if isinstance(call, ReplaceTextCall):
            return self.replace_text(call)
        raise InvalidParameterError(message=f"Unsupported tool call: {call!r}", parameter="tool")

    # ------------------------------------------------------------------
    # insert_blocks
    # ------------------------------------------------------------------
    def insert_blocks(self, call: InsertBlocksCall) -> ToolExecutionResult:
        if not call.blocks:
            raise MissingParameterError(message="No blocks provided", parameter="blocks")

        position = Position(call.position)
        reference_id = call.reference_block_id
        if position in (Position.BEFORE, Position.AFTER):
            if not reference_id:
                raise MissingParameterError(
                    message="referenceBlockId required for before/after position",
                    parameter="referenceBlockId",
                )
            if not self._document.has_block(reference_id):
                raise BlockNotFoundError(
                    message=f"Reference block not found: {reference_id}",
                    block_ids=(reference_id,),
                )

        normalized = normalize_blocks(call.blocks)
        if not normalized:
            raise MissingParameterError(
                message="No valid blocks to insert after normalization", parameter="blocks"
            )
        skeletons = [item.skeleton for item in normalized]
        count = len(skeletons)

        document = self._document
        was_empty = document.is_empty()
        try:
            if was_empty:
                document.replace_blocks([], skeletons)
            elif position is Position.START:
                document.insert_blocks(skeletons, document.blocks[0].id, "before")
            elif position is Position.END:
                document.insert_blocks(skeletons, document.blocks[-1].id, "after")
            else:
                document.insert_blocks(skeletons, reference_id, position.value)  # type: ignore[arg-type]
        except BlockSchemaError as exc:
            LOGGER.error(
                "Block insertion failed: %s; skeletons: %s",
                exc,
                json.dumps(skeletons, indent=2, default=str),
            )
            raise BlockStructureError(
                message=f"Failed to insert blocks: {exc}. The blocks may have an invalid structure.",
                skeletons=skeletons,
            ) from exc

        inserted = self._resolve_inserted(Position.START if was_empty else position, reference_id, count)
        for item, block in zip(normalized, inserted):
            self._apply_text(item, block)

        labels = ", ".join(item.label for item in normalized)
        return ToolExecutionResult(
            success=True,
            message=f"Inserted {count} block(s): {labels}",
            data={"insertedBlockIds": [block.id for block in inserted]},
        )

    def _resolve_inserted(self, position: Position, reference_id: str | None, count: int) -> list[Block]:
        top_level = self._document.blocks
        if position is Position.START:
            return top_level[:count]
        if position is Position.END:
            return top_level[-count:]
        located = self._document.locate(reference_id or "")
        if located is None:
            return []
        siblings, index = located
        if position is Position.BEFORE:
            return siblings[max(index - count, 0):index]
        return siblings[index + 1:index + 1 + count]

    def _apply_text(self, item: NormalizedBlock, block: Block) -> None:
        if item.text and item.text.strip():
            self._document.update_block(block.id, {"content": item.text})
        for child_item, child in zip(item.children, block.children):
            self._apply_text(child_item, child)

    # ------------------------------------------------------------------
    # update_block
    # ------------------------------------------------------------------
    def update_block(self, call: UpdateBlockCall) -> ToolExecutionResult:
        update: Dict[str, Any] = dict(call.update or {})
        if "content" in update and update["content"] is not None:
            update["content"] = content_to_string(update["content"])
        try:
            block = self._document.update_block(call.block_id, update)
        except DocumentBlockNotFoundError:
            raise BlockNotFoundError.single(call.block_id) from None
        except BlockSchemaError as exc:
            raise BlockStructureError(message=f"Failed to update block: {exc}") from exc

        preview = _preview(block.text(), self._config.update_preview_chars)
        label = _block_label(block)
        message = f'Updated {label}: "{preview}"' if preview else f"Updated {label}"
        return ToolExecutionResult(success=True, message=message)

    # ------------------------------------------------------------------
    # delete_blocks
    # ------------------------------------------------------------------
    def delete_blocks(self, call: DeleteBlocksCall) -> ToolExecutionResult:
        block_ids = list(call.block_ids)
        if not block_ids:
            raise MissingParameterError(message="No block IDs provided", parameter="blockIds")
        missing = [block_id for block_id in block_ids if not self._document.has_block(block_id)]
        if missing:
            raise BlockNotFoundError.many(missing)

        descriptions = []
        for block_id in block_ids:
            block = self._document.get_block(block_id)
            if block is not None and block.type == "heading":
                descriptions.append(
                    f'heading: "{_preview(block.text(), self._config.delete_preview_chars)}"'
                )
            else:
                descriptions.append(block.type if block is not None else "unknown")

        self._document.remove_blocks(block_ids)
        return ToolExecutionResult(
            success=True,
            message=f"Deleted {len(block_ids)} block(s): {', '.join(descriptions)}",
        )

    # ------------------------------------------------------------------
    # search_blocks
    # ------------------------------------------------------------------
    def search_blocks(self, call: SearchBlocksCall) -> ToolExecutionResult:
        query = call.query or None
        block_type = call.type or None
        exact: list[Dict[str, Any]] = []
        fuzzy: list[Dict[str, Any]] = []

        for block in self._document.walk():
            if block_type and block.type != block_type:
                continue
            content = block.text()
            if query is None:
                exact.append(_search_hit(block, content, "exact"))
                continue
            if query.lower() in content.lower():
                exact.append(_search_hit(block, content, "exact"))
                continue
            score = self._matcher.similarity(query, content)
            if score >= self._matcher.threshold:
                hit = _search_hit(block, content, "fuzzy")
                hit["similarity"] = score
                fuzzy.append(hit)

        if exact:
            return ToolExecutionResult(
                success=True,
                message=f"Found {len(exact)} exact matching block(s)",
                data=exact,
            )
        if fuzzy:
            fuzzy.sort(key=lambda hit: hit["similarity"], reverse=True)
            return ToolExecutionResult(
                success=True,
                message=(
                    f"No exact matches found, but found {len(fuzzy)} similar block(s). "
                    "These blocks are close matches - please verify before updating."
                ),
                data=fuzzy,
            )
        type_suffix = f' with type "{block_type}"' if block_type else ""
        if query is None:
            message = f"No blocks found{type_suffix}"
        else:
            message = f'No matching blocks found for "{query}"{type_suffix}'
        return ToolExecutionResult(success=True, message=message, data=[])

    # ------------------------------------------------------------------
    # get_blocks_structure
    # ------------------------------------------------------------------
    def get_blocks_structure(self) -> ToolExecutionResult:
        structure = [_structure_node(block) for block in self._document.blocks]
        return ToolExecutionResult(
            success=True,
            message=f"Retrieved {len(structure)} top-level block(s)",
            data=structure,
        )

    # ------------------------------------------------------------------
    # replace_text
    # ------------------------------------------------------------------
    def replace_text(self, call: ReplaceTextCall) -> ToolExecutionResult:
        if not call.find:
            raise MissingParameterError(message="find must be a non-empty string", parameter="find")

        if call.block_ids is None:
            targets = self._document.flatten()
        else:
            targets = []
            for block_id in dict.fromkeys(call.block_ids):
                block = self._document.get_block(block_id)
                if block is None:
                    LOGGER.debug("replace_text skipping unknown block %s", block_id)
                    continue
                targets.append(block)

        replacement_count = 0
        for block in targets:
            content = block.text()
            if call.find not in content:
                continue
            self._document.update_block(block.id, {"content": content.replace(call.find, call.replace)})
            replacement_count += 1

        return ToolExecutionResult(
            success=True,
            message=f'Replaced "{call.find}" with "{call.replace}" in {replacement_count} block(s)',
            data={"replacementCount": replacement_count},
        )


# ----------------------------------------------------------------------
# Helpers
# ----------------------------------------------------------------------

def _preview(text: str, limit: int) -> str:
    if len(text) > limit:
        return text[:limit] + "..."
    return text


def _block_label(block: Block) -> str:
    if block.type == "heading":
        return f"heading (level {block.props.get('level') or 1})"
    return block.type or "block"


def _search_hit(block: Block, content: str, match_type: str) -> Dict[str, Any]:
    return {
        "id": block.id,
        "type": block.type,
        "content": content,
        "props": dict(block.props),
        "matchType": match_type,
    }


def _structure_node(block: Block) -> Dict[str, Any]:
    return {
        "id": block.id,
        "type": block.type,
        "content": block.text(),
        "props": dict(block.props),
        "children": [_structure_node(child) for child in block.children],
    }


def _tool_label(tool: Any) -> str:
    value = getattr(tool, "value", tool)
    return str(value) if value else "<unnamed>"
