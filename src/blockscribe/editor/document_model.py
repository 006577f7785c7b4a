"""In-memory block tree with id-stable primitive mutations."""

from __future__ import annotations

import json
import logging
import uuid
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Iterator, Mapping, Sequence

from .blocks import Block, coerce_content
from .schema import DEFAULT_SCHEMA, BlockSchema, BlockSchemaError

__all__ = [
    "BlockNotFoundError",
    "BlockDocument",
    "load_document",
    "save_document",
]

LOGGER = logging.getLogger(__name__)

_PLACEMENTS = ("before", "after")


class BlockNotFoundError(KeyError):
    """Raised when one or more block ids are not present in the document."""

    def __init__(self, block_ids: Sequence[str]) -> None:
        self.block_ids = list(block_ids)
        super().__init__(", ".join(self.block_ids))

    def __str__(self) -> str:
        return f"Blocks not found: {', '.join(self.block_ids)}"


def _default_id_factory() -> str:
    return str(uuid.uuid4())


class BlockDocument:
    """Ordered sequence of top-level blocks forming a document tree.

    The document is the single writer of block ids: every id it creates or
    loads is remembered so that it is never issued twice. Operations leave
    blocks outside their affected set untouched and keep sibling order.
    """

    def __init__(
        self,
        blocks: Iterable[Mapping[str, Any] | Block] = (),
        *,
        schema: BlockSchema | None = None,
        id_factory: Callable[[], str] | None = None,
        editable: bool = True,
    ) -> None:
        self._schema = schema or DEFAULT_SCHEMA
        self._id_factory = id_factory or _default_id_factory
        self._issued_ids: set[str] = set()
        self._blocks: list[Block] = []
        self.editable = editable
        for entry in blocks:
            self._blocks.append(self._load_block(entry))

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------
    @property
    def schema(self) -> BlockSchema:
        return self._schema

    @property
    def blocks(self) -> list[Block]:
        """Top-level blocks (a shallow copy; mutate through the document)."""

        return list(self._blocks)

    def __len__(self) -> int:
        return len(self._blocks)

    def __iter__(self) -> Iterator[Block]:
        return iter(list(self._blocks))

    def is_empty(self) -> bool:
        return not self._blocks

    def walk(self) -> Iterator[Block]:
        """Yield every block depth first, parents before their children."""

        stack: list[Block] = list(reversed(self._blocks))
        while stack:
            block = stack.pop()
            yield block
            stack.extend(reversed(block.children))

    def flatten(self) -> list[Block]:
        return list(self.walk())

    def get_block(self, block_id: str) -> Block | None:
        for block in self.walk():
            if block.id == block_id:
                return block
        return None

    def has_block(self, block_id: str) -> bool:
        return self.get_block(block_id) is not None

    def locate(self, block_id: str) -> tuple[list[Block], int] | None:
        """Return the sibling list holding ``block_id`` and its index."""

        return self._locate_in(self._blocks, block_id)

    # ------------------------------------------------------------------
    # Mutation primitives
    # ------------------------------------------------------------------
    def insert_blocks(
        self,
        skeletons: Sequence[Mapping[str, Any]],
        reference_id: str,
        placement: str = "after",
    ) -> list[Block]:
        """Insert new blocks as siblings before/after ``reference_id``.

        Every skeleton is built and validated before the tree is touched, so
        a schema failure leaves the document unchanged.
        """

        if placement not in _PLACEMENTS:
            raise ValueError(f"placement must be one of {_PLACEMENTS}, got {placement!r}")
        located = self.locate(reference_id)
        if located is None:
            raise BlockNotFoundError([reference_id])
        new_blocks = self._build_blocks(skeletons)
        siblings, index = located
        position = index if placement == "before" else index + 1
        siblings[position:position] = new_blocks
        self._commit_ids(new_blocks)
        LOGGER.debug(
            "Inserted %s block(s) %s %s", len(new_blocks), placement, reference_id
        )
        return new_blocks

    def replace_blocks(
        self,
        block_ids: Sequence[str],
        skeletons: Sequence[Mapping[str, Any]],
    ) -> list[Block]:
        """Replace ``block_ids`` with freshly built blocks.

        The new blocks take the position of the first replaced block. With no
        ids (an empty document) they are appended to the top level.
        """

        missing = [block_id for block_id in block_ids if not self.has_block(block_id)]
        if missing:
            raise BlockNotFoundError(missing)
        new_blocks = self._build_blocks(skeletons)
        if block_ids:
            siblings, index = self.locate(block_ids[0])  # type: ignore[misc]
            siblings[index:index] = new_blocks
            self._detach(set(block_ids))
        else:
            self._blocks.extend(new_blocks)
        self._commit_ids(new_blocks)
        return new_blocks

    def update_block(self, block_id: str, update: Mapping[str, Any]) -> Block:
        """Apply a partial update to one block, keeping its id.

        Props are merged; a type change keeps only the props the new type
        declares. Content assignment is always accepted.
        """

        block = self.get_block(block_id)
        if block is None:
            raise BlockNotFoundError([block_id])

        new_type = update.get("type") or block.type
        props = dict(block.props)
        if new_type != block.type:
            props = self._schema.filter_props(new_type, props)
        raw_props = update.get("props")
        if raw_props is not None:
            if not isinstance(raw_props, Mapping):
                raise BlockSchemaError(f"Props for {new_type} must be an object", block_type=new_type)
            props.update(raw_props)
        props = {name: value for name, value in props.items() if value is not None}
        self._schema.validate(new_type, props)
        props = self._schema.apply_defaults(new_type, props)

        children = None
        if "children" in update and update["children"] is not None:
            children = self._build_blocks(update["children"])
        content = coerce_content(update["content"]) if "content" in update else None

        block.type = new_type
        block.props = props
        if content is not None:
            block.content = content
        if children is not None:
            # Replaced children keep their ids reserved.
            block.children = children
            self._commit_ids(children)
        return block

    def remove_blocks(self, block_ids: Sequence[str]) -> list[Block]:
        """Remove the given blocks (with their children), all or nothing."""

        missing = [block_id for block_id in block_ids if not self.has_block(block_id)]
        if missing:
            raise BlockNotFoundError(missing)
        removed = [self.get_block(block_id) for block_id in block_ids]
        self._detach(set(block_ids))
        return [block for block in removed if block is not None]

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------
    def to_list(self) -> list[Dict[str, Any]]:
        return [block.to_dict() for block in self._blocks]

    @classmethod
    def from_list(cls, payload: Iterable[Mapping[str, Any]], **kwargs: Any) -> "BlockDocument":
        return cls(payload, **kwargs)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _locate_in(self, siblings: list[Block], block_id: str) -> tuple[list[Block], int] | None:
        for index, block in enumerate(siblings):
            if block.id == block_id:
                return siblings, index
            found = self._locate_in(block.children, block_id)
            if found is not None:
                return found
        return None

    def _detach(self, block_ids: set[str]) -> None:
        def prune(siblings: list[Block]) -> list[Block]:
            kept: list[Block] = []
            for block in siblings:
                if block.id in block_ids:
                    continue
                block.children = prune(block.children)
                kept.append(block)
            return kept

        self._blocks = prune(self._blocks)

    def _next_id(self) -> str:
        while True:
            candidate = str(self._id_factory())
            if candidate and candidate not in self._issued_ids:
                return candidate
            LOGGER.debug("Discarding reused block id %s", candidate)

    def _build_blocks(self, skeletons: Sequence[Mapping[str, Any]]) -> list[Block]:
        pending: set[str] = set()
        built = [self._build_block(skeleton, pending) for skeleton in skeletons]
        return built

    def _build_block(self, skeleton: Mapping[str, Any], pending: set[str]) -> Block:
        if not isinstance(skeleton, Mapping):
            raise BlockSchemaError(f"Block must be an object, got {type(skeleton).__name__}")
        block_type = skeleton.get("type")
        props = skeleton.get("props") or {}
        self._schema.validate(block_type, props)
        block_id = self._next_id()
        while block_id in pending:
            block_id = self._next_id()
        pending.add(block_id)
        children = [self._build_block(child, pending) for child in skeleton.get("children") or ()]
        return Block(
            id=block_id,
            type=block_type,
            props=self._schema.apply_defaults(block_type, props),
            content=coerce_content(skeleton.get("content")),
            children=children,
        )

    def _commit_ids(self, blocks: Iterable[Block]) -> None:
        for block in blocks:
            self._issued_ids.add(block.id)
            self._commit_ids(block.children)

    def _load_block(self, entry: Mapping[str, Any] | Block) -> Block:
        if isinstance(entry, Block):
            block = entry
            for child in block.children:
                self._load_block(child)
        else:
            block = Block(
                id=str(entry.get("id") or self._next_id()),
                type=str(entry.get("type") or "paragraph"),
                props=dict(entry.get("props") or {}),
                content=coerce_content(entry.get("content")),
                children=[self._load_block(child) for child in entry.get("children") or ()],
            )
        if block.id in self._issued_ids:
            raise ValueError(f"Duplicate block id: {block.id}")
        self._issued_ids.add(block.id)
        return block


def load_document(path: Path | str, **kwargs: Any) -> BlockDocument:
    """Read a document saved by :func:`save_document`.

    A missing file yields an empty document. The payload may be a bare list
    of blocks or an object with a ``blocks`` list.
    """

    target = Path(path)
    if not target.exists():
        LOGGER.info("Document %s does not exist yet; starting empty", target)
        return BlockDocument(**kwargs)
    payload = json.loads(target.read_text(encoding="utf-8"))
    if isinstance(payload, Mapping):
        payload = payload.get("blocks") or []
    if not isinstance(payload, list):
        raise ValueError(f"Document {target} must hold a list of blocks")
    document = BlockDocument.from_list(payload, **kwargs)
    LOGGER.debug("Loaded %s top-level block(s) from %s", len(document), target)
    return document


def save_document(document: BlockDocument, path: Path | str) -> Path:
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    body = json.dumps(document.to_list(), indent=2, ensure_ascii=False)
    tmp_path = target.with_suffix(target.suffix + ".tmp")
    tmp_path.write_text(body, encoding="utf-8")
    tmp_path.replace(target)
    LOGGER.debug("Saved document to %s", target)
    return target
