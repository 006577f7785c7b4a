"""Block type registry used to validate blocks when they are created."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Mapping

__all__ = [
    "BlockSchemaError",
    "PropSpec",
    "BlockSpec",
    "BlockSchema",
    "DEFAULT_SCHEMA",
]


class BlockSchemaError(ValueError):
    """Raised when a block's type and props are not self-consistent."""

    def __init__(self, message: str, *, block_type: str | None = None, prop: str | None = None) -> None:
        super().__init__(message)
        self.block_type = block_type
        self.prop = prop


_MISSING = object()


@dataclass(slots=True, frozen=True)
class PropSpec:
    """Accepted types, allowed values and default for a single prop."""

    types: tuple[type, ...]
    values: tuple[Any, ...] | None = None
    default: Any = _MISSING

    @property
    def has_default(self) -> bool:
        return self.default is not _MISSING

    def accepts(self, value: Any) -> bool:
        # bool is an int subclass; keep "level": True from passing as a number.
        if isinstance(value, bool) and bool not in self.types:
            return False
        if not isinstance(value, self.types):
            return False
        return self.values is None or value in self.values


@dataclass(slots=True, frozen=True)
class BlockSpec:
    """Structural description of a block type."""

    name: str
    props: Mapping[str, PropSpec] = field(default_factory=dict)


_TEXT_PROPS: Dict[str, PropSpec] = {
    "textColor": PropSpec((str,)),
    "backgroundColor": PropSpec((str,)),
    "textAlignment": PropSpec((str,), ("left", "center", "right", "justify")),
}


def _text_block(name: str, **extra: PropSpec) -> BlockSpec:
    props = dict(_TEXT_PROPS)
    props.update(extra)
    return BlockSpec(name=name, props=props)


class BlockSchema:
    """Registry of known block types.

    The set of types is open: callers may :meth:`register` additional specs.
    """

    def __init__(self, specs: Iterable[BlockSpec] = ()) -> None:
        self._specs: Dict[str, BlockSpec] = {}
        for spec in specs:
            self.register(spec)

    def register(self, spec: BlockSpec) -> None:
        if not spec.name:
            raise ValueError("BlockSpec.name is required")
        self._specs[spec.name] = spec

    def get(self, block_type: str) -> BlockSpec | None:
        return self._specs.get(block_type)

    def has(self, block_type: str) -> bool:
        return block_type in self._specs

    def names(self) -> list[str]:
        return sorted(self._specs)

    def validate(self, block_type: Any, props: Mapping[str, Any] | None = None) -> BlockSpec:
        """Check that ``props`` are valid for ``block_type``.

        Raises:
            BlockSchemaError: On unknown types, unknown props or bad values.
        """

        if not isinstance(block_type, str) or not block_type:
            raise BlockSchemaError(f"Invalid block type: {block_type!r}", block_type=None)
        spec = self._specs.get(block_type)
        if spec is None:
            raise BlockSchemaError(f"Unknown block type: {block_type}", block_type=block_type)
        if props is None:
            return spec
        if not isinstance(props, Mapping):
            raise BlockSchemaError(
                f"Props for {block_type} must be an object", block_type=block_type
            )
        for name, value in props.items():
            prop_spec = spec.props.get(name)
            if prop_spec is None:
                raise BlockSchemaError(
                    f"Unknown prop '{name}' for block type {block_type}",
                    block_type=block_type,
                    prop=name,
                )
            if not prop_spec.accepts(value):
                raise BlockSchemaError(
                    f"Invalid value {value!r} for prop '{name}' of block type {block_type}",
                    block_type=block_type,
                    prop=name,
                )
        return spec

    def apply_defaults(self, block_type: str, props: Mapping[str, Any] | None) -> Dict[str, Any]:
        """Return ``props`` with declared defaults filled in for missing keys."""

        resolved = dict(props or {})
        spec = self._specs.get(block_type)
        if spec is None:
            return resolved
        for name, prop_spec in spec.props.items():
            if name not in resolved and prop_spec.has_default:
                resolved[name] = prop_spec.default
        return resolved

    def filter_props(self, block_type: str, props: Mapping[str, Any] | None) -> Dict[str, Any]:
        """Drop props that ``block_type`` does not declare (used on type changes)."""

        spec = self._specs.get(block_type)
        if spec is None or not props:
            return {}
        return {name: value for name, value in props.items() if name in spec.props}


DEFAULT_SCHEMA = BlockSchema(
    [
        _text_block("paragraph"),
        _text_block("heading", level=PropSpec((int,), (1, 2, 3, 4, 5, 6), default=1)),
        _text_block("quote"),
        _text_block("bulletListItem"),
        _text_block("numberedListItem", start=PropSpec((int,))),
        _text_block("checkListItem", checked=PropSpec((bool,), default=False)),
        BlockSpec(name="codeBlock", props={"language": PropSpec((str,), default="text")}),
        BlockSpec(
            name="image",
            props={
                "url": PropSpec((str,)),
                "caption": PropSpec((str,)),
                "name": PropSpec((str,)),
                "previewWidth": PropSpec((int, float)),
                "showPreview": PropSpec((bool,)),
                "textAlignment": _TEXT_PROPS["textAlignment"],
                "backgroundColor": _TEXT_PROPS["backgroundColor"],
            },
        ),
    ]
)
