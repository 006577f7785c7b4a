"""Typed tool calls exchanged between the assistant and the document executor.

The wire form of every call is ``{"tool": <name>, "parameters": {...}}`` with
camelCase parameter names. :func:`parse_tool_call` validates that envelope
against a Draft 7 JSON schema per tool and returns one of the frozen
dataclasses below; :func:`serialize_tool_call` is its inverse.
"""

from __future__ import annotations

import copy
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from jsonschema import Draft7Validator, ValidationError

from .errors import InvalidToolCallError, UnknownToolError

__all__ = [
    "ToolName",
    "Position",
    "InsertBlocksCall",
    "UpdateBlockCall",
    "DeleteBlocksCall",
    "SearchBlocksCall",
    "GetBlocksStructureCall",
    "ReplaceTextCall",
    "ToolCall",
    "ToolExecutionResult",
    "TOOL_PARAMETER_SCHEMAS",
    "parse_tool_call",
    "serialize_tool_call",
    "tool_call_key",
    "is_mutating",
]


class ToolName(str, Enum):
    """Names of the document tools understood by the executor."""

    INSERT_BLOCKS = "insert_blocks"
    UPDATE_BLOCK = "update_block"
    DELETE_BLOCKS = "delete_blocks"
    SEARCH_BLOCKS = "search_blocks"
    GET_BLOCKS_STRUCTURE = "get_blocks_structure"
    REPLACE_TEXT = "replace_text"


class Position(str, Enum):
    START = "start"
    END = "end"
    BEFORE = "before"
    AFTER = "after"


# -----------------------------------------------------------------------------
# Call variants
# -----------------------------------------------------------------------------

@dataclass(slots=True, frozen=True)
class InsertBlocksCall:
    blocks: Tuple[Mapping[str, Any], ...]
    position: Position = Position.END
    reference_block_id: Optional[str] = None

    tool = ToolName.INSERT_BLOCKS


@dataclass(slots=True, frozen=True)
class UpdateBlockCall:
    block_id: str
    update: Mapping[str, Any] = field(default_factory=dict)

    tool = ToolName.UPDATE_BLOCK


@dataclass(slots=True, frozen=True)
class DeleteBlocksCall:
    block_ids: Tuple[str, ...]

    tool = ToolName.DELETE_BLOCKS


@dataclass(slots=True, frozen=True)
class SearchBlocksCall:
    query: Optional[str] = None
    type: Optional[str] = None

    tool = ToolName.SEARCH_BLOCKS


@dataclass(slots=True, frozen=True)
class GetBlocksStructureCall:
    tool = ToolName.GET_BLOCKS_STRUCTURE


@dataclass(slots=True, frozen=True)
class ReplaceTextCall:
    find: str
    replace: str
    block_ids: Optional[Tuple[str, ...]] = None

    tool = ToolName.REPLACE_TEXT


ToolCall = Union[
    InsertBlocksCall,
    UpdateBlockCall,
    DeleteBlocksCall,
    SearchBlocksCall,
    GetBlocksStructureCall,
    ReplaceTextCall,
]

_MUTATING = frozenset(
    {ToolName.INSERT_BLOCKS, ToolName.UPDATE_BLOCK, ToolName.DELETE_BLOCKS, ToolName.REPLACE_TEXT}
)


def is_mutating(call: ToolCall | Mapping[str, Any]) -> bool:
    """Return ``True`` when ``call`` writes to the document.

    Raw payloads that failed validation never write.
    """

    return getattr(call, "tool", None) in _MUTATING


@dataclass(slots=True)
class ToolExecutionResult:
    """Outcome of one executed tool call."""

    success: bool
    message: str
    data: Any = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"success": self.success, "message": self.message}
        if self.data is not None:
            payload["data"] = self.data
        return payload


# -----------------------------------------------------------------------------
# Schemas
# -----------------------------------------------------------------------------

_ID_LIST_SCHEMA: Dict[str, Any] = {"type": "array", "items": {"type": "string"}}

_BLOCK_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "type": {"type": "string"},
        "props": {"type": ["object", "null"]},
        "children": {"type": ["array", "null"], "items": {"type": "object"}},
    },
}

TOOL_PARAMETER_SCHEMAS: Dict[ToolName, Dict[str, Any]] = {
    ToolName.INSERT_BLOCKS: {
        "type": "object",
        "required": ["blocks"],
        "properties": {
            "blocks": {"type": "array", "items": _BLOCK_SCHEMA},
            "position": {"type": "string", "enum": [item.value for item in Position]},
            "referenceBlockId": {"type": ["string", "null"]},
        },
    },
    ToolName.UPDATE_BLOCK: {
        "type": "object",
        "required": ["blockId", "update"],
        "properties": {
            "blockId": {"type": "string", "minLength": 1},
            "update": {
                "type": "object",
                "properties": {
                    "type": {"type": "string"},
                    "props": {"type": ["object", "null"]},
                },
            },
        },
    },
    ToolName.DELETE_BLOCKS: {
        "type": "object",
        "required": ["blockIds"],
        "properties": {"blockIds": _ID_LIST_SCHEMA},
    },
    ToolName.SEARCH_BLOCKS: {
        "type": "object",
        "properties": {
            "query": {"type": ["string", "null"]},
            "type": {"type": ["string", "null"]},
        },
    },
    ToolName.GET_BLOCKS_STRUCTURE: {"type": "object"},
    ToolName.REPLACE_TEXT: {
        "type": "object",
        "required": ["find", "replace"],
        "properties": {
            "find": {"type": "string", "minLength": 1},
            "replace": {"type": "string"},
            "blockIds": {"anyOf": [_ID_LIST_SCHEMA, {"type": "null"}]},
        },
    },
}

_VALIDATORS: Dict[ToolName, Draft7Validator] = {
    name: Draft7Validator(schema) for name, schema in TOOL_PARAMETER_SCHEMAS.items()
}


# -----------------------------------------------------------------------------
# Parsing / serialization
# -----------------------------------------------------------------------------

def parse_tool_call(payload: Mapping[str, Any] | str) -> ToolCall:
    """Validate a wire payload (mapping or JSON text) and build a typed call.

    Raises:
        UnknownToolError: When ``tool`` is not one of :class:`ToolName`.
        InvalidToolCallError: When the envelope or parameters are malformed.
    """

    if isinstance(payload, str):
        try:
            payload = json.loads(payload)
        except ValueError as exc:
            raise InvalidToolCallError(message=f"Tool call is not valid JSON: {exc}") from exc
    if not isinstance(payload, Mapping):
        raise InvalidToolCallError(message="Tool call payload must be an object")

    raw_name = payload.get("tool")
    if not isinstance(raw_name, str) or not raw_name.strip():
        raise InvalidToolCallError(message="Tool call is missing a 'tool' name")
    try:
        name = ToolName(raw_name.strip())
    except ValueError:
        raise UnknownToolError(tool=raw_name) from None

    parameters = payload.get("parameters")
    if parameters is None:
        parameters = {}
    if not isinstance(parameters, Mapping):
        raise InvalidToolCallError(message="Tool call 'parameters' must be an object", tool=name.value)
    parameters = copy.deepcopy(dict(parameters))
    try:
        _VALIDATORS[name].validate(parameters)
    except ValidationError as error:
        raise InvalidToolCallError(
            message=f"Invalid parameters for {name.value}: {_format_validation_error(error)}",
            tool=name.value,
        ) from error
    return _build_call(name, parameters)


def _build_call(name: ToolName, parameters: Dict[str, Any]) -> ToolCall:
    if name is ToolName.INSERT_BLOCKS:
        return InsertBlocksCall(
            blocks=tuple(parameters["blocks"]),
            position=Position(parameters.get("position") or Position.END.value),
            reference_block_id=parameters.get("referenceBlockId") or None,
        )
    if name is ToolName.UPDATE_BLOCK:
        return UpdateBlockCall(block_id=parameters["blockId"], update=parameters["update"])
    if name is ToolName.DELETE_BLOCKS:
        return DeleteBlocksCall(block_ids=tuple(parameters["blockIds"]))
    if name is ToolName.SEARCH_BLOCKS:
        return SearchBlocksCall(query=parameters.get("query"), type=parameters.get("type"))
    if name is ToolName.GET_BLOCKS_STRUCTURE:
        return GetBlocksStructureCall()
    block_ids = parameters.get("blockIds")
    return ReplaceTextCall(
        find=parameters["find"],
        replace=parameters["replace"],
        block_ids=tuple(block_ids) if block_ids is not None else None,
    )


def serialize_tool_call(call: ToolCall) -> Dict[str, Any]:
    """Return the wire form of ``call``."""

    parameters: Dict[str, Any]
    if isinstance(call, InsertBlocksCall):
        parameters = {"blocks": [dict(block) for block in call.blocks], "position": Position(call.position).value}
        if call.reference_block_id is not None:
            parameters["referenceBlockId"] = call.reference_block_id
    elif isinstance(call, UpdateBlockCall):
        parameters = {"blockId": call.block_id, "update": dict(call.update)}
    elif isinstance(call, DeleteBlocksCall):
        parameters = {"blockIds": list(call.block_ids)}
    elif isinstance(call, SearchBlocksCall):
        parameters = {}
        if call.query is not None:
            parameters["query"] = call.query
        if call.type is not None:
            parameters["type"] = call.type
    elif isinstance(call, GetBlocksStructureCall):
        parameters = {}
    elif isinstance(call, ReplaceTextCall):
        parameters = {"find": call.find, "replace": call.replace}
        if call.block_ids is not None:
            parameters["blockIds"] = list(call.block_ids)
    else:
        raise TypeError(f"Unsupported tool call: {call!r}")
    return {"tool": call.tool.value, "parameters": parameters}


def tool_call_key(call: ToolCall | Mapping[str, Any]) -> str:
    """Canonical JSON for ``call``; two calls are duplicates iff their keys match."""

    payload = dict(call) if isinstance(call, Mapping) else serialize_tool_call(call)
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)


def _format_validation_error(error: ValidationError) -> str:
    path = ".".join(str(part) for part in error.path)
    if path:
        return f"{path}: {error.message}"
    return error.message

