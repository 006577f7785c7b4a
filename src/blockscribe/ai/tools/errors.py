"""Standardized error types for document tools.

Every failure the executor can report is expressed as a :class:`ToolError`
so that callers get a consistent ``message`` plus structured details.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar, Sequence


# -----------------------------------------------------------------------------
# Error Code Constants
# -----------------------------------------------------------------------------

class ErrorCode:
    """Constants for error codes used in tool responses."""

    # Tool call errors
    UNKNOWN_TOOL = "unknown_tool"
    INVALID_TOOL_CALL = "invalid_tool_call"

    # Block errors
    BLOCK_NOT_FOUND = "block_not_found"
    BLOCK_STRUCTURE = "block_structure"

    # Permission/state errors
    DOCUMENT_LOCKED = "document_locked"

    # General errors
    INTERNAL_ERROR = "internal_error"
    INVALID_PARAMETER = "invalid_parameter"
    MISSING_PARAMETER = "missing_parameter"


# -----------------------------------------------------------------------------
# Base Error Class
# -----------------------------------------------------------------------------

@dataclass
class ToolError(Exception):
    """Base exception class for all tool errors.

    Attributes:
        error_code: Machine-readable error identifier.
        message: Human-readable error description, shown to the user as-is.
        details: Additional structured error information.
        suggestion: Actionable guidance for recovery.
    """

    error_code: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = ""

    severity: ClassVar[str] = "error"

    def __post_init__(self) -> None:
        Exception.__init__(self, self.message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a dictionary for structured tool responses."""
        result: dict[str, Any] = {
            "error": self.error_code,
            "message": self.message,
        }
        if self.details:
            result["details"] = dict(self.details)
        if self.suggestion:
            result["suggestion"] = self.suggestion
        return result

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"


# -----------------------------------------------------------------------------
# Tool Call Errors
# -----------------------------------------------------------------------------

@dataclass
class UnknownToolError(ToolError):
    """Raised when a tool call names a tool that does not exist."""

    error_code: str = field(default=ErrorCode.UNKNOWN_TOOL)
    message: str = field(default="Unknown tool")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="Use one of the documented tool names")

    tool: str | None = field(default=None)

    def __post_init__(self) -> None:
        if self.tool is not None and self.message == "Unknown tool":
            self.message = f"Unknown tool: {self.tool}"
        super().__post_init__()

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.tool is not None:
            result["tool"] = self.tool
        return result


@dataclass
class InvalidToolCallError(ToolError):
    """Raised when a tool call envelope or its parameters fail validation."""

    error_code: str = field(default=ErrorCode.INVALID_TOOL_CALL)
    message: str = field(default="Invalid tool call")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default='Send {"tool": <name>, "parameters": {...}}')

    tool: str | None = field(default=None)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.tool is not None:
            result["tool"] = self.tool
        return result


# -----------------------------------------------------------------------------
# Block Errors
# -----------------------------------------------------------------------------

@dataclass
class BlockNotFoundError(ToolError):
    """Raised when one or more referenced block ids do not exist."""

    error_code: str = field(default=ErrorCode.BLOCK_NOT_FOUND)
    message: str = field(default="Block not found")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="Use get_blocks_structure or search_blocks to find valid block IDs")

    block_ids: Sequence[str] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.block_ids:
            result["block_ids"] = list(self.block_ids)
        return result

    @classmethod
    def single(cls, block_id: str) -> "BlockNotFoundError":
        return cls(message=f"Block not found: {block_id}", block_ids=(block_id,))

    @classmethod
    def many(cls, block_ids: Sequence[str]) -> "BlockNotFoundError":
        return cls(message=f"Blocks not found: {', '.join(block_ids)}", block_ids=tuple(block_ids))


@dataclass
class BlockStructureError(ToolError):
    """Raised when new blocks violate the type/props constraints of the tree."""

    error_code: str = field(default=ErrorCode.BLOCK_STRUCTURE)
    message: str = field(default="Invalid block structure")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="Check block types and props against the supported block types")

    skeletons: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.skeletons:
            result["skeletons"] = [dict(skeleton) for skeleton in self.skeletons]
        return result


# -----------------------------------------------------------------------------
# Permission/State Errors
# -----------------------------------------------------------------------------

@dataclass
class DocumentLockedError(ToolError):
    """Raised when a write operation runs while the editor is not in edit mode."""

    error_code: str = field(default=ErrorCode.DOCUMENT_LOCKED)
    message: str = field(default="Editor is not in edit mode. Please enable editing first.")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="Ask the user to enable editing")


# -----------------------------------------------------------------------------
# General Errors
# -----------------------------------------------------------------------------

@dataclass
class InvalidParameterError(ToolError):
    """Error raised when a parameter value is invalid."""

    error_code: str = field(default=ErrorCode.INVALID_PARAMETER)
    message: str = field(default="Invalid parameter value")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="Check the parameter requirements")

    parameter: str | None = field(default=None)
    value: Any = field(default=None)
    expected: str | None = field(default=None)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.parameter is not None:
            result["parameter"] = self.parameter
        if self.value is not None:
            result["value"] = repr(self.value)
        if self.expected is not None:
            result["expected"] = self.expected
        return result


@dataclass
class MissingParameterError(ToolError):
    """Error raised when a required parameter is missing or empty."""

    error_code: str = field(default=ErrorCode.MISSING_PARAMETER)
    message: str = field(default="Required parameter is missing")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="Provide the required parameter")

    parameter: str | None = field(default=None)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.parameter is not None:
            result["parameter"] = self.parameter
        return result


__all__ = [
    "ErrorCode",
    "ToolError",
    "UnknownToolError",
    "InvalidToolCallError",
    "BlockNotFoundError",
    "BlockStructureError",
    "DocumentLockedError",
    "InvalidParameterError",
    "MissingParameterError",
]
