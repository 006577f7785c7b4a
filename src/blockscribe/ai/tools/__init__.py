"""Document tools: typed calls, normalization, matching and the executor."""

from .errors import (
    BlockNotFoundError,
    BlockStructureError,
    DocumentLockedError,
    ErrorCode,
    InvalidParameterError,
    InvalidToolCallError,
    MissingParameterError,
    ToolError,
    UnknownToolError,
)
from .executor import DocumentToolExecutor, ExecutorConfig
from .matching import DEFAULT_FUZZY_THRESHOLD, FuzzyMatcher, normalize_text, similarity
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
    ToolName,
    UpdateBlockCall,
    is_mutating,
    parse_tool_call,
    serialize_tool_call,
    tool_call_key,
)

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
    "DocumentToolExecutor",
    "ExecutorConfig",
    "DEFAULT_FUZZY_THRESHOLD",
    "FuzzyMatcher",
    "normalize_text",
    "similarity",
    "NormalizedBlock",
    "normalize_blocks",
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
    "is_mutating",
    "parse_tool_call",
    "serialize_tool_call",
    "tool_call_key",
]
