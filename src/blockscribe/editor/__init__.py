"""Block tree document model."""

from .blocks import INLINE_STYLES, Block, InlineRun, coerce_content, content_to_string
from .document_model import BlockDocument, BlockNotFoundError, load_document, save_document
from .editing import EditingState
from .schema import DEFAULT_SCHEMA, BlockSchema, BlockSchemaError, BlockSpec, PropSpec

__all__ = [
    "INLINE_STYLES",
    "Block",
    "InlineRun",
    "coerce_content",
    "content_to_string",
    "BlockDocument",
    "BlockNotFoundError",
    "load_document",
    "save_document",
    "EditingState",
    "DEFAULT_SCHEMA",
    "BlockSchema",
    "BlockSchemaError",
    "BlockSpec",
    "PropSpec",
]
