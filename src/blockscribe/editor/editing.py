"""Edit-mode and save status mirrored from the editor surface."""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Union

from .document_model import BlockDocument

__all__ = ["EditingState", "SaveHandler", "CancelHandler"]

LOGGER = logging.getLogger(__name__)

SaveHandler = Callable[[], Union[None, Awaitable[None]]]
CancelHandler = Callable[[], Union[None, Awaitable[None]]]


@dataclass(slots=True)
class EditingState:
    """Tracks whether the bound document may be edited and how saving went.

    Handlers are registered by whoever owns the document lifecycle; the
    state itself never persists anything.
    """

    document: Optional[BlockDocument] = None
    is_editing: bool = False
    is_saving: bool = False
    save_success: bool = False
    save_error: Optional[str] = None
    _on_save: Optional[SaveHandler] = field(default=None, repr=False)
    _on_cancel: Optional[CancelHandler] = field(default=None, repr=False)

    def __post_init__(self) -> None:
        if self.document is not None:
            self.document.editable = self.is_editing

    # ------------------------------------------------------------------
    # Edit mode
    # ------------------------------------------------------------------
    def bind(self, document: BlockDocument) -> None:
        self.document = document
        document.editable = self.is_editing

    def set_editing(self, editing: bool) -> None:
        editing = bool(editing)
        if editing == self.is_editing and (
            self.document is None or self.document.editable == editing
        ):
            return
        self.is_editing = editing
        if self.document is not None:
            self.document.editable = editing
        if editing:
            self.save_success = False
        LOGGER.debug("Editing %s", "enabled" if editing else "disabled")

    def request_edit_permission(self) -> None:
        """Turn editing on; used as the session's permission callback."""

        self.set_editing(True)

    def editable(self) -> bool:
        if self.document is not None:
            return bool(self.document.editable)
        return self.is_editing

    # ------------------------------------------------------------------
    # Save / cancel hooks
    # ------------------------------------------------------------------
    def on_save(self, handler: SaveHandler | None) -> None:
        self._on_save = handler

    def on_cancel(self, handler: CancelHandler | None) -> None:
        self._on_cancel = handler

    async def save(self) -> bool:
        """Run the registered save handler and record the outcome."""

        if self._on_save is None:
            self.save_error = "No save handler registered"
            self.save_success = False
            return False
        self.is_saving = True
        self.save_error = None
        try:
            await _maybe_await(self._on_save())
        except Exception as exc:
            LOGGER.exception("Save handler failed")
            self.save_error = str(exc) or exc.__class__.__name__
            self.save_success = False
            return False
        finally:
            self.is_saving = False
        self.save_success = True
        return True

    async def cancel(self) -> None:
        """Leave edit mode, running the cancel handler first if one is set."""

        if self._on_cancel is not None:
            await _maybe_await(self._on_cancel())
        self.set_editing(False)


async def _maybe_await(result: Any) -> Any:
    if inspect.isawaitable(result):
        return await result
    return result
