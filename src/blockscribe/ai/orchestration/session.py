"""Conversation session driving streamed turns, tool execution and permissions.

One :class:`ConversationSession` owns the chat history for a single document.
A turn streams the assistant reply through a :class:`ChatTransport`, recovers
embedded tool calls with :class:`StreamToolCallParser`, then executes them one
at a time through the :class:`DocumentToolExecutor`. Mutating calls on a
read-only document wait for the user to grant edit permission.
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Sequence, Union

from ..prompts import DocumentContext, auto_continue_prompt, build_blocks_preview, build_system_prompt
from ..tools.executor import DocumentToolExecutor
from ..tools.types import (
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
    tool_call_key,
)
from .tool_call_parser import ParsedCall, StreamToolCallParser
from .transport import ChatTransport

__all__ = [
    "SessionState",
    "SessionConfig",
    "ChatMessage",
    "SessionEvent",
    "PendingPermission",
    "ConversationSession",
    "describe_tool_call",
    "ERROR_REPLY",
    "PERMISSION_UNAVAILABLE",
]

LOGGER = logging.getLogger(__name__)

ERROR_REPLY = "Sorry, I encountered an error. Please try again."
PERMISSION_UNAVAILABLE = "Edit permission is not available. Enable editing and try again."
SUCCESS_MARK = "✓"
FAILURE_MARK = "✗"

PermissionCallback = Callable[[], Union[None, Awaitable[None]]]
EventListener = Callable[["SessionEvent"], Union[None, Awaitable[None]]]


class SessionState(str, Enum):
    IDLE = "idle"
    STREAMING = "streaming"
    PERMISSION_PENDING = "permission_pending"
    TOOL_EXECUTING = "tool_executing"
    AUTO_CONTINUE = "auto_continue"


@dataclass(slots=True, frozen=True)
class SessionConfig:
    """Tunables for auto-continuation and the permission handshake."""

    auto_continue_max_results: int = 3
    permission_settle_delay: float = 0.1
    auto_continue: bool = True


@dataclass(slots=True)
class ChatMessage:
    """One entry of the conversation history.

    ``local`` messages (such as a welcome greeting) are shown to the user but
    never sent to the transport.
    """

    role: str
    content: str
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    local: bool = False

    def to_payload(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass(slots=True, frozen=True)
class SessionEvent:
    type: str
    payload: Dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class PendingPermission:
    """A mutating call waiting for the user to allow editing.

    Resolves exactly once: granted, denied or cancelled.
    """

    tool_call: ToolCall
    description: str
    status: str = "pending"
    _future: Optional[asyncio.Future[bool]] = field(default=None, repr=False)

    @property
    def resolved(self) -> bool:
        return self.status != "pending"

    def resolve(self, granted: bool) -> bool:
        if self.resolved:
            return False
        self.status = "granted" if granted else "denied"
        if self._future is not None and not self._future.done():
            self._future.set_result(bool(granted))
        return True

    def cancel(self) -> bool:
        if self.resolved:
            return False
        self.status = "cancelled"
        if self._future is not None and not self._future.done():
            self._future.set_result(False)
        return True

    async def wait(self) -> bool:
        if self._future is None:
            self._future = asyncio.get_running_loop().create_future()
            if self.resolved:
                self._future.set_result(self.status == "granted")
        return await self._future


def describe_tool_call(call: ToolCall) -> str:
    """Human-readable description of what a mutating call is about to do."""

    if isinstance(call, InsertBlocksCall):
        position = Position(call.position)
        if position in (Position.BEFORE, Position.AFTER) and call.reference_block_id:
            return f"Insert {len(call.blocks)} block(s) {position.value} block {call.reference_block_id}"
        return f"Insert {len(call.blocks)} block(s) at {position.value}"
    if isinstance(call, UpdateBlockCall):
        return f"Update block {call.block_id}"
    if isinstance(call, DeleteBlocksCall):
        return f"Delete {len(call.block_ids)} block(s)"
    if isinstance(call, ReplaceTextCall):
        return f'Replace "{call.find}" with "{call.replace}"'
    if isinstance(call, SearchBlocksCall):
        return "Search blocks"
    if isinstance(call, GetBlocksStructureCall):
        return "Read document structure"
    return "Run tool"


class ConversationSession:
    """State machine sequencing one chat over a block document.

    Capabilities are injected: the transport, the executor, an
    ``is_editable`` check, an optional ``request_edit_permission`` callback
    and an optional event listener. Nothing raised by a collaborator
    escapes :meth:`submit`; failures become messages in the history.
    """

    def __init__(
        self,
        transport: ChatTransport,
        executor: DocumentToolExecutor,
        *,
        is_editable: Callable[[], bool] | None = None,
        request_edit_permission: PermissionCallback | None = None,
        listener: EventListener | None = None,
        context: DocumentContext | None = None,
        config: SessionConfig | None = None,
        welcome_message: str | None = None,
    ) -> None:
        self._transport = transport
        self._executor = executor
        self._is_editable = is_editable or (lambda: bool(executor.document.editable))
        self._request_edit_permission = request_edit_permission
        self._listener = listener
        self._context = context or DocumentContext()
        self._config = config or SessionConfig()
        self._parser = StreamToolCallParser()
        self._messages: list[ChatMessage] = []
        self._state = SessionState.IDLE
        self._running = False
        self._auto_continue_in_flight = False
        self._cancel_requested = False
        self._pending: PendingPermission | None = None
        self._turn_task: asyncio.Task[None] | None = None
        if welcome_message:
            self._messages.append(ChatMessage(role="assistant", content=welcome_message, local=True))

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def messages(self) -> list[ChatMessage]:
        return list(self._messages)

    @property
    def pending_permission(self) -> PendingPermission | None:
        return self._pending

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def config(self) -> SessionConfig:
        return self._config

    def set_context(self, context: DocumentContext) -> None:
        self._context = context

    async def submit(self, text: str) -> bool:
        """Run one user turn (and any auto-continuation) to completion.

        Returns ``False`` without doing anything when ``text`` is blank or a
        turn is already running.
        """

        if not text or not text.strip() or self._running:
            return False
        self._running = True
        self._cancel_requested = False
        self._messages.append(ChatMessage(role="user", content=text))
        self._turn_task = asyncio.ensure_future(self._run_turn())
        try:
            await self._turn_task
        except asyncio.CancelledError:
            if not self._cancel_requested:
                raise
            LOGGER.info("Turn cancelled")
            await self._emit("turn.cancelled", {})
        finally:
            self._turn_task = None
            self._running = False
            self._auto_continue_in_flight = False
            self._pending = None
            self._parser.reset()
            await self._set_state(SessionState.IDLE)
        return True

    def respond_to_permission(self, granted: bool) -> bool:
        """Grant or deny the pending permission; ``False`` if none is pending."""

        pending = self._pending
        if pending is None:
            return False
        return pending.resolve(granted)

    def cancel(self) -> bool:
        """Abandon the running turn. Unexecuted calls are dropped."""

        if not self._running or self._turn_task is None:
            return False
        self._cancel_requested = True
        if self._pending is not None:
            self._pending.cancel()
        self._turn_task.cancel()
        return True

    def history_payload(self) -> list[Dict[str, str]]:
        """Messages sent to the transport: non-blank and not local."""

        return [
            message.to_payload()
            for message in self._messages
            if not message.local and message.content.strip()
        ]

    # ------------------------------------------------------------------
    # Turn flow
    # ------------------------------------------------------------------
    async def _run_turn(self) -> None:
        reply = await self._stream_reply()
        if reply is None:
            return
        calls = self._dedupe(reply)
        if not calls:
            return

        await self._set_state(SessionState.TOOL_EXECUTING)
        follow_up: tuple[ToolCall, ToolExecutionResult] | None = None
        for call in calls:
            result = await self._run_tool(call)
            if follow_up is None and self._should_auto_continue(call, result):
                follow_up = (call, result)

        if follow_up is None or not self._config.auto_continue or self._auto_continue_in_flight:
            return
        call, result = follow_up
        await self._set_state(SessionState.AUTO_CONTINUE)
        self._auto_continue_in_flight = True
        try:
            self._messages.append(
                ChatMessage(role="user", content=auto_continue_prompt(result, call.tool.value))
            )
            await self._emit("auto_continue", {"tool": call.tool.value})
            await self._run_turn()
        finally:
            self._auto_continue_in_flight = False

    async def _stream_reply(self) -> Sequence[ParsedCall] | None:
        await self._set_state(SessionState.STREAMING)
        self._parser.reset()
        assistant = ChatMessage(role="assistant", content="")
        history = self.history_payload()
        self._messages.append(assistant)
        context = self._refresh_context()
        try:
            stream = self._transport.stream(
                history,
                system_prompt=build_system_prompt(context),
                context=context,
            )
            async with contextlib.aclosing(stream):
                async for chunk in stream:
                    snapshot = self._parser.feed(chunk)
                    assistant.content = snapshot.display_text
                    await self._emit(
                        "message.delta",
                        {"message_id": assistant.id, "text": snapshot.display_text, "chunk": chunk},
                    )
        except asyncio.CancelledError:
            assistant.content = self._parser.display_text
            raise
        except Exception:
            LOGGER.exception("Chat transport failed")
            if assistant.content.strip():
                self._messages.append(ChatMessage(role="assistant", content=ERROR_REPLY))
            else:
                assistant.content = ERROR_REPLY
            await self._emit("message.error", {"message_id": assistant.id, "text": ERROR_REPLY})
            return None

        snapshot = self._parser.finalize()
        assistant.content = snapshot.display_text
        await self._emit(
            "message.completed",
            {"message_id": assistant.id, "text": snapshot.display_text, "tool_calls": len(snapshot.tool_calls)},
        )
        return snapshot.tool_calls

    def _refresh_context(self) -> DocumentContext:
        preview = build_blocks_preview(self._executor.document)
        return replace(self._context, blocks_preview=preview)

    @staticmethod
    def _dedupe(calls: Sequence[ParsedCall]) -> list[ParsedCall]:
        seen: set[str] = set()
        unique: list[ParsedCall] = []
        for call in calls:
            key = tool_call_key(call)
            if key in seen:
                LOGGER.debug("Dropping duplicate tool call %s", key)
                continue
            seen.add(key)
            unique.append(call)
        return unique

    async def _run_tool(self, call: ParsedCall) -> ToolExecutionResult:
        if is_mutating(call) and not self._is_editable():
            result = await self._await_permission(call)
            if result is not None:
                await self._record_result(call, result)
                return result
        result = self._executor.execute(call)
        await self._record_result(call, result)
        return result

    async def _await_permission(self, call: ToolCall) -> ToolExecutionResult | None:
        """Return a failed result when the call may not run, else ``None``."""

        if self._request_edit_permission is None:
            return ToolExecutionResult(success=False, message=PERMISSION_UNAVAILABLE)

        description = describe_tool_call(call)
        pending = PendingPermission(tool_call=call, description=description)
        self._pending = pending
        await self._set_state(SessionState.PERMISSION_PENDING)
        await self._emit("permission.requested", {"tool": call.tool.value, "description": description})
        try:
            granted = await pending.wait()
        finally:
            self._pending = None
        if not granted:
            LOGGER.info("Permission %s: %s", pending.status, description)
            return ToolExecutionResult(success=False, message=f"Permission denied: {description}")

        try:
            await _maybe_await(self._request_edit_permission())
        except Exception as exc:
            LOGGER.exception("Edit permission callback failed")
            return ToolExecutionResult(success=False, message=f"Failed to enable editing: {exc}")
        await asyncio.sleep(self._config.permission_settle_delay)
        await self._set_state(SessionState.TOOL_EXECUTING)
        return None

    def _should_auto_continue(self, call: ParsedCall, result: ToolExecutionResult) -> bool:
        if not result.success:
            return False
        if isinstance(call, SearchBlocksCall):
            hits = result.data if isinstance(result.data, list) else []
            return (
                0 < len(hits) <= self._config.auto_continue_max_results
                and any(hit.get("matchType") == "exact" for hit in hits)
            )
        if isinstance(call, GetBlocksStructureCall):
            return bool(result.data)
        return False

    async def _record_result(self, call: ParsedCall, result: ToolExecutionResult) -> None:
        mark = SUCCESS_MARK if result.success else FAILURE_MARK
        line = f"{mark} {result.message}"
        self._messages.append(ChatMessage(role="system", content=line))
        await self._emit(
            "tool.result",
            {"tool": _tool_name(call), "result": result.to_dict(), "line": line},
        )

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------
    async def _set_state(self, state: SessionState) -> None:
        if state is self._state:
            return
        previous, self._state = self._state, state
        LOGGER.debug("Session state %s -> %s", previous.value, state.value)
        await self._emit("state.changed", {"previous": previous.value, "state": state.value})

    async def _emit(self, event_type: str, payload: Dict[str, Any]) -> None:
        if self._listener is None:
            return
        try:
            await _maybe_await(self._listener(SessionEvent(type=event_type, payload=payload)))
        except asyncio.CancelledError:
            raise
        except Exception:
            LOGGER.exception("Session listener failed for %s", event_type)


async def _maybe_await(result: Any) -> Any:
    if inspect.isawaitable(result):
        return await result
    return result


def _tool_name(call: ParsedCall) -> str:
    if isinstance(call, Mapping):
        return str(call.get("tool") or "unknown")
    return call.tool.value
