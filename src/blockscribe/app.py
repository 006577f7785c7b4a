"""Console entry point: chat with an assistant that edits a JSON block document."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional, Sequence, TextIO, get_args, get_origin, get_type_hints

from .ai.client import AIClient, ClientSettings
from .ai.orchestration.session import ConversationSession, SessionConfig, SessionEvent
from .ai.orchestration.transport import AIClientTransport, ChatTransport, HttpTextStreamTransport
from .ai.prompts import DocumentContext
from .ai.tools.executor import DocumentToolExecutor, ExecutorConfig
from .editor.document_model import BlockDocument, load_document, save_document
from .editor.editing import EditingState
from .services.settings import TRANSPORT_CHOICES, Settings, SettingsStore, redact_secret
from .utils import logging as logging_utils

_LOGGER = logging.getLogger(__name__)
_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}
_FALSE_VALUES = {"0", "false", "no", "off", "disabled"}
_WELCOME = "Hi! Ask me to restructure, extend or tidy up this document."
_QUIT_COMMANDS = {"/quit", "/exit"}

InputFunc = Callable[[str], str]


def configure_logging(debug: bool = False, *, force: bool = False) -> Path:
    level = logging.DEBUG if debug else logging.INFO
    log_path = logging_utils.setup_logging(level, force=force)
    _LOGGER.debug("Logging configured (level=%s)", logging.getLevelName(level))
    return log_path


def load_settings(
    path: Optional[Path] = None,
    *,
    store: SettingsStore | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> Settings:
    """Load persisted settings or fall back to defaults."""

    active_store = store or SettingsStore(path)
    try:
        return active_store.load(overrides=overrides)
    except (OSError, ValueError) as exc:
        _LOGGER.warning("Failed to load settings from %s: %s", active_store.path, exc)
        return Settings()


def build_transport(settings: Settings, *, context: DocumentContext | None = None) -> ChatTransport:
    """Pick the chat transport named by ``settings.transport``."""

    if settings.transport == "http":
        _LOGGER.info("Using HTTP chat endpoint %s", settings.chat_endpoint)
        return HttpTextStreamTransport(
            settings.chat_endpoint,
            context=context,
            timeout=settings.request_timeout,
            headers=settings.default_headers,
        )
    client = AIClient(
        ClientSettings(
            base_url=settings.base_url,
            api_key=settings.api_key,
            model=settings.model,
            organization=settings.organization,
            request_timeout=settings.request_timeout,
            temperature=settings.temperature,
            default_headers=settings.default_headers or None,
            debug_logging=settings.debug_logging,
        )
    )
    _LOGGER.info("Using model %s via %s", settings.model, settings.base_url)
    return AIClientTransport(client)


def build_session(
    settings: Settings,
    document: BlockDocument,
    editing: EditingState,
    *,
    transport: ChatTransport,
    context: DocumentContext | None = None,
    listener: Callable[[SessionEvent], Any] | None = None,
) -> ConversationSession:
    executor = DocumentToolExecutor(document, ExecutorConfig(fuzzy_threshold=settings.fuzzy_threshold))
    return ConversationSession(
        transport,
        executor,
        is_editable=editing.editable,
        request_edit_permission=editing.request_edit_permission,
        listener=listener,
        context=context,
        config=SessionConfig(
            auto_continue_max_results=settings.auto_continue_max_results,
            permission_settle_delay=settings.permission_settle_delay,
            auto_continue=settings.auto_continue,
        ),
        welcome_message=_WELCOME,
    )


class ConsoleListener:
    """Prints session events and answers permission prompts from the terminal."""

    def __init__(self, *, input_func: InputFunc | None = None, output: TextIO | None = None) -> None:
        self._input = input_func
        self._output = output or sys.stdout
        self._session: ConversationSession | None = None
        self._printed: Dict[str, int] = {}

    def attach(self, session: ConversationSession) -> None:
        self._session = session

    async def __call__(self, event: SessionEvent) -> None:
        payload = event.payload
        if event.type == "message.delta":
            self._print_delta(payload["message_id"], payload["text"])
        elif event.type in ("message.completed", "message.error"):
            self._print_delta(payload["message_id"], payload["text"])
            self._write("\n")
        elif event.type == "tool.result":
            self._write(f"{payload['line']}\n")
        elif event.type == "permission.requested":
            await self._ask_permission(payload["description"])
        elif event.type == "turn.cancelled":
            self._write("(cancelled)\n")

    def _print_delta(self, message_id: str, text: str) -> None:
        # Display text can shrink when a partial tool marker is hidden again.
        shown = self._printed.get(message_id, 0)
        if len(text) > shown:
            self._write(text[shown:])
            self._printed[message_id] = len(text)

    async def _ask_permission(self, description: str) -> None:
        try:
            answer = await asyncio.to_thread(self._input or input, f"Allow edit? {description} [y/N] ")
        except EOFError:
            answer = ""
        granted = answer.strip().lower() in _TRUE_VALUES | {"y"}
        if self._session is not None:
            self._session.respond_to_permission(granted)

    def _write(self, text: str) -> None:
        self._output.write(text)
        self._output.flush()


async def run_chat(
    session: ConversationSession,
    editing: EditingState,
    *,
    input_func: InputFunc | None = None,
    output: TextIO | None = None,
) -> None:
    """Read prompts until EOF or ``/quit``; ``/edit`` and ``/lock`` toggle edit mode."""

    read_line = input_func or input
    destination = output or sys.stdout
    for message in session.messages:
        destination.write(f"{message.content}\n")
    while True:
        try:
            line = await asyncio.to_thread(read_line, "> ")
        except EOFError:
            break
        command = line.strip()
        if command in _QUIT_COMMANDS:
            break
        if command == "/edit":
            editing.set_editing(True)
            destination.write("Editing enabled.\n")
            continue
        if command == "/lock":
            editing.set_editing(False)
            destination.write("Editing disabled.\n")
            continue
        await session.submit(line)


async def _run(args: argparse.Namespace, settings: Settings) -> int:
    document_path = Path(args.document).expanduser()
    try:
        document = load_document(document_path)
    except (OSError, ValueError) as exc:
        print(f"Unable to open {document_path}: {exc}", file=sys.stderr)
        return 1

    editing = EditingState(document=document, is_editing=not args.read_only)
    editing.on_save(lambda: save_document(document, document_path))
    context = DocumentContext(
        title=args.title or document_path.stem,
        description=args.description or "",
    )
    transport = build_transport(settings, context=context)
    listener = ConsoleListener()
    session = build_session(
        settings, document, editing, transport=transport, context=context, listener=listener
    )
    listener.attach(session)

    try:
        await run_chat(session, editing)
    except KeyboardInterrupt:  # pragma: no cover - manual shutdown path
        _LOGGER.info("Shutdown requested by user.")
    finally:
        aclose = getattr(transport, "aclose", None)
        if aclose is not None:
            await aclose()
        saved = await editing.save()
        if not saved:
            print(f"Failed to save {document_path}: {editing.save_error}", file=sys.stderr)
    return 0 if editing.save_success else 1


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point invoked by the ``blockscribe`` console script."""

    args = _parse_cli_args(argv)
    debug = args.debug or _env_flag("BLOCKSCRIBE_DEBUG")
    configure_logging(debug)

    settings_path = args.settings or os.environ.get("BLOCKSCRIBE_SETTINGS_PATH")
    store = SettingsStore(Path(settings_path).expanduser() if settings_path else None)
    try:
        overrides = _coerce_cli_overrides(args.overrides or [])
    except ValueError as exc:
        print(f"Invalid --set override: {exc}", file=sys.stderr)
        return 2
    if args.transport:
        overrides["transport"] = args.transport
    if args.endpoint:
        overrides["chat_endpoint"] = args.endpoint
    settings = load_settings(store=store, overrides=overrides or None)

    if args.dump_settings:
        _dump_settings(settings, store, overrides=overrides)
        return 0
    if not args.document:
        print("A document path is required.", file=sys.stderr)
        return 2

    if settings.debug_logging and not debug:
        configure_logging(True, force=True)
    return asyncio.run(_run(args, settings))


# ----------------------------------------------------------------------
# CLI helpers
# ----------------------------------------------------------------------
def _parse_cli_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="blockscribe",
        description="Chat with an assistant that edits a JSON block document.",
    )
    parser.add_argument("document", nargs="?", metavar="DOC.json", help="Block document to edit.")
    parser.add_argument("--settings", metavar="PATH", help="Override ~/.blockscribe/settings.json.")
    parser.add_argument("--debug", action="store_true", help="Log at DEBUG level.")
    parser.add_argument(
        "--read-only",
        action="store_true",
        help="Start with editing disabled; edits then ask for permission.",
    )
    parser.add_argument("--title", help="Document title shown to the assistant.")
    parser.add_argument("--description", help="Document description shown to the assistant.")
    parser.add_argument("--transport", choices=TRANSPORT_CHOICES, help="Chat transport to use.")
    parser.add_argument("--endpoint", metavar="URL", help="Chat endpoint for the http transport.")
    parser.add_argument(
        "--set",
        dest="overrides",
        metavar="KEY=VALUE",
        action="append",
        default=[],
        help="Override a persisted setting for this run (repeatable).",
    )
    parser.add_argument(
        "--dump-settings",
        action="store_true",
        help="Print the effective settings (with secrets redacted) and exit.",
    )
    return parser.parse_args(argv)


def _env_flag(name: str, *, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


def _coerce_cli_overrides(items: Sequence[str]) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    if not items:
        return overrides
    fields = Settings.__dataclass_fields__  # type: ignore[attr-defined]
    type_hints = get_type_hints(Settings)
    for entry in items:
        if "=" not in entry:
            raise ValueError(f"Override '{entry}' must use KEY=VALUE syntax.")
        key, raw_value = entry.split("=", 1)
        key = key.strip()
        if not key:
            raise ValueError("Override is missing a field name.")
        if key not in fields:
            raise ValueError(f"Unknown setting '{key}'.")
        overrides[key] = _coerce_value(type_hints.get(key, fields[key].type), raw_value.strip())
    return overrides


def _coerce_value(annotation: Any, raw_value: str) -> Any:
    target = _resolve_annotation(annotation)
    if raw_value.lower() in {"none", "null"} and type(None) in get_args(annotation):
        return None
    if target is bool:
        return _parse_bool(raw_value)
    if target is int:
        return int(raw_value, 10)
    if target is float:
        return float(raw_value)
    if target is dict:
        try:
            value = json.loads(raw_value or "{}")
        except json.JSONDecodeError as exc:
            raise ValueError("Dict overrides must be valid JSON objects") from exc
        if not isinstance(value, dict):
            raise ValueError("Dict overrides must be valid JSON objects")
        return value
    return raw_value


def _resolve_annotation(annotation: Any) -> Any:
    origin = get_origin(annotation)
    if origin is None:
        return annotation
    if origin is dict:
        return dict
    args = [arg for arg in get_args(annotation) if arg is not type(None)]
    return args[0] if args else origin


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"Cannot coerce '{value}' to a boolean.")


def _dump_settings(
    settings: Settings,
    store: SettingsStore,
    *,
    overrides: Mapping[str, Any],
    stream: TextIO | None = None,
) -> None:
    destination = stream or sys.stdout
    payload = asdict(settings)
    payload["api_key"] = redact_secret(settings.api_key)
    meta = {
        "path": str(store.path),
        "secret_backend": store.vault.strategy,
        "cli_overrides": sorted(overrides),
        "environment_variables": sorted(name for name in os.environ if name.startswith("BLOCKSCRIBE_")),
    }
    json.dump({"settings": payload, "meta": meta}, destination, indent=2)
    destination.write("\n")


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
