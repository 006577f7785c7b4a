"""Tests for the logging setup helpers."""

from __future__ import annotations

import logging
import logging.handlers
from pathlib import Path
from typing import Iterator

import pytest

from blockscribe.utils import logging as logging_utils


@pytest.fixture(autouse=True)
def _restore_root_logger(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    monkeypatch.setattr(logging_utils, "_LOG_PATH", None)
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    logging_utils.reset_logging()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


def test_setup_writes_to_rotating_file(tmp_path: Path) -> None:
    log_path = logging_utils.setup_logging(logging.DEBUG, log_dir=tmp_path)

    logging.getLogger("blockscribe.test").info("hello file")
    for handler in logging.getLogger().handlers:
        handler.flush()

    assert log_path == tmp_path / "blockscribe.log"
    assert logging_utils.get_log_path() == log_path
    assert "| INFO     | blockscribe.test | hello file" in log_path.read_text(encoding="utf-8")
    assert any(isinstance(h, logging.handlers.RotatingFileHandler) for h in logging.getLogger().handlers)


def test_setup_is_idempotent_unless_forced(tmp_path: Path) -> None:
    first = logging_utils.setup_logging(log_dir=tmp_path / "a")
    second = logging_utils.setup_logging(log_dir=tmp_path / "b")
    forced = logging_utils.setup_logging(log_dir=tmp_path / "b", force=True)

    assert second == first
    assert forced == tmp_path / "b" / "blockscribe.log"


def test_log_dir_comes_from_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv(logging_utils.LOG_DIR_ENV, str(tmp_path / "env-logs"))

    assert logging_utils.setup_logging() == tmp_path / "env-logs" / "blockscribe.log"


def test_noisy_libraries_are_quietened(tmp_path: Path) -> None:
    logging_utils.setup_logging(logging.DEBUG, log_dir=tmp_path, console=True)

    assert logging.getLogger("httpx").level == logging.WARNING
    assert logging.getLogger("openai").level == logging.WARNING
    assert len(logging.getLogger().handlers) == 2
