"""Shared pytest fixtures."""

from __future__ import annotations

import pytest

from blockscribe.ai.tools.executor import DocumentToolExecutor
from blockscribe.editor.document_model import BlockDocument

from tests.helpers import make_document


@pytest.fixture
def document() -> BlockDocument:
    return make_document()


@pytest.fixture
def executor(document: BlockDocument) -> DocumentToolExecutor:
    return DocumentToolExecutor(document)


@pytest.fixture(autouse=True)
def _isolated_home(monkeypatch: pytest.MonkeyPatch, tmp_path_factory: pytest.TempPathFactory) -> None:
    monkeypatch.setenv("BLOCKSCRIBE_LOG_DIR", str(tmp_path_factory.mktemp("logs")))
    for name in (
        "BLOCKSCRIBE_API_KEY",
        "BLOCKSCRIBE_BASE_URL",
        "BLOCKSCRIBE_MODEL",
        "BLOCKSCRIBE_TRANSPORT",
        "BLOCKSCRIBE_DEBUG",
        "BLOCKSCRIBE_DEBUG_LOGGING",
        "BLOCKSCRIBE_FUZZY_THRESHOLD",
    ):
        monkeypatch.delenv(name, raising=False)
