"""Tests for edit-mode tracking and save/cancel hooks."""

from __future__ import annotations

import dataclasses

import pytest

from blockscribe.editor.editing import EditingState
from blockscribe.editor.schema import DEFAULT_SCHEMA, BlockSchema, BlockSpec, PropSpec

from tests.helpers import make_document


def test_binding_syncs_document_editability() -> None:
    document = make_document()
    state = EditingState(document=document)

    assert document.editable is False
    assert state.editable() is False

    state.request_edit_permission()

    assert document.editable is True
    assert state.is_editing is True


def test_set_editing_clears_previous_save_success() -> None:
    state = EditingState(document=make_document(), save_success=True)

    state.set_editing(True)

    assert state.save_success is False


@pytest.mark.asyncio
async def test_save_records_success() -> None:
    calls: list[str] = []
    state = EditingState(document=make_document(), is_editing=True)

    async def handler() -> None:
        calls.append("saved")

    state.on_save(handler)
    assert await state.save() is True

    assert calls == ["saved"]
    assert state.save_success is True
    assert state.is_saving is False
    assert state.save_error is None


@pytest.mark.asyncio
async def test_save_failure_is_recorded_not_raised() -> None:
    state = EditingState(document=make_document())

    def handler() -> None:
        raise OSError("disk full")

    state.on_save(handler)

    assert await state.save() is False
    assert state.save_error == "disk full"
    assert state.is_saving is False


@pytest.mark.asyncio
async def test_save_without_handler_fails() -> None:
    state = EditingState()

    assert await state.save() is False
    assert state.save_error == "No save handler registered"


@pytest.mark.asyncio
async def test_cancel_runs_handler_then_leaves_edit_mode() -> None:
    document = make_document()
    state = EditingState(document=document, is_editing=True)
    seen: list[bool] = []
    state.on_cancel(lambda: seen.append(document.editable))

    await state.cancel()

    assert seen == [True]
    assert document.editable is False


def test_schema_registry_is_open() -> None:
    schema = BlockSchema([BlockSpec(name="callout", props={"tone": PropSpec((str,), ("info", "warn"), default="info")})])

    schema.validate("callout", {"tone": "warn"})
    assert schema.apply_defaults("callout", {}) == {"tone": "info"}
    assert schema.names() == ["callout"]
    assert "image" in DEFAULT_SCHEMA.names()


def test_boolean_is_not_accepted_as_heading_level() -> None:
    assert DEFAULT_SCHEMA.get("heading").props["level"].accepts(True) is False
    assert DEFAULT_SCHEMA.get("checkListItem").props["checked"].accepts(True) is True


def test_image_blocks_are_described_by_props_only() -> None:
    spec = DEFAULT_SCHEMA.validate("image", {"url": "https://example.com/a.png", "showPreview": True})

    assert sorted(field.name for field in dataclasses.fields(spec)) == ["name", "props"]
    assert "caption" in spec.props
