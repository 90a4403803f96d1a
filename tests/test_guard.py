from __future__ import annotations

from typing import Any

import pytest

from exview.document.memory import Command, MemoryDocument
from exview.errors import GuardViolation
from exview.guard import (
    BLOCKED_COMMANDS,
    READONLY_MENU_OVERRIDES,
    ReadOnlyGuard,
    is_mutating_command,
)


def _document() -> MemoryDocument:
    document = MemoryDocument()
    document.create_workbook(
        {
            "sheets": {
                "s1": {
                    "id": "s1",
                    "name": "Data",
                    "cellData": {"0": {"0": {"v": "locked"}}},
                },
                "s2": {"id": "s2", "name": "Other"},
            }
        }
    )
    return document


def test_blocked_commands_cover_expected_families() -> None:
    for command_id in (
        "sheet.command.set-range-values",
        "sheet.command.paste",
        "sheet.command.insert-row",
        "sheet.command.set-worksheet-col-width",
        "sheet.command.add-worksheet-merge",
        "sheet.command.set-bold",
        "sheet.command.remove-sheet",
        "sheet.command.auto-fill",
        "sheet.command.addDataValidation",
        "sheet.operation.show-data-validation-dropdown",
    ):
        assert command_id in BLOCKED_COMMANDS
    assert "sheet.operation.set-selections" not in BLOCKED_COMMANDS
    assert READONLY_MENU_OVERRIDES["sheet.menu.delete"] == {"hidden": True}


@pytest.mark.parametrize(
    ("command", "expected"),
    [
        (Command(id="sheet.command.set-range-values"), True),
        (Command(id="sheet.command.custom-edit", mutates_document=True), True),
        (Command(id="sheet.operation.set-selections", mutates_document=False), False),
        (Command(id="sheet.command.scroll-view"), False),
    ],
)
def test_is_mutating_command(command: Command, expected: bool) -> None:
    assert is_mutating_command(command) is expected


def test_guard_rejects_cell_writes_without_mutation() -> None:
    document = _document()
    guard = ReadOnlyGuard()
    guard.apply(document)
    sheet = document.require_workbook().get_active_sheet()

    with pytest.raises(GuardViolation, match="Read-only mode: editing is disabled"):
        sheet.get_range("A1").set_value("changed")

    assert sheet.get_range("A1").get_value() == "locked"


def test_guard_rejects_validation_and_rename_commands() -> None:
    document = _document()
    guard = ReadOnlyGuard()
    guard.apply(document)
    with pytest.raises(GuardViolation) as excinfo:
        document.execute_command(
            "sheet.command.set-worksheet-name", {"sheet_id": "s1", "name": "Renamed"}
        )
    assert excinfo.value.command_id == "sheet.command.set-worksheet-name"
    assert document.require_workbook().get_sheets()[0].get_sheet_name() == "Data"


def test_guard_allows_navigation() -> None:
    document = _document()
    guard = ReadOnlyGuard()
    guard.apply(document)
    workbook = document.require_workbook()

    workbook.get_active_sheet().get_range("A1:B2").activate()
    workbook.get_sheets()[1].activate()

    assert workbook.get_active_sheet().get_sheet_name() == "Other"
    assert workbook.get_sheets()[0].selection is not None


def test_guard_apply_is_idempotent_and_remove_releases() -> None:
    document = _document()
    guard = ReadOnlyGuard()
    guard.apply(document)
    guard.apply(document)
    assert guard.is_active is True
    assert document.interceptor_count == 1

    guard.remove()
    guard.remove()
    assert guard.is_active is False
    assert document.interceptor_count == 0

    sheet = document.require_workbook().get_active_sheet()
    sheet.get_range("A1").set_value("editable again")
    assert sheet.get_range("A1").get_value() == "editable again"


def test_guard_apply_without_document_is_noop() -> None:
    guard = ReadOnlyGuard()
    guard.apply(None)
    assert guard.is_active is False


def test_guard_context_manager_releases_on_error() -> None:
    document = _document()
    guard = ReadOnlyGuard()
    with pytest.raises(RuntimeError):
        with guard.applied(document):
            assert document.interceptor_count == 1
            raise RuntimeError("boom")
    assert guard.is_active is False
    assert document.interceptor_count == 0


def test_disable_direct_manipulation() -> None:
    document = _document()
    guard = ReadOnlyGuard()
    guard.disable_direct_manipulation(document)
    transformer = document.get_transformer()
    assert document.select_drawing(object()) is transformer  # type: ignore[arg-type]
    assert transformer.attached == []


def test_disable_direct_manipulation_swallows_failures() -> None:
    class Broken:
        def get_transformer(self) -> Any:
            raise RuntimeError("no renderer")

    ReadOnlyGuard().disable_direct_manipulation(Broken())
    ReadOnlyGuard().disable_direct_manipulation(None)
