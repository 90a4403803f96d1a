from __future__ import annotations

import pytest

from exview.core.workbook import decode_workbook, openpyxl_workbook
from exview.errors import DecodeFailure


def test_decode_workbook_lists_sheets_in_order(sample_xlsx: bytes) -> None:
    model = decode_workbook(sample_xlsx)
    assert [(sheet.ordinal, sheet.name) for sheet in model.sheets] == [
        (1, "Summary"),
        (2, "Layout"),
    ]


def test_decode_workbook_reads_image_anchors(sample_xlsx: bytes) -> None:
    summary = decode_workbook(sample_xlsx).sheets[0]
    images = sorted(summary.images, key=lambda image: image.top_left.row)
    assert len(images) == 2
    one_cell, two_cell = images
    assert one_cell.image_format == "png"
    assert one_cell.data.startswith(b"\x89PNG")
    assert (one_cell.top_left.row, one_cell.top_left.col) == (1, 3)
    assert one_cell.bottom_right is None
    assert (two_cell.top_left.row, two_cell.top_left.col) == (5, 1)
    assert two_cell.top_left.col_off == 10 * 9525
    assert two_cell.bottom_right is not None
    assert (two_cell.bottom_right.row, two_cell.bottom_right.col) == (10, 4)


def test_decode_workbook_keys_validations_by_range(sample_xlsx: bytes) -> None:
    summary, layout = decode_workbook(sample_xlsx).sheets
    assert set(summary.validations) == {"C2", "D5", "E5"}
    assert summary.validations["C2"].type == "list"
    assert summary.validations["C2"].formulae == ['"Red, Green ,Blue"']
    assert summary.validations["C2"].error == "Pick a colour"
    assert summary.validations["E5"].type == "whole"
    assert set(layout.validations) == {"A1"}


def test_decode_workbook_distinguishes_absent_flags(flags_xlsx: bytes) -> None:
    sheet = decode_workbook(flags_xlsx).sheets[0]
    assert list(sheet.validations) == ["A1", "B1", "B3:B4", "A9"]
    absent = sheet.validations["A1"]
    assert absent.allow_blank is None
    assert absent.show_dropdown is None
    explicit = sheet.validations["B3:B4"]
    assert explicit.allow_blank is False
    assert explicit.show_dropdown is False


def test_decode_workbook_rejects_non_workbook_bytes() -> None:
    with pytest.raises(DecodeFailure, match="Failed to decode workbook"):
        decode_workbook(b"definitely not a zip archive")


def test_openpyxl_workbook_closes_on_exit(plain_xlsx: bytes) -> None:
    with openpyxl_workbook(plain_xlsx) as wb:
        assert wb.sheetnames == ["Plain"]
        assert wb.active["A1"].value == "only"
