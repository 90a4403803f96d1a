from __future__ import annotations

from typing import Any

import anyio
import pytest

from exview.document.memory import MemoryDocument
from exview.errors import ItemInsertionFailure
from exview.models import ExtractedDataValidation, ExtractedImage, ExtractionResult
from exview.reapply import (
    DEFAULT_ERROR_MESSAGE,
    DEFAULT_ERROR_TITLE,
    ReapplicationEngine,
    apply_validations,
    insert_images,
    mime_type_for,
    to_data_url,
)


def _document() -> MemoryDocument:
    document = MemoryDocument()
    document.create_workbook(
        {
            "sheetOrder": ["s1", "s2"],
            "sheets": {
                "s1": {"id": "s1", "name": "Summary"},
                "s2": {"id": "s2", "name": "Layout"},
            },
        }
    )
    return document


def _image(data: bytes, *, sheet_index: int = 0, row: int = 0, col: int = 0) -> ExtractedImage:
    return ExtractedImage(
        image_bytes=data,
        sheet_index=sheet_index,
        sheet_name="Summary",
        anchor_row=row,
        anchor_col=col,
        col_offset_px=4,
    )


def _validation(address: str, values: list[str], **kwargs: Any) -> ExtractedDataValidation:
    return ExtractedDataValidation(
        sheet_index=kwargs.pop("sheet_index", 0),
        sheet_name="Summary",
        range_address=address,
        allowed_values=values,
        **kwargs,
    )


def test_mime_type_and_data_url() -> None:
    assert mime_type_for("JPG") == "image/jpeg"
    assert mime_type_for("emf") == "image/png"
    assert to_data_url(b"\x00\x01", "gif") == "data:image/gif;base64,AAE="


def test_insert_images_is_best_effort(png_bytes: bytes) -> None:
    document = _document()
    images = [
        _image(png_bytes, row=0, col=0),
        _image(b"corrupt", row=4, col=1),
        _image(png_bytes, sheet_index=1, row=2, col=2),
    ]
    errors: list[ItemInsertionFailure] = []

    report = anyio.run(
        lambda: insert_images(document, images, on_error=errors.append)
    )

    assert report.applied == 2
    assert [failure.index for failure in report.failures] == [1]
    assert len(errors) == 1
    assert errors[0].detail.kind == "image"
    assert "Summary!B5" in str(errors[0])
    summary, layout = document.require_workbook().get_sheets()
    assert [(image.row, image.col) for image in summary.get_images()] == [(0, 0)]
    assert summary.get_images()[0].col_offset == 4
    assert summary.get_images()[0].width == 200
    assert [(image.row, image.col) for image in layout.get_images()] == [(2, 2)]


def test_insert_images_falls_back_to_active_sheet(png_bytes: bytes) -> None:
    document = _document()
    report = anyio.run(
        lambda: insert_images(document, [_image(png_bytes, sheet_index=9)])
    )
    assert report.applied == 1
    assert len(document.require_workbook().get_sheets()[0].get_images()) == 1


def test_insert_images_uses_direct_insert_without_builder(png_bytes: bytes) -> None:
    class LegacySheet:
        def __init__(self) -> None:
            self.inserted: list[tuple[str, int, int]] = []

        async def insert_image(self, url: str, col: int, row: int) -> None:
            self.inserted.append((url[:22], col, row))

    class LegacyWorkbook:
        def __init__(self) -> None:
            self.sheet = LegacySheet()

        def get_sheets(self) -> list[LegacySheet]:
            return [self.sheet]

        def get_active_sheet(self) -> LegacySheet:
            return self.sheet

    class LegacyDocument:
        def __init__(self) -> None:
            self.workbook = LegacyWorkbook()

        def get_active_workbook(self) -> LegacyWorkbook:
            return self.workbook

    document = LegacyDocument()
    report = anyio.run(
        lambda: insert_images(document, [_image(png_bytes, row=3, col=5)])
    )
    assert report.applied == 1
    assert document.workbook.sheet.inserted == [("data:image/png;base64,", 5, 3)]


def test_insert_images_without_workbook_skips_everything(png_bytes: bytes) -> None:
    report = anyio.run(lambda: insert_images(MemoryDocument(), [_image(png_bytes)]))
    assert report.applied == 0
    assert report.skipped == 1
    assert report.failures == []


def test_apply_validations_installs_list_rules() -> None:
    document = _document()
    validations = [
        _validation(
            "C2:C4",
            ["Red", "Green"],
            allow_blank=False,
            error_title="Colour",
            error_message="Pick a colour",
            prompt_title="Hint",
            prompt_message="Choose",
        ),
        _validation("D1", ["Yes", "No"], sheet_index=1),
    ]

    report = anyio.run(lambda: apply_validations(document, validations))

    assert (report.applied, report.skipped, report.failures) == (2, 0, [])
    summary, layout = document.require_workbook().get_sheets()
    [(target, rule)] = summary.get_data_validations()
    assert target.to_a1() == "C2:C4"
    assert rule.values == ["Red", "Green"]
    assert rule.options["allow_blank"] is False
    assert rule.options["show_error_message"] is True
    assert rule.options["error"] == "Pick a colour"
    assert rule.options["error_title"] == "Colour"
    assert rule.options["prompt"] == "Choose"
    [(_, layout_rule)] = layout.get_data_validations()
    assert layout_rule.options["error"] == DEFAULT_ERROR_MESSAGE
    assert layout_rule.options["error_title"] == DEFAULT_ERROR_TITLE
    assert layout_rule.options["show_error_message"] is False


def test_apply_validations_skips_references_and_empty_lists() -> None:
    document = _document()
    validations = [
        _validation("A1", []),
        _validation("A2", ["$H$1:$H$3"]),
        _validation("A3", ["$1", "$2"]),
    ]
    report = anyio.run(lambda: apply_validations(document, validations))
    assert (report.applied, report.skipped) == (1, 2)
    sheet = document.require_workbook().get_sheets()[0]
    assert [target.to_a1() for target, _ in sheet.get_data_validations()] == ["A3"]


def test_apply_validations_reports_bad_addresses() -> None:
    document = _document()
    errors: list[ItemInsertionFailure] = []
    report = anyio.run(
        lambda: apply_validations(
            document,
            [_validation("1A", ["x"]), _validation("B2", ["y"])],
            on_error=errors.append,
        )
    )
    assert report.applied == 1
    assert report.failures[0].kind == "validation"
    assert report.failures[0].address == "1A"
    assert errors[0].detail.message.startswith("Failed to apply validation at Summary!1A")


def test_engine_prefers_ready_signal(png_bytes: bytes) -> None:
    class ReadyDocument(MemoryDocument):
        rendered = False

        async def wait_until_rendered(self) -> None:
            self.rendered = True

    document = ReadyDocument()
    document.create_workbook({"sheets": {"s1": {"id": "s1", "name": "Summary"}}})
    engine = ReapplicationEngine(settle_delay=60_000)
    extraction = ExtractionResult(
        images=[_image(png_bytes)], validations=[_validation("A1", ["x"])]
    )

    outcome = anyio.run(lambda: engine.reapply(document, extraction))

    assert document.rendered is True
    assert outcome.images.applied == 1
    assert outcome.validations.applied == 1


def test_engine_sleeps_without_ready_signal(monkeypatch: pytest.MonkeyPatch) -> None:
    delays: list[float] = []

    async def _sleep(delay: float) -> None:
        delays.append(delay)

    monkeypatch.setattr("exview.reapply.anyio.sleep", _sleep)
    engine = ReapplicationEngine(settle_delay=250)
    anyio.run(engine.settle, object())
    assert delays == [0.25]
