from __future__ import annotations

import base64
from collections.abc import Callable, Sequence
import inspect
import logging
from typing import Any

import anyio
from pydantic import BaseModel, Field

from exview.errors import ItemInsertionFailure, ItemKind
from exview.extract import is_reference_list
from exview.models import (
    ExtractedDataValidation,
    ExtractedImage,
    ExtractionResult,
    ReapplyReport,
)
from exview.shared.a1 import format_address

logger = logging.getLogger(__name__)

ErrorCallback = Callable[[ItemInsertionFailure], None]

DEFAULT_SETTLE_DELAY_MS = 500
DEFAULT_ERROR_MESSAGE = "Please select a value from the list"
DEFAULT_ERROR_TITLE = "Invalid Input"

MIME_TYPES: dict[str, str] = {
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "gif": "image/gif",
    "bmp": "image/bmp",
    "webp": "image/webp",
    "svg": "image/svg+xml",
}


class ReapplyOutcome(BaseModel):
    """Reports of one full re-application pass."""

    images: ReapplyReport = Field(default_factory=ReapplyReport)
    validations: ReapplyReport = Field(default_factory=ReapplyReport)


def mime_type_for(image_format: str) -> str:
    """Return the MIME type for an image extension, defaulting to PNG."""
    return MIME_TYPES.get(image_format.lower(), "image/png")


def to_data_url(data: bytes, image_format: str) -> str:
    """Encode image bytes as a base64 data URL."""
    encoded = base64.b64encode(data).decode("ascii")
    return f"data:{mime_type_for(image_format)};base64,{encoded}"


async def insert_images(
    document: Any,
    images: Sequence[ExtractedImage],
    *,
    on_error: ErrorCallback | None = None,
) -> ReapplyReport:
    """Insert extracted images one by one; item failures never abort the batch.

    Args:
        document: Live document handle.
        images: Images in sheet/encounter order.
        on_error: Called once per failed item.

    Returns:
        Counts of applied and skipped items plus failure details.
    """
    report = ReapplyReport()
    workbook = document.get_active_workbook() if document is not None else None
    if workbook is None:
        report.skipped = len(images)
        return report
    for index, image in enumerate(images):
        address = format_address(image.anchor_row, image.anchor_col)
        try:
            sheet = _resolve_sheet(workbook, image.sheet_index)
            if sheet is None:
                report.skipped += 1
                continue
            await _insert_image(sheet, image)
        except Exception as exc:
            _record_failure(
                report,
                "image",
                index,
                image.sheet_index,
                image.sheet_name,
                address,
                exc,
                on_error,
            )
            continue
        report.applied += 1
    logger.info(
        "Inserted %d/%d image(s) (%d failed).",
        report.applied,
        len(images),
        len(report.failures),
    )
    return report


async def _insert_image(sheet: Any, image: ExtractedImage) -> None:
    data_url = to_data_url(image.image_bytes, image.image_format)
    new_builder = getattr(sheet, "new_over_grid_image", None)
    builder = new_builder() if new_builder is not None else None
    if builder is None:
        insert_image = getattr(sheet, "insert_image", None)
        if insert_image is None:
            raise RuntimeError("Sheet does not support image insertion.")
        result = insert_image(data_url, image.anchor_col, image.anchor_row)
        if inspect.isawaitable(result):
            await result
        return
    builder = (
        builder.set_source(data_url, "base64")
        .set_column(image.anchor_col)
        .set_row(image.anchor_row)
    )
    if image.col_offset_px and hasattr(builder, "set_column_offset"):
        builder = builder.set_column_offset(image.col_offset_px)
    if image.row_offset_px and hasattr(builder, "set_row_offset"):
        builder = builder.set_row_offset(image.row_offset_px)
    sheet_image = await builder.set_width(image.width_px).set_height(
        image.height_px
    ).build_async()
    sheet.insert_images([sheet_image])


async def apply_validations(
    document: Any,
    validations: Sequence[ExtractedDataValidation],
    *,
    on_error: ErrorCallback | None = None,
) -> ReapplyReport:
    """Install list validations one by one.

    Rules whose values are empty or a single cell reference cannot be shown
    as a literal dropdown and are skipped.
    """
    report = ReapplyReport()
    workbook = document.get_active_workbook() if document is not None else None
    if workbook is None:
        report.skipped = len(validations)
        return report
    for index, validation in enumerate(validations):
        try:
            sheet = _resolve_sheet(workbook, validation.sheet_index)
            if sheet is None:
                report.skipped += 1
                continue
            target = sheet.get_range(validation.range_address)
            values = validation.allowed_values
            if target is None or not values or is_reference_list(values):
                logger.debug(
                    "Skipping validation at %s!%s.",
                    validation.sheet_name,
                    validation.range_address,
                )
                report.skipped += 1
                continue
            target.set_data_validation(build_list_rule(document, validation))
        except Exception as exc:
            _record_failure(
                report,
                "validation",
                index,
                validation.sheet_index,
                validation.sheet_name,
                validation.range_address,
                exc,
                on_error,
            )
            continue
        report.applied += 1
    logger.info(
        "Applied %d/%d validation(s) (%d skipped, %d failed).",
        report.applied,
        len(validations),
        report.skipped,
        len(report.failures),
    )
    return report


def build_list_rule(document: Any, validation: ExtractedDataValidation) -> Any:
    """Build a "value must be in list" rule for ``validation``."""
    return (
        document.new_data_validation()
        .require_value_in_list(list(validation.allowed_values))
        .set_options(
            allow_blank=validation.allow_blank,
            show_dropdown=validation.show_dropdown,
            show_error_message=bool(validation.error_message),
            error=validation.error_message or DEFAULT_ERROR_MESSAGE,
            error_title=validation.error_title or DEFAULT_ERROR_TITLE,
            show_input_message=bool(validation.prompt_message),
            prompt=validation.prompt_message,
            prompt_title=validation.prompt_title,
        )
        .build()
    )


def _resolve_sheet(workbook: Any, sheet_index: int) -> Any | None:
    """Return the sheet at ``sheet_index``, or the active sheet when out of range."""
    sheets = list(workbook.get_sheets())
    if 0 <= sheet_index < len(sheets):
        return sheets[sheet_index]
    return workbook.get_active_sheet()


def _record_failure(
    report: ReapplyReport,
    kind: ItemKind,
    index: int,
    sheet_index: int,
    sheet_name: str,
    address: str,
    exc: Exception,
    on_error: ErrorCallback | None,
) -> None:
    failure = ItemInsertionFailure.from_item(
        kind,
        index,
        sheet_index=sheet_index,
        sheet_name=sheet_name,
        address=address,
        exc=exc,
    )
    logger.warning("%s", failure.detail.message)
    report.failures.append(failure.detail)
    if on_error is not None:
        on_error(failure)


class ReapplicationEngine:
    """Settle the live document, then re-apply extracted metadata."""

    def __init__(
        self,
        *,
        settle_delay: float = DEFAULT_SETTLE_DELAY_MS,
        on_error: ErrorCallback | None = None,
    ) -> None:
        self.settle_delay = settle_delay
        self.on_error = on_error

    async def settle(self, document: Any) -> None:
        """Wait for the engine's ready signal, or the fixed delay without one."""
        wait_until_rendered = getattr(document, "wait_until_rendered", None)
        if callable(wait_until_rendered):
            await wait_until_rendered()
            return
        await anyio.sleep(self.settle_delay / 1000)

    async def reapply(
        self, document: Any, extraction: ExtractionResult
    ) -> ReapplyOutcome:
        """Settle, then insert images and apply validations in that order."""
        await self.settle(document)
        outcome = ReapplyOutcome()
        if extraction.images:
            outcome.images = await insert_images(
                document, extraction.images, on_error=self.on_error
            )
        if extraction.validations:
            outcome.validations = await apply_validations(
                document, extraction.validations, on_error=self.on_error
            )
        return outcome


__all__ = [
    "DEFAULT_ERROR_MESSAGE",
    "DEFAULT_ERROR_TITLE",
    "DEFAULT_SETTLE_DELAY_MS",
    "MIME_TYPES",
    "ReapplicationEngine",
    "ReapplyOutcome",
    "apply_validations",
    "build_list_rule",
    "insert_images",
    "mime_type_for",
    "to_data_url",
]
