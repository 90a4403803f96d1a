from __future__ import annotations

import logging

import anyio

from exview.core.workbook import (
    DecodedImage,
    DecodedValidation,
    SheetModel,
    WorkbookModel,
    decode_workbook,
)
from exview.models import ExtractedDataValidation, ExtractedImage, ExtractionResult

logger = logging.getLogger(__name__)

EMU_PER_PIXEL = 9525
DEFAULT_COLUMN_WIDTH_PX = 64
DEFAULT_ROW_HEIGHT_PX = 20
MIN_IMAGE_SIZE_PX = 50
DEFAULT_IMAGE_WIDTH_PX = 200
DEFAULT_IMAGE_HEIGHT_PX = 150


class MetadataExtractor:
    """Extract images and list validations from ``.xlsx`` bytes."""

    def __init__(self, *, images: bool = True, validations: bool = True) -> None:
        self.images = images
        self.validations = validations

    def extract(self, data: bytes) -> ExtractionResult:
        """Decode ``data`` and extract the enabled metadata kinds.

        Raises:
            DecodeFailure: If the workbook cannot be decoded.
        """
        return extract_metadata(data, images=self.images, validations=self.validations)

    async def extract_async(self, data: bytes) -> ExtractionResult:
        """Run ``extract`` in a worker thread."""
        return await anyio.to_thread.run_sync(self.extract, data)


def extract_metadata(
    data: bytes, *, images: bool = True, validations: bool = True
) -> ExtractionResult:
    """Decode workbook bytes and extract images and list validations.

    Args:
        data: Raw ``.xlsx`` bytes.
        images: Whether to extract embedded images.
        validations: Whether to extract list data validations.

    Returns:
        Extracted descriptors in sheet/encounter order.

    Raises:
        DecodeFailure: If the workbook cannot be decoded.
    """
    if not images and not validations:
        return ExtractionResult()
    workbook = decode_workbook(data)
    result = extract_from_model(workbook, images=images, validations=validations)
    logger.info(
        "Extracted %d image(s) and %d validation(s) from %d sheet(s).",
        len(result.images),
        len(result.validations),
        len(workbook.sheets),
    )
    return result


def extract_from_model(
    workbook: WorkbookModel, *, images: bool = True, validations: bool = True
) -> ExtractionResult:
    """Extract descriptors from an already decoded workbook."""
    result = ExtractionResult()
    for sheet in workbook.sheets:
        if images:
            result.images.extend(_extract_sheet_images(sheet))
        if validations:
            result.validations.extend(_extract_sheet_validations(sheet))
    return result


def _extract_sheet_images(sheet: SheetModel) -> list[ExtractedImage]:
    extracted: list[ExtractedImage] = []
    for index, image in enumerate(sheet.images):
        if not image.data:
            logger.debug("Sheet %s image %d has no data; skipped.", sheet.name, index)
            continue
        try:
            extracted.append(build_image(sheet, image))
        except ValueError as exc:
            logger.warning(
                "Skipping image %d on sheet %s: %s", index, sheet.name, exc
            )
    return extracted


def build_image(sheet: SheetModel, image: DecodedImage) -> ExtractedImage:
    """Compute pixel geometry for one decoded image."""
    tl = image.top_left
    br = image.bottom_right
    width: float = DEFAULT_IMAGE_WIDTH_PX
    height: float = DEFAULT_IMAGE_HEIGHT_PX
    if br is not None:
        width = max(
            MIN_IMAGE_SIZE_PX,
            (br.col - tl.col) * DEFAULT_COLUMN_WIDTH_PX + br.col_off / EMU_PER_PIXEL,
        )
        height = max(
            MIN_IMAGE_SIZE_PX,
            (br.row - tl.row) * DEFAULT_ROW_HEIGHT_PX + br.row_off / EMU_PER_PIXEL,
        )
    return ExtractedImage(
        image_bytes=image.data,
        image_format=image.image_format or "png",
        sheet_index=sheet.ordinal - 1,
        sheet_name=sheet.name,
        anchor_row=tl.row,
        anchor_col=tl.col,
        row_offset_px=tl.row_off / EMU_PER_PIXEL,
        col_offset_px=tl.col_off / EMU_PER_PIXEL,
        width_px=width,
        height_px=height,
    )


def _extract_sheet_validations(sheet: SheetModel) -> list[ExtractedDataValidation]:
    extracted: list[ExtractedDataValidation] = []
    for address, rule in sheet.validations.items():
        if rule.type != "list":
            continue
        try:
            extracted.append(build_validation(sheet, address, rule))
        except ValueError as exc:
            logger.warning(
                "Skipping validation %s on sheet %s: %s", address, sheet.name, exc
            )
    return extracted


def build_validation(
    sheet: SheetModel, address: str, rule: DecodedValidation
) -> ExtractedDataValidation:
    """Build a list-validation descriptor from a decoded rule."""
    formula = rule.formulae[0] if rule.formulae else None
    return ExtractedDataValidation(
        sheet_index=sheet.ordinal - 1,
        sheet_name=sheet.name,
        range_address=address,
        allow_blank=rule.allow_blank is not False,
        allowed_values=parse_list_formula(formula),
        show_dropdown=rule.show_dropdown is not False,
        error_title=rule.error_title,
        error_message=rule.error,
        prompt_title=rule.prompt_title,
        prompt_message=rule.prompt,
    )


def parse_list_formula(formula: str | None) -> list[str]:
    """Resolve a list-validation formula into its literal values.

    Quoted literals and formulas without ``$`` are split on commas; anything
    else is a cell reference and is kept as the single opaque entry.

    Examples:
        >>> parse_list_formula('"Red,Green,Blue"')
        ['Red', 'Green', 'Blue']
        >>> parse_list_formula("$Sheet2.$A$1:$A$5")
        ['$Sheet2.$A$1:$A$5']
    """
    if not isinstance(formula, str):
        return []
    if formula.startswith('"') or "$" not in formula:
        stripped = formula[1:] if formula.startswith('"') else formula
        stripped = stripped[:-1] if stripped.endswith('"') else stripped
        return [token.strip() for token in stripped.split(",")]
    return [formula]


def is_reference_list(values: list[str]) -> bool:
    """Return True when ``values`` is a single cell-reference entry."""
    return len(values) == 1 and "$" in values[0]


__all__ = [
    "EMU_PER_PIXEL",
    "MetadataExtractor",
    "build_image",
    "build_validation",
    "extract_from_model",
    "extract_metadata",
    "is_reference_list",
    "parse_list_formula",
]
