from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from io import BytesIO
import logging
import posixpath
from typing import Any
import warnings
from xml.etree import ElementTree as ET
import zipfile

from openpyxl import load_workbook
from pydantic import BaseModel, Field

from exview.errors import DecodeFailure
from exview.shared.a1 import parse_address

logger = logging.getLogger(__name__)

_SPREADSHEET_NS = "http://schemas.openxmlformats.org/spreadsheetml/2006/main"
_DOCUMENT_REL_NS = (
    "http://schemas.openxmlformats.org/officeDocument/2006/relationships"
)
_PACKAGE_REL_NS = "http://schemas.openxmlformats.org/package/2006/relationships"
_PASSTHROUGH_IMAGE_FORMATS = frozenset({"gif", "jpeg", "png"})


class AnchorMarker(BaseModel):
    """Drawing anchor cell with native (EMU) sub-cell offsets."""

    row: int = 0
    col: int = 0
    row_off: int = 0
    col_off: int = 0


class DecodedImage(BaseModel):
    """Embedded drawing image as decoded from a worksheet."""

    data: bytes
    image_format: str = "png"
    top_left: AnchorMarker = Field(default_factory=AnchorMarker)
    bottom_right: AnchorMarker | None = None


class DecodedValidation(BaseModel):
    """Raw data-validation rule fields for one range."""

    type: str | None = None
    formulae: list[str] = Field(default_factory=list)
    allow_blank: bool | None = None
    show_dropdown: bool | None = None
    error_title: str | None = None
    error: str | None = None
    prompt_title: str | None = None
    prompt: str | None = None


class SheetModel(BaseModel):
    """Per-sheet view of a decoded workbook."""

    ordinal: int
    name: str
    images: list[DecodedImage] = Field(default_factory=list)
    validations: dict[str, DecodedValidation] = Field(default_factory=dict)


class WorkbookModel(BaseModel):
    """Decoded workbook: sheets in workbook order."""

    sheets: list[SheetModel] = Field(default_factory=list)


@contextmanager
def openpyxl_workbook(data: bytes, *, data_only: bool = False) -> Iterator[Any]:
    """Open an openpyxl workbook from bytes and ensure it is closed.

    Args:
        data: Raw ``.xlsx`` bytes.
        data_only: Whether to read cached formula results.

    Yields:
        openpyxl workbook instance.
    """
    with warnings.catch_warnings():
        warnings.filterwarnings(
            "ignore",
            message="Unknown extension is not supported and will be removed",
            category=UserWarning,
            module="openpyxl",
        )
        warnings.filterwarnings(
            "ignore",
            message="Conditional Formatting extension is not supported and will be removed",
            category=UserWarning,
            module="openpyxl",
        )
        warnings.filterwarnings(
            "ignore",
            message="Cannot parse header or footer so it will be ignored",
            category=UserWarning,
            module="openpyxl",
        )
        wb = load_workbook(BytesIO(data), data_only=data_only, read_only=False)
    try:
        yield wb
    finally:
        wb.close()


def decode_workbook(data: bytes) -> WorkbookModel:
    """Decode ``.xlsx`` bytes into a WorkbookModel.

    Args:
        data: Raw workbook bytes.

    Returns:
        Decoded workbook with images and validation rules per sheet.

    Raises:
        DecodeFailure: If the bytes are not a readable OOXML workbook.
    """
    try:
        with openpyxl_workbook(data) as wb:
            flags = _read_validation_flags(data)
            sheets = [
                _decode_sheet(ordinal, ws, flags.get(ws.title))
                for ordinal, ws in enumerate(wb.worksheets, start=1)
            ]
    except DecodeFailure:
        raise
    except Exception as exc:
        raise DecodeFailure(f"Failed to decode workbook: {exc}") from exc
    return WorkbookModel(sheets=sheets)


def _decode_sheet(
    ordinal: int, ws: Any, raw_flags: list[dict[str, str]] | None
) -> SheetModel:
    """Decode images and validation rules of one worksheet."""
    sheet = SheetModel(ordinal=ordinal, name=ws.title)
    for index, image in enumerate(getattr(ws, "_images", []) or []):
        try:
            sheet.images.append(_decode_image(image))
        except Exception as exc:
            logger.warning(
                "Skipping unreadable image %d on sheet %s: %s", index, ws.title, exc
            )
    rules = list(ws.data_validations.dataValidation)
    if raw_flags is not None and len(raw_flags) != len(rules):
        raw_flags = None
    for index, rule in enumerate(rules):
        try:
            attrs = raw_flags[index] if raw_flags is not None else None
            decoded = _decode_validation(rule, attrs)
            sqref = attrs.get("sqref") if attrs is not None else None
            for address in (sqref or str(rule.sqref)).split():
                sheet.validations[address] = decoded
        except Exception as exc:
            logger.warning(
                "Skipping malformed validation %d on sheet %s: %s",
                index,
                ws.title,
                exc,
            )
    return sheet


def _decode_image(image: Any) -> DecodedImage:
    """Convert an openpyxl image into a DecodedImage."""
    image_format = (getattr(image, "format", None) or "png").lower()
    if image_format not in _PASSTHROUGH_IMAGE_FORMATS:
        # openpyxl re-encodes other formats as PNG
        image_format = "png"
    data = image._data()
    anchor = getattr(image, "anchor", None)
    if isinstance(anchor, str):
        cell = parse_address(anchor)
        return DecodedImage(
            data=data,
            image_format=image_format,
            top_left=AnchorMarker(row=cell.row, col=cell.col),
        )
    top_left = _marker(getattr(anchor, "_from", None)) or AnchorMarker()
    bottom_right = _marker(getattr(anchor, "to", None))
    return DecodedImage(
        data=data,
        image_format=image_format,
        top_left=top_left,
        bottom_right=bottom_right,
    )


def _marker(source: Any) -> AnchorMarker | None:
    """Convert an openpyxl AnchorMarker into the local model."""
    if source is None:
        return None
    return AnchorMarker(
        row=int(source.row or 0),
        col=int(source.col or 0),
        row_off=int(source.rowOff or 0),
        col_off=int(source.colOff or 0),
    )


def _decode_validation(
    rule: Any, raw_attrs: dict[str, str] | None
) -> DecodedValidation:
    """Convert an openpyxl DataValidation into a DecodedValidation."""
    formulae = [
        str(formula) for formula in (rule.formula1, rule.formula2) if formula is not None
    ]
    if raw_attrs is None:
        allow_blank: bool | None = rule.allow_blank
        show_dropdown: bool | None = rule.showDropDown
    else:
        allow_blank = _xml_bool(raw_attrs.get("allowBlank"))
        show_dropdown = _xml_bool(raw_attrs.get("showDropDown"))
    return DecodedValidation(
        type=rule.type,
        formulae=formulae,
        allow_blank=allow_blank,
        show_dropdown=show_dropdown,
        error_title=rule.errorTitle,
        error=rule.error,
        prompt_title=rule.promptTitle,
        prompt=rule.prompt,
    )


def _read_validation_flags(data: bytes) -> dict[str, list[dict[str, str]]]:
    """Read raw dataValidation attributes per sheet name, in document order.

    openpyxl reports absent boolean attributes as False; the raw attributes
    keep absent and explicit "0" apart.
    """
    flags: dict[str, list[dict[str, str]]] = {}
    try:
        with zipfile.ZipFile(BytesIO(data)) as archive:
            for name, part in _sheet_parts(archive):
                if part not in archive.namelist():
                    continue
                root = ET.fromstring(archive.read(part))
                flags[name] = [
                    dict(node.attrib)
                    for node in root.iter(f"{{{_SPREADSHEET_NS}}}dataValidation")
                ]
    except (KeyError, ET.ParseError, zipfile.BadZipFile) as exc:
        logger.debug("Validation flag probe unavailable: %s", exc)
        return {}
    return flags


def _sheet_parts(archive: zipfile.ZipFile) -> list[tuple[str, str]]:
    """Return (sheet name, part path) pairs from the workbook relationships."""
    rels_root = ET.fromstring(archive.read("xl/_rels/workbook.xml.rels"))
    targets: dict[str, str] = {}
    for rel in rels_root.iter(f"{{{_PACKAGE_REL_NS}}}Relationship"):
        rel_id = rel.attrib.get("Id")
        target = rel.attrib.get("Target")
        if rel_id and target:
            targets[rel_id] = _resolve_target("xl/workbook.xml", target)
    wb_root = ET.fromstring(archive.read("xl/workbook.xml"))
    parts: list[tuple[str, str]] = []
    for sheet in wb_root.iter(f"{{{_SPREADSHEET_NS}}}sheet"):
        rel_id = sheet.attrib.get(f"{{{_DOCUMENT_REL_NS}}}id")
        name = sheet.attrib.get("name")
        if rel_id in targets and name:
            parts.append((name, targets[rel_id]))
    return parts


def _resolve_target(base_path: str, target: str) -> str:
    if target.startswith("/"):
        return target[1:]
    return posixpath.normpath(posixpath.join(posixpath.dirname(base_path), target))


def _xml_bool(value: str | None) -> bool | None:
    if value is None:
        return None
    return value.strip().lower() in {"1", "true"}


__all__ = [
    "AnchorMarker",
    "DecodedImage",
    "DecodedValidation",
    "SheetModel",
    "WorkbookModel",
    "decode_workbook",
    "openpyxl_workbook",
]
