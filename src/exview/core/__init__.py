"""Workbook decoding on top of openpyxl."""

from __future__ import annotations

from .workbook import (
    AnchorMarker,
    DecodedImage,
    DecodedValidation,
    SheetModel,
    WorkbookModel,
    decode_workbook,
    openpyxl_workbook,
)

__all__ = [
    "AnchorMarker",
    "DecodedImage",
    "DecodedValidation",
    "SheetModel",
    "WorkbookModel",
    "decode_workbook",
    "openpyxl_workbook",
]
