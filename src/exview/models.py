from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from exview.errors import ItemFailureDetail

ValidationKind = Literal["list"]


class ExtractedImage(BaseModel):
    """Embedded image recovered from a worksheet drawing."""

    model_config = ConfigDict(frozen=True)

    image_bytes: bytes = Field(..., repr=False)
    image_format: str = "png"
    sheet_index: int = Field(..., ge=0)
    sheet_name: str
    anchor_row: int = Field(..., ge=0)
    anchor_col: int = Field(..., ge=0)
    row_offset_px: float = 0.0
    col_offset_px: float = 0.0
    width_px: float = 200.0
    height_px: float = 150.0


class ExtractedDataValidation(BaseModel):
    """List-type data validation recovered from a worksheet."""

    model_config = ConfigDict(frozen=True)

    sheet_index: int = Field(..., ge=0)
    sheet_name: str
    range_address: str
    kind: ValidationKind = "list"
    allow_blank: bool = True
    allowed_values: list[str] = Field(default_factory=list)
    show_dropdown: bool = True
    error_title: str | None = None
    error_message: str | None = None
    prompt_title: str | None = None
    prompt_message: str | None = None


class ExtractionResult(BaseModel):
    """Images and validations extracted from one workbook, in sheet order."""

    images: list[ExtractedImage] = Field(default_factory=list)
    validations: list[ExtractedDataValidation] = Field(default_factory=list)


class ReapplyReport(BaseModel):
    """Outcome of one best-effort re-application batch."""

    applied: int = 0
    skipped: int = 0
    failures: list[ItemFailureDetail] = Field(default_factory=list)


__all__ = [
    "ExtractedDataValidation",
    "ExtractedImage",
    "ExtractionResult",
    "ReapplyReport",
    "ValidationKind",
]
