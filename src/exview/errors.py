from __future__ import annotations

from typing import Literal

from pydantic import BaseModel

ItemKind = Literal["image", "validation"]


class ExviewError(Exception):
    """Base class for pipeline errors."""


class FetchFailure(ExviewError):
    """Workbook bytes could not be fetched."""

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class DecodeFailure(ExviewError):
    """The OOXML decoder rejected the workbook bytes."""


class ConversionFailure(ExviewError):
    """The bytes-to-document converter rejected the workbook bytes."""


class InvalidAddress(ValueError):
    """Malformed cell address, range or column label."""


class ItemFailureDetail(BaseModel):
    """Structured detail for one failed image or validation item."""

    kind: ItemKind
    index: int
    sheet_index: int
    sheet_name: str
    address: str
    message: str


class ItemInsertionFailure(ExviewError):
    """Re-application of a single image or validation failed."""

    def __init__(self, detail: ItemFailureDetail) -> None:
        super().__init__(detail.message)
        self.detail = detail

    @classmethod
    def from_item(
        cls,
        kind: ItemKind,
        index: int,
        *,
        sheet_index: int,
        sheet_name: str,
        address: str,
        exc: Exception,
    ) -> ItemInsertionFailure:
        """Build an ItemInsertionFailure from an item and the exception it raised."""
        noun = "image" if kind == "image" else "validation"
        detail = ItemFailureDetail(
            kind=kind,
            index=index,
            sheet_index=sheet_index,
            sheet_name=sheet_name,
            address=address,
            message=f"Failed to apply {noun} at {sheet_name}!{address}: {exc}",
        )
        return cls(detail)


class GuardViolation(ExviewError):
    """A mutating command was attempted while the document is read-only."""

    def __init__(self, command_id: str) -> None:
        super().__init__(f"Read-only mode: editing is disabled ({command_id})")
        self.command_id = command_id


__all__ = [
    "ConversionFailure",
    "DecodeFailure",
    "ExviewError",
    "FetchFailure",
    "GuardViolation",
    "InvalidAddress",
    "ItemFailureDetail",
    "ItemInsertionFailure",
    "ItemKind",
]
