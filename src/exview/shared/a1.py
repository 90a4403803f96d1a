from __future__ import annotations

import re
from typing import NamedTuple

from pydantic import BaseModel, model_validator

from exview.errors import InvalidAddress

_A1_PATTERN = re.compile(r"([A-Za-z]+)([0-9]+)")
_COLUMN_LABEL_PATTERN = re.compile(r"[A-Za-z]+")


class CellAddress(NamedTuple):
    """Zero-based cell coordinate."""

    row: int
    col: int


class CellRange(BaseModel):
    """Zero-based inclusive cell range."""

    start_row: int
    start_col: int
    end_row: int
    end_col: int

    @model_validator(mode="after")
    def _validate_bounds(self) -> CellRange:
        if min(self.start_row, self.start_col) < 0:
            raise ValueError("Range coordinates must be non-negative.")
        if self.end_row < self.start_row or self.end_col < self.start_col:
            raise ValueError("Range end must not precede range start.")
        return self

    @classmethod
    def from_corners(cls, start: CellAddress, end: CellAddress) -> CellRange:
        """Build a range from two corners in any order."""
        return cls(
            start_row=min(start.row, end.row),
            start_col=min(start.col, end.col),
            end_row=max(start.row, end.row),
            end_col=max(start.col, end.col),
        )

    @property
    def start(self) -> CellAddress:
        return CellAddress(self.start_row, self.start_col)

    @property
    def end(self) -> CellAddress:
        return CellAddress(self.end_row, self.end_col)

    @property
    def row_count(self) -> int:
        return self.end_row - self.start_row + 1

    @property
    def col_count(self) -> int:
        return self.end_col - self.start_col + 1

    def to_a1(self) -> str:
        """Return the range in A1 notation."""
        return format_range(self.start, self.end)


def column_to_letters(col: int) -> str:
    """Convert 0-based column index to Excel-style column label."""
    if col < 0:
        raise InvalidAddress(f"Column index must be non-negative: {col}")
    chunks: list[str] = []
    current = col + 1
    while current > 0:
        current -= 1
        chunks.append(chr(ord("A") + (current % 26)))
        current //= 26
    return "".join(reversed(chunks))


def letters_to_column(letters: str) -> int:
    """Convert Excel-style column label (A/AA) to 0-based index."""
    if not _COLUMN_LABEL_PATTERN.fullmatch(letters):
        raise InvalidAddress(f"Invalid column label: {letters!r}")
    index = 0
    for char in letters.upper():
        index = index * 26 + (ord(char) - ord("A") + 1)
    return index - 1


def parse_address(address: str) -> CellAddress:
    """Parse an A1 address (e.g. "BC42") into a 0-based coordinate."""
    match = _A1_PATTERN.fullmatch(address)
    if match is None:
        raise InvalidAddress(f"Invalid cell address: {address}")
    letters, digits = match.groups()
    row = int(digits) - 1
    if row < 0:
        raise InvalidAddress(f"Invalid cell address: {address}")
    return CellAddress(row=row, col=letters_to_column(letters))


def format_address(row: int, col: int) -> str:
    """Format a 0-based coordinate as an A1 address."""
    if row < 0:
        raise InvalidAddress(f"Row index must be non-negative: {row}")
    return f"{column_to_letters(col)}{row + 1}"


def format_range(start: CellAddress, end: CellAddress) -> str:
    """Format two corners as "A1" when equal, else "A1:C5"."""
    start_ref = format_address(start.row, start.col)
    end_ref = format_address(end.row, end.col)
    if start_ref == end_ref:
        return start_ref
    return f"{start_ref}:{end_ref}"


def parse_range(value: str) -> CellRange:
    """Parse "A1" or "A1:C5" into a normalized CellRange."""
    candidate = value.strip()
    if ":" in candidate:
        left, right = candidate.split(":", maxsplit=1)
        return CellRange.from_corners(parse_address(left), parse_address(right))
    cell = parse_address(candidate)
    return CellRange.from_corners(cell, cell)


__all__ = [
    "CellAddress",
    "CellRange",
    "column_to_letters",
    "format_address",
    "format_range",
    "letters_to_column",
    "parse_address",
    "parse_range",
]
