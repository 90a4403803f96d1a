from __future__ import annotations

from .a1 import (
    CellAddress,
    CellRange,
    column_to_letters,
    format_address,
    format_range,
    letters_to_column,
    parse_address,
    parse_range,
)

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
