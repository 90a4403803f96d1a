"""Repair invalid layout values in converter payloads before construction."""

from __future__ import annotations

from collections.abc import Iterable, MutableMapping
import logging
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_COLUMN_WIDTH = 72
DEFAULT_ROW_HEIGHT = 20


def sanitize_payload(payload: object) -> None:
    """Clamp non-positive column widths and row heights in place.

    Walks every sheet of a document-model payload and replaces any numeric
    ``columnData[*].w`` or ``defaultColumnWidth`` <= 0 with
    ``DEFAULT_COLUMN_WIDTH`` and any numeric ``rowData[*].h`` <= 0 with
    ``DEFAULT_ROW_HEIGHT``. Absent, non-numeric and positive values are left
    untouched. Never raises.

    Args:
        payload: Document-model payload produced by a converter.
    """
    if not isinstance(payload, MutableMapping):
        return
    repaired = 0
    for sheet_key, sheet in _iter_sheets(payload.get("sheets")):
        if not isinstance(sheet, MutableMapping):
            continue
        repaired += _clamp_entries(
            sheet.get("columnData"), "w", DEFAULT_COLUMN_WIDTH, sheet_key
        )
        repaired += _clamp_entries(
            sheet.get("rowData"), "h", DEFAULT_ROW_HEIGHT, sheet_key
        )
        if _is_non_positive(sheet.get("defaultColumnWidth")):
            logger.debug(
                "Sheet %s: defaultColumnWidth %r -> %d",
                sheet_key,
                sheet["defaultColumnWidth"],
                DEFAULT_COLUMN_WIDTH,
            )
            sheet["defaultColumnWidth"] = DEFAULT_COLUMN_WIDTH
            repaired += 1
    if repaired:
        logger.info("Repaired %d invalid layout value(s).", repaired)


def _iter_sheets(sheets: object) -> Iterable[tuple[object, Any]]:
    """Yield (key, sheet) pairs from a sheet mapping or list."""
    if isinstance(sheets, MutableMapping):
        return list(sheets.items())
    if isinstance(sheets, list):
        return list(enumerate(sheets))
    return []


def _clamp_entries(
    entries: object, field: str, default: int, sheet_key: object
) -> int:
    """Replace non-positive ``field`` values in a keyed entry mapping."""
    if not isinstance(entries, MutableMapping):
        return 0
    repaired = 0
    for key, entry in entries.items():
        if not isinstance(entry, MutableMapping):
            continue
        if not _is_non_positive(entry.get(field)):
            continue
        logger.debug(
            "Sheet %s: %s[%s] %r -> %d", sheet_key, field, key, entry[field], default
        )
        entry[field] = default
        repaired += 1
    return repaired


def _is_non_positive(value: object) -> bool:
    """Return True for real numbers <= 0 (bool excluded)."""
    if isinstance(value, bool) or not isinstance(value, int | float):
        return False
    return value <= 0


__all__ = ["DEFAULT_COLUMN_WIDTH", "DEFAULT_ROW_HEIGHT", "sanitize_payload"]
