from __future__ import annotations

import datetime as dt
from decimal import Decimal
import logging
from typing import Any, Protocol
import uuid

import anyio

from exview.core.workbook import openpyxl_workbook
from exview.errors import ConversionFailure

logger = logging.getLogger(__name__)

_PX_PER_CHAR = 7
_PX_PER_POINT = 96 / 72
_DEFAULT_ROW_HEIGHT_PT = 15


class WorkbookConverter(Protocol):
    """Protocol for bytes -> document-model payload converters."""

    def convert(self, data: bytes) -> dict[str, Any]:
        """Convert workbook bytes into an engine payload.

        Raises:
            ConversionFailure: If the converter rejects the input.
        """


class OpenpyxlConverter:
    """Build a document-model payload from ``.xlsx`` bytes with openpyxl.

    Hidden columns and rows are emitted with a zero width/height and
    ``hd = 1``; run ``sanitize_payload`` before handing the payload to an
    engine that rejects non-positive dimensions.
    """

    def __init__(self, *, locale: str = "en-US") -> None:
        self.locale = locale

    def convert(self, data: bytes) -> dict[str, Any]:
        try:
            with openpyxl_workbook(data, data_only=True) as wb:
                sheets: dict[str, dict[str, Any]] = {}
                for index, ws in enumerate(wb.worksheets, start=1):
                    sheet_id = f"sheet-{index}"
                    sheets[sheet_id] = _convert_sheet(sheet_id, ws)
        except Exception as exc:
            raise ConversionFailure(f"Failed to parse Excel data: {exc}") from exc
        if not sheets:
            raise ConversionFailure("Workbook contains no worksheets.")
        logger.debug("Converted %d sheet(s).", len(sheets))
        return {
            "id": f"workbook-{uuid.uuid4().hex[:8]}",
            "name": "",
            "locale": self.locale,
            "sheetOrder": list(sheets),
            "sheets": sheets,
        }

    async def convert_async(self, data: bytes) -> dict[str, Any]:
        """Run ``convert`` in a worker thread."""
        return await anyio.to_thread.run_sync(self.convert, data)


def _convert_sheet(sheet_id: str, ws: Any) -> dict[str, Any]:
    sheet_format = ws.sheet_format
    default_width = sheet_format.defaultColWidth
    if default_width is None:
        default_width = sheet_format.baseColWidth
    default_height = sheet_format.defaultRowHeight or _DEFAULT_ROW_HEIGHT_PT
    return {
        "id": sheet_id,
        "name": ws.title,
        "hidden": 0 if ws.sheet_state == "visible" else 1,
        "rowCount": ws.max_row,
        "columnCount": ws.max_column,
        "defaultColumnWidth": _chars_to_px(default_width),
        "defaultRowHeight": _points_to_px(default_height),
        "columnData": _column_data(ws),
        "rowData": _row_data(ws),
        "cellData": _cell_data(ws),
        "mergeData": [
            {
                "startRow": rng.min_row - 1,
                "startColumn": rng.min_col - 1,
                "endRow": rng.max_row - 1,
                "endColumn": rng.max_col - 1,
            }
            for rng in ws.merged_cells.ranges
        ],
    }


def _column_data(ws: Any) -> dict[str, dict[str, int]]:
    columns: dict[str, dict[str, int]] = {}
    for dim in ws.column_dimensions.values():
        if dim.min is None or dim.max is None:
            continue
        width = 0 if dim.hidden else _chars_to_px(dim.width or 0)
        for col in range(dim.min, dim.max + 1):
            columns[str(col - 1)] = {"w": width, "hd": 1 if dim.hidden else 0}
    return columns


def _row_data(ws: Any) -> dict[str, dict[str, int]]:
    rows: dict[str, dict[str, int]] = {}
    for row_index, dim in ws.row_dimensions.items():
        if dim.ht is None and not dim.hidden:
            continue
        height = 0 if dim.hidden else _points_to_px(dim.ht)
        rows[str(row_index - 1)] = {"h": height, "hd": 1 if dim.hidden else 0}
    return rows


def _cell_data(ws: Any) -> dict[str, dict[str, dict[str, Any]]]:
    cells: dict[str, dict[str, dict[str, Any]]] = {}
    for row in ws.iter_rows():
        for cell in row:
            value = getattr(cell, "value", None)
            if value is None:
                continue
            cells.setdefault(str(cell.row - 1), {})[str(cell.column - 1)] = {
                "v": _json_value(value)
            }
    return cells


def _json_value(value: object) -> str | int | float | bool:
    if isinstance(value, bool | int | float | str):
        return value
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, dt.datetime | dt.date | dt.time):
        return value.isoformat()
    return str(value)


def _chars_to_px(width: float) -> int:
    return round(width * _PX_PER_CHAR)


def _points_to_px(height: float) -> int:
    return round(height * _PX_PER_POINT)


__all__ = ["OpenpyxlConverter", "WorkbookConverter"]
