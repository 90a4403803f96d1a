"""In-memory live document engine.

A small reference implementation of the live document protocols. Every
mutation goes through ``execute_command`` so before-execute interceptors can
veto it, the same way an interactive rendering engine dispatches user edits.
"""

from __future__ import annotations

import base64
import binascii
from collections.abc import Callable, Mapping, Sequence
import copy
from dataclasses import dataclass, field
from enum import Enum
from io import BytesIO
import itertools
import logging
from typing import Any

import anyio
from PIL import Image
from pydantic import BaseModel, Field

from exview.document.base import CommandInterceptor, SelectionListener
from exview.shared.a1 import CellRange, parse_range

logger = logging.getLogger(__name__)

_drawing_ids = itertools.count(1)


class CommandType(Enum):
    COMMAND = 0
    OPERATION = 1
    MUTATION = 2


@dataclass
class Command:
    """Command dispatched through the document."""

    id: str
    params: dict[str, Any] | None = None
    type: CommandType = CommandType.COMMAND
    mutates_document: bool | None = None


@dataclass
class _Registration:
    owner: list[Any]
    item: Any
    disposed: bool = False

    def dispose(self) -> None:
        if self.disposed:
            return
        self.disposed = True
        if self.item in self.owner:
            self.owner.remove(self.item)


class ValidationRule(BaseModel):
    """List validation rule attached to a range."""

    type: str = "list"
    values: list[str] = Field(default_factory=list)
    options: dict[str, Any] = Field(default_factory=dict)


class SheetImage(BaseModel):
    """Image floating over the grid of a sheet."""

    drawing_id: str
    data: bytes = Field(..., repr=False)
    mime_type: str
    row: int = 0
    col: int = 0
    row_offset: float = 0.0
    col_offset: float = 0.0
    width: float = 0.0
    height: float = 0.0


class ListValidationBuilder:
    """Fluent builder for list validation rules."""

    def __init__(self) -> None:
        self._values: list[str] | None = None
        self._options: dict[str, Any] = {}

    def require_value_in_list(self, values: Sequence[str]) -> ListValidationBuilder:
        self._values = [str(value) for value in values]
        return self

    def set_options(self, **options: Any) -> ListValidationBuilder:
        self._options.update(options)
        return self

    def build(self) -> ValidationRule:
        if not self._values:
            raise ValueError("List validation requires at least one value.")
        return ValidationRule(values=list(self._values), options=dict(self._options))


class OverGridImageBuilder:
    """Fluent builder that decodes and verifies a data-URL image source."""

    def __init__(self) -> None:
        self._source: str | None = None
        self._row = 0
        self._col = 0
        self._row_offset = 0.0
        self._col_offset = 0.0
        self._width: float | None = None
        self._height: float | None = None

    def set_source(self, source: str, source_type: str = "base64") -> OverGridImageBuilder:
        if source_type != "base64":
            raise ValueError(f"Unsupported image source type: {source_type}")
        self._source = source
        return self

    def set_column(self, col: int) -> OverGridImageBuilder:
        self._col = col
        return self

    def set_row(self, row: int) -> OverGridImageBuilder:
        self._row = row
        return self

    def set_column_offset(self, offset: float) -> OverGridImageBuilder:
        self._col_offset = offset
        return self

    def set_row_offset(self, offset: float) -> OverGridImageBuilder:
        self._row_offset = offset
        return self

    def set_width(self, width: float) -> OverGridImageBuilder:
        self._width = width
        return self

    def set_height(self, height: float) -> OverGridImageBuilder:
        self._height = height
        return self

    async def build_async(self) -> SheetImage:
        """Decode the source and verify it is a readable image."""
        if self._source is None:
            raise ValueError("Image source is not set.")
        mime_type, data = _decode_data_url(self._source)
        natural_width, natural_height = await anyio.to_thread.run_sync(
            _verify_image, data
        )
        return SheetImage(
            drawing_id=f"drawing-{next(_drawing_ids)}",
            data=data,
            mime_type=mime_type,
            row=self._row,
            col=self._col,
            row_offset=self._row_offset,
            col_offset=self._col_offset,
            width=self._width if self._width is not None else natural_width,
            height=self._height if self._height is not None else natural_height,
        )


def _decode_data_url(source: str) -> tuple[str, bytes]:
    header, sep, encoded = source.partition(",")
    if not sep or not header.startswith("data:") or not header.endswith(";base64"):
        raise ValueError("Image source must be a base64 data URL.")
    try:
        data = base64.b64decode(encoded, validate=True)
    except binascii.Error as exc:
        raise ValueError(f"Invalid base64 image payload: {exc}") from exc
    return header[len("data:") : -len(";base64")], data


def _verify_image(data: bytes) -> tuple[int, int]:
    with Image.open(BytesIO(data)) as img:
        size = img.size
        img.verify()
    return size


class DrawingTransformer:
    """Drag/resize affordance attached to a selected drawing."""

    def __init__(self) -> None:
        self.attached: list[SheetImage] = []

    def attach_to(self, drawing: SheetImage) -> DrawingTransformer:
        self.attached.append(drawing)
        return self


class MemoryRange:
    """Range handle on a MemorySheet."""

    def __init__(self, sheet: MemorySheet, cell_range: CellRange) -> None:
        self._sheet = sheet
        self.cell_range = cell_range

    def get_value(self) -> Any:
        return self._sheet.cells.get(self.cell_range.start)

    def get_values(self) -> list[list[Any]]:
        return [
            [
                self._sheet.cells.get((row, col))
                for col in range(self.cell_range.start_col, self.cell_range.end_col + 1)
            ]
            for row in range(self.cell_range.start_row, self.cell_range.end_row + 1)
        ]

    def get_a1_notation(self) -> str:
        return self.cell_range.to_a1()

    def set_value(self, value: Any) -> None:
        self._sheet.document.execute_command(
            "sheet.command.set-range-values",
            {"sheet_id": self._sheet.id, "range": self.cell_range, "value": value},
        )

    def set_data_validation(self, rule: ValidationRule) -> None:
        self._sheet.document.execute_command(
            "sheet.command.addDataValidation",
            {"sheet_id": self._sheet.id, "range": self.cell_range, "rule": rule},
        )

    def activate(self) -> None:
        self._sheet.document.execute_command(
            "sheet.operation.set-selections",
            {"sheet_id": self._sheet.id, "range": self.cell_range},
        )


class MemorySelection:
    def __init__(self, sheet: MemorySheet) -> None:
        self._sheet = sheet

    def get_active_range(self) -> MemoryRange | None:
        if self._sheet.selection is None:
            return None
        return MemoryRange(self._sheet, self._sheet.selection)


class MemorySheet:
    """Worksheet held in memory."""

    def __init__(
        self, workbook: MemoryWorkbook, sheet_id: str, data: Mapping[str, Any]
    ) -> None:
        self.workbook = workbook
        self.id = sheet_id
        self.name = str(data.get("name") or sheet_id)
        self.cells: dict[tuple[int, int], Any] = _read_cells(data.get("cellData"))
        self.column_data: dict[str, Any] = copy.deepcopy(dict(data.get("columnData") or {}))
        self.row_data: dict[str, Any] = copy.deepcopy(dict(data.get("rowData") or {}))
        self.default_column_width = data.get("defaultColumnWidth")
        self.default_row_height = data.get("defaultRowHeight")
        self.merges: list[Any] = copy.deepcopy(list(data.get("mergeData") or []))
        self.row_count = data.get("rowCount")
        self.column_count = data.get("columnCount")
        self.images: list[SheetImage] = []
        self.validations: list[tuple[CellRange, ValidationRule]] = []
        self.selection: CellRange | None = None

    @property
    def document(self) -> MemoryDocument:
        return self.workbook.document

    def get_sheet_id(self) -> str:
        return self.id

    def get_sheet_name(self) -> str:
        return self.name

    def get_range(
        self,
        row_or_address: int | str,
        col: int | None = None,
        rows: int = 1,
        cols: int = 1,
    ) -> MemoryRange:
        if isinstance(row_or_address, str):
            return MemoryRange(self, parse_range(row_or_address))
        if col is None:
            raise ValueError("Column is required when the range is given by index.")
        return MemoryRange(
            self,
            CellRange(
                start_row=row_or_address,
                start_col=col,
                end_row=row_or_address + rows - 1,
                end_col=col + cols - 1,
            ),
        )

    def get_selection(self) -> MemorySelection:
        return MemorySelection(self)

    def new_over_grid_image(self) -> OverGridImageBuilder:
        return OverGridImageBuilder()

    def insert_images(self, images: Sequence[SheetImage]) -> None:
        self.document.execute_command(
            "sheet.command.insert-sheet-image",
            {"sheet_id": self.id, "images": list(images)},
        )

    def get_images(self) -> list[SheetImage]:
        return list(self.images)

    def get_data_validations(self) -> list[tuple[CellRange, ValidationRule]]:
        return list(self.validations)

    def activate(self) -> None:
        self.document.execute_command(
            "sheet.command.set-worksheet-activate", {"sheet_id": self.id}
        )

    def to_payload(self) -> dict[str, Any]:
        cell_data: dict[str, dict[str, dict[str, Any]]] = {}
        for (row, col), value in sorted(self.cells.items()):
            cell_data.setdefault(str(row), {})[str(col)] = {"v": value}
        return {
            "id": self.id,
            "name": self.name,
            "rowCount": self.row_count,
            "columnCount": self.column_count,
            "defaultColumnWidth": self.default_column_width,
            "defaultRowHeight": self.default_row_height,
            "columnData": copy.deepcopy(self.column_data),
            "rowData": copy.deepcopy(self.row_data),
            "mergeData": copy.deepcopy(self.merges),
            "cellData": cell_data,
        }


def _read_cells(cell_data: object) -> dict[tuple[int, int], Any]:
    cells: dict[tuple[int, int], Any] = {}
    if not isinstance(cell_data, Mapping):
        return cells
    for row_key, columns in cell_data.items():
        if not isinstance(columns, Mapping):
            continue
        for col_key, cell in columns.items():
            if isinstance(cell, Mapping) and "v" in cell:
                cells[(int(row_key), int(col_key))] = cell["v"]
    return cells


class MemoryWorkbook:
    """Workbook built from a document-model payload."""

    def __init__(self, document: MemoryDocument, payload: Mapping[str, Any]) -> None:
        self.document = document
        self.id = str(payload.get("id") or "workbook")
        self.name = str(payload.get("name") or "")
        self.locale = payload.get("locale")
        sheets_raw = payload.get("sheets") or {}
        if isinstance(sheets_raw, list):
            sheets_raw = {
                str(sheet.get("id") or f"sheet-{index}"): sheet
                for index, sheet in enumerate(sheets_raw)
            }
        order = list(payload.get("sheetOrder") or sheets_raw.keys())
        self.sheets: list[MemorySheet] = [
            MemorySheet(self, str(sheet_id), sheets_raw[sheet_id])
            for sheet_id in order
            if isinstance(sheets_raw.get(sheet_id), Mapping)
        ]
        self.active_index = 0
        self._selection_listeners: list[SelectionListener] = []

    def get_id(self) -> str:
        return self.id

    def get_sheets(self) -> list[MemorySheet]:
        return list(self.sheets)

    def get_active_sheet(self) -> MemorySheet | None:
        if not self.sheets:
            return None
        return self.sheets[self.active_index]

    def get_sheet_by_id(self, sheet_id: str) -> MemorySheet:
        for sheet in self.sheets:
            if sheet.id == sheet_id:
                return sheet
        raise KeyError(f"Sheet not found: {sheet_id}")

    def on_selection_change(self, listener: SelectionListener) -> _Registration:
        self._selection_listeners.append(listener)
        return _Registration(self._selection_listeners, listener)

    def notify_selection(self, ranges: Sequence[CellRange]) -> None:
        for listener in list(self._selection_listeners):
            listener(ranges)

    def save(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "locale": self.locale,
            "sheetOrder": [sheet.id for sheet in self.sheets],
            "sheets": {sheet.id: sheet.to_payload() for sheet in self.sheets},
        }


CommandHandler = Callable[["MemoryDocument", dict[str, Any]], Any]


@dataclass
class _CommandSpec:
    handler: CommandHandler
    type: CommandType = CommandType.COMMAND
    mutates_document: bool = True


def _set_range_values(document: MemoryDocument, params: dict[str, Any]) -> None:
    sheet = document.require_workbook().get_sheet_by_id(params["sheet_id"])
    target: CellRange = params["range"]
    for row in range(target.start_row, target.end_row + 1):
        for col in range(target.start_col, target.end_col + 1):
            sheet.cells[(row, col)] = params["value"]


def _add_data_validation(document: MemoryDocument, params: dict[str, Any]) -> None:
    sheet = document.require_workbook().get_sheet_by_id(params["sheet_id"])
    sheet.validations.append((params["range"], params["rule"]))


def _insert_sheet_images(document: MemoryDocument, params: dict[str, Any]) -> None:
    sheet = document.require_workbook().get_sheet_by_id(params["sheet_id"])
    sheet.images.extend(params["images"])


def _set_selections(document: MemoryDocument, params: dict[str, Any]) -> None:
    workbook = document.require_workbook()
    sheet = workbook.get_sheet_by_id(params["sheet_id"])
    sheet.selection = params["range"]
    workbook.notify_selection([params["range"]])


def _activate_sheet(document: MemoryDocument, params: dict[str, Any]) -> None:
    workbook = document.require_workbook()
    sheet = workbook.get_sheet_by_id(params["sheet_id"])
    workbook.active_index = workbook.sheets.index(sheet)


def _rename_sheet(document: MemoryDocument, params: dict[str, Any]) -> None:
    sheet = document.require_workbook().get_sheet_by_id(params["sheet_id"])
    sheet.name = str(params["name"])


COMMANDS: dict[str, _CommandSpec] = {
    "sheet.command.set-range-values": _CommandSpec(_set_range_values),
    "sheet.command.addDataValidation": _CommandSpec(_add_data_validation),
    "sheet.command.insert-sheet-image": _CommandSpec(_insert_sheet_images),
    "sheet.command.set-worksheet-name": _CommandSpec(_rename_sheet),
    "sheet.command.set-worksheet-activate": _CommandSpec(
        _activate_sheet, mutates_document=False
    ),
    "sheet.operation.set-selections": _CommandSpec(
        _set_selections, type=CommandType.OPERATION, mutates_document=False
    ),
}


@dataclass
class MemoryDocument:
    """Live document handle backed by plain Python objects."""

    locale: str = "en-US"
    commands: dict[str, _CommandSpec] = field(default_factory=lambda: dict(COMMANDS))
    _workbook: MemoryWorkbook | None = None
    _interceptors: list[CommandInterceptor] = field(default_factory=list)
    _transformer: DrawingTransformer = field(default_factory=DrawingTransformer)
    disposed: bool = False

    def create_workbook(self, payload: Mapping[str, Any]) -> MemoryWorkbook:
        self._workbook = MemoryWorkbook(self, payload)
        logger.debug(
            "Created workbook %s with %d sheet(s).",
            self._workbook.id,
            len(self._workbook.sheets),
        )
        return self._workbook

    def get_active_workbook(self) -> MemoryWorkbook | None:
        return self._workbook

    def require_workbook(self) -> MemoryWorkbook:
        if self._workbook is None:
            raise RuntimeError("No workbook has been created.")
        return self._workbook

    def new_data_validation(self) -> ListValidationBuilder:
        return ListValidationBuilder()

    def on_before_command_execute(self, interceptor: CommandInterceptor) -> _Registration:
        self._interceptors.append(interceptor)
        return _Registration(self._interceptors, interceptor)

    @property
    def interceptor_count(self) -> int:
        return len(self._interceptors)

    def execute_command(
        self, command_id: str, params: Mapping[str, Any] | None = None
    ) -> Any:
        """Run interceptors, then the command handler.

        An interceptor that raises aborts the command before any mutation.
        """
        entry = self.commands.get(command_id)
        command = Command(
            id=command_id,
            params=dict(params) if params is not None else None,
            type=entry.type if entry is not None else CommandType.COMMAND,
            mutates_document=entry.mutates_document if entry is not None else None,
        )
        for interceptor in list(self._interceptors):
            interceptor(command)
        if entry is None:
            raise ValueError(f"Unknown command: {command_id}")
        return entry.handler(self, command.params or {})

    async def wait_until_rendered(self) -> None:
        """Ready signal; layout here is synchronous so it resolves at once."""
        await anyio.sleep(0)

    def get_transformer(self) -> DrawingTransformer:
        return self._transformer

    def select_drawing(self, drawing: SheetImage) -> DrawingTransformer:
        """Simulate a pointer selecting a drawing."""
        return self._transformer.attach_to(drawing)

    def dispose(self) -> None:
        self._interceptors.clear()
        self._workbook = None
        self.disposed = True


__all__ = [
    "COMMANDS",
    "Command",
    "CommandType",
    "DrawingTransformer",
    "ListValidationBuilder",
    "MemoryDocument",
    "MemoryRange",
    "MemorySheet",
    "MemoryWorkbook",
    "OverGridImageBuilder",
    "SheetImage",
    "ValidationRule",
]
