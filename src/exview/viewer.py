from __future__ import annotations

from collections.abc import Mapping, Sequence
import logging
from typing import Any

import anyio

from exview.config import ViewerConfig
from exview.convert import OpenpyxlConverter, WorkbookConverter
from exview.document.base import Disposable
from exview.document.memory import MemoryDocument
from exview.errors import (
    ConversionFailure,
    DecodeFailure,
    FetchFailure,
    ItemInsertionFailure,
)
from exview.events import (
    CellSelectedEvent,
    ErrorEvent,
    ErrorKind,
    EventBus,
    LoadedEvent,
    LoadingChangedEvent,
)
from exview.extract import MetadataExtractor
from exview.guard import ReadOnlyGuard
from exview.models import ExtractionResult
from exview.reapply import ReapplicationEngine, ReapplyOutcome
from exview.sanitize import sanitize_payload
from exview.shared.a1 import CellAddress, format_range, parse_address
from exview.sources import WorkbookSource, read_source_async

logger = logging.getLogger(__name__)

CellRef = str | tuple[int, int]

_STAGE_ERRORS: tuple[tuple[type[Exception], ErrorKind], ...] = (
    (FetchFailure, "fetch"),
    (DecodeFailure, "decode"),
    (ConversionFailure, "conversion"),
)


class WorkbookViewer:
    """Load ``.xlsx`` workbooks into a live document and keep them in sync.

    A load reads the bytes, extracts images and list validations, converts and
    sanitizes the document payload, constructs the live workbook, and after
    the document settles re-applies the extracted metadata. The read-only
    guard is applied last so re-application is never blocked by it.

    Args:
        config: Viewer options.
        document: Live document handle; an in-memory engine by default.
        converter: Bytes-to-payload converter; openpyxl-based by default.
        events: Event bus that receives viewer events.
    """

    def __init__(
        self,
        config: ViewerConfig | None = None,
        *,
        document: Any | None = None,
        converter: WorkbookConverter | None = None,
        events: EventBus | None = None,
    ) -> None:
        self.config = config or ViewerConfig()
        self.document = (
            document if document is not None else MemoryDocument(self.config.locale)
        )
        self.converter = converter or OpenpyxlConverter(locale=self.config.locale)
        self.events = events or EventBus()
        self.guard = ReadOnlyGuard()
        self.is_loading = False
        self.last_outcome: ReapplyOutcome | None = None
        self._source: WorkbookSource | None = None
        self._generation = 0
        self._settle_scope: anyio.CancelScope | None = None
        self._selection_handle: Disposable | None = None

    async def load(self, source: WorkbookSource) -> LoadedEvent | None:
        """Load a workbook from bytes, a binary file object, a path, or a URL.

        Stage failures are reported once through the ``error`` event and
        not raised. A decoder failure only drops the extracted metadata; the
        converter still builds the workbook.

        Returns:
            The ``loaded`` event payload, or None when the load failed or was
            superseded by a newer load.
        """
        self._generation += 1
        generation = self._generation
        self._cancel_pending_settle()
        self.guard.remove()
        self._source = source
        self._set_loading(True)
        try:
            return await self._load(source, generation)
        except Exception as exc:
            kind = _classify(exc)
            if generation != self._generation:
                logger.info("Superseded load failed (%s): %s", kind, exc)
                return None
            if kind == "unknown":
                logger.exception("Unexpected failure while loading workbook.")
            else:
                logger.error("Workbook load failed (%s): %s", kind, exc)
            self._report(kind, str(exc), exc)
            return None
        finally:
            if generation == self._generation:
                self._set_loading(False)

    async def _load(self, source: WorkbookSource, generation: int) -> LoadedEvent | None:
        data = await read_source_async(source, timeout=self.config.fetch_timeout)
        extraction = await self._extract(data, generation)
        payload = await _convert(self.converter, data)
        if generation != self._generation:
            logger.info("Load superseded before construction; discarding.")
            return None
        sanitize_payload(payload)
        self._unbind_selection()
        workbook = self.document.create_workbook(payload)
        self._bind_selection(workbook)
        sheet_names = self.get_sheet_names()
        loaded = LoadedEvent(
            sheet_count=len(sheet_names),
            sheet_names=sheet_names,
            image_count=len(extraction.images),
            validation_count=len(extraction.validations),
        )
        self.events.emit("loaded", loaded)
        if not await self._settle_and_reapply(extraction, generation):
            return None
        return loaded

    async def _extract(self, data: bytes, generation: int) -> ExtractionResult:
        extractor = MetadataExtractor(
            images=self.config.enable_images,
            validations=self.config.enable_data_validation,
        )
        try:
            return await extractor.extract_async(data)
        except DecodeFailure as exc:
            logger.warning("Metadata extraction failed; continuing without it: %s", exc)
            if generation == self._generation:
                self._report("decode", str(exc), exc)
            return ExtractionResult()

    async def _settle_and_reapply(
        self, extraction: ExtractionResult, generation: int
    ) -> bool:
        engine = ReapplicationEngine(
            settle_delay=self.config.insert_delay, on_error=self._on_item_error
        )
        with anyio.CancelScope() as scope:
            self._settle_scope = scope
            try:
                self.last_outcome = await engine.reapply(self.document, extraction)
            finally:
                if self._settle_scope is scope:
                    self._settle_scope = None
        if scope.cancelled_caught or generation != self._generation:
            logger.info("Pending re-application cancelled by a newer load.")
            return False
        if not self.config.editable:
            self._apply_guard()
        return True

    def _cancel_pending_settle(self) -> None:
        if self._settle_scope is not None:
            self._settle_scope.cancel()
            self._settle_scope = None

    def _apply_guard(self) -> None:
        self.guard.apply(self.document)
        self.guard.disable_direct_manipulation(self.document)

    def set_editable(self, editable: bool) -> None:
        """Toggle read-only mode on the current document."""
        self.config = self.config.model_copy(update={"editable": editable})
        if editable:
            self.guard.remove()
        elif self._workbook() is not None:
            self._apply_guard()

    async def reload(self) -> LoadedEvent | None:
        """Load the most recent source again; no-op without one."""
        if self._source is None:
            return None
        return await self.load(self._source)

    def dispose(self) -> None:
        """Release the guard and selection listener, then dispose the document."""
        self._generation += 1
        self._cancel_pending_settle()
        self.guard.remove()
        self._unbind_selection()
        self.document.dispose()

    def get_cell_value(self, row: int, col: int, sheet_index: int | None = None) -> Any:
        sheet = self._sheet(sheet_index)
        if sheet is None:
            return None
        return sheet.get_range(row, col).get_value()

    def set_cell_value(
        self, row: int, col: int, value: Any, sheet_index: int | None = None
    ) -> None:
        """Write a cell value; no-op in read-only mode."""
        if not self.config.editable:
            return
        sheet = self._sheet(sheet_index)
        if sheet is None:
            return
        sheet.get_range(row, col).set_value(value)

    def get_selected_range(self) -> Any | None:
        workbook = self._workbook()
        sheet = workbook.get_active_sheet() if workbook is not None else None
        if sheet is None:
            return None
        return sheet.get_selection().get_active_range()

    def get_sheet_names(self) -> list[str]:
        workbook = self._workbook()
        if workbook is None:
            return []
        return [sheet.get_sheet_name() for sheet in workbook.get_sheets()]

    def set_active_sheet(self, index: int) -> None:
        """Activate the sheet at ``index``; out-of-range indexes are ignored."""
        workbook = self._workbook()
        if workbook is None:
            return
        sheets = list(workbook.get_sheets())
        if 0 <= index < len(sheets):
            sheets[index].activate()

    def highlight_range(
        self, start: CellRef, end: CellRef, sheet_index: int | None = None
    ) -> None:
        """Select a range, activating ``sheet_index`` first when given.

        Args:
            start: ``"A1"``-style address or zero-based ``(row, col)``.
            end: ``"C5"``-style address or zero-based ``(row, col)``.
            sheet_index: Zero-based sheet index; the active sheet when None.

        Raises:
            InvalidAddress: If an address string is malformed.
        """
        start_cell = _to_address(start)
        end_cell = _to_address(end)
        sheet = self._sheet(sheet_index)
        if sheet is None:
            return
        if sheet_index is not None:
            sheet.activate()
        sheet.get_range(
            start_cell.row,
            start_cell.col,
            end_cell.row - start_cell.row + 1,
            end_cell.col - start_cell.col + 1,
        ).activate()

    def export_as_json(self) -> dict[str, Any] | None:
        workbook = self._workbook()
        if workbook is None:
            return None
        return workbook.save()

    def _workbook(self) -> Any | None:
        return self.document.get_active_workbook()

    def _sheet(self, sheet_index: int | None) -> Any | None:
        workbook = self._workbook()
        if workbook is None:
            return None
        if sheet_index is None:
            return workbook.get_active_sheet()
        sheets = list(workbook.get_sheets())
        if 0 <= sheet_index < len(sheets):
            return sheets[sheet_index]
        return None

    def _bind_selection(self, workbook: Any) -> None:
        self._selection_handle = workbook.on_selection_change(
            lambda selections: self._on_selection(workbook, selections)
        )

    def _unbind_selection(self) -> None:
        if self._selection_handle is not None:
            handle, self._selection_handle = self._selection_handle, None
            handle.dispose()

    def _on_selection(self, workbook: Any, selections: Sequence[Any]) -> None:
        if not selections:
            return
        sheet = workbook.get_active_sheet()
        if sheet is None:
            return
        start_row, start_col, end_row, end_col = _selection_bounds(selections[-1])
        values: list[str] = []
        for row in range(start_row, end_row + 1):
            for col in range(start_col, end_col + 1):
                value = sheet.get_range(row, col).get_value()
                if value is not None and value != "":
                    values.append(str(value))
        self.events.emit(
            "cell_selected",
            CellSelectedEvent(
                sheet_name=sheet.get_sheet_name(),
                start_row=start_row,
                start_col=start_col,
                end_row=end_row,
                end_col=end_col,
                address=format_range(
                    CellAddress(start_row, start_col), CellAddress(end_row, end_col)
                ),
                value=" ".join(values),
            ),
        )

    def _on_item_error(self, failure: ItemInsertionFailure) -> None:
        self._report(failure.detail.kind, failure.detail.message, failure)

    def _report(self, kind: ErrorKind, message: str, cause: Any) -> None:
        self.events.emit("error", ErrorEvent(kind=kind, message=message, cause=cause))

    def _set_loading(self, value: bool) -> None:
        self.is_loading = value
        self.events.emit("loading_changed", LoadingChangedEvent(is_loading=value))


async def _convert(converter: WorkbookConverter, data: bytes) -> dict[str, Any]:
    convert_async = getattr(converter, "convert_async", None)
    if convert_async is not None:
        return await convert_async(data)
    return await anyio.to_thread.run_sync(converter.convert, data)


def _classify(exc: Exception) -> ErrorKind:
    for exc_type, kind in _STAGE_ERRORS:
        if isinstance(exc, exc_type):
            return kind
    return "unknown"


def _to_address(ref: CellRef) -> CellAddress:
    if isinstance(ref, str):
        return parse_address(ref)
    row, col = ref
    return CellAddress(row, col)


def _selection_bounds(selection: Any) -> tuple[int, int, int, int]:
    """Return (start_row, start_col, end_row, end_col) of an engine range."""
    if isinstance(selection, Mapping):
        start_row = int(selection["startRow"])
        start_col = int(selection["startColumn"])
        end_row = selection.get("endRow")
        end_col = selection.get("endColumn")
        return (
            start_row,
            start_col,
            start_row if end_row is None else int(end_row),
            start_col if end_col is None else int(end_col),
        )
    return (
        selection.start_row,
        selection.start_col,
        selection.end_row,
        selection.end_col,
    )


__all__ = ["CellRef", "WorkbookViewer"]
