from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class Disposable(Protocol):
    """Handle returned by listener registrations."""

    def dispose(self) -> None:
        """Unregister the listener."""


@runtime_checkable
class CommandInfo(Protocol):
    """Command descriptor passed to before-execute interceptors."""

    id: str
    params: Mapping[str, Any] | None


CommandInterceptor = Callable[[CommandInfo], None]
SelectionListener = Callable[[Sequence[Any]], None]


class ValidationRuleBuilder(Protocol):
    """Fluent builder for data-validation rules."""

    def require_value_in_list(
        self, values: Sequence[str]
    ) -> ValidationRuleBuilder: ...

    def set_options(self, **options: Any) -> ValidationRuleBuilder: ...

    def build(self) -> Any: ...


class OverGridImageBuilder(Protocol):
    """Fluent builder for images floating over the grid."""

    def set_source(self, source: str, source_type: str) -> OverGridImageBuilder: ...

    def set_column(self, col: int) -> OverGridImageBuilder: ...

    def set_row(self, row: int) -> OverGridImageBuilder: ...

    def set_width(self, width: float) -> OverGridImageBuilder: ...

    def set_height(self, height: float) -> OverGridImageBuilder: ...

    async def build_async(self) -> Any: ...


class LiveRange(Protocol):
    """Range handle on a live sheet."""

    def get_value(self) -> Any: ...

    def set_value(self, value: Any) -> None: ...

    def set_data_validation(self, rule: Any) -> None: ...

    def activate(self) -> None: ...


class LiveSheet(Protocol):
    """Sheet handle on a live workbook."""

    def get_sheet_name(self) -> str: ...

    def get_range(
        self,
        row_or_address: int | str,
        col: int | None = None,
        rows: int = 1,
        cols: int = 1,
    ) -> LiveRange: ...

    def insert_images(self, images: Sequence[Any]) -> None: ...

    def activate(self) -> None: ...


class LiveWorkbook(Protocol):
    """Workbook handle on a live document."""

    def get_id(self) -> str: ...

    def get_sheets(self) -> Sequence[LiveSheet]: ...

    def get_active_sheet(self) -> LiveSheet | None: ...

    def on_selection_change(self, listener: SelectionListener) -> Disposable: ...

    def save(self) -> dict[str, Any]: ...


@runtime_checkable
class LiveDocument(Protocol):
    """Live document-model handle exposed by a rendering engine.

    Optional capabilities, looked up with ``getattr``:
    ``wait_until_rendered()`` (awaitable ready signal) and
    ``get_transformer()`` (drawing drag/resize affordance).
    """

    def create_workbook(self, payload: Mapping[str, Any]) -> LiveWorkbook: ...

    def get_active_workbook(self) -> LiveWorkbook | None: ...

    def new_data_validation(self) -> ValidationRuleBuilder: ...

    def on_before_command_execute(
        self, interceptor: CommandInterceptor
    ) -> Disposable: ...

    def execute_command(
        self, command_id: str, params: Mapping[str, Any] | None = None
    ) -> Any: ...

    def dispose(self) -> None: ...


__all__ = [
    "CommandInfo",
    "CommandInterceptor",
    "Disposable",
    "LiveDocument",
    "LiveRange",
    "LiveSheet",
    "LiveWorkbook",
    "OverGridImageBuilder",
    "SelectionListener",
    "ValidationRuleBuilder",
]
