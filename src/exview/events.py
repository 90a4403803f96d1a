from __future__ import annotations

from collections.abc import Callable
import logging
from typing import Any, Literal

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

EventName = Literal["loaded", "cell_selected", "error", "loading_changed"]
ErrorKind = Literal["fetch", "decode", "conversion", "image", "validation", "unknown"]


class LoadedEvent(BaseModel):
    """Emitted once the live document has been constructed."""

    sheet_count: int
    sheet_names: list[str] = Field(default_factory=list)
    image_count: int = 0
    validation_count: int = 0


class CellSelectedEvent(BaseModel):
    """Emitted when the selection on the live workbook changes."""

    sheet_name: str
    start_row: int
    start_col: int
    end_row: int
    end_col: int
    address: str
    value: str = Field(default="", description="Non-empty cell values, row-major.")


class ErrorEvent(BaseModel):
    """Emitted for stage failures and per-item re-application failures."""

    kind: ErrorKind
    message: str
    cause: Any = Field(default=None, exclude=True)


class LoadingChangedEvent(BaseModel):
    is_loading: bool


Listener = Callable[[Any], None]


class EventBus:
    """Synchronous publish/subscribe channel keyed by event name."""

    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = {}

    def subscribe(self, name: EventName, listener: Listener) -> Callable[[], None]:
        """Register ``listener``; the returned callable unsubscribes it."""
        listeners = self._listeners.setdefault(name, [])
        listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in listeners:
                listeners.remove(listener)

        return _unsubscribe

    def emit(self, name: EventName, event: BaseModel) -> None:
        """Deliver ``event`` to every listener of ``name`` in subscription order."""
        for listener in list(self._listeners.get(name, ())):
            listener(event)

    def clear(self) -> None:
        self._listeners.clear()


__all__ = [
    "CellSelectedEvent",
    "ErrorEvent",
    "ErrorKind",
    "EventBus",
    "EventName",
    "LoadedEvent",
    "LoadingChangedEvent",
]
