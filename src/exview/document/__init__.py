"""Live document protocols and the in-memory reference engine."""

from __future__ import annotations

from .base import (
    CommandInfo,
    CommandInterceptor,
    Disposable,
    LiveDocument,
    LiveRange,
    LiveSheet,
    LiveWorkbook,
)
from .memory import Command, CommandType, MemoryDocument

__all__ = [
    "Command",
    "CommandInfo",
    "CommandInterceptor",
    "CommandType",
    "Disposable",
    "LiveDocument",
    "LiveRange",
    "LiveSheet",
    "LiveWorkbook",
    "MemoryDocument",
]
