"""Load ``.xlsx`` workbooks into a live spreadsheet document model.

Images and list data validations that a converter drops are extracted with
openpyxl and re-applied once the live document has settled. An optional
read-only guard rejects mutating commands on the live document.
"""

from __future__ import annotations

from .config import ViewerConfig
from .convert import OpenpyxlConverter, WorkbookConverter
from .errors import (
    ConversionFailure,
    DecodeFailure,
    ExviewError,
    FetchFailure,
    GuardViolation,
    InvalidAddress,
    ItemFailureDetail,
    ItemInsertionFailure,
)
from .events import (
    CellSelectedEvent,
    ErrorEvent,
    EventBus,
    LoadedEvent,
    LoadingChangedEvent,
)
from .extract import MetadataExtractor, extract_metadata
from .guard import BLOCKED_COMMANDS, ReadOnlyGuard, is_mutating_command
from .models import (
    ExtractedDataValidation,
    ExtractedImage,
    ExtractionResult,
    ReapplyReport,
)
from .reapply import (
    ReapplicationEngine,
    ReapplyOutcome,
    apply_validations,
    insert_images,
)
from .sanitize import sanitize_payload
from .shared.a1 import (
    CellAddress,
    CellRange,
    column_to_letters,
    format_address,
    format_range,
    letters_to_column,
    parse_address,
    parse_range,
)
from .viewer import WorkbookViewer

__version__ = "0.1.0"

__all__ = [
    "BLOCKED_COMMANDS",
    "CellAddress",
    "CellRange",
    "CellSelectedEvent",
    "ConversionFailure",
    "DecodeFailure",
    "ErrorEvent",
    "EventBus",
    "ExtractedDataValidation",
    "ExtractedImage",
    "ExtractionResult",
    "ExviewError",
    "FetchFailure",
    "GuardViolation",
    "InvalidAddress",
    "ItemFailureDetail",
    "ItemInsertionFailure",
    "LoadedEvent",
    "LoadingChangedEvent",
    "MetadataExtractor",
    "OpenpyxlConverter",
    "ReadOnlyGuard",
    "ReapplicationEngine",
    "ReapplyOutcome",
    "ReapplyReport",
    "ViewerConfig",
    "WorkbookConverter",
    "WorkbookViewer",
    "apply_validations",
    "column_to_letters",
    "extract_metadata",
    "format_address",
    "format_range",
    "insert_images",
    "is_mutating_command",
    "letters_to_column",
    "parse_address",
    "parse_range",
    "sanitize_payload",
]
