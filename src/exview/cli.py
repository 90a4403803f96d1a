from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
import sys
from typing import Any

import anyio
from pydantic import BaseModel, Field

from exview.config import ViewerConfig
from exview.errors import ExviewError
from exview.events import ErrorEvent, EventBus
from exview.extract import extract_metadata
from exview.sources import read_source
from exview.viewer import WorkbookViewer

logger = logging.getLogger(__name__)

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class CliConfig(BaseModel):
    """Parsed command-line options."""

    command: str = Field(..., description="Subcommand name.")
    source: str = Field(..., description="Workbook path or URL.")
    images: bool = Field(default=True, description="Extract images.")
    validations: bool = Field(default=True, description="Extract validations.")
    read_only: bool = Field(default=False, description="Apply the read-only guard.")
    insert_delay: float = Field(default=500, ge=0, description="Settle delay (ms).")
    log_level: str = Field(default="WARNING", description="Logging level.")
    log_file: Path | None = Field(default=None, description="Optional log file path.")


def main(argv: list[str] | None = None) -> int:
    """Run the exview command line.

    Args:
        argv: Optional CLI arguments for testing.

    Returns:
        Exit code (0 for success, 1 for failure).
    """
    config = _parse_args(argv)
    _configure_logging(config)
    try:
        if config.command == "extract":
            result = run_extract(config)
        else:
            result = anyio.run(run_load, config)
    except ExviewError as exc:
        logger.error("%s failed: %s", config.command, exc)
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    if result is None:
        return 1
    print(json.dumps(result, ensure_ascii=False, indent=2))
    return 0


def run_extract(config: CliConfig) -> dict[str, Any]:
    """Extract metadata and return a JSON-safe summary."""
    data = read_source(config.source)
    result = extract_metadata(
        data, images=config.images, validations=config.validations
    )
    return {
        "images": [
            {**image.model_dump(exclude={"image_bytes"}), "size": len(image.image_bytes)}
            for image in result.images
        ],
        "validations": [validation.model_dump() for validation in result.validations],
    }


async def run_load(config: CliConfig) -> dict[str, Any] | None:
    """Run the load pipeline against the in-memory engine."""
    events = EventBus()
    errors: list[ErrorEvent] = []
    events.subscribe("error", errors.append)
    viewer = WorkbookViewer(
        ViewerConfig(
            enable_images=config.images,
            enable_data_validation=config.validations,
            editable=not config.read_only,
            insert_delay=config.insert_delay,
        ),
        events=events,
    )
    try:
        loaded = await viewer.load(config.source)
        if loaded is None:
            for error in errors:
                print(f"Error ({error.kind}): {error.message}", file=sys.stderr)
            return None
        outcome = viewer.last_outcome
        return {
            "loaded": loaded.model_dump(),
            "images": outcome.images.model_dump() if outcome else None,
            "validations": outcome.validations.model_dump() if outcome else None,
            "read_only": viewer.guard.is_active,
            "errors": [error.model_dump() for error in errors],
        }
    finally:
        viewer.dispose()


def _non_negative_float(value: str) -> float:
    try:
        number = float(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid number: {value!r}") from exc
    if number < 0:
        raise argparse.ArgumentTypeError(f"invalid delay, must be non-negative: {value}")
    return number


def _parse_args(argv: list[str] | None) -> CliConfig:
    """Parse CLI arguments into a config.

    Args:
        argv: Optional CLI argument list.

    Returns:
        Parsed configuration.
    """
    parser = argparse.ArgumentParser(
        prog="exview", description="Inspect and load .xlsx workbooks."
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("source", help="Workbook path or http(s) URL.")
    common.add_argument(
        "--no-images", action="store_true", help="Skip embedded images."
    )
    common.add_argument(
        "--no-validations",
        action="store_true",
        help="Skip list data validations.",
    )
    common.add_argument(
        "--log-level",
        type=str.upper,
        choices=_LOG_LEVELS,
        default="WARNING",
        help="Logging level.",
    )
    common.add_argument("--log-file", type=Path, help="Optional log file path.")
    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser(
        "extract", parents=[common], help="Print extracted metadata as JSON."
    )
    load_parser = subparsers.add_parser(
        "load", parents=[common], help="Run the full load pipeline."
    )
    load_parser.add_argument(
        "--read-only",
        action="store_true",
        help="Apply the read-only guard after re-application.",
    )
    load_parser.add_argument(
        "--insert-delay",
        type=_non_negative_float,
        default=500,
        help="Settle delay in milliseconds when the engine has no ready signal.",
    )
    args = parser.parse_args(argv)
    return CliConfig(
        command=args.command,
        source=args.source,
        images=not args.no_images,
        validations=not args.no_validations,
        read_only=bool(getattr(args, "read_only", False)),
        insert_delay=getattr(args, "insert_delay", 500),
        log_level=args.log_level,
        log_file=args.log_file,
    )


def _configure_logging(config: CliConfig) -> None:
    """Configure logging for the CLI process.

    Args:
        config: CLI configuration.
    """
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if config.log_file is not None:
        handlers.append(logging.FileHandler(config.log_file))
    logging.basicConfig(
        level=config.log_level.upper(),
        handlers=handlers,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


__all__ = ["CliConfig", "main", "run_extract", "run_load"]
