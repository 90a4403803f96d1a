from __future__ import annotations

import functools
import logging
from pathlib import Path
from typing import IO, Union
from urllib.parse import urlparse

import anyio
import requests

from exview.errors import FetchFailure

logger = logging.getLogger(__name__)

WorkbookSource = Union[bytes, bytearray, memoryview, IO[bytes], Path, str]

DEFAULT_FETCH_TIMEOUT = 30.0


def is_url(text: str) -> bool:
    """Return True when ``text`` is an http(s) URL."""
    return urlparse(text).scheme in {"http", "https"}


def fetch_url(url: str, *, timeout: float = DEFAULT_FETCH_TIMEOUT) -> bytes:
    """Download workbook bytes.

    Raises:
        FetchFailure: On transport errors or a non-2xx response.
    """
    logger.info("Fetching workbook from %s", url)
    try:
        response = requests.get(url, timeout=timeout)
    except requests.RequestException as exc:
        raise FetchFailure(f"Failed to fetch {url}: {exc}") from exc
    if not 200 <= response.status_code < 300:
        raise FetchFailure(
            f"Failed to fetch {url}: HTTP {response.status_code}",
            status=response.status_code,
        )
    return response.content


def read_source(
    source: WorkbookSource, *, timeout: float = DEFAULT_FETCH_TIMEOUT
) -> bytes:
    """Read workbook bytes from bytes, a binary file object, a path, or a URL.

    Args:
        source: Workbook source.
        timeout: Network timeout in seconds for URL sources.

    Returns:
        Raw workbook bytes.

    Raises:
        FetchFailure: If the source cannot be read.
    """
    if isinstance(source, bytes | bytearray | memoryview):
        return bytes(source)
    if isinstance(source, str) and is_url(source):
        return fetch_url(source, timeout=timeout)
    if isinstance(source, str | Path):
        path = Path(source)
        try:
            return path.read_bytes()
        except OSError as exc:
            raise FetchFailure(f"Failed to read {path}: {exc}") from exc
    read = getattr(source, "read", None)
    if read is None:
        raise FetchFailure(f"Unsupported workbook source: {type(source).__name__}")
    data = read()
    if not isinstance(data, bytes | bytearray):
        raise FetchFailure("File object must be opened in binary mode.")
    return bytes(data)


async def read_source_async(
    source: WorkbookSource, *, timeout: float = DEFAULT_FETCH_TIMEOUT
) -> bytes:
    """Run ``read_source`` in a worker thread."""
    work = functools.partial(read_source, source, timeout=timeout)
    return await anyio.to_thread.run_sync(work)


__all__ = [
    "DEFAULT_FETCH_TIMEOUT",
    "WorkbookSource",
    "fetch_url",
    "is_url",
    "read_source",
    "read_source_async",
]
