"""Byte sources and codec selection for loading a sheet."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

import requests

from .codec import WorkbookCodec, XlsxWorkbookCodec, is_workbook_source
from .csv_codec import decode_csv
from .sheet import DecodedSheet


logger = logging.getLogger(__name__)

DEFAULT_FETCH_TIMEOUT = 30


class FetchError(RuntimeError):
    """Raised when remote bytes cannot be retrieved."""


@dataclass
class ByteSource:
    """Where a sheet's bytes come from.

    Either ``data`` (already in memory) or ``url`` must be set. ``file_id``
    and ``filename`` identify the logical source for load deduplication.
    """
    data: Optional[bytes] = None
    url: Optional[str] = None
    filename: Optional[str] = None
    content_type: Optional[str] = None
    file_id: Optional[str] = None

    @property
    def dedup_key(self) -> Optional[str]:
        if self.file_id is None and self.filename is None:
            return None
        return f"{self.file_id}|{self.filename}"


def _fetch_sync(url: str, timeout: float) -> bytes:
    try:
        response = requests.get(url, timeout=timeout)
        response.raise_for_status()
    except requests.RequestException as e:
        raise FetchError(f"Failed to fetch {url}: {e}") from e
    return response.content


async def fetch_bytes(source: ByteSource, timeout: float = DEFAULT_FETCH_TIMEOUT) -> bytes:
    """Return the source's bytes, fetching over HTTP in a worker thread if needed."""
    if source.data is not None:
        return source.data
    if not source.url:
        raise FetchError("Byte source has neither data nor url")
    logger.info(f"[LOAD] Fetching {source.url}")
    return await asyncio.to_thread(_fetch_sync, source.url, timeout)


def decode_bytes(
    data: bytes,
    filename: Optional[str] = None,
    content_type: Optional[str] = None,
    codec: Optional[WorkbookCodec] = None,
) -> DecodedSheet:
    """Run the workbook codec or the CSV codec, depending on the source hints."""
    if is_workbook_source(filename, content_type, data):
        return (codec or XlsxWorkbookCodec()).decode(data)
    return decode_csv(data.decode("utf-8", errors="replace"))
