"""Workbook codec interface and source sniffing.

The session only talks to ``WorkbookCodec``; the XLSX implementation is the
default and can be swapped for tests or other back-ends.
"""

from __future__ import annotations

import re
from typing import Dict, Optional, Protocol

from .parser import WorkbookDecodeError, xlsx_to_sheet
from .sheet import DecodedSheet
from .style_store import StyleStore
from .type_registry import TypeRegistry
from .values import ValueStore
from .writer import XLSX_CONTENT_TYPE, sheet_to_xlsx


ZIP_SIGNATURE = b"PK\x03\x04"
WORKBOOK_EXTENSION = ".xlsx"
_WORKBOOK_MIME = re.compile(r"spreadsheetml|officedocument\.spreadsheetml\.sheet", re.IGNORECASE)


class WorkbookCodec(Protocol):
    """Binary workbook encode/decode."""

    content_type: str
    extension: str

    def decode(self, data: bytes) -> DecodedSheet:
        ...

    def encode(
        self,
        values: ValueStore,
        types: TypeRegistry,
        styles: StyleStore,
        column_widths: Optional[Dict[int, float]] = None,
    ) -> bytes:
        ...


class XlsxWorkbookCodec:
    """WorkbookCodec backed by the zipfile/ElementTree parser and writer."""

    content_type = XLSX_CONTENT_TYPE
    extension = WORKBOOK_EXTENSION

    def decode(self, data: bytes) -> DecodedSheet:
        return xlsx_to_sheet(data)

    def encode(
        self,
        values: ValueStore,
        types: TypeRegistry,
        styles: StyleStore,
        column_widths: Optional[Dict[int, float]] = None,
    ) -> bytes:
        return sheet_to_xlsx(values, types, styles, column_widths)


def is_workbook_source(
    filename: Optional[str] = None,
    content_type: Optional[str] = None,
    data: Optional[bytes] = None,
) -> bool:
    """Pick the workbook codec by extension, MIME type, or ZIP signature."""
    if filename and filename.lower().endswith(WORKBOOK_EXTENSION):
        return True
    if content_type and _WORKBOOK_MIME.search(content_type):
        return True
    return bool(data) and data[:4] == ZIP_SIGNATURE
