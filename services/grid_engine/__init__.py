"""Grid Engine - the spreadsheet editing core.

This module handles:
1. Cell values, logical cell types and visual styles for one sheet
2. CSV encode/decode with an embedded base64-JSON metadata header
3. XLSX encode/decode (first sheet, styles, validations, number formats)
4. Render dispatch and widget metadata reconciliation
5. Editor sessions: dirty tracking, deduplicated loading, save
"""

from .schemas import (
    DEFAULT_DATE_PATTERN,
    BorderEdge,
    BorderOption,
    BorderWeight,
    CellCoord,
    CellKind,
    CellRange,
    CellStyle,
    CellType,
    CheckboxType,
    DateType,
    DropdownType,
    NumericType,
    TextType,
    parse_cell_type,
)
from .values import ValueStore
from .type_registry import TypeRegistry, parse_option_text
from .style_store import StyleStore
from .sheet import DecodedSheet
from .csv_codec import META_MARKER, decode_csv, encode_csv
from .codec import WorkbookCodec, WorkbookDecodeError, XlsxWorkbookCodec, is_workbook_source
from .loader import ByteSource, FetchError
from .render import GridWidget, RenderInstruction, dispatch_render, format_date_display
from .operations import OperationBatch
from .session import EditorSession, LoadResult, SaveResult

__all__ = [
    # Schemas
    "DEFAULT_DATE_PATTERN",
    "BorderEdge",
    "BorderOption",
    "BorderWeight",
    "CellCoord",
    "CellKind",
    "CellRange",
    "CellStyle",
    "CellType",
    "CheckboxType",
    "DateType",
    "DropdownType",
    "NumericType",
    "TextType",
    "parse_cell_type",
    # Stores
    "ValueStore",
    "TypeRegistry",
    "StyleStore",
    "DecodedSheet",
    "parse_option_text",
    # Codecs
    "META_MARKER",
    "encode_csv",
    "decode_csv",
    "WorkbookCodec",
    "WorkbookDecodeError",
    "XlsxWorkbookCodec",
    "is_workbook_source",
    # Loading / rendering
    "ByteSource",
    "FetchError",
    "GridWidget",
    "RenderInstruction",
    "dispatch_render",
    "format_date_display",
    # Sessions
    "OperationBatch",
    "EditorSession",
    "LoadResult",
    "SaveResult",
]
