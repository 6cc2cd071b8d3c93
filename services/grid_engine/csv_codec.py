"""CSV Codec - values plus an optional base64-JSON metadata header.

Wire format:

    ##BANBURY_META=<base64 of {"cells": {"<row>-<col>": {...}}, "styles": ..., "columnWidths": ...}>
    a,b,"c, with comma"
    1,2,3

Decoding never fails on a bad header: the line is kept as ordinary data.
Field unquoting strips one surrounding quote layer but leaves doubled
internal quotes as they are: a quoted field holding say ""hi"" decodes
with both pairs of doubled quotes still in place.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import re
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from .schemas import (
    BorderEdge,
    CellCoord,
    CellRange,
    CellStyle,
    compact_cell_type,
    parse_cell_type,
)
from .sheet import DecodedSheet
from .style_store import StyleStore
from .type_registry import TypeRegistry
from .formats import stringify_value
from .values import ValueStore


logger = logging.getLogger(__name__)

META_MARKER = "BANBURY_META"
META_PREFIX = f"##{META_MARKER}="
CSV_CONTENT_TYPE = "text/csv"

DEFAULT_ROWS = [
    ["Name", "Email", "Phone", "Department"],
    ["", "", "", ""],
]


# =============================================================================
# ENCODE
# =============================================================================

def _quote_field(value: Any) -> str:
    text = stringify_value(value)
    if "," in text or '"' in text or "\n" in text:
        return '"' + text.replace('"', '""') + '"'
    return text


def _encode_header(
    types: TypeRegistry,
    styles: Optional[StyleStore],
    column_widths: Optional[Dict[int, float]],
) -> Optional[str]:
    if not len(types) and not (styles and len(styles)) and not column_widths:
        return None

    meta: Dict[str, Any] = {
        "cells": {coord.key(): compact_cell_type(cell_type) for coord, cell_type in types.items()},
    }
    if styles and len(styles):
        meta["styles"] = {
            coord.key(): style.model_dump(exclude_none=True) for coord, style in styles.items()
        }
    if column_widths:
        meta["columnWidths"] = {str(col): width for col, width in sorted(column_widths.items())}

    payload = json.dumps(meta, separators=(",", ":"), ensure_ascii=False)
    return META_PREFIX + base64.b64encode(payload.encode("utf-8")).decode("ascii")


def encode_csv(
    values: ValueStore,
    types: Optional[TypeRegistry] = None,
    styles: Optional[StyleStore] = None,
    column_widths: Optional[Dict[int, float]] = None,
) -> str:
    """Serialize values (and any metadata) to CSV text."""
    lines: List[str] = []
    header = _encode_header(types or TypeRegistry(), styles, column_widths)
    if header:
        lines.append(header)
    for row in values.to_rows():
        lines.append(",".join(_quote_field(value) for value in row))
    return "\n".join(lines)


# =============================================================================
# DECODE
# =============================================================================

def _split_fields(line: str) -> List[str]:
    """Split on commas that sit outside double quotes. Quotes are kept."""
    fields: List[str] = []
    current: List[str] = []
    in_quotes = False
    for char in line:
        if char == '"':
            in_quotes = not in_quotes
            current.append(char)
        elif char == "," and not in_quotes:
            fields.append("".join(current))
            current = []
        else:
            current.append(char)
    fields.append("".join(current))
    return fields


def _unquote(field: str) -> str:
    if len(field) >= 2 and field.startswith('"') and field.endswith('"'):
        return field[1:-1]
    return field


def _split_records(body: str) -> List[str]:
    """Split on newlines outside quoted fields (quoted fields may hold "\\n")."""
    records: List[str] = []
    current: List[str] = []
    in_quotes = False
    for char in body:
        if char == '"':
            in_quotes = not in_quotes
        if char == "\n" and not in_quotes:
            records.append("".join(current))
            current = []
            continue
        current.append(char)
    records.append("".join(current))
    return [record[:-1] if record.endswith("\r") else record for record in records]


def _decode_header(line: str) -> Optional[Dict[str, Any]]:
    if not line.startswith(META_PREFIX):
        return None
    encoded = line[len(META_PREFIX):].strip()
    try:
        meta = json.loads(base64.b64decode(encoded, validate=True).decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, ValueError) as e:
        logger.debug(f"[CSV] Ignoring unreadable metadata header: {e}")
        return None
    if not isinstance(meta, dict) or not isinstance(meta.get("cells"), dict):
        logger.debug("[CSV] Ignoring metadata header without a cells map")
        return None
    return meta


# -----------------------------------------------------------------------------
# Legacy header entries
# -----------------------------------------------------------------------------

_CLASS_FLAGS = {
    "ht-bold": "bold",
    "ht-italic": "italic",
    "ht-underline": "underline",
}
_CLASS_ALIGN = {
    "ht-align-left": "left",
    "ht-align-center": "center",
    "ht-align-right": "right",
}
_CSS_BORDER = re.compile(r"^\s*(\d+(?:\.\d+)?)px\s+(solid|dashed|dotted)\s*(\S+)?\s*$")


def _legacy_type(entry: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Map {type, source, numericFormat, dateFormat} onto the CellType shape."""
    kind = entry.get("type")
    if kind == "dropdown":
        return {"kind": "dropdown", "options": entry.get("source") or []}
    if kind == "numeric":
        fmt = entry.get("numericFormat") or {}
        return {"kind": "numeric", "pattern": fmt.get("pattern"), "culture": fmt.get("culture")}
    if kind == "date":
        result = {"kind": "date"}
        if entry.get("dateFormat"):
            result["pattern"] = entry["dateFormat"]
        return result
    if kind in ("checkbox", "text"):
        return {"kind": kind}
    return None


def _legacy_style(entry: Dict[str, Any]) -> Dict[str, Any]:
    style: Dict[str, Any] = {}
    for token in str(entry.get("className") or "").split():
        if token in _CLASS_FLAGS:
            style[_CLASS_FLAGS[token]] = True
        elif token in _CLASS_ALIGN:
            style["align"] = _CLASS_ALIGN[token]

    css = entry.get("styles") or {}
    if not isinstance(css, dict):
        return style
    if css.get("color"):
        style["color"] = css["color"]
    if css.get("backgroundColor"):
        style["background_color"] = css["backgroundColor"]
    if css.get("fontSize"):
        match = re.match(r"^\s*(\d+(?:\.\d+)?)", str(css["fontSize"]))
        if match:
            style["font_size_px"] = float(match.group(1))
    for side in ("Top", "Right", "Bottom", "Left"):
        match = _CSS_BORDER.match(str(css.get(f"border{side}") or ""))
        if match:
            style[f"border_{side.lower()}"] = BorderEdge(
                width_px=2 if float(match.group(1)) >= 2 else 1,
                style="dashed" if match.group(2) == "dashed" else "solid",
                color=match.group(3),
            )
    return style


def _apply_header(meta: Dict[str, Any], types: TypeRegistry, styles: StyleStore, widths: Dict[int, float]) -> None:
    for key, entry in meta["cells"].items():
        try:
            coord = CellCoord.from_key(key)
        except ValueError:
            logger.debug(f"[CSV] Skipping metadata for bad cell key {key!r}")
            continue
        if not isinstance(entry, dict):
            continue

        shape = entry if "kind" in entry else _legacy_type(entry)
        if shape is not None:
            try:
                types.set_type(CellRange.cell(coord.row, coord.col), parse_cell_type(shape))
            except ValidationError as e:
                logger.debug(f"[CSV] Skipping invalid type for {key}: {e.errors()[0].get('msg')}")

        if "kind" not in entry and ("className" in entry or "styles" in entry):
            try:
                styles.set(coord.row, coord.col, CellStyle(**_legacy_style(entry)))
            except ValidationError as e:
                logger.debug(f"[CSV] Skipping invalid legacy style for {key}: {e}")

    style_meta = meta.get("styles")
    for key, entry in (style_meta.items() if isinstance(style_meta, dict) else []):
        try:
            styles.set(*CellCoord.from_key(key), CellStyle.model_validate(entry))
        except (ValueError, TypeError) as e:
            logger.debug(f"[CSV] Skipping invalid style for {key}: {e}")

    width_meta = meta.get("columnWidths")
    for key, width in (width_meta.items() if isinstance(width_meta, dict) else []):
        try:
            widths[int(key)] = float(width)
        except (TypeError, ValueError):
            continue


def decode_csv(text: str) -> DecodedSheet:
    """Parse CSV text (with optional metadata header) into a DecodedSheet."""
    sheet = DecodedSheet()
    text = text or ""
    if text.startswith("\ufeff"):
        text = text[1:]

    body = text
    first_line, _, rest = text.partition("\n")
    meta = _decode_header(first_line.rstrip("\r"))
    if meta is not None:
        body = rest
        _apply_header(meta, sheet.types, sheet.styles, sheet.column_widths)

    if not body.strip():
        sheet.values = ValueStore(DEFAULT_ROWS)
        return sheet

    rows: List[List[str]] = []
    for record in _split_records(body):
        fields = [_unquote(field) for field in _split_fields(record)]
        if all(field == "" for field in fields):
            continue
        rows.append(fields)

    sheet.values = ValueStore(rows or DEFAULT_ROWS)
    logger.debug(f"[CSV] Decoded {len(rows)} rows, {len(sheet.types)} typed cells")
    return sheet
