"""XLSX Writer - builds a single-sheet workbook from the editor stores.

Output fidelity covers what the stores can express:
1. Values (strings, numbers, booleans, formulas, dates as serials)
2. Font flags/size/color, solid fills, horizontal alignment, borders
3. Dropdowns as list data validations
4. Numeric and date number formats
5. Column widths (recorded or auto-fit)

Dashed borders have no thin-dashed counterpart here and are written thin.
"""

from __future__ import annotations

import logging
import math
import re
import zipfile
from collections import defaultdict
from io import BytesIO
from typing import Any, Dict, List, Optional, Set, Tuple
from xml.etree import ElementTree as ET

from .formats import (
    BUILTIN_NUMBER_FORMATS,
    coerce_checkbox,
    css_to_argb,
    date_pattern_to_excel,
    datetime_to_serial,
    numeric_pattern_to_excel,
    parse_date_value,
    stringify_value,
)
from .parser import NS, PX_PER_CHAR, cell_ref
from .schemas import (
    CellStyle,
    CellType,
    CheckboxType,
    DateType,
    DropdownType,
    NumericType,
)
from .style_store import StyleStore
from .type_registry import TypeRegistry
from .values import ValueStore


logger = logging.getLogger(__name__)

XLSX_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
SHEET_NAME = "Sheet1"
MAX_AUTO_WIDTH = 50
DEFAULT_FONT_SIZE = 11
FIRST_CUSTOM_NUM_FMT_ID = 164

_BUILTIN_FORMAT_IDS = {code: fmt_id for fmt_id, code in BUILTIN_NUMBER_FORMATS.items()}

# Decimal text with an optional exponent; no "nan", "inf" or "1_000"
_NUMERIC_TEXT = re.compile(r"^[-+]?(\d+(\.\d*)?|\.\d+)([eE][-+]?\d+)?$")

# XML 1.0 allows tab, LF and CR but no other C0 controls, surrogates or U+FFFE/U+FFFF
_XML_ILLEGAL = re.compile("[\x00-\x08\x0b\x0c\x0e-\x1f\ud800-\udfff\ufffe\uffff]")


def _q(tag: str) -> str:
    return f"{{{NS['main']}}}{tag}"


# =============================================================================
# PACKAGE PARTS
# =============================================================================

_CONTENT_TYPES_XML = (
    '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>\n'
    '<Types xmlns="http://schemas.openxmlformats.org/package/2006/content-types">'
    '<Default Extension="rels" ContentType="application/vnd.openxmlformats-package.relationships+xml"/>'
    '<Default Extension="xml" ContentType="application/xml"/>'
    '<Override PartName="/xl/workbook.xml" ContentType="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet.main+xml"/>'
    '<Override PartName="/xl/worksheets/sheet1.xml" ContentType="application/vnd.openxmlformats-officedocument.spreadsheetml.worksheet+xml"/>'
    '<Override PartName="/xl/styles.xml" ContentType="application/vnd.openxmlformats-officedocument.spreadsheetml.styles+xml"/>'
    '<Override PartName="/xl/sharedStrings.xml" ContentType="application/vnd.openxmlformats-officedocument.spreadsheetml.sharedStrings+xml"/>'
    '</Types>'
)

_ROOT_RELS_XML = (
    '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>\n'
    '<Relationships xmlns="http://schemas.openxmlformats.org/package/2006/relationships">'
    '<Relationship Id="rId1" Type="http://schemas.openxmlformats.org/officeDocument/2006/relationships/officeDocument" Target="xl/workbook.xml"/>'
    '</Relationships>'
)

_WORKBOOK_XML = (
    '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>\n'
    '<workbook xmlns="http://schemas.openxmlformats.org/spreadsheetml/2006/main" '
    'xmlns:r="http://schemas.openxmlformats.org/officeDocument/2006/relationships">'
    f'<sheets><sheet name="{SHEET_NAME}" sheetId="1" r:id="rId1"/></sheets>'
    '</workbook>'
)

_WORKBOOK_RELS_XML = (
    '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>\n'
    '<Relationships xmlns="http://schemas.openxmlformats.org/package/2006/relationships">'
    '<Relationship Id="rId1" Type="http://schemas.openxmlformats.org/officeDocument/2006/relationships/worksheet" Target="worksheets/sheet1.xml"/>'
    '<Relationship Id="rId2" Type="http://schemas.openxmlformats.org/officeDocument/2006/relationships/styles" Target="styles.xml"/>'
    '<Relationship Id="rId3" Type="http://schemas.openxmlformats.org/officeDocument/2006/relationships/sharedStrings" Target="sharedStrings.xml"/>'
    '</Relationships>'
)


# =============================================================================
# STYLES
# =============================================================================

class _StyleTable:
    """Deduplicating builder for styles.xml records."""

    def __init__(self) -> None:
        self.fonts: Dict[Tuple, int] = {(False, False, False, DEFAULT_FONT_SIZE, None): 0}
        self.fills: Dict[Optional[str], int] = {None: 0, "gray125": 1}
        self.borders: Dict[Tuple, int] = {(): 0}
        self.num_fmts: Dict[str, int] = {}
        self.xfs: Dict[Tuple, int] = {(0, 0, 0, 0, None): 0}

    def _font_id(self, style: CellStyle) -> int:
        key = (
            bool(style.bold),
            bool(style.italic),
            bool(style.underline),
            style.font_size_px or DEFAULT_FONT_SIZE,
            css_to_argb(style.color) if style.color else None,
        )
        return self.fonts.setdefault(key, len(self.fonts))

    def _fill_id(self, style: CellStyle) -> int:
        if not style.background_color:
            return 0
        return self.fills.setdefault(css_to_argb(style.background_color), len(self.fills))

    def _border_id(self, style: CellStyle) -> int:
        sides = []
        for side, edge in sorted(style.edges().items()):
            weight = "thick" if edge.width_px == 2 else "thin"
            sides.append((side, weight, css_to_argb(edge.color) if edge.color else "FF000000"))
        if not sides:
            return 0
        return self.borders.setdefault(tuple(sides), len(self.borders))

    def _num_fmt_id(self, code: Optional[str]) -> int:
        if not code:
            return 0
        if code in _BUILTIN_FORMAT_IDS:
            return _BUILTIN_FORMAT_IDS[code]
        return self.num_fmts.setdefault(code, FIRST_CUSTOM_NUM_FMT_ID + len(self.num_fmts))

    def xf_for(self, style: Optional[CellStyle], num_fmt: Optional[str]) -> int:
        style = style or CellStyle()
        key = (
            self._num_fmt_id(num_fmt),
            self._font_id(style),
            self._fill_id(style),
            self._border_id(style),
            style.align,
        )
        return self.xfs.setdefault(key, len(self.xfs))

    def to_xml(self) -> bytes:
        root = ET.Element(_q("styleSheet"))

        if self.num_fmts:
            num_fmts_el = ET.SubElement(root, _q("numFmts"), count=str(len(self.num_fmts)))
            for code, fmt_id in self.num_fmts.items():
                ET.SubElement(num_fmts_el, _q("numFmt"), numFmtId=str(fmt_id), formatCode=_xml_text(code))

        fonts_el = ET.SubElement(root, _q("fonts"), count=str(len(self.fonts)))
        for (bold, italic, underline, size, color), _ in sorted(self.fonts.items(), key=lambda kv: kv[1]):
            font_el = ET.SubElement(fonts_el, _q("font"))
            if bold:
                ET.SubElement(font_el, _q("b"))
            if italic:
                ET.SubElement(font_el, _q("i"))
            if underline:
                ET.SubElement(font_el, _q("u"))
            ET.SubElement(font_el, _q("sz"), val=_num(size))
            if color:
                ET.SubElement(font_el, _q("color"), rgb=color)
            ET.SubElement(font_el, _q("name"), val="Calibri")

        fills_el = ET.SubElement(root, _q("fills"), count=str(len(self.fills)))
        for color, _ in sorted(self.fills.items(), key=lambda kv: kv[1]):
            fill_el = ET.SubElement(fills_el, _q("fill"))
            if color is None:
                ET.SubElement(fill_el, _q("patternFill"), patternType="none")
            elif color == "gray125":
                ET.SubElement(fill_el, _q("patternFill"), patternType="gray125")
            else:
                pattern_el = ET.SubElement(fill_el, _q("patternFill"), patternType="solid")
                ET.SubElement(pattern_el, _q("fgColor"), rgb=color)
                ET.SubElement(pattern_el, _q("bgColor"), indexed="64")

        borders_el = ET.SubElement(root, _q("borders"), count=str(len(self.borders)))
        for sides, _ in sorted(self.borders.items(), key=lambda kv: kv[1]):
            border_el = ET.SubElement(borders_el, _q("border"))
            by_side = {side: (weight, color) for side, weight, color in sides}
            # Schema order: left, right, top, bottom, diagonal
            for side in ("left", "right", "top", "bottom"):
                if side in by_side:
                    weight, color = by_side[side]
                    side_el = ET.SubElement(border_el, _q(side), style=weight)
                    ET.SubElement(side_el, _q("color"), rgb=color)
                else:
                    ET.SubElement(border_el, _q(side))
            ET.SubElement(border_el, _q("diagonal"))

        style_xfs_el = ET.SubElement(root, _q("cellStyleXfs"), count="1")
        ET.SubElement(style_xfs_el, _q("xf"), numFmtId="0", fontId="0", fillId="0", borderId="0")

        xfs_el = ET.SubElement(root, _q("cellXfs"), count=str(len(self.xfs)))
        for (fmt_id, font_id, fill_id, border_id, align), _ in sorted(self.xfs.items(), key=lambda kv: kv[1]):
            xf_el = ET.SubElement(
                xfs_el,
                _q("xf"),
                numFmtId=str(fmt_id),
                fontId=str(font_id),
                fillId=str(fill_id),
                borderId=str(border_id),
                xfId="0",
            )
            if fmt_id:
                xf_el.set("applyNumberFormat", "1")
            if font_id:
                xf_el.set("applyFont", "1")
            if fill_id:
                xf_el.set("applyFill", "1")
            if border_id:
                xf_el.set("applyBorder", "1")
            if align:
                xf_el.set("applyAlignment", "1")
                ET.SubElement(xf_el, _q("alignment"), horizontal=align)

        cell_styles_el = ET.SubElement(root, _q("cellStyles"), count="1")
        ET.SubElement(cell_styles_el, _q("cellStyle"), name="Normal", xfId="0", builtinId="0")

        return ET.tostring(root, encoding="utf-8", xml_declaration=True)


def _num(value: Any) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _number_format_for(cell_type: Optional[CellType]) -> Optional[str]:
    if isinstance(cell_type, NumericType) and cell_type.pattern:
        return numeric_pattern_to_excel(cell_type.pattern)
    if isinstance(cell_type, DateType):
        return date_pattern_to_excel(cell_type.pattern)
    return None


def _xml_text(text: str) -> str:
    """Drop characters ElementTree would write but no XML parser accepts."""
    return _XML_ILLEGAL.sub("", text)


def _parse_numeric_text(text: str) -> Optional[float]:
    """Number for decimal text with optional grouping commas, else None."""
    cleaned = text.strip().replace(",", "")
    if not _NUMERIC_TEXT.match(cleaned):
        return None
    number = float(cleaned)
    return number if math.isfinite(number) else None


# =============================================================================
# CELLS
# =============================================================================

class _SharedStrings:
    def __init__(self) -> None:
        self.index: Dict[str, int] = {}

    def add(self, text: str) -> int:
        return self.index.setdefault(_xml_text(text), len(self.index))

    def to_xml(self) -> bytes:
        root = ET.Element(_q("sst"), count=str(len(self.index)), uniqueCount=str(len(self.index)))
        for text in self.index:
            si = ET.SubElement(root, _q("si"))
            t = ET.SubElement(si, _q("t"))
            t.text = text
            if text != text.strip():
                t.set("{http://www.w3.org/XML/1998/namespace}space", "preserve")
        return ET.tostring(root, encoding="utf-8", xml_declaration=True)


def _write_cell(
    row_el: ET.Element,
    ref: str,
    value: Any,
    cell_type: Optional[CellType],
    xf_id: int,
    shared: _SharedStrings,
) -> None:
    c = ET.SubElement(row_el, _q("c"), r=ref)
    if xf_id:
        c.set("s", str(xf_id))

    if isinstance(cell_type, CheckboxType) or isinstance(value, bool):
        c.set("t", "b")
        ET.SubElement(c, _q("v")).text = "1" if coerce_checkbox(value) else "0"
        return

    if isinstance(cell_type, DateType) and value not in (None, ""):
        parsed = parse_date_value(value)
        if parsed is not None:
            ET.SubElement(c, _q("v")).text = _num(datetime_to_serial(parsed))
            return

    if isinstance(value, (int, float)) and (isinstance(value, int) or math.isfinite(value)):
        ET.SubElement(c, _q("v")).text = _num(value)
        return

    if isinstance(cell_type, NumericType) and isinstance(value, str):
        number = _parse_numeric_text(value)
        if number is not None:
            ET.SubElement(c, _q("v")).text = _num(number)
            return

    if isinstance(value, str) and value.startswith("=") and len(value) > 1:
        ET.SubElement(c, _q("f")).text = _xml_text(value[1:])
        return

    c.set("t", "s")
    ET.SubElement(c, _q("v")).text = str(shared.add(stringify_value(value)))


def _column_widths(
    values: ValueStore, col_count: int, column_widths: Optional[Dict[int, float]]
) -> List[float]:
    widths = []
    for col in range(col_count):
        px = (column_widths or {}).get(col)
        if px:
            widths.append(round(px / PX_PER_CHAR, 2))
            continue
        longest = max((len(stringify_value(v)) for v in values.column_values(col)), default=0)
        widths.append(min(longest + 2, MAX_AUTO_WIDTH))
    return widths


def _build_sheet_xml(
    values: ValueStore,
    types: TypeRegistry,
    styles: StyleStore,
    column_widths: Optional[Dict[int, float]],
    table: _StyleTable,
    shared: _SharedStrings,
) -> bytes:
    rows = values.to_rectangular()
    coords: Set[Tuple[int, int]] = {(r, c) for r, row in enumerate(rows) for c in range(len(row))}
    coords.update(coord for coord, _ in types.items())
    coords.update(coord for coord, _ in styles.items())

    by_row: Dict[int, List[int]] = defaultdict(list)
    for r, c in coords:
        by_row[r].append(c)
    row_count = max(by_row, default=-1) + 1
    col_count = max((c for _, c in coords), default=-1) + 1

    root = ET.Element(_q("worksheet"))
    ref = f"A1:{cell_ref(row_count - 1, col_count - 1)}" if coords else "A1"
    ET.SubElement(root, _q("dimension"), ref=ref)

    if col_count:
        cols_el = ET.SubElement(root, _q("cols"))
        for col, width in enumerate(_column_widths(values, col_count, column_widths)):
            ET.SubElement(
                cols_el, _q("col"),
                min=str(col + 1), max=str(col + 1), width=_num(width), customWidth="1",
            )

    sheet_data = ET.SubElement(root, _q("sheetData"))
    dropdowns: Dict[Tuple[str, ...], List[str]] = defaultdict(list)
    for r in sorted(by_row):
        row_el = ET.SubElement(sheet_data, _q("row"), r=str(r + 1))
        for c in sorted(by_row[r]):
            cell_type = types.get(r, c)
            xf_id = table.xf_for(styles.get(r, c), _number_format_for(cell_type))
            _write_cell(row_el, cell_ref(r, c), values.get(r, c), cell_type, xf_id, shared)
            if isinstance(cell_type, DropdownType):
                dropdowns[tuple(cell_type.options)].append(cell_ref(r, c))

    if dropdowns:
        dvs_el = ET.SubElement(root, _q("dataValidations"), count=str(len(dropdowns)))
        for options, refs in dropdowns.items():
            dv_el = ET.SubElement(
                dvs_el, _q("dataValidation"),
                type="list", allowBlank="1", showErrorMessage="1", sqref=" ".join(refs),
            )
            formula = ",".join(_xml_text(opt).replace('"', '""') for opt in options)
            ET.SubElement(dv_el, _q("formula1")).text = f'"{formula}"'

    return ET.tostring(root, encoding="utf-8", xml_declaration=True)


def sheet_to_xlsx(
    values: ValueStore,
    types: Optional[TypeRegistry] = None,
    styles: Optional[StyleStore] = None,
    column_widths: Optional[Dict[int, float]] = None,
) -> bytes:
    """Encode the stores as XLSX bytes."""
    types = types or TypeRegistry()
    styles = styles or StyleStore()
    table = _StyleTable()
    shared = _SharedStrings()

    sheet_xml = _build_sheet_xml(values, types, styles, column_widths, table, shared)

    out = BytesIO()
    with zipfile.ZipFile(out, "w", zipfile.ZIP_DEFLATED) as zf:
        zf.writestr("[Content_Types].xml", _CONTENT_TYPES_XML)
        zf.writestr("_rels/.rels", _ROOT_RELS_XML)
        zf.writestr("xl/workbook.xml", _WORKBOOK_XML)
        zf.writestr("xl/_rels/workbook.xml.rels", _WORKBOOK_RELS_XML)
        zf.writestr("xl/worksheets/sheet1.xml", sheet_xml)
        zf.writestr("xl/styles.xml", table.to_xml())
        zf.writestr("xl/sharedStrings.xml", shared.to_xml())

    logger.info(
        f"[XLSX] Encoded {values.row_count}x{values.col_count} sheet "
        f"({len(table.xfs)} cell formats, {len(shared.index)} strings)"
    )
    return out.getvalue()
