"""XLSX Parser - reads the first worksheet into a DecodedSheet.

Captures:
- Cell values (shared/inline/rich strings, numbers, booleans, dates, formulas)
- Logical types (date, checkbox, numeric from number formats, dropdown from
  list data validations)
- Font flags, font size/color, solid fills, horizontal alignment, borders
- Column widths
"""

from __future__ import annotations

import logging
import re
import zipfile
from datetime import datetime
from io import BytesIO
from typing import Any, Dict, List, Optional, Tuple
from xml.etree import ElementTree as ET

from .formats import (
    BUILTIN_DATE_FORMAT_IDS,
    BUILTIN_NUMBER_FORMATS,
    argb_to_css,
    excel_to_numeric_pattern,
    is_date_format,
    parse_date_value,
    serial_to_datetime,
    to_iso_string,
)
from .schemas import (
    DEFAULT_DATE_PATTERN,
    BorderEdge,
    CellRange,
    CellStyle,
    CheckboxType,
    DateType,
    DropdownType,
    NumericType,
)
from .sheet import DecodedSheet


logger = logging.getLogger(__name__)


# =============================================================================
# NAMESPACES
# =============================================================================

NS = {
    "main": "http://schemas.openxmlformats.org/spreadsheetml/2006/main",
    "r": "http://schemas.openxmlformats.org/officeDocument/2006/relationships",
    "rel": "http://schemas.openxmlformats.org/package/2006/relationships",
}

for prefix, uri in NS.items():
    ET.register_namespace(prefix if prefix != "main" else "", uri)

# Character width -> pixel width
PX_PER_CHAR = 7


class WorkbookDecodeError(ValueError):
    """Raised when workbook bytes cannot be read as a spreadsheet."""


# =============================================================================
# UTILITIES
# =============================================================================

def col_letter_to_index(col: str) -> int:
    """Convert column letter(s) to 1-indexed number. A=1, B=2, ..., Z=26, AA=27."""
    result = 0
    for char in col.upper():
        result = result * 26 + (ord(char) - ord('A') + 1)
    return result


def col_index_to_letter(index: int) -> str:
    """Convert 1-indexed column number to letter(s). 1=A, 2=B, ..., 27=AA."""
    result = ""
    while index > 0:
        index -= 1
        result = chr(ord('A') + (index % 26)) + result
        index //= 26
    return result


def parse_cell_ref(ref: str) -> Tuple[int, int]:
    """Parse 'B3' (or '$B$3') into 0-indexed (row, col)."""
    match = re.match(r'^\$?([A-Z]+)\$?(\d+)$', ref.strip().upper())
    if not match:
        raise ValueError(f"Invalid cell reference: {ref}")
    return int(match.group(2)) - 1, col_letter_to_index(match.group(1)) - 1


def cell_ref(row: int, col: int) -> str:
    """0-indexed (row, col) -> 'A1'-style reference."""
    return f"{col_index_to_letter(col + 1)}{row + 1}"


def parse_sqref(sqref: str) -> List[CellRange]:
    """Parse a space-separated list like 'A1 B2:C4' into ranges."""
    ranges: List[CellRange] = []
    for part in sqref.split():
        try:
            if ":" in part:
                start, end = part.split(":", 1)
                r1, c1 = parse_cell_ref(start)
                r2, c2 = parse_cell_ref(end)
                ranges.append(CellRange.of(r1, c1, r2, c2))
            else:
                r, c = parse_cell_ref(part)
                ranges.append(CellRange.cell(r, c))
        except ValueError:
            continue
    return ranges


def _text_of(el: Optional[ET.Element]) -> str:
    """Plain or rich (<r><t>) text of a <si>/<is> element."""
    if el is None:
        return ""
    ns = NS["main"]
    t_el = el.find(f"{{{ns}}}t")
    if t_el is not None:
        return t_el.text or ""
    return "".join(t.text or "" for t in el.iter(f"{{{ns}}}t"))


# =============================================================================
# WORKBOOK PARTS
# =============================================================================

def _first_sheet_path(zf: zipfile.ZipFile) -> Tuple[str, bool]:
    """Resolve the first worksheet's part name and the 1904 date flag."""
    ns = NS["main"]
    root = ET.fromstring(zf.read("xl/workbook.xml"))

    pr = root.find(f"{{{ns}}}workbookPr")
    date1904 = pr is not None and pr.get("date1904") in ("1", "true")

    sheet_el = root.find(f"{{{ns}}}sheets/{{{ns}}}sheet")
    if sheet_el is None:
        raise WorkbookDecodeError("Workbook has no sheets")
    rid = sheet_el.get(f"{{{NS['r']}}}id")

    try:
        rels = ET.fromstring(zf.read("xl/_rels/workbook.xml.rels"))
        for rel in rels.findall(f"{{{NS['rel']}}}Relationship"):
            if rel.get("Id") == rid:
                target = rel.get("Target", "")
                if target.startswith("/"):
                    return target.lstrip("/"), date1904
                return f"xl/{target}", date1904
    except KeyError:
        pass
    return "xl/worksheets/sheet1.xml", date1904


def _parse_shared_strings(zf: zipfile.ZipFile) -> List[str]:
    try:
        root = ET.fromstring(zf.read("xl/sharedStrings.xml"))
    except KeyError:
        return []  # No shared strings
    return [_text_of(si) for si in root.findall(f"{{{NS['main']}}}si")]


def _parse_styles(zf: zipfile.ZipFile) -> Dict[str, Any]:
    """Parse fonts, fills, borders, cellXfs and numFmts from styles.xml."""
    tables: Dict[str, Any] = {"fonts": [], "fills": [], "borders": [], "cell_xfs": [], "number_formats": {}}
    try:
        root = ET.fromstring(zf.read("xl/styles.xml"))
    except KeyError:
        return tables  # No styles
    ns = NS["main"]

    fonts_el = root.find(f"{{{ns}}}fonts")
    if fonts_el is not None:
        for font_el in fonts_el.findall(f"{{{ns}}}font"):
            font: Dict[str, Any] = {}
            for tag, key in (("b", "bold"), ("i", "italic"), ("u", "underline")):
                flag_el = font_el.find(f"{{{ns}}}{tag}")
                if flag_el is not None and flag_el.get("val", "1") not in ("0", "false", "none"):
                    font[key] = True
            sz_el = font_el.find(f"{{{ns}}}sz")
            if sz_el is not None and sz_el.get("val"):
                font["size"] = float(sz_el.get("val"))
            color_el = font_el.find(f"{{{ns}}}color")
            if color_el is not None:
                font["color"] = color_el.get("rgb")
            tables["fonts"].append(font)

    fills_el = root.find(f"{{{ns}}}fills")
    if fills_el is not None:
        for fill_el in fills_el.findall(f"{{{ns}}}fill"):
            fill: Dict[str, Any] = {}
            pattern_el = fill_el.find(f"{{{ns}}}patternFill")
            if pattern_el is not None:
                fill["patternType"] = pattern_el.get("patternType")
                fg = pattern_el.find(f"{{{ns}}}fgColor")
                if fg is not None:
                    fill["fgColor"] = fg.get("rgb")
            tables["fills"].append(fill)

    borders_el = root.find(f"{{{ns}}}borders")
    if borders_el is not None:
        for border_el in borders_el.findall(f"{{{ns}}}border"):
            border: Dict[str, Any] = {}
            for side in ("left", "right", "top", "bottom"):
                side_el = border_el.find(f"{{{ns}}}{side}")
                if side_el is not None and side_el.get("style") and side_el.get("style") != "none":
                    color_el = side_el.find(f"{{{ns}}}color")
                    border[side] = {
                        "style": side_el.get("style"),
                        "color": color_el.get("rgb") if color_el is not None else None,
                    }
            tables["borders"].append(border)

    cell_xfs_el = root.find(f"{{{ns}}}cellXfs")
    if cell_xfs_el is not None:
        for xf in cell_xfs_el.findall(f"{{{ns}}}xf"):
            xf_dict = {
                "fontId": int(xf.get("fontId", 0)),
                "fillId": int(xf.get("fillId", 0)),
                "borderId": int(xf.get("borderId", 0)),
                "numFmtId": int(xf.get("numFmtId", 0)),
            }
            alignment_el = xf.find(f"{{{ns}}}alignment")
            if alignment_el is not None:
                xf_dict["horizontal"] = alignment_el.get("horizontal")
            tables["cell_xfs"].append(xf_dict)

    num_fmts_el = root.find(f"{{{ns}}}numFmts")
    if num_fmts_el is not None:
        for num_fmt in num_fmts_el.findall(f"{{{ns}}}numFmt"):
            tables["number_formats"][int(num_fmt.get("numFmtId", 0))] = num_fmt.get("formatCode", "")

    return tables


def _number_format(style_index: int, tables: Dict[str, Any]) -> Tuple[int, Optional[str]]:
    xfs = tables["cell_xfs"]
    if style_index <= 0 or style_index >= len(xfs):
        return 0, None
    fmt_id = xfs[style_index]["numFmtId"]
    code = tables["number_formats"].get(fmt_id) or BUILTIN_NUMBER_FORMATS.get(fmt_id)
    return fmt_id, code


def _build_cell_style(style_index: int, tables: Dict[str, Any]) -> Optional[CellStyle]:
    """Translate a cellXfs entry into a CellStyle (None for the default style)."""
    xfs = tables["cell_xfs"]
    if style_index <= 0 or style_index >= len(xfs):
        return None
    xf = xfs[style_index]
    attrs: Dict[str, Any] = {}

    # Font 0 is the workbook default; only explicit fonts carry attributes
    default_size = tables["fonts"][0].get("size") if tables["fonts"] else None
    font_id = xf["fontId"]
    if 0 < font_id < len(tables["fonts"]):
        font = tables["fonts"][font_id]
        for key in ("bold", "italic", "underline"):
            if font.get(key):
                attrs[key] = True
        if font.get("size") and font["size"] != default_size:
            attrs["font_size_px"] = font["size"]
        color = argb_to_css(font.get("color"))
        if color:
            attrs["color"] = color

    fill_id = xf["fillId"]
    if 0 <= fill_id < len(tables["fills"]):
        fill = tables["fills"][fill_id]
        color = argb_to_css(fill.get("fgColor"))
        if fill.get("patternType") == "solid" and color:
            attrs["background_color"] = color

    if xf.get("horizontal") in ("left", "center", "right"):
        attrs["align"] = xf["horizontal"]

    border_id = xf["borderId"]
    if 0 <= border_id < len(tables["borders"]):
        for side, edge in tables["borders"][border_id].items():
            attrs[f"border_{side}"] = BorderEdge(
                width_px=2 if edge["style"] == "thick" else 1,
                style="dashed" if edge["style"] == "dashed" else "solid",
                color=argb_to_css(edge.get("color")),
            )

    return CellStyle(**attrs) if attrs else None


# =============================================================================
# WORKSHEET PARSING
# =============================================================================

def _resolve_value(c: ET.Element, shared: List[str], is_date_fmt: bool, date1904: bool) -> Any:
    """Scalar value of a <c> element.

    Formula cells yield their cached result, or "=<formula>" without one.
    Numbers under a date format come back as datetime.
    """
    ns = NS["main"]
    cell_type = c.get("t", "n")
    v_el = c.find(f"{{{ns}}}v")
    raw = v_el.text if v_el is not None else None

    if cell_type == "inlineStr":
        return _text_of(c.find(f"{{{ns}}}is"))

    if raw is None:
        f_el = c.find(f"{{{ns}}}f")
        if f_el is not None and f_el.text:
            return f"={f_el.text}"
        return ""

    if cell_type == "s":
        try:
            return shared[int(raw)]
        except (ValueError, IndexError):
            return ""
    if cell_type == "b":
        return raw.strip() in ("1", "true")
    if cell_type == "d":
        return parse_date_value(raw) or raw
    if cell_type in ("str", "e"):
        return raw

    try:
        number = float(raw)
    except ValueError:
        return raw
    if is_date_fmt:
        try:
            return serial_to_datetime(number, date1904)
        except OverflowError:
            return number
    return int(number) if number.is_integer() and "." not in raw and "E" not in raw.upper() else number


def _parse_data_validations(sheet_el: ET.Element) -> List[Tuple[List[CellRange], List[str]]]:
    """Literal list validations ('"A,B,C"') as (ranges, options)."""
    ns = NS["main"]
    results: List[Tuple[List[CellRange], List[str]]] = []
    dv_el = sheet_el.find(f"{{{ns}}}dataValidations")
    if dv_el is None:
        return results

    for dv in dv_el.findall(f"{{{ns}}}dataValidation"):
        if dv.get("type") != "list":
            continue
        formula1_el = dv.find(f"{{{ns}}}formula1")
        if formula1_el is None or not formula1_el.text or dv.find(f"{{{ns}}}formula2") is not None:
            continue
        match = re.match(r'^"(.*)"$', formula1_el.text.strip(), re.DOTALL)
        if not match:
            continue  # Range or named reference
        options = [opt.strip() for opt in match.group(1).replace('""', '"').split(",")]
        options = [opt for opt in options if opt]
        if options:
            results.append((parse_sqref(dv.get("sqref", "")), options))
    return results


def _parse_column_widths(sheet_el: ET.Element, col_count: int) -> Dict[int, float]:
    ns = NS["main"]
    widths: Dict[int, float] = {}
    cols_el = sheet_el.find(f"{{{ns}}}cols")
    if cols_el is None:
        return widths
    for col_el in cols_el.findall(f"{{{ns}}}col"):
        if not col_el.get("width"):
            continue
        first = int(col_el.get("min", 1)) - 1
        last = min(int(col_el.get("max", first + 1)) - 1, col_count - 1)
        for col in range(first, last + 1):
            widths[col] = round(float(col_el.get("width")) * PX_PER_CHAR, 2)
    return widths


def parse_sheet(sheet_el: ET.Element, shared: List[str], tables: Dict[str, Any], date1904: bool = False) -> DecodedSheet:
    """Build a DecodedSheet from a <worksheet> element."""
    ns = NS["main"]
    sheet = DecodedSheet()
    sheet_data = sheet_el.find(f"{{{ns}}}sheetData")
    if sheet_data is None:
        return sheet

    next_row = 0
    for row_el in sheet_data.findall(f"{{{ns}}}row"):
        row = int(row_el.get("r")) - 1 if row_el.get("r") else next_row
        next_row = row + 1
        next_col = 0
        for c in row_el.findall(f"{{{ns}}}c"):
            if c.get("r"):
                _, col = parse_cell_ref(c.get("r"))
            else:
                col = next_col
            next_col = col + 1

            style_index = int(c.get("s", 0))
            fmt_id, fmt_code = _number_format(style_index, tables)
            date_fmt = fmt_id in BUILTIN_DATE_FORMAT_IDS or is_date_format(fmt_code)
            value = _resolve_value(c, shared, date_fmt, date1904)
            target = CellRange.cell(row, col)

            if isinstance(value, datetime):
                sheet.values.set(row, col, to_iso_string(value))
                sheet.types.set_type(target, DateType(pattern=DEFAULT_DATE_PATTERN))
            elif isinstance(value, bool):
                sheet.values.set(row, col, value)
                sheet.types.set_type(target, CheckboxType())
            else:
                sheet.values.set(row, col, value)
                if date_fmt and isinstance(value, str) and value and not value.startswith("="):
                    sheet.types.set_type(target, DateType(pattern=DEFAULT_DATE_PATTERN))
                elif value != "" and fmt_code and fmt_code not in ("General", "@"):
                    sheet.types.set_type(target, NumericType(pattern=excel_to_numeric_pattern(fmt_code)))

            style = _build_cell_style(style_index, tables)
            if style is not None:
                sheet.styles.set(row, col, style)

    # Validations only attach to the populated part of the sheet
    row_limit = sheet.values.row_count - 1
    col_limit = sheet.values.col_count - 1
    for ranges, options in _parse_data_validations(sheet_el):
        dropdown = DropdownType(options=options)
        for cell_range in ranges:
            if cell_range.start_row > row_limit or cell_range.start_col > col_limit:
                continue
            clipped = CellRange.of(
                cell_range.start_row,
                cell_range.start_col,
                min(cell_range.end_row, row_limit),
                min(cell_range.end_col, col_limit),
            )
            sheet.types.set_type(clipped, dropdown)

    sheet.column_widths = _parse_column_widths(sheet_el, sheet.values.col_count)
    return sheet


def xlsx_to_sheet(data: bytes) -> DecodedSheet:
    """Decode XLSX bytes (first sheet only).

    Raises WorkbookDecodeError for anything that is not a readable workbook.
    """
    try:
        with zipfile.ZipFile(BytesIO(data)) as zf:
            sheet_path, date1904 = _first_sheet_path(zf)
            shared = _parse_shared_strings(zf)
            tables = _parse_styles(zf)
            sheet_el = ET.fromstring(zf.read(sheet_path))
            sheet = parse_sheet(sheet_el, shared, tables, date1904)
    except WorkbookDecodeError:
        raise
    except (zipfile.BadZipFile, KeyError, ET.ParseError, ValueError) as e:
        raise WorkbookDecodeError(f"Failed to read workbook: {e}") from e

    logger.info(
        f"[XLSX] Decoded {sheet.values.row_count}x{sheet.values.col_count} sheet, "
        f"{len(sheet.types)} typed cells, {len(sheet.styles)} styled cells"
    )
    return sheet
