"""Tests for the CSV codec and its metadata header."""

import base64
import json
import sys
from pathlib import Path

# Add project root to path (tests/grid/ -> tests/ -> project root)
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))

from services.grid_engine import (
    BorderEdge,
    CellRange,
    CellStyle,
    CheckboxType,
    DateType,
    DropdownType,
    NumericType,
    StyleStore,
    TypeRegistry,
    ValueStore,
    decode_csv,
    encode_csv,
)
from services.grid_engine.csv_codec import DEFAULT_ROWS, META_PREFIX


def _header_json(text: str) -> dict:
    first_line = text.split("\n", 1)[0]
    assert first_line.startswith(META_PREFIX)
    return json.loads(base64.b64decode(first_line[len(META_PREFIX):]).decode("utf-8"))


def _header_line(meta: dict) -> str:
    return META_PREFIX + base64.b64encode(json.dumps(meta).encode("utf-8")).decode("ascii")


class TestMetadataRoundTrip:
    """Types survive encode -> decode."""

    def test_dropdown_scenario(self):
        values = ValueStore([["A", "B"], ["1", "2"]])
        types = TypeRegistry()
        types.set_type(CellRange.cell(0, 0), DropdownType(options=["X", "Y"]))

        text = encode_csv(values, types)
        meta = _header_json(text)
        assert meta["cells"]["0-0"] == {"kind": "dropdown", "options": ["X", "Y"]}

        sheet = decode_csv(text)
        assert sheet.values == [["A", "B"], ["1", "2"]]
        assert sheet.types == types

    def test_every_kind_round_trips(self):
        values = ValueStore([["a", "b", "c"], ["1", "2", "3"], ["x", "y", "z"]])
        types = TypeRegistry()
        types.set_type(CellRange.cell(0, 0), DropdownType(options=["one", "two"]))
        types.set_type(CellRange.of(1, 0, 1, 2), NumericType(pattern="0.00"))
        types.set_type(CellRange.cell(2, 0), DateType(pattern="YYYY-MM-DD"))
        types.set_type(CellRange.cell(2, 2), CheckboxType())

        sheet = decode_csv(encode_csv(values, types))
        assert sheet.values == values
        assert sheet.types == types
        assert sheet.types.get(1, 1) == NumericType(pattern="0.00")

    def test_styles_and_widths_round_trip(self):
        values = ValueStore([["a", "b"]])
        styles = StyleStore()
        styles.apply_style(CellRange.cell(0, 0), "bold", True)
        styles.apply_borders(CellRange.cell(0, 1), "all", "thick", "#FF0000")
        widths = {1: 180.0}

        text = encode_csv(values, TypeRegistry(), styles, widths)
        assert _header_json(text)["cells"] == {}

        sheet = decode_csv(text)
        assert sheet.styles == styles
        assert sheet.column_widths == widths

    def test_no_header_without_metadata(self):
        text = encode_csv(ValueStore([["a", "b"], ["1", "2"]]))
        assert text == "a,b\n1,2"


class TestSpecialCharacters:
    """Quoting on encode and the simplified unquoting on decode."""

    def test_quote_and_comma_value(self):
        original = 'He said "hi", ok'
        text = encode_csv(ValueStore([[original, "x"]]))
        assert text == '"He said ""hi"", ok",x'

        sheet = decode_csv(text)
        # One surrounding quote layer is removed; doubled quotes stay doubled.
        assert sheet.values.get(0, 0) == 'He said ""hi"", ok'
        assert sheet.values.get(0, 1) == "x"

    def test_comma_only_value_round_trips(self):
        text = encode_csv(ValueStore([["Smith, John", "42"]]))
        assert decode_csv(text).values == [["Smith, John", "42"]]

    def test_quoted_newline_stays_in_one_record(self):
        text = encode_csv(ValueStore([["line1\nline2", "b"], ["c", "d"]]))
        assert decode_csv(text).values == [["line1\nline2", "b"], ["c", "d"]]

    def test_crlf_line_endings(self):
        assert decode_csv("a,b\r\n1,2\r\n").values == [["a", "b"], ["1", "2"]]


class TestCorruptInput:
    """Bad headers and empty bodies never raise."""

    def test_corrupt_header_is_kept_as_data(self):
        sheet = decode_csv(META_PREFIX + "!!!not-base64\na,b")
        assert len(sheet.types) == 0
        assert sheet.values == [[META_PREFIX + "!!!not-base64"], ["a", "b"]]

    def test_header_without_cells_is_ignored(self):
        line = _header_line({"something": 1})
        sheet = decode_csv(line + "\na,b")
        assert len(sheet.types) == 0
        assert sheet.values.row_count == 2

    def test_bad_entries_are_skipped(self):
        line = _header_line({
            "cells": {
                "0-0": {"kind": "dropdown", "options": []},
                "zz": {"kind": "checkbox"},
                "0-1": {"kind": "checkbox"},
            }
        })
        sheet = decode_csv(line + "\na,b")
        assert sheet.types.get(0, 0) is None
        assert sheet.types.get(0, 1) == CheckboxType()
        assert len(sheet.types) == 1

    def test_empty_text_gives_default_document(self):
        assert decode_csv("").values == DEFAULT_ROWS
        assert decode_csv("  \n \n").values == DEFAULT_ROWS
        assert decode_csv(",,\n,,").values == DEFAULT_ROWS

    def test_blank_rows_are_dropped(self):
        assert decode_csv("a,b\n,\n1,2\n").values == [["a", "b"], ["1", "2"]]

    def test_byte_order_mark_is_stripped(self):
        assert decode_csv("\ufeffa,b").values == [["a", "b"]]


class TestLegacyHeader:
    """Older header entries carry type/className/styles."""

    def test_legacy_entries_are_converted(self):
        line = _header_line({
            "cells": {
                "0-0": {"type": "dropdown", "source": ["X", "Y"]},
                "0-1": {"type": "numeric", "numericFormat": {"pattern": "0.00", "culture": "en-US"}},
                "1-0": {
                    "className": "ht-bold ht-align-center",
                    "styles": {"borderTop": "2px solid #ff0000", "fontSize": "16px"},
                },
            }
        })
        sheet = decode_csv(line + "\na,b\nc,d")

        assert sheet.types.get(0, 0) == DropdownType(options=["X", "Y"])
        assert sheet.types.get(0, 1) == NumericType(pattern="0.00", culture="en-US")
        assert sheet.types.get(1, 0) is None
        assert sheet.styles.get(1, 0) == CellStyle(
            bold=True,
            align="center",
            font_size_px=16,
            border_top=BorderEdge(width_px=2, style="solid", color="#ff0000"),
        )
