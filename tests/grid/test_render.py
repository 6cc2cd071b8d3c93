"""Tests for render dispatch and widget metadata reconciliation."""

import sys
from datetime import date
from pathlib import Path

# Add project root to path (tests/grid/ -> tests/ -> project root)
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))

from services.grid_engine import (
    CellRange,
    CheckboxType,
    DateType,
    DropdownType,
    NumericType,
    TypeRegistry,
    dispatch_render,
    format_date_display,
)
from services.grid_engine.render import apply_metadata, reassert_cell_meta, widget_meta_for


class FakeWidget:
    """In-memory stand-in for an on-screen grid."""

    def __init__(self):
        self.meta = {}
        self.renders = 0

    def get_cell_meta(self, row, col):
        return self.meta.get((row, col))

    def set_cell_meta(self, row, col, meta):
        self.meta[(row, col)] = dict(meta)

    def render(self):
        self.renders += 1


class TestDispatch:
    """Checkbox vs. text renderers."""

    def test_checkbox_coerces_without_mutating(self):
        types = TypeRegistry()
        types.set_type(CellRange.cell(0, 0), CheckboxType())
        value = "yes"

        instruction = dispatch_render(types, 0, 0, value)
        assert instruction.renderer == "checkbox"
        assert instruction.checked is True
        assert value == "yes"

    def test_checkbox_falsy_values(self):
        types = TypeRegistry()
        types.set_type(CellRange.cell(0, 0), CheckboxType())
        for value in ("", "no", "false", None, 0, False):
            assert dispatch_render(types, 0, 0, value).checked is False

    def test_untyped_cell_renders_text(self):
        instruction = dispatch_render(TypeRegistry(), 3, 3, 2.0)
        assert instruction.renderer == "text"
        assert instruction.text == "2"

    def test_date_cell_uses_its_pattern(self):
        types = TypeRegistry()
        types.set_type(CellRange.cell(0, 0), DateType(pattern="YYYY-MM-DD"))
        instruction = dispatch_render(types, 0, 0, "2024-01-15T00:00:00.000Z")
        assert instruction == ("text", "2024-01-15", None)

    def test_invalid_numeric_text_renders_as_typed(self):
        types = TypeRegistry()
        types.set_type(CellRange.cell(0, 0), NumericType(pattern="0.00"))
        assert dispatch_render(types, 0, 0, "12abc").text == "12abc"


class TestDateDisplay:
    """format_date_display fallbacks."""

    def test_iso_string(self):
        assert format_date_display("2024-01-15T00:00:00.000Z") == "01/15/2024"

    def test_preformatted_passes_through(self):
        assert format_date_display("1/5/2024") == "1/5/2024"

    def test_epoch_milliseconds(self):
        assert format_date_display(1705276800000) == "01/15/2024"

    def test_date_object(self):
        assert format_date_display(date(2024, 3, 9)) == "03/09/2024"

    def test_unparseable_text_is_kept(self):
        assert format_date_display("next tuesday") == "next tuesday"

    def test_empty(self):
        assert format_date_display("") == ""
        assert format_date_display(None) == ""


class TestWidgetMetadata:
    """The registry is re-asserted into the widget."""

    def test_meta_shapes(self):
        assert widget_meta_for(DropdownType(options=["A"])) == {
            "type": "dropdown", "options": ["A"], "strict": False,
        }
        assert widget_meta_for(NumericType(pattern="0.00"))["numeric_format"] == {
            "pattern": "0.00", "culture": None,
        }
        assert widget_meta_for(DateType()) == {"type": "date", "date_format": "MM/DD/YYYY"}

    def test_reassert_restores_dropped_meta(self):
        types = TypeRegistry()
        types.set_type(CellRange.cell(1, 1), DropdownType(options=["A", "B"]))
        widget = FakeWidget()

        assert reassert_cell_meta(widget, types, 1, 1) is True
        assert widget.meta[(1, 1)]["options"] == ["A", "B"]
        assert reassert_cell_meta(widget, types, 1, 1) is False

        # Widget reset its own cache
        widget.meta[(1, 1)] = {"type": "text"}
        assert reassert_cell_meta(widget, types, 1, 1) is True
        assert widget.meta[(1, 1)]["type"] == "dropdown"

    def test_untyped_cell_matches_empty_widget(self):
        assert reassert_cell_meta(FakeWidget(), TypeRegistry(), 0, 0) is False

    def test_apply_metadata_renders_once(self):
        types = TypeRegistry()
        types.set_type(CellRange.of(0, 0, 1, 1), CheckboxType())
        widget = FakeWidget()

        assert apply_metadata(widget, types.items()) == 4
        assert widget.renders == 1
        assert widget.meta[(1, 0)] == {"type": "checkbox"}
