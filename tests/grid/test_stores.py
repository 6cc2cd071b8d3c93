"""Tests for the in-memory grid stores.

Covers:
- Value store reads/writes and structural edits
- Type registry exclusivity, dropdown guards, presets
- Style store pruning, alignment exclusivity, toggles, borders, font size
"""

import sys
from pathlib import Path

# Add project root to path (tests/grid/ -> tests/ -> project root)
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))

import pytest

from services.grid_engine import (
    BorderEdge,
    BorderOption,
    BorderWeight,
    CellCoord,
    CellRange,
    CellStyle,
    CheckboxType,
    DateType,
    DropdownType,
    NumericType,
    StyleStore,
    TextType,
    TypeRegistry,
    ValueStore,
    parse_option_text,
)
from services.grid_engine.cell_map import CellMap


class TestCellRange:
    """Range normalization."""

    def test_reversed_range_is_normalized(self):
        r = CellRange.of(3, 4, 1, 2)
        assert (r.start_row, r.start_col, r.end_row, r.end_col) == (1, 2, 3, 4)

    def test_coords_are_row_major(self):
        coords = list(CellRange.of(0, 0, 1, 1).coords())
        assert coords == [CellCoord(0, 0), CellCoord(0, 1), CellCoord(1, 0), CellCoord(1, 1)]

    def test_coord_key_roundtrip(self):
        assert CellCoord(12, 3).key() == "12-3"
        assert CellCoord.from_key("12-3") == CellCoord(12, 3)
        with pytest.raises(ValueError):
            CellCoord.from_key("a-b")


class TestValueStore:
    """Raw value grid."""

    def test_missing_cells_read_as_empty_string(self):
        store = ValueStore([["a"], ["b", "c"]])
        assert store.get(0, 1) == ""
        assert store.get(9, 9) == ""
        assert store.to_rectangular() == [["a", ""], ["b", "c"]]

    def test_set_grows_grid(self):
        store = ValueStore()
        store.set(2, 1, "x")
        assert store.row_count == 3
        assert store.get(2, 1) == "x"

    def test_values_are_not_coerced(self):
        store = ValueStore()
        store.set(0, 0, "12abc")
        assert store.get(0, 0) == "12abc"

    def test_insert_and_delete_rows(self):
        store = ValueStore([["1"], ["2"]])
        store.insert_rows(1, 1)
        assert store.to_rows() == [["1"], [""], ["2"]]
        store.delete_rows(0, 2)
        assert store.to_rows() == [["2"]]

    def test_insert_and_delete_cols(self):
        store = ValueStore([["a", "b"], ["c", "d"]])
        store.insert_cols(1, 1)
        assert store.to_rows() == [["a", "", "b"], ["c", "", "d"]]
        store.delete_cols(0, 2)
        assert store.to_rows() == [["b"], ["d"]]

    def test_clear_does_not_grow(self):
        store = ValueStore([["a", "b"]])
        store.clear(CellRange.of(0, 0, 5, 5))
        assert store.to_rows() == [["", ""]]


class TestCellMap:
    """Row/column shifting of sparse entries."""

    def test_shift_rows_moves_and_deletes(self):
        m = CellMap({CellCoord(0, 0): "a", CellCoord(1, 0): "b", CellCoord(3, 0): "c"})
        m.shift_rows(1, -2)
        assert m.to_dict() == {CellCoord(0, 0): "a", CellCoord(1, 0): "c"}

    def test_shift_cols_inserts(self):
        m = CellMap({CellCoord(0, 0): "a", CellCoord(0, 1): "b"})
        m.shift_cols(1, 2)
        assert m.to_dict() == {CellCoord(0, 0): "a", CellCoord(0, 3): "b"}


class TestTypeRegistry:
    """Logical cell types."""

    def test_default_is_text(self):
        assert TypeRegistry().get_effective_type(4, 4) == TextType()

    def test_set_type_applies_to_whole_range(self):
        registry = TypeRegistry()
        registry.set_type(CellRange.of(0, 0, 1, 1), CheckboxType())
        assert len(registry) == 4
        assert all(isinstance(t, CheckboxType) for _, t in registry.items())

    def test_dropdown_replaces_numeric(self):
        registry = TypeRegistry()
        cell = CellRange.cell(0, 0)
        registry.set_type(cell, NumericType(pattern="$0,0.00", culture="en-US"))
        registry.set_type(cell, DropdownType(options=["A", "B"]))

        effective = registry.get_effective_type(0, 0)
        assert effective == DropdownType(options=["A", "B"])
        assert not hasattr(effective, "pattern")
        assert "pattern" not in effective.model_dump()

    def test_numeric_replaces_dropdown(self):
        registry = TypeRegistry()
        cell = CellRange.cell(0, 0)
        registry.set_type(cell, DropdownType(options=["A"]))
        registry.set_type(cell, DateType(pattern="YYYY-MM-DD"))
        assert registry.get_effective_type(0, 0) == DateType(pattern="YYYY-MM-DD")

    def test_empty_dropdown_options_is_noop(self):
        registry = TypeRegistry()
        cell = CellRange.cell(0, 0)
        registry.set_type(cell, NumericType(pattern="0.00"))

        assert registry.set_dropdown(cell, "  ,  , ") is False
        assert registry.get_effective_type(0, 0) == NumericType(pattern="0.00")

    def test_dropdown_model_rejects_empty_options(self):
        with pytest.raises(ValueError):
            DropdownType(options=["", "  "])

    def test_option_text_is_split_and_trimmed(self):
        assert parse_option_text(" Red, Green ,,Blue ") == ["Red", "Green", "Blue"]

    def test_clear_type_returns_cells_to_text(self):
        registry = TypeRegistry()
        registry.set_type(CellRange.of(0, 0, 0, 2), CheckboxType())
        registry.clear_type(CellRange.cell(0, 1))
        assert registry.get(0, 1) is None
        assert registry.get_effective_type(0, 1) == TextType()
        assert len(registry) == 2

    def test_presets(self):
        registry = TypeRegistry()
        registry.apply_preset(CellRange.cell(0, 0), "currency")
        registry.apply_preset(CellRange.cell(0, 1), "percentage")
        registry.apply_preset(CellRange.cell(0, 2), "date")
        assert registry.get(0, 0).pattern == "$0,0.00"
        assert registry.get(0, 1).pattern == "0.00%"
        assert registry.get(0, 2) == DateType(pattern="MM/DD/YYYY")
        with pytest.raises(ValueError):
            registry.apply_preset(CellRange.cell(0, 3), "roman")

    def test_new_option_is_added_to_column(self):
        registry = TypeRegistry()
        registry.set_type(CellRange.of(0, 1, 2, 1), DropdownType(options=["Open", "Closed"]))
        registry.set_type(CellRange.cell(0, 2), DropdownType(options=["Other"]))

        assert registry.add_dropdown_option(1, "Blocked") is True
        for row in range(3):
            assert registry.get(row, 1).options == ["Blocked", "Closed", "Open"]
        assert registry.get(0, 2).options == ["Other"]


class TestStyleStore:
    """Visual style commands."""

    def test_apply_and_clear_prunes_empty_styles(self):
        store = StyleStore()
        cell = CellRange.cell(1, 1)
        store.apply_style(cell, "color", "#FF0000")
        assert store.get(1, 1) == CellStyle(color="#FF0000")

        store.clear_style(cell, "color")
        assert store.get(1, 1) is None
        assert len(store) == 0

    def test_unknown_property_raises_before_mutation(self):
        store = StyleStore()
        with pytest.raises(ValueError):
            store.apply_style(CellRange.cell(0, 0), "blink", True)
        with pytest.raises(ValueError):
            store.apply_style(CellRange.cell(0, 0), "align", "justify")
        assert len(store) == 0

    def test_alignment_is_exclusive(self):
        store = StyleStore()
        cell = CellRange.cell(0, 0)
        store.toggle_class(cell, "align-left")
        store.toggle_class(cell, "align-right")
        assert store.get(0, 0).align == "right"
        store.toggle_class(cell, "align-right")
        assert store.get(0, 0).align == "right"

    def test_toggle_bold_over_range(self):
        store = StyleStore()
        cells = CellRange.of(0, 0, 0, 1)
        store.apply_style(CellRange.cell(0, 0), "bold", True)

        store.toggle_class(cells, "bold")
        assert store.get(0, 0).bold and store.get(0, 1).bold

        store.toggle_class(cells, "bold")
        assert store.get(0, 0) is None and store.get(0, 1) is None

    def test_set_flag_is_idempotent(self):
        store = StyleStore()
        cells = CellRange.of(0, 0, 0, 1)
        store.set_flag(cells, "italic", True)
        store.set_flag(cells, "italic", True)
        assert store.get(0, 0).italic and store.get(0, 1).italic

        store.set_flag(cells, "italic", False)
        store.set_flag(cells, "italic", False)
        assert len(store) == 0

        with pytest.raises(ValueError):
            store.set_flag(cells, "align-left", True)

    def test_apply_is_idempotent(self):
        store = StyleStore()
        cells = CellRange.of(0, 0, 2, 2)
        store.apply_style(cells, "background_color", "#00FF00")
        store.apply_borders(cells, "outer", "thick")
        snapshot = store.to_dict()
        store.apply_style(cells, "background_color", "#00FF00")
        store.apply_borders(cells, "outer", "thick")
        assert store.to_dict() == snapshot

    @pytest.mark.parametrize(
        "option,expected",
        [
            ("all", {"top", "right", "bottom", "left"}),
            ("outer", {"top", "right", "bottom", "left"}),
            ("inner", set()),
            ("top", {"top"}),
            ("right", {"right"}),
            ("bottom", {"bottom"}),
            ("left", {"left"}),
            ("none", set()),
        ],
    )
    def test_border_matrix_single_cell(self, option, expected):
        store = StyleStore()
        store.apply_borders(CellRange.cell(0, 0), option)
        style = store.get(0, 0)
        edges = set(style.edges()) if style else set()
        assert edges == expected

    def test_none_clears_existing_edges(self):
        store = StyleStore()
        cell = CellRange.cell(0, 0)
        store.apply_borders(cell, BorderOption.ALL)
        store.apply_style(cell, "bold", True)
        store.apply_borders(cell, BorderOption.NONE)
        assert store.get(0, 0) == CellStyle(bold=True)

    def test_inner_borders_on_block(self):
        store = StyleStore()
        store.apply_borders(CellRange.of(0, 0, 1, 1), "inner")
        assert set(store.get(0, 0).edges()) == {"right", "bottom"}
        assert set(store.get(1, 1).edges()) == {"top", "left"}

    def test_outer_borders_on_block(self):
        store = StyleStore()
        store.apply_borders(CellRange.of(0, 0, 2, 2), "outer")
        assert store.get(1, 1) is None
        assert set(store.get(0, 0).edges()) == {"top", "left"}
        assert set(store.get(2, 1).edges()) == {"bottom"}

    def test_border_weights(self):
        store = StyleStore()
        store.apply_borders(CellRange.cell(0, 0), "top", BorderWeight.THICK)
        store.apply_borders(CellRange.cell(0, 1), "top", "dashed")
        assert store.get(0, 0).border_top == BorderEdge(width_px=2, style="solid", color="#000000")
        assert store.get(0, 1).border_top == BorderEdge(width_px=1, style="dashed", color="#000000")

    def test_font_size_is_clamped(self):
        store = StyleStore()
        cell = CellRange.cell(0, 0)
        store.step_font_size(cell, 1)
        assert store.get(0, 0).font_size_px == 14
        store.step_font_size(cell, 500)
        assert store.get(0, 0).font_size_px == 72
        store.step_font_size(cell, -500)
        assert store.get(0, 0).font_size_px == 6
