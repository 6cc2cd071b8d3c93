"""Cell Style Store - per-cell visual attributes.

Style commands act on a rectangular range and are atomic: the value is
validated once before any cell is touched. Empty styles are pruned.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Set, Tuple, Union

from pydantic import ValidationError

from .cell_map import CellMap
from .schemas import (
    EDGE_SIDES,
    STYLE_PROPERTIES,
    BorderEdge,
    BorderOption,
    BorderWeight,
    CellCoord,
    CellRange,
    CellStyle,
)


logger = logging.getLogger(__name__)

DEFAULT_FONT_SIZE_PX = 13
MIN_FONT_SIZE_PX = 6
MAX_FONT_SIZE_PX = 72
DEFAULT_BORDER_COLOR = "#000000"

TOGGLE_FLAGS = ("bold", "italic", "underline")
ALIGN_TOGGLES = {
    "align-left": "left",
    "align-center": "center",
    "align-right": "right",
}

BORDER_EDGES = {
    BorderWeight.THIN: BorderEdge(width_px=1, style="solid"),
    BorderWeight.THICK: BorderEdge(width_px=2, style="solid"),
    BorderWeight.DASHED: BorderEdge(width_px=1, style="dashed"),
}


def _edges_for(option: BorderOption, cell_range: CellRange, coord: CellCoord) -> Set[str]:
    """Which sides of ``coord`` a border option draws."""
    on_top = coord.row == cell_range.start_row
    on_bottom = coord.row == cell_range.end_row
    on_left = coord.col == cell_range.start_col
    on_right = coord.col == cell_range.end_col

    if option == BorderOption.ALL:
        return set(EDGE_SIDES)
    if option in (BorderOption.OUTER, BorderOption.THICK_OUTER, BorderOption.DASHED_OUTER):
        sides = set()
        if on_top:
            sides.add("top")
        if on_bottom:
            sides.add("bottom")
        if on_left:
            sides.add("left")
        if on_right:
            sides.add("right")
        return sides
    if option == BorderOption.INNER:
        sides = set()
        if not on_top:
            sides.add("top")
        if not on_bottom:
            sides.add("bottom")
        if not on_left:
            sides.add("left")
        if not on_right:
            sides.add("right")
        return sides
    if option == BorderOption.TOP:
        return {"top"} if on_top else set()
    if option == BorderOption.BOTTOM:
        return {"bottom"} if on_bottom else set()
    if option == BorderOption.LEFT:
        return {"left"} if on_left else set()
    if option == BorderOption.RIGHT:
        return {"right"} if on_right else set()
    return set()


class StyleStore:
    """Sparse map of CellStyle records."""

    def __init__(self, entries: Optional[Dict[CellCoord, CellStyle]] = None):
        self._styles: CellMap[CellStyle] = CellMap()
        for coord, style in (entries or {}).items():
            self._put(coord, style)

    def get(self, row: int, col: int) -> Optional[CellStyle]:
        return self._styles.get(CellCoord(row, col))

    def set(self, row: int, col: int, style: CellStyle) -> None:
        self._put(CellCoord(row, col), style)

    def _put(self, coord: CellCoord, style: CellStyle) -> None:
        if style.is_empty():
            self._styles.pop(coord)
        else:
            self._styles.set(coord, style)

    def _update(self, coord: CellCoord, changes: Dict[str, Any]) -> None:
        current = self._styles.get(coord) or CellStyle()
        self._put(coord, current.model_copy(update=changes))

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    def apply_style(self, cell_range: CellRange, prop: str, value: Any) -> None:
        """Set one style property on every cell in the range.

        Raises ValueError for unknown properties or invalid values.
        """
        if prop not in STYLE_PROPERTIES:
            raise ValueError(f"Unknown style property: {prop}")
        if value is None:
            self.clear_style(cell_range, prop)
            return
        try:
            value = getattr(CellStyle.model_validate({prop: value}), prop)
        except ValidationError as e:
            raise ValueError(f"Invalid value for {prop}: {value!r}") from e
        for coord in cell_range.coords():
            self._update(coord, {prop: value})

    def clear_style(self, cell_range: CellRange, prop: str) -> None:
        if prop not in STYLE_PROPERTIES:
            raise ValueError(f"Unknown style property: {prop}")
        for coord in cell_range.coords():
            if coord in self._styles:
                self._update(coord, {prop: None})

    def toggle_class(self, cell_range: CellRange, style_name: str) -> None:
        """Toggle bold/italic/underline, or set one of the alignment variants.

        A flag toggle turns the flag off when every cell in the range already
        has it, otherwise turns it on everywhere.
        """
        if style_name in ALIGN_TOGGLES:
            self.set_alignment(cell_range, ALIGN_TOGGLES[style_name])
            return
        if style_name not in TOGGLE_FLAGS:
            raise ValueError(f"Unknown style class: {style_name}")
        coords = list(cell_range.coords())
        all_on = all(getattr(self._styles.get(c) or CellStyle(), style_name) for c in coords)
        for coord in coords:
            self._update(coord, {style_name: None if all_on else True})

    def set_flag(self, cell_range: CellRange, style_name: str, on: bool) -> None:
        """Force bold/italic/underline on or off across the range."""
        if style_name not in TOGGLE_FLAGS:
            raise ValueError(f"Unknown style flag: {style_name}")
        for coord in cell_range.coords():
            self._update(coord, {style_name: True if on else None})

    def set_alignment(self, cell_range: CellRange, align: Optional[str]) -> None:
        if align is None:
            self.clear_style(cell_range, "align")
        else:
            self.apply_style(cell_range, "align", align)

    def apply_borders(
        self,
        cell_range: CellRange,
        option: Union[BorderOption, str],
        weight: Union[BorderWeight, str] = BorderWeight.THIN,
        color: Optional[str] = None,
    ) -> None:
        """Draw (or with "none", remove) borders across the selection."""
        option = BorderOption(option)
        weight = BorderWeight(weight)
        if option == BorderOption.THICK_OUTER:
            weight = BorderWeight.THICK
        elif option == BorderOption.DASHED_OUTER:
            weight = BorderWeight.DASHED
        edge = BORDER_EDGES[weight].model_copy(update={"color": color or DEFAULT_BORDER_COLOR})

        for coord in cell_range.coords():
            if option == BorderOption.NONE:
                if coord in self._styles:
                    self._update(coord, {f"border_{side}": None for side in EDGE_SIDES})
                continue
            sides = _edges_for(option, cell_range, coord)
            if sides:
                self._update(coord, {f"border_{side}": edge for side in sides})

    def step_font_size(self, cell_range: CellRange, delta: float) -> None:
        for coord in cell_range.coords():
            current = (self._styles.get(coord) or CellStyle()).font_size_px or DEFAULT_FONT_SIZE_PX
            size = max(MIN_FONT_SIZE_PX, min(MAX_FONT_SIZE_PX, current + delta))
            self._update(coord, {"font_size_px": size})

    # -------------------------------------------------------------------------
    # Bulk access
    # -------------------------------------------------------------------------

    def items(self) -> List[Tuple[CellCoord, CellStyle]]:
        return self._styles.items()

    def to_dict(self) -> Dict[CellCoord, CellStyle]:
        return self._styles.to_dict()

    def shift_rows(self, at: int, delta: int) -> None:
        self._styles.shift_rows(at, delta)

    def shift_cols(self, at: int, delta: int) -> None:
        self._styles.shift_cols(at, delta)

    def __len__(self) -> int:
        return len(self._styles)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, StyleStore):
            return NotImplemented
        return self._styles == other._styles

    def __repr__(self) -> str:
        return f"StyleStore({self._styles.to_dict()!r})"
