"""Render Dispatch - tells a grid widget how to draw each cell.

The widget may drop or rewrite its own per-cell metadata at any time
(re-render, virtualization). The Type Registry is the source of truth and
is re-asserted into the widget whenever the two disagree.
"""

from __future__ import annotations

import re
from typing import Any, Dict, Iterable, NamedTuple, Optional, Protocol, Tuple

from .formats import coerce_checkbox, epoch_ms_to_datetime, format_date, parse_date_value, stringify_value
from .schemas import (
    DEFAULT_DATE_PATTERN,
    CellCoord,
    CellType,
    CheckboxType,
    DateType,
    DropdownType,
    NumericType,
)
from .type_registry import TypeRegistry


_PREFORMATTED_DATE = re.compile(r"^\d{1,2}/\d{1,2}/\d{4}$")


class GridWidget(Protocol):
    """What the core needs from an on-screen grid."""

    def get_cell_meta(self, row: int, col: int) -> Optional[Dict[str, Any]]:
        ...

    def set_cell_meta(self, row: int, col: int, meta: Dict[str, Any]) -> None:
        ...

    def render(self) -> None:
        ...


class RenderInstruction(NamedTuple):
    renderer: str  # "checkbox" or "text"
    text: Optional[str] = None
    checked: Optional[bool] = None


def widget_meta_for(cell_type: CellType) -> Dict[str, Any]:
    """Widget-facing metadata for a logical type."""
    meta: Dict[str, Any] = {"type": cell_type.kind}
    if isinstance(cell_type, DropdownType):
        meta["options"] = list(cell_type.options)
        meta["strict"] = False
    elif isinstance(cell_type, NumericType):
        meta["numeric_format"] = {"pattern": cell_type.pattern, "culture": cell_type.culture}
    elif isinstance(cell_type, DateType):
        meta["date_format"] = cell_type.pattern
    return meta


def reassert_cell_meta(widget: GridWidget, types: TypeRegistry, row: int, col: int) -> bool:
    """Push the registry's type into the widget if the widget disagrees.

    Returns True when the widget was corrected.
    """
    expected = widget_meta_for(types.get_effective_type(row, col))
    current = widget.get_cell_meta(row, col) or {"type": "text"}
    if current == expected:
        return False
    widget.set_cell_meta(row, col, expected)
    return True


def apply_metadata(widget: GridWidget, entries: Iterable[Tuple[CellCoord, CellType]]) -> int:
    """Write a batch of types into the widget and re-render once."""
    count = 0
    for coord, cell_type in entries:
        widget.set_cell_meta(coord.row, coord.col, widget_meta_for(cell_type))
        count += 1
    widget.render()
    return count


def format_date_display(value: Any, pattern: Optional[str] = None) -> str:
    """Display text for a date cell. Falls back to the raw value as text."""
    if value is None or value == "":
        return ""
    if isinstance(value, str) and _PREFORMATTED_DATE.match(value.strip()):
        return value.strip()
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            return format_date(epoch_ms_to_datetime(value), pattern or DEFAULT_DATE_PATTERN)
        except (OverflowError, ValueError):
            return stringify_value(value)
    parsed = parse_date_value(value)
    if parsed is None:
        return stringify_value(value)
    return format_date(parsed, pattern or DEFAULT_DATE_PATTERN)


def dispatch_render(types: TypeRegistry, row: int, col: int, value: Any) -> RenderInstruction:
    """Choose checkbox or text rendering. The stored value is never modified."""
    cell_type = types.get_effective_type(row, col)
    if isinstance(cell_type, CheckboxType):
        return RenderInstruction(renderer="checkbox", checked=coerce_checkbox(value))
    if isinstance(cell_type, DateType):
        return RenderInstruction(renderer="text", text=format_date_display(value, cell_type.pattern))
    return RenderInstruction(renderer="text", text=stringify_value(value))
