"""Cell Type Registry - per-cell logical types."""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Tuple, Union

from .cell_map import CellMap
from .formats import stringify_value
from .schemas import (
    DEFAULT_DATE_PATTERN,
    CellCoord,
    CellRange,
    CellType,
    DateType,
    DropdownType,
    NumericType,
    TextType,
)


logger = logging.getLogger(__name__)

FALLBACK_DROPDOWN_OPTIONS = ["Option 1", "Option 2", "Option 3"]

FORMAT_PRESETS: Dict[str, CellType] = {
    "currency": NumericType(pattern="$0,0.00", culture="en-US"),
    "percentage": NumericType(pattern="0.00%", culture="en-US"),
    "number": NumericType(pattern="0,0.00", culture="en-US"),
    "text": TextType(),
}


def parse_option_text(raw: Union[str, Iterable[str], None]) -> List[str]:
    """Split a free-text "A, B, C" option string into trimmed non-empty options."""
    if raw is None:
        return []
    parts = raw.split(",") if isinstance(raw, str) else [str(item) for item in raw]
    return [part.strip() for part in parts if part and part.strip()]


class TypeRegistry:
    """Sparse map of explicit cell types. Absent coordinates are text."""

    def __init__(self, entries: Optional[Dict[CellCoord, CellType]] = None):
        self._types: CellMap[CellType] = CellMap(entries)

    def set_type(self, cell_range: CellRange, cell_type: CellType) -> None:
        """Apply one type to every cell in the range, replacing any previous kind."""
        for coord in cell_range.coords():
            self._types.set(coord, cell_type)

    def set_dropdown(self, cell_range: CellRange, raw_options: Union[str, Iterable[str], None]) -> bool:
        """Set a dropdown from raw option input.

        Returns False (and changes nothing) when no option survives trimming.
        """
        options = parse_option_text(raw_options)
        if not options:
            logger.debug(f"[TYPES] Ignoring dropdown with no options for {cell_range}")
            return False
        self.set_type(cell_range, DropdownType(options=options))
        return True

    def apply_preset(self, cell_range: CellRange, preset: str, pattern: Optional[str] = None) -> None:
        if preset == "date":
            self.set_type(cell_range, DateType(pattern=pattern or DEFAULT_DATE_PATTERN))
            return
        if preset not in FORMAT_PRESETS:
            raise ValueError(f"Unknown format preset: {preset}")
        self.set_type(cell_range, FORMAT_PRESETS[preset])

    def clear_type(self, cell_range: CellRange) -> None:
        for coord in cell_range.coords():
            self._types.pop(coord)

    def get(self, row: int, col: int) -> Optional[CellType]:
        """Explicitly recorded type, or None."""
        return self._types.get(CellCoord(row, col))

    def get_effective_type(self, row: int, col: int) -> CellType:
        return self._types.get(CellCoord(row, col)) or TextType()

    def items(self) -> List[Tuple[CellCoord, CellType]]:
        return self._types.items()

    def to_dict(self) -> Dict[CellCoord, CellType]:
        return self._types.to_dict()

    def dropdown_cells_in_column(self, col: int) -> List[Tuple[CellCoord, DropdownType]]:
        return [
            (coord, cell_type)
            for coord, cell_type in self._types.items()
            if coord.col == col and isinstance(cell_type, DropdownType)
        ]

    def add_dropdown_option(self, col: int, value: str) -> bool:
        """Add a new option to every dropdown cell in a column (sorted).

        Returns True when at least one cell learned the option.
        """
        value = value.strip()
        if not value:
            return False
        changed = False
        for coord, cell_type in self.dropdown_cells_in_column(col):
            if value in cell_type.options:
                continue
            options = sorted(cell_type.options + [value])
            self._types.set(coord, DropdownType(options=options))
            changed = True
        return changed

    def shift_rows(self, at: int, delta: int) -> None:
        self._types.shift_rows(at, delta)

    def shift_cols(self, at: int, delta: int) -> None:
        self._types.shift_cols(at, delta)

    def __len__(self) -> int:
        return len(self._types)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TypeRegistry):
            return NotImplemented
        return self._types == other._types

    def __repr__(self) -> str:
        return f"TypeRegistry({self._types.to_dict()!r})"


def column_options(columns: Iterable[List[object]]) -> List[str]:
    """Sorted unique non-empty values across columns, with a fallback list."""
    seen = set()
    for values in columns:
        for value in values:
            text = stringify_value(value).strip()
            if text:
                seen.add(text)
    return sorted(seen) or list(FALLBACK_DROPDOWN_OPTIONS)
