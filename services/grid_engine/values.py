"""Cell Value Store - the 2-D grid of raw cell values."""

from __future__ import annotations

from datetime import date, datetime
from typing import Iterable, List, Optional, Sequence, Union

from .schemas import CellRange


CellValue = Union[str, int, float, bool, date, datetime, None]


class ValueStore:
    """Ordered rows of raw values.

    Rows may be ragged internally; reads treat missing columns as "".
    Values are stored exactly as given (no coercion by cell type).
    """

    def __init__(self, rows: Optional[Iterable[Sequence[CellValue]]] = None):
        self._rows: List[List[CellValue]] = [list(row) for row in (rows or [])]

    @property
    def row_count(self) -> int:
        return len(self._rows)

    @property
    def col_count(self) -> int:
        return max((len(row) for row in self._rows), default=0)

    def get(self, row: int, col: int) -> CellValue:
        if row < 0 or col < 0 or row >= len(self._rows):
            return ""
        cells = self._rows[row]
        if col >= len(cells):
            return ""
        return cells[col]

    def set(self, row: int, col: int, value: CellValue) -> None:
        if row < 0 or col < 0:
            raise ValueError(f"Invalid cell position: ({row}, {col})")
        while len(self._rows) <= row:
            self._rows.append([])
        cells = self._rows[row]
        while len(cells) <= col:
            cells.append("")
        cells[col] = value

    def set_block(self, row: int, col: int, block: Sequence[Sequence[CellValue]]) -> None:
        for r_offset, values in enumerate(block):
            for c_offset, value in enumerate(values):
                self.set(row + r_offset, col + c_offset, value)

    def get_block(self, cell_range: CellRange) -> List[List[CellValue]]:
        return [
            [self.get(row, col) for col in range(cell_range.start_col, cell_range.end_col + 1)]
            for row in range(cell_range.start_row, cell_range.end_row + 1)
        ]

    def clear(self, cell_range: CellRange) -> None:
        """Blank every existing cell inside the range (does not grow the grid)."""
        for row in range(cell_range.start_row, min(cell_range.end_row + 1, len(self._rows))):
            cells = self._rows[row]
            for col in range(cell_range.start_col, min(cell_range.end_col + 1, len(cells))):
                cells[col] = ""

    def column_values(self, col: int) -> List[CellValue]:
        return [self.get(row, col) for row in range(len(self._rows))]

    # -------------------------------------------------------------------------
    # Structural edits
    # -------------------------------------------------------------------------

    def insert_rows(self, at: int, count: int = 1) -> None:
        at = max(0, min(at, len(self._rows)))
        width = self.col_count
        for _ in range(count):
            self._rows.insert(at, [""] * width)

    def delete_rows(self, at: int, count: int = 1) -> None:
        del self._rows[at:at + count]

    def insert_cols(self, at: int, count: int = 1) -> None:
        for cells in self._rows:
            # Short rows already read as "" past their end
            if len(cells) > at:
                cells[at:at] = [""] * count

    def delete_cols(self, at: int, count: int = 1) -> None:
        for cells in self._rows:
            del cells[at:at + count]

    # -------------------------------------------------------------------------
    # Export
    # -------------------------------------------------------------------------

    def to_rows(self) -> List[List[CellValue]]:
        """Copy of the rows as stored (ragged rows stay ragged)."""
        return [list(row) for row in self._rows]

    def to_rectangular(self) -> List[List[CellValue]]:
        width = self.col_count
        return [list(row) + [""] * (width - len(row)) for row in self._rows]

    def __eq__(self, other: object) -> bool:
        if isinstance(other, ValueStore):
            return self._rows == other._rows
        if isinstance(other, list):
            return self._rows == other
        return NotImplemented

    def __repr__(self) -> str:
        return f"ValueStore({self._rows!r})"
