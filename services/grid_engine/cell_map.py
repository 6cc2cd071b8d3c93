"""Sparse per-cell storage keyed by CellCoord."""

from __future__ import annotations

from typing import Dict, Generic, Iterator, List, Optional, Tuple, TypeVar

from .schemas import CellCoord


T = TypeVar("T")


class CellMap(Generic[T]):
    """Coordinate-keyed sparse map with row/column shifting.

    Iteration is always in (row, col) order so serialized output is stable.
    """

    def __init__(self, entries: Optional[Dict[CellCoord, T]] = None):
        self._entries: Dict[CellCoord, T] = dict(entries or {})

    def get(self, coord: CellCoord) -> Optional[T]:
        return self._entries.get(coord)

    def set(self, coord: CellCoord, value: T) -> None:
        self._entries[CellCoord(*coord)] = value

    def pop(self, coord: CellCoord) -> Optional[T]:
        return self._entries.pop(coord, None)

    def clear(self) -> None:
        self._entries.clear()

    def items(self) -> List[Tuple[CellCoord, T]]:
        return sorted(self._entries.items())

    def to_dict(self) -> Dict[CellCoord, T]:
        return dict(self.items())

    def __contains__(self, coord: object) -> bool:
        return coord in self._entries

    def __iter__(self) -> Iterator[CellCoord]:
        return iter(sorted(self._entries))

    def __len__(self) -> int:
        return len(self._entries)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CellMap):
            return NotImplemented
        return self._entries == other._entries

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.to_dict()!r})"

    # -------------------------------------------------------------------------
    # Structural edits
    # -------------------------------------------------------------------------

    def shift_rows(self, at: int, delta: int) -> None:
        """Move entries on rows >= ``at`` by ``delta``.

        A negative delta deletes rows ``at .. at - delta - 1`` first.
        """
        self._shift(0, at, delta)

    def shift_cols(self, at: int, delta: int) -> None:
        self._shift(1, at, delta)

    def _shift(self, axis: int, at: int, delta: int) -> None:
        if delta == 0:
            return
        moved: Dict[CellCoord, T] = {}
        for coord, value in self._entries.items():
            pos = coord[axis]
            if pos < at:
                moved[coord] = value
                continue
            if delta < 0 and pos < at - delta:
                continue
            if axis == 0:
                moved[CellCoord(pos + delta, coord.col)] = value
            else:
                moved[CellCoord(coord.row, pos + delta)] = value
        self._entries = moved
