"""Pydantic schemas for the editable grid.

These schemas model the per-cell metadata an editor session keeps next to
the raw values:
- Coordinates and rectangular ranges
- Logical cell types (text, numeric, date, dropdown, checkbox)
- Visual styles (font flags, alignment, colors, font size, border edges)
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Dict, Iterator, List, Literal, NamedTuple, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator, model_validator


DEFAULT_DATE_PATTERN = "MM/DD/YYYY"


# =============================================================================
# COORDINATES
# =============================================================================

class CellCoord(NamedTuple):
    """0-indexed (row, col) position of a cell."""
    row: int
    col: int

    def key(self) -> str:
        """Serialized form used by the CSV metadata header, e.g. "3-1"."""
        return f"{self.row}-{self.col}"

    @classmethod
    def from_key(cls, key: str) -> "CellCoord":
        parts = str(key).split("-")
        if len(parts) != 2 or not parts[0].isdigit() or not parts[1].isdigit():
            raise ValueError(f"Invalid cell key: {key}")
        return cls(int(parts[0]), int(parts[1]))


class CellRange(BaseModel):
    """Inclusive rectangular range. Start is always <= end after validation."""
    start_row: int = Field(ge=0)
    start_col: int = Field(ge=0)
    end_row: int = Field(ge=0)
    end_col: int = Field(ge=0)

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="before")
    @classmethod
    def _normalize(cls, data: Any) -> Any:
        if isinstance(data, dict):
            data = dict(data)
            for start, end in (("start_row", "end_row"), ("start_col", "end_col")):
                if start in data and end not in data:
                    data[end] = data[start]
                if start in data and end in data and data[start] > data[end]:
                    data[start], data[end] = data[end], data[start]
        return data

    @classmethod
    def of(cls, start_row: int, start_col: int, end_row: int, end_col: int) -> "CellRange":
        return cls(start_row=start_row, start_col=start_col, end_row=end_row, end_col=end_col)

    @classmethod
    def cell(cls, row: int, col: int) -> "CellRange":
        return cls.of(row, col, row, col)

    @property
    def height(self) -> int:
        return self.end_row - self.start_row + 1

    @property
    def width(self) -> int:
        return self.end_col - self.start_col + 1

    def coords(self) -> Iterator[CellCoord]:
        for row in range(self.start_row, self.end_row + 1):
            for col in range(self.start_col, self.end_col + 1):
                yield CellCoord(row, col)

    def contains(self, row: int, col: int) -> bool:
        return self.start_row <= row <= self.end_row and self.start_col <= col <= self.end_col


# =============================================================================
# CELL TYPES
# =============================================================================

class CellKind(str, Enum):
    """Logical cell kinds."""
    TEXT = "text"
    NUMERIC = "numeric"
    DATE = "date"
    DROPDOWN = "dropdown"
    CHECKBOX = "checkbox"


class TextType(BaseModel):
    model_config = ConfigDict(frozen=True)
    kind: Literal["text"] = "text"


class NumericType(BaseModel):
    model_config = ConfigDict(frozen=True)
    kind: Literal["numeric"] = "numeric"
    pattern: Optional[str] = None  # e.g. "$0,0.00"
    culture: Optional[str] = None  # e.g. "en-US"


class DateType(BaseModel):
    model_config = ConfigDict(frozen=True)
    kind: Literal["date"] = "date"
    pattern: str = DEFAULT_DATE_PATTERN


class DropdownType(BaseModel):
    """Dropdown-constrained cell. The option list is never empty."""
    model_config = ConfigDict(frozen=True)
    kind: Literal["dropdown"] = "dropdown"
    options: List[str]

    @field_validator("options")
    @classmethod
    def _require_options(cls, value: List[str]) -> List[str]:
        cleaned = [str(opt).strip() for opt in value if opt is not None and str(opt).strip()]
        if not cleaned:
            raise ValueError("dropdown requires at least one non-empty option")
        return cleaned


class CheckboxType(BaseModel):
    model_config = ConfigDict(frozen=True)
    kind: Literal["checkbox"] = "checkbox"


CellType = Annotated[
    Union[TextType, NumericType, DateType, DropdownType, CheckboxType],
    Field(discriminator="kind"),
]

_CELL_TYPE_ADAPTER: TypeAdapter = TypeAdapter(CellType)


def parse_cell_type(data: Dict[str, Any]) -> CellType:
    """Validate a plain dict (e.g. from JSON) into a CellType model."""
    return _CELL_TYPE_ADAPTER.validate_python(data)


def compact_cell_type(cell_type: CellType) -> Dict[str, Any]:
    """Dump a CellType without unset optional fields."""
    return cell_type.model_dump(exclude_none=True)


# =============================================================================
# STYLES
# =============================================================================

class BorderOption(str, Enum):
    """Selection-level border operations."""
    ALL = "all"
    OUTER = "outer"
    INNER = "inner"
    TOP = "top"
    RIGHT = "right"
    BOTTOM = "bottom"
    LEFT = "left"
    NONE = "none"
    THICK_OUTER = "thick-outer"
    DASHED_OUTER = "dashed-outer"


class BorderWeight(str, Enum):
    THIN = "thin"
    THICK = "thick"
    DASHED = "dashed"


Alignment = Literal["left", "center", "right"]


class BorderEdge(BaseModel):
    """One border edge of a cell."""
    model_config = ConfigDict(frozen=True)
    width_px: Literal[1, 2] = 1
    style: Literal["solid", "dashed"] = "solid"
    color: Optional[str] = None  # CSS hex


class CellStyle(BaseModel):
    """Visual attributes of a cell, independent of its value."""
    model_config = ConfigDict(frozen=True)

    bold: Optional[bool] = None
    italic: Optional[bool] = None
    underline: Optional[bool] = None
    align: Optional[Alignment] = None
    color: Optional[str] = None
    background_color: Optional[str] = None
    font_size_px: Optional[float] = None
    border_top: Optional[BorderEdge] = None
    border_right: Optional[BorderEdge] = None
    border_bottom: Optional[BorderEdge] = None
    border_left: Optional[BorderEdge] = None

    def is_empty(self) -> bool:
        return not self.model_dump(exclude_none=True)

    def edges(self) -> Dict[str, BorderEdge]:
        """Present border edges keyed by side name ("top", "right", ...)."""
        result = {}
        for side in EDGE_SIDES:
            edge = getattr(self, f"border_{side}")
            if edge is not None:
                result[side] = edge
        return result


EDGE_SIDES = ("top", "right", "bottom", "left")
STYLE_PROPERTIES = tuple(CellStyle.model_fields)
