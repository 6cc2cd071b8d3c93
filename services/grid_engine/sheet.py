"""Decoded sheet bundle produced by every codec."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict

from .style_store import StyleStore
from .type_registry import TypeRegistry
from .values import ValueStore


@dataclass
class DecodedSheet:
    """Values, types, styles and column widths (px) for one sheet."""
    values: ValueStore = field(default_factory=ValueStore)
    types: TypeRegistry = field(default_factory=TypeRegistry)
    styles: StyleStore = field(default_factory=StyleStore)
    column_widths: Dict[int, float] = field(default_factory=dict)
