"""Editor session - owns one sheet's stores, dirty flag and load/save flow.

All mutating commands set ``dirty``. Loading never does; it replaces the
whole sheet (discarding unsaved edits) and resets ``dirty`` to False.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

from services.grid_config import get_grid_settings

from .codec import WorkbookCodec, XlsxWorkbookCodec
from .csv_codec import CSV_CONTENT_TYPE, decode_csv, encode_csv
from .loader import ByteSource, decode_bytes, fetch_bytes
from .operations import OperationBatch, apply_operation
from .render import GridWidget, RenderInstruction, apply_metadata, dispatch_render, reassert_cell_meta
from .schemas import BorderOption, BorderWeight, CellCoord, CellRange, CellType, DropdownType
from .sheet import DecodedSheet
from .style_store import StyleStore
from .type_registry import TypeRegistry, column_options
from .values import CellValue, ValueStore


logger = logging.getLogger(__name__)


@dataclass
class LoadResult:
    success: bool
    message: str
    skipped: bool = False


@dataclass
class SaveResult:
    success: bool
    message: str


# (payload, filename, content_type) -> SaveResult
Saver = Callable[[bytes, str, str], SaveResult]


def with_extension(filename: str, extension: str) -> str:
    """Replace (or add) a filename's extension."""
    stem = re.sub(r"\.[^/.]+$", "", filename or "") or "spreadsheet"
    return f"{stem}{extension}"


class EditorSession:
    """One editable sheet.

    Usage:
        session = EditorSession()
        await session.load(ByteSource(data=raw, filename="budget.xlsx"))
        session.apply_style(CellRange.cell(0, 0), "bold", True)
        result = session.save(store.save, fmt="xlsx")
    """

    def __init__(self, codec: Optional[WorkbookCodec] = None, fetch_timeout: Optional[float] = None):
        settings = get_grid_settings()
        self.codec: WorkbookCodec = codec or XlsxWorkbookCodec()
        self.fetch_timeout = fetch_timeout if fetch_timeout is not None else settings.fetch_timeout
        self.default_date_pattern = settings.default_date_pattern

        self.values = ValueStore()
        self.types = TypeRegistry()
        self.styles = StyleStore()
        self.column_widths: Dict[int, float] = {}
        self.filename: Optional[str] = None
        self.selection: Optional[CellRange] = None
        self.dirty = False

        self._pending_meta: Optional[Dict[CellCoord, CellType]] = None
        self._load_key: Optional[str] = None
        self._widget: Optional[GridWidget] = None

    # =========================================================================
    # LOADING
    # =========================================================================

    async def load(self, source: ByteSource) -> LoadResult:
        """Fetch and decode a source, replacing the current sheet.

        A repeated call for the source that is loading or already loaded is
        a no-op. Failures leave the current sheet untouched.
        """
        key = source.dedup_key
        if key is not None and key == self._load_key:
            logger.info(f"[LOAD] Skipping duplicate load for {key}")
            return LoadResult(success=True, message="Already loaded", skipped=True)
        self._load_key = key

        try:
            data = await fetch_bytes(source, self.fetch_timeout)
            sheet = decode_bytes(data, source.filename, source.content_type, self.codec)
        except Exception as e:
            # Allow a retry of the same source
            if self._load_key == key:
                self._load_key = None
            logger.error(f"[LOAD] Failed to load {source.filename or source.url}: {e}")
            return LoadResult(success=False, message="Failed to load spreadsheet")

        self._install(sheet, source.filename)
        return LoadResult(success=True, message=f"Loaded {self.values.row_count} rows")

    def load_bytes(self, data: bytes, filename: Optional[str] = None, content_type: Optional[str] = None) -> LoadResult:
        """Synchronous load of in-memory bytes (no deduplication)."""
        try:
            sheet = decode_bytes(data, filename, content_type, self.codec)
        except Exception as e:
            logger.error(f"[LOAD] Failed to decode {filename}: {e}")
            return LoadResult(success=False, message="Failed to load spreadsheet")
        self._load_key = None
        self._install(sheet, filename)
        return LoadResult(success=True, message=f"Loaded {self.values.row_count} rows")

    def _install(self, sheet: DecodedSheet, filename: Optional[str]) -> None:
        self.values = sheet.values
        self.types = sheet.types
        self.styles = sheet.styles
        self.column_widths = dict(sheet.column_widths)
        self.filename = filename
        self.selection = None
        self.dirty = False
        self._pending_meta = sheet.types.to_dict()
        logger.info(
            f"[LOAD] Installed {self.values.row_count}x{self.values.col_count} sheet "
            f"({len(self.types)} typed, {len(self.styles)} styled)"
        )
        if self._widget is not None:
            self._flush_pending(self._widget)

    # =========================================================================
    # GRID WIDGET
    # =========================================================================

    @property
    def has_pending_metadata(self) -> bool:
        return self._pending_meta is not None

    def attach_grid(self, widget: GridWidget) -> int:
        """Bind a freshly initialized widget and apply any staged metadata once."""
        self._widget = widget
        return self._flush_pending(widget)

    def detach_grid(self) -> None:
        self._widget = None

    def _flush_pending(self, widget: GridWidget) -> int:
        if self._pending_meta is None:
            return 0
        pending, self._pending_meta = self._pending_meta, None
        return apply_metadata(widget, pending.items())

    def render_cell(self, row: int, col: int) -> RenderInstruction:
        """Reconcile the widget's metadata for a cell, then dispatch its renderer."""
        if self._widget is not None:
            reassert_cell_meta(self._widget, self.types, row, col)
        return dispatch_render(self.types, row, col, self.values.get(row, col))

    def _sync_widget(self, cell_range: CellRange) -> None:
        if self._widget is None:
            return
        for coord in cell_range.coords():
            reassert_cell_meta(self._widget, self.types, coord.row, coord.col)
        self._widget.render()

    # =========================================================================
    # SELECTION
    # =========================================================================

    def select(self, cell_range: CellRange) -> None:
        self.selection = cell_range

    def deselect(self) -> None:
        self.selection = None

    def _target(self, cell_range: Optional[CellRange]) -> CellRange:
        target = cell_range or self.selection
        if target is None:
            raise ValueError("No cell range selected")
        return target

    # =========================================================================
    # VALUE COMMANDS
    # =========================================================================

    def edit_cell(self, row: int, col: int, value: CellValue) -> None:
        """Store a value as typed. Dropdown cells learn new option values."""
        self.values.set(row, col, value)
        cell_type = self.types.get_effective_type(row, col)
        if isinstance(cell_type, DropdownType) and isinstance(value, str) and value.strip():
            if self.types.add_dropdown_option(col, value):
                logger.debug(f"[EDIT] Added dropdown option {value!r} to column {col}")
                self._sync_widget(CellRange.of(0, col, max(self.values.row_count - 1, row), col))
        self.dirty = True

    def edit_cells(self, edits: Sequence[Tuple[int, int, CellValue]]) -> None:
        for row, col, value in edits:
            self.edit_cell(row, col, value)

    def paste(self, row: int, col: int, block: Sequence[Sequence[CellValue]]) -> None:
        self.values.set_block(row, col, block)
        self.dirty = True

    def fill(self, cell_range: CellRange, value: CellValue) -> None:
        for coord in cell_range.coords():
            self.values.set(coord.row, coord.col, value)
        self.dirty = True

    def cut(self, cell_range: Optional[CellRange] = None) -> List[List[CellValue]]:
        target = self._target(cell_range)
        block = self.values.get_block(target)
        self.values.clear(target)
        self.dirty = True
        return block

    def clear_range(self, cell_range: Optional[CellRange] = None) -> None:
        self.values.clear(self._target(cell_range))
        self.dirty = True

    def insert_rows(self, at: int, count: int = 1) -> None:
        # Same position for values and metadata: past the end means append
        at = max(0, min(at, self.values.row_count))
        self.values.insert_rows(at, count)
        self.types.shift_rows(at, count)
        self.styles.shift_rows(at, count)
        self.dirty = True

    def delete_rows(self, at: int, count: int = 1) -> None:
        self.values.delete_rows(at, count)
        self.types.shift_rows(at, -count)
        self.styles.shift_rows(at, -count)
        self.dirty = True

    def insert_cols(self, at: int, count: int = 1) -> None:
        self.values.insert_cols(at, count)
        self.types.shift_cols(at, count)
        self.styles.shift_cols(at, count)
        self.column_widths = {
            (col + count if col >= at else col): width for col, width in self.column_widths.items()
        }
        self.dirty = True

    def delete_cols(self, at: int, count: int = 1) -> None:
        self.values.delete_cols(at, count)
        self.types.shift_cols(at, -count)
        self.styles.shift_cols(at, -count)
        self.column_widths = {
            (col - count if col >= at + count else col): width
            for col, width in self.column_widths.items()
            if not at <= col < at + count
        }
        self.dirty = True

    def set_column_width(self, col: int, width_px: float) -> None:
        self.column_widths[col] = width_px
        self.dirty = True

    # =========================================================================
    # TYPE COMMANDS
    # =========================================================================

    def set_type(self, cell_range: Optional[CellRange], cell_type: CellType) -> None:
        target = self._target(cell_range)
        self.types.set_type(target, cell_type)
        self._sync_widget(target)
        self.dirty = True

    def clear_type(self, cell_range: Optional[CellRange] = None) -> None:
        target = self._target(cell_range)
        self.types.clear_type(target)
        self._sync_widget(target)
        self.dirty = True

    def set_dropdown_options(self, cell_range: Optional[CellRange], raw_options: Union[str, Sequence[str]]) -> bool:
        """Returns False (no change, not dirty) when no option survives trimming."""
        target = self._target(cell_range)
        if not self.types.set_dropdown(target, raw_options):
            return False
        self._sync_widget(target)
        self.dirty = True
        return True

    def dropdown_from_column(self, cell_range: Optional[CellRange] = None) -> List[str]:
        """Turn the range into dropdowns listing the selected columns' values."""
        target = self._target(cell_range)
        options = column_options(
            self.values.column_values(col) for col in range(target.start_col, target.end_col + 1)
        )
        self.set_type(target, DropdownType(options=options))
        return options

    def apply_format_preset(self, cell_range: Optional[CellRange], preset: str, pattern: Optional[str] = None) -> None:
        target = self._target(cell_range)
        if preset == "date":
            pattern = pattern or self.default_date_pattern
        self.types.apply_preset(target, preset, pattern)
        self._sync_widget(target)
        self.dirty = True

    # =========================================================================
    # STYLE COMMANDS
    # =========================================================================

    def apply_style(self, cell_range: Optional[CellRange], prop: str, value: Any) -> None:
        self.styles.apply_style(self._target(cell_range), prop, value)
        self.dirty = True

    def clear_style(self, cell_range: Optional[CellRange], prop: str) -> None:
        self.styles.clear_style(self._target(cell_range), prop)
        self.dirty = True

    def toggle_class(self, cell_range: Optional[CellRange], style_name: str) -> None:
        self.styles.toggle_class(self._target(cell_range), style_name)
        self.dirty = True

    def set_flag(self, cell_range: Optional[CellRange], style_name: str, on: bool) -> None:
        self.styles.set_flag(self._target(cell_range), style_name, on)
        self.dirty = True

    def set_alignment(self, cell_range: Optional[CellRange], align: Optional[str]) -> None:
        self.styles.set_alignment(self._target(cell_range), align)
        self.dirty = True

    def apply_borders(
        self,
        cell_range: Optional[CellRange],
        option: Union[BorderOption, str],
        weight: Union[BorderWeight, str] = BorderWeight.THIN,
        color: Optional[str] = None,
    ) -> None:
        self.styles.apply_borders(self._target(cell_range), option, weight, color)
        self.dirty = True

    def step_font_size(self, cell_range: Optional[CellRange], delta: float) -> None:
        self.styles.step_font_size(self._target(cell_range), delta)
        self.dirty = True

    # =========================================================================
    # OPERATIONS
    # =========================================================================

    def replace_from_csv(self, text: str) -> None:
        """Swap in a whole new sheet from CSV text as an edit (sets dirty)."""
        sheet = decode_csv(text)
        self.values = sheet.values
        self.types = sheet.types
        self.styles = sheet.styles
        self.column_widths = dict(sheet.column_widths)
        if self._widget is not None:
            apply_metadata(self._widget, self.types.items())
        self.dirty = True

    def apply_operations(self, batch: Union[OperationBatch, Dict[str, Any]]) -> int:
        """Apply a batch of edit operations in order. Returns how many ran."""
        if not isinstance(batch, OperationBatch):
            batch = OperationBatch.model_validate(batch)
        applied = 0
        if batch.csv_content is not None:
            self.replace_from_csv(batch.csv_content)
            applied += 1
        for op in batch.operations:
            apply_operation(self, op)
            applied += 1
        logger.info(f"[OPS] Applied {applied} operations")
        return applied

    # =========================================================================
    # EXPORT / SAVE
    # =========================================================================

    def export_csv(self) -> bytes:
        return encode_csv(self.values, self.types, self.styles, self.column_widths).encode("utf-8")

    def export_xlsx(self) -> bytes:
        return self.codec.encode(self.values, self.types, self.styles, self.column_widths)

    def export(self, fmt: str = "xlsx", filename: Optional[str] = None) -> Tuple[bytes, str, str]:
        """Encode the sheet. Returns (payload, filename, content_type)."""
        name = filename or self.filename or "spreadsheet"
        if fmt == "csv":
            return self.export_csv(), with_extension(name, ".csv"), CSV_CONTENT_TYPE
        if fmt == "xlsx":
            return self.export_xlsx(), with_extension(name, self.codec.extension), self.codec.content_type
        raise ValueError(f"Unsupported export format: {fmt}")

    def save(self, saver: Saver, fmt: str = "xlsx", filename: Optional[str] = None) -> SaveResult:
        """Encode and hand the bytes to ``saver``. Clears dirty only on success."""
        try:
            payload, name, content_type = self.export(fmt, filename)
        except ValueError as e:
            return SaveResult(success=False, message=str(e))

        try:
            result = saver(payload, name, content_type)
        except Exception as e:
            logger.error(f"[SAVE] Saving {name} failed: {e}")
            return SaveResult(success=False, message="Failed to save spreadsheet")

        if result.success:
            self.dirty = False
            logger.info(f"[SAVE] Saved {name} ({len(payload)} bytes)")
        else:
            logger.warning(f"[SAVE] Saver rejected {name}: {result.message}")
        return result
