"""API routes for spreadsheet editing sessions.

- Upload CSV/XLSX (or start blank) -> editor session
- Edit values, types, styles, borders, structure
- Export as CSV/XLSX, save to the database
"""
from __future__ import annotations

import logging
import uuid
from typing import Any, Literal, Optional

from fastapi import APIRouter, File, HTTPException, UploadFile
from fastapi.responses import Response
from pydantic import BaseModel, Field, ValidationError

from services.db import SpreadsheetStore
from services.grid_config import get_grid_settings
from services.grid_engine import (
    BorderOption,
    BorderWeight,
    CellRange,
    EditorSession,
    OperationBatch,
    parse_cell_type,
)
from services.grid_engine.schemas import compact_cell_type


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/spreadsheets", tags=["spreadsheets"])

# In-memory storage for active editor sessions
_active_sessions: dict[str, EditorSession] = {}
_store = SpreadsheetStore()


# =============================================================================
# MODELS
# =============================================================================

class CellEditRequest(BaseModel):
    """Request to edit a cell value (0-indexed)."""
    row: int = Field(ge=0)
    col: int = Field(ge=0)
    value: str | int | float | bool | None


class BatchCellEditRequest(BaseModel):
    """Request to edit multiple cells."""
    edits: list[CellEditRequest]


class PasteRequest(BaseModel):
    row: int = Field(ge=0)
    col: int = Field(ge=0)
    values: list[list[str | int | float | bool | None]]


class FillRequest(BaseModel):
    range: CellRange
    value: str | int | float | bool | None


class CellTypeRequest(BaseModel):
    """Request to set a logical type, e.g. {"kind": "numeric", "pattern": "0.00"}."""
    range: CellRange
    cell_type: dict[str, Any]


class DropdownRequest(BaseModel):
    """Free-text options, e.g. "Yes, No, Maybe"."""
    range: CellRange
    options: str


class FormatRequest(BaseModel):
    range: CellRange
    pattern: Optional[str] = None


class StyleRequest(BaseModel):
    """Set a style property. A null value clears it."""
    range: CellRange
    property: str
    value: Any = None


class ToggleRequest(BaseModel):
    range: CellRange
    name: str  # bold, italic, underline, align-left, align-center, align-right
    on: Optional[bool] = None  # Set explicitly instead of toggling (flags only)


class FontStepRequest(BaseModel):
    range: CellRange
    delta: float


class BorderRequest(BaseModel):
    range: CellRange
    option: BorderOption
    weight: BorderWeight = BorderWeight.THIN
    color: Optional[str] = None


class StructureRequest(BaseModel):
    action: Literal["insert_rows", "delete_rows", "insert_cols", "delete_cols"]
    at: int = Field(ge=0)
    count: int = Field(default=1, ge=1)


# =============================================================================
# HELPERS
# =============================================================================

def _get_session(spreadsheet_id: str) -> EditorSession:
    session = _active_sessions.get(spreadsheet_id)
    if session is None:
        raise HTTPException(404, "Spreadsheet not found")
    return session


def _register_session(spreadsheet_id: str, session: EditorSession) -> None:
    """Track a new session, closing the oldest clean ones past the limit.

    Sessions with unsaved edits are never closed here.
    """
    _active_sessions[spreadsheet_id] = session
    excess = len(_active_sessions) - get_grid_settings().max_open_sessions
    if excess <= 0:
        return
    idle = [
        sid for sid, s in _active_sessions.items()
        if sid != spreadsheet_id and not s.dirty
    ][:excess]
    for sid in idle:
        del _active_sessions[sid]
        logger.info(f"[SESSION] Closed idle session {sid}")


def _session_to_ui_summary(session: EditorSession, spreadsheet_id: str) -> dict:
    """Current sheet state in a JSON-friendly shape for the UI."""
    return {
        "id": spreadsheet_id,
        "filename": session.filename,
        "row_count": session.values.row_count,
        "col_count": session.values.col_count,
        "rows": session.values.to_rectangular(),
        "types": {coord.key(): compact_cell_type(t) for coord, t in session.types.items()},
        "styles": {coord.key(): s.model_dump(exclude_none=True) for coord, s in session.styles.items()},
        "column_widths": {str(col): width for col, width in sorted(session.column_widths.items())},
        "dirty": session.dirty,
    }


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.post("/", response_model=dict)
async def upload_spreadsheet(file: UploadFile = File(...)):
    """Upload a CSV or XLSX file and open an editor session for it."""
    if not file.filename:
        raise HTTPException(400, "No filename provided")

    content = await file.read()
    if len(content) > get_grid_settings().max_upload_bytes:
        raise HTTPException(413, "File too large")

    spreadsheet_id = f"{uuid.uuid4().hex[:8]}_{file.filename}"
    session = EditorSession()
    result = session.load_bytes(content, file.filename, file.content_type)
    if not result.success:
        raise HTTPException(400, result.message)

    _register_session(spreadsheet_id, session)
    logger.info(f"[PARSE] Opened {file.filename} as {spreadsheet_id}")
    return _session_to_ui_summary(session, spreadsheet_id)


@router.post("/blank", response_model=dict)
async def create_blank_spreadsheet(filename: str = "untitled.csv"):
    """Start a session with the default starter sheet."""
    spreadsheet_id = f"{uuid.uuid4().hex[:8]}_{filename}"
    session = EditorSession()
    session.load_bytes(b"", filename, "text/csv")
    _register_session(spreadsheet_id, session)
    return _session_to_ui_summary(session, spreadsheet_id)


@router.get("/{spreadsheet_id}")
async def get_spreadsheet(spreadsheet_id: str):
    """Get the current state of a spreadsheet."""
    return _session_to_ui_summary(_get_session(spreadsheet_id), spreadsheet_id)


@router.delete("/{spreadsheet_id}")
async def close_spreadsheet(spreadsheet_id: str):
    _get_session(spreadsheet_id)
    del _active_sessions[spreadsheet_id]
    return {"closed": spreadsheet_id}


# -----------------------------------------------------------------------------
# Values
# -----------------------------------------------------------------------------

@router.patch("/{spreadsheet_id}/cell")
async def edit_cell(spreadsheet_id: str, edit: CellEditRequest):
    """Edit a single cell value."""
    session = _get_session(spreadsheet_id)
    session.edit_cell(edit.row, edit.col, edit.value)
    return {"row": edit.row, "col": edit.col, "value": session.values.get(edit.row, edit.col), "dirty": session.dirty}


@router.patch("/{spreadsheet_id}/cells")
async def edit_cells(spreadsheet_id: str, batch: BatchCellEditRequest):
    """Edit multiple cells at once."""
    session = _get_session(spreadsheet_id)
    session.edit_cells([(e.row, e.col, e.value) for e in batch.edits])
    return {"edited": len(batch.edits), "dirty": session.dirty}


@router.post("/{spreadsheet_id}/paste")
async def paste_values(spreadsheet_id: str, payload: PasteRequest):
    session = _get_session(spreadsheet_id)
    session.paste(payload.row, payload.col, payload.values)
    return _session_to_ui_summary(session, spreadsheet_id)


@router.post("/{spreadsheet_id}/fill")
async def fill_values(spreadsheet_id: str, payload: FillRequest):
    session = _get_session(spreadsheet_id)
    session.fill(payload.range, payload.value)
    return _session_to_ui_summary(session, spreadsheet_id)


@router.post("/{spreadsheet_id}/cut")
async def cut_values(spreadsheet_id: str, cell_range: CellRange):
    session = _get_session(spreadsheet_id)
    return {"values": session.cut(cell_range), "dirty": session.dirty}


@router.post("/{spreadsheet_id}/clear")
async def clear_values(spreadsheet_id: str, cell_range: CellRange):
    session = _get_session(spreadsheet_id)
    session.clear_range(cell_range)
    return _session_to_ui_summary(session, spreadsheet_id)


@router.post("/{spreadsheet_id}/structure")
async def edit_structure(spreadsheet_id: str, payload: StructureRequest):
    """Insert or delete rows/columns. Types and styles move with their cells."""
    session = _get_session(spreadsheet_id)
    getattr(session, payload.action)(payload.at, payload.count)
    return _session_to_ui_summary(session, spreadsheet_id)


# -----------------------------------------------------------------------------
# Types
# -----------------------------------------------------------------------------

@router.post("/{spreadsheet_id}/types")
async def set_cell_type(spreadsheet_id: str, payload: CellTypeRequest):
    session = _get_session(spreadsheet_id)
    try:
        cell_type = parse_cell_type(payload.cell_type)
    except ValidationError as e:
        raise HTTPException(400, f"Invalid cell type: {e.errors()[0].get('msg')}")
    session.set_type(payload.range, cell_type)
    return _session_to_ui_summary(session, spreadsheet_id)


@router.post("/{spreadsheet_id}/types/clear")
async def clear_cell_type(spreadsheet_id: str, cell_range: CellRange):
    session = _get_session(spreadsheet_id)
    session.clear_type(cell_range)
    return _session_to_ui_summary(session, spreadsheet_id)


@router.post("/{spreadsheet_id}/types/dropdown")
async def set_dropdown(spreadsheet_id: str, payload: DropdownRequest):
    """Set dropdown options from free text. Empty option lists are ignored."""
    session = _get_session(spreadsheet_id)
    applied = session.set_dropdown_options(payload.range, payload.options)
    return {"applied": applied, **_session_to_ui_summary(session, spreadsheet_id)}


@router.post("/{spreadsheet_id}/types/dropdown-from-column")
async def set_dropdown_from_column(spreadsheet_id: str, cell_range: CellRange):
    session = _get_session(spreadsheet_id)
    options = session.dropdown_from_column(cell_range)
    return {"options": options, **_session_to_ui_summary(session, spreadsheet_id)}


@router.post("/{spreadsheet_id}/formats/{preset}")
async def apply_format(spreadsheet_id: str, preset: str, payload: FormatRequest):
    """Apply a format preset: currency, percentage, number, date or text."""
    session = _get_session(spreadsheet_id)
    try:
        session.apply_format_preset(payload.range, preset, payload.pattern)
    except ValueError as e:
        raise HTTPException(400, str(e))
    return _session_to_ui_summary(session, spreadsheet_id)


# -----------------------------------------------------------------------------
# Styles
# -----------------------------------------------------------------------------

@router.post("/{spreadsheet_id}/styles")
async def apply_style(spreadsheet_id: str, payload: StyleRequest):
    session = _get_session(spreadsheet_id)
    try:
        if payload.value is None:
            session.clear_style(payload.range, payload.property)
        else:
            session.apply_style(payload.range, payload.property, payload.value)
    except ValueError as e:
        raise HTTPException(400, str(e))
    return _session_to_ui_summary(session, spreadsheet_id)


@router.post("/{spreadsheet_id}/styles/toggle")
async def toggle_style(spreadsheet_id: str, payload: ToggleRequest):
    session = _get_session(spreadsheet_id)
    try:
        if payload.on is None:
            session.toggle_class(payload.range, payload.name)
        else:
            session.set_flag(payload.range, payload.name, payload.on)
    except ValueError as e:
        raise HTTPException(400, str(e))
    return _session_to_ui_summary(session, spreadsheet_id)


@router.post("/{spreadsheet_id}/styles/font-size")
async def step_font_size(spreadsheet_id: str, payload: FontStepRequest):
    session = _get_session(spreadsheet_id)
    session.step_font_size(payload.range, payload.delta)
    return _session_to_ui_summary(session, spreadsheet_id)


@router.post("/{spreadsheet_id}/borders")
async def apply_borders(spreadsheet_id: str, payload: BorderRequest):
    session = _get_session(spreadsheet_id)
    session.apply_borders(payload.range, payload.option, payload.weight, payload.color)
    return _session_to_ui_summary(session, spreadsheet_id)


# -----------------------------------------------------------------------------
# Operations / selection
# -----------------------------------------------------------------------------

@router.post("/{spreadsheet_id}/operations")
async def apply_operations(spreadsheet_id: str, batch: OperationBatch):
    """Apply a batch of edit operations (e.g. proposed by an assistant)."""
    session = _get_session(spreadsheet_id)
    applied = session.apply_operations(batch)
    return {"applied": applied, **_session_to_ui_summary(session, spreadsheet_id)}


@router.post("/{spreadsheet_id}/select")
async def select_range(spreadsheet_id: str, cell_range: CellRange):
    session = _get_session(spreadsheet_id)
    session.select(cell_range)
    return {"selection": cell_range.model_dump()}


@router.post("/{spreadsheet_id}/deselect")
async def deselect(spreadsheet_id: str):
    _get_session(spreadsheet_id).deselect()
    return {"selection": None}


# -----------------------------------------------------------------------------
# Export / save
# -----------------------------------------------------------------------------

@router.get("/{spreadsheet_id}/export/{fmt}")
async def export_spreadsheet(spreadsheet_id: str, fmt: Literal["csv", "xlsx"]):
    """Download the current sheet as CSV (with metadata header) or XLSX."""
    session = _get_session(spreadsheet_id)
    try:
        payload, filename, content_type = session.export(fmt)
    except Exception as e:
        logger.error(f"[EXPORT] Export of {spreadsheet_id} failed: {e}")
        raise HTTPException(500, f"Export failed: {e}")

    logger.info(f"[EXPORT] {spreadsheet_id} -> {filename} ({len(payload)} bytes)")
    return Response(
        content=payload,
        media_type=content_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/{spreadsheet_id}/save")
async def save_spreadsheet(spreadsheet_id: str, fmt: Literal["csv", "xlsx"] = "xlsx"):
    """Persist the sheet. Clears the dirty flag on success."""
    session = _get_session(spreadsheet_id)
    result = session.save(_store.saver_for(spreadsheet_id), fmt=fmt)
    if not result.success:
        raise HTTPException(500, result.message)
    return {"success": result.success, "message": result.message, "dirty": session.dirty}


@router.get("/{spreadsheet_id}/saved")
async def download_saved(spreadsheet_id: str):
    """Download the last saved payload."""
    record = _store.load(spreadsheet_id)
    if record is None:
        raise HTTPException(404, "No saved version")
    return Response(
        content=record["content"],
        media_type=record["content_type"],
        headers={"Content-Disposition": f'attachment; filename="{record["filename"]}"'},
    )
