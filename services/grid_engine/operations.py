"""Explicit edit operations a host (or an assistant) can apply to a session."""

from __future__ import annotations

from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import BaseModel, Field


class SetCellOp(BaseModel):
    type: Literal["set_cell"] = "set_cell"
    row: int = Field(ge=0)
    col: int = Field(ge=0)
    value: Any = None


class SetRangeOp(BaseModel):
    """Write a block of values with its top-left corner at (row, col)."""
    type: Literal["set_range"] = "set_range"
    row: int = Field(ge=0)
    col: int = Field(ge=0)
    values: List[List[Any]]


class InsertRowsOp(BaseModel):
    type: Literal["insert_rows"] = "insert_rows"
    at: int = Field(ge=0)
    count: int = Field(default=1, ge=1)


class DeleteRowsOp(BaseModel):
    type: Literal["delete_rows"] = "delete_rows"
    at: int = Field(ge=0)
    count: int = Field(default=1, ge=1)


class InsertColsOp(BaseModel):
    type: Literal["insert_cols"] = "insert_cols"
    at: int = Field(ge=0)
    count: int = Field(default=1, ge=1)


class DeleteColsOp(BaseModel):
    type: Literal["delete_cols"] = "delete_cols"
    at: int = Field(ge=0)
    count: int = Field(default=1, ge=1)


SheetOperation = Annotated[
    Union[SetCellOp, SetRangeOp, InsertRowsOp, DeleteRowsOp, InsertColsOp, DeleteColsOp],
    Field(discriminator="type"),
]


class OperationBatch(BaseModel):
    """Operations applied in order.

    ``csv_content`` replaces the whole sheet (values, types, styles) before
    any listed operation runs.
    """
    operations: List[SheetOperation] = Field(default_factory=list)
    csv_content: Optional[str] = None


def apply_operation(session: Any, op: SheetOperation) -> None:
    """Dispatch one operation onto an EditorSession's commands."""
    if isinstance(op, SetCellOp):
        session.edit_cell(op.row, op.col, op.value)
    elif isinstance(op, SetRangeOp):
        session.paste(op.row, op.col, op.values)
    elif isinstance(op, InsertRowsOp):
        session.insert_rows(op.at, op.count)
    elif isinstance(op, DeleteRowsOp):
        session.delete_rows(op.at, op.count)
    elif isinstance(op, InsertColsOp):
        session.insert_cols(op.at, op.count)
    elif isinstance(op, DeleteColsOp):
        session.delete_cols(op.at, op.count)
    else:
        raise ValueError(f"Unsupported operation: {op!r}")
