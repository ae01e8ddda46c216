from __future__ import annotations

from pydantic import BaseModel, Field, field_validator


class Cell(BaseModel):
    row: int = Field(ge=0)
    col: int = Field(ge=0)

    def as_tuple(self) -> tuple[int, int]:
        return self.row, self.col


class SessionCreateRequest(BaseModel):
    # Rows of "." (free) and "#" (blocked), or 0/1 integers.
    grid: list[str] | list[list[int]]
    start: Cell
    goal: Cell
    connectivity: int | None = None
    cell_costs: list[list[float]] | None = None

    @field_validator("grid")
    @classmethod
    def _non_empty_grid(cls, value):
        if not value or not value[0]:
            raise ValueError("grid must have at least one row and one column")
        widths = {len(row) for row in value}
        if len(widths) != 1:
            raise ValueError("grid rows must all have the same width")
        return value

    @field_validator("connectivity")
    @classmethod
    def _valid_connectivity(cls, value):
        if value is not None and value not in (4, 8):
            raise ValueError("connectivity must be 4 or 8")
        return value


class EdgeChangeItem(BaseModel):
    u: Cell
    v: Cell
    # None marks the edge as blocked.
    cost: float | None = Field(default=None, ge=0.0)
    bidirectional: bool | None = None


class EdgeChangeRequest(BaseModel):
    changes: list[EdgeChangeItem] = Field(min_length=1)


class CellChangeRequest(BaseModel):
    block: list[Cell] = Field(default_factory=list)
    unblock: list[Cell] = Field(default_factory=list)


class MoveRequest(BaseModel):
    to: Cell
