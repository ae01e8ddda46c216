from __future__ import annotations

import math

import numpy as np
from fastapi import APIRouter, HTTPException

from replanner.core.config import get_settings
from replanner.core.schemas import CellChangeRequest, EdgeChangeRequest, MoveRequest, SessionCreateRequest
from replanner.core.sessions import PlannerSession, get_session_registry, parse_grid


router = APIRouter(tags=["plan"])


def _session_or_404(session_id: str) -> PlannerSession:
    try:
        return get_session_registry().get(session_id)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=f"Unknown session: {session_id}") from exc


def _check_cell(session: PlannerSession, cell: tuple[int, int]) -> tuple[int, int]:
    if not session.graph.contains(cell):
        raise HTTPException(status_code=422, detail=f"Cell out of grid bounds: {list(cell)}")
    return cell


@router.post("/sessions")
def create_session(payload: SessionCreateRequest) -> dict:
    settings = get_settings()
    blocked = parse_grid(payload.grid)
    cell_cost = None
    if payload.cell_costs is not None:
        cell_cost = np.asarray(payload.cell_costs, dtype=np.float64)
        if cell_cost.shape != blocked.shape:
            raise HTTPException(
                status_code=422,
                detail=f"cell_costs shape {list(cell_cost.shape)} does not match grid {list(blocked.shape)}",
            )
    try:
        session = get_session_registry().create(
            blocked=blocked,
            start=payload.start.as_tuple(),
            goal=payload.goal.as_tuple(),
            connectivity=payload.connectivity or settings.default_connectivity,
            cell_cost=cell_cost,
        )
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc

    return {
        "session_id": session.session_id,
        "plan": session.plan(),
        "session": session.describe(),
    }


@router.get("/sessions/{session_id}")
def get_session(session_id: str) -> dict:
    return _session_or_404(session_id).describe()


@router.post("/sessions/{session_id}/plan")
def plan_session(session_id: str) -> dict:
    session = _session_or_404(session_id)
    plan = session.plan()
    return {
        "session_id": session_id,
        "plan": plan,
        "session": session.describe(),
    }


@router.post("/sessions/{session_id}/edges")
def notify_edges(session_id: str, payload: EdgeChangeRequest) -> dict:
    session = _session_or_404(session_id)
    changes = []
    for item in payload.changes:
        u = _check_cell(session, item.u.as_tuple())
        v = _check_cell(session, item.v.as_tuple())
        cost = math.inf if item.cost is None else float(item.cost)
        changes.append((u, v, cost, item.bidirectional))
    pending = session.notify_edges(changes)
    return {"session_id": session_id, "accepted": len(changes), "pending_changes": pending}


@router.post("/sessions/{session_id}/cells")
def change_cells(session_id: str, payload: CellChangeRequest) -> dict:
    session = _session_or_404(session_id)
    block = [_check_cell(session, c.as_tuple()) for c in payload.block]
    unblock = [_check_cell(session, c.as_tuple()) for c in payload.unblock]
    changed = session.set_cells(block=block, unblock=unblock)
    return {
        "session_id": session_id,
        "changed_cells": changed,
        "pending_changes": session.describe()["pending_changes"],
    }


@router.post("/sessions/{session_id}/move")
def move_start(session_id: str, payload: MoveRequest) -> dict:
    session = _session_or_404(session_id)
    session.move(_check_cell(session, payload.to.as_tuple()))
    return {"session_id": session_id, "session": session.describe()}


@router.delete("/sessions/{session_id}")
def delete_session(session_id: str) -> dict:
    if not get_session_registry().delete(session_id):
        raise HTTPException(status_code=404, detail=f"Unknown session: {session_id}")
    return {"session_id": session_id, "deleted": True}
