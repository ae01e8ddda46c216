from __future__ import annotations

import math
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import UTC, datetime
from threading import Lock
from typing import Any
from uuid import uuid4

import numpy as np

from replanner.core.config import get_settings
from replanner.planning.dstar_lite import DStarLitePlanner, PlanResult
from replanner.planning.graph import Cell, GridGraph


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


def _finite_or_none(value: float) -> float | None:
    value = float(value)
    return value if math.isfinite(value) else None


def parse_grid(rows: list[str] | list[list[int]]) -> np.ndarray:
    if rows and isinstance(rows[0], str):
        return np.array([[ch == "#" for ch in row] for row in rows], dtype=bool)
    return np.asarray(rows, dtype=np.int64) > 0


def plan_payload(result: PlanResult | None) -> dict[str, Any]:
    if result is None:
        return {"status": "no_path", "path": [], "cost": None}
    return {
        "status": "success",
        "path": [[int(r), int(c)] for r, c in result.path],
        "cost": round(float(result.cost), 6),
    }


@dataclass
class PlannerSession:
    """One planner plus the grid mask its cell-level edits are diffed against.

    The session lock serializes every call into the planner, which is
    single-threaded by contract.
    """

    session_id: str
    graph: GridGraph
    planner: DStarLitePlanner
    created_at: str = field(default_factory=_now_iso)
    lock: Lock = field(default_factory=Lock)

    def plan(self) -> dict[str, Any]:
        with self.lock:
            return plan_payload(self.planner.plan())

    def notify_edges(self, changes: list[tuple[Cell, Cell, float, bool | None]]) -> int:
        with self.lock:
            for u, v, cost, bidirectional in changes:
                self.planner.notify_edge_changed(u, v, cost, bidirectional=bidirectional)
            return self.planner.pending_changes

    def set_cells(self, *, block: list[Cell], unblock: list[Cell]) -> int:
        with self.lock:
            blocked = self.graph.blocked.copy()
            for r, c in block:
                blocked[r, c] = True
            for r, c in unblock:
                blocked[r, c] = False
            updated = self.graph.with_blocked(blocked)
            changed = self.graph.changed_cells(blocked)
            for u, v, cost in updated.incident_edges(changed):
                self.planner.notify_edge_changed(u, v, cost, bidirectional=False)
            self.graph = updated
            return len(changed)

    def move(self, cell: Cell) -> None:
        with self.lock:
            self.planner.move_start(cell)

    def describe(self) -> dict[str, Any]:
        with self.lock:
            snap = self.planner.snapshot()
        start = snap["start"]
        goal = snap["goal"]
        return {
            "session_id": self.session_id,
            "created_at": self.created_at,
            "shape": list(self.graph.shape),
            "connectivity": self.graph.connectivity,
            "state": snap["state"],
            "start": [int(start[0]), int(start[1])],
            "goal": [int(goal[0]), int(goal[1])],
            "km": round(float(snap["km"]), 6),
            "pending_changes": snap["pending_changes"],
            "open_size": snap["open_size"],
            "vertices": snap["vertices"],
            "g_start": _finite_or_none(snap["g_start"]),
            "rhs_start": _finite_or_none(snap["rhs_start"]),
            "stats": snap["stats"],
        }


class SessionRegistry:
    """In-memory planner sessions; the oldest one is evicted past ``max_sessions``."""

    def __init__(self, max_sessions: int | None = None) -> None:
        self._lock = Lock()
        self._sessions: OrderedDict[str, PlannerSession] = OrderedDict()
        self.max_sessions = max(1, int(max_sessions or get_settings().max_sessions))

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def create(
        self,
        *,
        blocked: np.ndarray,
        start: Cell,
        goal: Cell,
        connectivity: int,
        cell_cost: np.ndarray | None = None,
    ) -> PlannerSession:
        settings = get_settings()
        graph = GridGraph(blocked, connectivity=connectivity, cell_cost=cell_cost)
        planner = DStarLitePlanner(
            graph,
            start,
            goal,
            check_consistency=settings.check_heuristic_consistency,
        )
        session = PlannerSession(session_id=uuid4().hex, graph=graph, planner=planner)
        with self._lock:
            self._sessions[session.session_id] = session
            while len(self._sessions) > self.max_sessions:
                self._sessions.popitem(last=False)
        return session

    def get(self, session_id: str) -> PlannerSession:
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            raise KeyError(session_id)
        return session

    def delete(self, session_id: str) -> bool:
        with self._lock:
            return self._sessions.pop(session_id, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._sessions.clear()


_REGISTRY: SessionRegistry | None = None
_REGISTRY_LOCK = Lock()


def get_session_registry() -> SessionRegistry:
    global _REGISTRY
    with _REGISTRY_LOCK:
        if _REGISTRY is None:
            _REGISTRY = SessionRegistry()
        return _REGISTRY
