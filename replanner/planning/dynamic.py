from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field

import numpy as np

from replanner.core.config import Settings, get_settings
from replanner.planning.dstar_lite import DStarLitePlanner, PlanResult
from replanner.planning.errors import PlanningError
from replanner.planning.graph import Cell, GridGraph
from replanner.planning.reference import shortest_path


logger = logging.getLogger(__name__)

DSTAR_KEYS = {"dstar_lite", "dstar-lite", "dstar"}
RECOMPUTE_KEYS = {"recompute", "astar", "a_star"}


@dataclass(frozen=True)
class DynamicResult:
    executed: list[Cell]
    reached_goal: bool
    total_cost: float
    planner: str
    steps: list[dict] = field(default_factory=list)
    notes: list[str] = field(default_factory=list)

    @property
    def incremental_steps(self) -> int:
        return sum(1 for item in self.steps if item["update_mode"] == "incremental")

    @property
    def rebuild_steps(self) -> int:
        return sum(1 for item in self.steps if item["update_mode"] == "rebuild")

    @property
    def total_expansions(self) -> int:
        return sum(int(item["expansions"]) for item in self.steps)


def _as_cell(raw) -> Cell:
    return int(raw[0]), int(raw[1])


def _new_planner(graph: GridGraph, start: Cell, goal: Cell, settings: Settings) -> DStarLitePlanner:
    return DStarLitePlanner(
        graph,
        start,
        goal,
        check_consistency=settings.check_heuristic_consistency,
    )


def run_dynamic_replan(
    *,
    frames: list[np.ndarray],
    start: tuple[int, int],
    goal: tuple[int, int],
    connectivity: int | None = None,
    cell_cost: np.ndarray | None = None,
    planner: str = "dstar_lite",
    advance_steps: int | None = None,
    rebuild_ratio: float | None = None,
    settings: Settings | None = None,
) -> DynamicResult:
    """Walk one agent across a sequence of blocked masks.

    Each frame is planned on, then the agent advances up to ``advance_steps``
    edges (the whole remaining path on the last frame). D* Lite turns small
    mask diffs into edge-change batches and rebuilds past ``rebuild_ratio``;
    ``recompute`` reruns A* from scratch every frame.
    """
    settings = settings or get_settings()
    if not frames:
        raise PlanningError("Dynamic replanning requires at least 1 frame.")
    connectivity = connectivity or settings.default_connectivity
    advance_steps = settings.dynamic_advance_steps if advance_steps is None else int(advance_steps)
    if advance_steps < 1:
        raise PlanningError("advance_steps must be >= 1")
    rebuild_ratio = settings.dynamic_rebuild_ratio if rebuild_ratio is None else float(rebuild_ratio)

    planner_key = planner.strip().lower()
    if planner_key not in DSTAR_KEYS | RECOMPUTE_KEYS:
        raise PlanningError(f"Unsupported planner={planner}, expected dstar_lite or recompute")
    use_dstar = planner_key in DSTAR_KEYS

    graphs = [GridGraph(frame, connectivity=connectivity, cell_cost=cell_cost) for frame in frames]
    shape = graphs[0].shape
    for graph in graphs[1:]:
        if graph.shape != shape:
            raise PlanningError("Dynamic replanning requires aligned grid shape across frames.")
    current = _as_cell(start)
    goal_rc = _as_cell(goal)
    for cell in (current, goal_rc):
        if not graphs[0].contains(cell):
            raise PlanningError(f"Point out of grid bounds: {cell}, shape={shape}")

    executed: list[Cell] = [current]
    total_cost = 0.0
    steps: list[dict] = []
    notes: list[str] = []

    dstar: DStarLitePlanner | None = None
    planner_graph: GridGraph | None = None

    for step_idx, graph in enumerate(graphs):
        if current == goal_rc:
            break
        step_t0 = time.perf_counter()
        update_mode = "init" if step_idx == 0 else "none"
        changed_count = 0
        expansions = 0

        if not use_dstar:
            result: PlanResult | None = shortest_path(graph, current, goal_rc)
            update_mode = "recompute"
        else:
            if dstar is None or planner_graph is None:
                dstar = _new_planner(graph, current, goal_rc, settings)
                planner_graph = graph
                update_mode = "init" if step_idx == 0 else "rebuild"
            else:
                changed = planner_graph.changed_cells(graph.blocked)
                changed_count = len(changed)
                change_ratio = float(changed_count) / float(graph.size)
                if changed_count and change_ratio <= rebuild_ratio:
                    for u, v, cost in graph.incident_edges(changed):
                        dstar.notify_edge_changed(u, v, cost, bidirectional=False)
                    planner_graph = graph
                    update_mode = "incremental"
                elif changed_count:
                    dstar = _new_planner(graph, current, goal_rc, settings)
                    planner_graph = graph
                    update_mode = "rebuild"
                    notes.append(
                        f"large_update_rebuild_step_{step_idx}: changed={changed_count} ratio={change_ratio:.4f}"
                    )
                    logger.info("Rebuilding D* Lite at step %d: %d cells changed", step_idx, changed_count)
                if dstar.start != current:
                    dstar.move_start(current)
            before = dstar.stats.expansions
            result = dstar.plan()
            expansions = dstar.stats.expansions - before

        if result is None:
            steps.append(
                {
                    "step": step_idx,
                    "status": "no_path",
                    "update_mode": update_mode,
                    "changed_cells": changed_count,
                    "expansions": expansions,
                    "runtime_ms": round((time.perf_counter() - step_t0) * 1000.0, 3),
                    "moved_edges": 0,
                    "path_cost": None,
                }
            )
            notes.append(f"no_path_at_step_{step_idx}")
            continue

        cells = list(result.path)
        is_last = step_idx == len(graphs) - 1
        move_edges = len(cells) - 1 if is_last else min(advance_steps, len(cells) - 1)
        for idx in range(1, move_edges + 1):
            prev = cells[idx - 1]
            nxt = cells[idx]
            total_cost += graph.cost(prev, nxt)
            executed.append(nxt)
            current = nxt
            if dstar is not None:
                dstar.move_start(nxt)

        steps.append(
            {
                "step": step_idx,
                "status": "ok",
                "update_mode": update_mode,
                "changed_cells": changed_count,
                "expansions": expansions,
                "runtime_ms": round((time.perf_counter() - step_t0) * 1000.0, 3),
                "moved_edges": move_edges,
                "path_cost": round(float(result.cost), 6),
            }
        )

    reached = current == goal_rc
    return DynamicResult(
        executed=executed,
        reached_goal=reached,
        total_cost=total_cost,
        planner="dstar_lite_incremental" if use_dstar else "astar_recompute",
        steps=steps,
        notes=notes,
    )
