"""Incremental D* Lite replanning.

The search runs backward from the goal: ``rhs(u)`` is read from the forward
successors of ``u`` and a change to ``g(u)`` is pushed to the forward
predecessors of ``u``. State (``g``, ``rhs``, open list, ``km``) survives
across agent moves and edge-cost batches; only the affected region is
re-expanded.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Hashable, Iterator
from dataclasses import asdict, dataclass
from enum import Enum

from replanner.planning.errors import (
    InvalidHeuristicError,
    PathExtractionError,
    PlannerStateError,
)
from replanner.planning.graph import (
    Edge,
    Graph,
    check_cost,
    check_heuristic,
    check_vertex,
    is_symmetric,
)
from replanner.planning.open_list import Key, OpenList


logger = logging.getLogger(__name__)

INF = math.inf
Vertex = Hashable

_CONSISTENCY_TOL = 1e-9
_TIE_TOL = 1e-9


class PlannerState(str, Enum):
    INIT = "init"
    PLAN = "plan"
    MOVE = "move"
    EDGE_UPDATE = "edge_update"
    SUCCESS = "success"
    NO_PATH = "no_path"


class VertexStatus(str, Enum):
    NEW = "new"
    OPEN = "open"
    CLOSED = "closed"


@dataclass(frozen=True)
class PlanResult:
    path: tuple[Vertex, ...]
    cost: float


@dataclass(frozen=True)
class EdgeChange:
    u: Vertex
    v: Vertex
    cost: float
    bidirectional: bool


@dataclass
class PlannerStats:
    compute_runs: int = 0
    expansions: int = 0
    requeues: int = 0
    vertex_updates: int = 0
    edge_changes: int = 0
    moves: int = 0
    last_run_expansions: int = 0
    backtracks: int = 0


class VertexStore:
    """``g``/``rhs`` per vertex; untouched vertices read as +inf."""

    def __init__(self) -> None:
        self._g: dict[Vertex, float] = {}
        self._rhs: dict[Vertex, float] = {}
        self._touched: set[Vertex] = set()

    def __len__(self) -> int:
        return len(self._touched)

    def __iter__(self) -> Iterator[Vertex]:
        return iter(self._touched)

    def g(self, v: Vertex) -> float:
        return self._g.get(v, INF)

    def rhs(self, v: Vertex) -> float:
        return self._rhs.get(v, INF)

    def set_g(self, v: Vertex, value: float) -> None:
        self._g[v] = value
        self._touched.add(v)

    def set_rhs(self, v: Vertex, value: float) -> None:
        self._rhs[v] = value
        self._touched.add(v)

    def touched(self, v: Vertex) -> bool:
        return v in self._touched

    def is_consistent(self, v: Vertex) -> bool:
        return self.g(v) == self.rhs(v)


class DStarLitePlanner:
    """D* Lite over a :class:`Graph` collaborator.

    Edge changes and agent moves are buffered; :meth:`plan` applies them,
    converges the search and extracts a path by greedy cost descent.
    """

    def __init__(
        self,
        graph: Graph,
        start: Vertex,
        goal: Vertex,
        *,
        heuristic: Callable[[Vertex, Vertex], float] | None = None,
        check_consistency: bool = False,
        trace_keys: bool = False,
    ) -> None:
        check_vertex(graph, start)
        check_vertex(graph, goal)
        self.graph = graph
        self._heuristic_fn = heuristic or graph.heuristic
        self.start = start
        self.goal = goal
        self.km = 0.0
        self.check_consistency = check_consistency
        self.trace_keys = trace_keys
        self.popped_keys: list[Key] = []

        self.store = VertexStore()
        self.open_list = OpenList()
        self.stats = PlannerStats()

        self._overrides: dict[tuple[Vertex, Vertex], float] = {}
        self._extra_succ: dict[Vertex, list[Vertex]] = {}
        self._extra_pred: dict[Vertex, list[Vertex]] = {}
        self._pending: list[EdgeChange] = []
        self._dirty = True
        self._computing = False

        self.state = PlannerState.INIT
        self.store.set_rhs(goal, 0.0)
        self.open_list.push(goal, self.calculate_key(goal))

    # -- collaborator access -------------------------------------------------

    def heuristic(self, a: Vertex, b: Vertex) -> float:
        return check_heuristic(a, b, self._heuristic_fn(a, b))

    def successors(self, u: Vertex) -> list[Edge]:
        out: list[Edge] = []
        for v, cost in self.graph.successors(u):
            check_vertex(self.graph, v)
            cost = check_cost(u, v, cost)
            out.append((v, self._overrides.get((u, v), cost)))
        for v in self._extra_succ.get(u, ()):
            out.append((v, self._overrides[(u, v)]))
        return out

    def predecessors(self, v: Vertex) -> list[Edge]:
        out: list[Edge] = []
        for p, cost in self.graph.predecessors(v):
            check_vertex(self.graph, p)
            cost = check_cost(p, v, cost)
            out.append((p, self._overrides.get((p, v), cost)))
        for p in self._extra_pred.get(v, ()):
            out.append((p, self._overrides[(p, v)]))
        return out

    # -- core ----------------------------------------------------------------

    def calculate_key(self, v: Vertex) -> Key:
        g_rhs = min(self.store.g(v), self.store.rhs(v))
        return (g_rhs + self.heuristic(self.start, v) + self.km, g_rhs)

    def update_vertex(self, u: Vertex) -> None:
        self.stats.vertex_updates += 1
        if u != self.goal:
            best = INF
            for s, cost in self.successors(u):
                if cost == INF:
                    continue
                if self.check_consistency:
                    self._check_consistent_edge(u, s, cost)
                cand = cost + self.store.g(s)
                if cand < best:
                    best = cand
            self.store.set_rhs(u, best)

        self.open_list.invalidate(u)
        if self.store.g(u) != self.store.rhs(u):
            self.open_list.push(u, self.calculate_key(u))

    def _check_consistent_edge(self, u: Vertex, s: Vertex, cost: float) -> None:
        h_u = self.heuristic(self.start, u)
        h_s = self.heuristic(self.start, s)
        if h_s > h_u + cost + _CONSISTENCY_TOL:
            raise InvalidHeuristicError(
                f"Heuristic is inconsistent on edge {u!r} -> {s!r}: h={h_s} > {h_u} + {cost}"
            )

    def compute_shortest_path(self) -> int:
        if self._computing:
            raise PlannerStateError("compute_shortest_path must not be re-entered")
        self._computing = True
        expansions = 0
        requeues = 0
        if self.trace_keys:
            self.popped_keys = []
        try:
            while True:
                top_key = self.open_list.peek_min_key()
                if top_key is None:
                    break
                start_key = self.calculate_key(self.start)
                if not (top_key < start_key or self.store.rhs(self.start) != self.store.g(self.start)):
                    break

                u, k_old = self.open_list.pop_min()
                if self.trace_keys:
                    self.popped_keys.append(k_old)
                k_new = self.calculate_key(u)
                if k_old < k_new:
                    self.open_list.push(u, k_new)
                    requeues += 1
                    continue

                expansions += 1
                g_u = self.store.g(u)
                rhs_u = self.store.rhs(u)
                if g_u > rhs_u:
                    self.store.set_g(u, rhs_u)
                    for p, _ in self.predecessors(u):
                        self.update_vertex(p)
                else:
                    self.store.set_g(u, INF)
                    self.update_vertex(u)
                    for p, _ in self.predecessors(u):
                        self.update_vertex(p)
        finally:
            self._computing = False

        self._dirty = False
        self.stats.compute_runs += 1
        self.stats.expansions += expansions
        self.stats.requeues += requeues
        self.stats.last_run_expansions = expansions
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                "D* Lite converged: expansions=%d requeues=%d open=%d vertices=%d",
                expansions,
                requeues,
                len(self.open_list),
                len(self.store),
            )
        return expansions

    # -- driver --------------------------------------------------------------

    @property
    def pending_changes(self) -> int:
        return len(self._pending)

    @property
    def needs_compute(self) -> bool:
        return self._dirty or bool(self._pending)

    def notify_edge_changed(
        self,
        u: Vertex,
        v: Vertex,
        new_cost: float,
        *,
        bidirectional: bool | None = None,
    ) -> None:
        """Buffer a cost change for ``u -> v``; applied on the next :meth:`plan`."""
        check_vertex(self.graph, u)
        check_vertex(self.graph, v)
        cost = check_cost(u, v, new_cost)
        if bidirectional is None:
            bidirectional = is_symmetric(self.graph)
        self._pending.append(EdgeChange(u=u, v=v, cost=cost, bidirectional=bidirectional))
        self.stats.edge_changes += 1

    def move_start(self, new_start: Vertex) -> None:
        check_vertex(self.graph, new_start)
        if new_start == self.start:
            return
        self.state = PlannerState.MOVE
        self.km += self.heuristic(self.start, new_start)
        self.start = new_start
        self.stats.moves += 1
        self._dirty = True

    def _set_override(self, u: Vertex, v: Vertex, cost: float) -> None:
        if (u, v) not in self._overrides and all(n != v for n, _ in self.graph.successors(u)):
            self._extra_succ.setdefault(u, []).append(v)
            self._extra_pred.setdefault(v, []).append(u)
        self._overrides[(u, v)] = cost

    def _apply_pending(self) -> None:
        if self._computing:
            raise PlannerStateError("Edge updates must not interleave with compute_shortest_path")
        self.state = PlannerState.EDGE_UPDATE
        batch, self._pending = self._pending, []
        affected: dict[Vertex, None] = {}
        for change in batch:
            self._set_override(change.u, change.v, change.cost)
            affected[change.u] = None
            if change.bidirectional:
                self._set_override(change.v, change.u, change.cost)
                affected[change.v] = None
        for u in affected:
            self.update_vertex(u)
        self._dirty = True
        logger.debug("D* Lite applied %d edge changes touching %d vertices", len(batch), len(affected))

    def sync(self) -> int:
        """Apply buffered changes and converge if anything moved."""
        if self._pending:
            self._apply_pending()
        if not self._dirty:
            return 0
        return self.compute_shortest_path()

    def plan(self) -> PlanResult | None:
        self.sync()
        self.state = PlannerState.PLAN
        if self.start == self.goal:
            self.state = PlannerState.SUCCESS
            return PlanResult(path=(self.goal,), cost=0.0)
        if self.store.rhs(self.start) == INF:
            self.state = PlannerState.NO_PATH
            return None
        result = self.extract_path()
        if result is None:
            self.state = PlannerState.NO_PATH
        return result

    def tight_successors(self, u: Vertex) -> list[Edge]:
        """Successors ``s`` of ``u`` whose ``cost + g(s)`` attains the local minimum.

        Ordered cheapest first, then by lower ``g``, then by enumeration order.
        """
        scored = []
        for idx, (s, cost) in enumerate(self.successors(u)):
            if cost == INF:
                continue
            g_s = self.store.g(s)
            if g_s == INF:
                continue
            scored.append((cost + g_s, g_s, idx, s, cost))
        if not scored:
            return []
        scored.sort(key=lambda item: item[:3])
        best = scored[0][0]
        limit = best + _TIE_TOL * max(1.0, abs(best))
        return [(s, cost) for cand, _, _, s, cost in scored if cand <= limit]

    def extract_path(self) -> PlanResult | None:
        """Descend ``cost + g`` from start to goal.

        The first tight successor is taken at every vertex. Zero-cost plateaus
        can lead that choice into a vertex whose tight successors were all
        visited already; the walk then backtracks to the next candidate, so a
        path is found whenever the converged ``g`` values reach the goal.
        """
        if self.start == self.goal:
            return PlanResult(path=(self.goal,), cost=0.0)
        first = self.tight_successors(self.start)
        if not first:
            return None

        visited = {self.start}
        stack: list[tuple[Vertex, float, Iterator[Edge]]] = [(self.start, 0.0, iter(first))]
        while stack:
            _, cost_so_far, candidates = stack[-1]
            for s, cost in candidates:
                if s in visited:
                    continue
                visited.add(s)
                if s == self.goal:
                    path = [frame[0] for frame in stack]
                    path.append(s)
                    return PlanResult(path=tuple(path), cost=cost_so_far + cost)
                stack.append((s, cost_so_far + cost, iter(self.tight_successors(s))))
                break
            else:
                stack.pop()
                self.stats.backtracks += 1
        raise PathExtractionError(
            f"D* Lite path extraction found no tight route from {self.start!r} although g(start) is finite."
        )

    # -- introspection -------------------------------------------------------

    def status(self, v: Vertex) -> VertexStatus:
        if v in self.open_list:
            return VertexStatus.OPEN
        if self.store.touched(v):
            return VertexStatus.CLOSED
        return VertexStatus.NEW

    def snapshot(self) -> dict:
        return {
            "state": self.state.value,
            "start": self.start,
            "goal": self.goal,
            "km": self.km,
            "pending_changes": self.pending_changes,
            "open_size": len(self.open_list),
            "vertices": len(self.store),
            "g_start": self.store.g(self.start),
            "rhs_start": self.store.rhs(self.start),
            "stats": asdict(self.stats),
        }


def initialize(start: Vertex, goal: Vertex, graph: Graph, **kwargs) -> DStarLitePlanner:
    return DStarLitePlanner(graph, start, goal, **kwargs)
