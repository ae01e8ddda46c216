from __future__ import annotations

import math
from collections.abc import Callable, Hashable, Iterable, Mapping
from typing import Protocol

import numpy as np

from replanner.planning.errors import CollaboratorContractError, InvalidHeuristicError


Vertex = Hashable
Cell = tuple[int, int]
Edge = tuple[Vertex, float]

SQRT2 = math.sqrt(2.0)

# Row-major so that neighbor enumeration (and path tie-breaking) is deterministic.
_OFFSETS_4 = ((-1, 0), (0, -1), (0, 1), (1, 0))
_OFFSETS_8 = ((-1, -1), (-1, 0), (-1, 1), (0, -1), (0, 1), (1, -1), (1, 0), (1, 1))


class Graph(Protocol):
    """Collaborator consumed by the planners.

    ``successors(v)`` lists forward edges ``v -> s`` with cost ``c(v, s)``;
    ``predecessors(v)`` lists forward edges ``p -> v`` with cost ``c(p, v)``.
    ``heuristic(a, b)`` must be an admissible, consistent lower bound on the
    cost of travelling from ``a`` to ``b``.
    """

    def successors(self, v: Vertex) -> Iterable[Edge]: ...

    def predecessors(self, v: Vertex) -> Iterable[Edge]: ...

    def heuristic(self, a: Vertex, b: Vertex) -> float: ...


def check_cost(u: Vertex, v: Vertex, cost: float) -> float:
    value = float(cost)
    if math.isnan(value) or value < 0.0:
        raise CollaboratorContractError(f"Edge cost must be >= 0, got {cost!r} for {u!r} -> {v!r}")
    return value


def check_heuristic(a: Vertex, b: Vertex, value: float) -> float:
    h = float(value)
    if math.isnan(h) or h < 0.0:
        raise InvalidHeuristicError(f"Heuristic must be >= 0, got {value!r} for {a!r} -> {b!r}")
    return h


def check_vertex(graph: Graph, v: Vertex) -> None:
    contains = getattr(graph, "contains", None)
    if contains is not None and not contains(v):
        raise CollaboratorContractError(f"Vertex {v!r} is outside the graph domain")


def is_symmetric(graph: Graph) -> bool:
    return bool(getattr(graph, "symmetric", False))


def zero_heuristic(a: Vertex, b: Vertex) -> float:  # noqa: ARG001
    return 0.0


class GridGraph:
    """Occupancy grid with 4- or 8-connectivity.

    Moving ``u -> v`` costs the step length (1 or sqrt(2)) times
    ``cell_cost[v]``; any edge touching a blocked cell costs +inf.
    """

    def __init__(
        self,
        blocked: np.ndarray,
        *,
        connectivity: int = 8,
        cell_cost: np.ndarray | None = None,
    ) -> None:
        blocked = np.asarray(blocked, dtype=bool)
        if blocked.ndim != 2:
            raise ValueError(f"blocked mask must be 2-D, got shape {blocked.shape}")
        if connectivity not in (4, 8):
            raise ValueError(f"connectivity must be 4 or 8, got {connectivity}")
        if cell_cost is None:
            cell_cost = np.ones(blocked.shape, dtype=np.float64)
        else:
            cell_cost = np.asarray(cell_cost, dtype=np.float64)
            if cell_cost.shape != blocked.shape:
                raise ValueError(f"cell_cost shape {cell_cost.shape} does not match blocked {blocked.shape}")
            if not np.all(np.isfinite(cell_cost)) or bool((cell_cost < 0).any()):
                raise ValueError("cell_cost must be finite and >= 0")

        self.blocked = blocked.copy()
        self.cell_cost = cell_cost.copy()
        self.connectivity = connectivity
        self.h, self.w = blocked.shape
        self._offsets = _OFFSETS_8 if connectivity == 8 else _OFFSETS_4
        # The cheapest cell bounds every step from below, so the scaled
        # distance stays admissible whichever cells end up blocked.
        self.min_cell_cost = float(cell_cost.min()) if cell_cost.size else 0.0
        self.symmetric = bool(cell_cost.size == 0 or np.all(cell_cost == cell_cost.flat[0]))

    @property
    def shape(self) -> tuple[int, int]:
        return self.h, self.w

    @property
    def size(self) -> int:
        return self.h * self.w

    def contains(self, v: Vertex) -> bool:
        if not isinstance(v, tuple) or len(v) != 2:
            return False
        r, c = v
        if not isinstance(r, (int, np.integer)) or not isinstance(c, (int, np.integer)):
            return False
        return 0 <= r < self.h and 0 <= c < self.w

    def neighbors(self, v: Cell) -> list[Cell]:
        r, c = v
        out = []
        for dr, dc in self._offsets:
            rr = r + dr
            cc = c + dc
            if 0 <= rr < self.h and 0 <= cc < self.w:
                out.append((rr, cc))
        return out

    def cost(self, u: Cell, v: Cell) -> float:
        ur, uc = u
        vr, vc = v
        if self.blocked[ur, uc] or self.blocked[vr, vc]:
            return math.inf
        step = SQRT2 if ur != vr and uc != vc else 1.0
        return step * float(self.cell_cost[vr, vc])

    def successors(self, v: Cell) -> list[Edge]:
        return [(n, self.cost(v, n)) for n in self.neighbors(v)]

    def predecessors(self, v: Cell) -> list[Edge]:
        return [(n, self.cost(n, v)) for n in self.neighbors(v)]

    def heuristic(self, a: Cell, b: Cell) -> float:
        dr = abs(a[0] - b[0])
        dc = abs(a[1] - b[1])
        if self.connectivity == 4:
            dist = float(dr + dc)
        else:
            diag = min(dr, dc)
            dist = SQRT2 * diag + float(max(dr, dc) - diag)
        return dist * self.min_cell_cost

    def with_blocked(self, blocked: np.ndarray) -> GridGraph:
        return GridGraph(blocked, connectivity=self.connectivity, cell_cost=self.cell_cost)

    def changed_cells(self, blocked: np.ndarray) -> list[Cell]:
        blocked = np.asarray(blocked, dtype=bool)
        if blocked.shape != self.blocked.shape:
            raise ValueError(f"mask shape {blocked.shape} does not match grid {self.blocked.shape}")
        return [(int(r), int(c)) for r, c in np.argwhere(self.blocked != blocked)]

    def incident_edges(self, cells: Iterable[Cell]) -> list[tuple[Cell, Cell, float]]:
        """Every directed edge touching ``cells``, with its cost on this grid."""
        seen: set[tuple[Cell, Cell]] = set()
        out: list[tuple[Cell, Cell, float]] = []
        for cell in cells:
            cell = (int(cell[0]), int(cell[1]))
            for n in self.neighbors(cell):
                for u, v in ((cell, n), (n, cell)):
                    if (u, v) in seen:
                        continue
                    seen.add((u, v))
                    out.append((u, v, self.cost(u, v)))
        return out


class AdjacencyGraph:
    """Explicit edge-list graph; enumeration follows insertion order."""

    def __init__(
        self,
        edges: Iterable[tuple[Vertex, Vertex, float]] = (),
        *,
        directed: bool = True,
        heuristic: Callable[[Vertex, Vertex], float] | Mapping[tuple[Vertex, Vertex], float] | None = None,
    ) -> None:
        self.directed = directed
        self.symmetric = not directed
        self._succ: dict[Vertex, dict[Vertex, float]] = {}
        self._pred: dict[Vertex, dict[Vertex, float]] = {}
        self._heuristic = heuristic
        for u, v, cost in edges:
            self.add_edge(u, v, cost)

    def add_vertex(self, v: Vertex) -> None:
        self._succ.setdefault(v, {})
        self._pred.setdefault(v, {})

    def add_edge(self, u: Vertex, v: Vertex, cost: float) -> None:
        cost = check_cost(u, v, cost)
        self.add_vertex(u)
        self.add_vertex(v)
        self._succ[u][v] = cost
        self._pred[v][u] = cost
        if not self.directed:
            self._succ[v][u] = cost
            self._pred[u][v] = cost

    def copy(self) -> AdjacencyGraph:
        clone = AdjacencyGraph(directed=self.directed, heuristic=self._heuristic)
        for u, succ in self._succ.items():
            clone.add_vertex(u)
            for v, cost in succ.items():
                clone._succ[u][v] = cost
                clone.add_vertex(v)
                clone._pred[v][u] = cost
        return clone

    @property
    def vertices(self) -> list[Vertex]:
        return list(self._succ)

    def contains(self, v: Vertex) -> bool:
        return v in self._succ

    def successors(self, v: Vertex) -> list[Edge]:
        return list(self._succ.get(v, {}).items())

    def predecessors(self, v: Vertex) -> list[Edge]:
        return list(self._pred.get(v, {}).items())

    def heuristic(self, a: Vertex, b: Vertex) -> float:
        if self._heuristic is None:
            return 0.0
        if callable(self._heuristic):
            return self._heuristic(a, b)
        return self._heuristic.get((a, b), 0.0)


class FunctionGraph:
    """Graph backed by plain callables.

    Without ``predecessors`` the graph is treated as symmetric and
    ``successors`` answers both directions.
    """

    def __init__(
        self,
        successors: Callable[[Vertex], Iterable[Edge]],
        heuristic: Callable[[Vertex, Vertex], float] | None = None,
        *,
        predecessors: Callable[[Vertex], Iterable[Edge]] | None = None,
        contains: Callable[[Vertex], bool] | None = None,
    ) -> None:
        self._successors = successors
        self._predecessors = predecessors or successors
        self._heuristic = heuristic or zero_heuristic
        self._contains = contains
        self.symmetric = predecessors is None

    def contains(self, v: Vertex) -> bool:
        if self._contains is None:
            return True
        return bool(self._contains(v))

    def successors(self, v: Vertex) -> list[Edge]:
        return list(self._successors(v))

    def predecessors(self, v: Vertex) -> list[Edge]:
        return list(self._predecessors(v))

    def heuristic(self, a: Vertex, b: Vertex) -> float:
        return self._heuristic(a, b)
