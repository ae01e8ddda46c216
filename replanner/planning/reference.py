"""Full-recompute shortest paths, used as the oracle for incremental replanning."""

from __future__ import annotations

import heapq
import itertools
import math
from collections.abc import Callable, Hashable, Iterator
from dataclasses import dataclass

from replanner.planning.dstar_lite import PlanResult
from replanner.planning.graph import Graph, check_cost, check_heuristic


Vertex = Hashable


def _reconstruct_path(came_from: dict[Vertex, Vertex], cur: Vertex) -> list[Vertex]:
    path = [cur]
    while cur in came_from:
        cur = came_from[cur]
        path.append(cur)
    path.reverse()
    return path


def cost_to_goal(graph: Graph, goal: Vertex) -> dict[Vertex, float]:
    """Backward Dijkstra: cheapest cost from every reachable vertex to ``goal``."""
    dist: dict[Vertex, float] = {goal: 0.0}
    seq = itertools.count()
    heap: list[tuple[float, int, Vertex]] = [(0.0, next(seq), goal)]
    while heap:
        dist_u, _, u = heapq.heappop(heap)
        if dist_u > dist.get(u, math.inf):
            continue
        for p, cost in graph.predecessors(u):
            cost = check_cost(p, u, cost)
            if cost == math.inf:
                continue
            # Backward relaxation uses forward transition cost predecessor->current.
            cand = dist_u + cost
            if cand < dist.get(p, math.inf):
                dist[p] = cand
                heapq.heappush(heap, (cand, next(seq), p))
    return dist


def shortest_path(graph: Graph, start: Vertex, goal: Vertex) -> PlanResult | None:
    """Forward A* from ``start`` to ``goal``; ``None`` when unreachable."""
    if start == goal:
        return PlanResult(path=(goal,), cost=0.0)

    gscore: dict[Vertex, float] = {start: 0.0}
    closed: set[Vertex] = set()
    came_from: dict[Vertex, Vertex] = {}
    seq = itertools.count()
    heap: list[tuple[float, float, int, Vertex]] = [
        (check_heuristic(start, goal, graph.heuristic(start, goal)), 0.0, next(seq), start)
    ]

    while heap:
        _, cur_g, _, u = heapq.heappop(heap)
        if u in closed:
            continue
        closed.add(u)
        if u == goal:
            return PlanResult(path=tuple(_reconstruct_path(came_from, goal)), cost=cur_g)
        for v, cost in graph.successors(u):
            cost = check_cost(u, v, cost)
            if v in closed or cost == math.inf:
                continue
            cand = cur_g + cost
            if cand < gscore.get(v, math.inf):
                gscore[v] = cand
                came_from[v] = u
                hval = check_heuristic(v, goal, graph.heuristic(v, goal))
                heapq.heappush(heap, (cand + hval, cand, next(seq), v))
    return None


_TIE_TOL = 1e-9


def _same_cost(a: float, b: float) -> bool:
    return abs(a - b) <= _TIE_TOL * max(1.0, abs(a), abs(b))


@dataclass(frozen=True)
class OptimalPaths:
    """Every minimum-cost route from ``start``, stored as a parents DAG.

    ``parents[v]`` lists each predecessor that reaches ``v`` at its optimal
    cost; ``sinks`` are the accepting vertices reached at ``cost``. Iterating
    yields the simple paths from ``start`` to each sink.
    """

    start: Vertex
    cost: float
    sinks: tuple[Vertex, ...]
    parents: dict[Vertex, tuple[Vertex, ...]]

    def __iter__(self) -> Iterator[tuple[Vertex, ...]]:
        for sink in self.sinks:
            yield from self._paths_to(sink)

    def _paths_to(self, sink: Vertex) -> Iterator[tuple[Vertex, ...]]:
        # Zero-cost edges can make the parents relation cyclic; a vertex is
        # never repeated within one path.
        on_path = {sink}
        chain = [sink]
        stack = [iter(self.parents.get(sink, ()))]
        while stack:
            if chain[-1] == self.start:
                yield tuple(reversed(chain))
                stack.pop()
                on_path.discard(chain.pop())
                continue
            for p in stack[-1]:
                if p in on_path:
                    continue
                on_path.add(p)
                chain.append(p)
                stack.append(iter(self.parents.get(p, ())))
                break
            else:
                stack.pop()
                on_path.discard(chain.pop())


def optimal_paths(
    graph: Graph,
    start: Vertex,
    success: Callable[[Vertex], bool],
    heuristic: Callable[[Vertex], float] | None = None,
) -> OptimalPaths | None:
    """A* that keeps every equal-cost parent instead of a single one.

    ``success`` decides which vertices end a route, so several goals may be
    accepted at the same cost. ``heuristic(v)`` must be an admissible estimate
    of the remaining cost to the nearest accepting vertex (zero by default).
    """
    estimate = heuristic or (lambda v: 0.0)
    parents: dict[Vertex, list[Vertex]] = {start: []}
    best: dict[Vertex, float] = {start: 0.0}
    sinks: list[Vertex] = []
    min_cost: float | None = None
    seq = itertools.count()
    heap: list[tuple[float, float, int, Vertex]] = [(0.0, 0.0, next(seq), start)]

    while heap:
        est, cost_u, _, u = heapq.heappop(heap)
        if min_cost is not None and est > min_cost and not _same_cost(est, min_cost):
            break
        if cost_u > best[u] and not _same_cost(cost_u, best[u]):
            continue
        if success(u):
            if min_cost is None:
                min_cost = cost_u
            if u not in sinks:
                sinks.append(u)
        for v, cost in graph.successors(u):
            cost = check_cost(u, v, cost)
            if cost == math.inf or v == start:
                continue
            cand = cost_u + cost
            known = best.get(v)
            if known is not None and _same_cost(cand, known):
                if u not in parents[v]:
                    parents[v].append(u)
                continue
            if known is not None and cand > known:
                continue
            best[v] = cand
            parents[v] = [u]
            hval = check_heuristic(v, v, estimate(v))
            heapq.heappush(heap, (cand + hval, cand, next(seq), v))

    if min_cost is None:
        return None
    return OptimalPaths(
        start=start,
        cost=min_cost,
        sinks=tuple(sinks),
        parents={v: tuple(ps) for v, ps in parents.items()},
    )


def all_shortest_paths(graph: Graph, start: Vertex, goal: Vertex) -> tuple[list[tuple[Vertex, ...]], float] | None:
    """Every minimum-cost path from ``start`` to ``goal`` with their shared cost."""
    found = optimal_paths(
        graph,
        start,
        lambda v: v == goal,
        heuristic=lambda v: graph.heuristic(v, goal),
    )
    if found is None:
        return None
    return list(found), found.cost
