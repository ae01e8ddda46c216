from __future__ import annotations

import math

import numpy as np
import pytest

from replanner.planning.errors import InvalidHeuristicError
from replanner.planning.graph import SQRT2, AdjacencyGraph, GridGraph
from replanner.planning.reference import all_shortest_paths, cost_to_goal, optimal_paths, shortest_path


def test_cost_to_goal_on_open_grid() -> None:
    grid = GridGraph(np.zeros((3, 4), dtype=bool), connectivity=8)
    dist = cost_to_goal(grid, (0, 0))

    assert dist[(0, 0)] == 0.0
    assert dist[(0, 3)] == 3.0
    assert dist[(2, 2)] == pytest.approx(2 * SQRT2)
    assert len(dist) == 12


def test_cost_to_goal_skips_unreachable_vertices() -> None:
    blocked = np.zeros((3, 3), dtype=bool)
    blocked[:, 1] = True
    dist = cost_to_goal(GridGraph(blocked, connectivity=8), (0, 0))

    assert (0, 2) not in dist
    assert (2, 0) in dist


def test_cost_to_goal_follows_forward_direction() -> None:
    graph = AdjacencyGraph([("a", "b", 2.0), ("b", "c", 3.0)])
    dist = cost_to_goal(graph, "c")
    assert dist == {"c": 0.0, "b": 3.0, "a": 5.0}
    assert cost_to_goal(graph, "a") == {"a": 0.0}


def test_shortest_path_matches_cost_to_goal() -> None:
    rng = np.random.default_rng(3)
    blocked = rng.random((12, 12)) < 0.25
    blocked[0, 0] = False
    blocked[11, 11] = False
    grid = GridGraph(blocked, connectivity=8)

    result = shortest_path(grid, (0, 0), (11, 11))
    dist = cost_to_goal(grid, (11, 11))
    if (0, 0) not in dist:
        assert result is None
    else:
        assert result is not None
        assert result.cost == pytest.approx(dist[(0, 0)])
        assert result.path[0] == (0, 0)
        assert result.path[-1] == (11, 11)


def test_shortest_path_edge_cases() -> None:
    graph = AdjacencyGraph([("a", "b", 1.0), ("b", "c", math.inf)])
    assert shortest_path(graph, "a", "a").path == ("a",)
    assert shortest_path(graph, "a", "c") is None
    assert shortest_path(graph, "a", "b").cost == 1.0


def test_shortest_path_rejects_negative_heuristic() -> None:
    graph = AdjacencyGraph([("a", "b", 1.0)], heuristic=lambda a, b: -2.0)
    with pytest.raises(InvalidHeuristicError):
        shortest_path(graph, "a", "b")


def test_all_shortest_paths_lists_every_equal_cost_route() -> None:
    grid = GridGraph(np.zeros((3, 3), dtype=bool), connectivity=4)
    paths, cost = all_shortest_paths(grid, (0, 0), (2, 2))

    assert cost == 4.0
    assert len(paths) == 6
    assert len(set(paths)) == 6
    for path in paths:
        assert path[0] == (0, 0)
        assert path[-1] == (2, 2)
        assert sum(grid.cost(a, b) for a, b in zip(path, path[1:])) == 4.0
    assert shortest_path(grid, (0, 0), (2, 2)).path in paths


def test_all_shortest_paths_excludes_costlier_detours() -> None:
    blocked = np.zeros((3, 3), dtype=bool)
    blocked[1, 1] = True
    grid = GridGraph(blocked, connectivity=4)
    paths, cost = all_shortest_paths(grid, (0, 0), (2, 2))

    assert cost == 4.0
    assert sorted(paths) == [
        ((0, 0), (0, 1), (0, 2), (1, 2), (2, 2)),
        ((0, 0), (1, 0), (2, 0), (2, 1), (2, 2)),
    ]
    assert all_shortest_paths(grid.with_blocked(np.ones((3, 3), dtype=bool)), (0, 0), (2, 2)) is None


def test_optimal_paths_accepts_a_success_predicate() -> None:
    graph = AdjacencyGraph(
        [("s", "a", 1.0), ("s", "b", 1.0), ("a", "t1", 1.0), ("b", "t2", 1.0), ("a", "t2", 1.0), ("b", "t3", 4.0)]
    )
    found = optimal_paths(graph, "s", lambda v: v.startswith("t"))

    assert found is not None
    assert found.cost == 2.0
    assert set(found.sinks) == {"t1", "t2"}
    assert set(found) == {("s", "a", "t1"), ("s", "a", "t2"), ("s", "b", "t2")}
    assert optimal_paths(graph, "s", lambda v: v == "missing") is None


def test_optimal_paths_on_zero_cost_cycles_stay_simple() -> None:
    graph = AdjacencyGraph(
        [("A", "D", 0.0), ("A", "S", 0.0), ("A", "G", 0.0), ("S", "D", 0.0)],
        directed=False,
    )
    paths, cost = all_shortest_paths(graph, "S", "G")

    assert cost == 0.0
    assert set(paths) == {("S", "A", "G"), ("S", "D", "A", "G")}


def test_optimal_paths_start_is_accepted() -> None:
    graph = AdjacencyGraph([("a", "b", 1.0)])
    found = optimal_paths(graph, "a", lambda v: True)
    assert found is not None
    assert found.cost == 0.0
    assert list(found) == [("a",)]
