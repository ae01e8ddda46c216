from __future__ import annotations

import json
import sys
from pathlib import Path

import numpy as np
import pytest

from scripts import benchmark_planners as bench


def test_parse_helpers() -> None:
    assert bench._parse_cell(" 3, 4 ") == (3, 4)
    with pytest.raises(ValueError):
        bench._parse_cell("3")
    assert bench._parse_planners("dstar_lite, recompute,dstar_lite") == ["dstar_lite", "recompute"]
    with pytest.raises(ValueError):
        bench._parse_planners("dijkstra")
    with pytest.raises(ValueError):
        bench._parse_planners(" , ")


def test_make_frames_keeps_endpoints_free_and_is_seeded() -> None:
    kwargs = dict(size=12, density=0.9, frames=5, flips_per_frame=8, start=(0, 0), goal=(11, 11), seed=3)
    frames = bench.make_frames(**kwargs)
    again = bench.make_frames(**kwargs)

    assert len(frames) == 5
    for frame, twin in zip(frames, again):
        assert frame.shape == (12, 12)
        assert not frame[0, 0]
        assert not frame[11, 11]
        assert np.array_equal(frame, twin)


def test_run_benchmark_and_summary() -> None:
    rows = bench.run_benchmark(
        size=10,
        density=0.1,
        frames=4,
        flips_per_frame=2,
        runs=2,
        planners=["dstar_lite", "recompute"],
        connectivity=8,
        advance_steps=2,
        seed=5,
    )

    assert len(rows) == 4
    assert {row["planner"] for row in rows} == {"dstar_lite", "recompute"}
    for row in rows:
        assert row["status"] in {"ok", "fail"}
        assert row["size"] == 10
        assert row["replan_count"] >= 1

    summary = bench.summarize(rows)
    assert summary["dstar_lite"]["runs"] == 2
    assert summary["recompute"]["runs"] == 2


def test_summarize_reports_speedup() -> None:
    rows = [
        {"planner": "dstar_lite", "status": "ok", "runtime_ms": 2.0, "avg_replan_ms": 1.0, "total_cost": 10.0},
        {"planner": "recompute", "status": "ok", "runtime_ms": 8.0, "avg_replan_ms": 4.0, "total_cost": 10.0},
        {"planner": "recompute", "status": "fail", "runtime_ms": 1.0, "avg_replan_ms": 0.0, "total_cost": 0.0},
    ]
    summary = bench.summarize(rows)

    assert summary["recompute"]["success_rate"] == 0.5
    assert summary["speedup"]["dstar_speedup_vs_recompute_x"] == 4.0
    assert summary["speedup"]["dstar_runtime_reduction_pct"] == 75.0


def test_main_writes_csv_and_json(monkeypatch, tmp_path: Path) -> None:
    argv = [
        "benchmark_planners.py",
        "--size", "8",
        "--frames", "3",
        "--runs", "1",
        "--flips-per-frame", "1",
        "--density", "0.05",
        "--out-dir", str(tmp_path),
    ]
    monkeypatch.setattr(sys, "argv", argv)
    bench.main()

    csv_files = list(tmp_path.glob("planner_benchmark_*.csv"))
    json_files = list(tmp_path.glob("planner_benchmark_*.json"))
    assert len(csv_files) == 1
    assert len(json_files) == 1
    payload = json.loads(json_files[0].read_text(encoding="utf-8"))
    assert payload["planners"] == ["dstar_lite", "recompute"]
    assert len(payload["rows"]) == 2
