from __future__ import annotations

import argparse
import csv
import json
import time
from datetime import UTC, datetime
from pathlib import Path

import numpy as np

from replanner.core.config import get_settings
from replanner.planning.dynamic import run_dynamic_replan
from replanner.planning.errors import PlanningError


def _parse_cell(raw: str) -> tuple[int, int]:
    parts = [p.strip() for p in raw.split(",")]
    if len(parts) != 2:
        raise ValueError(f"expected 'row,col', got: {raw}")
    return int(parts[0]), int(parts[1])


def _parse_planners(raw: str) -> list[str]:
    allow = {"dstar_lite", "recompute"}
    planners: list[str] = []
    for item in raw.split(","):
        val = item.strip().lower()
        if not val:
            continue
        if val not in allow:
            raise ValueError(f"Unsupported planner '{val}', expected one of {sorted(allow)}")
        if val not in planners:
            planners.append(val)
    if not planners:
        raise ValueError("At least one planner is required.")
    return planners


def make_frames(
    *,
    size: int,
    density: float,
    frames: int,
    flips_per_frame: int,
    start: tuple[int, int],
    goal: tuple[int, int],
    seed: int,
) -> list[np.ndarray]:
    """Random obstacle field plus a few toggled cells per frame; start and goal stay free."""
    rng = np.random.default_rng(seed)
    base = rng.random((size, size)) < density
    keep_free = np.zeros((size, size), dtype=bool)
    keep_free[start] = True
    keep_free[goal] = True
    base &= ~keep_free
    out = [base]
    for _ in range(1, frames):
        nxt = out[-1].copy()
        rows = rng.integers(0, size, size=flips_per_frame)
        cols = rng.integers(0, size, size=flips_per_frame)
        nxt[rows, cols] = ~nxt[rows, cols]
        nxt &= ~keep_free
        out.append(nxt)
    return out


def run_benchmark(
    *,
    size: int,
    density: float,
    frames: int,
    flips_per_frame: int,
    runs: int,
    planners: list[str],
    connectivity: int,
    advance_steps: int,
    seed: int,
    start: tuple[int, int] | None = None,
    goal: tuple[int, int] | None = None,
) -> list[dict]:
    start = start or (0, 0)
    goal = goal or (size - 1, size - 1)
    rows: list[dict] = []
    for run_idx in range(max(1, int(runs))):
        scenario = make_frames(
            size=size,
            density=density,
            frames=frames,
            flips_per_frame=flips_per_frame,
            start=start,
            goal=goal,
            seed=seed + run_idx,
        )
        for planner in planners:
            t0 = time.perf_counter()
            status = "ok"
            detail = ""
            result = None
            try:
                result = run_dynamic_replan(
                    frames=scenario,
                    start=start,
                    goal=goal,
                    connectivity=connectivity,
                    planner=planner,
                    advance_steps=advance_steps,
                )
                if not result.reached_goal:
                    status = "fail"
                    detail = ";".join(result.notes)
            except PlanningError as exc:
                status = "fail"
                detail = str(exc)
            elapsed_ms = (time.perf_counter() - t0) * 1000.0
            steps = result.steps if result is not None else []
            rows.append(
                {
                    "run_idx": int(run_idx),
                    "seed": int(seed + run_idx),
                    "planner": planner,
                    "status": status,
                    "size": int(size),
                    "frames": int(frames),
                    "runtime_ms": round(elapsed_ms, 3),
                    "total_cost": round(float(result.total_cost), 6) if result is not None else 0.0,
                    "executed_edges": max(0, len(result.executed) - 1) if result is not None else 0,
                    "replan_count": len(steps),
                    "avg_replan_ms": round(sum(float(x["runtime_ms"]) for x in steps) / len(steps), 3) if steps else 0.0,
                    "expansions": result.total_expansions if result is not None else 0,
                    "incremental_steps": result.incremental_steps if result is not None else 0,
                    "rebuild_steps": result.rebuild_steps if result is not None else 0,
                    "detail": detail,
                }
            )
    return rows


def summarize(rows: list[dict]) -> dict:
    summary: dict[str, dict] = {}
    by_planner: dict[str, list[dict]] = {}
    for row in rows:
        by_planner.setdefault(row["planner"], []).append(row)

    for planner, items in by_planner.items():
        ok = [x for x in items if x["status"] == "ok"]
        fail = [x for x in items if x["status"] != "ok"]
        if ok:
            summary[planner] = {
                "runs": len(items),
                "success": len(ok),
                "fail": len(fail),
                "success_rate": round(len(ok) / len(items), 4),
                "avg_runtime_ms": round(sum(x["runtime_ms"] for x in ok) / len(ok), 3),
                "avg_replan_ms": round(sum(x["avg_replan_ms"] for x in ok) / len(ok), 3),
                "avg_total_cost": round(sum(x["total_cost"] for x in ok) / len(ok), 3),
            }
        else:
            summary[planner] = {
                "runs": len(items),
                "success": 0,
                "fail": len(fail),
                "success_rate": 0.0,
            }

    recompute = summary.get("recompute", {})
    dstar = summary.get("dstar_lite", {})
    if recompute.get("avg_replan_ms") and dstar.get("avg_replan_ms"):
        recompute_rt = float(recompute["avg_replan_ms"])
        dstar_rt = float(dstar["avg_replan_ms"])
        speedup = (recompute_rt / dstar_rt) if dstar_rt > 0 else 0.0
        summary["speedup"] = {
            "recompute_avg_replan_ms": round(recompute_rt, 3),
            "dstar_avg_replan_ms": round(dstar_rt, 3),
            "dstar_speedup_vs_recompute_x": round(speedup, 3),
            "dstar_runtime_reduction_pct": round((1.0 - dstar_rt / recompute_rt) * 100.0, 2),
        }
    return summary


def main() -> None:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Benchmark incremental D* Lite against full recompute")
    parser.add_argument("--size", type=int, default=64, help="grid side length")
    parser.add_argument("--density", type=float, default=0.2, help="initial obstacle density")
    parser.add_argument("--frames", type=int, default=12)
    parser.add_argument("--flips-per-frame", type=int, default=6)
    parser.add_argument("--runs", type=int, default=4)
    parser.add_argument("--planners", type=str, default="dstar_lite,recompute", help="comma-separated planners")
    parser.add_argument("--connectivity", type=int, default=settings.default_connectivity, choices=(4, 8))
    parser.add_argument("--advance-steps", type=int, default=settings.dynamic_advance_steps)
    parser.add_argument("--seed", type=int, default=7)
    parser.add_argument("--start", type=str, default="0,0", help="start row,col")
    parser.add_argument("--goal", type=str, default="", help="goal row,col (default: far corner)")
    parser.add_argument("--out-dir", type=Path, default=settings.benchmark_root)
    args = parser.parse_args()

    planners = _parse_planners(args.planners)
    rows = run_benchmark(
        size=int(args.size),
        density=float(args.density),
        frames=int(args.frames),
        flips_per_frame=int(args.flips_per_frame),
        runs=int(args.runs),
        planners=planners,
        connectivity=int(args.connectivity),
        advance_steps=int(args.advance_steps),
        seed=int(args.seed),
        start=_parse_cell(args.start),
        goal=_parse_cell(args.goal) if args.goal else None,
    )
    summary = summarize(rows)

    ts = datetime.now(UTC).strftime("%Y%m%d_%H%M%S")
    out_dir = args.out_dir
    out_dir.mkdir(parents=True, exist_ok=True)
    csv_path = out_dir / f"planner_benchmark_{ts}.csv"
    json_path = out_dir / f"planner_benchmark_{ts}.json"

    with csv_path.open("w", newline="", encoding="utf-8") as f:
        fieldnames = sorted({k for row in rows for k in row.keys()})
        writer = csv.DictWriter(f, fieldnames=fieldnames)
        writer.writeheader()
        writer.writerows(rows)

    payload = {
        "created_at": datetime.now(UTC).isoformat(),
        "size": int(args.size),
        "density": float(args.density),
        "frames": int(args.frames),
        "planners": planners,
        "summary": summary,
        "rows": rows,
    }
    json_path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")

    print(f"Benchmark complete: {csv_path}")
    print(json.dumps(summary, ensure_ascii=False, indent=2))


if __name__ == "__main__":
    main()
