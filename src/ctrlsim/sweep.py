"""
Parallel parameter sweeps over randomized scenario runs.

CLI entrypoint: ``python -m ctrlsim.sweep``

Example usage::

    python -m ctrlsim.sweep --scenario quad_hover --trials 50 --seed 42 --verbose
    python -m ctrlsim.sweep --scenario double_integrator_pid --workers 4
    python -m ctrlsim.sweep --list-scenarios

Every trial owns its parameters, state and trajectory, so trials run in
independent worker processes (or threads) without synchronization.  The
randomized parameters are drawn up front from one seeded generator, which
makes the results independent of the worker count and completion order.
"""

from __future__ import annotations

import argparse
import csv
import json
import sys
from concurrent.futures import Executor, ProcessPoolExecutor, ThreadPoolExecutor
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

import numpy as np

from ctrlsim.errors import NumericalDivergence
from ctrlsim.metrics import compute_all_metrics
from ctrlsim.scenarios import get_scenario, list_scenarios, randomize_params


def _run_trial(
    scenario_name: str,
    trial: int,
    params: Any,
    integrator: str,
) -> dict:
    """Run one trial in a worker.  Only numerical divergence is recorded;
    every other error propagates to the caller of ``run_sweep``."""
    scenario = get_scenario(scenario_name)
    setup = scenario.build(params)
    try:
        traj = setup.run(scenario.t_final, scenario.dt, integrator=integrator)
    except NumericalDivergence as exc:
        return {"trial": trial, "diverged": 1.0, "diverged_at": exc.time}
    metrics = compute_all_metrics(traj, setup.goal, setup.indices)
    return {"trial": trial, **metrics}


def _make_executor(kind: str, max_workers: Optional[int]) -> Executor:
    if kind == "process":
        return ProcessPoolExecutor(max_workers=max_workers)
    if kind == "thread":
        return ThreadPoolExecutor(max_workers=max_workers)
    raise ValueError(f"executor must be 'process' or 'thread', got {kind!r}")


def run_sweep(
    scenario_name: str,
    n_trials: int = 50,
    seed: int = 42,
    max_workers: Optional[int] = None,
    output_dir: Optional[str] = "results",
    verbose: bool = False,
    integrator: str = "rk4",
    executor: str = "process",
) -> list[dict]:
    """Run a randomized sweep for a given scenario.

    Args:
        scenario_name: Registered scenario name.
        n_trials: Number of randomized trials.
        seed: Master RNG seed for reproducibility.
        max_workers: Worker count (None lets concurrent.futures decide).
        output_dir: Directory for output CSV / JSON files (None to skip).
        verbose: Print per-trial progress.
        integrator: "rk4" or "euler".
        executor: "process" or "thread".

    Returns:
        List of per-trial metric dicts, ordered by trial index.
    """
    if n_trials < 1:
        raise ValueError(f"n_trials must be >= 1, got {n_trials}")

    scenario = get_scenario(scenario_name)
    base_params = scenario.make_params()
    rng = np.random.default_rng(seed)
    trial_params = [randomize_params(base_params, rng) for _ in range(n_trials)]

    if verbose:
        print(f"Sweeping scenario '{scenario_name}' | "
              f"{n_trials} trials | seed={seed} | {executor} workers={max_workers}")
        print(f"  t_final={scenario.t_final}s  dt={scenario.dt}s")
        print("-" * 60)

    results: list[Optional[dict]] = [None] * n_trials
    with _make_executor(executor, max_workers) as pool:
        futures = [
            pool.submit(_run_trial, scenario_name, i, p, integrator)
            for i, p in enumerate(trial_params)
        ]
        for i, fut in enumerate(futures):
            row = fut.result()
            results[i] = row
            if verbose:
                tag = " [DIVERGED]" if row.get("diverged", 0) else ""
                rms = row.get("rms_err", float("nan"))
                print(f"  trial {i:3d}/{n_trials}  rms_err={rms:10.3e}{tag}")

    rows: list[dict] = [r for r in results if r is not None]

    _print_summary(rows, scenario_name)

    if output_dir is not None:
        out_path = Path(output_dir)
        out_path.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        stem = f"{scenario_name}_{timestamp}_seed{seed}"
        _write_csv(rows, out_path / f"{stem}.csv")
        _write_json(rows, scenario_name, n_trials, seed, scenario,
                    out_path / f"{stem}.json")
        if verbose:
            print(f"\nResults written to {out_path / stem}.[csv|json]")

    return rows


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

_SUMMARY_KEYS = ["final_err", "rms_err", "max_err", "settling_time", "rotation_drift"]


def _aggregate(rows: list[dict]) -> dict[str, dict[str, float]]:
    """Mean/std/min/max of every metric over non-diverged trials."""
    ok = [r for r in rows if not r.get("diverged", 0)]
    aggregate: dict[str, dict[str, float]] = {}
    if not ok:
        return aggregate
    for key in ok[0]:
        if key in ("trial", "diverged"):
            continue
        arr = np.array([r[key] for r in ok if key in r], dtype=np.float64)
        arr = arr[np.isfinite(arr)]
        if arr.size == 0:
            continue
        aggregate[key] = {
            "mean": float(np.mean(arr)),
            "std": float(np.std(arr)),
            "min": float(np.min(arr)),
            "max": float(np.max(arr)),
        }
    return aggregate


def _print_summary(rows: list[dict], scenario_name: str) -> None:
    """Print a summary table to stdout."""
    diverged = sum(1 for r in rows if r.get("diverged", 0))

    print(f"\n{'=' * 60}")
    print(f"Scenario: {scenario_name}  |  "
          f"{len(rows)} trials  |  {diverged} diverged")
    print(f"{'=' * 60}")

    aggregate = _aggregate(rows)
    if not aggregate:
        print("All trials diverged!")
        return

    header = f"{'metric':<16s} {'mean':>11s} {'std':>11s} {'min':>11s} {'max':>11s}"
    print(header)
    print("-" * len(header))
    for key in _SUMMARY_KEYS:
        if key not in aggregate:
            continue
        s = aggregate[key]
        print(f"{key:<16s} {s['mean']:11.3e} {s['std']:11.3e} "
              f"{s['min']:11.3e} {s['max']:11.3e}")
    print()


def _write_csv(rows: list[dict], path: Path) -> None:
    """Write per-trial results to CSV using stdlib csv."""
    if not rows:
        return

    # Diverged rows are sparse, so collect keys across all rows
    all_keys: list[str] = []
    seen: set[str] = set()
    for r in rows:
        for k in r:
            if k not in seen:
                all_keys.append(k)
                seen.add(k)

    with open(path, "w", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=all_keys, extrasaction="ignore")
        writer.writeheader()
        for r in rows:
            writer.writerow(r)


def _write_json(
    rows: list[dict],
    scenario_name: str,
    n_trials: int,
    seed: int,
    scenario,
    path: Path,
) -> None:
    """Write config + per-trial metrics + aggregate stats to JSON."""
    doc = {
        "config": {
            "scenario": scenario_name,
            "t_final": scenario.t_final,
            "dt": scenario.dt,
            "n_trials": n_trials,
            "seed": seed,
        },
        "summary": {
            "total_trials": len(rows),
            "diverged": sum(1 for r in rows if r.get("diverged", 0)),
        },
        "aggregate": _aggregate(rows),
        "trials": rows,
    }

    with open(path, "w") as f:
        json.dump(doc, f, indent=2, default=_json_default)


def _json_default(obj):
    """Fallback serialiser for numpy types."""
    if isinstance(obj, np.integer):
        return int(obj)
    if isinstance(obj, np.floating):
        return float(obj)
    if isinstance(obj, np.ndarray):
        return obj.tolist()
    raise TypeError(f"Object of type {type(obj)} is not JSON serializable")


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        description="Randomized parameter sweep of a control scenario.",
    )
    parser.add_argument("--scenario", type=str, default=None,
                        help="Scenario name (use --list-scenarios to see options).")
    parser.add_argument("--trials", type=int, default=50,
                        help="Number of randomized trials (default: 50).")
    parser.add_argument("--seed", type=int, default=42,
                        help="Master RNG seed (default: 42).")
    parser.add_argument("--workers", type=int, default=None,
                        help="Parallel workers (default: CPU count).")
    parser.add_argument("--executor", type=str, default="process",
                        choices=["process", "thread"])
    parser.add_argument("--integrator", type=str, default="rk4",
                        choices=["rk4", "euler"])
    parser.add_argument("--out", type=str, default="results",
                        help="Output directory (default: results).")
    parser.add_argument("--verbose", action="store_true",
                        help="Print per-trial progress.")
    parser.add_argument("--list-scenarios", action="store_true",
                        help="List available scenarios and exit.")

    args = parser.parse_args(argv)

    if args.list_scenarios:
        print("Available scenarios:")
        for name in list_scenarios():
            s = get_scenario(name)
            print(f"  {name:<22s}  t_final={s.t_final:.1f}s  dt={s.dt}s")
        return 0

    if args.scenario is None:
        parser.error("--scenario is required (or use --list-scenarios)")

    run_sweep(
        scenario_name=args.scenario,
        n_trials=args.trials,
        seed=args.seed,
        max_workers=args.workers,
        output_dir=args.out,
        verbose=args.verbose,
        integrator=args.integrator,
        executor=args.executor,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
