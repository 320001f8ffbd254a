"""
Main entry point for single scenario runs.

Run with: python -m ctrlsim.main

Examples:
    python -m ctrlsim.main --list-scenarios
    python -m ctrlsim.main --scenario double_integrator_pd
    python -m ctrlsim.main --scenario decay --integrator euler --dt 0.1
    python -m ctrlsim.main --scenario quad_circle --save circle.csv
    python -m ctrlsim.main --config run.json --t-final 5
"""

import csv
import sys
from pathlib import Path
from typing import Dict, Optional, Sequence, Tuple

from ctrlsim.config import SimConfig, load_config_from_args
from ctrlsim.metrics import compute_all_metrics, print_statistics
from ctrlsim.scenarios import get_scenario, list_scenarios
from ctrlsim.types import Trajectory


def run_scenario(cfg: SimConfig) -> Tuple[Trajectory, Dict[str, float]]:
    """Run the scenario named in ``cfg`` and score it."""
    scenario = get_scenario(cfg.scenario)
    setup = scenario.build(scenario.make_params())

    dt = scenario.dt if cfg.dt is None else cfg.dt
    t_final = scenario.t_final if cfg.t_final is None else cfg.t_final

    traj = setup.run(
        t_final,
        dt,
        integrator=cfg.integrator,
        record_every=cfg.record_every,
        orthonormalize_rotation=cfg.orthonormalize,
        verbose=cfg.verbose,
    )
    metrics = compute_all_metrics(traj, setup.goal, setup.indices)
    return traj, metrics


def write_trajectory_csv(traj: Trajectory, path) -> None:
    """Write one row per sample: t, x0, x1, ..."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(["t"] + [f"x{i}" for i in range(traj.state_dim)])
        for t, x in traj:
            writer.writerow([repr(t)] + [repr(float(v)) for v in x])


def _print_scenarios() -> None:
    print("Available scenarios:")
    for name in list_scenarios():
        s = get_scenario(name)
        print(f"  {name:<22s}  t_final={s.t_final:5.1f}s  dt={s.dt}s  {s.description}")


def main(argv: Optional[Sequence[str]] = None) -> int:
    cfg, args = load_config_from_args(argv)

    if args.list_scenarios:
        _print_scenarios()
        return 0

    try:
        scenario = get_scenario(cfg.scenario)
    except KeyError:
        print(f"Unknown scenario {cfg.scenario!r}; use --list-scenarios", file=sys.stderr)
        return 2

    print("\n" + "=" * 60)
    print(cfg.scenario.upper())
    print("=" * 60)
    print(scenario.description)
    print(f"Integrator: {cfg.integrator}")

    traj, metrics = run_scenario(cfg)
    print_statistics(metrics, cfg.scenario)

    if cfg.save:
        write_trajectory_csv(traj, cfg.save)
        print(f"\nTrajectory written to {cfg.save}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
