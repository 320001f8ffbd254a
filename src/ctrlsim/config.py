"""
Reproducible configuration for command-line simulation runs.

A single ``SimConfig`` dataclass plus an ``argparse``-based loader, so
that every run can be reconstructed from one JSON file.
"""

from __future__ import annotations

import argparse
import json
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple


@dataclass
class SimConfig:
    """Options for one scenario run.

    ``dt`` and ``t_final`` left as None fall back to the scenario defaults.
    """

    scenario: str = "double_integrator_pd"
    integrator: str = "rk4"            # "rk4" | "euler"
    dt: Optional[float] = None
    t_final: Optional[float] = None
    record_every: int = 1
    orthonormalize: bool = False
    verbose: bool = False
    save: Optional[str] = None         # CSV path for the trajectory


# ---------------------------------------------------------------------------
# Serialisation helpers
# ---------------------------------------------------------------------------

def config_to_dict(cfg: SimConfig) -> Dict[str, Any]:
    return asdict(cfg)


def config_from_dict(data: Dict[str, Any]) -> SimConfig:
    """Build a SimConfig from a dict, rejecting unknown keys."""
    known = {f.name for f in fields(SimConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"unknown config keys: {unknown}")
    return SimConfig(**data)


def save_config(cfg: SimConfig, path: str | Path) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump(config_to_dict(cfg), f, indent=2)


def load_config(path: str | Path) -> SimConfig:
    with open(path) as f:
        return config_from_dict(json.load(f))


# ---------------------------------------------------------------------------
# Argparse loader
# ---------------------------------------------------------------------------

_CONFIG_KEYS: List[str] = [f.name for f in fields(SimConfig)]


def build_parser(description: str = "Closed-loop control simulation") -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=description)
    parser.add_argument("--config", type=str, default=None,
                        help="JSON file with base values; flags override it.")
    parser.add_argument("--list-scenarios", action="store_true",
                        help="List available scenarios and exit.")

    g = parser.add_argument_group("Simulation")
    g.add_argument("--scenario", type=str, default=None,
                   help="Scenario name (use --list-scenarios to see options).")
    g.add_argument("--integrator", type=str, default=None, choices=["rk4", "euler"])
    g.add_argument("--dt", type=float, default=None, help="Timestep [s].")
    g.add_argument("--t-final", type=float, default=None, help="Duration [s].")
    g.add_argument("--record-every", type=int, default=None,
                   help="Record every Nth step.")
    g.add_argument("--orthonormalize", action="store_true", default=None,
                   help="Project the attitude onto SO(3) after each step.")
    g.add_argument("--verbose", action="store_true", default=None)
    g.add_argument("--save", type=str, default=None,
                   help="Write the trajectory to this CSV file.")
    return parser


def _apply_overrides(cfg: SimConfig, ns: argparse.Namespace) -> None:
    """Apply non-None argparse values to the dataclass."""
    for key in _CONFIG_KEYS:
        val = getattr(ns, key, None)
        if val is not None:
            setattr(cfg, key, val)


def load_config_from_args(
    argv: Optional[Sequence[str]] = None,
) -> Tuple[SimConfig, argparse.Namespace]:
    """Build a :class:`SimConfig` from defaults, an optional JSON file and
    CLI overrides, in that order of precedence.

    Returns
    -------
    cfg : SimConfig
    args : argparse.Namespace  (raw, for flags that are not config fields)
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    cfg = load_config(args.config) if args.config else SimConfig()
    _apply_overrides(cfg, args)
    return cfg, args
