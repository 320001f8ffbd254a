"""
Evaluation metrics for simulation trajectories.

All functions take a ``Trajectory`` (and a goal where tracking error is
involved) and return scalar or dict values suitable for tabulation.
"""

from __future__ import annotations

from typing import Callable, Optional, Sequence, Union

import numpy as np
from numpy.typing import NDArray

from ctrlsim.dynamics import RIGID_BODY_STATE_DIM, unpack_state
from ctrlsim.math3d import R_to_euler, orthonormality_error
from ctrlsim.types import Trajectory


# A fixed goal vector, or a reference t -> goal vector
Goal = Union[NDArray[np.float64], Callable[[float], NDArray[np.float64]]]


def _error_norms(
    traj: Trajectory,
    goal: Goal,
    indices: Optional[Sequence[int]] = None,
) -> NDArray[np.float64]:
    """Per-sample Euclidean error between selected state entries and goal."""
    x = traj.x if indices is None else traj.x[:, list(indices)]
    if callable(goal):
        goal = np.stack([np.asarray(goal(t), dtype=np.float64) for t in traj.t])
    else:
        goal = np.asarray(goal, dtype=np.float64)
    return np.linalg.norm(x - goal, axis=1)


def final_error(
    traj: Trajectory,
    goal: Goal,
    indices: Optional[Sequence[int]] = None,
) -> float:
    """Error norm at the last recorded sample."""
    return float(_error_norms(traj, goal, indices)[-1])


def rms_error(
    traj: Trajectory,
    goal: Goal,
    indices: Optional[Sequence[int]] = None,
) -> float:
    """RMS of the error norm over all samples."""
    norms = _error_norms(traj, goal, indices)
    return float(np.sqrt(np.mean(norms**2)))


def max_error(
    traj: Trajectory,
    goal: Goal,
    indices: Optional[Sequence[int]] = None,
) -> float:
    """Maximum error norm over all samples."""
    return float(np.max(_error_norms(traj, goal, indices)))


def settling_time(
    traj: Trajectory,
    goal: Goal,
    tol: float,
    indices: Optional[Sequence[int]] = None,
) -> Optional[float]:
    """
    First time after which the error stays within ``tol`` for good.

    Returns None if the trajectory ends outside the tolerance band.
    """
    outside = _error_norms(traj, goal, indices) > tol
    if outside[-1]:
        return None
    if not np.any(outside):
        return float(traj.t[0])
    last_out = int(np.flatnonzero(outside)[-1])
    return float(traj.t[last_out + 1])


def is_diverged(traj: Trajectory, bound: float = 1e6) -> bool:
    """Detect NaN/inf or a state norm beyond ``bound``."""
    if not np.all(np.isfinite(traj.x)):
        return True
    return bool(np.any(np.abs(traj.x) > bound))


def rotation_drift(traj: Trajectory) -> float:
    """
    Maximum ||R^T R - I|| over a rigid-body trajectory.

    Measures how far integration let the attitude leave SO(3).
    """
    if traj.state_dim != RIGID_BODY_STATE_DIM:
        raise ValueError(f"rotation_drift needs rigid-body states, got dimension {traj.state_dim}")
    return max(orthonormality_error(R) for R in traj.x[:, 6:15].reshape(-1, 3, 3))


def final_attitude(traj: Trajectory) -> NDArray[np.float64]:
    """Roll, pitch and yaw [rad] of the last rigid-body sample (ZYX)."""
    _, _, R, _ = unpack_state(traj.x[-1])
    return R_to_euler(R)


def compute_all_metrics(
    traj: Trajectory,
    goal: Goal,
    indices: Optional[Sequence[int]] = None,
    tol: float = 0.05,
) -> dict[str, float]:
    """Compute all metrics and return a flat dict.

    The ``diverged`` key is 1.0 if divergence was detected, 0.0 otherwise.
    ``settling_time`` is NaN when the run never settles.
    """
    diverged = is_diverged(traj)
    t_settle = settling_time(traj, goal, tol, indices)

    result: dict[str, float] = {
        "final_err": final_error(traj, goal, indices),
        "rms_err": rms_error(traj, goal, indices),
        "max_err": max_error(traj, goal, indices),
        "settling_time": float("nan") if t_settle is None else t_settle,
        "duration": float(traj.t[-1] - traj.t[0]),
        "samples": float(len(traj)),
    }
    if traj.state_dim == RIGID_BODY_STATE_DIM:
        result["rotation_drift"] = rotation_drift(traj)
        roll, pitch, yaw = np.rad2deg(final_attitude(traj))
        result["final_roll_deg"] = float(roll)
        result["final_pitch_deg"] = float(pitch)
        result["final_yaw_deg"] = float(yaw)
    result["diverged"] = 1.0 if diverged else 0.0

    return result


def print_statistics(metrics: dict[str, float], name: str = "Simulation") -> None:
    """
    Print summary statistics to console.

    Args:
        metrics: Output of ``compute_all_metrics``
        name: Name of simulation for display
    """
    print(f"\n{name} Statistics:")
    print(f"  Duration:        {metrics['duration']:.2f} s ({int(metrics['samples'])} samples)")
    print(f"  Final error:     {metrics['final_err']:.3e}")
    print(f"  RMS error:       {metrics['rms_err']:.3e}")
    print(f"  Max error:       {metrics['max_err']:.3e}")
    if np.isnan(metrics["settling_time"]):
        print("  Settling time:   not settled")
    else:
        print(f"  Settling time:   {metrics['settling_time']:.2f} s")
    if "rotation_drift" in metrics:
        print(f"  SO(3) drift:     {metrics['rotation_drift']:.2e}")
    if "final_roll_deg" in metrics:
        print(f"  Final attitude:  roll {metrics['final_roll_deg']:.1f}, pitch {metrics['final_pitch_deg']:.1f}, "
              f"yaw {metrics['final_yaw_deg']:.1f} deg")
    if metrics["diverged"]:
        print("  [DIVERGED]")
