"""
Reference trajectory generators for the geometric controller.

Each generator returns a closure ``t -> TrajPoint``.  Positions live in
the e3-down world frame, so a flight altitude h sits at z = -h.  The
periodic references (circle, figure-8) are sums of per-axis harmonics
a·sin(ωt + φ), whose derivatives are available in closed form up to
snap, which the controller needs for its desired body rates.
"""

from typing import Callable, Literal, Optional, Tuple

import numpy as np
from numpy.typing import NDArray

from ctrlsim.types import TrajPoint


TrajectoryFn = Callable[[float], TrajPoint]
YawMode = Literal["tangent", "fixed"]


def hover(
    altitude: float = 1.0,
    yaw: float = 0.0,
    position: Optional[NDArray[np.float64]] = None,
) -> TrajectoryFn:
    """Hold a fixed point; ``position`` overrides ``altitude`` when given."""
    target = np.array([0.0, 0.0, -altitude]) if position is None else np.array(position, dtype=np.float64)
    return lambda t: TrajPoint.hover(target, yaw=yaw)


def quintic_blend(s: float) -> Tuple[float, float, float, float, float]:
    """
    Minimum-jerk blend σ(s) = 10s³ - 15s⁴ + 6s⁵ on s ∈ [0, 1].

    Clamped outside the interval.  σ' and σ'' vanish at both ends, so a
    move built from it starts and stops with zero velocity and acceleration.

    Returns:
        Tuple of (σ, dσ/ds, d²σ/ds², d³σ/ds³, d⁴σ/ds⁴)
    """
    if s <= 0.0:
        return 0.0, 0.0, 0.0, 0.0, 0.0
    if s >= 1.0:
        return 1.0, 0.0, 0.0, 0.0, 0.0
    return (
        s**3 * (10.0 + s * (-15.0 + 6.0 * s)),
        30.0 * s**2 * (1.0 - s) ** 2,
        60.0 * s * (1.0 - s) * (1.0 - 2.0 * s),
        60.0 * (1.0 - 6.0 * s + 6.0 * s**2),
        360.0 * (2.0 * s - 1.0),
    )


def step_to(
    target_p: NDArray[np.float64],
    t_step: float = 1.0,
    start_p: Optional[NDArray[np.float64]] = None,
    yaw: float = 0.0,
    duration: float = 2.0,
) -> TrajectoryFn:
    """
    Rest at ``start_p`` (origin by default) until ``t_step``, then glide
    to ``target_p`` over ``duration`` seconds along a quintic blend.
    """
    p0 = np.zeros(3) if start_p is None else np.array(start_p, dtype=np.float64)
    delta = np.array(target_p, dtype=np.float64) - p0

    def traj_fn(t: float) -> TrajPoint:
        sigma, d1, d2, d3, d4 = quintic_blend((t - t_step) / duration)
        return TrajPoint(
            p=p0 + sigma * delta,
            v=(d1 / duration) * delta,
            a=(d2 / duration**2) * delta,
            yaw=yaw,
            yaw_rate=0.0,
            j=(d3 / duration**3) * delta,
            s=(d4 / duration**4) * delta,
        )

    return traj_fn


def _harmonic(amplitude: float, omega: float, phase: float, t: float) -> NDArray[np.float64]:
    """amplitude·sin(ωt + φ) and its first four time derivatives."""
    s = np.sin(omega * t + phase)
    c = np.cos(omega * t + phase)
    return amplitude * np.array([s, omega * c, -omega**2 * s, -omega**3 * c, omega**4 * s])


def _heading(
    v: NDArray[np.float64],
    a: NDArray[np.float64],
    j: NDArray[np.float64],
    mode: YawMode,
) -> Tuple[float, float, float]:
    """Yaw, yaw rate and yaw acceleration: along the horizontal velocity, or held at zero."""
    if mode == "fixed":
        return 0.0, 0.0, 0.0
    speed_sq = v[0] ** 2 + v[1] ** 2
    if speed_sq < 1e-6:
        return 0.0, 0.0, 0.0
    # yaw_rate = cross / |v|², and the a × a terms cancel in d(cross)/dt
    cross = v[0] * a[1] - v[1] * a[0]
    cross_dot = v[0] * j[1] - v[1] * j[0]
    speed_sq_dot = 2.0 * (v[0] * a[0] + v[1] * a[1])
    yaw_accel = (cross_dot * speed_sq - cross * speed_sq_dot) / speed_sq**2
    return float(np.arctan2(v[1], v[0])), float(cross / speed_sq), float(yaw_accel)


def _planar_periodic(
    x_terms: Tuple[float, float, float],
    y_terms: Tuple[float, float, float],
    offset: NDArray[np.float64],
    yaw_mode: YawMode,
) -> TrajectoryFn:
    """Reference whose x and y are single harmonics (amplitude, ω, φ) at constant z."""

    def traj_fn(t: float) -> TrajPoint:
        # Rows: position, velocity, acceleration, jerk, snap
        d = np.zeros((5, 3))
        d[:, 0] = _harmonic(*x_terms, t)
        d[:, 1] = _harmonic(*y_terms, t)
        yaw, yaw_rate, yaw_accel = _heading(d[1], d[2], d[3], yaw_mode)
        return TrajPoint(
            p=offset + d[0],
            v=d[1],
            a=d[2],
            yaw=yaw,
            yaw_rate=yaw_rate,
            j=d[3],
            s=d[4],
            yaw_accel=yaw_accel,
        )

    return traj_fn


def circle(
    radius: float = 1.0,
    speed: float = 0.5,
    altitude: float = 1.0,
    center: Optional[NDArray[np.float64]] = None,
    yaw_mode: YawMode = "fixed",
) -> TrajectoryFn:
    """
    Counter-clockwise horizontal circle at constant tangential ``speed``.

    Starts at ``center + [radius, 0]``.
    """
    omega = speed / radius
    cx, cy = (0.0, 0.0) if center is None else (float(center[0]), float(center[1]))
    return _planar_periodic(
        (radius, omega, 0.5 * np.pi),
        (radius, omega, 0.0),
        np.array([cx, cy, -altitude]),
        yaw_mode,
    )


def figure8(
    a: float = 1.0,
    b: float = 0.5,
    speed: float = 0.5,
    altitude: float = 1.0,
    yaw_mode: YawMode = "fixed",
) -> TrajectoryFn:
    """
    Lemniscate x = a sin(ωt), y = b sin(2ωt) through the origin.

    ω is chosen so one lap takes roughly (path length / speed), with the
    lap length approximated as 4·sqrt(a² + 4b²).
    """
    lap_time = 4.0 * np.sqrt(a**2 + 4.0 * b**2) / speed
    omega = 2.0 * np.pi / lap_time
    return _planar_periodic(
        (a, omega, 0.0),
        (b, 2.0 * omega, 0.0),
        np.array([0.0, 0.0, -altitude]),
        yaw_mode,
    )
