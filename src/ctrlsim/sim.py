"""
Main simulation loop.

Orchestrates the interaction between controller, dynamics and integrator
for a complete simulation run.

The pipeline per timestep is:
    1. Controller  →  control u at (state, t)
    2. Zero-order hold  →  vector field f(τ, x) = dynamics(x, u, τ)
    3. Integrator  →  next state at t + dt
    4. Divergence check, optional SO(3) projection, recording
"""

from typing import Any, Tuple, Union

import numpy as np
from numpy.typing import NDArray

from ctrlsim.controller import Controller
from ctrlsim.dynamics import Dynamics, RigidBody, pack_state, unpack_state
from ctrlsim.errors import DimensionMismatch, InvalidStep, NumericalDivergence
from ctrlsim.integrators import Integrator, get_integrator, validate_step
from ctrlsim.math3d import orthonormalize
from ctrlsim.types import TimeSpan, Trajectory, check_dim


def step_count(time_span: TimeSpan, dt: float) -> int:
    """
    Number of integration steps needed to cover ``time_span`` with ``dt``.

    The last step may be shorter than ``dt`` so the run ends exactly at
    ``time_span.end``; a remainder smaller than 1e-9 * dt is absorbed into
    the previous step instead of becoming a step of its own.
    """
    n = max(1, int(np.ceil(time_span.duration / dt)))
    while n > 1 and time_span.start + (n - 1) * dt >= time_span.end - 1e-9 * dt:
        n -= 1
    return n


def _as_time_span(time_span: Union[TimeSpan, Tuple[float, float]]) -> TimeSpan:
    if isinstance(time_span, TimeSpan):
        return time_span
    start, end = time_span
    return TimeSpan(float(start), float(end))


def _check_finite(x: NDArray[np.float64], where: str, t: float) -> None:
    if not np.all(np.isfinite(x)):
        bad = np.flatnonzero(~np.isfinite(x))
        raise NumericalDivergence(where, t, detail=f"indices {bad.tolist()}")


def _project_rotation(state: NDArray[np.float64]) -> NDArray[np.float64]:
    x, v, R, Omega = unpack_state(state)
    return pack_state(x, v, orthonormalize(R), Omega)


def run(
    dynamics: Dynamics,
    controller: Controller,
    initial_state: NDArray[np.float64],
    time_span: Union[TimeSpan, Tuple[float, float]],
    dt: float,
    params: Any = None,
    integrator: Union[str, type] = "rk4",
    record_every: int = 1,
    orthonormalize_rotation: bool = False,
    verbose: bool = False,
) -> Trajectory:
    """
    Run a complete fixed-step simulation.

    Control is computed once per step and held constant over it.  The
    run always terminates after a bounded number of steps and the last
    recorded sample is at exactly ``time_span.end``.

    Args:
        dynamics: System to simulate
        controller: Control law; its state_dim/control_dim must match the system
        initial_state: State at ``time_span.start``
        time_span: TimeSpan or (start, end) tuple [s]
        dt: Integration timestep [s], 0 < dt <= end - start
        params: Parameter bundle handed unchanged to controller and dynamics
        integrator: "rk4", "euler" or an Integrator subclass
        record_every: Record every Nth step (the first and last samples are
            always recorded)
        orthonormalize_rotation: Project the rotation block back onto SO(3)
            after every step (RigidBody only)
        verbose: Print progress updates

    Returns:
        Trajectory containing the recorded (time, state) samples

    Raises:
        InvalidTimeSpan: start >= end
        InvalidStep: dt <= 0, non-finite, or longer than the span
        DimensionMismatch: state/controller/dynamics sizes disagree
        NumericalDivergence: state or control became non-finite
    """
    span = _as_time_span(time_span)
    dt = validate_step(dt)
    if dt > span.duration:
        raise InvalidStep(f"step size {dt} exceeds time span length {span.duration}")
    # Consecutive grid points must stay distinct floats over the whole span
    resolution = 2.0 * np.spacing(max(abs(span.start), abs(span.end)))
    if dt <= resolution:
        raise InvalidStep(f"step size {dt} is below the time resolution {resolution:.3g} of the span")
    if int(record_every) != record_every or record_every < 1:
        raise ValueError(f"record_every must be a positive integer, got {record_every}")
    record_every = int(record_every)

    x0 = check_dim(initial_state, dynamics.state_dim, "initial state")
    if controller.state_dim != dynamics.state_dim:
        raise DimensionMismatch("controller state", dynamics.state_dim, controller.state_dim)
    if controller.control_dim != dynamics.control_dim:
        raise DimensionMismatch("controller output", dynamics.control_dim, controller.control_dim)
    if orthonormalize_rotation and not isinstance(dynamics, RigidBody):
        raise ValueError("orthonormalize_rotation only applies to RigidBody dynamics")
    _check_finite(x0, "state", span.start)

    integrator_cls = get_integrator(integrator)
    stepper: Integrator = integrator_cls(x0, t0=span.start)

    n_steps = step_count(span, dt)
    traj = Trajectory.allocate(n_steps // record_every + 2, dynamics.state_dim)
    traj.record(span.start, x0)

    if verbose:
        print(f"Starting simulation: t=[{span.start}, {span.end}]s, dt={dt*1000:.2f}ms, "
              f"steps={n_steps}, integrator={integrator_cls.name}")

    report_every = max(1, n_steps // 10)

    for k in range(n_steps):
        t = stepper.time
        x = stepper.state

        # 1) Controller  →  held input for this step
        u = controller.compute(x, t, params)
        _check_finite(u, "control", t)

        # 2) Zero-order-hold vector field
        def f(tau, xi, u=u):
            return dynamics.derivative(xi, u, tau, params)

        # 3) Integrate; the final step lands exactly on span.end
        last = k == n_steps - 1
        t_next = span.end if last else span.start + (k + 1) * dt
        t_new, x_new = stepper.advance_to(t_next, f)

        # 4) Surface divergence instead of carrying NaNs forward
        _check_finite(x_new, "state", t_new)

        if orthonormalize_rotation:
            x_new = _project_rotation(x_new)
            stepper.reset(x_new)

        if last or (k + 1) % record_every == 0:
            traj.record(t_new, x_new)

        if verbose and (k + 1) % report_every == 0:
            print(f"  t={t_new:.3f}s  |x|={np.linalg.norm(x_new):.4g}")

    if verbose:
        print(f"Simulation complete: {n_steps} steps, {len(traj)} samples recorded")

    return traj.trim()
