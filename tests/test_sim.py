"""Tests for the simulation loop."""

import numpy as np
import pytest

from ctrlsim.controller import ConstantController
from ctrlsim.controller_pid import PIDController
from ctrlsim.dynamics import DoubleIntegrator, LinearSystem, RigidBody, pack_state
from ctrlsim.errors import DimensionMismatch, InvalidStep, InvalidTimeSpan, NumericalDivergence
from ctrlsim.metrics import rotation_drift, settling_time
from ctrlsim.params import DoubleIntegratorParams, default_params
from ctrlsim.scenarios import get_scenario
from ctrlsim.sim import run, step_count
from ctrlsim.types import TimeSpan


def run_pd(time_span=(0.0, 20.0), dt=0.01, **kwargs):
    ctrl = PIDController(goal=1.0, k1=1.0, k2=1.0)
    return run(DoubleIntegrator(), ctrl, np.array([0.0, 0.0]), time_span, dt, **kwargs)


# ---- Convergence -------------------------------------------------------------------------

def test_pd_converges_to_goal():
    traj = run_pd()
    assert np.allclose(traj.final_state, [1.0, 0.0], atol=1e-3)
    t_settle = settling_time(traj, np.array([1.0, 0.0]), tol=0.05)
    assert t_settle is not None and t_settle < 12.0, f"settling time {t_settle}"


def test_pid_removes_constant_disturbance_offset():
    params = DoubleIntegratorParams(disturbance=0.5)

    pd = PIDController(goal=1.0, k1=2.0, k2=2.0)
    traj_pd = run(DoubleIntegrator(), pd, np.zeros(2), (0.0, 30.0), 0.01, params)
    # PD alone settles at goal + d / k1
    assert np.isclose(traj_pd.final_state[0], 1.25, atol=1e-3)

    pid = PIDController(goal=1.0, k1=2.0, k2=2.0, k3=1.0)
    traj_pid = run(pid.augment(DoubleIntegrator()), pid, pid.initial_state(np.zeros(2)),
                   (0.0, 30.0), 0.01, params)
    x, xdot, z = traj_pid.final_state
    assert abs(x - 1.0) < 1e-3, f"PID offset {x - 1.0:.2e}"
    assert abs(xdot) < 1e-3
    # Integral settles where it cancels the disturbance
    assert np.isclose(z, 0.5 / 1.0, atol=1e-2)


# ---- Time grid -----------------------------------------------------------------------------

def test_timestamps_strictly_increasing_and_end_exact():
    traj = run_pd((0.0, 2.0), 0.01)
    assert np.all(np.diff(traj.t) > 0.0)
    assert traj.t[0] == 0.0
    assert traj.t[-1] == 2.0
    assert len(traj) == 201


def test_last_step_shortened_to_hit_end():
    traj = run_pd((0.0, 1.0), 0.3)
    assert np.allclose(traj.t, [0.0, 0.3, 0.6, 0.9, 1.0])
    assert traj.t[-1] == 1.0


def test_step_count_absorbs_rounding():
    assert step_count(TimeSpan(0.0, 0.3), 0.1) == 3
    assert step_count(TimeSpan(0.0, 1.0), 0.3) == 4
    assert step_count(TimeSpan(0.0, 1.0), 1.0) == 1


def test_record_every():
    traj = run_pd((0.0, 1.0), 0.01, record_every=10)
    assert len(traj) == 11
    assert np.allclose(traj.t, np.linspace(0.0, 1.0, 11))

    traj = run_pd((0.0, 1.0), 0.01, record_every=7)
    assert traj.t[-1] == 1.0, "last sample is always recorded"
    assert np.all(np.diff(traj.t) > 0.0)


def test_nonzero_start_time():
    traj = run_pd(TimeSpan(5.0, 6.0), 0.1)
    assert traj.t[0] == 5.0 and traj.t[-1] == 6.0
    assert len(traj) == 11


def test_late_start_time_grid():
    traj = run_pd(TimeSpan(1e9, 1e9 + 1.0), 0.01)
    assert traj.t[-1] == 1e9 + 1.0
    assert np.all(np.diff(traj.t) > 0.0)
    assert len(traj) == 101


def test_recorded_samples_are_read_only():
    traj = run_pd((0.0, 1.0), 0.1)
    with pytest.raises(ValueError):
        traj.t[0] = 5.0
    with pytest.raises(ValueError):
        traj.x[0, 0] = 5.0
    assert traj.t[0] == 0.0 and traj.x[0, 0] == 0.0


# ---- Errors ----------------------------------------------------------------------------------

@pytest.mark.parametrize("span", [(1.0, 1.0), (2.0, 1.0), (0.0, float("inf"))])
def test_invalid_time_span(span):
    with pytest.raises(InvalidTimeSpan):
        run_pd(span, 0.01)


@pytest.mark.parametrize("dt", [0.0, -0.01, float("nan"), 2.0])
def test_invalid_step(dt):
    with pytest.raises(InvalidStep):
        run_pd((0.0, 1.0), dt)


def test_step_below_time_resolution():
    # Around t = 1e9 neighbouring floats are ~1.2e-7 apart
    with pytest.raises(InvalidStep):
        run_pd((1e9, 1e9 + 1.0), 1e-7)


@pytest.mark.parametrize("record_every", [0, -1, 1.5])
def test_invalid_record_every(record_every):
    with pytest.raises(ValueError):
        run_pd((0.0, 1.0), 0.1, record_every=record_every)


def test_initial_state_dimension_rejected():
    ctrl = PIDController(goal=1.0)
    with pytest.raises(DimensionMismatch):
        run(DoubleIntegrator(), ctrl, np.zeros(3), (0.0, 1.0), 0.1)


def test_controller_dimension_rejected():
    pid = PIDController(goal=1.0, k3=1.0)
    # Integral controller on the plain plant: state sizes disagree
    with pytest.raises(DimensionMismatch):
        run(DoubleIntegrator(), pid, np.zeros(2), (0.0, 1.0), 0.1)
    with pytest.raises(DimensionMismatch):
        run(DoubleIntegrator(), ConstantController([0.0, 0.0], state_dim=2),
            np.zeros(2), (0.0, 1.0), 0.1)


def test_non_finite_control_raises_divergence():
    ctrl = ConstantController([float("nan")], state_dim=2)
    with pytest.raises(NumericalDivergence) as exc:
        run(DoubleIntegrator(), ctrl, np.zeros(2), (0.0, 1.0), 0.1)
    assert exc.value.where == "control"
    assert exc.value.time == 0.0


def test_blow_up_raises_divergence():
    dyn = LinearSystem(A=[[1000.0]], B=[[0.0]])
    ctrl = ConstantController([0.0], state_dim=1)
    with np.errstate(over="ignore", invalid="ignore"):
        with pytest.raises(NumericalDivergence) as exc:
            run(dyn, ctrl, np.array([1e300]), (0.0, 1.0), 0.01)
    assert exc.value.where == "state"
    assert 0.0 < exc.value.time < 1.0


def test_orthonormalize_requires_rigid_body():
    with pytest.raises(ValueError):
        run_pd((0.0, 1.0), 0.1, orthonormalize_rotation=True)


# ---- Determinism and rotation drift ---------------------------------------------------------

def test_identical_runs_are_bit_identical():
    scenario = get_scenario("quad_circle")

    def once():
        setup = scenario.build(scenario.make_params())
        return setup.run(0.5, scenario.dt)

    a, b = once(), once()
    assert np.array_equal(a.t, b.t)
    assert np.array_equal(a.x, b.x)


def spinning_body(orthonormalize_rotation):
    params = default_params()
    x0 = pack_state(np.zeros(3), np.zeros(3), np.eye(3), np.array([0.0, 0.0, 5.0]))
    ctrl = ConstantController([params.hover_thrust, 0.0, 0.0, 0.0], state_dim=18)
    return run(RigidBody(), ctrl, x0, (0.0, 1.0), 0.01, params, integrator="euler",
               orthonormalize_rotation=orthonormalize_rotation)


def test_rotation_drift_without_projection():
    assert rotation_drift(spinning_body(False)) > 1e-3


def test_orthonormalize_keeps_rotation_on_so3():
    assert rotation_drift(spinning_body(True)) < 1e-9
