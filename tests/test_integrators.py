"""Tests for the fixed-step integrators."""

import numpy as np
import pytest

from ctrlsim.errors import DimensionMismatch, InvalidStep, SimulationError
from ctrlsim.integrators import ForwardEuler, RungeKutta4, get_integrator


def decay(t, x):
    return -x


def integrate(cls, dt, t_end=1.0):
    stepper = cls(np.array([1.0]), f=decay)
    n = int(round(t_end / dt))
    for k in range(n):
        stepper.advance_to((k + 1) * dt)
    return stepper


# ---- Accuracy on x_dot = -x ------------------------------------------------------

def test_rk4_matches_exponential_decay():
    stepper = integrate(RungeKutta4, 0.01)
    err = abs(stepper.state[0] - np.exp(-1.0))
    assert err < 1e-6, f"RK4 error {err:.2e} too large"
    assert stepper.time == 1.0


def test_euler_first_order_accuracy():
    stepper = integrate(ForwardEuler, 0.01)
    err = abs(stepper.state[0] - np.exp(-1.0))
    assert err < 1e-2, f"Euler error {err:.2e} too large"
    assert err > 1e-6, "Euler should not reach fourth-order accuracy"


def test_convergence_orders():
    def error(cls, dt):
        return abs(integrate(cls, dt).state[0] - np.exp(-1.0))

    euler_ratio = error(ForwardEuler, 0.1) / error(ForwardEuler, 0.05)
    rk4_ratio = error(RungeKutta4, 0.1) / error(RungeKutta4, 0.05)
    assert 1.8 < euler_ratio < 2.2, f"Euler ratio {euler_ratio:.2f} should be ~2"
    assert rk4_ratio > 12.0, f"RK4 ratio {rk4_ratio:.2f} should be ~16"


# ---- Step validation -----------------------------------------------------------------

@pytest.mark.parametrize("cls", [ForwardEuler, RungeKutta4])
@pytest.mark.parametrize("dt", [0.0, -0.01, float("nan"), float("inf")])
def test_invalid_step_rejected(cls, dt):
    stepper = cls(np.array([1.0]), f=decay)
    with pytest.raises(InvalidStep):
        stepper.advance(dt)
    # State untouched after a rejected step
    assert stepper.time == 0.0
    assert np.array_equal(stepper.state, [1.0])


def test_advance_to_past_time_rejected():
    stepper = RungeKutta4(np.array([1.0]), t0=1.0, f=decay)
    with pytest.raises(InvalidStep):
        stepper.advance_to(0.5)


def test_missing_vector_field():
    with pytest.raises(SimulationError):
        ForwardEuler(np.array([1.0])).advance(0.1)


def test_per_step_vector_field_overrides_bound_one():
    stepper = ForwardEuler(np.array([1.0]), f=decay)
    t, x = stepper.advance(0.5, f=lambda t, x: np.array([2.0]))
    assert t == 0.5
    assert np.allclose(x, [2.0])


def test_state_is_a_copy():
    stepper = ForwardEuler(np.array([1.0]), f=decay)
    s = stepper.state
    s[0] = 100.0
    assert stepper.state[0] == 1.0


def test_reset():
    stepper = RungeKutta4(np.array([1.0, 0.0]), f=lambda t, x: np.zeros(2))
    stepper.reset(np.array([3.0, 4.0]), t=2.0)
    assert stepper.time == 2.0
    assert np.array_equal(stepper.state, [3.0, 4.0])
    with pytest.raises(DimensionMismatch):
        stepper.reset(np.zeros(3))


def test_get_integrator():
    assert get_integrator("rk4") is RungeKutta4
    assert get_integrator("euler") is ForwardEuler
    assert get_integrator(ForwardEuler) is ForwardEuler
    with pytest.raises(KeyError):
        get_integrator("midpoint")
