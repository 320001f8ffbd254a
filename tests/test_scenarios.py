"""Tests for the scenario registry and parameter randomization."""

import numpy as np
import pytest

from ctrlsim.dynamics import unpack_state
from ctrlsim.metrics import compute_all_metrics, final_error
from ctrlsim.params import DoubleIntegratorParams, RigidBodyParams, default_params
from ctrlsim.scenarios import get_scenario, list_scenarios, randomize_params


EXPECTED = [
    "decay",
    "double_integrator_lqr",
    "double_integrator_mpc",
    "double_integrator_pd",
    "double_integrator_pid",
    "quad_circle",
    "quad_figure8",
    "quad_flip_recovery",
    "quad_hover",
    "quad_step",
]


def test_registry():
    names = list_scenarios()
    assert names == sorted(names)
    for name in EXPECTED:
        assert name in names, f"missing scenario {name}"
    with pytest.raises(KeyError):
        get_scenario("nope")


@pytest.mark.parametrize("name", EXPECTED)
def test_every_scenario_builds_and_runs(name):
    scenario = get_scenario(name)
    setup = scenario.build(scenario.make_params())
    assert setup.dynamics.state_dim == setup.initial_state.shape[0]
    assert setup.controller.state_dim == setup.dynamics.state_dim

    t_final = min(scenario.t_final, 50 * scenario.dt)
    traj = setup.run(t_final, scenario.dt)
    assert traj.t[-1] == t_final
    metrics = compute_all_metrics(traj, setup.goal, setup.indices)
    assert metrics["diverged"] == 0.0


def test_decay_matches_exponential():
    scenario = get_scenario("decay")
    setup = scenario.build(scenario.make_params())
    traj = setup.run(scenario.t_final, scenario.dt)
    assert abs(traj.final_state[0] - np.exp(-1.0)) < 1e-6


@pytest.mark.parametrize("name", [
    "double_integrator_pd",
    "double_integrator_pid",
    "double_integrator_lqr",
    "double_integrator_mpc",
])
def test_double_integrator_scenarios_reach_goal(name):
    scenario = get_scenario(name)
    setup = scenario.build(scenario.make_params())
    traj = setup.run(scenario.t_final, scenario.dt)
    assert final_error(traj, setup.goal, setup.indices) < 1e-2


def test_quad_hover_takes_off():
    scenario = get_scenario("quad_hover")
    setup = scenario.build(scenario.make_params())
    traj = setup.run(4.0, scenario.dt)
    assert final_error(traj, setup.goal, setup.indices) < 1e-2


def test_quad_circle_tracks_reference():
    scenario = get_scenario("quad_circle")
    setup = scenario.build(scenario.make_params())
    traj = setup.run(6.0, scenario.dt)
    assert final_error(traj, setup.goal, setup.indices) < 5e-2


def run_full(name, t_final=None):
    scenario = get_scenario(name)
    setup = scenario.build(scenario.make_params())
    traj = setup.run(scenario.t_final if t_final is None else t_final, scenario.dt)
    return setup, traj


def test_quad_step_settles_on_target():
    setup, traj = run_full("quad_step")
    assert final_error(traj, setup.goal, setup.indices) < 1e-3
    # No residual oscillation once the move is over
    tail = traj.t >= 5.0
    goal = np.array([1.0, 1.0, -1.0])
    assert np.max(np.linalg.norm(traj.x[tail, 0:3] - goal, axis=1)) < 1e-2


def test_quad_figure8_converges_to_reference():
    setup, traj = run_full("quad_figure8", t_final=15.0)
    assert final_error(traj, setup.goal, setup.indices) < 1e-3


def test_quad_flip_recovery_levels_and_returns():
    scenario = get_scenario("quad_flip_recovery")
    setup, traj = run_full("quad_flip_recovery")

    # Level by the switch time, having fallen freely with thrust cut
    i = int(np.argmin(np.abs(traj.t - 3.0)))
    _, _, R_switch, _ = unpack_state(traj.x[i])
    assert R_switch[2, 2] > 0.99, f"not level at switch: R33={R_switch[2, 2]:.3f}"
    assert np.isclose(traj.x[i, 2], 0.5 * 9.81 * traj.t[i] ** 2, rtol=1e-6)

    _, _, R_end, _ = unpack_state(traj.final_state)
    assert R_end[2, 2] > 0.999, f"still tilted: R33={R_end[2, 2]:.4f}"
    assert final_error(traj, setup.goal, setup.indices) < 1e-2
    assert traj.t[-1] == scenario.t_final


# ---- Randomization ------------------------------------------------------------------------

def test_randomize_rigid_body_ranges():
    base = default_params()
    rng = np.random.default_rng(0)
    for _ in range(20):
        p = randomize_params(base, rng)
        assert isinstance(p, RigidBodyParams)
        assert 0.9 * base.m <= p.m <= 1.1 * base.m
        ratio = np.diag(p.J) / np.diag(base.J)
        assert np.all((ratio >= 0.85) & (ratio <= 1.15))
        assert p.g == base.g
    assert base.m == 4.34, "base params must not be mutated"


def test_randomize_is_seeded():
    a = randomize_params(default_params(), np.random.default_rng(7))
    b = randomize_params(default_params(), np.random.default_rng(7))
    assert a.m == b.m
    assert np.array_equal(a.J, b.J)


def test_randomize_double_integrator_disturbance():
    base = DoubleIntegratorParams(disturbance=0.5)
    p = randomize_params(base, np.random.default_rng(3))
    assert 0.0 <= p.disturbance <= 1.0
    assert base.disturbance == 0.5


def test_randomize_passthrough_and_unknown():
    assert randomize_params(None, np.random.default_rng(0)) is None
    with pytest.raises(TypeError):
        randomize_params(object(), np.random.default_rng(0))
