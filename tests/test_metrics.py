"""Tests for trajectory metrics."""

import numpy as np
import pytest

from ctrlsim.dynamics import hover_state
from ctrlsim.errors import DimensionMismatch, SimulationError
from ctrlsim.metrics import (
    compute_all_metrics,
    final_attitude,
    final_error,
    is_diverged,
    max_error,
    print_statistics,
    rms_error,
    rotation_drift,
    settling_time,
)
from ctrlsim.math3d import axis_angle_to_R
from ctrlsim.types import Trajectory


def make_traj(times, states):
    states = np.asarray(states, dtype=np.float64)
    if states.ndim == 1:
        states = states[:, None]
    traj = Trajectory.allocate(2, states.shape[1])
    for t, x in zip(times, states):
        traj.record(t, x)
    return traj.trim()


# ---- Trajectory container ---------------------------------------------------------------

def test_trajectory_grows_past_allocation():
    traj = make_traj([0.0, 1.0, 2.0, 3.0], [1.0, 2.0, 3.0, 4.0])
    assert len(traj) == 4
    assert traj.final_time == 3.0
    assert np.array_equal(traj.final_state, [4.0])
    assert [t for t, _ in traj] == [0.0, 1.0, 2.0, 3.0]


def test_trajectory_rejects_non_increasing_time():
    traj = Trajectory.allocate(4, 1)
    traj.record(0.0, [1.0])
    with pytest.raises(SimulationError):
        traj.record(0.0, [1.0])


def test_trajectory_rejects_wrong_size():
    traj = Trajectory.allocate(4, 2)
    with pytest.raises(DimensionMismatch):
        traj.record(0.0, [1.0])


def test_empty_trajectory_has_no_final_state():
    with pytest.raises(SimulationError):
        Trajectory.allocate(4, 1).final_state


# ---- Error metrics --------------------------------------------------------------------------

def test_error_metrics():
    traj = make_traj([0.0, 1.0, 2.0], [3.0, -4.0, 0.0])
    goal = np.array([0.0])
    assert final_error(traj, goal) == 0.0
    assert max_error(traj, goal) == 4.0
    assert np.isclose(rms_error(traj, goal), np.sqrt(25.0 / 3.0))


def test_error_metrics_with_indices():
    traj = make_traj([0.0, 1.0], [[1.0, 100.0], [2.0, -100.0]])
    assert final_error(traj, np.array([2.0]), indices=[0]) == 0.0


def test_error_metrics_with_moving_goal():
    traj = make_traj([0.0, 1.0, 2.0], [0.0, 1.0, 2.0])
    assert max_error(traj, lambda t: np.array([t])) == 0.0


def test_settling_time():
    traj = make_traj([0.0, 1.0, 2.0, 3.0, 4.0], [1.0, 0.5, 0.01, 0.2, 0.01])
    goal = np.array([0.0])
    assert settling_time(traj, goal, tol=0.05) == 4.0
    assert settling_time(traj, goal, tol=2.0) == 0.0
    assert settling_time(make_traj([0.0, 1.0], [0.0, 1.0]), goal, tol=0.05) is None


def test_is_diverged():
    assert not is_diverged(make_traj([0.0, 1.0], [0.0, 1.0]))
    assert is_diverged(make_traj([0.0, 1.0], [0.0, 1e7]))


def test_rotation_drift():
    good = make_traj([0.0], [hover_state(np.zeros(3))])
    assert rotation_drift(good) == 0.0

    bad_state = hover_state(np.zeros(3))
    bad_state[6] = 1.1
    bad = make_traj([0.0], [bad_state])
    assert rotation_drift(bad) > 0.1

    with pytest.raises(ValueError):
        rotation_drift(make_traj([0.0], [1.0]))


def test_compute_all_metrics_keys():
    traj = make_traj([0.0, 1.0, 2.0], [1.0, 0.5, 0.0])
    metrics = compute_all_metrics(traj, np.array([0.0]), tol=0.1)
    assert set(metrics) == {
        "final_err", "rms_err", "max_err", "settling_time",
        "duration", "samples", "diverged",
    }
    assert metrics["settling_time"] == 2.0
    assert metrics["duration"] == 2.0
    assert metrics["samples"] == 3.0
    assert metrics["diverged"] == 0.0


def test_compute_all_metrics_rigid_body_and_unsettled():
    states = [hover_state(np.zeros(3)), hover_state(np.array([0.0, 0.0, -0.5]))]
    traj = make_traj([0.0, 1.0], states)
    metrics = compute_all_metrics(traj, np.array([0.0, 0.0, -1.0]), indices=[0, 1, 2])
    assert "rotation_drift" in metrics
    assert np.isnan(metrics["settling_time"])
    assert np.isclose(metrics["final_err"], 0.5)


def test_final_attitude_reported_in_degrees():
    R = axis_angle_to_R(np.array([1.0, 0.0, 0.0]), 0.2)
    traj = make_traj([0.0, 1.0], [hover_state(np.zeros(3)), hover_state(np.zeros(3), R)])
    assert np.allclose(final_attitude(traj), [0.2, 0.0, 0.0])

    metrics = compute_all_metrics(traj, np.zeros(3), indices=[0, 1, 2])
    assert np.isclose(metrics["final_roll_deg"], np.rad2deg(0.2))
    assert np.isclose(metrics["final_pitch_deg"], 0.0)
    assert np.isclose(metrics["final_yaw_deg"], 0.0)


def test_print_statistics(capsys):
    traj = make_traj([0.0, 1.0], [1.0, 0.0])
    print_statistics(compute_all_metrics(traj, np.array([0.0])), "Demo")
    out = capsys.readouterr().out
    assert "Demo Statistics" in out
    assert "Settling time" in out
