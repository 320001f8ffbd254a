"""Tests for reference trajectory generators."""

import numpy as np
import pytest

from ctrlsim.trajectory import circle, figure8, hover, quintic_blend, step_to


def central_diff(fn, t, h=1e-5):
    return (fn(t + h) - fn(t - h)) / (2 * h)


def test_hover_reference():
    ref = hover(altitude=2.0, yaw=0.3)(5.0)
    assert np.array_equal(ref.p, [0.0, 0.0, -2.0])
    assert np.array_equal(ref.v, np.zeros(3))
    assert ref.yaw == 0.3 and ref.yaw_rate == 0.0


def test_quintic_blend_endpoints():
    assert quintic_blend(-1.0) == (0.0, 0.0, 0.0, 0.0, 0.0)
    assert quintic_blend(0.0) == (0.0, 0.0, 0.0, 0.0, 0.0)
    assert quintic_blend(1.0) == (1.0, 0.0, 0.0, 0.0, 0.0)
    sigma, dsigma, *_ = quintic_blend(0.5)
    assert np.isclose(sigma, 0.5)
    assert np.isclose(dsigma, 1.875)


def test_step_to_holds_then_arrives():
    ref = step_to(np.array([1.0, 2.0, -1.0]), t_step=1.0, duration=2.0)
    assert np.array_equal(ref(0.5).p, np.zeros(3))
    assert np.allclose(ref(3.0).p, [1.0, 2.0, -1.0])
    assert np.allclose(ref(10.0).v, 0.0)


@pytest.mark.parametrize("make", [
    lambda: step_to(np.array([1.0, -1.0, -2.0]), t_step=0.5),
    lambda: circle(radius=1.5, speed=0.7, yaw_mode="tangent"),
    lambda: figure8(a=1.0, b=0.5, speed=0.5),
])
def test_derivatives_consistent(make):
    ref = make()
    for t in [0.9, 1.7, 2.3]:
        assert np.allclose(central_diff(lambda s: ref(s).p, t), ref(t).v, atol=1e-6)
        assert np.allclose(central_diff(lambda s: ref(s).v, t), ref(t).a, atol=1e-6)
        assert np.allclose(central_diff(lambda s: ref(s).a, t), ref(t).j, atol=1e-6)
        assert np.allclose(central_diff(lambda s: ref(s).j, t), ref(t).s, atol=1e-6)


def test_circle_geometry():
    ref = circle(radius=2.0, speed=1.0, altitude=1.5, center=np.array([1.0, -1.0]))
    assert np.allclose(ref(0.0).p, [3.0, -1.0, -1.5])
    for t in np.linspace(0.0, 10.0, 7):
        pt = ref(t)
        assert np.isclose(np.linalg.norm(pt.p[:2] - [1.0, -1.0]), 2.0)
        assert np.isclose(np.linalg.norm(pt.v), 1.0)
        assert pt.p[2] == -1.5


def test_circle_tangent_yaw():
    ref = circle(radius=1.0, speed=0.5, yaw_mode="tangent")
    pt = ref(0.0)
    assert np.isclose(pt.yaw, np.pi / 2)
    assert np.isclose(pt.yaw_rate, 0.5)


def test_tangent_yaw_derivatives_consistent():
    ref = figure8(a=1.0, b=0.5, speed=0.5, yaw_mode="tangent")
    for t in [0.4, 1.3, 2.2]:
        assert np.isclose(central_diff(lambda s: ref(s).yaw, t), ref(t).yaw_rate, atol=1e-6)
        assert np.isclose(central_diff(lambda s: ref(s).yaw_rate, t), ref(t).yaw_accel, atol=1e-6)


def test_figure8_passes_origin():
    ref = figure8(a=1.0, b=0.5, altitude=1.0)
    assert np.allclose(ref(0.0).p, [0.0, 0.0, -1.0])
