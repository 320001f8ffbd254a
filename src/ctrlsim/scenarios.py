"""
Named simulation scenarios and parameter randomization.

Each scenario bundles a plant, a controller, an initial condition and a
default time grid.  ``ScenarioSpec.build`` takes the parameter bundle so
sweeps can substitute randomized parameters while keeping everything else.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Callable, Optional, Sequence

import numpy as np
from numpy.typing import NDArray

from ctrlsim.controller import ConstantController, Controller
from ctrlsim.controller_lqr import LQRController
from ctrlsim.controller_mpc import MPCController
from ctrlsim.controller_pid import PIDController
from ctrlsim.controller_se3 import AttitudeRecoveryController, GeometricController
from ctrlsim.dynamics import DoubleIntegrator, Dynamics, LinearSystem, RigidBody, hover_state
from ctrlsim.math3d import axis_angle_to_R
from ctrlsim.metrics import Goal
from ctrlsim.params import DoubleIntegratorParams, RigidBodyParams, default_params
from ctrlsim.sim import run
from ctrlsim.trajectory import TrajectoryFn, circle, figure8, hover, step_to
from ctrlsim.types import TimeSpan, Trajectory


@dataclass(frozen=True)
class Setup:
    """
    Everything needed for one run of a scenario.

    ``goal`` and ``indices`` say which state entries are scored against
    what by the metrics.
    """

    dynamics: Dynamics
    controller: Controller
    initial_state: NDArray[np.float64]
    params: Any
    goal: Goal
    indices: Optional[Sequence[int]] = None

    def run(
        self,
        t_final: float,
        dt: float,
        integrator: str = "rk4",
        record_every: int = 1,
        orthonormalize_rotation: bool = False,
        verbose: bool = False,
    ) -> Trajectory:
        return run(
            self.dynamics,
            self.controller,
            self.initial_state,
            TimeSpan(0.0, t_final),
            dt,
            self.params,
            integrator=integrator,
            record_every=record_every,
            orthonormalize_rotation=orthonormalize_rotation,
            verbose=verbose,
        )


@dataclass(frozen=True)
class ScenarioSpec:
    """A named scenario: default time grid plus a builder."""

    name: str
    description: str
    t_final: float
    dt: float
    make_params: Callable[[], Any]
    build: Callable[[Any], Setup]  # params -> Setup


# ---------------------------------------------------------------------------
# Scenario registry
# ---------------------------------------------------------------------------

_SCENARIOS: dict[str, ScenarioSpec] = {}


def _register(spec: ScenarioSpec) -> None:
    _SCENARIOS[spec.name] = spec


def get_scenario(name: str) -> ScenarioSpec:
    """Return a scenario by name. Raises ``KeyError`` if unknown."""
    return _SCENARIOS[name]


def list_scenarios() -> list[str]:
    """Return sorted list of registered scenario names."""
    return sorted(_SCENARIOS)


# ---- Scalar decay x_dot = -x ----------------------------------------------

def _build_decay(params: Any) -> Setup:
    return Setup(
        dynamics=LinearSystem(A=[[-1.0]], B=[[0.0]]),
        controller=ConstantController(value=[0.0], state_dim=1),
        initial_state=np.array([1.0]),
        params=params,
        goal=np.array([0.0]),
    )


_register(ScenarioSpec(
    name="decay",
    description="Open-loop x_dot = -x from x(0) = 1",
    t_final=1.0,
    dt=0.01,
    make_params=lambda: None,
    build=_build_decay,
))


# ---- Double integrator ------------------------------------------------------

DI_GOAL = 1.0


def _build_di_pd(params: DoubleIntegratorParams) -> Setup:
    ctrl = PIDController(goal=DI_GOAL, k1=1.0, k2=1.0)
    return Setup(
        dynamics=DoubleIntegrator(),
        controller=ctrl,
        initial_state=np.array([0.0, 0.0]),
        params=params,
        goal=np.array([DI_GOAL, 0.0]),
    )


def _build_di_pid(params: DoubleIntegratorParams) -> Setup:
    ctrl = PIDController(goal=DI_GOAL, k1=2.0, k2=2.0, k3=1.0)
    return Setup(
        dynamics=ctrl.augment(DoubleIntegrator()),
        controller=ctrl,
        initial_state=ctrl.initial_state([0.0, 0.0]),
        params=params,
        goal=np.array([DI_GOAL, 0.0]),
        indices=[0, 1],
    )


def _build_di_lqr(params: DoubleIntegratorParams) -> Setup:
    plant = DoubleIntegrator()
    ctrl = LQRController.from_dynamics(
        plant,
        x_goal=[DI_GOAL, 0.0],
        u_ref=[0.0],
        Q=np.diag([1.0, 1.0]),
        R=np.array([[1.0]]),
        params=params,
    )
    return Setup(
        dynamics=plant,
        controller=ctrl,
        initial_state=np.array([0.0, 0.0]),
        params=params,
        goal=np.array([DI_GOAL, 0.0]),
    )


def _build_di_mpc(params: DoubleIntegratorParams) -> Setup:
    ctrl = MPCController(
        A=[[0.0, 1.0], [0.0, 0.0]],
        B=[[0.0], [1.0]],
        Q=np.eye(2),
        R=[[1.0]],
        x_goal=[DI_GOAL, 0.0],
        horizon=20,
        dt=0.1,
        u_min=-1.0,
        u_max=1.0,
    )
    return Setup(
        dynamics=DoubleIntegrator(),
        controller=ctrl,
        initial_state=np.array([0.0, 0.0]),
        params=params,
        goal=np.array([DI_GOAL, 0.0]),
    )


_register(ScenarioSpec(
    name="double_integrator_pd",
    description="PD (k1 = k2 = 1) regulation of x'' = u to x = 1",
    t_final=20.0,
    dt=0.01,
    make_params=DoubleIntegratorParams,
    build=_build_di_pd,
))

_register(ScenarioSpec(
    name="double_integrator_pid",
    description="PID with integral state rejecting a constant disturbance",
    t_final=30.0,
    dt=0.01,
    make_params=lambda: DoubleIntegratorParams(disturbance=0.5),
    build=_build_di_pid,
))

_register(ScenarioSpec(
    name="double_integrator_lqr",
    description="LQR (Q = I, R = 1) designed from the linearized plant",
    t_final=20.0,
    dt=0.01,
    make_params=DoubleIntegratorParams,
    build=_build_di_lqr,
))

_register(ScenarioSpec(
    name="double_integrator_mpc",
    description="Horizon-20 linear MPC with |u| <= 1",
    t_final=20.0,
    dt=0.01,
    make_params=DoubleIntegratorParams,
    build=_build_di_mpc,
))


# ---- Quadrotor ----------------------------------------------------------------

def _quad_setup(
    params: RigidBodyParams,
    reference: TrajectoryFn,
    x0: NDArray[np.float64],
    controller: Optional[Controller] = None,
) -> Setup:
    def ref_position(t: float) -> NDArray[np.float64]:
        return reference(t).p

    return Setup(
        dynamics=RigidBody(),
        controller=GeometricController(reference=reference) if controller is None else controller,
        initial_state=x0,
        params=params,
        goal=ref_position,
        indices=[0, 1, 2],
    )


def _build_quad_hover(params: RigidBodyParams) -> Setup:
    return _quad_setup(params, hover(altitude=1.0), hover_state(np.zeros(3)))


def _build_quad_step(params: RigidBodyParams) -> Setup:
    ref = step_to(np.array([1.0, 1.0, -1.0]), t_step=1.0)
    return _quad_setup(params, ref, hover_state(np.zeros(3)))


def _build_quad_circle(params: RigidBodyParams) -> Setup:
    ref = circle(radius=1.0, speed=0.5, altitude=1.0)
    return _quad_setup(params, ref, hover_state(np.array([1.0, 0.0, -1.0])))


def _build_quad_figure8(params: RigidBodyParams) -> Setup:
    ref = figure8(a=1.0, b=0.5, speed=0.5, altitude=1.0)
    return _quad_setup(params, ref, hover_state(np.array([0.0, 0.0, -1.0])))


def _build_quad_flip(params: RigidBodyParams) -> Setup:
    # Nearly upside down; level first, then return to the start point
    R0 = axis_angle_to_R(np.array([1.0, 0.0, 0.0]), np.deg2rad(178.0))
    ref = hover(altitude=0.0)
    ctrl = AttitudeRecoveryController(tracker=GeometricController(reference=ref), recovery_time=3.0)
    return _quad_setup(params, ref, hover_state(np.zeros(3), R0), controller=ctrl)


_register(ScenarioSpec(
    name="quad_hover",
    description="Take off from the origin and hold 1 m altitude",
    t_final=5.0,
    dt=0.002,
    make_params=default_params,
    build=_build_quad_hover,
))

_register(ScenarioSpec(
    name="quad_step",
    description="Quintic step to [1, 1] at 1 m altitude",
    t_final=8.0,
    dt=0.002,
    make_params=default_params,
    build=_build_quad_step,
))

_register(ScenarioSpec(
    name="quad_circle",
    description="Circle of radius 1 m at 0.5 m/s",
    t_final=20.0,
    dt=0.002,
    make_params=default_params,
    build=_build_quad_circle,
))

_register(ScenarioSpec(
    name="quad_figure8",
    description="Figure-8 (a = 1 m, b = 0.5 m) at 0.5 m/s",
    t_final=30.0,
    dt=0.002,
    make_params=default_params,
    build=_build_quad_figure8,
))

_register(ScenarioSpec(
    name="quad_flip_recovery",
    description="Level out from a 178 deg roll, then fly back to the start point",
    t_final=10.0,
    dt=0.002,
    make_params=default_params,
    build=_build_quad_flip,
))


# ---------------------------------------------------------------------------
# Parameter randomization
# ---------------------------------------------------------------------------

def randomize_params(base_params: Any, rng: np.random.Generator) -> Any:
    """Create a new parameter bundle with randomized physical properties.

    Randomization ranges:
      - RigidBodyParams: mass uniform +/-10 %, inertia diagonal +/-15 %
        per axis
      - DoubleIntegratorParams: disturbance uniform in [-0.5, 0.5] m/s²
        added to the base value

    The original ``base_params`` is never mutated; ``None`` passes through.
    """
    if isinstance(base_params, RigidBodyParams):
        m = base_params.m * rng.uniform(0.9, 1.1)
        J_diag = np.diag(base_params.J) * rng.uniform(0.85, 1.15, size=3)
        return RigidBodyParams(m=m, J=np.diag(J_diag), g=base_params.g)

    if isinstance(base_params, DoubleIntegratorParams):
        return replace(
            base_params,
            disturbance=base_params.disturbance + rng.uniform(-0.5, 0.5),
        )

    if base_params is None:
        return None

    raise TypeError(f"don't know how to randomize {type(base_params).__name__}")
