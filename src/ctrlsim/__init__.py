"""
ctrlsim: fixed-step closed-loop control simulation.

Plants (scalar/linear systems, double integrator, rigid-body quadrotor),
controllers (PID, LQR, linear MPC, geometric SE(3) tracking) and explicit
integrators, composed by a single simulation loop.
"""

from ctrlsim.errors import (
    DimensionMismatch,
    InvalidStep,
    InvalidTimeSpan,
    NumericalDivergence,
    SimulationError,
)
from ctrlsim.types import TimeSpan, TrajPoint, Trajectory
from ctrlsim.params import DoubleIntegratorParams, RigidBodyParams, default_params
from ctrlsim.dynamics import (
    DoubleIntegrator,
    Dynamics,
    IntegralAugmentedDynamics,
    LinearSystem,
    RigidBody,
)
from ctrlsim.integrators import ForwardEuler, Integrator, RungeKutta4
from ctrlsim.controller import ConstantController, Controller
from ctrlsim.controller_pid import PIDController
from ctrlsim.controller_lqr import LQRController
from ctrlsim.controller_mpc import MPCController
from ctrlsim.controller_se3 import AttitudeRecoveryController, GeometricController
from ctrlsim.sim import run

__version__ = "0.1.0"

__all__ = [
    "SimulationError",
    "DimensionMismatch",
    "InvalidTimeSpan",
    "InvalidStep",
    "NumericalDivergence",
    "TimeSpan",
    "TrajPoint",
    "Trajectory",
    "DoubleIntegratorParams",
    "RigidBodyParams",
    "default_params",
    "Dynamics",
    "LinearSystem",
    "DoubleIntegrator",
    "IntegralAugmentedDynamics",
    "RigidBody",
    "Integrator",
    "ForwardEuler",
    "RungeKutta4",
    "Controller",
    "ConstantController",
    "PIDController",
    "LQRController",
    "MPCController",
    "GeometricController",
    "AttitudeRecoveryController",
    "run",
]
