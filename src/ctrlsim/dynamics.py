"""
Continuous-time system dynamics.

Every system maps (state, control, time, params) to a state derivative of
the same dimension.  Dynamics are pure: they never integrate, never
renormalize the rotation matrix, and never keep memory between calls.

Rigid-body state layout (18,):
    [x (3), v (3), R (9, row-major), Omega (3)]
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Tuple

import numpy as np
from numpy.typing import NDArray

from ctrlsim.errors import DimensionMismatch
from ctrlsim.math3d import E3, hat
from ctrlsim.params import DoubleIntegratorParams, RigidBodyParams
from ctrlsim.types import as_vector, check_dim, freeze


RIGID_BODY_STATE_DIM = 18
RIGID_BODY_CONTROL_DIM = 4


class Dynamics(ABC):
    """
    Base class for a first-order system x_dot = f(x, u, t; params).

    Subclasses implement ``_derivative``; ``derivative`` validates sizes
    on the way in and on the way out.
    """

    state_dim: int
    control_dim: int

    def derivative(
        self,
        state: NDArray[np.float64],
        control: NDArray[np.float64],
        time: float,
        params: Any = None,
    ) -> NDArray[np.float64]:
        """
        Compute the state derivative.

        Args:
            state: Current state, shape (state_dim,)
            control: Control input, shape (control_dim,) (scalars allowed when control_dim == 1)
            time: Current time [s]
            params: System parameter bundle (read-only)

        Returns:
            State derivative, shape (state_dim,)
        """
        state = check_dim(state, self.state_dim, f"{type(self).__name__} state")
        control = check_dim(control, self.control_dim, f"{type(self).__name__} control")
        x_dot = as_vector(self._derivative(state, control, time, params), "state derivative")
        if x_dot.shape[0] != self.state_dim:
            raise DimensionMismatch(f"{type(self).__name__} derivative", self.state_dim, x_dot.shape[0])
        return x_dot

    @abstractmethod
    def _derivative(
        self,
        state: NDArray[np.float64],
        control: NDArray[np.float64],
        time: float,
        params: Any,
    ) -> NDArray[np.float64]:
        ...


@dataclass(frozen=True)
class DoubleIntegrator(Dynamics):
    """
    n-axis double integrator x'' = u + d.

    State: [position (n), velocity (n)]; control: acceleration (n).
    Reads ``DoubleIntegratorParams.disturbance`` when params are given.
    """

    dof: int = 1

    @property
    def state_dim(self) -> int:
        return 2 * self.dof

    @property
    def control_dim(self) -> int:
        return self.dof

    def _derivative(self, state, control, time, params):
        d = params.disturbance if isinstance(params, DoubleIntegratorParams) else 0.0
        return np.concatenate([state[self.dof:], control + d])


@dataclass(frozen=True, eq=False)
class LinearSystem(Dynamics):
    """
    Linear time-invariant system x_dot = A x + B u.

    Args:
        A: State matrix, shape (n, n)
        B: Input matrix, shape (n, m)
    """

    A: NDArray[np.float64]
    B: NDArray[np.float64]

    def __post_init__(self) -> None:
        A = freeze(np.atleast_2d(self.A))
        B = np.asarray(self.B, dtype=np.float64)
        if B.ndim == 1:
            B = B.reshape(-1, 1)
        B = freeze(B)
        if A.shape[0] != A.shape[1]:
            raise DimensionMismatch("A must be square; columns", A.shape[0], A.shape[1])
        if B.shape[0] != A.shape[0]:
            raise DimensionMismatch("B rows", A.shape[0], B.shape[0])
        object.__setattr__(self, "A", A)
        object.__setattr__(self, "B", B)

    @property
    def state_dim(self) -> int:
        return self.A.shape[0]

    @property
    def control_dim(self) -> int:
        return self.B.shape[1]

    def _derivative(self, state, control, time, params):
        return self.A @ state + self.B @ control


@dataclass(frozen=True, eq=False)
class IntegralAugmentedDynamics(Dynamics):
    """
    Wraps a system and appends the running integral of a tracking error.

    The first ``dof`` entries of the base state are taken as the tracked
    position; the appended block integrates (position - goal).  This keeps
    integral memory inside the state vector, where the integrator owns it.

    Augmented state: [base state, z (dof)] with z_dot = x[:dof] - goal.
    """

    base: Dynamics
    goal: NDArray[np.float64]

    def __post_init__(self) -> None:
        goal = freeze(as_vector(self.goal, "integral goal"))
        if goal.shape[0] > self.base.state_dim:
            raise DimensionMismatch("integral goal", self.base.state_dim, goal.shape[0])
        object.__setattr__(self, "goal", goal)

    @property
    def dof(self) -> int:
        return self.goal.shape[0]

    @property
    def state_dim(self) -> int:
        return self.base.state_dim + self.dof

    @property
    def control_dim(self) -> int:
        return self.base.control_dim

    def _derivative(self, state, control, time, params):
        n = self.base.state_dim
        base_dot = self.base.derivative(state[:n], control, time, params)
        return np.concatenate([base_dot, state[: self.dof] - self.goal])


# ============================================================================
# Rigid body (quadrotor) on SE(3)
# ============================================================================

def pack_state(
    x: NDArray[np.float64],
    v: NDArray[np.float64],
    R: NDArray[np.float64],
    Omega: NDArray[np.float64],
) -> NDArray[np.float64]:
    """Pack rigid-body components into a flat (18,) state vector."""
    return np.concatenate([
        np.asarray(x, dtype=np.float64).reshape(3),
        np.asarray(v, dtype=np.float64).reshape(3),
        np.asarray(R, dtype=np.float64).reshape(9),
        np.asarray(Omega, dtype=np.float64).reshape(3),
    ])


def unpack_state(
    state: NDArray[np.float64],
) -> Tuple[NDArray[np.float64], NDArray[np.float64], NDArray[np.float64], NDArray[np.float64]]:
    """
    Split a flat rigid-body state.

    Returns:
        Tuple of (x (3,), v (3,), R (3, 3), Omega (3,))
    """
    state = check_dim(state, RIGID_BODY_STATE_DIM, "rigid-body state")
    return state[0:3], state[3:6], state[6:15].reshape(3, 3), state[15:18]


def hover_state(position: NDArray[np.float64], R: NDArray[np.float64] = None) -> NDArray[np.float64]:
    """Rigid-body state at rest at ``position`` (identity attitude by default)."""
    if R is None:
        R = np.eye(3)
    return pack_state(position, np.zeros(3), R, np.zeros(3))


@dataclass(frozen=True)
class RigidBody(Dynamics):
    """
    Quadrotor rigid-body dynamics in Lee et al.'s frame convention.

    Dynamics:
        x_dot     = v
        v_dot     = g e3 - (f / m) R e3
        R_dot     = R hat(Omega)
        Omega_dot = J^{-1} (M - Omega × (J Omega))

    Control: [f, M1, M2, M3] (thrust magnitude [N], body moments [N·m]).
    The rotation block is integrated as-is; drift correction, if any, is
    the caller's choice.
    """

    state_dim: int = field(default=RIGID_BODY_STATE_DIM, init=False)
    control_dim: int = field(default=RIGID_BODY_CONTROL_DIM, init=False)

    def _derivative(self, state, control, time, params: RigidBodyParams):
        if not isinstance(params, RigidBodyParams):
            raise TypeError(f"RigidBody requires RigidBodyParams, got {type(params).__name__}")

        _, v, R, Omega = unpack_state(state)
        f = control[0]
        M = control[1:4]

        x_dot = v
        v_dot = params.g * E3 - (f / params.m) * (R @ E3)
        R_dot = R @ hat(Omega)

        # Euler's equation: M = J Omega_dot + Omega × (J Omega)
        gyroscopic = np.cross(Omega, params.J @ Omega)
        Omega_dot = params.J_inv @ (M - gyroscopic)

        return np.concatenate([x_dot, v_dot, R_dot.reshape(9), Omega_dot])


# ============================================================================
# Linearization
# ============================================================================

def linearize(
    dynamics: Dynamics,
    x0: NDArray[np.float64],
    u0: NDArray[np.float64],
    params: Any = None,
    t: float = 0.0,
    eps: float = 1e-6,
) -> Tuple[NDArray[np.float64], NDArray[np.float64]]:
    """
    Jacobians of the dynamics about an operating point.

    Central finite differences:
        A = df/dx |_(x0, u0),  B = df/du |_(x0, u0)

    Args:
        dynamics: System to linearize
        x0: Operating-point state, shape (n,)
        u0: Operating-point control, shape (m,)
        params: System parameters
        t: Time at which to evaluate
        eps: Perturbation size

    Returns:
        Tuple of (A (n, n), B (n, m))
    """
    x0 = check_dim(x0, dynamics.state_dim, "linearization state")
    u0 = check_dim(u0, dynamics.control_dim, "linearization control")
    n, m = dynamics.state_dim, dynamics.control_dim

    A = np.zeros((n, n))
    for i in range(n):
        dx = np.zeros(n)
        dx[i] = eps
        A[:, i] = (
            dynamics.derivative(x0 + dx, u0, t, params)
            - dynamics.derivative(x0 - dx, u0, t, params)
        ) / (2 * eps)

    B = np.zeros((n, m))
    for j in range(m):
        du = np.zeros(m)
        du[j] = eps
        B[:, j] = (
            dynamics.derivative(x0, u0 + du, t, params)
            - dynamics.derivative(x0, u0 - du, t, params)
        ) / (2 * eps)

    return A, B
