"""
Linear-quadratic regulator.

The gain matrix K is designed offline from a linear(ized) model and a
quadratic cost, then applied as

    u = u_ref - K (x - x_goal)

``lqr_gain`` solves the continuous algebraic Riccati equation with scipy;
``LQRController.from_dynamics`` chains linearization and gain design.
"""

from dataclasses import dataclass
from typing import Any, Optional

import numpy as np
from numpy.typing import NDArray
from scipy.linalg import solve_continuous_are

from ctrlsim.controller import Controller, saturate
from ctrlsim.dynamics import Dynamics, linearize
from ctrlsim.errors import DimensionMismatch
from ctrlsim.types import as_vector, freeze


def lqr_gain(
    A: NDArray[np.float64],
    B: NDArray[np.float64],
    Q: NDArray[np.float64],
    R: NDArray[np.float64],
) -> NDArray[np.float64]:
    """
    Continuous-time infinite-horizon LQR gain.

    Minimizes ∫ (x'Qx + u'Ru) dt subject to x_dot = Ax + Bu.

    Args:
        A: State matrix, shape (n, n)
        B: Input matrix, shape (n, m)
        Q: State weight, shape (n, n), positive semi-definite
        R: Input weight, shape (m, m), positive definite

    Returns:
        Gain K, shape (m, n), such that u = -K x
    """
    A = np.atleast_2d(np.asarray(A, dtype=np.float64))
    B = np.asarray(B, dtype=np.float64)
    if B.ndim == 1:
        B = B.reshape(-1, 1)
    Q = np.atleast_2d(np.asarray(Q, dtype=np.float64))
    R = np.atleast_2d(np.asarray(R, dtype=np.float64))

    S = solve_continuous_are(A, B, Q, R)
    return np.linalg.solve(R, B.T @ S)


@dataclass(frozen=True, eq=False)
class LQRController(Controller):
    """
    State-feedback regulator about a goal state.

    Args:
        K: Feedback gain, shape (m, n)
        x_goal: Goal state, shape (n,)
        u_ref: Feedforward input at the goal, shape (m,) (default zeros)
        u_min: Optional lower control bound
        u_max: Optional upper control bound
    """

    K: NDArray[np.float64]
    x_goal: NDArray[np.float64]
    u_ref: Optional[NDArray[np.float64]] = None
    u_min: Optional[NDArray[np.float64]] = None
    u_max: Optional[NDArray[np.float64]] = None

    def __post_init__(self) -> None:
        K = freeze(np.atleast_2d(self.K))
        x_goal = freeze(as_vector(self.x_goal, "LQR goal"))
        if K.shape[1] != x_goal.shape[0]:
            raise DimensionMismatch("LQR gain columns", x_goal.shape[0], K.shape[1])
        if self.u_ref is None:
            u_ref = freeze(np.zeros(K.shape[0]))
        else:
            u_ref = freeze(as_vector(self.u_ref, "LQR u_ref"))
            if u_ref.shape[0] != K.shape[0]:
                raise DimensionMismatch("LQR u_ref", K.shape[0], u_ref.shape[0])
        object.__setattr__(self, "K", K)
        object.__setattr__(self, "x_goal", x_goal)
        object.__setattr__(self, "u_ref", u_ref)

    @property
    def state_dim(self) -> int:
        return self.K.shape[1]

    @property
    def control_dim(self) -> int:
        return self.K.shape[0]

    @classmethod
    def from_dynamics(
        cls,
        dynamics: Dynamics,
        x_goal: NDArray[np.float64],
        u_ref: NDArray[np.float64],
        Q: NDArray[np.float64],
        R: NDArray[np.float64],
        params: Any = None,
        **kwargs,
    ) -> "LQRController":
        """
        Design an LQR about (x_goal, u_ref) from the system's linearization.

        (x_goal, u_ref) should be an equilibrium of ``dynamics``.
        """
        A, B = linearize(dynamics, x_goal, u_ref, params)
        return cls(K=lqr_gain(A, B, Q, R), x_goal=x_goal, u_ref=u_ref, **kwargs)

    def _compute(self, state, time, params):
        u = self.u_ref - self.K @ (state - self.x_goal)
        return saturate(u, self.u_min, self.u_max)
