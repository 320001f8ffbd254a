"""
Linear model-predictive controller.

The continuous model x_dot = A x + B u is discretized with a zero-order
hold at the controller sample time.  Over a horizon of N steps the cost

    Σ_{k=1..N-1} δx_k' Q δx_k + δx_N' Qf δx_N + Σ_{k=0..N-1} δu_k' R δu_k

(δx = x - x_goal, δu = u - u_ref) is condensed into a single quadratic in
the stacked input sequence.  Without constraints the optimum is linear
in δx_0, so the whole prediction/solve is precomputed at construction and
``compute`` only applies the first move of the optimal sequence, then
clips it to the optional input bounds.
"""

from dataclasses import dataclass, field
from typing import Optional, Tuple

import numpy as np
from numpy.typing import NDArray
from scipy.linalg import block_diag, expm, solve_discrete_are

from ctrlsim.controller import Controller, saturate
from ctrlsim.errors import DimensionMismatch
from ctrlsim.integrators import validate_step
from ctrlsim.types import as_vector, freeze


def discretize(
    A: NDArray[np.float64],
    B: NDArray[np.float64],
    dt: float,
) -> Tuple[NDArray[np.float64], NDArray[np.float64]]:
    """
    Zero-order-hold discretization via the matrix exponential.

    Returns:
        Tuple of (Ad (n, n), Bd (n, m))
    """
    n, m = B.shape
    M = np.zeros((n + m, n + m))
    M[:n, :n] = A
    M[:n, n:] = B
    Md = expm(M * dt)
    return Md[:n, :n], Md[:n, n:]


def condense(
    Ad: NDArray[np.float64],
    Bd: NDArray[np.float64],
    horizon: int,
) -> Tuple[NDArray[np.float64], NDArray[np.float64]]:
    """
    Stacked prediction matrices for X = Sx x0 + Su U.

    X = [x_1; ...; x_N] and U = [u_0; ...; u_{N-1}].

    Returns:
        Tuple of (Sx (N n, n), Su (N n, N m))
    """
    n, m = Bd.shape
    Sx = np.zeros((horizon * n, n))
    Su = np.zeros((horizon * n, horizon * m))

    Ak = np.eye(n)
    powers = []
    for k in range(horizon):
        powers.append(Ak)
        Ak = Ad @ Ak
        Sx[k * n:(k + 1) * n] = Ak

    for k in range(horizon):
        for j in range(k + 1):
            Su[k * n:(k + 1) * n, j * m:(j + 1) * m] = powers[k - j] @ Bd

    return Sx, Su


def condensed_qp(A, B, Q, R, Qf, horizon, dt):
    """
    Hessian and linear term of the condensed MPC cost.

    J(U) = U' H U + 2 dx0' F' U + const, so the optimum is U* = -H^{-1} F dx0.

    Returns:
        Tuple of (H (N m, N m), F (N m, n))
    """
    Ad, Bd = discretize(A, B, dt)
    Sx, Su = condense(Ad, Bd, horizon)
    Q_bar = block_diag(*([Q] * (horizon - 1) + [Qf]))
    R_bar = block_diag(*([R] * horizon))
    H = Su.T @ Q_bar @ Su + R_bar
    F = Su.T @ Q_bar @ Sx
    return H, F


@dataclass(frozen=True, eq=False)
class MPCController(Controller):
    """
    Unconstrained receding-horizon MPC with input clipping.

    Args:
        A: Continuous state matrix, shape (n, n)
        B: Continuous input matrix, shape (n, m)
        Q: Stage state weight, shape (n, n)
        R: Stage input weight, shape (m, m)
        x_goal: Goal state, shape (n,)
        horizon: Number of prediction steps N
        dt: Prediction sample time [s]
        Qf: Terminal weight (default: discrete ARE solution, i.e. the
            infinite-horizon cost-to-go)
        u_ref: Input at the goal (default zeros)
        u_min: Optional lower input bound, applied to the first move
        u_max: Optional upper input bound, applied to the first move
    """

    A: NDArray[np.float64]
    B: NDArray[np.float64]
    Q: NDArray[np.float64]
    R: NDArray[np.float64]
    x_goal: NDArray[np.float64]
    horizon: int = 20
    dt: float = 0.1
    Qf: Optional[NDArray[np.float64]] = None
    u_ref: Optional[NDArray[np.float64]] = None
    u_min: Optional[NDArray[np.float64]] = None
    u_max: Optional[NDArray[np.float64]] = None
    gain: NDArray[np.float64] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        A = np.atleast_2d(np.asarray(self.A, dtype=np.float64))
        B = np.asarray(self.B, dtype=np.float64)
        if B.ndim == 1:
            B = B.reshape(-1, 1)
        n, m = B.shape
        if A.shape != (n, n):
            raise DimensionMismatch("MPC A rows", n, A.shape[0])
        Q = np.atleast_2d(np.asarray(self.Q, dtype=np.float64))
        R = np.atleast_2d(np.asarray(self.R, dtype=np.float64))
        x_goal = as_vector(self.x_goal, "MPC goal")
        if x_goal.shape[0] != n:
            raise DimensionMismatch("MPC goal", n, x_goal.shape[0])
        u_ref = np.zeros(m) if self.u_ref is None else as_vector(self.u_ref, "MPC u_ref")
        if u_ref.shape[0] != m:
            raise DimensionMismatch("MPC u_ref", m, u_ref.shape[0])
        if self.horizon < 1:
            raise ValueError(f"MPC horizon must be >= 1, got {self.horizon}")
        dt = validate_step(self.dt)

        if self.Qf is None:
            Ad, Bd = discretize(A, B, dt)
            Qf = solve_discrete_are(Ad, Bd, Q, R)
        else:
            Qf = np.atleast_2d(np.asarray(self.Qf, dtype=np.float64))

        H, F = condensed_qp(A, B, Q, R, Qf, self.horizon, dt)
        U_gain = np.linalg.solve(H, F)

        for name, value in (("A", A), ("B", B), ("Q", Q), ("R", R), ("Qf", Qf),
                            ("x_goal", x_goal), ("u_ref", u_ref)):
            object.__setattr__(self, name, freeze(value))
        object.__setattr__(self, "dt", dt)
        # Only the first move is ever applied
        object.__setattr__(self, "gain", freeze(U_gain[:m]))

    @property
    def state_dim(self) -> int:
        return self.A.shape[0]

    @property
    def control_dim(self) -> int:
        return self.B.shape[1]

    def plan(self, state: NDArray[np.float64]) -> NDArray[np.float64]:
        """
        Full optimal (unclipped) input sequence from ``state``.

        Returns:
            Input sequence, shape (horizon, m)
        """
        state = as_vector(state, "MPC state")
        if state.shape[0] != self.state_dim:
            raise DimensionMismatch("MPC state", self.state_dim, state.shape[0])
        H, F = condensed_qp(self.A, self.B, self.Q, self.R, self.Qf, self.horizon, self.dt)
        dU = -np.linalg.solve(H, F @ (state - self.x_goal))
        return self.u_ref + dU.reshape(self.horizon, self.control_dim)

    def _compute(self, state, time, params):
        u = self.u_ref - self.gain @ (state - self.x_goal)
        return saturate(u, self.u_min, self.u_max)
