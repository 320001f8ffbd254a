"""
PID controller for n-axis second-order systems.

    u = -k1 * (x - xg) - k2 * xdot - k3 * z,    z = ∫ (x - xg) dt

The integral z is part of the state, not of the controller: with k3 != 0
the controller expects the augmented state [x, xdot, z] and ``augment``
wraps the plant so the integrator accumulates z alongside everything else.
With k3 == 0 this is a plain PD controller on [x, xdot].
"""

from dataclasses import dataclass
from typing import Optional

import numpy as np
from numpy.typing import NDArray

from ctrlsim.controller import Controller, saturate
from ctrlsim.dynamics import Dynamics, IntegralAugmentedDynamics
from ctrlsim.errors import DimensionMismatch
from ctrlsim.types import as_vector, freeze


@dataclass(frozen=True, eq=False)
class PIDController(Controller):
    """
    PID/PD regulation to a fixed goal.

    Args:
        goal: Goal position xg, shape (n,) or scalar
        k1: Proportional gain(s)
        k2: Derivative (velocity) gain(s)
        k3: Integral gain(s); 0 disables the integral and its state block
        u_min: Optional lower control bound
        u_max: Optional upper control bound
    """

    goal: NDArray[np.float64]
    k1: NDArray[np.float64] = 1.0
    k2: NDArray[np.float64] = 1.0
    k3: NDArray[np.float64] = 0.0
    u_min: Optional[float] = None
    u_max: Optional[float] = None

    def __post_init__(self) -> None:
        goal = freeze(as_vector(self.goal, "PID goal"))
        n = goal.shape[0]
        object.__setattr__(self, "goal", goal)
        for name in ("k1", "k2", "k3"):
            k = as_vector(getattr(self, name), f"PID {name}")
            if k.shape[0] not in (1, n):
                raise DimensionMismatch(f"PID gain {name}", n, k.shape[0])
            object.__setattr__(self, name, freeze(np.broadcast_to(k, (n,))))

    @property
    def dof(self) -> int:
        return self.goal.shape[0]

    @property
    def has_integral(self) -> bool:
        return bool(np.any(self.k3 != 0.0))

    @property
    def state_dim(self) -> int:
        return (3 if self.has_integral else 2) * self.dof

    @property
    def control_dim(self) -> int:
        return self.dof

    def augment(self, dynamics: Dynamics) -> Dynamics:
        """
        Plant to simulate with this controller.

        Returns the plant itself for PD, or the plant extended with an
        integral-error block when k3 != 0.
        """
        if not self.has_integral:
            return dynamics
        return IntegralAugmentedDynamics(base=dynamics, goal=self.goal)

    def initial_state(self, x0: NDArray[np.float64]) -> NDArray[np.float64]:
        """Extend a plant initial state with a zero integral, if needed."""
        x0 = as_vector(x0, "PID initial state")
        if not self.has_integral:
            return x0.copy()
        return np.concatenate([x0, np.zeros(self.dof)])

    def _compute(self, state, time, params):
        n = self.dof
        x = state[:n]
        xdot = state[n:2 * n]

        u = -self.k1 * (x - self.goal) - self.k2 * xdot
        if self.has_integral:
            z = state[2 * n:3 * n]
            u = u - self.k3 * z

        return saturate(u, self.u_min, self.u_max)
