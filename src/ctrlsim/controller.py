"""
Controller interface.

A controller is a pure map (state, time, params) -> control.  It keeps
no memory between calls; anything that needs memory (e.g. an integral
of the tracking error) must live in the state vector instead.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

import numpy as np
from numpy.typing import NDArray

from ctrlsim.errors import DimensionMismatch
from ctrlsim.types import as_vector, check_dim, freeze


class Controller(ABC):
    """
    Base class for all controller variants.

    Subclasses implement ``_compute``.  ``compute`` rejects states of the
    wrong size with DimensionMismatch and checks the size of the output.
    """

    state_dim: int
    control_dim: int

    def compute(
        self,
        state: NDArray[np.float64],
        time: float,
        params: Any = None,
    ) -> NDArray[np.float64]:
        """
        Compute the control input for the current state.

        Args:
            state: Current state, shape (state_dim,)
            time: Current time [s]
            params: System parameter bundle (read-only)

        Returns:
            Control input, shape (control_dim,)
        """
        state = check_dim(state, self.state_dim, f"{type(self).__name__} state")
        u = as_vector(self._compute(state, time, params), "control")
        if u.shape[0] != self.control_dim:
            raise DimensionMismatch(f"{type(self).__name__} control", self.control_dim, u.shape[0])
        return u

    @abstractmethod
    def _compute(
        self,
        state: NDArray[np.float64],
        time: float,
        params: Any,
    ) -> NDArray[np.float64]:
        ...


@dataclass(frozen=True, eq=False)
class ConstantController(Controller):
    """
    Open-loop controller that always returns the same input.

    Args:
        value: Control value, shape (m,) or scalar
        state_dim: Size of the states it accepts
    """

    value: NDArray[np.float64]
    state_dim: int

    def __post_init__(self) -> None:
        object.__setattr__(self, "value", freeze(as_vector(self.value, "constant control")))

    @property
    def control_dim(self) -> int:
        return self.value.shape[0]

    def _compute(self, state, time, params):
        return self.value.copy()


def saturate(u: NDArray[np.float64], u_min=None, u_max=None) -> NDArray[np.float64]:
    """Element-wise clip of ``u``; ``None`` bounds are ignored."""
    if u_min is None and u_max is None:
        return u
    lo = -np.inf if u_min is None else u_min
    hi = np.inf if u_max is None else u_max
    return np.clip(u, lo, hi)
