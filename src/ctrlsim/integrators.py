"""
Fixed-step explicit integrators.

An integrator owns the pair (time, state) and moves it forward one step
at a time via ``advance``.  The vector field has signature
``f(t, x) -> x_dot``; it may be bound at construction or supplied per
step (the simulation loop does the latter, since control is held
constant only over a single step).

No error handling happens here: non-finite arithmetic propagates to the
caller untouched.
"""

from abc import ABC, abstractmethod
from typing import Callable, Dict, Optional, Tuple, Type

import numpy as np
from numpy.typing import NDArray

from ctrlsim.errors import DimensionMismatch, InvalidStep, SimulationError
from ctrlsim.types import as_vector


VectorField = Callable[[float, NDArray[np.float64]], NDArray[np.float64]]


def validate_step(dt: float) -> float:
    """Return ``dt`` as float, or raise InvalidStep if it is not finite and positive."""
    dt = float(dt)
    if not np.isfinite(dt) or dt <= 0.0:
        raise InvalidStep(f"step size must be finite and > 0, got {dt}")
    return dt


class Integrator(ABC):
    """
    Base class for one-step integration schemes.

    Args:
        x0: Initial state, shape (n,)
        t0: Initial time [s]
        f: Vector field f(t, x) -> x_dot (optional; may be given per step)
    """

    name: str = ""
    order: int = 0

    def __init__(
        self,
        x0: NDArray[np.float64],
        t0: float = 0.0,
        f: Optional[VectorField] = None,
    ):
        self.f = f
        self._time = float(t0)
        self._state = as_vector(x0, "initial state").copy()

    @property
    def time(self) -> float:
        return self._time

    @property
    def state(self) -> NDArray[np.float64]:
        return self._state.copy()

    def reset(self, x: NDArray[np.float64], t: Optional[float] = None) -> None:
        """Replace the current state (and optionally the clock)."""
        x = as_vector(x, "reset state")
        if x.shape != self._state.shape:
            raise DimensionMismatch("reset state", self._state.shape[0], x.shape[0])
        self._state = x.copy()
        if t is not None:
            self._time = float(t)

    def advance(
        self,
        dt: float,
        f: Optional[VectorField] = None,
    ) -> Tuple[float, NDArray[np.float64]]:
        """
        Advance by one step of size ``dt``.

        Args:
            dt: Step size [s], must be > 0
            f: Vector field for this step (defaults to the bound one)

        Returns:
            Tuple of (new time, new state)
        """
        dt = validate_step(dt)
        return self._advance(dt, self._time + dt, f)

    def advance_to(
        self,
        t_next: float,
        f: Optional[VectorField] = None,
    ) -> Tuple[float, NDArray[np.float64]]:
        """
        Advance to exactly ``t_next`` in a single step.

        Same as ``advance(t_next - time)`` but lands on ``t_next`` without
        floating-point accumulation in the clock.
        """
        dt = validate_step(t_next - self._time)
        return self._advance(dt, float(t_next), f)

    def _advance(self, dt, t_next, f):
        vf = f if f is not None else self.f
        if vf is None:
            raise SimulationError("no vector field bound to integrator")
        x_next = self.step(vf, self._time, self._state, dt)
        if x_next.shape != self._state.shape:
            raise DimensionMismatch("integrator step result", self._state.shape[0], x_next.shape[0])
        self._time = t_next
        self._state = x_next
        return self._time, x_next.copy()

    @staticmethod
    @abstractmethod
    def step(
        f: VectorField,
        t: float,
        x: NDArray[np.float64],
        dt: float,
    ) -> NDArray[np.float64]:
        """Pure single step: return x(t + dt) given x(t)."""


class ForwardEuler(Integrator):
    """
    Forward Euler integration.

    x' = x + dt * f(t, x)

    First-order accurate.  Cheap, but only conditionally stable; use
    RungeKutta4 for anything stiff or oscillatory.
    """

    name = "euler"
    order = 1

    @staticmethod
    def step(f, t, x, dt):
        return x + dt * as_vector(f(t, x))


class RungeKutta4(Integrator):
    """
    Classical 4th-order Runge-Kutta integration.

    k1 = f(t,        x)
    k2 = f(t + dt/2, x + dt/2 * k1)
    k3 = f(t + dt/2, x + dt/2 * k2)
    k4 = f(t + dt,   x + dt * k3)
    x' = x + dt/6 * (k1 + 2 k2 + 2 k3 + k4)
    """

    name = "rk4"
    order = 4

    @staticmethod
    def step(f, t, x, dt):
        k1 = as_vector(f(t, x))
        k2 = as_vector(f(t + 0.5 * dt, x + 0.5 * dt * k1))
        k3 = as_vector(f(t + 0.5 * dt, x + 0.5 * dt * k2))
        k4 = as_vector(f(t + dt, x + dt * k3))
        return x + (dt / 6.0) * (k1 + 2.0 * k2 + 2.0 * k3 + k4)


INTEGRATORS: Dict[str, Type[Integrator]] = {
    ForwardEuler.name: ForwardEuler,
    RungeKutta4.name: RungeKutta4,
}


def get_integrator(name) -> Type[Integrator]:
    """
    Resolve an integrator by name ("euler", "rk4") or pass a class through.

    Raises:
        KeyError: If the name is unknown
    """
    if isinstance(name, type) and issubclass(name, Integrator):
        return name
    try:
        return INTEGRATORS[name]
    except KeyError:
        raise KeyError(f"unknown integrator {name!r}; choose from {sorted(INTEGRATORS)}") from None
