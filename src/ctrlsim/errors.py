"""
Exception hierarchy for the simulation engine.

All errors raised by ctrlsim derive from ``SimulationError`` so callers
can catch the whole family at once.  None of them are caught inside the
engine: they propagate straight to whoever called ``run``.
"""

from typing import Optional


class SimulationError(Exception):
    """Base class for all simulation errors."""


class DimensionMismatch(SimulationError, ValueError):
    """A state, control or derivative vector has the wrong size."""

    def __init__(self, what: str, expected: int, actual: int):
        self.what = what
        self.expected = expected
        self.actual = actual
        super().__init__(f"{what}: expected dimension {expected}, got {actual}")


class InvalidTimeSpan(SimulationError, ValueError):
    """Time span with start >= end (or non-finite bounds)."""


class InvalidStep(SimulationError, ValueError):
    """Step size that is non-positive, non-finite, or longer than the span."""


class NumericalDivergence(SimulationError, ArithmeticError):
    """
    Non-finite values appeared in the state or control.

    Attributes:
        time: Simulation time [s] at which divergence was detected
        where: Which quantity went non-finite ("state" or "control")
    """

    def __init__(self, where: str, time: float, detail: Optional[str] = None):
        self.where = where
        self.time = time
        msg = f"non-finite {where} detected at t={time:.6g}"
        if detail:
            msg += f" ({detail})"
        super().__init__(msg)
