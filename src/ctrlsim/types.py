"""
Core data types for the simulation engine.

States and controls are flat float64 numpy arrays.  A Trajectory is the
append-only record of (time, state) samples produced by one run.
"""

from dataclasses import dataclass, field
from typing import Iterator, Tuple

import numpy as np
from numpy.typing import NDArray

from ctrlsim.errors import DimensionMismatch, InvalidTimeSpan, SimulationError


def as_vector(x, what: str = "vector") -> NDArray[np.float64]:
    """
    Coerce a scalar or sequence into a 1-D float64 array.

    Scalars become shape (1,).  Anything that is not one-dimensional
    after promotion is rejected rather than flattened.
    """
    arr = np.atleast_1d(np.asarray(x, dtype=np.float64))
    if arr.ndim != 1:
        raise DimensionMismatch(f"{what} (number of axes)", 1, arr.ndim)
    return arr


def check_dim(x: NDArray[np.float64], expected: int, what: str) -> NDArray[np.float64]:
    """Raise DimensionMismatch unless ``x`` has exactly ``expected`` entries."""
    x = as_vector(x, what)
    if x.shape[0] != expected:
        raise DimensionMismatch(what, expected, x.shape[0])
    return x


def freeze(arr) -> NDArray[np.float64]:
    """Return a read-only float64 copy of ``arr``."""
    out = np.array(arr, dtype=np.float64)
    out.flags.writeable = False
    return out


def _read_only(view: NDArray[np.float64]) -> NDArray[np.float64]:
    view.flags.writeable = False
    return view


@dataclass(frozen=True)
class TimeSpan:
    """
    Closed simulation interval [start, end].

    Attributes:
        start: Initial time [s]
        end: Final time [s], strictly greater than start
    """

    start: float
    end: float

    def __post_init__(self) -> None:
        if not (np.isfinite(self.start) and np.isfinite(self.end)):
            raise InvalidTimeSpan(f"time span bounds must be finite, got [{self.start}, {self.end}]")
        if self.start >= self.end:
            raise InvalidTimeSpan(f"time span start must be < end, got [{self.start}, {self.end}]")

    @property
    def duration(self) -> float:
        return self.end - self.start


@dataclass
class TrajPoint:
    """
    Desired reference at a given time (geometric controller input).

    Attributes:
        p: Desired position [m], shape (3,)
        v: Desired velocity [m/s], shape (3,)
        a: Desired acceleration [m/s²], shape (3,)
        yaw: Desired yaw angle [rad]
        yaw_rate: Desired yaw rate [rad/s]
        j: Desired jerk [m/s³], shape (3,)
        s: Desired snap [m/s⁴], shape (3,)
        yaw_accel: Desired yaw acceleration [rad/s²]

    Jerk, snap and yaw acceleration determine the desired body rate and
    its derivative in the geometric controller.
    """

    p: NDArray[np.float64]  # (3,)
    v: NDArray[np.float64]  # (3,)
    a: NDArray[np.float64]  # (3,)
    yaw: float = 0.0
    yaw_rate: float = 0.0
    j: NDArray[np.float64] = field(default_factory=lambda: np.zeros(3))
    s: NDArray[np.float64] = field(default_factory=lambda: np.zeros(3))
    yaw_accel: float = 0.0

    @staticmethod
    def hover(position: NDArray[np.float64], yaw: float = 0.0) -> "TrajPoint":
        """Create a hover reference at the given position."""
        return TrajPoint(
            p=np.array(position, dtype=np.float64),
            v=np.zeros(3),
            a=np.zeros(3),
            yaw=yaw,
            yaw_rate=0.0,
        )


@dataclass
class Trajectory:
    """
    Ordered (time, state) samples from one simulation run.

    Storage is pre-allocated and filled through ``record``; timestamps must
    be strictly increasing.  Call ``trim`` once the run is finished.

    Arrays:
        t: Sample times, shape (N,)
        x: Sample states, shape (N, n)
    """

    times: NDArray[np.float64]  # (capacity,)
    states: NDArray[np.float64]  # (capacity, n)
    _idx: int = field(default=0, repr=False)

    @staticmethod
    def allocate(n_samples: int, state_dim: int) -> "Trajectory":
        """Pre-allocate storage for ``n_samples`` states of size ``state_dim``."""
        return Trajectory(
            times=np.zeros(n_samples),
            states=np.zeros((n_samples, state_dim)),
            _idx=0,
        )

    @property
    def state_dim(self) -> int:
        return self.states.shape[1]

    @property
    def t(self) -> NDArray[np.float64]:
        """Recorded sample times, shape (N,). Read-only view."""
        return _read_only(self.times[: self._idx])

    @property
    def x(self) -> NDArray[np.float64]:
        """Recorded states, shape (N, n). Read-only view."""
        return _read_only(self.states[: self._idx])

    @property
    def final_time(self) -> float:
        if self._idx == 0:
            raise SimulationError("trajectory is empty")
        return float(self.times[self._idx - 1])

    @property
    def final_state(self) -> NDArray[np.float64]:
        if self._idx == 0:
            raise SimulationError("trajectory is empty")
        return self.states[self._idx - 1].copy()

    def record(self, t: float, state: NDArray[np.float64]) -> None:
        """Append one sample; ``t`` must exceed the previous timestamp."""
        state = check_dim(state, self.state_dim, "trajectory sample")
        i = self._idx
        if i > 0 and not t > self.times[i - 1]:
            raise SimulationError(
                f"trajectory timestamps must be strictly increasing: {t} after {self.times[i - 1]}"
            )
        if i >= self.times.shape[0]:
            # Grow geometrically if the caller under-estimated the sample count
            extra = max(1, self.times.shape[0])
            self.times = np.concatenate([self.times, np.zeros(extra)])
            self.states = np.concatenate([self.states, np.zeros((extra, self.state_dim))])
        self.times[i] = t
        self.states[i] = state
        self._idx += 1

    def trim(self) -> "Trajectory":
        """Return a copy sized to the recorded length."""
        n = self._idx
        return Trajectory(times=self.times[:n].copy(), states=self.states[:n].copy(), _idx=n)

    def __len__(self) -> int:
        return self._idx

    def __iter__(self) -> Iterator[Tuple[float, NDArray[np.float64]]]:
        for i in range(self._idx):
            yield float(self.times[i]), self.states[i].copy()
