"""
Physical parameter bundles.

Parameters are created once per run and passed unchanged into every
controller and dynamics call.  They are frozen dataclasses whose array
fields are read-only, so nothing downstream can mutate them mid-run.

Default rigid-body values follow Lee et al. (2010), Section V.
"""

from dataclasses import dataclass, field

import numpy as np
from numpy.typing import NDArray

from ctrlsim.types import freeze


@dataclass(frozen=True)
class DoubleIntegratorParams:
    """
    Parameters for the double integrator x'' = u + d.

    Attributes:
        disturbance: Constant additive acceleration d [m/s²] (0 = off)
    """

    disturbance: float = 0.0


@dataclass(frozen=True, eq=False)
class RigidBodyParams:
    """
    Rigid-body quadrotor parameters.

    Physical Parameters:
        m: Mass [kg]
        J: Inertia matrix [kg·m²], shape (3, 3)
        g: Gravitational acceleration [m/s²]
    """

    m: float = 4.34  # kg
    J: NDArray[np.float64] = field(
        default_factory=lambda: np.diag([0.0820, 0.0845, 0.1377])
    )  # kg·m²
    g: float = 9.81  # m/s²

    def __post_init__(self) -> None:
        """Freeze array fields and pre-compute the inertia inverse."""
        J = freeze(self.J)
        if J.shape != (3, 3):
            raise ValueError(f"inertia must be 3x3, got shape {J.shape}")
        if self.m <= 0:
            raise ValueError(f"mass must be positive, got {self.m}")
        object.__setattr__(self, "J", J)
        object.__setattr__(self, "_J_inv", freeze(np.linalg.inv(J)))

    @property
    def J_inv(self) -> NDArray[np.float64]:
        """Inverse of inertia matrix (cached)."""
        return self._J_inv

    @property
    def hover_thrust(self) -> float:
        """Thrust required for hover."""
        return self.m * self.g


def default_params() -> RigidBodyParams:
    """
    Create default parameters for the quadrotor.

    Mass and inertia match the numerical example in Lee et al. (2010).
    """
    return RigidBodyParams()
