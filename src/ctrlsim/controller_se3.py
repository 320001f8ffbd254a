"""
Geometric SE(3) tracking controller for quadrotor.

Implements the controller from:
Lee, T., Leok, M., & McClamroch, N. H. (2010).
"Geometric Tracking Control of a Quadrotor UAV on SE(3)"

The controller computes thrust and body moments to track a
desired trajectory (position, velocity, acceleration, yaw).
Frame convention matches the paper: e3 points down, thrust acts
along -R e3.

The desired attitude R_d moves whenever the commanded force does, so
its body rate Omega_d = vee(R_d^T dR_d/dt) and the derivative of that
rate are computed in closed form from the reference jerk and snap and
the model's predicted acceleration.
"""

from dataclasses import dataclass
from typing import Callable, Optional, Tuple

import numpy as np
from numpy.typing import NDArray

from ctrlsim.controller import Controller
from ctrlsim.dynamics import RIGID_BODY_CONTROL_DIM, RIGID_BODY_STATE_DIM, unpack_state
from ctrlsim.math3d import E3, hat, rot_z, safe_normalize, vee
from ctrlsim.params import RigidBodyParams
from ctrlsim.types import TrajPoint, as_vector, freeze


@dataclass
class ControllerState:
    """
    Intermediate quantities of one controller evaluation.

    Used for inspection and testing.
    """

    e_x: NDArray[np.float64]  # Position error
    e_v: NDArray[np.float64]  # Velocity error
    e_R: NDArray[np.float64]  # Attitude error (vee of skew part)
    e_Omega: NDArray[np.float64]  # Angular velocity error
    R_d: NDArray[np.float64]  # Desired rotation matrix
    Omega_d: NDArray[np.float64]  # Desired body rate
    Omega_d_dot: NDArray[np.float64]  # Desired body angular acceleration
    A: NDArray[np.float64]  # Commanded force vector
    f: float  # Thrust magnitude [N]
    M: NDArray[np.float64]  # Body moments [N·m]


def compute_desired_rotation(
    A: NDArray[np.float64],
    yaw: float,
) -> NDArray[np.float64]:
    """
    Compute desired rotation matrix from commanded force and yaw.

    The desired body 3-axis points along -A (thrust acts along -b3).
    The desired body 1-axis is the projection of the yaw heading
    b1c = [cos(yaw), sin(yaw), 0] onto the plane normal to b3d.

    Args:
        A: Commanded force vector, shape (3,)
        yaw: Desired yaw angle [rad]

    Returns:
        Desired rotation matrix R_d = [b1d | b2d | b3d], shape (3, 3)
    """
    # If A vanishes (free fall commanded), keep a level attitude
    b3d = safe_normalize(-A, fallback=E3)

    b1c = np.array([np.cos(yaw), np.sin(yaw), 0.0])

    b2d_raw = np.cross(b3d, b1c)
    if np.linalg.norm(b2d_raw) < 1e-6:
        # Heading parallel to thrust axis; use the perpendicular heading
        b1c_alt = np.array([-np.sin(yaw), np.cos(yaw), 0.0])
        b2d_raw = np.cross(b3d, b1c_alt)
    b2d = safe_normalize(b2d_raw, fallback=np.array([0.0, 1.0, 0.0]))

    b1d = np.cross(b2d, b3d)

    return np.column_stack([b1d, b2d, b3d])


def _unit_with_derivatives(
    w: NDArray[np.float64],
    w_dot: NDArray[np.float64],
    w_ddot: NDArray[np.float64],
) -> Tuple[NDArray[np.float64], NDArray[np.float64], NDArray[np.float64]]:
    """u = w / |w| with its first two time derivatives."""
    n = np.linalg.norm(w)
    u = w / n
    n_dot = np.dot(u, w_dot)
    u_dot = (w_dot - n_dot * u) / n
    n_ddot = np.dot(u_dot, w_dot) + np.dot(u, w_ddot)
    u_ddot = (w_ddot - n_ddot * u - 2.0 * n_dot * u_dot) / n
    return u, u_dot, u_ddot


def desired_attitude(
    A: NDArray[np.float64],
    A_dot: NDArray[np.float64],
    A_ddot: NDArray[np.float64],
    yaw: float,
    yaw_rate: float = 0.0,
    yaw_accel: float = 0.0,
) -> Tuple[NDArray[np.float64], NDArray[np.float64], NDArray[np.float64]]:
    """
    Desired attitude together with its body rate and angular acceleration.

    R_d is built exactly as in ``compute_desired_rotation``; differentiating
    the construction column by column gives dR_d/dt and d²R_d/dt², hence

        Omega_d     = vee(R_d^T dR_d/dt)
        Omega_d_dot = vee(R_d^T d²R_d/dt² - hat(Omega_d)²)

    Args:
        A, A_dot, A_ddot: Commanded force vector and its time derivatives
        yaw, yaw_rate, yaw_accel: Desired heading and its derivatives

    Returns:
        Tuple of (R_d (3, 3), Omega_d (3,), Omega_d_dot (3,))
    """
    R_d = compute_desired_rotation(A, yaw)
    if np.linalg.norm(A) < 1e-6:
        return R_d, np.zeros(3), np.zeros(3)

    b3, b3_dot, b3_ddot = _unit_with_derivatives(-A, -A_dot, -A_ddot)

    heading = yaw
    if np.linalg.norm(np.cross(b3, [np.cos(yaw), np.sin(yaw), 0.0])) < 1e-6:
        heading = yaw + 0.5 * np.pi
    h = np.array([np.cos(heading), np.sin(heading), 0.0])
    h_perp = np.array([-np.sin(heading), np.cos(heading), 0.0])
    h_dot = yaw_rate * h_perp
    h_ddot = yaw_accel * h_perp - yaw_rate**2 * h

    c = np.cross(b3, h)
    c_dot = np.cross(b3_dot, h) + np.cross(b3, h_dot)
    c_ddot = np.cross(b3_ddot, h) + 2.0 * np.cross(b3_dot, h_dot) + np.cross(b3, h_ddot)
    b2, b2_dot, b2_ddot = _unit_with_derivatives(c, c_dot, c_ddot)

    b1_dot = np.cross(b2_dot, b3) + np.cross(b2, b3_dot)
    b1_ddot = np.cross(b2_ddot, b3) + 2.0 * np.cross(b2_dot, b3_dot) + np.cross(b2, b3_ddot)

    R_d_dot = np.column_stack([b1_dot, b2_dot, b3_dot])
    R_d_ddot = np.column_stack([b1_ddot, b2_ddot, b3_ddot])

    Omega_d = vee(R_d.T @ R_d_dot)
    Omega_hat = hat(Omega_d)
    Omega_d_dot = vee(R_d.T @ R_d_ddot - Omega_hat @ Omega_hat)
    return R_d, Omega_d, Omega_d_dot


def attitude_error(
    R: NDArray[np.float64],
    R_d: NDArray[np.float64],
) -> NDArray[np.float64]:
    """
    Attitude error on SO(3).

        e_R = 0.5 * vee(R_d^T R - R^T R_d)

    Zero when R = R_d.

    Args:
        R: Current rotation matrix, shape (3, 3)
        R_d: Desired rotation matrix, shape (3, 3)

    Returns:
        Attitude error vector, shape (3,)
    """
    return 0.5 * vee(R_d.T @ R - R.T @ R_d)


def angular_velocity_error(
    Omega: NDArray[np.float64],
    Omega_d: NDArray[np.float64],
    R: NDArray[np.float64],
    R_d: NDArray[np.float64],
) -> NDArray[np.float64]:
    """
    Angular velocity error expressed in the current body frame.

        e_Omega = Omega - R^T R_d Omega_d
    """
    return Omega - R.T @ R_d @ Omega_d


def attitude_moment(
    R: NDArray[np.float64],
    Omega: NDArray[np.float64],
    R_d: NDArray[np.float64],
    Omega_d: NDArray[np.float64],
    Omega_d_dot: NDArray[np.float64],
    J: NDArray[np.float64],
    kR: NDArray[np.float64],
    kOmega: NDArray[np.float64],
) -> Tuple[NDArray[np.float64], NDArray[np.float64], NDArray[np.float64]]:
    """
    SO(3) tracking moment.

        M = -kR e_R - kOmega e_Omega + Omega × J Omega
            - J (hat(Omega) R^T R_d Omega_d - R^T R_d Omega_d_dot)

    Returns:
        Tuple of (e_R, e_Omega, M)
    """
    e_R = attitude_error(R, R_d)
    e_Omega = angular_velocity_error(Omega, Omega_d, R, R_d)
    RtRd = R.T @ R_d
    M = (
        -kR * e_R
        - kOmega * e_Omega
        + np.cross(Omega, J @ Omega)
        - J @ (hat(Omega) @ RtRd @ Omega_d - RtRd @ Omega_d_dot)
    )
    return e_R, e_Omega, M


def _require_rigid_body(controller: Controller, params) -> None:
    if not isinstance(params, RigidBodyParams):
        raise TypeError(f"{type(controller).__name__} requires RigidBodyParams, got {type(params).__name__}")


@dataclass(frozen=True, eq=False)
class GeometricController(Controller):
    """
    Lee et al. geometric tracking controller.

    Args:
        reference: Desired trajectory, t -> TrajPoint
        kx: Position gain(s)
        kv: Velocity gain(s)
        kR: Attitude gain(s)
        kOmega: Angular velocity gain(s)
        thrust_max: Optional upper thrust bound [N] (thrust is also kept >= 0
            when set)
        moment_max: Optional per-axis moment bound [N·m]

    Default gains are the ones from the paper's numerical example
    (kx = 16 m, kv = 5.6 m with m = 4.34 kg).
    """

    reference: Callable[[float], TrajPoint]
    kx: NDArray[np.float64] = 16.0 * 4.34
    kv: NDArray[np.float64] = 5.6 * 4.34
    kR: NDArray[np.float64] = 8.81
    kOmega: NDArray[np.float64] = 2.54
    thrust_max: Optional[float] = None
    moment_max: Optional[NDArray[np.float64]] = None

    state_dim = RIGID_BODY_STATE_DIM
    control_dim = RIGID_BODY_CONTROL_DIM

    def __post_init__(self) -> None:
        for name in ("kx", "kv", "kR", "kOmega"):
            k = as_vector(getattr(self, name), f"gain {name}")
            object.__setattr__(self, name, freeze(np.broadcast_to(k, (3,))))

    def errors(
        self,
        state: NDArray[np.float64],
        time: float,
        params: RigidBodyParams,
    ) -> ControllerState:
        """Evaluate the control law and return every intermediate term."""
        _require_rigid_body(self, params)

        x, v, R, Omega = unpack_state(state)
        traj = self.reference(time)

        m = params.m
        J = params.J

        # =====================================================================
        # Position control
        # =====================================================================

        e_x = x - traj.p
        e_v = v - traj.v

        # A = -kx e_x - kv e_v - m g e3 + m a_d
        A = -self.kx * e_x - self.kv * e_v - m * params.g * E3 + m * traj.a

        # Thrust is the projection of -A onto the current thrust axis
        b3 = R @ E3
        f = -float(np.dot(A, b3))
        clipped = False
        if self.thrust_max is not None:
            f_sat = float(np.clip(f, 0.0, self.thrust_max))
            clipped = f_sat != f
            f = f_sat

        # =====================================================================
        # Derivatives of A along the closed loop
        # =====================================================================

        # Acceleration error predicted by the rigid-body model
        e_a = (m * params.g * E3 - f * b3) / m - traj.a
        A_dot = -self.kx * e_v - self.kv * e_a + m * traj.j

        b3_dot = R @ np.cross(Omega, E3)
        f_dot = 0.0 if clipped else -float(np.dot(A_dot, b3) + np.dot(A, b3_dot))
        e_j = -(f_dot * b3 + f * b3_dot) / m - traj.j
        A_ddot = -self.kx * e_a - self.kv * e_j + m * traj.s

        # =====================================================================
        # Attitude control
        # =====================================================================

        R_d, Omega_d, Omega_d_dot = desired_attitude(
            A, A_dot, A_ddot, traj.yaw, traj.yaw_rate, traj.yaw_accel
        )
        e_R, e_Omega, M = attitude_moment(
            R, Omega, R_d, Omega_d, Omega_d_dot, J, self.kR, self.kOmega
        )

        if self.moment_max is not None:
            M = np.clip(M, -np.asarray(self.moment_max), np.asarray(self.moment_max))

        return ControllerState(
            e_x=e_x,
            e_v=e_v,
            e_R=e_R,
            e_Omega=e_Omega,
            R_d=R_d,
            Omega_d=Omega_d,
            Omega_d_dot=Omega_d_dot,
            A=A,
            f=f,
            M=M,
        )

    def _compute(self, state, time, params):
        cs = self.errors(state, time, params)
        return np.concatenate([[cs.f], cs.M])


@dataclass(frozen=True, eq=False)
class AttitudeRecoveryController(Controller):
    """
    Two-phase controller for starts far from hover, such as an inverted body.

    Before ``recovery_time`` only the attitude is controlled: the target is
    level at the reference yaw and thrust is cut, since thrust from an
    inverted body would push it toward the ground.  From ``recovery_time``
    on, ``tracker`` takes over position tracking.

    Args:
        tracker: Geometric controller used after recovery (its reference and
            attitude gains are also used during recovery)
        recovery_time: Switch time [s]
    """

    tracker: GeometricController
    recovery_time: float = 3.0

    state_dim = RIGID_BODY_STATE_DIM
    control_dim = RIGID_BODY_CONTROL_DIM

    def _compute(self, state, time, params):
        if time >= self.recovery_time:
            return self.tracker._compute(state, time, params)
        _require_rigid_body(self, params)

        _, _, R, Omega = unpack_state(state)
        traj = self.tracker.reference(time)

        # Level attitude: Omega_d is a pure yaw rate about b3d = e3
        R_d = rot_z(traj.yaw)
        Omega_d = np.array([0.0, 0.0, traj.yaw_rate])
        Omega_d_dot = np.array([0.0, 0.0, traj.yaw_accel])
        _, _, M = attitude_moment(
            R, Omega, R_d, Omega_d, Omega_d_dot, params.J, self.tracker.kR, self.tracker.kOmega
        )
        if self.tracker.moment_max is not None:
            bound = np.asarray(self.tracker.moment_max)
            M = np.clip(M, -bound, bound)
        return np.concatenate([[0.0], M])
