"""
3D math utilities for rotation matrices.

Rotation convention: R rotates vectors from body to world frame.
World frame follows Lee et al.: e3 points down, gravity is +g * e3.
"""

import numpy as np
from numpy.typing import NDArray


E3 = np.array([0.0, 0.0, 1.0])
E3.flags.writeable = False


def hat(v: NDArray[np.float64]) -> NDArray[np.float64]:
    """
    Compute the skew-symmetric (hat) matrix of a 3D vector.

    hat(v) @ u = v × u (cross product)

    Args:
        v: 3D vector, shape (3,)

    Returns:
        Skew-symmetric matrix, shape (3, 3)
    """
    return np.array([
        [0.0, -v[2], v[1]],
        [v[2], 0.0, -v[0]],
        [-v[1], v[0], 0.0],
    ])


def vee(M: NDArray[np.float64]) -> NDArray[np.float64]:
    """
    Extract the vector from a skew-symmetric matrix (inverse of hat).

    Args:
        M: Skew-symmetric matrix, shape (3, 3)

    Returns:
        3D vector, shape (3,)
    """
    return np.array([M[2, 1], M[0, 2], M[1, 0]])


def safe_normalize(v: NDArray[np.float64], fallback: NDArray[np.float64]) -> NDArray[np.float64]:
    """
    Safely normalize a vector, returning fallback if near-zero.

    Args:
        v: Vector to normalize, shape (3,)
        fallback: Fallback unit vector if v is near-zero, shape (3,)

    Returns:
        Normalized vector or fallback, shape (3,)
    """
    norm = np.linalg.norm(v)
    if norm < 1e-6:
        return fallback
    return v / norm


def rot_z(yaw: float) -> NDArray[np.float64]:
    """Rotation about e3 by ``yaw`` radians."""
    c, s = np.cos(yaw), np.sin(yaw)
    return np.array([
        [c, -s, 0.0],
        [s, c, 0.0],
        [0.0, 0.0, 1.0],
    ])


def axis_angle_to_R(axis: NDArray[np.float64], angle: float) -> NDArray[np.float64]:
    """
    Rodrigues' formula: rotation of ``angle`` radians about ``axis``.

    Args:
        axis: Rotation axis (need not be unit length), shape (3,)
        angle: Rotation angle [rad]

    Returns:
        Rotation matrix, shape (3, 3)
    """
    axis = np.asarray(axis, dtype=np.float64)
    norm = np.linalg.norm(axis)
    if norm < 1e-12:
        return np.eye(3)
    K = hat(axis / norm)
    return np.eye(3) + np.sin(angle) * K + (1.0 - np.cos(angle)) * (K @ K)


def is_rotation(R: NDArray[np.float64], atol: float = 1e-9) -> bool:
    """True if R is orthonormal with determinant +1 (within atol)."""
    R = np.asarray(R, dtype=np.float64)
    if R.shape != (3, 3):
        return False
    return bool(
        np.allclose(R.T @ R, np.eye(3), atol=atol)
        and abs(np.linalg.det(R) - 1.0) < atol
    )


def orthonormality_error(R: NDArray[np.float64]) -> float:
    """Frobenius norm of R^T R - I, a measure of integration drift."""
    return float(np.linalg.norm(R.T @ R - np.eye(3)))


def orthonormalize(R: NDArray[np.float64]) -> NDArray[np.float64]:
    """
    Project a near-rotation matrix back onto SO(3).

    Uses the SVD polar decomposition, which gives the closest rotation in
    the Frobenius norm.  Never applied implicitly by the dynamics; the
    simulation loop calls it only when drift correction is requested.
    """
    U, _, Vt = np.linalg.svd(R)
    D = np.diag([1.0, 1.0, np.sign(np.linalg.det(U @ Vt))])
    return U @ D @ Vt


def R_to_euler(R: NDArray[np.float64]) -> NDArray[np.float64]:
    """
    Convert rotation matrix to Euler angles (roll, pitch, yaw).

    Uses ZYX convention (yaw-pitch-roll).
    Only for reporting purposes.

    Args:
        R: Rotation matrix, shape (3, 3)

    Returns:
        Euler angles [roll, pitch, yaw] in radians, shape (3,)
    """
    roll = np.arctan2(R[2, 1], R[2, 2])
    pitch = -np.arcsin(np.clip(R[2, 0], -1.0, 1.0))
    yaw = np.arctan2(R[1, 0], R[0, 0])
    return np.array([roll, pitch, yaw])


# ============================================================================
# Self-checks (run with: python -m ctrlsim.math3d)
# ============================================================================

if __name__ == "__main__":
    print("Running math3d checks...")

    v = np.array([1.0, 2.0, 3.0])
    assert np.allclose(vee(hat(v)), v), "hat/vee roundtrip failed"
    print("  [PASS] hat/vee roundtrip")

    R = axis_angle_to_R(np.array([1.0, 1.0, 0.0]), 0.7)
    assert is_rotation(R), "Rodrigues output should be a rotation"
    print("  [PASS] axis_angle_to_R orthonormality")

    noisy = R + 1e-3 * np.ones((3, 3))
    assert not is_rotation(noisy)
    assert is_rotation(orthonormalize(noisy))
    print("  [PASS] orthonormalize")

    assert np.allclose(R_to_euler(rot_z(0.3)), [0.0, 0.0, 0.3])
    print("  [PASS] R_to_euler yaw")

    print("\nAll math3d checks passed!")
