"""
SE(3) geometry on 4x4 homogeneous matrices.

Conventions:
- T_a_b maps points expressed in frame b into frame a.
- Rotation blocks are kept on SO(3); compositions are re-projected with
  se3_normalize() so that accumulated drift never breaks orthonormality.
- Quaternions follow the ROS convention (x, y, z, w) and only appear at the
  message boundary.
"""

from __future__ import annotations

from typing import Tuple

import numpy as np
from scipy.spatial.transform import Rotation

from icp_tracker import constants


def se3_identity() -> np.ndarray:
    """Identity transform."""
    return np.eye(4, dtype=float)


def se3_from_rotmat_trans(R: np.ndarray, t: np.ndarray) -> np.ndarray:
    """Build a homogeneous transform from a 3x3 rotation and a translation."""
    R = np.asarray(R, dtype=float)
    if R.shape != (3, 3):
        raise ValueError(f"Expected 3x3 matrix, got shape {R.shape}")
    T = np.eye(4, dtype=float)
    T[:3, :3] = R
    T[:3, 3] = np.asarray(t, dtype=float).reshape(3)
    return T


def se3_compose(T1: np.ndarray, T2: np.ndarray) -> np.ndarray:
    """
    Compose two transforms: T_result = T1 ∘ T2.

    With T1 = T_w_a and T2 = T_a_b the result is T_w_b.
    """
    T1 = _as_se3(T1)
    T2 = _as_se3(T2)
    return se3_normalize(T1 @ T2)


def se3_inverse(T: np.ndarray) -> np.ndarray:
    """Closed-form inverse: [R^T, -R^T t]."""
    T = _as_se3(T)
    R = T[:3, :3]
    t = T[:3, 3]
    return se3_from_rotmat_trans(R.T, -R.T @ t)


def se3_apply(T: np.ndarray, p: np.ndarray) -> np.ndarray:
    """
    Apply a transform to points.

    Args:
        T: 4x4 transform
        p: 3D point (3,) or batch of points (N, 3)

    Returns:
        Transformed points in the same layout as the input
    """
    T = _as_se3(T)
    p = np.asarray(p, dtype=float)

    if p.ndim == 1:
        if len(p) != 3:
            raise ValueError(f"Expected 3D point, got shape {p.shape}")
        return T[:3, :3] @ p + T[:3, 3]
    if p.ndim == 2 and p.shape[1] == 3:
        return p @ T[:3, :3].T + T[:3, 3]
    raise ValueError(f"Expected (3,) or (N, 3) points, got shape {p.shape}")


def se3_normalize(T: np.ndarray) -> np.ndarray:
    """Project the rotation block back onto SO(3) (closest rotation via SVD)."""
    T = np.array(T, dtype=float)
    U, _, Vt = np.linalg.svd(T[:3, :3])
    R = U @ Vt
    if np.linalg.det(R) < 0:
        U[:, -1] *= -1.0
        R = U @ Vt
    T[:3, :3] = R
    T[3, :] = (0.0, 0.0, 0.0, 1.0)
    return T


def rotation_angle(R: np.ndarray) -> float:
    """Rotation angle (radians) of a 3x3 rotation matrix."""
    cos_theta = (float(np.trace(R)) - 1.0) / 2.0
    return float(np.arccos(np.clip(cos_theta, -1.0, 1.0)))


# =============================================================================
# Quaternion conversions (for ROS compatibility)
# =============================================================================


def se3_to_quat_trans(T: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """
    Split a transform into quaternion (x, y, z, w) and translation.
    """
    T = _as_se3(T)
    quat = Rotation.from_matrix(T[:3, :3]).as_quat()
    return quat, T[:3, 3].copy()


def se3_from_quat_trans(quat, t) -> np.ndarray:
    """Build a transform from quaternion (x, y, z, w) and translation."""
    q = np.asarray(quat, dtype=float).reshape(-1)
    if len(q) != 4:
        raise ValueError(f"Expected 4-element quaternion, got {len(q)}")
    if np.linalg.norm(q) < constants.QUATERNION_NORM_EPSILON:
        raise ValueError("Quaternion norm is too small (near zero)")
    return se3_from_rotmat_trans(Rotation.from_quat(q).as_matrix(), t)


def _as_se3(T: np.ndarray) -> np.ndarray:
    T = np.asarray(T, dtype=float)
    if T.shape != (4, 4):
        raise ValueError(f"Expected 4x4 transform, got shape {T.shape}")
    return T
