"""
Geometry package for the ICP tracker.

Transforms are 4x4 homogeneous matrices (T_a_b maps b into a). Quaternions
(x, y, z, w) are used only when converting to and from ROS messages.

Usage:
    from icp_tracker.geometry import se3_compose, se3_inverse, se3_to_quat_trans
"""

from __future__ import annotations

from icp_tracker.geometry.se3 import (
    rotation_angle,
    se3_apply,
    se3_compose,
    se3_from_quat_trans,
    se3_from_rotmat_trans,
    se3_identity,
    se3_inverse,
    se3_normalize,
    se3_to_quat_trans,
)

__all__ = [
    "rotation_angle",
    "se3_apply",
    "se3_compose",
    "se3_from_quat_trans",
    "se3_from_rotmat_trans",
    "se3_identity",
    "se3_inverse",
    "se3_normalize",
    "se3_to_quat_trans",
]
