import math

import numpy as np
import pytest

from icp_tracker.geometry import (
    rotation_angle,
    se3_apply,
    se3_compose,
    se3_from_quat_trans,
    se3_identity,
    se3_inverse,
    se3_normalize,
    se3_to_quat_trans,
)


def test_compose_with_identity(yaw_90, identity_pose):
    np.testing.assert_allclose(se3_compose(identity_pose, yaw_90), yaw_90, atol=1e-12)
    np.testing.assert_allclose(se3_compose(yaw_90, identity_pose), yaw_90, atol=1e-12)


def test_compose_order(yaw_90):
    step = se3_from_quat_trans([0.0, 0.0, 0.0, 1.0], [1.0, 0.0, 0.0])
    T = se3_compose(yaw_90, step)

    # Translation along local x after a 90 degree yaw moves along world y
    np.testing.assert_allclose(T[:3, 3], [1.0, 3.0, 0.5], atol=1e-12)


def test_inverse_roundtrip(yaw_90):
    np.testing.assert_allclose(se3_compose(yaw_90, se3_inverse(yaw_90)), np.eye(4), atol=1e-12)


def test_apply_single_and_batch(yaw_90):
    p = np.array([1.0, 0.0, 0.0])
    np.testing.assert_allclose(se3_apply(yaw_90, p), [1.0, 3.0, 0.5], atol=1e-12)

    batch = np.array([[1.0, 0.0, 0.0], [0.0, 0.0, 0.0]])
    out = se3_apply(yaw_90, batch)
    assert out.shape == (2, 3)
    np.testing.assert_allclose(out[1], [1.0, 2.0, 0.5], atol=1e-12)

    with pytest.raises(ValueError):
        se3_apply(yaw_90, np.zeros((2, 4)))


def test_normalize_restores_orthonormality(yaw_90):
    drifted = yaw_90.copy()
    drifted[:3, :3] *= 1.001
    drifted[0, 1] += 1e-4

    T = se3_normalize(drifted)
    R = T[:3, :3]
    np.testing.assert_allclose(R @ R.T, np.eye(3), atol=1e-12)
    assert np.linalg.det(R) == pytest.approx(1.0)
    np.testing.assert_allclose(T[:3, 3], yaw_90[:3, 3])


def test_quaternion_conversion(yaw_90):
    quat, trans = se3_to_quat_trans(yaw_90)
    s = math.sqrt(0.5)

    # Sign of the quaternion is arbitrary
    assert np.allclose(quat, [0.0, 0.0, s, s]) or np.allclose(quat, [0.0, 0.0, -s, -s])
    np.testing.assert_allclose(trans, [1.0, 2.0, 0.5])
    np.testing.assert_allclose(se3_from_quat_trans(quat, trans), yaw_90, atol=1e-12)


def test_zero_quaternion_rejected():
    with pytest.raises(ValueError):
        se3_from_quat_trans([0.0, 0.0, 0.0, 0.0], [0.0, 0.0, 0.0])


def test_rotation_angle(yaw_90):
    assert rotation_angle(yaw_90[:3, :3]) == pytest.approx(math.pi / 2.0)
    assert rotation_angle(se3_identity()[:3, :3]) == pytest.approx(0.0)
