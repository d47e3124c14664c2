import math
from typing import Any, Dict, List, Optional

import numpy as np
import pytest

from icp_tracker.backend.registration import Converged, ConvergenceError
from icp_tracker.geometry import se3_from_rotmat_trans, se3_identity

# =============================================================================
# Test Doubles
# =============================================================================


class RecordingLogger:
    """Collects (level, message) pairs; same call surface as the rclpy logger."""

    def __init__(self):
        self.records: List[tuple] = []

    def debug(self, msg):
        self.records.append(("debug", msg))

    def info(self, msg):
        self.records.append(("info", msg))

    def warning(self, msg):
        self.records.append(("warning", msg))

    def error(self, msg):
        self.records.append(("error", msg))

    def messages(self, level: str) -> List[str]:
        return [m for lvl, m in self.records if lvl == level]


class RecordingOutput:
    """OutputAdapter that keeps every event in arrival order."""

    def __init__(self):
        self.events: List[tuple] = []

    def send_delta_pose(self, event):
        self.events.append(("delta", event))

    def append_keyframe(self, event):
        self.events.append(("keyframe", event))

    def send_transform(self, event):
        self.events.append(("transform", event))

    def of_kind(self, kind: str) -> list:
        return [e for k, e in self.events if k == kind]


class ScriptedRegistration:
    """
    Registration replaying a script of outcomes.

    Each entry is either a ConvergenceError instance (raised) or a tuple
    (delta, match_ratio, keyframe_created).
    """

    def __init__(self, script: Optional[list] = None):
        self.script = list(script or [])
        self.matched: List[np.ndarray] = []
        self.resets: List[np.ndarray] = []
        self._keyframe_created = False

    def match(self, features):
        self.matched.append(np.array(features))
        self._keyframe_created = False
        outcome = self.script.pop(0)
        if isinstance(outcome, ConvergenceError):
            raise outcome
        delta, match_ratio, keyframe_created = outcome
        self._keyframe_created = keyframe_created
        return Converged(delta=np.array(delta, dtype=float), match_ratio=match_ratio)

    def reset_tracking(self, features):
        self.resets.append(np.array(features))

    def key_frame_created_at_last_call(self):
        return self._keyframe_created


class FakeParameter:
    def __init__(self, value):
        self.value = value


class FakeNode:
    """Parameter surface of an rclpy node declared from overrides."""

    def __init__(self, params: Optional[Dict[str, Any]] = None):
        self.params = dict(params or {})
        self.logger = RecordingLogger()

    def get_logger(self):
        return self.logger

    def has_parameter(self, name):
        return name in self.params

    def get_parameter(self, name):
        return FakeParameter(self.params[name])


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def logger():
    return RecordingLogger()


@pytest.fixture
def recorder():
    return RecordingOutput()


@pytest.fixture
def small_pointcloud():
    """Generate a small test point cloud for ICP tests."""
    rng = np.random.default_rng(42)
    return rng.uniform(-1.0, 1.0, size=(500, 3))


@pytest.fixture
def identity_pose():
    return se3_identity()


@pytest.fixture
def yaw_90():
    """90 degree rotation about z with a translation."""
    c, s = math.cos(math.pi / 2.0), math.sin(math.pi / 2.0)
    R = np.array([[c, -s, 0.0], [s, c, 0.0], [0.0, 0.0, 1.0]])
    return se3_from_rotmat_trans(R, [1.0, 2.0, 0.5])


def make_batch(n_valid: int, n_nan: int = 0, seed: int = 0) -> np.ndarray:
    """(N, 3) batch with `n_valid` finite points followed by `n_nan` dropouts."""
    rng = np.random.default_rng(seed)
    valid = rng.uniform(-1.0, 1.0, size=(n_valid, 3))
    invalid = np.full((n_nan, 3), np.nan)
    return np.vstack([valid, invalid])
