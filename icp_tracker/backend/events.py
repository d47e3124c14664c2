"""
Output contract of the tracking engine.

The engine produces explicit results; the all-NaN delta pose sentinel only
exists at the message boundary (DeltaPoseEvent.position_orientation).
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Tuple

import numpy as np

from icp_tracker.geometry import se3_to_quat_trans

Position = Tuple[float, float, float]
Orientation = Tuple[float, float, float, float]  # x, y, z, w


class FrameStatus(Enum):
    WARMING_UP = "warming_up"
    EMPTY = "empty"
    CONVERGED = "converged"
    FAILED = "failed"


@dataclass(frozen=True)
class TransformBroadcast:
    """Absolute pose of the sensor frame in the fixed frame."""
    sensor_frame: str
    fixed_frame: str
    transform: np.ndarray  # 4x4, T_fixed_sensor
    stamp: Any

    def position_orientation(self) -> Tuple[Position, Orientation]:
        return _position_orientation(self.transform)


@dataclass(frozen=True)
class KeyframeEvent:
    """Pose at which the registration created a new keyframe."""
    transform: np.ndarray  # 4x4, T_fixed_sensor
    stamp: Any
    match_ratio: float

    def position_orientation(self) -> Tuple[Position, Orientation]:
        return _position_orientation(self.transform)


@dataclass(frozen=True)
class DeltaPoseEvent:
    """Relative motion of this frame, or a failure."""
    success: bool
    stamp: Any
    delta: Optional[np.ndarray] = None  # 4x4 when success

    @classmethod
    def failure(cls, stamp: Any) -> "DeltaPoseEvent":
        return cls(success=False, stamp=stamp, delta=None)

    def position_orientation(self) -> Tuple[Position, Orientation]:
        """Wire representation; every component is NaN on failure."""
        if not self.success or self.delta is None:
            nan = float("nan")
            return (nan, nan, nan), (nan, nan, nan, nan)
        return _position_orientation(self.delta)


@dataclass
class FrameOutput:
    """Everything the engine decided for one frame."""
    status: FrameStatus
    stamp: Any
    broadcast: Optional[TransformBroadcast] = None
    keyframe: Optional[KeyframeEvent] = None
    delta_pose: Optional[DeltaPoseEvent] = None
    match_ratio: Optional[float] = None
    valid_ratio: Optional[float] = None

    @property
    def has_events(self) -> bool:
        return (
            self.broadcast is not None
            or self.keyframe is not None
            or self.delta_pose is not None
        )


def _position_orientation(T: np.ndarray) -> Tuple[Position, Orientation]:
    quat, trans = se3_to_quat_trans(T)
    position = (float(trans[0]), float(trans[1]), float(trans[2]))
    orientation = (float(quat[0]), float(quat[1]), float(quat[2]), float(quat[3]))
    return position, orientation
