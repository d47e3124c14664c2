"""
Output side of the tracker: the sink interface and its bookkeeping helpers.

No decisions are taken here, everything is driven by the engine's events.
"""

from __future__ import annotations

from typing import List, Optional, Protocol, TextIO

from icp_tracker import constants
from icp_tracker.backend.events import DeltaPoseEvent, KeyframeEvent, TransformBroadcast


def stamp_to_sec(stamp) -> float:
    """Convert a ROS timestamp (or plain number) to seconds."""
    if hasattr(stamp, "sec") and hasattr(stamp, "nanosec"):
        return float(stamp.sec) + float(stamp.nanosec) * 1e-9
    return float(stamp)


class OutputAdapter(Protocol):
    """Receives the engine's events, in the order delta -> keyframe -> transform."""

    def send_delta_pose(self, event: DeltaPoseEvent) -> None:
        ...

    def append_keyframe(self, event: KeyframeEvent) -> None:
        ...

    def send_transform(self, event: TransformBroadcast) -> None:
        ...


class PathHistory:
    """Ordered keyframe poses, bounded to the most recent `max_length`."""

    def __init__(self, max_length: int = constants.TRAJECTORY_PATH_MAX_LENGTH):
        self.max_length = int(max_length)
        self.poses: List[KeyframeEvent] = []

    def append(self, event: KeyframeEvent) -> None:
        self.poses.append(event)
        if self.max_length > 0 and len(self.poses) > self.max_length:
            self.poses.pop(0)

    def __len__(self) -> int:
        return len(self.poses)


class TumTrajectoryWriter:
    """Writes broadcast poses as TUM lines: timestamp x y z qx qy qz qw."""

    HEADER = "# timestamp x y z qx qy qz qw\n"

    def __init__(self, path: str):
        self.path = path
        self._file: Optional[TextIO] = open(path, "w", encoding="utf-8")
        self._file.write(self.HEADER)
        self.count = 0

    def write(self, event: TransformBroadcast) -> None:
        if self._file is None:
            raise ValueError(f"Trajectory file already closed: {self.path}")
        (x, y, z), (qx, qy, qz, qw) = event.position_orientation()
        self._file.write(
            f"{stamp_to_sec(event.stamp):.9f} {x:.6f} {y:.6f} {z:.6f} "
            f"{qx:.6f} {qy:.6f} {qz:.6f} {qw:.6f}\n"
        )
        self._file.flush()
        self.count += 1

    def close(self) -> None:
        if self._file is not None:
            self._file.flush()
            self._file.close()
            self._file = None
