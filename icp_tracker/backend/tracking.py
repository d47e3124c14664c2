"""
Tracking engine: the per-frame state machine of the tracker.

For every incoming point batch:

    1. Warm-up: the first `startup_drop_count` frames are dropped silently.
    2. Filtering: non-finite points are removed. A frame without any valid
       point is skipped (failure delta pose only, no broadcast).
    3. Registration: the frame is matched against the keyframe. A
       ConvergenceError is a per-frame degradation and never propagates.
    4. Outputs: absolute pose composition, keyframe path entry, delta pose,
       transform broadcast.

The engine owns the absolute transform; the registration owns the keyframe.
Calls are strictly sequential, there is no locking.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

import numpy as np

from icp_tracker.backend.events import (
    DeltaPoseEvent,
    FrameOutput,
    FrameStatus,
    KeyframeEvent,
    TransformBroadcast,
)
from icp_tracker.backend.outputs import OutputAdapter
from icp_tracker.backend.registration import ConvergenceError, Registration
from icp_tracker.config import FrameConfig, TrackingConfig
from icp_tracker.frontend.cloud_filter import CloudFilter
from icp_tracker.geometry import se3_compose, se3_identity


@dataclass
class TrackingState:
    """Mutable tracker state for one sensor stream."""
    absolute: np.ndarray = field(default_factory=se3_identity)  # T_fixed_sensor
    dropped: int = 0
    keyframe_created: bool = False
    last_match_ratio: Optional[float] = None

    # Counters for status reporting
    frames_received: int = 0
    frames_empty: int = 0
    frames_converged: int = 0
    frames_failed: int = 0
    keyframes: int = 0

    def to_dict(self) -> dict:
        """Convert to dictionary for logging/publishing."""
        return {
            "frames_received": self.frames_received,
            "frames_dropped": self.dropped,
            "frames_empty": self.frames_empty,
            "frames_converged": self.frames_converged,
            "frames_failed": self.frames_failed,
            "keyframes": self.keyframes,
            "last_match_ratio": self.last_match_ratio,
        }


class TrackingEngine:
    """
    Runs the tracking state machine over a stream of point batches.

    Args:
        registration: keyframe registration (match / reset_tracking /
            key_frame_created_at_last_call)
        tracking: warm-up, delta pose and partial-image settings
        frames: fixed and sensor frame names for the broadcast
        output: optional sink receiving the events of every frame
        state: existing state to resume from (a fresh one by default)
        logger: optional ROS-style logger
    """

    def __init__(
        self,
        registration: Registration,
        tracking: Optional[TrackingConfig] = None,
        frames: Optional[FrameConfig] = None,
        output: Optional[OutputAdapter] = None,
        state: Optional[TrackingState] = None,
        logger=None,
    ):
        self.registration = registration
        self.tracking = tracking or TrackingConfig()
        self.frames = frames or FrameConfig()
        self.output = output
        self.state = state or TrackingState()
        self.logger = logger
        self.cloud_filter = CloudFilter(
            partial_image_min_points=self.tracking.partial_image_min_points,
            logger=logger,
        )

    @property
    def absolute_transform(self) -> np.ndarray:
        return self.state.absolute.copy()

    def update(self, batch: np.ndarray, stamp: Any) -> FrameOutput:
        """Process one point batch and dispatch the resulting events."""
        state = self.state
        state.frames_received += 1
        state.keyframe_created = False

        if state.dropped < self.tracking.startup_drop_count:
            state.dropped += 1
            return FrameOutput(status=FrameStatus.WARMING_UP, stamp=stamp)

        filtered = self.cloud_filter.filter(batch)
        if filtered.empty:
            state.frames_empty += 1
            if self.logger:
                self.logger.error("I found no good points in the cloud")
            out = FrameOutput(
                status=FrameStatus.EMPTY,
                stamp=stamp,
                valid_ratio=filtered.valid_ratio,
            )
            if self.tracking.send_delta_pose:
                out.delta_pose = DeltaPoseEvent.failure(stamp)
            self._dispatch(out)
            return out

        try:
            result = self.registration.match(filtered.features)
        except ConvergenceError as e:
            out = self._on_failure(filtered.features, stamp, e)
        else:
            out = self._on_success(result.delta, result.match_ratio, stamp)

        out.valid_ratio = filtered.valid_ratio
        out.broadcast = TransformBroadcast(
            sensor_frame=self.frames.sensor_frame,
            fixed_frame=self.frames.fixed_frame,
            transform=state.absolute.copy(),
            stamp=stamp,
        )
        self._dispatch(out)
        return out

    def _on_success(self, delta: np.ndarray, match_ratio: float, stamp: Any) -> FrameOutput:
        state = self.state
        state.frames_converged += 1
        state.last_match_ratio = float(match_ratio)
        state.absolute = se3_compose(state.absolute, delta)

        if self.logger:
            self.logger.info(f"match ratio: {match_ratio:.4f}")

        out = FrameOutput(status=FrameStatus.CONVERGED, stamp=stamp, match_ratio=float(match_ratio))

        if self.registration.key_frame_created_at_last_call():
            state.keyframe_created = True
            state.keyframes += 1
            if self.logger:
                self.logger.warning(f"Keyframe created at {match_ratio:.4f}")
            out.keyframe = KeyframeEvent(
                transform=state.absolute.copy(),
                stamp=stamp,
                match_ratio=float(match_ratio),
            )

        if self.tracking.send_delta_pose:
            out.delta_pose = DeltaPoseEvent(success=True, stamp=stamp, delta=np.array(delta, dtype=float))
        return out

    def _on_failure(self, features: np.ndarray, stamp: Any, error: ConvergenceError) -> FrameOutput:
        self.state.frames_failed += 1
        if self.logger:
            self.logger.warning(f"ICP failed to converge: {error}")

        out = FrameOutput(status=FrameStatus.FAILED, stamp=stamp)
        if self.tracking.send_delta_pose:
            if self.logger:
                self.logger.warning("ICP failure in delta pose mode, resetting tracker")
            # A failed match never consumed this frame, so it can seed a new track
            self.registration.reset_tracking(features)
            out.delta_pose = DeltaPoseEvent.failure(stamp)
        return out

    def _dispatch(self, out: FrameOutput) -> None:
        if self.output is None:
            return
        if out.delta_pose is not None:
            self.output.send_delta_pose(out.delta_pose)
        if out.keyframe is not None:
            self.output.append_keyframe(out.keyframe)
        if out.broadcast is not None:
            self.output.send_transform(out.broadcast)
