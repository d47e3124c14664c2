"""
Backend package for the ICP tracker.

Modules:
- registration: keyframe ICP (Registration interface, ICPSequence)
- tracking: per-frame state machine (TrackingEngine, TrackingState)
- events: engine output contract
- outputs: OutputAdapter interface, path history, TUM export
- tracker_node: ROS 2 node (imports rclpy, loaded lazily)

Usage:
    from icp_tracker.backend import TrackingEngine, ICPSequence
"""

from __future__ import annotations

from importlib import import_module
from typing import Any

__all__ = [
    # Registration
    "ConvergenceError",
    "Converged",
    "ICPSequence",
    "Registration",
    # Tracking
    "TrackingEngine",
    "TrackingState",
    # Events
    "DeltaPoseEvent",
    "FrameOutput",
    "FrameStatus",
    "KeyframeEvent",
    "TransformBroadcast",
    # Outputs
    "OutputAdapter",
    "PathHistory",
    "TumTrajectoryWriter",
    # ROS
    "CloudMatcherNode",
]

_LAZY_ATTRS: dict[str, tuple[str, str]] = {
    # Registration
    "ConvergenceError": ("icp_tracker.backend.registration", "ConvergenceError"),
    "Converged": ("icp_tracker.backend.registration", "Converged"),
    "ICPSequence": ("icp_tracker.backend.registration", "ICPSequence"),
    "Registration": ("icp_tracker.backend.registration", "Registration"),
    # Tracking
    "TrackingEngine": ("icp_tracker.backend.tracking", "TrackingEngine"),
    "TrackingState": ("icp_tracker.backend.tracking", "TrackingState"),
    # Events
    "DeltaPoseEvent": ("icp_tracker.backend.events", "DeltaPoseEvent"),
    "FrameOutput": ("icp_tracker.backend.events", "FrameOutput"),
    "FrameStatus": ("icp_tracker.backend.events", "FrameStatus"),
    "KeyframeEvent": ("icp_tracker.backend.events", "KeyframeEvent"),
    "TransformBroadcast": ("icp_tracker.backend.events", "TransformBroadcast"),
    # Outputs
    "OutputAdapter": ("icp_tracker.backend.outputs", "OutputAdapter"),
    "PathHistory": ("icp_tracker.backend.outputs", "PathHistory"),
    "TumTrajectoryWriter": ("icp_tracker.backend.outputs", "TumTrajectoryWriter"),
    # ROS
    "CloudMatcherNode": ("icp_tracker.backend.tracker_node", "CloudMatcherNode"),
}


def __getattr__(name: str) -> Any:
    target = _LAZY_ATTRS.get(name)
    if target is None:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    module_name, attr_name = target
    module = import_module(module_name)
    return getattr(module, attr_name)


def __dir__() -> list[str]:
    return sorted(set(globals().keys()) | set(_LAZY_ATTRS.keys()))
