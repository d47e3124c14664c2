"""
Configuration classes for ICP tracker parameters.

Organizes parameters into logical groups. Parameters are read once at
startup; a missing parameter is never fatal, the documented default is used
and a warning is logged.
"""

from dataclasses import dataclass, field
from typing import Any

from icp_tracker import constants


def get_param(node, name: str, default: Any) -> Any:
    """
    Read a ROS parameter, falling back to `default` when it was not provided.

    The node must be created with automatically_declare_parameters_from_overrides
    so that provided parameters are visible through has_parameter().

    A value whose type does not match the default's is rejected (warning,
    default used). The only widening accepted is int -> float.
    """
    logger = node.get_logger()
    if node.has_parameter(name):
        value = node.get_parameter(name).value
        if value is not None:
            if _matches_type(value, default):
                value = type(default)(value)
                logger.info(f"Found parameter: {name}, value: {value}")
                return value
            logger.warning(
                f"Parameter {name} has type {type(value).__name__}, expected "
                f"{type(default).__name__}; assigning default: {default}"
            )
            return default
    logger.warning(f"Cannot find value for parameter: {name}, assigning default: {default}")
    return default


def _matches_type(value: Any, default: Any) -> bool:
    # bool is a subclass of int, so it is checked first
    if isinstance(default, bool) or isinstance(value, bool):
        return isinstance(value, bool) and isinstance(default, bool)
    if isinstance(default, float):
        return isinstance(value, (int, float))
    return isinstance(value, type(default))


@dataclass
class TopicConfig:
    """ROS topic configuration."""
    cloud_topic: str = constants.CLOUD_TOPIC_DEFAULT
    path_topic: str = constants.PATH_TOPIC_DEFAULT
    delta_pose_topic: str = constants.DELTA_POSE_TOPIC_DEFAULT
    status_topic: str = constants.STATUS_TOPIC_DEFAULT


@dataclass
class FrameConfig:
    """TF frame configuration."""
    fixed_frame: str = constants.FIXED_FRAME_DEFAULT
    sensor_frame: str = constants.SENSOR_FRAME_DEFAULT


@dataclass
class TrackingConfig:
    """Tracking policy configuration."""
    startup_drop_count: int = constants.STARTUP_DROP_COUNT_DEFAULT
    send_delta_pose: bool = False
    partial_image_min_points: int = constants.PARTIAL_IMAGE_MIN_POINTS


@dataclass
class ICPConfig:
    """ICP solver configuration."""
    max_iterations: int = constants.ICP_MAX_ITER_DEFAULT
    min_diff_rot: float = constants.ICP_MIN_DIFF_ROT_DEFAULT
    min_diff_trans: float = constants.ICP_MIN_DIFF_TRANS_DEFAULT
    max_match_dist: float = constants.ICP_MAX_MATCH_DIST_DEFAULT
    outlier_trim_ratio: float = constants.ICP_OUTLIER_TRIM_RATIO_DEFAULT
    keyframe_ratio_threshold: float = constants.ICP_KEYFRAME_RATIO_DEFAULT
    max_reading_points: int = constants.ICP_MAX_READING_POINTS_DEFAULT
    min_matches: int = constants.N_MIN_SE3_DOF


@dataclass
class OutputConfig:
    """Output side-effects configuration."""
    max_path_length: int = constants.TRAJECTORY_PATH_MAX_LENGTH
    trajectory_export_path: str = ""  # empty = no export
    status_check_period_sec: float = constants.STATUS_CHECK_PERIOD_DEFAULT


@dataclass
class TrackerConfig:
    """Complete tracker configuration."""
    topics: TopicConfig = field(default_factory=TopicConfig)
    frames: FrameConfig = field(default_factory=FrameConfig)
    tracking: TrackingConfig = field(default_factory=TrackingConfig)
    icp: ICPConfig = field(default_factory=ICPConfig)
    output: OutputConfig = field(default_factory=OutputConfig)

    def validate(self) -> None:
        """Raise ValueError on values the tracker cannot run with."""
        if self.tracking.startup_drop_count < 0:
            raise ValueError(
                f"startup_drop_count must be >= 0, got {self.tracking.startup_drop_count}"
            )
        if self.icp.max_iterations <= 0:
            raise ValueError(f"icp_max_iterations must be > 0, got {self.icp.max_iterations}")
        if not 0.0 < self.icp.outlier_trim_ratio <= 1.0:
            raise ValueError(
                f"icp_outlier_trim_ratio must be in (0, 1], got {self.icp.outlier_trim_ratio}"
            )
        if not 0.0 < self.icp.keyframe_ratio_threshold <= 1.0:
            raise ValueError(
                "icp_keyframe_ratio_threshold must be in (0, 1], "
                f"got {self.icp.keyframe_ratio_threshold}"
            )
        if self.icp.max_match_dist <= 0.0:
            raise ValueError(f"icp_max_match_dist must be > 0, got {self.icp.max_match_dist}")
        if self.icp.min_matches < constants.N_MIN_SE3_DOF:
            raise ValueError(
                f"icp_min_matches must be >= {constants.N_MIN_SE3_DOF}, got {self.icp.min_matches}"
            )
        if not self.frames.fixed_frame or not self.frames.sensor_frame:
            raise ValueError("fixed_frame and sensor_frame must be set")

    @classmethod
    def from_ros_node(cls, node, send_delta_pose: bool = False):
        """
        Create configuration from ROS node parameters.

        `send_delta_pose` comes from the --senddeltapose command-line flag;
        the send_delta_pose parameter can also enable it.
        """
        topics = TopicConfig(
            cloud_topic=get_param(node, "cloud_topic", constants.CLOUD_TOPIC_DEFAULT),
            path_topic=get_param(node, "path", constants.PATH_TOPIC_DEFAULT),
            delta_pose_topic=get_param(node, "delta_pose_topic", constants.DELTA_POSE_TOPIC_DEFAULT),
            status_topic=get_param(node, "status_topic", constants.STATUS_TOPIC_DEFAULT),
        )

        frames = FrameConfig(
            fixed_frame=get_param(node, "fixed_frame", constants.FIXED_FRAME_DEFAULT),
            sensor_frame=get_param(node, "sensor_frame", constants.SENSOR_FRAME_DEFAULT),
        )

        tracking = TrackingConfig(
            startup_drop_count=get_param(
                node, "startup_drop_count", constants.STARTUP_DROP_COUNT_DEFAULT
            ),
            send_delta_pose=send_delta_pose or get_param(node, "send_delta_pose", False),
            partial_image_min_points=get_param(
                node, "partial_image_min_points", constants.PARTIAL_IMAGE_MIN_POINTS
            ),
        )

        icp = ICPConfig(
            max_iterations=get_param(node, "icp_max_iterations", constants.ICP_MAX_ITER_DEFAULT),
            min_diff_rot=get_param(node, "icp_min_diff_rot", constants.ICP_MIN_DIFF_ROT_DEFAULT),
            min_diff_trans=get_param(
                node, "icp_min_diff_trans", constants.ICP_MIN_DIFF_TRANS_DEFAULT
            ),
            max_match_dist=get_param(
                node, "icp_max_match_dist", constants.ICP_MAX_MATCH_DIST_DEFAULT
            ),
            outlier_trim_ratio=get_param(
                node, "icp_outlier_trim_ratio", constants.ICP_OUTLIER_TRIM_RATIO_DEFAULT
            ),
            keyframe_ratio_threshold=get_param(
                node, "icp_keyframe_ratio_threshold", constants.ICP_KEYFRAME_RATIO_DEFAULT
            ),
            max_reading_points=get_param(
                node, "icp_max_reading_points", constants.ICP_MAX_READING_POINTS_DEFAULT
            ),
        )

        output = OutputConfig(
            max_path_length=get_param(
                node, "max_path_length", constants.TRAJECTORY_PATH_MAX_LENGTH
            ),
            trajectory_export_path=get_param(node, "trajectory_export_path", ""),
            status_check_period_sec=get_param(
                node, "status_check_period_sec", constants.STATUS_CHECK_PERIOD_DEFAULT
            ),
        )

        return cls(
            topics=topics,
            frames=frames,
            tracking=tracking,
            icp=icp,
            output=output,
        )
