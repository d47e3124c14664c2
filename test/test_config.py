import pytest

from icp_tracker import constants
from icp_tracker.config import ICPConfig, TrackerConfig, get_param

from conftest import FakeNode


def test_missing_parameter_uses_default_and_warns():
    node = FakeNode()

    assert get_param(node, "startup_drop_count", 0) == 0
    assert node.logger.messages("warning") == [
        "Cannot find value for parameter: startup_drop_count, assigning default: 0"
    ]


def test_found_parameter_is_cast_to_default_type():
    node = FakeNode({"icp_max_match_dist": 1, "fixed_frame": "map"})

    value = get_param(node, "icp_max_match_dist", 0.5)
    assert value == 1.0 and isinstance(value, float)
    assert get_param(node, "fixed_frame", "world") == "map"
    assert node.logger.messages("warning") == []
    assert len(node.logger.messages("info")) == 2


@pytest.mark.parametrize(
    "name, value, default",
    [
        ("startup_drop_count", 2.5, 0),
        ("startup_drop_count", True, 0),
        ("send_delta_pose", "false", False),
        ("send_delta_pose", 1, False),
        ("icp_max_match_dist", "0.5", 0.5),
        ("fixed_frame", 3, "world"),
    ],
)
def test_mistyped_parameter_falls_back_to_default(name, value, default):
    node = FakeNode({name: value})

    result = get_param(node, name, default)

    assert result == default and type(result) is type(default)
    warnings = node.logger.messages("warning")
    assert len(warnings) == 1
    assert warnings[0].startswith(f"Parameter {name} has type {type(value).__name__}")
    assert node.logger.messages("info") == []


def test_mistyped_delta_pose_parameter_keeps_it_disabled():
    config = TrackerConfig.from_ros_node(FakeNode({"send_delta_pose": "false"}))
    assert config.tracking.send_delta_pose is False


def test_defaults_from_empty_node():
    node = FakeNode()
    config = TrackerConfig.from_ros_node(node)

    assert config.topics.cloud_topic == "/camera/rgb/points"
    assert config.topics.path_topic == "/tracker_path"
    assert config.topics.delta_pose_topic == "/openni_delta_pose"
    assert config.frames.fixed_frame == "world"
    assert config.frames.sensor_frame == "openni_rgb_optical_frame"
    assert config.tracking.startup_drop_count == 0
    assert not config.tracking.send_delta_pose
    assert config.icp.max_iterations == constants.ICP_MAX_ITER_DEFAULT
    assert config.output.trajectory_export_path == ""
    # every missing parameter is reported once
    assert len(node.logger.messages("warning")) == 19
    config.validate()


def test_overrides_are_applied():
    node = FakeNode({
        "cloud_topic": "/points",
        "startup_drop_count": 5,
        "sensor_frame": "lidar",
        "icp_keyframe_ratio_threshold": 0.6,
    })
    config = TrackerConfig.from_ros_node(node)

    assert config.topics.cloud_topic == "/points"
    assert config.tracking.startup_drop_count == 5
    assert config.frames.sensor_frame == "lidar"
    assert config.icp.keyframe_ratio_threshold == pytest.approx(0.6)


@pytest.mark.parametrize(
    "flag, params, expected",
    [
        (False, {}, False),
        (True, {}, True),
        (False, {"send_delta_pose": True}, True),
        (True, {"send_delta_pose": False}, True),
    ],
)
def test_send_delta_pose_sources(flag, params, expected):
    config = TrackerConfig.from_ros_node(FakeNode(params), send_delta_pose=flag)
    assert config.tracking.send_delta_pose is expected


@pytest.mark.parametrize(
    "mutate",
    [
        lambda c: setattr(c.tracking, "startup_drop_count", -1),
        lambda c: setattr(c.icp, "max_iterations", 0),
        lambda c: setattr(c.icp, "outlier_trim_ratio", 0.0),
        lambda c: setattr(c.icp, "keyframe_ratio_threshold", 1.5),
        lambda c: setattr(c.icp, "max_match_dist", -0.1),
        lambda c: setattr(c.icp, "min_matches", 3),
        lambda c: setattr(c.frames, "sensor_frame", ""),
    ],
)
def test_validate_rejects_bad_values(mutate):
    config = TrackerConfig()
    mutate(config)
    with pytest.raises(ValueError):
        config.validate()


def test_icp_minimum_matches_is_se3_dof():
    assert ICPConfig().min_matches == 6
