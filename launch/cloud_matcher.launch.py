"""
Cloud matcher launch file.

Launches the ICP tracker on a point cloud topic, optionally with delta pose
output.
"""

from launch import LaunchDescription
from launch.actions import DeclareLaunchArgument
from launch.substitutions import LaunchConfiguration
from launch_ros.actions import Node


def generate_launch_description():
    """Generate launch description for the cloud matcher."""

    cloud_topic_arg = DeclareLaunchArgument(
        "cloud_topic",
        default_value="/camera/rgb/points",
        description="Input PointCloud2 topic",
    )

    send_delta_pose_arg = DeclareLaunchArgument(
        "send_delta_pose",
        default_value="false",
        description="Publish relative poses (NaN on ICP failure)",
    )

    startup_drop_count_arg = DeclareLaunchArgument(
        "startup_drop_count",
        default_value="0",
        description="Number of clouds dropped at startup",
    )

    trajectory_path_arg = DeclareLaunchArgument(
        "trajectory_export_path",
        default_value="/tmp/icp_tracker_trajectory.tum",
        description="Path to export trajectory in TUM format",
    )

    parameters = [
        {
            "cloud_topic": LaunchConfiguration("cloud_topic"),
            "startup_drop_count": LaunchConfiguration("startup_drop_count"),
            "trajectory_export_path": LaunchConfiguration("trajectory_export_path"),
            "fixed_frame": "world",
            "sensor_frame": "openni_rgb_optical_frame",
            "path": "/tracker_path",
            "delta_pose_topic": "/openni_delta_pose",
            "send_delta_pose": LaunchConfiguration("send_delta_pose"),
        }
    ]

    matcher = Node(
        package="icp_tracker",
        executable="cloud_matcher_node",
        name="cloud_matcher_node",
        output="screen",
        parameters=parameters,
    )

    return LaunchDescription([
        cloud_topic_arg,
        send_delta_pose_arg,
        startup_drop_count_arg,
        trajectory_path_arg,
        matcher,
    ])
