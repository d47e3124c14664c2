"""
Cloud matcher node.

Subscribes to a PointCloud2 stream, runs the tracking engine on every cloud
and publishes:
- TF fixed_frame -> sensor_frame on every processed frame
- nav_msgs/Path of the keyframe poses
- geometry_msgs/PoseWithCovarianceStamped delta poses (--senddeltapose),
  all-NaN on failure
- JSON status on a timer

The node is the engine's OutputAdapter: it only converts events to messages.
"""

import argparse
import json
import sys
import time
from typing import List

import rclpy
from rclpy.clock import Clock, ClockType
from rclpy.node import Node
from rclpy.qos import QoSProfile, ReliabilityPolicy, HistoryPolicy, DurabilityPolicy
from rclpy.utilities import remove_ros_args

import tf2_ros
from geometry_msgs.msg import PoseStamped, PoseWithCovarianceStamped, TransformStamped
from nav_msgs.msg import Path
from sensor_msgs.msg import PointCloud2
from std_msgs.msg import String

from icp_tracker import constants
from icp_tracker.backend.events import DeltaPoseEvent, KeyframeEvent, TransformBroadcast
from icp_tracker.backend.outputs import PathHistory, TumTrajectoryWriter
from icp_tracker.backend.registration import ICPSequence
from icp_tracker.backend.tracking import TrackingEngine
from icp_tracker.config import TrackerConfig
from icp_tracker.frontend.cloud_filter import decode_cloud


class CloudMatcherNode(Node):
    """Incremental ICP tracker bound to one point cloud stream."""

    def __init__(self, send_delta_pose: bool = False):
        super().__init__(
            "cloud_matcher_node",
            allow_undeclared_parameters=True,
            automatically_declare_parameters_from_overrides=True,
        )

        self.config = TrackerConfig.from_ros_node(self, send_delta_pose=send_delta_pose)
        try:
            self.config.validate()
        except ValueError as exc:
            self.get_logger().error(f"Invalid tracker parameters: {exc}")
            raise

        self._init_ros()

        self.registration = ICPSequence(self.config.icp, logger=self.get_logger())
        self.engine = TrackingEngine(
            self.registration,
            tracking=self.config.tracking,
            frames=self.config.frames,
            output=self,
            logger=self.get_logger(),
        )

        self.get_logger().info(
            f"Cloud matcher initialized: {self.config.topics.cloud_topic} -> "
            f"{self.config.frames.fixed_frame}/{self.config.frames.sensor_frame}, "
            f"delta pose {'ON' if self.config.tracking.send_delta_pose else 'OFF'}"
        )

    def _init_ros(self):
        """Initialize ROS interfaces."""
        topics = self.config.topics

        qos_cloud = QoSProfile(
            reliability=ReliabilityPolicy.BEST_EFFORT,
            history=HistoryPolicy.KEEP_LAST,
            depth=constants.CLOUD_QUEUE_DEPTH,
            durability=DurabilityPolicy.VOLATILE,
        )

        self.sub_cloud = self.create_subscription(
            PointCloud2, topics.cloud_topic, self.on_cloud, qos_cloud
        )

        # Publishers
        self.pub_path = self.create_publisher(Path, topics.path_topic, 1)
        self.pub_status = self.create_publisher(String, topics.status_topic, 10)
        self.pub_delta_pose = None
        if self.config.tracking.send_delta_pose:
            self.pub_delta_pose = self.create_publisher(
                PoseWithCovarianceStamped, topics.delta_pose_topic, constants.DELTA_POSE_QUEUE_DEPTH
            )

        self.tf_broadcaster = tf2_ros.TransformBroadcaster(self)

        self.path_history = PathHistory(self.config.output.max_path_length)
        self.path_poses: List[PoseStamped] = []

        # Trajectory export
        self.trajectory_writer = None
        if self.config.output.trajectory_export_path:
            self.trajectory_writer = TumTrajectoryWriter(self.config.output.trajectory_export_path)

        # Status timer
        self.node_start_time = time.time()
        self._status_clock = Clock(clock_type=ClockType.SYSTEM_TIME)
        self.status_timer = self.create_timer(
            self.config.output.status_check_period_sec, self._publish_status, clock=self._status_clock
        )

    def on_cloud(self, msg: PointCloud2):
        """Run the tracker on one cloud; events come back through the adapter methods."""
        points = decode_cloud(msg, logger=self.get_logger())
        self.engine.update(points, msg.header.stamp)

    # =========================================================================
    # OutputAdapter
    # =========================================================================

    def send_delta_pose(self, event: DeltaPoseEvent) -> None:
        if self.pub_delta_pose is None:
            return
        (x, y, z), (qx, qy, qz, qw) = event.position_orientation()

        msg = PoseWithCovarianceStamped()
        msg.header.stamp = event.stamp
        msg.pose.pose.position.x = x
        msg.pose.pose.position.y = y
        msg.pose.pose.position.z = z
        msg.pose.pose.orientation.x = qx
        msg.pose.pose.orientation.y = qy
        msg.pose.pose.orientation.z = qz
        msg.pose.pose.orientation.w = qw
        self.pub_delta_pose.publish(msg)

    def append_keyframe(self, event: KeyframeEvent) -> None:
        (x, y, z), (qx, qy, qz, qw) = event.position_orientation()

        pose = PoseStamped()
        pose.header.stamp = event.stamp
        pose.header.frame_id = self.config.frames.fixed_frame
        pose.pose.position.x = x
        pose.pose.position.y = y
        pose.pose.position.z = z
        pose.pose.orientation.x = qx
        pose.pose.orientation.y = qy
        pose.pose.orientation.z = qz
        pose.pose.orientation.w = qw

        self.path_history.append(event)
        self.path_poses.append(pose)
        if len(self.path_poses) > len(self.path_history):
            self.path_poses.pop(0)

        path_msg = Path()
        path_msg.header.stamp = event.stamp
        path_msg.header.frame_id = self.config.frames.fixed_frame
        path_msg.poses = self.path_poses
        self.pub_path.publish(path_msg)

    def send_transform(self, event: TransformBroadcast) -> None:
        (x, y, z), (qx, qy, qz, qw) = event.position_orientation()

        tf_msg = TransformStamped()
        tf_msg.header.stamp = event.stamp
        tf_msg.header.frame_id = event.fixed_frame
        tf_msg.child_frame_id = event.sensor_frame
        tf_msg.transform.translation.x = x
        tf_msg.transform.translation.y = y
        tf_msg.transform.translation.z = z
        tf_msg.transform.rotation.x = qx
        tf_msg.transform.rotation.y = qy
        tf_msg.transform.rotation.z = qz
        tf_msg.transform.rotation.w = qw
        self.tf_broadcaster.sendTransform(tf_msg)

        if self.trajectory_writer:
            self.trajectory_writer.write(event)

    # =========================================================================
    # Status
    # =========================================================================

    def _publish_status(self):
        """Publish periodic status."""
        status = self.engine.state.to_dict()
        status["elapsed_sec"] = time.time() - self.node_start_time
        status["path_length"] = len(self.path_history)

        msg = String()
        msg.data = json.dumps(status)
        self.pub_status.publish(msg)

        self.get_logger().info(
            f"Tracker status: frames={status['frames_received']}, "
            f"converged={status['frames_converged']}, failed={status['frames_failed']}, "
            f"empty={status['frames_empty']}, keyframes={status['keyframes']}"
        )

    def destroy_node(self):
        """Clean up."""
        if self.trajectory_writer:
            self.trajectory_writer.close()
            self.get_logger().info(f"Trajectory saved: {self.trajectory_writer.path}")
        super().destroy_node()


def parse_args(argv: List[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Incremental ICP point cloud tracker")
    parser.add_argument(
        "--senddeltapose",
        action="store_true",
        help="publish the relative pose of every frame (NaN on failure)",
    )
    args, _unknown = parser.parse_known_args(argv)
    return args


def main(args=None):
    rclpy.init(args=args)
    cli = parse_args(remove_ros_args(args=sys.argv if args is None else args)[1:])
    node = CloudMatcherNode(send_delta_pose=cli.senddeltapose)

    try:
        rclpy.spin(node)
    except KeyboardInterrupt:
        pass
    finally:
        node.destroy_node()
        rclpy.shutdown()


if __name__ == "__main__":
    main()
