"""
ICP tracker: incremental point cloud pose tracking for ROS 2.

Subpackages:
- frontend/: PointCloud2 decoding and bad-point filtering
- backend/: keyframe ICP, tracking state machine, ROS node
- geometry/: SE(3) helpers on homogeneous matrices
"""
