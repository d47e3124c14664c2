"""
ICP Tracker Constants and Configuration Values.

All magic numbers are centralized here with clear documentation.
"""

# =============================================================================
# Topic and Frame Defaults
# =============================================================================

CLOUD_TOPIC_DEFAULT = "/camera/rgb/points"
PATH_TOPIC_DEFAULT = "/tracker_path"
DELTA_POSE_TOPIC_DEFAULT = "/openni_delta_pose"
STATUS_TOPIC_DEFAULT = "/tracker/status"

FIXED_FRAME_DEFAULT = "world"
SENSOR_FRAME_DEFAULT = "openni_rgb_optical_frame"

# Subscription depth: the tracker never buffers, the transport drops
CLOUD_QUEUE_DEPTH = 1

# Delta pose publisher depth
DELTA_POSE_QUEUE_DEPTH = 3

# =============================================================================
# Tracking Policy Constants
# =============================================================================

# Frames discarded at startup before tracking begins
STARTUP_DROP_COUNT_DEFAULT = 0

# Below this many valid points the frame is reported as a partial image.
# Advisory only, registration still runs.
PARTIAL_IMAGE_MIN_POINTS = 10000

# =============================================================================
# ICP Constants
# =============================================================================

# Minimum correspondences for SE(3) observability
N_MIN_SE3_DOF = 6

# Iteration budget before declaring a convergence failure
ICP_MAX_ITER_DEFAULT = 40

# Step size under which ICP is considered converged
ICP_MIN_DIFF_ROT_DEFAULT = 1e-3    # radians
ICP_MIN_DIFF_TRANS_DEFAULT = 1e-3  # meters

# Correspondences farther than this are ignored (meters)
ICP_MAX_MATCH_DIST_DEFAULT = 0.5

# Fraction of the closest correspondences kept by the trimmed outlier filter
ICP_OUTLIER_TRIM_RATIO_DEFAULT = 0.85

# The keyframe is refreshed when the match ratio drops below this
ICP_KEYFRAME_RATIO_DEFAULT = 0.8

# Reading clouds are subsampled to at most this many points (0 = no limit)
ICP_MAX_READING_POINTS_DEFAULT = 5000

# =============================================================================
# Output Constants
# =============================================================================

# Maximum trajectory path length for visualization
TRAJECTORY_PATH_MAX_LENGTH = 1000

# Period of the status report (seconds)
STATUS_CHECK_PERIOD_DEFAULT = 5.0

# =============================================================================
# Numerical Stability Thresholds
# =============================================================================

# Quaternion norms below this are rejected
QUATERNION_NORM_EPSILON = 1e-10
