"""
Cloud filtering: raw point batch -> dense homogeneous feature set.

Pure data wrangling, no ROS imports. The PointCloud2 decoder only relies on
the message attributes (fields, width, height, point_step, row_step, data,
is_bigendian) so it can be fed with plain objects in tests.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import numpy as np

from icp_tracker import constants

# sensor_msgs/PointField datatypes
POINTFIELD_FLOAT32 = 7
POINTFIELD_FLOAT64 = 8

_FIELD_FORMATS = {
    POINTFIELD_FLOAT32: "f4",
    POINTFIELD_FLOAT64: "f8",
}


def pointcloud2_to_xyz(msg) -> np.ndarray:
    """
    Decode x, y, z of a PointCloud2 message.

    Invalid points are kept (as NaN/Inf) so that the filter can report the
    ratio of valid points over the full sensor frame.

    Returns:
        (N, 3) float64 array, N = width * height. Empty (0, 3) if the cloud
        has no x/y/z fields.
    """
    field_map = {f.name: (f.offset, f.datatype) for f in msg.fields}
    if "x" not in field_map or "y" not in field_map or "z" not in field_map:
        return np.zeros((0, 3), dtype=np.float64)

    n_points = int(msg.width) * int(msg.height)
    if n_points == 0:
        return np.zeros((0, 3), dtype=np.float64)

    endian = ">" if msg.is_bigendian else "<"
    formats = []
    offsets = []
    for name in ("x", "y", "z"):
        offset, datatype = field_map[name]
        if datatype not in _FIELD_FORMATS:
            raise ValueError(f"Unsupported PointField datatype {datatype} for field '{name}'")
        formats.append(endian + _FIELD_FORMATS[datatype])
        offsets.append(offset)

    point_step = int(msg.point_step)
    dtype = np.dtype({
        "names": ["x", "y", "z"],
        "formats": formats,
        "offsets": offsets,
        "itemsize": point_step,
    })

    # Drop row padding, if any
    raw = np.frombuffer(bytes(msg.data), dtype=np.uint8)
    row_step = int(getattr(msg, "row_step", 0) or int(msg.width) * point_step)
    rows = raw[: row_step * int(msg.height)].reshape(int(msg.height), row_step)
    packed = np.ascontiguousarray(rows[:, : int(msg.width) * point_step]).tobytes()

    records = np.frombuffer(packed, dtype=dtype, count=n_points)
    xyz = np.empty((n_points, 3), dtype=np.float64)
    xyz[:, 0] = records["x"]
    xyz[:, 1] = records["y"]
    xyz[:, 2] = records["z"]
    return xyz


def decode_cloud(msg, logger=None) -> np.ndarray:
    """
    Decode a PointCloud2 for the tracker.

    A malformed message (unsupported field type, truncated buffer) is logged
    and returned as an empty (0, 3) batch, so the tracking engine handles it
    like any frame without valid points.
    """
    try:
        return pointcloud2_to_xyz(msg)
    except ValueError as e:
        if logger:
            logger.error(f"Dropping malformed point cloud: {e}")
        return np.zeros((0, 3), dtype=np.float64)


@dataclass
class FilterResult:
    """Outcome of filtering one sensor frame."""
    features: Optional[np.ndarray]  # (4, M) homogeneous, None if no valid point
    valid_count: int
    total_count: int
    valid_ratio: float
    partial: bool = False

    @property
    def empty(self) -> bool:
        return self.features is None


class CloudFilter:
    """
    Drops non-finite points and builds the (4, M) feature matrix.

    A point is valid iff x, y and z are all finite. Frames with fewer than
    `partial_image_min_points` valid points are reported as partial images;
    this is a diagnostic only.
    """

    def __init__(
        self,
        partial_image_min_points: int = constants.PARTIAL_IMAGE_MIN_POINTS,
        logger=None,
    ):
        self.partial_image_min_points = int(partial_image_min_points)
        self.logger = logger

    def filter(self, batch: np.ndarray) -> FilterResult:
        points = np.asarray(batch, dtype=np.float64).reshape(-1, 3)
        total_count = int(points.shape[0])

        valid_mask = np.all(np.isfinite(points), axis=1)
        valid_count = int(np.count_nonzero(valid_mask))
        valid_ratio = float(valid_count) / float(total_count) if total_count > 0 else 0.0

        if valid_count == 0:
            return FilterResult(
                features=None,
                valid_count=0,
                total_count=total_count,
                valid_ratio=valid_ratio,
            )

        features = np.ones((4, valid_count), dtype=np.float64)
        features[:3, :] = points[valid_mask].T

        if self.logger:
            self.logger.info(f"Got {total_count} points ({valid_count} goods)")

        partial = valid_count < self.partial_image_min_points
        if partial and self.logger:
            self.logger.error(
                f"Partial image! Missing {100.0 - valid_ratio * 100.0:.1f}% of the image "
                f"(received {valid_count})"
            )

        return FilterResult(
            features=features,
            valid_count=valid_count,
            total_count=total_count,
            valid_ratio=valid_ratio,
            partial=partial,
        )
