"""
Frontend package for the ICP tracker.

Pure I/O and data wrangling: PointCloud2 decoding and bad-point filtering.
No registration math here.

Usage:
    from icp_tracker.frontend import CloudFilter, pointcloud2_to_xyz
"""

from __future__ import annotations

from icp_tracker.frontend.cloud_filter import (
    CloudFilter,
    FilterResult,
    decode_cloud,
    pointcloud2_to_xyz,
)

__all__ = [
    "CloudFilter",
    "FilterResult",
    "decode_cloud",
    "pointcloud2_to_xyz",
]
