"""
Keyframe-based ICP registration.

The tracking engine only sees the narrow `Registration` interface:

    match(features) -> Converged          (raises ConvergenceError)
    reset_tracking(features) -> None
    key_frame_created_at_last_call() -> bool

`ICPSequence` is the concrete implementation: point-to-point ICP against the
current keyframe with nearest neighbours from scipy's cKDTree, a maximum
match distance, trimmed outlier rejection and a closed-form SVD step.

Frame conventions (see geometry.se3):
    T_key_cur maps points of the current frame into the keyframe frame.
    The delta returned by match() is the motion since the previously
    matched frame, T_prev_cur = T_key_prev^{-1} ∘ T_key_cur.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional, Protocol, Tuple

import numpy as np
from scipy.spatial import cKDTree

from icp_tracker.config import ICPConfig
from icp_tracker.geometry import (
    rotation_angle,
    se3_compose,
    se3_from_rotmat_trans,
    se3_identity,
    se3_inverse,
)


class ConvergenceError(RuntimeError):
    """ICP could not align the frame against the keyframe."""


@dataclass
class Converged:
    """Successful registration of one frame."""
    delta: np.ndarray  # 4x4, motion since the previously matched frame
    match_ratio: float
    iterations: int = 0


class Registration(Protocol):
    def match(self, features: np.ndarray) -> Converged:
        ...

    def reset_tracking(self, features: np.ndarray) -> None:
        ...

    def key_frame_created_at_last_call(self) -> bool:
        ...


def best_fit_transform(source: np.ndarray, target: np.ndarray) -> np.ndarray:
    """
    Least-squares rigid transform T with T * source ≈ target (Kabsch / SVD).

    Args:
        source, target: (N, 3) corresponding points

    Returns:
        4x4 transform

    Raises:
        np.linalg.LinAlgError: the cross-covariance is not finite or the
            SVD does not converge
    """
    source = np.asarray(source, dtype=float)
    target = np.asarray(target, dtype=float)
    if source.shape != target.shape or source.ndim != 2 or source.shape[1] != 3:
        raise ValueError(f"Expected matching (N, 3) arrays, got {source.shape} and {target.shape}")

    with np.errstate(over="ignore", invalid="ignore"):
        mu_s = source.mean(axis=0)
        mu_t = target.mean(axis=0)
        H = (source - mu_s).T @ (target - mu_t)
    if not np.all(np.isfinite(H)):
        raise np.linalg.LinAlgError("cross-covariance is not finite")
    U, _, Vt = np.linalg.svd(H)
    S = np.eye(3)
    if np.linalg.det(Vt.T @ U.T) < 0:
        S[-1, -1] = -1.0
    R = Vt.T @ S @ U.T
    t = mu_t - R @ mu_s
    return se3_from_rotmat_trans(R, t)


def icp_point_to_point(
    tree: cKDTree,
    reference: np.ndarray,
    reading: np.ndarray,
    T_init: np.ndarray,
    config: ICPConfig,
) -> Tuple[np.ndarray, float, int]:
    """
    Align `reading` onto `reference`.

    Args:
        tree: cKDTree built on `reference`
        reference: (M, 3) keyframe points
        reading: (N, 3) current points
        T_init: initial guess of T_reference_reading
        config: ICP configuration

    Returns:
        (T_reference_reading, match_ratio, iterations)

    Raises:
        ConvergenceError: too few correspondences, a degenerate SVD step or
            iteration budget exhausted
    """
    n_reading = reading.shape[0]
    if n_reading < config.min_matches:
        raise ConvergenceError(
            f"reading has {n_reading} points, need at least {config.min_matches}"
        )

    T = np.array(T_init, dtype=float)
    for iteration in range(1, config.max_iterations + 1):
        moved = reading @ T[:3, :3].T + T[:3, 3]
        dist, idx = tree.query(moved, k=1, distance_upper_bound=config.max_match_dist)

        in_range = np.isfinite(dist)
        n_in_range = int(np.count_nonzero(in_range))
        match_ratio = float(n_in_range) / float(n_reading)

        # Trimmed outlier filter: keep the closest fraction of the matches
        n_keep = int(math.ceil(config.outlier_trim_ratio * n_in_range))
        if n_keep < config.min_matches:
            raise ConvergenceError(
                f"only {n_keep} correspondences left at iteration {iteration} "
                f"(need {config.min_matches})"
            )
        candidates = np.flatnonzero(in_range)
        order = np.argsort(dist[candidates], kind="stable")
        keep = candidates[order[:n_keep]]

        try:
            step = best_fit_transform(moved[keep], reference[idx[keep]])
            T = se3_compose(step, T)
        except np.linalg.LinAlgError as e:
            raise ConvergenceError(f"SVD step failed at iteration {iteration}: {e}") from e
        if not np.all(np.isfinite(T)):
            raise ConvergenceError(f"non-finite transform at iteration {iteration}")

        if (
            rotation_angle(step[:3, :3]) < config.min_diff_rot
            and float(np.linalg.norm(step[:3, 3])) < config.min_diff_trans
        ):
            return T, match_ratio, iteration

    raise ConvergenceError(
        f"no convergence after {config.max_iterations} iterations"
    )


class ICPSequence:
    """
    Tracks a sequence of clouds against a keyframe.

    - The first frame (or any frame after reset_tracking) becomes the keyframe.
    - Each match is initialised with the previous keyframe-relative pose.
    - When the match ratio drops below `keyframe_ratio_threshold` the current
      frame replaces the keyframe.
    """

    def __init__(self, config: Optional[ICPConfig] = None, logger=None):
        self.config = config or ICPConfig()
        self.logger = logger

        self._keyframe: Optional[np.ndarray] = None  # (M, 3)
        self._tree: Optional[cKDTree] = None
        self._T_key_cur = se3_identity()
        self._keyframe_created = False

        self.keyframe_count = 0
        self.last_match_ratio: Optional[float] = None

    @property
    def has_keyframe(self) -> bool:
        return self._keyframe is not None

    @property
    def keyframe_points(self) -> Optional[np.ndarray]:
        return self._keyframe

    @property
    def keyframe_pose(self) -> np.ndarray:
        """Pose of the last matched frame in the keyframe frame."""
        return self._T_key_cur.copy()

    def key_frame_created_at_last_call(self) -> bool:
        return self._keyframe_created

    def reset_tracking(self, features: np.ndarray) -> None:
        """Drop the current keyframe and adopt `features` as the new one."""
        self._set_keyframe(features)

    def match(self, features: np.ndarray) -> Converged:
        self._keyframe_created = False

        if self._tree is None:
            self._set_keyframe(features)
            self._keyframe_created = True
            self.last_match_ratio = 1.0
            return Converged(delta=se3_identity(), match_ratio=1.0)

        reading = self._reading_points(features)
        T_key_cur, match_ratio, iterations = icp_point_to_point(
            self._tree, self._keyframe, reading, self._T_key_cur, self.config
        )
        delta = se3_compose(se3_inverse(self._T_key_cur), T_key_cur)
        self.last_match_ratio = match_ratio

        if self.logger:
            self.logger.debug(
                f"ICP converged after {iterations} iterations, match ratio {match_ratio:.3f}"
            )

        if match_ratio < self.config.keyframe_ratio_threshold:
            self._set_keyframe(features)
            self._keyframe_created = True
        else:
            self._T_key_cur = T_key_cur

        return Converged(delta=delta, match_ratio=match_ratio, iterations=iterations)

    def _set_keyframe(self, features: np.ndarray) -> None:
        points = _feature_points(features)
        if points.shape[0] == 0:
            raise ValueError("Cannot create a keyframe from an empty feature set")
        self._keyframe = points
        self._tree = cKDTree(points)
        self._T_key_cur = se3_identity()
        self.keyframe_count += 1

    def _reading_points(self, features: np.ndarray) -> np.ndarray:
        points = _feature_points(features)
        limit = self.config.max_reading_points
        if limit > 0 and points.shape[0] > limit:
            idx = np.linspace(0, points.shape[0] - 1, limit).astype(np.int64)
            points = points[idx]
        return points


def _feature_points(features: np.ndarray) -> np.ndarray:
    features = np.asarray(features, dtype=float)
    if features.ndim != 2 or features.shape[0] != 4:
        raise ValueError(f"Expected (4, M) homogeneous features, got shape {features.shape}")
    return np.ascontiguousarray(features[:3, :].T)


__all__ = [
    "ConvergenceError",
    "Converged",
    "ICPSequence",
    "Registration",
    "best_fit_transform",
    "icp_point_to_point",
]
