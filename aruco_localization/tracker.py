"""Marker-map pose tracker.

Two states, one way: UNINITIALIZED -> READY. The tracker becomes READY the
first time it is configured with valid intrinsics and a metric map; later
configure() calls are ignored so the parameters stay fixed for the process
lifetime.
"""

from __future__ import annotations

import enum
import logging
import threading
from typing import Optional, Sequence

import cv2
import numpy as np

from .intrinsics import CameraIntrinsics
from .marker_map import MarkerMap
from .types import MarkerObservation, Pose6DoF, PoseResult


logger = logging.getLogger(__name__)


class TrackerState(enum.Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"


class PoseTracker:
    def __init__(self, min_markers: int = 1, max_reproj_error_px: Optional[float] = None):
        if min_markers < 1:
            raise ValueError("min_markers must be >= 1")
        self.min_markers = int(min_markers)
        self.max_reproj_error_px = max_reproj_error_px
        self._lock = threading.Lock()
        self._state = TrackerState.UNINITIALIZED
        self._intrinsics: Optional[CameraIntrinsics] = None
        self._marker_map: Optional[MarkerMap] = None

    @property
    def state(self) -> TrackerState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state is TrackerState.READY

    @property
    def intrinsics(self) -> Optional[CameraIntrinsics]:
        return self._intrinsics

    @property
    def marker_map(self) -> Optional[MarkerMap]:
        return self._marker_map

    def configure(self, intrinsics: CameraIntrinsics, marker_map: MarkerMap) -> bool:
        """Try the UNINITIALIZED -> READY transition. Returns True if READY afterwards."""
        if self.is_ready:
            return True
        with self._lock:
            if self._state is TrackerState.READY:
                return True
            if not marker_map.is_expressed_in_meters():
                logger.debug("tracker not configured: marker map is not metric")
                return False
            if not intrinsics.is_valid():
                logger.debug("tracker not configured: invalid intrinsics %s", intrinsics)
                return False
            # fields are assigned before the state flips, so a reader that sees
            # READY also sees the parameters
            self._intrinsics = intrinsics
            self._marker_map = marker_map
            self._state = TrackerState.READY
        logger.info(
            "pose tracker ready: size=%s markers=%s", intrinsics.size, marker_map.ids()
        )
        return True

    def _correspondences(
        self, observations: Sequence[MarkerObservation]
    ) -> tuple[np.ndarray, np.ndarray, int]:
        obj, img = [], []
        used = 0
        for obs in observations:
            if not self._marker_map.has_marker(obs.marker_id):
                continue
            obj.append(self._marker_map.object_points(obs.marker_id))
            img.append(np.asarray(obs.detection.corners, dtype=np.float64).reshape(4, 2))
            used += 1
        if not used:
            return np.empty((0, 3)), np.empty((0, 2)), 0
        return np.vstack(obj), np.vstack(img), used

    def estimate_pose(self, observations: Sequence[MarkerObservation]) -> PoseResult:
        if not self.is_ready:
            return PoseResult.failure("not_ready")

        obj_pts, img_pts, used = self._correspondences(observations)
        if used == 0:
            return PoseResult.failure("no_markers")
        if used < self.min_markers:
            return PoseResult.failure("too_few_markers")

        K = self._intrinsics.K
        dist = self._intrinsics.dist
        try:
            ok, rvec, tvec = cv2.solvePnP(
                obj_pts, img_pts, K, dist, flags=cv2.SOLVEPNP_ITERATIVE
            )
        except cv2.error as exc:
            logger.debug("solvePnP raised on %d markers: %s", used, exc)
            return PoseResult.failure("solve_failed")

        if not ok or rvec is None or tvec is None:
            return PoseResult.failure("solve_failed")
        rvec = np.asarray(rvec, dtype=np.float64).reshape(3)
        tvec = np.asarray(tvec, dtype=np.float64).reshape(3)
        if not (np.all(np.isfinite(rvec)) and np.all(np.isfinite(tvec))):
            return PoseResult.failure("solve_failed")

        proj, _ = cv2.projectPoints(obj_pts, rvec, tvec, K, dist)
        err = proj.reshape(-1, 2) - img_pts
        rmse = float(np.sqrt(np.mean(np.sum(err * err, axis=1))))
        if self.max_reproj_error_px is not None and rmse > self.max_reproj_error_px:
            logger.debug("pose rejected: rmse %.2f px > %.2f px", rmse, self.max_reproj_error_px)
            return PoseResult.failure("reprojection")

        return PoseResult.success(Pose6DoF(rvec, tvec, rmse))
