from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

import numpy as np

from .transforms import make_transform, matrix_to_quaternion, rvec_to_matrix


@dataclass
class CameraInfo:
    """Intrinsics message as delivered by the camera driver (ROS 2 field names)."""

    k: Sequence[float]
    d: Sequence[float]
    width: int
    height: int


@dataclass
class MarkerDetection:
    marker_id: int
    corners: Any  # (4,2) ndarray, pixels


@dataclass
class MarkerObservation:
    index: int  # position in the detector report
    detection: MarkerDetection

    @property
    def marker_id(self) -> int:
        return self.detection.marker_id


@dataclass
class Pose6DoF:
    """Solver output: map pose in the camera's vision frame (x right, y down, z forward)."""

    rvec: np.ndarray  # (3,)
    tvec: np.ndarray  # (3,)
    reproj_rmse_px: float = 0.0

    def rotation_matrix(self) -> np.ndarray:
        return rvec_to_matrix(self.rvec)


@dataclass
class PoseResult:
    ok: bool
    pose: Optional[Pose6DoF] = None
    reason: str = ""

    @classmethod
    def success(cls, pose: Pose6DoF) -> "PoseResult":
        return cls(True, pose, "")

    @classmethod
    def failure(cls, reason: str) -> "PoseResult":
        return cls(False, None, reason)


@dataclass
class FrameTransform:
    parent: str
    child: str
    rotation: np.ndarray  # (3,3)
    translation: np.ndarray  # (3,)
    stamp: float

    def matrix(self) -> np.ndarray:
        return make_transform(self.rotation, self.translation)

    def quaternion(self) -> np.ndarray:
        """Rotation as (x, y, z, w)."""
        return matrix_to_quaternion(self.rotation)


@dataclass
class PoseEstimate:
    """Odometry-style pose record."""

    stamp: float
    frame_id: str
    child_frame_id: str
    position: np.ndarray  # (3,)
    orientation: np.ndarray  # (x, y, z, w)


@dataclass
class FrameResult:
    idx: int
    stamp: float
    image: Any = None
    observations: list[MarkerObservation] = field(default_factory=list)
    pose: PoseResult = field(default_factory=lambda: PoseResult.failure("not_ready"))
    transforms: list[FrameTransform] = field(default_factory=list)
    estimate: Optional[PoseEstimate] = None
    skipped: bool = False
