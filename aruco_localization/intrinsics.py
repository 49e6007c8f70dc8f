"""Camera intrinsics normalization.

The pose solver takes exactly four distortion coefficients (k1, k2, p1, p2).
Driver messages carry a variable-length ``d`` and a flat row-major ``k``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

import cv2
import numpy as np

from .errors import ConfigurationError
from .types import CameraInfo


logger = logging.getLogger(__name__)

DIST_COEFF_COUNT = 4


@dataclass(frozen=True)
class CameraIntrinsics:
    K: np.ndarray  # (3,3)
    dist: np.ndarray  # (4,)
    size: tuple[int, int]  # (width, height)

    def is_valid(self) -> bool:
        K = np.asarray(self.K)
        if K.shape != (3, 3) or not np.all(np.isfinite(K)):
            return False
        if K[0, 0] <= 0 or K[1, 1] <= 0:
            return False
        if np.asarray(self.dist).shape != (DIST_COEFF_COUNT,):
            return False
        width, height = self.size
        return width > 0 and height > 0


def normalize_distortion(d: Sequence[float]) -> np.ndarray:
    coeffs = [float(v) for v in d]
    if len(coeffs) in (4, 5):
        return np.array(coeffs[:DIST_COEFF_COUNT], dtype=np.float64)
    logger.warning(
        "Length of distortion vector is %d (expected 4 or 5), assuming zero distortion.",
        len(coeffs),
    )
    return np.zeros(DIST_COEFF_COUNT, dtype=np.float64)


def intrinsics_from_camera_info(msg: CameraInfo) -> CameraIntrinsics:
    values = [float(v) for v in msg.k]
    K = np.zeros((3, 3), dtype=np.float64)
    if len(values) == 9:
        for i, v in enumerate(values):
            K[i // 3, i % 3] = v
    else:
        # leaves K all-zero, which is_valid() rejects
        logger.warning("Intrinsic matrix has %d values (expected 9).", len(values))
    dist = normalize_distortion(msg.d)
    return CameraIntrinsics(K, dist, (int(msg.width), int(msg.height)))


def camera_info_from_calibration(path: str | Path) -> CameraInfo:
    """Read an OpenCV calibration YAML into a CameraInfo message."""
    p = Path(path)
    if not p.exists():
        raise ConfigurationError(f"Calibration not found: {p}")
    fs = cv2.FileStorage(str(p), cv2.FILE_STORAGE_READ)
    try:
        K = fs.getNode("camera_matrix").mat()
        dist = fs.getNode("dist_coeffs").mat()
        w = int(fs.getNode("image_width").real())
        h = int(fs.getNode("image_height").real())
    finally:
        fs.release()
    if K is None:
        raise ConfigurationError(f"camera_matrix missing in calibration: {p}")
    d = [] if dist is None else np.asarray(dist, dtype=np.float64).reshape(-1).tolist()
    return CameraInfo(np.asarray(K, dtype=np.float64).reshape(-1).tolist(), d, w, h)
