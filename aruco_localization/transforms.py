"""SE(3) transformation utilities for marker-map pose handling."""

import numpy as np
import cv2
from scipy.spatial.transform import Rotation


def rvec_to_matrix(rvec: np.ndarray) -> np.ndarray:
    """Unpack a Rodrigues rotation vector into a 3x3 rotation matrix."""
    rvec = np.asarray(rvec, dtype=np.float64).reshape(3)
    R, _ = cv2.Rodrigues(rvec)
    return R


def make_transform(R: np.ndarray, t: np.ndarray) -> np.ndarray:
    """Build a 4x4 homogeneous matrix from a rotation matrix and a translation."""
    T = np.eye(4)
    T[:3, :3] = np.asarray(R, dtype=np.float64).reshape(3, 3)
    T[:3, 3] = np.asarray(t, dtype=np.float64).reshape(3)
    return T


def compose_transforms(*chain: np.ndarray) -> np.ndarray:
    """Chain 4x4 transforms parent-first: compose(T_a_b, T_b_c) == T_a_c."""
    out = np.eye(4)
    for T in chain:
        out = out @ np.asarray(T, dtype=np.float64)
    return out


def rpy_to_matrix(roll: float, pitch: float, yaw: float) -> np.ndarray:
    """
    Fixed-axis roll/pitch/yaw to rotation matrix.

    Same convention as tf's ``Quaternion.setRPY``: R = Rz(yaw) @ Ry(pitch) @ Rx(roll).
    """
    return Rotation.from_euler("xyz", [roll, pitch, yaw]).as_matrix()


def matrix_to_quaternion(R: np.ndarray) -> np.ndarray:
    """Rotation matrix to quaternion in (x, y, z, w) order."""
    return Rotation.from_matrix(np.asarray(R, dtype=np.float64).reshape(3, 3)).as_quat()

