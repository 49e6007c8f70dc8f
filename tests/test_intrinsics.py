import logging

import cv2
import numpy as np
import pytest

from aruco_localization.errors import ConfigurationError
from aruco_localization.intrinsics import (
    CameraIntrinsics,
    camera_info_from_calibration,
    intrinsics_from_camera_info,
    normalize_distortion,
)
from aruco_localization.types import CameraInfo


def test_four_coefficients_pass_through_unchanged():
    d = [0.1, -0.2, 0.003, 0.004]
    assert np.allclose(normalize_distortion(d), d)


def test_fifth_coefficient_is_dropped():
    d = [0.1, -0.2, 0.003, 0.004, 0.5]
    assert np.allclose(normalize_distortion(d), d[:4])


@pytest.mark.parametrize("d", [[], [0.1], [0.1, 0.2, 0.3], [0.1] * 8, [0.1] * 14])
def test_other_lengths_give_zero_distortion_and_warn(d, caplog):
    with caplog.at_level(logging.WARNING, logger="aruco_localization.intrinsics"):
        out = normalize_distortion(d)
    assert out.shape == (4,)
    assert np.all(out == 0.0)
    assert any(r.levelno == logging.WARNING for r in caplog.records)


def test_valid_lengths_do_not_warn(caplog):
    with caplog.at_level(logging.WARNING, logger="aruco_localization.intrinsics"):
        normalize_distortion([0.0] * 5)
    assert not caplog.records


def test_matrix_is_reshaped_row_major():
    msg = CameraInfo(k=list(range(1, 10)), d=[0, 0, 0, 0], width=640, height=480)
    intr = intrinsics_from_camera_info(msg)
    assert np.array_equal(intr.K, np.arange(1, 10, dtype=np.float64).reshape(3, 3))
    assert intr.K[0, 1] == 2.0
    assert intr.K[1, 0] == 4.0


def test_size_is_width_height(camera_info):
    intr = intrinsics_from_camera_info(camera_info)
    assert intr.size == (640, 480)
    assert intr.is_valid()


def test_eight_coefficient_message_still_yields_valid_intrinsics(camera_info):
    camera_info.d = [0.01] * 8
    intr = intrinsics_from_camera_info(camera_info)
    assert np.all(intr.dist == 0.0)
    assert intr.is_valid()


def test_short_matrix_is_invalid():
    msg = CameraInfo(k=[500.0, 0.0, 320.0], d=[0, 0, 0, 0], width=640, height=480)
    assert not intrinsics_from_camera_info(msg).is_valid()


@pytest.mark.parametrize(
    "K,size",
    [
        (np.zeros((3, 3)), (640, 480)),
        (np.eye(3) * np.nan, (640, 480)),
        (np.eye(3), (0, 480)),
        (np.eye(2), (640, 480)),
    ],
)
def test_invalid_intrinsics(K, size):
    assert not CameraIntrinsics(K, np.zeros(4), size).is_valid()


def test_camera_info_from_calibration_file(tmp_path):
    path = tmp_path / "calib.yml"
    K = np.array([[600.0, 0.0, 320.0], [0.0, 610.0, 240.0], [0.0, 0.0, 1.0]])
    dist = np.array([[0.1], [-0.05], [0.001], [0.002], [0.01]])
    fs = cv2.FileStorage(str(path), cv2.FILE_STORAGE_WRITE)
    fs.write("camera_matrix", K)
    fs.write("dist_coeffs", dist)
    fs.write("image_width", 640)
    fs.write("image_height", 480)
    fs.release()

    msg = camera_info_from_calibration(path)
    assert msg.width == 640 and msg.height == 480
    assert np.allclose(msg.k, K.reshape(-1))
    assert len(msg.d) == 5

    intr = intrinsics_from_camera_info(msg)
    assert np.allclose(intr.K, K)
    assert np.allclose(intr.dist, dist.reshape(-1)[:4])


def test_missing_calibration_is_configuration_error(tmp_path):
    with pytest.raises(ConfigurationError):
        camera_info_from_calibration(tmp_path / "nope.yml")
