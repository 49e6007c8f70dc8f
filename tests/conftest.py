import cv2
import numpy as np
import pytest

from aruco_localization.config import LocalizerConfig
from aruco_localization.marker_map import MapUnits, MarkerInfo, MarkerMap
from aruco_localization.types import CameraInfo

from helpers import RecordingSink, square_corners


MARKER_SIZE_M = 0.1
MARKER_PX = 200
IMAGE_W, IMAGE_H = 640, 480
FOCAL_PX = 500.0


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def metric_map():
    return MarkerMap(
        [MarkerInfo(0, square_corners(MARKER_SIZE_M))],
        "4x4_50",
        MapUnits.METERS,
    )


@pytest.fixture
def camera_info():
    return CameraInfo(
        k=[FOCAL_PX, 0.0, IMAGE_W / 2, 0.0, FOCAL_PX, IMAGE_H / 2, 0.0, 0.0, 1.0],
        d=[0.0, 0.0, 0.0, 0.0],
        width=IMAGE_W,
        height=IMAGE_H,
    )


@pytest.fixture
def config():
    return LocalizerConfig(camera_name="testcam", corner_refinement="none")


@pytest.fixture
def marker_image():
    """White 640x480 BGR frame with marker 0 (4x4_50) centred, 200 px wide."""
    dictionary = cv2.aruco.getPredefinedDictionary(cv2.aruco.DICT_4X4_50)
    marker = cv2.aruco.generateImageMarker(dictionary, 0, MARKER_PX)
    canvas = np.full((IMAGE_H, IMAGE_W), 255, dtype=np.uint8)
    top = (IMAGE_H - MARKER_PX) // 2
    left = (IMAGE_W - MARKER_PX) // 2
    canvas[top:top + MARKER_PX, left:left + MARKER_PX] = marker
    return cv2.cvtColor(canvas, cv2.COLOR_GRAY2BGR)
