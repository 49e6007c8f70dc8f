import cv2
import numpy as np
from typing import Any, Tuple

from .errors import ConfigurationError
from .types import MarkerDetection


DetectorState = Tuple[Any, Any, Any]

# ArUco library dictionary names that differ from OpenCV's
_ALIASES = {
    "aruco": "aruco_original",
    "tag16h5": "apriltag_16h5",
    "tag25h9": "apriltag_25h9",
    "tag36h10": "apriltag_36h10",
    "tag36h11": "apriltag_36h11",
}

_REFINEMENT = {
    "none": "CORNER_REFINE_NONE",
    "subpix": "CORNER_REFINE_SUBPIX",
    "contour": "CORNER_REFINE_CONTOUR",
    "apriltag": "CORNER_REFINE_APRILTAG",
}


def get_dict(name: str):
    """
    Resolve a dictionary name to a cv2.aruco dictionary.

    Accepts OpenCV names with or without the ``DICT_`` prefix ("4x4_50",
    "DICT_6X6_250", "ARUCO_MIP_36h12") and ArUco library names ("TAG36h11").
    """
    key = (name or "").strip()
    if key.upper().startswith("DICT_"):
        key = key[5:]
    key = key.lower()
    key = _ALIASES.get(key, key)

    table = {attr[5:].lower(): attr for attr in dir(cv2.aruco) if attr.startswith("DICT_")}
    if key not in table:
        raise ConfigurationError(f"Unknown ArUco dictionary: {name!r}")
    code = getattr(cv2.aruco, table[key])

    if hasattr(cv2.aruco, "getPredefinedDictionary"):
        return cv2.aruco.getPredefinedDictionary(code)
    return cv2.aruco.Dictionary_get(code)


def _make_params(corner_refinement: str = "none"):
    """Create detector parameters across OpenCV versions."""
    if hasattr(cv2.aruco, "DetectorParameters_create"):
        params = cv2.aruco.DetectorParameters_create()
    else:
        params = cv2.aruco.DetectorParameters()
    method = _REFINEMENT.get((corner_refinement or "none").lower())
    if method is None:
        raise ConfigurationError(f"Unknown corner refinement method: {corner_refinement!r}")
    params.cornerRefinementMethod = getattr(cv2.aruco, method)
    return params


def build_detector(dict_name: str, corner_refinement: str = "none") -> DetectorState:
    dictionary = get_dict(dict_name)
    params = _make_params(corner_refinement)
    detector = None
    if hasattr(cv2.aruco, "ArucoDetector"):
        detector = cv2.aruco.ArucoDetector(dictionary, params)
    return dictionary, params, detector


def detect_markers(image, detector_state: DetectorState) -> list[MarkerDetection]:
    dictionary, params, detector = detector_state
    if detector is not None:
        corners, ids, _rej = detector.detectMarkers(image)
    else:
        corners, ids, _rej = cv2.aruco.detectMarkers(
            image, dictionary, parameters=params
        )

    dets: list[MarkerDetection] = []
    if ids is not None and len(ids) > 0:
        for i, mid in enumerate(ids.flatten()):
            dets.append(MarkerDetection(int(mid), np.asarray(corners[i], dtype=np.float64).reshape(4, 2)))
    return dets


class MarkerDetector:
    """Callable wrapper so the pipeline can take any ``image -> detections`` function."""

    def __init__(self, dict_name: str, corner_refinement: str = "none"):
        self.dict_name = dict_name
        self.state = build_detector(dict_name, corner_refinement)

    def __call__(self, image) -> list[MarkerDetection]:
        return detect_markers(image, self.state)
