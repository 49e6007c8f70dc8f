"""Marker map: the fixed 3D layout of the fiducials the camera localizes against."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Optional, Sequence

import cv2
import numpy as np

from .errors import ConfigurationError
from .types import MarkerDetection


logger = logging.getLogger(__name__)


class MapUnits(enum.IntEnum):
    # values match aruco_bc_mInfoType in marker-map files
    PIXELS = 0
    METERS = 1


@dataclass(frozen=True, eq=False)
class MarkerInfo:
    marker_id: int
    corners: np.ndarray  # (4,3), same order as the detector's corners

    def __post_init__(self):
        corners = np.array(self.corners, dtype=np.float64)
        corners.setflags(write=False)
        object.__setattr__(self, "corners", corners)

    @property
    def marker_size(self) -> float:
        return float(np.linalg.norm(self.corners[0] - self.corners[1]))


class MarkerMap:
    def __init__(self, markers: Iterable[MarkerInfo], dictionary: str, units: MapUnits):
        self._markers = tuple(markers)
        self.dictionary = dictionary
        self.units = MapUnits(units)
        self._by_id = {m.marker_id: m for m in self._markers}
        if len(self._by_id) != len(self._markers):
            raise ConfigurationError("Marker map contains duplicate marker ids")

    def __len__(self) -> int:
        return len(self._markers)

    def __getitem__(self, idx: int) -> MarkerInfo:
        return self._markers[idx]

    def __iter__(self):
        return iter(self._markers)

    def __repr__(self) -> str:
        return f"MarkerMap(dictionary={self.dictionary!r}, units={self.units.name}, ids={self.ids()})"

    def is_expressed_in_meters(self) -> bool:
        return self.units == MapUnits.METERS

    def is_expressed_in_pixels(self) -> bool:
        return self.units == MapUnits.PIXELS

    def ids(self) -> list[int]:
        return [m.marker_id for m in self._markers]

    def has_marker(self, marker_id: int) -> bool:
        return marker_id in self._by_id

    def marker(self, marker_id: int) -> MarkerInfo:
        return self._by_id[marker_id]

    def object_points(self, marker_id: int) -> np.ndarray:
        return self.marker(marker_id).corners

    def get_indices(self, detections: Sequence[MarkerDetection]) -> list[int]:
        """Indices into ``detections`` of the markers that belong to this map."""
        return [i for i, det in enumerate(detections) if det.marker_id in self._by_id]

    def convert_to_meters(self, marker_size: float) -> "MarkerMap":
        """
        Rescale a pixel map into meters.

        Each marker is scaled by ``marker_size / |c0 - c1|``, i.e. its own edge
        length in pixels is the calibration anchor. Returns a new map.
        """
        if not self.is_expressed_in_pixels():
            raise ConfigurationError("Marker map is already expressed in meters")
        size = float(marker_size)
        if not np.isfinite(size) or size <= 0:
            raise ConfigurationError(f"marker_size must be positive, got {marker_size}")

        converted = []
        for m in self._markers:
            pix_size = m.marker_size
            if pix_size <= 0:
                raise ConfigurationError(f"Marker {m.marker_id} has a degenerate edge")
            converted.append(MarkerInfo(m.marker_id, m.corners * (size / pix_size)))
        return MarkerMap(converted, self.dictionary, MapUnits.METERS)


def ensure_metric(marker_map: MarkerMap, marker_size: float) -> MarkerMap:
    if marker_map.is_expressed_in_pixels():
        logger.info("converting marker map to meters (marker_size=%.4f)", marker_size)
        return marker_map.convert_to_meters(marker_size)
    return marker_map


def _parse_corners(marker_id: int, raw: Any) -> np.ndarray:
    try:
        corners = np.asarray(raw, dtype=np.float64)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Marker {marker_id}: corners are not numeric") from exc
    if corners.shape != (4, 3):
        raise ConfigurationError(
            f"Marker {marker_id}: corners must be 4x3, got shape {corners.shape}"
        )
    return corners


def marker_map_from_dict(raw: dict[str, Any]) -> MarkerMap:
    for key in ("aruco_bc_dict", "aruco_bc_mInfoType", "aruco_bc_markers"):
        if key not in raw:
            raise ConfigurationError(f"Marker map is missing required key: {key}")

    try:
        units = MapUnits(int(raw["aruco_bc_mInfoType"]))
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(
            f"aruco_bc_mInfoType must be 0 (pixels) or 1 (meters), got {raw['aruco_bc_mInfoType']!r}"
        ) from exc

    markers_raw = raw["aruco_bc_markers"]
    if not isinstance(markers_raw, list) or not markers_raw:
        raise ConfigurationError("aruco_bc_markers must be a non-empty list")

    markers = []
    for entry in markers_raw:
        if not isinstance(entry, dict) or "id" not in entry or "corners" not in entry:
            raise ConfigurationError("Each marker needs an 'id' and 'corners'")
        marker_id = int(entry["id"])
        markers.append(MarkerInfo(marker_id, _parse_corners(marker_id, entry["corners"])))

    expected: Optional[int] = raw.get("aruco_bc_nmarkers")
    if expected is not None and int(expected) != len(markers):
        raise ConfigurationError(
            f"aruco_bc_nmarkers is {expected} but {len(markers)} markers are listed"
        )

    return MarkerMap(markers, str(raw["aruco_bc_dict"]), units)


def _node_value(node: cv2.FileNode) -> Any:
    """FileStorage node -> plain Python values (dict, list, int, float, str)."""
    if node.isMap():
        keys = node.keys()
        if {"rows", "cols", "data"} <= set(keys):
            return node.mat().tolist()
        return {key: _node_value(node.getNode(key)) for key in keys}
    if node.isSeq():
        return [_node_value(node.at(i)) for i in range(node.size())]
    if node.isInt():
        return int(node.real())
    if node.isReal():
        return node.real()
    if node.isString():
        return node.string()
    return None


def load_marker_map(path: str | Path) -> MarkerMap:
    """Read a marker map as written by the ArUco library (OpenCV FileStorage YAML)."""
    p = Path(path)
    if not p.exists():
        raise ConfigurationError(f"Marker map not found: {p}")

    try:
        fs = cv2.FileStorage(str(p), cv2.FILE_STORAGE_READ)
    except cv2.error as exc:
        raise ConfigurationError(f"Marker map could not be parsed: {p}: {exc}") from exc
    try:
        if not fs.isOpened():
            raise ConfigurationError(f"Marker map could not be opened: {p}")
        root = fs.root()
        if not root.isMap():
            raise ConfigurationError("Marker map root must be a mapping")
        raw = _node_value(root)
    finally:
        fs.release()

    mm = marker_map_from_dict(raw)
    logger.info("loaded marker map %s: %s", p, mm)
    return mm
