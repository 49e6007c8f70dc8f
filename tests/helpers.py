import cv2
import numpy as np

from aruco_localization.output import OutputSink


def square_corners(size: float, center=(0.0, 0.0)) -> np.ndarray:
    """Marker corners in map coordinates: top-left first, clockwise, y up."""
    h = size / 2
    cx, cy = center
    return np.array(
        [
            [cx - h, cy + h, 0.0],
            [cx + h, cy + h, 0.0],
            [cx + h, cy - h, 0.0],
            [cx - h, cy - h, 0.0],
        ]
    )


def write_marker_map(path, raw: dict) -> None:
    """Save ``raw`` the way the ArUco library does: FileStorage YAML, one flow map per marker."""
    fs = cv2.FileStorage(str(path), cv2.FILE_STORAGE_WRITE)
    for key in ("aruco_bc_dict", "aruco_bc_nmarkers", "aruco_bc_mInfoType"):
        if key in raw:
            fs.write(key, raw[key])
    if "aruco_bc_markers" in raw:
        fs.startWriteStruct("aruco_bc_markers", cv2.FileNode_SEQ)
        for marker in raw["aruco_bc_markers"]:
            fs.startWriteStruct("", cv2.FileNode_MAP | cv2.FileNode_FLOW)
            fs.write("id", int(marker["id"]))
            fs.startWriteStruct("corners", cv2.FileNode_SEQ | cv2.FileNode_FLOW)
            for corner in marker["corners"]:
                fs.startWriteStruct("", cv2.FileNode_SEQ | cv2.FileNode_FLOW)
                for value in corner:
                    fs.write("", float(value))
                fs.endWriteStruct()
            fs.endWriteStruct()
            fs.endWriteStruct()
        fs.endWriteStruct()
    fs.release()


class RecordingSink(OutputSink):
    def __init__(self):
        self.transforms = []
        self.batches = []
        self.estimates = []
        self.images = []
        self.opened = False
        self.closed = False

    def open(self, session_dir):
        self.opened = True

    def send_transforms(self, transforms):
        self.batches.append(list(transforms))
        self.transforms.extend(transforms)

    def publish_estimate(self, estimate):
        self.estimates.append(estimate)

    def publish_image(self, image, stamp):
        self.images.append((image, stamp))

    def close(self):
        self.closed = True
