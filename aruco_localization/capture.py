import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import cv2
import numpy as np


IMAGE_SUFFIXES = (".png", ".jpg", ".jpeg", ".bmp")


@dataclass
class Frame:
    idx: int
    stamp: float  # seconds since epoch
    image: Any  # BGR array, or None when the source returned nothing usable


class BaseCapture(ABC):
    @abstractmethod
    def start(self) -> None: ...

    @abstractmethod
    def next_frame(self) -> Frame | None: ...

    @abstractmethod
    def stop(self) -> None: ...

    @property
    def finished(self) -> bool:
        """True once a finite source has nothing left to read."""
        return False


def open_video_source(source: int | str) -> cv2.VideoCapture:
    """Open a camera index, a /dev/videoN node (V4L2), or a file/stream URL."""
    if isinstance(source, int):
        return cv2.VideoCapture(source, cv2.CAP_V4L2)
    match = re.match(r"^/dev/video(\d+)$", str(source))
    if match:
        return cv2.VideoCapture(int(match.group(1)), cv2.CAP_V4L2)
    return cv2.VideoCapture(str(source))


class USBOpenCVCapture(BaseCapture):
    def __init__(self, device: int | str, fps: int, width: int, height: int):
        self.device = device
        self.fps = fps
        self.width = width
        self.height = height
        self.cap: Any = None
        self.idx = 0

    def start(self) -> None:
        self.cap = open_video_source(self.device)
        for prop, value in (
            (cv2.CAP_PROP_FRAME_WIDTH, self.width),
            (cv2.CAP_PROP_FRAME_HEIGHT, self.height),
            (cv2.CAP_PROP_FPS, self.fps),
        ):
            self.cap.set(prop, value)

        if not self.cap.isOpened():
            raise RuntimeError(f"Failed to open camera: {self.device}")

    def next_frame(self) -> Frame | None:
        ok, img = self.cap.read()
        if not ok:
            return None
        self.idx += 1
        return Frame(self.idx, time.time(), img)

    def stop(self) -> None:
        if self.cap is not None:
            self.cap.release()
            self.cap = None


class ImageFolderCapture(BaseCapture):
    """
    Replays a folder of still images in name order, for offline localization
    of a recorded session. Frames are stamped ``start + n / fps``.
    """

    def __init__(self, folder: str | Path, fps: int = 30):
        self.folder = Path(folder)
        self.fps = fps
        self.paths: list[Path] = []
        self.idx = 0
        self._t0 = 0.0

    def start(self) -> None:
        if not self.folder.is_dir():
            raise RuntimeError(f"Image folder not found: {self.folder}")
        self.paths = sorted(
            p for p in self.folder.iterdir() if p.suffix.lower() in IMAGE_SUFFIXES
        )
        self.idx = 0
        self._t0 = time.time()

    @property
    def finished(self) -> bool:
        return self.idx >= len(self.paths)

    def next_frame(self) -> Frame | None:
        if self.finished:
            return None
        path = self.paths[self.idx]
        self.idx += 1
        stamp = self._t0 + (self.idx - 1) / self.fps if self.fps > 0 else time.time()
        # unreadable files come through as image=None and are skipped downstream
        return Frame(self.idx, stamp, cv2.imread(str(path), cv2.IMREAD_COLOR))

    def stop(self) -> None:
        self.paths = []


class SyntheticCapture(BaseCapture):
    """Blank frames at a fixed rate, for dry runs."""

    def __init__(self, fps: int, width: int, height: int):
        self.fps = fps
        self.width = width
        self.height = height
        self.idx = 0
        self._last = 0.0

    def start(self) -> None:
        self._last = time.time()

    def next_frame(self) -> Frame | None:
        if self.fps > 0:
            time.sleep(max(0.0, (1.0 / self.fps) - (time.time() - self._last)))
        self._last = time.time()
        self.idx += 1
        return Frame(self.idx, self._last, np.zeros((self.height, self.width, 3), dtype=np.uint8))

    def stop(self) -> None:
        return None
