from __future__ import annotations

import csv
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional

import numpy as np

from .storage import SessionStorage
from .types import FrameTransform, PoseEstimate


class OutputSink(ABC):
    """Where the frame tree, pose estimates and annotated images go."""

    @abstractmethod
    def open(self, session_dir: Path) -> None: ...

    @abstractmethod
    def send_transforms(self, transforms: list[FrameTransform]) -> None: ...

    @abstractmethod
    def publish_estimate(self, estimate: PoseEstimate) -> None: ...

    @abstractmethod
    def publish_image(self, image: Any, stamp: float) -> None: ...

    @abstractmethod
    def close(self) -> None: ...


class NullOutput(OutputSink):
    def open(self, session_dir: Path) -> None:
        return None

    def send_transforms(self, transforms: list[FrameTransform]) -> None:
        return None

    def publish_estimate(self, estimate: PoseEstimate) -> None:
        return None

    def publish_image(self, image: Any, stamp: float) -> None:
        return None

    def close(self) -> None:
        return None


def _vec(values, n: int) -> list[float]:
    a = np.asarray(values, dtype=np.float64).reshape(-1).tolist()
    if len(a) < n:
        a += [float("nan")] * (n - len(a))
    return a[:n]


class CsvWriter:
    TRANSFORM_HEADER = [
        "stamp", "parent", "child",
        "tx", "ty", "tz",
        "qx", "qy", "qz", "qw",
    ]
    ESTIMATE_HEADER = [
        "stamp", "frame_id", "child_frame_id",
        "x", "y", "z",
        "qx", "qy", "qz", "qw",
    ]

    def __init__(self, csv_path: str, header: list[str]):
        self.csv_path = csv_path
        self.header = header
        self._fh = None
        self._w = None

    def open(self):
        self._fh = open(self.csv_path, "w", newline="")
        self._w = csv.writer(self._fh)
        self._w.writerow(self.header)

    @staticmethod
    def transform_row(tf: FrameTransform) -> list:
        return [
            f"{tf.stamp:.6f}", tf.parent, tf.child,
            *_vec(tf.translation, 3),
            *_vec(tf.quaternion(), 4),
        ]

    @staticmethod
    def estimate_row(est: PoseEstimate) -> list:
        return [
            f"{est.stamp:.6f}", est.frame_id, est.child_frame_id,
            *_vec(est.position, 3),
            *_vec(est.orientation, 4),
        ]

    def append(self, row: list) -> None:
        if self._w is None:
            return
        self._w.writerow(row)

    def close(self):
        if self._fh is not None:
            self._fh.close()
            self._fh = None
            self._w = None


class CsvOutput(OutputSink):
    """Writes transforms.csv and estimates.csv, plus annotated images when storage is given."""

    def __init__(
        self,
        transforms_name: str = "transforms.csv",
        estimates_name: str = "estimates.csv",
        storage: Optional[SessionStorage] = None,
    ):
        self.transforms_name = transforms_name
        self.estimates_name = estimates_name
        self.storage = storage
        self._transforms: Optional[CsvWriter] = None
        self._estimates: Optional[CsvWriter] = None
        self._image_idx = 0

    def open(self, session_dir: Path) -> None:
        session_dir = Path(session_dir)
        self._transforms = CsvWriter(str(session_dir / self.transforms_name), CsvWriter.TRANSFORM_HEADER)
        self._transforms.open()
        self._estimates = CsvWriter(str(session_dir / self.estimates_name), CsvWriter.ESTIMATE_HEADER)
        self._estimates.open()

    def send_transforms(self, transforms: list[FrameTransform]) -> None:
        if self._transforms is None:
            return
        for tf in transforms:
            self._transforms.append(CsvWriter.transform_row(tf))

    def publish_estimate(self, estimate: PoseEstimate) -> None:
        if self._estimates is None:
            return
        self._estimates.append(CsvWriter.estimate_row(estimate))

    def publish_image(self, image: Any, stamp: float) -> None:
        if self.storage is None or image is None:
            return
        self._image_idx += 1
        self.storage.save_annotated(self._image_idx, image)

    def close(self) -> None:
        for writer in (self._transforms, self._estimates):
            if writer is not None:
                writer.close()
        self._transforms = None
        self._estimates = None
