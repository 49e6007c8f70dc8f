from __future__ import annotations

import itertools
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, Sequence

import cv2
import numpy as np

from .capture import BaseCapture
from .composer import FrameComposer
from .config import LocalizerConfig
from .detect import MarkerDetector
from .errors import FrameDecodeError
from .intrinsics import intrinsics_from_camera_info
from .logging_utils import setup_logger
from .marker_map import MarkerMap, ensure_metric, load_marker_map
from .observation import select_observations
from .output import NullOutput, OutputSink
from .tracker import PoseTracker
from .types import CameraInfo, FrameResult, MarkerDetection, MarkerObservation, Pose6DoF


Detector = Callable[[Any], Sequence[MarkerDetection]]

MARKER_COLOR = (0, 0, 255)

# sink failures that are logged and skipped per frame
OUTPUT_ERRORS = (OSError, RuntimeError, cv2.error)

NO_FRAME_BACKOFF_S = 0.01


@dataclass
class SessionSummary:
    frames_processed: int
    poses_solved: int
    skipped: int
    avg_fps: float


def decode_image(image: Any) -> np.ndarray:
    """Return a BGR8 copy of ``image``; encoded buffers are decoded."""
    if image is None:
        raise FrameDecodeError("empty frame")

    if isinstance(image, (bytes, bytearray, memoryview)):
        buf = np.frombuffer(image, dtype=np.uint8)
        if buf.size == 0:
            raise FrameDecodeError("empty frame buffer")
        decoded = cv2.imdecode(buf, cv2.IMREAD_COLOR)
        if decoded is None:
            raise FrameDecodeError("could not decode frame buffer")
        return decoded

    img = np.asarray(image)
    if img.size == 0:
        raise FrameDecodeError("empty frame")
    if img.dtype != np.uint8:
        raise FrameDecodeError(f"unsupported pixel type {img.dtype}")

    if img.ndim == 2 or (img.ndim == 3 and img.shape[2] == 1):
        return cv2.cvtColor(img, cv2.COLOR_GRAY2BGR)
    if img.ndim == 3 and img.shape[2] == 3:
        return img.copy()
    if img.ndim == 3 and img.shape[2] == 4:
        return cv2.cvtColor(img, cv2.COLOR_BGRA2BGR)
    raise FrameDecodeError(f"unsupported frame shape {img.shape}")


class FramePipeline:
    """
    Per-frame localization: decode, configure the tracker once, detect, keep
    in-map markers, solve, publish the frame tree and the annotated image.

    A frame that fails at any step is skipped; the stream keeps going.
    """

    def __init__(
        self,
        config: LocalizerConfig,
        marker_map: Optional[MarkerMap] = None,
        sink: Optional[OutputSink] = None,
        detector: Optional[Detector] = None,
        tracker: Optional[PoseTracker] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.config = config
        self.logger = logger or setup_logger(config.camera_name)

        if marker_map is None:
            marker_map = load_marker_map(config.markermap_config)
        self.marker_map = ensure_metric(marker_map, config.marker_size)

        self.sink = sink or NullOutput()
        self.detector = detector or MarkerDetector(
            self.marker_map.dictionary, config.corner_refinement
        )
        self.tracker = tracker or PoseTracker(
            min_markers=config.min_markers,
            max_reproj_error_px=config.max_reproj_error_px,
        )
        self.composer = FrameComposer(
            self.sink, config.frames, (0.0, 0.0, config.world_offset_z)
        )
        self._counter = itertools.count(1)
        self._stop_event = threading.Event()

    def stop(self) -> None:
        self._stop_event.set()

    def _configure_tracker(self, camera_info: Optional[CameraInfo]) -> None:
        if self.tracker.is_ready or camera_info is None:
            return
        intrinsics = intrinsics_from_camera_info(camera_info)
        if not self.tracker.configure(intrinsics, self.marker_map):
            self.logger.debug("tracker still waiting for valid intrinsics")

    def _draw_markers(self, image: np.ndarray, observations: list[MarkerObservation]) -> None:
        if not observations:
            return
        corners = [
            np.asarray(o.detection.corners, dtype=np.float32).reshape(1, 4, 2)
            for o in observations
        ]
        ids = np.array([o.marker_id for o in observations], dtype=np.int32).reshape(-1, 1)
        try:
            cv2.aruco.drawDetectedMarkers(image, corners, ids, MARKER_COLOR)
        except cv2.error as exc:
            self.logger.debug("drawing markers failed: %s", exc)

    def _draw_axes(self, image: np.ndarray, pose: Pose6DoF) -> None:
        intr = self.tracker.intrinsics
        try:
            cv2.drawFrameAxes(
                image,
                intr.K,
                intr.dist,
                pose.rvec,
                pose.tvec,
                self.marker_map[0].marker_size * 2,
            )
        except cv2.error as exc:
            self.logger.debug("drawing axes failed: %s", exc)

    def process(
        self,
        image: Any,
        camera_info: Optional[CameraInfo],
        stamp: Optional[float] = None,
    ) -> FrameResult:
        idx = next(self._counter)
        if stamp is None:
            stamp = time.time()

        try:
            frame = decode_image(image)
        except FrameDecodeError as exc:
            self.logger.error("frame=%d skipped: %s", idx, exc)
            return FrameResult(idx, stamp, skipped=True)

        self._configure_tracker(camera_info)

        detections = list(self.detector(frame))
        observations = select_observations(detections, self.marker_map)
        self._draw_markers(frame, observations)

        result = self.tracker.estimate_pose(observations)
        if not result.ok:
            self.logger.debug("frame=%d no pose: %s", idx, result.reason)

        try:
            transforms, estimate = self.composer.publish(result.pose, stamp)
        except OUTPUT_ERRORS as exc:
            self.logger.error("frame=%d transform output failed: %s", idx, exc)
            transforms = self.composer.compose(result.pose, stamp)
            estimate = self.composer.estimate(transforms)
        if result.ok:
            self._draw_axes(frame, result.pose)

        try:
            self.sink.publish_image(frame, stamp)
        except OUTPUT_ERRORS as exc:
            self.logger.error("frame=%d image output failed: %s", idx, exc)

        if self.config.show_output_video:
            cv2.imshow("detections", frame)
            cv2.waitKey(1)

        return FrameResult(
            idx=idx,
            stamp=stamp,
            image=frame,
            observations=observations,
            pose=result,
            transforms=transforms,
            estimate=estimate,
        )

    def run(
        self,
        capture: BaseCapture,
        camera_info: Optional[CameraInfo],
        max_frames: Optional[int] = None,
    ) -> SessionSummary:
        capture.start()
        t0 = time.time()
        frames = 0
        solved = 0
        skipped = 0

        try:
            while not self._stop_event.is_set():
                if max_frames and frames >= max_frames:
                    break

                f = capture.next_frame()
                if f is None:
                    if capture.finished:
                        break
                    skipped += 1
                    time.sleep(NO_FRAME_BACKOFF_S)
                    continue

                res = self.process(f.image, camera_info, f.stamp)
                if res.skipped:
                    skipped += 1
                    continue
                frames += 1
                if res.pose.ok:
                    solved += 1
                self.logger.info(
                    "frame=%d in_map=%d pose=%s",
                    res.idx,
                    len(res.observations),
                    "ok" if res.pose.ok else res.pose.reason,
                )
        finally:
            capture.stop()
            if self.config.show_output_video:
                cv2.destroyAllWindows()

        avg = frames / max(1e-6, (time.time() - t0))
        self.logger.info(
            "summary frames=%d solved=%d skipped=%d avg_fps=%.2f", frames, solved, skipped, avg
        )
        return SessionSummary(frames, solved, skipped, avg)
