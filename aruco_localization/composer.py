"""Turn solver poses into the navigation frame tree.

Published tree (parent -> child)::

    world -> aruco -> camera -> body

``world -> aruco`` and ``camera -> body`` are constants; ``aruco -> camera``
comes from the tracker and is only published on frames where a pose was solved.
"""

from __future__ import annotations

import math
import time
from typing import Optional

import numpy as np

from .config import FrameNames
from .output import OutputSink
from .transforms import compose_transforms, matrix_to_quaternion, rpy_to_matrix, rvec_to_matrix
from .types import FrameTransform, Pose6DoF, PoseEstimate


# Vision convention (x right, y down, z forward) to navigation convention.
# Applied as rot @ VISION_TO_NAV.T:
#   nav x = -vision x
#   nav y =  vision z
#   nav z =  vision y
VISION_TO_NAV = np.array(
    [
        [-1.0, 0.0, 0.0],
        [0.0, 0.0, 1.0],
        [0.0, 1.0, 0.0],
    ]
)

# camera -> body: pitch the body frame down onto the optical axis, no offset.
CAMERA_TO_BODY_RPY = (0.0, -math.pi / 2, 0.0)
CAMERA_TO_BODY_TRANSLATION = (0.0, 0.0, 0.0)

# world -> aruco: mounting height of the marker map below the world origin.
MAP_TO_WORLD_OFFSET = (0.0, 0.0, -0.4064)


def aruco_to_nav(rvec: np.ndarray, tvec: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Solver rvec/tvec to (rotation, translation) in the navigation convention."""
    rot = rvec_to_matrix(rvec) @ VISION_TO_NAV.T
    return rot, np.asarray(tvec, dtype=np.float64).reshape(3).copy()


class FrameComposer:
    def __init__(
        self,
        sink: OutputSink,
        frames: Optional[FrameNames] = None,
        world_offset: tuple[float, float, float] = MAP_TO_WORLD_OFFSET,
    ):
        self.sink = sink
        self.frames = frames or FrameNames()
        self._world_to_map = np.asarray(world_offset, dtype=np.float64).reshape(3)
        self._camera_to_body = rpy_to_matrix(*CAMERA_TO_BODY_RPY)

    def dynamic_transform(self, pose: Pose6DoF, stamp: float) -> FrameTransform:
        rot, trans = aruco_to_nav(pose.rvec, pose.tvec)
        return FrameTransform(self.frames.map, self.frames.camera, rot, trans, stamp)

    def static_transforms(self, stamp: float) -> list[FrameTransform]:
        return [
            FrameTransform(
                self.frames.world,
                self.frames.map,
                np.eye(3),
                self._world_to_map.copy(),
                stamp,
            ),
            FrameTransform(
                self.frames.camera,
                self.frames.body,
                self._camera_to_body.copy(),
                np.asarray(CAMERA_TO_BODY_TRANSLATION, dtype=np.float64),
                stamp,
            ),
        ]

    def compose(self, pose: Optional[Pose6DoF], stamp: float) -> list[FrameTransform]:
        """Full chain in tree order; the dynamic link is left out when pose is None."""
        world_map, camera_body = self.static_transforms(stamp)
        if pose is None:
            return [world_map, camera_body]
        return [world_map, self.dynamic_transform(pose, stamp), camera_body]

    def estimate(self, transforms: list[FrameTransform]) -> Optional[PoseEstimate]:
        """Camera pose in the world frame, or None without the dynamic link."""
        by_child = {tf.child: tf for tf in transforms}
        world_map = by_child.get(self.frames.map)
        map_camera = by_child.get(self.frames.camera)
        if world_map is None or map_camera is None:
            return None
        T = compose_transforms(world_map.matrix(), map_camera.matrix())
        return PoseEstimate(
            stamp=map_camera.stamp,
            frame_id=self.frames.world,
            child_frame_id=self.frames.camera,
            position=T[:3, 3].copy(),
            orientation=matrix_to_quaternion(T[:3, :3]),
        )

    def publish(
        self, pose: Optional[Pose6DoF], stamp: Optional[float] = None
    ) -> tuple[list[FrameTransform], Optional[PoseEstimate]]:
        if stamp is None:
            stamp = time.time()
        transforms = self.compose(pose, stamp)
        self.sink.send_transforms(transforms)
        estimate = self.estimate(transforms)
        if estimate is not None:
            self.sink.publish_estimate(estimate)
        return transforms, estimate
