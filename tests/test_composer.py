import numpy as np

from aruco_localization.composer import (
    CAMERA_TO_BODY_RPY,
    MAP_TO_WORLD_OFFSET,
    VISION_TO_NAV,
    FrameComposer,
    aruco_to_nav,
)
from aruco_localization.config import FrameNames
from aruco_localization.transforms import rpy_to_matrix
from aruco_localization.types import Pose6DoF


def _pose(rvec=(0.0, 0.0, 0.0), tvec=(0.0, 0.0, 0.0)):
    return Pose6DoF(np.array(rvec, dtype=float), np.array(tvec, dtype=float))


def _by_pair(transforms):
    return {(tf.parent, tf.child): tf for tf in transforms}


def test_remap_matrix_is_a_proper_rotation():
    assert np.allclose(VISION_TO_NAV @ VISION_TO_NAV.T, np.eye(3))
    assert np.isclose(np.linalg.det(VISION_TO_NAV), 1.0)


def test_identity_pose_maps_to_remap_matrix(sink):
    tf = FrameComposer(sink).dynamic_transform(_pose(), stamp=1.0)
    assert (tf.parent, tf.child) == ("aruco", "camera")
    assert np.allclose(tf.rotation, VISION_TO_NAV.T)
    assert np.allclose(tf.rotation, VISION_TO_NAV)
    assert np.allclose(tf.translation, [0.0, 0.0, 0.0])


def test_remap_is_right_multiplied():
    rvec = np.array([0.3, -0.2, 0.9])
    tvec = np.array([0.1, 0.2, 1.5])
    rot, trans = aruco_to_nav(rvec, tvec)
    R = _pose(rvec).rotation_matrix()
    assert np.allclose(rot, R @ VISION_TO_NAV.T)
    # axis mapping: nav x = -vision x, nav y = vision z, nav z = vision y
    assert np.allclose(rot[:, 0], -R[:, 0])
    assert np.allclose(rot[:, 1], R[:, 2])
    assert np.allclose(rot[:, 2], R[:, 1])
    assert np.allclose(trans, tvec)


def test_static_transforms_are_constant(sink):
    composer = FrameComposer(sink)
    first = _by_pair(composer.static_transforms(1.0))
    second = _by_pair(composer.static_transforms(2.0))

    world = first[("world", "aruco")]
    assert np.allclose(world.rotation, np.eye(3))
    assert np.allclose(world.translation, [0.0, 0.0, -0.4064])
    assert np.allclose(world.translation, MAP_TO_WORLD_OFFSET)

    body = first[("camera", "body")]
    assert np.allclose(body.translation, [0.0, 0.0, 0.0])
    assert np.allclose(body.rotation, rpy_to_matrix(*CAMERA_TO_BODY_RPY))
    assert np.allclose(body.rotation, [[0.0, 0.0, -1.0], [0.0, 1.0, 0.0], [1.0, 0.0, 0.0]])

    for key in first:
        assert np.allclose(first[key].rotation, second[key].rotation)
        assert np.allclose(first[key].translation, second[key].translation)
    assert second[("world", "aruco")].stamp == 2.0


def test_publish_with_pose_sends_full_chain(sink):
    composer = FrameComposer(sink)
    transforms, estimate = composer.publish(_pose(tvec=(0.1, 0.2, 0.3)), stamp=5.0)

    pairs = [(tf.parent, tf.child) for tf in transforms]
    assert pairs == [("world", "aruco"), ("aruco", "camera"), ("camera", "body")]
    assert len(sink.batches) == 1
    assert all(a is b for a, b in zip(sink.batches[0], transforms))
    assert all(tf.stamp == 5.0 for tf in transforms)

    assert estimate is not None
    assert len(sink.estimates) == 1 and sink.estimates[0] is estimate
    assert (estimate.frame_id, estimate.child_frame_id) == ("world", "camera")
    assert np.allclose(estimate.position, [0.1, 0.2, 0.3 - 0.4064])


def test_publish_without_pose_sends_statics_only(sink):
    composer = FrameComposer(sink)
    transforms, estimate = composer.publish(None, stamp=5.0)

    pairs = {(tf.parent, tf.child) for tf in transforms}
    assert pairs == {("world", "aruco"), ("camera", "body")}
    assert estimate is None
    assert sink.estimates == []


def test_custom_frame_names_and_offset(sink):
    names = FrameNames(world="map", map="markers", camera="cam", body="base_link")
    composer = FrameComposer(sink, frames=names, world_offset=(0.0, 0.0, -1.0))
    transforms = composer.compose(_pose(), stamp=0.0)
    pairs = _by_pair(transforms)
    assert set(pairs) == {("map", "markers"), ("markers", "cam"), ("cam", "base_link")}
    assert np.allclose(pairs[("map", "markers")].translation, [0.0, 0.0, -1.0])


def test_quaternion_of_dynamic_transform(sink):
    tf = FrameComposer(sink).dynamic_transform(_pose(), stamp=0.0)
    q = tf.quaternion()
    assert np.isclose(np.linalg.norm(q), 1.0)
    assert np.allclose(tf.matrix()[:3, :3], VISION_TO_NAV)
