"""
Render OpenPose skeleton records into a square control image.

All records share one bounding-box fit so multiple people keep their relative
placement. Colors are given in RGB and converted when drawing on the BGR canvas.
"""

import math
from typing import Any, Iterable, Iterator, List, Optional, Sequence, Tuple

import cv2
import numpy as np

from geometry import FitTransform, bounding_box, fit_transform
from image_io import encode_png
from pose_types import (
    BODY_KEYPOINT_COUNT,
    FACE_KEYPOINT_COUNT,
    HAND_KEYPOINT_COUNT,
    PoseDocument,
    SkeletonRecord,
)
from skeleton_layout import (
    BODY_CONNECTIONS,
    BODY_JOINTS,
    HAND_CONNECTIONS,
    HEAD_CONNECTIONS,
    HEAD_JOINTS,
    OP_L_ANKLE,
    OP_L_ELBOW,
    OP_L_HIP,
    OP_L_KNEE,
    OP_L_SHOULDER,
    OP_L_WRIST,
    OP_NECK,
    OP_NOSE,
    OP_R_ANKLE,
    OP_R_ELBOW,
    OP_R_HIP,
    OP_R_KNEE,
    OP_R_SHOULDER,
    OP_R_WRIST,
)

RENDER_CONFIDENCE_THRESHOLD = 0.1
DEFAULT_CANVAS_SIZE = 1024
DEFAULT_PADDING = 100

RED = (255, 0, 0)
BLUE = (0, 0, 255)
ORANGE = (255, 128, 0)
GREEN = (0, 255, 0)
MAGENTA = (255, 0, 255)
YELLOW_GREEN = (170, 255, 0)
GOLD = (255, 215, 0)
WHITE = (255, 255, 255)
BACKGROUND = (0, 0, 0)

BONE_COLORS = {
    (OP_NECK, OP_NOSE): RED,
    (OP_R_SHOULDER, OP_L_SHOULDER): RED,
    (OP_R_HIP, OP_L_HIP): BLUE,
    (OP_R_SHOULDER, OP_R_HIP): ORANGE,
    (OP_L_SHOULDER, OP_L_HIP): GREEN,
    (OP_R_SHOULDER, OP_R_ELBOW): ORANGE,
    (OP_R_ELBOW, OP_R_WRIST): ORANGE,
    (OP_L_SHOULDER, OP_L_ELBOW): GREEN,
    (OP_L_ELBOW, OP_L_WRIST): GREEN,
    (OP_R_HIP, OP_R_KNEE): BLUE,
    (OP_R_KNEE, OP_R_ANKLE): BLUE,
    (OP_L_HIP, OP_L_KNEE): GREEN,
    (OP_L_KNEE, OP_L_ANKLE): GREEN,
}
HEAD_COLOR = MAGENTA
LEFT_HAND_COLOR = YELLOW_GREEN
RIGHT_HAND_COLOR = GOLD
JOINT_COLOR = WHITE

BODY_LINE_WIDTH = 8
HAND_LINE_WIDTH = 4
BODY_JOINT_RADIUS = 6
HAND_JOINT_RADIUS = 3
FACE_POINT_RADIUS = 2

Point = Tuple[float, float]


def _bgr(rgb: Tuple[int, int, int]) -> Tuple[int, int, int]:
    return rgb[2], rgb[1], rgb[0]


def _keypoint_array(record: Any, field: str) -> Sequence:
    # Records may be SkeletonRecord objects or plain OpenPose JSON dicts.
    if isinstance(record, dict):
        value = record.get(field)
    else:
        value = getattr(record, field, None)
    return value if isinstance(value, (list, tuple, np.ndarray)) else ()


def _keypoint(keypoints: Sequence, idx: int) -> Optional[Point]:
    """Return (x, y) for a confident, finite keypoint; otherwise None."""
    base = idx * 3
    if base + 2 >= len(keypoints):
        return None
    try:
        x = float(keypoints[base])
        y = float(keypoints[base + 1])
        c = float(keypoints[base + 2])
    except (TypeError, ValueError):
        return None
    if not (c > RENDER_CONFIDENCE_THRESHOLD and math.isfinite(x) and math.isfinite(y)):
        return None
    return x, y


def _confident_points(keypoints: Sequence, count: int) -> Iterator[Point]:
    for i in range(count):
        pt = _keypoint(keypoints, i)
        if pt is not None:
            yield pt


def _record_points(record: Any) -> Iterator[Point]:
    yield from _confident_points(_keypoint_array(record, "pose_keypoints_2d"), BODY_KEYPOINT_COUNT)
    yield from _confident_points(_keypoint_array(record, "hand_left_keypoints_2d"), HAND_KEYPOINT_COUNT)
    yield from _confident_points(_keypoint_array(record, "hand_right_keypoints_2d"), HAND_KEYPOINT_COUNT)
    yield from _confident_points(_keypoint_array(record, "face_keypoints_2d"), FACE_KEYPOINT_COUNT)


def _to_pixel(pt: Optional[Point], transform: FitTransform) -> Optional[Tuple[int, int]]:
    if pt is None:
        return None
    x, y = transform.apply(*pt)
    if not (math.isfinite(x) and math.isfinite(y)):
        return None
    return int(round(x)), int(round(y))


def _draw_bones(
    canvas: np.ndarray,
    keypoints: Sequence,
    connections: Iterable[Tuple[int, int]],
    transform: FitTransform,
    color_for,
    width: int,
) -> None:
    for a, b in connections:
        pa = _to_pixel(_keypoint(keypoints, a), transform)
        pb = _to_pixel(_keypoint(keypoints, b), transform)
        if pa is None or pb is None:
            continue
        cv2.line(canvas, pa, pb, _bgr(color_for((a, b))), width)


def _draw_joints(
    canvas: np.ndarray, keypoints: Sequence, indices: Iterable[int], transform: FitTransform, radius: int
) -> None:
    for i in indices:
        pt = _to_pixel(_keypoint(keypoints, i), transform)
        if pt is None:
            continue
        cv2.circle(canvas, pt, radius, _bgr(JOINT_COLOR), -1)


def _draw_record(
    canvas: np.ndarray,
    record: Any,
    transform: FitTransform,
    draw_body: bool,
    draw_face: bool,
    draw_hands: bool,
) -> None:
    pose = _keypoint_array(record, "pose_keypoints_2d")
    face = _keypoint_array(record, "face_keypoints_2d")
    left = _keypoint_array(record, "hand_left_keypoints_2d")
    right = _keypoint_array(record, "hand_right_keypoints_2d")

    if draw_body:
        _draw_bones(canvas, pose, BODY_CONNECTIONS, transform, lambda bone: BONE_COLORS[bone], BODY_LINE_WIDTH)
    if draw_face:
        _draw_bones(canvas, pose, HEAD_CONNECTIONS, transform, lambda bone: HEAD_COLOR, BODY_LINE_WIDTH)
    if draw_hands:
        _draw_bones(canvas, left, HAND_CONNECTIONS, transform, lambda bone: LEFT_HAND_COLOR, HAND_LINE_WIDTH)
        _draw_bones(canvas, right, HAND_CONNECTIONS, transform, lambda bone: RIGHT_HAND_COLOR, HAND_LINE_WIDTH)

    # Joints go on top of every bone.
    if draw_body:
        _draw_joints(canvas, pose, BODY_JOINTS, transform, BODY_JOINT_RADIUS)
    if draw_face:
        head_joints = HEAD_JOINTS if draw_body else (OP_NOSE,) + HEAD_JOINTS
        _draw_joints(canvas, pose, head_joints, transform, BODY_JOINT_RADIUS)
        _draw_joints(canvas, face, range(FACE_KEYPOINT_COUNT), transform, FACE_POINT_RADIUS)
    if draw_hands:
        _draw_joints(canvas, left, range(HAND_KEYPOINT_COUNT), transform, HAND_JOINT_RADIUS)
        _draw_joints(canvas, right, range(HAND_KEYPOINT_COUNT), transform, HAND_JOINT_RADIUS)


def _as_records(records: Any) -> List[Any]:
    if records is None:
        return []
    if isinstance(records, PoseDocument):
        return list(records.people)
    if isinstance(records, (dict, SkeletonRecord)):
        return [records]
    try:
        return list(records)
    except TypeError:
        return []


def render_skeleton(
    records: Iterable[Any],
    size: int = DEFAULT_CANVAS_SIZE,
    padding: int = DEFAULT_PADDING,
    draw_body: bool = True,
    draw_face: bool = True,
    draw_hands: bool = True,
) -> np.ndarray:
    """
    Draw every record onto one black `size` x `size` BGR canvas.

    The pooled confident keypoints of all records are scaled uniformly to fit
    inside the canvas minus `padding` on each side and centered. Records with
    no confident keypoints produce a blank canvas.
    """
    size = max(int(size), 1)
    canvas = np.zeros((size, size, 3), dtype=np.uint8)
    canvas[:] = _bgr(BACKGROUND)

    people = _as_records(records)
    box = bounding_box(pt for record in people for pt in _record_points(record))
    if box is None:
        return canvas

    transform = fit_transform(box, size, max(int(padding), 0))
    for record in people:
        _draw_record(canvas, record, transform, draw_body, draw_face, draw_hands)
    return canvas


def render_png(records: Iterable[Any], **kwargs) -> bytes:
    return encode_png(render_skeleton(records, **kwargs))
