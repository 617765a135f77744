"""
Reconcile MediaPipe body, hand and face landmarks into OpenPose skeleton records.

Each detected body becomes one SkeletonRecord. Hands arrive without a person
association, so they are attached by a nearest-centroid heuristic: a hand whose
wrist lies within HAND_ASSOCIATION_DISTANCE (normalized units, exclusive) of the
body's shoulder/hip center fills the slot named by its handedness label.

The association is greedy and non-exclusive. The same hand can be attached to
two nearby people, and a later hand overwrites an earlier one in the same slot.
"""

import logging
import math
from typing import List, Optional, Sequence, Tuple

from geometry import distance_2d, midpoint
from pose_types import (
    BODY_KEYPOINT_COUNT,
    FACE_KEYPOINT_COUNT,
    HAND_KEYPOINT_COUNT,
    Landmark2D,
    PoseDocument,
    RawDetectionSet,
    SkeletonRecord,
    zero_keypoints,
)
from skeleton_layout import (
    MP_LEFT_SHOULDER,
    MP_RIGHT_SHOULDER,
    OP_NECK,
    OPENPOSE_FROM_MEDIAPIPE,
    PERSON_CENTER_SOURCES,
)

logger = logging.getLogger(__name__)

BODY_CONFIDENCE_THRESHOLD = 0.2
HAND_ASSOCIATION_DISTANCE = 0.5
HAND_CONFIDENCE = 1.0
FACE_DEFAULT_CONFIDENCE = 1.0


def _landmark_at(landmarks: Optional[Sequence[Landmark2D]], idx: int) -> Optional[Landmark2D]:
    if not landmarks or idx < 0 or idx >= len(landmarks):
        return None
    lm = landmarks[idx]
    try:
        x, y = float(lm.x), float(lm.y)
    except (AttributeError, TypeError, ValueError):
        return None
    if not (math.isfinite(x) and math.isfinite(y)):
        return None
    return Landmark2D(x, y, visibility=getattr(lm, "visibility", None))


def _visibility(lm: Optional[Landmark2D]) -> float:
    if lm is None:
        return 0.0
    try:
        v = float(lm.visibility) if lm.visibility is not None else 0.0
    except (TypeError, ValueError):
        return 0.0
    return v if math.isfinite(v) else 0.0


def _confident(lm: Optional[Landmark2D]) -> bool:
    return _visibility(lm) > BODY_CONFIDENCE_THRESHOLD


def _set_triple(keypoints: List[float], slot: int, x: float, y: float, confidence: float) -> None:
    keypoints[slot * 3] = x
    keypoints[slot * 3 + 1] = y
    keypoints[slot * 3 + 2] = confidence


def map_body(body: Sequence[Landmark2D], width: int, height: int) -> List[float]:
    keypoints = zero_keypoints(BODY_KEYPOINT_COUNT)
    for op_slot, mp_idx in OPENPOSE_FROM_MEDIAPIPE.items():
        lm = _landmark_at(body, mp_idx)
        if _confident(lm):
            _set_triple(keypoints, op_slot, lm.x * width, lm.y * height, _visibility(lm))

    left = _landmark_at(body, MP_LEFT_SHOULDER)
    right = _landmark_at(body, MP_RIGHT_SHOULDER)
    if _confident(left) and _confident(right):
        nx, ny = midpoint(left, right)
        _set_triple(keypoints, OP_NECK, nx * width, ny * height, min(_visibility(left), _visibility(right)))
    return keypoints


def person_center(body: Sequence[Landmark2D]) -> Optional[Tuple[float, float]]:
    """
    Mean of both shoulders and both hips in normalized coordinates.

    Uses raw positions, but needs all four landmarks present and at least one
    of them above the body confidence gate; otherwise returns None.
    """
    sources = [_landmark_at(body, idx) for idx in PERSON_CENTER_SOURCES]
    if any(lm is None for lm in sources):
        return None
    if not any(_confident(lm) for lm in sources):
        return None
    cx = sum(lm.x for lm in sources) / len(sources)
    cy = sum(lm.y for lm in sources) / len(sources)
    return cx, cy


def _hand_keypoints(hand: Sequence[Landmark2D], width: int, height: int) -> List[float]:
    keypoints = zero_keypoints(HAND_KEYPOINT_COUNT)
    for i in range(min(len(hand), HAND_KEYPOINT_COUNT)):
        lm = _landmark_at(hand, i)
        if lm is None:
            continue
        _set_triple(keypoints, i, lm.x * width, lm.y * height, HAND_CONFIDENCE)
    return keypoints


def _face_keypoints(face: Optional[Sequence[Landmark2D]], width: int, height: int) -> List[float]:
    keypoints = zero_keypoints(FACE_KEYPOINT_COUNT)
    if not face:
        return keypoints
    for i in range(min(len(face), FACE_KEYPOINT_COUNT)):
        lm = _landmark_at(face, i)
        if lm is None:
            continue
        # Face mesh points are always present once a face is found; the
        # detector leaves visibility unset (or 0) for them.
        v = _visibility(lm)
        confidence = v if v > 0 else FACE_DEFAULT_CONFIDENCE
        _set_triple(keypoints, i, lm.x * width, lm.y * height, confidence)
    return keypoints


def map_person(
    body: Sequence[Landmark2D],
    hands: Sequence[Sequence[Landmark2D]],
    handedness: Sequence[Optional[str]],
    face: Optional[Sequence[Landmark2D]],
    width: int,
    height: int,
) -> SkeletonRecord:
    record = SkeletonRecord(
        pose_keypoints_2d=map_body(body, width, height),
        face_keypoints_2d=_face_keypoints(face, width, height),
    )

    center = person_center(body)
    if center is None:
        return record
    center_lm = Landmark2D(center[0], center[1])

    for idx, hand in enumerate(hands):
        label = handedness[idx] if idx < len(handedness) else None
        if label not in ("Left", "Right"):
            continue
        wrist = _landmark_at(hand, 0)
        if wrist is None:
            continue
        if distance_2d(wrist, center_lm) >= HAND_ASSOCIATION_DISTANCE:
            continue
        keypoints = _hand_keypoints(hand, width, height)
        if label == "Left":
            record.hand_left_keypoints_2d = keypoints
        else:
            record.hand_right_keypoints_2d = keypoints
    return record


def map_detections(raw: RawDetectionSet) -> PoseDocument:
    """One SkeletonRecord per detected body; face set i is paired with body i."""
    people: List[SkeletonRecord] = []
    for i, body in enumerate(raw.body_landmark_sets):
        face = raw.face_landmark_sets[i] if i < len(raw.face_landmark_sets) else None
        people.append(
            map_person(body, raw.hand_landmark_sets, raw.handedness, face, raw.width, raw.height)
        )
    logger.debug(
        "Mapped %d bodies, %d hands, %d faces into %d skeleton records",
        len(raw.body_landmark_sets),
        len(raw.hand_landmark_sets),
        len(raw.face_landmark_sets),
        len(people),
    )
    return PoseDocument(width=raw.width, height=raw.height, people=people)
