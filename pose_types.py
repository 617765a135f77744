import json
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from skeleton_layout import face_to_openpose70

BODY_KEYPOINT_COUNT = 18
HAND_KEYPOINT_COUNT = 21
FACE_KEYPOINT_COUNT = 478
OPENPOSE_JSON_VERSION = 1.3


@dataclass
class Landmark2D:
    x: float
    y: float
    z: float = 0.0
    # None when the detector does not report a per-point visibility.
    visibility: Optional[float] = None


@dataclass
class RawDetectionSet:
    width: int
    height: int
    body_landmark_sets: List[List[Landmark2D]] = field(default_factory=list)
    hand_landmark_sets: List[List[Landmark2D]] = field(default_factory=list)
    handedness: List[Optional[str]] = field(default_factory=list)
    face_landmark_sets: List[List[Landmark2D]] = field(default_factory=list)


def zero_keypoints(count: int) -> List[float]:
    return [0.0] * (count * 3)


@dataclass
class SkeletonRecord:
    """One person in OpenPose flattened-triple layout, pixel coordinates."""

    pose_keypoints_2d: List[float] = field(default_factory=lambda: zero_keypoints(BODY_KEYPOINT_COUNT))
    hand_left_keypoints_2d: List[float] = field(default_factory=lambda: zero_keypoints(HAND_KEYPOINT_COUNT))
    hand_right_keypoints_2d: List[float] = field(default_factory=lambda: zero_keypoints(HAND_KEYPOINT_COUNT))
    face_keypoints_2d: List[float] = field(default_factory=lambda: zero_keypoints(FACE_KEYPOINT_COUNT))

    def to_dict(self, face_keypoints: Optional[List[float]] = None) -> Dict[str, Any]:
        return {
            "person_id": [-1],
            "pose_keypoints_2d": list(self.pose_keypoints_2d),
            "face_keypoints_2d": list(self.face_keypoints_2d if face_keypoints is None else face_keypoints),
            "hand_left_keypoints_2d": list(self.hand_left_keypoints_2d),
            "hand_right_keypoints_2d": list(self.hand_right_keypoints_2d),
            "pose_keypoints_3d": [],
            "face_keypoints_3d": [],
            "hand_left_keypoints_3d": [],
            "hand_right_keypoints_3d": [],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SkeletonRecord":
        record = cls()
        if not isinstance(data, dict):
            return record
        record.pose_keypoints_2d = _keypoint_list(data.get("pose_keypoints_2d"), BODY_KEYPOINT_COUNT)
        record.hand_left_keypoints_2d = _keypoint_list(data.get("hand_left_keypoints_2d"), HAND_KEYPOINT_COUNT)
        record.hand_right_keypoints_2d = _keypoint_list(data.get("hand_right_keypoints_2d"), HAND_KEYPOINT_COUNT)
        record.face_keypoints_2d = _keypoint_list(data.get("face_keypoints_2d"), FACE_KEYPOINT_COUNT)
        return record


def _keypoint_list(value: Any, count: int) -> List[float]:
    """Coerce loaded triples to exactly `count` keypoints; unusable triples become zeros."""
    keypoints = zero_keypoints(count)
    if not isinstance(value, (list, tuple)):
        return keypoints
    for i in range(min(len(value) // 3, count)):
        try:
            x, y, c = (float(v) for v in value[i * 3:i * 3 + 3])
        except (TypeError, ValueError):
            continue
        if c > 0 and math.isfinite(x) and math.isfinite(y) and math.isfinite(c):
            keypoints[i * 3:i * 3 + 3] = [x, y, c]
    return keypoints


@dataclass
class PoseDocument:
    width: int
    height: int
    people: List[SkeletonRecord] = field(default_factory=list)

    def to_dict(self, face_layout: str = "mediapipe") -> Dict[str, Any]:
        people = []
        for person in self.people:
            face = face_to_openpose70(person.face_keypoints_2d) if face_layout == "openpose70" else None
            people.append(person.to_dict(face_keypoints=face))
        return {
            "version": OPENPOSE_JSON_VERSION,
            "width": int(self.width),
            "height": int(self.height),
            "canvas_width": int(self.width),
            "canvas_height": int(self.height),
            "people": people,
        }

    def to_json(self, face_layout: str = "mediapipe", indent: Optional[int] = None) -> str:
        return json.dumps(self.to_dict(face_layout=face_layout), indent=indent)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PoseDocument":
        if not isinstance(data, dict):
            return cls(width=0, height=0)
        width = data.get("width", data.get("canvas_width", 0))
        height = data.get("height", data.get("canvas_height", 0))
        people = data.get("people")
        if not isinstance(people, list):
            people = []
        try:
            width, height = int(width), int(height)
        except (TypeError, ValueError):
            width, height = 0, 0
        return cls(width=width, height=height, people=[SkeletonRecord.from_dict(p) for p in people])
