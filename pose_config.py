import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union

logger = logging.getLogger(__name__)

MODEL_ASSET_BASE_URL = "https://storage.googleapis.com/mediapipe-models"
POSE_MODEL_PATH = "pose_landmarker/pose_landmarker_heavy/float16/1/pose_landmarker_heavy.task"
HAND_MODEL_PATH = "hand_landmarker/hand_landmarker/float16/1/hand_landmarker.task"
FACE_MODEL_PATH = "face_landmarker/face_landmarker/float16/1/face_landmarker.task"


@dataclass(frozen=True)
class DetectorConfig:
    max_poses: int = 5
    max_hands: int = 10
    max_faces: int = 5
    min_detection_confidence: float = 0.3
    min_presence_confidence: float = 0.3
    min_tracking_confidence: float = 0.3
    # Per detector call, in seconds.
    timeout_seconds: float = 15.0
    asset_base_url: str = MODEL_ASSET_BASE_URL
    pose_model: str = POSE_MODEL_PATH
    hand_model: str = HAND_MODEL_PATH
    face_model: str = FACE_MODEL_PATH
    asset_fetch_timeout_seconds: float = 60.0
    # Empty disables the on-disk model cache.
    model_cache_dir: str = ""

    def model_url(self, model_path: str) -> str:
        return f"{self.asset_base_url.rstrip('/')}/{model_path.lstrip('/')}"


@dataclass(frozen=True)
class RenderConfig:
    canvas_size: int = 1024
    padding: int = 100
    draw_body: bool = True
    draw_face: bool = True
    draw_hands: bool = True


@dataclass(frozen=True)
class AppConfig:
    detector: DetectorConfig = field(default_factory=DetectorConfig)
    render: RenderConfig = field(default_factory=RenderConfig)


def _deep_get(d: Dict[str, Any], keys: list, default: Any = None) -> Any:
    cur: Any = d
    for k in keys:
        if not isinstance(cur, dict):
            return default
        cur = cur.get(k)
    return cur if cur is not None else default


def _as_int(v: Any, default: int, minimum: int = 0) -> int:
    try:
        val = int(v)
    except (TypeError, ValueError):
        logger.warning("Config value %r is not an integer; using %s", v, default)
        return default
    return val if val >= minimum else default


def _as_float(v: Any, default: float, minimum: float = 0.0) -> float:
    try:
        val = float(v)
    except (TypeError, ValueError):
        logger.warning("Config value %r is not a number; using %s", v, default)
        return default
    return val if val >= minimum else default


def _as_bool(v: Any, default: bool) -> bool:
    if isinstance(v, bool):
        return v
    if isinstance(v, (int, float)):
        return bool(v)
    if isinstance(v, str):
        return v.strip().lower() in ("1", "true", "yes", "on")
    return default


def _as_str(v: Any, default: str) -> str:
    return str(v) if v is not None else default


def load_config(path: Optional[Union[str, Path]] = None) -> AppConfig:
    """
    Read an optional JSON config file. Missing files and malformed values fall
    back to defaults so the pipeline can always run.
    """
    if path is None:
        return AppConfig()
    p = Path(path).expanduser()
    if not p.exists():
        logger.warning("Config file %s not found; using defaults", p)
        return AppConfig()
    try:
        raw = json.loads(p.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.warning("Config file %s is unreadable (%s); using defaults", p, e)
        return AppConfig()
    if not isinstance(raw, dict):
        logger.warning("Config file %s is not a JSON object; using defaults", p)
        return AppConfig()

    d = DetectorConfig()
    r = RenderConfig()
    detector = DetectorConfig(
        max_poses=_as_int(_deep_get(raw, ["detector", "max_poses"], d.max_poses), d.max_poses, 1),
        max_hands=_as_int(_deep_get(raw, ["detector", "max_hands"], d.max_hands), d.max_hands, 1),
        max_faces=_as_int(_deep_get(raw, ["detector", "max_faces"], d.max_faces), d.max_faces, 1),
        min_detection_confidence=_as_float(
            _deep_get(raw, ["detector", "min_detection_confidence"], d.min_detection_confidence),
            d.min_detection_confidence,
        ),
        min_presence_confidence=_as_float(
            _deep_get(raw, ["detector", "min_presence_confidence"], d.min_presence_confidence),
            d.min_presence_confidence,
        ),
        min_tracking_confidence=_as_float(
            _deep_get(raw, ["detector", "min_tracking_confidence"], d.min_tracking_confidence),
            d.min_tracking_confidence,
        ),
        timeout_seconds=_as_float(
            _deep_get(raw, ["detector", "timeout_seconds"], d.timeout_seconds), d.timeout_seconds, 0.001
        ),
        asset_base_url=_as_str(_deep_get(raw, ["detector", "asset_base_url"], d.asset_base_url), d.asset_base_url),
        pose_model=_as_str(_deep_get(raw, ["detector", "pose_model"], d.pose_model), d.pose_model),
        hand_model=_as_str(_deep_get(raw, ["detector", "hand_model"], d.hand_model), d.hand_model),
        face_model=_as_str(_deep_get(raw, ["detector", "face_model"], d.face_model), d.face_model),
        asset_fetch_timeout_seconds=_as_float(
            _deep_get(raw, ["detector", "asset_fetch_timeout_seconds"], d.asset_fetch_timeout_seconds),
            d.asset_fetch_timeout_seconds,
            0.001,
        ),
        model_cache_dir=_as_str(_deep_get(raw, ["detector", "model_cache_dir"], d.model_cache_dir), ""),
    )
    render = RenderConfig(
        canvas_size=_as_int(_deep_get(raw, ["render", "canvas_size"], r.canvas_size), r.canvas_size, 1),
        padding=_as_int(_deep_get(raw, ["render", "padding"], r.padding), r.padding, 0),
        draw_body=_as_bool(_deep_get(raw, ["render", "draw_body"], r.draw_body), r.draw_body),
        draw_face=_as_bool(_deep_get(raw, ["render", "draw_face"], r.draw_face), r.draw_face),
        draw_hands=_as_bool(_deep_get(raw, ["render", "draw_hands"], r.draw_hands), r.draw_hands),
    )
    if render.padding * 2 >= render.canvas_size:
        logger.warning("Padding %d leaves no drawable area on a %dpx canvas; using defaults", render.padding, render.canvas_size)
        render = RenderConfig(draw_body=render.draw_body, draw_face=render.draw_face, draw_hands=render.draw_hands)
    return AppConfig(detector=detector, render=render)
