"""
Detector pool: body pose, hand and face landmark backends run over one image.

Backends are built once per pool (concurrently, in worker threads) and reused.
Each detection call runs on a daemon thread raced against a timer so a stalled
model cannot hang the caller or keep the process alive.
"""

import asyncio
import concurrent.futures
import logging
import threading
import urllib.request
from abc import ABC, abstractmethod
from pathlib import Path, PurePosixPath
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import cv2
import numpy as np

from image_io import ImageSource, load_image
from pose_config import DetectorConfig
from pose_errors import DetectorBusyError, DetectorInitError, DetectorRunError, DetectorTimeoutError
from pose_types import Landmark2D, RawDetectionSet

logger = logging.getLogger(__name__)

POSE = "pose"
HAND = "hand"
FACE = "face"
DETECTOR_NAMES = (POSE, HAND, FACE)


class DetectionResult:
    """Landmark sets from one backend; `labels` is parallel to `landmark_sets` (hands only)."""

    def __init__(self, landmark_sets: List[List[Landmark2D]], labels: Optional[List[Optional[str]]] = None):
        self.landmark_sets = landmark_sets
        self.labels = labels if labels is not None else []


class LandmarkBackend(ABC):
    """Adapter interface. `detect` takes an RGB image (H,W,3 uint8)."""

    name: str = ""

    @abstractmethod
    def detect(self, rgb: np.ndarray) -> DetectionResult: ...

    def close(self) -> None:
        pass


def _cache_path(cache_dir: str, model_path: str) -> Path:
    # Keyed on the whole relative model path so each model version gets its own file.
    parts = [p for p in PurePosixPath(model_path).parts if p not in ("/", "..")]
    return Path(cache_dir).expanduser().joinpath(*parts)


def fetch_model_asset(config: DetectorConfig, model_path: str) -> bytes:
    url = config.model_url(model_path)
    cache_file: Optional[Path] = None
    if config.model_cache_dir:
        cache_file = _cache_path(config.model_cache_dir, model_path)
        if cache_file.exists() and cache_file.stat().st_size > 0:
            logger.debug("Using cached model asset %s", cache_file)
            return cache_file.read_bytes()

    logger.info("Fetching model asset %s", url)
    with urllib.request.urlopen(url, timeout=config.asset_fetch_timeout_seconds) as resp:
        data = resp.read()
    if not data:
        raise ValueError(f"empty model asset from {url}")
    logger.info("Fetched %s (%d bytes)", url, len(data))

    if cache_file is not None:
        tmp_file = cache_file.with_name(cache_file.name + ".tmp")
        try:
            cache_file.parent.mkdir(parents=True, exist_ok=True)
            tmp_file.write_bytes(data)
            tmp_file.replace(cache_file)
        except OSError as e:
            logger.warning("Could not cache model asset %s: %s", cache_file, e)
            tmp_file.unlink(missing_ok=True)
    return data


def _convert_landmarks(landmarks) -> List[Landmark2D]:
    out: List[Landmark2D] = []
    for lm in landmarks:
        visibility = getattr(lm, "visibility", None)
        out.append(
            Landmark2D(
                float(lm.x),
                float(lm.y),
                float(getattr(lm, "z", 0.0) or 0.0),
                float(visibility) if visibility is not None else None,
            )
        )
    return out


class _MediaPipeBackend(LandmarkBackend):
    def __init__(self, config: DetectorConfig, model_path: str):
        try:
            import mediapipe as mp
            from mediapipe.tasks import python as mp_tasks
            from mediapipe.tasks.python import vision
        except ImportError as e:
            raise RuntimeError("MediaPipe is not installed. Install it with: pip install mediapipe") from e

        self._mp = mp
        self._vision = vision
        self.config = config
        self._base_options = mp_tasks.BaseOptions(
            model_asset_buffer=fetch_model_asset(config, model_path),
            delegate=mp_tasks.BaseOptions.Delegate.CPU,
        )
        self._landmarker = self._create()

    @abstractmethod
    def _create(self): ...

    def _to_mp_image(self, rgb: np.ndarray):
        return self._mp.Image(image_format=self._mp.ImageFormat.SRGB, data=np.ascontiguousarray(rgb))

    def close(self) -> None:
        if self._landmarker is not None:
            self._landmarker.close()
            self._landmarker = None


class MediaPipePoseBackend(_MediaPipeBackend):
    name = POSE

    def __init__(self, config: DetectorConfig):
        super().__init__(config, config.pose_model)

    def _create(self):
        options = self._vision.PoseLandmarkerOptions(
            base_options=self._base_options,
            running_mode=self._vision.RunningMode.IMAGE,
            num_poses=self.config.max_poses,
            min_pose_detection_confidence=self.config.min_detection_confidence,
            min_pose_presence_confidence=self.config.min_presence_confidence,
            min_tracking_confidence=self.config.min_tracking_confidence,
            output_segmentation_masks=False,
        )
        return self._vision.PoseLandmarker.create_from_options(options)

    def detect(self, rgb: np.ndarray) -> DetectionResult:
        result = self._landmarker.detect(self._to_mp_image(rgb))
        return DetectionResult([_convert_landmarks(p) for p in (result.pose_landmarks or [])])


class MediaPipeHandBackend(_MediaPipeBackend):
    name = HAND

    def __init__(self, config: DetectorConfig):
        super().__init__(config, config.hand_model)

    def _create(self):
        options = self._vision.HandLandmarkerOptions(
            base_options=self._base_options,
            running_mode=self._vision.RunningMode.IMAGE,
            num_hands=self.config.max_hands,
            min_hand_detection_confidence=self.config.min_detection_confidence,
            min_hand_presence_confidence=self.config.min_presence_confidence,
            min_tracking_confidence=self.config.min_tracking_confidence,
        )
        return self._vision.HandLandmarker.create_from_options(options)

    def detect(self, rgb: np.ndarray) -> DetectionResult:
        result = self._landmarker.detect(self._to_mp_image(rgb))
        hands = [_convert_landmarks(h) for h in (result.hand_landmarks or [])]
        categories = result.handedness or []
        labels: List[Optional[str]] = []
        for i in range(len(hands)):
            top = categories[i][0] if i < len(categories) and categories[i] else None
            labels.append(getattr(top, "category_name", None))
        return DetectionResult(hands, labels)


class MediaPipeFaceBackend(_MediaPipeBackend):
    name = FACE

    def __init__(self, config: DetectorConfig):
        super().__init__(config, config.face_model)

    def _create(self):
        options = self._vision.FaceLandmarkerOptions(
            base_options=self._base_options,
            running_mode=self._vision.RunningMode.IMAGE,
            num_faces=self.config.max_faces,
            min_face_detection_confidence=self.config.min_detection_confidence,
            min_face_presence_confidence=self.config.min_presence_confidence,
            min_tracking_confidence=self.config.min_tracking_confidence,
        )
        return self._vision.FaceLandmarker.create_from_options(options)

    def detect(self, rgb: np.ndarray) -> DetectionResult:
        result = self._landmarker.detect(self._to_mp_image(rgb))
        return DetectionResult([_convert_landmarks(f) for f in (result.face_landmarks or [])])


BackendFactory = Callable[[DetectorConfig], LandmarkBackend]

DEFAULT_BACKEND_FACTORIES: Dict[str, BackendFactory] = {
    POSE: MediaPipePoseBackend,
    HAND: MediaPipeHandBackend,
    FACE: MediaPipeFaceBackend,
}


def _start_call(name: str, fn: Callable[..., DetectionResult], *args) -> concurrent.futures.Future:
    """Run `fn` on a daemon thread so an abandoned call never blocks interpreter exit."""
    future: concurrent.futures.Future = concurrent.futures.Future()

    def run() -> None:
        if not future.set_running_or_notify_cancel():
            return
        try:
            future.set_result(fn(*args))
        except BaseException as e:
            future.set_exception(e)

    threading.Thread(target=run, name=f"pose-control-{name}", daemon=True).start()
    return future


def _close_backend(name: str, backend: LandmarkBackend) -> None:
    try:
        backend.close()
    except Exception as e:
        logger.warning("Error closing %s detector: %s", name, e)


class DetectorPool:
    """
    Owns one instance of each landmark backend.

    Backends are constructed on the first `acquire()` (or `detect()`) and kept
    for the pool's lifetime. A construction failure is remembered and raised
    again on every later call; it is never retried.

    Detector calls run on daemon threads. A call that times out keeps its
    backend busy until it returns: the backend is not reused and not closed
    before then.
    """

    def __init__(
        self,
        config: Optional[DetectorConfig] = None,
        backend_factories: Optional[Dict[str, BackendFactory]] = None,
    ):
        self.config = config or DetectorConfig()
        self._factories = dict(DEFAULT_BACKEND_FACTORIES)
        if backend_factories:
            self._factories.update(backend_factories)
        self._detectors: Optional[Dict[str, LandmarkBackend]] = None
        self._init_error: Optional[DetectorInitError] = None
        self._lock: Optional[asyncio.Lock] = None
        self._busy: Dict[str, concurrent.futures.Future] = {}
        self._busy_lock = threading.Lock()

    async def _construct(self, name: str) -> LandmarkBackend:
        try:
            backend = await asyncio.to_thread(self._factories[name], self.config)
        except Exception as e:
            logger.error("Failed to construct %s detector: %s", name, e)
            raise DetectorInitError(name, e) from e
        logger.info("Constructed %s detector (%s)", name, type(backend).__name__)
        return backend

    async def acquire(self) -> Dict[str, LandmarkBackend]:
        if self._detectors is not None:
            return self._detectors
        if self._init_error is not None:
            raise self._init_error
        if self._lock is None:
            self._lock = asyncio.Lock()
        async with self._lock:
            if self._detectors is not None:
                return self._detectors
            if self._init_error is not None:
                raise self._init_error

            results = await asyncio.gather(
                *(self._construct(name) for name in DETECTOR_NAMES), return_exceptions=True
            )
            errors = [r for r in results if isinstance(r, BaseException)]
            if errors:
                for name, r in zip(DETECTOR_NAMES, results):
                    if not isinstance(r, BaseException):
                        _close_backend(name, r)
                init_errors = [e for e in errors if isinstance(e, DetectorInitError)]
                if not init_errors:
                    raise errors[0]
                self._init_error = init_errors[0]
                raise self._init_error
            self._detectors = dict(zip(DETECTOR_NAMES, results))
        return self._detectors

    def busy_detectors(self) -> List[str]:
        """Names of detectors still running a call that timed out."""
        with self._busy_lock:
            for name in [n for n, f in self._busy.items() if f.done()]:
                del self._busy[name]
            return [name for name in DETECTOR_NAMES if name in self._busy]

    def _mark_busy(self, name: str, future: concurrent.futures.Future) -> None:
        with self._busy_lock:
            self._busy[name] = future

        def finished(_f: concurrent.futures.Future) -> None:
            logger.info("Timed-out %s detection call has returned", name)
            with self._busy_lock:
                if self._busy.get(name) is future:
                    del self._busy[name]

        future.add_done_callback(finished)

    async def _run_detector(
        self, name: str, backend: LandmarkBackend, rgb: np.ndarray
    ) -> Tuple[Optional[DetectionResult], bool, Optional[Exception]]:
        """Returns (result, timed_out, error)."""
        future = _start_call(name, backend.detect, rgb)
        try:
            result = await asyncio.wait_for(asyncio.wrap_future(future), timeout=self.config.timeout_seconds)
        except asyncio.TimeoutError:
            if future.done() and not future.cancelled():
                # Finished at the deadline, or the backend raised TimeoutError itself.
                error = future.exception()
                if error is None:
                    return future.result(), False, None
                logger.error("%s detection failed: %s", name, error)
                return None, False, error
            logger.warning("%s detection timed out after %.1fs", name, self.config.timeout_seconds)
            self._mark_busy(name, future)
            return None, True, None
        except Exception as e:
            logger.error("%s detection failed: %s", name, e)
            return None, False, e
        return result, False, None

    async def detect(self, source: ImageSource) -> RawDetectionSet:
        detectors = await self.acquire()
        busy = self.busy_detectors()
        if busy:
            raise DetectorBusyError(busy)
        frame_bgr = await asyncio.to_thread(load_image, source)
        height, width = frame_bgr.shape[:2]
        frame_rgb = cv2.cvtColor(frame_bgr, cv2.COLOR_BGR2RGB)

        results: Dict[str, DetectionResult] = {}
        timed_out: List[str] = []
        failed: List[Tuple[str, Exception]] = []
        for name in DETECTOR_NAMES:
            result, expired, error = await self._run_detector(name, detectors[name], frame_rgb)
            if expired:
                timed_out.append(name)
            elif error is not None:
                failed.append((name, error))
            else:
                results[name] = result
        if failed:
            name, error = failed[0]
            raise DetectorRunError(name, error) from error
        if timed_out:
            raise DetectorTimeoutError(timed_out, self.config.timeout_seconds)

        hands = results[HAND]
        raw = RawDetectionSet(
            width=int(width),
            height=int(height),
            body_landmark_sets=results[POSE].landmark_sets,
            hand_landmark_sets=hands.landmark_sets,
            handedness=_pad_labels(hands.labels, len(hands.landmark_sets)),
            face_landmark_sets=results[FACE].landmark_sets,
        )
        logger.info(
            "Detected %d bodies, %d hands, %d faces in %dx%d image",
            len(raw.body_landmark_sets),
            len(raw.hand_landmark_sets),
            len(raw.face_landmark_sets),
            width,
            height,
        )
        return raw

    def close(self) -> None:
        """Close idle backends now; busy ones close when their timed-out call returns."""
        if self._detectors is None:
            return
        with self._busy_lock:
            busy = dict(self._busy)
            self._busy.clear()
        for name, backend in self._detectors.items():
            future = busy.get(name)
            if future is not None and not future.done():
                logger.info("Deferring close of %s detector until its call returns", name)
                future.add_done_callback(lambda _f, n=name, b=backend: _close_backend(n, b))
                continue
            _close_backend(name, backend)
        self._detectors = None


def _pad_labels(labels: Sequence[Optional[str]], count: int) -> List[Optional[str]]:
    out = list(labels[:count])
    out.extend([None] * (count - len(out)))
    return out
