from typing import Iterable, Optional


class PoseAnalysisError(Exception):
    """Base class for detector pool failures."""


class DetectorInitError(PoseAnalysisError):
    """A detector backend could not be constructed (asset fetch or model parse failed)."""

    def __init__(self, detector: str, reason: Optional[BaseException] = None):
        self.detector = detector
        self.reason = reason
        detail = f": {reason}" if reason is not None else ""
        super().__init__(f"cannot initialize {detector} detector{detail}")


class ImageDecodeError(PoseAnalysisError):
    def __init__(self, source: str, reason: str = "not a decodable image"):
        self.source = source
        self.reason = reason
        super().__init__(f"cannot decode image {source}: {reason}")


class DetectorTimeoutError(PoseAnalysisError):
    """One or more detectors did not finish within their time budget. Retrying may succeed."""

    def __init__(self, detectors: Iterable[str], timeout_seconds: float):
        self.detectors = list(detectors)
        self.detector = self.detectors[0] if self.detectors else ""
        self.timeout_seconds = timeout_seconds
        names = ", ".join(self.detectors)
        super().__init__(f"{names} detection timed out after {timeout_seconds:g}s")


class DetectorBusyError(PoseAnalysisError):
    """A detector is still running a call that timed out earlier. Retry once it finishes."""

    def __init__(self, detectors: Iterable[str]):
        self.detectors = list(detectors)
        self.detector = self.detectors[0] if self.detectors else ""
        super().__init__(f"{', '.join(self.detectors)} detector still busy with a timed-out call")


class DetectorRunError(PoseAnalysisError):
    """A detector raised while processing an image."""

    def __init__(self, detector: str, reason: Optional[BaseException] = None):
        self.detector = detector
        self.reason = reason
        detail = f": {reason}" if reason is not None else ""
        super().__init__(f"{detector} detection failed{detail}")
