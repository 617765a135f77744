from pathlib import Path
from typing import Union

import cv2
import numpy as np

from pose_errors import ImageDecodeError

ImageSource = Union[str, Path, bytes, bytearray, np.ndarray]


def _describe(source: ImageSource) -> str:
    if isinstance(source, (bytes, bytearray)):
        return f"<{len(source)} bytes>"
    if isinstance(source, np.ndarray):
        return f"<array {source.shape}>"
    return str(source)


def load_image(source: ImageSource) -> np.ndarray:
    """Decode a file path, encoded bytes or an existing array into a BGR uint8 image."""
    if isinstance(source, np.ndarray):
        frame = source
    else:
        if isinstance(source, (bytes, bytearray)):
            data = bytes(source)
        else:
            try:
                with open(Path(source).expanduser(), "rb") as fh:
                    data = fh.read()
            except OSError as e:
                raise ImageDecodeError(_describe(source), e.strerror or str(e)) from e
        if not data:
            raise ImageDecodeError(_describe(source), "empty input")
        try:
            frame = cv2.imdecode(np.frombuffer(data, dtype=np.uint8), cv2.IMREAD_COLOR)
        except cv2.error as e:
            raise ImageDecodeError(_describe(source), str(e)) from e
        if frame is None:
            raise ImageDecodeError(_describe(source))

    if frame.ndim == 2:
        frame = cv2.cvtColor(frame, cv2.COLOR_GRAY2BGR)
    elif frame.ndim == 3 and frame.shape[2] == 4:
        frame = cv2.cvtColor(frame, cv2.COLOR_BGRA2BGR)
    if frame.ndim != 3 or frame.shape[2] != 3 or frame.shape[0] == 0 or frame.shape[1] == 0:
        raise ImageDecodeError(_describe(source), "unsupported pixel layout")
    if frame.dtype != np.uint8:
        raise ImageDecodeError(_describe(source), f"unsupported dtype {frame.dtype}")
    return frame


def encode_png(image: np.ndarray) -> bytes:
    ok, buf = cv2.imencode(".png", image)
    if not ok:
        raise ValueError("PNG encoding failed")
    return buf.tobytes()
