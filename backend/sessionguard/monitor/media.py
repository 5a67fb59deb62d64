"""Local video sources for the monitor."""
import base64
from typing import Optional, Protocol, Tuple

import numpy as np

from sessionguard.monitor.logger import logger

# Media element ready states
HAVE_NOTHING = 0
HAVE_METADATA = 1
HAVE_CURRENT_DATA = 2

FALLBACK_SIZE = (640, 480)


class VideoSource(Protocol):
    """What the supervisor needs from a live video feed."""

    @property
    def ready_state(self) -> int: ...

    @property
    def width(self) -> int: ...

    @property
    def height(self) -> int: ...

    @property
    def has_audio(self) -> bool: ...

    def grab_frame(self) -> Optional[np.ndarray]: ...

    def encode_jpeg(self, frame: np.ndarray, quality: int) -> bytes: ...

    def to_rgb(self, frame: np.ndarray) -> np.ndarray: ...


def canvas_size(width: int, height: int) -> Tuple[int, int]:
    """Native frame size, or 640x480 when the source does not report one."""
    if width and height:
        return width, height
    return FALLBACK_SIZE


def to_data_url(jpeg: bytes) -> str:
    return "data:image/jpeg;base64," + base64.b64encode(jpeg).decode("ascii")


class CameraSource:
    """OpenCV camera capture implementing VideoSource."""

    def __init__(self, camera_index: int = 0, has_audio: bool = True):
        self.camera_index = camera_index
        self._has_audio = has_audio
        self._cap = None
        self._state = HAVE_NOTHING

    def open(self) -> None:
        import cv2

        cap = cv2.VideoCapture(self.camera_index)
        if not cap.isOpened():
            raise RuntimeError(f"Could not open camera {self.camera_index}")
        cap.set(cv2.CAP_PROP_BUFFERSIZE, 1)
        self._cap = cap
        self._state = HAVE_METADATA
        logger.info(f"[MONITOR] Camera {self.camera_index} opened at {self.width}x{self.height}")

    def close(self) -> None:
        if self._cap is not None:
            self._cap.release()
            self._cap = None
        self._state = HAVE_NOTHING

    @property
    def ready_state(self) -> int:
        return self._state

    @property
    def width(self) -> int:
        if self._cap is None:
            return 0
        import cv2
        return int(self._cap.get(cv2.CAP_PROP_FRAME_WIDTH))

    @property
    def height(self) -> int:
        if self._cap is None:
            return 0
        import cv2
        return int(self._cap.get(cv2.CAP_PROP_FRAME_HEIGHT))

    @property
    def has_audio(self) -> bool:
        return self._has_audio

    def grab_frame(self) -> Optional[np.ndarray]:
        """Read the current BGR frame at native resolution (640x480 fallback)."""
        if self._cap is None:
            return None
        import cv2

        ok, frame = self._cap.read()
        if not ok:
            return None
        self._state = HAVE_CURRENT_DATA

        size = canvas_size(self.width, self.height)
        if (frame.shape[1], frame.shape[0]) != size:
            frame = cv2.resize(frame, size, interpolation=cv2.INTER_AREA)
        return frame

    def encode_jpeg(self, frame: np.ndarray, quality: int) -> bytes:
        import cv2

        ok, buffer = cv2.imencode(".jpg", frame, [int(cv2.IMWRITE_JPEG_QUALITY), quality])
        if not ok:
            raise RuntimeError("JPEG encoding failed")
        return buffer.tobytes()

    def to_rgb(self, frame: np.ndarray) -> np.ndarray:
        """Independent RGB copy, owned by whoever receives it."""
        import cv2
        return cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
