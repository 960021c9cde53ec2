"""
Step 1: Frame Capture
Captures frames from webcam, video file, image or memory and stamps them
with a timestamp and an optional device-tilt reading.
"""

import time
import cv2
import numpy as np
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple


@dataclass(frozen=True)
class FrameInput:
    """One tick's observations. Either field may be missing."""
    timestamp_ms: float
    pixels: Optional[np.ndarray] = None
    tilt_deg: Optional[float] = None


def now_ms() -> float:
    """Monotonic clock in milliseconds."""
    return time.monotonic() * 1000.0


class FrameCapture(ABC):
    """Abstract base class for frame capture."""

    # Latest tilt reading pushed by a sensor callback, attached to every frame
    tilt_deg: Optional[float] = None

    @abstractmethod
    def read(self) -> Tuple[bool, Optional[np.ndarray]]:
        """Read a single frame."""
        pass

    @abstractmethod
    def release(self) -> None:
        """Release resources."""
        pass

    @abstractmethod
    def is_opened(self) -> bool:
        """Check if capture is opened."""
        pass

    def set_tilt(self, tilt_deg: Optional[float]) -> None:
        """Store the latest device-tilt reading (degrees)."""
        self.tilt_deg = tilt_deg

    def read_input(self, timestamp_ms: Optional[float] = None) -> Optional[FrameInput]:
        """
        Read one tick's FrameInput.

        Returns None when the source is exhausted and no tilt reading exists.
        """
        ret, frame = self.read()
        if not ret and self.tilt_deg is None:
            return None
        return FrameInput(
            timestamp_ms=now_ms() if timestamp_ms is None else timestamp_ms,
            pixels=frame if ret else None,
            tilt_deg=self.tilt_deg,
        )


class WebcamCapture(FrameCapture):
    """Capture frames from webcam."""

    def __init__(self, camera_id: int = 0, width: int = 1280, height: int = 720):
        self.camera_id = camera_id
        self.width = width
        self.height = height
        self.cap = cv2.VideoCapture(camera_id)
        self.cap.set(cv2.CAP_PROP_FRAME_WIDTH, width)
        self.cap.set(cv2.CAP_PROP_FRAME_HEIGHT, height)

    def read(self) -> Tuple[bool, Optional[np.ndarray]]:
        return self.cap.read()

    def release(self) -> None:
        self.cap.release()

    def is_opened(self) -> bool:
        return self.cap.isOpened()


class VideoCapture(FrameCapture):
    """Capture frames from video file."""

    def __init__(self, video_path: str):
        self.video_path = video_path
        self.cap = cv2.VideoCapture(video_path)
        # Recorded frame rate, 0 when the container does not report one
        self.fps = self.cap.get(cv2.CAP_PROP_FPS)

    def read(self) -> Tuple[bool, Optional[np.ndarray]]:
        return self.cap.read()

    def release(self) -> None:
        self.cap.release()

    def is_opened(self) -> bool:
        return self.cap.isOpened()


class ImageCapture(FrameCapture):
    """Capture from a single image, repeated `repeat` times."""

    def __init__(self, image_path: str, repeat: int = 1):
        self.image_path = image_path
        self.image = cv2.imread(image_path)
        self.repeat = repeat
        self.read_count = 0

    def read(self) -> Tuple[bool, Optional[np.ndarray]]:
        if self.image is not None and self.read_count < self.repeat:
            self.read_count += 1
            return True, self.image.copy()
        return False, None

    def release(self) -> None:
        self.image = None

    def is_opened(self) -> bool:
        return self.image is not None and self.read_count < self.repeat


class ArrayCapture(FrameCapture):
    """Replay frames already in memory (tests, offline sessions)."""

    def __init__(self, frames: Iterable[np.ndarray]):
        self._frames: List[np.ndarray] = list(frames)
        self._index = 0

    def read(self) -> Tuple[bool, Optional[np.ndarray]]:
        if self._index >= len(self._frames):
            return False, None
        frame = self._frames[self._index]
        self._index += 1
        return True, frame

    def release(self) -> None:
        self._index = len(self._frames)

    def is_opened(self) -> bool:
        return self._index < len(self._frames)


class NullCapture(FrameCapture):
    """No camera: every tick carries only the tilt reading (if any)."""

    def read(self) -> Tuple[bool, Optional[np.ndarray]]:
        return False, None

    def release(self) -> None:
        pass

    def is_opened(self) -> bool:
        return True

    def read_input(self, timestamp_ms: Optional[float] = None) -> Optional[FrameInput]:
        return FrameInput(
            timestamp_ms=now_ms() if timestamp_ms is None else timestamp_ms,
            tilt_deg=self.tilt_deg,
        )
