"""
Frame sources for enrollment and recognition.
A webcam stream and a static source share the same open/read/release interface.
"""
import cv2
import numpy as np
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterable, List, Optional, Tuple, Union

from utils.config import config
from utils.exceptions import DeviceError
from utils.logger import logger

class FrameSource(ABC):
    """Anything that produces BGR frames on demand."""

    @abstractmethod
    def open(self):
        """Acquire the underlying device. Safe to call when already open."""

    @abstractmethod
    def read(self) -> Optional[np.ndarray]:
        """Return the latest frame, or None if no frame is available."""

    @abstractmethod
    def release(self):
        """Release the underlying device. Safe to call more than once."""

    @property
    @abstractmethod
    def is_opened(self) -> bool:
        ...

    def frames(self):
        """Generator over frames until the source runs dry or is released."""
        while self.is_opened:
            frame = self.read()
            if frame is None:
                break
            yield frame

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()

class CameraStream(FrameSource):
    """OpenCV webcam stream."""

    def __init__(self, device_id: int = None, resolution: Tuple[int, int] = None,
                 facing_mode: str = None):
        self.device_id = config.camera.device_id if device_id is None else device_id
        self.resolution = resolution or config.camera.recognition_resolution
        # OpenCV cannot select a camera by facing direction; kept for reporting.
        self.facing_mode = facing_mode or config.camera.facing_mode

        self.cap: Optional[cv2.VideoCapture] = None
        self.frame_count = 0

    def open(self):
        """Open the camera with the configured resolution. Raises DeviceError."""
        if self.is_opened:
            return

        cap = cv2.VideoCapture(self.device_id)
        if not cap.isOpened():
            cap.release()
            raise DeviceError(f"Cannot open camera {self.device_id}")

        cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.resolution[0])
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.resolution[1])
        cap.set(cv2.CAP_PROP_FPS, config.camera.fps)
        cap.set(cv2.CAP_PROP_BUFFERSIZE, 1)

        ret, _ = cap.read()
        if not ret:
            cap.release()
            raise DeviceError(f"Camera {self.device_id} opened but returned no frames")

        self.cap = cap
        actual_width = int(cap.get(cv2.CAP_PROP_FRAME_WIDTH))
        actual_height = int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT))
        logger.info(f"Camera {self.device_id} opened: {actual_width}x{actual_height} "
                    f"(facing mode: {self.facing_mode})")

    def read(self) -> Optional[np.ndarray]:
        if self.cap is None:
            return None

        ret, frame = self.cap.read()
        if not ret or frame is None:
            logger.warning(f"Failed to read frame from camera {self.device_id}")
            return None

        self.frame_count += 1
        return frame

    def release(self):
        if self.cap is not None:
            self.cap.release()
            self.cap = None
            logger.info(f"Camera {self.device_id} released")

    @property
    def is_opened(self) -> bool:
        return self.cap is not None and self.cap.isOpened()

    def get_camera_info(self) -> dict:
        if not self.is_opened:
            return {"device_id": self.device_id, "opened": False}

        return {
            "device_id": self.device_id,
            "opened": True,
            "width": int(self.cap.get(cv2.CAP_PROP_FRAME_WIDTH)),
            "height": int(self.cap.get(cv2.CAP_PROP_FRAME_HEIGHT)),
            "fps": int(self.cap.get(cv2.CAP_PROP_FPS)),
            "frames_read": self.frame_count,
            "facing_mode": self.facing_mode
        }

class StaticFrameSource(FrameSource):
    """Serves a fixed list of frames or image files, in order."""

    def __init__(self, frames: Iterable[Union[np.ndarray, str, Path]], loop: bool = False):
        self._items: List[Union[np.ndarray, str, Path]] = list(frames)
        self.loop = loop
        self._index = 0
        self._opened = False

    def open(self):
        self._opened = True

    def read(self) -> Optional[np.ndarray]:
        if not self._opened or not self._items:
            return None

        if self._index >= len(self._items):
            if not self.loop:
                return None
            self._index = 0

        item = self._items[self._index]
        self._index += 1

        if isinstance(item, np.ndarray):
            return item

        frame = cv2.imread(str(item))
        if frame is None:
            logger.warning(f"Could not read image: {item}")
        return frame

    def release(self):
        self._opened = False

    @property
    def is_opened(self) -> bool:
        return self._opened

    @property
    def remaining(self) -> int:
        return max(0, len(self._items) - self._index)
