"""
Face descriptor extraction using dlib through the face_recognition library.
Each frame yields at most one face location plus its 128-d descriptor.
"""
import cv2
import numpy as np
import threading
import time
from dataclasses import dataclass, field
from typing import Optional, Tuple
import logging

from utils.config import config
from utils.exceptions import ModelNotReadyError

logger = logging.getLogger(__name__)

@dataclass(frozen=True)
class FaceLocation:
    """Face bounding box in (top, right, bottom, left) order, as dlib reports it."""
    top: int
    right: int
    bottom: int
    left: int

    @property
    def width(self) -> int:
        return max(0, self.right - self.left)

    @property
    def height(self) -> int:
        return max(0, self.bottom - self.top)

    @property
    def area(self) -> int:
        return self.width * self.height

    def as_tuple(self) -> Tuple[int, int, int, int]:
        return (self.top, self.right, self.bottom, self.left)

    def to_xywh(self) -> Tuple[int, int, int, int]:
        return (self.left, self.top, self.width, self.height)

@dataclass(frozen=True)
class FaceDescriptor:
    """Primary face found in a frame and its embedding."""
    location: FaceLocation
    embedding: np.ndarray
    timestamp: float = field(default_factory=time.time)

    def __post_init__(self):
        embedding = np.array(self.embedding, dtype=np.float64)
        embedding.setflags(write=False)
        object.__setattr__(self, 'embedding', embedding)

class DescriptorExtractor:
    """
    Detects the most prominent face in a frame and computes its descriptor.

    `load()` must run once before `extract()`; it is idempotent. The detection
    backend defaults to the face_recognition module and can be swapped for any
    object exposing `face_locations` and `face_encodings`.
    """

    def __init__(self, model: str = None, detection_scale: float = None,
                 num_jitters: int = None, upsample_times: int = None, backend=None):
        self.model = model or config.face.model
        self.detection_scale = detection_scale or config.face.detection_scale
        self.num_jitters = num_jitters or config.face.num_jitters
        self.upsample_times = config.face.upsample_times if upsample_times is None else upsample_times

        self._backend = backend
        self._ready = False
        self._load_lock = threading.Lock()

        self.extraction_times = []
        self.total_extractions = 0
        self.faces_found = 0

    @property
    def is_ready(self) -> bool:
        return self._ready

    def load(self):
        """Load the detection and embedding models. Later calls are no-ops."""
        if self._ready:
            return

        with self._load_lock:
            if self._ready:
                return

            if self._backend is None:
                # Importing face_recognition loads the dlib model weights.
                import face_recognition
                self._backend = face_recognition

            blank = np.zeros((100, 100, 3), dtype=np.uint8)
            if self.model == "cnn":
                try:
                    self._backend.face_locations(blank, model="cnn")
                except RuntimeError as e:
                    logger.warning(f"CNN model failed, falling back to HOG: {e}")
                    self.model = "hog"

            self._backend.face_locations(blank, model=self.model)
            self._ready = True
            logger.info(f"Face models loaded (detector: {self.model})")

    def extract(self, frame: np.ndarray) -> Optional[FaceDescriptor]:
        """
        Find the primary face in a BGR frame.

        Args:
            frame: OpenCV image (BGR, BGRA or grayscale)

        Returns:
            FaceDescriptor for the largest face, or None if no face was found
        """
        if not self._ready:
            raise ModelNotReadyError("Face models are not loaded; call load() first")

        rgb_frame = self._to_rgb(frame)
        if rgb_frame is None:
            return None

        start_time = time.time()
        height, width = rgb_frame.shape[:2]

        scale_factor = 1.0
        small_frame = rgb_frame
        if self.detection_scale < 1.0:
            new_width = int(width * self.detection_scale)
            new_height = int(height * self.detection_scale)
            if new_width > 0 and new_height > 0:
                small_frame = cv2.resize(rgb_frame, (new_width, new_height))
                scale_factor = 1.0 / self.detection_scale

        face_locations = self._backend.face_locations(
            small_frame, number_of_times_to_upsample=self.upsample_times, model=self.model
        )
        self.total_extractions += 1

        if not face_locations:
            self._record_time(start_time)
            return None

        # Largest box is the most prominent face
        primary = max(face_locations, key=lambda loc: (loc[1] - loc[3]) * (loc[2] - loc[0]))

        encodings = self._backend.face_encodings(
            small_frame, known_face_locations=[primary], num_jitters=self.num_jitters
        )
        self._record_time(start_time)
        if len(encodings) == 0:
            return None

        top, right, bottom, left = primary
        if scale_factor != 1.0:
            top = max(0, min(height, int(top * scale_factor)))
            bottom = max(0, min(height, int(bottom * scale_factor)))
            left = max(0, min(width, int(left * scale_factor)))
            right = max(0, min(width, int(right * scale_factor)))

        self.faces_found += 1
        return FaceDescriptor(
            location=FaceLocation(int(top), int(right), int(bottom), int(left)),
            embedding=encodings[0]
        )

    def _to_rgb(self, frame: np.ndarray) -> Optional[np.ndarray]:
        if frame is None or not isinstance(frame, np.ndarray) or frame.size == 0:
            logger.warning("Invalid frame provided to extract")
            return None

        if frame.ndim == 2:
            return cv2.cvtColor(frame, cv2.COLOR_GRAY2RGB)
        if frame.ndim == 3 and frame.shape[2] == 4:
            return cv2.cvtColor(frame, cv2.COLOR_BGRA2RGB)
        if frame.ndim == 3 and frame.shape[2] == 3:
            return cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)

        logger.warning(f"Invalid frame shape: {frame.shape}")
        return None

    def _record_time(self, start_time: float):
        self.extraction_times.append(time.time() - start_time)
        if len(self.extraction_times) > 100:
            self.extraction_times = self.extraction_times[-100:]

    def get_statistics(self) -> dict:
        avg_time = float(np.mean(self.extraction_times)) if self.extraction_times else 0.0
        return {
            'ready': self._ready,
            'model': self.model,
            'total_extractions': self.total_extractions,
            'faces_found': self.faces_found,
            'average_extraction_time_ms': avg_time * 1000
        }

def draw_face_overlay(frame: np.ndarray, location: FaceLocation, label: str = None,
                      color: Tuple[int, int, int] = (255, 128, 0)) -> np.ndarray:
    """Draw a face box and optional label on a copy of the frame."""
    if frame is None or frame.size == 0:
        return frame

    overlay = frame.copy()
    cv2.rectangle(overlay, (location.left, location.top), (location.right, location.bottom), color, 3)

    if label:
        font = cv2.FONT_HERSHEY_SIMPLEX
        (text_width, text_height), _ = cv2.getTextSize(label, font, 0.6, 2)
        top = max(0, location.top - text_height - 10)
        cv2.rectangle(overlay, (location.left, top), (location.left + text_width + 10, location.top), color, -1)
        cv2.putText(overlay, label, (location.left + 5, location.top - 5), font, 0.6, (255, 255, 255), 2)

    return overlay

# Process-wide extractor shared by the CLI, API and controllers
_extractor: Optional[DescriptorExtractor] = None
_extractor_lock = threading.Lock()

def get_extractor() -> DescriptorExtractor:
    """Return the shared extractor, creating it on first use (not loaded)."""
    global _extractor
    with _extractor_lock:
        if _extractor is None:
            _extractor = DescriptorExtractor()
        return _extractor

def load_models() -> DescriptorExtractor:
    """Load the shared extractor's models. Safe to call repeatedly."""
    extractor = get_extractor()
    extractor.load()
    return extractor

def models_ready() -> bool:
    return _extractor is not None and _extractor.is_ready
