"""Test doubles shared across the test suite."""
from collections import deque

import numpy as np

from face_engine.descriptor_extractor import FaceDescriptor, FaceLocation
from utils.exceptions import ModelNotReadyError

EMBEDDING_SIZE = 128
FACE_BOX = FaceLocation(top=40, right=200, bottom=200, left=40)

def make_embedding(seed: int = 0) -> np.ndarray:
    rng = np.random.default_rng(seed)
    return rng.normal(0.0, 0.1, EMBEDDING_SIZE)

def at_distance(base: np.ndarray, distance: float, seed: int = 1) -> np.ndarray:
    """A vector exactly `distance` away from `base` in a random direction."""
    direction = np.random.default_rng(seed).normal(size=base.shape[0])
    direction /= np.linalg.norm(direction)
    return base + direction * distance

def blank_frame(width: int = 320, height: int = 240) -> np.ndarray:
    return np.zeros((height, width, 3), dtype=np.uint8)

class FakeExtractor:
    """Extractor returning scripted embeddings; None entries mean 'no face'."""

    def __init__(self, script=(), default=None):
        self.script = deque(script)
        self.default = default
        self.model = "fake"
        self.load_calls = 0
        self.extract_calls = 0
        self._ready = False

    @property
    def is_ready(self) -> bool:
        return self._ready

    def load(self):
        self.load_calls += 1
        self._ready = True

    def queue(self, *embeddings):
        self.script.extend(embeddings)

    def extract(self, frame):
        if not self._ready:
            raise ModelNotReadyError("not loaded")
        self.extract_calls += 1
        embedding = self.script.popleft() if self.script else self.default
        if embedding is None:
            return None
        return FaceDescriptor(location=FACE_BOX, embedding=embedding)

    def get_statistics(self) -> dict:
        return {'ready': self._ready, 'total_extractions': self.extract_calls}

class FakeBackend:
    """Stands in for the face_recognition module."""

    def __init__(self, locations=None, fail_cnn=False):
        self.locations = list(locations or [])
        self.fail_cnn = fail_cnn
        self.location_calls = []
        self.encoding_calls = []

    def face_locations(self, image, number_of_times_to_upsample=1, model="hog"):
        self.location_calls.append((image.shape, model))
        if model == "cnn" and self.fail_cnn:
            raise RuntimeError("CUDA not available")
        return list(self.locations)

    def face_encodings(self, image, known_face_locations=None, num_jitters=1):
        self.encoding_calls.append(list(known_face_locations or []))
        return [np.full(EMBEDDING_SIZE, 0.25) for _ in (known_face_locations or [])]

class FakeClock:
    def __init__(self, start: float = 100.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds
