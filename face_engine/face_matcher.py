"""
Nearest-neighbour matching of live face descriptors against enrolled ones.
Distances are plain Euclidean over the raw descriptor values.
"""
import math
import time
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

import numpy as np

from utils.config import config
from utils.logger import logger

ReferenceSet = Iterable[Tuple[str, Sequence[np.ndarray]]]

@dataclass(frozen=True)
class MatchResult:
    """Closest enrolled identity for a live descriptor."""
    identity: str
    distance: float

    @property
    def confidence(self) -> int:
        return confidence_from_distance(self.distance)

def euclidean_distance(a: Sequence[float], b: Sequence[float]) -> float:
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    if a.shape != b.shape:
        raise ValueError(f"Descriptor shapes differ: {a.shape} vs {b.shape}")
    return float(np.linalg.norm(a - b))

def face_distances(references: Sequence[np.ndarray], live: np.ndarray) -> np.ndarray:
    """Distance from `live` to each row of `references`."""
    if len(references) == 0:
        return np.empty((0,))
    matrix = np.asarray(references, dtype=np.float64)
    live = np.asarray(live, dtype=np.float64)
    if matrix.ndim != 2 or matrix.shape[1] != live.shape[0]:
        raise ValueError(f"Descriptor shapes differ: {matrix.shape} vs {live.shape}")
    return np.linalg.norm(matrix - live, axis=1)

def find_best_match(live_embedding: np.ndarray, reference_set: ReferenceSet) -> Optional[MatchResult]:
    """
    Globally closest (identity, embedding) pair, or None for an empty set.

    No threshold is applied here. When several pairs share the minimum
    distance, the first one met in iteration order wins; the iteration order of
    a reference set is not guaranteed, so neither is the winner of a tie.
    """
    best: Optional[MatchResult] = None

    for identity, embeddings in reference_set:
        if len(embeddings) == 0:
            continue
        distances = face_distances(embeddings, live_embedding)
        index = int(np.argmin(distances))
        distance = float(distances[index])
        if best is None or distance < best.distance:
            best = MatchResult(identity=identity, distance=distance)

    return best

def is_match(distance: float, threshold: float = None) -> bool:
    threshold = config.face.match_threshold if threshold is None else threshold
    return distance < threshold

def confidence_from_distance(distance: float) -> int:
    """Percentage score, round((1 - distance) * 100) rounding halves up. Not clamped."""
    return int(math.floor((1.0 - distance) * 100.0 + 0.5))

def display_confidence(distance: float) -> int:
    return max(0, min(100, confidence_from_distance(distance)))

class FaceMatcher:
    """Matches descriptors against a read-only snapshot of the reference store."""

    def __init__(self, reference_set: ReferenceSet = None, threshold: float = None):
        self.threshold = config.face.match_threshold if threshold is None else threshold
        self._references: List[Tuple[str, Tuple[np.ndarray, ...]]] = []
        if reference_set is not None:
            self.set_references(reference_set)

        self.matching_times = []
        self.total_matches = 0
        self.total_rejections = 0

    @classmethod
    def from_store(cls, reference_store, threshold: float = None) -> "FaceMatcher":
        return cls(reference_store.get_all(), threshold=threshold)

    def set_references(self, reference_set: ReferenceSet):
        self._references = [
            (identity, tuple(np.asarray(e, dtype=np.float64) for e in embeddings))
            for identity, embeddings in reference_set
        ]
        logger.info(f"Face matcher loaded {self.embedding_count} descriptors "
                    f"for {len(self._references)} identities")

    @property
    def identities(self) -> List[str]:
        return [identity for identity, _ in self._references]

    @property
    def embedding_count(self) -> int:
        return sum(len(embeddings) for _, embeddings in self._references)

    @property
    def is_empty(self) -> bool:
        return self.embedding_count == 0

    def best_candidate(self, embedding: np.ndarray) -> Optional[MatchResult]:
        """Closest identity regardless of the threshold."""
        start_time = time.time()
        result = find_best_match(embedding, self._references)

        self.matching_times.append(time.time() - start_time)
        if len(self.matching_times) > 100:
            self.matching_times = self.matching_times[-100:]
        return result

    def match(self, embedding: np.ndarray) -> Optional[MatchResult]:
        """Closest identity if it is under the threshold, else None."""
        result = self.best_candidate(embedding)
        if result is None or not is_match(result.distance, self.threshold):
            self.total_rejections += 1
            if result is not None:
                logger.debug(f"Best candidate {result.identity} rejected (distance: {result.distance:.3f})")
            return None

        self.total_matches += 1
        logger.debug(f"Face matched: {result.identity} (distance: {result.distance:.3f})")
        return result

    def get_statistics(self) -> dict:
        avg_matching_time = float(np.mean(self.matching_times)) if self.matching_times else 0.0
        return {
            'identities': len(self._references),
            'descriptors': self.embedding_count,
            'threshold': self.threshold,
            'total_matches': self.total_matches,
            'total_rejections': self.total_rejections,
            'average_matching_time_ms': avg_matching_time * 1000
        }
