"""Face descriptor extraction, storage and matching."""
from .descriptor_extractor import (
    DescriptorExtractor, FaceDescriptor, FaceLocation,
    get_extractor, load_models, models_ready,
)
from .reference_store import ReferenceStore, ReferenceRecord
from .face_matcher import (
    FaceMatcher, MatchResult, euclidean_distance, find_best_match,
    confidence_from_distance, display_confidence, is_match,
)
__all__ = [
    'DescriptorExtractor', 'FaceDescriptor', 'FaceLocation',
    'get_extractor', 'load_models', 'models_ready',
    'ReferenceStore', 'ReferenceRecord',
    'FaceMatcher', 'MatchResult', 'euclidean_distance', 'find_best_match',
    'confidence_from_distance', 'display_confidence', 'is_match',
]
