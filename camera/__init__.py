"""Frame sources for the face attendance system."""
from .stream_handler import FrameSource, CameraStream, StaticFrameSource
__all__ = ['FrameSource', 'CameraStream', 'StaticFrameSource']
