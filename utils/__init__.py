"""Configuration, logging and error types for the face attendance system."""
from .config import config, Config
from .logger import logger, AttendanceLogger
from .exceptions import (
    AttendanceSystemError,
    DeviceError,
    ModelNotReadyError,
    EnrollmentError,
    InsufficientCapturesError,
    ValidationError,
    DuplicateIdentityError,
    InvalidStateError,
    PersistenceError,
    DuplicateCheckInError,
)
__all__ = [
    'config', 'Config', 'logger', 'AttendanceLogger',
    'AttendanceSystemError', 'DeviceError', 'ModelNotReadyError', 'EnrollmentError',
    'InsufficientCapturesError', 'ValidationError', 'DuplicateIdentityError',
    'InvalidStateError', 'PersistenceError', 'DuplicateCheckInError',
]
