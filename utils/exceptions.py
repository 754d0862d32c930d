"""Error types raised by the face attendance system."""
from typing import Iterable


class AttendanceSystemError(Exception):
    """Base class for all errors raised by this project."""


class DeviceError(AttendanceSystemError):
    """Capture device is unavailable or access was denied."""


class ModelNotReadyError(AttendanceSystemError):
    """Face models were used before they finished loading."""


class EnrollmentError(AttendanceSystemError):
    """Base class for enrollment failures."""


class InsufficientCapturesError(EnrollmentError):
    def __init__(self, captured: int, required: int):
        super().__init__(f"Captured {captured} of {required} required face samples")
        self.captured = captured
        self.required = required


class ValidationError(EnrollmentError):
    def __init__(self, fields: Iterable[str], message: str = None):
        self.fields = list(fields)
        super().__init__(message or f"Missing or invalid fields: {', '.join(self.fields)}")


class DuplicateIdentityError(EnrollmentError):
    def __init__(self, employee_id: str):
        super().__init__(f"Employee ID already registered: {employee_id}")
        self.employee_id = employee_id


class InvalidStateError(EnrollmentError):
    """Operation is not allowed in the controller's current state."""


class PersistenceError(AttendanceSystemError):
    """A record store rejected or failed an operation."""


class DuplicateCheckInError(PersistenceError):
    def __init__(self, employee_id: str, date):
        super().__init__(f"Attendance already recorded for {employee_id} on {date}")
        self.employee_id = employee_id
        self.date = date
