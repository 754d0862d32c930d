"""
Employee enrollment for the face attendance system.
"""

from .enrollment_controller import (
    EnrollmentController, EnrollmentState, EnrollmentSession,
    EmployeeForm, CaptureResult, CaptureStatus,
)

__all__ = [
    'EnrollmentController', 'EnrollmentState', 'EnrollmentSession',
    'EmployeeForm', 'CaptureResult', 'CaptureStatus',
]
