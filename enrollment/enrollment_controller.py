"""
Employee enrollment.
Captures a fixed number of face descriptors, one per user-triggered capture,
then registers the employee together with the captured descriptors.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

import numpy as np

from attendance.attendance_system import Employee
from camera.stream_handler import FrameSource
from face_engine.descriptor_extractor import FaceDescriptor, FaceLocation
from utils.config import config
from utils.exceptions import (
    AttendanceSystemError, DeviceError, DuplicateIdentityError, InsufficientCapturesError,
    InvalidStateError, PersistenceError, ValidationError,
)
from utils.logger import logger

class EnrollmentState(str, Enum):
    IDLE = "idle"
    CAPTURING = "capturing"
    QUOTA_REACHED = "quota_reached"
    SUBMITTING = "submitting"
    DONE = "done"

class CaptureStatus(str, Enum):
    CAPTURED = "captured"
    NO_FACE = "no_face"
    QUOTA_FULL = "quota_full"

@dataclass
class EmployeeForm:
    """Employee details entered during enrollment."""
    name: str = ""
    employee_id: str = ""
    department: str = ""
    email: Optional[str] = None
    phone: Optional[str] = None

    REQUIRED_FIELDS = ('name', 'employee_id', 'department')

    def cleaned(self) -> "EmployeeForm":
        def strip(value):
            return value.strip() if isinstance(value, str) else value

        return EmployeeForm(
            name=strip(self.name) or "",
            employee_id=strip(self.employee_id) or "",
            department=strip(self.department) or "",
            email=strip(self.email) or None,
            phone=strip(self.phone) or None
        )

    def validate(self) -> "EmployeeForm":
        """Return a whitespace-trimmed copy, or raise ValidationError naming empty required fields."""
        form = self.cleaned()
        missing = [name for name in self.REQUIRED_FIELDS if not getattr(form, name)]
        if missing:
            raise ValidationError(missing)
        return form

@dataclass
class EnrollmentSession:
    embeddings: List[np.ndarray] = field(default_factory=list)
    form: Optional[EmployeeForm] = None

    @property
    def count(self) -> int:
        return len(self.embeddings)

@dataclass
class CaptureResult:
    status: CaptureStatus
    captured: int
    required: int
    location: Optional[FaceLocation] = None

    @property
    def quota_reached(self) -> bool:
        return self.captured >= self.required

class EnrollmentController:
    """
    Drives one enrollment at a time.

    IDLE -> CAPTURING on `start_capture()`; each `capture()` that finds a face
    adds one descriptor until the quota is reached (QUOTA_REACHED). `submit()`
    registers the employee and moves to DONE, or returns to QUOTA_REACHED with
    the captures kept if anything fails. `reset()` discards the captures
    without touching the camera; `teardown()` also releases it.
    """

    def __init__(self, extractor, attendance_system, reference_store, camera: FrameSource,
                 required_captures: int = None, save_captures: bool = None):
        self.extractor = extractor
        self.attendance_system = attendance_system
        self.reference_store = reference_store
        self.camera = camera
        self.required_captures = required_captures or config.enrollment.required_captures
        self.save_captures = config.enrollment.save_captures if save_captures is None else save_captures

        self.state = EnrollmentState.IDLE
        self.session = EnrollmentSession()
        self.last_error: Optional[Exception] = None

    @property
    def captured_count(self) -> int:
        return self.session.count

    @property
    def progress(self) -> float:
        return min(1.0, self.session.count / self.required_captures)

    def start_capture(self):
        """Open the camera and begin a new session. DeviceError leaves the state unchanged."""
        if self.state not in (EnrollmentState.IDLE, EnrollmentState.DONE):
            raise InvalidStateError(f"Cannot start capture while {self.state.value}")

        self.extractor.load()
        self.camera.open()

        self.session = EnrollmentSession()
        self.last_error = None
        self.state = EnrollmentState.CAPTURING
        logger.info(f"Enrollment capture started ({self.required_captures} samples required)")

    def _next_frame(self, frame: Optional[np.ndarray]) -> np.ndarray:
        if frame is not None:
            return frame
        frame = self.camera.read()
        if frame is None:
            raise DeviceError("Camera stopped returning frames")
        return frame

    def preview(self, frame: np.ndarray = None) -> Optional[FaceDescriptor]:
        """Detect a face for live feedback between captures. Nothing is stored."""
        if self.state not in (EnrollmentState.CAPTURING, EnrollmentState.QUOTA_REACHED):
            return None

        return self.extractor.extract(self._next_frame(frame))

    def capture(self, frame: np.ndarray = None) -> CaptureResult:
        """
        Take one capture. A frame with no face is rejected and the state is unchanged.

        Raises:
            DeviceError: the camera returned no frame
        """
        if self.state == EnrollmentState.QUOTA_REACHED:
            return CaptureResult(CaptureStatus.QUOTA_FULL, self.session.count, self.required_captures)
        if self.state != EnrollmentState.CAPTURING:
            raise InvalidStateError(f"Cannot capture while {self.state.value}")

        frame = self._next_frame(frame)
        descriptor = self.extractor.extract(frame)

        if descriptor is None:
            logger.info("No face detected. Please position your face clearly in the camera")
            return CaptureResult(CaptureStatus.NO_FACE, self.session.count, self.required_captures)

        self.session.embeddings.append(descriptor.embedding)
        if self.save_captures:
            logger.save_image(frame, "enrollment_capture", {'sample': self.session.count})

        if self.session.count >= self.required_captures:
            self.state = EnrollmentState.QUOTA_REACHED
            logger.info(f"Captured {self.session.count}/{self.required_captures} face samples; ready to register")
        else:
            logger.info(f"Captured {self.session.count}/{self.required_captures} face samples")

        return CaptureResult(CaptureStatus.CAPTURED, self.session.count, self.required_captures,
                             location=descriptor.location)

    def submit(self, form: EmployeeForm) -> Employee:
        """
        Register the employee and their captured descriptors.

        Raises:
            InsufficientCapturesError: fewer captures than required, whatever the form holds
            ValidationError: a required field is empty
            DuplicateIdentityError: the employee ID is already registered
            PersistenceError: either store failed
        """
        if self.state in (EnrollmentState.SUBMITTING, EnrollmentState.DONE):
            raise InvalidStateError(f"Cannot submit while {self.state.value}")
        if self.session.count < self.required_captures:
            raise InsufficientCapturesError(self.session.count, self.required_captures)

        self.state = EnrollmentState.SUBMITTING
        self.session.form = form
        try:
            employee = self._register(form)
        except Exception as e:
            self.last_error = e
            self.state = EnrollmentState.QUOTA_REACHED
            if isinstance(e, AttendanceSystemError):
                logger.warning(f"Enrollment failed: {e}")
            else:
                logger.error(f"Unexpected error during enrollment: {e}")
            raise

        self.camera.release()
        self.session = EnrollmentSession()
        self.last_error = None
        self.state = EnrollmentState.DONE
        return employee

    def _register(self, form: EmployeeForm) -> Employee:
        form = form.validate()

        if self.attendance_system.get_employee_by_key(form.employee_id) is not None:
            raise DuplicateIdentityError(form.employee_id)

        employee = self.attendance_system.add_employee(
            form.name, form.employee_id, form.department, email=form.email, phone=form.phone
        )

        try:
            self.reference_store.insert(employee.id, self.session.embeddings)
        except (PersistenceError, ValueError) as e:
            self.attendance_system.delete_employee(employee.id)
            raise PersistenceError(f"Could not store face data for {form.employee_id}: {e}") from e

        logger.log_attendance_event(employee.employee_id, "ENROLLED", {
            'name': employee.name,
            'department': employee.department,
            'samples': self.session.count
        })
        return employee

    def reset(self):
        """Discard captures and return to IDLE. The camera is left as it is."""
        self.session = EnrollmentSession()
        self.last_error = None
        self.state = EnrollmentState.IDLE

    def teardown(self):
        """Release the camera and discard the session."""
        self.camera.release()
        self.reset()
