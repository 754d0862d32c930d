"""
Live attendance loop.
Pulls frames, extracts the primary face, matches it against the enrolled
descriptors and records one check-in per employee per day.
"""
import datetime
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Set

import numpy as np

from attendance.attendance_system import AttendanceStatus, Employee, determine_status, parse_cutoff
from camera.stream_handler import FrameSource
from face_engine.descriptor_extractor import FaceLocation
from face_engine.face_matcher import FaceMatcher, MatchResult
from utils.config import config
from utils.exceptions import DeviceError, DuplicateCheckInError, PersistenceError
from utils.logger import logger

class ScanState(str, Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    FACE_DETECTED = "face_detected"
    MATCHED = "matched"
    UNKNOWN = "unknown"

@dataclass
class CheckInEvent:
    employee: Employee
    timestamp: datetime.datetime
    confidence: int
    status: AttendanceStatus
    record_id: str

@dataclass
class FrameOutcome:
    """What one scan tick saw and did."""
    state: ScanState
    location: Optional[FaceLocation] = None
    match: Optional[MatchResult] = None
    employee: Optional[Employee] = None
    check_in: Optional[CheckInEvent] = None
    attempted: bool = False

class RateLimitGate:
    """
    Single busy flag allowing at most one match attempt in flight.

    `try_acquire()` sets the flag synchronously; `start_cooldown()` schedules
    it to clear once the cooldown has elapsed.
    """

    def __init__(self, cooldown_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._busy = False
        self._rearm_at: Optional[float] = None

    @property
    def busy(self) -> bool:
        if self._busy and self._rearm_at is not None and self._clock() >= self._rearm_at:
            self._busy = False
            self._rearm_at = None
        return self._busy

    def try_acquire(self) -> bool:
        if self.busy:
            return False
        self._busy = True
        self._rearm_at = None
        return True

    def start_cooldown(self):
        self._rearm_at = self._clock() + self.cooldown_seconds

    def reset(self):
        self._busy = False
        self._rearm_at = None

class RecognitionLoop:
    """
    Continuous recognition over a frame source.

    The reference descriptors and employee map are snapshotted by
    `initialize()` and not refreshed while running; employees enrolled after
    that are only recognized once the loop is re-initialized.
    """

    def __init__(self, extractor, attendance_system, reference_store, camera: FrameSource = None,
                 threshold: float = None, work_start_time: str = None, cooldown_seconds: float = None,
                 clock: Callable[[], float] = time.monotonic,
                 now: Callable[[], datetime.datetime] = datetime.datetime.now,
                 save_snapshots: bool = None):
        self.extractor = extractor
        self.attendance_system = attendance_system
        self.reference_store = reference_store
        self.camera = camera

        self.threshold = config.face.match_threshold if threshold is None else threshold
        self.cutoff = parse_cutoff(work_start_time or config.attendance.work_start_time)
        cooldown = config.attendance.cooldown_seconds if cooldown_seconds is None else cooldown_seconds
        self.gate = RateLimitGate(cooldown, clock)
        self._now = now
        self.save_snapshots = config.attendance.save_snapshots if save_snapshots is None else save_snapshots

        self.matcher = FaceMatcher(threshold=self.threshold)
        self.employees: Dict[str, Employee] = {}
        self.marked_today: Set[str] = set()
        self._marked_date: Optional[datetime.date] = None

        self.state = ScanState.IDLE
        self.last_match: Optional[FrameOutcome] = None
        self.recent_check_ins: List[CheckInEvent] = []
        self.frame_count = 0
        self.running = False
        self._initialized = False

    def initialize(self):
        """Load models and snapshot descriptors, employees and today's check-ins."""
        self.extractor.load()

        self.matcher.set_references(self.reference_store.get_all())
        self.employees = {emp.id: emp for emp in self.attendance_system.list_active_employees()}
        self._seed_marked(self._now().date())
        self._initialized = True

        logger.info(f"Recognition ready: {len(self.employees)} employees, "
                    f"{self.matcher.embedding_count} descriptors, "
                    f"{len(self.marked_today)} already checked in today")

    def _seed_marked(self, day: datetime.date):
        self.marked_today = set(self.attendance_system.get_marked_employee_ids(day))
        self._marked_date = day

    def start(self):
        """Acquire the camera. DeviceError propagates to the caller."""
        if not self._initialized:
            self.initialize()
        if self.camera is not None:
            self.camera.open()
        self.running = True
        self.state = ScanState.SCANNING
        logger.info("Recognition loop started")

    def stop(self):
        """Stop scheduling ticks and release the camera."""
        self.running = False
        if self.camera is not None:
            self.camera.release()
        self.gate.reset()
        self.state = ScanState.IDLE
        self.last_match = None
        logger.info(f"Recognition loop stopped after {self.frame_count} frames")

    def run(self, max_frames: int = None, on_outcome: Callable[[np.ndarray, FrameOutcome], bool] = None):
        """
        Process frames until stopped, the source is exhausted or `max_frames` is hit.

        `on_outcome` is called after every tick; returning False stops the loop.
        """
        if self.camera is None:
            raise DeviceError("No frame source configured for the recognition loop")
        if not self.running:
            self.start()

        processed = 0
        try:
            while self.running:
                frame = self.camera.read()
                if frame is None:
                    logger.warning("No frame received from camera")
                    break

                outcome = self.process_frame(frame)
                processed += 1

                if on_outcome is not None and on_outcome(frame, outcome) is False:
                    break
                if max_frames is not None and processed >= max_frames:
                    break
        finally:
            self.stop()

    def process_frame(self, frame: np.ndarray) -> FrameOutcome:
        """Run one detect-and-match tick."""
        self.frame_count += 1
        descriptor = self.extractor.extract(frame)

        if descriptor is None:
            self.state = ScanState.SCANNING
            self.last_match = None
            return FrameOutcome(state=ScanState.SCANNING)

        outcome = FrameOutcome(state=ScanState.FACE_DETECTED, location=descriptor.location)

        if self.matcher.is_empty or not self.gate.try_acquire():
            self.state = outcome.state
            return outcome

        outcome.attempted = True
        try:
            match = self.matcher.match(descriptor.embedding)
            employee = self.employees.get(match.identity) if match else None

            if match is None or employee is None:
                outcome.state = ScanState.UNKNOWN
                self.last_match = None
            else:
                outcome.state = ScanState.MATCHED
                outcome.match = match
                outcome.employee = employee
                self.last_match = outcome

                if not self.is_marked(employee.id):
                    outcome.check_in = self.mark_attendance(employee, match.confidence, frame)
        finally:
            self.gate.start_cooldown()

        self.state = outcome.state
        return outcome

    def is_marked(self, employee_id: str) -> bool:
        today = self._now().date()
        if today != self._marked_date:
            logger.info(f"New day {today}; reloading check-ins")
            self._seed_marked(today)
        return employee_id in self.marked_today

    def mark_attendance(self, employee: Employee, confidence: int,
                        frame: np.ndarray = None) -> Optional[CheckInEvent]:
        """Record a check-in. Returns None if storage refused or failed it."""
        now = self._now()
        status = determine_status(now, self.cutoff)

        snapshot_path = None
        if self.save_snapshots and frame is not None:
            snapshot_path = logger.save_attendance_image(frame, employee.employee_id, confidence) or None

        try:
            record = self.attendance_system.log_attendance(
                employee.id, now, confidence, status, snapshot_path=snapshot_path
            )
        except DuplicateCheckInError:
            logger.info(f"{employee.name} already checked in on {now.date()}")
            self.marked_today.add(employee.id)
            return None
        except PersistenceError as e:
            # Left unmarked so the next recognition retries
            logger.error(f"Failed to mark attendance for {employee.name}: {e}")
            logger.log_attendance_event(employee.employee_id, "CHECK_IN_FAILED", {'error': str(e)}, confidence)
            return None

        self.marked_today.add(employee.id)
        event = CheckInEvent(
            employee=employee,
            timestamp=now,
            confidence=confidence,
            status=status,
            record_id=record.id
        )
        self.recent_check_ins.insert(0, event)
        del self.recent_check_ins[config.attendance.recent_limit:]

        logger.log_attendance_event(employee.employee_id, "CHECK_IN", {
            'name': employee.name,
            'department': employee.department,
            'status': status.value,
            'time': now.strftime('%H:%M:%S')
        }, confidence)
        return event

    def get_status(self) -> dict:
        return {
            'running': self.running,
            'state': self.state.value,
            'frames_processed': self.frame_count,
            'employees_loaded': len(self.employees),
            'checked_in_today': len(self.marked_today),
            'matcher': self.matcher.get_statistics(),
            'recent_check_ins': [
                {
                    'name': event.employee.name,
                    'employee_id': event.employee.employee_id,
                    'time': event.timestamp.isoformat(),
                    'confidence': event.confidence,
                    'status': event.status.value
                }
                for event in self.recent_check_ins
            ]
        }
