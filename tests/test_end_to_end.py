"""Enrollment followed by live recognition, with scripted face descriptors."""
import datetime

import pytest

from attendance.attendance_system import determine_status
from attendance.recognition_loop import RecognitionLoop, ScanState
from camera.stream_handler import StaticFrameSource
from enrollment.enrollment_controller import EmployeeForm, EnrollmentController
from tests.helpers import FakeClock, FakeExtractor, at_distance, blank_frame, make_embedding

THRESHOLD = 0.5

@pytest.fixture
def vector():
    return make_embedding(99)

@pytest.fixture
def enrolled_employee(attendance_system, reference_store, vector):
    extractor = FakeExtractor([at_distance(vector, 0.01, seed=s) for s in range(5)])
    camera = StaticFrameSource([blank_frame()], loop=True)
    controller = EnrollmentController(extractor, attendance_system, reference_store, camera,
                                      required_captures=5)
    controller.start_capture()
    for _ in range(5):
        controller.capture()
    return controller.submit(EmployeeForm("E1 Person", "E1", "Engineering"))

def recognize(attendance_system, reference_store, live_embedding):
    extractor = FakeExtractor([live_embedding])
    camera = StaticFrameSource([blank_frame()])
    loop = RecognitionLoop(extractor, attendance_system, reference_store, camera,
                           threshold=THRESHOLD, cooldown_seconds=0.5, clock=FakeClock(),
                           save_snapshots=False)
    outcomes = []
    loop.run(on_outcome=lambda frame, outcome: outcomes.append(outcome))
    return outcomes

def test_close_face_is_accepted_and_checked_in(attendance_system, reference_store, enrolled_employee, vector):
    outcomes = recognize(attendance_system, reference_store, at_distance(vector, 0.1))

    assert len(outcomes) == 1
    outcome = outcomes[0]
    assert outcome.state == ScanState.MATCHED
    assert outcome.employee.employee_id == "E1"
    assert outcome.match.distance < THRESHOLD

    records = attendance_system.get_attendance_by_date(outcome.check_in.timestamp.date())
    assert len(records) == 1
    assert records[0].employee_id == enrolled_employee.id
    assert records[0].status == determine_status(outcome.check_in.timestamp).value

def test_far_face_is_rejected(attendance_system, reference_store, enrolled_employee, vector):
    outcomes = recognize(attendance_system, reference_store, at_distance(vector, 0.9))

    assert [o.state for o in outcomes] == [ScanState.UNKNOWN]
    assert attendance_system.get_attendance_by_date(datetime.date.today()) == []
