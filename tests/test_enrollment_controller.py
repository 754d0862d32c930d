import pytest

from camera.stream_handler import FrameSource, StaticFrameSource
from enrollment.enrollment_controller import (
    CaptureStatus, EmployeeForm, EnrollmentController, EnrollmentState,
)
from face_engine.reference_store import ReferenceStore
from tests.helpers import blank_frame, make_embedding
from utils.exceptions import (
    DeviceError, DuplicateIdentityError, InsufficientCapturesError,
    InvalidStateError, PersistenceError, ValidationError,
)

QUOTA = 5

def valid_form(employee_id="E1"):
    return EmployeeForm(name="Alice Smith", employee_id=employee_id, department="Engineering")

class UnavailableCamera(FrameSource):
    def open(self):
        raise DeviceError("Permission denied")

    def read(self):
        return None

    def release(self):
        pass

    @property
    def is_opened(self):
        return False

@pytest.fixture
def controller(extractor, attendance_system, reference_store, frame_source):
    extractor.default = make_embedding(1)
    return EnrollmentController(extractor, attendance_system, reference_store, frame_source,
                                required_captures=QUOTA, save_captures=False)

def fill_quota(controller):
    controller.start_capture()
    for _ in range(QUOTA):
        controller.capture()
    assert controller.state == EnrollmentState.QUOTA_REACHED

def test_start_capture_opens_camera(controller, frame_source, extractor):
    controller.start_capture()
    assert controller.state == EnrollmentState.CAPTURING
    assert frame_source.is_opened
    assert extractor.is_ready

def test_device_error_leaves_controller_idle(extractor, attendance_system, reference_store):
    controller = EnrollmentController(extractor, attendance_system, reference_store, UnavailableCamera(),
                                      required_captures=QUOTA)
    with pytest.raises(DeviceError):
        controller.start_capture()
    assert controller.state == EnrollmentState.IDLE

def test_capture_without_face_is_rejected(controller, extractor):
    controller.start_capture()
    extractor.queue(None)

    result = controller.capture()

    assert result.status == CaptureStatus.NO_FACE
    assert result.captured == 0
    assert controller.state == EnrollmentState.CAPTURING

def test_camera_without_frames_is_a_device_error(extractor, attendance_system, reference_store):
    controller = EnrollmentController(extractor, attendance_system, reference_store, StaticFrameSource([]),
                                      required_captures=QUOTA, save_captures=False)
    controller.start_capture()

    with pytest.raises(DeviceError):
        controller.capture()
    with pytest.raises(DeviceError):
        controller.preview()

    assert extractor.extract_calls == 0
    assert controller.state == EnrollmentState.CAPTURING
    assert controller.captured_count == 0

def test_captures_until_quota(controller):
    controller.start_capture()
    results = [controller.capture() for _ in range(QUOTA)]

    assert [r.captured for r in results] == [1, 2, 3, 4, 5]
    assert results[-1].quota_reached
    assert controller.state == EnrollmentState.QUOTA_REACHED
    assert controller.progress == 1.0

    extra = controller.capture()
    assert extra.status == CaptureStatus.QUOTA_FULL
    assert controller.captured_count == QUOTA

def test_capture_uses_explicit_frame(controller, extractor):
    controller.start_capture()
    result = controller.capture(blank_frame())
    assert result.status == CaptureStatus.CAPTURED
    assert result.location is not None

def test_capture_requires_started_session(controller):
    with pytest.raises(InvalidStateError):
        controller.capture()

def test_preview_does_not_store_anything(controller):
    controller.start_capture()
    assert controller.preview() is not None
    assert controller.captured_count == 0

def test_submit_below_quota_is_rejected_even_with_valid_form(controller, attendance_system):
    controller.start_capture()
    for _ in range(QUOTA - 1):
        controller.capture()

    with pytest.raises(InsufficientCapturesError):
        controller.submit(valid_form())
    assert attendance_system.count_active_employees() == 0
    assert controller.captured_count == QUOTA - 1

def test_submit_with_missing_fields(controller, attendance_system):
    fill_quota(controller)

    with pytest.raises(ValidationError) as exc_info:
        controller.submit(EmployeeForm(name="  ", employee_id="E1", department=""))

    assert exc_info.value.fields == ["name", "department"]
    assert controller.state == EnrollmentState.QUOTA_REACHED
    assert controller.captured_count == QUOTA
    assert attendance_system.count_active_employees() == 0

def test_duplicate_employee_id_never_creates_second_record(controller, attendance_system, reference_store):
    existing = attendance_system.add_employee("Bob Jones", "E1", "Sales")
    fill_quota(controller)

    with pytest.raises(DuplicateIdentityError):
        controller.submit(valid_form("E1"))

    assert controller.state == EnrollmentState.QUOTA_REACHED
    assert controller.captured_count == QUOTA
    assert attendance_system.count_active_employees() == 1
    assert attendance_system.get_employee_by_key("E1").id == existing.id
    assert reference_store.count() == 0

    employee = controller.submit(valid_form("E2"))
    assert employee.employee_id == "E2"
    assert controller.state == EnrollmentState.DONE

def test_successful_submit(controller, attendance_system, reference_store, frame_source):
    fill_quota(controller)

    employee = controller.submit(EmployeeForm(" Alice Smith ", "E1", "Engineering", email="a@example.com"))

    assert controller.state == EnrollmentState.DONE
    assert controller.captured_count == 0
    assert not frame_source.is_opened
    assert employee.name == "Alice Smith"
    assert attendance_system.get_employee(employee.id).email == "a@example.com"
    assert len(reference_store.get_by_identity(employee.id)) == QUOTA

def test_reference_store_failure_rolls_back_employee(extractor, attendance_system, frame_source, tmp_path):
    extractor.default = make_embedding(1)
    closed_store = ReferenceStore(str(tmp_path / "never_opened.db"))
    controller = EnrollmentController(extractor, attendance_system, closed_store, frame_source,
                                      required_captures=QUOTA)
    fill_quota(controller)

    with pytest.raises(PersistenceError):
        controller.submit(valid_form())

    assert attendance_system.count_active_employees() == 0
    assert controller.state == EnrollmentState.QUOTA_REACHED
    assert controller.captured_count == QUOTA

def test_unexpected_submit_error_returns_to_quota_reached(controller, attendance_system):
    fill_quota(controller)

    with pytest.raises(AttributeError):
        controller.submit(None)

    assert controller.state == EnrollmentState.QUOTA_REACHED
    assert controller.captured_count == QUOTA
    employee = controller.submit(valid_form())
    assert employee.employee_id == "E1"
    assert controller.state == EnrollmentState.DONE

def test_reset_discards_captures_but_keeps_camera(controller, frame_source):
    controller.start_capture()
    controller.capture()

    controller.reset()

    assert controller.state == EnrollmentState.IDLE
    assert controller.captured_count == 0
    assert frame_source.is_opened

def test_teardown_releases_camera(controller, frame_source):
    controller.start_capture()
    controller.capture()

    controller.teardown()

    assert not frame_source.is_opened
    assert controller.state == EnrollmentState.IDLE

def test_new_session_after_done(controller, frame_source):
    fill_quota(controller)
    controller.submit(valid_form())

    controller.start_capture()
    assert controller.state == EnrollmentState.CAPTURING
    assert frame_source.is_opened
    assert controller.captured_count == 0

def test_form_validation_trims_optional_fields():
    form = EmployeeForm("Alice", "E1", "IT", email="  ", phone=" 555-0100 ").validate()
    assert form.email is None
    assert form.phone == "555-0100"
