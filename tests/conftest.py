import os

os.environ.setdefault("LOG_TO_FILE", "false")

import pytest

from attendance.attendance_system import AttendanceSystem
from camera.stream_handler import StaticFrameSource
from face_engine.reference_store import ReferenceStore
from utils.config import config
from tests.helpers import FakeClock, FakeExtractor, blank_frame

@pytest.fixture
def attendance_system(tmp_path):
    return AttendanceSystem(str(tmp_path / "attendance.db"))

@pytest.fixture
def reference_store(tmp_path):
    store = ReferenceStore(str(tmp_path / "face_encodings.db"))
    store.open()
    yield store
    store.close()

@pytest.fixture
def extractor():
    return FakeExtractor()

@pytest.fixture
def clock():
    return FakeClock()

@pytest.fixture
def frame_source():
    return StaticFrameSource([blank_frame()], loop=True)

@pytest.fixture
def output_dir(tmp_path, monkeypatch):
    """Redirect snapshots and reports into the test's temp directory."""
    monkeypatch.setattr(config.logging, "output_dir", str(tmp_path / "output"))
    monkeypatch.setattr(config.attendance, "reports_directory", str(tmp_path / "reports"))
    return tmp_path

@pytest.fixture
def employee(attendance_system):
    return attendance_system.add_employee("Alice Smith", "E1", "Engineering")
