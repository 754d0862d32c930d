import cv2
import pytest

from camera.stream_handler import CameraStream, StaticFrameSource
from tests.helpers import blank_frame
from utils.exceptions import DeviceError

def test_static_source_serves_frames_in_order():
    first, second = blank_frame(), blank_frame(64, 48)
    source = StaticFrameSource([first, second])

    assert source.read() is None, "nothing is served before open()"
    with source:
        assert source.read() is first
        assert source.read() is second
        assert source.read() is None
    assert not source.is_opened

def test_static_source_loops():
    source = StaticFrameSource([blank_frame()], loop=True)
    source.open()
    frames = [source.read() for _ in range(3)]
    assert all(frame is not None for frame in frames)

def test_static_source_reads_image_files(tmp_path):
    path = tmp_path / "face.png"
    cv2.imwrite(str(path), blank_frame(40, 30))
    source = StaticFrameSource([path, tmp_path / "missing.png"])
    source.open()

    assert source.read().shape == (30, 40, 3)
    assert source.read() is None
    assert source.remaining == 0

def test_frames_generator_stops_when_source_runs_dry():
    source = StaticFrameSource([blank_frame()] * 3)
    source.open()
    assert len(list(source.frames())) == 3

class ClosedCapture:
    def __init__(self, device_id):
        self.released = False

    def isOpened(self):
        return False

    def release(self):
        self.released = True

def test_camera_that_cannot_open_raises_device_error(monkeypatch):
    monkeypatch.setattr(cv2, "VideoCapture", ClosedCapture)
    camera = CameraStream(device_id=3)

    with pytest.raises(DeviceError):
        camera.open()
    assert not camera.is_opened
    assert camera.read() is None
    camera.release()
    assert camera.get_camera_info() == {"device_id": 3, "opened": False}
