import pytest

from utils.config import Config, config, get_config_summary

def test_defaults(monkeypatch):
    for name in ("MATCH_THRESHOLD", "REQUIRED_CAPTURES", "WORK_START_TIME", "COOLDOWN_MS"):
        monkeypatch.delenv(name, raising=False)

    defaults = Config()

    assert defaults.face.match_threshold == 0.5
    assert defaults.enrollment.required_captures == 5
    assert defaults.attendance.work_start_time == "09:00"
    assert defaults.attendance.cooldown_seconds == 0.5

def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("MATCH_THRESHOLD", "0.45")
    monkeypatch.setenv("REQUIRED_CAPTURES", "3")
    monkeypatch.setenv("WORK_START_TIME", "08:30")
    monkeypatch.setenv("COOLDOWN_MS", "250")
    monkeypatch.setenv("CAMERA_RESOLUTION", "800x600")
    monkeypatch.setenv("SAVE_SNAPSHOTS", "yes")

    overridden = Config()

    assert overridden.face.match_threshold == 0.45
    assert overridden.enrollment.required_captures == 3
    assert overridden.attendance.work_start_time == "08:30"
    assert overridden.attendance.cooldown_seconds == 0.25
    assert overridden.camera.recognition_resolution == (800, 600)
    assert overridden.attendance.save_snapshots is True

def test_malformed_numbers_fall_back_to_defaults(monkeypatch):
    monkeypatch.setenv("MATCH_THRESHOLD", "strict")
    monkeypatch.setenv("CAMERA_RESOLUTION", "wide")

    fallback = Config()

    assert fallback.face.match_threshold == 0.5
    assert fallback.camera.enrollment_resolution == (640, 480)

@pytest.mark.parametrize("name, value", [
    ("MATCH_THRESHOLD", "0"),
    ("REQUIRED_CAPTURES", "0"),
    ("WORK_START_TIME", "9am"),
    ("FACE_MODEL", "mtcnn"),
    ("API_PORT", "70000"),
])
def test_invalid_values_are_rejected(monkeypatch, name, value):
    monkeypatch.setenv(name, value)
    with pytest.raises(ValueError):
        Config()

def test_effective_config_and_summary():
    effective = config.get_effective_config()
    assert effective['face']['match_threshold'] == config.face.match_threshold
    assert get_config_summary()['required_captures'] == config.enrollment.required_captures
