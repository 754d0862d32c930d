"""
Configuration settings for the face attendance system.
Dataclass sections loaded from environment variables and validated on start-up.
"""
import os
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Tuple
from pathlib import Path

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

DEFAULT_DEPARTMENTS = [
    "Engineering",
    "Marketing",
    "Sales",
    "Human Resources",
    "Finance",
    "Operations",
    "IT",
    "Design",
]

@dataclass
class CameraConfig:
    """Capture device settings."""
    device_id: int = 0
    enrollment_resolution: Tuple[int, int] = (640, 480)
    recognition_resolution: Tuple[int, int] = (1280, 720)
    facing_mode: str = "user"
    fps: int = 30

@dataclass
class FaceConfig:
    """Face detection and matching settings."""
    model: str = "hog"  # hog or cnn
    # Euclidean distance below which two descriptors are the same person.
    # Tuned for dlib's 128-d descriptors; lower is stricter.
    match_threshold: float = 0.5
    detection_scale: float = 1.0
    num_jitters: int = 1
    upsample_times: int = 1
    embedding_size: int = 128

@dataclass
class EnrollmentConfig:
    """Enrollment capture settings."""
    required_captures: int = 5
    departments: List[str] = field(default_factory=lambda: list(DEFAULT_DEPARTMENTS))
    save_captures: bool = False

@dataclass
class AttendanceConfig:
    """Check-in settings."""
    work_start_time: str = "09:00"
    cooldown_ms: int = 500
    database_path: str = "attendance.db"
    reports_directory: str = "attendance_reports"
    recent_limit: int = 10
    save_snapshots: bool = False

    @property
    def cooldown_seconds(self) -> float:
        return self.cooldown_ms / 1000.0

@dataclass
class StorageConfig:
    """Local face descriptor storage."""
    reference_db_path: str = "face_encodings.db"

@dataclass
class LoggingConfig:
    """Logging and output configuration."""
    log_level: str = "INFO"
    output_dir: str = "attendance_output"
    log_to_file: bool = True
    attendance_log_file: str = "attendance_events.log"

@dataclass
class ApiConfig:
    """REST API server settings."""
    host: str = "0.0.0.0"
    port: int = 8000

def _env_flag(name: str, default: bool) -> bool:
    return os.getenv(name, "true" if default else "false").lower() in ("1", "true", "yes")

class Config:
    """Main configuration class with environment overrides and validation."""

    def __init__(self):
        self.camera = CameraConfig()
        self.face = FaceConfig()
        self.enrollment = EnrollmentConfig()
        self.attendance = AttendanceConfig()
        self.storage = StorageConfig()
        self.logging = LoggingConfig()
        self.api = ApiConfig()

        self._load_environment_variables()
        self._validate_configuration()

    def _load_environment_variables(self):
        """Load configuration from environment variables."""
        try:
            self.camera.device_id = int(os.getenv("CAMERA_ID", self.camera.device_id))
        except ValueError:
            logger.warning(f"Invalid CAMERA_ID: {os.getenv('CAMERA_ID')}, using default")

        resolution_str = os.getenv("CAMERA_RESOLUTION")
        if resolution_str:
            try:
                width, height = map(int, resolution_str.lower().split('x'))
                self.camera.enrollment_resolution = (width, height)
                self.camera.recognition_resolution = (width, height)
            except ValueError:
                logger.warning(f"Invalid resolution format: {resolution_str}, using default")

        model = os.getenv("FACE_MODEL")
        if model:
            self.face.model = model.lower()

        try:
            self.face.match_threshold = float(os.getenv("MATCH_THRESHOLD", self.face.match_threshold))
        except ValueError:
            logger.warning(f"Invalid MATCH_THRESHOLD: {os.getenv('MATCH_THRESHOLD')}, using default")

        try:
            self.enrollment.required_captures = int(
                os.getenv("REQUIRED_CAPTURES", self.enrollment.required_captures)
            )
        except ValueError:
            logger.warning(f"Invalid REQUIRED_CAPTURES: {os.getenv('REQUIRED_CAPTURES')}, using default")

        try:
            self.attendance.cooldown_ms = int(os.getenv("COOLDOWN_MS", self.attendance.cooldown_ms))
        except ValueError:
            logger.warning(f"Invalid COOLDOWN_MS: {os.getenv('COOLDOWN_MS')}, using default")

        self.attendance.work_start_time = os.getenv("WORK_START_TIME", self.attendance.work_start_time)
        self.attendance.database_path = os.getenv("ATTENDANCE_DB", self.attendance.database_path)
        self.attendance.save_snapshots = _env_flag("SAVE_SNAPSHOTS", self.attendance.save_snapshots)
        self.storage.reference_db_path = os.getenv("REFERENCE_DB", self.storage.reference_db_path)

        self.logging.output_dir = os.getenv("OUTPUT_DIR", self.logging.output_dir)
        self.logging.log_to_file = _env_flag("LOG_TO_FILE", self.logging.log_to_file)
        log_level = os.getenv("LOG_LEVEL", self.logging.log_level).upper()
        if log_level in ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]:
            self.logging.log_level = log_level
        else:
            logger.warning(f"Invalid log level: {log_level}, using default")

        self.api.host = os.getenv("API_HOST", self.api.host)
        try:
            self.api.port = int(os.getenv("API_PORT", self.api.port))
        except ValueError:
            logger.warning(f"Invalid API_PORT: {os.getenv('API_PORT')}, using default")

    def _validate_configuration(self):
        """Validate configuration values."""
        errors = []

        if self.camera.device_id < 0:
            errors.append("Camera device ID must be non-negative")

        for resolution in (self.camera.enrollment_resolution, self.camera.recognition_resolution):
            if any(dim <= 0 for dim in resolution):
                errors.append("Camera resolution must have positive width and height")
                break

        if self.face.model not in ("hog", "cnn"):
            errors.append("Face model must be 'hog' or 'cnn'")

        if self.face.match_threshold <= 0:
            errors.append("Match threshold must be positive")

        if not 0.1 <= self.face.detection_scale <= 1.0:
            errors.append("Face detection scale must be between 0.1 and 1.0")

        if self.enrollment.required_captures < 1:
            errors.append("Required captures must be at least 1")

        if self.attendance.cooldown_ms < 0:
            errors.append("Cooldown must be non-negative")

        try:
            datetime.strptime(self.attendance.work_start_time, "%H:%M")
        except ValueError:
            errors.append("Work start time must use HH:MM format")

        if not 0 < self.api.port < 65536:
            errors.append("API port must be between 1 and 65535")

        if errors:
            error_msg = "Configuration validation errors:\n" + "\n".join(f"- {error}" for error in errors)
            logger.error(error_msg)
            raise ValueError(error_msg)

        logger.debug("Configuration validation passed")

    def create_directories(self):
        """Create output directories if they don't exist."""
        directories = [
            self.logging.output_dir,
            os.path.join(self.logging.output_dir, "logs"),
            os.path.join(self.logging.output_dir, "images"),
            self.attendance.reports_directory,
        ]

        for directory in directories:
            try:
                Path(directory).mkdir(parents=True, exist_ok=True)
                logger.debug(f"Created/verified directory: {directory}")
            except OSError as e:
                logger.warning(f"Could not create directory {directory}: {e}")

    def get_effective_config(self) -> dict:
        """Get complete effective configuration as dictionary."""
        return {
            'camera': {
                'device_id': self.camera.device_id,
                'enrollment_resolution': self.camera.enrollment_resolution,
                'recognition_resolution': self.camera.recognition_resolution,
                'facing_mode': self.camera.facing_mode,
                'fps': self.camera.fps
            },
            'face': {
                'model': self.face.model,
                'match_threshold': self.face.match_threshold,
                'detection_scale': self.face.detection_scale,
                'num_jitters': self.face.num_jitters,
                'upsample_times': self.face.upsample_times
            },
            'enrollment': {
                'required_captures': self.enrollment.required_captures,
                'departments': list(self.enrollment.departments),
                'save_captures': self.enrollment.save_captures
            },
            'attendance': {
                'work_start_time': self.attendance.work_start_time,
                'cooldown_ms': self.attendance.cooldown_ms,
                'database_path': self.attendance.database_path,
                'reports_directory': self.attendance.reports_directory,
                'save_snapshots': self.attendance.save_snapshots
            },
            'storage': {
                'reference_db_path': self.storage.reference_db_path
            },
            'logging': {
                'log_level': self.logging.log_level,
                'output_dir': self.logging.output_dir,
                'log_to_file': self.logging.log_to_file
            },
            'api': {
                'host': self.api.host,
                'port': self.api.port
            }
        }

# Global configuration instance
try:
    config = Config()
except Exception as e:
    logger.error(f"Failed to initialize configuration: {e}")
    config = Config.__new__(Config)
    config.camera = CameraConfig()
    config.face = FaceConfig()
    config.enrollment = EnrollmentConfig()
    config.attendance = AttendanceConfig()
    config.storage = StorageConfig()
    config.logging = LoggingConfig()
    config.api = ApiConfig()
    logger.warning("Using fallback configuration")

def validate_config() -> bool:
    """Validate current configuration."""
    try:
        config._validate_configuration()
        return True
    except ValueError as e:
        logger.error(f"Configuration validation failed: {e}")
        return False

def get_config_summary() -> dict:
    """Get a summary of current configuration."""
    return {
        'camera_device': config.camera.device_id,
        'match_threshold': config.face.match_threshold,
        'required_captures': config.enrollment.required_captures,
        'work_start_time': config.attendance.work_start_time,
        'cooldown_ms': config.attendance.cooldown_ms,
        'attendance_db': config.attendance.database_path,
        'reference_db': config.storage.reference_db_path,
        'logging_level': config.logging.log_level
    }
