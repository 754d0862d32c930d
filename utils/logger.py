"""
Logging utilities for the face attendance system.
Console/file logging plus a dedicated attendance event log and image snapshots.
"""
import logging
import cv2
import numpy as np
from datetime import datetime
from typing import Optional, Dict, List
from pathlib import Path
import threading
import json

class AttendanceLogger:
    """Project logger for system messages, attendance events and snapshot images."""

    def __init__(self, name: str = "face_attendance"):
        self.name = name
        self.logger = logging.getLogger(name)
        self._setup_logger()

        self.attendance_logger = self._setup_attendance_logger()
        self.attendance_events = []
        self.max_attendance_events = 1000
        self._events_lock = threading.Lock()

        self.logger.debug("Attendance logger initialized")

    def _setup_logger(self):
        """Setup console and file handlers."""
        from utils.config import config

        log_level = getattr(logging, config.logging.log_level.upper(), logging.INFO)

        self.logger.handlers.clear()
        self.logger.setLevel(log_level)

        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        console_handler.setLevel(log_level)
        self.logger.addHandler(console_handler)

        if config.logging.log_to_file:
            try:
                log_dir = Path(config.logging.output_dir) / "logs"
                log_dir.mkdir(parents=True, exist_ok=True)

                file_handler = logging.FileHandler(log_dir / "attendance_system.log", encoding='utf-8')
                file_handler.setFormatter(formatter)
                file_handler.setLevel(log_level)
                self.logger.addHandler(file_handler)
            except OSError as e:
                self.logger.warning(f"Could not setup file logging: {e}")

        self.logger.propagate = False

    def _setup_attendance_logger(self) -> logging.Logger:
        """Setup separate logger for check-in and enrollment events."""
        from utils.config import config

        attendance_logger = logging.getLogger(f"{self.name}.events")
        attendance_logger.handlers.clear()
        attendance_logger.setLevel(logging.INFO)
        attendance_logger.propagate = False

        if config.logging.log_to_file:
            formatter = logging.Formatter(
                '%(asctime)s - ATTENDANCE - %(levelname)s - %(message)s'
            )
            try:
                log_dir = Path(config.logging.output_dir) / "logs"
                log_dir.mkdir(parents=True, exist_ok=True)

                handler = logging.FileHandler(log_dir / config.logging.attendance_log_file, encoding='utf-8')
                handler.setFormatter(formatter)
                attendance_logger.addHandler(handler)
            except OSError as e:
                self.logger.warning(f"Could not setup attendance file logging: {e}")
        else:
            attendance_logger.addHandler(logging.NullHandler())

        return attendance_logger

    def set_level(self, level: str):
        """Change the level of the logger and its handlers."""
        log_level = getattr(logging, level.upper(), logging.INFO)
        self.logger.setLevel(log_level)
        for handler in self.logger.handlers:
            handler.setLevel(log_level)

    def debug(self, message: str, **kwargs):
        self.logger.debug(message, **kwargs)

    def info(self, message: str, **kwargs):
        self.logger.info(message, **kwargs)

    def warning(self, message: str, **kwargs):
        self.logger.warning(message, **kwargs)

    def error(self, message: str, **kwargs):
        self.logger.error(message, **kwargs)

    def critical(self, message: str, **kwargs):
        self.logger.critical(message, **kwargs)

    def log_event(self, event_type: str, details: dict):
        """Log a system event with structured details."""
        message = f"EVENT: {event_type} | {json.dumps(details, default=str)}"
        self.info(message)

    def log_attendance_event(self, employee_id: str, event_type: str = "DETECTED",
                             details: Dict = None, confidence: float = 0.0):
        """Record an attendance-related event in memory and in the attendance log."""
        timestamp = datetime.now()
        event_details = details or {}

        attendance_event = {
            'timestamp': timestamp.isoformat(),
            'employee_id': employee_id,
            'event_type': event_type,
            'confidence': confidence,
            'details': event_details
        }

        with self._events_lock:
            self.attendance_events.append(attendance_event)
            if len(self.attendance_events) > self.max_attendance_events:
                self.attendance_events = self.attendance_events[-self.max_attendance_events:]

        message = f"Employee: {employee_id} | Event: {event_type} | Confidence: {confidence:.2f}"
        if event_details:
            message += f" | Details: {json.dumps(event_details, default=str)}"

        self.attendance_logger.info(message)

        if event_type in ("CHECK_IN", "ENROLLED", "CHECK_IN_FAILED"):
            self.info(f"ATTENDANCE - {message}")

    def get_recent_attendance_events(self, hours: int = 24) -> List[Dict]:
        """Get attendance events within the last `hours` hours."""
        cutoff_time = datetime.now().timestamp() - (hours * 3600)

        with self._events_lock:
            return [
                event.copy() for event in self.attendance_events
                if datetime.fromisoformat(event['timestamp']).timestamp() >= cutoff_time
            ]

    def get_attendance_summary(self, hours: int = 24) -> Dict:
        """Summarize recent attendance events by employee and type."""
        recent_events = self.get_recent_attendance_events(hours)

        employee_counts = {}
        event_types = {}

        for event in recent_events:
            emp_id = event['employee_id']
            event_type = event['event_type']

            employee_counts.setdefault(emp_id, 0)
            if event_type == "CHECK_IN":
                employee_counts[emp_id] += 1

            event_types[event_type] = event_types.get(event_type, 0) + 1

        return {
            'time_period_hours': hours,
            'total_events': len(recent_events),
            'unique_employees': len(employee_counts),
            'employee_check_in_counts': employee_counts,
            'event_type_counts': event_types,
            'last_updated': datetime.now().isoformat()
        }

    def save_image(self, frame: np.ndarray, event_type: str, metadata: dict = None) -> str:
        """Save a frame under the output images directory. Returns the path or ''."""
        from utils.config import config

        if frame is None or frame.size == 0:
            self.warning(f"Invalid frame for image save: {event_type}")
            return ""

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")[:-3]
        filename = f"{event_type}_{timestamp}.jpg"

        images_dir = Path(config.logging.output_dir) / "images"
        try:
            images_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            self.error(f"Could not create images directory: {e}")
            return ""

        filepath = images_dir / filename
        if not cv2.imwrite(str(filepath), frame):
            self.error(f"Failed to save image: {filename}")
            return ""

        self.debug(f"Image saved: {filename}")
        if metadata:
            self.log_event("IMAGE_SAVED", {"filename": filename, "event_type": event_type, **metadata})

        return str(filepath)

    def save_attendance_image(self, frame: np.ndarray, employee_id: str, confidence: float) -> str:
        """Save the frame that triggered a check-in."""
        filepath = self.save_image(frame, f"checkin_{employee_id}", {
            'employee_id': employee_id,
            'confidence': confidence
        })

        if filepath:
            self.log_attendance_event(employee_id, "IMAGE_SAVED", {'filepath': filepath}, confidence)

        return filepath

    def get_log_statistics(self) -> Dict:
        """Get logging system statistics."""
        with self._events_lock:
            attendance_events_count = len(self.attendance_events)

        return {
            'attendance_events_count': attendance_events_count,
            'level': logging.getLevelName(self.logger.level),
            'handlers': [type(h).__name__ for h in self.logger.handlers]
        }

    def shutdown(self):
        """Flush and close all handlers."""
        self.info("Shutting down attendance logger")
        for log in (self.logger, self.attendance_logger):
            for handler in list(log.handlers):
                handler.flush()
                handler.close()
                log.removeHandler(handler)

# Global logger instance
logger = AttendanceLogger()
