"""
Attendance tracking for the face attendance system.

This module provides:
- SQLite employee and attendance records (one check-in per employee per day)
- Present/late status from a daily work start time
- The live recognition loop
- Excel/CSV report export
"""

from .attendance_system import (
    AttendanceSystem, AttendanceRecord, AttendanceStatus, Employee,
    determine_status, parse_cutoff,
)
from .recognition_loop import RecognitionLoop, RateLimitGate, ScanState, FrameOutcome, CheckInEvent
from .reports import export_attendance_report, build_attendance_frame
from .roster import delete_employee_with_faces, employees_with_face_counts

__all__ = [
    'AttendanceSystem', 'AttendanceRecord', 'AttendanceStatus', 'Employee',
    'determine_status', 'parse_cutoff',
    'RecognitionLoop', 'RateLimitGate', 'ScanState', 'FrameOutcome', 'CheckInEvent',
    'export_attendance_report', 'build_attendance_frame',
    'delete_employee_with_faces', 'employees_with_face_counts',
]
