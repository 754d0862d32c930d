#!/usr/bin/env python3
"""
Face attendance system controller.
Command line entry point for live attendance, enrollment, reports and the API.
"""
import cv2
import time
import argparse
import signal
import sys
from typing import Optional, Dict, Any

from attendance.attendance_system import AttendanceSystem
from attendance.recognition_loop import RecognitionLoop, FrameOutcome, ScanState
from attendance.reports import export_attendance_report
from attendance.roster import delete_employee_with_faces, employees_with_face_counts
from camera.stream_handler import CameraStream
from enrollment.enrollment_controller import EnrollmentController, EmployeeForm, CaptureStatus
from face_engine.descriptor_extractor import draw_face_overlay, get_extractor
from face_engine.face_matcher import display_confidence
from face_engine.reference_store import ReferenceStore
from utils.config import config
from utils.exceptions import AttendanceSystemError, DeviceError, EnrollmentError
from utils.logger import logger

STATE_COLORS = {
    ScanState.SCANNING: (255, 128, 0),
    ScanState.FACE_DETECTED: (255, 128, 0),
    ScanState.MATCHED: (0, 200, 0),
    ScanState.UNKNOWN: (0, 0, 255),
}

def overlay_label(outcome: FrameOutcome, last_match: Optional[FrameOutcome]):
    """Label and state to draw on the current face box."""
    state = outcome.state
    labelled = outcome
    # Between match attempts the last match keeps its label
    if last_match is not None and outcome.state == ScanState.FACE_DETECTED:
        state = ScanState.MATCHED
        labelled = last_match

    if state == ScanState.MATCHED and labelled.match is not None:
        return f"{labelled.employee.name} ({display_confidence(labelled.match.distance)}%)", state
    if state == ScanState.UNKNOWN:
        return "Unknown", state
    return None, state

class AttendanceApp:
    """Live attendance session on a webcam."""

    def __init__(self, camera_id: int = 0, gui_mode: bool = True):
        self.camera_id = camera_id
        self.gui_mode = gui_mode

        self.attendance_system = AttendanceSystem()
        self.reference_store = ReferenceStore()
        self.reference_store.open()
        self.camera = CameraStream(camera_id, resolution=config.camera.recognition_resolution)
        self.loop = RecognitionLoop(get_extractor(), self.attendance_system, self.reference_store, self.camera)

        self.start_time = time.time()
        self.fps_display = 0.0
        self.last_fps_update = time.time()

        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

    def start(self):
        logger.info("Loading face models and enrolled employees.")
        self.loop.initialize()
        self.loop.start()
        self.start_time = time.time()

        if self.gui_mode:
            cv2.namedWindow('Attendance', cv2.WINDOW_NORMAL)
        try:
            self.loop.run(on_outcome=self._on_outcome)
        finally:
            if self.gui_mode:
                cv2.destroyAllWindows()
            self._save_final_statistics()

    def stop(self):
        if self.loop.running:
            self.loop.stop()

    def _on_outcome(self, frame, outcome: FrameOutcome) -> bool:
        self._update_fps()

        if outcome.check_in is not None:
            event = outcome.check_in
            print(f"✅ {event.employee.name} checked in at {event.timestamp:%H:%M:%S} "
                  f"({event.status.value}, {event.confidence}% confidence)")

        if not self.gui_mode:
            if self.loop.frame_count % 100 == 0:
                self._print_status()
            return True

        self._display_results(frame, outcome)
        key = cv2.waitKey(1) & 0xFF
        if key == ord('q'):
            logger.info("Quit key pressed")
            return False
        elif key == ord('s'):
            logger.save_image(frame, "manual_save")
        return True

    def _display_results(self, frame, outcome: FrameOutcome):
        display_frame = frame
        last_match = self.loop.last_match

        if outcome.location is not None:
            label, state = overlay_label(outcome, last_match)
            display_frame = draw_face_overlay(frame, outcome.location, label, STATE_COLORS[state])
        else:
            display_frame = frame.copy()

        self._add_status_overlay(display_frame)
        cv2.imshow('Attendance', display_frame)

    def _add_status_overlay(self, frame):
        status_lines = [
            f"FPS: {self.fps_display:.1f}",
            f"State: {self.loop.state.value}",
            f"Employees: {len(self.loop.employees)}",
            f"Checked in today: {len(self.loop.marked_today)}",
        ]
        for event in self.loop.recent_check_ins[:3]:
            status_lines.append(f"{event.timestamp:%H:%M} {event.employee.name} ({event.status.value})")

        overlay_height = len(status_lines) * 25 + 20
        cv2.rectangle(frame, (10, 10), (330, overlay_height), (0, 0, 0), -1)
        cv2.rectangle(frame, (10, 10), (330, overlay_height), (255, 255, 255), 1)
        for i, line in enumerate(status_lines):
            cv2.putText(frame, line, (20, 35 + i * 25), cv2.FONT_HERSHEY_SIMPLEX,
                        0.6, (255, 255, 255), 1, cv2.LINE_AA)

    def _update_fps(self):
        current_time = time.time()
        if current_time - self.last_fps_update >= 1.0:
            elapsed = current_time - self.start_time
            self.fps_display = self.loop.frame_count / elapsed if elapsed > 0 else 0
            self.last_fps_update = current_time

    def _get_runtime_str(self) -> str:
        runtime = time.time() - self.start_time
        hours = int(runtime // 3600)
        minutes = int((runtime % 3600) // 60)
        seconds = int(runtime % 60)
        return f"{hours:02d}:{minutes:02d}:{seconds:02d}"

    def _print_status(self):
        """Print status information (headless mode)."""
        print(f"\n--- Attendance Status ---")
        print(f"Runtime: {self._get_runtime_str()} | Frames: {self.loop.frame_count} | FPS: {self.fps_display:.1f}")
        print(f"Employees: {len(self.loop.employees)} | Checked in today: {len(self.loop.marked_today)}")
        print("-" * 50)

    def _save_final_statistics(self):
        runtime = time.time() - self.start_time
        logger.log_event("SESSION_COMPLETE", {
            'runtime_seconds': runtime,
            'total_frames': self.loop.frame_count,
            'average_fps': self.loop.frame_count / runtime if runtime > 0 else 0,
            'check_ins': len(self.loop.recent_check_ins),
            'recognition': self.loop.matcher.get_statistics(),
            'extraction': self.loop.extractor.get_statistics()
        })

    def _signal_handler(self, signum, frame):
        logger.info(f"Received signal {signum}")
        self.stop()
        sys.exit(0)

    def get_system_status(self) -> Dict[str, Any]:
        status = self.loop.get_status()
        status['camera_info'] = self.camera.get_camera_info()
        return status

def run_enrollment(form: EmployeeForm, camera_id: int = 0, gui_mode: bool = True) -> Optional[str]:
    """Interactive enrollment. Returns the new employee's row id, or None if abandoned."""
    attendance_system = AttendanceSystem()
    reference_store = ReferenceStore()
    reference_store.open()
    camera = CameraStream(camera_id, resolution=config.camera.enrollment_resolution)
    controller = EnrollmentController(get_extractor(), attendance_system, reference_store, camera)

    try:
        controller.start_capture()
        print(f"\n📸 Capturing {controller.required_captures} face samples for {form.name}")

        while controller.captured_count < controller.required_captures:
            frame = camera.read()
            if frame is None:
                raise DeviceError("Camera stopped returning frames")

            if gui_mode:
                descriptor = controller.preview(frame)
                display = frame.copy()
                if descriptor is not None:
                    display = draw_face_overlay(frame, descriptor.location, "Face detected", (0, 200, 0))
                cv2.putText(display, f"Captured {controller.captured_count}/{controller.required_captures}"
                                     f"  C - capture  R - reset  Q - quit",
                            (10, 30), cv2.FONT_HERSHEY_SIMPLEX, 0.6, (255, 255, 255), 2, cv2.LINE_AA)
                cv2.imshow('Enrollment', display)

                key = cv2.waitKey(1) & 0xFF
                if key == ord('q'):
                    return None
                elif key == ord('r'):
                    controller.reset()
                    controller.start_capture()
                    continue
                elif key != ord('c'):
                    continue
            else:
                answer = input(f"Press Enter to capture sample {controller.captured_count + 1} (q to quit): ")
                if answer.strip().lower() == 'q':
                    return None
                frame = camera.read()

            result = controller.capture(frame)
            if result.status == CaptureStatus.NO_FACE:
                print("⚠️  No face detected, please position your face clearly in the camera")
            else:
                print(f"   Sample {result.captured}/{result.required} captured")

        while True:
            try:
                employee = controller.submit(form)
                break
            except EnrollmentError as e:
                print(f"❌ {e}")
                if gui_mode:
                    return None
                new_key = input("Enter a different employee ID (blank to abort): ").strip()
                if not new_key:
                    return None
                form.employee_id = new_key

        print(f"✅ Enrolled {employee.name} ({employee.employee_id}) with {controller.required_captures} samples")
        return employee.id
    finally:
        controller.teardown()
        if gui_mode:
            cv2.destroyAllWindows()
        reference_store.close()

def list_employees():
    attendance_system = AttendanceSystem()
    with ReferenceStore() as reference_store:
        employees = employees_with_face_counts(attendance_system, reference_store)

    if not employees:
        print("No employees enrolled")
        return
    print(f"{'Name':<25} {'Employee ID':<15} {'Department':<18} {'Samples':>7}  Row ID")
    print("-" * 100)
    for emp in employees:
        print(f"{emp['name']:<25} {emp['employee_id']:<15} {emp['department']:<18} "
              f"{emp['face_samples']:>7}  {emp['id']}")

def delete_employee(key: str) -> bool:
    attendance_system = AttendanceSystem()
    employee = attendance_system.get_employee_by_key(key) or attendance_system.get_employee(key)
    if employee is None:
        print(f"Employee not found: {key}")
        return False

    with ReferenceStore() as reference_store:
        delete_employee_with_faces(attendance_system, reference_store, employee.id)
    print(f"Deleted {employee.name} ({employee.employee_id})")
    return True

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Face Recognition Attendance System",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py attend                          # Live attendance with preview window
  python main.py attend --camera 1 --headless    # Camera 1 without GUI
  python main.py enroll --name "Jane Doe" --employee-id E100 --department Engineering
  python main.py employees list
  python main.py report --start 2024-01-01 --end 2024-01-31 -o january.xlsx
  python main.py serve --port 8000
        """
    )
    parser.add_argument("--output-dir", "-o", type=str,
                        help="Output directory for logs and snapshots")
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Enable verbose logging")

    subparsers = parser.add_subparsers(dest="command")

    attend = subparsers.add_parser("attend", help="Run live attendance")
    attend.add_argument("--camera", "-c", type=int, default=config.camera.device_id,
                        help="Camera device ID")
    attend.add_argument("--headless", "-hl", action="store_true", help="Run without GUI")

    enroll = subparsers.add_parser("enroll", help="Enroll a new employee")
    enroll.add_argument("--name", required=True)
    enroll.add_argument("--employee-id", required=True)
    enroll.add_argument("--department", required=True, help=", ".join(config.enrollment.departments))
    enroll.add_argument("--email")
    enroll.add_argument("--phone")
    enroll.add_argument("--camera", "-c", type=int, default=config.camera.device_id)
    enroll.add_argument("--headless", "-hl", action="store_true", help="Capture on Enter instead of a window")

    employees = subparsers.add_parser("employees", help="Manage enrolled employees")
    employee_commands = employees.add_subparsers(dest="employee_command")
    employee_commands.add_parser("list", help="List active employees")
    delete = employee_commands.add_parser("delete", help="Delete an employee and their face data")
    delete.add_argument("employee", help="Employee ID or row id")

    report = subparsers.add_parser("report", help="Export attendance to Excel or CSV")
    report.add_argument("--start", required=True, help="First date (YYYY-MM-DD)")
    report.add_argument("--end", required=True, help="Last date (YYYY-MM-DD)")
    report.add_argument("--output", help="Output file (.xlsx or .csv)")

    serve = subparsers.add_parser("serve", help="Run the REST API")
    serve.add_argument("--host", default=config.api.host)
    serve.add_argument("--port", "-p", type=int, default=config.api.port)

    subparsers.add_parser("diagnose", help="Check camera, models and databases")
    return parser

def main(argv=None):
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    if args.output_dir:
        config.logging.output_dir = args.output_dir
    if args.verbose:
        config.logging.log_level = "DEBUG"
        logger.set_level("DEBUG")
    config.create_directories()

    try:
        if args.command == "attend":
            print("=" * 60)
            print("🧑‍💼 Face Recognition Attendance")
            print("=" * 60)
            print(f"📹 Camera: {args.camera}")
            print(f"🖥️  Display: {'Headless' if args.headless else 'GUI'}")
            print(f"⏰ Work starts: {config.attendance.work_start_time}")
            print("=" * 60)
            if not args.headless:
                print("\n⌨️  Controls:  Q - Quit   S - Save frame")

            app = AttendanceApp(camera_id=args.camera, gui_mode=not args.headless)
            app.start()

        elif args.command == "enroll":
            form = EmployeeForm(args.name, args.employee_id, args.department, args.email, args.phone)
            if run_enrollment(form, camera_id=args.camera, gui_mode=not args.headless) is None:
                print("Enrollment cancelled")
                return 1

        elif args.command == "employees":
            if args.employee_command == "delete":
                return 0 if delete_employee(args.employee) else 1
            list_employees()

        elif args.command == "report":
            path = export_attendance_report(AttendanceSystem(), args.start, args.end, args.output)
            if path is None:
                print("No attendance records in the selected range")
                return 1
            print(f"📄 Report saved to {path}")

        elif args.command == "serve":
            from api.api_server import run_api_server
            run_api_server(args.host, args.port)

        elif args.command == "diagnose":
            import diagnostic
            return diagnostic.main()

    except KeyboardInterrupt:
        print("\n\n⏹️  Interrupted by user")
        logger.info("Interrupted by user")
    except DeviceError as e:
        print(f"\n❌ Camera error: {e}")
        logger.error(f"Camera error: {e}")
        return 1
    except (AttendanceSystemError, ValueError) as e:
        print(f"\n❌ Error: {e}")
        logger.error(f"Fatal error: {e}")
        return 1

    return 0

if __name__ == "__main__":
    sys.exit(main())
