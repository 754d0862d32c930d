"""
REST API for the face attendance system.
Read access to employees, attendance and dashboard figures, plus report downloads.
"""
import datetime
import time
from pathlib import Path
from typing import Optional

import uvicorn
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse

from attendance.attendance_system import AttendanceSystem
from attendance.reports import default_report_path, export_attendance_report
from attendance.roster import delete_employee_with_faces, employees_with_face_counts
from face_engine.descriptor_extractor import models_ready
from face_engine.reference_store import ReferenceStore
from utils.config import config
from utils.exceptions import AttendanceSystemError
from utils.logger import logger

REPORT_MEDIA_TYPES = {
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "csv": "text/csv",
}

def _parse_date(value: Optional[str], name: str = "date") -> datetime.date:
    if value is None:
        return datetime.date.today()
    try:
        return datetime.datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid {name} '{value}', expected YYYY-MM-DD")

def create_app(attendance_system: AttendanceSystem = None, reference_store: ReferenceStore = None,
               recognition_loop=None) -> FastAPI:
    """Build the API around the given stores (defaults come from the config)."""
    attendance_system = attendance_system or AttendanceSystem()
    if reference_store is None:
        reference_store = ReferenceStore()
    reference_store.open()

    app = FastAPI(
        title="Face Attendance System API",
        description="REST API for the face recognition attendance system",
        version="1.0.0"
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health_check():
        return {"status": "healthy", "timestamp": time.time()}

    @app.get("/api/status")
    async def get_status():
        try:
            status = {
                "models_ready": models_ready(),
                "employees": attendance_system.count_active_employees(),
                "enrolled_identities": len(reference_store.identities()),
                "face_records": reference_store.count(),
                "match_threshold": config.face.match_threshold,
                "required_captures": config.enrollment.required_captures,
                "work_start_time": config.attendance.work_start_time,
                "events": logger.get_attendance_summary(),
            }
            if recognition_loop is not None:
                status["recognition"] = recognition_loop.get_status()
            return status
        except AttendanceSystemError as e:
            logger.error(f"Error getting system status: {e}")
            raise HTTPException(status_code=500, detail=str(e))

    @app.get("/api/employees")
    async def list_employees():
        try:
            return employees_with_face_counts(attendance_system, reference_store)
        except AttendanceSystemError as e:
            logger.error(f"Error listing employees: {e}")
            raise HTTPException(status_code=500, detail=str(e))

    @app.get("/api/employees/{employee_id}")
    async def get_employee(employee_id: str):
        try:
            employee = attendance_system.get_employee(employee_id)
            face_samples = len(reference_store.get_by_identity(employee_id)) if employee else 0
        except AttendanceSystemError as e:
            logger.error(f"Error reading employee {employee_id}: {e}")
            raise HTTPException(status_code=500, detail=str(e))

        if employee is None:
            raise HTTPException(status_code=404, detail=f"Employee not found: {employee_id}")
        data = employee.to_dict()
        data["face_samples"] = face_samples
        return data

    @app.delete("/api/employees/{employee_id}")
    async def delete_employee(employee_id: str):
        try:
            deleted = delete_employee_with_faces(attendance_system, reference_store, employee_id)
        except AttendanceSystemError as e:
            logger.error(f"Error deleting employee {employee_id}: {e}")
            raise HTTPException(status_code=500, detail=str(e))

        if not deleted:
            raise HTTPException(status_code=404, detail=f"Employee not found: {employee_id}")
        return {"success": True, "message": "Employee deleted"}

    @app.get("/api/attendance")
    async def get_attendance(date: Optional[str] = None):
        day = _parse_date(date)
        try:
            return attendance_system.get_attendance_range(day, day)
        except AttendanceSystemError as e:
            logger.error(f"Error reading attendance for {day}: {e}")
            raise HTTPException(status_code=500, detail=str(e))

    @app.get("/api/dashboard")
    async def get_dashboard(date: Optional[str] = None):
        day = _parse_date(date)
        try:
            return attendance_system.get_daily_summary(day)
        except AttendanceSystemError as e:
            logger.error(f"Error building dashboard for {day}: {e}")
            raise HTTPException(status_code=500, detail=str(e))

    @app.get("/api/reports/attendance")
    async def download_report(start: Optional[str] = None, end: Optional[str] = None, format: str = "xlsx"):
        if format not in REPORT_MEDIA_TYPES:
            raise HTTPException(status_code=400, detail=f"Unsupported report format: {format}")

        end_date = _parse_date(end, "end")
        start_date = _parse_date(start, "start") if start else end_date - datetime.timedelta(days=30)
        if start_date > end_date:
            raise HTTPException(status_code=400, detail="start must not be after end")

        try:
            path = export_attendance_report(
                attendance_system, start_date, end_date,
                output_path=default_report_path(start_date, end_date, format)
            )
        except (AttendanceSystemError, OSError) as e:
            logger.error(f"Error exporting report: {e}")
            raise HTTPException(status_code=500, detail=str(e))

        if path is None:
            raise HTTPException(status_code=404, detail="No attendance records in the selected range")
        return FileResponse(path, media_type=REPORT_MEDIA_TYPES[format], filename=Path(path).name)

    return app

def run_api_server(host: str = None, port: int = None):
    """Serve the API with uvicorn until interrupted."""
    host = host or config.api.host
    port = port or config.api.port
    app = create_app()

    logger.info(f"Starting API server on {host}:{port}")
    uvicorn.run(app, host=host, port=port, log_level=config.logging.log_level.lower())
