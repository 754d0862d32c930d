import sqlite3
import datetime
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Dict, List, Optional, Set, Union
import logging

from utils.config import config
from utils.exceptions import DuplicateCheckInError, DuplicateIdentityError, PersistenceError

logger = logging.getLogger(__name__)

DateLike = Union[str, datetime.date]

class AttendanceStatus(str, Enum):
    PRESENT = "present"
    LATE = "late"
    EARLY = "early"

def parse_cutoff(value: Union[str, datetime.time]) -> datetime.time:
    """Parse an 'HH:MM' work start time."""
    if isinstance(value, datetime.time):
        return value
    return datetime.datetime.strptime(value, "%H:%M").time()

def determine_status(check_in_time: datetime.datetime, cutoff: Union[str, datetime.time] = None) -> AttendanceStatus:
    """Present at or before the daily cutoff, late after it."""
    cutoff = parse_cutoff(cutoff or config.attendance.work_start_time)
    cutoff_at = datetime.datetime.combine(check_in_time.date(), cutoff, tzinfo=check_in_time.tzinfo)
    return AttendanceStatus.LATE if check_in_time > cutoff_at else AttendanceStatus.PRESENT

def _as_date(value: Optional[DateLike]) -> datetime.date:
    if value is None:
        return datetime.date.today()
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    return datetime.datetime.strptime(value, '%Y-%m-%d').date()

@dataclass
class Employee:
    id: str
    name: str
    employee_id: str
    department: str
    email: Optional[str] = None
    phone: Optional[str] = None
    is_active: bool = True
    created_at: Optional[str] = None

    def to_dict(self) -> Dict:
        return asdict(self)

@dataclass
class AttendanceRecord:
    id: str
    employee_id: str
    check_in_time: str
    date: str
    confidence_score: Optional[float]
    status: str
    snapshot_path: Optional[str] = None

    def to_dict(self) -> Dict:
        return asdict(self)

class AttendanceSystem:
    """Employee and attendance record store."""

    def __init__(self, db_path: str = None):
        self.db_path = db_path or config.attendance.database_path
        self.init_database()

    @contextmanager
    def _connect(self):
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def init_database(self):
        """Initialize SQLite database with employee and attendance tables."""
        try:
            with self._connect() as conn:
                conn.execute('''
                    CREATE TABLE IF NOT EXISTS employees (
                        id TEXT PRIMARY KEY,
                        name TEXT NOT NULL,
                        employee_id TEXT UNIQUE NOT NULL,
                        department TEXT NOT NULL,
                        email TEXT,
                        phone TEXT,
                        is_active INTEGER NOT NULL DEFAULT 1,
                        created_at DATETIME DEFAULT CURRENT_TIMESTAMP
                    )
                ''')

                # One check-in per employee per day, enforced here rather than by callers
                conn.execute('''
                    CREATE TABLE IF NOT EXISTS attendance (
                        id TEXT PRIMARY KEY,
                        employee_id TEXT NOT NULL REFERENCES employees(id) ON DELETE CASCADE,
                        check_in_time DATETIME NOT NULL,
                        date DATE NOT NULL,
                        confidence_score REAL,
                        status TEXT NOT NULL DEFAULT 'present'
                            CHECK (status IN ('present', 'late', 'early')),
                        snapshot_path TEXT,
                        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                        UNIQUE(employee_id, date)
                    )
                ''')
                conn.execute('CREATE INDEX IF NOT EXISTS idx_attendance_date ON attendance(date)')
            logger.info("Attendance database initialized successfully")
        except sqlite3.Error as e:
            logger.error(f"Error initializing attendance database: {e}")
            raise PersistenceError(f"Could not initialize attendance database: {e}") from e

    # Employees

    def add_employee(self, name: str, employee_id: str, department: str,
                     email: str = None, phone: str = None) -> Employee:
        """Insert an employee. Raises DuplicateIdentityError if the key is taken."""
        employee = Employee(
            id=str(uuid.uuid4()),
            name=name,
            employee_id=employee_id,
            department=department,
            email=email or None,
            phone=phone or None,
            created_at=datetime.datetime.now().isoformat()
        )
        try:
            with self._connect() as conn:
                conn.execute('''
                    INSERT INTO employees (id, name, employee_id, department, email, phone, is_active, created_at)
                    VALUES (?, ?, ?, ?, ?, ?, 1, ?)
                ''', (employee.id, employee.name, employee.employee_id, employee.department,
                      employee.email, employee.phone, employee.created_at))
        except sqlite3.IntegrityError as e:
            raise DuplicateIdentityError(employee_id) from e
        except sqlite3.Error as e:
            logger.error(f"Error adding employee {employee_id}: {e}")
            raise PersistenceError(f"Could not add employee: {e}") from e

        logger.info(f"Added employee {name} ({employee_id})")
        return employee

    def get_employee(self, id: str) -> Optional[Employee]:
        return self._fetch_employee('SELECT * FROM employees WHERE id = ?', (id,))

    def get_employee_by_key(self, employee_id: str) -> Optional[Employee]:
        return self._fetch_employee('SELECT * FROM employees WHERE employee_id = ?', (employee_id,))

    def _fetch_employee(self, query: str, params: tuple) -> Optional[Employee]:
        try:
            with self._connect() as conn:
                row = conn.execute(query, params).fetchone()
        except sqlite3.Error as e:
            raise PersistenceError(f"Could not read employee: {e}") from e
        return self._row_to_employee(row) if row else None

    def list_active_employees(self) -> List[Employee]:
        try:
            with self._connect() as conn:
                rows = conn.execute(
                    'SELECT * FROM employees WHERE is_active = 1 ORDER BY name'
                ).fetchall()
        except sqlite3.Error as e:
            raise PersistenceError(f"Could not list employees: {e}") from e
        return [self._row_to_employee(row) for row in rows]

    def delete_employee(self, id: str) -> bool:
        """Delete an employee and, by cascade, their attendance rows."""
        try:
            with self._connect() as conn:
                cursor = conn.execute('DELETE FROM employees WHERE id = ?', (id,))
                deleted = cursor.rowcount > 0
        except sqlite3.Error as e:
            logger.error(f"Error deleting employee {id}: {e}")
            raise PersistenceError(f"Could not delete employee: {e}") from e

        if deleted:
            logger.info(f"Deleted employee {id}")
        return deleted

    def count_active_employees(self) -> int:
        try:
            with self._connect() as conn:
                return conn.execute('SELECT COUNT(*) FROM employees WHERE is_active = 1').fetchone()[0]
        except sqlite3.Error as e:
            raise PersistenceError(f"Could not count employees: {e}") from e

    # Attendance

    def log_attendance(self, employee_id: str, check_in_time: datetime.datetime, confidence: float,
                       status: AttendanceStatus, snapshot_path: str = None) -> AttendanceRecord:
        """
        Insert a check-in for the employee's row id.

        Raises DuplicateCheckInError if one already exists for that date, and
        PersistenceError for any other storage failure.
        """
        record = AttendanceRecord(
            id=str(uuid.uuid4()),
            employee_id=employee_id,
            check_in_time=check_in_time.isoformat(),
            date=check_in_time.date().isoformat(),
            confidence_score=confidence,
            status=AttendanceStatus(status).value,
            snapshot_path=snapshot_path
        )
        try:
            with self._connect() as conn:
                conn.execute('''
                    INSERT INTO attendance (id, employee_id, check_in_time, date, confidence_score, status, snapshot_path)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                ''', (record.id, record.employee_id, record.check_in_time, record.date,
                      record.confidence_score, record.status, record.snapshot_path))
        except sqlite3.IntegrityError as e:
            if "UNIQUE" in str(e):
                raise DuplicateCheckInError(employee_id, record.date) from e
            raise PersistenceError(f"Could not record attendance: {e}") from e
        except sqlite3.Error as e:
            logger.error(f"Error logging attendance: {e}")
            raise PersistenceError(f"Could not record attendance: {e}") from e

        logger.info(f"Logged {record.status} for {employee_id} at {record.check_in_time}")
        return record

    def get_attendance_by_date(self, date: DateLike = None) -> List[AttendanceRecord]:
        day = _as_date(date)
        try:
            with self._connect() as conn:
                rows = conn.execute('''
                    SELECT id, employee_id, check_in_time, date, confidence_score, status, snapshot_path
                    FROM attendance WHERE date = ?
                    ORDER BY check_in_time DESC
                ''', (day.isoformat(),)).fetchall()
        except sqlite3.Error as e:
            raise PersistenceError(f"Could not read attendance: {e}") from e
        return [AttendanceRecord(**dict(row)) for row in rows]

    def get_marked_employee_ids(self, date: DateLike = None) -> Set[str]:
        return {record.employee_id for record in self.get_attendance_by_date(date)}

    def get_attendance_range(self, start: DateLike, end: DateLike) -> List[Dict]:
        """Check-ins between two dates (inclusive) joined with employee details."""
        start_date, end_date = _as_date(start), _as_date(end)
        try:
            with self._connect() as conn:
                rows = conn.execute('''
                    SELECT a.id, a.check_in_time, a.date, a.confidence_score, a.status, a.snapshot_path,
                           e.id AS employee_row_id, e.name, e.employee_id, e.department
                    FROM attendance a JOIN employees e ON e.id = a.employee_id
                    WHERE a.date >= ? AND a.date <= ?
                    ORDER BY a.check_in_time DESC
                ''', (start_date.isoformat(), end_date.isoformat())).fetchall()
        except sqlite3.Error as e:
            raise PersistenceError(f"Could not read attendance: {e}") from e
        return [dict(row) for row in rows]

    def get_daily_summary(self, date: DateLike = None, recent_limit: int = 5) -> Dict:
        """Headline counts for one day."""
        day = _as_date(date)
        records = self.get_attendance_range(day, day)
        total = self.count_active_employees()

        present = sum(1 for r in records if r['status'] == AttendanceStatus.PRESENT.value)
        late = sum(1 for r in records if r['status'] == AttendanceStatus.LATE.value)

        return {
            "date": day.isoformat(),
            "total_employees": total,
            "present": present,
            "late": late,
            "absent": max(0, total - present - late),
            "recent": records[:recent_limit]
        }

    @staticmethod
    def _row_to_employee(row) -> Employee:
        data = dict(row)
        data['is_active'] = bool(data['is_active'])
        return Employee(**data)
