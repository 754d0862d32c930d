import datetime

import pytest
from fastapi.testclient import TestClient

from api.api_server import create_app
from attendance.attendance_system import AttendanceStatus
from tests.helpers import make_embedding

DAY = datetime.date(2024, 3, 4)

@pytest.fixture
def client(attendance_system, reference_store, output_dir):
    return TestClient(create_app(attendance_system, reference_store))

@pytest.fixture
def enrolled(employee, reference_store):
    reference_store.insert(employee.id, [make_embedding(i) for i in range(5)])
    return employee

def check_in(attendance_system, employee, hour, minute, status):
    when = datetime.datetime.combine(DAY, datetime.time(hour, minute))
    attendance_system.log_attendance(employee.id, when, 93, status)

def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"

def test_status(client, enrolled):
    data = client.get("/api/status").json()
    assert data["employees"] == 1
    assert data["enrolled_identities"] == 1
    assert data["face_records"] == 1
    assert data["match_threshold"] > 0

def test_list_employees_includes_face_samples(client, enrolled):
    employees = client.get("/api/employees").json()
    assert len(employees) == 1
    assert employees[0]["employee_id"] == "E1"
    assert employees[0]["face_samples"] == 5

def test_get_employee(client, enrolled):
    response = client.get(f"/api/employees/{enrolled.id}")
    assert response.status_code == 200
    assert response.json()["name"] == "Alice Smith"
    assert response.json()["face_samples"] == 5

def test_get_unknown_employee(client):
    assert client.get("/api/employees/missing").status_code == 404

def test_delete_employee_removes_face_data(client, enrolled, attendance_system, reference_store):
    check_in(attendance_system, enrolled, 8, 30, AttendanceStatus.PRESENT)

    response = client.delete(f"/api/employees/{enrolled.id}")

    assert response.status_code == 200
    assert attendance_system.get_employee(enrolled.id) is None
    assert reference_store.get_by_identity(enrolled.id) == []
    assert attendance_system.get_attendance_by_date(DAY) == []
    assert client.delete(f"/api/employees/{enrolled.id}").status_code == 404

def test_attendance_by_date(client, enrolled, attendance_system):
    check_in(attendance_system, enrolled, 8, 30, AttendanceStatus.PRESENT)

    records = client.get("/api/attendance", params={"date": "2024-03-04"}).json()
    assert len(records) == 1
    assert records[0]["name"] == "Alice Smith"
    assert records[0]["status"] == "present"

    assert client.get("/api/attendance", params={"date": "2024-03-05"}).json() == []

def test_bad_date_is_rejected(client):
    assert client.get("/api/attendance", params={"date": "04/03/2024"}).status_code == 400
    assert client.get("/api/dashboard", params={"date": "yesterday"}).status_code == 400

def test_dashboard(client, enrolled, attendance_system):
    other = attendance_system.add_employee("Bob", "E2", "Sales")
    check_in(attendance_system, enrolled, 9, 30, AttendanceStatus.LATE)

    summary = client.get("/api/dashboard", params={"date": "2024-03-04"}).json()

    assert summary["total_employees"] == 2
    assert summary["present"] == 0
    assert summary["late"] == 1
    assert summary["absent"] == 1
    assert other.id not in [r["employee_row_id"] for r in summary["recent"]]

def test_csv_report_download(client, enrolled, attendance_system):
    check_in(attendance_system, enrolled, 8, 30, AttendanceStatus.PRESENT)

    response = client.get("/api/reports/attendance",
                          params={"start": "2024-03-01", "end": "2024-03-31", "format": "csv"})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert "Alice Smith" in response.text

def test_xlsx_report_download(client, enrolled, attendance_system):
    check_in(attendance_system, enrolled, 8, 30, AttendanceStatus.PRESENT)

    response = client.get("/api/reports/attendance", params={"start": "2024-03-01", "end": "2024-03-31"})

    assert response.status_code == 200
    assert response.content[:2] == b"PK"

def test_empty_report_is_not_found(client, enrolled):
    response = client.get("/api/reports/attendance", params={"start": "2024-01-01", "end": "2024-01-31"})
    assert response.status_code == 404

def test_report_argument_errors(client):
    assert client.get("/api/reports/attendance", params={"format": "pdf"}).status_code == 400
    assert client.get("/api/reports/attendance",
                      params={"start": "2024-03-10", "end": "2024-03-01"}).status_code == 400
