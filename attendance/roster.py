"""Employee operations that span the record store and the face descriptor store."""
from typing import Dict, List

from utils.logger import logger

def delete_employee_with_faces(attendance_system, reference_store, employee_row_id: str) -> bool:
    """Delete an employee record, their check-ins and every enrolled descriptor."""
    deleted = attendance_system.delete_employee(employee_row_id)
    if deleted:
        removed = reference_store.delete_by_identity(employee_row_id)
        logger.log_attendance_event(employee_row_id, "EMPLOYEE_DELETED", {'face_records_removed': removed})
    return deleted

def employees_with_face_counts(attendance_system, reference_store) -> List[Dict]:
    """Active employees with the number of enrolled descriptors each has."""
    employees = []
    for employee in attendance_system.list_active_employees():
        data = employee.to_dict()
        data['face_samples'] = len(reference_store.get_by_identity(employee.id))
        employees.append(data)
    return employees
