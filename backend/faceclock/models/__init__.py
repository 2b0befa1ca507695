from faceclock.models.employee import Employee
from faceclock.models.outlet import Outlet
from faceclock.models.attendance import Attendance, AttendanceStatus

__all__ = [
    "Employee",
    "Outlet",
    "Attendance",
    "AttendanceStatus",
]
