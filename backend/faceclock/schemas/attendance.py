from pydantic import BaseModel
from typing import Optional
from datetime import datetime


class AttendanceInDB(BaseModel):
    id: int
    employee_id: int
    clock_in_time: datetime
    clock_out_time: Optional[datetime]
    status: str
    late_duration: int
    work_duration: int
    latitude: Optional[float]
    longitude: Optional[float]
    location_name: Optional[str]
    outlet_id: Optional[int]
    created_at: Optional[datetime]

    class Config:
        from_attributes = True


class Attendance(AttendanceInDB):
    pass


class AttendanceEmployee(BaseModel):
    id: int
    user_code: str
    name: str
    department: Optional[str]

    class Config:
        from_attributes = True


class AttendanceWithEmployee(Attendance):
    employee: AttendanceEmployee


class AttendanceSummary(BaseModel):
    total_records: int
    late_count: int
    on_time_count: int
    today_records: int
    late_percentage: float


class AttendanceStateOut(BaseModel):
    employee_id: int
    state: str
    open_record_id: Optional[int] = None
    clock_in_time: Optional[datetime] = None
