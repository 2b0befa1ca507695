from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime
from faceclock.schemas.attendance import Attendance


class EmployeeBase(BaseModel):
    user_code: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    department: Optional[str] = None


class EmployeeCreate(EmployeeBase):
    photo: Optional[str] = None  # base64 or data URL


class EmployeeUpdate(BaseModel):
    user_code: Optional[str] = Field(None, min_length=1)
    name: Optional[str] = Field(None, min_length=1)
    department: Optional[str] = None
    photo: Optional[str] = None  # "" removes the photo


class EmployeeInDB(EmployeeBase):
    id: int
    has_photo: bool
    has_face_descriptor: bool
    created_at: Optional[datetime]
    updated_at: Optional[datetime]

    class Config:
        from_attributes = True


class Employee(EmployeeInDB):
    pass


class EmployeeDetail(Employee):
    recent_attendances: List[Attendance] = []
