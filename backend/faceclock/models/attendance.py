"""Attendance model for face-scan clock-in / clock-out.

One record per shift: created on clock-in, closed on clock-out.
An employee has at most one open record (clock_out_time is NULL) at a time.
Clock times are naive local wall-clock datetimes in settings.TIMEZONE.
"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Float
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from faceclock.core.database import Base
import enum


class AttendanceStatus(str, enum.Enum):
    ON_TIME = "ON_TIME"
    LATE = "LATE"


class Attendance(Base):
    """Individual clock-in / clock-out record."""
    __tablename__ = "attendances"

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(Integer, ForeignKey("employees.id"), nullable=False, index=True)

    # Clock times
    clock_in_time = Column(DateTime, nullable=False, index=True)
    clock_out_time = Column(DateTime, nullable=True)

    # Late tracking
    status = Column(String, default=AttendanceStatus.ON_TIME.value, nullable=False)
    late_duration = Column(Integer, default=0, nullable=False)  # minutes

    # Filled on clock-out
    work_duration = Column(Integer, default=0, nullable=False)  # minutes

    # GPS location
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    location_name = Column(String, nullable=True)
    outlet_id = Column(Integer, ForeignKey("outlets.id"), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    employee = relationship("Employee", back_populates="attendances")
    outlet = relationship("Outlet")
