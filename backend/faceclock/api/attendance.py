"""Attendance API: face scan clock in/out, attendance history and status.

A scan is one call: the server decides from the employee's open record
whether it is a clock-in or a clock-out.

"Late" = clocked in more than 15 minutes after 09:00 local time (configurable).
"""
import logging
from datetime import date, datetime, time, timedelta
from typing import Callable, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session, joinedload

from faceclock.core.config import settings
from faceclock.core.database import get_db
from faceclock.core.dependencies import get_clock, get_extractor, get_lock_registry
from faceclock.models.attendance import Attendance, AttendanceStatus
from faceclock.models.employee import Employee
from faceclock.schemas.attendance import AttendanceStateOut, AttendanceSummary, AttendanceWithEmployee
from faceclock.schemas.scan import ScanRequest, ScanResult
from faceclock.services.attendance_engine import (
    AttendanceState,
    AttendanceStateEngine,
    EmployeeLockRegistry,
    local_clock,
)
from faceclock.services.extractor import Extractor
from faceclock.services.geo import Coordinate
from faceclock.services.scan import InvalidScanRequest, ScanService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/attendance", tags=["attendance"])


# ── Scan (clock in / clock out) ─────────────────────────────────────

@router.post("/scan", response_model=ScanResult)
def scan(
    payload: ScanRequest,
    db: Session = Depends(get_db),
    extractor: Extractor = Depends(get_extractor),
    locks: EmployeeLockRegistry = Depends(get_lock_registry),
    clock: Optional[Callable[[], datetime]] = Depends(get_clock),
):
    """Identify the face in `image` and clock that employee in or out."""
    if (payload.latitude is None) != (payload.longitude is None):
        raise HTTPException(status_code=400, detail="Latitude and longitude must be sent together")

    coordinate = None
    if payload.latitude is not None:
        coordinate = Coordinate(payload.latitude, payload.longitude)

    service = ScanService(db, extractor, locks, settings=settings, clock=clock)
    try:
        result = service.process_scan(payload.image, coordinate, payload.location_name)
    except InvalidScanRequest as e:
        raise HTTPException(status_code=400, detail=str(e))

    return JSONResponse(
        status_code=result.http_status,
        content=jsonable_encoder(result.model_dump(exclude_none=True)),
    )


# ── History ─────────────────────────────────────────────────────────

@router.get("")
def list_attendance(
    employee_id: Optional[int] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    status: Optional[AttendanceStatus] = None,
    summary: bool = False,
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
    clock: Optional[Callable[[], datetime]] = Depends(get_clock),
):
    """List attendance records, newest clock-in first, or a summary when `summary=true`."""
    query = db.query(Attendance)

    if employee_id is not None:
        query = query.filter(Attendance.employee_id == employee_id)
    if status is not None:
        query = query.filter(Attendance.status == status.value)
    if start_date:
        query = query.filter(Attendance.clock_in_time >= datetime.combine(start_date, time.min))
    if end_date:
        # Include the entire end date
        query = query.filter(Attendance.clock_in_time < datetime.combine(end_date + timedelta(days=1), time.min))

    if summary:
        now = (clock or local_clock(settings.TIMEZONE))()
        return _summarize(query, now)

    records = (
        query.options(joinedload(Attendance.employee))
        .order_by(Attendance.clock_in_time.desc())
        .limit(limit)
        .all()
    )
    return [AttendanceWithEmployee.model_validate(r) for r in records]


@router.get("/status/{employee_id}", response_model=AttendanceStateOut)
def get_status(
    employee_id: int,
    db: Session = Depends(get_db),
    locks: EmployeeLockRegistry = Depends(get_lock_registry),
):
    """Current clock state for one employee."""
    employee = db.query(Employee).filter(Employee.id == employee_id).first()
    if not employee:
        raise HTTPException(status_code=404, detail="Employee not found")

    engine = AttendanceStateEngine(db, locks, settings=settings)
    latest = engine.latest_record(employee_id)
    if latest is not None and latest.clock_out_time is None:
        return AttendanceStateOut(
            employee_id=employee_id,
            state=AttendanceState.CLOCKED_IN.value,
            open_record_id=latest.id,
            clock_in_time=latest.clock_in_time,
        )
    return AttendanceStateOut(employee_id=employee_id, state=AttendanceState.CLOCKED_OUT.value)


# ── Internal Helpers ─────────────────────────────────────────────────

def _summarize(query, now: datetime) -> AttendanceSummary:
    total = query.count()
    late = query.filter(Attendance.status == AttendanceStatus.LATE.value).count()
    on_time = query.filter(Attendance.status == AttendanceStatus.ON_TIME.value).count()
    today = query.filter(Attendance.clock_in_time >= datetime.combine(now.date(), time.min)).count()

    return AttendanceSummary(
        total_records=total,
        late_count=late,
        on_time_count=on_time,
        today_records=today,
        late_percentage=round(late / total * 100, 1) if total > 0 else 0.0,
    )
