"""Attendance state machine: decides clock-in vs clock-out for an employee.

Per employee there are two states:
- CLOCKED_OUT: no open record (initial state)
- CLOCKED_IN: the most recently created record has no clock-out time

A submit while CLOCKED_OUT opens a record and works out lateness against
today's start time; a submit while CLOCKED_IN closes the open record and
stores the worked minutes. There is no terminal state and no auto-close of
forgotten clock-outs.
"""
import enum
import logging
import threading
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, time
from typing import Callable, Optional, Tuple
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session

from faceclock.core.config import settings as default_settings, Settings
from faceclock.models.attendance import Attendance, AttendanceStatus
from faceclock.models.employee import Employee
from faceclock.services.geo import Coordinate

logger = logging.getLogger(__name__)


class AttendanceAction(str, enum.Enum):
    CLOCK_IN = "CLOCK_IN"
    CLOCK_OUT = "CLOCK_OUT"


class AttendanceState(str, enum.Enum):
    CLOCKED_OUT = "CLOCKED_OUT"
    CLOCKED_IN = "CLOCKED_IN"


class AttendanceInvariantError(Exception):
    """More than one open attendance record exists for an employee."""


@dataclass
class Transition:
    action: AttendanceAction
    record: Attendance


def local_clock(tz_name: str) -> Callable[[], datetime]:
    """Return a clock giving naive wall-clock time in `tz_name`."""
    tz = ZoneInfo(tz_name)

    def now() -> datetime:
        return datetime.now(tz).replace(tzinfo=None)

    return now


def whole_minutes(start: datetime, end: datetime) -> int:
    """Floor of the minutes between two datetimes, never negative."""
    return max(0, int((end - start).total_seconds() // 60))


def compute_lateness(
    now: datetime,
    today: datetime,
    start: time = time(9, 0),
    grace_minutes: int = 15,
) -> Tuple[AttendanceStatus, int]:
    """Work out clock-in lateness.

    The cutoff is `start` on `today`'s date, not on `now`'s date. A clock-in
    whose calendar day differs from today is never late. Late means strictly
    more than `grace_minutes` past the cutoff; the late duration then counts
    from the cutoff itself.
    """
    cutoff = datetime.combine(today.date(), start)
    if now.date() == cutoff.date() and now > cutoff:
        diff = whole_minutes(cutoff, now)
        if diff > grace_minutes:
            return AttendanceStatus.LATE, diff
    return AttendanceStatus.ON_TIME, 0


class EmployeeLockRegistry:
    """One mutex per employee id, shared by every engine in the process."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks = defaultdict(threading.Lock)

    def lock_for(self, employee_id: int) -> threading.Lock:
        with self._guard:
            return self._locks[employee_id]


class AttendanceStateEngine:
    """
    Clock-in / clock-out transitions for one database session.

    The read of the latest record and the write that follows run under the
    employee's lock from `locks`, and on databases that support it under a
    row lock on the employee, so two simultaneous scans cannot both open a
    record.
    """

    def __init__(
        self,
        db: Session,
        locks: EmployeeLockRegistry,
        settings: Settings = default_settings,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.db = db
        self.locks = locks
        self.settings = settings
        self.clock = clock or local_clock(settings.TIMEZONE)
        self.work_start = time(settings.WORK_START_HOUR, settings.WORK_START_MINUTE)

    def latest_record(self, employee_id: int) -> Optional[Attendance]:
        return (
            self.db.query(Attendance)
            .filter(Attendance.employee_id == employee_id)
            .order_by(Attendance.created_at.desc(), Attendance.id.desc())
            .first()
        )

    def current_state(self, employee_id: int) -> AttendanceState:
        latest = self.latest_record(employee_id)
        if latest is not None and latest.clock_out_time is None:
            return AttendanceState.CLOCKED_IN
        return AttendanceState.CLOCKED_OUT

    def _check_single_open(self, employee_id: int) -> None:
        open_count = (
            self.db.query(Attendance)
            .filter(
                Attendance.employee_id == employee_id,
                Attendance.clock_out_time.is_(None),
            )
            .count()
        )
        if open_count > 1:
            raise AttendanceInvariantError(
                f"Employee {employee_id} has {open_count} open attendance records"
            )

    def submit(
        self,
        employee_id: int,
        now: Optional[datetime] = None,
        coordinate: Optional[Coordinate] = None,
        outlet_id: Optional[int] = None,
        location_name: Optional[str] = None,
    ) -> Transition:
        """Clock the employee in or out at `now` and commit the change."""
        now = now or self.clock()

        with self.locks.lock_for(employee_id):
            try:
                # Row lock for multi-process deployments; a no-op on SQLite
                self.db.query(Employee.id).filter(Employee.id == employee_id).with_for_update().first()

                self._check_single_open(employee_id)
                latest = self.latest_record(employee_id)

                if latest is not None and latest.clock_out_time is None:
                    transition = self._clock_out(latest, now)
                else:
                    transition = self._clock_in(employee_id, now, coordinate, outlet_id, location_name)

                self.db.commit()
            except Exception:
                self.db.rollback()
                raise

        self.db.refresh(transition.record)
        return transition

    def _clock_out(self, record: Attendance, now: datetime) -> Transition:
        record.clock_out_time = now
        record.work_duration = whole_minutes(record.clock_in_time, now)
        logger.info(
            f"Employee {record.employee_id} clocked out after {record.work_duration} min "
            f"(record {record.id})"
        )
        return Transition(action=AttendanceAction.CLOCK_OUT, record=record)

    def _clock_in(
        self,
        employee_id: int,
        now: datetime,
        coordinate: Optional[Coordinate],
        outlet_id: Optional[int],
        location_name: Optional[str],
    ) -> Transition:
        status, late_minutes = compute_lateness(
            now,
            self.clock(),
            start=self.work_start,
            grace_minutes=self.settings.LATE_GRACE_MINUTES,
        )

        record = Attendance(
            employee_id=employee_id,
            clock_in_time=now,
            status=status.value,
            late_duration=late_minutes,
            work_duration=0,
            latitude=coordinate.latitude if coordinate else None,
            longitude=coordinate.longitude if coordinate else None,
            location_name=location_name,
            outlet_id=outlet_id,
        )
        self.db.add(record)
        self.db.flush()

        logger.info(
            f"Employee {employee_id} clocked in at {now.isoformat()} "
            f"({status.value}, {late_minutes} min late)"
        )
        return Transition(action=AttendanceAction.CLOCK_IN, record=record)
