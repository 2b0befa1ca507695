"""Scan orchestration: turns one face scan into one attendance decision.

Stages run strictly in order and stop at the first rejection:

1. Geofence (only when the client sent a coordinate)
2. Descriptor extraction, with a deadline
3. Identity match against the cached roster descriptors
4. Attendance state transition (the only stage that writes)

Rejections come back as ScanResult outcomes. Storage and extractor failures
become INTERNAL_ERROR after rolling back, so nothing partial is persisted.
"""
import logging
import math
from datetime import datetime
from typing import Callable, Optional, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from faceclock.core.config import settings as default_settings, Settings
from faceclock.models.employee import Employee
from faceclock.models.outlet import Outlet
from faceclock.schemas.scan import ScanOutcome, ScanResult
from faceclock.services.attendance_engine import (
    AttendanceAction,
    AttendanceInvariantError,
    AttendanceStateEngine,
    EmployeeLockRegistry,
    Transition,
)
from faceclock.services.descriptor_store import DescriptorStore
from faceclock.services.extractor import (
    ExtractionError,
    ExtractionTimeout,
    Extractor,
    decode_image,
    extract_with_timeout,
)
from faceclock.services.geo import Coordinate, resolve_zone
from faceclock.services.matcher import confidence, match

logger = logging.getLogger(__name__)


class InvalidScanRequest(ValueError):
    """The request is unusable before any stage runs (e.g. no image)."""


class ScanService:
    """Runs the scan pipeline for one database session."""

    def __init__(
        self,
        db: Session,
        extractor: Extractor,
        locks: EmployeeLockRegistry,
        settings: Settings = default_settings,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.db = db
        self.extractor = extractor
        self.settings = settings
        self.descriptors = DescriptorStore(db)
        self.engine = AttendanceStateEngine(db, locks, settings=settings, clock=clock)

    def get_active_zones(self):
        return (
            self.db.query(Outlet)
            .filter(Outlet.is_active == True)
            .order_by(Outlet.id)
            .all()
        )

    def process_scan(
        self,
        image: Union[str, bytes, None],
        coordinate: Optional[Coordinate] = None,
        location_name: Optional[str] = None,
    ) -> ScanResult:
        if not image:
            raise InvalidScanRequest("Image is required")
        try:
            image_bytes = decode_image(image)
        except ValueError as e:
            raise InvalidScanRequest(str(e))
        if not image_bytes:
            raise InvalidScanRequest("Image is empty")

        try:
            return self._run(image_bytes, coordinate, location_name)
        except (SQLAlchemyError, ExtractionError, AttendanceInvariantError) as e:
            self.db.rollback()
            logger.error(f"Scan failed: {type(e).__name__}: {e}", exc_info=True)
            return ScanResult(
                outcome=ScanOutcome.INTERNAL_ERROR,
                message=f"Scan could not be processed ({type(e).__name__})",
            )

    def _run(
        self,
        image: bytes,
        coordinate: Optional[Coordinate],
        location_name: Optional[str],
    ) -> ScanResult:
        # ── 1. Geofence ──────────────────────────────────────────────
        outlet = None
        if coordinate is not None:
            resolution = resolve_zone(coordinate, self.get_active_zones())
            if resolution.matched is None:
                return self._outside_geofence(resolution)
            outlet = resolution.matched
            logger.info(f"Scan inside outlet {outlet.name} ({int(round(resolution.matched_distance))}m)")

        # ── 2. Extraction ────────────────────────────────────────────
        try:
            descriptor = extract_with_timeout(
                self.extractor, image, self.settings.EXTRACTION_TIMEOUT_SECONDS
            )
        except ExtractionTimeout as e:
            logger.warning(f"Extraction timed out: {e}")
            return ScanResult(
                outcome=ScanOutcome.EXTRACTION_TIMEOUT,
                message="Face recognition is taking too long. Please try again.",
            )
        except ExtractionError:
            raise
        except Exception as e:
            raise ExtractionError(f"Extractor crashed: {e}") from e

        if descriptor is None:
            logger.info("Scan rejected: no face detected")
            return ScanResult(
                outcome=ScanOutcome.NO_FACE_DETECTED,
                message="No face detected. Make sure your face is clearly visible.",
            )

        # ── 3. Identity match ────────────────────────────────────────
        candidates = self.descriptors.get_cached_descriptors()
        if not candidates:
            logger.warning("Scan rejected: no enrolled faces")
            return ScanResult(
                outcome=ScanOutcome.NO_ENROLLED_FACES,
                message="No employees with enrolled faces.",
            )

        result = match(descriptor, candidates, self.settings.FACE_MATCH_THRESHOLD)
        if math.isinf(result.distance):
            logger.warning(
                f"Scan rejected: no enrolled descriptor has {len(descriptor)} dimensions "
                f"({len(candidates)} enrolled)"
            )
            return ScanResult(
                outcome=ScanOutcome.NO_ENROLLED_FACES,
                message="No employees with enrolled faces compatible with the current face model.",
            )
        if not result.matched:
            logger.info(f"Scan rejected: not recognized (best distance {result.distance:.3f})")
            return ScanResult(
                outcome=ScanOutcome.NOT_RECOGNIZED,
                distance=round(result.distance, 4),
                message=f"Face not recognized (confidence {confidence(result.distance):.2f})",
            )

        employee = self.db.query(Employee).filter(Employee.id == result.employee_id).first()
        if employee is None:
            raise AttendanceInvariantError(f"Matched employee {result.employee_id} no longer exists")

        # ── 4. State transition ──────────────────────────────────────
        transition = self.engine.submit(
            employee.id,
            coordinate=coordinate,
            outlet_id=outlet.id if outlet is not None else None,
            location_name=location_name,
        )
        return self._success(employee, transition, result.distance, outlet)

    def _outside_geofence(self, resolution) -> ScanResult:
        if resolution.nearest is not None:
            distance = int(round(resolution.nearest_distance))
            logger.info(f"Scan rejected: outside geofence, nearest {resolution.nearest.name} at {distance}m")
            return ScanResult(
                outcome=ScanOutcome.OUTSIDE_GEOFENCE,
                nearest_zone_name=resolution.nearest.name,
                nearest_distance_meters=distance,
                message=f"You are outside outlet range. Nearest outlet: {resolution.nearest.name} ({distance}m)",
            )
        logger.info("Scan rejected: outside geofence, no active outlets")
        return ScanResult(
            outcome=ScanOutcome.OUTSIDE_GEOFENCE,
            message="You are outside outlet range. No active outlets.",
        )

    def _success(
        self,
        employee: Employee,
        transition: Transition,
        distance: float,
        outlet: Optional[Outlet],
    ) -> ScanResult:
        record = transition.record

        if transition.action == AttendanceAction.CLOCK_OUT:
            timestamp = record.clock_out_time
            hours = record.work_duration / 60.0
            message = f"Goodbye, {employee.name}! Clocked out at {timestamp.strftime('%I:%M %p')} ({hours:.1f} hours)"
        else:
            timestamp = record.clock_in_time
            message = f"Welcome, {employee.name}! Clocked in at {timestamp.strftime('%I:%M %p')}" + (
                f" ({record.late_duration} min late)" if record.late_duration else " (on time)"
            )

        return ScanResult(
            outcome=ScanOutcome.SUCCESS,
            action=transition.action.value,
            employee_id=employee.id,
            employee_name=employee.name,
            timestamp=timestamp,
            distance=round(distance, 4),
            confidence=confidence(distance),
            status=record.status,
            late_duration=record.late_duration,
            work_duration=record.work_duration,
            outlet_name=outlet.name if outlet is not None else None,
            message=message,
        )
