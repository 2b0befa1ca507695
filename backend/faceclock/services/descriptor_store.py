"""Descriptor store: cached face descriptors on employee records.

Scans only read the cached descriptors; they are (re)computed when an
employee's photo is set or changed, and by the backfill command for employees
enrolled before a descriptor existed.
"""
import json
import logging
from typing import Dict, List, Optional

import numpy as np
from sqlalchemy.orm import Session

from faceclock.models.employee import Employee
from faceclock.core.config import settings
from faceclock.services.extractor import Extractor, decode_image, extract_with_timeout

logger = logging.getLogger(__name__)


def encode_descriptor(descriptor: Optional[List[float]]) -> Optional[str]:
    if descriptor is None:
        return None
    return json.dumps([float(x) for x in descriptor])


def decode_descriptor(raw: Optional[str]) -> Optional[np.ndarray]:
    if not raw:
        return None
    try:
        values = json.loads(raw)
    except (TypeError, ValueError):
        return None
    if not isinstance(values, list) or not values:
        return None
    try:
        return np.asarray(values, dtype=np.float64)
    except (TypeError, ValueError):
        return None


class DescriptorStore:
    """Reads and writes the descriptor cache stored on Employee rows."""

    def __init__(self, db: Session, timeout: Optional[float] = None):
        self.db = db
        self.timeout = timeout if timeout is not None else settings.EXTRACTION_TIMEOUT_SECONDS

    def get_cached_descriptors(self) -> Dict[int, np.ndarray]:
        """Map employee id -> descriptor for everyone with a usable descriptor.

        Employees without one are left out entirely rather than scored.
        """
        rows = (
            self.db.query(Employee.id, Employee.face_descriptor)
            .filter(Employee.face_descriptor.isnot(None))
            .order_by(Employee.id)
            .all()
        )

        descriptors = {}
        for employee_id, raw in rows:
            descriptor = decode_descriptor(raw)
            if descriptor is None:
                logger.warning(f"Ignoring unreadable face descriptor for employee {employee_id}")
                continue
            descriptors[employee_id] = descriptor
        return descriptors

    def refresh_descriptor(self, employee: Employee, extractor: Extractor) -> bool:
        """Recompute the employee's descriptor from their current photo.

        Clears the descriptor when there is no photo or no face in it.
        Raises ValueError for a photo that is not base64 and ExtractionError
        (including ExtractionTimeout) when the model fails or runs too long.
        Returns True if a descriptor was stored. Does not commit.
        """
        if not employee.photo:
            employee.face_descriptor = None
            return False

        descriptor = extract_with_timeout(extractor, decode_image(employee.photo), self.timeout)
        if descriptor is None:
            logger.warning(f"No face found in photo for employee {employee.user_code}, descriptor cleared")
            employee.face_descriptor = None
            return False

        employee.face_descriptor = encode_descriptor(descriptor)
        logger.info(f"Descriptor saved for employee {employee.user_code} ({len(descriptor)} dimensions)")
        return True

    def backfill_missing(self, extractor: Extractor) -> dict:
        """Compute descriptors for employees with a photo but no descriptor."""
        employees = (
            self.db.query(Employee)
            .filter(
                Employee.photo.isnot(None),
                Employee.photo != "",
                Employee.face_descriptor.is_(None),
            )
            .order_by(Employee.id)
            .all()
        )

        success = 0
        failed = 0
        for emp in employees:
            try:
                if self.refresh_descriptor(emp, extractor):
                    success += 1
                else:
                    failed += 1
                self.db.commit()
            except Exception as e:
                self.db.rollback()
                logger.error(f"Descriptor backfill failed for {emp.user_code}: {e}")
                failed += 1

        return {"success": success, "failed": failed, "total": len(employees)}
