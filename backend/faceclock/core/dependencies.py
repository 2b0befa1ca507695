"""Request dependencies for services built once at startup.

The extractor and the per-employee lock registry live on `app.state`; they
are created in the application lifespan, not lazily on first use.
"""
from datetime import datetime
from typing import Callable, Optional

from fastapi import HTTPException, Request

from faceclock.services.attendance_engine import EmployeeLockRegistry
from faceclock.services.extractor import Extractor


def get_extractor(request: Request) -> Extractor:
    extractor = getattr(request.app.state, "extractor", None)
    if extractor is None:
        raise HTTPException(status_code=503, detail="Face extractor is not available")
    return extractor


def get_lock_registry(request: Request) -> EmployeeLockRegistry:
    return request.app.state.attendance_locks


def get_clock() -> Optional[Callable[[], datetime]]:
    """Clock used by the attendance engine; None means settings.TIMEZONE wall clock."""
    return None
