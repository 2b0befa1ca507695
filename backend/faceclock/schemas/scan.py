from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
import enum


class ScanOutcome(str, enum.Enum):
    SUCCESS = "SUCCESS"
    OUTSIDE_GEOFENCE = "OUTSIDE_GEOFENCE"
    NO_FACE_DETECTED = "NO_FACE_DETECTED"
    NO_ENROLLED_FACES = "NO_ENROLLED_FACES"
    NOT_RECOGNIZED = "NOT_RECOGNIZED"
    EXTRACTION_TIMEOUT = "EXTRACTION_TIMEOUT"
    INTERNAL_ERROR = "INTERNAL_ERROR"


# HTTP status returned with each outcome
OUTCOME_STATUS_CODES = {
    ScanOutcome.SUCCESS: 200,
    ScanOutcome.OUTSIDE_GEOFENCE: 403,
    ScanOutcome.NO_FACE_DETECTED: 422,
    ScanOutcome.NO_ENROLLED_FACES: 404,
    ScanOutcome.NOT_RECOGNIZED: 401,
    ScanOutcome.EXTRACTION_TIMEOUT: 504,
    ScanOutcome.INTERNAL_ERROR: 500,
}


class ScanRequest(BaseModel):
    image: Optional[str] = None  # base64 or data URL, required
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    location_name: Optional[str] = None


class ScanResult(BaseModel):
    outcome: ScanOutcome
    message: str

    # OUTSIDE_GEOFENCE
    nearest_zone_name: Optional[str] = None
    nearest_distance_meters: Optional[int] = None

    # NOT_RECOGNIZED (diagnostic) / SUCCESS
    distance: Optional[float] = None

    # SUCCESS
    action: Optional[str] = None
    employee_id: Optional[int] = None
    employee_name: Optional[str] = None
    timestamp: Optional[datetime] = None
    confidence: Optional[float] = Field(None, description="1 - distance; advisory, not a probability")
    status: Optional[str] = None
    late_duration: Optional[int] = None
    work_duration: Optional[int] = None
    outlet_name: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.outcome == ScanOutcome.SUCCESS

    @property
    def http_status(self) -> int:
        return OUTCOME_STATUS_CODES[self.outcome]
