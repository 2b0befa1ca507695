from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    # App
    APP_NAME: str = "FaceClock Attendance"
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str = "sqlite:///./faceclock.db"

    # Work schedule (local wall clock in TIMEZONE)
    TIMEZONE: str = "UTC"
    WORK_START_HOUR: int = 9
    WORK_START_MINUTE: int = 0
    LATE_GRACE_MINUTES: int = 15  # late only when strictly more than this

    # Face matching
    FACE_MATCH_THRESHOLD: float = 0.55  # max embedding distance for "same person"

    # Descriptor extraction
    EXTRACTOR_BACKEND: str = "local"  # local or remote
    FACE_DETECTION_MODEL: str = "hog"  # hog or cnn
    MAX_IMAGE_WIDTH: int = 640
    EXTRACTION_TIMEOUT_SECONDS: float = 15.0
    REMOTE_EXTRACTOR_URL: Optional[str] = None
    REMOTE_EXTRACTOR_API_KEY: Optional[str] = None

    # Outlets
    DEFAULT_OUTLET_RADIUS_METERS: float = 100.0

    # Frontend URL allowed through CORS
    FRONTEND_URL: Optional[str] = None

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
