from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from faceclock.core.config import settings


def normalize_database_url(url: str) -> str:
    # Render uses postgres:// but SQLAlchemy + psycopg3 needs postgresql+psycopg://
    if url.startswith("postgres://"):
        return "postgresql+psycopg://" + url[len("postgres://"):]
    if url.startswith("postgresql://") and "+psycopg" not in url:
        return "postgresql+psycopg://" + url[len("postgresql://"):]
    return url


def build_engine(url: str, **kwargs):
    """Create an engine with pool settings suited to the backend."""
    url = normalize_database_url(url)
    if url.startswith("sqlite"):
        # Scans are served from a thread pool; SQLite waits on writer locks
        return create_engine(
            url,
            connect_args={"check_same_thread": False, "timeout": 30},
            echo=False,
            **kwargs,
        )
    return create_engine(
        url,
        pool_pre_ping=True,
        pool_size=5,
        max_overflow=10,
        echo=False,
        **kwargs,
    )


# Create engine
engine = build_engine(settings.DATABASE_URL)

# Session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for models
Base = declarative_base()


# Dependency for FastAPI routes
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
