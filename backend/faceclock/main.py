import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from faceclock.core.config import settings
from faceclock.api import attendance as attendance_api
from faceclock.api import employees as employees_api
from faceclock.api import outlets as outlets_api
from faceclock.services.attendance_engine import EmployeeLockRegistry
from faceclock.services.extractor import build_extractor

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def init_database():
    """Create database tables on startup."""
    from faceclock.core.database import engine, Base
    import faceclock.models  # noqa: F401  register every table

    logger.info("Creating database tables...")
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables ready")


def init_extractor(app: FastAPI):
    """Build and warm up the face extractor once, before serving scans."""
    try:
        extractor = build_extractor(settings)
        extractor.warm_up()
    except Exception as e:
        logger.error(f"Face extractor unavailable ({settings.EXTRACTOR_BACKEND}): {e}", exc_info=True)
        extractor = None
    app.state.extractor = extractor


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables, the extractor and the attendance locks on startup."""
    init_database()
    app.state.attendance_locks = EmployeeLockRegistry()
    init_extractor(app)

    yield

    if app.state.extractor is not None:
        app.state.extractor.close()


# Disable API docs in production
docs_url = "/docs" if settings.ENVIRONMENT != "production" else None
redoc_url = "/redoc" if settings.ENVIRONMENT != "production" else None

app = FastAPI(
    title=settings.APP_NAME,
    description="Face scan attendance with outlet geofencing",
    version="1.0.0",
    lifespan=lifespan,
    docs_url=docs_url,
    redoc_url=redoc_url,
)


# Global exception handler - always return JSON (never plain text)
@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    logger.error(f"Unhandled exception: {exc}", exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"detail": f"Internal error: {type(exc).__name__}"},
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request, exc):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
    )


# CORS: local dev + configured frontend
allowed_origins = [
    "http://localhost:3000",
    "http://localhost:8081",
]
if settings.FRONTEND_URL and settings.FRONTEND_URL not in allowed_origins:
    allowed_origins.append(settings.FRONTEND_URL)

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
def health_check():
    extractor = getattr(app.state, "extractor", None)
    return {
        "status": "healthy",
        "service": "faceclock-api",
        "version": "1.0.0",
        "extractor": extractor.name if extractor is not None else None,
    }


@app.get("/")
def root():
    return {"message": "FaceClock Attendance API", "version": "1.0.0", "docs": "/docs"}


# Include routers
app.include_router(attendance_api.router)
app.include_router(employees_api.router)
app.include_router(outlets_api.router)
