import base64
from datetime import datetime

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

import faceclock.models  # noqa: F401
from faceclock.core.config import Settings
from faceclock.core.database import Base, build_engine, get_db
from faceclock.core.dependencies import get_clock
from faceclock.models import Employee, Outlet
from faceclock.services.attendance_engine import EmployeeLockRegistry
from faceclock.services.descriptor_store import encode_descriptor
from faceclock.services.extractor import Extractor

DIM = 128


def vec(*head, dim=DIM):
    """A `dim`-length descriptor starting with `head`, zero elsewhere."""
    values = [float(x) for x in head]
    return values + [0.0] * (dim - len(values))


def b64(raw: bytes) -> str:
    return base64.b64encode(raw).decode("ascii")


class FakeExtractor(Extractor):
    """Returns descriptors registered per image; unknown images have no face."""

    name = "fake"

    def __init__(self):
        self.faces = {}
        self.calls = 0

    def register(self, image: bytes, descriptor):
        self.faces[image] = list(descriptor)

    def extract(self, image):
        self.calls += 1
        return self.faces.get(image)


class FixedClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'faceclock-test.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def settings():
    return Settings(
        TIMEZONE="UTC",
        WORK_START_HOUR=9,
        WORK_START_MINUTE=0,
        LATE_GRACE_MINUTES=15,
        FACE_MATCH_THRESHOLD=0.55,
        EXTRACTION_TIMEOUT_SECONDS=5.0,
    )


@pytest.fixture
def extractor():
    fake = FakeExtractor()
    yield fake
    fake.close()


@pytest.fixture
def locks():
    return EmployeeLockRegistry()


@pytest.fixture
def clock():
    return FixedClock(datetime(2026, 10, 19, 8, 45))


@pytest.fixture
def make_employee(db):
    def _make(user_code, name, descriptor=None, photo=None, department=None):
        employee = Employee(
            user_code=user_code,
            name=name,
            department=department,
            photo=photo,
            face_descriptor=encode_descriptor(descriptor),
        )
        db.add(employee)
        db.commit()
        db.refresh(employee)
        return employee
    return _make


@pytest.fixture
def make_outlet(db):
    def _make(name, latitude, longitude, radius=100.0, is_active=True):
        outlet = Outlet(name=name, latitude=latitude, longitude=longitude, radius=radius, is_active=is_active)
        db.add(outlet)
        db.commit()
        db.refresh(outlet)
        return outlet
    return _make


@pytest.fixture
def client(session_factory, extractor, locks, clock):
    from faceclock.main import app

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    app.state.extractor = extractor
    app.state.attendance_locks = locks

    yield TestClient(app)

    app.dependency_overrides.clear()
    app.state.extractor = None
