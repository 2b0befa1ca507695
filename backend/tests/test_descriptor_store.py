import json
import threading

import numpy as np
import pytest

from faceclock.backfill import backfill_descriptors, init_db
from faceclock.models import Employee
from faceclock.services.descriptor_store import DescriptorStore, decode_descriptor, encode_descriptor
from faceclock.services.extractor import ExtractionTimeout, Extractor
from faceclock.services.matcher import match

from conftest import b64, vec


def test_encode_and_decode_descriptor():
    raw = encode_descriptor([0.25, -0.5])
    assert json.loads(raw) == [0.25, -0.5]
    np.testing.assert_allclose(decode_descriptor(raw), [0.25, -0.5])
    assert encode_descriptor(None) is None


@pytest.mark.parametrize("raw", [None, "", "not json", "{}", "[]", '["a", "b"]'])
def test_unusable_stored_values_decode_to_none(raw):
    assert decode_descriptor(raw) is None


def test_cached_descriptors_skip_missing_and_corrupt(db, make_employee):
    alice = make_employee("E001", "Alice", descriptor=vec(0.1))
    make_employee("E002", "Bob")
    carol = make_employee("E003", "Carol")
    carol.face_descriptor = "{broken"
    db.commit()

    cached = DescriptorStore(db).get_cached_descriptors()

    assert list(cached) == [alice.id]
    np.testing.assert_allclose(cached[alice.id], vec(0.1))


def test_refresh_descriptor_from_photo(db, make_employee, extractor):
    photo = b"alice-reference"
    extractor.register(photo, vec(0.2, 0.1))
    alice = make_employee("E001", "Alice", photo=b64(photo))

    assert DescriptorStore(db).refresh_descriptor(alice, extractor) is True
    db.commit()

    assert json.loads(alice.face_descriptor) == pytest.approx(vec(0.2, 0.1))


def test_refresh_descriptor_accepts_data_urls(db, make_employee, extractor):
    photo = b"alice-data-url"
    extractor.register(photo, vec(0.3))
    alice = make_employee("E001", "Alice", photo="data:image/jpeg;base64," + b64(photo))

    assert DescriptorStore(db).refresh_descriptor(alice, extractor) is True


def test_refresh_descriptor_gives_up_on_a_stuck_model(db, make_employee):
    release = threading.Event()

    class Stuck(Extractor):
        name = "stuck"

        def extract(self, image):
            release.wait(5)
            return vec(0.1)

    stuck = Stuck()
    alice = make_employee("E001", "Alice", photo=b64(b"alice"))
    try:
        with pytest.raises(ExtractionTimeout):
            DescriptorStore(db, timeout=0.05).refresh_descriptor(alice, stuck)
    finally:
        release.set()
        stuck.close()

    assert alice.face_descriptor is None


def test_photo_without_face_clears_descriptor(db, make_employee, extractor):
    alice = make_employee("E001", "Alice", descriptor=vec(0.1), photo=b64(b"no-face-here"))

    assert DescriptorStore(db).refresh_descriptor(alice, extractor) is False
    assert alice.face_descriptor is None


def test_removed_photo_clears_descriptor_without_calling_model(db, make_employee, extractor):
    alice = make_employee("E001", "Alice", descriptor=vec(0.1))

    assert DescriptorStore(db).refresh_descriptor(alice, extractor) is False
    assert alice.face_descriptor is None
    assert extractor.calls == 0


def test_enrolled_photo_matches_itself(db, make_employee, extractor):
    photo = b"bob-reference"
    extractor.register(photo, vec(0.11, -0.07, 0.33))
    make_employee("E001", "Alice", descriptor=vec(-0.4, 0.2))
    bob = make_employee("E002", "Bob", photo=b64(photo))

    store = DescriptorStore(db)
    store.refresh_descriptor(bob, extractor)
    db.commit()

    result = match(extractor.extract(photo), store.get_cached_descriptors(), threshold=0.55)

    assert result.employee_id == bob.id
    assert result.distance == pytest.approx(0.0, abs=1e-9)


def test_backfill_only_touches_employees_missing_descriptors(db, make_employee, extractor):
    extractor.register(b"alice", vec(0.1))
    extractor.register(b"carol", vec(0.3))
    make_employee("E001", "Alice", photo=b64(b"alice"))
    make_employee("E002", "Bob", photo=b64(b"no-face"))
    make_employee("E003", "Carol", photo=b64(b"carol"), descriptor=vec(0.9))
    make_employee("E004", "Dan")

    result = DescriptorStore(db).backfill_missing(extractor)

    assert result == {"success": 1, "failed": 1, "total": 2}
    assert extractor.calls == 2
    carol = db.query(Employee).filter(Employee.user_code == "E003").one()
    assert json.loads(carol.face_descriptor)[0] == pytest.approx(0.9)


def test_backfill_command(engine, session_factory, extractor, capsys):
    init_db(bind=engine)
    session = session_factory()
    session.add(Employee(user_code="E001", name="Alice", photo=b64(b"alice")))
    session.commit()
    session.close()
    extractor.register(b"alice", vec(0.5))

    result = backfill_descriptors(extractor, session_factory=session_factory)

    assert result == {"success": 1, "failed": 0, "total": 1}
    assert "Success: 1" in capsys.readouterr().out
