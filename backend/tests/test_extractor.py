import base64
import io
import json
import threading

import httpx
import pytest

from faceclock.core.config import Settings
from faceclock.services.extractor import (
    ExtractionError,
    ExtractionTimeout,
    Extractor,
    InvalidImage,
    RemoteExtractor,
    build_extractor,
    decode_image,
    extract_with_timeout,
)

from conftest import vec


def test_decode_plain_base64():
    assert decode_image(base64.b64encode(b"jpeg-bytes").decode()) == b"jpeg-bytes"


def test_decode_data_url():
    payload = "data:image/png;base64," + base64.b64encode(b"png-bytes").decode()
    assert decode_image(payload) == b"png-bytes"


def test_decode_passes_bytes_through():
    assert decode_image(b"raw") == b"raw"


def test_decode_rejects_broken_base64():
    with pytest.raises(ValueError):
        decode_image("abc")


def _remote(handler, **kwargs):
    return RemoteExtractor("https://faces.example/embed", transport=httpx.MockTransport(handler), **kwargs)


def test_remote_extractor_returns_descriptor():
    seen = {}

    def handler(request):
        seen["auth"] = request.headers.get("authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"descriptor": vec(0.1, 0.2)})

    extractor = _remote(handler, api_key="secret")
    descriptor = extractor.extract(b"image-bytes")

    assert descriptor == pytest.approx(vec(0.1, 0.2))
    assert seen["auth"] == "Bearer secret"
    assert base64.b64decode(seen["body"]["image"]) == b"image-bytes"


def test_remote_extractor_no_face():
    extractor = _remote(lambda request: httpx.Response(200, json={"descriptor": None}))
    assert extractor.extract(b"image") is None


def test_remote_extractor_error_status():
    extractor = _remote(lambda request: httpx.Response(500, text="model crashed"))
    with pytest.raises(ExtractionError):
        extractor.extract(b"image")


def test_remote_extractor_invalid_json():
    extractor = _remote(lambda request: httpx.Response(200, text="<html>"))
    with pytest.raises(ExtractionError):
        extractor.extract(b"image")


def test_remote_extractor_timeout():
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(ExtractionTimeout):
        _remote(handler).extract(b"image")


def test_remote_extractor_connection_error():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(ExtractionError):
        _remote(handler).extract(b"image")


def test_remote_extractor_requires_url():
    with pytest.raises(ValueError):
        RemoteExtractor("")


def test_build_remote_extractor_from_settings():
    settings = Settings(EXTRACTOR_BACKEND="remote", REMOTE_EXTRACTOR_URL="https://faces.example/embed")
    extractor = build_extractor(settings)
    try:
        assert isinstance(extractor, RemoteExtractor)
        assert extractor.url == "https://faces.example/embed"
    finally:
        extractor.close()


def test_build_extractor_rejects_unknown_backend():
    with pytest.raises(ValueError):
        build_extractor(Settings(EXTRACTOR_BACKEND="magic"))


class SlowExtractor(Extractor):
    def __init__(self):
        self.release = threading.Event()

    def extract(self, image):
        self.release.wait(5)
        return vec(0.1)


def test_extract_with_timeout_returns_result():
    class Quick(Extractor):
        def extract(self, image):
            return vec(0.2)

    quick = Quick()
    assert extract_with_timeout(quick, b"img", timeout=1.0) == vec(0.2)
    quick.close()


def test_extract_with_timeout_gives_up():
    slow = SlowExtractor()
    try:
        with pytest.raises(ExtractionTimeout):
            extract_with_timeout(slow, b"img", timeout=0.05)
    finally:
        slow.release.set()
        slow.close()


def test_timed_out_calls_reuse_a_bounded_pool():
    class Hung(SlowExtractor):
        name = "hung"

    hung = Hung()
    try:
        for _ in range(5):
            with pytest.raises(ExtractionTimeout):
                extract_with_timeout(hung, b"img", timeout=0.02)
        workers = [t for t in threading.enumerate() if t.name.startswith("extract-hung")]
        assert 1 <= len(workers) <= hung.max_workers
    finally:
        hung.release.set()
        hung.close()


def test_closed_extractor_starts_a_fresh_pool():
    class Quick(Extractor):
        def extract(self, image):
            return vec(0.4)

    quick = Quick()
    assert extract_with_timeout(quick, b"img", timeout=1.0) == vec(0.4)
    quick.close()
    assert extract_with_timeout(quick, b"img", timeout=1.0) == vec(0.4)
    quick.close()


def test_local_extractor_finds_no_face_in_blank_image():
    pytest.importorskip("face_recognition")
    from PIL import Image
    from faceclock.services.extractor import LocalFaceExtractor

    buf = io.BytesIO()
    Image.new("RGB", (1024, 768), "white").save(buf, format="PNG")

    extractor = LocalFaceExtractor(model="hog", max_width=640)
    assert extractor.extract(buf.getvalue()) is None


def test_local_extractor_rejects_non_images():
    pytest.importorskip("face_recognition")
    from faceclock.services.extractor import LocalFaceExtractor

    with pytest.raises(InvalidImage):
        LocalFaceExtractor().extract(b"definitely not an image")
