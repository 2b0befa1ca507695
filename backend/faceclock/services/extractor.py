"""Face descriptor extraction: the model behind an interface.

An Extractor turns image bytes into a fixed-length descriptor, or returns None
when no face is found. Anything else (model crash, remote API down) is an
ExtractionError; a call that runs past its deadline is an ExtractionTimeout.

Extractors are built once at startup by `build_extractor()` and warmed up
explicitly. Loading dlib weights on first use takes a few seconds, so
`warm_up()` runs a detection on a blank frame before the first real scan.
"""
import base64
import binascii
import io
import logging
import re
import threading
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from typing import List, Optional, Union

import httpx
import numpy as np
from PIL import Image

from faceclock.core.config import Settings

logger = logging.getLogger(__name__)

DATA_URL_RE = re.compile(r"^data:([A-Za-z-+/]+);base64,(.+)$", re.DOTALL)


class ExtractionError(Exception):
    """The extractor failed for a reason other than 'no face found'."""


class ExtractionTimeout(ExtractionError):
    """The extractor did not answer within the configured deadline."""


class InvalidImage(ExtractionError):
    """The bytes could not be read as an image."""


def decode_image(payload: Union[str, bytes]) -> bytes:
    """Decode a base64 image, with or without a `data:<mime>;base64,` prefix."""
    if isinstance(payload, bytes):
        return payload
    payload = payload.strip()
    matches = DATA_URL_RE.match(payload)
    data = matches.group(2) if matches else payload
    try:
        return base64.b64decode(data, validate=False)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"Image is not valid base64: {e}")


class Extractor:
    """Capability interface: image bytes -> descriptor or None."""

    name = "base"
    # Upper bound on worker threads, including ones stuck on timed-out calls.
    max_workers = 2

    _pool: Optional[ThreadPoolExecutor] = None
    _pool_lock = threading.Lock()

    def warm_up(self) -> None:
        """Pay one-time initialization cost up front. Optional."""

    def extract(self, image: bytes) -> Optional[List[float]]:
        raise NotImplementedError

    def submit(self, image: bytes):
        """Schedule `extract` on this extractor's shared worker pool."""
        with self._pool_lock:
            if self._pool is None:
                self._pool = ThreadPoolExecutor(
                    max_workers=self.max_workers,
                    thread_name_prefix=f"extract-{self.name}",
                )
            return self._pool.submit(self.extract, image)

    def close(self) -> None:
        with self._pool_lock:
            pool, self._pool = self._pool, None
        if pool is not None:
            pool.shutdown(wait=False, cancel_futures=True)


class LocalFaceExtractor(Extractor):
    """dlib-based extractor using the `face_recognition` package (128-d)."""

    name = "local"

    def __init__(self, model: str = "hog", max_width: int = 640):
        import face_recognition

        self._fr = face_recognition
        self.model = model
        self.max_width = max_width

    def warm_up(self) -> None:
        blank = np.zeros((64, 64, 3), dtype=np.uint8)
        self._fr.face_locations(blank, model=self.model)
        logger.info(f"Local face model ready (detector={self.model})")

    def _load(self, image: bytes) -> np.ndarray:
        img = Image.open(io.BytesIO(image)).convert("RGB")
        if img.width > self.max_width:
            scale = self.max_width / img.width
            new_size = (self.max_width, max(1, int(img.height * scale)))
            logger.debug(f"Image resized from {img.width}x{img.height} to {new_size[0]}x{new_size[1]}")
            img = img.resize(new_size)
        return np.asarray(img)

    def extract(self, image: bytes) -> Optional[List[float]]:
        try:
            pixels = self._load(image)
        except Exception as e:
            raise InvalidImage(f"Could not read image: {e}") from e

        try:
            locations = self._fr.face_locations(pixels, model=self.model)
            if not locations:
                return None
            if len(locations) > 1:
                logger.warning(f"Multiple faces found ({len(locations)}), using first one")
            encodings = self._fr.face_encodings(pixels, known_face_locations=locations[:1])
        except Exception as e:
            raise ExtractionError(f"Face model failed: {e}") from e

        if not encodings:
            return None
        return [float(x) for x in encodings[0]]


class RemoteExtractor(Extractor):
    """Extractor backed by an HTTP embedding service.

    POSTs `{"image": <base64>}` and expects `{"descriptor": [...]}`, with a
    null or missing descriptor meaning no face was found.
    """

    name = "remote"

    def __init__(
        self,
        url: str,
        api_key: Optional[str] = None,
        timeout: float = 15.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        if not url:
            raise ValueError("REMOTE_EXTRACTOR_URL not configured.")
        headers = {"content-type": "application/json"}
        if api_key:
            headers["authorization"] = f"Bearer {api_key}"
        self.url = url
        self.client = httpx.Client(timeout=timeout, headers=headers, transport=transport)

    def extract(self, image: bytes) -> Optional[List[float]]:
        payload = {"image": base64.standard_b64encode(image).decode("utf-8")}
        try:
            response = self.client.post(self.url, json=payload)
        except httpx.TimeoutException as e:
            raise ExtractionTimeout(f"Extractor API timed out: {e}") from e
        except httpx.HTTPError as e:
            raise ExtractionError(f"Extractor API unreachable: {e}") from e

        if response.status_code != 200:
            raise ExtractionError(f"Extractor API error ({response.status_code}): {response.text[:300]}")

        try:
            descriptor = response.json().get("descriptor")
        except ValueError as e:
            raise ExtractionError(f"Extractor API returned invalid JSON: {e}") from e

        if not descriptor:
            return None
        return [float(x) for x in descriptor]

    def close(self) -> None:
        super().close()
        self.client.close()


def build_extractor(settings: Settings) -> Extractor:
    """Construct the extractor selected by EXTRACTOR_BACKEND."""
    backend = settings.EXTRACTOR_BACKEND.lower()
    if backend == "local":
        return LocalFaceExtractor(
            model=settings.FACE_DETECTION_MODEL,
            max_width=settings.MAX_IMAGE_WIDTH,
        )
    if backend == "remote":
        return RemoteExtractor(
            url=settings.REMOTE_EXTRACTOR_URL,
            api_key=settings.REMOTE_EXTRACTOR_API_KEY,
            timeout=settings.EXTRACTION_TIMEOUT_SECONDS,
        )
    raise ValueError(f"Unknown EXTRACTOR_BACKEND: {settings.EXTRACTOR_BACKEND}")


def extract_with_timeout(extractor: Extractor, image: bytes, timeout: float) -> Optional[List[float]]:
    """Run `extractor.extract` on its worker pool, giving up after `timeout` seconds.

    A timed-out call that already started is abandoned: the worker finishes in
    the background and its result is discarded. One still queued is cancelled.
    """
    future = extractor.submit(image)
    try:
        return future.result(timeout=timeout)
    except FutureTimeout:
        future.cancel()
        raise ExtractionTimeout(f"Descriptor extraction exceeded {timeout:.1f}s")
