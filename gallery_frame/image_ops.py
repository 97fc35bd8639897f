from __future__ import annotations

import base64
import binascii
import logging
import threading
import time
from io import BytesIO
from typing import Callable

from PIL import Image, ImageOps

from .config import DATA_URI_PREFIX, TARGET_HEIGHT, TARGET_WIDTH
from .errors import DecodeError
from .models import ImageRecord

logger = logging.getLogger(__name__)


def _now_millis() -> int:
    return time.time_ns() // 1_000_000


class IdClock:
    """Hands out millisecond timestamps as record ids.

    Two ids requested within the same millisecond are split by bumping the
    later one forward, so ids from one clock are strictly increasing.
    """

    def __init__(self, now: Callable[[], int] = _now_millis) -> None:
        self._now = now
        self._last = 0
        self._lock = threading.Lock()

    def next_id(self) -> int:
        with self._lock:
            candidate = max(self._now(), self._last + 1)
            self._last = candidate
            return candidate

    def observe(self, existing_id: int) -> None:
        with self._lock:
            self._last = max(self._last, existing_id)


def _open_source(payload: bytes) -> Image.Image:
    try:
        image = Image.open(BytesIO(payload))
        image.load()
    except (OSError, ValueError, SyntaxError, Image.DecompressionBombError) as exc:
        raise DecodeError("source bytes are not a decodable image") from exc
    return image


def _stretch_to_target(image: Image.Image, target_w: int, target_h: int) -> Image.Image:
    # Fills the whole canvas; the source aspect ratio is not kept.
    return image.resize((target_w, target_h), Image.Resampling.LANCZOS)


def encode_canvas(canvas: Image.Image) -> str:
    buffer = BytesIO()
    canvas.save(buffer, format="WEBP", lossless=True, quality=100)
    return DATA_URI_PREFIX + base64.b64encode(buffer.getvalue()).decode("ascii")


def normalize(payload: bytes, clock: IdClock | None = None) -> ImageRecord:
    """Turn an uploaded or pasted image into a canonical 720x1280 record.

    Raises DecodeError when ``payload`` is not an image Pillow can read.
    """
    image = _open_source(payload)
    with image:
        src_w, src_h = image.size
        try:
            oriented = ImageOps.exif_transpose(image)
            canvas = _stretch_to_target(oriented.convert("RGBA"), TARGET_WIDTH, TARGET_HEIGHT)
        except (OSError, ValueError) as exc:
            raise DecodeError("source image could not be rendered") from exc

    encoded = encode_canvas(canvas)
    record_id = (clock or _default_clock).next_id()
    logger.info(
        "normalized " + str(src_w) + "x" + str(src_h) + " source into image " + str(record_id)
        + " (" + str(len(encoded)) + " chars)"
    )
    return ImageRecord(id=record_id, encodedImage=encoded)


def decode_record(record: ImageRecord) -> Image.Image:
    payload = record.encoded_image[len(DATA_URI_PREFIX):]
    try:
        raw = base64.b64decode(payload, validate=True)
    except binascii.Error as exc:
        raise DecodeError("image " + str(record.id) + " does not carry valid base64") from exc
    image = _open_source(raw)
    return image


_default_clock = IdClock()
