"""
Shared fixtures for the gallery-frame tests.

Provides temporary state files, record factories and small in-memory
source images.
"""

from io import BytesIO

import pytest
from PIL import Image

from gallery_frame.config import DATA_URI_PREFIX
from gallery_frame.models import ImageRecord


@pytest.fixture
def state_file(tmp_path):
    """Path to a not-yet-created gallery state file inside a temp dir."""
    return tmp_path / "data" / "gallery.json"


@pytest.fixture
def make_record():
    """Factory for records with a syntactically valid data URI payload."""

    def _make(image_id, payload="AAAA"):
        return ImageRecord(id=image_id, encodedImage=DATA_URI_PREFIX + payload)

    return _make


@pytest.fixture
def image_bytes():
    """Factory for encoded source images."""

    def _make(width=100, height=50, color=(255, 0, 0), mode="RGB", fmt="PNG"):
        buffer = BytesIO()
        Image.new(mode, (width, height), color).save(buffer, format=fmt)
        return buffer.getvalue()

    return _make
