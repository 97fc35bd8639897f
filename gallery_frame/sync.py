from __future__ import annotations

import json
import logging
from typing import Iterable

from pydantic import TypeAdapter
from pydantic import ValidationError as SchemaError

from .errors import ValidationError
from .gallery import GalleryModel
from .models import ImageRecord

logger = logging.getLogger(__name__)

_DOCUMENT = TypeAdapter(list[ImageRecord])


def export_all(order: Iterable[ImageRecord]) -> str:
    return json.dumps([record.to_document() for record in order], indent=2)


def import_all(document: str | bytes) -> list[ImageRecord]:
    """Validate a whole export document; any bad element rejects all of it."""
    try:
        records = _DOCUMENT.validate_json(document)
    except SchemaError as exc:
        logger.warning("rejected import document: " + str(exc.error_count()) + " error(s)")
        raise ValidationError("import document failed validation: " + str(exc.errors()[0]["msg"])) from exc
    return records


async def restore(gallery: GalleryModel, document: str | bytes) -> list[ImageRecord]:
    records = import_all(document)
    await gallery.replace_all(records)
    return list(gallery.order)
