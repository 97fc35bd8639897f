from __future__ import annotations


class GalleryError(Exception):
    """Base class for every failure surfaced by the gallery core."""


class DecodeError(GalleryError):
    """Source bytes could not be decoded as an image."""


class ValidationError(GalleryError):
    """An import document failed the schema check."""


class StorageError(GalleryError):
    """Opening, reading or writing the durable store failed."""
