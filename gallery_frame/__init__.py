"""Rotating photo-frame gallery: image store, normalizer and rotation scheduler."""
