# imagelabel/errors.py

from __future__ import annotations


class ImageLabelError(Exception):
    """Base class for all errors raised by imagelabel."""


class InvalidInputError(ImageLabelError, ValueError):
    """Probability vector or label list is empty, malformed or misaligned."""


class ShapeMismatchError(ImageLabelError, ValueError):
    """Inference output does not have the expected [1, N] shape."""


class ImageDecodeError(ImageLabelError, ValueError):
    """Image bytes could not be decoded as a JPEG."""


class LoadError(ImageLabelError, OSError):
    """A model, label or image file could not be read."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"Failed to read [{path}]: {reason}")
        self.path = path
        self.reason = reason
