from __future__ import annotations


class ReceiptOcrError(Exception):
    """Base class for errors raised by the receipt pipeline."""


class RecognitionError(ReceiptOcrError):
    """The external text recognition service failed or returned garbage."""


class ImageDecodeError(ReceiptOcrError):
    """Uploaded bytes could not be decoded as an image."""
