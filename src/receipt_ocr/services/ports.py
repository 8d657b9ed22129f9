from __future__ import annotations

from typing import Protocol

from receipt_ocr.contracts import RecognitionResult


class TextRecognizer(Protocol):
    """Contract for the external text recognition service."""

    name: str

    def recognize(self, image_bytes: bytes, mime_type: str = "image/png") -> RecognitionResult:
        """
        Run one recognition call over the image.

        Implementations perform exactly one attempt and raise RecognitionError
        on any service failure; retries belong to the caller.
        """

        ...

    @property
    def configured(self) -> bool:
        """Whether the recognizer can be called at all."""

        ...
