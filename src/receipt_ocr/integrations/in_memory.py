from __future__ import annotations

import json
from pathlib import Path
from typing import Iterable, Sequence

from receipt_ocr.contracts import BoundingBox, RecognitionResult, Token
from receipt_ocr.errors import RecognitionError


class StaticRecognizer:
    """Recognizer that replays a prepared result; used offline and in tests."""

    name = "static"

    def __init__(self, result: RecognitionResult | None = None, *, error: Exception | None = None) -> None:
        """Return `result` on every call, or raise `error` when given."""

        self.result = result or RecognitionResult(engine=self.name)
        self.error = error
        self.calls = 0

    @property
    def configured(self) -> bool:
        return True

    def recognize(self, image_bytes: bytes, mime_type: str = "image/png") -> RecognitionResult:
        """Return the prepared result."""

        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.result


class UnconfiguredRecognizer:
    """Placeholder used when no OCR credentials are available."""

    name = "unconfigured"

    @property
    def configured(self) -> bool:
        return False

    def recognize(self, image_bytes: bytes, mime_type: str = "image/png") -> RecognitionResult:
        raise RecognitionError("OCR service not configured")


def recognition_from_lines(
    lines: Sequence[str | Iterable[tuple[str, float]]],
    *,
    line_height: float = 24.0,
    line_pitch: float = 40.0,
    char_width: float = 12.0,
    confidence: float = 0.95,
    engine: str = "static",
) -> RecognitionResult:
    """
    Lay out text lines on a simple grid and return them as positioned tokens.

    A line is either a string (words placed by character offset) or a
    sequence of `(word, confidence)` pairs.
    """

    tokens: list[Token] = []
    texts: list[str] = []
    for row, line in enumerate(lines):
        words = [(w, confidence) for w in line.split()] if isinstance(line, str) else list(line)
        texts.append(" ".join(w for w, _ in words))
        x = 0.0
        for word, conf in words:
            width = len(word) * char_width
            tokens.append(
                Token(
                    text=word,
                    confidence=conf,
                    bbox=BoundingBox(x=x, y=row * line_pitch, width=width, height=line_height),
                )
            )
            x += width + char_width
    return RecognitionResult(
        text="\n".join(texts),
        tokens=tokens,
        page_width=max((t.bbox.right for t in tokens), default=0.0) or None,
        page_height=len(texts) * line_pitch or None,
        engine=engine,
    )


def save_recognition(result: RecognitionResult, path: Path) -> Path:
    """Write a recognition result as JSON so it can be replayed later."""

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(result.model_dump(), ensure_ascii=False, indent=2), encoding="utf-8")
    return path


def load_recognition(path: Path) -> RecognitionResult:
    """Load a recognition result saved by `save_recognition`."""

    return RecognitionResult.model_validate_json(path.read_text(encoding="utf-8"))
