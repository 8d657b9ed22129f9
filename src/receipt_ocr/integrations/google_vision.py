"""Google Cloud Vision `images:annotate` client returning positioned tokens."""

from __future__ import annotations

import base64
import logging
import time
from typing import Any, Dict, List, Optional

import requests

from receipt_ocr.contracts import BoundingBox, RecognitionResult, Token
from receipt_ocr.errors import RecognitionError
from receipt_ocr.settings import DEFAULT_VISION_ENDPOINT

logger = logging.getLogger(__name__)

# textAnnotations carry no per-word confidence.
DEFAULT_WORD_CONFIDENCE = 0.75


def _bbox_from_vertices(vertices: List[Dict[str, Any]]) -> Optional[BoundingBox]:
    xs = [float(v.get("x", 0)) for v in vertices]
    ys = [float(v.get("y", 0)) for v in vertices]
    if not xs or not ys:
        return None
    return BoundingBox(x=min(xs), y=min(ys), width=max(xs) - min(xs), height=max(ys) - min(ys))


def _clamp_confidence(value: Any, default: float) -> float:
    try:
        conf = float(value)
    except (TypeError, ValueError):
        return default
    return max(0.0, min(1.0, conf))


def parse_full_text_annotation(annotation: Dict[str, Any]) -> RecognitionResult:
    """Flatten pages -> blocks -> paragraphs -> words into tokens."""

    tokens: List[Token] = []
    page_width: Optional[float] = None
    page_height: Optional[float] = None
    confidences: List[float] = []
    for page_no, page in enumerate(annotation.get("pages") or [], start=1):
        if page_width is None:
            page_width = float(page.get("width") or 0) or None
            page_height = float(page.get("height") or 0) or None
        for block in page.get("blocks") or []:
            for paragraph in block.get("paragraphs") or []:
                for word in paragraph.get("words") or []:
                    text = "".join(s.get("text", "") for s in word.get("symbols") or [])
                    bbox = _bbox_from_vertices((word.get("boundingBox") or {}).get("vertices") or [])
                    if not text or bbox is None:
                        continue
                    conf = _clamp_confidence(word.get("confidence"), DEFAULT_WORD_CONFIDENCE)
                    confidences.append(conf)
                    tokens.append(Token(text=text, confidence=conf, page_no=page_no, bbox=bbox))
    return RecognitionResult(
        text=annotation.get("text") or "",
        tokens=tokens,
        page_width=page_width,
        page_height=page_height,
        confidence=sum(confidences) / len(confidences) if confidences else None,
        engine="google-vision",
    )


def parse_text_annotations(annotations: List[Dict[str, Any]]) -> RecognitionResult:
    """Fallback parser: first entry is the full text, the rest are words."""

    if not annotations:
        return RecognitionResult(engine="google-vision")
    tokens: List[Token] = []
    for entry in annotations[1:]:
        text = entry.get("description") or ""
        bbox = _bbox_from_vertices((entry.get("boundingPoly") or {}).get("vertices") or [])
        if text and bbox is not None:
            tokens.append(Token(text=text, confidence=DEFAULT_WORD_CONFIDENCE, bbox=bbox))
    return RecognitionResult(
        text=annotations[0].get("description") or "",
        tokens=tokens,
        confidence=DEFAULT_WORD_CONFIDENCE if tokens else None,
        engine="google-vision",
    )


def parse_annotate_response(payload: Dict[str, Any]) -> RecognitionResult:
    """Turn one `images:annotate` JSON body into a RecognitionResult."""

    responses = payload.get("responses")
    if not isinstance(responses, list) or not responses:
        raise RecognitionError("Vision API returned no responses")
    first = responses[0] or {}
    error = first.get("error")
    if error:
        raise RecognitionError(f"Vision API error: {error.get('message') or error}")
    full = first.get("fullTextAnnotation")
    if full:
        result = parse_full_text_annotation(full)
        if result.tokens or result.text:
            return result
    return parse_text_annotations(first.get("textAnnotations") or [])


class GoogleVisionRecognizer:
    """DOCUMENT_TEXT_DETECTION over the REST endpoint, authenticated by API key."""

    name = "google-vision"

    def __init__(
        self,
        api_key: str,
        *,
        endpoint: str = DEFAULT_VISION_ENDPOINT,
        timeout: float = 30.0,
        session: requests.Session | None = None,
    ) -> None:
        self.api_key = api_key
        self.endpoint = endpoint
        self.timeout = timeout
        self._session = session or requests.Session()

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def build_request(self, image_bytes: bytes) -> Dict[str, Any]:
        return {
            "requests": [
                {
                    "image": {"content": base64.b64encode(image_bytes).decode("utf-8")},
                    "features": [{"type": "DOCUMENT_TEXT_DETECTION", "maxResults": 1}],
                    "imageContext": {"languageHints": ["en"]},
                }
            ]
        }

    def recognize(self, image_bytes: bytes, mime_type: str = "image/png") -> RecognitionResult:
        if not self.configured:
            raise RecognitionError("OCR service not configured")
        start = time.perf_counter()
        try:
            resp = self._session.post(
                self.endpoint,
                params={"key": self.api_key},
                json=self.build_request(image_bytes),
                timeout=self.timeout,
            )
            resp.raise_for_status()
            payload = resp.json()
        except requests.Timeout as exc:
            raise RecognitionError("timeout") from exc
        except requests.RequestException as exc:
            raise RecognitionError(f"Vision API request failed: {exc}") from exc
        except ValueError as exc:
            raise RecognitionError("Vision API returned invalid JSON") from exc
        result = parse_annotate_response(payload)
        logger.info(
            "Vision API returned %d token(s) in %.2fs",
            len(result.tokens),
            time.perf_counter() - start,
        )
        return result
