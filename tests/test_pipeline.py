from __future__ import annotations

import asyncio
import io
import threading
from datetime import date

import numpy as np
import pytest
from PIL import Image

from receipt_ocr.contracts import RecognitionResult
from receipt_ocr.errors import RecognitionError
from receipt_ocr.integrations.in_memory import (
    StaticRecognizer,
    UnconfiguredRecognizer,
    recognition_from_lines,
)
from receipt_ocr.models.enums import ProcessingStatus, QualityRecommendation
from receipt_ocr.models.pipeline import ReceiptProcessingResult
from receipt_ocr.monitoring import GlobalPerformanceStats
from receipt_ocr.services.receipt_service import (
    STEP_PREPROCESS,
    STEP_QUALITY,
    STEP_SCORING,
    STEP_SPATIAL,
    STEP_VALIDATION,
    STEP_VISION,
    ReceiptService,
)
from receipt_ocr.settings import Settings

TODAY = date(2024, 1, 20)


def _make_good_image() -> bytes:
    rng = np.random.default_rng(7)
    pixels = rng.integers(0, 256, size=(700, 800, 3), dtype=np.uint8)
    buf = io.BytesIO()
    Image.fromarray(pixels).save(buf, format="PNG")
    return buf.getvalue()


def _make_dark_image() -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (200, 150), (40, 40, 40)).save(buf, format="JPEG")
    return buf.getvalue()


def _make_recognition() -> RecognitionResult:
    return recognition_from_lines(
        [
            "TARGET",
            "DATE 01/15/2024",
            "PAPER TOWELS 8.49",
            "SOAP 3.50",
            "SUBTOTAL 11.99",
            "TAX 0.96",
            "TOTAL 12.95",
        ]
    )


class _BlockingRecognizer:
    """Recognizer that hangs until released, to exercise the OCR timeout."""

    name = "blocking"
    configured = True

    def __init__(self) -> None:
        self.release = threading.Event()

    def recognize(self, image_bytes: bytes, mime_type: str = "image/png") -> RecognitionResult:
        self.release.wait(5)
        return RecognitionResult()


def _make_service(recognizer, **settings) -> ReceiptService:
    return ReceiptService(recognizer, settings=Settings(**settings), stats=GlobalPerformanceStats())


def test_good_image_runs_every_stage() -> None:
    recognizer = StaticRecognizer(_make_recognition())
    service = _make_service(recognizer)
    try:
        result = service.process(_make_good_image(), "image/png", today=TODAY)
    finally:
        service.close()

    assert result.status == ProcessingStatus.COMPLETED
    assert result.quality.recommendation == QualityRecommendation.EXCELLENT
    assert recognizer.calls == 1
    fields = result.extracted_fields
    assert fields.vendor.value == "Target"
    assert fields.total.value == "12.95"
    assert fields.date.value == "2024-01-15"
    assert fields.total.confidence > 0
    assert 0 < result.overall_confidence <= 1
    assert set(result.validation) >= {"vendor", "date", "total", "subtotal", "tax"}
    assert len(result.line_item_validation) == len(fields.line_items) == 2
    assert result.consistency.valid
    assert result.errors == []
    assert [step.name for step in result.session.processing_steps] == [
        STEP_QUALITY,
        STEP_PREPROCESS,
        STEP_VISION,
        STEP_SPATIAL,
        STEP_SCORING,
        STEP_VALIDATION,
    ]
    assert result.session.vendor == "Target"
    assert service.stats.snapshot().total_sessions == 1
    assert service.stats.snapshot().successful_sessions == 1


def test_retake_skips_ocr() -> None:
    recognizer = StaticRecognizer(_make_recognition())
    service = _make_service(recognizer)
    try:
        result = service.process(_make_dark_image(), "image/jpeg", today=TODAY)
    finally:
        service.close()

    assert result.status == ProcessingStatus.RETAKE_REQUESTED
    assert result.quality.recommendation == QualityRecommendation.RETAKE
    assert recognizer.calls == 0
    assert result.extracted_fields is None
    assert [step.name for step in result.session.processing_steps] == [STEP_QUALITY]
    assert result.session.metrics.confidence_distribution.poor == 1


def test_force_ocr_overrides_retake() -> None:
    recognizer = StaticRecognizer(_make_recognition())
    service = _make_service(recognizer)
    try:
        result = service.process(_make_dark_image(), "image/jpeg", force_ocr=True, today=TODAY)
    finally:
        service.close()

    assert recognizer.calls == 1
    assert result.status == ProcessingStatus.COMPLETED
    assert result.extracted_fields.total.value == "12.95"


def test_gate_can_be_disabled_by_settings() -> None:
    recognizer = StaticRecognizer(_make_recognition())
    service = _make_service(recognizer, skip_ocr_on_retake=False)
    try:
        service.process(_make_dark_image(), "image/jpeg", today=TODAY)
    finally:
        service.close()

    assert recognizer.calls == 1


def test_recognition_error_is_recorded() -> None:
    service = _make_service(StaticRecognizer(error=RecognitionError("quota exceeded")))
    try:
        result = service.process(_make_good_image(), "image/png", today=TODAY)
    finally:
        service.close()

    assert result.status == ProcessingStatus.PARTIAL
    assert result.extracted_fields is None
    assert result.errors[0].code == "OCR_ERROR"
    assert "quota" in result.errors[0].message
    assert result.session.metrics.error_counts.vision_api_errors == 1
    assert service.stats.snapshot().error_rates.vision_api == 1
    assert service.stats.snapshot().successful_sessions == 0


def test_hung_ocr_call_times_out() -> None:
    recognizer = _BlockingRecognizer()
    service = _make_service(recognizer, ocr_timeout_sec=0.2)
    try:
        result = service.process(_make_good_image(), "image/png", today=TODAY)
    finally:
        recognizer.release.set()
        service.close()

    assert result.status == ProcessingStatus.PARTIAL
    assert result.errors[0].code == "OCR_TIMEOUT"
    vision = [s for s in result.session.processing_steps if s.name == STEP_VISION][0]
    assert not vision.success
    assert vision.error_message == "timeout"


def test_unconfigured_recognizer() -> None:
    service = _make_service(UnconfiguredRecognizer())
    try:
        result = service.process(_make_good_image(), "image/png", today=TODAY)
    finally:
        service.close()

    assert result.status == ProcessingStatus.PARTIAL
    assert result.errors[0].code == "OCR_NOT_CONFIGURED"


def test_process_async_matches_sync() -> None:
    recognizer = StaticRecognizer(_make_recognition())
    service = _make_service(recognizer)
    try:
        result = asyncio.run(
            service.process_async(_make_good_image(), "image/png", document_type="invoice", today=TODAY)
        )
    finally:
        service.close()

    assert result.status == ProcessingStatus.COMPLETED
    assert result.document_type == "invoice"
    assert result.session.document_type == "invoice"


def test_closed_service_records_failed_ocr_step() -> None:
    recognizer = StaticRecognizer(_make_recognition())
    service = _make_service(recognizer)
    service.close()

    result = service.process(_make_good_image(), "image/png", today=TODAY)

    assert result.status == ProcessingStatus.PARTIAL
    assert recognizer.calls == 0
    assert result.errors[0].code == "OCR_ERROR"
    vision = [s for s in result.session.processing_steps if s.name == STEP_VISION][0]
    assert not vision.success
    assert result.session.metrics.error_counts.vision_api_errors == 1


def test_scoring_failure_is_recorded(monkeypatch: pytest.MonkeyPatch) -> None:
    def broken_scoring(fields):
        raise ValueError("weights missing")

    monkeypatch.setattr("receipt_ocr.services.receipt_service.score_fields", broken_scoring)
    service = _make_service(StaticRecognizer(_make_recognition()))
    try:
        result = service.process(_make_good_image(), "image/png", today=TODAY)
    finally:
        service.close()

    assert result.status == ProcessingStatus.PARTIAL
    assert [e.code for e in result.errors] == ["SCORING_ERROR"]
    assert result.overall_confidence == 0.0
    assert result.extracted_fields.total.value == "12.95"
    assert result.consistency is not None
    scoring = [s for s in result.session.processing_steps if s.name == STEP_SCORING][0]
    assert not scoring.success
    assert scoring.error_message == "weights missing"
    assert result.session.vendor == "Target"


def test_session_records_memory_and_result_reloads() -> None:
    service = _make_service(StaticRecognizer(_make_recognition()))
    try:
        result = service.process(_make_good_image(), "image/png", today=TODAY)
    finally:
        service.close()

    assert result.session.metrics.memory_usage is not None
    assert all(step.memory_used is not None for step in result.session.processing_steps)

    restored = ReceiptProcessingResult.model_validate_json(result.model_dump_json())
    assert restored == result
