from __future__ import annotations

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import date

from receipt_ocr.confidence import overall_confidence, score_fields, tier_for
from receipt_ocr.contracts import ExtractedFields, RecognitionResult
from receipt_ocr.errors import RecognitionError
from receipt_ocr.models.common import ErrorInfo
from receipt_ocr.models.enums import (
    AnalysisOutcome,
    ConfidenceTier,
    ProcessingStatus,
    QualityRecommendation,
)
from receipt_ocr.models.performance import ProcessingSession
from receipt_ocr.models.pipeline import ReceiptProcessingResult
from receipt_ocr.models.quality import ImageQualityResult
from receipt_ocr.monitoring import (
    GlobalPerformanceStats,
    PerformanceMonitor,
    start_memory_tracing,
)
from receipt_ocr.preprocess import preprocess_image_bytes
from receipt_ocr.quality import analyze_image_quality
from receipt_ocr.services.ports import TextRecognizer
from receipt_ocr.settings import Settings
from receipt_ocr.spatial import SpatialExtractor
from receipt_ocr.validation import check_consistency, validate_extracted_fields

logger = logging.getLogger(__name__)

STEP_QUALITY = "quality-analysis"
STEP_PREPROCESS = "image-preprocessing"
STEP_VISION = "vision-api"
STEP_SPATIAL = "spatial-extraction"
STEP_SCORING = "confidence-scoring"
STEP_VALIDATION = "field-validation"


class ReceiptService:
    """Runs one receipt image through quality gate, OCR, extraction, scoring and validation."""

    def __init__(
        self,
        recognizer: TextRecognizer,
        *,
        settings: Settings | None = None,
        stats: GlobalPerformanceStats | None = None,
        extractor: SpatialExtractor | None = None,
        executor: ThreadPoolExecutor | None = None,
    ) -> None:
        self.recognizer = recognizer
        self.settings = settings or Settings()
        self.stats = stats or GlobalPerformanceStats()
        self.extractor = extractor or SpatialExtractor(
            min_token_confidence=self.settings.ocr_min_token_confidence,
            max_line_items=self.settings.max_line_items,
        )
        self._executor = executor or ThreadPoolExecutor(
            max_workers=self.settings.max_workers,
            thread_name_prefix="ocr",
        )
        if self.settings.trace_memory:
            start_memory_tracing()

    def close(self) -> None:
        """Release the OCR worker threads."""

        self._executor.shutdown(wait=False, cancel_futures=True)

    async def process_async(self, image_bytes: bytes, mime_type: str | None = None, **kwargs) -> ReceiptProcessingResult:
        """Run `process` in a worker thread so the event loop stays free."""

        return await asyncio.to_thread(self.process, image_bytes, mime_type, **kwargs)

    def process(
        self,
        image_bytes: bytes,
        mime_type: str | None = None,
        *,
        document_type: str = "receipt",
        force_ocr: bool = False,
        today: date | None = None,
    ) -> ReceiptProcessingResult:
        """
        Process one uploaded image end to end.

        Stage failures never escape: each is recorded as a failed step and an
        ErrorInfo, and the result comes back with status `partial`. A `retake`
        quality verdict stops before OCR unless `force_ocr` is set or the
        settings disable the gate.
        """

        monitor = PerformanceMonitor(image_quality=0.5, document_type=document_type)
        errors: list[ErrorInfo] = []

        quality = self._run_quality(monitor, image_bytes, mime_type)
        if self._should_stop_for_retake(quality, force_ocr):
            logger.info("Quality score %d: retake requested, OCR skipped", quality.score)
            session = self._finish(monitor, ConfidenceTier.POOR)
            return ReceiptProcessingResult(
                status=ProcessingStatus.RETAKE_REQUESTED,
                document_type=document_type,
                quality=quality,
                session=session,
            )

        upload, upload_mime = self._run_preprocess(monitor, image_bytes, mime_type, errors)
        recognition = self._run_recognition(monitor, upload, upload_mime, errors)

        fields: ExtractedFields | None = None
        if recognition is not None:
            fields = self._run_extraction(monitor, recognition, today, errors)

        overall = 0.0
        if fields is not None:
            fields, overall = self._run_scoring(monitor, fields, errors)

        validation = {}
        line_item_validation = []
        consistency = None
        if fields is not None:
            monitor.start_step(STEP_VALIDATION)
            try:
                validation, line_item_validation = validate_extracted_fields(fields, today=today)
                consistency = check_consistency(fields)
                monitor.end_step(True, confidence_score=consistency.confidence)
            except Exception as exc:
                logger.exception("Field validation failed")
                monitor.end_step(False, str(exc))
                errors.append(ErrorInfo(code="VALIDATION_ERROR", message=str(exc)))

        session = self._finish(monitor, tier_for(overall))
        status = ProcessingStatus.PARTIAL if errors or fields is None else ProcessingStatus.COMPLETED
        return ReceiptProcessingResult(
            status=status,
            document_type=document_type,
            quality=quality,
            extracted_fields=fields,
            overall_confidence=overall,
            validation=validation,
            line_item_validation=line_item_validation,
            consistency=consistency,
            session=session,
            errors=errors,
        )

    def _should_stop_for_retake(self, quality: ImageQualityResult, force_ocr: bool) -> bool:
        return (
            quality.recommendation == QualityRecommendation.RETAKE
            and self.settings.skip_ocr_on_retake
            and not force_ocr
        )

    def _run_quality(
        self,
        monitor: PerformanceMonitor,
        image_bytes: bytes,
        mime_type: str | None,
    ) -> ImageQualityResult:
        monitor.start_step(STEP_QUALITY)
        quality = analyze_image_quality(image_bytes, mime_type)
        monitor.set_image_quality(quality.normalized_score)
        monitor.end_step(
            quality.outcome == AnalysisOutcome.ANALYZED,
            quality.error,
            confidence_score=quality.normalized_score,
        )
        return quality

    def _run_preprocess(
        self,
        monitor: PerformanceMonitor,
        image_bytes: bytes,
        mime_type: str | None,
        errors: list[ErrorInfo],
    ) -> tuple[bytes, str]:
        """Preprocessed PNG, or the original upload when preprocessing fails."""

        monitor.start_step(STEP_PREPROCESS)
        try:
            prepared = preprocess_image_bytes(
                image_bytes,
                max_side=self.settings.preprocess_max_side,
                clahe=self.settings.preprocess_clahe,
            )
        except Exception as exc:
            logger.warning("Preprocessing failed, sending original image: %s", exc)
            monitor.end_step(False, str(exc))
            errors.append(ErrorInfo(code="PREPROCESSING_ERROR", message=str(exc)))
            return image_bytes, mime_type or "application/octet-stream"
        monitor.end_step(True)
        return prepared.content, prepared.mime_type

    def _run_recognition(
        self,
        monitor: PerformanceMonitor,
        content: bytes,
        mime_type: str,
        errors: list[ErrorInfo],
    ) -> RecognitionResult | None:
        """One bounded OCR call; a hung call is recorded as a `timeout` failure."""

        monitor.start_step(STEP_VISION)
        if not self.recognizer.configured:
            monitor.end_step(False, "OCR service not configured")
            errors.append(ErrorInfo(code="OCR_NOT_CONFIGURED", message="OCR service not configured"))
            return None

        timeout = self.settings.ocr_timeout_sec
        future = None
        try:
            future = self._executor.submit(self.recognizer.recognize, content, mime_type)
            recognition = future.result(timeout=timeout)
        except TimeoutError:
            if future is not None:
                future.cancel()
            logger.warning("OCR call exceeded %.1fs", timeout)
            monitor.end_step(False, "timeout")
            errors.append(
                ErrorInfo(code="OCR_TIMEOUT", message="timeout", details={"timeout_sec": timeout})
            )
            return None
        except RecognitionError as exc:
            logger.warning("OCR call failed: %s", exc)
            monitor.end_step(False, str(exc))
            errors.append(ErrorInfo(code="OCR_ERROR", message=str(exc)))
            return None
        except Exception as exc:
            logger.exception("Unexpected OCR adapter failure")
            monitor.end_step(False, str(exc))
            errors.append(ErrorInfo(code="OCR_ERROR", message=str(exc)))
            return None

        monitor.end_step(True, confidence_score=recognition.confidence)
        if not recognition.has_spatial_data:
            logger.info("Recognition returned text without positions; confidence will be reduced")
        return recognition

    def _run_extraction(
        self,
        monitor: PerformanceMonitor,
        recognition: RecognitionResult,
        today: date | None,
        errors: list[ErrorInfo],
    ) -> ExtractedFields | None:
        monitor.start_step(STEP_SPATIAL)
        try:
            fields = self.extractor.extract(recognition, today=today)
        except Exception as exc:
            logger.exception("Spatial extraction failed")
            monitor.end_step(False, str(exc))
            errors.append(ErrorInfo(code="EXTRACTION_ERROR", message=str(exc)))
            return None
        monitor.end_step(True)
        return fields

    def _run_scoring(
        self,
        monitor: PerformanceMonitor,
        fields: ExtractedFields,
        errors: list[ErrorInfo],
    ) -> tuple[ExtractedFields, float]:
        """Scored fields and their overall confidence; unscored fields score 0 on failure."""

        monitor.start_step(STEP_SCORING)
        try:
            scored = score_fields(fields)
            overall = overall_confidence(scored)
        except Exception as exc:
            logger.exception("Confidence scoring failed")
            monitor.end_step(False, str(exc))
            errors.append(ErrorInfo(code="SCORING_ERROR", message=str(exc)))
            monitor.set_vendor(fields.vendor.value)
            return fields, 0.0
        monitor.end_step(True, confidence_score=overall)
        monitor.set_vendor(scored.vendor.value)
        return scored, overall

    def _finish(self, monitor: PerformanceMonitor, tier: ConfidenceTier) -> ProcessingSession:
        session = monitor.finish_session(tier)
        monitor.log_summary(logging.DEBUG)
        self.stats.update(session)
        return session
