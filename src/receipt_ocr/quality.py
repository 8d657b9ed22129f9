"""Image quality analysis: decide whether an upload is fit for OCR or needs a retake."""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass

import numpy as np
from PIL import Image

from receipt_ocr.errors import ImageDecodeError
from receipt_ocr.models.enums import (
    AnalysisOutcome,
    IssueSeverity,
    QualityIssueType,
    QualityRecommendation,
)
from receipt_ocr.models.quality import ImageQualityResult, QualityIssue

logger = logging.getLogger(__name__)

BYTES_PER_MB = 1024 * 1024
MIN_FILE_SIZE_MB = 0.1
MAX_FILE_SIZE_MB = 10.0
MIN_PIXELS = 100_000
LOW_PIXELS = 500_000
MAX_PIXELS = 8_000_000
MAX_ASPECT_RATIO = 3.0
MIN_ASPECT_RATIO = 0.2
SAMPLE_SIDE = 200
DARK_LUMINANCE = 60.0
BRIGHT_LUMINANCE = 220.0
MIN_CONTRAST_STD = 30.0

GENERIC_SUGGESTIONS = (
    "Ensure receipt is flat and well-lit",
    "Hold camera steady and focus on the text",
)

_TIER_LEAD = {
    QualityRecommendation.FAIR: "OCR may work but results might need verification",
    QualityRecommendation.POOR: "Consider retaking the photo for better results",
    QualityRecommendation.RETAKE: (
        "Please retake the photo - current quality is too low for accurate processing"
    ),
}


@dataclass
class DecodedImage:
    """RGB pixels plus the container format reported by Pillow."""

    rgb: Image.Image
    format: str | None

    @property
    def width(self) -> int:
        return self.rgb.width

    @property
    def height(self) -> int:
        return self.rgb.height

    @property
    def mime_type(self) -> str | None:
        if not self.format:
            return None
        return Image.MIME.get(self.format)


def decode_image(image_bytes: bytes) -> DecodedImage:
    """Decode bytes into RGB pixels; every decoder failure becomes ImageDecodeError."""

    if not image_bytes:
        raise ImageDecodeError("empty upload")
    try:
        with Image.open(io.BytesIO(image_bytes)) as img:
            img.load()
            fmt = img.format
            rgb = img.convert("RGB")
    except (OSError, ValueError, Image.DecompressionBombError) as exc:
        raise ImageDecodeError(f"could not decode image: {exc}") from exc
    return DecodedImage(rgb=rgb, format=fmt)


def recommendation_for_score(score: int) -> QualityRecommendation:
    """Map a 0-100 score onto its recommendation tier."""

    if score >= 85:
        return QualityRecommendation.EXCELLENT
    if score >= 70:
        return QualityRecommendation.GOOD
    if score >= 50:
        return QualityRecommendation.FAIR
    if score >= 30:
        return QualityRecommendation.POOR
    return QualityRecommendation.RETAKE


def luminance_stats(image: Image.Image, *, sample_side: int = SAMPLE_SIDE) -> tuple[float, float]:
    """
    Mean and standard deviation of luminance over a downsampled copy.

    The sample is at most `sample_side` pixels per axis. Nearest-neighbour
    resampling keeps the pixel distribution of the original instead of
    smoothing it, so contrast is not underestimated on large images.
    """

    size = (min(image.width, sample_side), min(image.height, sample_side))
    sample = image if size == image.size else image.resize(size, resample=Image.Resampling.NEAREST)
    arr = np.asarray(sample, dtype=np.float64)
    lum = arr[..., 0] * 0.299 + arr[..., 1] * 0.587 + arr[..., 2] * 0.114
    return float(lum.mean()), float(lum.std())


def failed_quality_result(error: str, *, file_size: int = 0) -> ImageQualityResult:
    """Worst-case result used when the image cannot be analyzed at all."""

    return ImageQualityResult(
        score=0,
        issues=(
            QualityIssue(
                type=QualityIssueType.BLUR,
                severity=IssueSeverity.HIGH,
                message="Could not analyze image quality",
            ),
        ),
        recommendation=QualityRecommendation.RETAKE,
        suggestions=("Please try uploading the image again",),
        outcome=AnalysisOutcome.FAILED,
        error=error,
        file_size=file_size,
    )


class _Accumulator:
    """Collects issues and penalties while the checks run."""

    def __init__(self) -> None:
        self.score = 100
        self.issues: list[QualityIssue] = []
        self.suggestions: list[str] = []

    def penalize(
        self,
        issue_type: QualityIssueType,
        severity: IssueSeverity,
        message: str,
        penalty: int,
        suggestion: str | None = None,
    ) -> None:
        self.issues.append(QualityIssue(type=issue_type, severity=severity, message=message))
        self.score -= penalty
        if suggestion:
            self.suggestions.append(suggestion)


def _check_file_size(acc: _Accumulator, size_bytes: int) -> None:
    size_mb = size_bytes / BYTES_PER_MB
    if size_mb < MIN_FILE_SIZE_MB:
        acc.penalize(
            QualityIssueType.FILE_SIZE,
            IssueSeverity.HIGH,
            "Image file is very small and may be low quality",
            30,
            "Try taking a higher quality photo",
        )
    elif size_mb > MAX_FILE_SIZE_MB:
        acc.penalize(
            QualityIssueType.FILE_SIZE,
            IssueSeverity.MEDIUM,
            "Image file is very large",
            10,
            "Consider compressing the image for faster upload",
        )


def _check_mime_type(acc: _Accumulator, mime_type: str | None) -> None:
    if not mime_type or not mime_type.lower().startswith("image/"):
        acc.penalize(
            QualityIssueType.RESOLUTION,
            IssueSeverity.HIGH,
            "File is not a valid image format",
            50,
        )


def _check_resolution(acc: _Accumulator, width: int, height: int) -> None:
    total_pixels = width * height
    if total_pixels < MIN_PIXELS:
        acc.penalize(
            QualityIssueType.RESOLUTION,
            IssueSeverity.HIGH,
            "Image resolution is too low for accurate text recognition",
            40,
            "Take a closer photo or use a higher resolution camera",
        )
    elif total_pixels < LOW_PIXELS:
        acc.penalize(
            QualityIssueType.RESOLUTION,
            IssueSeverity.MEDIUM,
            "Image resolution is low and may affect text recognition",
            20,
            "Try taking a closer photo for better text clarity",
        )
    elif total_pixels > MAX_PIXELS:
        acc.penalize(
            QualityIssueType.RESOLUTION,
            IssueSeverity.LOW,
            "Image resolution is very high",
            5,
            "Image will be processed but may take longer due to high resolution",
        )


def _check_aspect_ratio(acc: _Accumulator, width: int, height: int) -> None:
    ratio = width / height
    if ratio > MAX_ASPECT_RATIO or ratio < MIN_ASPECT_RATIO:
        acc.penalize(
            QualityIssueType.ASPECT_RATIO,
            IssueSeverity.MEDIUM,
            "Image aspect ratio is unusual for a receipt",
            15,
            "Make sure the entire receipt is visible and properly framed",
        )


def _check_lighting(acc: _Accumulator, image: Image.Image) -> None:
    mean, std = luminance_stats(image)
    if mean < DARK_LUMINANCE:
        acc.penalize(
            QualityIssueType.LIGHTING,
            IssueSeverity.HIGH,
            "Image appears too dark",
            25,
            "Try taking the photo in better lighting",
        )
    elif mean > BRIGHT_LUMINANCE:
        acc.penalize(
            QualityIssueType.LIGHTING,
            IssueSeverity.MEDIUM,
            "Image appears overexposed",
            20,
            "Reduce lighting or avoid direct flash",
        )
    if std < MIN_CONTRAST_STD:
        acc.penalize(
            QualityIssueType.LIGHTING,
            IssueSeverity.MEDIUM,
            "Image has low contrast",
            15,
            "Ensure good contrast between text and background",
        )


def analyze_image_quality(image_bytes: bytes, mime_type: str | None = None) -> ImageQualityResult:
    """
    Score an uploaded image for OCR fitness.

    Every check runs and penalties add up; there is no early exit. The
    function does not raise: bytes that cannot be decoded produce the
    `failed` worst-case result instead.

    Params:
    - image_bytes: raw upload content.
    - mime_type: declared MIME type; when omitted the decoded format is used.
    """

    try:
        decoded = decode_image(image_bytes)
    except ImageDecodeError as exc:
        logger.warning("Image quality analysis failed: %s", exc)
        return failed_quality_result(str(exc), file_size=len(image_bytes))

    acc = _Accumulator()
    _check_file_size(acc, len(image_bytes))
    _check_mime_type(acc, mime_type or decoded.mime_type)
    _check_resolution(acc, decoded.width, decoded.height)
    _check_aspect_ratio(acc, decoded.width, decoded.height)
    _check_lighting(acc, decoded.rgb)

    score = max(0, acc.score)
    recommendation = recommendation_for_score(score)
    suggestions = list(acc.suggestions)
    if score < 70 and not suggestions:
        suggestions.extend(GENERIC_SUGGESTIONS)
    lead = _TIER_LEAD.get(recommendation)
    if lead:
        suggestions.insert(0, lead)

    logger.debug(
        "Quality %s/100 (%s) for %dx%d image, %d issue(s)",
        score,
        recommendation.value,
        decoded.width,
        decoded.height,
        len(acc.issues),
    )
    return ImageQualityResult(
        score=score,
        issues=tuple(acc.issues),
        recommendation=recommendation,
        suggestions=tuple(suggestions),
        width=decoded.width,
        height=decoded.height,
        file_size=len(image_bytes),
    )
