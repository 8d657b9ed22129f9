"""Per-field confidence scoring and display tiers."""

from __future__ import annotations

from receipt_ocr.contracts import ExtractedFields, FieldCandidate
from receipt_ocr.models.enums import ConfidenceTier

# Contribution of each field group to the overall receipt confidence.
OVERALL_WEIGHTS = {
    "vendor": 0.25,
    "total": 0.35,
    "date": 0.15,
    "line_items": 0.25,
}


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def score(ocr_confidence: float, extraction_certainty: float) -> float:
    """
    Combine engine confidence with rule certainty into one [0, 1] value.

    Both inputs are clamped first; the product means a high OCR confidence
    cannot hide an ambiguous match, and vice versa.
    """

    return _clamp(_clamp(ocr_confidence) * _clamp(extraction_certainty))


def tier_for(confidence: float) -> ConfidenceTier:
    if confidence >= 0.9:
        return ConfidenceTier.EXCELLENT
    if confidence >= 0.7:
        return ConfidenceTier.GOOD
    if confidence >= 0.5:
        return ConfidenceTier.FAIR
    return ConfidenceTier.POOR


def format_confidence_percent(confidence: float | None) -> str:
    if confidence is None:
        return "n/a"
    return f"{round(_clamp(confidence) * 100)}%"


def score_field(candidate: FieldCandidate) -> FieldCandidate:
    """Return a copy of `candidate` with confidence and tier filled in."""

    if not candidate.found:
        return candidate.model_copy(update={"confidence": 0.0, "tier": ConfidenceTier.POOR})
    value = score(candidate.ocr_confidence, candidate.certainty)
    return candidate.model_copy(update={"confidence": value, "tier": tier_for(value)})


def score_fields(fields: ExtractedFields) -> ExtractedFields:
    """Score every scalar field; line item confidence is already per item."""

    updates = {candidate.name: score_field(candidate) for candidate in fields.scalar_fields()}
    return fields.model_copy(update=updates)


def overall_confidence(fields: ExtractedFields) -> float:
    """Weighted receipt-level confidence across vendor, total, date and line items."""

    combined = (
        fields.vendor.confidence * OVERALL_WEIGHTS["vendor"]
        + fields.total.confidence * OVERALL_WEIGHTS["total"]
        + fields.date.confidence * OVERALL_WEIGHTS["date"]
        + fields.line_items_confidence * OVERALL_WEIGHTS["line_items"]
    )
    return _clamp(combined)
