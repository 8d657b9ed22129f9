from __future__ import annotations

from enum import Enum


class QualityRecommendation(str, Enum):
    """Recommendation tier derived from the 0-100 image quality score."""

    EXCELLENT = "excellent"  # score >= 85
    GOOD = "good"  # score >= 70
    FAIR = "fair"  # score >= 50
    POOR = "poor"  # score >= 30
    RETAKE = "retake"  # below 30


class QualityIssueType(str, Enum):
    """Defect category reported by the image quality analyzer."""

    RESOLUTION = "resolution"
    FILE_SIZE = "fileSize"
    ASPECT_RATIO = "aspectRatio"
    LIGHTING = "lighting"
    BLUR = "blur"


class IssueSeverity(str, Enum):
    """Severity of one image quality issue."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class AnalysisOutcome(str, Enum):
    """Whether the analyzer inspected the pixels or fell back to a worst case."""

    ANALYZED = "analyzed"
    FAILED = "failed"


class ValidationSeverity(str, Enum):
    """Severity of one field validation finding."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class FieldType(str, Enum):
    """Field kinds understood by the validator."""

    VENDOR = "vendor"
    AMOUNT = "amount"
    DATE = "date"
    DESCRIPTION = "description"


class ConfidenceTier(str, Enum):
    """Display bucket for a [0, 1] confidence value."""

    EXCELLENT = "excellent"  # >= 0.9
    GOOD = "good"  # >= 0.7
    FAIR = "fair"  # >= 0.5
    POOR = "poor"  # below 0.5


class ProcessingStatus(str, Enum):
    """Overall outcome of one receipt pipeline run."""

    COMPLETED = "completed"  # OCR ran and fields were extracted.
    PARTIAL = "partial"  # A stage failed; some fields may be missing.
    RETAKE_REQUESTED = "retake_requested"  # Quality gate stopped before OCR.
