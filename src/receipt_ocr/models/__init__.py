"""Public model exports for API schema v1.

Pipeline composites live in `receipt_ocr.models.pipeline`; they depend on
`receipt_ocr.contracts`, which itself imports from this package.
"""

from receipt_ocr.models.api_requests import ValidateFieldRequest
from receipt_ocr.models.api_responses import HealthResponse, ValidateFieldResponse
from receipt_ocr.models.common import ErrorInfo
from receipt_ocr.models.enums import (
    AnalysisOutcome,
    ConfidenceTier,
    FieldType,
    IssueSeverity,
    ProcessingStatus,
    QualityIssueType,
    QualityRecommendation,
    ValidationSeverity,
)
from receipt_ocr.models.performance import (
    GlobalPerformanceReport,
    GlobalStatsSnapshot,
    PerformanceMetrics,
    ProcessingSession,
    ProcessingStep,
)
from receipt_ocr.models.quality import ImageQualityResult, QualityIssue
from receipt_ocr.models.validation import ValidationResult
from receipt_ocr.models.version import SCHEMA_VERSION

__all__ = [
    "AnalysisOutcome",
    "ConfidenceTier",
    "ErrorInfo",
    "FieldType",
    "GlobalPerformanceReport",
    "GlobalStatsSnapshot",
    "HealthResponse",
    "ImageQualityResult",
    "IssueSeverity",
    "PerformanceMetrics",
    "ProcessingSession",
    "ProcessingStatus",
    "ProcessingStep",
    "QualityIssue",
    "QualityIssueType",
    "QualityRecommendation",
    "SCHEMA_VERSION",
    "ValidateFieldRequest",
    "ValidateFieldResponse",
    "ValidationResult",
    "ValidationSeverity",
]
