from __future__ import annotations

from pydantic import Field

from receipt_ocr.contracts import ExtractedFields
from receipt_ocr.models.common import ErrorInfo, FrozenModel, StrictModel
from receipt_ocr.models.enums import ProcessingStatus, ValidationSeverity
from receipt_ocr.models.performance import ProcessingSession
from receipt_ocr.models.quality import ImageQualityResult
from receipt_ocr.models.validation import ValidationResult


class ConsistencyIssue(FrozenModel):
    """Cross-field finding, e.g. a total that disagrees with subtotal + tax."""

    check: str
    field: str
    severity: ValidationSeverity
    message: str
    current_value: float | None = None
    suggested_value: float | None = None


class ConsistencyReport(FrozenModel):
    """Receipt-level arithmetic checks over the extracted amounts."""

    valid: bool = True
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    issues: tuple[ConsistencyIssue, ...] = ()


class ReceiptProcessingResult(StrictModel):
    """Composite output of one receipt pipeline run, ready for human review."""

    status: ProcessingStatus
    document_type: str = "receipt"
    quality: ImageQualityResult
    extracted_fields: ExtractedFields | None = None
    overall_confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    validation: dict[str, ValidationResult] = Field(default_factory=dict)
    line_item_validation: list[ValidationResult] = Field(default_factory=list)
    consistency: ConsistencyReport | None = None
    session: ProcessingSession
    errors: list[ErrorInfo] = Field(default_factory=list)
