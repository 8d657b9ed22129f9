from __future__ import annotations

from pydantic import model_validator

from receipt_ocr.models.common import FrozenModel
from receipt_ocr.models.enums import ValidationSeverity


class ValidationResult(FrozenModel):
    """Non-blocking feedback for one field value."""

    is_valid: bool
    severity: ValidationSeverity
    message: str
    suggestion: str | None = None
    format_example: str | None = None

    @model_validator(mode="after")
    def _error_implies_invalid(self) -> "ValidationResult":
        if self.severity == ValidationSeverity.ERROR and self.is_valid:
            raise ValueError("error severity requires is_valid=False")
        return self
