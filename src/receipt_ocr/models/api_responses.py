from __future__ import annotations

from typing import Literal

from pydantic import Field

from receipt_ocr.models.common import StrictModel
from receipt_ocr.models.enums import ConfidenceTier, FieldType
from receipt_ocr.models.validation import ValidationResult
from receipt_ocr.models.version import SCHEMA_VERSION


class ValidateFieldResponse(StrictModel):
    """Validation feedback plus display helpers for one field."""

    schema_version: Literal["v1"] = SCHEMA_VERSION
    field_type: FieldType
    result: ValidationResult
    highlight: bool = False
    confidence_tier: ConfidenceTier | None = None
    format_examples: list[str] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)


class HealthResponse(StrictModel):
    """Liveness payload."""

    status: Literal["ok"] = "ok"
    ocr_configured: bool
