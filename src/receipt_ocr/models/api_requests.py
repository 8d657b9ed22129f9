from __future__ import annotations

from typing import Annotated

from pydantic import Field

from receipt_ocr.models.common import StrictModel
from receipt_ocr.models.enums import FieldType


class ValidateFieldRequest(StrictModel):
    """Request payload for validating one user-edited field value."""

    field_type: FieldType
    value: str | float | None = None
    confidence: Annotated[float | None, Field(ge=0.0, le=1.0)] = None
