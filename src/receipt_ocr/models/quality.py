from __future__ import annotations

from typing import Annotated

from pydantic import Field

from receipt_ocr.models.common import FrozenModel
from receipt_ocr.models.enums import (
    AnalysisOutcome,
    IssueSeverity,
    QualityIssueType,
    QualityRecommendation,
)


class QualityIssue(FrozenModel):
    """One detected image defect."""

    type: QualityIssueType
    severity: IssueSeverity
    message: str


class ImageQualityResult(FrozenModel):
    """Outcome of analyzing one uploaded image for OCR fitness."""

    score: Annotated[int, Field(ge=0, le=100)]
    issues: tuple[QualityIssue, ...] = ()
    recommendation: QualityRecommendation
    suggestions: tuple[str, ...] = ()
    outcome: AnalysisOutcome = AnalysisOutcome.ANALYZED
    error: str | None = None
    width: int | None = None
    height: int | None = None
    file_size: int = 0

    @property
    def is_acceptable(self) -> bool:
        """True unless the analyzer recommends a retake."""

        return self.recommendation != QualityRecommendation.RETAKE

    @property
    def normalized_score(self) -> float:
        """Score mapped onto 0..1 for the performance session."""

        return self.score / 100.0
