from __future__ import annotations

from pydantic import Field

from receipt_ocr.models.common import FrozenModel, StrictModel


class ConfidenceDistribution(FrozenModel):
    """Histogram of confidence tiers."""

    excellent: int = 0
    good: int = 0
    fair: int = 0
    poor: int = 0


class ErrorCounts(FrozenModel):
    """Failed step counts broken out by pipeline stage."""

    vision_api_errors: int = 0
    spatial_extraction_errors: int = 0
    validation_errors: int = 0
    preprocessing_errors: int = 0

    @property
    def total(self) -> int:
        return (
            self.vision_api_errors
            + self.spatial_extraction_errors
            + self.validation_errors
            + self.preprocessing_errors
        )


class PerformanceMetrics(FrozenModel):
    """Timings (milliseconds) and counters for one processing session."""

    processing_time: int = 0
    vision_api_time: int | None = None
    spatial_extraction_time: int | None = None
    validation_time: int | None = None
    image_preprocessing_time: int | None = None
    memory_usage: int | None = None
    confidence_distribution: ConfidenceDistribution = Field(default_factory=ConfidenceDistribution)
    error_counts: ErrorCounts = Field(default_factory=ErrorCounts)


class ProcessingStep(FrozenModel):
    """One named stage invocation inside a session."""

    name: str
    start_time: int
    end_time: int
    success: bool = True
    error_message: str | None = None
    confidence_score: float | None = None
    memory_used: int | None = None

    @property
    def duration(self) -> int:
        return self.end_time - self.start_time


class ProcessingSession(FrozenModel):
    """Finalized record of one end-to-end pipeline execution."""

    session_id: str
    start_time: int
    end_time: int
    image_quality: float = Field(ge=0.0, le=1.0)
    document_type: str
    vendor: str | None = None
    metrics: PerformanceMetrics
    processing_steps: tuple[ProcessingStep, ...] = ()


class ErrorRates(StrictModel):
    """Process-wide failed step totals per stage."""

    vision_api: int = 0
    spatial_extraction: int = 0
    validation: int = 0
    preprocessing: int = 0


class GlobalStatsSnapshot(StrictModel):
    """Point-in-time copy of the process-wide performance aggregate."""

    total_sessions: int = 0
    successful_sessions: int = 0
    average_processing_time: float = 0.0
    confidence_distribution: ConfidenceDistribution = Field(default_factory=ConfidenceDistribution)
    error_rates: ErrorRates = Field(default_factory=ErrorRates)


class GlobalPerformanceReport(StrictModel):
    """Human-oriented rendering of the aggregate for the stats endpoint."""

    total_sessions: int = 0
    successful_sessions: int = 0
    success_rate: str = "0.0%"
    average_processing_time: str = "0ms"
    confidence_breakdown: ConfidenceDistribution = Field(default_factory=ConfidenceDistribution)
    error_rates: ErrorRates = Field(default_factory=ErrorRates)
    message: str | None = None
