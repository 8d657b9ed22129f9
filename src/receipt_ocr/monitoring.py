"""
Per-request performance monitoring and the process-wide aggregate.

`PerformanceMonitor` is request scoped and not thread safe. `GlobalPerformanceStats`
is shared across requests and serializes every update behind a lock.
"""

from __future__ import annotations

import logging
import threading
import time
import tracemalloc
import uuid
from dataclasses import dataclass, field

from receipt_ocr.models.enums import ConfidenceTier
from receipt_ocr.models.performance import (
    ConfidenceDistribution,
    ErrorCounts,
    ErrorRates,
    GlobalPerformanceReport,
    GlobalStatsSnapshot,
    PerformanceMetrics,
    ProcessingSession,
    ProcessingStep,
)

logger = logging.getLogger(__name__)

# Step-name substring -> ErrorCounts field; the first match wins.
_ERROR_BUCKETS = (
    ("vision", "vision_api_errors"),
    ("spatial", "spatial_extraction_errors"),
    ("validation", "validation_errors"),
    ("preprocessing", "preprocessing_errors"),
)

# Step-name substring -> PerformanceMetrics timing field.
_TIMING_FIELDS = (
    ("vision", "vision_api_time"),
    ("spatial", "spatial_extraction_time"),
    ("validation", "validation_time"),
    ("preprocessing", "image_preprocessing_time"),
)


def now_ms() -> int:
    return int(time.time() * 1000)


def start_memory_tracing() -> None:
    """Turn on tracemalloc so steps and sessions carry memory snapshots."""

    if not tracemalloc.is_tracing():
        tracemalloc.start()


def memory_snapshot() -> int | None:
    """Bytes currently traced by tracemalloc, or None when tracing is off."""

    if not tracemalloc.is_tracing():
        return None
    current, _peak = tracemalloc.get_traced_memory()
    return current


@dataclass
class _OpenStep:
    name: str
    start_time: int


@dataclass
class _Counters:
    confidence: dict[str, int] = field(
        default_factory=lambda: {tier.value: 0 for tier in ConfidenceTier}
    )
    errors: dict[str, int] = field(
        default_factory=lambda: {name: 0 for _, name in _ERROR_BUCKETS}
    )
    timings: dict[str, int] = field(default_factory=dict)


class PerformanceMonitor:
    """Times the named stages of one pipeline run and builds its session record."""

    def __init__(self, image_quality: float = 0.5, document_type: str = "receipt") -> None:
        self.session_id = str(uuid.uuid4())
        self.start_time = now_ms()
        self.image_quality = max(0.0, min(1.0, image_quality))
        self.document_type = document_type
        self.vendor: str | None = None
        self._steps: list[ProcessingStep] = []
        self._current: _OpenStep | None = None
        self._counters = _Counters()
        self._session: ProcessingSession | None = None

    @property
    def finished(self) -> bool:
        return self._session is not None

    @property
    def current_step(self) -> str | None:
        return self._current.name if self._current else None

    @property
    def steps(self) -> tuple[ProcessingStep, ...]:
        return tuple(self._steps)

    def start_step(self, name: str) -> None:
        """Open a step, auto-closing any step still open as successful."""

        self._close_open_step()
        self._current = _OpenStep(name=name, start_time=now_ms())

    def end_step(
        self,
        success: bool = True,
        error_message: str | None = None,
        confidence_score: float | None = None,
    ) -> ProcessingStep | None:
        """Close the open step; a no-op returning None when nothing is open."""

        if self._current is None:
            return None
        step = ProcessingStep(
            name=self._current.name,
            start_time=self._current.start_time,
            end_time=now_ms(),
            success=success,
            error_message=error_message,
            confidence_score=confidence_score,
            memory_used=memory_snapshot(),
        )
        self._current = None
        self._steps.append(step)

        for needle, timing_field in _TIMING_FIELDS:
            if needle in step.name:
                timings = self._counters.timings
                timings[timing_field] = timings.get(timing_field, 0) + step.duration
                break
        if not success:
            for needle, bucket in _ERROR_BUCKETS:
                if needle in step.name:
                    self._counters.errors[bucket] += 1
                    break
            logger.debug("Step %s failed: %s", step.name, error_message)
        return step

    def _close_open_step(self) -> None:
        if self._current is not None:
            self.end_step(True)

    def record_confidence(self, tier: ConfidenceTier) -> None:
        self._counters.confidence[ConfidenceTier(tier).value] += 1

    def set_vendor(self, vendor: str | None) -> None:
        self.vendor = vendor

    def set_image_quality(self, image_quality: float) -> None:
        self.image_quality = max(0.0, min(1.0, image_quality))

    def finish_session(self, overall_quality: ConfidenceTier) -> ProcessingSession:
        """
        Close the session and return its immutable record.

        Any open step is closed first. The session is finalized once; calling
        this again returns the same record without counting the quality twice.
        """

        if self._session is not None:
            return self._session
        self._close_open_step()
        self.record_confidence(overall_quality)
        end_time = max(now_ms(), self.start_time)
        metrics = PerformanceMetrics(
            processing_time=end_time - self.start_time,
            memory_usage=memory_snapshot(),
            confidence_distribution=ConfidenceDistribution(**self._counters.confidence),
            error_counts=ErrorCounts(**self._counters.errors),
            **self._counters.timings,
        )
        self._session = ProcessingSession(
            session_id=self.session_id,
            start_time=self.start_time,
            end_time=end_time,
            image_quality=self.image_quality,
            document_type=self.document_type,
            vendor=self.vendor,
            metrics=metrics,
            processing_steps=tuple(self._steps),
        )
        return self._session

    def log_summary(self, level: int = logging.INFO) -> None:
        """Write a per-step timing summary through the module logger."""

        if not logger.isEnabledFor(level):
            return
        session = self._session
        end_time = session.end_time if session else now_ms()
        logger.log(
            level,
            "Session %s: %dms, quality=%.3f, type=%s, vendor=%s, %d step(s)",
            self.session_id,
            end_time - self.start_time,
            self.image_quality,
            self.document_type,
            self.vendor or "-",
            len(self._steps),
        )
        for step in self._steps:
            conf = f" (conf: {step.confidence_score:.3f})" if step.confidence_score is not None else ""
            status = "ok" if step.success else "FAILED"
            logger.log(level, "  [%s] %s: %dms%s", status, step.name, step.duration, conf)
        errors = {k: v for k, v in self._counters.errors.items() if v}
        if errors:
            logger.log(level, "  errors: %s", errors)


def session_succeeded(session: ProcessingSession) -> bool:
    """A session succeeds when it was closed and none of its steps failed."""

    return session.end_time >= session.start_time and all(
        step.success for step in session.processing_steps
    )


class GlobalPerformanceStats:
    """
    Process-wide rolling aggregate of finished sessions.

    Counters only grow; `reset` is the explicit operator action that clears
    them. All access goes through one lock so concurrent requests cannot
    lose updates to the running average.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._state = GlobalStatsSnapshot()

    def update(self, session: ProcessingSession) -> None:
        duration = session.end_time - session.start_time
        conf = session.metrics.confidence_distribution
        errors = session.metrics.error_counts
        with self._lock:
            state = self._state
            state.total_sessions += 1
            n = state.total_sessions
            state.average_processing_time = (
                state.average_processing_time * (n - 1) + duration
            ) / n
            if session_succeeded(session):
                state.successful_sessions += 1
            state.confidence_distribution = ConfidenceDistribution(
                excellent=state.confidence_distribution.excellent + conf.excellent,
                good=state.confidence_distribution.good + conf.good,
                fair=state.confidence_distribution.fair + conf.fair,
                poor=state.confidence_distribution.poor + conf.poor,
            )
            rates = state.error_rates
            rates.vision_api += errors.vision_api_errors
            rates.spatial_extraction += errors.spatial_extraction_errors
            rates.validation += errors.validation_errors
            rates.preprocessing += errors.preprocessing_errors

    def snapshot(self) -> GlobalStatsSnapshot:
        with self._lock:
            return self._state.model_copy(deep=True)

    def report(self) -> GlobalPerformanceReport:
        snap = self.snapshot()
        if snap.total_sessions == 0:
            return GlobalPerformanceReport(message="No sessions recorded yet")
        rate = snap.successful_sessions / snap.total_sessions * 100
        return GlobalPerformanceReport(
            total_sessions=snap.total_sessions,
            successful_sessions=snap.successful_sessions,
            success_rate=f"{rate:.1f}%",
            average_processing_time=f"{snap.average_processing_time:.0f}ms",
            confidence_breakdown=snap.confidence_distribution,
            error_rates=snap.error_rates,
        )

    def reset(self) -> None:
        with self._lock:
            self._state = GlobalStatsSnapshot()
