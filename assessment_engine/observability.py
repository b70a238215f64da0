"""
Custom engine metrics instrumentation for OpenTelemetry.

This module provides custom metrics for monitoring engine behavior:
- Assembly outcomes, durations and inventory shortfalls
- Scoring outcomes and latency
- Reliability status per analysis run
- Error rates

The engine depends only on the OpenTelemetry API. The host application owns
the MeterProvider (SDK, exporters); until one is installed the API hands out
no-op instruments.

Usage:
    from assessment_engine.observability import metrics

    metrics.initialize()
    metrics.record_assembly_completed("OVERVIEW", question_count=10, duration=0.04)
    metrics.record_scoring_failed("NO_ANSWERS")
"""
import logging
from typing import Any, Dict, Literal, Optional

from opentelemetry import metrics as otel_metrics

from assessment_engine.core.config import settings

logger = logging.getLogger(__name__)

MetricType = Literal["counter", "histogram"]


class ApplicationMetrics:
    """
    Engine-level metrics using OpenTelemetry.

    Provides helper methods for recording custom metrics throughout the engine.
    All methods are no-ops if metrics are not enabled.
    """

    def __init__(self) -> None:
        """Initialize ApplicationMetrics with empty state."""
        self._initialized = False
        self._meter: Any = None
        self._counters: Dict[str, Any] = {}
        self._histograms: Dict[str, Any] = {}

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    def initialize(self, *, force: bool = False) -> None:
        """
        Initialize OpenTelemetry metrics.

        Args:
            force: Initialize even when settings have metrics disabled. Used by
                hosts that manage their own MeterProvider, and by tests.
        """
        if not force and not (settings.OTEL_ENABLED and settings.OTEL_METRICS_ENABLED):
            logger.info("Engine metrics not enabled (OTEL_METRICS_ENABLED=False)")
            return

        if self._initialized:
            logger.warning("Engine metrics already initialized")
            return

        self._meter = otel_metrics.get_meter(
            settings.OTEL_SERVICE_NAME, version=settings.APP_VERSION
        )
        self._initialized = True
        logger.info("Engine metrics initialized successfully")

    def reset(self) -> None:
        """Drop cached instruments and return to the no-op state."""
        self._initialized = False
        self._meter = None
        self._counters.clear()
        self._histograms.clear()

    def _record(
        self,
        name: str,
        value: float,
        *,
        labels: Optional[Dict[str, str]] = None,
        metric_type: MetricType = "counter",
        unit: Optional[str] = None,
    ) -> None:
        if not self._initialized or self._meter is None:
            return

        attributes = labels or {}
        if metric_type == "counter":
            if name not in self._counters:
                self._counters[name] = self._meter.create_counter(
                    name=name,
                    unit=unit or "1",
                    description=f"Counter for {name}",
                )
            self._counters[name].add(value, attributes=attributes)
        else:
            if name not in self._histograms:
                self._histograms[name] = self._meter.create_histogram(
                    name=name,
                    unit=unit or "s",
                    description=f"Histogram for {name}",
                )
            self._histograms[name].record(value, attributes=attributes)

    def record_error(self, error_type: str) -> None:
        """
        Record an engine error.

        Args:
            error_type: Type of error (e.g., "GracefulFailure", "ScoringError")
        """
        try:
            self._record("engine.errors", 1, labels={"error.type": error_type})
        except Exception as e:
            logger.debug(f"Failed to record error metric: {e}")

    def record_assembly_completed(
        self,
        goal: str,
        question_count: int,
        duration: float,
        warning_count: int = 0,
    ) -> None:
        """
        Record a finished assembly.

        Args:
            goal: Assessment goal the blueprint targeted
            question_count: Number of questions selected
            duration: Assembly duration in seconds
            warning_count: Number of warnings returned with the result
        """
        if question_count < 0:
            logger.warning(f"Invalid question_count {question_count}, using 0")
            question_count = 0

        try:
            labels = {"assessment.goal": goal}
            self._record("assembly.completed", 1, labels=labels)
            self._record(
                "assembly.duration", duration, labels=labels, metric_type="histogram"
            )
            self._record(
                "assembly.questions",
                question_count,
                labels=labels,
                metric_type="histogram",
                unit="1",
            )
            if warning_count:
                self._record("assembly.warnings", warning_count, labels=labels)
        except Exception as e:
            logger.debug(f"Failed to record assembly completed metric: {e}")

    def record_assembly_failed(self, goal: str) -> None:
        try:
            self._record("assembly.failed", 1, labels={"assessment.goal": goal})
        except Exception as e:
            logger.debug(f"Failed to record assembly failed metric: {e}")

    def record_scoring_completed(
        self, goal: str, passed: bool, duration: float
    ) -> None:
        """
        Record a completed scoring run.

        Args:
            goal: Assessment goal of the scored blueprint
            passed: Pass/fail outcome
            duration: Scoring duration in seconds
        """
        try:
            labels = {"assessment.goal": goal, "scoring.passed": str(passed).lower()}
            self._record("scoring.completed", 1, labels=labels)
            self._record(
                "scoring.duration", duration, labels=labels, metric_type="histogram"
            )
        except Exception as e:
            logger.debug(f"Failed to record scoring completed metric: {e}")

    def record_scoring_failed(self, category: str) -> None:
        try:
            self._record("scoring.failed", 1, labels={"error.category": category})
        except Exception as e:
            logger.debug(f"Failed to record scoring failed metric: {e}")

    def record_reliability_analysis(self, status: str, sample_size: int) -> None:
        """
        Record a reliability analysis run.

        Args:
            status: Resulting reliability status
            sample_size: Number of sessions used
        """
        try:
            labels = {"reliability.status": status}
            self._record("reliability.analyses", 1, labels=labels)
            self._record(
                "reliability.sample_size",
                sample_size,
                labels=labels,
                metric_type="histogram",
                unit="1",
            )
        except Exception as e:
            logger.debug(f"Failed to record reliability metric: {e}")


# Global metrics instance
metrics = ApplicationMetrics()
