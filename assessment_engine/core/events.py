"""
Engine events and the in-process event bus.

Assembly and scoring announce what they do through an ``EventPublisher``.
Delivery is best-effort and asynchronous: ``EventBus`` hands events to a
background worker, and a failing subscriber is logged and skipped. Neither
slow nor failing subscribers affect the operation that published the event.

Usage:
    from assessment_engine.core.events import EventBus, ScoringCompletedEvent

    bus = EventBus()
    bus.subscribe(ScoringCompletedEvent, lambda event: print(event.passed))
    attach_metrics_listener(bus)
    ...
    bus.shutdown()
"""
import logging
import threading
from concurrent import futures
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Protocol, Set, Tuple, Type

from assessment_engine.core.datetime_utils import utc_now
from assessment_engine.core.graceful_failure import graceful_failure
from assessment_engine.core.logging_config import session_context
from assessment_engine.observability import metrics

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EngineEvent:
    session_id: Optional[str]
    occurred_at: datetime = field(default_factory=utc_now, kw_only=True)

    @property
    def event_type(self) -> str:
        return type(self).__name__


@dataclass(frozen=True)
class AssemblyProgressEvent(EngineEvent):
    phase: str
    percent_complete: float
    competencies_processed: int
    total_competencies: int
    questions_selected: int


@dataclass(frozen=True)
class AssemblyCompletedEvent(EngineEvent):
    goal: str
    question_count: int
    warning_count: int
    duration_ms: float


@dataclass(frozen=True)
class AssemblyFailedEvent(EngineEvent):
    goal: Optional[str]
    error: str
    completed_competencies: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ScoringStartedEvent(EngineEvent):
    goal: str
    answer_count: int


@dataclass(frozen=True)
class ScoringCompletedEvent(EngineEvent):
    result_id: str
    goal: str
    overall_percentage: float
    passed: bool
    duration_ms: float


@dataclass(frozen=True)
class ScoringAuditEvent(EngineEvent):
    """Everything needed to reproduce a score after configuration changes."""

    result_id: str
    goal: str
    indicator_weights: Dict[str, float]
    config_snapshot: Dict[str, Any]
    competency_breakdown: List[Dict[str, Any]]
    overall_percentage: float
    passed: bool
    duration_ms: float


@dataclass(frozen=True)
class ScoringFailedEvent(EngineEvent):
    error_category: str
    error_type: str
    message: str
    duration_ms: float


class EventPublisher(Protocol):
    def publish(self, event: EngineEvent) -> None:
        ...


Subscriber = Callable[[Any], None]


class EventBus:
    """
    Fan-out bus keyed by event class.

    ``publish`` only queues the event; handlers run on a background worker so
    subscribers never hold up assembly or scoring. With the default single
    worker, events are delivered in publish order. ``flush`` waits for queued
    deliveries and ``shutdown`` stops the worker.
    """

    def __init__(self, max_workers: int = 1) -> None:
        self._subscribers: Dict[Type[EngineEvent], List[Subscriber]] = {}
        self._lock = threading.Lock()
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="engine-events"
        )
        self._pending: Set[Future] = set()
        self._closed = False

    def subscribe(self, event_type: Type[EngineEvent], handler: Subscriber) -> None:
        with self._lock:
            self._subscribers.setdefault(event_type, []).append(handler)

    def publish(self, event: EngineEvent) -> None:
        with self._lock:
            handlers = [
                handler
                for event_type, registered in self._subscribers.items()
                if isinstance(event, event_type)
                for handler in registered
            ]
            if not handlers:
                return
            if self._closed:
                logger.warning(f"Event bus is shut down; dropped {event.event_type}")
                return
            future = self._executor.submit(_deliver, event, handlers)
            self._pending.add(future)
        future.add_done_callback(self._forget)

    def flush(self, timeout: Optional[float] = None) -> bool:
        """Wait for queued deliveries. Returns False if ``timeout`` expired first."""
        with self._lock:
            pending = list(self._pending)
        _, not_done = futures.wait(pending, timeout=timeout)
        return not not_done

    def shutdown(self, wait: bool = True) -> None:
        with self._lock:
            self._closed = True
        self._executor.shutdown(wait=wait)

    def _forget(self, future: Future) -> None:
        with self._lock:
            self._pending.discard(future)


def _deliver(event: EngineEvent, handlers: List[Subscriber]) -> None:
    with session_context(event.session_id):
        for handler in handlers:
            with graceful_failure(
                f"deliver {event.event_type}",
                logger,
                context={"session_id": event.session_id},
            ):
                handler(event)


class RecordingPublisher:
    """Publisher that keeps every event in memory, in publish order."""

    def __init__(self) -> None:
        self.events: List[EngineEvent] = []

    def publish(self, event: EngineEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: Type[EngineEvent]) -> List[EngineEvent]:
        return [event for event in self.events if isinstance(event, event_type)]


def attach_metrics_listener(bus: EventBus) -> None:
    """Translate engine events into OpenTelemetry metrics."""
    bus.subscribe(
        AssemblyCompletedEvent,
        lambda e: metrics.record_assembly_completed(
            e.goal, e.question_count, e.duration_ms / 1000.0, e.warning_count
        ),
    )
    bus.subscribe(
        AssemblyFailedEvent,
        lambda e: metrics.record_assembly_failed(e.goal or "UNKNOWN"),
    )
    bus.subscribe(
        ScoringCompletedEvent,
        lambda e: metrics.record_scoring_completed(
            e.goal, e.passed, e.duration_ms / 1000.0
        ),
    )
    bus.subscribe(
        ScoringFailedEvent,
        lambda e: metrics.record_scoring_failed(e.error_category),
    )
