"""
Assembly progress tracking.

Long assemblies report progress as immutable ``AssemblyProgress`` snapshots.
Every transition returns a new snapshot; the tracker swaps the latest one in
under a lock, so readers always see a complete, consistent snapshot without
taking the lock themselves.

Phases advance in a fixed order and never move backwards:

    INITIALIZING -> SELECTING -> VALIDATING -> SHUFFLING -> COMPLETE
                 \\______________________________________/-> FAILED

Percent bands:
    INITIALIZING   0
    SELECTING      10 + 70 * processed / total
    VALIDATING     85
    SHUFFLING      95
    COMPLETE       100
    FAILED         frozen at the last value
"""
import enum
import logging
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence

from assessment_engine.core.datetime_utils import utc_now
from assessment_engine.core.events import (
    AssemblyFailedEvent,
    AssemblyProgressEvent,
    EngineEvent,
    EventPublisher,
)
from assessment_engine.core.exceptions import InvalidStateError
from assessment_engine.core.graceful_failure import graceful_failure

logger = logging.getLogger(__name__)

SELECTING_BASE_PERCENT = 10.0
SELECTING_SPAN_PERCENT = 70.0


class AssemblyPhase(str, enum.Enum):
    INITIALIZING = "INITIALIZING"
    SELECTING = "SELECTING"
    VALIDATING = "VALIDATING"
    SHUFFLING = "SHUFFLING"
    COMPLETE = "COMPLETE"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (AssemblyPhase.COMPLETE, AssemblyPhase.FAILED)


_PHASE_ORDER = {
    AssemblyPhase.INITIALIZING: 0,
    AssemblyPhase.SELECTING: 1,
    AssemblyPhase.VALIDATING: 2,
    AssemblyPhase.SHUFFLING: 3,
    AssemblyPhase.COMPLETE: 4,
    AssemblyPhase.FAILED: 4,
}

_PHASE_PERCENT = {
    AssemblyPhase.INITIALIZING: 0.0,
    AssemblyPhase.VALIDATING: 85.0,
    AssemblyPhase.SHUFFLING: 95.0,
    AssemblyPhase.COMPLETE: 100.0,
}


@dataclass(frozen=True)
class AssemblyProgress:
    """Immutable snapshot of one session's assembly."""

    session_id: str
    phase: AssemblyPhase
    total_competencies: int
    competencies_processed: int
    questions_selected: int
    percent_complete: float
    started_at: datetime
    updated_at: datetime
    completed_at: Optional[datetime] = None
    current_competency: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def start(cls, session_id: str, total_competencies: int) -> "AssemblyProgress":
        if total_competencies < 0:
            raise ValueError("total_competencies must be >= 0")
        now = utc_now()
        return cls(
            session_id=session_id,
            phase=AssemblyPhase.INITIALIZING,
            total_competencies=total_competencies,
            competencies_processed=0,
            questions_selected=0,
            percent_complete=0.0,
            started_at=now,
            updated_at=now,
        )

    def _require_live(self, action: str) -> None:
        if self.phase.is_terminal:
            raise InvalidStateError(
                f"Cannot {action}: assembly for session {self.session_id} "
                f"is already {self.phase.value}",
                current_state=self.phase.value,
            )

    def _selecting_percent(self, processed: int) -> float:
        if self.total_competencies == 0:
            return SELECTING_BASE_PERCENT + SELECTING_SPAN_PERCENT
        return SELECTING_BASE_PERCENT + SELECTING_SPAN_PERCENT * (
            processed / self.total_competencies
        )

    def update_phase(
        self, phase: AssemblyPhase, percent: Optional[float] = None
    ) -> "AssemblyProgress":
        """
        Move to ``phase``; staying in the current phase is allowed.

        Raises:
            InvalidStateError: on a phase regression or when already terminal.
        """
        phase = AssemblyPhase(phase)
        if phase == AssemblyPhase.FAILED:
            return self.fail()
        if phase == AssemblyPhase.COMPLETE:
            return self.complete(self.questions_selected)
        self._require_live(f"enter {phase.value}")
        if _PHASE_ORDER[phase] < _PHASE_ORDER[self.phase]:
            raise InvalidStateError(
                f"Assembly phase cannot go from {self.phase.value} back to {phase.value}",
                current_state=self.phase.value,
            )
        if percent is not None and not 0.0 <= percent <= 100.0:
            raise ValueError(f"percent must be within [0, 100], got {percent}")

        if percent is None:
            if phase == AssemblyPhase.SELECTING:
                percent = self._selecting_percent(self.competencies_processed)
            else:
                percent = _PHASE_PERCENT[phase]
        return replace(
            self,
            phase=phase,
            percent_complete=max(self.percent_complete, percent),
            updated_at=utc_now(),
        )

    def increment_competency(
        self, questions_added: int = 0, competency_id: Optional[str] = None
    ) -> "AssemblyProgress":
        """
        Record one more competency as filled.

        Only valid while INITIALIZING or SELECTING, and at most
        ``total_competencies`` times.
        """
        self._require_live("increment competency")
        if questions_added < 0:
            raise ValueError("questions_added must be >= 0")
        if _PHASE_ORDER[self.phase] > _PHASE_ORDER[AssemblyPhase.SELECTING]:
            raise InvalidStateError(
                f"Cannot increment competency during {self.phase.value}",
                current_state=self.phase.value,
            )
        if self.competencies_processed >= self.total_competencies:
            raise InvalidStateError(
                f"All {self.total_competencies} competencies already processed",
                current_state=self.phase.value,
            )

        processed = self.competencies_processed + 1
        return replace(
            self,
            phase=AssemblyPhase.SELECTING,
            competencies_processed=processed,
            questions_selected=self.questions_selected + questions_added,
            percent_complete=max(self.percent_complete, self._selecting_percent(processed)),
            current_competency=competency_id,
            updated_at=utc_now(),
        )

    def complete(self, final_count: int) -> "AssemblyProgress":
        self._require_live("complete")
        now = utc_now()
        return replace(
            self,
            phase=AssemblyPhase.COMPLETE,
            questions_selected=final_count,
            percent_complete=100.0,
            updated_at=now,
            completed_at=now,
        )

    def fail(self, error: Optional[str] = None) -> "AssemblyProgress":
        self._require_live("fail")
        now = utc_now()
        return replace(
            self,
            phase=AssemblyPhase.FAILED,
            error=error,
            updated_at=now,
            completed_at=now,
        )

    @property
    def elapsed_duration(self) -> timedelta:
        """Time between the start and the latest update."""
        return self.updated_at - self.started_at

    def is_in_progress(self) -> bool:
        return not self.phase.is_terminal


class AssemblyProgressTracker:
    """
    Latest progress snapshot per session.

    Writers are serialised by a lock; ``get`` reads the dict without it.
    Terminal snapshots stay readable until ``invalidate`` (called when the
    session is abandoned) drops them.
    """

    def __init__(self, publisher: Optional[EventPublisher] = None):
        self._snapshots: Dict[str, AssemblyProgress] = {}
        self._lock = threading.Lock()
        self._publisher = publisher

    def start(self, session_id: str, total_competencies: int) -> AssemblyProgress:
        with self._lock:
            existing = self._snapshots.get(session_id)
            if existing is not None and existing.is_in_progress():
                raise InvalidStateError(
                    f"Assembly already in progress for session {session_id}",
                    current_state=existing.phase.value,
                )
            snapshot = AssemblyProgress.start(session_id, total_competencies)
            self._snapshots[session_id] = snapshot
        logger.info(
            f"Assembly started for session {session_id} "
            f"({total_competencies} competencies)"
        )
        self._publish_progress(snapshot)
        return snapshot

    def _apply(self, session_id: str, transition) -> AssemblyProgress:
        with self._lock:
            current = self._snapshots.get(session_id)
            if current is None:
                raise InvalidStateError(
                    f"No assembly tracked for session {session_id}"
                )
            snapshot = transition(current)
            self._snapshots[session_id] = snapshot
        return snapshot

    def update_phase(
        self, session_id: str, phase: AssemblyPhase, percent: Optional[float] = None
    ) -> AssemblyProgress:
        snapshot = self._apply(session_id, lambda p: p.update_phase(phase, percent))
        self._publish_progress(snapshot)
        return snapshot

    def increment_competency(
        self,
        session_id: str,
        questions_added: int = 0,
        competency_id: Optional[str] = None,
    ) -> AssemblyProgress:
        snapshot = self._apply(
            session_id, lambda p: p.increment_competency(questions_added, competency_id)
        )
        self._publish_progress(snapshot)
        return snapshot

    def complete(self, session_id: str, final_count: int) -> AssemblyProgress:
        snapshot = self._apply(session_id, lambda p: p.complete(final_count))
        logger.info(
            f"Assembly complete for session {session_id}: {final_count} questions "
            f"in {snapshot.elapsed_duration.total_seconds():.3f}s"
        )
        self._publish_progress(snapshot)
        return snapshot

    def fail(
        self,
        session_id: str,
        error: str,
        *,
        goal: Optional[str] = None,
        completed_competencies: Sequence[str] = (),
    ) -> AssemblyProgress:
        snapshot = self._apply(session_id, lambda p: p.fail(error))
        logger.warning(f"Assembly failed for session {session_id}: {error}")
        self._publish_progress(snapshot)
        self._publish(
            AssemblyFailedEvent(
                session_id=session_id,
                goal=goal,
                error=error,
                completed_competencies=tuple(completed_competencies),
            )
        )
        return snapshot

    def get(self, session_id: str) -> Optional[AssemblyProgress]:
        return self._snapshots.get(session_id)

    def invalidate(self, session_id: str) -> None:
        """Forget a session's progress; later queries return None."""
        with self._lock:
            self._snapshots.pop(session_id, None)

    def active_sessions(self) -> List[str]:
        return [sid for sid, p in list(self._snapshots.items()) if p.is_in_progress()]

    def _publish_progress(self, snapshot: AssemblyProgress) -> None:
        self._publish(
            AssemblyProgressEvent(
                session_id=snapshot.session_id,
                phase=snapshot.phase.value,
                percent_complete=snapshot.percent_complete,
                competencies_processed=snapshot.competencies_processed,
                total_competencies=snapshot.total_competencies,
                questions_selected=snapshot.questions_selected,
            )
        )

    def _publish(self, event: EngineEvent) -> None:
        if self._publisher is None:
            return
        with graceful_failure(
            f"publish {event.event_type}", logger, context={"session_id": event.session_id}
        ):
            self._publisher.publish(event)
