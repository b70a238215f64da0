"""
Test session state machine.

    NOT_STARTED --start--> IN_PROGRESS --complete--> COMPLETED
                                       --timeout---> TIMED_OUT
    any state except COMPLETED --abandon--> ABANDONED

Every transition stamps ``last_activity_at`` (never earlier than its previous
value); terminal transitions also stamp ``completed_at``. Illegal transitions
raise ``InvalidStateError`` and leave the session untouched.

Only IN_PROGRESS sessions accept answers; only COMPLETED and TIMED_OUT
sessions can be scored.
"""
import logging
from typing import Optional

from assessment_engine.core.datetime_utils import monotonic_stamp
from assessment_engine.core.exceptions import InvalidStateError
from assessment_engine.models.models import SessionStatus, TestSession

logger = logging.getLogger(__name__)

SCORABLE_STATUSES = frozenset({SessionStatus.COMPLETED, SessionStatus.TIMED_OUT})
TERMINAL_STATUSES = frozenset(
    {SessionStatus.COMPLETED, SessionStatus.ABANDONED, SessionStatus.TIMED_OUT}
)


def _require(session: TestSession, allowed: SessionStatus, action: str) -> None:
    if session.status != allowed:
        raise InvalidStateError(
            f"Cannot {action} session {session.id} in status {session.status.value}",
            current_state=session.status.value,
        )


def _transition(
    session: TestSession, status: SessionStatus, *, terminal: bool = False
):
    now = monotonic_stamp(session.last_activity_at)
    previous = session.status
    session.status = status
    session.last_activity_at = now
    if terminal:
        session.completed_at = now
    logger.debug(f"Session {session.id}: {previous.value} -> {status.value}")
    return now


def start(session: TestSession, time_limit_minutes: Optional[int] = None) -> TestSession:
    """NOT_STARTED -> IN_PROGRESS; stamps ``started_at``."""
    _require(session, SessionStatus.NOT_STARTED, "start")
    now = _transition(session, SessionStatus.IN_PROGRESS)
    session.started_at = now
    if time_limit_minutes is not None:
        session.time_remaining_seconds = time_limit_minutes * 60
    return session


def complete(session: TestSession) -> TestSession:
    """IN_PROGRESS -> COMPLETED."""
    _require(session, SessionStatus.IN_PROGRESS, "complete")
    _transition(session, SessionStatus.COMPLETED, terminal=True)
    return session


def timeout(session: TestSession) -> TestSession:
    """IN_PROGRESS -> TIMED_OUT."""
    _require(session, SessionStatus.IN_PROGRESS, "time out")
    _transition(session, SessionStatus.TIMED_OUT, terminal=True)
    session.time_remaining_seconds = 0
    return session


def abandon(session: TestSession) -> TestSession:
    """Any state except COMPLETED -> ABANDONED."""
    if session.status == SessionStatus.COMPLETED:
        raise InvalidStateError(
            f"Cannot abandon completed session {session.id}",
            current_state=session.status.value,
        )
    _transition(session, SessionStatus.ABANDONED, terminal=True)
    return session


def record_activity(session: TestSession) -> TestSession:
    """Stamp activity on a writable session without changing its status."""
    require_writable(session)
    session.last_activity_at = monotonic_stamp(session.last_activity_at)
    return session


def is_writable(session: TestSession) -> bool:
    return session.status == SessionStatus.IN_PROGRESS


def require_writable(session: TestSession) -> None:
    if not is_writable(session):
        raise InvalidStateError(
            f"Session {session.id} does not accept answers in status "
            f"{session.status.value}",
            current_state=session.status.value,
        )


def can_score(session: TestSession) -> bool:
    return session.status in SCORABLE_STATUSES


def is_terminal(session: TestSession) -> bool:
    return session.status in TERMINAL_STATUSES
