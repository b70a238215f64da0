"""
Persistence for test sessions, answers, results and scoring audits.

``SessionRepository`` wraps one SQLAlchemy ``Session``. Each public method is
a single transaction: it commits on success and rolls back on any error.
State changes go through ``update_session``, which re-reads the session row
under ``SELECT ... FOR UPDATE`` before applying the transition so concurrent
writers cannot interleave a read-modify-write.

Usage Example:
    repo = SessionRepository(db, tracker=tracker)

    session = repo.create_session(template_id="tpl-1", taker_id="user-7")
    repo.assign_question_order(session.id, assembly.question_ids)
    repo.start_session(session.id, time_limit_minutes=30)
    repo.record_answer(session.id, TestAnswer(question_id="q1", likert_value=4))
    repo.complete_session(session.id)

    # The repository is also the scoring orchestrator's ResultStore; audits
    # are stored off the scoring path by a bus subscriber
    bus = EventBus()
    subscribe_audit_writer(bus, SessionLocal)
    orchestrator = ScoringOrchestrator(inventory, publisher=bus, result_store=repo)
"""

import logging
from contextlib import contextmanager
from typing import Callable, Dict, Generator, Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from assessment_engine.core import session_state
from assessment_engine.core.assembly.progress import AssemblyProgressTracker
from assessment_engine.core.events import EventBus, ScoringAuditEvent
from assessment_engine.core.exceptions import DatabaseOperationError
from assessment_engine.core.reliability import load_competency_scores
from assessment_engine.models.models import (
    AssessmentGoal,
    ScoringAuditLog,
    TestAnswer,
    TestResult,
    TestSession,
)

logger = logging.getLogger(__name__)


class SessionRepository:
    """Transactional access to sessions and their results."""

    def __init__(
        self, db: Session, *, tracker: Optional[AssemblyProgressTracker] = None
    ):
        self.db = db
        self.tracker = tracker

    @contextmanager
    def _transaction(self, operation_name: str) -> Generator[None, None, None]:
        """
        Commit on success; roll back on error.

        Database errors are wrapped in DatabaseOperationError; anything else
        is re-raised unchanged.
        """
        try:
            yield
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Database error during {operation_name}: {e}", exc_info=True)
            raise DatabaseOperationError(operation_name, e) from e
        except Exception:
            self.db.rollback()
            raise

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def create_session(
        self, template_id: str, taker_id: Optional[str] = None
    ) -> TestSession:
        session = TestSession(template_id=template_id, taker_id=taker_id)
        with self._transaction("create session"):
            self.db.add(session)
        logger.info(f"Created session {session.id} for template {template_id}")
        return session

    def get_session(self, session_id: str) -> Optional[TestSession]:
        return self.db.get(TestSession, session_id)

    def _require_session(self, session_id: str, *, lock: bool = False) -> TestSession:
        stmt = select(TestSession).filter(TestSession.id == session_id)
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        session = self.db.scalars(stmt).first()
        if session is None:
            raise ValueError(f"Session {session_id} not found")
        return session

    def update_session(
        self, session_id: str, fn: Callable[[TestSession], object]
    ) -> TestSession:
        """
        Atomically apply ``fn`` to the locked session row and commit.

        If ``fn`` raises, nothing is written and the error propagates.
        """
        with self._transaction(f"update session {session_id}"):
            session = self._require_session(session_id, lock=True)
            fn(session)
        return session

    def assign_question_order(
        self, session_id: str, question_ids: Iterable[str]
    ) -> TestSession:
        """Set the session's question order; it can only be set once."""
        ordered = list(question_ids)

        def _assign(session: TestSession) -> None:
            session.question_order = ordered

        return self.update_session(session_id, _assign)

    def start_session(
        self, session_id: str, time_limit_minutes: Optional[int] = None
    ) -> TestSession:
        return self.update_session(
            session_id, lambda s: session_state.start(s, time_limit_minutes)
        )

    def complete_session(self, session_id: str) -> TestSession:
        return self.update_session(session_id, session_state.complete)

    def timeout_session(self, session_id: str) -> TestSession:
        return self.update_session(session_id, session_state.timeout)

    def abandon_session(self, session_id: str) -> TestSession:
        """Abandon the session and drop any assembly progress it still has."""
        session = self.update_session(session_id, session_state.abandon)
        if self.tracker is not None:
            self.tracker.invalidate(session_id)
        return session

    # ------------------------------------------------------------------
    # Answers
    # ------------------------------------------------------------------

    def record_answer(self, session_id: str, answer: TestAnswer) -> TestAnswer:
        """
        Attach ``answer`` to an IN_PROGRESS session.

        Raises:
            InvalidStateError: the session does not accept answers.
            ValueError: the question is not part of the session's order.
            DatabaseOperationError: the question was already answered.
        """

        def _record(session: TestSession) -> None:
            session_state.require_writable(session)
            if (
                session.question_order is not None
                and answer.question_id not in session.question_order
            ):
                raise ValueError(
                    f"Question {answer.question_id} is not part of session {session_id}"
                )
            session_state.record_activity(session)
            session.answers.append(answer)
            session.current_index = len(session.answers)
            self.db.flush()

        self.update_session(session_id, _record)
        logger.debug(f"Recorded answer to {answer.question_id} for session {session_id}")
        return answer

    def list_answers(self, session_id: str) -> List[TestAnswer]:
        return list(self._require_session(session_id).answers)

    # ------------------------------------------------------------------
    # Results (ResultStore)
    # ------------------------------------------------------------------

    def save_result(self, result: TestResult) -> None:
        with self._transaction(f"save result for session {result.session_id}"):
            self.db.add(result)
        logger.debug(
            f"Saved result {result.id} ({result.status.value}) "
            f"for session {result.session_id}"
        )

    def save_audit(self, event: ScoringAuditEvent) -> None:
        entry = ScoringAuditLog(
            session_id=event.session_id,
            result_id=event.result_id,
            goal=AssessmentGoal(event.goal),
            indicator_weights=dict(event.indicator_weights),
            config_snapshot=dict(event.config_snapshot),
            competency_breakdown=[dict(c) for c in event.competency_breakdown],
            overall_percentage=event.overall_percentage,
            passed=event.passed,
            duration_ms=event.duration_ms,
            created_at=event.occurred_at,
        )
        with self._transaction(f"save scoring audit for session {event.session_id}"):
            self.db.add(entry)

    def get_result(self, session_id: str) -> Optional[TestResult]:
        return self.db.scalars(
            select(TestResult).filter(TestResult.session_id == session_id)
        ).first()

    def audit_log(self, session_id: str) -> List[ScoringAuditLog]:
        return list(
            self.db.scalars(
                select(ScoringAuditLog)
                .filter(ScoringAuditLog.session_id == session_id)
                .order_by(ScoringAuditLog.id)
            )
        )

    # ------------------------------------------------------------------
    # Reliability input
    # ------------------------------------------------------------------

    def scored_sessions_for_competency(
        self, competency_id: str
    ) -> Dict[str, Dict[str, float]]:
        """``session id -> question id -> score / max_score`` for scored sessions."""
        return load_competency_scores(self.db, competency_id)


class ScoringAuditWriter:
    """
    Event subscriber that stores scoring audits.

    Runs on the event bus worker, so every event gets its own database
    session from ``session_factory`` and its own transaction.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def __call__(self, event: ScoringAuditEvent) -> None:
        with self.session_factory() as db:
            SessionRepository(db).save_audit(event)
        logger.debug(f"Stored scoring audit for session {event.session_id}")


def subscribe_audit_writer(
    bus: EventBus, session_factory: Callable[[], Session]
) -> ScoringAuditWriter:
    """Persist every ``ScoringAuditEvent`` published on ``bus``."""
    writer = ScoringAuditWriter(session_factory)
    bus.subscribe(ScoringAuditEvent, writer)
    return writer
