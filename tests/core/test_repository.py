"""
Tests for the session repository.
"""
import pytest
from sqlalchemy.orm import sessionmaker

from assessment_engine.core.assembly import AssemblyProgressTracker
from assessment_engine.core.events import EventBus
from assessment_engine.core.exceptions import (
    DatabaseOperationError,
    InvalidStateError,
    ScoringError,
)
from assessment_engine.core.repository import SessionRepository, subscribe_audit_writer
from assessment_engine.core.scoring import ScoringOrchestrator
from assessment_engine.models.models import (
    ResultStatus,
    SessionStatus,
    TestAnswer,
    TestSession,
)

QUESTIONS = ["comm-clarity-q0", "lead-vision-q0", "analysis-data-q0"]


@pytest.fixture
def repo(db_session):
    return SessionRepository(db_session)


@pytest.fixture
def started_session(repo):
    session = repo.create_session("tpl-1", taker_id="user-1")
    repo.assign_question_order(session.id, QUESTIONS)
    repo.start_session(session.id, time_limit_minutes=20)
    return session


def answer(question_id, option="a"):
    return TestAnswer(question_id=question_id, selected_option_ids=[option])


class TestSessionLifecycle:
    """Tests for persisted state transitions."""

    def test_create_session(self, repo, db_session):
        session = repo.create_session("tpl-1")

        stored = db_session.get(TestSession, session.id)
        assert stored.status == SessionStatus.NOT_STARTED
        assert stored.taker_id is None
        assert stored.question_order is None

    def test_full_lifecycle(self, repo, started_session):
        for question_id in QUESTIONS:
            repo.record_answer(started_session.id, answer(question_id))
        session = repo.complete_session(started_session.id)

        assert session.status == SessionStatus.COMPLETED
        assert session.time_remaining_seconds == 1200
        assert session.current_index == 3
        assert session.completed_at is not None
        assert [a.question_id for a in repo.list_answers(session.id)] == QUESTIONS

    def test_timeout(self, repo, started_session):
        session = repo.timeout_session(started_session.id)
        assert session.status == SessionStatus.TIMED_OUT
        assert session.time_remaining_seconds == 0

    def test_illegal_transition_rolls_back(self, repo, started_session):
        repo.complete_session(started_session.id)
        with pytest.raises(InvalidStateError):
            repo.start_session(started_session.id)
        assert repo.get_session(started_session.id).status == SessionStatus.COMPLETED

    def test_abandon_after_complete_rejected(self, repo, started_session):
        repo.complete_session(started_session.id)
        with pytest.raises(InvalidStateError):
            repo.abandon_session(started_session.id)

    def test_abandon_invalidates_assembly_progress(self, db_session):
        tracker = AssemblyProgressTracker()
        repo = SessionRepository(db_session, tracker=tracker)
        session = repo.create_session("tpl-1")
        tracker.start(session.id, 3)

        repo.abandon_session(session.id)

        assert repo.get_session(session.id).status == SessionStatus.ABANDONED
        assert tracker.get(session.id) is None

    def test_unknown_session(self, repo):
        with pytest.raises(ValueError, match="not found"):
            repo.complete_session("missing")
        assert repo.get_session("missing") is None

    def test_question_order_set_once(self, repo, started_session):
        with pytest.raises(InvalidStateError, match="already set"):
            repo.assign_question_order(started_session.id, ["other"])
        assert repo.get_session(started_session.id).question_order == QUESTIONS


class TestRecordAnswer:
    """Tests for answer recording."""

    def test_rejected_before_start(self, repo):
        session = repo.create_session("tpl-1")
        with pytest.raises(InvalidStateError, match="does not accept answers"):
            repo.record_answer(session.id, answer(QUESTIONS[0]))
        assert repo.list_answers(session.id) == []

    def test_rejected_after_complete(self, repo, started_session):
        repo.complete_session(started_session.id)
        with pytest.raises(InvalidStateError):
            repo.record_answer(started_session.id, answer(QUESTIONS[0]))

    def test_question_outside_order_rejected(self, repo, started_session):
        with pytest.raises(ValueError, match="not part of session"):
            repo.record_answer(started_session.id, answer("elsewhere-q9"))

    def test_duplicate_answer_rejected(self, repo, started_session):
        repo.record_answer(started_session.id, answer(QUESTIONS[0]))
        with pytest.raises(DatabaseOperationError) as exc_info:
            repo.record_answer(started_session.id, answer(QUESTIONS[0], option="b"))

        assert exc_info.value.code == "DATABASE_ERROR"
        stored = repo.list_answers(started_session.id)
        assert len(stored) == 1
        assert stored[0].selected_option_ids == ["a"]

    def test_activity_stamped(self, repo, started_session):
        before = repo.get_session(started_session.id).last_activity_at
        repo.record_answer(started_session.id, answer(QUESTIONS[0]))
        after = repo.get_session(started_session.id).last_activity_at
        assert after >= before


class TestResultStore:
    """Tests for the repository as the orchestrator's result store."""

    def _scored(self, repo, inventory, blueprint, selections, publisher=None):
        session = repo.create_session("tpl-1")
        repo.assign_question_order(session.id, list(selections))
        repo.start_session(session.id)
        for question_id, option in selections.items():
            repo.record_answer(session.id, answer(question_id, option))
        session = repo.complete_session(session.id)
        orchestrator = ScoringOrchestrator(
            inventory, publisher=publisher, result_store=repo
        )
        return session, orchestrator.score(session, blueprint)

    def test_result_and_audit_persisted(
        self, repo, db_session, inventory, overview_blueprint
    ):
        """Test that the audit subscriber stores the audit in its own session."""
        bus = EventBus()
        subscribe_audit_writer(bus, sessionmaker(bind=db_session.get_bind()))
        try:
            session, result = self._scored(
                repo,
                inventory,
                overview_blueprint,
                dict.fromkeys(QUESTIONS, "a"),
                publisher=bus,
            )
            assert bus.flush(timeout=5)
        finally:
            bus.shutdown()

        stored = repo.get_result(session.id)
        assert stored.status == ResultStatus.COMPLETED
        assert stored.overall_percentage == 100.0
        assert stored.attempts == 1

        audit = repo.audit_log(session.id)
        assert len(audit) == 1
        assert audit[0].result_id == result.id
        assert audit[0].passed is True
        assert audit[0].indicator_weights == {
            "comm-clarity": 1.0,
            "lead-vision": 1.0,
            "analysis-data": 1.0,
        }

    def test_graded_answers_feed_reliability(self, repo, inventory, overview_blueprint):
        session, _ = self._scored(
            repo,
            inventory,
            overview_blueprint,
            {"comm-clarity-q0": "a", "comm-listening-q0": "b", "lead-vision-q0": "a"},
        )

        scores = repo.scored_sessions_for_competency("communication")
        assert scores == {session.id: {"comm-clarity-q0": 1.0, "comm-listening-q0": 0.0}}

    def test_failed_result_persisted(self, repo, inventory, overview_blueprint):
        session = repo.create_session("tpl-1")
        repo.start_session(session.id)
        session = repo.complete_session(session.id)

        with pytest.raises(ScoringError, match="no answers"):
            ScoringOrchestrator(inventory, result_store=repo).score(
                session, overview_blueprint
            )

        stored = repo.get_result(session.id)
        assert stored.status == ResultStatus.FAILED
        assert repo.audit_log(session.id) == []
