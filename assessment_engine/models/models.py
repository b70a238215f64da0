"""
Database models and shared enumerations for the assessment engine.

Sessions, answers and results are the persisted aggregates the engine reads
and writes. Questions, indicators and blueprints belong to external
collaborators and are modelled as plain value objects elsewhere.
"""
from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship, validates
import enum
import uuid

from assessment_engine.core.datetime_utils import utc_now
from assessment_engine.core.exceptions import InvalidStateError

from .base import Base


class AssessmentGoal(str, enum.Enum):
    """Purpose of a test; selects both the distribution and scoring strategy."""

    OVERVIEW = "OVERVIEW"
    JOB_FIT = "JOB_FIT"
    TEAM_FIT = "TEAM_FIT"


class DifficultyLevel(str, enum.Enum):
    """Ordered question difficulty."""

    BASIC = "BASIC"
    INTERMEDIATE = "INTERMEDIATE"
    ADVANCED = "ADVANCED"
    EXPERT = "EXPERT"

    @property
    def rank(self) -> int:
        return _DIFFICULTY_ORDER.index(self)


_DIFFICULTY_ORDER = list(DifficultyLevel)


class QuestionType(str, enum.Enum):
    """Question type enumeration."""

    SINGLE_CHOICE = "SINGLE_CHOICE"
    MULTI_CHOICE = "MULTI_CHOICE"
    LIKERT = "LIKERT"
    RANKING = "RANKING"
    FREE_TEXT = "FREE_TEXT"


class SessionStatus(str, enum.Enum):
    """Test session lifecycle status."""

    NOT_STARTED = "NOT_STARTED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    ABANDONED = "ABANDONED"
    TIMED_OUT = "TIMED_OUT"


class ResultStatus(str, enum.Enum):
    """Scoring result status. PENDING and FAILED results can be retried."""

    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class ReliabilityStatus(str, enum.Enum):
    """Cronbach's alpha classification for a competency."""

    RELIABLE = "RELIABLE"
    ACCEPTABLE = "ACCEPTABLE"
    UNRELIABLE = "UNRELIABLE"
    INSUFFICIENT_DATA = "INSUFFICIENT_DATA"


def _new_id() -> str:
    return str(uuid.uuid4())


class TestSession(Base):
    """One taker's attempt at a test built from a template."""

    __test__ = False  # not a pytest test class
    __tablename__ = "test_sessions"

    id = Column(String(36), primary_key=True, default=_new_id)
    template_id = Column(String(64), nullable=False, index=True)
    taker_id = Column(String(64), nullable=True, index=True)  # NULL for anonymous takers
    status = Column(
        Enum(SessionStatus),
        default=SessionStatus.NOT_STARTED,
        nullable=False,
        index=True,
    )
    # Ordered question ids; assigned once when assembly finishes
    question_order = Column(JSON, nullable=True)
    current_index = Column(Integer, default=0, nullable=False)
    time_remaining_seconds = Column(Integer, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    started_at = Column(DateTime(timezone=True), nullable=True)
    last_activity_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    answers = relationship(
        "TestAnswer",
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="TestAnswer.id",
    )
    result = relationship(
        "TestResult",
        back_populates="session",
        uselist=False,
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("ix_test_sessions_template_status", "template_id", "status"),
    )

    def __init__(self, **kwargs):
        # Column defaults only apply at flush; the state machine works on
        # transient sessions too.
        kwargs.setdefault("id", _new_id())
        kwargs.setdefault("status", SessionStatus.NOT_STARTED)
        kwargs.setdefault("current_index", 0)
        kwargs.setdefault("created_at", utc_now())
        super().__init__(**kwargs)

    @validates("question_order")
    def _validate_question_order(self, key, value):
        if self.question_order is not None:
            raise InvalidStateError(
                f"Question order for session {self.id} is already set",
                current_state=self.status.value if self.status else None,
            )
        return list(value) if value is not None else None


class TestAnswer(Base):
    """
    A taker's answer to one question.

    Exactly one of the payload columns is populated, matching the question
    type; skipped answers populate none. ``score``/``max_score`` stay NULL
    until graded, and grading stamps the denormalised indicator and
    competency ids used by reliability queries.
    """

    __test__ = False  # not a pytest test class
    __tablename__ = "test_answers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(
        String(36),
        ForeignKey("test_sessions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    question_id = Column(String(64), nullable=False, index=True)

    selected_option_ids = Column(JSON, nullable=True)
    likert_value = Column(Integer, nullable=True)
    ranking_order = Column(JSON, nullable=True)
    text_response = Column(Text, nullable=True)
    # Fraction in [0, 1] assigned by an external grader to free-text answers
    manual_score = Column(Float, nullable=True)

    is_skipped = Column(Boolean, default=False, nullable=False)
    time_spent_seconds = Column(Integer, nullable=True)
    answered_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    score = Column(Float, nullable=True)
    max_score = Column(Float, nullable=True)
    indicator_id = Column(String(64), nullable=True)
    competency_id = Column(String(64), nullable=True, index=True)

    session = relationship("TestSession", back_populates="answers")

    __table_args__ = (
        UniqueConstraint("session_id", "question_id", name="uq_answer_session_question"),
    )

    def __init__(self, **kwargs):
        kwargs.setdefault("is_skipped", False)
        kwargs.setdefault("answered_at", utc_now())
        super().__init__(**kwargs)

    def populated_payloads(self) -> list[str]:
        """Names of the payload fields that carry a value."""
        payloads = {
            "selected_option_ids": self.selected_option_ids,
            "likert_value": self.likert_value,
            "ranking_order": self.ranking_order,
            "text_response": self.text_response,
        }
        return [name for name, value in payloads.items() if value is not None]


class TestResult(Base):
    """Scored outcome of a session (one-to-one)."""

    __test__ = False  # not a pytest test class
    __tablename__ = "test_results"

    id = Column(String(36), primary_key=True, default=_new_id)
    session_id = Column(
        String(36),
        ForeignKey("test_sessions.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    goal = Column(Enum(AssessmentGoal), nullable=True)
    status = Column(
        Enum(ResultStatus), default=ResultStatus.PENDING, nullable=False, index=True
    )

    overall_score = Column(Float, nullable=True)
    max_score = Column(Float, nullable=True)
    overall_percentage = Column(Float, nullable=True)
    percentile = Column(Integer, nullable=True)
    passed = Column(Boolean, nullable=True)
    competency_scores = Column(JSON, nullable=True)
    extended_metrics = Column(JSON, nullable=True)

    error_message = Column(Text, nullable=True)
    attempts = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    session = relationship("TestSession", back_populates="result")

    def __init__(self, **kwargs):
        kwargs.setdefault("id", _new_id())
        kwargs.setdefault("status", ResultStatus.PENDING)
        kwargs.setdefault("attempts", 0)
        kwargs.setdefault("created_at", utc_now())
        super().__init__(**kwargs)

    @property
    def is_retryable(self) -> bool:
        return self.status in (ResultStatus.PENDING, ResultStatus.FAILED)


class ScoringAuditLog(Base):
    """Snapshot of the inputs and outputs of one scoring run."""

    __tablename__ = "scoring_audit_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(String(36), nullable=False, index=True)
    result_id = Column(String(36), nullable=True)
    goal = Column(Enum(AssessmentGoal), nullable=False)
    indicator_weights = Column(JSON, nullable=False)
    config_snapshot = Column(JSON, nullable=False)
    competency_breakdown = Column(JSON, nullable=False)
    overall_percentage = Column(Float, nullable=False)
    passed = Column(Boolean, nullable=False)
    duration_ms = Column(Float, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)


class CompetencyReliabilityRecord(Base):
    """
    Latest reliability snapshot for a competency.

    Each analysis run replaces the whole row, including ``alpha_if_deleted``.
    """

    __tablename__ = "competency_reliability"

    competency_id = Column(String(64), primary_key=True)
    cronbach_alpha = Column(Float, nullable=True)
    sample_size = Column(Integer, nullable=False)
    item_count = Column(Integer, nullable=False)
    status = Column(Enum(ReliabilityStatus), nullable=False)
    alpha_if_deleted = Column(JSON, nullable=False)
    last_calculated_at = Column(DateTime(timezone=True), nullable=False)
