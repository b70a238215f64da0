"""
Database models package.
"""
from .base import Base, create_db_engine, create_session_factory
from .models import (
    AssessmentGoal,
    CompetencyReliabilityRecord,
    DifficultyLevel,
    QuestionType,
    ReliabilityStatus,
    ResultStatus,
    ScoringAuditLog,
    SessionStatus,
    TestAnswer,
    TestResult,
    TestSession,
)

__all__ = [
    "Base",
    "create_db_engine",
    "create_session_factory",
    "AssessmentGoal",
    "CompetencyReliabilityRecord",
    "DifficultyLevel",
    "QuestionType",
    "ReliabilityStatus",
    "ResultStatus",
    "ScoringAuditLog",
    "SessionStatus",
    "TestAnswer",
    "TestResult",
    "TestSession",
]
