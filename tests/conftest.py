"""
Pytest configuration and shared fixtures for testing.
"""
import logging
from typing import Dict, List, Optional
from unittest.mock import MagicMock

import pytest
from sqlalchemy.orm import sessionmaker

from assessment_engine.core.events import RecordingPublisher
from assessment_engine.core.inventory import Indicator, InMemoryQuestionInventory, Question
from assessment_engine.models import Base
from assessment_engine.models.base import create_db_engine
from assessment_engine.models.models import AssessmentGoal, DifficultyLevel, QuestionType
from assessment_engine.schemas.blueprint import CompetencyRef, TestBlueprint

_LEVELS = list(DifficultyLevel)


def make_question(
    question_id: str,
    indicator_id: str,
    competency_id: str,
    difficulty: DifficultyLevel = DifficultyLevel.INTERMEDIATE,
    **kwargs,
) -> Question:
    """Single-choice question with options a-d where ``a`` is correct."""
    kwargs.setdefault("option_ids", ("a", "b", "c", "d"))
    kwargs.setdefault("correct_option_ids", ("a",))
    return Question(
        id=question_id,
        indicator_id=indicator_id,
        competency_id=competency_id,
        difficulty=difficulty,
        question_type=kwargs.pop("question_type", QuestionType.SINGLE_CHOICE),
        **kwargs,
    )


def build_inventory(
    layout: Dict[str, Dict[str, int]],
    *,
    indicator_weights: Optional[Dict[str, float]] = None,
    recommended_per_competency: Optional[int] = None,
) -> InMemoryQuestionInventory:
    """
    Build an inventory from ``{competency: {indicator: question_count}}``.

    Question ids are ``<indicator>-q<n>``; difficulties cycle BASIC..EXPERT.
    """
    indicator_weights = indicator_weights or {}
    indicators: List[Indicator] = []
    questions: List[Question] = []
    for competency_id, layout_indicators in layout.items():
        for indicator_id, count in layout_indicators.items():
            indicators.append(
                Indicator(
                    id=indicator_id,
                    competency_id=competency_id,
                    weight=indicator_weights.get(indicator_id, 1.0),
                )
            )
            for n in range(count):
                questions.append(
                    make_question(
                        f"{indicator_id}-q{n}",
                        indicator_id,
                        competency_id,
                        difficulty=_LEVELS[n % len(_LEVELS)],
                    )
                )
    return InMemoryQuestionInventory(
        indicators, questions, recommended_per_competency=recommended_per_competency
    )


@pytest.fixture(scope="function")
def db_session():
    """
    Create a fresh in-memory database session for each test.
    """
    engine = create_db_engine("sqlite:///:memory:")
    Base.metadata.create_all(bind=engine)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def mock_logger():
    """Logger double for asserting log calls."""
    return MagicMock(spec=logging.Logger)


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
def inventory():
    """Three competencies with two indicators each and plenty of questions."""
    return build_inventory(
        {
            "communication": {"comm-clarity": 6, "comm-listening": 6},
            "leadership": {"lead-vision": 6, "lead-delegation": 6},
            "analysis": {"analysis-data": 6, "analysis-logic": 6},
        }
    )


@pytest.fixture
def overview_blueprint():
    return TestBlueprint(
        goal=AssessmentGoal.OVERVIEW,
        competencies=[
            CompetencyRef(competency_id="communication"),
            CompetencyRef(competency_id="leadership"),
            CompetencyRef(competency_id="analysis"),
        ],
        total_questions=9,
        passing_score=60.0,
    )


@pytest.fixture
def job_fit_blueprint():
    return TestBlueprint(
        goal=AssessmentGoal.JOB_FIT,
        competencies=[
            CompetencyRef(competency_id="communication", weight=0.5, benchmark=70.0),
            CompetencyRef(competency_id="leadership", weight=0.3, benchmark=60.0),
            CompetencyRef(competency_id="analysis", weight=0.2, benchmark=50.0),
        ],
        total_questions=10,
    )


@pytest.fixture
def team_fit_blueprint():
    return TestBlueprint(
        goal=AssessmentGoal.TEAM_FIT,
        competencies=[
            CompetencyRef(competency_id="communication", saturation=0.9, max_questions=4),
            CompetencyRef(competency_id="leadership", saturation=0.2, max_questions=4),
            CompetencyRef(competency_id="analysis", saturation=0.5, max_questions=4),
        ],
        total_questions=6,
    )
