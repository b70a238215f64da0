"""
Loads per-session item scores for reliability analysis.

Only sessions that can be scored (COMPLETED or TIMED_OUT) contribute, and
only answers that have actually been graded. Scores are normalised to
``score / max_score`` so items with different point values are comparable.
"""

import logging
from typing import Dict

from sqlalchemy import select
from sqlalchemy.orm import Session

from assessment_engine.core.session_state import SCORABLE_STATUSES
from assessment_engine.models.models import TestAnswer, TestSession

logger = logging.getLogger(__name__)


def load_competency_scores(db: Session, competency_id: str) -> Dict[str, Dict[str, float]]:
    """
    Return ``session id -> question id -> normalised score`` for a competency.

    Args:
        db: Database session for queries
        competency_id: Competency whose graded answers are loaded

    Returns:
        Nested mapping; sessions with no graded answers are absent.
    """
    stmt = (
        select(
            TestAnswer.session_id,
            TestAnswer.question_id,
            TestAnswer.score,
            TestAnswer.max_score,
        )
        .join(TestSession, TestAnswer.session_id == TestSession.id)
        .filter(
            TestSession.status.in_(list(SCORABLE_STATUSES)),
            TestAnswer.competency_id == competency_id,
            TestAnswer.score.isnot(None),
        )
        .order_by(TestAnswer.session_id, TestAnswer.id)
    )

    scores: Dict[str, Dict[str, float]] = {}
    for row in db.execute(stmt):
        max_score = row.max_score or 0.0
        value = row.score / max_score if max_score > 0 else 0.0
        scores.setdefault(row.session_id, {})[row.question_id] = value

    logger.debug(
        f"Loaded {len(scores)} scored sessions for competency {competency_id}"
    )
    return scores
