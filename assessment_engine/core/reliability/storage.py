"""
Competency reliability persistence.

One row per competency holds the latest snapshot. Storing a new snapshot
replaces every field of the previous one; stale ``alpha_if_deleted`` entries
from earlier analyses are never merged into the new row.

Usage Example:
    from assessment_engine.core.reliability import (
        get_competency_reliability,
        refresh_competency_reliability,
    )

    reliability = refresh_competency_reliability(db, "communication")
    stored = get_competency_reliability(db, "communication")
    stored.status, stored.most_problematic_item
"""

import logging
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from assessment_engine.core.datetime_utils import ensure_timezone_aware
from assessment_engine.models.models import CompetencyReliabilityRecord
from assessment_engine.observability import metrics

from ._data_loader import load_competency_scores
from ._types import CompetencyReliability
from .cronbach import analyze

logger = logging.getLogger(__name__)


def _to_reliability(record: CompetencyReliabilityRecord) -> CompetencyReliability:
    return CompetencyReliability(
        competency_id=record.competency_id,
        cronbach_alpha=record.cronbach_alpha,
        sample_size=record.sample_size,
        item_count=record.item_count,
        status=record.status,
        alpha_if_deleted=dict(record.alpha_if_deleted or {}),
        last_calculated_at=ensure_timezone_aware(record.last_calculated_at),
    )


def store_competency_reliability(
    db: Session,
    reliability: CompetencyReliability,
    commit: bool = True,
) -> CompetencyReliabilityRecord:
    """
    Store ``reliability`` as the competency's current snapshot.

    Args:
        db: Database session
        reliability: Snapshot produced by ``analyze``
        commit: Commit immediately. Set to False when batching several
            competencies in one transaction (caller must commit).

    Returns:
        The stored CompetencyReliabilityRecord
    """
    record = db.get(CompetencyReliabilityRecord, reliability.competency_id)
    if record is None:
        record = CompetencyReliabilityRecord(competency_id=reliability.competency_id)
        db.add(record)

    record.cronbach_alpha = reliability.cronbach_alpha
    record.sample_size = reliability.sample_size
    record.item_count = reliability.item_count
    record.status = reliability.status
    record.alpha_if_deleted = dict(reliability.alpha_if_deleted)
    record.last_calculated_at = reliability.last_calculated_at

    if commit:
        db.commit()
        db.refresh(record)
    else:
        db.flush()

    logger.info(
        f"Stored reliability for competency {reliability.competency_id}: "
        f"status={reliability.status.value}, sample_size={reliability.sample_size}"
        f"{'' if commit else ' (uncommitted)'}"
    )
    return record


def get_competency_reliability(
    db: Session, competency_id: str
) -> Optional[CompetencyReliability]:
    """Latest stored snapshot for ``competency_id``, or None."""
    record = db.get(CompetencyReliabilityRecord, competency_id)
    if record is None:
        return None
    return _to_reliability(record)


def list_competency_reliability(db: Session) -> List[CompetencyReliability]:
    """All stored snapshots ordered by competency id."""
    records = db.scalars(
        select(CompetencyReliabilityRecord).order_by(
            CompetencyReliabilityRecord.competency_id
        )
    ).all()
    return [_to_reliability(record) for record in records]


def refresh_competency_reliability(
    db: Session,
    competency_id: str,
    *,
    min_sessions: Optional[int] = None,
    min_items: Optional[int] = None,
    completeness: Optional[float] = None,
    commit: bool = True,
) -> CompetencyReliability:
    """
    Recompute and store reliability for one competency from scored sessions.

    Intended for a periodic batch job; the analysis reads every scored
    answer for the competency.
    """
    session_scores = load_competency_scores(db, competency_id)
    reliability = analyze(
        competency_id,
        session_scores,
        min_sessions=min_sessions,
        min_items=min_items,
        completeness=completeness,
    )
    store_competency_reliability(db, reliability, commit=commit)
    metrics.record_reliability_analysis(
        status=reliability.status.value, sample_size=reliability.sample_size
    )
    return reliability
