r"""
Cronbach's alpha for competency internal consistency.

Alpha tells how consistently the items (questions) of a competency measure
the same construct. A low alpha, or an item whose removal raises alpha,
points at questions that should be reviewed.

Formula:
    α = (k / (k-1)) × (1 - Σσ²ᵢ / σ²ₜ)

Where:
    k = number of items
    σ²ᵢ = sample variance of item i across sessions
    σ²ₜ = sample variance of the per-session total score

Data preparation:
    - Sessions that answered fewer than RELIABILITY_RESPONSE_COMPLETENESS of
      the competency's items are dropped.
    - Missing items in the remaining sessions count as 0.

Floors:
    Alpha is only reported with at least RELIABILITY_MIN_SESSIONS sessions and
    RELIABILITY_MIN_ITEMS items. Below the floor the status is
    INSUFFICIENT_DATA and alpha is None; analysis never raises for small
    samples.

Usage Example:
    from assessment_engine.core.reliability import analyze

    reliability = analyze("communication", {
        "session-1": {"q1": 1.0, "q2": 0.5, "q3": 1.0},
        ...
    })
    reliability.status, reliability.cronbach_alpha
    reliability.most_problematic_item
"""

import logging
import statistics
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from assessment_engine.core.config import settings
from assessment_engine.models.models import ReliabilityStatus

from ._types import CompetencyReliability

logger = logging.getLogger(__name__)

# Alpha needs two items, so deleting one needs three
MIN_ITEMS_FOR_ALPHA_IF_DELETED = 3

SessionScores = Mapping[str, Mapping[str, float]]


def cronbach_alpha(rows: Sequence[Sequence[float]]) -> Optional[float]:
    """
    Alpha for a session x item matrix.

    Returns None with fewer than two sessions or items, or when the total
    score has zero variance.
    """
    if len(rows) < 2:
        return None
    k = len(rows[0])
    if k < 2:
        return None

    item_variances = [statistics.variance([row[i] for row in rows]) for i in range(k)]
    total_variance = statistics.variance([sum(row) for row in rows])
    if total_variance == 0:
        return None

    return (k / (k - 1)) * (1 - sum(item_variances) / total_variance)


def alpha_if_deleted(
    rows: Sequence[Sequence[float]], item_ids: Sequence[str]
) -> Dict[str, Optional[float]]:
    """Alpha recomputed without each item in turn (requires k >= 3)."""
    k = len(item_ids)
    if k < MIN_ITEMS_FOR_ALPHA_IF_DELETED:
        return {}

    result: Dict[str, Optional[float]] = {}
    for index, item_id in enumerate(item_ids):
        reduced = [[v for j, v in enumerate(row) if j != index] for row in rows]
        result[item_id] = cronbach_alpha(reduced)
    return result


def determine_status(
    alpha: Optional[float],
    sample_size: int,
    item_count: int,
    *,
    min_sessions: Optional[int] = None,
    min_items: Optional[int] = None,
) -> ReliabilityStatus:
    """Classify alpha, honouring the sample and item floors."""
    if min_sessions is None:
        min_sessions = settings.RELIABILITY_MIN_SESSIONS
    if min_items is None:
        min_items = settings.RELIABILITY_MIN_ITEMS

    if sample_size < min_sessions or item_count < min_items or alpha is None:
        return ReliabilityStatus.INSUFFICIENT_DATA
    if alpha >= settings.ALPHA_RELIABLE_THRESHOLD:
        return ReliabilityStatus.RELIABLE
    if alpha >= settings.ALPHA_ACCEPTABLE_THRESHOLD:
        return ReliabilityStatus.ACCEPTABLE
    return ReliabilityStatus.UNRELIABLE


def build_item_matrix(
    session_scores: SessionScores, completeness: Optional[float] = None
) -> Tuple[List[str], List[List[float]]]:
    """
    Turn ``session -> item -> score`` into (sorted item ids, rows).

    Sessions below the completeness ratio are dropped; missing items in
    kept sessions are filled with 0.
    """
    if completeness is None:
        completeness = settings.RELIABILITY_RESPONSE_COMPLETENESS
    item_ids = sorted({item for scores in session_scores.values() for item in scores})
    if not item_ids:
        return [], []

    required = completeness * len(item_ids)
    rows: List[List[float]] = []
    dropped = 0
    for session_id in sorted(session_scores):
        scores = session_scores[session_id]
        if len(scores) < required:
            dropped += 1
            continue
        rows.append([float(scores.get(item, 0.0)) for item in item_ids])

    if dropped:
        logger.debug(
            f"Dropped {dropped} sessions answering fewer than "
            f"{completeness:.0%} of {len(item_ids)} items"
        )
    return item_ids, rows


def analyze(
    competency_id: str,
    session_scores: SessionScores,
    *,
    min_sessions: Optional[int] = None,
    min_items: Optional[int] = None,
    completeness: Optional[float] = None,
) -> CompetencyReliability:
    """
    Compute the reliability snapshot for one competency.

    Args:
        competency_id: Competency being analysed.
        session_scores: session id -> item id -> score.
        min_sessions: Override for RELIABILITY_MIN_SESSIONS.
        min_items: Override for RELIABILITY_MIN_ITEMS.
        completeness: Override for RELIABILITY_RESPONSE_COMPLETENESS.

    Returns:
        CompetencyReliability; INSUFFICIENT_DATA with alpha None below floors.
    """
    if min_sessions is None:
        min_sessions = settings.RELIABILITY_MIN_SESSIONS
    if min_items is None:
        min_items = settings.RELIABILITY_MIN_ITEMS

    item_ids, rows = build_item_matrix(session_scores, completeness)
    sample_size = len(rows)
    item_count = len(item_ids)

    alpha: Optional[float] = None
    deleted: Dict[str, Optional[float]] = {}
    if sample_size >= min_sessions and item_count >= min_items:
        alpha = cronbach_alpha(rows)
        if alpha is not None:
            deleted = alpha_if_deleted(rows, item_ids)
        else:
            logger.warning(
                f"Competency {competency_id}: total score has zero variance; "
                f"alpha undefined"
            )

    status = determine_status(
        alpha, sample_size, item_count, min_sessions=min_sessions, min_items=min_items
    )
    reliability = CompetencyReliability(
        competency_id=competency_id,
        cronbach_alpha=alpha,
        sample_size=sample_size,
        item_count=item_count,
        status=status,
        alpha_if_deleted=deleted,
    )

    if alpha is None:
        logger.info(
            f"Competency {competency_id}: {status.value} "
            f"(sessions={sample_size}, items={item_count})"
        )
    else:
        logger.info(
            f"Competency {competency_id}: alpha={alpha:.4f} {status.value} "
            f"(sessions={sample_size}, items={item_count}, "
            f"most problematic={reliability.most_problematic_item})"
        )
    return reliability
