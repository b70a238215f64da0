r"""
Internal-consistency reliability of competencies.

Cronbach's alpha is computed per competency over the graded answers of
scored sessions, together with alpha-if-item-deleted so weak questions can
be found.

Usage Example
-------------
    from assessment_engine.core.reliability import analyze, refresh_competency_reliability

    # From raw scores
    reliability = analyze("communication", session_scores)
    if reliability.status == ReliabilityStatus.UNRELIABLE:
        print(f"Review item {reliability.most_problematic_item}")

    # From the database, storing the snapshot
    reliability = refresh_competency_reliability(db, "communication")
"""

from ._data_loader import load_competency_scores
from ._types import CompetencyReliability
from .cronbach import (
    MIN_ITEMS_FOR_ALPHA_IF_DELETED,
    alpha_if_deleted,
    analyze,
    build_item_matrix,
    cronbach_alpha,
    determine_status,
)
from .storage import (
    get_competency_reliability,
    list_competency_reliability,
    refresh_competency_reliability,
    store_competency_reliability,
)

__all__ = [
    "CompetencyReliability",
    "MIN_ITEMS_FOR_ALPHA_IF_DELETED",
    "alpha_if_deleted",
    "analyze",
    "build_item_matrix",
    "cronbach_alpha",
    "determine_status",
    "load_competency_scores",
    "get_competency_reliability",
    "list_competency_reliability",
    "refresh_competency_reliability",
    "store_competency_reliability",
]
