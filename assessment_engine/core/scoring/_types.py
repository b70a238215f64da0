"""
TypedDict definitions for scoring breakdowns.

Breakdowns are stored as JSON on ``TestResult.competency_scores`` and copied
into audit snapshots, so they are plain dicts rather than objects.
"""

from typing import List, Optional, TypedDict


class IndicatorScore(TypedDict):
    """
    Score for one indicator within a competency.

    Fields:
        indicator_id: Indicator identifier.
        score: Sum of awarded points.
        max_score: Sum of available points.
        percentage: score / max_score * 100, or 0.0 when max_score is 0.
        weight: Indicator weight used for the competency mean.
        question_count: Number of answers graded for this indicator.
        proficiency_label: Band label for ``percentage``.
    """

    indicator_id: str
    score: float
    max_score: float
    percentage: float
    weight: float
    question_count: int
    proficiency_label: str


class CompetencyScore(TypedDict):
    """
    Score for one competency.

    Fields:
        competency_id: Competency identifier.
        name: Display name from the blueprint (falls back to the id).
        score: Sum of awarded points across the competency's answers.
        max_score: Sum of available points.
        percentage: Indicator-weighted mean of indicator percentages.
        weight: Blueprint weight used for the overall mean.
        question_count: Number of answers graded for this competency.
        proficiency_label: Band label for ``percentage``.
        insufficient_evidence: True when fewer answers than the configured
            minimum back this score.
        indicator_scores: Per-indicator breakdown.
    """

    competency_id: str
    name: str
    score: float
    max_score: float
    percentage: float
    weight: float
    question_count: int
    proficiency_label: str
    insufficient_evidence: bool
    indicator_scores: List[IndicatorScore]


class BenchmarkGap(TypedDict):
    """JOB_FIT comparison of one competency against its role benchmark."""

    competency_id: str
    benchmark: float
    percentage: float
    gap: float
    meets_benchmark: bool


class TeamContribution(TypedDict):
    """TEAM_FIT classification of one competency."""

    competency_id: str
    percentage: float
    team_saturation: Optional[float]
    contribution: str  # "SATURATION", "DIVERSITY" or "GAP"
