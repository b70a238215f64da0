"""
Session scoring: grading, aggregation, goal strategies and result lifecycle.

Usage:
    from assessment_engine.core.scoring import ScoringOrchestrator

    orchestrator = ScoringOrchestrator(inventory, publisher=bus, population=norms)
    result = orchestrator.score(session, blueprint)
    result.overall_percentage, result.passed, result.competency_scores

    # A FAILED or PENDING result can be re-scored from the same answers
    orchestrator.retry(result, session, blueprint)
"""

from ._types import BenchmarkGap, CompetencyScore, IndicatorScore, TeamContribution
from .aggregation import overall_percentage, score_competencies, weighted_mean
from .normalization import (
    GradedAnswer,
    grade_answer,
    percentage,
    proficiency_label,
)
from .orchestrator import ResultStore, ScoringOrchestrator, ScoringOutcome
from .percentile import (
    EmpiricalPopulationReference,
    NormalPopulationReference,
    PopulationReference,
)
from .strategies import (
    JobFitScoringStrategy,
    OverviewScoringStrategy,
    ScoringStrategy,
    TeamFitScoringStrategy,
    scoring_strategy_for_goal,
)

__all__ = [
    "BenchmarkGap",
    "CompetencyScore",
    "IndicatorScore",
    "TeamContribution",
    "overall_percentage",
    "score_competencies",
    "weighted_mean",
    "GradedAnswer",
    "grade_answer",
    "percentage",
    "proficiency_label",
    "ResultStore",
    "ScoringOrchestrator",
    "ScoringOutcome",
    "EmpiricalPopulationReference",
    "NormalPopulationReference",
    "PopulationReference",
    "JobFitScoringStrategy",
    "OverviewScoringStrategy",
    "ScoringStrategy",
    "TeamFitScoringStrategy",
    "scoring_strategy_for_goal",
]
