"""
Goal-specific scoring strategies.

The aggregation pipeline is shared; a strategy adds the goal's extended
metrics on top of the competency breakdown:

    OVERVIEW  profile pattern (signature strengths ... critical gaps)
    JOB_FIT   gaps against role benchmarks and overall fit
    TEAM_FIT  how the candidate covers the team's saturation gaps

Pass/fail is decided by the blueprint's passing score for every goal;
strategies only describe the result.
"""
from typing import Any, Dict, List, Optional, Protocol, Sequence

from assessment_engine.core.exceptions import ConfigurationError
from assessment_engine.models.models import AssessmentGoal
from assessment_engine.schemas.blueprint import ScoringConfig, TestBlueprint

from ._types import BenchmarkGap, CompetencyScore, TeamContribution


PROFILE_CATEGORIES = (
    "SIGNATURE_STRENGTH",
    "STRENGTH",
    "DEVELOPING",
    "AVERAGE",
    "CRITICAL_GAP",
)


class ScoringStrategy(Protocol):
    """Protocol for goal-specific result interpretation."""

    goal: AssessmentGoal

    def extended_metrics(
        self,
        breakdown: Sequence[CompetencyScore],
        overall_pct: float,
        blueprint: TestBlueprint,
        config: ScoringConfig,
    ) -> Dict[str, Any]:
        ...


class OverviewScoringStrategy:
    """
    Broad profile across all competencies.

    A competency is a signature strength when it is a strength and sits at
    least ``profile_band_width`` points above the overall percentage.
    """

    goal = AssessmentGoal.OVERVIEW

    def categorize(self, pct: float, overall_pct: float, config: ScoringConfig) -> str:
        if (
            pct >= overall_pct + config.profile_band_width
            and pct >= config.strength_threshold
        ):
            return "SIGNATURE_STRENGTH"
        if pct >= config.strength_threshold:
            return "STRENGTH"
        if pct < config.critical_gap_threshold:
            return "CRITICAL_GAP"
        if pct >= config.development_threshold:
            return "DEVELOPING"
        return "AVERAGE"

    def extended_metrics(self, breakdown, overall_pct, blueprint, config):
        pattern: Dict[str, List[str]] = {category: [] for category in PROFILE_CATEGORIES}
        for competency in breakdown:
            category = self.categorize(competency["percentage"], overall_pct, config)
            pattern[category].append(competency["competency_id"])

        return {
            "profile_pattern": {k: v for k, v in pattern.items() if v},
            "low_evidence_competencies": [
                c["competency_id"] for c in breakdown if c["insufficient_evidence"]
            ],
        }


class JobFitScoringStrategy:
    """Compare each competency with its role benchmark."""

    goal = AssessmentGoal.JOB_FIT

    def extended_metrics(self, breakdown, overall_pct, blueprint, config):
        gaps: List[BenchmarkGap] = []
        for competency in breakdown:
            ref = blueprint.competency(competency["competency_id"])
            if ref is None or ref.benchmark is None:
                continue
            gap = competency["percentage"] - ref.benchmark
            gaps.append(
                BenchmarkGap(
                    competency_id=competency["competency_id"],
                    benchmark=ref.benchmark,
                    percentage=competency["percentage"],
                    gap=gap,
                    meets_benchmark=gap >= 0,
                )
            )

        fit_ratio: Optional[float] = None
        if gaps:
            fit_ratio = sum(1 for g in gaps if g["meets_benchmark"]) / len(gaps)

        return {
            "benchmark_gaps": gaps,
            "fit_ratio": fit_ratio,
            "largest_gap": (
                min(gaps, key=lambda g: g["gap"])["competency_id"] if gaps else None
            ),
            "meets_job_requirements": overall_pct / 100.0 >= config.job_fit_base_threshold,
        }


class TeamFitScoringStrategy:
    """
    Describe how the candidate would change team coverage.

    Each competency is classified by the candidate's percentage:
    SATURATION (at or above the saturation threshold), DIVERSITY (at or above
    the diversity threshold) or GAP. ``gap_coverage`` weights the candidate's
    percentages by how uncovered each competency is in the team
    (``1 - saturation``).
    """

    goal = AssessmentGoal.TEAM_FIT

    def extended_metrics(self, breakdown, overall_pct, blueprint, config):
        contributions: List[TeamContribution] = []
        diversity = saturation = 0
        gap_weighted = 0.0
        gap_weight_total = 0.0

        for competency in breakdown:
            pct = competency["percentage"]
            ref = blueprint.competency(competency["competency_id"])
            team_saturation = ref.saturation if ref is not None else None

            if pct >= config.team_saturation_threshold * 100:
                contribution = "SATURATION"
                saturation += 1
            elif pct >= config.team_diversity_threshold * 100:
                contribution = "DIVERSITY"
                diversity += 1
            else:
                contribution = "GAP"

            if team_saturation is not None:
                gap_weighted += (1.0 - team_saturation) * pct / 100.0
                gap_weight_total += 1.0 - team_saturation

            contributions.append(
                TeamContribution(
                    competency_id=competency["competency_id"],
                    percentage=pct,
                    team_saturation=team_saturation,
                    contribution=contribution,
                )
            )

        count = len(breakdown)
        diversity_ratio = diversity / count if count else 0.0
        saturation_ratio = saturation / count if count else 0.0

        multiplier = 1.0
        if (
            diversity_ratio > config.team_diversity_bonus_threshold
            and saturation_ratio < 1.0 - config.team_diversity_bonus_threshold
        ):
            multiplier = config.team_diversity_bonus
        elif saturation_ratio > config.team_saturation_penalty_threshold:
            multiplier = config.team_saturation_penalty
        adjusted = min(100.0, overall_pct * multiplier)

        return {
            "contributions": contributions,
            "diversity_ratio": diversity_ratio,
            "saturation_ratio": saturation_ratio,
            "gap_count": count - diversity - saturation,
            "team_fit_multiplier": multiplier,
            "adjusted_percentage": adjusted,
            "gap_coverage": gap_weighted / gap_weight_total if gap_weight_total > 0 else None,
            "adds_team_value": (
                adjusted >= config.team_value_threshold * 100
                and diversity_ratio >= config.team_min_diversity_ratio
            ),
        }


# Static goal -> strategy table
_STRATEGIES: Dict[AssessmentGoal, ScoringStrategy] = {
    AssessmentGoal.OVERVIEW: OverviewScoringStrategy(),
    AssessmentGoal.JOB_FIT: JobFitScoringStrategy(),
    AssessmentGoal.TEAM_FIT: TeamFitScoringStrategy(),
}


def scoring_strategy_for_goal(goal: AssessmentGoal) -> ScoringStrategy:
    try:
        return _STRATEGIES[AssessmentGoal(goal)]
    except (KeyError, ValueError) as e:
        raise ConfigurationError(f"No scoring strategy for goal {goal!r}") from e
