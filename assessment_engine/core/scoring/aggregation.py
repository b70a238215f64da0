"""
Score aggregation: answers -> indicators -> competencies -> overall.

    indicator %   = sum(score) / sum(max) * 100
    competency %  = sum(indicator % * indicator weight) / sum(indicator weight)
    overall %     = sum(competency % * blueprint weight) / sum(blueprint weight)

When every weight in a mean is zero the plain average is used instead.
Competencies missing from the blueprint carry weight 0 and are reported but
do not move the overall percentage.
"""
import logging
from collections import OrderedDict
from typing import Dict, List, Mapping, Sequence, Tuple

from assessment_engine.schemas.blueprint import ScoringConfig, TestBlueprint

from ._types import CompetencyScore, IndicatorScore
from .normalization import GradedAnswer, percentage, proficiency_label

logger = logging.getLogger(__name__)


def weighted_mean(values: Sequence[Tuple[float, float]]) -> float:
    """Mean of (value, weight) pairs; plain mean when all weights are 0."""
    if not values:
        return 0.0
    total_weight = sum(weight for _, weight in values)
    if total_weight <= 0:
        return sum(value for value, _ in values) / len(values)
    return sum(value * weight for value, weight in values) / total_weight


def score_indicators(
    graded: Sequence[GradedAnswer], indicator_weights: Mapping[str, float]
) -> "OrderedDict[str, IndicatorScore]":
    """Per-indicator sums, in first-seen order."""
    sums: "OrderedDict[str, List[float]]" = OrderedDict()
    for item in graded:
        bucket = sums.setdefault(item.indicator_id, [0.0, 0.0, 0])
        bucket[0] += item.score
        bucket[1] += item.max_score
        bucket[2] += 1

    scores: "OrderedDict[str, IndicatorScore]" = OrderedDict()
    for indicator_id, (score, max_score, count) in sums.items():
        pct = percentage(score, max_score)
        scores[indicator_id] = IndicatorScore(
            indicator_id=indicator_id,
            score=score,
            max_score=max_score,
            percentage=pct,
            weight=indicator_weights.get(indicator_id, 1.0),
            question_count=int(count),
            proficiency_label=proficiency_label(pct),
        )
    return scores


def score_competencies(
    graded: Sequence[GradedAnswer],
    indicator_weights: Mapping[str, float],
    blueprint: TestBlueprint,
    config: ScoringConfig,
) -> List[CompetencyScore]:
    """
    Build the competency breakdown.

    Blueprint competencies come first in blueprint order; any other
    competency that received answers follows in first-seen order.
    """
    indicator_scores = score_indicators(graded, indicator_weights)

    by_competency: Dict[str, List[str]] = OrderedDict()
    answers_per_competency: Dict[str, int] = {}
    for item in graded:
        indicators = by_competency.setdefault(item.competency_id, [])
        if item.indicator_id not in indicators:
            indicators.append(item.indicator_id)
        answers_per_competency[item.competency_id] = (
            answers_per_competency.get(item.competency_id, 0) + 1
        )

    ordered_ids = [
        ref.competency_id
        for ref in blueprint.competencies
        if ref.competency_id in by_competency
    ]
    ordered_ids += [cid for cid in by_competency if blueprint.competency(cid) is None]

    breakdown: List[CompetencyScore] = []
    for competency_id in ordered_ids:
        ref = blueprint.competency(competency_id)
        if ref is None:
            logger.warning(
                f"Answers reference competency {competency_id} which is not in the "
                f"blueprint; it is reported with weight 0"
            )
        indicators = [indicator_scores[iid] for iid in by_competency[competency_id]]
        pct = weighted_mean([(ind["percentage"], ind["weight"]) for ind in indicators])
        count = answers_per_competency[competency_id]
        breakdown.append(
            CompetencyScore(
                competency_id=competency_id,
                name=ref.label if ref is not None else competency_id,
                score=sum(ind["score"] for ind in indicators),
                max_score=sum(ind["max_score"] for ind in indicators),
                percentage=pct,
                weight=ref.weight if ref is not None else 0.0,
                question_count=count,
                proficiency_label=proficiency_label(pct),
                insufficient_evidence=count < config.min_questions_per_competency,
                indicator_scores=indicators,
            )
        )
    return breakdown


def overall_percentage(breakdown: Sequence[CompetencyScore]) -> float:
    return weighted_mean([(c["percentage"], c["weight"]) for c in breakdown])
