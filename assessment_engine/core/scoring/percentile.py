"""
Population references for percentile ranks.

Percentiles are best-effort: a reference may return None when it has no
norms for a goal, and the orchestrator treats any exception as "no
percentile" rather than a scoring failure.

Two references are provided:
- ``NormalPopulationReference``: per-goal normal norms (mean, sd) evaluated
  with ``scipy.stats.norm.cdf``.
- ``EmpiricalPopulationReference``: rank among previously recorded scores,
  ``below / n * 100`` where ``n`` is the number of prior scores; 50 when there
  is no history yet.
"""
import threading
from typing import Dict, List, Mapping, Optional, Protocol, Tuple

from scipy.stats import norm

from assessment_engine.models.models import AssessmentGoal


NO_HISTORY_PERCENTILE = 50


class PopulationReference(Protocol):
    def percentile_for(self, goal: AssessmentGoal, score_pct: float) -> Optional[int]:
        ...


class NormalPopulationReference:
    """Percentile from a normal approximation of each goal's score distribution."""

    def __init__(self, norms: Mapping[AssessmentGoal, Tuple[float, float]]):
        for goal, (_, sd) in norms.items():
            if sd <= 0:
                raise ValueError(f"Standard deviation for {goal} must be positive")
        self._norms: Dict[AssessmentGoal, Tuple[float, float]] = {
            AssessmentGoal(goal): params for goal, params in norms.items()
        }

    def percentile_for(self, goal: AssessmentGoal, score_pct: float) -> Optional[int]:
        params = self._norms.get(AssessmentGoal(goal))
        if params is None:
            return None
        mean, sd = params
        percentile = norm.cdf((score_pct - mean) / sd) * 100
        return int(round(max(0.0, min(100.0, percentile))))


class EmpiricalPopulationReference:
    """Rank a score against previously recorded scores for the same goal."""

    def __init__(self, history: Optional[Mapping[AssessmentGoal, List[float]]] = None):
        self._history: Dict[AssessmentGoal, List[float]] = {
            AssessmentGoal(goal): list(scores) for goal, scores in (history or {}).items()
        }
        self._lock = threading.Lock()

    def record(self, goal: AssessmentGoal, score_pct: float) -> None:
        with self._lock:
            self._history.setdefault(AssessmentGoal(goal), []).append(score_pct)

    def percentile_for(self, goal: AssessmentGoal, score_pct: float) -> Optional[int]:
        scores = self._history.get(AssessmentGoal(goal), [])
        if not scores:
            return NO_HISTORY_PERCENTILE
        below = sum(1 for s in scores if s < score_pct)
        return int(round(below / len(scores) * 100))
