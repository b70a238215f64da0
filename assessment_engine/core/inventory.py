"""
Question inventory collaborator.

The engine does not own questions or indicators; it reads them through the
``QuestionInventory`` protocol. ``InMemoryQuestionInventory`` is the
reference implementation used by the simulator and the tests.
"""
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Protocol, Sequence, Tuple

from assessment_engine.core.config import settings
from assessment_engine.models.models import DifficultyLevel, QuestionType


HEALTH_HEALTHY = "HEALTHY"
HEALTH_MODERATE = "MODERATE"
HEALTH_CRITICAL = "CRITICAL"


@dataclass(frozen=True)
class Indicator:
    """Observable behaviour under a competency; unit of scoring."""

    id: str
    competency_id: str
    weight: float = 1.0
    is_active: bool = True
    title: Optional[str] = None


@dataclass(frozen=True)
class Question:
    """
    A question with its scoring rubric.

    Which rubric fields matter depends on ``question_type``:
    SINGLE_CHOICE / MULTI_CHOICE use ``correct_option_ids``, RANKING uses
    ``correct_order``, LIKERT uses ``reverse_scored``, FREE_TEXT relies on an
    external grader.
    """

    id: str
    indicator_id: str
    competency_id: str
    difficulty: DifficultyLevel = DifficultyLevel.INTERMEDIATE
    question_type: QuestionType = QuestionType.SINGLE_CHOICE
    time_limit_seconds: Optional[int] = None
    is_active: bool = True
    option_ids: Tuple[str, ...] = ()
    correct_option_ids: Tuple[str, ...] = ()
    correct_order: Tuple[str, ...] = ()
    reverse_scored: bool = False
    points: Optional[float] = None


@dataclass(frozen=True)
class CompetencyHealth:
    """Inventory depth for one competency."""

    competency_id: str
    available: int
    recommended: int
    by_difficulty: Dict[DifficultyLevel, int] = field(default_factory=dict)

    @property
    def status(self) -> str:
        if self.available == 0:
            return HEALTH_CRITICAL
        if self.available < self.recommended:
            return HEALTH_MODERATE
        return HEALTH_HEALTHY


class QuestionInventory(Protocol):
    """Read access to the question bank."""

    def indicators_for(self, competency_id: str) -> List[Indicator]:
        """Active indicators of a competency, in stable order."""
        ...

    def questions_for(self, indicator_id: str, desired_count: int) -> List[Question]:
        """Up to ``desired_count`` active questions for an indicator."""
        ...

    def health_for(self, competency_ids: Sequence[str]) -> Dict[str, CompetencyHealth]:
        ...

    def get_questions(self, question_ids: Iterable[str]) -> Dict[str, Question]:
        ...

    def get_indicators(self, indicator_ids: Iterable[str]) -> Dict[str, Indicator]:
        ...


class InMemoryQuestionInventory:
    """
    Question bank held in memory.

    Selection for an indicator favours variety: one question per question
    type first (when available), then round-robin across difficulty levels.
    Within a bucket questions are taken in insertion order, so selection is
    deterministic.
    """

    def __init__(
        self,
        indicators: Iterable[Indicator] = (),
        questions: Iterable[Question] = (),
        *,
        recommended_per_competency: Optional[int] = None,
    ):
        self._indicators: Dict[str, Indicator] = {}
        self._questions: Dict[str, Question] = {}
        self._by_indicator: Dict[str, List[str]] = defaultdict(list)
        self._recommended = (
            recommended_per_competency
            if recommended_per_competency is not None
            else settings.INVENTORY_RECOMMENDED_PER_COMPETENCY
        )
        for indicator in indicators:
            self.add_indicator(indicator)
        for question in questions:
            self.add_question(question)

    def add_indicator(self, indicator: Indicator) -> None:
        self._indicators[indicator.id] = indicator

    def add_question(self, question: Question) -> None:
        if question.id in self._questions:
            raise ValueError(f"Duplicate question id {question.id}")
        self._questions[question.id] = question
        self._by_indicator[question.indicator_id].append(question.id)

    def indicators_for(self, competency_id: str) -> List[Indicator]:
        return [
            indicator
            for indicator in self._indicators.values()
            if indicator.competency_id == competency_id and indicator.is_active
        ]

    def _active_questions(self, indicator_id: str) -> List[Question]:
        return [
            self._questions[qid]
            for qid in self._by_indicator.get(indicator_id, [])
            if self._questions[qid].is_active
        ]

    def questions_for(self, indicator_id: str, desired_count: int) -> List[Question]:
        if desired_count <= 0:
            return []

        pool = self._active_questions(indicator_id)
        if len(pool) <= desired_count:
            return pool

        selected: List[Question] = []
        taken = set()

        # One of each question type first
        seen_types = set()
        for question in pool:
            if len(selected) == desired_count:
                break
            if question.question_type not in seen_types:
                seen_types.add(question.question_type)
                selected.append(question)
                taken.add(question.id)

        # Then spread across difficulty levels
        buckets: Dict[DifficultyLevel, List[Question]] = defaultdict(list)
        for question in pool:
            if question.id not in taken:
                buckets[question.difficulty].append(question)

        while len(selected) < desired_count:
            progressed = False
            for level in DifficultyLevel:
                if len(selected) == desired_count:
                    break
                if buckets[level]:
                    selected.append(buckets[level].pop(0))
                    progressed = True
            if not progressed:
                break

        return selected

    def health_for(self, competency_ids: Sequence[str]) -> Dict[str, CompetencyHealth]:
        health: Dict[str, CompetencyHealth] = {}
        for competency_id in competency_ids:
            by_difficulty: Dict[DifficultyLevel, int] = defaultdict(int)
            available = 0
            for indicator in self.indicators_for(competency_id):
                for question in self._active_questions(indicator.id):
                    by_difficulty[question.difficulty] += 1
                    available += 1
            health[competency_id] = CompetencyHealth(
                competency_id=competency_id,
                available=available,
                recommended=self._recommended,
                by_difficulty=dict(by_difficulty),
            )
        return health

    def get_questions(self, question_ids: Iterable[str]) -> Dict[str, Question]:
        return {qid: self._questions[qid] for qid in question_ids if qid in self._questions}

    def get_indicators(self, indicator_ids: Iterable[str]) -> Dict[str, Indicator]:
        return {
            iid: self._indicators[iid] for iid in indicator_ids if iid in self._indicators
        }
