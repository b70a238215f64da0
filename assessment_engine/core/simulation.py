"""
Blueprint dry runs with synthetic test takers.

``TestSimulator`` assembles a blueprint, answers every selected question as a
persona would, and scores the answers with the same pipeline live sessions
use. Nothing is persisted: no session, answer or result rows are written.

Personas:
    PERFECT        answers everything correctly
    FAILING        answers everything incorrectly
    PROBABILISTIC  correct with a probability that falls as difficulty rises

Probability model (PROBABILISTIC only):
    p = sigmoid(logit(p_difficulty) + (ability - 50) / 25 + noise_competency)

    p_difficulty: BASIC .85, INTERMEDIATE .65, ADVANCED .45, EXPERT .25
    noise_competency: fixed per competency, uniform in [-0.10, 0.10]
    p is clamped to [0.01, 0.99]

Runs are deterministic: unless a seed is given it is derived from the
persona, the ability level and the assembled question ids.

Usage:
    simulator = TestSimulator(assembler, orchestrator, inventory)
    result = simulator.simulate(blueprint, Persona.PROBABILISTIC, ability_level=70)
    result.simulated_score, result.estimated_duration_minutes, result.valid
"""
import enum
import hashlib
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import numpy as np

from assessment_engine.core.assembly.assembler import TestAssembler
from assessment_engine.core.config import settings
from assessment_engine.core.exceptions import ConfigurationError, InventoryShortfallWarning
from assessment_engine.core.inventory import Question, QuestionInventory
from assessment_engine.core.scoring.orchestrator import ScoringOrchestrator, ScoringOutcome
from assessment_engine.models.models import DifficultyLevel, QuestionType, TestAnswer
from assessment_engine.schemas.blueprint import ScoringConfig, parse_blueprint

logger = logging.getLogger(__name__)

SIMULATION_FAILED = "SIMULATION_FAILED"
NO_QUESTIONS = "NO_QUESTIONS_ASSEMBLED"
MISSING_QUESTIONS = "QUESTIONS_NOT_LOADED"

DIFFICULTY_PROBABILITIES: Dict[DifficultyLevel, float] = {
    DifficultyLevel.BASIC: 0.85,
    DifficultyLevel.INTERMEDIATE: 0.65,
    DifficultyLevel.ADVANCED: 0.45,
    DifficultyLevel.EXPERT: 0.25,
}

PROBABILITY_FLOOR = 0.01
PROBABILITY_CEILING = 0.99
COMPETENCY_NOISE_AMPLITUDE = 0.10
ABILITY_MIDPOINT = 50
ABILITY_SCALE = 25.0

SIMULATED_TEXT_RESPONSE = "Simulated response"


class Persona(str, enum.Enum):
    PERFECT = "PERFECT"
    FAILING = "FAILING"
    PROBABILISTIC = "PROBABILISTIC"


@dataclass
class SimulatedAnswer:
    question_id: str
    competency_id: str
    difficulty: str
    correct: bool
    probability: float


@dataclass
class SimulationResult:
    """Outcome of one dry run."""

    persona: Persona
    ability_level: int
    valid: bool
    total_questions: int = 0
    simulated_score: float = 0.0
    estimated_duration_minutes: int = 0
    composition: Dict[str, int] = field(default_factory=dict)
    competency_scores: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    answers: List[SimulatedAnswer] = field(default_factory=list)
    outcome: Optional[ScoringOutcome] = None
    warnings: List[InventoryShortfallWarning] = field(default_factory=list)
    seed: Optional[int] = None


def apply_logit_shift(probability: float, shift: float) -> float:
    """Shift ``probability`` by ``shift`` in logit space, clamped to the floor/ceiling."""
    p = min(0.999, max(0.001, probability))
    shifted = math.log(p / (1.0 - p)) + shift
    result = 1.0 / (1.0 + math.exp(-shifted))
    return min(PROBABILITY_CEILING, max(PROBABILITY_FLOOR, result))


def ability_to_shift(ability_level: int) -> float:
    """Map the 0-100 ability slider to a logit shift in [-2, 2]."""
    return (ability_level - ABILITY_MIDPOINT) / ABILITY_SCALE


def simulation_seed(
    question_ids: List[str], persona: Persona, ability_level: int
) -> int:
    digest = hashlib.sha256()
    digest.update(f"{persona.value}:{ability_level}".encode())
    for question_id in question_ids:
        digest.update(b"\x00")
        digest.update(question_id.encode())
    return int.from_bytes(digest.digest()[:8], "big")


def estimated_duration_minutes(questions: List[Question]) -> int:
    """Sum of time limits (default per question when unset), rounded up to minutes."""
    total_seconds = sum(
        q.time_limit_seconds
        if q.time_limit_seconds is not None
        else settings.DEFAULT_QUESTION_TIME_SECONDS
        for q in questions
    )
    return math.ceil(total_seconds / 60)


def synthetic_answer(
    question: Question, correct: bool, config: ScoringConfig
) -> TestAnswer:
    """
    Build an answer payload that grades as fully correct or as zero.

    Falls back to a skipped answer when the question offers no way to be
    wrong (or right), e.g. a single choice without distractors.
    """
    qtype = question.question_type
    if qtype == QuestionType.SINGLE_CHOICE:
        if correct and question.correct_option_ids:
            return TestAnswer(
                question_id=question.id,
                selected_option_ids=[question.correct_option_ids[0]],
            )
        wrong = [o for o in question.option_ids if o not in question.correct_option_ids]
        if not correct and wrong:
            return TestAnswer(question_id=question.id, selected_option_ids=[wrong[0]])
    elif qtype == QuestionType.MULTI_CHOICE:
        if correct and question.correct_option_ids:
            return TestAnswer(
                question_id=question.id,
                selected_option_ids=list(question.correct_option_ids),
            )
        wrong = [o for o in question.option_ids if o not in question.correct_option_ids]
        if not correct and wrong:
            return TestAnswer(question_id=question.id, selected_option_ids=wrong)
    elif qtype == QuestionType.LIKERT:
        high = correct != question.reverse_scored
        return TestAnswer(
            question_id=question.id,
            likert_value=config.likert_max if high else config.likert_min,
        )
    elif qtype == QuestionType.RANKING:
        order = list(question.correct_order)
        if correct and order:
            return TestAnswer(question_id=question.id, ranking_order=order)
        if not correct and len(order) > 1:
            # Rotating distinct items moves every item off its position
            return TestAnswer(question_id=question.id, ranking_order=order[1:] + order[:1])
    else:
        return TestAnswer(
            question_id=question.id,
            text_response=SIMULATED_TEXT_RESPONSE,
            manual_score=1.0 if correct else 0.0,
        )
    return TestAnswer(question_id=question.id, is_skipped=True)


class TestSimulator:
    """Dry-runs blueprints: assembly, persona answers and scoring."""

    __test__ = False  # not a pytest test class

    def __init__(
        self,
        assembler: TestAssembler,
        orchestrator: ScoringOrchestrator,
        inventory: QuestionInventory,
    ):
        self.assembler = assembler
        self.orchestrator = orchestrator
        self.inventory = inventory

    def simulate(
        self,
        blueprint: Any,
        persona: Persona = Persona.PROBABILISTIC,
        ability_level: int = ABILITY_MIDPOINT,
        seed: Optional[int] = None,
        config: Optional[ScoringConfig] = None,
    ) -> SimulationResult:
        """
        Simulate ``persona`` taking a test assembled from ``blueprint``.

        Assembly failures do not raise: they come back as an invalid result
        with an ERROR-level warning explaining why.
        """
        persona = Persona(persona)
        if not 0 <= ability_level <= 100:
            raise ValueError(f"ability_level must be within 0-100, got {ability_level}")
        config = config or ScoringConfig()

        try:
            blueprint = parse_blueprint(blueprint)
            assembly = self.assembler.assemble(blueprint)
        except ConfigurationError as e:
            logger.warning(f"Simulation could not assemble blueprint: {e.message}")
            return SimulationResult(
                persona=persona,
                ability_level=ability_level,
                valid=False,
                warnings=[
                    InventoryShortfallWarning(
                        f"Assembly failed: {e.message}",
                        code=SIMULATION_FAILED,
                        level="ERROR",
                    )
                ],
            )

        warnings = list(assembly.warnings)
        if not assembly.question_ids:
            warnings.append(
                InventoryShortfallWarning(
                    "No questions assembled; check blueprint configuration",
                    code=NO_QUESTIONS,
                    level="ERROR",
                )
            )
            return SimulationResult(
                persona=persona,
                ability_level=ability_level,
                valid=False,
                warnings=warnings,
            )

        loaded = self.inventory.get_questions(assembly.question_ids)
        questions = [loaded[qid] for qid in assembly.question_ids if qid in loaded]
        if len(questions) < len(assembly.question_ids):
            warnings.append(
                InventoryShortfallWarning(
                    f"Only {len(questions)} of {len(assembly.question_ids)} "
                    f"questions could be loaded",
                    code=MISSING_QUESTIONS,
                    level="INFO",
                    required=len(assembly.question_ids),
                    available=len(questions),
                )
            )

        if seed is None:
            seed = simulation_seed(
                [q.id for q in questions], persona, ability_level
            )
        simulated = self._answer(questions, persona, ability_level, seed)

        answers = [
            synthetic_answer(question, answer.correct, config)
            for question, answer in zip(questions, simulated)
        ]
        outcome = self.orchestrator.evaluate(answers, blueprint, config)

        correct = sum(1 for answer in simulated if answer.correct)
        result = SimulationResult(
            persona=persona,
            ability_level=ability_level,
            valid=not any(w.level == "ERROR" for w in warnings),
            total_questions=len(questions),
            simulated_score=float(round(correct / len(questions) * 100)),
            estimated_duration_minutes=estimated_duration_minutes(questions),
            composition=self._composition(questions),
            competency_scores=self._competency_scores(simulated),
            answers=simulated,
            outcome=outcome,
            warnings=warnings,
            seed=seed,
        )

        logger.info(
            f"Simulation complete: {result.total_questions} questions, "
            f"persona={persona.value}, ability={ability_level}, "
            f"score={result.simulated_score:.0f}, "
            f"duration={result.estimated_duration_minutes}min, valid={result.valid}"
        )
        return result

    def _answer(
        self,
        questions: List[Question],
        persona: Persona,
        ability_level: int,
        seed: int,
    ) -> List[SimulatedAnswer]:
        rng = np.random.default_rng(seed)
        shift = ability_to_shift(ability_level)
        competency_ids = sorted({q.competency_id for q in questions})
        noise = dict(
            zip(
                competency_ids,
                rng.uniform(
                    -COMPETENCY_NOISE_AMPLITUDE,
                    COMPETENCY_NOISE_AMPLITUDE,
                    size=len(competency_ids),
                ),
            )
        )

        simulated: List[SimulatedAnswer] = []
        for question in questions:
            if persona == Persona.PERFECT:
                probability = 1.0
            elif persona == Persona.FAILING:
                probability = 0.0
            else:
                base = DIFFICULTY_PROBABILITIES[question.difficulty]
                probability = apply_logit_shift(
                    apply_logit_shift(base, shift), float(noise[question.competency_id])
                )
            draw = rng.random()
            simulated.append(
                SimulatedAnswer(
                    question_id=question.id,
                    competency_id=question.competency_id,
                    difficulty=question.difficulty.value,
                    correct=bool(draw < probability),
                    probability=probability,
                )
            )
        return simulated

    @staticmethod
    def _composition(questions: List[Question]) -> Dict[str, int]:
        composition: Dict[str, int] = {}
        for question in questions:
            key = question.difficulty.value
            composition[key] = composition.get(key, 0) + 1
        return composition

    @staticmethod
    def _competency_scores(
        simulated: List[SimulatedAnswer],
    ) -> Dict[str, Dict[str, Any]]:
        grouped: Dict[str, List[SimulatedAnswer]] = {}
        for answer in simulated:
            grouped.setdefault(answer.competency_id, []).append(answer)

        scores: Dict[str, Dict[str, Any]] = {}
        for competency_id, answers in grouped.items():
            correct = sum(1 for a in answers if a.correct)
            by_difficulty: Dict[str, int] = {}
            for a in answers:
                by_difficulty[a.difficulty] = by_difficulty.get(a.difficulty, 0) + 1
            scores[competency_id] = {
                "total": len(answers),
                "correct": correct,
                "percentage": round(correct / len(answers) * 100, 1),
                "difficulty_breakdown": by_difficulty,
            }
        return scores
