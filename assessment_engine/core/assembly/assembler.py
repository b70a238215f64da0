"""
Test assembly.

Turns a blueprint into an ordered list of question ids:

1. Resolve the distribution strategy for the blueprint's goal.
2. Allocate the question budget across competencies (weight, priority, cap).
3. Allocate each competency's share across its active indicators with the
   same strategy.
4. Ask the inventory for each indicator's questions. Shortfalls are recorded
   as ``InventoryShortfallWarning`` values, never raised.
5. Validate, optionally shuffle (uniform Fisher-Yates), and return.

With ``shuffle_options`` each choice or ranking question also gets its own
presentation order in ``AssemblyResult.option_order``; grading works on
option ids, so the order never affects scores.

A partial assembly is a valid result: ``AssemblyResult.is_partial`` and the
warning list say so explicitly. Unexpected failures move the tracker to FAILED
and raise ``AssemblyError`` carrying the competencies already filled.

For TEAM_FIT, competencies with low team saturation are the gaps the test
should cover first, so their priority is ``1 - saturation``.
"""
import logging
import random
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from assessment_engine.core.assembly.progress import AssemblyPhase, AssemblyProgressTracker
from assessment_engine.core.distribution import (
    AllocationSlot,
    DistributionStrategy,
    PriorityFirstStrategy,
    strategy_for_goal,
)
from assessment_engine.core.events import AssemblyCompletedEvent, EventPublisher
from assessment_engine.core.exceptions import (
    AssemblyError,
    ConfigurationError,
    InventoryShortfallWarning,
)
from assessment_engine.core.graceful_failure import graceful_failure
from assessment_engine.core.inventory import (
    HEALTH_CRITICAL,
    HEALTH_MODERATE,
    QuestionInventory,
)
from assessment_engine.core.logging_config import session_context
from assessment_engine.schemas.blueprint import CompetencyRef, TestBlueprint, parse_blueprint

logger = logging.getLogger(__name__)

# Warning codes
SHORTFALL = "INVENTORY_SHORTFALL"
NO_INDICATORS = "NO_ACTIVE_INDICATORS"
BELOW_MINIMUM = "BELOW_MINIMUM_QUESTIONS"
CAPACITY_EXCEEDED = "BUDGET_EXCEEDS_CAPACITY"
EMPTY_BLUEPRINT = "EMPTY_BLUEPRINT"
NO_INVENTORY = "NO_INVENTORY"
LOW_INVENTORY = "LOW_INVENTORY"


@dataclass
class AssemblyResult:
    """Outcome of one assembly run."""

    session_id: str
    goal: str
    requested_total: int
    question_ids: List[str] = field(default_factory=list)
    warnings: List[InventoryShortfallWarning] = field(default_factory=list)
    allocation: Dict[str, int] = field(default_factory=dict)
    indicator_allocation: Dict[str, Dict[str, int]] = field(default_factory=dict)
    completed_competencies: List[str] = field(default_factory=list)
    option_order: Dict[str, List[str]] = field(default_factory=dict)
    strategy: str = ""

    @property
    def question_count(self) -> int:
        return len(self.question_ids)

    @property
    def shortfall_warnings(self) -> List[InventoryShortfallWarning]:
        return [w for w in self.warnings if w.code in (SHORTFALL, NO_INDICATORS)]

    @property
    def total_shortfall(self) -> int:
        return sum(w.shortfall for w in self.shortfall_warnings)

    @property
    def is_partial(self) -> bool:
        return self.question_count < self.requested_total

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "goal": self.goal,
            "strategy": self.strategy,
            "requested_total": self.requested_total,
            "question_ids": list(self.question_ids),
            "allocation": dict(self.allocation),
            "option_order": {qid: list(o) for qid, o in self.option_order.items()},
            "is_partial": self.is_partial,
            "warnings": [w.to_dict() for w in self.warnings],
        }


def competency_priority(ref: CompetencyRef) -> float:
    """Least-covered competencies first when saturation is known."""
    if ref.saturation is not None:
        return 1.0 - ref.saturation
    return ref.weight


class TestAssembler:
    """Builds question lists from blueprints against a question inventory."""

    __test__ = False  # not a pytest test class

    def __init__(
        self,
        inventory: QuestionInventory,
        *,
        tracker: Optional[AssemblyProgressTracker] = None,
        publisher: Optional[EventPublisher] = None,
        rng: Optional[random.Random] = None,
    ):
        self.inventory = inventory
        self.tracker = tracker
        self.publisher = publisher
        self._rng = rng or random.Random()

    def assemble(
        self, blueprint: Any, session_id: Optional[str] = None
    ) -> AssemblyResult:
        """
        Assemble a question list for ``blueprint``.

        Args:
            blueprint: ``TestBlueprint`` or a mapping that validates as one.
            session_id: Session being assembled; generated when omitted.

        Returns:
            AssemblyResult with ordered question ids and any warnings.

        Raises:
            AssemblyError: blueprint missing or malformed, unknown goal, or an
                unexpected failure during selection.
            InvalidStateError: an assembly for ``session_id`` is already live.
        """
        try:
            blueprint = parse_blueprint(blueprint)
        except AssemblyError:
            raise
        except ConfigurationError as e:
            raise AssemblyError(e.message, details=e.details) from e

        strategy = strategy_for_goal(blueprint.goal)
        session_id = session_id or str(uuid.uuid4())
        result = AssemblyResult(
            session_id=session_id,
            goal=blueprint.goal.value,
            requested_total=blueprint.total_questions,
            strategy=strategy.name,
        )

        if self.tracker is not None:
            self.tracker.start(session_id, len(blueprint.competencies))

        started = time.perf_counter()
        with session_context(session_id):
            try:
                self._run(blueprint, strategy, result)
            except Exception as e:
                self._mark_failed(session_id, blueprint, result, e)
                if isinstance(e, AssemblyError):
                    raise
                raise AssemblyError(
                    f"Assembly failed for session {session_id}: {e}",
                    completed_competencies=result.completed_competencies,
                ) from e

        duration_ms = (time.perf_counter() - started) * 1000
        if self.tracker is not None:
            self.tracker.complete(session_id, result.question_count)
        self._publish_completed(result, duration_ms)

        logger.info(
            f"Assembled {result.question_count}/{result.requested_total} questions "
            f"for session {session_id} using {strategy.name} "
            f"({len(result.warnings)} warnings)"
        )
        return result

    def _run(
        self,
        blueprint: TestBlueprint,
        strategy: DistributionStrategy,
        result: AssemblyResult,
    ) -> None:
        if not blueprint.competencies or blueprint.total_questions == 0:
            reason = (
                "Blueprint has no competencies"
                if not blueprint.competencies
                else "Blueprint question budget is zero"
            )
            result.warnings.append(
                InventoryShortfallWarning(reason, code=EMPTY_BLUEPRINT, level="INFO")
            )
            return

        self._check_inventory_health(blueprint, result)

        slots = [
            AllocationSlot(
                id=ref.competency_id,
                weight=ref.weight,
                priority=competency_priority(ref),
                max_count=ref.max_questions,
            )
            for ref in blueprint.competencies
        ]
        result.allocation = strategy.allocate(slots, blueprint.total_questions)
        logger.debug(f"Competency allocation: {result.allocation}")

        selected = set()
        for ref in blueprint.competencies:
            added = self._fill_competency(
                ref, strategy, result, selected, blueprint.shuffle_options
            )
            result.completed_competencies.append(ref.competency_id)
            if self.tracker is not None:
                self.tracker.increment_competency(
                    result.session_id, added, ref.competency_id
                )

        if self.tracker is not None:
            self.tracker.update_phase(result.session_id, AssemblyPhase.VALIDATING)
        self._validate(blueprint, result)

        if blueprint.shuffle_questions:
            if self.tracker is not None:
                self.tracker.update_phase(result.session_id, AssemblyPhase.SHUFFLING)
            # random.shuffle is an in-place Fisher-Yates permutation
            self._rng.shuffle(result.question_ids)

    def _fill_competency(
        self,
        ref: CompetencyRef,
        strategy: DistributionStrategy,
        result: AssemblyResult,
        selected: set,
        shuffle_options: bool = False,
    ) -> int:
        count = result.allocation.get(ref.competency_id, 0)
        if count < ref.min_questions:
            result.warnings.append(
                InventoryShortfallWarning(
                    f"{ref.label} allocated {count} questions, "
                    f"below its minimum of {ref.min_questions}",
                    code=BELOW_MINIMUM,
                    competency_id=ref.competency_id,
                    required=ref.min_questions,
                    available=count,
                )
            )
        if count == 0:
            result.indicator_allocation[ref.competency_id] = {}
            return 0

        indicators = self.inventory.indicators_for(ref.competency_id)
        if not indicators:
            result.warnings.append(
                InventoryShortfallWarning(
                    f"{ref.label} has no active indicators",
                    code=NO_INDICATORS,
                    competency_id=ref.competency_id,
                    required=count,
                    available=0,
                )
            )
            result.indicator_allocation[ref.competency_id] = {}
            return 0

        # Priority-first indicators are capped at their active inventory; the
        # remainder moves on to the next indicator by weight
        fills_in_order = isinstance(strategy, PriorityFirstStrategy)
        indicator_slots = [
            AllocationSlot(
                id=ind.id,
                weight=ind.weight,
                priority=ind.weight,
                max_count=(
                    len(self.inventory.questions_for(ind.id, count))
                    if fills_in_order
                    else None
                ),
            )
            for ind in indicators
        ]
        per_indicator = strategy.allocate(indicator_slots, count)
        result.indicator_allocation[ref.competency_id] = per_indicator

        added = 0
        for indicator in indicators:
            wanted = per_indicator.get(indicator.id, 0)
            if wanted == 0:
                continue
            questions = self.inventory.questions_for(indicator.id, wanted)
            eligible = [
                q for q in questions if q.is_active and q.id not in selected
            ][:wanted]
            for question in eligible:
                selected.add(question.id)
                result.question_ids.append(question.id)
                options = list(question.option_ids or question.correct_order)
                if shuffle_options and len(options) > 1:
                    self._rng.shuffle(options)
                    result.option_order[question.id] = options
            added += len(eligible)

            if len(eligible) < wanted:
                warning = InventoryShortfallWarning(
                    f"Indicator {indicator.id} of {ref.label} needs {wanted} "
                    f"questions but only {len(eligible)} are available",
                    code=SHORTFALL,
                    competency_id=ref.competency_id,
                    indicator_id=indicator.id,
                    required=wanted,
                    available=len(eligible),
                )
                logger.warning(warning.message)
                result.warnings.append(warning)

        planned = sum(per_indicator.values())
        if planned < count:
            warning = InventoryShortfallWarning(
                f"{ref.label} needs {count} questions but its indicators "
                f"only supply {planned}",
                code=SHORTFALL,
                competency_id=ref.competency_id,
                required=count,
                available=planned,
            )
            logger.warning(warning.message)
            result.warnings.append(warning)
        return added

    def _check_inventory_health(
        self, blueprint: TestBlueprint, result: AssemblyResult
    ) -> None:
        ids = [ref.competency_id for ref in blueprint.competencies]
        for competency_id, health in self.inventory.health_for(ids).items():
            if health.status == HEALTH_CRITICAL:
                result.warnings.append(
                    InventoryShortfallWarning(
                        f"No active questions for competency {competency_id}",
                        code=NO_INVENTORY,
                        level="ERROR",
                        competency_id=competency_id,
                        required=health.recommended,
                        available=0,
                    )
                )
            elif health.status == HEALTH_MODERATE:
                result.warnings.append(
                    InventoryShortfallWarning(
                        f"Only {health.available} active questions for competency "
                        f"{competency_id} (recommended {health.recommended})",
                        code=LOW_INVENTORY,
                        competency_id=competency_id,
                        required=health.recommended,
                        available=health.available,
                    )
                )

    def _validate(self, blueprint: TestBlueprint, result: AssemblyResult) -> None:
        if len(set(result.question_ids)) != len(result.question_ids):
            raise AssemblyError(
                "Duplicate questions selected",
                completed_competencies=result.completed_competencies,
            )
        allocated = sum(result.allocation.values())
        if allocated < blueprint.total_questions:
            result.warnings.append(
                InventoryShortfallWarning(
                    f"Competency caps allow {allocated} of "
                    f"{blueprint.total_questions} requested questions",
                    code=CAPACITY_EXCEEDED,
                    required=blueprint.total_questions,
                    available=allocated,
                )
            )

    def _mark_failed(
        self,
        session_id: str,
        blueprint: TestBlueprint,
        result: AssemblyResult,
        error: Exception,
    ) -> None:
        logger.error(
            f"Assembly failed for session {session_id} after "
            f"{len(result.completed_competencies)} competencies: {error}"
        )
        if self.tracker is None:
            return
        progress = self.tracker.get(session_id)
        # Abandoned sessions have had their progress invalidated already
        if progress is None or not progress.is_in_progress():
            return
        self.tracker.fail(
            session_id,
            str(error),
            goal=blueprint.goal.value,
            completed_competencies=result.completed_competencies,
        )

    def _publish_completed(self, result: AssemblyResult, duration_ms: float) -> None:
        if self.publisher is None:
            return
        with graceful_failure(
            "publish assembly completed event",
            logger,
            context={"session_id": result.session_id},
        ):
            self.publisher.publish(
                AssemblyCompletedEvent(
                    session_id=result.session_id,
                    goal=result.goal,
                    question_count=result.question_count,
                    warning_count=len(result.warnings),
                    duration_ms=duration_ms,
                )
            )
