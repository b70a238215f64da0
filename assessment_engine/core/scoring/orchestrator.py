"""
Scoring orchestration.

``ScoringOrchestrator.score`` turns a finished session into a ``TestResult``:

1. Check the session is scorable (COMPLETED or TIMED_OUT) and has answers.
2. Grade every answer and stamp the grade onto it.
3. Aggregate indicators -> competencies -> overall; apply the goal strategy.
4. Look up a percentile (best-effort, never fails scoring).
5. Persist the result through the result store, then mark it COMPLETED.

Events: started, completed and a full audit snapshot on success. The audit
is only published here; ``repository.subscribe_audit_writer`` stores it from
the event bus. On any failure a failed event with the error category and
elapsed time is published before the ``ScoringError`` reaches the caller,
and the result is left FAILED so it can be retried from the same answers.

``evaluate`` is the pure part (steps 2-3 without stamping, events or
persistence); the simulator uses it directly.
"""
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Sequence

from assessment_engine.core.datetime_utils import utc_now
from assessment_engine.core.events import (
    EngineEvent,
    EventPublisher,
    ScoringAuditEvent,
    ScoringCompletedEvent,
    ScoringFailedEvent,
    ScoringStartedEvent,
)
from assessment_engine.core.exceptions import ConfigurationError, ScoringError
from assessment_engine.core.graceful_failure import graceful_failure
from assessment_engine.core.inventory import QuestionInventory
from assessment_engine.core.logging_config import session_context
from assessment_engine.core.session_state import can_score
from assessment_engine.models.models import ResultStatus, TestAnswer, TestResult, TestSession
from assessment_engine.schemas.blueprint import ScoringConfig, TestBlueprint, parse_blueprint

from ._types import CompetencyScore
from .aggregation import overall_percentage, score_competencies
from .normalization import GradedAnswer, grade_answer
from .percentile import PopulationReference
from .strategies import scoring_strategy_for_goal

logger = logging.getLogger(__name__)


class ResultStore(Protocol):
    """Persists results."""

    def save_result(self, result: TestResult) -> None:
        ...


@dataclass
class ScoringOutcome:
    """Computed scores for a set of answers; no side effects attached."""

    goal: str
    overall_score: float
    max_score: float
    overall_percentage: float
    passed: bool
    competency_scores: List[CompetencyScore]
    extended_metrics: Dict[str, Any]
    indicator_weights: Dict[str, float]
    graded: List[GradedAnswer] = field(default_factory=list)


class ScoringOrchestrator:
    """Scores sessions and manages the result lifecycle."""

    def __init__(
        self,
        inventory: QuestionInventory,
        *,
        publisher: Optional[EventPublisher] = None,
        population: Optional[PopulationReference] = None,
        result_store: Optional[ResultStore] = None,
    ):
        self.inventory = inventory
        self.publisher = publisher
        self.population = population
        self.result_store = result_store

    # ------------------------------------------------------------------
    # Pure computation
    # ------------------------------------------------------------------

    def evaluate(
        self,
        answers: Sequence[TestAnswer],
        blueprint: TestBlueprint,
        config: Optional[ScoringConfig] = None,
    ) -> ScoringOutcome:
        """
        Grade and aggregate ``answers`` under ``blueprint``.

        An empty answer list yields a 0.0 percentage rather than an error.

        Raises:
            ScoringError: an answer references an unknown question or has a
                payload that does not fit its question.
        """
        config = config or ScoringConfig()
        question_ids = [answer.question_id for answer in answers]
        questions = self.inventory.get_questions(question_ids)
        missing = [qid for qid in question_ids if qid not in questions]
        if missing:
            raise ScoringError(
                f"Answers reference unknown questions: {missing}",
                category="MISSING_QUESTION",
                details={"question_ids": missing},
            )

        graded = [grade_answer(a, questions[a.question_id], config) for a in answers]
        indicators = self.inventory.get_indicators({g.indicator_id for g in graded})
        indicator_weights = {
            iid: (indicators[iid].weight if iid in indicators else 1.0)
            for iid in dict.fromkeys(g.indicator_id for g in graded)
        }

        breakdown = score_competencies(graded, indicator_weights, blueprint, config)
        overall_pct = overall_percentage(breakdown)
        strategy = scoring_strategy_for_goal(blueprint.goal)

        return ScoringOutcome(
            goal=blueprint.goal.value,
            overall_score=sum(g.score for g in graded),
            max_score=sum(g.max_score for g in graded),
            overall_percentage=overall_pct,
            passed=overall_pct >= blueprint.passing_score,
            competency_scores=breakdown,
            extended_metrics=strategy.extended_metrics(
                breakdown, overall_pct, blueprint, config
            ),
            indicator_weights=indicator_weights,
            graded=graded,
        )

    # ------------------------------------------------------------------
    # Session scoring
    # ------------------------------------------------------------------

    def score(
        self,
        session: TestSession,
        blueprint: Any,
        config: Optional[ScoringConfig] = None,
    ) -> TestResult:
        """
        Score ``session`` and return its result.

        Raises:
            ConfigurationError: blueprint missing or malformed.
            ScoringError: no answers, session not in a scorable status, or a
                failure while grading or persisting. The session's result is
                left FAILED.
        """
        blueprint = parse_blueprint(blueprint)
        config = config or ScoringConfig()
        result = self._result_for(session, blueprint)
        result.status = ResultStatus.PENDING
        result.attempts = (result.attempts or 0) + 1

        started = time.perf_counter()
        with session_context(session.id):
            self._publish(
                ScoringStartedEvent(
                    session_id=session.id,
                    goal=blueprint.goal.value,
                    answer_count=len(session.answers),
                )
            )
            try:
                outcome = self._score(session, blueprint, config, result)
            except ScoringError as e:
                self._fail(session, result, e, started)
                raise
            except ConfigurationError:
                raise
            except Exception as e:
                error = ScoringError(
                    f"Scoring failed for session {session.id}: {e}",
                    category="CALCULATION",
                )
                self._fail(session, result, error, started, error_type=type(e).__name__)
                raise error from e

            duration_ms = (time.perf_counter() - started) * 1000
            self._publish_success(session, blueprint, config, result, outcome, duration_ms)
            logger.info(
                f"Scored session {session.id}: {outcome.overall_percentage:.1f}% "
                f"({'pass' if outcome.passed else 'fail'}) in {duration_ms:.1f}ms"
            )
            return result

    def retry(
        self,
        result: TestResult,
        session: TestSession,
        blueprint: Any,
        config: Optional[ScoringConfig] = None,
    ) -> TestResult:
        """
        Re-score a PENDING or FAILED result from the session's stored answers.

        COMPLETED results are returned unchanged.
        """
        if result.session_id != session.id:
            raise ScoringError(
                f"Result {result.id} does not belong to session {session.id}",
                category="INVALID_STATUS",
            )
        if not result.is_retryable:
            logger.info(f"Result {result.id} already COMPLETED; retry skipped")
            return result
        logger.info(
            f"Retrying scoring for session {session.id} "
            f"(attempt {result.attempts + 1}, status {result.status.value})"
        )
        return self.score(session, blueprint, config)

    def _result_for(self, session: TestSession, blueprint: TestBlueprint) -> TestResult:
        result = session.result
        if result is None:
            result = TestResult(session_id=session.id, goal=blueprint.goal)
            session.result = result
        return result

    def _score(
        self,
        session: TestSession,
        blueprint: TestBlueprint,
        config: ScoringConfig,
        result: TestResult,
    ) -> ScoringOutcome:
        if not can_score(session):
            raise ScoringError(
                f"Session {session.id} cannot be scored in status {session.status.value}",
                category="INVALID_STATUS",
                details={"status": session.status.value},
            )
        if not session.answers:
            raise ScoringError(
                f"Session {session.id} has no answers", category="NO_ANSWERS"
            )

        outcome = self.evaluate(session.answers, blueprint, config)
        for answer, graded in zip(session.answers, outcome.graded):
            answer.score = graded.score
            answer.max_score = graded.max_score
            answer.indicator_id = graded.indicator_id
            answer.competency_id = graded.competency_id

        percentile: Optional[int] = None
        if self.population is not None:
            with graceful_failure(
                "compute percentile", logger, context={"session_id": session.id}
            ):
                percentile = self.population.percentile_for(
                    blueprint.goal, outcome.overall_percentage
                )

        result.goal = blueprint.goal
        result.overall_score = outcome.overall_score
        result.max_score = outcome.max_score
        result.overall_percentage = outcome.overall_percentage
        result.percentile = percentile
        result.passed = outcome.passed
        result.competency_scores = outcome.competency_scores
        result.extended_metrics = outcome.extended_metrics
        result.error_message = None

        result.status = ResultStatus.COMPLETED
        result.completed_at = utc_now()
        if self.result_store is not None:
            try:
                self.result_store.save_result(result)
            except Exception as e:
                result.status = ResultStatus.FAILED
                result.completed_at = None
                raise ScoringError(
                    f"Failed to persist result for session {session.id}: {e}",
                    category="PERSISTENCE",
                ) from e
        return outcome

    def _fail(
        self,
        session: TestSession,
        result: TestResult,
        error: ScoringError,
        started: float,
        error_type: Optional[str] = None,
    ) -> None:
        duration_ms = (time.perf_counter() - started) * 1000
        result.status = ResultStatus.FAILED
        result.error_message = error.message
        logger.error(
            f"Scoring failed for session {session.id} [{error.category}]: {error.message}",
            extra={"error_category": error.category, "duration_ms": duration_ms},
        )
        self._publish(
            ScoringFailedEvent(
                session_id=session.id,
                error_category=error.category,
                error_type=error_type or type(error).__name__,
                message=error.message,
                duration_ms=duration_ms,
            )
        )
        if self.result_store is not None and error.category != "PERSISTENCE":
            with graceful_failure(
                "persist failed result", logger, context={"session_id": session.id}
            ):
                self.result_store.save_result(result)

    def _publish_success(
        self,
        session: TestSession,
        blueprint: TestBlueprint,
        config: ScoringConfig,
        result: TestResult,
        outcome: ScoringOutcome,
        duration_ms: float,
    ) -> None:
        self._publish(
            ScoringCompletedEvent(
                session_id=session.id,
                result_id=result.id,
                goal=outcome.goal,
                overall_percentage=outcome.overall_percentage,
                passed=outcome.passed,
                duration_ms=duration_ms,
            )
        )
        audit = ScoringAuditEvent(
            session_id=session.id,
            result_id=result.id,
            goal=outcome.goal,
            indicator_weights=dict(outcome.indicator_weights),
            config_snapshot={
                "scoring": config.snapshot(),
                "blueprint": blueprint.model_dump(mode="json"),
            },
            competency_breakdown=list(outcome.competency_scores),
            overall_percentage=outcome.overall_percentage,
            passed=outcome.passed,
            duration_ms=duration_ms,
        )
        self._publish(audit)

    def _publish(self, event: EngineEvent) -> None:
        if self.publisher is None:
            return
        with graceful_failure(
            f"publish {event.event_type}", logger, context={"session_id": event.session_id}
        ):
            self.publisher.publish(event)
