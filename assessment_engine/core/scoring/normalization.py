"""
Answer grading and score normalisation.

Every answer is reduced to a fraction in [0, 1] of the question's point
value:

    SINGLE_CHOICE   1 when the selection equals the correct option, else 0
    MULTI_CHOICE    (hits - wrong picks) / correct options, floored at 0
    LIKERT          (value - min) / (max - min); inverted when reverse scored
    RANKING         share of positions matching the correct order
    FREE_TEXT       external grader's fraction, clamped to [0, 1]; 0 if ungraded

Skipped answers score 0 out of the full point value.
"""
from dataclasses import dataclass
from typing import Dict, Optional

from assessment_engine.core.exceptions import ScoringError
from assessment_engine.core.inventory import Question
from assessment_engine.models.models import QuestionType, TestAnswer
from assessment_engine.schemas.blueprint import ScoringConfig

# Proficiency bands as (lower bound, label), highest first
PROFICIENCY_BANDS = (
    (85.0, "Expert"),
    (70.0, "Advanced"),
    (50.0, "Proficient"),
    (30.0, "Developing"),
)
LOWEST_PROFICIENCY_LABEL = "Beginning"

_PAYLOAD_FOR_TYPE: Dict[QuestionType, str] = {
    QuestionType.SINGLE_CHOICE: "selected_option_ids",
    QuestionType.MULTI_CHOICE: "selected_option_ids",
    QuestionType.LIKERT: "likert_value",
    QuestionType.RANKING: "ranking_order",
    QuestionType.FREE_TEXT: "text_response",
}


@dataclass(frozen=True)
class GradedAnswer:
    question_id: str
    indicator_id: str
    competency_id: str
    score: float
    max_score: float
    skipped: bool = False


def percentage(score: float, max_score: float) -> float:
    """score / max_score * 100; a zero maximum yields 0.0."""
    if max_score <= 0:
        return 0.0
    return score / max_score * 100.0


def proficiency_label(pct: float) -> str:
    for lower_bound, label in PROFICIENCY_BANDS:
        if pct >= lower_bound:
            return label
    return LOWEST_PROFICIENCY_LABEL


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def _invalid(answer: TestAnswer, question: Question, reason: str) -> ScoringError:
    return ScoringError(
        f"Answer to question {question.id} is invalid: {reason}",
        category="INVALID_ANSWER",
        details={
            "question_id": question.id,
            "question_type": question.question_type.value,
            "session_id": answer.session_id,
        },
    )


def _check_payload(answer: TestAnswer, question: Question) -> None:
    populated = answer.populated_payloads()
    expected = _PAYLOAD_FOR_TYPE[question.question_type]
    if populated != [expected]:
        raise _invalid(
            answer,
            question,
            f"expected only {expected} to be set, found {populated or 'none'}",
        )


def _single_choice(answer: TestAnswer, question: Question) -> float:
    selected = set(answer.selected_option_ids)
    if len(selected) > 1:
        raise _invalid(answer, question, "single choice with several selections")
    return 1.0 if selected and selected == set(question.correct_option_ids) else 0.0


def _multi_choice(answer: TestAnswer, question: Question) -> float:
    correct = set(question.correct_option_ids)
    if not correct:
        return 0.0
    selected = set(answer.selected_option_ids)
    hits = len(selected & correct)
    wrong = len(selected - correct)
    return clamp((hits - wrong) / len(correct))


def _likert(answer: TestAnswer, question: Question, config: ScoringConfig) -> float:
    value = answer.likert_value
    if not config.likert_min <= value <= config.likert_max:
        raise _invalid(
            answer,
            question,
            f"likert value {value} outside [{config.likert_min}, {config.likert_max}]",
        )
    fraction = (value - config.likert_min) / (config.likert_max - config.likert_min)
    return 1.0 - fraction if question.reverse_scored else fraction


def _ranking(answer: TestAnswer, question: Question) -> float:
    expected = list(question.correct_order)
    if not expected:
        return 0.0
    submitted = list(answer.ranking_order)
    matches = sum(
        1 for position, item in enumerate(expected)
        if position < len(submitted) and submitted[position] == item
    )
    return matches / len(expected)


def _free_text(answer: TestAnswer) -> float:
    if answer.manual_score is None:
        return 0.0
    return clamp(float(answer.manual_score))


def point_value(question: Question, config: ScoringConfig) -> float:
    if question.points is not None:
        return question.points
    return config.points_for(question.question_type)


def grade_answer(
    answer: TestAnswer, question: Question, config: Optional[ScoringConfig] = None
) -> GradedAnswer:
    """
    Grade one answer against its question's rubric.

    Raises:
        ScoringError: (category INVALID_ANSWER) when the answer payload does
            not match the question type or is out of range.
    """
    config = config or ScoringConfig()
    points = point_value(question, config)

    if answer.is_skipped:
        fraction = 0.0
    else:
        _check_payload(answer, question)
        qtype = question.question_type
        if qtype == QuestionType.SINGLE_CHOICE:
            fraction = _single_choice(answer, question)
        elif qtype == QuestionType.MULTI_CHOICE:
            fraction = _multi_choice(answer, question)
        elif qtype == QuestionType.LIKERT:
            fraction = _likert(answer, question, config)
        elif qtype == QuestionType.RANKING:
            fraction = _ranking(answer, question)
        else:
            fraction = _free_text(answer)

    return GradedAnswer(
        question_id=question.id,
        indicator_id=question.indicator_id,
        competency_id=question.competency_id,
        score=fraction * points,
        max_score=points,
        skipped=bool(answer.is_skipped),
    )
