"""
Tests for answer grading, aggregation and goal scoring strategies.
"""
import pytest

from assessment_engine.core.exceptions import ConfigurationError, ScoringError
from assessment_engine.core.scoring import (
    GradedAnswer,
    JobFitScoringStrategy,
    OverviewScoringStrategy,
    TeamFitScoringStrategy,
    grade_answer,
    overall_percentage,
    percentage,
    proficiency_label,
    score_competencies,
    scoring_strategy_for_goal,
    weighted_mean,
)
from assessment_engine.models.models import AssessmentGoal, QuestionType, TestAnswer
from assessment_engine.schemas.blueprint import CompetencyRef, ScoringConfig, TestBlueprint
from tests.conftest import make_question


def graded(competency, indicator, score, max_score=1.0):
    return GradedAnswer(
        question_id=f"{indicator}-{score}",
        indicator_id=indicator,
        competency_id=competency,
        score=score,
        max_score=max_score,
    )


def competency(competency_id, pct, weight=1.0, insufficient=False):
    return {
        "competency_id": competency_id,
        "name": competency_id,
        "score": pct,
        "max_score": 100.0,
        "percentage": pct,
        "weight": weight,
        "question_count": 3,
        "proficiency_label": proficiency_label(pct),
        "insufficient_evidence": insufficient,
        "indicator_scores": [],
    }


class TestPercentage:
    """Tests for percentage and proficiency helpers."""

    def test_full_marks(self):
        assert percentage(8.0, 8.0) == 100.0

    @pytest.mark.parametrize("max_score", [0.0, -1.0])
    def test_zero_max_is_zero_not_error(self, max_score):
        assert percentage(0.0, max_score) == 0.0

    @pytest.mark.parametrize(
        "pct, label",
        [
            (100.0, "Expert"),
            (85.0, "Expert"),
            (84.9, "Advanced"),
            (70.0, "Advanced"),
            (50.0, "Proficient"),
            (30.0, "Developing"),
            (29.9, "Beginning"),
            (0.0, "Beginning"),
        ],
    )
    def test_proficiency_bands(self, pct, label):
        assert proficiency_label(pct) == label


class TestGradeAnswer:
    """Tests for per-type grading rubrics."""

    def test_single_choice_correct(self):
        question = make_question("q1", "i1", "c1")
        result = grade_answer(TestAnswer(question_id="q1", selected_option_ids=["a"]), question)
        assert (result.score, result.max_score) == (1.0, 1.0)
        assert result.indicator_id == "i1"
        assert result.competency_id == "c1"

    def test_single_choice_wrong(self):
        question = make_question("q1", "i1", "c1")
        result = grade_answer(TestAnswer(question_id="q1", selected_option_ids=["b"]), question)
        assert result.score == 0.0

    def test_single_choice_multiple_selections_invalid(self):
        question = make_question("q1", "i1", "c1")
        with pytest.raises(ScoringError) as exc_info:
            grade_answer(
                TestAnswer(question_id="q1", selected_option_ids=["a", "b"]), question
            )
        assert exc_info.value.category == "INVALID_ANSWER"

    def test_multi_choice_partial_credit(self):
        question = make_question(
            "q1",
            "i1",
            "c1",
            question_type=QuestionType.MULTI_CHOICE,
            correct_option_ids=("a", "b"),
        )
        half = grade_answer(TestAnswer(question_id="q1", selected_option_ids=["a"]), question)
        penalised = grade_answer(
            TestAnswer(question_id="q1", selected_option_ids=["a", "c"]), question
        )
        floored = grade_answer(
            TestAnswer(question_id="q1", selected_option_ids=["c", "d"]), question
        )
        assert half.score == 0.5
        assert penalised.score == 0.0
        assert floored.score == 0.0

    @pytest.mark.parametrize(
        "value, reverse, expected",
        [(5, False, 1.0), (1, False, 0.0), (3, False, 0.5), (5, True, 0.0), (2, True, 0.75)],
    )
    def test_likert(self, value, reverse, expected):
        question = make_question(
            "q1", "i1", "c1", question_type=QuestionType.LIKERT, reverse_scored=reverse
        )
        result = grade_answer(TestAnswer(question_id="q1", likert_value=value), question)
        assert result.score == pytest.approx(expected)

    def test_likert_out_of_range_invalid(self):
        question = make_question("q1", "i1", "c1", question_type=QuestionType.LIKERT)
        with pytest.raises(ScoringError, match="outside"):
            grade_answer(TestAnswer(question_id="q1", likert_value=7), question)

    def test_ranking_share_of_positions(self):
        question = make_question(
            "q1",
            "i1",
            "c1",
            question_type=QuestionType.RANKING,
            correct_order=("w", "x", "y", "z"),
        )
        result = grade_answer(
            TestAnswer(question_id="q1", ranking_order=["w", "x", "z", "y"]), question
        )
        assert result.score == 0.5

    def test_free_text_uses_manual_score(self):
        question = make_question("q1", "i1", "c1", question_type=QuestionType.FREE_TEXT)
        graded_answer = grade_answer(
            TestAnswer(question_id="q1", text_response="essay", manual_score=0.8), question
        )
        ungraded = grade_answer(TestAnswer(question_id="q1", text_response="essay"), question)
        assert graded_answer.score == pytest.approx(0.8)
        assert ungraded.score == 0.0

    def test_wrong_payload_for_type_invalid(self):
        question = make_question("q1", "i1", "c1", question_type=QuestionType.LIKERT)
        with pytest.raises(ScoringError, match="expected only likert_value"):
            grade_answer(TestAnswer(question_id="q1", selected_option_ids=["a"]), question)

    def test_two_payloads_invalid(self):
        question = make_question("q1", "i1", "c1")
        with pytest.raises(ScoringError):
            grade_answer(
                TestAnswer(question_id="q1", selected_option_ids=["a"], likert_value=3),
                question,
            )

    def test_skipped_scores_zero_of_full_points(self):
        question = make_question("q1", "i1", "c1", points=2.0)
        result = grade_answer(TestAnswer(question_id="q1", is_skipped=True), question)
        assert (result.score, result.max_score, result.skipped) == (0.0, 2.0, True)

    def test_points_by_type_from_config(self):
        config = ScoringConfig(points_by_type={QuestionType.SINGLE_CHOICE: 3.0})
        question = make_question("q1", "i1", "c1")
        result = grade_answer(
            TestAnswer(question_id="q1", selected_option_ids=["a"]), question, config
        )
        assert result.max_score == 3.0


class TestAggregation:
    """Tests for indicator, competency and overall aggregation."""

    def test_weighted_mean(self):
        assert weighted_mean([(100.0, 3.0), (0.0, 1.0)]) == 75.0

    def test_weighted_mean_all_zero_weights_is_plain_mean(self):
        assert weighted_mean([(100.0, 0.0), (50.0, 0.0)]) == 75.0

    def test_weighted_mean_empty(self):
        assert weighted_mean([]) == 0.0

    def test_indicator_weights_shape_competency_percentage(self):
        bp = TestBlueprint(
            goal=AssessmentGoal.OVERVIEW,
            competencies=[CompetencyRef(competency_id="c1")],
            total_questions=4,
        )
        answers = [
            graded("c1", "i1", 1.0),
            graded("c1", "i1", 1.0),
            graded("c1", "i2", 0.0),
            graded("c1", "i2", 0.0),
        ]
        breakdown = score_competencies(answers, {"i1": 3.0, "i2": 1.0}, bp, ScoringConfig())

        assert len(breakdown) == 1
        assert breakdown[0]["percentage"] == 75.0
        assert breakdown[0]["score"] == 2.0
        assert breakdown[0]["max_score"] == 4.0
        assert [i["indicator_id"] for i in breakdown[0]["indicator_scores"]] == ["i1", "i2"]

    def test_blueprint_weights_shape_overall(self):
        bp = TestBlueprint(
            goal=AssessmentGoal.JOB_FIT,
            competencies=[
                CompetencyRef(competency_id="c1", weight=0.8),
                CompetencyRef(competency_id="c2", weight=0.2),
            ],
            total_questions=2,
        )
        breakdown = score_competencies(
            [graded("c2", "i2", 0.0), graded("c1", "i1", 1.0)], {}, bp, ScoringConfig()
        )
        assert [c["competency_id"] for c in breakdown] == ["c1", "c2"]
        assert overall_percentage(breakdown) == pytest.approx(80.0)

    def test_unknown_competency_has_zero_weight(self):
        bp = TestBlueprint(
            goal=AssessmentGoal.OVERVIEW,
            competencies=[CompetencyRef(competency_id="c1")],
            total_questions=2,
        )
        breakdown = score_competencies(
            [graded("c1", "i1", 1.0), graded("stray", "i9", 0.0)], {}, bp, ScoringConfig()
        )
        assert breakdown[-1]["competency_id"] == "stray"
        assert breakdown[-1]["weight"] == 0.0
        assert overall_percentage(breakdown) == 100.0

    def test_insufficient_evidence_flag(self):
        bp = TestBlueprint(
            goal=AssessmentGoal.OVERVIEW,
            competencies=[CompetencyRef(competency_id="c1")],
            total_questions=2,
        )
        breakdown = score_competencies(
            [graded("c1", "i1", 1.0)],
            {},
            bp,
            ScoringConfig(min_questions_per_competency=3),
        )
        assert breakdown[0]["insufficient_evidence"] is True

    def test_empty_breakdown_overall_is_zero(self):
        assert overall_percentage([]) == 0.0


class TestOverviewStrategy:
    """Tests for the OVERVIEW profile pattern."""

    @pytest.mark.parametrize(
        "pct, overall, expected",
        [
            (90.0, 60.0, "SIGNATURE_STRENGTH"),
            (80.0, 75.0, "STRENGTH"),
            (55.0, 60.0, "DEVELOPING"),
            (35.0, 60.0, "AVERAGE"),
            (20.0, 60.0, "CRITICAL_GAP"),
        ],
    )
    def test_categorize(self, pct, overall, expected):
        assert OverviewScoringStrategy().categorize(pct, overall, ScoringConfig()) == expected

    def test_extended_metrics(self):
        breakdown = [
            competency("c1", 95.0),
            competency("c2", 20.0, insufficient=True),
        ]
        metrics = OverviewScoringStrategy().extended_metrics(
            breakdown, 57.5, None, ScoringConfig()
        )
        assert metrics["profile_pattern"] == {
            "SIGNATURE_STRENGTH": ["c1"],
            "CRITICAL_GAP": ["c2"],
        }
        assert metrics["low_evidence_competencies"] == ["c2"]


class TestJobFitStrategy:
    """Tests for JOB_FIT benchmark gaps."""

    def test_benchmark_gaps(self, job_fit_blueprint):
        breakdown = [
            competency("communication", 80.0, 0.5),
            competency("leadership", 40.0, 0.3),
            competency("analysis", 50.0, 0.2),
        ]
        metrics = JobFitScoringStrategy().extended_metrics(
            breakdown, 62.0, job_fit_blueprint, ScoringConfig()
        )

        gaps = {g["competency_id"]: g for g in metrics["benchmark_gaps"]}
        assert gaps["communication"]["gap"] == 10.0
        assert gaps["leadership"]["meets_benchmark"] is False
        assert gaps["analysis"]["meets_benchmark"] is True
        assert metrics["fit_ratio"] == pytest.approx(2 / 3)
        assert metrics["largest_gap"] == "leadership"
        assert metrics["meets_job_requirements"] is True

    def test_no_benchmarks(self, overview_blueprint):
        metrics = JobFitScoringStrategy().extended_metrics(
            [competency("communication", 80.0)], 80.0, overview_blueprint, ScoringConfig()
        )
        assert metrics["benchmark_gaps"] == []
        assert metrics["fit_ratio"] is None
        assert metrics["largest_gap"] is None


class TestTeamFitStrategy:
    """Tests for TEAM_FIT contributions."""

    def test_contributions_and_bonus(self, team_fit_blueprint):
        breakdown = [
            competency("communication", 80.0),
            competency("leadership", 60.0),
            competency("analysis", 55.0),
        ]
        metrics = TeamFitScoringStrategy().extended_metrics(
            breakdown, 65.0, team_fit_blueprint, ScoringConfig()
        )

        kinds = {c["competency_id"]: c["contribution"] for c in metrics["contributions"]}
        assert kinds == {
            "communication": "SATURATION",
            "leadership": "DIVERSITY",
            "analysis": "DIVERSITY",
        }
        assert metrics["diversity_ratio"] == pytest.approx(2 / 3)
        assert metrics["team_fit_multiplier"] == 1.1
        assert metrics["adjusted_percentage"] == pytest.approx(71.5)
        assert metrics["gap_count"] == 0
        assert metrics["adds_team_value"] is True

    def test_saturation_penalty(self, team_fit_blueprint):
        breakdown = [competency(cid, 90.0) for cid in ("communication", "leadership", "analysis")]
        metrics = TeamFitScoringStrategy().extended_metrics(
            breakdown, 90.0, team_fit_blueprint, ScoringConfig()
        )
        assert metrics["team_fit_multiplier"] == 0.9
        assert metrics["adjusted_percentage"] == pytest.approx(81.0)
        assert metrics["adds_team_value"] is False

    def test_gap_coverage_weights_uncovered_competencies(self, team_fit_blueprint):
        breakdown = [
            competency("communication", 0.0),
            competency("leadership", 100.0),
            competency("analysis", 0.0),
        ]
        metrics = TeamFitScoringStrategy().extended_metrics(
            breakdown, 33.3, team_fit_blueprint, ScoringConfig()
        )
        # (1 - 0.2) / ((1 - 0.9) + (1 - 0.2) + (1 - 0.5))
        assert metrics["gap_coverage"] == pytest.approx(0.8 / 1.4)


class TestScoringStrategyForGoal:
    def test_all_goals_registered(self):
        for goal in AssessmentGoal:
            assert scoring_strategy_for_goal(goal).goal == goal

    def test_unknown_goal(self):
        with pytest.raises(ConfigurationError):
            scoring_strategy_for_goal("CAREER_PATH")
