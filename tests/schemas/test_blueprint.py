"""
Tests for blueprint and scoring configuration schemas.
"""
import pytest
from pydantic import ValidationError

from assessment_engine.core.exceptions import ConfigurationError
from assessment_engine.models.models import AssessmentGoal, QuestionType
from assessment_engine.schemas.blueprint import (
    CompetencyRef,
    ScoringConfig,
    TestBlueprint,
    parse_blueprint,
)


class TestCompetencyRef:
    """Tests for competency allocation parameters."""

    def test_defaults(self):
        ref = CompetencyRef(competency_id="communication")
        assert ref.weight == 1.0
        assert ref.min_questions == 0
        assert ref.max_questions is None
        assert ref.label == "communication"

    def test_label_prefers_name(self):
        ref = CompetencyRef(competency_id="comm", name="Communication")
        assert ref.label == "Communication"

    def test_max_below_min_rejected(self):
        with pytest.raises(ValidationError, match="max_questions"):
            CompetencyRef(competency_id="c1", min_questions=3, max_questions=2)

    @pytest.mark.parametrize(
        "field, value",
        [("weight", -0.1), ("saturation", 1.5), ("benchmark", 101.0), ("competency_id", "")],
    )
    def test_out_of_range_rejected(self, field, value):
        params = {"competency_id": "c1", field: value}
        with pytest.raises(ValidationError):
            CompetencyRef(**params)


class TestTestBlueprint:
    """Tests for blueprint validation and helpers."""

    def test_duplicate_competencies_rejected(self):
        with pytest.raises(ValidationError, match="Duplicate competency"):
            TestBlueprint(
                goal=AssessmentGoal.OVERVIEW,
                competencies=[
                    CompetencyRef(competency_id="c1"),
                    CompetencyRef(competency_id="c1"),
                ],
                total_questions=4,
            )

    def test_negative_budget_rejected(self):
        with pytest.raises(ValidationError):
            TestBlueprint(goal=AssessmentGoal.OVERVIEW, total_questions=-1)

    def test_lookup_and_weights(self, job_fit_blueprint):
        assert job_fit_blueprint.competency("leadership").benchmark == 60.0
        assert job_fit_blueprint.competency("unknown") is None
        assert job_fit_blueprint.weights() == {
            "communication": 0.5,
            "leadership": 0.3,
            "analysis": 0.2,
        }

    def test_defaults(self):
        bp = TestBlueprint(goal="TEAM_FIT", total_questions=5)
        assert bp.goal == AssessmentGoal.TEAM_FIT
        assert bp.passing_score == 50.0
        assert bp.shuffle_questions is True


class TestParseBlueprint:
    def test_passes_through_model(self, overview_blueprint):
        assert parse_blueprint(overview_blueprint) is overview_blueprint

    def test_parses_mapping(self):
        bp = parse_blueprint({"goal": "JOB_FIT", "total_questions": 3})
        assert bp.goal == AssessmentGoal.JOB_FIT

    def test_missing(self):
        with pytest.raises(ConfigurationError, match="required"):
            parse_blueprint(None)

    def test_wrong_type(self):
        with pytest.raises(ConfigurationError, match="list"):
            parse_blueprint(["OVERVIEW"])

    def test_validation_errors_in_details(self):
        with pytest.raises(ConfigurationError) as exc_info:
            parse_blueprint({"goal": "CAREER_PATH", "total_questions": 3})
        assert exc_info.value.details["errors"][0]["loc"] == ("goal",)


class TestScoringConfig:
    def test_points_for(self):
        config = ScoringConfig(points_by_type={QuestionType.LIKERT: 2.0})
        assert config.points_for(QuestionType.LIKERT) == 2.0
        assert config.points_for(QuestionType.RANKING) == 1.0

    def test_likert_range_validated(self):
        with pytest.raises(ValidationError, match="likert_max"):
            ScoringConfig(likert_min=5, likert_max=5)

    def test_snapshot_is_json_safe(self):
        snapshot = ScoringConfig().snapshot()
        assert snapshot["points_by_type"]["SINGLE_CHOICE"] == 1.0
        assert snapshot["team_diversity_bonus"] == 1.1
