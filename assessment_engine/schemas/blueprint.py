"""
Pydantic schemas for test blueprints and scoring configuration.

A blueprint is supplied by the template owner and describes what a test must
contain. The scoring configuration holds the tunable knobs a scoring run
uses; the orchestrator snapshots it into every audit record.
"""
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
from typing import Any, Dict, List, Optional, Self

from assessment_engine.core.exceptions import ConfigurationError
from assessment_engine.models.models import AssessmentGoal, QuestionType


class CompetencyRef(BaseModel):
    """Competency selected by a blueprint, with its allocation parameters."""

    model_config = ConfigDict(frozen=True)

    competency_id: str = Field(..., min_length=1, description="Competency ID")
    name: Optional[str] = Field(None, description="Display name")
    weight: float = Field(1.0, ge=0.0, description="Relative allocation weight")
    min_questions: int = Field(0, ge=0, description="Warn when allocation falls below")
    max_questions: Optional[int] = Field(
        None, ge=0, description="Hard cap on questions for this competency"
    )
    saturation: Optional[float] = Field(
        None,
        ge=0.0,
        le=1.0,
        description="Team coverage of this competency (TEAM_FIT); low values are gaps",
    )
    benchmark: Optional[float] = Field(
        None,
        ge=0.0,
        le=100.0,
        description="Target percentage for the role (JOB_FIT)",
    )

    @model_validator(mode="after")
    def validate_bounds(self) -> Self:
        if self.max_questions is not None and self.max_questions < self.min_questions:
            raise ValueError(
                f"max_questions ({self.max_questions}) must be >= "
                f"min_questions ({self.min_questions}) for {self.competency_id}"
            )
        return self

    @property
    def label(self) -> str:
        return self.name or self.competency_id


class TestBlueprint(BaseModel):
    """Blueprint for assembling and scoring a test."""

    __test__ = False  # not a pytest test class
    model_config = ConfigDict(frozen=True)

    goal: AssessmentGoal = Field(..., description="Assessment goal")
    competencies: List[CompetencyRef] = Field(
        default_factory=list, description="Ordered competencies"
    )
    total_questions: int = Field(..., ge=0, description="Total question budget")
    time_limit_minutes: Optional[int] = Field(None, gt=0)
    passing_score: float = Field(50.0, ge=0.0, le=100.0)
    shuffle_questions: bool = True
    shuffle_options: bool = False

    @model_validator(mode="after")
    def validate_unique_competencies(self) -> Self:
        seen = set()
        for ref in self.competencies:
            if ref.competency_id in seen:
                raise ValueError(f"Duplicate competency {ref.competency_id}")
            seen.add(ref.competency_id)
        return self

    def competency(self, competency_id: str) -> Optional[CompetencyRef]:
        for ref in self.competencies:
            if ref.competency_id == competency_id:
                return ref
        return None

    def weights(self) -> Dict[str, float]:
        return {ref.competency_id: ref.weight for ref in self.competencies}


class ScoringConfig(BaseModel):
    """Tunable scoring parameters; snapshotted into audit logs."""

    model_config = ConfigDict(frozen=True)

    likert_min: int = 1
    likert_max: int = 5
    # Point value per question type, used when a question has no override
    points_by_type: Dict[QuestionType, float] = Field(
        default_factory=lambda: {qt: 1.0 for qt in QuestionType}
    )
    # Fewer answered questions than this flags a competency as low evidence
    min_questions_per_competency: int = Field(3, ge=0)

    # Overview profile pattern
    strength_threshold: float = 75.0
    development_threshold: float = 40.0
    critical_gap_threshold: float = 30.0
    profile_band_width: float = 10.0

    # Job fit
    job_fit_base_threshold: float = Field(0.5, ge=0.0, le=1.0)

    # Team fit
    team_saturation_threshold: float = Field(0.75, ge=0.0, le=1.0)
    team_diversity_threshold: float = Field(0.5, ge=0.0, le=1.0)
    team_diversity_bonus_threshold: float = Field(0.4, ge=0.0, le=1.0)
    team_saturation_penalty_threshold: float = Field(0.8, ge=0.0, le=1.0)
    team_diversity_bonus: float = 1.1
    team_saturation_penalty: float = 0.9
    team_value_threshold: float = Field(0.6, ge=0.0, le=1.0)
    team_min_diversity_ratio: float = Field(0.3, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def validate_likert_range(self) -> Self:
        if self.likert_max <= self.likert_min:
            raise ValueError("likert_max must be greater than likert_min")
        return self

    def points_for(self, question_type: QuestionType) -> float:
        return self.points_by_type.get(question_type, 1.0)

    def snapshot(self) -> Dict[str, Any]:
        """JSON-safe copy for audit records."""
        return self.model_dump(mode="json")


def parse_blueprint(raw: Any) -> TestBlueprint:
    """
    Coerce ``raw`` into a validated blueprint.

    Raises:
        ConfigurationError: if ``raw`` is None, of the wrong type, or fails
            validation.
    """
    if raw is None:
        raise ConfigurationError("Blueprint is required")
    if isinstance(raw, TestBlueprint):
        return raw
    if not isinstance(raw, dict):
        raise ConfigurationError(
            f"Blueprint must be a TestBlueprint or mapping, got {type(raw).__name__}"
        )
    try:
        return TestBlueprint.model_validate(raw)
    except ValidationError as e:
        raise ConfigurationError(
            "Malformed blueprint", details={"errors": e.errors(include_url=False)}
        ) from e
