"""
Pydantic schemas for blueprints and scoring configuration.
"""
from .blueprint import CompetencyRef, ScoringConfig, TestBlueprint, parse_blueprint

__all__ = ["CompetencyRef", "ScoringConfig", "TestBlueprint", "parse_blueprint"]
