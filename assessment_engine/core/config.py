"""
Engine configuration settings.
"""

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Literal, Self


class Settings(BaseSettings):
    """Engine settings loaded from environment variables."""

    # Application
    APP_NAME: str = "Assessment Engine"
    APP_VERSION: str = "0.1.0"
    ENV: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"

    # Persistence
    DATABASE_URL: str = "sqlite:///./assessment_engine.db"

    # Reliability analysis
    # Cronbach's alpha is only reported once both floors are met
    RELIABILITY_MIN_SESSIONS: int = Field(default=50, ge=2)
    RELIABILITY_MIN_ITEMS: int = Field(default=2, ge=2)
    # Sessions answering fewer than this share of a competency's items are excluded
    RELIABILITY_RESPONSE_COMPLETENESS: float = Field(default=0.9, gt=0.0, le=1.0)
    ALPHA_RELIABLE_THRESHOLD: float = Field(default=0.7, ge=0.0, le=1.0)
    ALPHA_ACCEPTABLE_THRESHOLD: float = Field(default=0.6, ge=0.0, le=1.0)

    # Assembly / simulation
    DEFAULT_QUESTION_TIME_SECONDS: int = Field(default=60, gt=0)
    # Healthy inventory depth per competency; below this the assembler warns
    INVENTORY_RECOMMENDED_PER_COMPETENCY: int = Field(default=5, ge=1)

    # OpenTelemetry metrics
    OTEL_ENABLED: bool = False
    OTEL_METRICS_ENABLED: bool = False
    OTEL_SERVICE_NAME: str = "assessment-engine"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",  # Ignore extra fields from .env not defined in Settings
    )

    @model_validator(mode="after")
    def validate_alpha_thresholds(self) -> Self:
        """Validate that the acceptable band sits below the reliable band."""
        if self.ALPHA_ACCEPTABLE_THRESHOLD > self.ALPHA_RELIABLE_THRESHOLD:
            raise ValueError(
                f"ALPHA_ACCEPTABLE_THRESHOLD ({self.ALPHA_ACCEPTABLE_THRESHOLD}) "
                f"must not exceed ALPHA_RELIABLE_THRESHOLD "
                f"({self.ALPHA_RELIABLE_THRESHOLD})"
            )
        return self

    @model_validator(mode="after")
    def validate_metrics_config(self) -> Self:
        """Metrics require the OpenTelemetry master switch."""
        if self.OTEL_METRICS_ENABLED and not self.OTEL_ENABLED:
            raise ValueError("OTEL_METRICS_ENABLED=True requires OTEL_ENABLED=True")
        return self


settings = Settings()
