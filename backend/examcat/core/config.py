"""
Engine configuration settings.
"""

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Literal, Self

from libs.domain_types import EmptyPoolPolicy, IRTModelType, ParameterMode


class Settings(BaseSettings):
    """Service-wide settings loaded from environment variables.

    Per-exam behaviour comes from CATSettings supplied by the authoring
    subsystem; the CAT_* values here are the platform defaults those settings
    fall back to when they leave a policy unset.
    """

    # Environment ("production" switches logging to JSON)
    ENV: str = "development"

    # Logging
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"

    # CAT defaults
    CAT_DEFAULT_MODEL: IRTModelType = IRTModelType.TWO_PL
    # per_item applies each response's own item parameters during EAP.
    # uniform reproduces the legacy estimator, which reused the current
    # item's discrimination/guessing for the whole response history.
    CAT_PARAMETER_MODE: ParameterMode = ParameterMode.PER_ITEM
    # raise surfaces an exhausted item bank as NoCandidateItemsError;
    # terminate returns None from selection so the host ends the attempt.
    CAT_EMPTY_POOL_POLICY: EmptyPoolPolicy = EmptyPoolPolicy.RAISE

    # Scaled score reporting range (e.g. 200-800)
    CAT_SCALED_SCORE_MIN: int = Field(
        default=200,
        description="Lowest reportable scaled score",
    )
    CAT_SCALED_SCORE_MAX: int = Field(
        default=800,
        description="Highest reportable scaled score",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",  # Ignore extra fields from .env not defined in Settings
    )

    @model_validator(mode="after")
    def validate_scaled_score_range(self) -> Self:
        """Validate that the scaled score range is non-empty."""
        if self.CAT_SCALED_SCORE_MIN >= self.CAT_SCALED_SCORE_MAX:
            raise ValueError(
                "CAT_SCALED_SCORE_MIN must be less than CAT_SCALED_SCORE_MAX, "
                f"got {self.CAT_SCALED_SCORE_MIN} >= {self.CAT_SCALED_SCORE_MAX}"
            )
        return self


settings = Settings()
