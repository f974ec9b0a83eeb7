"""Pydantic schemas for CAT configuration and candidate items.

These records are produced by external collaborators (the exam-authoring
subsystem and the item bank) and are read-only for the engine. Payloads may use
either snake_case or the camelCase names the authoring API emits.
"""
from typing import Optional, Tuple

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from examcat.core.config import settings as app_settings
from libs.domain_types import (
    EmptyPoolPolicy,
    IRTModelType,
    ItemSelectionMethod,
    ParameterMode,
    ScoringMethod,
)

_MODEL_CONFIG = ConfigDict(
    frozen=True,
    alias_generator=to_camel,
    populate_by_name=True,
    allow_inf_nan=False,
)


class ItemParameters(BaseModel):
    """IRT parameters of a single item, owned by the item bank."""

    model_config = _MODEL_CONFIG

    difficulty: float = Field(..., description="Difficulty (b)")
    discrimination: float = Field(1.0, description="Discrimination (a)")
    guessing: float = Field(
        0.0, ge=0.0, lt=1.0, description="Lower asymptote (c), 3PL only"
    )
    # Upper asymptote (d) from 4PL item records; no supported model reads it.
    slipping: float = Field(1.0, description="Upper asymptote (d), unused")


class CandidateItem(BaseModel):
    """An item offered for selection, supplied fresh on every call."""

    model_config = _MODEL_CONFIG

    id: str
    params: ItemParameters
    category_id: Optional[str] = None


class TerminationCriteria(BaseModel):
    """Stopping thresholds from the exam configuration.

    Only standard_error is evaluated by the engine. confidence_level and
    time_limit are enforced by the session host.
    """

    model_config = _MODEL_CONFIG

    confidence_level: float = Field(0.95, gt=0.0, lt=1.0)
    standard_error: float = Field(0.3, gt=0.0)
    time_limit: int = Field(0, ge=0, description="Minutes; 0 means no limit")


class CATCategory(BaseModel):
    """Per-category quota descriptor.

    Percentages across categories are expected to sum to 100; the engine only
    warns when they do not.
    """

    model_config = _MODEL_CONFIG

    category_id: str
    category_name: str
    testbank_id: str
    percentage: float = Field(..., ge=0.0, le=100.0)
    min_questions: int = Field(0, ge=0)
    max_questions: int = Field(0, ge=0)
    target_proficiency: float = 0.0


class CATSettings(BaseModel):
    """Configuration of one adaptive exam, immutable for a session's lifetime.

    Cross-field rules (min <= max, at least one category) are checked when a
    session is initialized, not here, so that they surface as
    ConfigurationError.
    """

    model_config = _MODEL_CONFIG

    # Authoring payloads name this field catModel. Unset falls back to the
    # service-wide CAT_DEFAULT_MODEL.
    model: IRTModelType = Field(
        default_factory=lambda: app_settings.CAT_DEFAULT_MODEL,
        validation_alias=AliasChoices("model", "catModel"),
    )
    initial_difficulty: float = 0.0
    # Accepted from the authoring surface; not evaluated by the engine.
    difficulty_adjustment: float = 0.0
    min_questions: int = Field(..., ge=0)
    max_questions: int = Field(..., ge=0)
    termination_criteria: TerminationCriteria = Field(
        default_factory=TerminationCriteria
    )
    item_selection_method: ItemSelectionMethod = (
        ItemSelectionMethod.MAXIMUM_INFORMATION
    )
    scoring_method: ScoringMethod = ScoringMethod.RAW
    categories: Tuple[CATCategory, ...] = ()
    # None falls back to the service-wide defaults in examcat.core.config.
    parameter_mode: Optional[ParameterMode] = None
    empty_pool_policy: Optional[EmptyPoolPolicy] = None
