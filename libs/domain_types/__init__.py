"""Shared domain types for the adaptive exam engine.

This package is the single source of truth for the enums exchanged between
the exam-authoring subsystem, the session host, and the CAT engine.

Usage:
    from libs.domain_types import IRTModelType, ScoringMethod
"""

import enum


class IRTModelType(str, enum.Enum):
    """Item Response Theory models supported for selection and estimation."""

    RASCH = "rasch"
    TWO_PL = "2pl"
    THREE_PL = "3pl"


class ScoringMethod(str, enum.Enum):
    """How a terminal ability estimate is reported as a final score."""

    RAW = "raw"
    SCALED = "scaled"
    PERCENT = "percent"


class ItemSelectionMethod(str, enum.Enum):
    """Item selection criteria."""

    MAXIMUM_INFORMATION = "maximum_information"


class PerformanceLevel(str, enum.Enum):
    """Qualitative performance label attached to a final report."""

    LOW = "Low"
    BELOW_AVERAGE = "Below Average"
    AVERAGE = "Average"
    ABOVE_AVERAGE = "Above Average"
    HIGH = "High"


class ParameterMode(str, enum.Enum):
    """Which item parameters the ability estimator applies to past responses.

    PER_ITEM uses the parameters recorded with each response. UNIFORM reuses the
    current item's discrimination and guessing for the whole history, which
    reproduces score distributions produced by the legacy estimator.
    """

    PER_ITEM = "per_item"
    UNIFORM = "uniform"


class EmptyPoolPolicy(str, enum.Enum):
    """Behaviour of item selection when the candidate pool is empty."""

    RAISE = "raise"
    TERMINATE = "terminate"


__all__ = [
    "IRTModelType",
    "ScoringMethod",
    "ItemSelectionMethod",
    "PerformanceLevel",
    "ParameterMode",
    "EmptyPoolPolicy",
]
