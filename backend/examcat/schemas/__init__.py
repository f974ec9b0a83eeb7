"""
Pydantic schemas for engine inputs.
"""
from .cat_settings import (
    CandidateItem,
    CATCategory,
    CATSettings,
    ItemParameters,
    TerminationCriteria,
)

__all__ = [
    "CandidateItem",
    "CATCategory",
    "CATSettings",
    "ItemParameters",
    "TerminationCriteria",
]
