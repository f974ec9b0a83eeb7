"""
Pytest configuration and shared fixtures for testing.
"""
import sys
from pathlib import Path

# Add project root and backend/ to path so libs/ and examcat/ are importable
# without an installed distribution.
backend_root = Path(__file__).parent.parent
project_root = backend_root.parent
for path in (project_root, backend_root):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

from typing import Any, Callable  # noqa: E402

import pytest  # noqa: E402

from examcat.schemas.cat_settings import (  # noqa: E402
    CandidateItem,
    CATCategory,
    CATSettings,
    ItemParameters,
    TerminationCriteria,
)


def make_category(
    category_id: str = "cardiology",
    percentage: float = 100.0,
    min_questions: int = 0,
    max_questions: int = 0,
) -> CATCategory:
    """Build a category quota descriptor with sensible defaults."""
    return CATCategory(
        category_id=category_id,
        category_name=category_id.replace("_", " ").title(),
        testbank_id=f"tb-{category_id}",
        percentage=percentage,
        min_questions=min_questions,
        max_questions=max_questions,
        target_proficiency=0.0,
    )


def make_settings(**overrides: Any) -> CATSettings:
    """Build CATSettings for a 2PL exam, overriding any field."""
    fields: dict[str, Any] = {
        "model": "2pl",
        "initial_difficulty": 0.0,
        "min_questions": 5,
        "max_questions": 20,
        "termination_criteria": TerminationCriteria(standard_error=0.3),
        "scoring_method": "raw",
        "categories": (make_category(),),
    }
    fields.update(overrides)
    return CATSettings(**fields)


def make_item(
    item_id: str,
    difficulty: float = 0.0,
    discrimination: float = 1.0,
    guessing: float = 0.0,
    category_id: str | None = None,
) -> CandidateItem:
    """Build a candidate item."""
    return CandidateItem(
        id=item_id,
        params=ItemParameters(
            difficulty=difficulty, discrimination=discrimination, guessing=guessing
        ),
        category_id=category_id,
    )


@pytest.fixture
def settings_factory() -> Callable[..., CATSettings]:
    """Factory for CATSettings with overrides."""
    return make_settings


@pytest.fixture
def cat_settings() -> CATSettings:
    """Default 2PL exam settings: 5-20 questions, SE target 0.3."""
    return make_settings()


@pytest.fixture
def item_factory() -> Callable[..., CandidateItem]:
    """Factory for candidate items."""
    return make_item


@pytest.fixture
def category_factory() -> Callable[..., CATCategory]:
    """Factory for category quota descriptors."""
    return make_category
