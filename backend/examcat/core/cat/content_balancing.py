"""
Category quota scheduling for Computerized Adaptive Testing.

Item selection only maximizes information within the pool it is handed. This
module sits in front of it and narrows the pool so the categories declared in
CATSettings receive their share of questions. Per-category counts are an
extension of session state kept by the caller (see ``track_category_coverage``).

Two constraint tiers:
    Hard constraint: A category below its min_questions is served first.
    Categories at their max_questions receive no further items.

    Soft constraint: Once every minimum is met, a category more than
    CONTENT_BALANCE_TOLERANCE below its target percentage is preferred.

References:
    - Cheng, Y., & Chang, H.-H. (2009). The maximum priority index method
      for severely constrained item selection in CAT.
"""

import logging
from typing import Dict, Iterable, List, Optional, Sequence

from examcat.schemas.cat_settings import CandidateItem, CATCategory

logger = logging.getLogger(__name__)

# Soft constraint tolerance: categories below (target - tolerance) are prioritized.
CONTENT_BALANCE_TOLERANCE = 0.10

# Tolerance when checking that category percentages sum to 100.
PERCENTAGE_SUM_TOLERANCE = 0.5


def track_category_coverage(category_ids: Iterable[Optional[str]]) -> Dict[str, int]:
    """
    Count administered items per category.

    Args:
        category_ids: Category id of each administered item, in any order.
            Items without a category (None) are ignored.

    Returns:
        Dict mapping category id to the number of items administered.
    """
    coverage: Dict[str, int] = {}
    for category_id in category_ids:
        if category_id is not None:
            coverage[category_id] = coverage.get(category_id, 0) + 1
    return coverage


def category_percentages_valid(categories: Sequence[CATCategory]) -> bool:
    """Return True if category percentages sum to 100 (within tolerance)."""
    total = sum(category.percentage for category in categories)
    return abs(total - 100.0) <= PERCENTAGE_SUM_TOLERANCE


def _at_maximum(category: CATCategory, coverage: Dict[str, int]) -> bool:
    # max_questions of 0 means the category has no ceiling
    return (
        category.max_questions > 0
        and coverage.get(category.category_id, 0) >= category.max_questions
    )


def get_priority_category(
    coverage: Dict[str, int],
    categories: Sequence[CATCategory],
    tolerance: float = CONTENT_BALANCE_TOLERANCE,
) -> Optional[str]:
    """
    Determine which category should supply the next item.

    1. **Hard constraint**: if any category is below its ``min_questions``,
       return the one with the largest deficit.
    2. **Soft constraint**: otherwise return the category furthest below its
       target percentage, if it trails by more than ``tolerance``.

    Categories already at their ``max_questions`` are never returned.

    Args:
        coverage: Current category coverage counts.
        categories: Category quota descriptors from CATSettings.
        tolerance: Soft-constraint tolerance as a proportion.

    Returns:
        The category id to prioritize, or None if no category needs priority.
    """
    open_categories = [c for c in categories if not _at_maximum(c, coverage)]

    deficits = {
        c.category_id: c.min_questions - coverage.get(c.category_id, 0)
        for c in open_categories
        if coverage.get(c.category_id, 0) < c.min_questions
    }
    if deficits:
        return max(deficits, key=lambda category_id: deficits[category_id])

    total_items = sum(coverage.values())
    if total_items == 0:
        if not open_categories:
            return None
        # Nothing administered yet; start with the largest share
        return max(open_categories, key=lambda c: c.percentage).category_id

    worst_category = None
    worst_gap = 0.0
    for category in open_categories:
        actual = coverage.get(category.category_id, 0) / total_items
        gap = category.percentage / 100.0 - actual
        if gap > tolerance and gap > worst_gap:
            worst_gap = gap
            worst_category = category.category_id

    return worst_category


def filter_by_category(
    pool: Sequence[CandidateItem], category_id: str
) -> List[CandidateItem]:
    """Return the items of ``pool`` that belong to ``category_id``."""
    return [item for item in pool if item.category_id == category_id]


def eligible_pool(
    pool: Sequence[CandidateItem],
    coverage: Dict[str, int],
    categories: Sequence[CATCategory],
) -> List[CandidateItem]:
    """
    Narrow a candidate pool according to category quotas.

    Items from categories at their maximum are removed. If a priority
    category exists and still has items, the pool is restricted to it;
    otherwise the remaining pool is returned unchanged.

    Args:
        pool: Candidate items not yet administered.
        coverage: Current category coverage counts.
        categories: Category quota descriptors from CATSettings.

    Returns:
        The filtered pool (possibly empty).
    """
    closed = {c.category_id for c in categories if _at_maximum(c, coverage)}
    open_pool = [item for item in pool if item.category_id not in closed]

    priority = get_priority_category(coverage, categories)
    if priority is not None:
        constrained = filter_by_category(open_pool, priority)
        if constrained:
            logger.debug(
                f"Quota scheduling: restricting to category '{priority}' "
                f"({len(constrained)} items available)"
            )
            return constrained

    return open_pool
