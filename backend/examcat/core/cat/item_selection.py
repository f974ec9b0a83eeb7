"""
Maximum Fisher Information (MFI) item selection for Computerized Adaptive Testing.

Selects, from a caller-supplied candidate pool, the item that maximizes Fisher
information at the current ability estimate. The pool is expected to be
pre-filtered by the caller (administered items removed, category quotas
applied via ``content_balancing``); this module does no quota balancing,
exposure control or pool mutation.

References:
    - van der Linden, W.J. (1998). Bayesian item selection criteria for
      adaptive testing.
"""

import logging
import math
from typing import Optional, Sequence, Union

from examcat.core.cat.exceptions import NoCandidateItemsError
from examcat.core.cat.irt_models import item_information, resolve_model
from examcat.schemas.cat_settings import CandidateItem
from libs.domain_types import EmptyPoolPolicy, IRTModelType

logger = logging.getLogger(__name__)


def select_next_item(
    pool: Sequence[CandidateItem],
    ability: float,
    model: Union[IRTModelType, str],
    empty_pool_policy: EmptyPoolPolicy = EmptyPoolPolicy.RAISE,
) -> Optional[str]:
    """
    Select the most informative item at the current ability estimate.

    The item with the strictly greatest information wins; on ties the item
    seen first in ``pool`` is kept, so selection depends on pool order.

    Args:
        pool: Candidate items with IRT parameters.
        ability: Current ability estimate (theta).
        model: IRT model used to compute information.
        empty_pool_policy: RAISE to signal an empty pool with
            NoCandidateItemsError, TERMINATE to return None instead.

    Returns:
        The id of the selected item, or None if the pool is empty and the
        policy is TERMINATE.

    Raises:
        NoCandidateItemsError: If the pool is empty and the policy is RAISE,
            or no candidate has finite information at ``ability``.
        ConfigurationError: If the model is not supported.
    """
    model = resolve_model(model)

    if not pool:
        if EmptyPoolPolicy(empty_pool_policy) is EmptyPoolPolicy.TERMINATE:
            logger.warning(
                "Candidate pool is empty; returning no item (terminate policy)"
            )
            return None
        raise NoCandidateItemsError(
            "Cannot select an item from an empty candidate pool",
            context={"ability": round(ability, 4), "model": model.value},
        )

    best_item: Optional[CandidateItem] = None
    best_information = -math.inf
    for item in pool:
        information = item_information(ability, item.params, model)
        if information > best_information:
            best_information = information
            best_item = item

    # Only reachable when every information value is NaN (e.g. a NaN ability)
    if best_item is None:
        raise NoCandidateItemsError(
            "No candidate item has a finite information value",
            context={"ability": ability, "candidates": len(pool)},
        )

    logger.debug(
        f"Item selection: theta={ability:.3f}, candidates={len(pool)}, "
        f"selected {best_item.id} "
        f"(a={best_item.params.discrimination:.2f}, "
        f"b={best_item.params.difficulty:.2f}, "
        f"info={best_information:.4f})"
    )

    return best_item.id
