"""
EAP (Expected A Posteriori) ability estimation for Computerized Adaptive Testing.

Recomputes the ability estimate (theta) and its standard error from the full
response history by numerical integration of the posterior over a fixed
quadrature grid, with a standard normal prior (Bock & Mislevy, 1982).

Formula (rectangle rule, step h):
    theta_hat = sum(theta_i * L(theta_i) * prior(theta_i) * h)
                / sum(L(theta_i) * prior(theta_i) * h)
    Var       = sum(theta_i^2 * L * prior * h) / sum(L * prior * h) - theta_hat^2
    SE        = sqrt(Var)

Where L(theta) = product of P(response_j | theta, item_j) over all responses.
"""

import logging
import math
from typing import List, Sequence, Tuple, Union

from examcat.core.cat.exceptions import EstimationDegenerateError
from examcat.core.cat.irt_models import normal_pdf, resolve_model, response_probability
from examcat.schemas.cat_settings import ItemParameters
from libs.domain_types import IRTModelType

logger = logging.getLogger(__name__)

# Quadrature configuration: 41 points over [-4, 4], step 0.2
QUADRATURE_POINTS = 41
QUADRATURE_RANGE = (-4.0, 4.0)

# Standard normal prior on theta
PRIOR_MEAN = 0.0
PRIOR_SD = 1.0

# Posterior mass below this is treated as an underflow.
POSTERIOR_FLOOR = 1e-300


def quadrature_grid() -> Tuple[List[float], float]:
    """Return the evenly spaced theta grid and its step width."""
    theta_min, theta_max = QUADRATURE_RANGE
    step = (theta_max - theta_min) / (QUADRATURE_POINTS - 1)
    return [theta_min + step * i for i in range(QUADRATURE_POINTS)], step


def update_ability_eap(
    responses: Sequence[bool],
    item_params: Sequence[ItemParameters],
    model: Union[IRTModelType, str],
) -> Tuple[float, float]:
    """
    Estimate ability and standard error from a response history using EAP.

    Args:
        responses: Correctness of each administered item, in order.
        item_params: IRT parameters of each administered item, parallel to
            ``responses``.
        model: IRT model used for the likelihood.

    Returns:
        Tuple of (ability, standard_error). With no responses, the prior
        (0.0, 1.0) is returned.

    Raises:
        ValueError: If responses and item_params differ in length.
        EstimationDegenerateError: If the posterior integral underflows.
        ConfigurationError: If the model is not supported.
    """
    if len(responses) != len(item_params):
        raise ValueError(
            f"responses length ({len(responses)}) must match "
            f"item_params length ({len(item_params)})"
        )

    model = resolve_model(model)

    if not responses:
        return (PRIOR_MEAN, PRIOR_SD)

    theta_points, step = quadrature_grid()

    numerator = 0.0
    second_moment = 0.0
    denominator = 0.0
    for theta in theta_points:
        prior = normal_pdf(theta, PRIOR_MEAN, PRIOR_SD)

        likelihood = 1.0
        for is_correct, params in zip(responses, item_params):
            prob = response_probability(theta, params, model)
            likelihood *= prob if is_correct else (1.0 - prob)

        posterior = likelihood * prior
        numerator += theta * posterior * step
        second_moment += theta * theta * posterior * step
        denominator += posterior * step

    if not math.isfinite(denominator) or denominator <= POSTERIOR_FLOOR:
        raise EstimationDegenerateError(
            "Posterior integral underflowed; ability is not estimable",
            context={
                "responses": len(responses),
                "correct": sum(1 for r in responses if r),
                "denominator": denominator,
            },
        )

    ability = numerator / denominator
    # Round-off can push a very small variance slightly below zero
    variance = max(0.0, second_moment / denominator - ability * ability)
    standard_error = math.sqrt(variance)

    return (ability, standard_error)


def uniform_history_parameters(
    difficulties: Sequence[float],
    current_params: ItemParameters,
) -> List[ItemParameters]:
    """
    Build the legacy parameter list for a response history.

    Each historical item keeps its own difficulty but borrows the current
    item's discrimination, guessing and slipping. This reproduces the
    estimates of the legacy estimator and is used only when the parameter
    mode is UNIFORM.
    """
    return [
        current_params.model_copy(update={"difficulty": difficulty})
        for difficulty in difficulties
    ]
