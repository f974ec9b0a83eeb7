"""
Item Response Theory probability and information functions.

Supported models:

    Rasch:  P(theta) = 1 / (1 + exp(-(theta - b)))
    2PL:    P(theta) = 1 / (1 + exp(-a * (theta - b)))
    3PL:    P(theta) = c + (1 - c) / (1 + exp(-a * (theta - b)))

Fisher information:

    Rasch:  I(theta) = P * (1 - P)
    2PL:    I(theta) = a^2 * P * (1 - P)
    3PL:    I(theta) = a^2 * (P - c)^2 * (1 - P) / ((1 - c)^2 * P)

The 3PL form is Birnbaum's item information; it reduces to the 2PL form when
c = 0. All functions are pure and deterministic.

References:
    - Birnbaum, A. (1968). Some latent trait models and their use in inferring
      an examinee's ability. In F. M. Lord & M. R. Novick, Statistical theories
      of mental test scores.
    - Lord, F. M. (1980). Applications of item response theory to practical
      testing problems.
"""

import math
from typing import Union

from examcat.core.cat.exceptions import ConfigurationError
from examcat.schemas.cat_settings import ItemParameters
from libs.domain_types import IRTModelType

_SQRT_TWO_PI = math.sqrt(2.0 * math.pi)


def resolve_model(model: Union[IRTModelType, str]) -> IRTModelType:
    """Coerce a model name to IRTModelType, rejecting unknown models."""
    try:
        return IRTModelType(model)
    except ValueError as e:
        raise ConfigurationError(
            f"Unsupported IRT model '{model}'",
            context={"supported": [m.value for m in IRTModelType]},
        ) from e


def probability_2pl(ability: float, difficulty: float, discrimination: float) -> float:
    """
    Probability of a correct response under the 2PL model.

    Equals 0.5 exactly when ability == difficulty. Increasing in ability for
    positive discrimination, decreasing for negative discrimination.

    Args:
        ability: Ability (theta).
        difficulty: Item difficulty (b).
        discrimination: Item discrimination (a).

    Returns:
        Probability in (0, 1) (saturates to 0.0/1.0 only at extreme logits).
    """
    logit = discrimination * (ability - difficulty)

    # Numerically stable sigmoid
    if logit >= 0:
        return 1.0 / (1.0 + math.exp(-logit))
    exp_logit = math.exp(logit)
    return exp_logit / (1.0 + exp_logit)


def probability_3pl(
    ability: float,
    difficulty: float,
    discrimination: float,
    guessing: float,
) -> float:
    """
    Probability of a correct response under the 3PL model.

    Returns:
        Probability in [guessing, 1).
    """
    return guessing + (1.0 - guessing) * probability_2pl(
        ability, difficulty, discrimination
    )


def response_probability(
    ability: float,
    params: ItemParameters,
    model: Union[IRTModelType, str],
) -> float:
    """Probability of a correct response to an item under the given model."""
    model = resolve_model(model)
    if model is IRTModelType.RASCH:
        return probability_2pl(ability, params.difficulty, 1.0)
    if model is IRTModelType.TWO_PL:
        return probability_2pl(ability, params.difficulty, params.discrimination)
    return probability_3pl(
        ability, params.difficulty, params.discrimination, params.guessing
    )


def item_information(
    ability: float,
    params: ItemParameters,
    model: Union[IRTModelType, str],
) -> float:
    """
    Fisher information an item provides at a given ability.

    Args:
        ability: Ability (theta) at which to evaluate.
        params: The item's IRT parameters.
        model: "rasch", "2pl" or "3pl".

    Returns:
        Non-negative information value.

    Raises:
        ConfigurationError: If the model is not supported.
    """
    model = resolve_model(model)

    if model is IRTModelType.RASCH:
        prob = probability_2pl(ability, params.difficulty, 1.0)
        return prob * (1.0 - prob)

    a = params.discrimination
    if model is IRTModelType.TWO_PL:
        prob = probability_2pl(ability, params.difficulty, a)
        return (a**2) * prob * (1.0 - prob)

    c = params.guessing
    prob = probability_3pl(ability, params.difficulty, a, c)
    if prob <= 0.0:
        return 0.0
    numerator = (a**2) * ((prob - c) ** 2) * (1.0 - prob)
    denominator = ((1.0 - c) ** 2) * prob
    return max(0.0, numerator / denominator)


def normal_pdf(x: float, mean: float = 0.0, std_dev: float = 1.0) -> float:
    """Gaussian density, used as the ability prior."""
    if std_dev <= 0:
        raise ValueError(f"std_dev must be positive, got {std_dev}")
    z = (x - mean) / std_dev
    return math.exp(-0.5 * z * z) / (std_dev * _SQRT_TWO_PI)
