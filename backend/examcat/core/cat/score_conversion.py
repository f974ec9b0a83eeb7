"""
Score conversion and reporting for completed adaptive tests.

Converts a terminal ability estimate (theta) into the exam's configured final
score and assembles the final report.

Scoring methods:
    raw:      theta rounded to 2 decimals
    scaled:   theta linearly remapped from [-3, 3] onto the scaled range
              (default 200-800), clamped and rounded
    percent:  round(P_2PL(theta | a=1, b=0) x 100): the expected percent
              correct on a hypothetical average item. This is a model-based
              quantity and is NOT the proportion of questions answered
              correctly, which the report carries separately as accuracy.

All scores and the accuracy percentage round halves up (12.5 -> 13), not to
even.

Percentile Rank:
    percentile = Phi(theta) x 100, with Phi the standard normal CDF.
"""

import logging
import math
import operator
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Optional, Sequence, Tuple, Union

from scipy.stats import norm

from examcat.core.cat.irt_models import probability_2pl
from examcat.core.config import settings as app_settings
from examcat.schemas.cat_settings import CATSettings
from libs.domain_types import PerformanceLevel, ScoringMethod

if TYPE_CHECKING:
    from examcat.core.cat.engine import CATState

logger = logging.getLogger(__name__)

# Theta span mapped onto the scaled score range
SCALED_THETA_RANGE = (-3.0, 3.0)

# Performance bands, most specific first. The first matching band wins;
# a theta matching none is Average. Boundaries are exclusive, so theta == 2
# is Above Average and theta == -1 is Average.
PERFORMANCE_BANDS: Tuple[
    Tuple[Callable[[float, float], bool], float, PerformanceLevel], ...
] = (
    (operator.gt, 2.0, PerformanceLevel.HIGH),
    (operator.gt, 1.0, PerformanceLevel.ABOVE_AVERAGE),
    (operator.lt, -2.0, PerformanceLevel.LOW),
    (operator.lt, -1.0, PerformanceLevel.BELOW_AVERAGE),
)


@dataclass(frozen=True)
class ScaledScoreRange:
    """Inclusive range of reportable scaled scores."""

    min: int
    max: int

    def __post_init__(self) -> None:
        if self.min >= self.max:
            raise ValueError(
                f"Scaled score range is empty: min={self.min}, max={self.max}"
            )

    @classmethod
    def from_settings(cls) -> "ScaledScoreRange":
        return cls(
            min=app_settings.CAT_SCALED_SCORE_MIN,
            max=app_settings.CAT_SCALED_SCORE_MAX,
        )


@dataclass(frozen=True)
class FinalReport:
    """Read-only summary of a terminal attempt.

    Attributes:
        final_score: Score in the exam's scoring method.
        ability_estimate: Final theta.
        standard_error: Final SE(theta).
        confidence_interval: 95% interval around theta.
        questions_answered: Number of responses processed.
        accuracy: Percent of responses that were correct (0-100, rounded).
        performance: Qualitative label from PERFORMANCE_BANDS.
        percentile: Percentile rank of theta under a standard normal
            population (0-100, one decimal).
    """

    final_score: Union[int, float]
    ability_estimate: float
    standard_error: float
    confidence_interval: Tuple[float, float]
    questions_answered: int
    accuracy: int
    performance: PerformanceLevel
    percentile: float


def _round_half_up(value: float) -> int:
    # Halves round toward +inf: 12.5 -> 13, -2.5 -> -2
    return int(math.floor(value + 0.5))


def theta_to_scaled(theta: float, scaled_range: ScaledScoreRange) -> int:
    """
    Remap theta from [-3, 3] onto the scaled range, clamped and rounded.

    Examples:
        >>> theta_to_scaled(0.0, ScaledScoreRange(200, 800))
        500
        >>> theta_to_scaled(5.0, ScaledScoreRange(200, 800))
        800
    """
    theta_min, theta_max = SCALED_THETA_RANGE
    span = scaled_range.max - scaled_range.min
    raw = scaled_range.min + (theta - theta_min) / (theta_max - theta_min) * span
    return _round_half_up(max(scaled_range.min, min(scaled_range.max, raw)))


def average_item_success_percent(theta: float) -> int:
    """Expected percent correct on an average item (a=1, b=0) at theta."""
    return _round_half_up(probability_2pl(theta, 0.0, 1.0) * 100)


def get_final_score(
    state: "CATState",
    settings: CATSettings,
    scaled_range: Optional[ScaledScoreRange] = None,
) -> Union[int, float]:
    """
    Convert a terminal state into the exam's final score.

    Args:
        state: Terminal attempt state.
        settings: Exam configuration (scoring_method is read).
        scaled_range: Range for the scaled method; defaults to the service
            settings (200-800).

    Returns:
        int for scaled/percent, float rounded to 2 decimals for raw.
    """
    theta = state.ability_estimate
    if math.isnan(theta) or math.isinf(theta):
        raise ValueError(f"ability_estimate must be finite, got {theta}")

    method = ScoringMethod(settings.scoring_method)
    if method is ScoringMethod.SCALED:
        return theta_to_scaled(theta, scaled_range or ScaledScoreRange.from_settings())
    if method is ScoringMethod.PERCENT:
        return average_item_success_percent(theta)
    return _round_half_up(theta * 100) / 100


def classify_performance(theta: float) -> PerformanceLevel:
    """Map theta to a qualitative performance label."""
    for compare, threshold, level in PERFORMANCE_BANDS:
        if compare(theta, threshold):
            return level
    return PerformanceLevel.AVERAGE


def calculate_accuracy(responses: Sequence[bool]) -> int:
    """Percent of responses that are correct, rounded; 0 when there are none."""
    if not responses:
        return 0
    correct = sum(1 for r in responses if r)
    return _round_half_up(100 * correct / len(responses))


def generate_report(
    state: "CATState",
    settings: CATSettings,
    scaled_range: Optional[ScaledScoreRange] = None,
) -> FinalReport:
    """
    Build the final report for a terminal state.

    Examples:
        A state with responses (True, True, False, True) reports accuracy 75.
    """
    final_score = get_final_score(state, settings, scaled_range)
    theta = state.ability_estimate
    percentile = round(float(norm.cdf(theta)) * 100, 1)

    report = FinalReport(
        final_score=final_score,
        ability_estimate=theta,
        standard_error=state.standard_error,
        confidence_interval=state.confidence_interval,
        questions_answered=state.questions_asked,
        accuracy=calculate_accuracy(state.responses),
        performance=classify_performance(theta),
        percentile=percentile,
    )

    logger.debug(
        f"generate_report: theta={theta:.3f}, score={final_score}, "
        f"accuracy={report.accuracy}, performance={report.performance.value}"
    )
    return report
