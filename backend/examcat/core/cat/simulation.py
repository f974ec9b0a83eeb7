"""
CAT Simulation Engine for validating adaptive testing configurations.

Simulates N examinees with known ability levels taking adaptive tests through
CATSessionManager, with category quota scheduling and no item reuse, and
collects precision and test-length metrics. Used to check that an exam's
settings (model, min/max questions, SE target) and item bank reach the
intended measurement precision before the exam goes live.

References:
    - Weiss, D. J. (2004). Computerized adaptive testing for effective and
      efficient measurement in counseling and education. Measurement and
      Evaluation in Counseling and Development, 37(2), 70-84.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import numpy as np

from examcat.core.cat.content_balancing import track_category_coverage
from examcat.core.cat.engine import CATSessionManager
from examcat.core.cat.exceptions import NoCandidateItemsError
from examcat.core.cat.irt_models import response_probability
from examcat.schemas.cat_settings import CandidateItem, CATSettings, ItemParameters
from libs.domain_types import IRTModelType

logger = logging.getLogger(__name__)

STOP_REASON_POOL_EXHAUSTED = "pool_exhausted"

# Synthetic item parameter distributions (Lord, 1980)
DISCRIMINATION_LOGNORMAL_MEAN = 0.0
DISCRIMINATION_LOGNORMAL_SD = 0.3
DISCRIMINATION_MIN = 0.5
DISCRIMINATION_MAX = 2.5
DIFFICULTY_NORMAL_MEAN = 0.0
DIFFICULTY_NORMAL_SD = 1.0
DIFFICULTY_MIN = -3.0
DIFFICULTY_MAX = 3.0
GUESSING_MAX = 0.25  # Upper bound of the uniform draw for 3PL banks


@dataclass
class SimulationConfig:
    """Configuration for a CAT simulation run."""

    n_examinees: int = 200  # Number of simulated examinees
    theta_mean: float = 0.0  # Mean of true theta distribution
    theta_sd: float = 1.0  # SD of true theta distribution
    items_per_category: int = 50  # Synthetic bank size per category
    seed: int = 42  # Random seed for reproducibility


@dataclass
class ExamineeResult:
    """Per-examinee simulation results."""

    true_theta: float
    estimated_theta: float
    final_se: float
    bias: float  # estimated_theta - true_theta
    questions_answered: int
    stop_reason: str
    category_coverage: Dict[str, int] = field(default_factory=dict)


@dataclass
class SimulationResult:
    """Aggregate simulation results."""

    config: SimulationConfig
    examinee_results: List[ExamineeResult]
    mean_questions: float
    mean_se: float
    mean_bias: float
    rmse: float
    stop_reason_counts: Dict[str, int]


def generate_item_bank(
    settings: CATSettings,
    items_per_category: int = 50,
    seed: int = 42,
) -> List[CandidateItem]:
    """
    Generate a synthetic item bank for the categories in ``settings``.

    Item parameters:
        - Discrimination (a) ~ LogNormal(0.0, 0.3), clipped to [0.5, 2.5]
        - Difficulty (b) ~ Normal(0.0, 1.0), clipped to [-3.0, 3.0]
        - Guessing (c) ~ Uniform(0, 0.25) for 3PL exams, otherwise 0

    Args:
        settings: Exam configuration supplying categories and model.
        items_per_category: Items generated per category.
        seed: Random seed for reproducibility.

    Returns:
        List of CandidateItem with ids "<category_id>-<n>".
    """
    rng = np.random.default_rng(seed)
    with_guessing = settings.model is IRTModelType.THREE_PL
    items = []

    for category in settings.categories:
        for n in range(items_per_category):
            a = float(
                np.clip(
                    rng.lognormal(
                        mean=DISCRIMINATION_LOGNORMAL_MEAN,
                        sigma=DISCRIMINATION_LOGNORMAL_SD,
                    ),
                    DISCRIMINATION_MIN,
                    DISCRIMINATION_MAX,
                )
            )
            b = float(
                np.clip(
                    rng.normal(loc=DIFFICULTY_NORMAL_MEAN, scale=DIFFICULTY_NORMAL_SD),
                    DIFFICULTY_MIN,
                    DIFFICULTY_MAX,
                )
            )
            c = float(rng.uniform(0.0, GUESSING_MAX)) if with_guessing else 0.0
            items.append(
                CandidateItem(
                    id=f"{category.category_id}-{n + 1}",
                    params=ItemParameters(difficulty=b, discrimination=a, guessing=c),
                    category_id=category.category_id,
                )
            )

    logger.info(
        f"Generated item bank: {len(items)} items across "
        f"{len(settings.categories)} categories"
    )
    return items


def simulate_examinee(
    true_theta: float,
    item_bank: List[CandidateItem],
    settings: CATSettings,
    rng: np.random.Generator,
) -> ExamineeResult:
    """
    Run one simulated attempt to completion.

    Responses are drawn from the exam's IRT model at ``true_theta``. The
    attempt ends when the stopping rules fire or when the pool runs out, which
    is recorded as ``pool_exhausted``.
    """
    manager = CATSessionManager(settings)
    state = manager.initialize()
    items_by_id = {item.id: item for item in item_bank}
    remaining = list(item_bank)
    administered_categories: List[Optional[str]] = []
    stop_reason: Optional[str] = None

    while stop_reason is None:
        coverage = track_category_coverage(administered_categories)
        try:
            item_id = manager.next_item(state, remaining, category_coverage=coverage)
        except NoCandidateItemsError as e:
            logger.warning(f"Ending simulated attempt early: {e}")
            item_id = None
        if item_id is None:
            stop_reason = STOP_REASON_POOL_EXHAUSTED
            break

        item = items_by_id[item_id]
        remaining = [candidate for candidate in remaining if candidate.id != item_id]
        administered_categories.append(item.category_id)

        prob = response_probability(true_theta, item.params, settings.model)
        is_correct = bool(rng.random() < prob)

        step = manager.submit(state, is_correct, item.params)
        state = step.state
        if step.should_stop:
            stop_reason = step.stop_reason or "unknown"

    return ExamineeResult(
        true_theta=true_theta,
        estimated_theta=state.ability_estimate,
        final_se=state.standard_error,
        bias=state.ability_estimate - true_theta,
        questions_answered=state.questions_asked,
        stop_reason=stop_reason,
        category_coverage=track_category_coverage(administered_categories),
    )


def run_simulation(
    config: SimulationConfig,
    settings: CATSettings,
    item_bank: Optional[List[CandidateItem]] = None,
) -> SimulationResult:
    """
    Simulate ``config.n_examinees`` attempts and aggregate the results.

    Args:
        config: Simulation configuration.
        settings: Exam configuration under test.
        item_bank: Bank to draw from; generated from ``settings`` if omitted.

    Returns:
        SimulationResult with per-examinee and aggregate metrics.
    """
    if config.n_examinees <= 0:
        raise ValueError(f"n_examinees must be positive, got {config.n_examinees}")

    if item_bank is None:
        item_bank = generate_item_bank(
            settings, items_per_category=config.items_per_category, seed=config.seed
        )

    logger.info(
        f"Starting CAT simulation: N={config.n_examinees}, "
        f"theta ~ N({config.theta_mean}, {config.theta_sd}²)"
    )

    rng = np.random.default_rng(config.seed)
    results = []
    for _ in range(config.n_examinees):
        true_theta = float(rng.normal(loc=config.theta_mean, scale=config.theta_sd))
        results.append(simulate_examinee(true_theta, item_bank, settings, rng))

    biases = np.array([r.bias for r in results])
    stop_reason_counts: Dict[str, int] = {}
    for result in results:
        stop_reason_counts[result.stop_reason] = (
            stop_reason_counts.get(result.stop_reason, 0) + 1
        )

    summary = SimulationResult(
        config=config,
        examinee_results=results,
        mean_questions=float(np.mean([r.questions_answered for r in results])),
        mean_se=float(np.mean([r.final_se for r in results])),
        mean_bias=float(np.mean(biases)),
        rmse=float(np.sqrt(np.mean(biases**2))),
        stop_reason_counts=stop_reason_counts,
    )

    logger.info(
        f"Simulation complete: mean_questions={summary.mean_questions:.1f}, "
        f"mean_SE={summary.mean_se:.3f}, RMSE={summary.rmse:.3f}, "
        f"stop_reasons={stop_reason_counts}"
    )
    return summary
