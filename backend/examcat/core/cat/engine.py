"""
Session state management for adaptive test attempts.

A CATState is created once per attempt by ``initialize_session`` and every
revision after that is a new value produced by ``process_response``; nothing
mutates a state in place. The state can therefore be rebuilt from the
append-only response log, replayed, and persisted by the caller between
requests. Calls against the same attempt must be serialized by the caller;
distinct attempts are independent.

``CATSessionManager`` bundles the per-turn flow for one attempt:
select item -> [host presents item] -> process response -> check stopping
rules -> loop or finalize.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

from pydantic import ValidationError

from examcat.core.cat.ability_estimation import (
    update_ability_eap,
    uniform_history_parameters,
)
from examcat.core.cat.content_balancing import (
    category_percentages_valid,
    eligible_pool,
)
from examcat.core.cat.exceptions import ConfigurationError
from examcat.core.cat.item_selection import select_next_item
from examcat.core.cat.score_conversion import (
    FinalReport,
    ScaledScoreRange,
    generate_report,
)
from examcat.core.cat.stopping_rules import evaluate_termination
from examcat.core.config import settings as app_settings
from examcat.schemas.cat_settings import CandidateItem, CATSettings, ItemParameters
from libs.domain_types import EmptyPoolPolicy, ParameterMode

logger = logging.getLogger(__name__)

# z-score for the 95% confidence interval around the ability estimate
Z_95 = 1.96

# Standard error assigned before any response is observed
INITIAL_STANDARD_ERROR = 1.0


@dataclass(frozen=True)
class CATState:
    """Immutable snapshot of one attempt's measurement state.

    Invariant: questions_asked == len(responses) == len(question_difficulties)
    == len(item_parameters).
    """

    ability_estimate: float
    standard_error: float
    questions_asked: int
    responses: Tuple[bool, ...]
    question_difficulties: Tuple[float, ...]
    confidence_interval: Tuple[float, float]
    # Parameters of each administered item, parallel to responses
    item_parameters: Tuple[ItemParameters, ...] = field(default=())

    def __post_init__(self) -> None:
        lengths = {
            self.questions_asked,
            len(self.responses),
            len(self.question_difficulties),
            len(self.item_parameters),
        }
        if len(lengths) != 1:
            raise ValueError(
                "CATState history is inconsistent: "
                f"questions_asked={self.questions_asked}, "
                f"responses={len(self.responses)}, "
                f"question_difficulties={len(self.question_difficulties)}, "
                f"item_parameters={len(self.item_parameters)}"
            )
        if self.standard_error < 0:
            raise ValueError(
                f"standard_error must be non-negative, got {self.standard_error}"
            )
        low, high = self.confidence_interval
        if low > high:
            raise ValueError(f"confidence_interval is inverted: ({low}, {high})")

    @property
    def correct_count(self) -> int:
        return sum(1 for r in self.responses if r)


@dataclass
class CATStepResult:
    """Result after processing a single response."""

    state: CATState
    should_stop: bool
    stop_reason: Optional[str]


def parse_cat_settings(payload: Mapping[str, Any]) -> CATSettings:
    """
    Build CATSettings from an authoring payload.

    Raises:
        ConfigurationError: If the payload does not validate.
    """
    try:
        return CATSettings.model_validate(payload)
    except ValidationError as e:
        raise ConfigurationError(
            "Invalid CAT settings payload",
            context={"errors": e.error_count()},
        ) from e


def validate_settings(settings: CATSettings) -> None:
    """
    Check the cross-field rules of CATSettings.

    Category percentages that do not sum to 100 are logged but accepted;
    honouring them is the caller's responsibility.

    Raises:
        ConfigurationError: If min_questions > max_questions, max_questions is
            zero, or no categories are configured.
    """
    if settings.min_questions > settings.max_questions:
        raise ConfigurationError(
            "min_questions must not exceed max_questions",
            context={
                "min_questions": settings.min_questions,
                "max_questions": settings.max_questions,
            },
        )
    if settings.max_questions == 0:
        raise ConfigurationError("max_questions must be at least 1")
    if not settings.categories:
        raise ConfigurationError("At least one category must be configured")

    if not category_percentages_valid(settings.categories):
        total = sum(c.percentage for c in settings.categories)
        logger.warning(f"Category percentages sum to {total:.1f}, expected 100")


def resolve_parameter_mode(settings: CATSettings) -> ParameterMode:
    return settings.parameter_mode or app_settings.CAT_PARAMETER_MODE


def resolve_empty_pool_policy(settings: CATSettings) -> EmptyPoolPolicy:
    return settings.empty_pool_policy or app_settings.CAT_EMPTY_POOL_POLICY


def initialize_session(settings: CATSettings) -> CATState:
    """
    Create the initial state of an attempt.

    Args:
        settings: Exam configuration; validated here.

    Returns:
        CATState at the configured initial difficulty with SE 1.0 and an empty
        history.

    Raises:
        ConfigurationError: If the settings are invalid.
    """
    validate_settings(settings)

    theta = settings.initial_difficulty
    margin = Z_95 * INITIAL_STANDARD_ERROR
    return CATState(
        ability_estimate=theta,
        standard_error=INITIAL_STANDARD_ERROR,
        questions_asked=0,
        responses=(),
        question_difficulties=(),
        confidence_interval=(theta - margin, theta + margin),
        item_parameters=(),
    )


def process_response(
    state: CATState,
    response: bool,
    item_params: ItemParameters,
    settings: CATSettings,
) -> CATState:
    """
    Fold one response into the attempt and re-estimate ability.

    The ability estimator always runs over the full updated history.

    Args:
        state: Current state (left untouched).
        response: Whether the answer was correct.
        item_params: Parameters of the item that was answered.
        settings: Exam configuration.

    Returns:
        A new CATState with the response appended.

    Raises:
        EstimationDegenerateError: If the posterior underflows.
    """
    responses = state.responses + (bool(response),)
    difficulties = state.question_difficulties + (item_params.difficulty,)
    history_params = state.item_parameters + (item_params,)

    if resolve_parameter_mode(settings) is ParameterMode.UNIFORM:
        estimation_params: Sequence[ItemParameters] = uniform_history_parameters(
            difficulties, item_params
        )
    else:
        estimation_params = history_params

    ability, standard_error = update_ability_eap(
        responses, estimation_params, settings.model
    )

    margin = Z_95 * standard_error
    new_state = CATState(
        ability_estimate=ability,
        standard_error=standard_error,
        questions_asked=state.questions_asked + 1,
        responses=responses,
        question_difficulties=difficulties,
        confidence_interval=(ability - margin, ability + margin),
        item_parameters=history_params,
    )

    logger.debug(
        f"Response #{new_state.questions_asked} (correct={bool(response)}, "
        f"b={item_params.difficulty:.2f}) -> theta={ability:.3f}, "
        f"SE={standard_error:.3f}"
    )
    return new_state


class CATSessionManager:
    """
    Orchestrator for one adaptive test attempt.

    Manages:
    - Session initialization from validated settings
    - Item selection with optional category quota scheduling
    - Response processing and ability re-estimation using EAP
    - Stopping criteria evaluation
    - Final score and report generation

    The manager holds no attempt state; every call takes and returns
    CATState values.
    """

    def __init__(
        self,
        settings: CATSettings,
        attempt_id: Optional[str] = None,
        scaled_range: Optional[ScaledScoreRange] = None,
    ):
        """Validate settings and bind them to this attempt."""
        validate_settings(settings)
        self.settings = settings
        self.attempt_id = attempt_id
        self.scaled_range = scaled_range

    def _extra(self, state: Optional[CATState] = None, **fields: Any) -> Dict[str, Any]:
        extra: Dict[str, Any] = {"attempt_id": self.attempt_id}
        if state is not None:
            extra["questions_asked"] = state.questions_asked
            extra["ability"] = round(state.ability_estimate, 4)
            extra["standard_error"] = round(state.standard_error, 4)
        extra.update(fields)
        return extra

    def initialize(self) -> CATState:
        """Create the initial state for this attempt."""
        state = initialize_session(self.settings)
        logger.info(
            f"Initialized CAT attempt {self.attempt_id} "
            f"(model={self.settings.model.value}, "
            f"initial theta={state.ability_estimate:.3f})",
            extra=self._extra(state),
        )
        return state

    def next_item(
        self,
        state: CATState,
        pool: Sequence[CandidateItem],
        category_coverage: Optional[Dict[str, int]] = None,
    ) -> Optional[str]:
        """
        Choose the next item for this attempt.

        Args:
            state: Current attempt state.
            pool: Items not yet administered.
            category_coverage: Items administered per category so far. When
                given, the pool is narrowed by the category quotas first.

        Returns:
            The selected item id, or None if the pool is exhausted under the
            TERMINATE empty-pool policy.

        Raises:
            NoCandidateItemsError: If the pool is exhausted under the RAISE
                policy.
        """
        candidates: Sequence[CandidateItem] = pool
        if category_coverage is not None:
            candidates = eligible_pool(pool, category_coverage, self.settings.categories)

        return select_next_item(
            candidates,
            state.ability_estimate,
            self.settings.model,
            empty_pool_policy=resolve_empty_pool_policy(self.settings),
        )

    def submit(
        self,
        state: CATState,
        response: bool,
        item_params: ItemParameters,
    ) -> CATStepResult:
        """Process a response and evaluate the stopping rules."""
        new_state = process_response(state, response, item_params, self.settings)
        decision = evaluate_termination(new_state, self.settings)

        if decision.should_stop:
            logger.info(
                f"Attempt {self.attempt_id}: stopping due to {decision.reason} "
                f"after {new_state.questions_asked} questions",
                extra=self._extra(new_state, stop_reason=decision.reason),
            )

        return CATStepResult(
            state=new_state,
            should_stop=decision.should_stop,
            stop_reason=decision.reason,
        )

    def finalize(self, state: CATState) -> FinalReport:
        """Produce the final report for a terminal state."""
        report = generate_report(state, self.settings, self.scaled_range)
        logger.info(
            f"Attempt {self.attempt_id} finalized: theta={report.ability_estimate:.3f}, "
            f"SE={report.standard_error:.3f}, score={report.final_score}, "
            f"questions={report.questions_answered}, "
            f"performance={report.performance.value}",
            extra=self._extra(state),
        )
        return report
