"""
Stopping rules for Computerized Adaptive Testing (CAT).

Stopping Rules (evaluated in strict priority order):
    1. Minimum questions: never stop before min_questions are answered
    2. Maximum questions: stop at max_questions regardless of precision
    3. SE threshold: stop once SE(theta) <= the configured standard error

The confidence level and time limit in TerminationCriteria are part of the
configuration surface but are not evaluated here. Wall-clock cutoff belongs to
the session host, which simply discards the attempt state when time runs out.

References:
    - Weiss, D. J., & Kingsbury, G. G. (1984). Application of computerized
      adaptive testing to educational problems. Journal of Educational
      Measurement, 21(4), 361-375.
"""

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, Optional

from examcat.schemas.cat_settings import CATSettings

if TYPE_CHECKING:
    from examcat.core.cat.engine import CATState

logger = logging.getLogger(__name__)

STOP_REASON_MAX_QUESTIONS = "max_questions"
STOP_REASON_SE_THRESHOLD = "se_threshold"


@dataclass
class StoppingDecision:
    """
    Result of evaluating stopping criteria for a CAT session.

    Attributes:
        should_stop: Whether the test should terminate.
        reason: Primary reason for stopping (if should_stop=True), or None.
        details: Diagnostic information (se, questions_asked, se_threshold,
            min_questions_met, at_max_questions).
    """

    should_stop: bool
    reason: Optional[str]
    details: Dict[str, Any]


def check_stopping_criteria(
    questions_asked: int,
    standard_error: float,
    min_questions: int,
    max_questions: int,
    se_threshold: float,
) -> StoppingDecision:
    """
    Evaluate the stopping rules in priority order.

    Args:
        questions_asked: Number of responses processed so far.
        standard_error: Current standard error of the ability estimate.
        min_questions: Questions required before stopping is allowed.
        max_questions: Hard ceiling on test length.
        se_threshold: Precision target; stop once SE is at or below it.

    Returns:
        StoppingDecision with should_stop flag, reason, and diagnostic details.

    Raises:
        ValueError: If standard_error or questions_asked is negative.
    """
    if standard_error < 0:
        raise ValueError(f"Standard error must be non-negative, got {standard_error}")
    if questions_asked < 0:
        raise ValueError(
            f"Number of questions must be non-negative, got {questions_asked}"
        )

    details: Dict[str, Any] = {
        "se": standard_error,
        "questions_asked": questions_asked,
        "se_threshold": se_threshold,
        "min_questions_met": questions_asked >= min_questions,
        "at_max_questions": questions_asked >= max_questions,
    }

    # Rule 1: Minimum questions, continue if not met
    if questions_asked < min_questions:
        return StoppingDecision(should_stop=False, reason=None, details=details)

    # Rule 2: Maximum questions, stop regardless of precision
    if questions_asked >= max_questions:
        logger.info(
            f"Stopping: reached maximum questions ({questions_asked}/{max_questions})"
        )
        return StoppingDecision(
            should_stop=True, reason=STOP_REASON_MAX_QUESTIONS, details=details
        )

    # Rule 3: SE threshold (precision target met)
    if standard_error <= se_threshold:
        logger.info(
            f"Stopping: SE threshold met (SE={standard_error:.4f} <= "
            f"{se_threshold:.4f}) after {questions_asked} questions"
        )
        return StoppingDecision(
            should_stop=True, reason=STOP_REASON_SE_THRESHOLD, details=details
        )

    logger.debug(
        f"Continuing: SE={standard_error:.4f} (threshold={se_threshold:.4f}), "
        f"questions={questions_asked}"
    )
    return StoppingDecision(should_stop=False, reason=None, details=details)


def evaluate_termination(state: "CATState", settings: CATSettings) -> StoppingDecision:
    """Evaluate the stopping rules for a session state under its settings."""
    return check_stopping_criteria(
        questions_asked=state.questions_asked,
        standard_error=state.standard_error,
        min_questions=settings.min_questions,
        max_questions=settings.max_questions,
        se_threshold=settings.termination_criteria.standard_error,
    )


def should_terminate(state: "CATState", settings: CATSettings) -> bool:
    """Return True when the session should stop administering items."""
    return evaluate_termination(state, settings).should_stop
