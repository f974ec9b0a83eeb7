"""
CAT (Computerized Adaptive Testing) engine.

This module provides item selection, EAP ability estimation, stopping rules,
immutable session state management and final scoring for adaptive exams.
"""

from .ability_estimation import update_ability_eap, uniform_history_parameters
from .content_balancing import (
    eligible_pool,
    filter_by_category,
    get_priority_category,
    track_category_coverage,
)
from .engine import (
    CATSessionManager,
    CATState,
    CATStepResult,
    initialize_session,
    parse_cat_settings,
    process_response,
    validate_settings,
)
from .exceptions import (
    CATEngineError,
    ConfigurationError,
    EstimationDegenerateError,
    NoCandidateItemsError,
)
from .irt_models import (
    item_information,
    normal_pdf,
    probability_2pl,
    probability_3pl,
    response_probability,
)
from .item_selection import select_next_item
from .score_conversion import (
    FinalReport,
    ScaledScoreRange,
    classify_performance,
    generate_report,
    get_final_score,
)
from .stopping_rules import (
    StoppingDecision,
    check_stopping_criteria,
    should_terminate,
)

__all__ = [
    "probability_2pl",
    "probability_3pl",
    "response_probability",
    "item_information",
    "normal_pdf",
    "select_next_item",
    "update_ability_eap",
    "uniform_history_parameters",
    "check_stopping_criteria",
    "should_terminate",
    "StoppingDecision",
    "initialize_session",
    "process_response",
    "parse_cat_settings",
    "validate_settings",
    "CATSessionManager",
    "CATState",
    "CATStepResult",
    "get_final_score",
    "generate_report",
    "classify_performance",
    "FinalReport",
    "ScaledScoreRange",
    "track_category_coverage",
    "get_priority_category",
    "filter_by_category",
    "eligible_pool",
    "CATEngineError",
    "ConfigurationError",
    "NoCandidateItemsError",
    "EstimationDegenerateError",
]
