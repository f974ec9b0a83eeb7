"""
Tests for the CAT session engine.

Tests cover:
- Settings payload parsing and cross-field validation
- Session initialization
- Response processing: immutability, history growth, re-estimation
- Parameter modes (per-item and legacy uniform)
- CATSessionManager end-to-end flow
"""

import dataclasses
import logging

import pytest
from pydantic import ValidationError

from examcat.core.cat import engine
from examcat.core.cat.ability_estimation import (
    uniform_history_parameters,
    update_ability_eap,
)
from examcat.core.cat.engine import (
    INITIAL_STANDARD_ERROR,
    Z_95,
    CATSessionManager,
    CATState,
    initialize_session,
    parse_cat_settings,
    process_response,
    validate_settings,
)
from examcat.core.cat.exceptions import (
    ConfigurationError,
    EstimationDegenerateError,
    NoCandidateItemsError,
)
from examcat.core.cat.stopping_rules import (
    STOP_REASON_MAX_QUESTIONS,
    STOP_REASON_SE_THRESHOLD,
)
from examcat.schemas.cat_settings import ItemParameters, TerminationCriteria
from libs.domain_types import (
    EmptyPoolPolicy,
    IRTModelType,
    ParameterMode,
    PerformanceLevel,
)


def _params(difficulty=0.0, discrimination=1.0, guessing=0.0):
    return ItemParameters(
        difficulty=difficulty, discrimination=discrimination, guessing=guessing
    )


class TestParseCATSettings:
    """Tests for parse_cat_settings()."""

    def test_parses_camel_case_payload(self):
        payload = {
            "model": "3pl",
            "initialDifficulty": 0.5,
            "difficultyAdjustment": 0.1,
            "minQuestions": 10,
            "maxQuestions": 40,
            "terminationCriteria": {
                "confidenceLevel": 0.9,
                "standardError": 0.25,
                "timeLimit": 60,
            },
            "itemSelectionMethod": "maximum_information",
            "scoringMethod": "scaled",
            "categories": [
                {
                    "categoryId": "cardio",
                    "categoryName": "Cardiology",
                    "testbankId": "tb-1",
                    "percentage": 100,
                    "minQuestions": 2,
                    "maxQuestions": 0,
                    "targetProficiency": 0.0,
                }
            ],
        }
        settings = parse_cat_settings(payload)
        assert settings.model is IRTModelType.THREE_PL
        assert settings.initial_difficulty == 0.5
        assert settings.min_questions == 10
        assert settings.termination_criteria.standard_error == 0.25
        assert settings.termination_criteria.time_limit == 60
        assert settings.categories[0].category_id == "cardio"
        assert settings.parameter_mode is None

    def test_parses_snake_case_payload(self):
        settings = parse_cat_settings(
            {"min_questions": 1, "max_questions": 3, "scoring_method": "percent"}
        )
        assert settings.max_questions == 3
        assert settings.model is IRTModelType.TWO_PL

    @pytest.mark.parametrize(
        "model,expected",
        [
            ("3pl", IRTModelType.THREE_PL),
            ("rasch", IRTModelType.RASCH),
            ("2pl", IRTModelType.TWO_PL),
        ],
    )
    def test_accepts_cat_model_key(self, model, expected):
        settings = parse_cat_settings(
            {"catModel": model, "minQuestions": 1, "maxQuestions": 3}
        )
        assert settings.model is expected

    def test_unknown_cat_model_is_configuration_error(self):
        with pytest.raises(ConfigurationError):
            parse_cat_settings({"catModel": "4pl", "minQuestions": 1, "maxQuestions": 3})

    def test_missing_model_uses_service_default(self, monkeypatch):
        monkeypatch.setattr(
            engine.app_settings, "CAT_DEFAULT_MODEL", IRTModelType.THREE_PL
        )
        settings = parse_cat_settings({"minQuestions": 1, "maxQuestions": 3})
        assert settings.model is IRTModelType.THREE_PL

    def test_explicit_model_overrides_service_default(self, monkeypatch):
        monkeypatch.setattr(
            engine.app_settings, "CAT_DEFAULT_MODEL", IRTModelType.THREE_PL
        )
        settings = parse_cat_settings(
            {"model": "rasch", "minQuestions": 1, "maxQuestions": 3}
        )
        assert settings.model is IRTModelType.RASCH

    def test_unknown_model_is_configuration_error(self):
        with pytest.raises(ConfigurationError, match="Invalid CAT settings"):
            parse_cat_settings({"model": "4pl", "minQuestions": 1, "maxQuestions": 3})

    def test_missing_required_fields_is_configuration_error(self):
        with pytest.raises(ConfigurationError):
            parse_cat_settings({"model": "2pl"})

    def test_settings_are_immutable(self, cat_settings):
        with pytest.raises(ValidationError):
            cat_settings.max_questions = 99


class TestValidateSettings:
    """Tests for validate_settings()."""

    def test_valid_settings_pass(self, cat_settings):
        validate_settings(cat_settings)

    def test_min_greater_than_max_raises(self, settings_factory):
        with pytest.raises(ConfigurationError, match="min_questions"):
            validate_settings(settings_factory(min_questions=10, max_questions=5))

    def test_zero_max_raises(self, settings_factory):
        with pytest.raises(ConfigurationError, match="max_questions"):
            validate_settings(settings_factory(min_questions=0, max_questions=0))

    def test_no_categories_raises(self, settings_factory):
        with pytest.raises(ConfigurationError, match="category"):
            validate_settings(settings_factory(categories=()))

    def test_min_equals_max_is_valid(self, settings_factory):
        validate_settings(settings_factory(min_questions=5, max_questions=5))

    def test_percentages_not_summing_to_100_warn(
        self, settings_factory, category_factory, caplog
    ):
        settings = settings_factory(
            categories=(
                category_factory("a", percentage=30),
                category_factory("b", percentage=30),
            )
        )
        with caplog.at_level(logging.WARNING, logger="examcat.core.cat.engine"):
            validate_settings(settings)
        assert "sum to 60.0" in caplog.text


class TestInitializeSession:
    """Tests for initialize_session()."""

    def test_initial_state(self, cat_settings):
        state = initialize_session(cat_settings)
        assert state.ability_estimate == 0.0
        assert state.standard_error == INITIAL_STANDARD_ERROR == 1.0
        assert state.questions_asked == 0
        assert state.responses == ()
        assert state.question_difficulties == ()
        assert state.item_parameters == ()
        assert state.confidence_interval == pytest.approx((-1.96, 1.96))

    def test_uses_initial_difficulty(self, settings_factory):
        state = initialize_session(settings_factory(initial_difficulty=-0.5))
        assert state.ability_estimate == -0.5
        assert state.confidence_interval == pytest.approx((-0.5 - Z_95, -0.5 + Z_95))

    def test_invalid_settings_raise(self, settings_factory):
        with pytest.raises(ConfigurationError):
            initialize_session(settings_factory(min_questions=30, max_questions=20))


class TestCATState:
    """Tests for CATState invariants."""

    def test_state_is_frozen(self, cat_settings):
        state = initialize_session(cat_settings)
        with pytest.raises(dataclasses.FrozenInstanceError):
            state.ability_estimate = 2.0

    def test_inconsistent_history_rejected(self):
        with pytest.raises(ValueError, match="inconsistent"):
            CATState(
                ability_estimate=0.0,
                standard_error=0.5,
                questions_asked=2,
                responses=(True,),
                question_difficulties=(0.0,),
                confidence_interval=(-1.0, 1.0),
                item_parameters=(_params(),),
            )

    def test_negative_se_rejected(self):
        with pytest.raises(ValueError, match="standard_error"):
            CATState(
                ability_estimate=0.0,
                standard_error=-0.1,
                questions_asked=0,
                responses=(),
                question_difficulties=(),
                confidence_interval=(0.0, 0.0),
            )

    def test_inverted_interval_rejected(self):
        with pytest.raises(ValueError, match="inverted"):
            CATState(
                ability_estimate=0.0,
                standard_error=0.5,
                questions_asked=0,
                responses=(),
                question_difficulties=(),
                confidence_interval=(1.0, -1.0),
            )

    def test_correct_count(self):
        state = CATState(
            ability_estimate=0.0,
            standard_error=0.5,
            questions_asked=3,
            responses=(True, False, True),
            question_difficulties=(0.0, 0.0, 0.0),
            confidence_interval=(-1.0, 1.0),
            item_parameters=(_params(),) * 3,
        )
        assert state.correct_count == 2


class TestProcessResponse:
    """Tests for process_response()."""

    def test_returns_new_state_and_leaves_input_untouched(self, cat_settings):
        state = initialize_session(cat_settings)
        new_state = process_response(state, True, _params(0.3), cat_settings)

        assert new_state is not state
        assert state.questions_asked == 0
        assert state.responses == ()
        assert state.ability_estimate == 0.0

        assert new_state.questions_asked == 1
        assert new_state.responses == (True,)
        assert new_state.question_difficulties == (0.3,)
        assert new_state.item_parameters == (_params(0.3),)

    def test_history_grows_by_one_each_step(self, cat_settings):
        state = initialize_session(cat_settings)
        for n, correct in enumerate([True, False, True, True], start=1):
            state = process_response(state, correct, _params(0.1 * n), cat_settings)
            assert state.questions_asked == n
            assert len(state.responses) == n
            assert len(state.question_difficulties) == n
            assert len(state.item_parameters) == n
        assert state.responses == (True, False, True, True)

    def test_confidence_interval_tracks_se(self, cat_settings):
        state = initialize_session(cat_settings)
        state = process_response(state, False, _params(), cat_settings)
        low, high = state.confidence_interval
        assert low == pytest.approx(state.ability_estimate - Z_95 * state.standard_error)
        assert high == pytest.approx(state.ability_estimate + Z_95 * state.standard_error)

    def test_correct_responses_to_targeted_items_raise_ability(self, cat_settings):
        state = initialize_session(cat_settings)
        for _ in range(10):
            item = _params(difficulty=state.ability_estimate, discrimination=1.5)
            state = process_response(state, True, item, cat_settings)
        assert state.ability_estimate > 0.0
        assert state.standard_error < 1.0
        assert state.questions_asked == 10

    def test_estimate_matches_full_history_eap(self, cat_settings):
        items = [_params(-0.5, 1.2), _params(0.4, 0.8), _params(1.0, 1.6)]
        responses = [True, True, False]
        state = initialize_session(cat_settings)
        for response, item in zip(responses, items):
            state = process_response(state, response, item, cat_settings)

        expected = update_ability_eap(responses, items, IRTModelType.TWO_PL)
        assert (state.ability_estimate, state.standard_error) == pytest.approx(expected)

    def test_per_item_mode_is_default(self, cat_settings):
        assert engine.resolve_parameter_mode(cat_settings) is ParameterMode.PER_ITEM

    def test_uniform_mode_reuses_current_item_parameters(self, settings_factory):
        settings = settings_factory(parameter_mode="uniform")
        items = [_params(-0.5, 0.6), _params(0.5, 2.0)]
        state = initialize_session(settings)
        state = process_response(state, True, items[0], settings)
        state = process_response(state, False, items[1], settings)

        uniform = uniform_history_parameters([-0.5, 0.5], items[1])
        expected = update_ability_eap([True, False], uniform, IRTModelType.TWO_PL)
        assert (state.ability_estimate, state.standard_error) == pytest.approx(expected)
        # The state still records each item's own parameters
        assert state.item_parameters == tuple(items)

    def test_uniform_and_per_item_modes_differ(self, settings_factory):
        per_item = settings_factory(parameter_mode="per_item")
        uniform = settings_factory(parameter_mode="uniform")
        items = [_params(-0.5, 0.6), _params(0.5, 2.0)]

        def run(settings):
            state = initialize_session(settings)
            for response, item in zip([True, False], items):
                state = process_response(state, response, item, settings)
            return state.ability_estimate

        assert run(per_item) != pytest.approx(run(uniform))

    def test_service_default_parameter_mode_applies(self, cat_settings, monkeypatch):
        monkeypatch.setattr(
            engine.app_settings, "CAT_PARAMETER_MODE", ParameterMode.UNIFORM
        )
        assert engine.resolve_parameter_mode(cat_settings) is ParameterMode.UNIFORM

    def test_degenerate_posterior_raises(self, cat_settings):
        state = initialize_session(cat_settings)
        with pytest.raises(EstimationDegenerateError):
            process_response(
                state, False, _params(difficulty=-10.0, discrimination=50.0), cat_settings
            )

    def test_deterministic(self, cat_settings):
        def run():
            state = initialize_session(cat_settings)
            for response, b in [(True, 0.0), (False, 0.8), (True, 0.2)]:
                state = process_response(state, response, _params(b, 1.3), cat_settings)
            return state

        assert run() == run()


class TestCATSessionManager:
    """Tests for CATSessionManager."""

    def test_invalid_settings_rejected_at_construction(self, settings_factory):
        with pytest.raises(ConfigurationError):
            CATSessionManager(settings_factory(categories=()))

    def test_initialize(self, cat_settings):
        state = CATSessionManager(cat_settings, attempt_id="a-1").initialize()
        assert state.questions_asked == 0
        assert state.standard_error == 1.0

    def test_next_item_selects_most_informative(self, cat_settings, item_factory):
        manager = CATSessionManager(cat_settings)
        state = manager.initialize()
        pool = [item_factory("hard", 2.0), item_factory("fit", 0.0)]
        assert manager.next_item(state, pool) == "fit"

    def test_next_item_applies_category_quotas(
        self, settings_factory, category_factory, item_factory
    ):
        settings = settings_factory(
            categories=(
                category_factory("cardio", percentage=50, min_questions=2),
                category_factory("neuro", percentage=50),
            )
        )
        manager = CATSessionManager(settings)
        state = manager.initialize()
        pool = [
            item_factory("neuro-1", 0.0, category_id="neuro"),
            item_factory("cardio-1", 1.5, category_id="cardio"),
        ]
        assert manager.next_item(state, pool) == "neuro-1"
        assert manager.next_item(state, pool, category_coverage={}) == "cardio-1"

    def test_next_item_empty_pool_raises_by_default(self, cat_settings):
        manager = CATSessionManager(cat_settings)
        with pytest.raises(NoCandidateItemsError):
            manager.next_item(manager.initialize(), [])

    def test_next_item_empty_pool_terminate_policy(self, settings_factory):
        settings = settings_factory(empty_pool_policy=EmptyPoolPolicy.TERMINATE)
        manager = CATSessionManager(settings)
        assert manager.next_item(manager.initialize(), []) is None

    def test_submit_reports_stop_at_max(self, settings_factory):
        settings = settings_factory(min_questions=5, max_questions=5)
        manager = CATSessionManager(settings)
        state = manager.initialize()

        steps = []
        for _ in range(5):
            step = manager.submit(state, True, _params(state.ability_estimate, 1.0))
            steps.append(step)
            state = step.state

        assert [s.should_stop for s in steps] == [False] * 4 + [True]
        assert steps[-1].stop_reason == STOP_REASON_MAX_QUESTIONS
        assert state.questions_asked == 5

    def test_submit_reports_se_threshold(self, settings_factory):
        settings = settings_factory(
            min_questions=1,
            max_questions=50,
            termination_criteria=TerminationCriteria(standard_error=0.95),
        )
        manager = CATSessionManager(settings)
        state = manager.initialize()
        step = manager.submit(state, True, _params(0.0, 1.5))
        assert step.should_stop is True
        assert step.stop_reason == STOP_REASON_SE_THRESHOLD

    def test_full_attempt_and_report(self, settings_factory, item_factory):
        settings = settings_factory(min_questions=3, max_questions=6)
        manager = CATSessionManager(settings, attempt_id="attempt-42")
        pool = [item_factory(f"q{i}", -1.5 + 0.5 * i, 1.2) for i in range(8)]
        state = manager.initialize()

        answered = []
        while True:
            item_id = manager.next_item(state, pool)
            item = next(i for i in pool if i.id == item_id)
            pool = [i for i in pool if i.id != item_id]
            answered.append(item_id)
            step = manager.submit(state, True, item.params)
            state = step.state
            if step.should_stop:
                break

        assert len(answered) == len(set(answered))
        report = manager.finalize(state)
        assert report.questions_answered == state.questions_asked
        assert report.accuracy == 100
        assert report.final_score == round(state.ability_estimate, 2)
        assert report.ability_estimate > 0.0
        assert report.performance in set(PerformanceLevel)

    def test_logs_carry_attempt_context(self, cat_settings, caplog):
        manager = CATSessionManager(cat_settings, attempt_id="attempt-7")
        with caplog.at_level(logging.INFO, logger="examcat.core.cat.engine"):
            state = manager.initialize()
            manager.finalize(state)

        records = [r for r in caplog.records if r.name == "examcat.core.cat.engine"]
        assert len(records) == 2
        assert all(r.attempt_id == "attempt-7" for r in records)
        assert records[0].questions_asked == 0
