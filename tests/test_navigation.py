"""NavigationEngine tests — next/previous question with skip and hide rules.

Uses the inline ``simple_catalog`` (q1 true skips to q3) for the basic
contract and the published catalogs for realistic branching:

  - advair_diskus: no diagnosis skips to heart_conditions and hides the
    two inhaler questions
  - crestor_direct: an LDL outside 130..190 hides risk_factors
"""

import pytest

from screening_flow.models.session import NavigationState
from screening_flow.navigation import NavigationEngine


def _skip(trigger, target, value=True):
    return {
        "question_id": trigger,
        "operator": "equals",
        "value": value,
        "action": "skip_to",
        "target_question_id": target,
    }


def _hide(trigger, target, value=True):
    return {
        "question_id": trigger,
        "operator": "equals",
        "value": value,
        "action": "hide",
        "target_question_id": target,
    }


FOUR_BOOLEANS = [
    {"id": f"q{i}", "type": "boolean", "text": f"Question {i}?"} for i in range(1, 5)
]


# =====================================================================
# next_index
# =====================================================================


class TestNextIndex:
    """Forward navigation in catalog order, modified by rules."""

    def test_first_index(self, simple_catalog):
        assert NavigationEngine(simple_catalog, {}).first_index() == 0

    def test_skip_rule_applies(self, simple_catalog):
        """q1 answered true jumps straight to q3."""
        nav = NavigationEngine(simple_catalog, {"q1": True})
        assert nav.next_index(0) == 2

    def test_skip_rule_not_applicable(self, simple_catalog):
        nav = NavigationEngine(simple_catalog, {"q1": False})
        assert nav.next_index(0) == 1

    def test_unanswered_trigger_follows_catalog_order(self, simple_catalog):
        assert NavigationEngine(simple_catalog, {}).next_index(0) == 1

    def test_last_question_has_no_next(self, simple_catalog):
        assert NavigationEngine(simple_catalog, {}).next_index(2) is None

    def test_out_of_range_indexes(self, simple_catalog):
        nav = NavigationEngine(simple_catalog, {})
        assert nav.next_index(-1) == 0
        assert nav.next_index(3) is None
        assert nav.next_index(99) is None

    def test_first_applicable_skip_wins(self, build_catalog):
        catalog = build_catalog(
            FOUR_BOOLEANS,
            [_skip("q1", "q3"), _skip("q1", "q4")],
        )
        assert NavigationEngine(catalog, {"q1": True}).next_index(0) == 2

    def test_inapplicable_skip_does_not_shadow_later_one(self, build_catalog):
        catalog = build_catalog(
            FOUR_BOOLEANS,
            [_skip("q1", "q3", value=False), _skip("q1", "q4")],
        )
        assert NavigationEngine(catalog, {"q1": True}).next_index(0) == 3

    def test_backward_skip_is_ignored(self, build_catalog):
        catalog = build_catalog(FOUR_BOOLEANS, [_skip("q3", "q1")])
        assert NavigationEngine(catalog, {"q3": True}).next_index(2) == 3

    def test_skip_to_self_is_ignored(self, build_catalog):
        catalog = build_catalog(FOUR_BOOLEANS, [_skip("q2", "q2")])
        assert NavigationEngine(catalog, {"q2": True}).next_index(1) == 2

    def test_skip_onto_hidden_question_moves_past_it(self, build_catalog):
        catalog = build_catalog(
            FOUR_BOOLEANS,
            [_skip("q1", "q3"), _hide("q1", "q3")],
        )
        assert NavigationEngine(catalog, {"q1": True}).next_index(0) == 3

    def test_every_remaining_question_hidden(self, build_catalog):
        catalog = build_catalog(
            FOUR_BOOLEANS,
            [_hide("q1", "q2"), _hide("q1", "q3"), _hide("q1", "q4")],
        )
        assert NavigationEngine(catalog, {"q1": True}).next_index(0) is None

    def test_unknown_skip_target_rejected_at_load(self, build_catalog):
        with pytest.raises(ValueError, match="not a question in this catalog"):
            build_catalog(FOUR_BOOLEANS, [_skip("q1", "q9")])

    def test_unknown_operator_never_skips(self, build_catalog):
        rule = {**_skip("q1", "q4"), "operator": "resembles"}
        catalog = build_catalog(FOUR_BOOLEANS, [rule])
        assert NavigationEngine(catalog, {"q1": True}).next_index(0) == 1


class TestPublishedCatalogs:
    """Branching in the shipped program catalogs."""

    def test_advair_no_diagnosis_skips_to_heart_conditions(self, advair):
        nav = NavigationEngine(advair, {"age_check": True, "diagnosis_check": False})
        nxt = nav.next_index(advair.index_of("diagnosis_check"))
        assert advair.question_at(nxt).id == "heart_conditions"

    def test_advair_no_diagnosis_hides_inhaler_questions(self, advair):
        nav = NavigationEngine(advair, {"diagnosis_check": False})
        assert nav.is_visible("rescue_inhaler_freq") is False
        assert nav.is_visible("acute_attack") is False
        assert nav.is_visible("heart_conditions") is True

    def test_advair_with_diagnosis_asks_inhaler_questions(self, advair):
        nav = NavigationEngine(advair, {"diagnosis_check": True})
        nxt = nav.next_index(advair.index_of("diagnosis_check"))
        assert advair.question_at(nxt).id == "rescue_inhaler_freq"

    @pytest.mark.parametrize("ldl,hidden", [(200, True), (100, True), (145, False), (190, False)])
    def test_crestor_risk_factors_visibility(self, crestor, ldl, hidden):
        nav = NavigationEngine(crestor, {"ldl_check": ldl})
        assert nav.is_visible("risk_factors") is not hidden

    def test_crestor_high_ldl_ends_questionnaire(self, crestor):
        nav = NavigationEngine(crestor, {"ldl_check": 200})
        assert nav.next_index(crestor.index_of("ldl_check")) is None

    def test_visibility_follows_live_answers(self, crestor):
        """Changing an earlier answer reveals a previously hidden question."""
        answers = {"ldl_check": 200}
        nav = NavigationEngine(crestor, answers)
        assert nav.is_visible("risk_factors") is False
        answers["ldl_check"] = 150
        assert nav.is_visible("risk_factors") is True


# =====================================================================
# advance / back
# =====================================================================


class TestAdvance:
    """State transitions produced by advance()."""

    def test_advance_pushes_history(self, simple_catalog):
        nav = NavigationEngine(simple_catalog, {"q1": False})
        state = nav.advance(NavigationState(current_index=0))
        assert state.current_index == 1
        assert state.history == ["q1"]
        assert state.is_complete is False

    def test_advance_with_skip(self, simple_catalog):
        nav = NavigationEngine(simple_catalog, {"q1": True})
        state = nav.advance(NavigationState(current_index=0))
        assert state.current_index == 2
        assert state.history == ["q1"]

    def test_advance_past_last_question_completes(self, simple_catalog):
        nav = NavigationEngine(simple_catalog, {"q1": True, "q3": "a"})
        state = nav.advance(NavigationState(current_index=2, history=["q1"]))
        assert state.is_complete is True
        assert state.current_index == 2, "index stays on the last question"
        assert state.history == ["q1", "q3"]

    def test_advance_on_complete_state_is_noop(self, simple_catalog):
        done = NavigationState(current_index=2, history=["q1", "q3"], is_complete=True)
        assert NavigationEngine(simple_catalog, {}).advance(done) is done

    def test_input_state_is_not_mutated(self, simple_catalog):
        start = NavigationState(current_index=0)
        NavigationEngine(simple_catalog, {"q1": False}).advance(start)
        assert start.history == []
        assert start.current_index == 0

    @pytest.mark.parametrize("q1", [True, False])
    def test_walk_terminates_within_question_count(self, simple_catalog, q1):
        answers = {"q1": q1, "q2": 5, "q3": "b"}
        nav = NavigationEngine(simple_catalog, answers)
        state = NavigationState(current_index=nav.first_index())
        for _ in range(simple_catalog.total_questions):
            state = nav.advance(state)
            if state.is_complete:
                break
        assert state.is_complete is True

    def test_advair_full_walk_visits_each_question_once(self, advair):
        answers = {
            "age_check": True,
            "diagnosis_check": True,
            "rescue_inhaler_freq": "Most days",
            "acute_attack": False,
            "heart_conditions": False,
            "recent_checkup": True,
        }
        nav = NavigationEngine(advair, answers)
        state = NavigationState(current_index=nav.first_index())
        while not state.is_complete:
            state = nav.advance(state)
        assert state.history == [q.id for q in advair.questions]


class TestBack:
    """back() undoes the last advance."""

    def test_back_on_empty_history_is_noop(self, simple_catalog):
        state = NavigationState(current_index=0)
        assert NavigationEngine(simple_catalog, {}).back(state) is state

    def test_back_returns_to_skipping_question(self, simple_catalog):
        nav = NavigationEngine(simple_catalog, {"q1": True})
        forward = nav.advance(NavigationState(current_index=0))
        back = nav.back(forward)
        assert back.current_index == 0
        assert back.history == []

    def test_back_reopens_completed_state(self, simple_catalog):
        done = NavigationState(current_index=2, history=["q1", "q3"], is_complete=True)
        back = NavigationEngine(simple_catalog, {}).back(done)
        assert back.is_complete is False
        assert back.current_index == 2
        assert back.history == ["q1"]

    def test_back_then_forward_round_trip(self, advair):
        answers = {"age_check": True, "diagnosis_check": False}
        nav = NavigationEngine(advair, answers)
        state = NavigationState(current_index=0)
        state = nav.advance(state)
        state = nav.advance(state)
        assert advair.question_at(state.current_index).id == "heart_conditions"

        state = nav.back(state)
        assert advair.question_at(state.current_index).id == "diagnosis_check"
        state = nav.advance(state)
        assert advair.question_at(state.current_index).id == "heart_conditions"

    def test_unknown_history_entry_falls_back_one_slot(self, simple_catalog):
        state = NavigationState(current_index=2, history=["retired_question"])
        back = NavigationEngine(simple_catalog, {}).back(state)
        assert back.current_index == 1
        assert back.history == []
