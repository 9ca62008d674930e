"""
Tests for the workflow value objects and the statement lifecycle definition.
"""

import pytest

from statement_kernel.domain.dtos import StatementAction, StatementStatus
from statement_kernel.domain.statement_workflow import DELETED_STATE, STATEMENT_WORKFLOW
from statement_kernel.domain.workflow import Transition, Workflow


class TestWorkflowValidation:
    def test_initial_state_must_be_known(self):
        with pytest.raises(ValueError, match="initial state"):
            Workflow(
                name="w", description="", initial_state="x",
                states=("a",), transitions=(),
            )

    def test_transition_to_unknown_state_rejected(self):
        with pytest.raises(ValueError, match="unknown state"):
            Workflow(
                name="w", description="", initial_state="a",
                states=("a",), transitions=(Transition("a", "b", action="go"),),
            )

    def test_duplicate_transition_rejected(self):
        with pytest.raises(ValueError, match="duplicate"):
            Workflow(
                name="w", description="", initial_state="a", states=("a", "b"),
                transitions=(
                    Transition("a", "b", action="go"),
                    Transition("a", "a", action="go"),
                ),
            )


class TestStatementWorkflow:
    @pytest.mark.parametrize(
        "from_state,action,to_state",
        [
            ("draft", "finalize", "final"),
            ("final", "send", "sent"),
            ("sent", "mark_paid", "paid"),
            ("final", "revert_to_draft", "draft"),
            ("paid", "revert_to_draft", "draft"),
            ("draft", "delete", DELETED_STATE),
        ],
    )
    def test_allowed_transitions(self, from_state, action, to_state):
        transition = STATEMENT_WORKFLOW.find(from_state, action)
        assert transition is not None
        assert transition.to_state == to_state
        assert not transition.no_op

    @pytest.mark.parametrize(
        "from_state,action",
        [
            ("sent", "revert_to_draft"),
            ("sent", "delete"),
            ("final", "delete"),
            ("paid", "delete"),
            ("draft", "send"),
            ("draft", "mark_paid"),
            ("final", "mark_paid"),
            ("paid", "finalize"),
        ],
    )
    def test_disallowed_transitions(self, from_state, action):
        assert STATEMENT_WORKFLOW.find(from_state, action) is None

    def test_revert_of_draft_is_documented_no_op(self):
        transition = STATEMENT_WORKFLOW.find("draft", "revert_to_draft")
        assert transition.no_op
        assert transition.to_state == "draft"

    def test_payment_guarded(self):
        assert STATEMENT_WORKFLOW.find("sent", "mark_paid").guard.name == "payout_transfer"

    def test_every_action_declared(self):
        assert set(STATEMENT_WORKFLOW.actions()) == {a.value for a in StatementAction}

    def test_every_status_is_a_state(self):
        for status in StatementStatus:
            assert status.value in STATEMENT_WORKFLOW.states
        assert STATEMENT_WORKFLOW.terminal_states == (DELETED_STATE,)
