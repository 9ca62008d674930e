"""Statement lifecycle state machine: draft -> final -> sent -> paid."""

from __future__ import annotations

from statement_kernel.domain.dtos import StatementAction, StatementStatus
from statement_kernel.domain.workflow import Guard, Transition, Workflow

DELETED_STATE = "deleted"

_DRAFT = StatementStatus.DRAFT.value
_FINAL = StatementStatus.FINAL.value
_SENT = StatementStatus.SENT.value
_PAID = StatementStatus.PAID.value

PAYOUT_TRANSFER = Guard(
    name="payout_transfer",
    description="Payment collaborator accepted the transfer (skipped for non-positive payouts)",
)

STATEMENT_WORKFLOW = Workflow(
    name="owner_statement",
    description="Owner statement lifecycle",
    initial_state=_DRAFT,
    states=(_DRAFT, _FINAL, _SENT, _PAID, DELETED_STATE),
    transitions=(
        Transition(_DRAFT, _FINAL, action=StatementAction.FINALIZE.value),
        Transition(_FINAL, _SENT, action=StatementAction.SEND.value),
        Transition(_SENT, _PAID, action=StatementAction.MARK_PAID.value, guard=PAYOUT_TRANSFER),
        Transition(_FINAL, _DRAFT, action=StatementAction.REVERT_TO_DRAFT.value),
        Transition(_PAID, _DRAFT, action=StatementAction.REVERT_TO_DRAFT.value),
        Transition(_DRAFT, _DRAFT, action=StatementAction.REVERT_TO_DRAFT.value, no_op=True),
        Transition(_DRAFT, DELETED_STATE, action=StatementAction.DELETE.value),
    ),
    terminal_states=(DELETED_STATE,),
)
