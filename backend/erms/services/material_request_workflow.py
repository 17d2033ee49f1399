# Overview: Material request status machine; one table, one transition function.

"""
Material Request Workflow

Every status change a material request can make is listed in _TRANSITIONS,
keyed by (current status, action). Each entry is an ordered list of guarded
options; the first option whose guard holds wins, and a None guard is the
fallback. A pair that is not listed, or whose guards all fail, raises
TransitionError.

    DRAFT --submit--> FOR_REVIEW (store use) | FOR_REC_APPROVAL
    FOR_REVIEW --review--> PENDING_BUDGET_APPROVAL (RDH/MRS) | FOR_REC_APPROVAL
    PENDING_BUDGET_APPROVAL --approve_budget--> FOR_REC_APPROVAL
    FOR_REC_APPROVAL --approve--> FOR_FINAL_APPROVAL | FINAL_APPROVED (no final approver)
    FOR_FINAL_APPROVAL --approve--> FOR_SERVING (rec approval must be APPROVED)
    FOR_SERVING / FINAL_APPROVED --serve--> FOR_POSTING (all items served) | unchanged
    FOR_POSTING --post--> POSTED --acknowledge--> POSTED
    FOR_REC_APPROVAL / FOR_FINAL_APPROVAL --reject--> DISAPPROVED
    DRAFT and pre-serving pending states --cancel--> CANCELLED

REC_APPROVED is kept as a recognised status for stored data but no action
leads to it: recommending approval moves straight to the next stage.

This module does not touch the database. Actor checks live in
material_request_service; this only answers "is this move legal, and
where does it go".
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from ..validation import InvalidStateError


class MaterialRequestStatus(str, Enum):
    DRAFT = "DRAFT"
    FOR_REVIEW = "FOR_REVIEW"
    PENDING_BUDGET_APPROVAL = "PENDING_BUDGET_APPROVAL"
    FOR_REC_APPROVAL = "FOR_REC_APPROVAL"
    REC_APPROVED = "REC_APPROVED"
    FOR_FINAL_APPROVAL = "FOR_FINAL_APPROVAL"
    FINAL_APPROVED = "FINAL_APPROVED"
    FOR_SERVING = "FOR_SERVING"
    FOR_POSTING = "FOR_POSTING"
    POSTED = "POSTED"
    DISAPPROVED = "DISAPPROVED"
    CANCELLED = "CANCELLED"


class ApprovalStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    DISAPPROVED = "DISAPPROVED"


class WorkflowAction(str, Enum):
    EDIT = "edit"
    SUBMIT = "submit"
    REVIEW = "review"
    APPROVE_BUDGET = "approve_budget"
    APPROVE = "approve"
    REJECT = "reject"
    CANCEL = "cancel"
    SERVE = "serve"
    POST = "post"
    ACKNOWLEDGE = "acknowledge"


class Stage(str, Enum):
    """Approval sub-records on a request."""
    REVIEW = "review"
    REC = "rec"
    FINAL = "final"


# Statuses a requester may still cancel from
CANCELLABLE_STATUSES = (
    MaterialRequestStatus.DRAFT,
    MaterialRequestStatus.FOR_REVIEW,
    MaterialRequestStatus.PENDING_BUDGET_APPROVAL,
    MaterialRequestStatus.FOR_REC_APPROVAL,
    MaterialRequestStatus.FOR_FINAL_APPROVAL,
)

SERVABLE_STATUSES = frozenset({
    MaterialRequestStatus.FOR_SERVING,
    MaterialRequestStatus.FINAL_APPROVED,
})


class TransitionError(InvalidStateError):
    """(status, action) pair is not a legal move."""

    def __init__(self, message: str, status: str | None = None, action: str | None = None):
        super().__init__(message)
        self.status = status
        self.action = action


@dataclass(frozen=True)
class TransitionContext:
    """Facts about the request that decide between guarded options."""
    is_store_use: bool = False
    requester_is_rdh_mrs: bool = False
    has_final_approver: bool = False
    rec_approved: bool = False
    fully_served: bool = False


@dataclass(frozen=True)
class Transition:
    target: MaterialRequestStatus
    writes: tuple[tuple[Stage, ApprovalStatus], ...] = ()
    event: str = ""


_S = MaterialRequestStatus
_A = WorkflowAction
_P = ApprovalStatus

_TRANSITIONS: dict[tuple[MaterialRequestStatus, WorkflowAction], tuple[tuple[str | None, Transition], ...]] = {
    (_S.DRAFT, _A.EDIT): (
        (None, Transition(_S.DRAFT, event="updated")),
    ),
    (_S.DRAFT, _A.SUBMIT): (
        ("is_store_use", Transition(_S.FOR_REVIEW, ((Stage.REVIEW, _P.PENDING),), "submitted")),
        (None, Transition(_S.FOR_REC_APPROVAL, ((Stage.REC, _P.PENDING),), "submitted")),
    ),
    (_S.FOR_REVIEW, _A.REVIEW): (
        ("requester_is_rdh_mrs", Transition(_S.PENDING_BUDGET_APPROVAL, ((Stage.REVIEW, _P.APPROVED),), "reviewed")),
        (None, Transition(
            _S.FOR_REC_APPROVAL,
            ((Stage.REVIEW, _P.APPROVED), (Stage.REC, _P.PENDING)),
            "reviewed",
        )),
    ),
    (_S.PENDING_BUDGET_APPROVAL, _A.APPROVE_BUDGET): (
        (None, Transition(_S.FOR_REC_APPROVAL, ((Stage.REC, _P.PENDING),), "budget_approved")),
    ),
    (_S.FOR_REC_APPROVAL, _A.APPROVE): (
        ("has_final_approver", Transition(
            _S.FOR_FINAL_APPROVAL,
            ((Stage.REC, _P.APPROVED), (Stage.FINAL, _P.PENDING)),
            "rec_approved",
        )),
        (None, Transition(_S.FINAL_APPROVED, ((Stage.REC, _P.APPROVED),), "rec_approved")),
    ),
    (_S.FOR_FINAL_APPROVAL, _A.APPROVE): (
        ("rec_approved", Transition(_S.FOR_SERVING, ((Stage.FINAL, _P.APPROVED),), "final_approved")),
    ),
    (_S.FOR_REC_APPROVAL, _A.REJECT): (
        (None, Transition(_S.DISAPPROVED, ((Stage.REC, _P.DISAPPROVED),), "rejected")),
    ),
    (_S.FOR_FINAL_APPROVAL, _A.REJECT): (
        (None, Transition(_S.DISAPPROVED, ((Stage.FINAL, _P.DISAPPROVED),), "rejected")),
    ),
    (_S.FOR_SERVING, _A.SERVE): (
        ("fully_served", Transition(_S.FOR_POSTING, event="served")),
        (None, Transition(_S.FOR_SERVING, event="partially_served")),
    ),
    (_S.FINAL_APPROVED, _A.SERVE): (
        ("fully_served", Transition(_S.FOR_POSTING, event="served")),
        (None, Transition(_S.FINAL_APPROVED, event="partially_served")),
    ),
    (_S.FOR_POSTING, _A.POST): (
        (None, Transition(_S.POSTED, event="posted")),
    ),
    (_S.POSTED, _A.ACKNOWLEDGE): (
        (None, Transition(_S.POSTED, event="acknowledged")),
    ),
}

for _status in CANCELLABLE_STATUSES:
    _TRANSITIONS[(_status, _A.CANCEL)] = ((None, Transition(_S.CANCELLED, event="cancelled")),)


def _coerce_status(status) -> MaterialRequestStatus:
    try:
        return MaterialRequestStatus(status)
    except ValueError:
        raise TransitionError(f"Unknown material request status: {status}", status=str(status))


def next_transition(status, action: WorkflowAction, context: TransitionContext | None = None) -> Transition:
    """
    Resolve the move for (status, action).

    Raises TransitionError when the pair is not listed or every guarded
    option for it is ruled out by the context.
    """
    current = _coerce_status(status)
    action = WorkflowAction(action)
    context = context or TransitionContext()

    options = _TRANSITIONS.get((current, action))
    if not options:
        raise TransitionError(
            f"Cannot {action.value.replace('_', ' ')} a material request in status {current.value}",
            status=current.value,
            action=action.value,
        )

    for guard, transition in options:
        if guard is None or getattr(context, guard):
            return transition

    # Only reachable for guard-only entries (final approval without rec approval)
    raise TransitionError(
        "Recommending approval must be APPROVED before final approval",
        status=current.value,
        action=action.value,
    )


def allowed_actions(status) -> list[str]:
    """Actions listed for a status, in declaration order."""
    current = _coerce_status(status)
    return [action.value for (source, action) in _TRANSITIONS if source == current]