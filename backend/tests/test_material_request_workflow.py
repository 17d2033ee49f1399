# Overview: Pytest coverage for the material request transition table.

"""
Workflow table tests.

These exercise next_transition directly; no database is involved.
"""

import pytest

from erms.services.material_request_workflow import (
    MaterialRequestStatus as S,
    ApprovalStatus,
    WorkflowAction as A,
    Stage,
    TransitionContext,
    TransitionError,
    allowed_actions,
    next_transition,
)


class TestSubmitRouting:
    def test_store_use_goes_to_review(self):
        t = next_transition(S.DRAFT, A.SUBMIT, TransitionContext(is_store_use=True))
        assert t.target == S.FOR_REVIEW
        assert (Stage.REVIEW, ApprovalStatus.PENDING) in t.writes

    def test_regular_request_goes_to_recommending_approval(self):
        t = next_transition(S.DRAFT, A.SUBMIT, TransitionContext())
        assert t.target == S.FOR_REC_APPROVAL
        assert (Stage.REC, ApprovalStatus.PENDING) in t.writes

    def test_accepts_plain_status_strings(self):
        t = next_transition("DRAFT", "submit")
        assert t.target == S.FOR_REC_APPROVAL


class TestReviewAndBudget:
    def test_rdh_mrs_requester_needs_budget_approval(self):
        t = next_transition(S.FOR_REVIEW, A.REVIEW, TransitionContext(requester_is_rdh_mrs=True))
        assert t.target == S.PENDING_BUDGET_APPROVAL

    def test_other_requesters_skip_budget(self):
        t = next_transition(S.FOR_REVIEW, A.REVIEW, TransitionContext())
        assert t.target == S.FOR_REC_APPROVAL
        assert (Stage.REVIEW, ApprovalStatus.APPROVED) in t.writes

    def test_budget_approval_releases_to_recommending(self):
        t = next_transition(S.PENDING_BUDGET_APPROVAL, A.APPROVE_BUDGET)
        assert t.target == S.FOR_REC_APPROVAL


class TestApprovalOrdering:
    def test_rec_approval_with_final_approver(self):
        t = next_transition(S.FOR_REC_APPROVAL, A.APPROVE, TransitionContext(has_final_approver=True))
        assert t.target == S.FOR_FINAL_APPROVAL
        assert (Stage.FINAL, ApprovalStatus.PENDING) in t.writes

    def test_rec_approval_without_final_approver(self):
        t = next_transition(S.FOR_REC_APPROVAL, A.APPROVE, TransitionContext(has_final_approver=False))
        assert t.target == S.FINAL_APPROVED

    def test_final_approval_requires_rec_approved(self):
        with pytest.raises(TransitionError) as exc:
            next_transition(S.FOR_FINAL_APPROVAL, A.APPROVE, TransitionContext(rec_approved=False))
        assert "Recommending approval" in str(exc.value)

    def test_final_approval_after_rec(self):
        t = next_transition(S.FOR_FINAL_APPROVAL, A.APPROVE, TransitionContext(rec_approved=True))
        assert t.target == S.FOR_SERVING


class TestServing:
    @pytest.mark.parametrize("status", [S.FOR_SERVING, S.FINAL_APPROVED])
    def test_partial_serve_keeps_status(self, status):
        t = next_transition(status, A.SERVE, TransitionContext(fully_served=False))
        assert t.target == status
        assert t.event == "partially_served"

    @pytest.mark.parametrize("status", [S.FOR_SERVING, S.FINAL_APPROVED])
    def test_full_serve_moves_to_posting(self, status):
        t = next_transition(status, A.SERVE, TransitionContext(fully_served=True))
        assert t.target == S.FOR_POSTING

    def test_post_then_acknowledge_stays_posted(self):
        assert next_transition(S.FOR_POSTING, A.POST).target == S.POSTED
        assert next_transition(S.POSTED, A.ACKNOWLEDGE).target == S.POSTED


class TestIllegalMoves:
    @pytest.mark.parametrize("status,action", [
        (S.DRAFT, A.APPROVE),
        (S.FOR_REVIEW, A.SUBMIT),
        (S.FOR_REC_APPROVAL, A.SERVE),
        (S.FOR_REVIEW, A.REJECT),
        (S.POSTED, A.CANCEL),
        (S.DISAPPROVED, A.SUBMIT),
        (S.CANCELLED, A.EDIT),
        (S.FOR_SERVING, A.CANCEL),
    ])
    def test_rejected(self, status, action):
        with pytest.raises(TransitionError):
            next_transition(status, action)

    def test_unknown_status(self):
        with pytest.raises(TransitionError):
            next_transition("ARCHIVED", A.SUBMIT)

    def test_transition_error_is_conflict_status(self):
        with pytest.raises(TransitionError) as exc:
            next_transition(S.POSTED, A.POST)
        assert exc.value.status_code == 409
        assert exc.value.status == "POSTED"
        assert exc.value.action == "post"


class TestCancellation:
    @pytest.mark.parametrize("status", [
        S.DRAFT, S.FOR_REVIEW, S.PENDING_BUDGET_APPROVAL, S.FOR_REC_APPROVAL, S.FOR_FINAL_APPROVAL,
    ])
    def test_cancellable(self, status):
        assert next_transition(status, A.CANCEL).target == S.CANCELLED

    def test_allowed_actions_for_draft(self):
        assert set(allowed_actions(S.DRAFT)) == {"edit", "submit", "cancel"}
