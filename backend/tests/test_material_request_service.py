# Overview: Pytest coverage for material request service operations.

"""
Material request lifecycle tests.

Covers totals, submit routing, review/budget, approval ordering, rejection,
serving, posting, acknowledgement, optimistic locking and business unit
scoping.
"""

import pytest

from erms.extensions import db
from erms.models import AuditEvent, MaterialRequest
from erms.services import material_request_service as mrs
from erms.services.material_request_workflow import TransitionError
from erms.time_utils import today
from erms.validation import (
    ConflictError,
    InvalidStateError,
    UnauthorizedError,
    ValidationError,
)

from conftest import grant


ITEMS = [
    {"description": "Bond paper A4", "uom": "ream", "quantity": 2, "unit_price_cents": 1500},
    {"description": "Stapler", "uom": "pc", "quantity": 1, "unit_price_cents": 2500},
]


def _create(staff, requester_key="requester", **overrides):
    requester = staff[requester_key]
    kwargs = {
        "business_unit_id": requester.business_unit_id,
        "requester_id": requester.id,
        "series": "PO",
        "items": [dict(item) for item in ITEMS],
        "purpose": "Office supplies",
    }
    kwargs.update(overrides)
    mr = mrs.create_material_request(**kwargs)
    db.session.commit()
    return mr


def _submit(mr, staff, requester_key="requester"):
    requester = staff[requester_key]
    mr = mrs.submit_for_approval(mr.id, requester.id, requester.business_unit_id)
    db.session.commit()
    return mr


class TestCreate:
    def test_totals_and_numbering(self, staff):
        mr = _create(staff, freight_cents=500, discount_cents=200)

        assert mr.status == "DRAFT"
        assert mr.total_cents == 2 * 1500 + 2500 + 500 - 200
        assert [item.line_number for item in mr.items] == [1, 2]
        assert mr.items[0].total_price_cents == 3000
        yy = f"{today().year % 100:02d}"
        assert mr.document_number == f"PO-{yy}-00001"

        second = _create(staff)
        assert second.document_number == f"PO-{yy}-00002"

    def test_series_numbered_independently(self, staff):
        po = _create(staff)
        jo = _create(staff, series="JO")
        assert po.document_number.endswith("-00001")
        assert jo.document_number.startswith("JO-")
        assert jo.document_number.endswith("-00001")

    def test_approvers_default_from_department(self, staff):
        mr = _create(staff)
        assert mr.rec_approver_id == staff["rec_approver"].id
        assert mr.final_approver_id == staff["final_approver"].id

    def test_unpriced_items_do_not_count(self, staff):
        mr = _create(staff, items=[{"description": "Repair aircon", "uom": "job", "quantity": 1}])
        assert mr.total_cents == 0
        assert mr.items[0].total_price_cents is None

    @pytest.mark.parametrize("items", [
        [],
        [{"description": "x", "uom": "pc", "quantity": 0}],
        [{"description": "", "uom": "pc", "quantity": 1}],
        [{"description": "x", "uom": "pc", "quantity": 1, "unit_price_cents": -5}],
    ])
    def test_invalid_items_rejected(self, staff, items):
        with pytest.raises(ValidationError):
            _create(staff, items=items)

    def test_discount_cannot_exceed_total(self, staff):
        with pytest.raises(ValidationError):
            _create(staff, discount_cents=999999)

    def test_unknown_series(self, staff):
        with pytest.raises(ValidationError):
            _create(staff, series="XX")

    def test_requester_must_belong_to_business_unit(self, staff, branch):
        with pytest.raises(UnauthorizedError):
            _create(staff, business_unit_id=branch.id)

    def test_creation_is_audited(self, staff):
        mr = _create(staff)
        event = db.session.query(AuditEvent).filter_by(entity_type="material_request", entity_id=mr.id).one()
        assert event.event_type == "material_request.created"
        assert event.actor_user_id == staff["requester"].id


class TestDraftEditing:
    def test_update_recomputes_total(self, staff):
        mr = _create(staff)
        requester = staff["requester"]
        mr = mrs.update_material_request(
            mr.id, requester.id, requester.business_unit_id,
            {"items": [{"description": "Toner", "uom": "pc", "quantity": 3, "unit_price_cents": 10000}]},
        )
        db.session.commit()
        assert mr.total_cents == 30000
        assert len(mr.items) == 1
        assert mr.items[0].line_number == 1

    def test_only_requester_can_edit(self, staff):
        mr = _create(staff)
        with pytest.raises(UnauthorizedError):
            mrs.update_material_request(mr.id, staff["manager"].id, mr.business_unit_id, {"purpose": "x"})

    def test_cannot_edit_after_submit(self, staff):
        mr = _submit(_create(staff), staff)
        with pytest.raises(TransitionError):
            mrs.update_material_request(mr.id, staff["requester"].id, mr.business_unit_id, {"purpose": "x"})

    def test_delete_draft(self, staff):
        mr = _create(staff)
        mrs.delete_material_request(mr.id, staff["requester"].id, mr.business_unit_id)
        db.session.commit()
        assert db.session.query(MaterialRequest).filter_by(id=mr.id).first() is None


class TestSubmit:
    def test_regular_request(self, staff):
        mr = _submit(_create(staff), staff)
        assert mr.status == "FOR_REC_APPROVAL"
        assert mr.rec_approval_status == "PENDING"

    def test_store_use_request(self, staff):
        mr = _submit(_create(staff, is_store_use=True), staff)
        assert mr.status == "FOR_REVIEW"
        assert mr.review_status == "PENDING"

    def test_requires_an_approver(self, staff, head_office):
        from conftest import make_user
        loner = make_user(head_office, "E-2000")
        db.session.commit()
        mr = _create({"requester": loner}, rec_approver_id=None)
        with pytest.raises(ValidationError):
            mrs.submit_for_approval(mr.id, loner.id, head_office.id)

    def test_only_requester_can_submit(self, staff):
        mr = _create(staff)
        with pytest.raises(UnauthorizedError):
            mrs.submit_for_approval(mr.id, staff["admin"].id, mr.business_unit_id)


class TestReviewAndBudget:
    def test_review_requires_capability(self, staff):
        mr = _submit(_create(staff, is_store_use=True), staff)
        with pytest.raises(UnauthorizedError):
            mrs.mark_as_reviewed(mr.id, staff["admin"].id, mr.business_unit_id)

    def test_review_routes_regular_requester_to_rec(self, staff):
        grant(staff["purchaser"], "STORE_USE_REVIEW")
        mr = _submit(_create(staff, is_store_use=True), staff)
        mr = mrs.mark_as_reviewed(mr.id, staff["purchaser"].id, mr.business_unit_id, remarks="ok")
        db.session.commit()
        assert mr.status == "FOR_REC_APPROVAL"
        assert mr.review_status == "APPROVED"
        assert mr.reviewer_id == staff["purchaser"].id

    def test_rdh_mrs_requester_goes_through_budget(self, staff):
        grant(staff["purchaser"], "STORE_USE_REVIEW")
        mr = _submit(_create(staff, "rdh_requester", is_store_use=True), staff, "rdh_requester")
        mr = mrs.mark_as_reviewed(mr.id, staff["purchaser"].id, mr.business_unit_id)
        db.session.commit()
        assert mr.status == "PENDING_BUDGET_APPROVAL"

        mr = mrs.approve_budget(mr.id, staff["acctg"].id, mr.business_unit_id, is_within_budget=False, remarks="over")
        db.session.commit()
        assert mr.status == "FOR_REC_APPROVAL"
        assert mr.is_within_budget is False
        assert mr.budget_approved_by_id == staff["acctg"].id

    def test_budget_flag_must_be_boolean(self, staff):
        with pytest.raises(ValidationError):
            mrs.approve_budget(1, staff["acctg"].id, staff["acctg"].business_unit_id, is_within_budget="yes")

    @pytest.mark.parametrize("actor", ["purchaser", "rec_approver", "admin"])
    def test_review_stage_cannot_be_rejected(self, staff, actor):
        grant(staff["purchaser"], "STORE_USE_REVIEW")
        mr = _submit(_create(staff, is_store_use=True), staff)
        assert mr.status == "FOR_REVIEW"

        with pytest.raises(TransitionError):
            mrs.reject(mr.id, staff[actor].id, mr.business_unit_id, "Not a store item")
        db.session.rollback()

        mr = db.session.get(MaterialRequest, mr.id)
        assert mr.status == "FOR_REVIEW"
        assert mr.review_status == "PENDING"


class TestApproval:
    def test_rec_then_final(self, staff):
        mr = _submit(_create(staff), staff)
        bu = mr.business_unit_id

        with pytest.raises(UnauthorizedError):
            mrs.approve(mr.id, staff["final_approver"].id, bu)

        mr = mrs.approve(mr.id, staff["rec_approver"].id, bu, comments="fine")
        db.session.commit()
        assert mr.status == "FOR_FINAL_APPROVAL"
        assert mr.rec_approval_status == "APPROVED"
        assert mr.final_approval_status == "PENDING"

        mr = mrs.approve(mr.id, staff["final_approver"].id, bu)
        db.session.commit()
        assert mr.status == "FOR_SERVING"
        assert mr.final_approval_status == "APPROVED"
        assert mr.final_approval_date is not None

    def test_without_final_approver(self, staff):
        mr = _create(staff)
        mr = mrs.update_material_request(mr.id, staff["requester"].id, mr.business_unit_id, {"final_approver_id": None})
        db.session.commit()
        mr = _submit(mr, staff)
        mr = mrs.approve(mr.id, staff["rec_approver"].id, mr.business_unit_id)
        assert mr.status == "FINAL_APPROVED"

    def test_admin_is_not_an_implicit_approver(self, staff):
        mr = _submit(_create(staff), staff)
        with pytest.raises(UnauthorizedError):
            mrs.approve(mr.id, staff["admin"].id, mr.business_unit_id)

    def test_draft_cannot_be_approved(self, staff):
        mr = _create(staff)
        with pytest.raises(UnauthorizedError) as exc:
            mrs.approve(mr.id, staff["rec_approver"].id, mr.business_unit_id)
        assert str(exc.value) == "You are not authorized to approve this request"

    def test_approved_request_cannot_be_approved_again(self, staff):
        mr = _submit(_create(staff), staff)
        mrs.approve(mr.id, staff["rec_approver"].id, mr.business_unit_id)
        mrs.approve(mr.id, staff["final_approver"].id, mr.business_unit_id)
        db.session.commit()

        for actor in ("rec_approver", "final_approver"):
            with pytest.raises(UnauthorizedError):
                mrs.approve(mr.id, staff[actor].id, mr.business_unit_id)
        db.session.rollback()
        assert db.session.get(MaterialRequest, mr.id).status == "FOR_SERVING"

    def test_reject_requires_comments(self, staff):
        mr = _submit(_create(staff), staff)
        with pytest.raises(ValidationError):
            mrs.reject(mr.id, staff["rec_approver"].id, mr.business_unit_id, "  ")

    def test_reject_at_final_stage(self, staff):
        mr = _submit(_create(staff), staff)
        mrs.approve(mr.id, staff["rec_approver"].id, mr.business_unit_id)
        db.session.commit()
        mr = mrs.reject(mr.id, staff["final_approver"].id, mr.business_unit_id, "No budget this quarter")
        db.session.commit()
        assert mr.status == "DISAPPROVED"
        assert mr.final_approval_status == "DISAPPROVED"
        assert mr.final_approval_remarks == "No budget this quarter"
        assert mr.rec_approval_status == "APPROVED"

    def test_disapproved_request_cannot_be_rejected_again(self, staff):
        mr = _submit(_create(staff), staff)
        mrs.reject(mr.id, staff["rec_approver"].id, mr.business_unit_id, "Duplicate")
        db.session.commit()
        with pytest.raises(InvalidStateError):
            mrs.reject(mr.id, staff["rec_approver"].id, mr.business_unit_id, "Duplicate")


class TestServing:
    def _approved(self, staff):
        mr = _submit(_create(staff), staff)
        mrs.approve(mr.id, staff["rec_approver"].id, mr.business_unit_id)
        mr = mrs.approve(mr.id, staff["final_approver"].id, mr.business_unit_id)
        db.session.commit()
        return mr

    def test_partial_then_full(self, staff):
        mr = self._approved(staff)
        purchaser = staff["purchaser"]
        first, second = mr.items

        mr = mrs.mark_as_served(mr.id, purchaser.id, mr.business_unit_id, [{"item_id": first.id, "quantity_served": 1}])
        db.session.commit()
        assert mr.status == "FOR_SERVING"
        assert first.quantity_served == 1

        mr = mrs.mark_as_served(
            mr.id, purchaser.id, mr.business_unit_id,
            [{"item_id": first.id, "quantity_served": 1}, {"item_id": second.id, "quantity_served": 1}],
            supplier_name="ACME Supplies",
        )
        db.session.commit()
        assert mr.status == "FOR_POSTING"
        assert mr.supplier_name == "ACME Supplies"

    def test_cannot_over_serve(self, staff):
        mr = self._approved(staff)
        item = mr.items[0]
        with pytest.raises(ValidationError):
            mrs.mark_as_served(mr.id, staff["purchaser"].id, mr.business_unit_id, [{"item_id": item.id, "quantity_served": 3}])

    def test_serve_everything_when_no_lines_given(self, staff):
        mr = self._approved(staff)
        mr = mrs.mark_as_served(mr.id, staff["purchaser"].id, mr.business_unit_id)
        assert mr.status == "FOR_POSTING"
        assert all(item.quantity_served == item.quantity for item in mr.items)

    def test_serving_requires_capability(self, staff):
        mr = self._approved(staff)
        with pytest.raises(UnauthorizedError):
            mrs.mark_as_served(mr.id, staff["requester"].id, mr.business_unit_id)

    def test_post_and_acknowledge(self, staff):
        mr = self._approved(staff)
        bu = mr.business_unit_id
        mrs.mark_as_served(mr.id, staff["purchaser"].id, bu)
        mr = mrs.mark_as_posted(mr.id, staff["acctg"].id, bu)
        db.session.commit()
        assert mr.status == "POSTED"
        assert mr.date_posted is not None

        with pytest.raises(UnauthorizedError):
            mrs.save_acknowledgement(mr.id, staff["acctg"].id, bu)

        mr = mrs.save_acknowledgement(mr.id, staff["requester"].id, bu, signature_data="data:image/png;base64,AAA")
        db.session.commit()
        assert mr.acknowledged_at is not None

        with pytest.raises(InvalidStateError):
            mrs.save_acknowledgement(mr.id, staff["requester"].id, bu)


class TestCancel:
    def test_requester_cancels_pending_request(self, staff):
        mr = _submit(_create(staff), staff)
        mr = mrs.cancel_material_request(mr.id, staff["requester"].id, mr.business_unit_id, reason="No longer needed")
        db.session.commit()
        assert mr.status == "CANCELLED"
        assert mr.cancellation_reason == "No longer needed"

    def test_cannot_cancel_once_serving(self, staff):
        mr = _submit(_create(staff), staff)
        mrs.approve(mr.id, staff["rec_approver"].id, mr.business_unit_id)
        mrs.approve(mr.id, staff["final_approver"].id, mr.business_unit_id)
        db.session.commit()
        with pytest.raises(TransitionError):
            mrs.cancel_material_request(mr.id, staff["requester"].id, mr.business_unit_id)


class TestConcurrency:
    def test_stale_expected_version_conflicts(self, staff):
        mr = _submit(_create(staff), staff)
        stale = mr.version_id - 1
        with pytest.raises(ConflictError):
            mrs.approve(mr.id, staff["rec_approver"].id, mr.business_unit_id, expected_version=stale)
        db.session.rollback()
        assert db.session.get(MaterialRequest, mr.id).status == "FOR_REC_APPROVAL"

    def test_current_version_accepted(self, staff):
        mr = _submit(_create(staff), staff)
        mr = mrs.approve(mr.id, staff["rec_approver"].id, mr.business_unit_id, expected_version=mr.version_id)
        assert mr.status == "FOR_FINAL_APPROVAL"

    def test_version_increments_on_each_write(self, staff):
        mr = _create(staff)
        before = mr.version_id
        mr = _submit(mr, staff)
        assert mr.version_id > before


class TestBusinessUnitScope:
    def test_other_unit_cannot_act(self, staff, branch_staff):
        mr = _submit(_create(staff), staff)
        other = branch_staff["admin"]
        with pytest.raises(UnauthorizedError):
            mrs.cancel_material_request(mr.id, other.id, other.business_unit_id)

    def test_cross_unit_approver(self, staff, branch_staff):
        approver = branch_staff["manager"]
        grant(approver, "CROSS_UNIT_APPROVE")
        mr = _submit(_create(staff, rec_approver_id=approver.id), staff)

        mr = mrs.approve(mr.id, approver.id, approver.business_unit_id)
        db.session.commit()
        assert mr.status == "FOR_FINAL_APPROVAL"

    def test_cross_unit_without_capability_denied(self, staff, branch_staff):
        approver = branch_staff["manager"]
        mr = _submit(_create(staff, rec_approver_id=approver.id), staff)
        with pytest.raises(UnauthorizedError):
            mrs.approve(mr.id, approver.id, approver.business_unit_id)
