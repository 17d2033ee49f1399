# Overview: Service-layer operations for material requests; actor checks, persistence and audit.

"""
Material Request Service

Status moves are decided by material_request_workflow.next_transition; this
module decides WHO may ask for them and writes the result.

TRANSACTION RULES:
- Services flush, routes commit (commit_with_retry) or roll back.
- Every mutating operation locks the request row, accepts an optional
  expected_version, and relies on the version_id column to turn a
  concurrent write into ConflictError.
- Every transition appends an AuditEvent and publishes
  approval_views_changed for the acting and home business units.
"""

from __future__ import annotations

import logging

from ..extensions import db
from ..models import MaterialRequest, MaterialRequestItem, User, Department
from ..signals import publish_approval_views_changed
from ..validation import (
    ValidationError,
    NotFoundError,
    UnauthorizedError,
    InvalidStateError,
    require_text,
    optional_text,
    require_int,
    require_amount_cents,
    check_expected_version,
)
from erms.time_utils import utcnow, today, parse_iso_date
from .audit_service import append_audit_event
from .concurrency import lock_for_update, run_with_retry
from .document_service import next_material_request_number
from .material_request_workflow import (
    MaterialRequestStatus,
    ApprovalStatus,
    WorkflowAction,
    Stage,
    Transition,
    TransitionContext,
    next_transition,
)
from .permission_service import log_security_event, require_permission, user_has_permission
from .tenant_service import require_business_unit_access

logger = logging.getLogger(__name__)

SERIES = ("PO", "JO", "OTHER")
REQUEST_TYPES = ("ITEM", "SERVICE")


# =============================================================================
# Items and totals
# =============================================================================

def _build_items(raw_items) -> list[MaterialRequestItem]:
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("At least one item is required")

    items = []
    for index, raw in enumerate(raw_items, start=1):
        if not isinstance(raw, dict):
            raise ValidationError(f"Item {index} must be an object")
        quantity = require_int(raw.get("quantity"), f"Item {index} quantity")
        if quantity <= 0:
            raise ValidationError(f"Item {index} quantity must be greater than zero")
        unit_price = require_amount_cents(raw.get("unit_price_cents"), f"Item {index} unit_price_cents", nullable=True)

        items.append(MaterialRequestItem(
            line_number=index,
            item_code=optional_text(raw.get("item_code")),
            description=require_text(raw.get("description"), f"Item {index} description"),
            uom=require_text(raw.get("uom"), f"Item {index} uom"),
            quantity=quantity,
            unit_price_cents=unit_price,
            total_price_cents=quantity * unit_price if unit_price is not None else None,
            quantity_served=0,
            remarks=optional_text(raw.get("remarks")),
        ))
    return items


def compute_total_cents(items, freight_cents: int, discount_cents: int) -> int:
    """Sum of priced line totals plus freight minus discount."""
    subtotal = sum(item.quantity * item.unit_price_cents for item in items if item.unit_price_cents is not None)
    total = subtotal + (freight_cents or 0) - (discount_cents or 0)
    if total < 0:
        raise ValidationError("Discount cannot exceed the request subtotal plus freight")
    return total


# =============================================================================
# Loading and actor checks
# =============================================================================

def _require_actor(actor_id: int) -> User:
    actor = db.session.query(User).filter_by(id=actor_id).first()
    if not actor or not actor.is_active:
        raise UnauthorizedError("Unauthorized")
    return actor


def _deny_cross_unit(actor_id: int, business_unit_id: int, mr: MaterialRequest, action: str) -> None:
    log_security_event(
        user_id=actor_id,
        event_type="CROSS_UNIT_ACCESS_DENIED",
        success=False,
        resource=f"material_request:{mr.id}",
        action=action,
        reason=f"Request belongs to business unit {mr.business_unit_id}",
        business_unit_id=business_unit_id,
    )
    raise UnauthorizedError("Unauthorized")


def _load_locked(
    request_id: int,
    business_unit_id: int,
    actor_id: int,
    action: str,
    *,
    allow_cross_unit: bool = False,
) -> MaterialRequest:
    """
    Lock and return the request, enforcing business unit scope.

    allow_cross_unit lets CROSS_UNIT_APPROVE holders act on another
    business unit's request (approve/reject only).
    """
    mr = lock_for_update(db.session.query(MaterialRequest).filter_by(id=request_id)).first()
    if not mr:
        raise NotFoundError("Material request not found")

    if mr.business_unit_id != business_unit_id:
        if not (allow_cross_unit and user_has_permission(actor_id, "CROSS_UNIT_APPROVE")):
            _deny_cross_unit(actor_id, business_unit_id, mr, action)
    return mr


def _context(mr: MaterialRequest, *, fully_served: bool = False) -> TransitionContext:
    requester = mr.requester
    return TransitionContext(
        is_store_use=bool(mr.is_store_use),
        requester_is_rdh_mrs=bool(requester and requester.is_rdh_mrs),
        has_final_approver=mr.final_approver_id is not None,
        rec_approved=mr.rec_approval_status == ApprovalStatus.APPROVED.value,
        fully_served=fully_served,
    )


def _write_stage(mr: MaterialRequest, stage: Stage, status: ApprovalStatus, actor_id: int, remarks: str | None) -> None:
    decided = status != ApprovalStatus.PENDING
    now = utcnow() if decided else None
    note = remarks if decided else None

    if stage == Stage.REC:
        mr.rec_approval_status = status.value
        mr.rec_approval_date = now
        mr.rec_approval_remarks = note
    elif stage == Stage.FINAL:
        mr.final_approval_status = status.value
        mr.final_approval_date = now
        mr.final_approval_remarks = note
    elif stage == Stage.REVIEW:
        mr.review_status = status.value
        mr.reviewed_at = now
        mr.review_remarks = note
        if decided:
            mr.reviewer_id = actor_id


def _apply(
    mr: MaterialRequest,
    transition: Transition,
    *,
    actor_id: int,
    acting_business_unit_id: int,
    remarks: str | None = None,
    payload: dict | None = None,
) -> MaterialRequest:
    previous = mr.status
    mr.status = transition.target.value
    for stage, status in transition.writes:
        _write_stage(mr, stage, status, actor_id, remarks)

    db.session.flush()
    logger.info("Material request %s: %s -> %s by user %s", mr.document_number, previous, mr.status, actor_id)

    event_payload = {
        "document_number": mr.document_number,
        "from_status": previous,
        "to_status": mr.status,
    }
    if payload:
        event_payload.update(payload)

    append_audit_event(
        business_unit_id=mr.business_unit_id,
        event_type=f"material_request.{transition.event}",
        event_category="material_requests",
        entity_type="material_request",
        entity_id=mr.id,
        actor_user_id=actor_id,
        note=remarks,
        payload=event_payload,
    )

    publish_approval_views_changed(
        "material_request_service",
        {acting_business_unit_id, mr.business_unit_id},
        reason=f"material_request.{transition.event}",
    )
    return mr


# =============================================================================
# Draft lifecycle
# =============================================================================

def create_material_request(
    *,
    business_unit_id: int,
    requester_id: int,
    series: str,
    items: list,
    request_type: str = "ITEM",
    purpose: str | None = None,
    date_required=None,
    is_store_use: bool = False,
    department_id: int | None = None,
    rec_approver_id: int | None = None,
    final_approver_id: int | None = None,
    freight_cents=0,
    discount_cents=0,
) -> MaterialRequest:
    """
    Create a DRAFT material request with its items.

    Approvers not given explicitly default from the department (the
    requester's own department when department_id is omitted).
    """
    series = require_text(series, "series").upper()
    if series not in SERIES:
        raise ValidationError(f"series must be one of {', '.join(SERIES)}")
    request_type = require_text(request_type, "type").upper()
    if request_type not in REQUEST_TYPES:
        raise ValidationError(f"type must be one of {', '.join(REQUEST_TYPES)}")

    freight = require_amount_cents(freight_cents or 0, "freight_cents")
    discount = require_amount_cents(discount_cents or 0, "discount_cents")
    built_items = _build_items(items)
    total = compute_total_cents(built_items, freight, discount)

    requester = _require_actor(requester_id)
    if requester.business_unit_id != business_unit_id:
        raise UnauthorizedError("Requester does not belong to this business unit")

    department_id = department_id or requester.department_id
    department = None
    if department_id is not None:
        department = db.session.query(Department).filter_by(id=department_id).first()
        if not department or department.business_unit_id != business_unit_id:
            raise NotFoundError("Department not found")

    if rec_approver_id is None and department is not None:
        rec_approver_id = department.default_rec_approver_id
    if final_approver_id is None and department is not None:
        final_approver_id = department.default_final_approver_id

    for approver_id, label in ((rec_approver_id, "Recommending approver"), (final_approver_id, "Final approver")):
        if approver_id is not None and not db.session.query(User.id).filter_by(id=approver_id).first():
            raise NotFoundError(f"{label} not found")

    document_number = next_material_request_number(business_unit_id, series, today())

    def _op():
        mr = MaterialRequest(
            business_unit_id=business_unit_id,
            department_id=department_id,
            document_number=document_number,
            series=series,
            type=request_type,
            status=MaterialRequestStatus.DRAFT.value,
            is_store_use=bool(is_store_use),
            purpose=optional_text(purpose),
            date_required=parse_iso_date(date_required),
            requester_id=requester_id,
            rec_approver_id=rec_approver_id,
            final_approver_id=final_approver_id,
            freight_cents=freight,
            discount_cents=discount,
            total_cents=total,
        )
        mr.items = built_items
        db.session.add(mr)
        db.session.flush()

        append_audit_event(
            business_unit_id=business_unit_id,
            event_type="material_request.created",
            event_category="material_requests",
            entity_type="material_request",
            entity_id=mr.id,
            actor_user_id=requester_id,
            payload={"document_number": document_number, "total_cents": total, "item_count": len(built_items)},
        )
        return mr

    return run_with_retry(_op)


def _optional_user_id(value, field: str) -> int | None:
    if value is None:
        return None
    user_id = require_int(value, field, minimum=1)
    if not db.session.query(User.id).filter_by(id=user_id).first():
        raise NotFoundError(f"{field} does not match an employee")
    return user_id


def _require_requester_draft(mr: MaterialRequest, actor_id: int, verb: str) -> None:
    if mr.requester_id != actor_id:
        raise UnauthorizedError(f"Only the requester can {verb} this request")
    next_transition(mr.status, WorkflowAction.EDIT)


def update_material_request(
    request_id: int,
    actor_id: int,
    business_unit_id: int,
    changes: dict,
    expected_version: int | None = None,
) -> MaterialRequest:
    """
    Edit a DRAFT request. Supplying "items" replaces every line and the
    total is recomputed from the new lines.
    """
    def _op():
        mr = _load_locked(request_id, business_unit_id, actor_id, "update")
        _require_requester_draft(mr, actor_id, "edit")
        check_expected_version(mr, expected_version, "Material request")

        if "purpose" in changes:
            mr.purpose = optional_text(changes["purpose"])
        if "date_required" in changes:
            mr.date_required = parse_iso_date(changes["date_required"])
        if "is_store_use" in changes:
            mr.is_store_use = bool(changes["is_store_use"])
        if "rec_approver_id" in changes:
            mr.rec_approver_id = _optional_user_id(changes["rec_approver_id"], "rec_approver_id")
        if "final_approver_id" in changes:
            mr.final_approver_id = _optional_user_id(changes["final_approver_id"], "final_approver_id")
        if "freight_cents" in changes:
            mr.freight_cents = require_amount_cents(changes["freight_cents"] or 0, "freight_cents")
        if "discount_cents" in changes:
            mr.discount_cents = require_amount_cents(changes["discount_cents"] or 0, "discount_cents")

        if "items" in changes:
            new_items = _build_items(changes["items"])
            mr.items.clear()
            # Old lines must be gone before new ones reuse their line numbers
            db.session.flush()
            mr.items.extend(new_items)

        mr.total_cents = compute_total_cents(mr.items, mr.freight_cents, mr.discount_cents)
        db.session.flush()

        append_audit_event(
            business_unit_id=mr.business_unit_id,
            event_type="material_request.updated",
            event_category="material_requests",
            entity_type="material_request",
            entity_id=mr.id,
            actor_user_id=actor_id,
            payload={"fields": sorted(changes.keys()), "total_cents": mr.total_cents},
        )
        return mr

    return run_with_retry(_op)


def delete_material_request(
    request_id: int,
    actor_id: int,
    business_unit_id: int,
    expected_version: int | None = None,
) -> None:
    def _op():
        mr = _load_locked(request_id, business_unit_id, actor_id, "delete")
        _require_requester_draft(mr, actor_id, "delete")
        check_expected_version(mr, expected_version, "Material request")

        append_audit_event(
            business_unit_id=mr.business_unit_id,
            event_type="material_request.deleted",
            event_category="material_requests",
            entity_type="material_request",
            entity_id=mr.id,
            actor_user_id=actor_id,
            payload={"document_number": mr.document_number},
        )
        db.session.delete(mr)
        db.session.flush()

    run_with_retry(_op)


def submit_for_approval(
    request_id: int,
    actor_id: int,
    business_unit_id: int,
    expected_version: int | None = None,
) -> MaterialRequest:
    """DRAFT -> FOR_REVIEW (store use) or FOR_REC_APPROVAL."""
    def _op():
        mr = _load_locked(request_id, business_unit_id, actor_id, "submit")
        if mr.requester_id != actor_id:
            raise UnauthorizedError("Only the requester can submit this request")
        check_expected_version(mr, expected_version, "Material request")

        transition = next_transition(mr.status, WorkflowAction.SUBMIT, _context(mr))
        if mr.rec_approver_id is None and mr.final_approver_id is None:
            raise ValidationError("At least one approver must be assigned before submitting")

        return _apply(mr, transition, actor_id=actor_id, acting_business_unit_id=business_unit_id)

    return run_with_retry(_op)


def cancel_material_request(
    request_id: int,
    actor_id: int,
    business_unit_id: int,
    reason: str | None = None,
    expected_version: int | None = None,
) -> MaterialRequest:
    def _op():
        mr = _load_locked(request_id, business_unit_id, actor_id, "cancel")
        if mr.requester_id != actor_id:
            raise UnauthorizedError("Only the requester can cancel this request")
        check_expected_version(mr, expected_version, "Material request")

        transition = next_transition(mr.status, WorkflowAction.CANCEL)
        mr.cancelled_at = utcnow()
        mr.cancelled_by_id = actor_id
        mr.cancellation_reason = optional_text(reason)
        return _apply(mr, transition, actor_id=actor_id, acting_business_unit_id=business_unit_id, remarks=mr.cancellation_reason)

    return run_with_retry(_op)


# =============================================================================
# Review, budget and approval
# =============================================================================

def mark_as_reviewed(
    request_id: int,
    actor_id: int,
    business_unit_id: int,
    remarks: str | None = None,
    expected_version: int | None = None,
) -> MaterialRequest:
    """FOR_REVIEW -> PENDING_BUDGET_APPROVAL (RDH/MRS requester) or FOR_REC_APPROVAL."""
    def _op():
        mr = _load_locked(request_id, business_unit_id, actor_id, "review")
        require_permission(actor_id, "STORE_USE_REVIEW", resource=f"material_request:{request_id}", business_unit_id=business_unit_id)
        check_expected_version(mr, expected_version, "Material request")

        transition = next_transition(mr.status, WorkflowAction.REVIEW, _context(mr))
        return _apply(
            mr, transition,
            actor_id=actor_id,
            acting_business_unit_id=business_unit_id,
            remarks=optional_text(remarks),
        )

    return run_with_retry(_op)


def approve_budget(
    request_id: int,
    actor_id: int,
    business_unit_id: int,
    is_within_budget: bool,
    remarks: str | None = None,
    expected_version: int | None = None,
) -> MaterialRequest:
    """
    Record the budget check and release the request to recommending approval.

    The within-budget flag is informational for the approvers that follow;
    an over-budget request still moves on, and stopping it is a rejection
    by the recommending or final approver.
    """
    if not isinstance(is_within_budget, bool):
        raise ValidationError("is_within_budget must be true or false")

    def _op():
        mr = _load_locked(request_id, business_unit_id, actor_id, "approve_budget")
        require_permission(actor_id, "BUDGET_APPROVE", resource=f"material_request:{request_id}", business_unit_id=business_unit_id)
        check_expected_version(mr, expected_version, "Material request")

        transition = next_transition(mr.status, WorkflowAction.APPROVE_BUDGET, _context(mr))
        mr.is_within_budget = is_within_budget
        mr.budget_remarks = optional_text(remarks)
        mr.budget_approved_by_id = actor_id
        mr.budget_approved_at = utcnow()
        return _apply(
            mr, transition,
            actor_id=actor_id,
            acting_business_unit_id=business_unit_id,
            remarks=mr.budget_remarks,
            payload={"is_within_budget": is_within_budget},
        )

    return run_with_retry(_op)


def approve(
    request_id: int,
    actor_id: int,
    business_unit_id: int,
    comments: str | None = None,
    expected_version: int | None = None,
) -> MaterialRequest:
    """
    Approve the current stage.

    FOR_REC_APPROVAL: only the recommending approver; moves to
    FOR_FINAL_APPROVAL, or FINAL_APPROVED when no final approver is set.
    FOR_FINAL_APPROVAL: only the final approver, and only once recommending
    approval is APPROVED; moves to FOR_SERVING.
    Any other status or actor is unauthorized.
    """
    def _op():
        mr = _load_locked(request_id, business_unit_id, actor_id, "approve", allow_cross_unit=True)
        check_expected_version(mr, expected_version, "Material request")

        rec_approved = mr.rec_approval_status == ApprovalStatus.APPROVED.value
        if mr.status == MaterialRequestStatus.FOR_REC_APPROVAL.value and mr.rec_approver_id == actor_id:
            pass
        elif mr.status == MaterialRequestStatus.FOR_FINAL_APPROVAL.value and mr.final_approver_id == actor_id and rec_approved:
            pass
        else:
            raise UnauthorizedError("You are not authorized to approve this request")

        transition = next_transition(mr.status, WorkflowAction.APPROVE, _context(mr))
        return _apply(
            mr, transition,
            actor_id=actor_id,
            acting_business_unit_id=business_unit_id,
            remarks=optional_text(comments),
        )

    return run_with_retry(_op)


def reject(
    request_id: int,
    actor_id: int,
    business_unit_id: int,
    comments: str | None,
    expected_version: int | None = None,
) -> MaterialRequest:
    """
    Disapprove the current stage; comments are mandatory.

    Only the recommending approver at FOR_REC_APPROVAL or the final approver
    at FOR_FINAL_APPROVAL may reject; any other status is an invalid move.
    """
    def _op():
        mr = _load_locked(request_id, business_unit_id, actor_id, "reject", allow_cross_unit=True)
        remarks = require_text(comments, "Comments")
        check_expected_version(mr, expected_version, "Material request")

        transition = next_transition(mr.status, WorkflowAction.REJECT, _context(mr))

        if mr.status == MaterialRequestStatus.FOR_REC_APPROVAL.value:
            allowed = mr.rec_approver_id == actor_id
        else:
            allowed = mr.final_approver_id == actor_id
        if not allowed:
            raise UnauthorizedError("You are not authorized to reject this request")

        return _apply(mr, transition, actor_id=actor_id, acting_business_unit_id=business_unit_id, remarks=remarks)

    return run_with_retry(_op)


# =============================================================================
# Serving, posting and acknowledgement
# =============================================================================

def _serve_quantities(mr: MaterialRequest, served_items) -> dict[int, int]:
    """Map item id -> quantity to add. None/empty serves everything remaining."""
    by_id = {item.id: item for item in mr.items}
    if not served_items:
        return {item.id: item.quantity - item.quantity_served for item in mr.items if item.quantity > item.quantity_served}

    quantities: dict[int, int] = {}
    for raw in served_items:
        item_id = require_int(raw.get("item_id"), "item_id")
        item = by_id.get(item_id)
        if item is None:
            raise ValidationError(f"Item {item_id} does not belong to this request")
        qty = require_int(raw.get("quantity_served"), "quantity_served")
        if qty <= 0:
            raise ValidationError("quantity_served must be greater than zero")
        quantities[item_id] = quantities.get(item_id, 0) + qty

    for item_id, qty in quantities.items():
        item = by_id[item_id]
        remaining = item.quantity - item.quantity_served
        if qty > remaining:
            raise ValidationError(
                f"Cannot serve {qty} of '{item.description}'; only {remaining} remaining"
            )
    return quantities


def mark_as_served(
    request_id: int,
    actor_id: int,
    business_unit_id: int,
    served_items: list | None = None,
    supplier_name: str | None = None,
    purchase_order_number: str | None = None,
    notes: str | None = None,
    expected_version: int | None = None,
) -> MaterialRequest:
    """
    Record served quantities. The request moves to FOR_POSTING once every
    line is fully served; a partial serve keeps the current status.
    """
    def _op():
        mr = _load_locked(request_id, business_unit_id, actor_id, "serve")
        require_permission(actor_id, "SERVE_MATERIAL_REQUESTS", resource=f"material_request:{request_id}", business_unit_id=business_unit_id)
        check_expected_version(mr, expected_version, "Material request")

        # Reject non-servable statuses before validating quantities
        next_transition(mr.status, WorkflowAction.SERVE, _context(mr))

        quantities = _serve_quantities(mr, served_items)
        if not quantities:
            raise InvalidStateError("All items have already been served")

        for item in mr.items:
            if item.id in quantities:
                item.quantity_served += quantities[item.id]

        fully_served = all(item.quantity_served >= item.quantity for item in mr.items)
        transition = next_transition(mr.status, WorkflowAction.SERVE, _context(mr, fully_served=fully_served))

        mr.served_at = utcnow()
        mr.served_by_id = actor_id
        if supplier_name is not None:
            mr.supplier_name = optional_text(supplier_name)
        if purchase_order_number is not None:
            mr.purchase_order_number = optional_text(purchase_order_number)
        if notes is not None:
            mr.serving_notes = optional_text(notes)

        return _apply(
            mr, transition,
            actor_id=actor_id,
            acting_business_unit_id=business_unit_id,
            remarks=mr.serving_notes,
            payload={"served": {str(k): v for k, v in quantities.items()}, "fully_served": fully_served},
        )

    return run_with_retry(_op)


def mark_as_posted(
    request_id: int,
    actor_id: int,
    business_unit_id: int,
    expected_version: int | None = None,
) -> MaterialRequest:
    def _op():
        mr = _load_locked(request_id, business_unit_id, actor_id, "post")
        require_permission(actor_id, "POST_MATERIAL_REQUESTS", resource=f"material_request:{request_id}", business_unit_id=business_unit_id)
        check_expected_version(mr, expected_version, "Material request")

        transition = next_transition(mr.status, WorkflowAction.POST)
        mr.date_posted = utcnow()
        mr.posted_by_id = actor_id
        return _apply(mr, transition, actor_id=actor_id, acting_business_unit_id=business_unit_id)

    return run_with_retry(_op)


def save_acknowledgement(
    request_id: int,
    actor_id: int,
    business_unit_id: int,
    signature_data: str | None = None,
    expected_version: int | None = None,
) -> MaterialRequest:
    """Requester confirms receipt of a POSTED request (once)."""
    def _op():
        mr = _load_locked(request_id, business_unit_id, actor_id, "acknowledge")
        if mr.requester_id != actor_id:
            raise UnauthorizedError("Only the requester can acknowledge this request")
        check_expected_version(mr, expected_version, "Material request")

        transition = next_transition(mr.status, WorkflowAction.ACKNOWLEDGE)
        if mr.acknowledged_at is not None:
            raise InvalidStateError("Material request has already been acknowledged")

        mr.acknowledged_at = utcnow()
        mr.acknowledged_by_id = actor_id
        mr.signature_data = signature_data
        return _apply(mr, transition, actor_id=actor_id, acting_business_unit_id=business_unit_id)

    return run_with_retry(_op)


# =============================================================================
# Reads
# =============================================================================

def get_material_request(request_id: int, actor_id: int, business_unit_id: int) -> MaterialRequest:
    mr = db.session.query(MaterialRequest).filter_by(id=request_id).first()
    if not mr:
        raise NotFoundError("Material request not found")
    if mr.business_unit_id != business_unit_id:
        require_business_unit_access(_require_actor(actor_id), mr.business_unit_id, resource=f"material_request:{request_id}")
    return mr


def list_material_requests(
    business_unit_id: int,
    *,
    requester_id: int | None = None,
    status: str | None = None,
    search: str | None = None,
    page: int = 1,
    per_page: int = 20,
) -> tuple[list[MaterialRequest], int]:
    """Newest first; returns (page of requests, total count)."""
    page = max(1, page)
    per_page = max(1, min(per_page, 100))

    query = db.session.query(MaterialRequest).filter(MaterialRequest.business_unit_id == business_unit_id)
    if requester_id is not None:
        query = query.filter(MaterialRequest.requester_id == requester_id)
    if status:
        query = query.filter(MaterialRequest.status == status)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(db.or_(
            MaterialRequest.document_number.ilike(pattern),
            MaterialRequest.purpose.ilike(pattern),
        ))

    total = query.count()
    rows = (
        query.order_by(MaterialRequest.created_at.desc(), MaterialRequest.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )
    return rows, total
