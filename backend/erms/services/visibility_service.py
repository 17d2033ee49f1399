# Overview: Query predicates that decide which pending items a user sees.

"""
Visibility Filters

Each builder returns a SQLAlchemy boolean expression (or a Query built from
one) so lists and dashboard counts share exactly the same rules.

Queue exclusion: requesters whose employee_id is listed in config
QUEUE_EXCLUDED_EMPLOYEE_IDS, or who hold an active GRANT of
HIDDEN_FROM_QUEUES, never appear in anyone's approval or coordinator queue.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import and_, or_, false, select

from ..extensions import db
from ..models import User, MaterialRequest, LeaveRequest, OvertimeRequest
from ..models.auth import ROLE_ADMIN, ROLE_HR, ROLE_MANAGER
from .material_request_workflow import SERVABLE_STATUSES, MaterialRequestStatus, ApprovalStatus
from .permission_service import hidden_user_ids_subquery, user_has_permission


PENDING_MANAGER = "PENDING_MANAGER"
PENDING_HR = "PENDING_HR"

# Coordinator queues and the capability each needs
QUEUE_REVIEW = "review"
QUEUE_BUDGET = "budget"
QUEUE_SERVING = "serving"
QUEUE_POSTING = "posting"
QUEUE_ACKNOWLEDGEMENT = "acknowledgement"

QUEUE_CAPABILITIES = {
    QUEUE_REVIEW: "STORE_USE_REVIEW",
    QUEUE_BUDGET: "BUDGET_APPROVE",
    QUEUE_SERVING: "SERVE_MATERIAL_REQUESTS",
    QUEUE_POSTING: "POST_MATERIAL_REQUESTS",
    QUEUE_ACKNOWLEDGEMENT: None,  # the caller's own requests
}


def excluded_employee_ids() -> tuple[str, ...]:
    return tuple(current_app.config.get("QUEUE_EXCLUDED_EMPLOYEE_IDS", ()))


def queue_exclusion(requester_id_column):
    """Hide system/test accounts and HIDDEN_FROM_QUEUES holders."""
    conditions = [requester_id_column.not_in(hidden_user_ids_subquery())]
    excluded = excluded_employee_ids()
    if excluded:
        conditions.append(
            requester_id_column.not_in(select(User.id).where(User.employee_id.in_(excluded)))
        )
    return and_(*conditions)


# =============================================================================
# Material requests
# =============================================================================

def pending_material_request_filter(user: User, business_unit_id: int):
    """
    Requests awaiting this user's approval.

    ADMIN sees every request at an approval stage in the business unit.
    Everyone else sees requests where they are the assigned approver for
    the current stage. CROSS_UNIT_APPROVE drops the business unit filter.
    """
    rec_stage = MaterialRequestStatus.FOR_REC_APPROVAL.value
    final_stage = MaterialRequestStatus.FOR_FINAL_APPROVAL.value
    pending = ApprovalStatus.PENDING.value

    if user.role == ROLE_ADMIN:
        stage_filter = MaterialRequest.status.in_([rec_stage, final_stage])
    else:
        stage_filter = or_(
            and_(
                MaterialRequest.rec_approver_id == user.id,
                MaterialRequest.status == rec_stage,
                or_(MaterialRequest.rec_approval_status.is_(None), MaterialRequest.rec_approval_status == pending),
            ),
            and_(
                MaterialRequest.final_approver_id == user.id,
                MaterialRequest.status == final_stage,
                MaterialRequest.rec_approval_status == ApprovalStatus.APPROVED.value,
                or_(MaterialRequest.final_approval_status.is_(None), MaterialRequest.final_approval_status == pending),
            ),
        )

    conditions = [stage_filter, queue_exclusion(MaterialRequest.requester_id)]
    if not user_has_permission(user.id, "CROSS_UNIT_APPROVE"):
        conditions.append(MaterialRequest.business_unit_id == business_unit_id)
    return and_(*conditions)


def material_request_queue_filter(queue: str, user: User, business_unit_id: int):
    """Coordinator queue predicate; capability checks are the caller's job."""
    in_unit = MaterialRequest.business_unit_id == business_unit_id

    if queue == QUEUE_ACKNOWLEDGEMENT:
        return and_(
            in_unit,
            MaterialRequest.requester_id == user.id,
            MaterialRequest.status == MaterialRequestStatus.POSTED.value,
            MaterialRequest.acknowledged_at.is_(None),
        )

    if queue == QUEUE_REVIEW:
        status_filter = MaterialRequest.status == MaterialRequestStatus.FOR_REVIEW.value
    elif queue == QUEUE_BUDGET:
        status_filter = MaterialRequest.status == MaterialRequestStatus.PENDING_BUDGET_APPROVAL.value
    elif queue == QUEUE_SERVING:
        status_filter = MaterialRequest.status.in_([status.value for status in SERVABLE_STATUSES])
    elif queue == QUEUE_POSTING:
        status_filter = MaterialRequest.status == MaterialRequestStatus.FOR_POSTING.value
    else:
        raise ValueError(f"Unknown queue: {queue}")

    return and_(in_unit, status_filter, queue_exclusion(MaterialRequest.requester_id))


def pending_material_requests_query(user: User, business_unit_id: int):
    return db.session.query(MaterialRequest).filter(pending_material_request_filter(user, business_unit_id))


def material_request_queue_query(queue: str, user: User, business_unit_id: int):
    return db.session.query(MaterialRequest).filter(material_request_queue_filter(queue, user, business_unit_id))


# =============================================================================
# Leave and overtime
# =============================================================================

def pending_time_off_filter(model, user: User, business_unit_id: int):
    """
    Two-stage approval queue for LeaveRequest or OvertimeRequest.

    - ADMIN: both pending stages in the business unit
    - HR: PENDING_HR in the business unit, manager stage already acted on
    - MANAGER: PENDING_MANAGER requests from their direct reports
    - anyone else: nothing
    """
    if model not in (LeaveRequest, OvertimeRequest):
        raise ValueError(f"Unsupported time-off model: {model}")

    if user.role == ROLE_ADMIN:
        role_filter = and_(
            model.business_unit_id == business_unit_id,
            model.status.in_([PENDING_MANAGER, PENDING_HR]),
        )
    elif user.role == ROLE_HR:
        role_filter = and_(
            model.business_unit_id == business_unit_id,
            model.status == PENDING_HR,
            model.manager_action_by_id.is_not(None),
        )
    elif user.role == ROLE_MANAGER:
        role_filter = and_(
            model.user_id.in_(select(User.id).where(User.approver_id == user.id)),
            model.status == PENDING_MANAGER,
        )
    else:
        return false()

    return and_(role_filter, queue_exclusion(model.user_id))


def pending_time_off_query(model, user: User, business_unit_id: int):
    predicate = pending_time_off_filter(model, user, business_unit_id)
    return db.session.query(model).filter(predicate)
