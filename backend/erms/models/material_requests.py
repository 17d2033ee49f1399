from __future__ import annotations

from ..extensions import db
from erms.time_utils import to_utc_z, to_iso_date


class MaterialRequest(db.Model):
    """
    Material requisition document.

    LIFECYCLE (see services/material_request_workflow.py for the full table):
    DRAFT -> [FOR_REVIEW -> [PENDING_BUDGET_APPROVAL]] -> FOR_REC_APPROVAL
          -> FOR_FINAL_APPROVAL -> FOR_SERVING -> FOR_POSTING -> POSTED
    with DISAPPROVED / CANCELLED as dead ends.

    Each approval stage keeps its own sub-state (status, date, remarks).
    Recommending approval must be APPROVED before final approval is
    granted, and final approval must be APPROVED before FOR_SERVING.

    total_cents is derived from the items plus freight minus discount and
    is recomputed whenever items change.
    """
    __tablename__ = "material_requests"
    __table_args__ = (
        db.UniqueConstraint("business_unit_id", "document_number", name="uq_material_requests_bu_docnum"),
        db.Index("ix_material_requests_bu_status", "business_unit_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_unit_id = db.Column(db.Integer, db.ForeignKey("business_units.id"), nullable=False, index=True)
    department_id = db.Column(db.Integer, db.ForeignKey("departments.id"), nullable=True, index=True)

    # Document number (e.g., "PO-26-00001")
    document_number = db.Column(db.String(32), nullable=False)
    series = db.Column(db.String(8), nullable=False)  # PO, JO, OTHER
    type = db.Column(db.String(8), nullable=False, default="ITEM")  # ITEM, SERVICE
    status = db.Column(db.String(32), nullable=False, default="DRAFT", index=True)

    is_store_use = db.Column(db.Boolean, nullable=False, default=False)
    purpose = db.Column(db.Text, nullable=True)
    date_required = db.Column(db.Date, nullable=True)

    requester_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    rec_approver_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    final_approver_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    reviewer_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    freight_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    # Recommending approval
    rec_approval_status = db.Column(db.String(16), nullable=True)
    rec_approval_date = db.Column(db.DateTime(timezone=True), nullable=True)
    rec_approval_remarks = db.Column(db.Text, nullable=True)

    # Final approval
    final_approval_status = db.Column(db.String(16), nullable=True)
    final_approval_date = db.Column(db.DateTime(timezone=True), nullable=True)
    final_approval_remarks = db.Column(db.Text, nullable=True)

    # Store-use review
    review_status = db.Column(db.String(16), nullable=True)
    reviewed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    review_remarks = db.Column(db.Text, nullable=True)

    # Budget approval (RDH/MRS store-use requests)
    is_within_budget = db.Column(db.Boolean, nullable=True)
    budget_remarks = db.Column(db.Text, nullable=True)
    budget_approved_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    budget_approved_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Serving
    served_at = db.Column(db.DateTime(timezone=True), nullable=True)
    served_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    supplier_name = db.Column(db.String(255), nullable=True)
    purchase_order_number = db.Column(db.String(64), nullable=True)
    serving_notes = db.Column(db.Text, nullable=True)

    # Posting
    date_posted = db.Column(db.DateTime(timezone=True), nullable=True)
    posted_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    # Acknowledgement
    acknowledged_at = db.Column(db.DateTime(timezone=True), nullable=True)
    acknowledged_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    signature_data = db.Column(db.Text, nullable=True)

    # Cancellation
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    cancellation_reason = db.Column(db.Text, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    business_unit = db.relationship("BusinessUnit")
    department = db.relationship("Department")
    requester = db.relationship("User", foreign_keys=[requester_id])
    rec_approver = db.relationship("User", foreign_keys=[rec_approver_id])
    final_approver = db.relationship("User", foreign_keys=[final_approver_id])
    reviewer = db.relationship("User", foreign_keys=[reviewer_id])
    items = db.relationship(
        "MaterialRequestItem",
        backref="material_request",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="MaterialRequestItem.line_number",
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<MaterialRequest id={self.id} {self.document_number} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_unit_id": self.business_unit_id,
            "department_id": self.department_id,
            "document_number": self.document_number,
            "series": self.series,
            "type": self.type,
            "status": self.status,
            "is_store_use": self.is_store_use,
            "purpose": self.purpose,
            "date_required": to_iso_date(self.date_required),
            "requester_id": self.requester_id,
            "rec_approver_id": self.rec_approver_id,
            "final_approver_id": self.final_approver_id,
            "reviewer_id": self.reviewer_id,
            "freight_cents": self.freight_cents,
            "discount_cents": self.discount_cents,
            "total_cents": self.total_cents,
            "rec_approval_status": self.rec_approval_status,
            "rec_approval_date": to_utc_z(self.rec_approval_date),
            "rec_approval_remarks": self.rec_approval_remarks,
            "final_approval_status": self.final_approval_status,
            "final_approval_date": to_utc_z(self.final_approval_date),
            "final_approval_remarks": self.final_approval_remarks,
            "review_status": self.review_status,
            "reviewed_at": to_utc_z(self.reviewed_at),
            "review_remarks": self.review_remarks,
            "is_within_budget": self.is_within_budget,
            "budget_remarks": self.budget_remarks,
            "budget_approved_by_id": self.budget_approved_by_id,
            "budget_approved_at": to_utc_z(self.budget_approved_at),
            "served_at": to_utc_z(self.served_at),
            "served_by_id": self.served_by_id,
            "supplier_name": self.supplier_name,
            "purchase_order_number": self.purchase_order_number,
            "serving_notes": self.serving_notes,
            "date_posted": to_utc_z(self.date_posted),
            "posted_by_id": self.posted_by_id,
            "acknowledged_at": to_utc_z(self.acknowledged_at),
            "acknowledged_by_id": self.acknowledged_by_id,
            "cancelled_at": to_utc_z(self.cancelled_at),
            "cancellation_reason": self.cancellation_reason,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class MaterialRequestItem(db.Model):
    """Line item owned by one material request (no independent lifecycle)."""
    __tablename__ = "material_request_items"
    __table_args__ = (
        db.UniqueConstraint("material_request_id", "line_number", name="uq_mr_items_request_line"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    material_request_id = db.Column(db.Integer, db.ForeignKey("material_requests.id"), nullable=False, index=True)
    line_number = db.Column(db.Integer, nullable=False)

    item_code = db.Column(db.String(64), nullable=True)
    description = db.Column(db.String(255), nullable=False)
    uom = db.Column(db.String(32), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=True)
    total_price_cents = db.Column(db.Integer, nullable=True)  # quantity * unit price, null when unpriced
    quantity_served = db.Column(db.Integer, nullable=False, default=0)
    remarks = db.Column(db.Text, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "material_request_id": self.material_request_id,
            "line_number": self.line_number,
            "item_code": self.item_code,
            "description": self.description,
            "uom": self.uom,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "total_price_cents": self.total_price_cents,
            "quantity_served": self.quantity_served,
            "remarks": self.remarks,
        }
