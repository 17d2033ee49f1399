# Overview: Atomic document number allocation (material requests, transmittals).

from __future__ import annotations

from datetime import date

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence, BusinessUnit
from ..validation import NotFoundError
from .concurrency import run_with_retry


class DocumentSequenceError(Exception):
    """Raised when document sequence operations fail."""
    pass


def _allocate(business_unit_id: int, document_type: str) -> int:
    """Reserve and return the next integer for (business unit, type)."""
    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.business_unit_id == business_unit_id,
            DocumentSequence.document_type == document_type,
        )
        .values(next_number=DocumentSequence.next_number + 1)
    )

    result = db.session.execute(stmt)
    if not result.rowcount:
        seq = DocumentSequence(business_unit_id=business_unit_id, document_type=document_type, next_number=2)
        try:
            with db.session.begin_nested():
                db.session.add(seq)
            return 1
        except IntegrityError:
            # Another transaction created the row first
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise

    db.session.flush()
    current = (
        db.session.query(DocumentSequence.next_number)
        .filter_by(business_unit_id=business_unit_id, document_type=document_type)
        .scalar()
    )
    return current - 1


def next_document_number(
    *,
    business_unit_id: int,
    document_type: str,
    prefix: str,
    pad: int = 5,
) -> str:
    """
    Atomically allocate "{prefix}-{number}" for a business unit/type.

    The counter row is bumped with a single UPDATE ... SET n = n + 1 so two
    concurrent requests can never receive the same number.
    """
    def _op() -> str:
        if not business_unit_id:
            raise DocumentSequenceError("business_unit_id is required")
        if not document_type:
            raise DocumentSequenceError("document_type is required")
        number = _allocate(business_unit_id, document_type)
        return f"{prefix}-{number:0{pad}d}"

    return run_with_retry(_op)


def next_material_request_number(business_unit_id: int, series: str, on: date) -> str:
    """PO-26-00001: series, two-digit year, five-digit running number per year."""
    yy = f"{on.year % 100:02d}"
    return next_document_number(
        business_unit_id=business_unit_id,
        document_type=f"MR-{series}-{yy}",
        prefix=f"{series}-{yy}",
        pad=5,
    )


def next_transmittal_base(business_unit_id: int, on: date) -> str:
    """HO-202610-001: business unit code, year-month, three-digit number per month."""
    bu = db.session.query(BusinessUnit).filter_by(id=business_unit_id).first()
    if not bu:
        raise NotFoundError("Business unit not found")
    period = f"{on.year:04d}{on.month:02d}"
    return next_document_number(
        business_unit_id=business_unit_id,
        document_type=f"TRANSMITTAL-{period}",
        prefix=f"{bu.code}-{period}",
        pad=3,
    )
