# Overview: Append-only audit trail writer and reader.

"""
Audit Trail Invariants

- Append-only log of business state changes.
- No domain logic here; callers decide what happened.
- Events are written inside the same DB transaction as the change they record,
  so a rolled-back operation leaves no audit row behind.
- occurred_at is business time; created_at is system time (DB default).
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Optional

from ..extensions import db
from ..models import AuditEvent
from erms.time_utils import utcnow


def append_audit_event(
    *,
    business_unit_id: int,
    event_type: str,
    event_category: str,
    entity_type: str,
    entity_id: int,
    actor_user_id: int | None = None,
    occurred_at: Optional[datetime] = None,
    note: Optional[str] = None,
    payload: Optional[dict] = None,
) -> AuditEvent:
    ev = AuditEvent(
        business_unit_id=business_unit_id,
        event_type=event_type,
        event_category=event_category,
        entity_type=entity_type,
        entity_id=entity_id,
        actor_user_id=actor_user_id,
        occurred_at=occurred_at or utcnow(),
        note=note[:255] if note else None,
        payload=json.dumps(payload, default=str, sort_keys=True) if payload else None,
    )
    db.session.add(ev)
    db.session.flush()  # ensures ev.id is assigned without committing
    return ev


def list_audit_events(
    *,
    business_unit_id: int,
    entity_type: str | None = None,
    entity_id: int | None = None,
    event_category: str | None = None,
    limit: int = 100,
) -> list[AuditEvent]:
    limit = max(1, min(limit, 500))
    query = db.session.query(AuditEvent).filter(AuditEvent.business_unit_id == business_unit_id)
    if entity_type:
        query = query.filter(AuditEvent.entity_type == entity_type)
    if entity_id is not None:
        query = query.filter(AuditEvent.entity_id == entity_id)
    if event_category:
        query = query.filter(AuditEvent.event_category == event_category)
    return query.order_by(AuditEvent.id.desc()).limit(limit).all()
