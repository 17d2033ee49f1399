# Overview: In-process signals for view invalidation.
#
# Workflows publish after a state change; the dashboard counter cache
# subscribes and drops the affected business units. Each publish is sent
# once immediately and once more after the surrounding transaction commits,
# so a read that lands between the two cannot keep pre-commit counts.

from __future__ import annotations

import logging

from blinker import Namespace
from sqlalchemy import event
from sqlalchemy.orm import Session

from .extensions import db

logger = logging.getLogger(__name__)

_signals = Namespace()

# sender: the publishing service name; kwargs: business_unit_ids (set[int]), reason (str)
approval_views_changed = _signals.signal("approval-views-changed")

# Session.info key holding publishes waiting for commit
PENDING_PUBLISHES_KEY = "erms.approval_views_pending"


def publish_approval_views_changed(sender: str, business_unit_ids, reason: str) -> None:
    """Notify subscribers that pending-approval and coordinator views changed."""
    ids = {bu_id for bu_id in business_unit_ids if bu_id is not None}
    if not ids:
        return
    logger.info("Publishing approval_views_changed from %s for units %s (%s)", sender, sorted(ids), reason)
    approval_views_changed.send(sender, business_unit_ids=ids, reason=reason)
    db.session.info.setdefault(PENDING_PUBLISHES_KEY, []).append((sender, ids, reason))


@event.listens_for(Session, "after_commit")
def _publish_after_commit(session):
    pending = session.info.pop(PENDING_PUBLISHES_KEY, None)
    for sender, ids, reason in pending or ():
        logger.debug("Re-publishing approval_views_changed from %s after commit (%s)", sender, reason)
        approval_views_changed.send(sender, business_unit_ids=ids, reason=reason)


@event.listens_for(Session, "after_rollback")
def _discard_after_rollback(session):
    session.info.pop(PENDING_PUBLISHES_KEY, None)
