# backend/erms/services/counter_service.py
"""
Dashboard badge counts.

Every badge reuses the visibility predicates that back the corresponding
list, so a badge never disagrees with the list it links to. Counts run one
after another on the request's session.

Results are cached per (business_unit_id, user_id) for
COUNTER_CACHE_TTL_SECONDS. Any approval_views_changed signal naming a
business unit drops that unit's entries. CROSS_UNIT_APPROVE holders are
never cached: their approval badge spans units their cache key does not
name.
"""
from __future__ import annotations

import logging
import threading
import time

from flask import current_app

from ..models import LeaveRequest, OvertimeRequest, User
from ..signals import approval_views_changed
from erms.time_utils import today
from .asset_service import pending_deployment_approvals_query
from .depreciation_service import assets_due_query
from .permission_service import get_user_permissions, user_has_permission
from .visibility_service import (
    QUEUE_ACKNOWLEDGEMENT,
    QUEUE_BUDGET,
    QUEUE_POSTING,
    QUEUE_REVIEW,
    QUEUE_SERVING,
    QUEUE_CAPABILITIES,
    material_request_queue_query,
    pending_material_requests_query,
    pending_time_off_query,
)

logger = logging.getLogger(__name__)

# badge name -> coordinator queue
QUEUE_BADGES = {
    "for_review": QUEUE_REVIEW,
    "pending_budget": QUEUE_BUDGET,
    "for_serving": QUEUE_SERVING,
    "for_posting": QUEUE_POSTING,
    "for_acknowledgement": QUEUE_ACKNOWLEDGEMENT,
}

_cache: dict[tuple[int, int], tuple[float, dict[str, int]]] = {}
_cache_lock = threading.Lock()


def _ttl() -> int:
    return int(current_app.config.get("COUNTER_CACHE_TTL_SECONDS", 0) or 0)


def compute_dashboard_counts(user: User, business_unit_id: int) -> dict[str, int]:
    """Uncached badge computation."""
    permissions = get_user_permissions(user.id)

    counts = {
        "pending_leave": pending_time_off_query(LeaveRequest, user, business_unit_id).count(),
        "pending_overtime": pending_time_off_query(OvertimeRequest, user, business_unit_id).count(),
        "pending_material_requests": pending_material_requests_query(user, business_unit_id).count(),
    }

    for badge, queue in QUEUE_BADGES.items():
        capability = QUEUE_CAPABILITIES[queue]
        if capability and capability not in permissions:
            counts[badge] = 0
        else:
            counts[badge] = material_request_queue_query(queue, user, business_unit_id).count()

    counts["pending_deployment_approvals"] = (
        pending_deployment_approvals_query(business_unit_id).count()
        if "APPROVE_DEPLOYMENTS" in permissions else 0
    )
    counts["depreciation_due"] = (
        assets_due_query(business_unit_id, today()).count()
        if "RUN_DEPRECIATION" in permissions else 0
    )
    return counts


def get_dashboard_counts(user: User, business_unit_id: int) -> dict[str, int]:
    ttl = _ttl()
    if ttl > 0 and user_has_permission(user.id, "CROSS_UNIT_APPROVE"):
        ttl = 0
    key = (business_unit_id, user.id)
    now = time.monotonic()

    if ttl > 0:
        with _cache_lock:
            hit = _cache.get(key)
        if hit and now - hit[0] < ttl:
            return dict(hit[1])

    counts = compute_dashboard_counts(user, business_unit_id)

    if ttl > 0:
        with _cache_lock:
            _cache[key] = (now, counts)
    return dict(counts)


def invalidate_business_units(business_unit_ids) -> int:
    """Drop cached counts for the given business units; returns entries removed."""
    targets = set(business_unit_ids)
    with _cache_lock:
        stale = [key for key in _cache if key[0] in targets]
        for key in stale:
            del _cache[key]
    return len(stale)


def clear_cache() -> None:
    with _cache_lock:
        _cache.clear()


def _on_approval_views_changed(sender, business_unit_ids=(), reason=None, **_extra):
    removed = invalidate_business_units(business_unit_ids)
    logger.debug("Counter cache: dropped %d entr(ies) after %s from %s", removed, reason, sender)


def subscribe() -> None:
    """Connect the cache to approval_views_changed (idempotent)."""
    approval_views_changed.connect(_on_approval_views_changed)
