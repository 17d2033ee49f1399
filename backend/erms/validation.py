"""
Error taxonomy and small input validators shared by the services.

Services raise these; routes translate them into `{"error": ...}` responses
using `status_code`. Nothing here touches the database.
"""
from __future__ import annotations

from typing import Any


# Maximum amount: 9,999,999.99 (999,999,999 cents)
MAX_AMOUNT_CENTS = 999_999_999


class ActionError(Exception):
    """Base class for failures surfaced to API callers."""
    status_code = 400


class ValidationError(ActionError):
    """400-level input problem (missing field, non-positive quantity)."""
    status_code = 400


class UnauthorizedError(ActionError):
    """Caller is not the actor allowed to perform this action."""
    status_code = 403


class NotFoundError(ActionError):
    status_code = 404


class InvalidStateError(ActionError):
    """Action attempted from a status that does not permit it."""
    status_code = 409


class ConflictError(ActionError):
    """409-level concurrent modification or duplicate record."""
    status_code = 409


class PartialStateError(ActionError):
    """
    A batch contains at least one record that does not qualify.

    Nothing in the batch is applied.
    """
    status_code = 409

    def __init__(self, message: str, invalid_ids: list[int] | None = None):
        super().__init__(message)
        self.invalid_ids = list(invalid_ids or [])


def require_text(value: Any, field: str) -> str:
    """Strip and require a non-blank string."""
    if value is None:
        raise ValidationError(f"{field} is required")
    text = str(value).strip()
    if not text:
        raise ValidationError(f"{field} is required")
    return text


def optional_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def require_int(value: Any, field: str, *, minimum: int | None = None) -> int:
    # Integers - strict validation to reject floats, bools and scientific notation
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        result = value
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped or "e" in stripped.lower() or "." in stripped:
            raise ValidationError(f"{field} must be an integer")
        try:
            result = int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    else:
        raise ValidationError(f"{field} must be an integer")

    if minimum is not None and result < minimum:
        raise ValidationError(f"{field} must be >= {minimum}")
    return result


def require_amount_cents(value: Any, field: str, *, nullable: bool = False) -> int | None:
    if value is None:
        if nullable:
            return None
        raise ValidationError(f"{field} is required")
    amount = require_int(value, field, minimum=0)
    if amount > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{field} cannot exceed {MAX_AMOUNT_CENTS}")
    return amount


def require_id_list(values: Any, field: str) -> list[int]:
    """Non-empty list of unique integer ids, order preserved."""
    if not isinstance(values, (list, tuple)) or not values:
        raise ValidationError(f"{field} must be a non-empty list")
    seen: list[int] = []
    for raw in values:
        value = require_int(raw, field, minimum=1)
        if value not in seen:
            seen.append(value)
    return seen


def check_expected_version(entity, expected_version: int | None, label: str) -> None:
    """Raise ConflictError when the caller's copy is stale."""
    if expected_version is None:
        return
    if int(expected_version) != entity.version_id:
        raise ConflictError(
            f"{label} was modified by another user (expected version "
            f"{expected_version}, found {entity.version_id})"
        )
