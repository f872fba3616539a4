# Overview: Order status state machine.

"""
Order lifecycle.

STATE MACHINE:
    pending_whatsapp -> confirmed -> preparing -> shipped -> completed
          |               |             |            |
          +---------------+-------------+------------+--> cancelled

RULES:
1. Forward moves only; skipping intermediate states is allowed
   (a pickup order can go confirmed -> completed).
2. cancelled is reachable from every non-terminal state.
3. completed and cancelled are terminal: nothing leaves them, and a second
   cancellation is rejected, which is what keeps stock restoration single.
"""

from __future__ import annotations

from typing import Literal

from ..errors import InvalidTransitionError, ValidationError


PENDING = "pending_whatsapp"
CONFIRMED = "confirmed"
PREPARING = "preparing"
SHIPPED = "shipped"
COMPLETED = "completed"
CANCELLED = "cancelled"

FORWARD_ORDER = (PENDING, CONFIRMED, PREPARING, SHIPPED, COMPLETED)
VALID_STATUSES = set(FORWARD_ORDER) | {CANCELLED}
TERMINAL_STATUSES = {COMPLETED, CANCELLED}
EDITABLE_STATUSES = {PENDING, CONFIRMED, PREPARING}

OrderStatus = Literal["pending_whatsapp", "confirmed", "preparing", "shipped", "completed", "cancelled"]


def validate_status(status: str) -> None:
    if status not in VALID_STATUSES:
        raise ValidationError(
            f"Invalid status '{status}'. Must be one of: {', '.join(sorted(VALID_STATUSES))}",
            {"status": status},
        )


def can_transition(from_status: str, to_status: str) -> bool:
    if from_status in TERMINAL_STATUSES:
        return False
    if to_status == CANCELLED:
        return True
    if from_status not in FORWARD_ORDER or to_status not in FORWARD_ORDER:
        return False
    return FORWARD_ORDER.index(to_status) > FORWARD_ORDER.index(from_status)


def ensure_transition(from_status: str, to_status: str) -> None:
    validate_status(to_status)
    if not can_transition(from_status, to_status):
        if from_status in TERMINAL_STATUSES:
            message = f"Order is already {from_status}"
        else:
            message = f"Cannot change order status from {from_status} to {to_status}"
        raise InvalidTransitionError(message, {"from": from_status, "to": to_status})


def is_editable(status: str) -> bool:
    return status in EDITABLE_STATUSES
