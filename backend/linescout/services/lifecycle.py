"""Handoff lifecycle policy.

The one place that decides which actions a handoff offers next.  The API
returns `allowed_next_actions()` with every handoff so the back office
only renders valid buttons, and the write paths call `check_action()`
with the same inputs before mutating anything, so a stale client gets a
StateConflictError instead of an illegal transition.

    pending ─claim─▶ claimed ─manufacturer_found─▶ manufacturer_found
        ─paid─▶ paid ─shipped─▶ shipped ─delivered─▶ delivered
    any non-terminal ─cancelled─▶ cancelled

Everything in this module is pure: no DB access, no I/O.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Protocol

from linescout.middleware.exceptions import (
    InvalidAmount,
    StateConflictError,
    ValidationError,
)

HANDOFF_STATUSES: tuple[str, ...] = (
    "pending",
    "claimed",
    "manufacturer_found",
    "paid",
    "shipped",
    "delivered",
    "cancelled",
)
TERMINAL_STATUSES = frozenset({"delivered", "cancelled"})

# Actions that are not themselves a target status
CLAIM = "claim"
RECORD_PAYMENT = "record_payment"

ACTION_LABELS: dict[str, str] = {
    CLAIM: "Claim",
    "manufacturer_found": "Manufacturer Found",
    "paid": "Mark Paid",
    RECORD_PAYMENT: "Record Payment",
    "shipped": "Mark Shipped",
    "delivered": "Mark Delivered",
    "cancelled": "Cancel",
}

# Milestone status → timestamp column set when it is reached
MILESTONE_TIMESTAMPS: dict[str, str] = {
    "manufacturer_found": "manufacturer_found_at",
    "paid": "paid_at",
    "shipped": "shipped_at",
    "delivered": "delivered_at",
    "cancelled": "cancelled_at",
}

PAYMENT_STATUSES = frozenset({"manufacturer_found", "paid", "shipped", "delivered"})


class HandoffLike(Protocol):
    status: str
    claimed_by: str | None


@dataclass(frozen=True)
class PaymentSummary:
    currency: str = "NGN"
    total_due: float = 0.0
    total_paid: float = 0.0

    @property
    def balance(self) -> float:
        # Not clamped: a negative balance means the customer overpaid
        return self.total_due - self.total_paid

    @property
    def settled(self) -> bool:
        return self.total_due > 0 and self.balance <= 0

    def as_dict(self) -> dict:
        return {
            "currency": self.currency,
            "total_due": self.total_due,
            "total_paid": self.total_paid,
            "balance": self.balance,
            "settled": self.settled,
        }


def allowed_next_actions(
    handoff: HandoffLike,
    summary: PaymentSummary | None = None,
) -> list[str]:
    """Ordered list of actions valid for `handoff` right now."""
    summary = summary or PaymentSummary()
    status = handoff.status

    if status == "pending":
        if handoff.claimed_by:
            return ["cancelled"]
        return [CLAIM, "cancelled"]
    if status == "claimed":
        return ["manufacturer_found", "cancelled"]
    if status == "manufacturer_found":
        actions = [RECORD_PAYMENT, "cancelled"]
        if summary.settled:
            actions.insert(0, "paid")
        return actions
    if status == "paid":
        return [RECORD_PAYMENT, "shipped", "cancelled"]
    if status == "shipped":
        return [RECORD_PAYMENT, "delivered", "cancelled"]
    if status == "delivered":
        return [RECORD_PAYMENT]
    return []


def check_action(
    handoff: HandoffLike,
    action: str,
    summary: PaymentSummary | None = None,
    *,
    admin_override: bool = False,
) -> None:
    """Raise StateConflictError unless `action` is valid for `handoff` now.

    The only bypass is an admin marking a manufacturer_found handoff paid
    before the ledger shows it settled.
    """
    if action not in ACTION_LABELS:
        raise ValidationError(f"Unknown action: {action}", error_code="INVALID_ACTION")

    if handoff.status in TERMINAL_STATUSES and action != RECORD_PAYMENT:
        raise StateConflictError(
            f"Handoff is already {handoff.status}. Refresh and try again.",
        )

    allowed = allowed_next_actions(handoff, summary)
    if action in allowed:
        return

    if action == "paid" and handoff.status == "manufacturer_found":
        if admin_override:
            return
        balance = (summary or PaymentSummary()).balance
        raise StateConflictError(
            f"Payment is not complete (balance {balance:,.2f}). "
            "Record the outstanding payment or ask an admin to override.",
            error_code="BALANCE_OUTSTANDING",
        )

    raise StateConflictError(
        f"'{ACTION_LABELS[action]}' is not available while the handoff is "
        f"{handoff.status}. Refresh and try again.",
    )


# ── Field guards ────────────────────────────────────────────

def _clean(value: str | None) -> str:
    return (value or "").strip()


def validate_manufacturer_fields(
    name: str | None,
    address: str | None,
    contact_name: str | None = None,
    contact_email: str | None = None,
    contact_phone: str | None = None,
) -> None:
    if not _clean(name):
        raise ValidationError("Manufacturer name is required")
    if not _clean(address):
        raise ValidationError("Manufacturer address is required")
    if not any(_clean(v) for v in (contact_name, contact_email, contact_phone)):
        raise ValidationError(
            "Provide at least one manufacturer contact (name, email or phone)"
        )


def validate_shipping(shipper: str | None, tracking_number: str | None) -> None:
    if not _clean(shipper) or not _clean(tracking_number):
        raise ValidationError("Shipper and tracking number are both required")


def validate_cancel_reason(reason: str | None) -> None:
    if not _clean(reason):
        raise ValidationError("A cancellation reason is required")


def validate_amount(amount) -> float:
    """Return `amount` as a float if it is a positive finite number."""
    if isinstance(amount, bool):
        raise InvalidAmount()
    try:
        value = float(amount)
    except (TypeError, ValueError):
        raise InvalidAmount()
    if not math.isfinite(value) or value <= 0:
        raise InvalidAmount()
    return value
