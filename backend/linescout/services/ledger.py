"""Per-handoff payment ledger.

`linescout_handoff_financials` holds the reference `total_due`; every
payment is an append-only `linescout_handoff_payments` row.  Summaries are
always recomputed from the rows (never cached), so
`total_paid == Σ amount` holds by construction and a summary read in the
same transaction reflects the payment just written.

Rules:
  - The first payment needs a total_due: supplied by the caller, or the
    latest quote's total when the caller omits it.
  - total_due only goes up, except an admin correction, which may lower
    it but never below what has already been paid.
  - Payments are never edited or deleted.
"""

import logging
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from linescout.middleware.exceptions import (
    MissingTotalDue,
    ValidationError,
)
from linescout.models.financials import HandoffFinancials, HandoffPayment
from linescout.models.handoff import Handoff
from linescout.models.internal_user import InternalUser
from linescout.models.quote import Quote
from linescout.services.lifecycle import (
    RECORD_PAYMENT,
    PaymentSummary,
    check_action,
    validate_amount,
)
from linescout.utils.activity import log_handoff_event

logger = logging.getLogger(__name__)

PAYMENT_PURPOSES = (
    "downpayment",
    "full_payment",
    "shipping_payment",
    "additional_payment",
)
DEFAULT_CURRENCY = "NGN"


# ── Reads ────────────────────────────────────────────────────

async def get_summary(db: AsyncSession, handoff_id: str) -> PaymentSummary:
    """Aggregate {currency, total_due, total_paid} for one handoff."""
    result = await db.execute(
        select(HandoffFinancials).where(HandoffFinancials.handoff_id == handoff_id)
    )
    financials = result.scalar_one_or_none()

    result = await db.execute(
        select(func.coalesce(func.sum(HandoffPayment.amount), 0.0)).where(
            HandoffPayment.handoff_id == handoff_id
        )
    )
    total_paid = float(result.scalar() or 0.0)

    return PaymentSummary(
        currency=financials.currency if financials else DEFAULT_CURRENCY,
        total_due=float(financials.total_due or 0.0) if financials else 0.0,
        total_paid=total_paid,
    )


async def get_summaries(
    db: AsyncSession, handoff_ids: list[str]
) -> dict[str, PaymentSummary]:
    """Batch version of get_summary for list pages."""
    if not handoff_ids:
        return {}

    result = await db.execute(
        select(HandoffFinancials).where(HandoffFinancials.handoff_id.in_(handoff_ids))
    )
    financials = {f.handoff_id: f for f in result.scalars().all()}

    result = await db.execute(
        select(HandoffPayment.handoff_id, func.sum(HandoffPayment.amount))
        .where(HandoffPayment.handoff_id.in_(handoff_ids))
        .group_by(HandoffPayment.handoff_id)
    )
    paid = {row[0]: float(row[1] or 0.0) for row in result.all()}

    summaries = {}
    for handoff_id in handoff_ids:
        fin = financials.get(handoff_id)
        summaries[handoff_id] = PaymentSummary(
            currency=fin.currency if fin else DEFAULT_CURRENCY,
            total_due=float(fin.total_due or 0.0) if fin else 0.0,
            total_paid=paid.get(handoff_id, 0.0),
        )
    return summaries


async def list_payments(db: AsyncSession, handoff_id: str) -> list[HandoffPayment]:
    result = await db.execute(
        select(HandoffPayment)
        .where(HandoffPayment.handoff_id == handoff_id)
        .order_by(HandoffPayment.paid_at, HandoffPayment.created_at)
    )
    return list(result.scalars().all())


async def latest_quote_total(db: AsyncSession, handoff_id: str) -> float | None:
    result = await db.execute(
        select(Quote.total_due_ngn)
        .where(Quote.handoff_id == handoff_id, Quote.status != "cancelled")
        .order_by(Quote.created_at.desc())
        .limit(1)
    )
    total = result.scalar_one_or_none()
    return float(total) if total else None


# ── Writes ───────────────────────────────────────────────────

async def ensure_financials(
    db: AsyncSession,
    handoff_id: str,
    currency: str = DEFAULT_CURRENCY,
) -> HandoffFinancials:
    """Return the handoff's financials row, locked for update (created if missing)."""
    result = await db.execute(
        select(HandoffFinancials)
        .where(HandoffFinancials.handoff_id == handoff_id)
        .with_for_update()
    )
    financials = result.scalar_one_or_none()
    if financials is None:
        financials = HandoffFinancials(
            handoff_id=handoff_id, currency=currency, total_due=0.0
        )
        db.add(financials)
        await db.flush()
    return financials


def _apply_total_due(
    financials: HandoffFinancials,
    new_total: float,
    total_paid: float,
    actor: InternalUser | None,
) -> float | None:
    """Apply a caller-supplied total_due. Returns the previous value if it changed."""
    current = float(financials.total_due or 0.0)
    if new_total == current:
        return None

    if current > 0 and new_total < current:
        if actor is None or not actor.is_admin:
            raise ValidationError(
                "Total due can only be increased. Ask an admin to correct it.",
                error_code="TOTAL_DUE_DECREASE",
            )
        if new_total < total_paid:
            raise ValidationError(
                f"Total due cannot be lower than the amount already paid ({total_paid:,.2f})",
                error_code="TOTAL_DUE_BELOW_PAID",
            )

    financials.total_due = new_total
    return current


async def record_payment(
    db: AsyncSession,
    handoff: Handoff,
    *,
    amount,
    purpose: str,
    currency: str = DEFAULT_CURRENCY,
    note: str | None = None,
    total_due=None,
    paid_at: datetime | None = None,
    actor: InternalUser | None = None,
    provider: str = "manual",
    provider_ref: str | None = None,
    enforce_status: bool = True,
) -> tuple[HandoffPayment, PaymentSummary]:
    """Append a payment to the handoff's ledger and return the new summary.

    `enforce_status=False` is used by payment verification: the money has
    already been received through Paystack, so it is recorded whatever
    stage the handoff is at.
    """
    value = validate_amount(amount)
    if purpose not in PAYMENT_PURPOSES:
        raise ValidationError(
            f"Invalid purpose. Choose: {', '.join(PAYMENT_PURPOSES)}",
            error_code="INVALID_PURPOSE",
        )
    currency = (currency or DEFAULT_CURRENCY).strip().upper()

    if enforce_status:
        check_action(handoff, RECORD_PAYMENT)

    financials = await ensure_financials(db, handoff.id, currency)
    before = await get_summary(db, handoff.id)

    if before.total_paid == 0 and financials.currency != currency:
        financials.currency = currency
    elif financials.currency != currency:
        raise ValidationError(
            f"Payments for this handoff are recorded in {financials.currency}",
            error_code="CURRENCY_MISMATCH",
        )

    previous_due = None
    if total_due is not None:
        # The payment being recorded counts towards what is already paid
        previous_due = _apply_total_due(
            financials, validate_amount(total_due), before.total_paid + value, actor
        )
    elif float(financials.total_due or 0.0) <= 0:
        quoted = await latest_quote_total(db, handoff.id)
        if quoted is None:
            raise MissingTotalDue()
        previous_due = float(financials.total_due or 0.0)
        financials.total_due = quoted

    payment = HandoffPayment(
        handoff_id=handoff.id,
        amount=value,
        currency=currency,
        purpose=purpose,
        note=(note or "").strip() or None,
        paid_at=paid_at or datetime.utcnow(),
        provider=provider,
        provider_ref=provider_ref,
        created_by=actor.id if actor else None,
    )
    db.add(payment)
    await db.flush()

    if previous_due is not None:
        await log_handoff_event(
            db, actor, handoff,
            action="total_due_changed",
            summary=f"Total due set to {currency} {financials.total_due:,.2f}",
            details={"from": previous_due, "to": float(financials.total_due)},
        )
    await log_handoff_event(
        db, actor, handoff,
        action="payment_recorded",
        summary=f"Recorded {currency} {value:,.2f} ({purpose})",
        details={
            "payment_id": payment.id,
            "amount": value,
            "purpose": purpose,
            "provider": provider,
            "provider_ref": provider_ref,
        },
    )

    summary = await get_summary(db, handoff.id)
    logger.info(
        "Payment %s recorded on handoff %s: paid %.2f of %.2f",
        payment.id, handoff.token, summary.total_paid, summary.total_due,
    )
    return payment, summary


async def set_total_due(
    db: AsyncSession,
    handoff: Handoff,
    total_due,
    actor: InternalUser,
) -> PaymentSummary:
    """Admin correction of total_due (may lower it, never below total paid)."""
    new_total = validate_amount(total_due)
    financials = await ensure_financials(db, handoff.id)
    before = await get_summary(db, handoff.id)

    previous = _apply_total_due(financials, new_total, before.total_paid, actor)
    if previous is not None:
        await db.flush()
        await log_handoff_event(
            db, actor, handoff,
            action="total_due_changed",
            summary=f"Total due corrected to {financials.currency} {new_total:,.2f}",
            details={"from": previous, "to": new_total},
        )

    return await get_summary(db, handoff.id)
