"""Handoff payment ledger.

Endpoints:
    GET  /api/internal/handoffs/{id}/payments    Summary + payment history
    POST /api/internal/handoffs/{id}/payments    Record a payment
    PUT  /api/internal/handoffs/{id}/total-due   Admin correction of total due

Recording commits first and only then emails/pushes the customer.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from linescout.auth.deps import require_admin, require_permission
from linescout.database import get_db
from linescout.models.internal_user import InternalUser
from linescout.schemas.handoff import FinancialSummaryOut
from linescout.schemas.payment import (
    LedgerOut,
    PaymentCreate,
    PaymentOut,
    PaymentRecorded,
    TotalDueUpdate,
)
from linescout.services import handoffs as handoff_service
from linescout.services import ledger, notifications

router = APIRouter()


# ── GET /api/internal/handoffs/{id}/payments ─────────────────

@router.get("/{handoff_id}/payments", response_model=LedgerOut)
async def get_ledger(
    handoff_id: str,
    db: AsyncSession = Depends(get_db),
    user: InternalUser = Depends(require_permission("handoffs.read")),
):
    handoff = await handoff_service.get_handoff(db, handoff_id)
    handoff_service.ensure_can_view(user, handoff)

    summary = await ledger.get_summary(db, handoff.id)
    payments = await ledger.list_payments(db, handoff.id)
    return LedgerOut(
        handoff_id=handoff.id,
        summary=FinancialSummaryOut(**summary.as_dict()),
        payments=[PaymentOut.model_validate(p) for p in payments],
    )


# ── POST /api/internal/handoffs/{id}/payments ────────────────

@router.post(
    "/{handoff_id}/payments",
    response_model=PaymentRecorded,
    status_code=status.HTTP_201_CREATED,
)
async def record_payment(
    handoff_id: str,
    body: PaymentCreate,
    db: AsyncSession = Depends(get_db),
    user: InternalUser = Depends(require_permission("payments.write")),
):
    handoff = await handoff_service.get_handoff(db, handoff_id, for_update=True)
    handoff_service.ensure_can_act(user, handoff)

    payment, summary = await ledger.record_payment(
        db,
        handoff,
        amount=body.amount,
        purpose=body.purpose,
        currency=body.currency,
        note=body.note,
        total_due=body.total_due,
        paid_at=body.paid_at,
        actor=user,
    )
    await db.commit()

    await notifications.notify_payment_recorded(db, handoff, payment.amount, summary)
    return PaymentRecorded(
        payment=PaymentOut.model_validate(payment),
        summary=FinancialSummaryOut(**summary.as_dict()),
        allowed_actions=handoff_service.actions_for(user, handoff, summary),
    )


# ── PUT /api/internal/handoffs/{id}/total-due ────────────────

@router.put("/{handoff_id}/total-due", response_model=FinancialSummaryOut)
async def correct_total_due(
    handoff_id: str,
    body: TotalDueUpdate,
    db: AsyncSession = Depends(get_db),
    user: InternalUser = Depends(require_admin),
):
    """Admin only: may lower total due, never below what was paid."""
    handoff = await handoff_service.get_handoff(db, handoff_id, for_update=True)
    summary = await ledger.set_total_due(db, handoff, body.total_due, user)
    return FinancialSummaryOut(**summary.as_dict())
