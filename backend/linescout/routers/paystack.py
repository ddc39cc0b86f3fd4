"""Paystack payment confirmation.

Endpoints:
    POST /api/payments/paystack/verify   Customer confirms a reference
    POST /api/webhooks/paystack          Paystack charge.success webhook

A reference that was already processed answers 200 with
`already_processed: true` and the ids from the first run.
"""

import json
import logging

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from linescout.auth.deps import get_current_customer
from linescout.database import get_db
from linescout.middleware.exceptions import DuplicateRequestError
from linescout.models.user import User
from linescout.schemas.paystack import VerifyRequest, VerifyResponse
from linescout.services import payment_verification, paystack

logger = logging.getLogger(__name__)

router = APIRouter()
webhook_router = APIRouter()


# ── POST /api/payments/paystack/verify ───────────────────────

@router.post("/verify", response_model=VerifyResponse)
async def verify_payment(
    body: VerifyRequest,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_customer),
):
    try:
        outcome = await payment_verification.verify_payment(db, body.reference, user)
    except DuplicateRequestError as e:
        return VerifyResponse(already_processed=True, **e.existing)

    await db.commit()
    email_sent = await payment_verification.fan_out(db, outcome)
    return VerifyResponse(**outcome.payload, email_sent=email_sent)


# ── POST /api/webhooks/paystack ──────────────────────────────

@webhook_router.post("/paystack")
async def paystack_webhook(
    request: Request,
    x_paystack_signature: str | None = Header(None),
    db: AsyncSession = Depends(get_db),
):
    raw = await request.body()
    if not paystack.verify_signature(raw, x_paystack_signature or ""):
        raise HTTPException(status_code=401, detail="Invalid signature")

    try:
        event = json.loads(raw)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON body")

    try:
        outcome = await payment_verification.process_webhook(db, event)
    except DuplicateRequestError as e:
        logger.info("Webhook replay for %s", e.reference)
        return {"ok": True, "already_processed": True}

    await db.commit()
    await payment_verification.fan_out(db, outcome)
    return {"ok": True, "already_processed": False}
