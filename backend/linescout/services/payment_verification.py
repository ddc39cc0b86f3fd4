"""Paystack payment verification.

`verify_payment()` (customer-initiated) and `process_webhook()` (Paystack
`charge.success`) both end in `process_transaction()`, which dispatches
on `metadata.purpose`:

    sourcing       SRC- token + paid conversation + pending handoff
                   (token only when `metadata.defer_handoff` is set; the
                   customer then opens the handoff through free intake)
    business_plan  BP- token only
    reorder        reorder linker
    quote          ledger payment against the quote's handoff

The Paystack reference is the idempotency key.  It is looked up before
any write; if a concurrent request wins the unique-index race, the
transaction is rolled back and the lookup repeated.  Either way a replay
raises DuplicateRequestError carrying the ids from the first run.

Nothing here commits.  The caller commits, then passes the outcome to
`fan_out()`.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from linescout.middleware.exceptions import (
    AuthorizationError,
    DuplicateRequestError,
    ResourceNotFoundError,
    StateConflictError,
    ValidationError,
)
from linescout.models.conversation import Conversation
from linescout.models.financials import HandoffPayment
from linescout.models.handoff import Handoff
from linescout.models.quote import Quote
from linescout.models.token import PaymentToken
from linescout.models.user import User
from linescout.schemas.validators import validate_whatsapp
from linescout.services import ledger, notifications, paystack, reorders
from linescout.services.approval import AgentRecord
from linescout.services.handoffs import create_handoff
from linescout.services.lifecycle import PaymentSummary
from linescout.utils.numbering import generate_receipt_token

logger = logging.getLogger(__name__)

PURPOSES = ("sourcing", "business_plan", "reorder", "quote")

# quote.payment_purpose → ledger purpose
QUOTE_PAYMENT_PURPOSES = {
    "deposit": "downpayment",
    "shipping_payment": "shipping_payment",
}


@dataclass
class VerificationOutcome:
    """What a processed transaction produced, for the response and fan-out."""
    purpose: str
    payload: dict
    handoff: Handoff | None = None
    reorder: object | None = None
    agent: AgentRecord | None = None
    amount: float = 0.0
    currency: str = "NGN"
    reference: str = ""
    customer: User | None = None
    summary: PaymentSummary | None = None
    notify: list[str] = field(default_factory=list)


# ── Paystack data helpers ───────────────────────────────────

def _metadata(data: dict) -> dict:
    metadata = data.get("metadata") or {}
    if isinstance(metadata, str):
        # Paystack returns metadata as a JSON string when it was sent as one
        try:
            metadata = json.loads(metadata)
        except ValueError:
            metadata = {}
    return metadata if isinstance(metadata, dict) else {}


def _amount_naira(data: dict) -> float:
    try:
        return int(data.get("amount") or 0) / 100
    except (TypeError, ValueError):
        raise ValidationError("Paystack returned an invalid amount")


def _flag(value) -> bool:
    return value is True or str(value or "").strip().lower() in ("1", "true", "yes")


def _clean_whatsapp(value) -> str | None:
    if not value:
        return None
    try:
        return validate_whatsapp(str(value))
    except ValueError:
        logger.warning("Ignoring invalid WhatsApp number in payment metadata")
        return None


# ── Lookups by reference ────────────────────────────────────

async def _existing_token(db: AsyncSession, reference: str) -> dict | None:
    result = await db.execute(
        select(PaymentToken).where(PaymentToken.paystack_ref == reference)
    )
    token = result.scalar_one_or_none()
    if token is None:
        return None
    payload = {"purpose": token.token_type, "token": token.token}
    if token.token_type == "sourcing":
        payload.update(handoff_id=token.handoff_id, conversation_id=token.conversation_id)
    return payload


async def _existing_reorder(db: AsyncSession, reference: str) -> dict | None:
    reorder = await reorders.get_by_reference(db, reference)
    return reorders.reorder_payload(reorder) if reorder else None


async def _existing_quote_payment(db: AsyncSession, reference: str) -> dict | None:
    result = await db.execute(
        select(HandoffPayment).where(HandoffPayment.provider_ref == reference)
    )
    payment = result.scalar_one_or_none()
    if payment is None:
        return None
    return {
        "purpose": "quote",
        "handoff_id": payment.handoff_id,
        "payment_id": payment.id,
    }


_LOOKUPS = {
    "sourcing": _existing_token,
    "business_plan": _existing_token,
    "reorder": _existing_reorder,
    "quote": _existing_quote_payment,
}


# ── Purpose handlers ────────────────────────────────────────

async def _process_token(
    db: AsyncSession,
    purpose: str,
    reference: str,
    data: dict,
    metadata: dict,
    user: User,
) -> VerificationOutcome:
    amount = _amount_naira(data)
    currency = (data.get("currency") or "NGN").upper()
    token = PaymentToken(
        token=await generate_receipt_token(db, purpose),
        token_type=purpose,
        route_type=metadata.get("route_type"),
        user_id=user.id,
        email=user.email,
        amount=amount,
        currency=currency,
        paystack_ref=reference,
        payment_metadata=metadata,
    )
    db.add(token)
    await db.flush()

    if purpose == "business_plan" or _flag(metadata.get("defer_handoff")):
        logger.info("%s token %s issued for %s", purpose, token.token, user.email)
        return VerificationOutcome(
            purpose=purpose,
            payload={"purpose": purpose, "token": token.token},
            amount=amount,
            currency=currency,
            reference=reference,
            customer=user,
            notify=["payment_receipt"],
        )

    route_type = metadata.get("route_type") or "machine_sourcing"
    conversation = Conversation(
        user_id=user.id,
        title=metadata.get("title") or "Sourcing project",
        route_type=route_type,
        chat_mode="paid_human",
        payment_status="paid",
    )
    db.add(conversation)
    await db.flush()

    handoff = await create_handoff(
        db,
        token=token.token,
        handoff_type="white_label" if route_type == "white_label" else "sourcing",
        user_id=user.id,
        customer_name=metadata.get("name") or user.display_name,
        email=user.email,
        whatsapp_number=_clean_whatsapp(metadata.get("whatsapp")),
        context=metadata.get("context"),
        conversation_id=conversation.id,
        actor=user,
    )
    conversation.handoff_id = handoff.id
    token.handoff_id = handoff.id
    token.conversation_id = conversation.id
    token.used_at = datetime.utcnow()
    await db.flush()

    return VerificationOutcome(
        purpose=purpose,
        payload={
            "purpose": purpose,
            "token": token.token,
            "handoff_id": handoff.id,
            "conversation_id": conversation.id,
        },
        handoff=handoff,
        amount=amount,
        currency=currency,
        reference=reference,
        customer=user,
        notify=["new_handoff", "payment_receipt"],
    )


async def _process_reorder(
    db: AsyncSession,
    purpose: str,
    reference: str,
    data: dict,
    metadata: dict,
    user: User,
) -> VerificationOutcome:
    source_handoff_id = metadata.get("source_handoff_id")
    if not source_handoff_id:
        raise ValidationError("Re-order payment is missing source_handoff_id")

    amount = _amount_naira(data)
    reorder, handoff, agent = await reorders.create_reorder(
        db,
        user,
        str(source_handoff_id),
        paystack_ref=reference,
        amount_naira=amount,
        user_note=metadata.get("user_note"),
    )
    return VerificationOutcome(
        purpose=purpose,
        payload=reorders.reorder_payload(reorder),
        handoff=handoff,
        reorder=reorder,
        agent=agent,
        amount=amount,
        notify=["reorder_created"],
    )


async def _process_quote(
    db: AsyncSession,
    purpose: str,
    reference: str,
    data: dict,
    metadata: dict,
    user: User,
) -> VerificationOutcome:
    quote_token = (metadata.get("quote_token") or "").strip()
    if not quote_token:
        raise ValidationError("Quote payment is missing quote_token")

    result = await db.execute(select(Quote).where(Quote.token == quote_token))
    quote = result.scalar_one_or_none()
    if quote is None:
        raise ResourceNotFoundError("Quote", quote_token)
    if quote.status == "cancelled":
        raise StateConflictError("This quote was cancelled.", error_code="QUOTE_CANCELLED")

    result = await db.execute(
        select(Handoff).where(Handoff.id == quote.handoff_id).with_for_update()
    )
    handoff = result.scalar_one()

    current = await ledger.get_summary(db, handoff.id)
    total_due = quote.total_due_ngn if current.total_due < quote.total_due_ngn else None

    amount = _amount_naira(data)
    payment, summary = await ledger.record_payment(
        db,
        handoff,
        amount=amount,
        purpose=QUOTE_PAYMENT_PURPOSES.get(quote.payment_purpose, "full_payment"),
        currency=(data.get("currency") or quote.currency or "NGN"),
        note=f"Paystack payment for quote {quote.token}",
        total_due=total_due,
        paid_at=datetime.utcnow(),
        provider="paystack",
        provider_ref=reference,
        enforce_status=False,
    )
    quote.status = "paid"
    quote.paid_at = datetime.utcnow()
    await db.flush()

    return VerificationOutcome(
        purpose=purpose,
        payload={
            "purpose": purpose,
            "quote_token": quote.token,
            "handoff_id": handoff.id,
            "payment_id": payment.id,
            "summary": summary.as_dict(),
        },
        handoff=handoff,
        amount=amount,
        summary=summary,
        notify=["payment_recorded"],
    )


_HANDLERS = {
    "sourcing": _process_token,
    "business_plan": _process_token,
    "reorder": _process_reorder,
    "quote": _process_quote,
}


# ── Entry points ────────────────────────────────────────────

async def process_transaction(
    db: AsyncSession,
    data: dict,
    user: User,
    reference: str | None = None,
) -> VerificationOutcome:
    """Apply one successful Paystack transaction for `user`."""
    reference = (data.get("reference") or reference or "").strip()
    if not reference:
        raise ValidationError("Payment reference is required")

    if data.get("status") != "success":
        raise StateConflictError(
            f"Payment is not successful (status: {data.get('status') or 'unknown'})",
            error_code="PAYMENT_NOT_SUCCESSFUL",
        )

    metadata = _metadata(data)
    owner = metadata.get("user_id")
    if owner is not None and str(owner) != user.id:
        raise AuthorizationError("This payment belongs to a different account")

    purpose = metadata.get("purpose") or "sourcing"
    if purpose not in PURPOSES:
        raise ValidationError(f"Unknown payment purpose: {purpose}")

    lookup = _LOOKUPS[purpose]
    existing = await lookup(db, reference)
    if existing is not None:
        raise DuplicateRequestError(reference, existing)

    try:
        outcome = await _HANDLERS[purpose](db, purpose, reference, data, metadata, user)
    except IntegrityError:
        # Lost the race on the reference's unique index
        await db.rollback()
        existing = await lookup(db, reference)
        if existing is None:
            raise
        raise DuplicateRequestError(reference, existing)

    logger.info("Paystack reference %s processed (%s)", reference, purpose)
    return outcome


async def verify_payment(
    db: AsyncSession, reference: str, user: User
) -> VerificationOutcome:
    data = await paystack.verify_transaction(reference)
    return await process_transaction(db, data, user, reference=reference)


async def process_webhook(db: AsyncSession, event: dict) -> VerificationOutcome | None:
    """Handle a signature-checked webhook body. Only `charge.success` is acted on."""
    if event.get("event") != "charge.success":
        logger.info("Ignoring Paystack event %s", event.get("event"))
        return None

    data = event.get("data") or {}
    user_id = _metadata(data).get("user_id")
    if not user_id:
        logger.warning("Paystack charge %s has no user_id in metadata", data.get("reference"))
        return None

    result = await db.execute(select(User).where(User.id == str(user_id)))
    user = result.scalar_one_or_none()
    if user is None:
        logger.warning("Paystack charge %s for unknown user %s", data.get("reference"), user_id)
        return None

    return await process_transaction(db, data, user)


async def fan_out(db: AsyncSession, outcome: VerificationOutcome | None) -> bool | None:
    """Send the notifications for a committed outcome.

    Returns whether the customer's receipt email went out, or None when
    the outcome carries no receipt.
    """
    if outcome is None:
        return None
    email_sent = None
    if "payment_receipt" in outcome.notify:
        email_sent = await notifications.notify_payment_receipt(
            db,
            outcome.customer,
            token=outcome.payload["token"],
            amount=outcome.amount,
            currency=outcome.currency,
            reference=outcome.reference,
            handoff=outcome.handoff,
        )
    if "new_handoff" in outcome.notify:
        await notifications.notify_new_handoff(db, outcome.handoff)
    if "reorder_created" in outcome.notify:
        await notifications.notify_reorder_created(
            db, outcome.reorder, outcome.handoff, outcome.agent
        )
    if "payment_recorded" in outcome.notify:
        await notifications.notify_payment_recorded(
            db, outcome.handoff, outcome.amount, outcome.summary
        )
    return email_sent
