"""Quotes for a handoff and the public quote link.

Endpoints:
    POST /api/internal/handoffs/{id}/quotes   Agent/admin sends a quote
    GET  /api/internal/handoffs/{id}/quotes   Quotes for a handoff (newest first)
    GET  /api/quote/{token}                   Public: quote + handoff summary
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from linescout.auth.deps import require_permission
from linescout.database import get_db
from linescout.middleware.exceptions import ResourceNotFoundError, StateConflictError
from linescout.models.handoff import Handoff
from linescout.models.internal_user import InternalUser
from linescout.models.quote import Quote
from linescout.schemas.handoff import FinancialSummaryOut
from linescout.schemas.quote import PublicQuoteOut, QuoteCreate, QuoteOut
from linescout.services import handoffs as handoff_service
from linescout.services import ledger
from linescout.services.lifecycle import TERMINAL_STATUSES
from linescout.utils.activity import log_handoff_event
from linescout.utils.numbering import generate_quote_token

router = APIRouter()
public_router = APIRouter()


# ── POST /api/internal/handoffs/{id}/quotes ──────────────────

@router.post(
    "/{handoff_id}/quotes",
    response_model=QuoteOut,
    status_code=status.HTTP_201_CREATED,
)
async def create_quote(
    handoff_id: str,
    body: QuoteCreate,
    db: AsyncSession = Depends(get_db),
    user: InternalUser = Depends(require_permission("quotes.write")),
):
    handoff = await handoff_service.get_handoff(db, handoff_id)
    handoff_service.ensure_can_act(user, handoff)
    if handoff.status == "pending" or handoff.status in TERMINAL_STATUSES:
        raise StateConflictError(
            f"Quotes cannot be sent while the handoff is {handoff.status}."
        )

    summary = await ledger.get_summary(db, handoff.id)
    quote = Quote(
        handoff_id=handoff.id,
        token=await generate_quote_token(db),
        status="sent",
        payment_purpose=body.payment_purpose,
        items=[item.model_dump() for item in body.items],
        agent_note=body.agent_note,
        currency=summary.currency,
        total_due_ngn=body.total_due_ngn,
        created_by=user.id,
    )
    db.add(quote)
    await db.flush()

    await log_handoff_event(
        db, user, handoff,
        action="quote_created",
        summary=f"Quote {quote.token} for {quote.currency} {quote.total_due_ngn:,.2f}",
        details={"quote_id": quote.id, "payment_purpose": quote.payment_purpose},
    )
    return quote


# ── GET /api/internal/handoffs/{id}/quotes ───────────────────

@router.get("/{handoff_id}/quotes", response_model=list[QuoteOut])
async def list_quotes(
    handoff_id: str,
    db: AsyncSession = Depends(get_db),
    user: InternalUser = Depends(require_permission("handoffs.read")),
):
    handoff = await handoff_service.get_handoff(db, handoff_id)
    handoff_service.ensure_can_view(user, handoff)

    result = await db.execute(
        select(Quote)
        .where(Quote.handoff_id == handoff.id)
        .order_by(Quote.created_at.desc())
    )
    return result.scalars().all()


# ── GET /api/quote/{token} ───────────────────────────────────

@public_router.get("/{token}", response_model=PublicQuoteOut)
async def get_public_quote(token: str, db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(Quote).where(Quote.token == token.strip().upper()))
    quote = result.scalar_one_or_none()
    if quote is None:
        raise ResourceNotFoundError("Quote", token)

    result = await db.execute(select(Handoff).where(Handoff.id == quote.handoff_id))
    handoff = result.scalar_one()
    summary = await ledger.get_summary(db, handoff.id)
    return PublicQuoteOut(
        quote=QuoteOut.model_validate(quote),
        handoff_token=handoff.token,
        handoff_status=handoff.status,
        summary=FinancialSummaryOut(**summary.as_dict()),
    )
