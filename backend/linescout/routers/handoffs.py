"""Back-office handoff queue and lifecycle.

Endpoints:
    GET   /api/internal/handoffs                     List (status, q, pagination)
    GET   /api/internal/handoffs/summary             Per-status counts
    GET   /api/internal/handoffs/{id}                Detail + ledger + audit trail
    POST  /api/internal/handoffs/{id}/claim          Claim a pending handoff
    POST  /api/internal/handoffs/{id}/status         Move to the next status
    PATCH /api/internal/handoffs/{id}/manufacturer   Edit manufacturer details

Every handoff in a response carries `allowed_actions`, computed from
fresh state, so the UI only shows buttons the server will accept.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from linescout.auth.deps import require_permission
from linescout.database import get_db
from linescout.models.handoff import Handoff
from linescout.models.internal_user import InternalUser
from linescout.schemas.common import PaginatedResponse
from linescout.schemas.handoff import (
    FinancialSummaryOut,
    HandoffDetail,
    HandoffEventOut,
    HandoffOut,
    HandoffSummary,
    ManufacturerFields,
    StatusCounts,
    StatusUpdate,
)
from linescout.services import handoffs as handoff_service
from linescout.services import ledger
from linescout.services.handoffs import MANUFACTURER_FIELDS
from linescout.services.lifecycle import PaymentSummary

router = APIRouter()


def build_handoff_out(
    handoff: Handoff,
    summary: PaymentSummary,
    user: InternalUser,
    schema: type[HandoffSummary] = HandoffOut,
):
    out = schema.model_validate(handoff)
    out.financials = FinancialSummaryOut(**summary.as_dict())
    out.allowed_actions = handoff_service.actions_for(user, handoff, summary)
    return out


# ── GET /api/internal/handoffs ───────────────────────────────

@router.get("", response_model=PaginatedResponse[HandoffSummary])
async def list_handoffs(
    status: str | None = Query(None),
    q: str | None = Query(None, max_length=100),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    user: InternalUser = Depends(require_permission("handoffs.read")),
):
    items, total = await handoff_service.list_handoffs(
        db, user, status=status, q=q, limit=limit, offset=offset
    )
    summaries = await ledger.get_summaries(db, [h.id for h in items])
    return PaginatedResponse[HandoffSummary](
        items=[
            build_handoff_out(h, summaries[h.id], user, HandoffSummary) for h in items
        ],
        total=total,
        limit=limit,
        offset=offset,
    )


# ── GET /api/internal/handoffs/summary ───────────────────────

@router.get("/summary", response_model=StatusCounts)
async def handoff_counts(
    db: AsyncSession = Depends(get_db),
    user: InternalUser = Depends(require_permission("handoffs.read")),
):
    counts = await handoff_service.status_counts(db, user)
    return StatusCounts(counts=counts, total=sum(counts.values()))


# ── GET /api/internal/handoffs/{id} ──────────────────────────

@router.get("/{handoff_id}", response_model=HandoffDetail)
async def get_handoff(
    handoff_id: str,
    db: AsyncSession = Depends(get_db),
    user: InternalUser = Depends(require_permission("handoffs.read")),
):
    handoff = await handoff_service.get_handoff(db, handoff_id)
    handoff_service.ensure_can_view(user, handoff)

    summary = await ledger.get_summary(db, handoff.id)
    events = await handoff_service.list_events(db, handoff.id)
    return HandoffDetail(
        handoff=build_handoff_out(handoff, summary, user),
        events=[HandoffEventOut.model_validate(e) for e in events],
    )


# ── POST /api/internal/handoffs/{id}/claim ───────────────────

@router.post("/{handoff_id}/claim", response_model=HandoffOut)
async def claim_handoff(
    handoff_id: str,
    db: AsyncSession = Depends(get_db),
    user: InternalUser = Depends(require_permission("handoffs.write")),
):
    handoff = await handoff_service.claim_handoff(db, handoff_id, user)
    summary = await ledger.get_summary(db, handoff.id)
    return build_handoff_out(handoff, summary, user)


# ── POST /api/internal/handoffs/{id}/status ──────────────────

@router.post("/{handoff_id}/status", response_model=HandoffOut)
async def update_status(
    handoff_id: str,
    body: StatusUpdate,
    db: AsyncSession = Depends(get_db),
    user: InternalUser = Depends(require_permission("handoffs.write")),
):
    """Apply one transition. Guards run against the stored state."""
    handoff = await handoff_service.update_status(
        db,
        handoff_id,
        user,
        body.status,
        manufacturer=body.model_dump(include=set(MANUFACTURER_FIELDS), exclude_unset=True),
        shipper=body.shipper,
        tracking_number=body.tracking_number,
        cancel_reason=body.cancel_reason,
        admin_override=body.admin_override,
    )
    summary = await ledger.get_summary(db, handoff.id)
    return build_handoff_out(handoff, summary, user)


# ── PATCH /api/internal/handoffs/{id}/manufacturer ───────────

@router.patch("/{handoff_id}/manufacturer", response_model=HandoffOut)
async def update_manufacturer(
    handoff_id: str,
    body: ManufacturerFields,
    db: AsyncSession = Depends(get_db),
    user: InternalUser = Depends(require_permission("handoffs.write")),
):
    handoff = await handoff_service.update_manufacturer(
        db, handoff_id, user, body.model_dump(exclude_unset=True)
    )
    summary = await ledger.get_summary(db, handoff.id)
    return build_handoff_out(handoff, summary, user)
