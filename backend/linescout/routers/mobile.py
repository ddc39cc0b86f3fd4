"""Customer mobile app endpoints.

    POST /api/mobile/device-tokens   Register an Expo push token
    GET  /api/mobile/handoffs        My projects with their ledger summary
"""

from datetime import datetime

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from linescout.auth.deps import get_current_customer
from linescout.database import get_db
from linescout.models.handoff import Handoff
from linescout.models.user import DeviceToken, User
from linescout.schemas.auth import DeviceTokenRequest
from linescout.schemas.common import OkResponse
from linescout.schemas.handoff import FinancialSummaryOut, HandoffSummary
from linescout.services import ledger

router = APIRouter()


@router.post("/device-tokens", response_model=OkResponse)
async def register_device_token(
    body: DeviceTokenRequest,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_customer),
):
    result = await db.execute(select(DeviceToken).where(DeviceToken.token == body.token))
    device = result.scalar_one_or_none()
    if device is None:
        device = DeviceToken(token=body.token)
        db.add(device)

    # A token moves with the phone, not the account
    device.user_id = user.id
    device.platform = body.platform
    device.is_active = True
    device.last_seen_at = datetime.utcnow()
    await db.flush()
    return OkResponse(message="Device registered")


@router.get("/handoffs", response_model=list[HandoffSummary])
async def my_handoffs(
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_customer),
):
    result = await db.execute(
        select(Handoff)
        .where(Handoff.user_id == user.id)
        .order_by(Handoff.created_at.desc())
    )
    handoffs = list(result.scalars().all())
    summaries = await ledger.get_summaries(db, [h.id for h in handoffs])

    items = []
    for handoff in handoffs:
        out = HandoffSummary.model_validate(handoff)
        out.financials = FinancialSummaryOut(**summaries[handoff.id].as_dict())
        items.append(out)
    return items
