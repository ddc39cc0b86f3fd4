"""Free intake: turn an unused sourcing token into a pending handoff.

    POST /api/linescout-handoffs/create

The receipt token is the credential; no sign-in is needed.  A token can
open exactly one handoff.
"""

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from linescout.database import get_db
from linescout.middleware.exceptions import ResourceNotFoundError, StateConflictError
from linescout.models.token import PaymentToken
from linescout.schemas.handoff import HandoffIntake
from linescout.services import notifications
from linescout.services.handoffs import create_handoff

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/create", status_code=status.HTTP_201_CREATED)
async def create_from_token(body: HandoffIntake, db: AsyncSession = Depends(get_db)):
    result = await db.execute(
        select(PaymentToken).where(PaymentToken.token == body.token).with_for_update()
    )
    token = result.scalar_one_or_none()
    if token is None or token.token_type != "sourcing":
        raise ResourceNotFoundError("Sourcing token", body.token)
    if token.used_at or token.handoff_id:
        raise StateConflictError(
            "This token has already been used.", error_code="TOKEN_USED"
        )

    handoff = await create_handoff(
        db,
        token=token.token,
        handoff_type="white_label" if token.route_type == "white_label" else "sourcing",
        user_id=token.user_id,
        customer_name=body.customer_name,
        email=body.email.lower(),
        whatsapp_number=body.whatsapp_number,
        context=body.context,
    )
    token.handoff_id = handoff.id
    token.used_at = datetime.utcnow()
    await db.commit()

    await notifications.notify_new_handoff(db, handoff)
    return {
        "ok": True,
        "handoff_id": handoff.id,
        "token": handoff.token,
        "status": handoff.status,
    }
