"""Customer sign-in by email one-time code.

Route overview:
  POST /request-otp  email a 6-digit code (60 s cooldown)
  POST /verify-otp   check the code, create the user on first sign-in,
                     return a customer JWT
  GET  /me           current customer
"""

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from linescout.auth.deps import get_current_customer
from linescout.auth.jwt import create_customer_token
from linescout.auth.otp import OTPCooldownError, issue_otp, verify_otp
from linescout.config import settings
from linescout.database import get_db
from linescout.middleware.exceptions import ExternalServiceError
from linescout.models.user import User
from linescout.schemas.auth import (
    CustomerOut,
    CustomerTokenResponse,
    OTPRequest,
    OTPVerify,
)
from linescout.services import notifications

logger = logging.getLogger(__name__)

router = APIRouter()


def _otp_key(email: str) -> str:
    return f"email:{email.lower()}"


# ── POST /request-otp ────────────────────────────────────────

@router.post("/request-otp")
async def request_otp(body: OTPRequest):
    """Email a sign-in code.

    In development (no SMTP configured) the code is returned in the
    response so the mobile app can be exercised locally.
    """
    email = body.email.lower()
    try:
        code = issue_otp(_otp_key(email))
    except OTPCooldownError as e:
        raise HTTPException(status_code=429, detail=str(e))

    sent = await notifications.send_customer_otp(email, code)
    if sent:
        return {"ok": True, "message": "Code sent"}
    if settings.environment == "development":
        return {"ok": True, "message": "SMTP not configured (dev mode)", "dev_code": code}
    raise ExternalServiceError("Email", "could not send the sign-in code")


# ── POST /verify-otp ─────────────────────────────────────────

@router.post("/verify-otp", response_model=CustomerTokenResponse)
async def verify_otp_code(body: OTPVerify, db: AsyncSession = Depends(get_db)):
    email = body.email.lower()
    if not verify_otp(_otp_key(email), body.code):
        raise HTTPException(status_code=401, detail="Invalid or expired code")

    result = await db.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()
    if user is None:
        user = User(email=email, display_name=body.display_name)
        db.add(user)
        logger.info("New customer signed up: %s", email)
    elif not user.is_active:
        raise HTTPException(status_code=403, detail="Account deactivated")

    user.last_seen_at = datetime.utcnow()
    await db.flush()

    return CustomerTokenResponse(
        access_token=create_customer_token(user.id),
        user=CustomerOut.model_validate(user),
    )


# ── GET /me ──────────────────────────────────────────────────

@router.get("/me", response_model=CustomerOut)
async def me(user: User = Depends(get_current_customer)):
    return user
