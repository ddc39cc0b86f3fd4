"""Agent self-service: profile, China phone, payout account, push tokens.

Endpoints:
    GET  /api/internal/agents/me                          Profile + readiness
    PATCH /api/internal/agents/me                         Update profile fields
    POST /api/internal/agents/me/phone/request-otp        SMS a code to the China phone
    POST /api/internal/agents/me/phone/verify             Confirm the code
    PUT  /api/internal/agents/me/payout-account           Save bank details
    POST /api/internal/agents/me/payout-account/verify    Resolve via Paystack
    POST /api/internal/agents/me/device-tokens            Register an Expo token

Changing the NIN or the China phone clears its verification; changing
bank details puts the payout account back to `pending`.
"""

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from twilio.base.exceptions import TwilioRestException

from linescout.auth.deps import require_role
from linescout.auth.otp import OTPCooldownError, issue_otp, send_sms_otp, verify_otp
from linescout.database import get_db
from linescout.middleware.exceptions import ExternalServiceError, ValidationError
from linescout.models.agent_profile import AgentDeviceToken, AgentPayoutAccount, AgentProfile
from linescout.models.internal_user import InternalUser, UserRole
from linescout.routers.admin_agents import build_agent_out
from linescout.schemas.agent import (
    AgentOut,
    AgentProfileUpdate,
    PayoutAccountUpsert,
    PhoneOTPVerify,
)
from linescout.schemas.auth import DeviceTokenRequest
from linescout.schemas.common import OkResponse
from linescout.services import approval, paystack

logger = logging.getLogger(__name__)

router = APIRouter()

require_agent = require_role(UserRole.AGENT)


# ── Helpers ──────────────────────────────────────────────────

async def _profile(db: AsyncSession, user: InternalUser) -> AgentProfile:
    result = await db.execute(
        select(AgentProfile).where(AgentProfile.internal_user_id == user.id)
    )
    profile = result.scalar_one_or_none()
    if profile is None:
        profile = AgentProfile(internal_user_id=user.id, approval_status="pending")
        db.add(profile)
        await db.flush()
    return profile


def _phone_otp_key(user: InternalUser, phone: str) -> str:
    return f"phone:{user.id}:{phone}"


# ── GET /me ──────────────────────────────────────────────────

@router.get("/me", response_model=AgentOut)
async def get_me(
    db: AsyncSession = Depends(get_db),
    user: InternalUser = Depends(require_agent),
):
    return build_agent_out(await approval.load_agent(db, user.id))


# ── PATCH /me ────────────────────────────────────────────────

@router.patch("/me", response_model=AgentOut)
async def update_me(
    body: AgentProfileUpdate,
    db: AsyncSession = Depends(get_db),
    user: InternalUser = Depends(require_agent),
):
    profile = await _profile(db, user)
    changes = body.model_dump(exclude_unset=True)

    if "nin" in changes and changes["nin"] != profile.nin:
        profile.nin_verified_at = None
    if "china_phone" in changes and changes["china_phone"] != profile.china_phone:
        profile.china_phone_verified_at = None
    if changes.get("email"):
        changes["email"] = changes["email"].lower()
    if changes.get("email_notifications_enabled") is None:
        changes.pop("email_notifications_enabled", None)

    for field, value in changes.items():
        setattr(profile, field, value)
    await db.flush()

    return build_agent_out(await approval.load_agent(db, user.id))


# ── POST /me/phone/request-otp ───────────────────────────────

@router.post("/me/phone/request-otp")
async def request_phone_otp(
    db: AsyncSession = Depends(get_db),
    user: InternalUser = Depends(require_agent),
):
    profile = await _profile(db, user)
    if not profile.china_phone:
        raise ValidationError("Save your China phone number first")

    try:
        code = issue_otp(_phone_otp_key(user, profile.china_phone))
    except OTPCooldownError as e:
        raise HTTPException(status_code=429, detail=str(e))

    try:
        sent = send_sms_otp(profile.china_phone, code)
    except TwilioRestException as e:
        logger.error("Twilio send to agent %s failed: %s", user.username, e)
        raise ExternalServiceError("Twilio", "could not send the verification code")

    response = {"ok": True, "message": "Code sent"}
    if not sent:
        response["message"] = "SMS not configured (dev mode)"
        response["dev_code"] = code
    return response


# ── POST /me/phone/verify ────────────────────────────────────

@router.post("/me/phone/verify", response_model=AgentOut)
async def verify_phone(
    body: PhoneOTPVerify,
    db: AsyncSession = Depends(get_db),
    user: InternalUser = Depends(require_agent),
):
    profile = await _profile(db, user)
    if not profile.china_phone or not verify_otp(
        _phone_otp_key(user, profile.china_phone), body.code
    ):
        raise HTTPException(status_code=400, detail="Invalid or expired code")

    profile.china_phone_verified_at = datetime.utcnow()
    await db.flush()
    return build_agent_out(await approval.load_agent(db, user.id))


# ── PUT /me/payout-account ───────────────────────────────────

@router.put("/me/payout-account", response_model=AgentOut)
async def upsert_payout_account(
    body: PayoutAccountUpsert,
    db: AsyncSession = Depends(get_db),
    user: InternalUser = Depends(require_agent),
):
    result = await db.execute(
        select(AgentPayoutAccount).where(AgentPayoutAccount.internal_user_id == user.id)
    )
    account = result.scalar_one_or_none()
    if account is None:
        account = AgentPayoutAccount(internal_user_id=user.id)
        db.add(account)

    if account.bank_code != body.bank_code or account.account_number != body.account_number:
        account.bank_code = body.bank_code
        account.account_number = body.account_number
        account.account_name = None
        account.status = "pending"
        account.verified_at = None
    await db.flush()

    return build_agent_out(await approval.load_agent(db, user.id))


# ── POST /me/payout-account/verify ───────────────────────────

@router.post("/me/payout-account/verify", response_model=AgentOut)
async def verify_payout_account(
    db: AsyncSession = Depends(get_db),
    user: InternalUser = Depends(require_agent),
):
    result = await db.execute(
        select(AgentPayoutAccount).where(AgentPayoutAccount.internal_user_id == user.id)
    )
    account = result.scalar_one_or_none()
    if account is None:
        raise ValidationError("Save your bank details first")

    resolved = await paystack.resolve_account(account.account_number, account.bank_code)
    account.account_name = resolved.get("account_name")
    account.status = "verified"
    account.verified_at = datetime.utcnow()
    await db.flush()

    logger.info("Payout account verified for agent %s", user.username)
    return build_agent_out(await approval.load_agent(db, user.id))


# ── POST /me/device-tokens ───────────────────────────────────

@router.post("/me/device-tokens", response_model=OkResponse)
async def register_device_token(
    body: DeviceTokenRequest,
    db: AsyncSession = Depends(get_db),
    user: InternalUser = Depends(require_agent),
):
    result = await db.execute(
        select(AgentDeviceToken).where(AgentDeviceToken.token == body.token)
    )
    device = result.scalar_one_or_none()
    if device is None:
        device = AgentDeviceToken(token=body.token)
        db.add(device)

    device.internal_user_id = user.id
    device.platform = body.platform
    device.is_active = True
    device.last_seen_at = datetime.utcnow()
    await db.flush()
    return OkResponse(message="Device registered")

