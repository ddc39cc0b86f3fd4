"""Internal (admin and agent) authentication.

Route overview:
  POST /sign-in   username + password → JWT with role and permissions
  POST /sign-out  revoke the presented token
  GET  /me        current user, permissions and approval status
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from linescout.auth.deps import get_current_user, oauth2_scheme
from linescout.auth.jwt import create_access_token, decode_token
from linescout.auth.password import verify_password
from linescout.auth.permissions import resolve_permissions
from linescout.auth.revocation import TokenRevocation
from linescout.database import get_db
from linescout.models.agent_profile import AgentProfile
from linescout.models.internal_user import InternalUser, InternalUserPermission
from linescout.schemas.auth import InternalUserOut, SignInRequest, TokenResponse
from linescout.schemas.common import OkResponse

logger = logging.getLogger(__name__)

router = APIRouter()


# ── Helpers ──────────────────────────────────────────────────

async def _approval_status(db: AsyncSession, user: InternalUser) -> str | None:
    if user.is_admin:
        return None
    result = await db.execute(
        select(AgentProfile.approval_status).where(
            AgentProfile.internal_user_id == user.id
        )
    )
    return result.scalar_one_or_none() or "pending"


def _build_user_out(
    user: InternalUser, permissions: list[str], approval_status: str | None
) -> InternalUserOut:
    return InternalUserOut(
        id=user.id,
        username=user.username,
        role=user.role.value,
        is_active=user.is_active,
        permissions=permissions,
        approval_status=approval_status,
    )


# ── POST /sign-in ────────────────────────────────────────────

@router.post("/sign-in", response_model=TokenResponse)
async def sign_in(body: SignInRequest, db: AsyncSession = Depends(get_db)):
    result = await db.execute(
        select(InternalUser).where(InternalUser.username == body.username)
    )
    user = result.scalar_one_or_none()

    if not user or not verify_password(body.password, user.hashed_password):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    if not user.is_active:
        raise HTTPException(status_code=403, detail="Account deactivated")

    result = await db.execute(
        select(InternalUserPermission).where(
            InternalUserPermission.internal_user_id == user.id
        )
    )
    row = result.scalar_one_or_none()
    permissions = resolve_permissions(user.role.value, row.flags() if row else None)

    logger.info("Internal sign-in: %s (%s)", user.username, user.role.value)
    return TokenResponse(
        access_token=create_access_token(
            user_id=user.id, role=user.role.value, permissions=permissions
        ),
        user=_build_user_out(user, permissions, await _approval_status(db, user)),
    )


# ── POST /sign-out ───────────────────────────────────────────

@router.post("/sign-out", response_model=OkResponse)
async def sign_out(
    token: str = Depends(oauth2_scheme),
    _user: InternalUser = Depends(get_current_user),
):
    payload = decode_token(token)
    await TokenRevocation.revoke_token(token, float(payload.get("exp", 0)))
    return OkResponse(message="Signed out")


# ── GET /me ──────────────────────────────────────────────────

@router.get("/me", response_model=InternalUserOut)
async def me(
    user: InternalUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    payload: dict = getattr(user, "_token_payload", {})
    return _build_user_out(
        user, payload.get("permissions", []), await _approval_status(db, user)
    )
