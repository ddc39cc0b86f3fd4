"""FastAPI dependencies for authentication and authorization.

Dependencies:
  get_current_user        → decode JWT, load internal user (admin/agent)
  get_current_customer    → decode JWT, load customer (email OTP sign-in)
  require_role(...)       → restrict to specific roles
  require_admin           → shorthand for require_role(UserRole.ADMIN)
  require_permission(...) → restrict to specific granular permissions
"""

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from linescout.auth.jwt import CUSTOMER_ROLE, decode_token
from linescout.auth.permissions import has_permission
from linescout.auth.revocation import TokenRevocation
from linescout.database import get_db
from linescout.models.internal_user import InternalUser, UserRole
from linescout.models.user import User

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/internal/auth/sign-in")


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def _decode(token: str) -> dict:
    payload = decode_token(token)
    if not payload.get("sub") or payload.get("type") != "access":
        raise _unauthorized("Invalid or expired token")

    if await TokenRevocation.is_revoked(token):
        raise _unauthorized("Token has been revoked")

    # Blocking an agent revokes every token issued before the block
    if await TokenRevocation.is_user_revoked(payload["sub"], payload.get("iat")):
        raise _unauthorized("Session expired. Please sign in again.")
    return payload


# ── Internal users ──────────────────────────────────────────

async def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> InternalUser:
    """Load the admin or agent behind the bearer token.

    The decoded payload is stashed on the user as `_token_payload` so
    downstream deps can read the permission claims without re-decoding.
    """
    payload = await _decode(token)
    if payload.get("role") == CUSTOMER_ROLE:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Internal account required",
        )

    result = await db.execute(
        select(InternalUser).where(InternalUser.id == payload["sub"])
    )
    user = result.scalar_one_or_none()
    if not user or not user.is_active:
        raise _unauthorized("User not found or inactive")

    user._token_payload = payload  # type: ignore[attr-defined]
    return user


def require_role(*roles: UserRole):
    """Dependency factory — restrict to one or more roles.

    Usage:
        @router.get("/admin-only")
        async def admin_view(user: InternalUser = Depends(require_role(UserRole.ADMIN))):
            ...
    """
    async def _check(user: InternalUser = Depends(get_current_user)) -> InternalUser:
        if user.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Requires role: {', '.join(r.value for r in roles)}",
            )
        return user

    return _check


require_admin = require_role(UserRole.ADMIN)


def require_permission(*perms: str):
    """Dependency factory — restrict to users who hold ALL listed permissions.

    Reads permissions from the JWT claims (embedded at sign-in), so this
    is a zero-DB-hit check.  Approval revokes/grants view flags, which
    take effect at the agent's next sign-in.
    """
    async def _check(user: InternalUser = Depends(get_current_user)) -> InternalUser:
        payload: dict = getattr(user, "_token_payload", {})
        user_perms: list[str] = payload.get("permissions", [])

        missing = [p for p in perms if not has_permission(user_perms, p)]
        if missing:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Missing permissions: {', '.join(missing)}",
            )
        return user

    return _check


# ── Customers ───────────────────────────────────────────────

async def get_current_customer(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    payload = await _decode(token)
    if payload.get("role") != CUSTOMER_ROLE:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Customer account required",
        )

    result = await db.execute(select(User).where(User.id == payload["sub"]))
    user = result.scalar_one_or_none()
    if not user or not user.is_active:
        raise _unauthorized("User not found or inactive")
    return user
