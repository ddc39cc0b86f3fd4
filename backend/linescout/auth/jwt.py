"""JWT token creation and decoding.

Token claims:
  - sub:          internal user ID or customer user ID
  - role:         "admin" | "agent" | "customer"
  - permissions:  list of effective permission strings (internal only)
  - type:         "access"
  - iat, exp:     issue and expiry timestamps
"""

from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from linescout.config import settings

ALGORITHM = settings.jwt_algorithm

CUSTOMER_ROLE = "customer"


def create_access_token(
    user_id: str,
    role: str,
    permissions: list[str],
    expires_delta: timedelta | None = None,
) -> str:
    now = datetime.now(timezone.utc)
    expire = now + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    payload = {
        "sub": user_id,
        "role": role,
        "permissions": permissions,
        "type": "access",
        "iat": now,
        "exp": expire,
    }
    return jwt.encode(payload, settings.secret_key, algorithm=ALGORITHM)


def create_customer_token(user_id: str) -> str:
    return create_access_token(
        user_id=user_id,
        role=CUSTOMER_ROLE,
        permissions=[],
        expires_delta=timedelta(days=settings.customer_token_expire_days),
    )


def decode_token(token: str) -> dict:
    """Decode and validate a JWT. Returns empty dict on failure."""
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[ALGORITHM])
    except JWTError:
        return {}
