from pydantic import BaseModel, EmailStr, field_validator

from linescout.schemas.validators import clean_text


# ── Internal sign-in (admins and agents) ────────────────────

class SignInRequest(BaseModel):
    username: str
    password: str

    @field_validator("username")
    @classmethod
    def strip_username(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Username is required")
        return v


class InternalUserOut(BaseModel):
    id: str
    username: str
    role: str
    is_active: bool
    permissions: list[str]
    approval_status: str | None = None


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: InternalUserOut


# ── Customer email OTP ──────────────────────────────────────

class OTPRequest(BaseModel):
    email: EmailStr


class OTPVerify(BaseModel):
    email: EmailStr
    code: str
    display_name: str | None = None

    @field_validator("code")
    @classmethod
    def six_digits(cls, v: str) -> str:
        v = v.strip()
        if not (v.isdigit() and len(v) == 6):
            raise ValueError("Code must be 6 digits")
        return v

    @field_validator("display_name")
    @classmethod
    def clean_name(cls, v: str | None) -> str | None:
        return clean_text(v, 200)


class CustomerOut(BaseModel):
    id: str
    email: str
    display_name: str | None = None

    model_config = {"from_attributes": True}


class CustomerTokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: CustomerOut


# ── Device tokens (Expo push) ───────────────────────────────

class DeviceTokenRequest(BaseModel):
    token: str
    platform: str | None = None

    @field_validator("token")
    @classmethod
    def expo_token(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Push token is required")
        if len(v) > 255:
            raise ValueError("Push token too long")
        return v

    @field_validator("platform")
    @classmethod
    def valid_platform(cls, v: str | None) -> str | None:
        if v is not None and v not in ("ios", "android", "web"):
            raise ValueError("platform must be 'ios', 'android' or 'web'")
        return v
