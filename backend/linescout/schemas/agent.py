"""Pydantic schemas for agent profiles, readiness and approval."""

from datetime import datetime

from pydantic import BaseModel, EmailStr, field_validator

from linescout.schemas.validators import (
    clean_text,
    validate_account_number,
    validate_china_phone,
    validate_nin,
)


class ReadinessOut(BaseModel):
    phone_ok: bool
    nin_provided: bool
    nin_ok: bool
    address_ok: bool
    bank_ok: bool
    ready: bool
    missing: list[str]


class PayoutAccountOut(BaseModel):
    bank_code: str
    account_number: str
    account_name: str | None = None
    status: str
    verified_at: datetime | None = None

    model_config = {"from_attributes": True}


class AgentProfileOut(BaseModel):
    first_name: str | None = None
    last_name: str | None = None
    email: str | None = None
    china_phone: str | None = None
    china_phone_verified_at: datetime | None = None
    nin: str | None = None
    nin_verified_at: datetime | None = None
    full_address: str | None = None
    approval_status: str = "pending"
    approved_at: datetime | None = None
    rejection_reason: str | None = None
    email_notifications_enabled: bool = True
    claim_limit_override: int | None = None

    model_config = {"from_attributes": True}


class AgentOut(BaseModel):
    id: str
    username: str
    display_name: str
    is_active: bool
    approval_status: str
    profile: AgentProfileOut | None = None
    payout_account: PayoutAccountOut | None = None
    readiness: ReadinessOut
    permissions: dict[str, bool] = {}
    created_at: datetime


# ── Self-service writes ─────────────────────────────────────

class AgentProfileUpdate(BaseModel):
    first_name: str | None = None
    last_name: str | None = None
    email: EmailStr | None = None
    nin: str | None = None
    full_address: str | None = None
    china_phone: str | None = None
    email_notifications_enabled: bool | None = None

    @field_validator("first_name", "last_name")
    @classmethod
    def name(cls, v: str | None) -> str | None:
        return clean_text(v, 100)

    @field_validator("full_address")
    @classmethod
    def address(cls, v: str | None) -> str | None:
        return clean_text(v, 1000)

    @field_validator("nin")
    @classmethod
    def nin_digits(cls, v: str | None) -> str | None:
        return validate_nin(v) if v else None

    @field_validator("china_phone")
    @classmethod
    def china_mobile(cls, v: str | None) -> str | None:
        return validate_china_phone(v) if v else None


class PhoneOTPVerify(BaseModel):
    code: str

    @field_validator("code")
    @classmethod
    def six_digits(cls, v: str) -> str:
        v = v.strip()
        if not (v.isdigit() and len(v) == 6):
            raise ValueError("Code must be 6 digits")
        return v


class PayoutAccountUpsert(BaseModel):
    bank_code: str
    account_number: str

    @field_validator("bank_code")
    @classmethod
    def bank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("bank_code is required")
        return v

    @field_validator("account_number")
    @classmethod
    def account(cls, v: str) -> str:
        return validate_account_number(v)


# ── Admin ────────────────────────────────────────────────────

class ApprovalStatusUpdate(BaseModel):
    """Move an agent to pending or blocked (approve has its own endpoint)."""
    status: str
    reason: str | None = None

    @field_validator("status")
    @classmethod
    def valid_status(cls, v: str) -> str:
        if v not in ("pending", "blocked"):
            raise ValueError("status must be 'pending' or 'blocked'")
        return v

    @field_validator("reason")
    @classmethod
    def clean_reason(cls, v: str | None) -> str | None:
        return clean_text(v, 1000)


class ClaimLimitUpdate(BaseModel):
    claim_limit_override: int | None = None

    @field_validator("claim_limit_override")
    @classmethod
    def positive(cls, v: int | None) -> int | None:
        if v is not None and v < 1:
            raise ValueError("Claim limit must be at least 1")
        return v
