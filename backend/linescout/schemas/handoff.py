"""Pydantic schemas for handoffs, their ledger summary and audit trail."""

from datetime import datetime

from pydantic import BaseModel, EmailStr, field_validator

from linescout.schemas.validators import clean_text, validate_whatsapp


class FinancialSummaryOut(BaseModel):
    currency: str
    total_due: float
    total_paid: float
    balance: float
    settled: bool


class HandoffSummary(BaseModel):
    """List-row shape."""
    id: str
    token: str
    handoff_type: str
    status: str
    customer_name: str | None = None
    email: str | None = None
    claimed_by: str | None = None
    claimed_at: datetime | None = None
    created_at: datetime
    financials: FinancialSummaryOut | None = None
    allowed_actions: list[str] = []

    model_config = {"from_attributes": True}


class HandoffOut(HandoffSummary):
    user_id: str | None = None
    whatsapp_number: str | None = None
    context: str | None = None
    conversation_id: str | None = None

    manufacturer_name: str | None = None
    manufacturer_address: str | None = None
    manufacturer_contact_name: str | None = None
    manufacturer_contact_email: str | None = None
    manufacturer_contact_phone: str | None = None
    manufacturer_details_updated_at: datetime | None = None
    manufacturer_found_at: datetime | None = None

    paid_at: datetime | None = None
    shipped_at: datetime | None = None
    shipper: str | None = None
    tracking_number: str | None = None
    delivered_at: datetime | None = None
    cancelled_at: datetime | None = None
    cancel_reason: str | None = None
    updated_at: datetime | None = None


class HandoffEventOut(BaseModel):
    id: str
    actor_type: str
    actor_id: str | None = None
    actor_name: str | None = None
    action: str
    from_status: str | None = None
    to_status: str | None = None
    summary: str | None = None
    details: dict | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class HandoffDetail(BaseModel):
    handoff: HandoffOut
    events: list[HandoffEventOut]


# ── Writes ───────────────────────────────────────────────────

class ManufacturerFields(BaseModel):
    manufacturer_name: str | None = None
    manufacturer_address: str | None = None
    manufacturer_contact_name: str | None = None
    manufacturer_contact_email: str | None = None
    manufacturer_contact_phone: str | None = None

    @field_validator(
        "manufacturer_name",
        "manufacturer_address",
        "manufacturer_contact_name",
        "manufacturer_contact_email",
        "manufacturer_contact_phone",
    )
    @classmethod
    def strip(cls, v: str | None) -> str | None:
        return clean_text(v, 1000)


class StatusUpdate(ManufacturerFields):
    """Requested transition; guards are re-checked against stored state."""
    status: str
    shipper: str | None = None
    tracking_number: str | None = None
    cancel_reason: str | None = None
    admin_override: bool = False

    @field_validator("status", mode="before")
    @classmethod
    def lower_status(cls, v: str) -> str:
        return (v or "").strip().lower()


class HandoffIntake(BaseModel):
    """Free intake form: a sourcing token plus the customer's brief."""
    token: str
    email: EmailStr
    whatsapp_number: str
    customer_name: str | None = None
    context: str

    @field_validator("token")
    @classmethod
    def upper_token(cls, v: str) -> str:
        return v.strip().upper()

    @field_validator("whatsapp_number")
    @classmethod
    def whatsapp(cls, v: str) -> str:
        return validate_whatsapp(v)

    @field_validator("customer_name")
    @classmethod
    def name(cls, v: str | None) -> str | None:
        return clean_text(v, 200)

    @field_validator("context")
    @classmethod
    def brief(cls, v: str) -> str:
        v = clean_text(v)
        if not v:
            raise ValueError("Describe what you want to source")
        return v


class StatusCounts(BaseModel):
    counts: dict[str, int]
    total: int
