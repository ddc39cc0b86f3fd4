"""Pydantic schemas for quotes."""

from datetime import datetime

from pydantic import BaseModel, field_validator

from linescout.schemas.handoff import FinancialSummaryOut
from linescout.schemas.validators import clean_text

QUOTE_PAYMENT_PURPOSES = ("deposit", "full_payment", "shipping_payment")


class QuoteItem(BaseModel):
    name: str
    quantity: int = 1
    unit_price_ngn: float | None = None

    @field_validator("name")
    @classmethod
    def name_required(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Item name is required")
        return v

    @field_validator("quantity")
    @classmethod
    def quantity_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Quantity must be at least 1")
        return v


class QuoteCreate(BaseModel):
    items: list[QuoteItem]
    total_due_ngn: float
    payment_purpose: str = "full_payment"
    agent_note: str | None = None

    @field_validator("items")
    @classmethod
    def not_empty(cls, v: list[QuoteItem]) -> list[QuoteItem]:
        if not v:
            raise ValueError("A quote needs at least one item")
        return v

    @field_validator("total_due_ngn")
    @classmethod
    def total_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Total must be positive")
        return v

    @field_validator("payment_purpose")
    @classmethod
    def valid_purpose(cls, v: str) -> str:
        if v not in QUOTE_PAYMENT_PURPOSES:
            raise ValueError(
                f"payment_purpose must be one of: {', '.join(QUOTE_PAYMENT_PURPOSES)}"
            )
        return v

    @field_validator("agent_note")
    @classmethod
    def note(cls, v: str | None) -> str | None:
        return clean_text(v, 2000)


class QuoteOut(BaseModel):
    id: str
    handoff_id: str
    token: str
    status: str
    payment_purpose: str
    items: list[dict]
    agent_note: str | None = None
    currency: str
    total_due_ngn: float
    created_by: str
    paid_at: datetime | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class PublicQuoteOut(BaseModel):
    """What the customer sees through the quote link."""
    quote: QuoteOut
    handoff_token: str
    handoff_status: str
    summary: FinancialSummaryOut
