"""Pydantic schemas for the handoff payment ledger."""

from datetime import datetime

from pydantic import BaseModel

from linescout.schemas.handoff import FinancialSummaryOut


class PaymentCreate(BaseModel):
    # Kept loose: amount rules (positive, finite) live in the ledger so
    # the API and Paystack verification fail the same way.
    amount: float | str
    purpose: str
    currency: str = "NGN"
    note: str | None = None
    total_due: float | str | None = None
    paid_at: datetime | None = None


class TotalDueUpdate(BaseModel):
    total_due: float | str


class PaymentOut(BaseModel):
    id: str
    handoff_id: str
    amount: float
    currency: str
    purpose: str
    note: str | None = None
    paid_at: datetime
    provider: str
    provider_ref: str | None = None
    created_by: str | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class LedgerOut(BaseModel):
    handoff_id: str
    summary: FinancialSummaryOut
    payments: list[PaymentOut]


class PaymentRecorded(BaseModel):
    ok: bool = True
    payment: PaymentOut
    summary: FinancialSummaryOut
    allowed_actions: list[str]
