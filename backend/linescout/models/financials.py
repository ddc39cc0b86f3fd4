"""Handoff ledger: the due amount and the payments recorded against it.

`HandoffFinancials` holds one row per handoff with the reference
`total_due`.  `HandoffPayment` rows are append-only; totals are always
recomputed from them, never cached.
"""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from linescout.database import Base


class HandoffFinancials(Base):
    __tablename__ = "linescout_handoff_financials"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    handoff_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("linescout_handoffs.id"), unique=True, nullable=False
    )
    currency: Mapped[str] = mapped_column(String(3), default="NGN")
    total_due: Mapped[float] = mapped_column(Float, default=0.0)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )


class HandoffPayment(Base):
    __tablename__ = "linescout_handoff_payments"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    handoff_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("linescout_handoffs.id"), nullable=False, index=True
    )

    # ── Amount ───────────────────────────────────────────────
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="NGN")
    # downpayment | full_payment | shipping_payment | additional_payment
    purpose: Mapped[str] = mapped_column(String(30), nullable=False)
    note: Mapped[str | None] = mapped_column(Text)
    paid_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    # ── Source ───────────────────────────────────────────────
    # manual | paystack
    provider: Mapped[str] = mapped_column(String(20), default="manual")
    provider_ref: Mapped[str | None] = mapped_column(String(100), unique=True)
    created_by: Mapped[str | None] = mapped_column(String(36))  # internal user id

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
