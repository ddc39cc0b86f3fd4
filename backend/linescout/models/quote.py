"""Quote — an agent's price proposal for a handoff.

Customers open it through the public token link and pay it via Paystack;
the latest quote's total seeds the ledger's total_due.

Lifecycle:  sent → paid | cancelled
"""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from linescout.database import Base


class Quote(Base):
    __tablename__ = "linescout_quotes"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    handoff_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("linescout_handoffs.id"), nullable=False, index=True
    )
    token: Mapped[str] = mapped_column(
        String(40), unique=True, nullable=False, index=True
    )
    # sent | paid | cancelled
    status: Mapped[str] = mapped_column(String(20), default="sent")
    # deposit | full_payment | shipping_payment
    payment_purpose: Mapped[str] = mapped_column(String(30), default="full_payment")

    # [{"name": "...", "quantity": 2, "unit_price_ngn": 150000}]
    items: Mapped[list] = mapped_column(JSON, default=list)
    agent_note: Mapped[str | None] = mapped_column(Text)
    currency: Mapped[str] = mapped_column(String(3), default="NGN")
    total_due_ngn: Mapped[float] = mapped_column(Float, nullable=False)

    created_by: Mapped[str] = mapped_column(String(36), nullable=False)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )
