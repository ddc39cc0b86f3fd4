"""PaymentToken — single-use receipt unlocking a paid capability.

A verified Paystack payment for a sourcing request mints an `SRC-` token
(and the handoff it opens); a business plan purchase mints a `BP-` token.
`paystack_ref` is unique and is the idempotency key for verification.
"""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from linescout.database import Base


class PaymentToken(Base):
    __tablename__ = "linescout_tokens"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    token: Mapped[str] = mapped_column(
        String(40), unique=True, nullable=False, index=True
    )
    # sourcing | business_plan
    token_type: Mapped[str] = mapped_column(String(20), nullable=False)
    route_type: Mapped[str | None] = mapped_column(String(30))

    # ── Payment ──────────────────────────────────────────────
    user_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("users.id"))
    email: Mapped[str | None] = mapped_column(String(255))
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="NGN")
    paystack_ref: Mapped[str | None] = mapped_column(String(100), unique=True)
    payment_metadata: Mapped[dict | None] = mapped_column("metadata", JSON)

    # ── What it unlocked ─────────────────────────────────────
    handoff_id: Mapped[str | None] = mapped_column(String(36))
    conversation_id: Mapped[str | None] = mapped_column(String(36))
    used_at: Mapped[datetime | None] = mapped_column(DateTime)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
