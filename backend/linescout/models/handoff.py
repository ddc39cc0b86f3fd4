"""Handoff — one sourcing engagement worked by a human agent.

Lifecycle:  pending → claimed → manufacturer_found → paid → shipped → delivered
            (any non-terminal) → cancelled

Handoffs are never deleted; every mutation leaves a HandoffEvent.
"""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from linescout.database import Base


class Handoff(Base):
    __tablename__ = "linescout_handoffs"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    token: Mapped[str] = mapped_column(
        String(40), unique=True, nullable=False, index=True
    )
    # sourcing | white_label
    handoff_type: Mapped[str] = mapped_column(String(20), default="sourcing")
    # pending | claimed | manufacturer_found | paid | shipped | delivered | cancelled
    status: Mapped[str] = mapped_column(String(30), default="pending", index=True)

    # ── Customer ─────────────────────────────────────────────
    user_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("users.id"), index=True
    )
    customer_name: Mapped[str | None] = mapped_column(String(200))
    email: Mapped[str | None] = mapped_column(String(255))
    whatsapp_number: Mapped[str | None] = mapped_column(String(30))
    context: Mapped[str | None] = mapped_column(Text)
    conversation_id: Mapped[str | None] = mapped_column(String(36), index=True)

    # ── Ownership ────────────────────────────────────────────
    claimed_by: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("internal_users.id"), index=True
    )
    claimed_at: Mapped[datetime | None] = mapped_column(DateTime)

    # ── Manufacturer ─────────────────────────────────────────
    manufacturer_name: Mapped[str | None] = mapped_column(String(255))
    manufacturer_address: Mapped[str | None] = mapped_column(Text)
    manufacturer_contact_name: Mapped[str | None] = mapped_column(String(200))
    manufacturer_contact_email: Mapped[str | None] = mapped_column(String(255))
    manufacturer_contact_phone: Mapped[str | None] = mapped_column(String(50))
    manufacturer_details_updated_at: Mapped[datetime | None] = mapped_column(DateTime)
    manufacturer_details_updated_by: Mapped[str | None] = mapped_column(String(36))
    manufacturer_found_at: Mapped[datetime | None] = mapped_column(DateTime)

    # ── Milestones ───────────────────────────────────────────
    paid_at: Mapped[datetime | None] = mapped_column(DateTime)
    shipped_at: Mapped[datetime | None] = mapped_column(DateTime)
    shipper: Mapped[str | None] = mapped_column(String(100))
    tracking_number: Mapped[str | None] = mapped_column(String(100))
    delivered_at: Mapped[datetime | None] = mapped_column(DateTime)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime)
    cancel_reason: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )
