"""ReorderRequest — a paid repeat of a delivered handoff.

Keeps both sides of the link: the source conversation/handoff the
customer re-ordered from and the new ones created for the repeat.

Lifecycle:  pending_admin → assigned → in_progress → closed
            (assigned directly when the original agent is still eligible)
"""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from linescout.database import Base


class ReorderRequest(Base):
    __tablename__ = "linescout_reorder_requests"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id"), nullable=False, index=True
    )

    # ── Links ────────────────────────────────────────────────
    source_conversation_id: Mapped[str | None] = mapped_column(String(36))
    source_handoff_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("linescout_handoffs.id"), nullable=False, index=True
    )
    new_conversation_id: Mapped[str | None] = mapped_column(String(36))
    new_handoff_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("linescout_handoffs.id"), index=True
    )
    route_type: Mapped[str] = mapped_column(String(30), default="machine_sourcing")

    # ── Assignment ───────────────────────────────────────────
    # pending_admin | assigned | in_progress | closed
    status: Mapped[str] = mapped_column(String(20), default="pending_admin", index=True)
    original_agent_id: Mapped[str | None] = mapped_column(String(36))
    assigned_agent_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("internal_users.id"), index=True
    )
    user_note: Mapped[str | None] = mapped_column(Text)
    admin_note: Mapped[str | None] = mapped_column(Text)

    # ── Payment ──────────────────────────────────────────────
    paystack_ref: Mapped[str | None] = mapped_column(String(100), unique=True)
    amount_ngn: Mapped[float | None] = mapped_column(Float)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime)

    assigned_at: Mapped[datetime | None] = mapped_column(DateTime)
    closed_at: Mapped[datetime | None] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )
