"""HandoffEvent — immutable audit trail for handoff mutations.

Records claims, status changes, manufacturer edits, payments and
total-due corrections: who did it, from which status to which, and the
structured details.
"""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from linescout.database import Base


class HandoffEvent(Base):
    __tablename__ = "linescout_handoff_events"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    handoff_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)

    # ── Who ────────────────────────────────────────────────────
    # internal | customer | system
    actor_type: Mapped[str] = mapped_column(String(20), nullable=False)
    actor_id: Mapped[str | None] = mapped_column(String(36))
    actor_name: Mapped[str | None] = mapped_column(String(200))

    # ── What ───────────────────────────────────────────────────
    # created | claimed | status_changed | manufacturer_updated |
    # payment_recorded | total_due_changed | quote_created | reorder_created
    action: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    from_status: Mapped[str | None] = mapped_column(String(30))
    to_status: Mapped[str | None] = mapped_column(String(30))

    # ── Context ────────────────────────────────────────────────
    summary: Mapped[str | None] = mapped_column(Text)
    details: Mapped[dict | None] = mapped_column(JSON)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False, index=True
    )
