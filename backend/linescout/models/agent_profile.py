"""Agent profile, payout account and push tokens.

The profile carries every field the approval readiness checklist reads:
China phone (+ verification), NIN (+ verification), full address.  The
payout account supplies the bank check.

Approval:  pending → approved | blocked  (any direction, approve is gated)
"""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from linescout.database import Base


class AgentProfile(Base):
    __tablename__ = "linescout_agent_profiles"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    internal_user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("internal_users.id"), unique=True, nullable=False
    )

    # ── Identity ─────────────────────────────────────────────
    first_name: Mapped[str | None] = mapped_column(String(100))
    last_name: Mapped[str | None] = mapped_column(String(100))
    email: Mapped[str | None] = mapped_column(String(255), index=True)

    # ── Readiness checklist ──────────────────────────────────
    china_phone: Mapped[str | None] = mapped_column(String(30))
    china_phone_verified_at: Mapped[datetime | None] = mapped_column(DateTime)
    nin: Mapped[str | None] = mapped_column(String(20))
    nin_verified_at: Mapped[datetime | None] = mapped_column(DateTime)
    full_address: Mapped[str | None] = mapped_column(Text)

    # ── Approval ─────────────────────────────────────────────
    # pending | approved | blocked
    approval_status: Mapped[str] = mapped_column(
        String(20), default="pending", index=True
    )
    approved_at: Mapped[datetime | None] = mapped_column(DateTime)
    approved_by: Mapped[str | None] = mapped_column(String(36))  # internal user id
    rejection_reason: Mapped[str | None] = mapped_column(Text)

    # ── Preferences ──────────────────────────────────────────
    email_notifications_enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    # null = settings.default_claim_limit
    claim_limit_override: Mapped[int | None] = mapped_column(Integer)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )


class AgentPayoutAccount(Base):
    __tablename__ = "linescout_agent_payout_accounts"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    internal_user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("internal_users.id"), unique=True, nullable=False
    )
    bank_code: Mapped[str] = mapped_column(String(20), nullable=False)
    account_number: Mapped[str] = mapped_column(String(20), nullable=False)
    account_name: Mapped[str | None] = mapped_column(String(200))
    # pending | verified
    status: Mapped[str] = mapped_column(String(20), default="pending")
    verified_at: Mapped[datetime | None] = mapped_column(DateTime)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )


class AgentDeviceToken(Base):
    __tablename__ = "linescout_agent_device_tokens"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    internal_user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("internal_users.id"), nullable=False, index=True
    )
    token: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    platform: Mapped[str | None] = mapped_column(String(20))  # ios | android
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    last_seen_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
