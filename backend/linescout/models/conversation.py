"""Customer conversations and their messages.

A conversation starts in `ai_only` mode.  A confirmed sourcing payment
(or a reorder) creates one in `paid_human` mode, linked to its handoff
and, once someone owns the work, to the assigned agent.
"""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from linescout.database import Base


class Conversation(Base):
    __tablename__ = "linescout_conversations"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id"), nullable=False, index=True
    )
    title: Mapped[str | None] = mapped_column(String(200))

    # machine_sourcing | white_label
    route_type: Mapped[str] = mapped_column(String(30), default="machine_sourcing")
    # ai_only | paid_human
    chat_mode: Mapped[str] = mapped_column(String(20), default="ai_only")
    # unpaid | paid
    payment_status: Mapped[str] = mapped_column(String(20), default="unpaid")
    # active | cancelled
    project_status: Mapped[str] = mapped_column(String(20), default="active")

    handoff_id: Mapped[str | None] = mapped_column(String(36), index=True)
    assigned_agent_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("internal_users.id"), index=True
    )

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )


class Message(Base):
    __tablename__ = "linescout_messages"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    conversation_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("linescout_conversations.id"), nullable=False, index=True
    )
    # user | agent | system
    sender_type: Mapped[str] = mapped_column(String(20), nullable=False)
    sender_id: Mapped[str | None] = mapped_column(String(36))
    body: Mapped[str] = mapped_column(Text, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, index=True
    )
