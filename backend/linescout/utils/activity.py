"""Lightweight helper for recording handoff audit events.

Usage:
    await log_handoff_event(
        db, actor, handoff,
        action="status_changed", from_status="paid", to_status="shipped",
        summary="Marked shipped via DHL (ABC123)",
    )

The row is added to the current session and committed with the
enclosing transaction; no extra flush is performed.
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from linescout.models.handoff import Handoff
from linescout.models.handoff_event import HandoffEvent
from linescout.models.internal_user import InternalUser
from linescout.models.user import User


async def log_handoff_event(
    db: AsyncSession,
    actor: InternalUser | User | None,
    handoff: Handoff,
    *,
    action: str,
    from_status: str | None = None,
    to_status: str | None = None,
    summary: str | None = None,
    details: dict | None = None,
) -> None:
    """Append an audit event for `handoff` to the current DB session."""
    if isinstance(actor, InternalUser):
        actor_type, actor_id, actor_name = "internal", actor.id, actor.username
    elif isinstance(actor, User):
        actor_type, actor_id, actor_name = "customer", actor.id, actor.email
    else:
        actor_type, actor_id, actor_name = "system", None, "system"

    db.add(HandoffEvent(
        handoff_id=handoff.id,
        actor_type=actor_type,
        actor_id=actor_id,
        actor_name=actor_name,
        action=action,
        from_status=from_status,
        to_status=to_status,
        summary=summary,
        details=details,
    ))
