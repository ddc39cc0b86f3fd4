"""Handoff operations: creation, claim, status transitions, manufacturer edits.

Every write path re-validates against `lifecycle.check_action()` using
freshly loaded state (the status a client sends is only the requested
action, never trusted as the current state).  Claims are a single
conditional UPDATE so two agents racing for the same handoff cannot both
win; the loser gets a StateConflictError.
"""

import logging
from datetime import datetime

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from linescout.config import settings
from linescout.middleware.exceptions import (
    AuthorizationError,
    ResourceNotFoundError,
    StateConflictError,
    ValidationError,
)
from linescout.models.conversation import Conversation
from linescout.models.financials import HandoffFinancials
from linescout.models.handoff import Handoff
from linescout.models.handoff_event import HandoffEvent
from linescout.models.internal_user import InternalUser
from linescout.models.user import User
from linescout.services import ledger
from linescout.services.approval import get_agent, is_eligible
from linescout.services.lifecycle import (
    CLAIM,
    HANDOFF_STATUSES,
    MILESTONE_TIMESTAMPS,
    TERMINAL_STATUSES,
    allowed_next_actions,
    check_action,
    validate_cancel_reason,
    validate_manufacturer_fields,
    validate_shipping,
)
from linescout.utils.activity import log_handoff_event

logger = logging.getLogger(__name__)

MANUFACTURER_FIELDS = (
    "manufacturer_name",
    "manufacturer_address",
    "manufacturer_contact_name",
    "manufacturer_contact_email",
    "manufacturer_contact_phone",
)


# ── Lookups & access ────────────────────────────────────────

async def get_handoff(
    db: AsyncSession, handoff_id: str, *, for_update: bool = False
) -> Handoff:
    stmt = select(Handoff).where(Handoff.id == handoff_id)
    if for_update:
        stmt = stmt.with_for_update()
    result = await db.execute(stmt)
    handoff = result.scalar_one_or_none()
    if handoff is None:
        raise ResourceNotFoundError("Handoff", handoff_id)
    return handoff


def can_view(actor: InternalUser, handoff: Handoff) -> bool:
    """Admins see everything; agents see the open queue and their own work."""
    if actor.is_admin:
        return True
    if handoff.claimed_by == actor.id:
        return True
    return handoff.status == "pending" and handoff.claimed_by is None


def ensure_can_view(actor: InternalUser, handoff: Handoff) -> None:
    if not can_view(actor, handoff):
        raise AuthorizationError("You do not have access to this handoff")


def ensure_can_act(actor: InternalUser, handoff: Handoff) -> None:
    """Agents may only move handoffs they claimed; admins may move any."""
    if actor.is_admin:
        return
    if handoff.claimed_by != actor.id:
        raise AuthorizationError("Only the agent who claimed this handoff can update it")


def actions_for(actor: InternalUser, handoff: Handoff, summary) -> list[str]:
    """allowed_next_actions() narrowed to what `actor` may press."""
    actions = allowed_next_actions(handoff, summary)
    if actor.is_admin or handoff.claimed_by == actor.id:
        return actions
    return [a for a in actions if a == CLAIM]


async def active_claim_count(db: AsyncSession, agent_id: str) -> int:
    result = await db.execute(
        select(func.count(Handoff.id)).where(
            Handoff.claimed_by == agent_id,
            Handoff.status.not_in(sorted(TERMINAL_STATUSES)),
        )
    )
    return result.scalar() or 0


async def _set_conversation_agent(
    db: AsyncSession, conversation_id: str | None, agent_id: str | None
) -> None:
    if not conversation_id:
        return
    await db.execute(
        update(Conversation)
        .where(Conversation.id == conversation_id)
        .values(assigned_agent_id=agent_id, updated_at=datetime.utcnow())
        .execution_options(synchronize_session=False)
    )


# ── Creation ────────────────────────────────────────────────

async def create_handoff(
    db: AsyncSession,
    *,
    token: str,
    handoff_type: str = "sourcing",
    user_id: str | None = None,
    customer_name: str | None = None,
    email: str | None = None,
    whatsapp_number: str | None = None,
    context: str | None = None,
    conversation_id: str | None = None,
    claimed_by: str | None = None,
    actor: InternalUser | User | None = None,
) -> Handoff:
    """Insert a handoff with an empty ledger.

    With `claimed_by` the handoff starts `claimed` (reorder auto-assignment);
    otherwise it waits in the `pending` queue.
    """
    if handoff_type not in ("sourcing", "white_label"):
        raise ValidationError("Handoff type must be 'sourcing' or 'white_label'")

    now = datetime.utcnow()
    handoff = Handoff(
        token=token,
        handoff_type=handoff_type,
        status="claimed" if claimed_by else "pending",
        user_id=user_id,
        customer_name=customer_name,
        email=email,
        whatsapp_number=whatsapp_number,
        context=context,
        conversation_id=conversation_id,
        claimed_by=claimed_by,
        claimed_at=now if claimed_by else None,
    )
    db.add(handoff)
    await db.flush()

    db.add(HandoffFinancials(handoff_id=handoff.id, currency=ledger.DEFAULT_CURRENCY))
    await log_handoff_event(
        db, actor, handoff,
        action="created",
        to_status=handoff.status,
        summary=f"Handoff {token} created",
        details={"claimed_by": claimed_by} if claimed_by else None,
    )
    await db.flush()

    logger.info("Handoff %s created (%s)", token, handoff.status)
    return handoff


# ── Claim ───────────────────────────────────────────────────

async def claim_handoff(
    db: AsyncSession, handoff_id: str, actor: InternalUser
) -> Handoff:
    """Claim a pending, unclaimed handoff for `actor`."""
    if not actor.is_admin:
        record = await get_agent(db, actor.id)
        if not is_eligible(record):
            raise AuthorizationError(
                "Your agent account must be approved before you can claim projects"
            )
        limit = record.profile.claim_limit_override or settings.default_claim_limit
        if await active_claim_count(db, actor.id) >= limit:
            raise AuthorizationError(
                f"You already have {limit} ongoing projects. "
                "Finish one before claiming another."
            )

    handoff = await get_handoff(db, handoff_id)

    now = datetime.utcnow()
    result = await db.execute(
        update(Handoff)
        .where(
            Handoff.id == handoff_id,
            Handoff.status == "pending",
            Handoff.claimed_by.is_(None),
        )
        .values(status="claimed", claimed_by=actor.id, claimed_at=now, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise StateConflictError(
            "This handoff was already claimed or is no longer pending. "
            "Refresh and try again.",
            error_code="ALREADY_CLAIMED",
        )

    await db.refresh(handoff)
    await _set_conversation_agent(db, handoff.conversation_id, actor.id)
    await log_handoff_event(
        db, actor, handoff,
        action="claimed",
        from_status="pending",
        to_status="claimed",
        summary=f"Claimed by {actor.username}",
    )
    await db.flush()

    logger.info("Handoff %s claimed by %s", handoff.token, actor.username)
    return handoff


# ── Status transitions ──────────────────────────────────────

async def update_status(
    db: AsyncSession,
    handoff_id: str,
    actor: InternalUser,
    status: str,
    *,
    manufacturer: dict | None = None,
    shipper: str | None = None,
    tracking_number: str | None = None,
    cancel_reason: str | None = None,
    admin_override: bool = False,
) -> Handoff:
    """Move a handoff to `status` after re-checking the lifecycle guards."""
    if status not in HANDOFF_STATUSES or status in ("pending", "claimed"):
        raise ValidationError(
            "Status must be one of: manufacturer_found, paid, shipped, delivered, cancelled",
            error_code="INVALID_STATUS",
        )
    if admin_override and not actor.is_admin:
        raise AuthorizationError("Only admins can override the payment check")

    handoff = await get_handoff(db, handoff_id, for_update=True)
    ensure_can_act(actor, handoff)

    summary = await ledger.get_summary(db, handoff.id)
    check_action(handoff, status, summary, admin_override=admin_override)

    details: dict = {}
    if status == "manufacturer_found":
        values = {**{f: getattr(handoff, f) for f in MANUFACTURER_FIELDS}, **(manufacturer or {})}
        validate_manufacturer_fields(
            values["manufacturer_name"],
            values["manufacturer_address"],
            values["manufacturer_contact_name"],
            values["manufacturer_contact_email"],
            values["manufacturer_contact_phone"],
        )
        _apply_manufacturer(handoff, values, actor)
        details["manufacturer_name"] = handoff.manufacturer_name
    elif status == "shipped":
        validate_shipping(shipper, tracking_number)
        handoff.shipper = shipper.strip()
        handoff.tracking_number = tracking_number.strip()
        details.update(shipper=handoff.shipper, tracking_number=handoff.tracking_number)
    elif status == "cancelled":
        validate_cancel_reason(cancel_reason)
        handoff.cancel_reason = cancel_reason.strip()
        details["reason"] = handoff.cancel_reason
    elif status == "paid" and not summary.settled:
        details["admin_override"] = True
        details["balance"] = summary.balance

    from_status = handoff.status
    handoff.status = status
    setattr(handoff, MILESTONE_TIMESTAMPS[status], datetime.utcnow())

    if status == "cancelled" and handoff.conversation_id:
        await db.execute(
            update(Conversation)
            .where(Conversation.id == handoff.conversation_id)
            .values(project_status="cancelled", updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )

    await log_handoff_event(
        db, actor, handoff,
        action="status_changed",
        from_status=from_status,
        to_status=status,
        summary=f"{from_status} → {status}",
        details=details or None,
    )
    await db.flush()

    logger.info("Handoff %s: %s -> %s by %s", handoff.token, from_status, status, actor.username)
    return handoff


def _apply_manufacturer(handoff: Handoff, values: dict, actor: InternalUser) -> dict:
    """Write manufacturer fields; returns {field: [old, new]} for changed ones."""
    changes = {}
    for field in MANUFACTURER_FIELDS:
        new = (values.get(field) or "").strip() or None
        old = getattr(handoff, field)
        if new != old:
            changes[field] = [old, new]
            setattr(handoff, field, new)
    if changes:
        handoff.manufacturer_details_updated_at = datetime.utcnow()
        handoff.manufacturer_details_updated_by = actor.id
    return changes


async def update_manufacturer(
    db: AsyncSession,
    handoff_id: str,
    actor: InternalUser,
    fields: dict,
) -> Handoff:
    """Edit manufacturer details; old and new values go to the audit trail."""
    handoff = await get_handoff(db, handoff_id, for_update=True)
    ensure_can_act(actor, handoff)
    if handoff.status in ("pending", "cancelled"):
        raise StateConflictError(
            f"Manufacturer details cannot be edited while the handoff is {handoff.status}."
        )

    values = {**{f: getattr(handoff, f) for f in MANUFACTURER_FIELDS}, **fields}
    if handoff.status != "claimed":
        # Once found, the manufacturer record must stay complete
        validate_manufacturer_fields(
            values["manufacturer_name"],
            values["manufacturer_address"],
            values["manufacturer_contact_name"],
            values["manufacturer_contact_email"],
            values["manufacturer_contact_phone"],
        )

    changes = _apply_manufacturer(handoff, values, actor)
    if changes:
        await log_handoff_event(
            db, actor, handoff,
            action="manufacturer_updated",
            summary=f"Updated {', '.join(sorted(changes))}",
            details={"changes": changes},
        )
        await db.flush()
    return handoff


# ── Queries ─────────────────────────────────────────────────

def _visible_to(stmt, actor: InternalUser):
    if actor.is_admin:
        return stmt
    return stmt.where(
        or_(
            Handoff.claimed_by == actor.id,
            (Handoff.status == "pending") & Handoff.claimed_by.is_(None),
        )
    )


async def list_handoffs(
    db: AsyncSession,
    actor: InternalUser,
    *,
    status: str | None = None,
    q: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Handoff], int]:
    stmt = _visible_to(select(Handoff), actor)
    if status:
        stmt = stmt.where(Handoff.status == status)
    if q:
        like = f"%{q.strip()}%"
        stmt = stmt.where(
            or_(
                Handoff.token.ilike(like),
                Handoff.email.ilike(like),
                Handoff.customer_name.ilike(like),
            )
        )

    total = (await db.execute(
        select(func.count()).select_from(stmt.subquery())
    )).scalar() or 0

    result = await db.execute(
        stmt.order_by(Handoff.created_at.desc()).limit(limit).offset(offset)
    )
    return list(result.scalars().all()), total


async def status_counts(db: AsyncSession, actor: InternalUser) -> dict[str, int]:
    stmt = _visible_to(
        select(Handoff.status, func.count(Handoff.id)), actor
    ).group_by(Handoff.status)
    counts = {s: 0 for s in HANDOFF_STATUSES}
    for status, count in (await db.execute(stmt)).all():
        counts[status] = count
    return counts


async def list_events(db: AsyncSession, handoff_id: str) -> list[HandoffEvent]:
    result = await db.execute(
        select(HandoffEvent)
        .where(HandoffEvent.handoff_id == handoff_id)
        .order_by(HandoffEvent.created_at)
    )
    return list(result.scalars().all())
