"""Reorder linker: turn a paid repeat order into a new linked handoff.

A customer can re-order from a handoff that reached `delivered`.  The new
conversation, handoff, system message and reorder row are written in the
caller's transaction; the caller commits and then fans out.

Assignment:
  - the source handoff's agent, if still approved + active → `assigned`
    and the new handoff starts `claimed` by them
  - otherwise → `pending_admin` until an admin assigns someone

Lifecycle:  pending_admin → assigned → in_progress → closed
"""

import logging
from datetime import datetime

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from linescout.middleware.exceptions import (
    AuthorizationError,
    DuplicateRequestError,
    ResourceNotFoundError,
    SourceNotEligible,
    StateConflictError,
    ValidationError,
)
from linescout.models.conversation import Conversation, Message
from linescout.models.handoff import Handoff
from linescout.models.internal_user import InternalUser
from linescout.models.quote import Quote
from linescout.models.reorder import ReorderRequest
from linescout.models.user import User
from linescout.services.approval import AgentRecord, get_agent, is_eligible
from linescout.services.handoffs import create_handoff
from linescout.services.lifecycle import TERMINAL_STATUSES
from linescout.utils.activity import log_handoff_event
from linescout.utils.numbering import generate_receipt_token

logger = logging.getLogger(__name__)

REORDER_STATUSES = ("pending_admin", "assigned", "in_progress", "closed")


def reorder_payload(reorder: ReorderRequest) -> dict:
    """The ids a verify call returns, both first time and on replay."""
    return {
        "purpose": "reorder",
        "reorder_id": reorder.id,
        "handoff_id": reorder.new_handoff_id,
        "conversation_id": reorder.new_conversation_id,
        "status": reorder.status,
    }


async def get_by_reference(db: AsyncSession, paystack_ref: str) -> ReorderRequest | None:
    result = await db.execute(
        select(ReorderRequest).where(ReorderRequest.paystack_ref == paystack_ref)
    )
    return result.scalar_one_or_none()


async def get_reorder(db: AsyncSession, reorder_id: str) -> ReorderRequest:
    result = await db.execute(
        select(ReorderRequest).where(ReorderRequest.id == reorder_id)
    )
    reorder = result.scalar_one_or_none()
    if reorder is None:
        raise ResourceNotFoundError("Reorder", reorder_id)
    return reorder


async def _quote_summary(db: AsyncSession, handoff_id: str) -> str | None:
    """One line per item of the source handoff's latest quote."""
    result = await db.execute(
        select(Quote)
        .where(Quote.handoff_id == handoff_id)
        .order_by(Quote.created_at.desc())
        .limit(1)
    )
    quote = result.scalar_one_or_none()
    if quote is None or not quote.items:
        return None

    lines = []
    for item in quote.items:
        name = (item.get("name") or item.get("product_name") or "Item").strip()
        qty = item.get("quantity")
        lines.append(f"- {qty} x {name}" if qty else f"- {name}")
    return "\n".join(lines)


def _is_delivered(handoff: Handoff) -> bool:
    return handoff.status == "delivered" or handoff.delivered_at is not None


async def create_reorder(
    db: AsyncSession,
    user: User,
    source_handoff_id: str,
    *,
    paystack_ref: str,
    amount_naira: float | None = None,
    user_note: str | None = None,
) -> tuple[ReorderRequest, Handoff, AgentRecord | None]:
    """Open a new handoff linked to a delivered one.

    Returns (reorder, new handoff, assigned agent or None).  A reference
    that was already processed raises DuplicateRequestError carrying the
    existing ids.
    """
    existing = await get_by_reference(db, paystack_ref)
    if existing is not None:
        raise DuplicateRequestError(paystack_ref, reorder_payload(existing))

    # Row lock on the source serializes reorders of the same project
    result = await db.execute(
        select(Handoff).where(Handoff.id == source_handoff_id).with_for_update()
    )
    source = result.scalar_one_or_none()
    if source is None or source.user_id != user.id or not _is_delivered(source):
        raise SourceNotEligible()

    open_reorder = await db.execute(
        select(ReorderRequest.id).where(
            ReorderRequest.source_handoff_id == source.id,
            ReorderRequest.status != "closed",
        )
    )
    if open_reorder.first():
        raise StateConflictError(
            "A re-order for this project is already in progress.",
            error_code="REORDER_IN_PROGRESS",
        )

    user_note = (user_note or "").strip() or None
    context_parts = [f"Re-order of {source.token}."]
    items = await _quote_summary(db, source.id)
    if items:
        context_parts.append(f"Previous quote items:\n{items}")
    if user_note:
        context_parts.append(f"Customer note: {user_note}")

    agent = await get_agent(db, source.claimed_by)
    if not is_eligible(agent):
        agent = None

    route_type = "white_label" if source.handoff_type == "white_label" else "machine_sourcing"
    conversation = Conversation(
        user_id=user.id,
        title=f"Re-order: {source.token}",
        route_type=route_type,
        chat_mode="paid_human",
        payment_status="paid",
        assigned_agent_id=agent.user.id if agent else None,
    )
    db.add(conversation)
    await db.flush()

    handoff = await create_handoff(
        db,
        token=await generate_receipt_token(db, "sourcing"),
        handoff_type=source.handoff_type,
        user_id=user.id,
        customer_name=source.customer_name,
        email=source.email or user.email,
        whatsapp_number=source.whatsapp_number,
        context="\n\n".join(context_parts),
        conversation_id=conversation.id,
        claimed_by=agent.user.id if agent else None,
        actor=user,
    )
    conversation.handoff_id = handoff.id

    db.add(Message(
        conversation_id=conversation.id,
        sender_type="system",
        body=(
            f"This is a re-order of project {source.token}. "
            + ("Your previous agent has been assigned." if agent
               else "An agent will be assigned shortly.")
        ),
    ))

    now = datetime.utcnow()
    reorder = ReorderRequest(
        user_id=user.id,
        source_conversation_id=source.conversation_id,
        source_handoff_id=source.id,
        new_conversation_id=conversation.id,
        new_handoff_id=handoff.id,
        route_type=route_type,
        status="assigned" if agent else "pending_admin",
        original_agent_id=source.claimed_by,
        assigned_agent_id=agent.user.id if agent else None,
        assigned_at=now if agent else None,
        user_note=user_note,
        paystack_ref=paystack_ref,
        amount_ngn=amount_naira,
        paid_at=now,
    )
    db.add(reorder)
    await log_handoff_event(
        db, user, handoff,
        action="reorder_created",
        summary=f"Re-order of {source.token}",
        details={"source_handoff_id": source.id, "paystack_ref": paystack_ref},
    )
    await db.flush()

    logger.info(
        "Reorder %s created from %s (%s)", reorder.id, source.token, reorder.status
    )
    return reorder, handoff, agent


async def assign_reorder(
    db: AsyncSession,
    reorder_id: str,
    agent_id: str,
    admin: InternalUser,
    admin_note: str | None = None,
) -> tuple[ReorderRequest, Handoff, AgentRecord]:
    """Admin assignment of a reorder to an approved, active agent."""
    reorder = await get_reorder(db, reorder_id)
    if reorder.status == "closed":
        raise StateConflictError("This re-order is already closed.")

    agent = await get_agent(db, agent_id)
    if agent is None:
        raise ResourceNotFoundError("Agent", agent_id)
    if not is_eligible(agent):
        raise AuthorizationError("Agent must be approved and active to take re-orders")

    if not reorder.new_handoff_id:
        raise ValidationError("Re-order has no linked handoff")
    result = await db.execute(
        select(Handoff).where(Handoff.id == reorder.new_handoff_id).with_for_update()
    )
    handoff = result.scalar_one()

    now = datetime.utcnow()
    if handoff.status == "pending" and handoff.claimed_by is None:
        handoff.status = "claimed"
        handoff.claimed_by = agent.user.id
        handoff.claimed_at = now
        await log_handoff_event(
            db, admin, handoff,
            action="claimed",
            from_status="pending",
            to_status="claimed",
            summary=f"Assigned to {agent.user.username} (re-order)",
        )

    if reorder.new_conversation_id:
        await db.execute(
            update(Conversation)
            .where(Conversation.id == reorder.new_conversation_id)
            .values(assigned_agent_id=agent.user.id, updated_at=now)
            .execution_options(synchronize_session=False)
        )

    reorder.assigned_agent_id = agent.user.id
    reorder.assigned_at = now
    if reorder.status == "pending_admin":
        reorder.status = "assigned"
    if admin_note is not None:
        reorder.admin_note = admin_note.strip() or None
    await db.flush()

    logger.info(
        "Reorder %s assigned to %s by %s", reorder.id, agent.user.username, admin.username
    )
    return reorder, handoff, agent


async def list_reorders(
    db: AsyncSession,
    actor: InternalUser,
    *,
    status: str | None = None,
    q: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[ReorderRequest], int]:
    stmt = select(ReorderRequest)
    if not actor.is_admin:
        stmt = stmt.where(ReorderRequest.assigned_agent_id == actor.id)
    if status:
        stmt = stmt.where(ReorderRequest.status == status)
    if q:
        like = f"%{q.strip()}%"
        tokens = select(Handoff.id).where(Handoff.token.ilike(like))
        stmt = stmt.where(
            or_(
                ReorderRequest.paystack_ref.ilike(like),
                ReorderRequest.user_note.ilike(like),
                ReorderRequest.new_handoff_id.in_(tokens),
                ReorderRequest.source_handoff_id.in_(tokens),
            )
        )

    total = (await db.execute(
        select(func.count()).select_from(stmt.subquery())
    )).scalar() or 0
    result = await db.execute(
        stmt.order_by(ReorderRequest.created_at.desc()).limit(limit).offset(offset)
    )
    return list(result.scalars().all()), total


async def close_resolved_reorders(db: AsyncSession) -> dict[str, int]:
    """Advance open reorders to match their new handoff.

    Closed once the handoff is delivered or cancelled; `assigned` becomes
    `in_progress` once the handoff moves past `claimed`.
    """
    result = await db.execute(
        select(ReorderRequest, Handoff.status)
        .join(Handoff, Handoff.id == ReorderRequest.new_handoff_id)
        .where(ReorderRequest.status != "closed")
    )

    counts = {"closed": 0, "in_progress": 0}
    now = datetime.utcnow()
    for reorder, handoff_status in result.all():
        if handoff_status in TERMINAL_STATUSES:
            reorder.status = "closed"
            reorder.closed_at = now
            counts["closed"] += 1
        elif reorder.status == "assigned" and handoff_status not in ("pending", "claimed"):
            reorder.status = "in_progress"
            counts["in_progress"] += 1

    if counts["closed"] or counts["in_progress"]:
        await db.flush()
        logger.info(
            "Reorder sweep: %d closed, %d in progress",
            counts["closed"], counts["in_progress"],
        )
    return counts
