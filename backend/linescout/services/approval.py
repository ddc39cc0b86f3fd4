"""Agent readiness checklist and the approval gate.

An agent may be approved only once all five checks pass:

    phone_ok      China phone verified, or a valid +86 mobile on file
    nin_provided  NIN entered
    nin_ok        NIN verified by an admin
    address_ok    full address entered
    bank_ok       payout account verified against Paystack

Approval is the only gated transition.  Moving an agent back to
`pending` or to `blocked` is always allowed.  Only approved + active
agents can claim work, receive new-handoff fan-out, or be auto-assigned
a reorder.
"""

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from linescout.middleware.exceptions import (
    NotReady,
    ResourceNotFoundError,
    ValidationError,
)
from linescout.models.agent_profile import AgentPayoutAccount, AgentProfile
from linescout.models.internal_user import (
    InternalUser,
    InternalUserPermission,
    UserRole,
)
from linescout.schemas.validators import is_valid_china_mobile

logger = logging.getLogger(__name__)

APPROVAL_STATUSES = ("pending", "approved", "blocked")

# Order in which missing items are reported
READINESS_CHECKS = ("phone_ok", "nin_provided", "nin_ok", "address_ok", "bank_ok")


@dataclass(frozen=True)
class Readiness:
    phone_ok: bool
    nin_provided: bool
    nin_ok: bool
    address_ok: bool
    bank_ok: bool

    @property
    def ready(self) -> bool:
        return not self.missing

    @property
    def missing(self) -> list[str]:
        return [name for name in READINESS_CHECKS if not getattr(self, name)]

    def as_dict(self) -> dict:
        data = {name: getattr(self, name) for name in READINESS_CHECKS}
        data["ready"] = self.ready
        data["missing"] = self.missing
        return data


def compute_readiness(
    profile: AgentProfile | None,
    payout_account: AgentPayoutAccount | None,
) -> Readiness:
    """Evaluate the checklist. Pure: reads the rows, never writes."""
    if profile is None:
        phone_ok = nin_provided = nin_ok = address_ok = False
    else:
        phone_ok = bool(profile.china_phone_verified_at) or is_valid_china_mobile(
            profile.china_phone
        )
        nin_provided = bool((profile.nin or "").strip())
        nin_ok = bool(profile.nin_verified_at)
        address_ok = bool((profile.full_address or "").strip())

    bank_ok = bool(
        payout_account
        and (payout_account.verified_at or payout_account.status == "verified")
    )
    return Readiness(
        phone_ok=phone_ok,
        nin_provided=nin_provided,
        nin_ok=nin_ok,
        address_ok=address_ok,
        bank_ok=bank_ok,
    )


# ── Loading ──────────────────────────────────────────────────

@dataclass
class AgentRecord:
    """An internal user together with the rows that describe them as an agent."""
    user: InternalUser
    profile: AgentProfile | None
    permissions: InternalUserPermission | None
    payout_account: AgentPayoutAccount | None

    @property
    def readiness(self) -> Readiness:
        return compute_readiness(self.profile, self.payout_account)

    @property
    def approval_status(self) -> str:
        return self.profile.approval_status if self.profile else "pending"

    @property
    def display_name(self) -> str:
        if self.profile and (self.profile.first_name or self.profile.last_name):
            return " ".join(
                p for p in (self.profile.first_name, self.profile.last_name) if p
            )
        return self.user.username

    @property
    def email(self) -> str | None:
        return self.profile.email if self.profile else None


def is_eligible(record: AgentRecord | None) -> bool:
    """Approved and active: may claim, be notified and be auto-assigned."""
    return bool(
        record
        and record.user.is_active
        and record.profile is not None
        and record.profile.approval_status == "approved"
    )


async def _records_for(db: AsyncSession, users: list[InternalUser]) -> list[AgentRecord]:
    ids = [u.id for u in users]
    if not ids:
        return []

    profiles = {
        p.internal_user_id: p
        for p in (await db.execute(
            select(AgentProfile).where(AgentProfile.internal_user_id.in_(ids))
        )).scalars().all()
    }
    permissions = {
        p.internal_user_id: p
        for p in (await db.execute(
            select(InternalUserPermission).where(
                InternalUserPermission.internal_user_id.in_(ids)
            )
        )).scalars().all()
    }
    accounts = {
        a.internal_user_id: a
        for a in (await db.execute(
            select(AgentPayoutAccount).where(AgentPayoutAccount.internal_user_id.in_(ids))
        )).scalars().all()
    }
    return [
        AgentRecord(
            user=u,
            profile=profiles.get(u.id),
            permissions=permissions.get(u.id),
            payout_account=accounts.get(u.id),
        )
        for u in users
    ]


async def get_agent(db: AsyncSession, agent_id: str | None) -> AgentRecord | None:
    if not agent_id:
        return None
    result = await db.execute(
        select(InternalUser).where(
            InternalUser.id == agent_id, InternalUser.role == UserRole.AGENT
        )
    )
    user = result.scalar_one_or_none()
    if user is None:
        return None
    return (await _records_for(db, [user]))[0]


async def load_agent(db: AsyncSession, agent_id: str) -> AgentRecord:
    record = await get_agent(db, agent_id)
    if record is None:
        raise ResourceNotFoundError("Agent", agent_id)
    return record


async def list_agents(
    db: AsyncSession, approval_status: str | None = None
) -> list[AgentRecord]:
    result = await db.execute(
        select(InternalUser)
        .where(InternalUser.role == UserRole.AGENT)
        .order_by(InternalUser.created_at.desc())
    )
    records = await _records_for(db, list(result.scalars().all()))
    if approval_status:
        records = [r for r in records if r.approval_status == approval_status]
    return records


async def eligible_agents(db: AsyncSession) -> list[AgentRecord]:
    """Every approved, active agent (new-handoff fan-out audience)."""
    result = await db.execute(
        select(InternalUser)
        .join(AgentProfile, AgentProfile.internal_user_id == InternalUser.id)
        .where(
            InternalUser.role == UserRole.AGENT,
            InternalUser.is_active == True,  # noqa: E712
            AgentProfile.approval_status == "approved",
        )
    )
    return await _records_for(db, list(result.scalars().all()))


# ── Approval transitions ─────────────────────────────────────

def _ensure_profile(db: AsyncSession, record: AgentRecord) -> AgentProfile:
    if record.profile is None:
        record.profile = AgentProfile(internal_user_id=record.user.id)
        db.add(record.profile)
    return record.profile


def _set_view_permissions(db: AsyncSession, record: AgentRecord, granted: bool) -> None:
    if record.permissions is None:
        record.permissions = InternalUserPermission(internal_user_id=record.user.id)
        db.add(record.permissions)
    record.permissions.can_view_handoffs = granted
    record.permissions.can_view_leads = granted


async def approve(
    db: AsyncSession, agent_id: str, admin: InternalUser
) -> AgentRecord:
    """Approve an agent whose readiness checklist is complete."""
    record = await load_agent(db, agent_id)
    readiness = record.readiness
    if not readiness.ready:
        raise NotReady(readiness.missing)

    profile = _ensure_profile(db, record)
    profile.approval_status = "approved"
    profile.approved_at = datetime.utcnow()
    profile.approved_by = admin.id
    profile.rejection_reason = None
    _set_view_permissions(db, record, True)
    await db.flush()

    logger.info("Agent %s approved by %s", record.user.username, admin.username)
    return record


async def set_approval_status(
    db: AsyncSession,
    agent_id: str,
    status: str,
    admin: InternalUser,
    reason: str | None = None,
) -> AgentRecord:
    """Move an agent to `pending` or `blocked`. No readiness precondition."""
    if status not in ("pending", "blocked"):
        raise ValidationError("Status must be 'pending' or 'blocked'")

    record = await load_agent(db, agent_id)
    profile = _ensure_profile(db, record)
    profile.approval_status = status
    profile.approved_at = None
    profile.approved_by = None
    if status == "blocked":
        profile.rejection_reason = (reason or "").strip() or None
    else:
        profile.rejection_reason = None
    _set_view_permissions(db, record, False)
    await db.flush()

    logger.info("Agent %s set to %s by %s", record.user.username, status, admin.username)
    return record


async def verify_nin(db: AsyncSession, agent_id: str, admin: InternalUser) -> AgentRecord:
    record = await load_agent(db, agent_id)
    if record.profile is None or not (record.profile.nin or "").strip():
        raise ValidationError("Agent has not provided a NIN")

    record.profile.nin_verified_at = datetime.utcnow()
    await db.flush()
    logger.info("NIN verified for agent %s by %s", record.user.username, admin.username)
    return record


async def set_claim_limit(
    db: AsyncSession, agent_id: str, limit: int | None, admin: InternalUser
) -> AgentRecord:
    """Override how many ongoing handoffs the agent may hold (None = default)."""
    record = await load_agent(db, agent_id)
    profile = _ensure_profile(db, record)
    profile.claim_limit_override = limit
    await db.flush()
    logger.info(
        "Claim limit for %s set to %s by %s", record.user.username, limit, admin.username
    )
    return record
