"""Admin management of agents and the approval gate.

Endpoints:
    GET  /api/internal/admin/agents                    List with readiness
    GET  /api/internal/admin/agents/{id}               One agent
    POST /api/internal/admin/agents/{id}/approve       Approve (readiness required)
    POST /api/internal/admin/agents/{id}/status        Move to pending / blocked
    POST /api/internal/admin/agents/{id}/verify-nin    Mark NIN verified
    PUT  /api/internal/admin/agents/{id}/claim-limit   Override the claim limit
"""

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from linescout.auth.deps import require_admin
from linescout.auth.revocation import TokenRevocation
from linescout.database import get_db
from linescout.models.internal_user import InternalUser
from linescout.schemas.agent import (
    AgentOut,
    AgentProfileOut,
    ApprovalStatusUpdate,
    ClaimLimitUpdate,
    PayoutAccountOut,
)
from linescout.services import approval, notifications
from linescout.services.approval import AgentRecord

logger = logging.getLogger(__name__)

router = APIRouter()


def build_agent_out(record: AgentRecord) -> AgentOut:
    return AgentOut(
        id=record.user.id,
        username=record.user.username,
        display_name=record.display_name,
        is_active=record.user.is_active,
        approval_status=record.approval_status,
        profile=AgentProfileOut.model_validate(record.profile) if record.profile else None,
        payout_account=(
            PayoutAccountOut.model_validate(record.payout_account)
            if record.payout_account else None
        ),
        readiness=record.readiness.as_dict(),
        permissions=record.permissions.flags() if record.permissions else {},
        created_at=record.user.created_at,
    )


@router.get("", response_model=list[AgentOut])
async def list_agents(
    approval_status: str | None = Query(None),
    db: AsyncSession = Depends(get_db),
    _admin: InternalUser = Depends(require_admin),
):
    records = await approval.list_agents(db, approval_status)
    return [build_agent_out(r) for r in records]


@router.get("/{agent_id}", response_model=AgentOut)
async def get_agent(
    agent_id: str,
    db: AsyncSession = Depends(get_db),
    _admin: InternalUser = Depends(require_admin),
):
    return build_agent_out(await approval.load_agent(db, agent_id))


@router.post("/{agent_id}/approve", response_model=AgentOut)
async def approve_agent(
    agent_id: str,
    db: AsyncSession = Depends(get_db),
    admin: InternalUser = Depends(require_admin),
):
    record = await approval.approve(db, agent_id, admin)
    await db.commit()

    await notifications.notify_agent_approval(record, approved=True)
    return build_agent_out(record)


@router.post("/{agent_id}/status", response_model=AgentOut)
async def set_agent_status(
    agent_id: str,
    body: ApprovalStatusUpdate,
    db: AsyncSession = Depends(get_db),
    admin: InternalUser = Depends(require_admin),
):
    record = await approval.set_approval_status(
        db, agent_id, body.status, admin, reason=body.reason
    )
    await db.commit()

    # View permissions live in the JWT; force a fresh sign-in
    await TokenRevocation.revoke_all_user_tokens(record.user.id)
    if body.status == "blocked":
        await notifications.notify_agent_approval(record, approved=False, reason=body.reason)
    return build_agent_out(record)


@router.post("/{agent_id}/verify-nin", response_model=AgentOut)
async def verify_nin(
    agent_id: str,
    db: AsyncSession = Depends(get_db),
    admin: InternalUser = Depends(require_admin),
):
    return build_agent_out(await approval.verify_nin(db, agent_id, admin))


@router.put("/{agent_id}/claim-limit", response_model=AgentOut)
async def set_claim_limit(
    agent_id: str,
    body: ClaimLimitUpdate,
    db: AsyncSession = Depends(get_db),
    admin: InternalUser = Depends(require_admin),
):
    record = await approval.set_claim_limit(
        db, agent_id, body.claim_limit_override, admin
    )
    return build_agent_out(record)
