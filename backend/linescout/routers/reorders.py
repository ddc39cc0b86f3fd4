"""Reorder requests.

Endpoints:
    GET  /api/internal/reorders               Admin: all; agent: assigned to me
    POST /api/internal/reorders/{id}/assign   Admin assigns an agent
    POST /api/internal/reorders/sweep         Admin runs the close/advance sweep now
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from linescout.auth.deps import get_current_user, require_admin
from linescout.database import get_db
from linescout.models.internal_user import InternalUser
from linescout.schemas.common import PaginatedResponse
from linescout.schemas.reorder import ReorderAssign, ReorderOut
from linescout.services import notifications, reorders

router = APIRouter()


@router.get("", response_model=PaginatedResponse[ReorderOut])
async def list_reorders(
    status: str | None = Query(None),
    q: str | None = Query(None, max_length=100),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    user: InternalUser = Depends(get_current_user),
):
    items, total = await reorders.list_reorders(
        db, user, status=status, q=q, limit=limit, offset=offset
    )
    return PaginatedResponse[ReorderOut](
        items=[ReorderOut.model_validate(r) for r in items],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.post("/sweep")
async def run_sweep(
    db: AsyncSession = Depends(get_db),
    _admin: InternalUser = Depends(require_admin),
):
    counts = await reorders.close_resolved_reorders(db)
    return {"ok": True, **counts}


@router.post("/{reorder_id}/assign", response_model=ReorderOut)
async def assign_reorder(
    reorder_id: str,
    body: ReorderAssign,
    db: AsyncSession = Depends(get_db),
    admin: InternalUser = Depends(require_admin),
):
    reorder, handoff, agent = await reorders.assign_reorder(
        db, reorder_id, body.agent_id, admin, admin_note=body.admin_note
    )
    await db.commit()

    await notifications.notify_reorder_assigned(db, reorder, handoff, agent)
    return ReorderOut.model_validate(reorder)
