"""Reorder linker tests."""

import pytest
from httpx import AsyncClient
from sqlalchemy import event, func, select

from conftest import make_agent
from linescout.middleware.exceptions import (
    AuthorizationError,
    DuplicateRequestError,
    SourceNotEligible,
    StateConflictError,
)
from linescout.models.conversation import Message
from linescout.models.handoff import Handoff
from linescout.models.quote import Quote
from linescout.models.reorder import ReorderRequest
from linescout.models.user import User
from linescout.services import approval, reorders
from linescout.services.handoffs import update_status


@pytest.mark.integration
@pytest.mark.asyncio
class TestCreateReorder:

    async def test_previous_agent_is_assigned(self, db_session, make_handoff, agent, customer):
        source = await make_handoff("delivered", claimed_by=agent, user=customer)

        reorder, handoff, assigned = await reorders.create_reorder(
            db_session, customer, source.id, paystack_ref="ref-reorder-1", amount_naira=20000,
        )

        assert reorder.status == "assigned"
        assert reorder.assigned_agent_id == agent.id
        assert reorder.original_agent_id == agent.id
        assert assigned.user.id == agent.id
        assert handoff.status == "claimed"
        assert handoff.claimed_by == agent.id
        assert handoff.id != source.id
        assert reorder.new_handoff_id == handoff.id

    async def test_ineligible_agent_goes_to_admin(
        self, db_session, make_handoff, agent, customer, admin
    ):
        source = await make_handoff("delivered", claimed_by=agent, user=customer)
        await approval.set_approval_status(db_session, agent.id, "blocked", admin)

        reorder, handoff, assigned = await reorders.create_reorder(
            db_session, customer, source.id, paystack_ref="ref-reorder-2",
        )

        assert reorder.status == "pending_admin"
        assert reorder.assigned_agent_id is None
        assert reorder.original_agent_id == agent.id
        assert assigned is None
        assert handoff.status == "pending"
        assert handoff.claimed_by is None

    async def test_context_carries_quote_items_and_note(
        self, db_session, make_handoff, agent, customer
    ):
        source = await make_handoff("delivered", claimed_by=agent, user=customer)
        db_session.add(Quote(
            handoff_id=source.id, token="Q-REORDERQ01", total_due_ngn=500000,
            created_by=agent.id,
            items=[{"name": "Capping machine", "quantity": 2}, {"name": "Conveyor"}],
        ))
        await db_session.flush()

        _, handoff, _ = await reorders.create_reorder(
            db_session, customer, source.id, paystack_ref="ref-reorder-3",
            user_note="Same spec, blue paint",
        )

        assert f"Re-order of {source.token}." in handoff.context
        assert "- 2 x Capping machine" in handoff.context
        assert "- Conveyor" in handoff.context
        assert "Customer note: Same spec, blue paint" in handoff.context

    async def test_system_message_in_new_conversation(
        self, db_session, make_handoff, agent, customer
    ):
        source = await make_handoff("delivered", claimed_by=agent, user=customer)
        reorder, _, _ = await reorders.create_reorder(
            db_session, customer, source.id, paystack_ref="ref-reorder-4",
        )

        result = await db_session.execute(
            select(Message).where(Message.conversation_id == reorder.new_conversation_id)
        )
        message = result.scalar_one()
        assert message.sender_type == "system"
        assert source.token in message.body

    @pytest.mark.parametrize("status", ["pending", "claimed", "paid", "shipped", "cancelled"])
    async def test_source_must_be_delivered(
        self, db_session, make_handoff, agent, customer, status
    ):
        source = await make_handoff(status, claimed_by=agent, user=customer)
        with pytest.raises(SourceNotEligible):
            await reorders.create_reorder(
                db_session, customer, source.id, paystack_ref=f"ref-{status}",
            )

    async def test_source_must_belong_to_customer(self, db_session, make_handoff, agent, customer):
        stranger = User(email="someone@example.com")
        db_session.add(stranger)
        await db_session.flush()
        source = await make_handoff("delivered", claimed_by=agent, user=customer)

        with pytest.raises(SourceNotEligible):
            await reorders.create_reorder(
                db_session, stranger, source.id, paystack_ref="ref-stranger",
            )

    async def test_missing_source(self, db_session, customer):
        with pytest.raises(SourceNotEligible):
            await reorders.create_reorder(
                db_session, customer, "no-such-handoff", paystack_ref="ref-missing",
            )

    async def test_same_reference_creates_one_reorder(
        self, db_session, make_handoff, agent, customer
    ):
        source = await make_handoff("delivered", claimed_by=agent, user=customer)
        reorder, handoff, _ = await reorders.create_reorder(
            db_session, customer, source.id, paystack_ref="ref-dup",
        )

        with pytest.raises(DuplicateRequestError) as exc:
            await reorders.create_reorder(
                db_session, customer, source.id, paystack_ref="ref-dup",
            )

        assert exc.value.existing["reorder_id"] == reorder.id
        assert exc.value.existing["handoff_id"] == handoff.id
        count = await db_session.execute(select(func.count(ReorderRequest.id)))
        assert count.scalar() == 1

    async def test_one_open_reorder_per_source(self, db_session, make_handoff, agent, customer):
        source = await make_handoff("delivered", claimed_by=agent, user=customer)
        await reorders.create_reorder(
            db_session, customer, source.id, paystack_ref="ref-open-1",
        )

        with pytest.raises(StateConflictError) as exc:
            await reorders.create_reorder(
                db_session, customer, source.id, paystack_ref="ref-open-2",
            )
        assert exc.value.error_code == "REORDER_IN_PROGRESS"

    async def test_source_row_is_locked_before_open_check(
        self, db_session, make_handoff, agent, customer
    ):
        source = await make_handoff("delivered", claimed_by=agent, user=customer)
        statements = []

        def capture(orm_execute_state):
            if orm_execute_state.is_select:
                statements.append(orm_execute_state.statement)

        event.listen(db_session.sync_session, "do_orm_execute", capture)
        try:
            await reorders.create_reorder(
                db_session, customer, source.id, paystack_ref="ref-lock-1",
            )
        finally:
            event.remove(db_session.sync_session, "do_orm_execute", capture)

        locked = [
            i for i, stmt in enumerate(statements)
            if stmt._for_update_arg is not None
            and stmt.column_descriptions[0]["entity"] is Handoff
        ]
        # select(ReorderRequest.id) for the source's non-closed reorders
        open_check = next(
            i for i, stmt in enumerate(statements)
            if stmt.column_descriptions[0]["entity"] is ReorderRequest
            and stmt.column_descriptions[0]["name"] == "id"
        )
        assert locked and locked[0] < open_check


@pytest.mark.integration
@pytest.mark.asyncio
class TestAssignAndSweep:

    async def _pending_reorder(self, db_session, make_handoff, customer):
        source = await make_handoff("delivered", user=customer)
        reorder, _, _ = await reorders.create_reorder(
            db_session, customer, source.id, paystack_ref="ref-assign",
        )
        return reorder

    async def test_admin_assigns_pending_reorder(
        self, db_session, make_handoff, customer, other_agent, admin
    ):
        reorder = await self._pending_reorder(db_session, make_handoff, customer)

        reorder, handoff, assigned = await reorders.assign_reorder(
            db_session, reorder.id, other_agent.id, admin, admin_note="Lin knows this factory",
        )

        assert reorder.status == "assigned"
        assert reorder.assigned_agent_id == other_agent.id
        assert reorder.admin_note == "Lin knows this factory"
        assert handoff.status == "claimed"
        assert handoff.claimed_by == other_agent.id
        assert assigned.user.id == other_agent.id

    async def test_cannot_assign_unapproved_agent(
        self, db_session, make_handoff, customer, admin
    ):
        reorder = await self._pending_reorder(db_session, make_handoff, customer)
        newcomer = await make_agent(db_session, "rookie", approval_status="pending")

        with pytest.raises(AuthorizationError):
            await reorders.assign_reorder(db_session, reorder.id, newcomer.id, admin)

    async def test_sweep_advances_and_closes(
        self, db_session, make_handoff, agent, customer
    ):
        source = await make_handoff("delivered", claimed_by=agent, user=customer)
        reorder, handoff, _ = await reorders.create_reorder(
            db_session, customer, source.id, paystack_ref="ref-sweep",
        )

        assert await reorders.close_resolved_reorders(db_session) == {
            "closed": 0, "in_progress": 0,
        }

        handoff.manufacturer_name = "Acme"
        handoff.manufacturer_address = "1 Road"
        handoff.manufacturer_contact_name = "Li"
        await update_status(db_session, handoff.id, agent, "manufacturer_found")
        assert await reorders.close_resolved_reorders(db_session) == {
            "closed": 0, "in_progress": 1,
        }
        assert reorder.status == "in_progress"

        await update_status(
            db_session, handoff.id, agent, "cancelled", cancel_reason="Customer changed mind"
        )
        assert await reorders.close_resolved_reorders(db_session) == {
            "closed": 1, "in_progress": 0,
        }
        assert reorder.status == "closed"
        assert reorder.closed_at is not None

    async def test_closed_reorder_frees_the_source(
        self, db_session, make_handoff, agent, customer, admin
    ):
        source = await make_handoff("delivered", claimed_by=agent, user=customer)
        _, handoff, _ = await reorders.create_reorder(
            db_session, customer, source.id, paystack_ref="ref-first",
        )
        await update_status(db_session, handoff.id, admin, "cancelled", cancel_reason="Dup")
        await reorders.close_resolved_reorders(db_session)

        reorder, _, _ = await reorders.create_reorder(
            db_session, customer, source.id, paystack_ref="ref-second",
        )
        assert reorder.status == "assigned"


@pytest.mark.api
@pytest.mark.asyncio
class TestReordersAPI:

    async def test_admin_assign_notifies_agent(
        self, client: AsyncClient, act_as, db_session, make_handoff, customer,
        other_agent, admin, outbox,
    ):
        source = await make_handoff("delivered", user=customer)
        reorder, _, _ = await reorders.create_reorder(
            db_session, customer, source.id, paystack_ref="ref-api-assign",
        )
        act_as(admin)

        resp = await client.post(
            f"/api/internal/reorders/{reorder.id}/assign",
            json={"agent_id": other_agent.id},
        )

        assert resp.status_code == 200
        assert resp.json()["status"] == "assigned"
        assert resp.json()["assigned_agent_id"] == other_agent.id
        assert outbox["emails"][-1]["to"] == "lin@agents.test"

        result = await db_session.execute(
            select(Handoff.claimed_by).where(Handoff.id == reorder.new_handoff_id)
        )
        assert result.scalar_one() == other_agent.id

    async def test_agent_lists_only_own_reorders(
        self, client: AsyncClient, act_as, db_session, make_handoff, customer, agent, other_agent
    ):
        source = await make_handoff("delivered", claimed_by=agent, user=customer)
        await reorders.create_reorder(
            db_session, customer, source.id, paystack_ref="ref-api-list",
        )

        act_as(agent)
        resp = await client.get("/api/internal/reorders")
        assert resp.json()["total"] == 1

        act_as(other_agent)
        resp = await client.get("/api/internal/reorders")
        assert resp.json()["total"] == 0

    async def test_sweep_is_admin_only(self, client: AsyncClient, act_as, agent, admin):
        act_as(agent)
        resp = await client.post("/api/internal/reorders/sweep")
        assert resp.status_code == 403

        act_as(admin)
        resp = await client.post("/api/internal/reorders/sweep")
        assert resp.status_code == 200
        assert resp.json() == {"ok": True, "closed": 0, "in_progress": 0}
