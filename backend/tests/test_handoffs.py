"""Handoff claim, transition and queue tests."""

import asyncio

import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from conftest import make_agent
from linescout.database import Base
from linescout.middleware.exceptions import (
    AuthorizationError,
    StateConflictError,
    ValidationError,
)
from linescout.models.conversation import Conversation
from linescout.models.handoff import Handoff
from linescout.services import approval, ledger
from linescout.services.handoffs import (
    claim_handoff,
    create_handoff,
    list_events,
    list_handoffs,
    status_counts,
    update_manufacturer,
    update_status,
)
from linescout.utils.numbering import format_receipt_token

MANUFACTURER = {
    "manufacturer_name": "Guangzhou Tech Co.",
    "manufacturer_address": "88 Huangpu Ave, Guangzhou",
    "manufacturer_contact_phone": "+8613912345678",
}


@pytest.mark.integration
@pytest.mark.asyncio
class TestClaim:

    async def test_claim_pending_handoff(self, db_session, make_handoff, agent):
        handoff = await make_handoff()

        claimed = await claim_handoff(db_session, handoff.id, agent)

        assert claimed.status == "claimed"
        assert claimed.claimed_by == agent.id
        assert claimed.claimed_at is not None
        actions = [e.action for e in await list_events(db_session, handoff.id)]
        assert actions[-1] == "claimed"

    async def test_second_claim_loses(self, db_session, make_handoff, agent, other_agent):
        handoff = await make_handoff()
        await claim_handoff(db_session, handoff.id, agent)

        with pytest.raises(StateConflictError) as exc:
            await claim_handoff(db_session, handoff.id, other_agent)
        assert exc.value.error_code == "ALREADY_CLAIMED"
        assert handoff.claimed_by == agent.id

    async def test_concurrent_claims_have_one_winner(self, tmp_path):
        # Separate sessions on a shared file database, so each claim
        # runs in its own connection and transaction
        engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'claims.db'}")
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        sessions = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

        async with sessions() as db:
            wei = await make_agent(db, "wei")
            lin = await make_agent(db, "lin")
            handoff = await create_handoff(
                db,
                token=format_receipt_token("sourcing"),
                email="buyer@example.com",
                context="Carton erector, semi-automatic",
            )
            await db.commit()

        async def attempt(actor):
            async with sessions() as db:
                try:
                    await claim_handoff(db, handoff.id, actor)
                    await db.commit()
                    return "ok"
                except StateConflictError:
                    await db.rollback()
                    return "conflict"

        try:
            outcomes = await asyncio.gather(attempt(wei), attempt(lin))

            async with sessions() as db:
                stored = (await db.execute(
                    select(Handoff).where(Handoff.id == handoff.id)
                )).scalar_one()
        finally:
            await engine.dispose()

        assert sorted(outcomes) == ["conflict", "ok"]
        winner = wei if outcomes[0] == "ok" else lin
        assert stored.status == "claimed"
        assert stored.claimed_by == winner.id

    async def test_unapproved_agent_cannot_claim(self, db_session, make_handoff):
        newcomer = await make_agent(db_session, "newbie", approval_status="pending")
        handoff = await make_handoff()

        with pytest.raises(AuthorizationError):
            await claim_handoff(db_session, handoff.id, newcomer)
        assert handoff.status == "pending"

    async def test_blocked_or_inactive_agent_cannot_claim(self, db_session, make_handoff):
        blocked = await make_agent(db_session, "blocked", approval_status="blocked")
        inactive = await make_agent(db_session, "idle", is_active=False)
        handoff = await make_handoff()

        for actor in (blocked, inactive):
            with pytest.raises(AuthorizationError):
                await claim_handoff(db_session, handoff.id, actor)

    async def test_claim_limit(self, db_session, make_handoff, agent, admin):
        await approval.set_claim_limit(db_session, agent.id, 1, admin)
        await make_handoff("claimed", claimed_by=agent)
        handoff = await make_handoff()

        with pytest.raises(AuthorizationError):
            await claim_handoff(db_session, handoff.id, agent)

    async def test_finished_work_does_not_count_toward_limit(
        self, db_session, make_handoff, agent, admin
    ):
        await approval.set_claim_limit(db_session, agent.id, 1, admin)
        await make_handoff("delivered", claimed_by=agent)
        await make_handoff("cancelled", claimed_by=agent)
        handoff = await make_handoff()

        claimed = await claim_handoff(db_session, handoff.id, agent)
        assert claimed.claimed_by == agent.id

    async def test_claim_assigns_conversation(self, db_session, make_handoff, agent, customer):
        conversation = Conversation(user_id=customer.id, chat_mode="paid_human")
        db_session.add(conversation)
        await db_session.flush()
        handoff = await make_handoff(user=customer, conversation_id=conversation.id)

        await claim_handoff(db_session, handoff.id, agent)

        result = await db_session.execute(
            select(Conversation.assigned_agent_id).where(Conversation.id == conversation.id)
        )
        assert result.scalar_one() == agent.id


@pytest.mark.integration
@pytest.mark.asyncio
class TestStatusTransitions:

    async def test_full_happy_path(self, db_session, make_handoff, agent):
        handoff = await make_handoff("claimed", claimed_by=agent)

        await update_status(
            db_session, handoff.id, agent, "manufacturer_found", manufacturer=MANUFACTURER
        )
        assert handoff.manufacturer_found_at is not None
        assert handoff.manufacturer_name == "Guangzhou Tech Co."

        await ledger.record_payment(
            db_session, handoff, amount=1000, purpose="full_payment", total_due=1000, actor=agent,
        )
        await update_status(db_session, handoff.id, agent, "paid")
        await update_status(
            db_session, handoff.id, agent, "shipped", shipper="DHL", tracking_number="JD0146"
        )
        await update_status(db_session, handoff.id, agent, "delivered")

        assert handoff.status == "delivered"
        assert handoff.tracking_number == "JD0146"
        assert handoff.delivered_at is not None

    async def test_manufacturer_found_needs_details(self, db_session, make_handoff, agent):
        handoff = await make_handoff("claimed", claimed_by=agent)
        with pytest.raises(ValidationError):
            await update_status(
                db_session, handoff.id, agent, "manufacturer_found",
                manufacturer={"manufacturer_name": "Acme"},
            )
        assert handoff.status == "claimed"

    async def test_paid_blocked_while_balance_outstanding(self, db_session, make_handoff, agent):
        handoff = await make_handoff("manufacturer_found", claimed_by=agent, **MANUFACTURER)
        await ledger.record_payment(
            db_session, handoff, amount=400, purpose="downpayment", total_due=1000, actor=agent,
        )

        with pytest.raises(StateConflictError) as exc:
            await update_status(db_session, handoff.id, agent, "paid")
        assert exc.value.error_code == "BALANCE_OUTSTANDING"

    async def test_admin_override_marks_paid(self, db_session, make_handoff, agent, admin):
        handoff = await make_handoff("manufacturer_found", claimed_by=agent, **MANUFACTURER)

        await update_status(db_session, handoff.id, admin, "paid", admin_override=True)

        assert handoff.status == "paid"
        events = await list_events(db_session, handoff.id)
        assert events[-1].details["admin_override"] is True

    async def test_agent_cannot_override(self, db_session, make_handoff, agent):
        handoff = await make_handoff("manufacturer_found", claimed_by=agent, **MANUFACTURER)
        with pytest.raises(AuthorizationError):
            await update_status(db_session, handoff.id, agent, "paid", admin_override=True)

    async def test_shipped_needs_shipper_and_tracking(self, db_session, make_handoff, agent):
        handoff = await make_handoff("paid", claimed_by=agent)
        with pytest.raises(ValidationError):
            await update_status(db_session, handoff.id, agent, "shipped", shipper="DHL")

    async def test_cannot_skip_steps(self, db_session, make_handoff, agent):
        handoff = await make_handoff("claimed", claimed_by=agent)
        with pytest.raises(StateConflictError):
            await update_status(db_session, handoff.id, agent, "delivered")

    async def test_cancel_is_terminal(self, db_session, make_handoff, agent):
        handoff = await make_handoff("shipped", claimed_by=agent)

        await update_status(
            db_session, handoff.id, agent, "cancelled", cancel_reason="Customer withdrew"
        )
        assert handoff.cancelled_at is not None

        with pytest.raises(StateConflictError):
            await update_status(
                db_session, handoff.id, agent, "cancelled", cancel_reason="Again"
            )

    async def test_cancel_requires_reason(self, db_session, make_handoff, agent):
        handoff = await make_handoff("claimed", claimed_by=agent)
        with pytest.raises(ValidationError):
            await update_status(db_session, handoff.id, agent, "cancelled", cancel_reason=" ")

    async def test_only_claimer_or_admin_may_act(
        self, db_session, make_handoff, agent, other_agent, admin
    ):
        handoff = await make_handoff("claimed", claimed_by=agent)
        with pytest.raises(AuthorizationError):
            await update_status(
                db_session, handoff.id, other_agent, "cancelled", cancel_reason="Not mine"
            )

        await update_status(db_session, handoff.id, admin, "cancelled", cancel_reason="Duplicate")
        assert handoff.status == "cancelled"

    @pytest.mark.parametrize("status", ["pending", "claimed", "lost"])
    async def test_invalid_target_status(self, db_session, make_handoff, agent, status):
        handoff = await make_handoff("claimed", claimed_by=agent)
        with pytest.raises(ValidationError) as exc:
            await update_status(db_session, handoff.id, agent, status)
        assert exc.value.error_code == "INVALID_STATUS"


@pytest.mark.integration
@pytest.mark.asyncio
class TestManufacturerEdits:

    async def test_edit_is_audited_with_old_and_new(self, db_session, make_handoff, agent):
        handoff = await make_handoff("manufacturer_found", claimed_by=agent, **MANUFACTURER)

        await update_manufacturer(
            db_session, handoff.id, agent, {"manufacturer_name": "Foshan Machines"}
        )

        event = (await list_events(db_session, handoff.id))[-1]
        assert event.action == "manufacturer_updated"
        assert event.details["changes"]["manufacturer_name"] == [
            "Guangzhou Tech Co.", "Foshan Machines",
        ]
        assert handoff.manufacturer_details_updated_by == agent.id

    async def test_cannot_blank_required_field_after_found(self, db_session, make_handoff, agent):
        handoff = await make_handoff("paid", claimed_by=agent, **MANUFACTURER)
        with pytest.raises(ValidationError):
            await update_manufacturer(
                db_session, handoff.id, agent, {"manufacturer_address": ""}
            )

    async def test_not_editable_while_pending(self, db_session, make_handoff, admin):
        handoff = await make_handoff()
        with pytest.raises(StateConflictError):
            await update_manufacturer(db_session, handoff.id, admin, MANUFACTURER)


@pytest.mark.integration
@pytest.mark.asyncio
class TestQueue:

    async def test_agent_sees_open_queue_and_own_work(
        self, db_session, make_handoff, agent, other_agent, admin
    ):
        open_handoff = await make_handoff()
        mine = await make_handoff("claimed", claimed_by=agent)
        theirs = await make_handoff("claimed", claimed_by=other_agent)

        items, total = await list_handoffs(db_session, agent)
        ids = {h.id for h in items}
        assert ids == {open_handoff.id, mine.id}
        assert total == 2

        _, total = await list_handoffs(db_session, admin)
        assert total == 3
        assert theirs.id not in ids

    async def test_search_by_token(self, db_session, make_handoff, admin):
        handoff = await make_handoff()
        await make_handoff()

        items, total = await list_handoffs(db_session, admin, q=handoff.token.lower())
        assert total == 1
        assert items[0].id == handoff.id

    async def test_status_counts(self, db_session, make_handoff, agent, admin):
        await make_handoff()
        await make_handoff("claimed", claimed_by=agent)
        await make_handoff("delivered", claimed_by=agent)

        counts = await status_counts(db_session, admin)
        assert counts["pending"] == 1
        assert counts["claimed"] == 1
        assert counts["delivered"] == 1
        assert counts["shipped"] == 0


@pytest.mark.api
@pytest.mark.asyncio
class TestHandoffsAPI:

    async def test_requires_auth(self, client: AsyncClient):
        resp = await client.get("/api/internal/handoffs")
        assert resp.status_code == 401

    async def test_claim_then_conflict(
        self, client: AsyncClient, act_as, make_handoff, agent, other_agent
    ):
        handoff = await make_handoff()

        act_as(agent)
        resp = await client.post(f"/api/internal/handoffs/{handoff.id}/claim")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "claimed"
        assert body["allowed_actions"] == ["manufacturer_found", "cancelled"]

        act_as(other_agent)
        resp = await client.post(f"/api/internal/handoffs/{handoff.id}/claim")
        assert resp.status_code == 409
        assert resp.json()["ok"] is False
        assert resp.json()["code"] == "ALREADY_CLAIMED"

    async def test_unapproved_agent_has_no_queue(self, client: AsyncClient, act_as, db_session):
        newcomer = await make_agent(db_session, "fresh", approval_status="pending", ready=False)
        act_as(newcomer, permissions=["handoffs.write", "payments.write", "quotes.write"])

        resp = await client.get("/api/internal/handoffs")
        assert resp.status_code == 403

    async def test_status_update_and_detail(
        self, client: AsyncClient, act_as, make_handoff, agent
    ):
        handoff = await make_handoff("claimed", claimed_by=agent)
        act_as(agent)

        resp = await client.post(
            f"/api/internal/handoffs/{handoff.id}/status",
            json={"status": "Manufacturer_Found", **MANUFACTURER},
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "manufacturer_found"
        assert body["allowed_actions"] == ["record_payment", "cancelled"]
        assert body["financials"]["total_due"] == 0

        resp = await client.get(f"/api/internal/handoffs/{handoff.id}")
        assert resp.status_code == 200
        detail = resp.json()
        assert detail["handoff"]["manufacturer_name"] == "Guangzhou Tech Co."
        assert [e["action"] for e in detail["events"]][-1] == "status_changed"

    async def test_paid_with_balance_is_409(
        self, client: AsyncClient, act_as, make_handoff, agent
    ):
        handoff = await make_handoff("manufacturer_found", claimed_by=agent, **MANUFACTURER)
        act_as(agent)

        resp = await client.post(
            f"/api/internal/handoffs/{handoff.id}/status", json={"status": "paid"}
        )
        assert resp.status_code == 409
        assert resp.json()["code"] == "BALANCE_OUTSTANDING"

    async def test_other_agents_cannot_view_claimed_work(
        self, client: AsyncClient, act_as, make_handoff, agent, other_agent
    ):
        handoff = await make_handoff("claimed", claimed_by=agent)
        act_as(other_agent)

        resp = await client.get(f"/api/internal/handoffs/{handoff.id}")
        assert resp.status_code == 403

    async def test_summary_route(self, client: AsyncClient, act_as, make_handoff, admin):
        await make_handoff()
        act_as(admin)

        resp = await client.get("/api/internal/handoffs/summary")
        assert resp.status_code == 200
        assert resp.json()["counts"]["pending"] == 1
        assert resp.json()["total"] == 1

    async def test_unknown_handoff_is_404(self, client: AsyncClient, act_as, admin):
        act_as(admin)
        resp = await client.get("/api/internal/handoffs/does-not-exist")
        assert resp.status_code == 404
        assert resp.json()["code"] == "RESOURCE_NOT_FOUND"
