"""Free intake, quotes and the customer mobile endpoints."""

import pytest
from httpx import AsyncClient
from sqlalchemy import select

from linescout.models.token import PaymentToken
from linescout.models.user import DeviceToken, User
from linescout.utils.numbering import format_receipt_token

INTAKE_URL = "/api/linescout-handoffs/create"


async def _sourcing_token(db_session, customer, **fields) -> PaymentToken:
    token = PaymentToken(
        token=format_receipt_token("sourcing"),
        token_type="sourcing",
        user_id=customer.id,
        email=customer.email,
        amount=100_000,
        **fields,
    )
    db_session.add(token)
    await db_session.flush()
    return token


@pytest.mark.api
@pytest.mark.asyncio
class TestIntake:

    async def test_token_opens_one_handoff(
        self, client: AsyncClient, db_session, customer, agent, outbox
    ):
        token = await _sourcing_token(db_session, customer)
        form = {
            "token": token.token.lower(),
            "email": "Ada@Example.com",
            "whatsapp_number": "0801 234 5678",
            "context": "Sachet water machine",
        }

        resp = await client.post(INTAKE_URL, json=form)
        assert resp.status_code == 201
        assert resp.json()["status"] == "pending"
        assert resp.json()["token"] == token.token
        assert token.handoff_id == resp.json()["handoff_id"]
        assert "wei@agents.test" in [e["to"] for e in outbox["emails"]]

        resp = await client.post(INTAKE_URL, json=form)
        assert resp.status_code == 409
        assert resp.json()["code"] == "TOKEN_USED"

    async def test_unknown_token(self, client: AsyncClient):
        resp = await client.post(INTAKE_URL, json={
            "token": "SRC-NOPE00-NOPE0",
            "email": "a@example.com",
            "whatsapp_number": "+2348012345678",
            "context": "Anything",
        })
        assert resp.status_code == 404

    async def test_business_plan_token_is_not_a_sourcing_token(
        self, client: AsyncClient, db_session, customer
    ):
        token = PaymentToken(
            token=format_receipt_token("business_plan"), token_type="business_plan",
            user_id=customer.id, amount=20_000,
        )
        db_session.add(token)
        await db_session.flush()

        resp = await client.post(INTAKE_URL, json={
            "token": token.token,
            "email": "a@example.com",
            "whatsapp_number": "+2348012345678",
            "context": "Anything",
        })
        assert resp.status_code == 404

    async def test_invalid_whatsapp_is_422(self, client: AsyncClient):
        resp = await client.post(INTAKE_URL, json={
            "token": "SRC-AAAAAA-AAAAA",
            "email": "a@example.com",
            "whatsapp_number": "12",
            "context": "Anything",
        })
        assert resp.status_code == 422


@pytest.mark.api
@pytest.mark.asyncio
class TestQuotes:

    async def test_agent_sends_quote_and_customer_views_it(
        self, client: AsyncClient, act_as, make_handoff, agent
    ):
        handoff = await make_handoff("manufacturer_found", claimed_by=agent)
        act_as(agent)

        resp = await client.post(
            f"/api/internal/handoffs/{handoff.id}/quotes",
            json={
                "items": [{"name": "Blow moulder", "quantity": 1, "unit_price_ngn": 1200000}],
                "total_due_ngn": 1500000,
                "payment_purpose": "deposit",
            },
        )
        assert resp.status_code == 201
        quote = resp.json()
        assert quote["token"].startswith("Q-")
        assert quote["status"] == "sent"

        resp = await client.get(f"/api/quote/{quote['token'].lower()}")
        assert resp.status_code == 200
        assert resp.json()["handoff_token"] == handoff.token
        assert resp.json()["summary"]["total_due"] == 0

        resp = await client.get(f"/api/internal/handoffs/{handoff.id}/quotes")
        assert [q["id"] for q in resp.json()] == [quote["id"]]

    async def test_no_quotes_on_pending_or_closed_work(
        self, client: AsyncClient, act_as, make_handoff, admin
    ):
        act_as(admin)
        for status in ("pending", "cancelled"):
            handoff = await make_handoff(status)
            resp = await client.post(
                f"/api/internal/handoffs/{handoff.id}/quotes",
                json={"items": [{"name": "Anything"}], "total_due_ngn": 100},
            )
            assert resp.status_code == 409

    async def test_empty_quote_is_422(self, client: AsyncClient, act_as, make_handoff, agent):
        handoff = await make_handoff("claimed", claimed_by=agent)
        act_as(agent)
        resp = await client.post(
            f"/api/internal/handoffs/{handoff.id}/quotes",
            json={"items": [], "total_due_ngn": 100},
        )
        assert resp.status_code == 422

    async def test_unknown_public_quote(self, client: AsyncClient):
        resp = await client.get("/api/quote/Q-DOESNOTEXIST")
        assert resp.status_code == 404


@pytest.mark.api
@pytest.mark.asyncio
class TestMobile:

    async def test_my_handoffs_with_ledger(
        self, client: AsyncClient, act_as, make_handoff, customer, agent
    ):
        mine = await make_handoff("claimed", claimed_by=agent, user=customer)
        await make_handoff()
        act_as(customer)

        resp = await client.get("/api/mobile/handoffs")

        assert resp.status_code == 200
        assert [h["id"] for h in resp.json()] == [mine.id]
        assert resp.json()[0]["financials"]["balance"] == 0

    async def test_device_token_moves_between_accounts(
        self, client: AsyncClient, act_as, db_session, customer
    ):
        act_as(customer)
        resp = await client.post(
            "/api/mobile/device-tokens",
            json={"token": "ExponentPushToken[abc]", "platform": "ios"},
        )
        assert resp.status_code == 200

        spouse = User(email="spouse@example.com")
        db_session.add(spouse)
        await db_session.flush()
        act_as(spouse)
        await client.post(
            "/api/mobile/device-tokens", json={"token": "ExponentPushToken[abc]"}
        )

        devices = (await db_session.execute(select(DeviceToken))).scalars().all()
        assert len(devices) == 1
        assert devices[0].user_id == spouse.id
