"""Notification fan-out tests.

The autouse `outbox` fixture replaces the SMTP and Expo transports, so
these tests see exactly who would have been contacted.
"""

import smtplib

import pytest

from conftest import make_agent
from linescout.config import settings
from linescout.models.agent_profile import AgentDeviceToken
from linescout.models.user import DeviceToken
from linescout.services import approval, notifications, reorders
from linescout.services.lifecycle import PaymentSummary
from linescout.services.notifications import send_expo_push, send_notice_email


@pytest.mark.integration
@pytest.mark.asyncio
class TestFanOut:

    async def test_new_handoff_reaches_eligible_agents_only(
        self, db_session, make_handoff, agent, outbox
    ):
        await make_agent(db_session, "pending1", approval_status="pending")
        quiet = await make_agent(db_session, "quiet")
        record = await approval.load_agent(db_session, quiet.id)
        record.profile.email_notifications_enabled = False
        db_session.add(AgentDeviceToken(internal_user_id=agent.id, token="ExponentPushToken[wei]"))
        await db_session.flush()
        handoff = await make_handoff()

        await notifications.notify_new_handoff(db_session, handoff)

        recipients = [e["to"] for e in outbox["emails"]]
        assert "wei@agents.test" in recipients
        assert "pending1@agents.test" not in recipients
        assert "quiet@agents.test" not in recipients
        assert settings.admin_notify_email in recipients
        assert outbox["pushes"][0]["tokens"] == ["ExponentPushToken[wei]"]
        assert outbox["pushes"][0]["data"]["handoff_id"] == handoff.id

    async def test_payment_email_and_push_to_customer(
        self, db_session, make_handoff, customer, outbox
    ):
        db_session.add(DeviceToken(user_id=customer.id, token="ExponentPushToken[ada]"))
        await db_session.flush()
        handoff = await make_handoff("paid", user=customer)
        summary = PaymentSummary(total_due=1000, total_paid=400)

        await notifications.notify_payment_recorded(db_session, handoff, 400, summary)

        email = outbox["emails"][0]
        assert email["to"] == customer.email
        assert "Outstanding balance: NGN 600.00." in email["lines"]
        assert outbox["pushes"][0]["tokens"] == ["ExponentPushToken[ada]"]

    async def test_receipt_for_active_project(
        self, db_session, make_handoff, customer, outbox
    ):
        db_session.add(DeviceToken(user_id=customer.id, token="ExponentPushToken[ada]"))
        await db_session.flush()
        handoff = await make_handoff(user=customer)

        sent = await notifications.notify_payment_receipt(
            db_session, customer,
            token=handoff.token, amount=100_000, currency="NGN",
            reference="ref-receipt-1", handoff=handoff,
        )

        assert sent is True
        email = outbox["emails"][0]
        assert email["to"] == "ada@example.com"
        assert email["lines"][0] == "Hi Ada,"
        assert "Sourcing Project is Active" in email["subject"]
        assert "Amount: NGN 100,000.00" in email["lines"][2]
        assert outbox["pushes"][0]["data"] == {"type": "paid_chat", "handoff_id": handoff.id}

    async def test_receipt_without_customer_is_skipped(self, db_session, outbox):
        sent = await notifications.notify_payment_receipt(
            db_session, None,
            token="BP-ABC123-DEF45", amount=20_000, currency="NGN", reference="ref-x",
        )
        assert sent is False
        assert outbox["emails"] == []

    async def test_reorder_without_agent_alerts_admin(
        self, db_session, make_handoff, customer, outbox
    ):
        source = await make_handoff("delivered", user=customer)
        reorder, handoff, agent = await reorders.create_reorder(
            db_session, customer, source.id, paystack_ref="ref-notify",
        )

        await notifications.notify_reorder_created(db_session, reorder, handoff, agent)

        recipients = [e["to"] for e in outbox["emails"]]
        assert recipients == [customer.email, settings.admin_notify_email]

    async def test_transport_errors_never_propagate(
        self, db_session, make_handoff, monkeypatch
    ):
        async def broken(*args, **kwargs):
            raise RuntimeError("smtp down")

        monkeypatch.setattr(notifications, "send_notice_email", broken)
        handoff = await make_handoff("paid")

        await notifications.notify_payment_recorded(
            db_session, handoff, 100, PaymentSummary(total_due=100, total_paid=100)
        )
        await notifications.notify_new_handoff(db_session, handoff)


@pytest.mark.unit
@pytest.mark.asyncio
class TestTransports:

    async def test_email_skipped_without_smtp(self, monkeypatch):
        monkeypatch.setattr(settings, "smtp_host", "")
        assert await send_notice_email("a@example.com", "Hi", ["Hello"]) is False

    async def test_email_without_recipient(self):
        assert await send_notice_email(None, "Hi", ["Hello"]) is False

    async def test_smtp_failure_returns_false(self, monkeypatch):
        def refuse(msg):
            raise smtplib.SMTPException("refused")

        monkeypatch.setattr(settings, "smtp_host", "smtp.example.com")
        monkeypatch.setattr(notifications, "_smtp_send", refuse)
        assert await send_notice_email("a@example.com", "Hi", ["Hello"]) is False

    async def test_email_sent(self, monkeypatch):
        sent = []
        monkeypatch.setattr(settings, "smtp_host", "smtp.example.com")
        monkeypatch.setattr(notifications, "_smtp_send", sent.append)

        assert await send_notice_email("a@example.com", "Hi", ["Hello"]) is True
        assert sent[0]["To"] == "a@example.com"
        assert sent[0]["Subject"] == "Hi"

    async def test_push_without_tokens(self):
        assert await send_expo_push([], "Title", "Body") is False
