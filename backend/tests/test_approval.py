"""Agent readiness checklist and approval gate tests."""

from datetime import datetime

import pytest
from httpx import AsyncClient

from conftest import make_agent
from linescout.auth.permissions import resolve_permissions
from linescout.auth.revocation import TokenRevocation
from linescout.middleware.exceptions import NotReady, ValidationError
from linescout.models.agent_profile import AgentPayoutAccount, AgentProfile
from linescout.services import approval
from linescout.services.approval import compute_readiness, is_eligible


def _profile(**overrides) -> AgentProfile:
    now = datetime.utcnow()
    fields = dict(
        china_phone="+8613812345678",
        china_phone_verified_at=now,
        nin="12345678901",
        nin_verified_at=now,
        full_address="18 Canton Road, Guangzhou",
    )
    fields.update(overrides)
    return AgentProfile(**fields)


def _account(**overrides) -> AgentPayoutAccount:
    fields = dict(
        bank_code="058",
        account_number="0123456789",
        status="verified",
        verified_at=datetime.utcnow(),
    )
    fields.update(overrides)
    return AgentPayoutAccount(**fields)


@pytest.mark.unit
class TestReadiness:

    def test_complete_checklist_is_ready(self):
        readiness = compute_readiness(_profile(), _account())
        assert readiness.ready
        assert readiness.missing == []

    @pytest.mark.parametrize("profile_fields,account_fields,missing", [
        ({"china_phone": None, "china_phone_verified_at": None}, {}, "phone_ok"),
        ({"nin": None}, {}, "nin_provided"),
        ({"nin_verified_at": None}, {}, "nin_ok"),
        ({"full_address": "   "}, {}, "address_ok"),
        ({}, {"status": "pending", "verified_at": None}, "bank_ok"),
    ])
    def test_reports_the_one_missing_item(self, profile_fields, account_fields, missing):
        readiness = compute_readiness(_profile(**profile_fields), _account(**account_fields))
        assert not readiness.ready
        assert readiness.missing == [missing]

    def test_unverified_but_valid_china_mobile_counts(self):
        readiness = compute_readiness(_profile(china_phone_verified_at=None), _account())
        assert readiness.phone_ok

    def test_non_china_number_needs_verification(self):
        readiness = compute_readiness(
            _profile(china_phone="+2348012345678", china_phone_verified_at=None), _account()
        )
        assert not readiness.phone_ok

    def test_no_profile_no_account(self):
        readiness = compute_readiness(None, None)
        assert readiness.missing == [
            "phone_ok", "nin_provided", "nin_ok", "address_ok", "bank_ok",
        ]

    def test_as_dict(self):
        data = compute_readiness(_profile(), None).as_dict()
        assert data["bank_ok"] is False
        assert data["ready"] is False
        assert data["missing"] == ["bank_ok"]


@pytest.mark.integration
@pytest.mark.asyncio
class TestApprovalGate:

    async def test_approve_ready_agent(self, db_session, admin):
        user = await make_agent(db_session, "mei", approval_status="pending")

        record = await approval.approve(db_session, user.id, admin)

        assert record.approval_status == "approved"
        assert record.profile.approved_by == admin.id
        assert record.permissions.can_view_handoffs is True
        assert is_eligible(record)

    async def test_approve_not_ready(self, db_session, admin):
        user = await make_agent(db_session, "jun", approval_status="pending")
        record = await approval.load_agent(db_session, user.id)
        record.profile.nin_verified_at = None
        await db_session.flush()

        with pytest.raises(NotReady) as exc:
            await approval.approve(db_session, user.id, admin)

        assert exc.value.missing == ["nin_ok"]
        assert exc.value.error_code == "AGENT_NOT_READY"
        assert (await approval.load_agent(db_session, user.id)).approval_status == "pending"

    async def test_block_needs_no_readiness(self, db_session, admin):
        user = await make_agent(db_session, "hao", approval_status="pending", ready=False)

        record = await approval.set_approval_status(
            db_session, user.id, "blocked", admin, reason="Duplicate account"
        )

        assert record.approval_status == "blocked"
        assert record.profile.rejection_reason == "Duplicate account"
        assert record.permissions.can_view_handoffs is False
        assert not is_eligible(record)

    async def test_approved_back_to_pending_revokes_view(self, db_session, agent, admin):
        record = await approval.set_approval_status(db_session, agent.id, "pending", admin)
        assert record.approval_status == "pending"
        assert record.profile.approved_at is None
        assert record.permissions.can_view_handoffs is False

    async def test_approve_is_the_only_gated_target(self, db_session, agent, admin):
        with pytest.raises(ValidationError):
            await approval.set_approval_status(db_session, agent.id, "approved", admin)

    async def test_verify_nin_requires_nin(self, db_session, admin):
        user = await make_agent(db_session, "ping", approval_status="pending", ready=False)
        with pytest.raises(ValidationError):
            await approval.verify_nin(db_session, user.id, admin)

    async def test_eligible_agents(self, db_session, agent, other_agent):
        await make_agent(db_session, "waiting", approval_status="pending")
        await make_agent(db_session, "gone", is_active=False)

        names = {r.user.username for r in await approval.eligible_agents(db_session)}
        assert names == {"wei", "lin"}

    async def test_non_agents_are_not_agents(self, db_session, admin):
        assert await approval.get_agent(db_session, admin.id) is None


@pytest.mark.api
@pytest.mark.asyncio
class TestAdminAgentsAPI:

    async def test_requires_admin(self, client: AsyncClient, act_as, agent):
        act_as(agent)
        resp = await client.get("/api/internal/admin/agents")
        assert resp.status_code == 403

    async def test_approve_not_ready_is_400_with_missing(
        self, client: AsyncClient, act_as, db_session, admin
    ):
        user = await make_agent(db_session, "bo", approval_status="pending", ready=False)
        act_as(admin)

        resp = await client.post(f"/api/internal/admin/agents/{user.id}/approve")

        assert resp.status_code == 400
        body = resp.json()
        assert body["code"] == "AGENT_NOT_READY"
        assert body["details"]["missing"] == [
            "phone_ok", "nin_provided", "nin_ok", "address_ok", "bank_ok",
        ]

    async def test_approve_sends_email(
        self, client: AsyncClient, act_as, db_session, admin, outbox
    ):
        user = await make_agent(db_session, "xiu", approval_status="pending")
        act_as(admin)

        resp = await client.post(f"/api/internal/admin/agents/{user.id}/approve")

        assert resp.status_code == 200
        assert resp.json()["approval_status"] == "approved"
        assert resp.json()["readiness"]["ready"] is True
        assert outbox["emails"][-1]["to"] == "xiu@agents.test"
        assert "Approved" in outbox["emails"][-1]["subject"]

    async def test_block_revokes_sessions(
        self, client: AsyncClient, act_as, agent, admin, outbox, monkeypatch
    ):
        revoked = []

        async def fake_revoke(user_id, duration=86400):
            revoked.append(user_id)
            return True

        monkeypatch.setattr(TokenRevocation, "revoke_all_user_tokens", fake_revoke)
        act_as(admin)

        resp = await client.post(
            f"/api/internal/admin/agents/{agent.id}/status",
            json={"status": "blocked", "reason": "Fraud report"},
        )

        assert resp.status_code == 200
        assert resp.json()["approval_status"] == "blocked"
        assert revoked == [agent.id]
        assert "Reason: Fraud report" in outbox["emails"][-1]["lines"]

    async def test_claim_limit_override(self, client: AsyncClient, act_as, agent, admin):
        act_as(admin)
        resp = await client.put(
            f"/api/internal/admin/agents/{agent.id}/claim-limit",
            json={"claim_limit_override": 5},
        )
        assert resp.status_code == 200
        assert resp.json()["profile"]["claim_limit_override"] == 5

    async def test_agent_sees_own_readiness(self, client: AsyncClient, act_as, agent):
        act_as(agent, permissions=resolve_permissions("agent", None))
        resp = await client.get("/api/internal/agents/me")
        assert resp.status_code == 200
        assert resp.json()["readiness"]["ready"] is True
