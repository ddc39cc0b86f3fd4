"""Pytest configuration and fixtures for LineScout tests.

Every test gets a fresh in-memory SQLite database (aiosqlite), the app's
`get_db` and auth dependencies overridden, and outbound email/push
captured in an `outbox` instead of being sent.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ.setdefault("DEBUG", "false")

from datetime import datetime
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from linescout.auth.deps import get_current_customer, get_current_user
from linescout.auth.permissions import resolve_permissions
from linescout.database import Base, get_db
from linescout.main import app
from linescout.middleware.exceptions import ValidationError
from linescout.models import (
    AgentPayoutAccount,
    AgentProfile,
    InternalUser,
    InternalUserPermission,
    User,
    UserRole,
)
from linescout.services import notifications, paystack
from linescout.services.handoffs import create_handoff
from linescout.utils.numbering import format_receipt_token


# ── Test Database Setup ──────────────────────────────────────────

@pytest_asyncio.fixture
async def test_engine():
    """Fresh in-memory database per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    session_factory = async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False
    )
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(db_session) -> AsyncGenerator[AsyncClient, None]:
    """Test client sharing the test session with the app."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def act_as():
    """Make the API treat requests as coming from `user`.

    Internal users get the permissions they would have after sign-in.
    """
    def _act(user, permissions: list[str] | None = None):
        if isinstance(user, User):
            app.dependency_overrides[get_current_customer] = lambda: user
            return user

        if permissions is None:
            permissions = resolve_permissions(
                user.role.value,
                {"can_view_handoffs": True, "can_view_leads": True},
            )
        user._token_payload = {"sub": user.id, "permissions": permissions}
        app.dependency_overrides[get_current_user] = lambda: user
        return user

    return _act


# ── Outbound stubs ───────────────────────────────────────────────

@pytest.fixture(autouse=True)
def outbox(monkeypatch) -> dict:
    """Capture email and push instead of talking to SMTP/Expo."""
    box = {"emails": [], "pushes": []}

    async def fake_email(to, subject, lines):
        if not to:
            return False
        box["emails"].append({"to": to, "subject": subject, "lines": lines})
        return True

    async def fake_push(tokens, title, body, data=None):
        tokens = [t for t in tokens if t]
        if tokens:
            box["pushes"].append({"tokens": tokens, "title": title, "data": data or {}})
        return bool(tokens)

    monkeypatch.setattr(notifications, "send_notice_email", fake_email)
    monkeypatch.setattr(notifications, "send_expo_push", fake_push)
    return box


@pytest.fixture
def paystack_tx(monkeypatch):
    """Register fake Paystack transactions; returns an `add(...)` helper."""
    transactions: dict[str, dict] = {}

    async def fake_verify(reference: str) -> dict:
        if reference not in transactions:
            raise ValidationError("Transaction reference not found", error_code="PAYSTACK_REJECTED")
        return transactions[reference]

    monkeypatch.setattr(paystack, "verify_transaction", fake_verify)

    def _add(reference, *, user_id, amount_naira, purpose="sourcing", status="success", **metadata):
        transactions[reference] = {
            "reference": reference,
            "status": status,
            "amount": int(amount_naira * 100),
            "currency": "NGN",
            "metadata": {"user_id": user_id, "purpose": purpose, **metadata},
        }
        return transactions[reference]

    return _add


# ── Test Data Fixtures ───────────────────────────────────────────

async def make_agent(
    db: AsyncSession,
    username: str,
    *,
    approval_status: str = "approved",
    is_active: bool = True,
    ready: bool = True,
) -> InternalUser:
    now = datetime.utcnow()
    user = InternalUser(
        username=username,
        hashed_password="!",
        role=UserRole.AGENT,
        is_active=is_active,
    )
    db.add(user)
    await db.flush()

    approved = approval_status == "approved"
    db.add(AgentProfile(
        internal_user_id=user.id,
        first_name=username.title(),
        last_name="Agent",
        email=f"{username}@agents.test",
        china_phone="+8613812345678" if ready else None,
        china_phone_verified_at=now if ready else None,
        nin="12345678901" if ready else None,
        nin_verified_at=now if ready else None,
        full_address="18 Canton Road, Guangzhou" if ready else None,
        approval_status=approval_status,
        approved_at=now if approved else None,
    ))
    db.add(InternalUserPermission(
        internal_user_id=user.id,
        can_view_handoffs=approved,
        can_view_leads=approved,
    ))
    if ready:
        db.add(AgentPayoutAccount(
            internal_user_id=user.id,
            bank_code="058",
            account_number="0123456789",
            account_name=f"{username.title()} Agent",
            status="verified",
            verified_at=now,
        ))
    await db.flush()
    return user


@pytest_asyncio.fixture
async def admin(db_session: AsyncSession) -> InternalUser:
    user = InternalUser(
        username="admin",
        hashed_password="!",
        role=UserRole.ADMIN,
        is_active=True,
    )
    db_session.add(user)
    await db_session.flush()
    return user


@pytest_asyncio.fixture
async def agent(db_session: AsyncSession) -> InternalUser:
    """Approved, active agent with a complete readiness checklist."""
    return await make_agent(db_session, "wei")


@pytest_asyncio.fixture
async def other_agent(db_session: AsyncSession) -> InternalUser:
    return await make_agent(db_session, "lin")


@pytest_asyncio.fixture
async def customer(db_session: AsyncSession) -> User:
    user = User(email="ada@example.com", display_name="Ada Buyer")
    db_session.add(user)
    await db_session.flush()
    return user


@pytest.fixture
def make_handoff(db_session: AsyncSession):
    """Create a handoff and force it into `status` for the test."""
    async def _make(
        status: str = "pending",
        claimed_by: InternalUser | None = None,
        user: User | None = None,
        **fields,
    ):
        handoff = await create_handoff(
            db_session,
            token=format_receipt_token("sourcing"),
            user_id=user.id if user else None,
            customer_name="Ada Buyer",
            email=user.email if user else "buyer@example.com",
            whatsapp_number="+2348012345678",
            context="Pet bottle blowing machine, 2000 bph",
        )
        now = datetime.utcnow()
        handoff.status = status
        if claimed_by is not None:
            handoff.claimed_by = claimed_by.id
            handoff.claimed_at = now
        if status == "delivered":
            handoff.delivered_at = now
        for field, value in fields.items():
            setattr(handoff, field, value)
        await db_session.flush()
        return handoff

    return _make


# ── Test Markers ─────────────────────────────────────────────────

def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "api: API endpoint tests")
