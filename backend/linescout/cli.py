"""Management CLI.

Usage:
    python -m linescout.cli create-admin <username> <password>
    python -m linescout.cli create-agent <username> <password>
    python -m linescout.cli close-reorders     # Run the reorder sweep once
"""

import asyncio
import sys

from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session

from linescout.auth.password import hash_password
from linescout.config import settings
from linescout.models import AgentProfile, InternalUser, InternalUserPermission, UserRole


def create_internal_user(username: str, password: str, role: UserRole) -> None:
    engine = create_engine(settings.database_url_sync)
    with Session(engine) as session:
        existing = session.execute(
            select(InternalUser).where(InternalUser.username == username)
        ).scalar_one_or_none()
        if existing:
            print(f"  User {username} already exists.")
            return

        user = InternalUser(
            username=username,
            hashed_password=hash_password(password),
            role=role,
        )
        session.add(user)
        session.flush()

        admin = role == UserRole.ADMIN
        session.add(InternalUserPermission(
            internal_user_id=user.id,
            can_view_handoffs=admin,
            can_view_leads=admin,
            can_view_analytics=admin,
        ))
        if not admin:
            session.add(AgentProfile(internal_user_id=user.id, approval_status="pending"))
        session.commit()
        print(f"  Created {role.value} {username} ({user.id})")


def close_reorders() -> None:
    from linescout.services.scheduler import run_reorder_sweep

    counts = asyncio.run(run_reorder_sweep())
    if counts is None:
        print("  Sweep FAILED (see logs)")
        sys.exit(1)
    print(f"  {counts['closed']} closed, {counts['in_progress']} moved to in_progress")


if __name__ == "__main__":
    cmd = sys.argv[1] if len(sys.argv) > 1 else ""
    if cmd in ("create-admin", "create-agent") and len(sys.argv) == 4:
        role = UserRole.ADMIN if cmd == "create-admin" else UserRole.AGENT
        create_internal_user(sys.argv[2], sys.argv[3], role)
    elif cmd == "close-reorders":
        close_reorders()
    else:
        print("Usage: python -m linescout.cli [create-admin|create-agent <username> <password>|close-reorders]")
