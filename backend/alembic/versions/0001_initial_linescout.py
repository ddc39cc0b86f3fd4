"""Initial LineScout schema: accounts, handoffs, ledger, quotes, reorders.

Revision ID: 0001
Revises: (none)
Create Date: 2026-10-19

Run with:
    alembic upgrade head
"""

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

from alembic import op
import sqlalchemy as sa


def upgrade() -> None:
    # ── Accounts ─────────────────────────────────────────────

    op.create_table(
        "users",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("display_name", sa.String(200), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("last_seen_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "internal_users",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("username", sa.String(100), nullable=False),
        sa.Column("hashed_password", sa.String(255), nullable=False),
        sa.Column("role", sa.Enum("ADMIN", "AGENT", name="userrole"), server_default="AGENT"),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_internal_users_username", "internal_users", ["username"], unique=True)

    op.create_table(
        "internal_user_permissions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("internal_user_id", sa.String(36), sa.ForeignKey("internal_users.id"), nullable=False, unique=True),
        sa.Column("can_view_leads", sa.Boolean(), server_default=sa.false()),
        sa.Column("can_view_handoffs", sa.Boolean(), server_default=sa.false()),
        sa.Column("can_view_analytics", sa.Boolean(), server_default=sa.false()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )

    op.create_table(
        "linescout_agent_profiles",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("internal_user_id", sa.String(36), sa.ForeignKey("internal_users.id"), nullable=False, unique=True),
        sa.Column("first_name", sa.String(100), nullable=True),
        sa.Column("last_name", sa.String(100), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("china_phone", sa.String(30), nullable=True),
        sa.Column("china_phone_verified_at", sa.DateTime(), nullable=True),
        sa.Column("nin", sa.String(20), nullable=True),
        sa.Column("nin_verified_at", sa.DateTime(), nullable=True),
        sa.Column("full_address", sa.Text(), nullable=True),
        sa.Column("approval_status", sa.String(20), server_default="pending"),
        sa.Column("approved_at", sa.DateTime(), nullable=True),
        sa.Column("approved_by", sa.String(36), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("email_notifications_enabled", sa.Boolean(), server_default=sa.true()),
        sa.Column("claim_limit_override", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_linescout_agent_profiles_email", "linescout_agent_profiles", ["email"])
    op.create_index("ix_linescout_agent_profiles_approval_status", "linescout_agent_profiles", ["approval_status"])

    op.create_table(
        "linescout_agent_payout_accounts",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("internal_user_id", sa.String(36), sa.ForeignKey("internal_users.id"), nullable=False, unique=True),
        sa.Column("bank_code", sa.String(20), nullable=False),
        sa.Column("account_number", sa.String(20), nullable=False),
        sa.Column("account_name", sa.String(200), nullable=True),
        sa.Column("status", sa.String(20), server_default="pending"),
        sa.Column("verified_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )

    op.create_table(
        "linescout_agent_device_tokens",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("internal_user_id", sa.String(36), sa.ForeignKey("internal_users.id"), nullable=False),
        sa.Column("token", sa.String(255), nullable=False, unique=True),
        sa.Column("platform", sa.String(20), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        sa.Column("last_seen_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_linescout_agent_device_tokens_internal_user_id", "linescout_agent_device_tokens", ["internal_user_id"])

    op.create_table(
        "linescout_device_tokens",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("token", sa.String(255), nullable=False, unique=True),
        sa.Column("platform", sa.String(20), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        sa.Column("last_seen_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_linescout_device_tokens_user_id", "linescout_device_tokens", ["user_id"])

    # ── Customer side ────────────────────────────────────────

    op.create_table(
        "linescout_conversations",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("title", sa.String(200), nullable=True),
        sa.Column("route_type", sa.String(30), server_default="machine_sourcing"),
        sa.Column("chat_mode", sa.String(20), server_default="ai_only"),
        sa.Column("payment_status", sa.String(20), server_default="unpaid"),
        sa.Column("project_status", sa.String(20), server_default="active"),
        sa.Column("handoff_id", sa.String(36), nullable=True),
        sa.Column("assigned_agent_id", sa.String(36), sa.ForeignKey("internal_users.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_linescout_conversations_user_id", "linescout_conversations", ["user_id"])
    op.create_index("ix_linescout_conversations_handoff_id", "linescout_conversations", ["handoff_id"])
    op.create_index("ix_linescout_conversations_assigned_agent_id", "linescout_conversations", ["assigned_agent_id"])

    op.create_table(
        "linescout_messages",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("conversation_id", sa.String(36), sa.ForeignKey("linescout_conversations.id"), nullable=False),
        sa.Column("sender_type", sa.String(20), nullable=False),
        sa.Column("sender_id", sa.String(36), nullable=True),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_linescout_messages_conversation_id", "linescout_messages", ["conversation_id"])
    op.create_index("ix_linescout_messages_created_at", "linescout_messages", ["created_at"])

    op.create_table(
        "linescout_tokens",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("token", sa.String(40), nullable=False),
        sa.Column("token_type", sa.String(20), nullable=False),
        sa.Column("route_type", sa.String(30), nullable=True),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("amount", sa.Float(), nullable=False),
        sa.Column("currency", sa.String(3), server_default="NGN"),
        sa.Column("paystack_ref", sa.String(100), nullable=True, unique=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("handoff_id", sa.String(36), nullable=True),
        sa.Column("conversation_id", sa.String(36), nullable=True),
        sa.Column("used_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_linescout_tokens_token", "linescout_tokens", ["token"], unique=True)

    # ── Handoffs ─────────────────────────────────────────────

    op.create_table(
        "linescout_handoffs",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("token", sa.String(40), nullable=False),
        sa.Column("handoff_type", sa.String(20), server_default="sourcing"),
        sa.Column("status", sa.String(30), server_default="pending"),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("customer_name", sa.String(200), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("whatsapp_number", sa.String(30), nullable=True),
        sa.Column("context", sa.Text(), nullable=True),
        sa.Column("conversation_id", sa.String(36), nullable=True),
        sa.Column("claimed_by", sa.String(36), sa.ForeignKey("internal_users.id"), nullable=True),
        sa.Column("claimed_at", sa.DateTime(), nullable=True),
        sa.Column("manufacturer_name", sa.String(255), nullable=True),
        sa.Column("manufacturer_address", sa.Text(), nullable=True),
        sa.Column("manufacturer_contact_name", sa.String(200), nullable=True),
        sa.Column("manufacturer_contact_email", sa.String(255), nullable=True),
        sa.Column("manufacturer_contact_phone", sa.String(50), nullable=True),
        sa.Column("manufacturer_details_updated_at", sa.DateTime(), nullable=True),
        sa.Column("manufacturer_details_updated_by", sa.String(36), nullable=True),
        sa.Column("manufacturer_found_at", sa.DateTime(), nullable=True),
        sa.Column("paid_at", sa.DateTime(), nullable=True),
        sa.Column("shipped_at", sa.DateTime(), nullable=True),
        sa.Column("shipper", sa.String(100), nullable=True),
        sa.Column("tracking_number", sa.String(100), nullable=True),
        sa.Column("delivered_at", sa.DateTime(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(), nullable=True),
        sa.Column("cancel_reason", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.CheckConstraint(
            "status IN ('pending', 'claimed', 'manufacturer_found', 'paid', "
            "'shipped', 'delivered', 'cancelled')",
            name="ck_linescout_handoffs_status",
        ),
    )
    op.create_index("ix_linescout_handoffs_token", "linescout_handoffs", ["token"], unique=True)
    op.create_index("ix_linescout_handoffs_status", "linescout_handoffs", ["status"])
    op.create_index("ix_linescout_handoffs_user_id", "linescout_handoffs", ["user_id"])
    op.create_index("ix_linescout_handoffs_conversation_id", "linescout_handoffs", ["conversation_id"])
    op.create_index("ix_linescout_handoffs_claimed_by", "linescout_handoffs", ["claimed_by"])
    op.create_index("ix_linescout_handoffs_created_at", "linescout_handoffs", ["created_at"])

    op.create_table(
        "linescout_handoff_events",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("handoff_id", sa.String(36), nullable=False),
        sa.Column("actor_type", sa.String(20), nullable=False),
        sa.Column("actor_id", sa.String(36), nullable=True),
        sa.Column("actor_name", sa.String(200), nullable=True),
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("from_status", sa.String(30), nullable=True),
        sa.Column("to_status", sa.String(30), nullable=True),
        sa.Column("summary", sa.Text(), nullable=True),
        sa.Column("details", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_linescout_handoff_events_handoff_id", "linescout_handoff_events", ["handoff_id"])
    op.create_index("ix_linescout_handoff_events_action", "linescout_handoff_events", ["action"])
    op.create_index("ix_linescout_handoff_events_created_at", "linescout_handoff_events", ["created_at"])

    # ── Ledger ───────────────────────────────────────────────

    op.create_table(
        "linescout_handoff_financials",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("handoff_id", sa.String(36), sa.ForeignKey("linescout_handoffs.id"), nullable=False, unique=True),
        sa.Column("currency", sa.String(3), server_default="NGN"),
        sa.Column("total_due", sa.Float(), server_default="0"),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )

    op.create_table(
        "linescout_handoff_payments",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("handoff_id", sa.String(36), sa.ForeignKey("linescout_handoffs.id"), nullable=False),
        sa.Column("amount", sa.Float(), nullable=False),
        sa.Column("currency", sa.String(3), server_default="NGN"),
        sa.Column("purpose", sa.String(30), nullable=False),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("paid_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("provider", sa.String(20), server_default="manual"),
        sa.Column("provider_ref", sa.String(100), nullable=True, unique=True),
        sa.Column("created_by", sa.String(36), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.CheckConstraint("amount > 0", name="ck_linescout_handoff_payments_amount"),
    )
    op.create_index("ix_linescout_handoff_payments_handoff_id", "linescout_handoff_payments", ["handoff_id"])

    op.create_table(
        "linescout_quotes",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("handoff_id", sa.String(36), sa.ForeignKey("linescout_handoffs.id"), nullable=False),
        sa.Column("token", sa.String(40), nullable=False),
        sa.Column("status", sa.String(20), server_default="sent"),
        sa.Column("payment_purpose", sa.String(30), server_default="full_payment"),
        sa.Column("items", sa.JSON(), nullable=True),
        sa.Column("agent_note", sa.Text(), nullable=True),
        sa.Column("currency", sa.String(3), server_default="NGN"),
        sa.Column("total_due_ngn", sa.Float(), nullable=False),
        sa.Column("created_by", sa.String(36), nullable=False),
        sa.Column("paid_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_linescout_quotes_token", "linescout_quotes", ["token"], unique=True)
    op.create_index("ix_linescout_quotes_handoff_id", "linescout_quotes", ["handoff_id"])
    op.create_index("ix_linescout_quotes_created_at", "linescout_quotes", ["created_at"])

    # ── Reorders ─────────────────────────────────────────────

    op.create_table(
        "linescout_reorder_requests",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("source_conversation_id", sa.String(36), nullable=True),
        sa.Column("source_handoff_id", sa.String(36), sa.ForeignKey("linescout_handoffs.id"), nullable=False),
        sa.Column("new_conversation_id", sa.String(36), nullable=True),
        sa.Column("new_handoff_id", sa.String(36), sa.ForeignKey("linescout_handoffs.id"), nullable=True),
        sa.Column("route_type", sa.String(30), server_default="machine_sourcing"),
        sa.Column("status", sa.String(20), server_default="pending_admin"),
        sa.Column("original_agent_id", sa.String(36), nullable=True),
        sa.Column("assigned_agent_id", sa.String(36), sa.ForeignKey("internal_users.id"), nullable=True),
        sa.Column("user_note", sa.Text(), nullable=True),
        sa.Column("admin_note", sa.Text(), nullable=True),
        sa.Column("paystack_ref", sa.String(100), nullable=True, unique=True),
        sa.Column("amount_ngn", sa.Float(), nullable=True),
        sa.Column("paid_at", sa.DateTime(), nullable=True),
        sa.Column("assigned_at", sa.DateTime(), nullable=True),
        sa.Column("closed_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_linescout_reorder_requests_user_id", "linescout_reorder_requests", ["user_id"])
    op.create_index("ix_linescout_reorder_requests_source_handoff_id", "linescout_reorder_requests", ["source_handoff_id"])
    op.create_index("ix_linescout_reorder_requests_new_handoff_id", "linescout_reorder_requests", ["new_handoff_id"])
    op.create_index("ix_linescout_reorder_requests_status", "linescout_reorder_requests", ["status"])
    op.create_index("ix_linescout_reorder_requests_assigned_agent_id", "linescout_reorder_requests", ["assigned_agent_id"])


def downgrade() -> None:
    op.drop_table("linescout_reorder_requests")
    op.drop_table("linescout_quotes")
    op.drop_table("linescout_handoff_payments")
    op.drop_table("linescout_handoff_financials")
    op.drop_table("linescout_handoff_events")
    op.drop_table("linescout_handoffs")
    op.drop_table("linescout_tokens")
    op.drop_table("linescout_messages")
    op.drop_table("linescout_conversations")
    op.drop_table("linescout_device_tokens")
    op.drop_table("linescout_agent_device_tokens")
    op.drop_table("linescout_agent_payout_accounts")
    op.drop_table("linescout_agent_profiles")
    op.drop_table("internal_user_permissions")
    op.drop_table("internal_users")
    op.drop_table("users")
    sa.Enum(name="userrole").drop(op.get_bind(), checkfirst=True)
