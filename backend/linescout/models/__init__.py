"""Aggregate model imports for Alembic auto-detection."""

# Accounts
from linescout.models.user import DeviceToken, User  # noqa: F401
from linescout.models.internal_user import (  # noqa: F401
    InternalUser, InternalUserPermission, UserRole,
)
from linescout.models.agent_profile import (  # noqa: F401
    AgentDeviceToken, AgentPayoutAccount, AgentProfile,
)

# Customer side
from linescout.models.conversation import Conversation, Message  # noqa: F401
from linescout.models.token import PaymentToken  # noqa: F401

# Handoffs
from linescout.models.handoff import Handoff  # noqa: F401
from linescout.models.handoff_event import HandoffEvent  # noqa: F401
from linescout.models.financials import HandoffFinancials, HandoffPayment  # noqa: F401
from linescout.models.quote import Quote  # noqa: F401
from linescout.models.reorder import ReorderRequest  # noqa: F401
