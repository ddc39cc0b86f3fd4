"""Permission resolution for internal users.

Design:
  - Each role has a set of DEFAULT permissions (defined here, not in DB).
  - Agents additionally receive view permissions from their
    `internal_user_permissions` row (`can_view_handoffs`, ...).  Those
    flags are granted on approval and revoked on block.
  - `resolve_permissions(role, flags)` computes the effective set, which
    is embedded in the JWT at sign-in.

Permission naming: `<resource>.<action>`
"""

from __future__ import annotations


# ── All known permissions ───────────────────────────────────

ALL_PERMISSIONS: set[str] = {
    "handoffs.read",
    "handoffs.write",
    "leads.read",
    "analytics.read",
    "payments.write",
    "quotes.write",
    "agents.manage",
    "reorders.manage",
}


# ── Role → default permissions ──────────────────────────────

ROLE_DEFAULTS: dict[str, set[str]] = {
    "admin": ALL_PERMISSIONS.copy(),

    # View access comes from the permission flags; write access is
    # still gated per action on approval status.
    "agent": {
        "handoffs.write",
        "payments.write",
        "quotes.write",
    },
}

# internal_user_permissions column → permission string
FLAG_PERMISSIONS: dict[str, str] = {
    "can_view_handoffs": "handoffs.read",
    "can_view_leads": "leads.read",
    "can_view_analytics": "analytics.read",
}


# ── Resolution ──────────────────────────────────────────────

def resolve_permissions(
    role: str,
    flags: dict[str, bool] | None = None,
) -> list[str]:
    """Compute effective permissions for an internal user.

    1. Start with the role's defaults.
    2. Add the permission behind every truthy flag.
    3. Return a sorted list (for stable JWT claims).
    """
    base = ROLE_DEFAULTS.get(role, set()).copy()

    if flags:
        for flag, granted in flags.items():
            perm = FLAG_PERMISSIONS.get(flag)
            if perm and granted:
                base.add(perm)

    return sorted(base)


def has_permission(user_permissions: list[str] | set[str], required: str) -> bool:
    """Check whether a permission set satisfies a requirement."""
    return required in user_permissions
