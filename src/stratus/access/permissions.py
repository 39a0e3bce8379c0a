"""Role and Action enums and the fixed role → action policy table."""

from __future__ import annotations

from enum import Enum


class Role(str, Enum):
    """Capability level on a resource, ordered viewer < editor < owner."""

    VIEWER = "viewer"
    EDITOR = "editor"
    OWNER = "owner"

    @property
    def rank(self) -> int:
        return _RANK[self]


class Action(str, Enum):
    """Operation classes gated by the policy table."""

    READ = "read"
    WRITE = "write"  # rename, move, soft delete, restore
    HARD_DELETE = "hard-delete"
    SHARE = "share"


_RANK = {Role.VIEWER: 1, Role.EDITOR: 2, Role.OWNER: 3}

POLICY: dict[Role, frozenset[Action]] = {
    Role.VIEWER: frozenset({Action.READ}),
    Role.EDITOR: frozenset({Action.READ, Action.WRITE}),
    Role.OWNER: frozenset({Action.READ, Action.WRITE, Action.HARD_DELETE, Action.SHARE}),
}

ASSIGNABLE_ROLES: frozenset[Role] = frozenset({Role.VIEWER, Role.EDITOR})
"""Roles that links and grants may carry. Ownership is never delegated."""


def allows(role: Role | str | None, action: Action | str) -> bool:
    """Return True if *role* permits *action*. Unknown pairs return False."""
    try:
        role = Role(role)
        action = Action(action)
    except ValueError:
        return False
    return action in POLICY.get(role, frozenset())


def parse_assignable_role(role: Role | str) -> Role:
    """Validate a role for a link or grant. Raises ``ValueError`` otherwise."""
    try:
        parsed = Role(role)
    except ValueError:
        parsed = None
    if parsed not in ASSIGNABLE_ROLES:
        raise ValueError(
            f"Invalid role: {role!r}. Must be 'viewer' or 'editor'."
        )
    return parsed
