"""AccessGuard — the single authorization gate in front of every operation."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .exceptions import RESOURCE_NOT_FOUND, ForbiddenError, NotFoundError
from .permissions import Action, Role, allows

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from .resolver import RoleResolver
    from .types import Principal, ResourceRef

logger = logging.getLogger(__name__)


class AccessGuard:
    """Composes ``RoleResolver`` with the policy table.

    A caller with no role at all gets the same not-found outcome as for a
    missing resource unless *conceal_denials* is off, in which case they
    get ``ForbiddenError``.  A caller holding some role that is too weak
    for the action always gets ``ForbiddenError``.
    """

    def __init__(self, resolver: RoleResolver, *, conceal_denials: bool = True) -> None:
        self._resolver = resolver
        self.conceal_denials = conceal_denials

    @property
    def resolver(self) -> RoleResolver:
        return self._resolver

    async def authorize(
        self,
        session: AsyncSession,
        principal: Principal | None,
        ref: ResourceRef,
        action: Action,
        share_token: str | None = None,
    ) -> Role:
        """Return the caller's role if it permits *action*, else raise."""
        role = await self._resolver.resolve(session, principal, ref, share_token)
        if role is None:
            logger.info(
                "Denied %s on %s for %s: no role",
                action.value,
                ref,
                principal.id if principal else "anonymous",
            )
            if self.conceal_denials:
                raise NotFoundError(RESOURCE_NOT_FOUND)
            raise ForbiddenError("Not allowed")
        if not allows(role, action):
            logger.info(
                "Denied %s on %s for %s: role %s",
                action.value,
                ref,
                principal.id if principal else "anonymous",
                role.value,
            )
            raise ForbiddenError(f"Role {role.value!r} does not permit {action.value!r}")
        return role
