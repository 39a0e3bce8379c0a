"""RoleResolver — effective role from ownership, email grants and share links.

Resolution is an ordered list of strategies; the first one that returns a
role wins:

1. ``OwnershipStrategy`` — the resource owner is always ``owner``, so a
   stale or narrower grant can never downgrade them.
2. ``GrantStrategy`` — identity-bound, individually revocable grants.
3. ``LinkShareStrategy`` — anonymous token links, checked last.
"""

from __future__ import annotations

import logging
import secrets
from typing import TYPE_CHECKING

from sqlmodel import select

from .exceptions import ResolutionError, TransientError
from .permissions import ASSIGNABLE_ROLES, Role
from .store import store_errors
from .utils import as_utc, utc_now

if TYPE_CHECKING:
    from collections.abc import Sequence

    from sqlalchemy.ext.asyncio import AsyncSession

    from stratus.models.shares import GrantBase, ShareLinkBase

    from .protocol import Clock, RoleStrategy
    from .store import ResourceStore
    from .types import Principal, ResourceRef

logger = logging.getLogger(__name__)


def _delegated_role(value: str) -> Role | None:
    """Parse a stored link/grant role; ``owner`` or garbage grants nothing."""
    try:
        role = Role(value)
    except ValueError:
        return None
    return role if role in ASSIGNABLE_ROLES else None


class OwnershipStrategy:
    """Owner match. Raises ``NotFoundError`` when the resource is absent."""

    name = "ownership"

    def __init__(self, store: ResourceStore) -> None:
        self._store = store

    async def resolve(
        self,
        session: AsyncSession,
        principal: Principal | None,
        ref: ResourceRef,
        share_token: str | None,
    ) -> Role | None:
        owner_id = await self._store.get_owner_id(session, ref)
        if principal is not None and owner_id == principal.id:
            return Role.OWNER
        return None


class GrantStrategy:
    """Email grant match. Issues no query without a principal email."""

    name = "grant"

    def __init__(self, grant_model: type[GrantBase]) -> None:
        self._grant_model = grant_model

    async def resolve(
        self,
        session: AsyncSession,
        principal: Principal | None,
        ref: ResourceRef,
        share_token: str | None,
    ) -> Role | None:
        if principal is None or not principal.email:
            return None
        model = self._grant_model
        with store_errors(f"grant lookup on {ref}"):
            result = await session.execute(
                select(model.role).where(
                    model.resource_type == ref.type.value,
                    model.resource_id == ref.id,
                    model.grantee_email == principal.email,
                )
            )
        role = result.scalar_one_or_none()
        return _delegated_role(role) if role is not None else None


class LinkShareStrategy:
    """Share-link token match. Expired or mismatched links grant nothing."""

    name = "link"

    def __init__(self, link_model: type[ShareLinkBase], clock: Clock = utc_now) -> None:
        self._link_model = link_model
        self._clock = clock

    async def resolve(
        self,
        session: AsyncSession,
        principal: Principal | None,
        ref: ResourceRef,
        share_token: str | None,
    ) -> Role | None:
        if not share_token:
            return None
        model = self._link_model
        with store_errors(f"link lookup on {ref}"):
            result = await session.execute(
                select(model.token, model.role, model.expires_at).where(
                    model.resource_type == ref.type.value,
                    model.resource_id == ref.id,
                )
            )
        link = result.one_or_none()
        if link is None:
            return None
        token, role, expires_at = link
        if not secrets.compare_digest(token.encode(), share_token.encode()):
            return None
        expires_at = as_utc(expires_at)
        if expires_at is not None and expires_at <= self._clock():
            logger.debug("Expired share link presented for %s", ref)
            return None
        return _delegated_role(role)


class RoleResolver:
    """Runs strategies in order; first non-``None`` role wins."""

    def __init__(self, strategies: Sequence[RoleStrategy]) -> None:
        self._strategies = list(strategies)

    @classmethod
    def default(
        cls,
        store: ResourceStore,
        grant_model: type[GrantBase],
        link_model: type[ShareLinkBase],
        clock: Clock = utc_now,
    ) -> RoleResolver:
        return cls(
            [
                OwnershipStrategy(store),
                GrantStrategy(grant_model),
                LinkShareStrategy(link_model, clock),
            ]
        )

    @property
    def strategies(self) -> list[RoleStrategy]:
        return list(self._strategies)

    async def resolve(
        self,
        session: AsyncSession,
        principal: Principal | None,
        ref: ResourceRef,
        share_token: str | None = None,
    ) -> Role | None:
        """Return the effective role of *principal* on *ref*, or ``None``.

        Raises ``NotFoundError`` if the resource does not exist and
        ``ResolutionError`` if the store cannot be reached.
        """
        for strategy in self._strategies:
            try:
                role = await strategy.resolve(session, principal, ref, share_token)
            except ResolutionError:
                raise
            except TransientError as exc:
                raise ResolutionError(f"Role resolution failed for {ref}") from exc
            if role is not None:
                logger.debug(
                    "Resolved %s on %s via %s",
                    role.value,
                    ref,
                    strategy.name,
                )
                return role
        return None
