"""ShareLinkManager — the single anonymous token link per resource."""

from __future__ import annotations

import logging
import secrets
import uuid
from datetime import timedelta
from typing import TYPE_CHECKING
from urllib.parse import quote

from sqlalchemy import delete
from sqlmodel import select

from .dialect import upsert
from .permissions import Action, Role, parse_assignable_role
from .store import store_errors
from .types import ResourceRef, ShareLinkInfo
from .utils import as_utc, utc_now

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from stratus.models.shares import ShareLinkBase

    from .guard import AccessGuard
    from .protocol import Clock
    from .types import Principal

logger = logging.getLogger(__name__)

DEFAULT_PUBLIC_ORIGIN = "http://localhost:3000"
DEFAULT_TOKEN_BYTES = 32


class ShareLinkManager:
    """Creates, rotates, revokes and describes share links.

    Every create call mints a fresh token, so rotating always invalidates
    links already handed out.  Writes are single-statement upserts keyed by
    ``(resource_type, resource_id)``; concurrent rotations are last-write-wins.
    """

    def __init__(
        self,
        link_model: type[ShareLinkBase],
        guard: AccessGuard,
        *,
        dialect: str = "sqlite",
        schema: str | None = None,
        clock: Clock = utc_now,
        public_origin: str = DEFAULT_PUBLIC_ORIGIN,
        token_bytes: int = DEFAULT_TOKEN_BYTES,
    ) -> None:
        self._link_model = link_model
        self._guard = guard
        self.dialect = dialect
        self.schema = schema
        self._clock = clock
        self.public_origin = public_origin.rstrip("/")
        self.token_bytes = token_bytes

    def share_url(self, ref: ResourceRef, token: str) -> str:
        """Render ``<origin>/share/<type>/<id>?t=<token>``."""
        return (
            f"{self.public_origin}/share/{ref.type.value}/{quote(ref.id, safe='')}"
            f"?t={quote(token, safe='')}"
        )

    def _to_info(self, link: ShareLinkBase) -> ShareLinkInfo:
        ref = ResourceRef(link.resource_type, link.resource_id)
        return ShareLinkInfo(
            ref=ref,
            token=link.token,
            role=Role(link.role),
            owner_id=link.owner_id,
            expires_at=as_utc(link.expires_at),
            created_at=as_utc(link.created_at),
            updated_at=as_utc(link.updated_at),
            url=self.share_url(ref, link.token),
        )

    async def _get(self, session: AsyncSession, ref: ResourceRef) -> ShareLinkBase | None:
        model = self._link_model
        with store_errors(f"link lookup on {ref}"):
            result = await session.execute(
                select(model)
                .where(
                    model.resource_type == ref.type.value,
                    model.resource_id == ref.id,
                )
                .execution_options(populate_existing=True)
            )
        return result.scalar_one_or_none()

    async def create_or_rotate(
        self,
        session: AsyncSession,
        principal: Principal,
        ref: ResourceRef,
        role: Role | str,
        ttl_days: float | None = None,
    ) -> ShareLinkInfo:
        """Create the link for *ref*, or replace its token, role and expiry.

        ``ttl_days > 0`` sets ``expires_at = now + ttl_days``; otherwise the
        link never expires.
        """
        role = parse_assignable_role(role)
        await self._guard.authorize(session, principal, ref, Action.SHARE)

        now = self._clock()
        expires_at = now + timedelta(days=ttl_days) if ttl_days and ttl_days > 0 else None
        values = {
            "id": str(uuid.uuid4()),
            "resource_type": ref.type.value,
            "resource_id": ref.id,
            "token": secrets.token_urlsafe(self.token_bytes),
            "role": role.value,
            "owner_id": principal.id,
            "expires_at": expires_at,
            "created_at": now,
            "updated_at": now,
        }
        with store_errors(f"link upsert on {ref}"):
            await upsert(
                session,
                self.dialect,
                self._link_model,
                values=values,
                conflict_keys=["resource_type", "resource_id"],
                update_keys=["token", "role", "owner_id", "expires_at", "updated_at"],
                schema=self.schema,
            )
        link = await self._get(session, ref)
        if link is None:  # pragma: no cover - upsert always leaves a row
            raise RuntimeError(f"Share link upsert on {ref} left no row")
        logger.info("Share link for %s set to %s (expires %s)", ref, role.value, expires_at)
        return self._to_info(link)

    async def revoke(
        self,
        session: AsyncSession,
        principal: Principal,
        ref: ResourceRef,
    ) -> bool:
        """Delete the link for *ref*. Returns True if one existed."""
        await self._guard.authorize(session, principal, ref, Action.SHARE)
        model = self._link_model
        with store_errors(f"link revoke on {ref}"):
            result = await session.execute(
                delete(model).where(
                    model.resource_type == ref.type.value,
                    model.resource_id == ref.id,
                )
            )
        removed = bool(result.rowcount)
        if removed:
            logger.info("Share link for %s revoked", ref)
        return removed

    async def describe(self, session: AsyncSession, ref: ResourceRef) -> ShareLinkInfo | None:
        """Return the current link for *ref* without changing it."""
        link = await self._get(session, ref)
        return self._to_info(link) if link is not None else None
