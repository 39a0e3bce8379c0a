"""GrantManager — per-email role grants on a resource."""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING

from sqlalchemy import delete
from sqlmodel import select

from .dialect import upsert
from .permissions import Action, Role, parse_assignable_role
from .store import store_errors
from .types import GrantInfo, ResourceRef
from .utils import as_utc, normalize_email, utc_now

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from stratus.models.shares import GrantBase

    from .guard import AccessGuard
    from .protocol import Clock
    from .types import Principal

logger = logging.getLogger(__name__)


class GrantManager:
    """Grants, revokes and lists email grants. Owner-only (``share`` action).

    At most one grant exists per ``(resource, lowercased email)``;
    re-granting replaces the role.
    """

    def __init__(
        self,
        grant_model: type[GrantBase],
        guard: AccessGuard,
        *,
        dialect: str = "sqlite",
        schema: str | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self._grant_model = grant_model
        self._guard = guard
        self.dialect = dialect
        self.schema = schema
        self._clock = clock

    @staticmethod
    def _to_info(grant: GrantBase) -> GrantInfo:
        return GrantInfo(
            ref=ResourceRef(grant.resource_type, grant.resource_id),
            email=grant.grantee_email,
            role=Role(grant.role),
            granted_by=grant.granted_by,
            created_at=as_utc(grant.created_at),
            updated_at=as_utc(grant.updated_at),
        )

    async def grant(
        self,
        session: AsyncSession,
        principal: Principal,
        ref: ResourceRef,
        email: str,
        role: Role | str,
    ) -> GrantInfo:
        """Give *email* the *role* on *ref*, replacing any previous role."""
        role = parse_assignable_role(role)
        email = normalize_email(email)
        await self._guard.authorize(session, principal, ref, Action.SHARE)

        now = self._clock()
        model = self._grant_model
        with store_errors(f"grant upsert on {ref}"):
            await upsert(
                session,
                self.dialect,
                model,
                values={
                    "id": str(uuid.uuid4()),
                    "resource_type": ref.type.value,
                    "resource_id": ref.id,
                    "grantee_email": email,
                    "role": role.value,
                    "granted_by": principal.id,
                    "created_at": now,
                    "updated_at": now,
                },
                conflict_keys=["resource_type", "resource_id", "grantee_email"],
                update_keys=["role", "granted_by", "updated_at"],
                schema=self.schema,
            )
            result = await session.execute(
                select(model)
                .where(
                    model.resource_type == ref.type.value,
                    model.resource_id == ref.id,
                    model.grantee_email == email,
                )
                .execution_options(populate_existing=True)
            )
        logger.info("Granted %s on %s to %s", role.value, ref, email)
        return self._to_info(result.scalar_one())

    async def revoke(
        self,
        session: AsyncSession,
        principal: Principal,
        ref: ResourceRef,
        email: str,
    ) -> bool:
        """Remove the grant for *email* on *ref*. Returns True if one existed."""
        email = normalize_email(email)
        await self._guard.authorize(session, principal, ref, Action.SHARE)
        model = self._grant_model
        with store_errors(f"grant revoke on {ref}"):
            result = await session.execute(
                delete(model).where(
                    model.resource_type == ref.type.value,
                    model.resource_id == ref.id,
                    model.grantee_email == email,
                )
            )
        removed = bool(result.rowcount)
        if removed:
            logger.info("Revoked grant on %s for %s", ref, email)
        return removed

    async def list(
        self,
        session: AsyncSession,
        principal: Principal,
        ref: ResourceRef,
    ) -> list[GrantInfo]:
        """List every grant on *ref*, ordered by email."""
        await self._guard.authorize(session, principal, ref, Action.SHARE)
        model = self._grant_model
        with store_errors(f"grant listing on {ref}"):
            result = await session.execute(
                select(model)
                .where(
                    model.resource_type == ref.type.value,
                    model.resource_id == ref.id,
                )
                .order_by(model.grantee_email)
            )
        return [self._to_info(g) for g in result.scalars().all()]
