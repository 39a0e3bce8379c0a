"""Stratus — async facade over the access layer.

Each public coroutine is one unit of work: open a session, run the guarded
operation, commit.  The whole unit is bounded by a caller-supplied timeout
and rolled back on any error, so a failed call leaves nothing behind.
Purges are the exception: partial progress is committed before
``PartialFailureError`` is raised so a retry only has the leftovers to do.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import uuid
from typing import TYPE_CHECKING
from urllib.parse import quote

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import SQLModel

from stratus.access.dialect import get_dialect
from stratus.access.exceptions import PartialFailureError, TransientError
from stratus.access.grants import GrantManager
from stratus.access.guard import AccessGuard
from stratus.access.links import ShareLinkManager
from stratus.access.permissions import Action
from stratus.access.resolver import RoleResolver
from stratus.access.store import ResourceStore, store_errors
from stratus.access.trash import TrashLifecycle
from stratus.access.tree import ResourceTree
from stratus.access.utils import utc_now
from stratus.config import StratusConfig
from stratus.models.resources import File, Folder
from stratus.models.shares import Grant, ShareLink

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable

    from sqlalchemy.ext.asyncio import AsyncEngine

    from stratus.access.permissions import Role
    from stratus.access.protocol import BlobStore, Clock
    from stratus.access.types import (
        ChildrenResult,
        GrantInfo,
        Principal,
        PurgeResult,
        ResourceInfo,
        ResourceRef,
        ShareLinkInfo,
        TrashResult,
    )
    from stratus.models.resources import FileBase, FolderBase
    from stratus.models.shares import GrantBase, ShareLinkBase

logger = logging.getLogger(__name__)


class Stratus:
    """Authorization, sharing and trash lifecycle for a file/folder tree.

    Usage::

        engine = create_async_engine("sqlite+aiosqlite:///drive.db")
        drive = Stratus(engine=engine, blob_store=LocalBlobStore("/srv/blobs"))
        await drive.create_tables()

        alice = Principal("alice", "alice@example.com")
        docs = await drive.create_folder(alice, "Docs")
        link = await drive.create_or_rotate_link(alice, docs.ref, "viewer", ttl_days=1)
    """

    def __init__(
        self,
        *,
        blob_store: BlobStore,
        engine: AsyncEngine | None = None,
        session_factory: Callable[..., AsyncSession] | None = None,
        dialect: str | None = None,
        config: StratusConfig | None = None,
        clock: Clock = utc_now,
        folder_model: type[FolderBase] | None = None,
        file_model: type[FileBase] | None = None,
        link_model: type[ShareLinkBase] | None = None,
        grant_model: type[GrantBase] | None = None,
    ) -> None:
        if engine is not None and session_factory is not None:
            raise ValueError("Provide engine or session_factory, not both")
        if engine is None and session_factory is None:
            raise ValueError("Provide engine or session_factory")

        self._engine = engine
        if engine is not None:
            self._session_factory: Callable[..., AsyncSession] = async_sessionmaker(
                engine, class_=AsyncSession, expire_on_commit=False
            )
            dialect = dialect or get_dialect(engine)
        else:
            self._session_factory = session_factory  # type: ignore[assignment]
        self.dialect = dialect or "sqlite"
        self.config = config or StratusConfig()
        self.blob_store = blob_store
        self._clock = clock

        self._folder_model: type[FolderBase] = folder_model or Folder
        self._file_model: type[FileBase] = file_model or File
        self._link_model: type[ShareLinkBase] = link_model or ShareLink
        self._grant_model: type[GrantBase] = grant_model or Grant

        # Composed services
        self.store = ResourceStore(self._folder_model, self._file_model)
        self.resolver = RoleResolver.default(
            self.store, self._grant_model, self._link_model, clock
        )
        self.guard = AccessGuard(self.resolver, conceal_denials=self.config.conceal_denials)
        self.links = ShareLinkManager(
            self._link_model,
            self.guard,
            dialect=self.dialect,
            schema=self.config.db_schema,
            clock=clock,
            public_origin=self.config.public_origin,
            token_bytes=self.config.token_bytes,
        )
        self.grants = GrantManager(
            self._grant_model,
            self.guard,
            dialect=self.dialect,
            schema=self.config.db_schema,
            clock=clock,
        )
        self.trash = TrashLifecycle(
            self.store,
            self.guard,
            blob_store,
            cascade_depth=self.config.cascade_depth,
            clock=clock,
        )
        self.tree = ResourceTree(
            self.store,
            self.guard,
            clock=clock,
            search_limit_max=self.config.search_limit_max,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def create_tables(self) -> None:
        """Create the four Stratus tables if they do not exist."""
        if self._engine is None:
            raise ValueError("create_tables requires an engine")
        models = (self._folder_model, self._file_model, self._link_model, self._grant_model)
        tables = [m.__table__ for m in models]  # type: ignore[attr-defined]
        async with self._engine.begin() as conn:
            await conn.run_sync(
                lambda c: SQLModel.metadata.create_all(c, tables=tables, checkfirst=True)
            )

    @contextlib.asynccontextmanager
    async def _unit_of_work(
        self,
        operation: str,
        timeout: float | None,
    ) -> AsyncIterator[AsyncSession]:
        """One session, one transaction, bounded by *timeout* seconds."""
        limit = self.config.store_timeout if timeout is None else timeout
        try:
            async with asyncio.timeout(limit):
                async with self._session_factory() as session:
                    yield session
                    with store_errors(f"commit of {operation}"):
                        await session.commit()
        except TimeoutError as e:
            logger.warning("%s timed out after %ss", operation, limit)
            raise TransientError(f"{operation} timed out after {limit}s") from e

    # ------------------------------------------------------------------
    # Authorization
    # ------------------------------------------------------------------

    async def resolve(
        self,
        principal: Principal | None,
        ref: ResourceRef,
        share_token: str | None = None,
        *,
        timeout: float | None = None,
    ) -> Role | None:
        async with self._unit_of_work("resolve", timeout) as session:
            return await self.resolver.resolve(session, principal, ref, share_token)

    async def authorize(
        self,
        principal: Principal | None,
        ref: ResourceRef,
        action: Action | str,
        share_token: str | None = None,
        *,
        timeout: float | None = None,
    ) -> Role:
        async with self._unit_of_work("authorize", timeout) as session:
            return await self.guard.authorize(
                session, principal, ref, Action(action), share_token
            )

    # ------------------------------------------------------------------
    # Tree
    # ------------------------------------------------------------------

    async def create_folder(
        self,
        principal: Principal,
        name: str,
        parent_id: str | None = None,
        *,
        timeout: float | None = None,
    ) -> ResourceInfo:
        async with self._unit_of_work("create folder", timeout) as session:
            return await self.tree.create_folder(session, principal, name, parent_id)

    async def add_file(
        self,
        principal: Principal,
        name: str,
        storage_path: str,
        *,
        size_bytes: int = 0,
        mime_type: str = "application/octet-stream",
        folder_id: str | None = None,
        timeout: float | None = None,
    ) -> ResourceInfo:
        async with self._unit_of_work("add file", timeout) as session:
            return await self.tree.add_file(
                session,
                principal,
                name,
                storage_path,
                size_bytes=size_bytes,
                mime_type=mime_type,
                folder_id=folder_id,
            )

    async def upload(
        self,
        principal: Principal,
        name: str,
        data: bytes,
        *,
        mime_type: str = "application/octet-stream",
        folder_id: str | None = None,
        timeout: float | None = None,
    ) -> ResourceInfo:
        """Store *data* as a blob and record it. The blob is removed if recording fails."""
        locator = f"{principal.id}/{uuid.uuid4()}_{quote(name.strip(), safe='')}"
        await self.blob_store.put(locator, data)
        try:
            return await self.add_file(
                principal,
                name,
                locator,
                size_bytes=len(data),
                mime_type=mime_type,
                folder_id=folder_id,
                timeout=timeout,
            )
        except BaseException:
            try:
                await self.blob_store.remove(locator)
            except Exception:
                logger.warning("Failed to roll back blob %s", locator, exc_info=True)
            raise

    async def get(
        self,
        principal: Principal | None,
        ref: ResourceRef,
        share_token: str | None = None,
        *,
        timeout: float | None = None,
    ) -> ResourceInfo:
        async with self._unit_of_work("get", timeout) as session:
            return await self.tree.get(session, principal, ref, share_token)

    async def download(
        self,
        principal: Principal | None,
        ref: ResourceRef,
        share_token: str | None = None,
        *,
        timeout: float | None = None,
    ) -> bytes:
        """Return the content of an active file the caller may read."""
        async with self._unit_of_work("download", timeout) as session:
            info = await self.tree.open_file(session, principal, ref, share_token)
            return await self.blob_store.get(info.storage_path)  # type: ignore[arg-type]

    async def rename(
        self,
        principal: Principal | None,
        ref: ResourceRef,
        name: str,
        share_token: str | None = None,
        *,
        timeout: float | None = None,
    ) -> ResourceInfo:
        async with self._unit_of_work("rename", timeout) as session:
            return await self.tree.rename(session, principal, ref, name, share_token)

    async def move(
        self,
        principal: Principal | None,
        ref: ResourceRef,
        new_parent_id: str | None,
        share_token: str | None = None,
        *,
        timeout: float | None = None,
    ) -> ResourceInfo:
        async with self._unit_of_work("move", timeout) as session:
            return await self.tree.move(session, principal, ref, new_parent_id, share_token)

    async def list_children(
        self,
        principal: Principal | None,
        folder_id: str | None = None,
        share_token: str | None = None,
        *,
        timeout: float | None = None,
    ) -> ChildrenResult:
        async with self._unit_of_work("list children", timeout) as session:
            return await self.tree.list_children(session, principal, folder_id, share_token)

    async def search(
        self,
        principal: Principal,
        query: str = "",
        *,
        scope: str = "all",
        limit: int = 20,
        offset: int = 0,
        sort: str = "created_at",
        order: str = "desc",
        timeout: float | None = None,
    ) -> ChildrenResult:
        async with self._unit_of_work("search", timeout) as session:
            return await self.tree.search(
                session,
                principal,
                query,
                scope=scope,
                limit=limit,
                offset=offset,
                sort=sort,
                order=order,
            )

    # ------------------------------------------------------------------
    # Trash
    # ------------------------------------------------------------------

    async def soft_delete(
        self,
        principal: Principal | None,
        ref: ResourceRef,
        share_token: str | None = None,
        *,
        timeout: float | None = None,
    ) -> TrashResult:
        async with self._unit_of_work("soft delete", timeout) as session:
            return await self.trash.soft_delete(session, principal, ref, share_token)

    async def restore(
        self,
        principal: Principal | None,
        ref: ResourceRef,
        share_token: str | None = None,
        *,
        timeout: float | None = None,
    ) -> TrashResult:
        async with self._unit_of_work("restore", timeout) as session:
            return await self.trash.restore(session, principal, ref, share_token)

    async def purge(
        self,
        principal: Principal | None,
        ref: ResourceRef,
        *,
        timeout: float | None = None,
    ) -> PurgeResult:
        """Hard-delete a trashed resource. Raises ``PartialFailureError`` on leftovers."""
        async with self._unit_of_work("purge", timeout) as session:
            result = await self.trash.purge(session, principal, ref)
        if result.failed:
            raise PartialFailureError(result.message, result)
        return result

    async def list_trash(
        self,
        principal: Principal,
        *,
        timeout: float | None = None,
    ) -> list[ResourceInfo]:
        async with self._unit_of_work("list trash", timeout) as session:
            return await self.trash.list_trash(session, principal)

    async def empty_trash(
        self,
        principal: Principal,
        *,
        timeout: float | None = None,
    ) -> PurgeResult:
        async with self._unit_of_work("empty trash", timeout) as session:
            result = await self.trash.empty_trash(session, principal)
        if result.failed:
            raise PartialFailureError(result.message, result)
        return result

    # ------------------------------------------------------------------
    # Sharing
    # ------------------------------------------------------------------

    async def create_or_rotate_link(
        self,
        principal: Principal,
        ref: ResourceRef,
        role: Role | str,
        ttl_days: float | None = None,
        *,
        timeout: float | None = None,
    ) -> ShareLinkInfo:
        async with self._unit_of_work("create link", timeout) as session:
            return await self.links.create_or_rotate(session, principal, ref, role, ttl_days)

    async def revoke_link(
        self,
        principal: Principal,
        ref: ResourceRef,
        *,
        timeout: float | None = None,
    ) -> bool:
        async with self._unit_of_work("revoke link", timeout) as session:
            return await self.links.revoke(session, principal, ref)

    async def describe_link(
        self,
        principal: Principal,
        ref: ResourceRef,
        *,
        timeout: float | None = None,
    ) -> ShareLinkInfo | None:
        """Current link for *ref*. Owner-only, like every other sharing view."""
        async with self._unit_of_work("describe link", timeout) as session:
            await self.guard.authorize(session, principal, ref, Action.SHARE)
            return await self.links.describe(session, ref)

    async def grant(
        self,
        principal: Principal,
        ref: ResourceRef,
        email: str,
        role: Role | str,
        *,
        timeout: float | None = None,
    ) -> GrantInfo:
        async with self._unit_of_work("grant", timeout) as session:
            return await self.grants.grant(session, principal, ref, email, role)

    async def revoke_grant(
        self,
        principal: Principal,
        ref: ResourceRef,
        email: str,
        *,
        timeout: float | None = None,
    ) -> bool:
        async with self._unit_of_work("revoke grant", timeout) as session:
            return await self.grants.revoke(session, principal, ref, email)

    async def list_grants(
        self,
        principal: Principal,
        ref: ResourceRef,
        *,
        timeout: float | None = None,
    ) -> list[GrantInfo]:
        async with self._unit_of_work("list grants", timeout) as session:
            return await self.grants.list(session, principal, ref)
