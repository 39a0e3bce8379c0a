"""ResourceTree — folder/file creation, rename, move, listing and search."""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING

from sqlmodel import select

from .exceptions import RESOURCE_NOT_FOUND, ConflictError, ForbiddenError, NotFoundError
from .permissions import Action, Role
from .store import store_errors
from .types import ChildrenResult, ResourceType, folder_ref
from .utils import escape_like, normalize_name, utc_now

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from stratus.models.resources import FileBase, FolderBase

    from .guard import AccessGuard
    from .protocol import Clock
    from .store import ResourceStore
    from .types import Principal, ResourceInfo, ResourceRef

logger = logging.getLogger(__name__)

SEARCH_SCOPES = ("files", "folders", "all")
SEARCH_SORTS = ("created_at", "name")


class ResourceTree:
    """Structural operations on a principal's folder tree.

    Enforces the parent invariant: a non-root resource lives in an existing
    folder with the same owner, and folder parent chains never loop.
    """

    def __init__(
        self,
        store: ResourceStore,
        guard: AccessGuard,
        *,
        clock: Clock = utc_now,
        search_limit_max: int = 100,
    ) -> None:
        self._store = store
        self._guard = guard
        self._clock = clock
        self.search_limit_max = search_limit_max

    async def _require_parent(
        self,
        session: AsyncSession,
        parent_id: str | None,
        owner_id: str,
    ) -> FolderBase | None:
        """Fetch the target folder and check it can hold *owner_id*'s items."""
        if parent_id is None:
            return None
        parent = await self._store.get_row(session, folder_ref(parent_id))
        if parent is None or parent.owner_id != owner_id:
            raise NotFoundError("Target folder not found")
        if parent.deleted_at is not None:
            raise ConflictError("Target folder is in trash")
        return parent  # type: ignore[return-value]

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    async def create_folder(
        self,
        session: AsyncSession,
        principal: Principal,
        name: str,
        parent_id: str | None = None,
    ) -> ResourceInfo:
        name = normalize_name(name)
        await self._require_parent(session, parent_id, principal.id)
        now = self._clock()
        folder = self._store.folder_model(
            id=str(uuid.uuid4()),
            name=name,
            owner_id=principal.id,
            parent_id=parent_id,
            created_at=now,
            updated_at=now,
        )
        with store_errors("create folder"):
            session.add(folder)
            await session.flush()
        logger.debug("Created folder %s for %s", folder.id, principal.id)
        return self._store.to_info(folder)

    async def add_file(
        self,
        session: AsyncSession,
        principal: Principal,
        name: str,
        storage_path: str,
        *,
        size_bytes: int = 0,
        mime_type: str = "application/octet-stream",
        folder_id: str | None = None,
    ) -> ResourceInfo:
        """Record metadata for a blob already written to *storage_path*."""
        name = normalize_name(name)
        if not storage_path:
            raise ValueError("storage_path is required")
        if size_bytes < 0:
            raise ValueError("size_bytes must be >= 0")
        await self._require_parent(session, folder_id, principal.id)
        now = self._clock()
        file = self._store.file_model(
            id=str(uuid.uuid4()),
            name=name,
            owner_id=principal.id,
            folder_id=folder_id,
            storage_path=storage_path,
            size_bytes=size_bytes,
            mime_type=mime_type or "application/octet-stream",
            created_at=now,
            updated_at=now,
        )
        with store_errors("add file"):
            session.add(file)
            await session.flush()
        logger.debug("Added file %s for %s", file.id, principal.id)
        return self._store.to_info(file)

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    async def get(
        self,
        session: AsyncSession,
        principal: Principal | None,
        ref: ResourceRef,
        share_token: str | None = None,
    ) -> ResourceInfo:
        await self._guard.authorize(session, principal, ref, Action.READ, share_token)
        return await self._store.get_resource(session, ref)

    async def open_file(
        self,
        session: AsyncSession,
        principal: Principal | None,
        ref: ResourceRef,
        share_token: str | None = None,
    ) -> ResourceInfo:
        """Authorize a content read of *ref* and return its metadata.

        Folders have no content (``ValueError``); trashed files are not
        served (``ConflictError``).
        """
        if ref.type is not ResourceType.FILE:
            raise ValueError("Only files have downloadable content")
        await self._guard.authorize(session, principal, ref, Action.READ, share_token)
        row = await self._store.require_row(session, ref)
        self._require_active(row, ref)
        return self._store.to_info(row)

    async def list_children(
        self,
        session: AsyncSession,
        principal: Principal | None,
        folder_id: str | None = None,
        share_token: str | None = None,
    ) -> ChildrenResult:
        """List active children of *folder_id*; ``None`` lists the caller's root."""
        if folder_id is None:
            if principal is None:
                raise NotFoundError(RESOURCE_NOT_FOUND)
            owner_id = principal.id
        else:
            ref = folder_ref(folder_id)
            await self._guard.authorize(session, principal, ref, Action.READ, share_token)
            owner_id = await self._store.get_owner_id(session, ref)

        entries = await self._store.list_children(session, folder_id, owner_id)
        return ChildrenResult(
            folder_id=folder_id,
            folders=[e for e in entries if e.is_folder],
            files=[e for e in entries if not e.is_folder],
        )

    async def search(
        self,
        session: AsyncSession,
        principal: Principal,
        query: str = "",
        *,
        scope: str = "all",
        limit: int = 20,
        offset: int = 0,
        sort: str = "created_at",
        order: str = "desc",
    ) -> ChildrenResult:
        """Case-insensitive name search over the caller's own active items."""
        if scope not in SEARCH_SCOPES:
            raise ValueError(f"Invalid scope: {scope!r}")
        if sort not in SEARCH_SORTS:
            raise ValueError(f"Invalid sort: {sort!r}")
        limit = max(0, min(limit, self.search_limit_max))
        offset = max(offset, 0)
        descending = order.lower() != "asc"
        query = query.strip()

        out = ChildrenResult(folder_id=None)
        targets = []
        if scope in ("folders", "all"):
            targets.append((self._store.folder_model, out.folders))
        if scope in ("files", "all"):
            targets.append((self._store.file_model, out.files))

        for model, bucket in targets:
            column = model.name if sort == "name" else model.created_at
            stmt = select(model).where(
                model.owner_id == principal.id,
                model.deleted_at.is_(None),  # type: ignore[union-attr]
            )
            if query:
                stmt = stmt.where(
                    model.name.ilike(f"%{escape_like(query)}%", escape="\\")  # type: ignore[union-attr]
                )
            stmt = stmt.order_by(column.desc() if descending else column.asc())  # type: ignore[union-attr]
            stmt = stmt.offset(offset).limit(limit)
            with store_errors("search"):
                result = await session.execute(stmt)
            bucket.extend(self._store.to_info(r) for r in result.scalars().all())
        return out

    # ------------------------------------------------------------------
    # Mutate
    # ------------------------------------------------------------------

    @staticmethod
    def _require_active(row: FolderBase | FileBase, ref: ResourceRef) -> None:
        if row.deleted_at is not None:
            raise ConflictError(f"{ref.type.value.capitalize()} is in trash; restore it first")

    async def rename(
        self,
        session: AsyncSession,
        principal: Principal | None,
        ref: ResourceRef,
        name: str,
        share_token: str | None = None,
    ) -> ResourceInfo:
        name = normalize_name(name)
        await self._guard.authorize(session, principal, ref, Action.WRITE, share_token)
        row = await self._store.require_row(session, ref)
        self._require_active(row, ref)
        row.name = name
        row.updated_at = self._clock()
        with store_errors(f"rename of {ref}"):
            await session.flush()
        return self._store.to_info(row)

    async def move(
        self,
        session: AsyncSession,
        principal: Principal | None,
        ref: ResourceRef,
        new_parent_id: str | None,
        share_token: str | None = None,
    ) -> ResourceInfo:
        """Move *ref* under *new_parent_id* (``None`` = owner's root).

        The caller needs ``write`` on both the resource and the target
        folder; a share token only ever covers the resource itself.  Moving
        to the root is owner-only.  The target must belong to the resource
        owner.  Raises ``ConflictError`` when a folder would become its own
        ancestor.
        """
        role = await self._guard.authorize(session, principal, ref, Action.WRITE, share_token)
        if new_parent_id is None:
            if role is not Role.OWNER:
                raise ForbiddenError("Only the owner can move a resource to the root")
        else:
            await self._guard.authorize(session, principal, folder_ref(new_parent_id), Action.WRITE)
        row = await self._store.require_row(session, ref)
        self._require_active(row, ref)
        await self._require_parent(session, new_parent_id, row.owner_id)

        if ref.type is ResourceType.FOLDER:
            if new_parent_id is not None and ref.id in await self._store.ancestor_ids(
                session, new_parent_id
            ):
                raise ConflictError("Cannot move a folder into itself or one of its descendants")
            row.parent_id = new_parent_id  # type: ignore[union-attr]
        else:
            row.folder_id = new_parent_id  # type: ignore[union-attr]
        row.updated_at = self._clock()
        with store_errors(f"move of {ref}"):
            await session.flush()
        logger.debug("Moved %s to %s", ref, new_parent_id or "root")
        return self._store.to_info(row)
