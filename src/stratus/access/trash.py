"""TrashLifecycle — soft delete, restore and purge for files and folders.

Each resource is ``Active`` (``deleted_at`` is null) or ``Trashed``.
Purging is not a transition but removal of the row and its blob.

A folder transition cascades according to ``CascadeDepth``.  Soft delete
stamps every active resource in scope with the folder's timestamp; restore
clears exactly the resources carrying that same timestamp, so items trashed
on their own before the folder stay in the trash.  Both directions only
touch rows that still need the change and can be re-run safely.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING

from .exceptions import ConflictError
from .permissions import Action
from .types import (
    PurgeFailure,
    PurgeResult,
    ResourceRef,
    ResourceType,
    TrashResult,
    file_ref,
    folder_ref,
)
from .utils import as_utc, utc_now

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from stratus.models.resources import FileBase, FolderBase

    from .guard import AccessGuard
    from .protocol import BlobStore, Clock
    from .store import ResourceStore
    from .types import Principal, ResourceInfo

logger = logging.getLogger(__name__)


class CascadeDepth(str, Enum):
    """How far a folder's trash transition reaches."""

    IMMEDIATE_CHILDREN = "immediate-children-only"
    """Only files directly inside the folder (the long-standing behavior)."""

    FULL_SUBTREE = "full-subtree"
    """Every descendant folder and file."""


class TrashLifecycle:
    """Trash state machine over ``ResourceStore`` rows."""

    def __init__(
        self,
        store: ResourceStore,
        guard: AccessGuard,
        blob_store: BlobStore,
        *,
        cascade_depth: CascadeDepth = CascadeDepth.IMMEDIATE_CHILDREN,
        clock: Clock = utc_now,
    ) -> None:
        self._store = store
        self._guard = guard
        self._blobs = blob_store
        self.cascade_depth = CascadeDepth(cascade_depth)
        self._clock = clock

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _cascade_scope(
        self,
        session: AsyncSession,
        folder_id: str,
    ) -> tuple[list[FolderBase], list[FileBase]]:
        """Folders and files a transition of *folder_id* reaches (excluding itself)."""
        folders: list[FolderBase] = []
        if self.cascade_depth is CascadeDepth.FULL_SUBTREE:
            folders = await self._store.descendant_folders(session, folder_id)
        files = await self._store.files_in(session, [folder_id, *(f.id for f in folders)])
        return folders, files

    async def _trashed_ancestor(self, session: AsyncSession, parent_id: str | None) -> str | None:
        """Id of the nearest trashed folder above a resource, if any."""
        for folder_id in await self._store.ancestor_ids(session, parent_id):
            row = await self._store.get_row(session, folder_ref(folder_id))
            if row is not None and row.deleted_at is not None:
                return folder_id
        return None

    # ------------------------------------------------------------------
    # Soft delete / restore
    # ------------------------------------------------------------------

    async def soft_delete(
        self,
        session: AsyncSession,
        principal: Principal | None,
        ref: ResourceRef,
        share_token: str | None = None,
    ) -> TrashResult:
        """Move *ref* (and its cascade scope) to the trash. No-op if already trashed."""
        await self._guard.authorize(session, principal, ref, Action.WRITE, share_token)
        row = await self._store.require_row(session, ref)
        if row.deleted_at is not None:
            return TrashResult(
                ref=ref,
                changed=False,
                message="Already in trash",
                deleted_at=as_utc(row.deleted_at),
            )

        now = self._clock()
        await self._store.set_deleted_at(session, ref, now, updated_at=now)
        affected = [ref]

        if ref.type is ResourceType.FOLDER:
            folders, files = await self._cascade_scope(session, ref.id)
            changed_folders = await self._store.set_deleted_at_many(
                session,
                ResourceType.FOLDER,
                [f.id for f in folders],
                now,
                updated_at=now,
                only_active=True,
            )
            changed_files = await self._store.set_deleted_at_many(
                session,
                ResourceType.FILE,
                [f.id for f in files],
                now,
                updated_at=now,
                only_active=True,
            )
            affected.extend(folder_ref(i) for i in changed_folders)
            affected.extend(file_ref(i) for i in changed_files)

        logger.info("Trashed %s (%d items)", ref, len(affected))
        return TrashResult(
            ref=ref,
            changed=True,
            message="Moved to trash",
            deleted_at=now,
            affected=affected,
        )

    async def restore(
        self,
        session: AsyncSession,
        principal: Principal | None,
        ref: ResourceRef,
        share_token: str | None = None,
    ) -> TrashResult:
        """Bring *ref* back from the trash, undoing exactly its own cascade.

        Raises ``ConflictError`` while an ancestor folder is still trashed.
        """
        await self._guard.authorize(session, principal, ref, Action.WRITE, share_token)
        row = await self._store.require_row(session, ref)
        if row.deleted_at is None:
            return TrashResult(ref=ref, changed=False, message="Not in trash")

        parent_id = row.parent_id if ref.type is ResourceType.FOLDER else row.folder_id  # type: ignore[union-attr]
        blocked_by = await self._trashed_ancestor(session, parent_id)
        if blocked_by is not None:
            raise ConflictError(f"Parent folder {blocked_by} is in trash; restore it first")

        stamp = row.deleted_at
        now = self._clock()
        await self._store.set_deleted_at(session, ref, None, updated_at=now)
        affected = [ref]

        if ref.type is ResourceType.FOLDER:
            folders, files = await self._cascade_scope(session, ref.id)
            changed_folders = await self._store.set_deleted_at_many(
                session,
                ResourceType.FOLDER,
                [f.id for f in folders],
                None,
                updated_at=now,
                only_if=stamp,
            )
            changed_files = await self._store.set_deleted_at_many(
                session,
                ResourceType.FILE,
                [f.id for f in files],
                None,
                updated_at=now,
                only_if=stamp,
            )
            affected.extend(folder_ref(i) for i in changed_folders)
            affected.extend(file_ref(i) for i in changed_files)

        logger.info("Restored %s (%d items)", ref, len(affected))
        return TrashResult(ref=ref, changed=True, message="Restored", affected=affected)

    # ------------------------------------------------------------------
    # Purge
    # ------------------------------------------------------------------

    async def _remove_blob(self, file: FileBase) -> str | None:
        """Remove *file*'s blob. Returns an error description instead of raising."""
        if not file.storage_path:
            return None
        try:
            await self._blobs.remove(file.storage_path)
        except Exception as e:
            logger.warning(
                "Failed to remove blob %s for file %s",
                file.storage_path,
                file.id,
                exc_info=True,
            )
            return f"blob removal failed: {e}"
        return None

    async def _purge_file(self, session: AsyncSession, file: FileBase, result: PurgeResult) -> None:
        """Best-effort purge: the row goes even if the blob could not be removed."""
        ref = file_ref(file.id)
        error = await self._remove_blob(file)
        if error is not None:
            result.blob_errors.append(PurgeFailure(ref, error))
        await self._store.delete_row(session, ref)
        result.purged.append(ref)

    async def _purge_folder(
        self,
        session: AsyncSession,
        folder: FolderBase,
        result: PurgeResult,
        *,
        recurse: bool,
    ) -> bool:
        """Purge *folder*'s contents, then the folder row if nothing failed.

        A file whose blob cannot be removed keeps its row and is reported in
        ``result.failed``.  Returns True when the folder row was deleted.
        """
        ref = folder_ref(folder.id)
        complete = True

        subfolders = await self._store.subfolders_of(session, [folder.id])
        if recurse:
            for sub in subfolders:
                if not await self._purge_folder(session, sub, result, recurse=True):
                    complete = False
        elif subfolders:
            result.failed.append(PurgeFailure(ref, "folder still contains sub-folders"))
            complete = False

        for file in await self._store.files_in(session, [folder.id]):
            error = await self._remove_blob(file)
            if error is not None:
                result.failed.append(PurgeFailure(file_ref(file.id), error))
                complete = False
                continue
            await self._store.delete_row(session, file_ref(file.id))
            result.purged.append(file_ref(file.id))

        if not complete:
            logger.warning("Kept folder %s: contents not fully purged", folder.id)
            return False
        await self._store.delete_row(session, ref)
        result.purged.append(ref)
        return True

    @staticmethod
    def _finish(result: PurgeResult) -> PurgeResult:
        result.success = not result.failed
        if result.success:
            result.message = f"Permanently deleted {len(result.purged)} items"
        else:
            result.message = (
                f"Permanently deleted {len(result.purged)} items; "
                f"{len(result.failed)} could not be removed"
            )
        return result

    async def purge(
        self,
        session: AsyncSession,
        principal: Principal | None,
        ref: ResourceRef,
    ) -> PurgeResult:
        """Permanently delete a trashed resource and, for folders, its contents.

        Check ``result.failed``: a folder row is only removed once every
        contained item was removed.
        """
        await self._guard.authorize(session, principal, ref, Action.HARD_DELETE)
        row = await self._store.require_row(session, ref)
        if row.deleted_at is None:
            raise ConflictError("Resource must be in trash before it can be purged")

        result = PurgeResult(success=True, message="")
        if ref.type is ResourceType.FILE:
            await self._purge_file(session, row, result)  # type: ignore[arg-type]
        else:
            recurse = self.cascade_depth is CascadeDepth.FULL_SUBTREE
            if not recurse and await self._store.subfolders_of(session, [ref.id]):
                raise ConflictError(
                    "Folder contains sub-folders; purge them first or use full-subtree cascade"
                )
            await self._purge_folder(session, row, result, recurse=recurse)  # type: ignore[arg-type]

        self._finish(result)
        logger.info("Purge of %s: %s", ref, result.message)
        return result

    async def empty_trash(self, session: AsyncSession, principal: Principal) -> PurgeResult:
        """Purge everything *principal* has in the trash.

        Folders are handled deepest first so trashed sub-folders are gone
        before their parents are attempted.
        """
        trashed = await self._store.list_trashed(session, principal.id)
        trashed_folders = {i.ref.id for i in trashed if i.is_folder}
        result = PurgeResult(success=True, message="")

        for info in trashed:
            if info.is_folder or info.parent_id in trashed_folders:
                continue
            file = await self._store.get_row(session, info.ref)
            if file is not None:
                await self._purge_file(session, file, result)  # type: ignore[arg-type]

        depths: list[tuple[int, ResourceInfo]] = []
        for info in trashed:
            if info.is_folder:
                depth = len(await self._store.ancestor_ids(session, info.parent_id))
                depths.append((depth, info))
        for _, info in sorted(depths, key=lambda d: d[0], reverse=True):
            folder = await self._store.get_row(session, info.ref)
            if folder is not None:
                await self._purge_folder(session, folder, result, recurse=False)  # type: ignore[arg-type]

        self._finish(result)
        logger.info("Emptied trash for %s: %s", principal.id, result.message)
        return result

    async def list_trash(self, session: AsyncSession, principal: Principal) -> list[ResourceInfo]:
        """Trashed folders and files owned by *principal*."""
        return await self._store.list_trashed(session, principal.id)
