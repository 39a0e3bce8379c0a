"""ResourceStore — row access for folders and files.

Stateless: receives the concrete models at construction and a session at
call time.  Driver connectivity failures are translated into
``TransientError`` so callers can distinguish "retry later" from
"does not exist".
"""

from __future__ import annotations

import contextlib
import logging
from typing import TYPE_CHECKING

from sqlalchemy import delete, update
from sqlalchemy.exc import DBAPIError, DisconnectionError, InterfaceError, OperationalError
from sqlmodel import select

from .exceptions import RESOURCE_NOT_FOUND, NotFoundError, TransientError
from .types import ResourceInfo, ResourceRef, ResourceType
from .utils import as_utc

if TYPE_CHECKING:
    from collections.abc import Iterator
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncSession

    from stratus.models.resources import FileBase, FolderBase

    Row = FolderBase | FileBase

logger = logging.getLogger(__name__)


@contextlib.contextmanager
def store_errors(operation: str) -> Iterator[None]:
    """Translate driver connectivity failures raised inside the block."""
    try:
        yield
    except (OperationalError, InterfaceError, DisconnectionError) as exc:
        logger.warning("Store unavailable during %s", operation, exc_info=True)
        raise TransientError(f"Store unavailable during {operation}") from exc
    except DBAPIError as exc:
        if not exc.connection_invalidated:
            raise
        logger.warning("Connection lost during %s", operation, exc_info=True)
        raise TransientError(f"Store unavailable during {operation}") from exc


class ResourceStore:
    """Reads and writes the ``deleted_at``, ``parent`` and ``owner_id`` columns.

    Never caches rows between calls.
    """

    def __init__(
        self,
        folder_model: type[FolderBase],
        file_model: type[FileBase],
    ) -> None:
        self._folder_model = folder_model
        self._file_model = file_model

    @property
    def folder_model(self) -> type[FolderBase]:
        return self._folder_model

    @property
    def file_model(self) -> type[FileBase]:
        return self._file_model

    def model_for(self, resource_type: ResourceType) -> type[Row]:
        if resource_type is ResourceType.FOLDER:
            return self._folder_model
        return self._file_model

    # ------------------------------------------------------------------
    # Conversion
    # ------------------------------------------------------------------

    @staticmethod
    def to_info(row: Row) -> ResourceInfo:
        """Convert a folder or file row to ``ResourceInfo``."""
        if hasattr(row, "storage_path"):
            return ResourceInfo(
                ref=ResourceRef(ResourceType.FILE, row.id),
                name=row.name,
                owner_id=row.owner_id,
                parent_id=row.folder_id,  # type: ignore[union-attr]
                size_bytes=row.size_bytes,  # type: ignore[union-attr]
                mime_type=row.mime_type,  # type: ignore[union-attr]
                storage_path=row.storage_path,  # type: ignore[union-attr]
                created_at=as_utc(row.created_at),
                updated_at=as_utc(row.updated_at),
                deleted_at=as_utc(row.deleted_at),
            )
        return ResourceInfo(
            ref=ResourceRef(ResourceType.FOLDER, row.id),
            name=row.name,
            owner_id=row.owner_id,
            parent_id=row.parent_id,  # type: ignore[union-attr]
            created_at=as_utc(row.created_at),
            updated_at=as_utc(row.updated_at),
            deleted_at=as_utc(row.deleted_at),
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_row(self, session: AsyncSession, ref: ResourceRef) -> Row | None:
        """Fetch the row for *ref*, or ``None``."""
        model = self.model_for(ref.type)
        with store_errors(f"lookup of {ref}"):
            result = await session.execute(select(model).where(model.id == ref.id))
        return result.scalar_one_or_none()

    async def require_row(self, session: AsyncSession, ref: ResourceRef) -> Row:
        row = await self.get_row(session, ref)
        if row is None:
            raise NotFoundError(RESOURCE_NOT_FOUND)
        return row

    async def get_resource(self, session: AsyncSession, ref: ResourceRef) -> ResourceInfo:
        """Return metadata for *ref*. Raises ``NotFoundError`` if absent."""
        return self.to_info(await self.require_row(session, ref))

    async def get_owner_id(self, session: AsyncSession, ref: ResourceRef) -> str:
        """Return only the owner column for *ref*. Raises ``NotFoundError`` if absent."""
        model = self.model_for(ref.type)
        with store_errors(f"owner lookup of {ref}"):
            result = await session.execute(select(model.owner_id).where(model.id == ref.id))
        owner_id = result.scalar_one_or_none()
        if owner_id is None:
            raise NotFoundError(RESOURCE_NOT_FOUND)
        return owner_id

    async def list_children(
        self,
        session: AsyncSession,
        folder_id: str | None,
        owner_id: str,
        *,
        include_deleted: bool = False,
    ) -> list[ResourceInfo]:
        """List folders then files directly under *folder_id* (``None`` = root)."""
        rows: list[Row] = []
        rows.extend(
            await self._child_rows(
                session, self._folder_model, folder_id, owner_id, include_deleted
            )
        )
        rows.extend(
            await self._child_rows(
                session, self._file_model, folder_id, owner_id, include_deleted
            )
        )
        return [self.to_info(r) for r in rows]

    async def _child_rows(
        self,
        session: AsyncSession,
        model: type[Row],
        folder_id: str | None,
        owner_id: str,
        include_deleted: bool,
    ) -> list[Row]:
        parent_col = model.parent_id if model is self._folder_model else model.folder_id  # type: ignore[union-attr]
        conditions = [model.owner_id == owner_id]
        if folder_id is None:
            conditions.append(parent_col.is_(None))  # type: ignore[union-attr]
        else:
            conditions.append(parent_col == folder_id)
        if not include_deleted:
            conditions.append(model.deleted_at.is_(None))  # type: ignore[union-attr]
        with store_errors("list children"):
            result = await session.execute(
                select(model).where(*conditions).order_by(model.name)
            )
        return list(result.scalars().all())

    async def files_in(
        self,
        session: AsyncSession,
        folder_ids: list[str],
    ) -> list[FileBase]:
        """All files (any state) directly inside any of *folder_ids*."""
        if not folder_ids:
            return []
        model = self._file_model
        with store_errors("list folder files"):
            result = await session.execute(
                select(model).where(model.folder_id.in_(folder_ids))  # type: ignore[union-attr]
            )
        return list(result.scalars().all())

    async def subfolders_of(
        self,
        session: AsyncSession,
        folder_ids: list[str],
    ) -> list[FolderBase]:
        """All folders (any state) whose parent is one of *folder_ids*."""
        if not folder_ids:
            return []
        model = self._folder_model
        with store_errors("list sub-folders"):
            result = await session.execute(
                select(model).where(model.parent_id.in_(folder_ids))  # type: ignore[union-attr]
            )
        return list(result.scalars().all())

    async def descendant_folders(
        self,
        session: AsyncSession,
        folder_id: str,
    ) -> list[FolderBase]:
        """Every folder below *folder_id*, breadth first. Excludes the folder itself."""
        found: list[FolderBase] = []
        seen = {folder_id}
        frontier = [folder_id]
        while frontier:
            children = [f for f in await self.subfolders_of(session, frontier) if f.id not in seen]
            seen.update(f.id for f in children)
            found.extend(children)
            frontier = [f.id for f in children]
        return found

    async def ancestor_ids(self, session: AsyncSession, folder_id: str | None) -> list[str]:
        """Folder ids from *folder_id* up to the root, nearest first."""
        ancestors: list[str] = []
        current = folder_id
        while current is not None and current not in ancestors:
            ancestors.append(current)
            row = await self.get_row(session, ResourceRef(ResourceType.FOLDER, current))
            current = row.parent_id if row is not None else None  # type: ignore[union-attr]
        return ancestors

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def set_deleted_at(
        self,
        session: AsyncSession,
        ref: ResourceRef,
        timestamp: datetime | None,
        *,
        updated_at: datetime,
    ) -> None:
        """Set ``deleted_at`` on a single row."""
        model = self.model_for(ref.type)
        with store_errors(f"update of {ref}"):
            await session.execute(
                update(model)
                .where(model.id == ref.id)
                .values(deleted_at=timestamp, updated_at=updated_at)
            )

    async def set_deleted_at_many(
        self,
        session: AsyncSession,
        resource_type: ResourceType,
        ids: list[str],
        timestamp: datetime | None,
        *,
        updated_at: datetime,
        only_if: datetime | None = None,
        only_active: bool = False,
    ) -> list[str]:
        """Bulk-set ``deleted_at`` on *ids*, returning the ids actually changed.

        *only_active* restricts to rows with ``deleted_at IS NULL``;
        *only_if* restricts to rows whose ``deleted_at`` equals that value.
        """
        if not ids:
            return []
        model = self.model_for(resource_type)
        conditions = [model.id.in_(ids)]  # type: ignore[union-attr]
        if only_active:
            conditions.append(model.deleted_at.is_(None))  # type: ignore[union-attr]
        if only_if is not None:
            conditions.append(model.deleted_at == only_if)
        with store_errors(f"bulk update of {resource_type.value}s"):
            result = await session.execute(select(model.id).where(*conditions))
            changed = list(result.scalars().all())
            if changed:
                await session.execute(
                    update(model)
                    .where(model.id.in_(changed))  # type: ignore[union-attr]
                    .values(deleted_at=timestamp, updated_at=updated_at)
                )
        return changed

    async def delete_row(self, session: AsyncSession, ref: ResourceRef) -> bool:
        """Delete the row for *ref*. Returns True if a row was removed."""
        model = self.model_for(ref.type)
        with store_errors(f"delete of {ref}"):
            result = await session.execute(delete(model).where(model.id == ref.id))
        return bool(result.rowcount)

    async def list_trashed(self, session: AsyncSession, owner_id: str) -> list[ResourceInfo]:
        """Every trashed folder then file owned by *owner_id*, newest first."""
        rows: list[Row] = []
        for model in (self._folder_model, self._file_model):
            with store_errors("list trash"):
                result = await session.execute(
                    select(model)
                    .where(
                        model.owner_id == owner_id,
                        model.deleted_at.is_not(None),  # type: ignore[union-attr]
                    )
                    .order_by(model.deleted_at.desc())  # type: ignore[union-attr]
                )
            rows.extend(result.scalars().all())
        return [self.to_info(r) for r in rows]
