"""Value types and result types: Principal, ResourceRef, TrashResult, etc."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from datetime import datetime

    from .permissions import Role


class ResourceType(str, Enum):
    """Resource variants in the tree."""

    FILE = "file"
    FOLDER = "folder"


@dataclass(frozen=True, slots=True)
class Principal:
    """An authenticated caller, produced once by the authentication layer.

    Attributes:
        id: Opaque principal identifier.
        email: Verified email, lowercased. ``None`` when unknown.
    """

    id: str
    email: str | None = None

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("Principal id must not be empty")
        if self.email is not None:
            email = self.email.strip().lower()
            object.__setattr__(self, "email", email or None)


@dataclass(frozen=True, slots=True)
class ResourceRef:
    """Reference to a single file or folder."""

    type: ResourceType
    id: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "type", ResourceType(self.type))

    def __str__(self) -> str:
        return f"{self.type.value}:{self.id}"


def file_ref(resource_id: str) -> ResourceRef:
    return ResourceRef(ResourceType.FILE, resource_id)


def folder_ref(resource_id: str) -> ResourceRef:
    return ResourceRef(ResourceType.FOLDER, resource_id)


@dataclass
class ResourceInfo:
    """File/folder metadata."""

    ref: ResourceRef
    name: str
    owner_id: str
    parent_id: str | None = None
    size_bytes: int | None = None
    mime_type: str | None = None
    storage_path: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    deleted_at: datetime | None = None

    @property
    def is_folder(self) -> bool:
        return self.ref.type is ResourceType.FOLDER

    @property
    def trashed(self) -> bool:
        return self.deleted_at is not None


@dataclass
class ShareLinkInfo:
    """Share link metadata."""

    ref: ResourceRef
    token: str
    role: Role
    owner_id: str
    expires_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    url: str | None = None


@dataclass
class GrantInfo:
    """Email grant metadata."""

    ref: ResourceRef
    email: str
    role: Role
    granted_by: str
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class ChildrenResult:
    """Result of a list_children operation."""

    folder_id: str | None
    folders: list[ResourceInfo] = field(default_factory=list)
    files: list[ResourceInfo] = field(default_factory=list)


@dataclass
class TrashResult:
    """Result of a soft delete or restore."""

    ref: ResourceRef
    changed: bool
    message: str
    deleted_at: datetime | None = None
    affected: list[ResourceRef] = field(default_factory=list)


@dataclass
class PurgeFailure:
    """A single item a purge cascade could not remove."""

    ref: ResourceRef
    reason: str


@dataclass
class PurgeResult:
    """Result of a purge or empty-trash operation."""

    success: bool
    message: str
    purged: list[ResourceRef] = field(default_factory=list)
    failed: list[PurgeFailure] = field(default_factory=list)
    blob_errors: list[PurgeFailure] = field(default_factory=list)
