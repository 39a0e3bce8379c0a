"""Access layer — role resolution, sharing, trash lifecycle, tree operations."""

from stratus.access.blobs import LocalBlobStore
from stratus.access.exceptions import (
    ConflictError,
    ErrorKind,
    ForbiddenError,
    NotFoundError,
    PartialFailureError,
    ResolutionError,
    StratusError,
    TransientError,
)
from stratus.access.grants import GrantManager
from stratus.access.guard import AccessGuard
from stratus.access.links import ShareLinkManager
from stratus.access.permissions import POLICY, Action, Role, allows
from stratus.access.protocol import BlobStore, RoleStrategy
from stratus.access.resolver import (
    GrantStrategy,
    LinkShareStrategy,
    OwnershipStrategy,
    RoleResolver,
)
from stratus.access.store import ResourceStore
from stratus.access.trash import CascadeDepth, TrashLifecycle
from stratus.access.tree import ResourceTree
from stratus.access.types import (
    ChildrenResult,
    GrantInfo,
    Principal,
    PurgeFailure,
    PurgeResult,
    ResourceInfo,
    ResourceRef,
    ResourceType,
    ShareLinkInfo,
    TrashResult,
    file_ref,
    folder_ref,
)

__all__ = [
    "POLICY",
    "AccessGuard",
    "Action",
    "BlobStore",
    "CascadeDepth",
    "ChildrenResult",
    "ConflictError",
    "ErrorKind",
    "ForbiddenError",
    "GrantInfo",
    "GrantManager",
    "GrantStrategy",
    "LinkShareStrategy",
    "LocalBlobStore",
    "NotFoundError",
    "OwnershipStrategy",
    "PartialFailureError",
    "Principal",
    "PurgeFailure",
    "PurgeResult",
    "ResolutionError",
    "ResourceInfo",
    "ResourceRef",
    "ResourceStore",
    "ResourceTree",
    "ResourceType",
    "Role",
    "RoleResolver",
    "RoleStrategy",
    "ShareLinkInfo",
    "ShareLinkManager",
    "StratusError",
    "TransientError",
    "TrashLifecycle",
    "TrashResult",
    "allows",
    "file_ref",
    "folder_ref",
]
